"""Retrieval-augmented generation stages: rephrase, retrieve, generate."""
