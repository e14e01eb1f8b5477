"""docchat ingestion: text extraction, chunking, and the per-document pipeline."""

from docchat.ingest.chunker import RecursiveChunker, TextSpan
from docchat.ingest.extract import SUPPORTED_EXTS, extract_text
from docchat.ingest.pipeline import IngestResult, Ingestor

__all__ = [
    "Ingestor",
    "IngestResult",
    "RecursiveChunker",
    "SUPPORTED_EXTS",
    "TextSpan",
    "extract_text",
]
