"""Chat sessions over a user's selected documents."""
