"""Recursive character chunker with guaranteed overlap.

Chunk ends are snapped to the coarsest separator available inside the window:
paragraph break, line break, sentence end, whitespace, and finally a hard
character cut. The next chunk starts on a boundary at or before
``end - chunk_overlap``, searched through the same hierarchy, so:

  - every chunk is at most ``chunk_size`` characters,
  - neighbouring chunks share at least ``chunk_overlap`` characters,
  - chunks are exact substrings, and dropping each chunk's overlap with its
    predecessor reconstructs the input.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 1000
DEFAULT_CHUNK_OVERLAP = 200

# Boundaries sit just after the match. Coarsest first.
SEPARATORS: tuple[re.Pattern[str], ...] = (
    re.compile(r"\n\s*\n"),      # paragraph break
    re.compile(r"\n"),           # line break
    re.compile(r"[.!?][\"')\]]*\s"),  # sentence end
    re.compile(r"\s"),           # whitespace
)


@dataclass(frozen=True)
class TextSpan:
    """A chunk of the source text and its character offsets (end exclusive)."""

    start: int
    end: int
    text: str


class RecursiveChunker:
    """Split text into overlapping, separator-aligned chunks.

    Args:
        chunk_size: Maximum characters per chunk.
        chunk_overlap: Minimum characters shared by neighbouring chunks.
    """

    def __init__(
        self,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        chunk_overlap: int = DEFAULT_CHUNK_OVERLAP,
    ) -> None:
        _validate(chunk_size, chunk_overlap)
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap

    def split(
        self,
        text: str,
        chunk_size: int | None = None,
        chunk_overlap: int | None = None,
    ) -> list[str]:
        """Return the chunk texts for *text*, in document order."""
        return [span.text for span in self.split_spans(text, chunk_size, chunk_overlap)]

    def split_spans(
        self,
        text: str,
        chunk_size: int | None = None,
        chunk_overlap: int | None = None,
    ) -> list[TextSpan]:
        """Return the chunks of *text* with their offsets.

        Empty or whitespace-only text yields []. Text no longer than
        ``chunk_size`` yields a single span equal to the whole text.
        """
        size = self.chunk_size if chunk_size is None else chunk_size
        overlap = self.chunk_overlap if chunk_overlap is None else chunk_overlap
        _validate(size, overlap)

        if not text.strip():
            return []
        length = len(text)
        if length <= size:
            return [TextSpan(0, length, text)]

        spans: list[TextSpan] = []
        start = 0
        while True:
            hard_end = start + size
            if hard_end >= length:
                spans.append(TextSpan(start, length, text[start:]))
                break

            # The end must leave room for the overlap and still move forward;
            # boundaries in the back half of the window are preferred.
            end = _last_boundary(
                text, start + overlap + 1, hard_end, preferred_lo=start + size // 2
            )
            spans.append(TextSpan(start, end, text[start:end]))

            latest_start = end - overlap
            # Look back at most one overlap further for a nicer boundary.
            earliest_start = max(start + 1, latest_start - overlap)
            start = _last_boundary(text, earliest_start, latest_start)

        logger.debug("Split %d characters into %d chunks", length, len(spans))
        return spans


def _last_boundary(text: str, lo: int, hi: int, preferred_lo: int | None = None) -> int:
    """Return a separator boundary in ``[lo, hi]``, or *hi* (a hard cut) if there is none.

    When *preferred_lo* is given, ``[preferred_lo, hi]`` is searched first.
    """
    if preferred_lo is not None and lo < preferred_lo <= hi:
        boundary = _find_boundary(text, preferred_lo, hi)
        if boundary is not None:
            return boundary
    boundary = _find_boundary(text, lo, hi)
    return hi if boundary is None else boundary


def _find_boundary(text: str, lo: int, hi: int) -> int | None:
    """Return the last boundary in ``[lo, hi]`` of the coarsest separator present."""
    if lo > hi:
        return None
    window = text[lo - 1 : hi] if lo > 0 else text[:hi]
    offset = lo - 1 if lo > 0 else 0
    for pattern in SEPARATORS:
        best = -1
        for match in pattern.finditer(window):
            boundary = offset + match.end()
            if lo <= boundary <= hi:
                best = boundary
        if best != -1:
            return best
    return None


def _validate(chunk_size: int, chunk_overlap: int) -> None:
    if chunk_size < 1:
        raise ValueError("chunk_size must be >= 1")
    if not 0 <= chunk_overlap < chunk_size:
        raise ValueError("chunk_overlap must be >= 0 and smaller than chunk_size")
