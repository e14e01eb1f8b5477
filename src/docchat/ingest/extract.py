"""Plain-text extraction for uploaded files.

PDF pages are read with pypdf and joined with blank lines; text-like files
are decoded as UTF-8. Anything else is rejected before ingestion starts.
"""

from __future__ import annotations

from pathlib import Path

import pypdf
from pypdf.errors import PdfReadError

from docchat.errors import ExtractionError

PDF_EXTS = frozenset({".pdf"})
TEXT_EXTS = frozenset({".txt", ".md", ".markdown", ".rst", ".text", ".csv", ".log"})
SUPPORTED_EXTS = PDF_EXTS | TEXT_EXTS


def extract_text(path: Path | str) -> str:
    """Return the plain text of the file at *path*.

    Raises:
        ExtractionError: If the file is missing, unsupported, or unreadable.
    """
    p = Path(path)
    if not p.is_file():
        raise ExtractionError(f"File not found: '{p}'")

    ext = p.suffix.lower()
    if ext in PDF_EXTS:
        return _extract_pdf(p)
    if ext in TEXT_EXTS:
        try:
            return p.read_text(encoding="utf-8", errors="replace")
        except OSError as exc:
            raise ExtractionError(f"Cannot read '{p}': {exc}") from exc
    raise ExtractionError(
        f"Unsupported file type {ext!r} for '{p.name}'. "
        f"Supported: {', '.join(sorted(SUPPORTED_EXTS))}"
    )


def _extract_pdf(path: Path) -> str:
    """Extract all page text from the PDF at *path*; pages without text are skipped."""
    try:
        reader = pypdf.PdfReader(path)
        parts: list[str] = []
        for page in reader.pages:
            stripped = (page.extract_text() or "").strip()
            if stripped:
                parts.append(stripped)
    except (PdfReadError, OSError, ValueError) as exc:
        raise ExtractionError(f"Cannot read PDF '{path.name}': {exc}") from exc
    return "\n\n".join(parts)
