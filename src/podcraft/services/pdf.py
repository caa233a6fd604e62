"""
PDF Text Extraction.

Uploaded PDFs are turned into plain text that is appended to the
episode's source material. Each file becomes one block:

    --- Content from report.pdf ---
    <text>

Blocks are joined by a blank line.
"""
from __future__ import annotations

import io
from dataclasses import dataclass
from typing import Iterable, List, Tuple

from pypdf import PdfReader
from pypdf.errors import PdfReadError

from podcraft.core.logging import get_logger, verbose
from podcraft.utils.timeit import timeit

_LOG = get_logger("podcraft.pdf")


class PdfExtractionError(RuntimeError):
    """Raised when a file cannot be parsed as a PDF."""
    pass


@dataclass
class ExtractedPdf:
    name: str
    text: str

    def to_dict(self) -> dict:
        return {"name": self.name, "text": self.text}


def extract_pdf_text(data: bytes) -> str:
    """
    Extract the text of every page, pages separated by a newline.

    Raises:
        PdfExtractionError: If the bytes are not a readable PDF.
    """
    with timeit("pdf_extract") as t:
        try:
            reader = PdfReader(io.BytesIO(data))
            pages = [page.extract_text() or "" for page in reader.pages]
        except (PdfReadError, ValueError, KeyError, TypeError) as e:
            raise PdfExtractionError(f"could not read PDF: {e}") from e
    text = "\n".join(pages).strip()
    verbose(_LOG, "pdf_extracted", pages=len(pages), chars=len(text), seconds=round(t.elapsed, 4))
    return text


def extract_pdfs(files: Iterable[Tuple[str, bytes]]) -> List[ExtractedPdf]:
    """Extract (name, bytes) pairs in order; the first bad file aborts."""
    return [ExtractedPdf(name=name, text=extract_pdf_text(data)) for name, data in files]


def combine_sources(results: Iterable[ExtractedPdf]) -> str:
    return "\n\n".join(f"--- Content from {r.name} ---\n{r.text}" for r in results)
