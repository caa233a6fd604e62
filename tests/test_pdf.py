"""Tests for PDF text extraction."""
from __future__ import annotations

import pytest

from conftest import make_pdf
from podcraft.services.pdf import (
    ExtractedPdf,
    PdfExtractionError,
    combine_sources,
    extract_pdf_text,
    extract_pdfs,
)


class TestExtractPdfText:

    def test_extracts_page_text(self):
        assert "Hello PodCraft" in extract_pdf_text(make_pdf("Hello PodCraft"))

    def test_not_a_pdf(self):
        with pytest.raises(PdfExtractionError):
            extract_pdf_text(b"this is not a pdf")

    def test_multiple_files_in_order(self):
        results = extract_pdfs([("a.pdf", make_pdf("First file")), ("b.pdf", make_pdf("Second file"))])
        assert [r.name for r in results] == ["a.pdf", "b.pdf"]
        assert "Second file" in results[1].text

    def test_bad_file_aborts(self):
        with pytest.raises(PdfExtractionError):
            extract_pdfs([("a.pdf", make_pdf("ok")), ("b.pdf", b"garbage")])


class TestCombineSources:

    def test_blocks(self):
        combined = combine_sources([ExtractedPdf("a.pdf", "alpha"), ExtractedPdf("b.pdf", "beta")])
        assert combined == "--- Content from a.pdf ---\nalpha\n\n--- Content from b.pdf ---\nbeta"

    def test_empty(self):
        assert combine_sources([]) == ""

    def test_to_dict(self):
        assert ExtractedPdf("a.pdf", "alpha").to_dict() == {"name": "a.pdf", "text": "alpha"}
