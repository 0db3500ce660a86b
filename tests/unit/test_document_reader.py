"""Unit tests for DocumentReader and MIME type resolution."""

from __future__ import annotations

import io

import fitz
import pytest
from docx import Document as DocxDocument

from src.services.ingestion.document_reader import DocumentReader, resolve_extension
from src.utils.errors import ProcessingError

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_pdf(pages: list[str]) -> bytes:
    doc = fitz.open()
    for text in pages:
        page = doc.new_page()
        if text:
            page.insert_text((72, 72), text)
    data = doc.tobytes()
    doc.close()
    return data


def _make_docx(paragraphs: list[str]) -> bytes:
    doc = DocxDocument()
    for text in paragraphs:
        doc.add_paragraph(text)
    buf = io.BytesIO()
    doc.save(buf)
    return buf.getvalue()


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------


class TestResolveExtension:
    @pytest.mark.parametrize(
        ("content_type", "expected"),
        [
            ("application/pdf", "pdf"),
            ("text/plain", "txt"),
            ("text/plain; charset=utf-8", "txt"),
            ("application/vnd.openxmlformats-officedocument.wordprocessingml.document", "docx"),
            ("text/markdown", "md"),
            ("text/x-markdown", "md"),
        ],
    )
    def test_known_mime_types(self, content_type: str, expected: str) -> None:
        assert resolve_extension("upload.bin", content_type) == expected

    def test_generic_mime_falls_back_to_filename(self) -> None:
        assert resolve_extension("notes.MD", "application/octet-stream") == "md"
        assert resolve_extension("report.pdf", None) == "pdf"

    def test_unknown_everything(self) -> None:
        assert resolve_extension("README", "application/octet-stream") == ""
        assert resolve_extension("image.png", "image/png") == "png"


class TestRead:
    def test_plain_text_is_one_unit(self) -> None:
        units = DocumentReader().read("Line one\nLine two".encode(), "txt")
        assert units == ["Line one\nLine two"]

    def test_bom_is_dropped(self) -> None:
        units = DocumentReader().read("\ufeff# Title".encode(), "md")
        assert units == ["# Title"]

    def test_invalid_utf8_raises(self) -> None:
        with pytest.raises(ProcessingError):
            DocumentReader().read(b"\xff\xfe\xfa", "txt")

    def test_pdf_has_one_unit_per_page(self) -> None:
        units = DocumentReader().read(_make_pdf(["First page", "", "Third page"]), "pdf")

        assert len(units) == 3
        assert "First page" in units[0]
        assert units[1].strip() == ""
        assert "Third page" in units[2]

    def test_corrupt_pdf_raises(self) -> None:
        with pytest.raises(ProcessingError):
            DocumentReader().read(b"not a pdf", "pdf")

    def test_docx_paragraphs_joined(self) -> None:
        units = DocumentReader().read(_make_docx(["Intro", "", "Body"]), "docx")
        assert units == ["Intro\n\nBody"]

    def test_unsupported_extension_raises(self) -> None:
        with pytest.raises(ProcessingError, match="Unsupported"):
            DocumentReader().read(b"data", "xlsx")
