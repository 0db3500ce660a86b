"""Text extraction from uploaded document bytes.

Turns the raw bytes of an upload into an ordered list of *text units*,
the input of :class:`~src.services.ingestion.chunker.TextChunker`:

- **PDF** -- one unit per page via PyMuPDF (fitz).  Pages without an
  extractable text layer become empty units so unit indices stay equal to
  page indices.
- **DOCX** -- one unit via python-docx; paragraphs are joined with blank
  lines.
- **TXT / MD** -- one unit, decoded as UTF-8 (a leading BOM is dropped).

Reading is synchronous and CPU-bound; the ingestion pipeline runs it on
the document worker pool's thread executor.
"""

from __future__ import annotations

import io

import fitz  # PyMuPDF -- the "fitz" import name is a PyMuPDF convention
import structlog
from docx import Document as DocxDocument

from src.utils.errors import ProcessingError

logger = structlog.get_logger(logger_name=__name__)

# MIME types we accept, mapped to the extension the reader dispatches on.
MIME_TO_EXTENSION: dict[str, str] = {
    "application/pdf": "pdf",
    "text/plain": "txt",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": "docx",
    "text/markdown": "md",
    "text/x-markdown": "md",
}

# MIME types too generic to identify a format; the filename decides.
GENERIC_MIME_TYPES = frozenset({"", "application/octet-stream", "binary/octet-stream"})


def resolve_extension(filename: str, content_type: str | None) -> str:
    """Return the lower-case extension used to pick a reader.

    A known MIME type wins; unknown or generic MIME types fall back to the
    filename's extension.  Returns ``""`` when neither identifies a format.
    """
    mime = (content_type or "").split(";", 1)[0].strip().lower()
    if mime in MIME_TO_EXTENSION:
        return MIME_TO_EXTENSION[mime]
    if "." in filename:
        return filename.rsplit(".", 1)[1].strip().lower()
    return ""


class DocumentReader:
    """Extracts text units from PDF, DOCX, TXT, and Markdown bytes."""

    def read(self, content: bytes, extension: str) -> list[str]:
        """Extract the text units of one document.

        Parameters
        ----------
        content:
            Raw upload bytes.
        extension:
            Lower-case extension without the dot (see :func:`resolve_extension`).

        Raises
        ------
        ProcessingError
            If the format is unsupported or the bytes cannot be parsed.
        """
        ext = extension.lower().lstrip(".")
        if ext == "pdf":
            units = self._read_pdf(content)
        elif ext == "docx":
            units = [self._read_docx(content)]
        elif ext in ("txt", "md"):
            units = [self._read_text(content)]
        else:
            raise ProcessingError(message=f"Unsupported document type: {extension!r}")

        logger.debug(
            "document_read",
            extension=ext,
            units=len(units),
            chars=sum(len(u) for u in units),
        )
        return units

    @staticmethod
    def _read_pdf(content: bytes) -> list[str]:
        try:
            doc = fitz.open(stream=content, filetype="pdf")
        except Exception as exc:
            raise ProcessingError(message=f"Could not open PDF: {exc}") from exc

        try:
            pages = [doc[page_num].get_text("text") for page_num in range(len(doc))]
        except Exception as exc:
            raise ProcessingError(message=f"Could not extract PDF text: {exc}") from exc
        finally:
            doc.close()

        if not any(page.strip() for page in pages):
            logger.warning("pdf_no_text_extracted", pages=len(pages))
        return pages

    @staticmethod
    def _read_docx(content: bytes) -> str:
        try:
            doc = DocxDocument(io.BytesIO(content))
        except Exception as exc:
            raise ProcessingError(message=f"Could not open DOCX: {exc}") from exc
        return "\n\n".join(para.text for para in doc.paragraphs if para.text.strip())

    @staticmethod
    def _read_text(content: bytes) -> str:
        try:
            return content.decode("utf-8-sig")
        except UnicodeDecodeError as exc:
            raise ProcessingError(message=f"Text file is not valid UTF-8: {exc}") from exc
