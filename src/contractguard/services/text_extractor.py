"""
Text extraction from uploaded contract files.

PDF text comes from pdfplumber, DOCX paragraphs from python-docx. Output
is normalized with `clean_text` before any downstream processing.
"""

import io
import re
from dataclasses import dataclass

import pdfplumber
import structlog
from docx import Document

from contractguard.errors import ExtractionError
from contractguard.models.contract import FileType

logger = structlog.get_logger(__name__)

_HORIZONTAL_WS = re.compile(r"[^\S\n]+")
_EXCESS_NEWLINES = re.compile(r"\n{3,}")
_NON_PRINTABLE = re.compile(r"[^\x09\x0A\x0D\x20-\x7E\u00A0-\uFFFF]")


def clean_text(raw: str) -> str:
    """Normalize line endings and whitespace, drop control characters."""
    text = raw.replace("\r\n", "\n").replace("\r", "\n").replace("\f", "\n")
    text = _HORIZONTAL_WS.sub(" ", text)
    text = _EXCESS_NEWLINES.sub("\n\n", text)
    text = _NON_PRINTABLE.sub("", text)
    return text.strip()


def count_words(text: str) -> int:
    return len(text.split())


@dataclass
class ExtractionResult:
    """Extracted document text and basic statistics."""
    text: str
    word_count: int
    page_count: int
    method: str = "digital"


class TextExtractor:
    """Extracts normalized text from PDF and DOCX bytes."""

    def extract(self, data: bytes, file_type: FileType | str) -> ExtractionResult:
        """Extract text from raw file bytes."""
        try:
            kind = FileType(file_type)
        except ValueError as e:
            raise ExtractionError(f"Unsupported file type: {file_type}") from e

        logger.info("text_extraction_started", file_type=kind.value, size=len(data))
        if kind == FileType.DOCX:
            result = self._extract_docx(data)
        else:
            result = self._extract_pdf(data)

        logger.info(
            "text_extracted",
            file_type=kind.value,
            pages=result.page_count,
            words=result.word_count,
        )
        return result

    def _extract_pdf(self, data: bytes) -> ExtractionResult:
        """Extract text from PDF pages using pdfplumber."""
        page_texts = []
        try:
            with pdfplumber.open(io.BytesIO(data)) as pdf:
                page_count = len(pdf.pages)
                for page in pdf.pages:
                    page_text = page.extract_text() or ""
                    if page_text.strip():
                        page_texts.append(page_text)
        except Exception as e:
            logger.error("pdf_extraction_failed", error=str(e))
            raise ExtractionError(f"Could not read PDF: {e}", e) from e

        text = clean_text("\n\n".join(page_texts))
        return ExtractionResult(
            text=text,
            word_count=count_words(text),
            page_count=page_count,
        )

    def _extract_docx(self, data: bytes) -> ExtractionResult:
        """Extract paragraph and table text using python-docx."""
        try:
            document = Document(io.BytesIO(data))
        except Exception as e:
            logger.error("docx_extraction_failed", error=str(e))
            raise ExtractionError(f"Could not read DOCX: {e}", e) from e

        paragraphs = [p.text for p in document.paragraphs]
        for table in document.tables:
            for row in table.rows:
                for cell in row.cells:
                    paragraphs.extend(p.text for p in cell.paragraphs)

        text = clean_text("\n".join(paragraphs))
        return ExtractionResult(
            text=text,
            word_count=count_words(text),
            page_count=1,
        )
