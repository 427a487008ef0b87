"""Text extraction by MIME type, plus whitespace normalization."""

from __future__ import annotations

import io
import re
from abc import ABC, abstractmethod

import pdfplumber
from docx import Document as DocxDocument

_CRLF = re.compile(r"\r\n?")
_EXCESS_NEWLINES = re.compile(r"\n{3,}")
_EXCESS_SPACES = re.compile(r"[ \t]{2,}")


def normalize_text(text: str) -> str:
    """Unify line endings and collapse runs of blank lines and spaces."""
    text = _CRLF.sub("\n", text)
    text = _EXCESS_NEWLINES.sub("\n\n", text)
    text = _EXCESS_SPACES.sub(" ", text)
    return text.strip()


class Extractor(ABC):
    """Base extractor; `handles` decides MIME-type ownership."""

    @abstractmethod
    def handles(self, mime_type: str) -> bool:
        """Return True if this extractor owns the given MIME type."""

    @abstractmethod
    def extract(self, raw: bytes) -> str:
        """Return best-effort text from raw bytes."""


class PlainTextExtractor(Extractor):
    mime_types = ("text/plain", "text/csv", "text/markdown")

    def handles(self, mime_type: str) -> bool:
        return mime_type in self.mime_types

    def extract(self, raw: bytes) -> str:
        return raw.decode("utf-8", errors="replace")


class PdfTextExtractor(Extractor):
    """Reads the text layer of each page with pdfplumber.

    Image-only PDFs yield little or no text and are caught by the
    validation gate.
    """

    def handles(self, mime_type: str) -> bool:
        return mime_type == "application/pdf"

    def extract(self, raw: bytes) -> str:
        pages: list[str] = []
        with pdfplumber.open(io.BytesIO(raw)) as pdf:
            for page in pdf.pages:
                text = page.extract_text()
                if text and text.strip():
                    pages.append(text.strip())
        return "\n\n".join(pages)


class WordExtractor(Extractor):
    """Reads paragraphs, then table rows, from a Word document."""

    def handles(self, mime_type: str) -> bool:
        return "word" in mime_type or "document" in mime_type

    def extract(self, raw: bytes) -> str:
        document = DocxDocument(io.BytesIO(raw))
        parts = [paragraph.text for paragraph in document.paragraphs if paragraph.text.strip()]
        for table in document.tables:
            for row in table.rows:
                parts.append(" | ".join(cell.text.strip() for cell in row.cells))
        return "\n".join(parts)


class RawDecodeExtractor(Extractor):
    def handles(self, mime_type: str) -> bool:
        return True

    def extract(self, raw: bytes) -> str:
        return raw.decode("utf-8", errors="replace")


class ExtractorRegistry:
    """Dispatches raw bytes to the first extractor that owns the MIME type.

    The raw-decode extractor is always consulted last.
    """

    def __init__(
        self,
        extractors: list[Extractor] | None = None,
        *,
        max_chars: int = 80_000,
    ) -> None:
        self._extractors: list[Extractor] = []
        self._fallback = RawDecodeExtractor()
        self.max_chars = max_chars
        for extractor in extractors or [
            PlainTextExtractor(),
            PdfTextExtractor(),
            WordExtractor(),
        ]:
            self.register(extractor)

    def register(self, extractor: Extractor) -> None:
        self._extractors.append(extractor)

    def resolve(self, mime_type: str) -> Extractor:
        normalized = mime_type.split(";", 1)[0].strip().lower()
        for extractor in self._extractors:
            if extractor.handles(normalized):
                return extractor
        return self._fallback

    def extract(self, raw: bytes, mime_type: str) -> str:
        text = normalize_text(self.resolve(mime_type).extract(raw))
        return text[: self.max_chars]
