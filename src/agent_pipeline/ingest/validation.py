"""Quality gate applied to extracted text before chunking."""

from __future__ import annotations

import re

from agent_pipeline.config import ValidationConfig
from agent_pipeline.errors import ExtractionError
from agent_pipeline.obs.logging import get_logger

logger = get_logger(__name__)

_NON_PRINTABLE = re.compile(r"[^\x20-\x7E\n\r\t]")
_BINARY_INDICATORS = ("%PDF", "\x00", "\x01", "\x02", "\x03", "\x04", "\x05")
_ERROR_PLACEHOLDERS = (
    re.compile(r"\[PDF Processing Notice"),
    re.compile(r"\[PDF Processing Error"),
    re.compile(r"\[Document Processing Error"),
    re.compile(r"\[Document Processing Notice"),
    re.compile(r"\[Word Document:"),
    re.compile(r"\[Unsupported Document Type"),
    re.compile(r"\[CSV Processing Error"),
)


class ContentValidator:
    """Rejects content that would pollute retrieval with garbage embeddings."""

    def __init__(self, config: ValidationConfig | None = None) -> None:
        self.config = config or ValidationConfig()
        self._word_pattern = re.compile(
            rf"\b[a-zA-Z]{{{self.config.min_word_length},}}\b"
        )

    def check(self, text: str) -> str | None:
        """Return the rejection reason, or None when the content passes."""
        content = text.strip()
        if len(content) < self.config.min_length:
            return f"content too short ({len(content)} characters)"

        for indicator in _BINARY_INDICATORS:
            if indicator in content:
                return "binary data detected"

        ratio = len(_NON_PRINTABLE.findall(content)) / len(content)
        if ratio > self.config.max_non_printable_ratio:
            return f"too many non-printable characters ({ratio:.2f})"

        word_count = len(self._word_pattern.findall(content))
        if word_count < self.config.min_words:
            return f"insufficient meaningful words ({word_count})"

        for pattern in _ERROR_PLACEHOLDERS:
            if pattern.search(content):
                return "error placeholder detected"
        return None

    def validate(self, text: str, *, filename: str, size: int, mime_type: str) -> str:
        """Return the stripped content or raise `ExtractionError` with a notice."""
        reason = self.check(text)
        if reason is None:
            return text.strip()
        logger.warning(
            "extraction_rejected", filename=filename, mime_type=mime_type, reason=reason
        )
        raise ExtractionError(
            failure_notice(filename, size=size, mime_type=mime_type), reason=reason
        )


def failure_notice(filename: str, *, size: int, mime_type: str) -> str:
    return (
        f'[Document Processing Notice: Unable to extract readable text from "{filename}". '
        "The file may be image-based, password-protected, or in a format that "
        f"requires specialized processing. File size: {size} bytes, Type: {mime_type}]"
    )
