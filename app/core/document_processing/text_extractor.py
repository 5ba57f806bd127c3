"""Plain-text extractor for txt, markdown, html, csv and json uploads.

Bytes are decoded verbatim; markup in .html/.md files is kept as-is.
"""

from typing import Any

from app.core.document_processing.base import (
    BaseExtractor,
    DocumentType,
    ExtractionError,
    ExtractionResult,
    ExtractorRegistry,
)
from app.core.logging import get_logger

logger = get_logger(__name__)

# Decoding fallback chain, tried in order after the BOM check
_ENCODINGS = ("utf-8", "latin-1")


def decode_bytes(raw_bytes: bytes) -> tuple[str, str]:
    """
    Decode bytes using the fallback chain.

    Returns:
        Tuple of (decoded_text, encoding_name)

    Raises:
        ExtractionError: If the bytes look binary or no encoding works
    """
    if raw_bytes.startswith(b"\xef\xbb\xbf"):
        try:
            return raw_bytes.decode("utf-8-sig"), "utf-8-sig"
        except UnicodeDecodeError:
            pass

    # Latin-1 accepts any byte sequence; NUL bytes mean this is not text
    if b"\x00" in raw_bytes:
        raise ExtractionError(
            "File content is binary, not text.", extractor="text", recoverable=False
        )

    for encoding in _ENCODINGS:
        try:
            return raw_bytes.decode(encoding), encoding
        except UnicodeDecodeError:
            continue

    raise ExtractionError(
        "Unable to decode file content. Supported encodings: UTF-8, UTF-8-BOM, Latin-1.",
        extractor="text",
        recoverable=False,
    )


class TextExtractor(BaseExtractor):
    """Extractor for plain text formats."""

    document_type = DocumentType.TEXT

    async def extract(
        self,
        file_bytes: bytes,
        filename: str,
        **kwargs: Any,
    ) -> ExtractionResult:
        valid, error_msg = self.validate_size(file_bytes)
        if not valid:
            raise ExtractionError(error_msg, extractor="text", recoverable=False)

        text, encoding = decode_bytes(file_bytes)
        logger.debug(f"Decoded {filename} as {encoding}")

        warnings = [] if text.strip() else ["File is empty"]
        return ExtractionResult(
            text=text,
            document_type=DocumentType.TEXT,
            warnings=warnings,
        )


# Register extractor
ExtractorRegistry.register(TextExtractor())
