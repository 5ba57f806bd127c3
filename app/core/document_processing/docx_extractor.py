"""DOCX text extractor using python-docx.

Produces raw text: paragraph text in document order, then every table
flattened row by row. Styling and table structure are discarded.
"""

import asyncio
from io import BytesIO
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

def _raw_text(file_bytes: bytes) -> tuple[str, int]:
    """Return (raw text, table count)."""
    from docx import Document

    doc = Document(BytesIO(file_bytes))

    parts = [para.text for para in doc.paragraphs if para.text.strip()]

    for table in doc.tables:
        for row in table.rows:
            cells = [cell.text.strip() for cell in row.cells if cell.text.strip()]
            if cells:
                parts.append(" ".join(cells))

    return "\n".join(parts), len(doc.tables)


class DOCXExtractor(BaseExtractor):
    """DOCX document extractor."""

    document_type = DocumentType.DOCX

    async def extract(
        self,
        file_bytes: bytes,
        filename: str,
        **kwargs: Any,
    ) -> ExtractionResult:
        """Extract raw text from a Word document."""
        valid, error_msg = self.validate_size(file_bytes)
        if not valid:
            raise ExtractionError(error_msg, extractor="docx", recoverable=False)

        try:
            text, table_count = await asyncio.to_thread(_raw_text, file_bytes)
        except Exception as e:
            raise ExtractionError(
                f"Failed to open DOCX: {e}", extractor="docx", recoverable=False
            ) from e

        warnings: list[str] = []
        if not text.strip():
            warnings.append("Document appears to be empty or image-only")

        logger.info(f"Extracted {len(text.split())} words, {table_count} tables from {filename}")

        return ExtractionResult(
            text=text,
            document_type=DocumentType.DOCX,
            warnings=warnings,
        )


# Register extractor
ExtractorRegistry.register(DOCXExtractor())
