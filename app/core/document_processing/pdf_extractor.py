"""PDF text extractor.

Uses PyMuPDF (fitz). Text is read page by page in page order; whitespace
inside a page is collapsed and pages are joined with a single space, so page
order survives but layout does not.
"""

import asyncio
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

# Lazy import to avoid loading heavy libraries at module load
fitz = None


def _get_fitz():
    """Lazy load PyMuPDF."""
    global fitz
    if fitz is None:
        try:
            import fitz as _fitz
            fitz = _fitz
        except ImportError:
            raise ExtractionError(
                "PyMuPDF (fitz) is required for PDF extraction. "
                "Install with: pip install pymupdf",
                extractor="pdf",
            )
    return fitz


def _read_pages(file_bytes: bytes, max_pages: int) -> tuple[list[str], int]:
    """Return (page texts, total page count)."""
    fitz_lib = _get_fitz()
    doc = fitz_lib.open(stream=file_bytes, filetype="pdf")
    try:
        total_pages = len(doc)
        pages = []
        for page_num in range(min(total_pages, max_pages)):
            text = doc[page_num].get_text("text")
            pages.append(" ".join(text.split()))
        return pages, total_pages
    finally:
        doc.close()


class PDFExtractor(BaseExtractor):
    """PDF document extractor."""

    document_type = DocumentType.PDF

    async def extract(
        self,
        file_bytes: bytes,
        filename: str,
        max_pages: int | None = None,
        **kwargs: Any,
    ) -> ExtractionResult:
        """Extract text from a PDF.

        Args:
            file_bytes: Raw PDF content
            filename: Original filename
            max_pages: Page cap (default from settings)

        Raises:
            ExtractionError: If the file is too large or PyMuPDF rejects it
        """
        valid, error_msg = self.validate_size(file_bytes)
        if not valid:
            raise ExtractionError(error_msg, extractor="pdf", recoverable=False)

        if max_pages is None:
            from app.core.config import get_settings

            max_pages = get_settings().MAX_PDF_PAGES

        try:
            pages, total_pages = await asyncio.to_thread(_read_pages, file_bytes, max_pages)
        except ExtractionError:
            raise
        except Exception as e:
            logger.error(f"PDF extraction failed for {filename}: {e}")
            raise ExtractionError(
                f"PDF extraction failed: {e}",
                extractor="pdf",
                recoverable=False,
            ) from e

        if total_pages == 0:
            raise ExtractionError("PDF has no pages", extractor="pdf", recoverable=False)

        warnings: list[str] = []
        if total_pages > max_pages:
            warnings.append(f"PDF has {total_pages} pages, truncated to {max_pages}")

        text = " ".join(pages)
        if not text.strip():
            warnings.append("PDF contains no extractable text (scanned or image-only)")

        logger.info(f"Extracted PDF {filename}: {len(pages)} pages, {len(text.split())} words")

        return ExtractionResult(
            text=text,
            document_type=DocumentType.PDF,
            warnings=warnings,
        )


# Register the extractor
ExtractorRegistry.register(PDFExtractor())
