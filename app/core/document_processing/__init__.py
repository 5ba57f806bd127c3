"""Document processing package for turning uploaded files into plain text.

This package provides:
- Extractors for PDF, DOCX and plain text formats
- A registry that selects an extractor by MIME type or extension

Usage:
    from app.core.document_processing import (
        DocumentType,
        ExtractionError,
        ExtractionResult,
        get_extractor,
    )
"""

from app.core.document_processing.base import (
    DocumentType,
    ExtractionResult,
    ExtractionError,
    BaseExtractor,
    ExtractorRegistry,
    get_extractor,
    get_file_extension,
    detect_document_type,
)

# Import extractors to register them
from app.core.document_processing import pdf_extractor  # noqa: F401
from app.core.document_processing import docx_extractor  # noqa: F401
from app.core.document_processing import text_extractor  # noqa: F401

__all__ = [
    "DocumentType",
    "ExtractionResult",
    "ExtractionError",
    "BaseExtractor",
    "ExtractorRegistry",
    "get_extractor",
    "get_file_extension",
    "detect_document_type",
]
