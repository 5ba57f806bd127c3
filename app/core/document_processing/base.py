"""Base extractor interface and registry for source document extraction.

Each extractor turns raw upload bytes into plain text. The registry picks an
extractor from the declared MIME type or the file extension.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class DocumentType(Enum):
    """Supported source document types."""
    PDF = "pdf"
    DOCX = "docx"
    TEXT = "text"


# MIME type to DocumentType mapping
MIME_TYPE_MAP: dict[str, DocumentType] = {
    "application/pdf": DocumentType.PDF,
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": DocumentType.DOCX,
    "text/plain": DocumentType.TEXT,
    "text/markdown": DocumentType.TEXT,
    "text/html": DocumentType.TEXT,
    "text/csv": DocumentType.TEXT,
    "application/json": DocumentType.TEXT,
}

# File extension to DocumentType mapping
EXTENSION_MAP: dict[str, DocumentType] = {
    ".pdf": DocumentType.PDF,
    ".docx": DocumentType.DOCX,
    ".txt": DocumentType.TEXT,
    ".md": DocumentType.TEXT,
    ".markdown": DocumentType.TEXT,
    ".html": DocumentType.TEXT,
    ".htm": DocumentType.TEXT,
    ".csv": DocumentType.TEXT,
    ".tsv": DocumentType.TEXT,
    ".json": DocumentType.TEXT,
}

# Size limits in bytes
SIZE_LIMITS: dict[DocumentType, int] = {
    DocumentType.PDF: 20 * 1024 * 1024,    # 20 MB
    DocumentType.DOCX: 10 * 1024 * 1024,   # 10 MB
    DocumentType.TEXT: 5 * 1024 * 1024,    # 5 MB
}


@dataclass
class ExtractionResult:
    """Plain text extracted from one document plus any non-fatal warnings."""

    text: str
    """Extracted plain text."""

    document_type: DocumentType
    """Which extractor produced the text."""

    warnings: list[str] = field(default_factory=list)
    """Non-fatal issues (truncated page count, empty document, ...)."""


class ExtractionError(Exception):
    """Raised when a document cannot be turned into text."""

    def __init__(self, message: str, extractor: str = None, recoverable: bool = False):
        super().__init__(message)
        self.extractor = extractor
        self.recoverable = recoverable


class BaseExtractor(ABC):
    """Base class for document extractors."""

    document_type: DocumentType

    @abstractmethod
    async def extract(
        self,
        file_bytes: bytes,
        filename: str,
        **kwargs: Any,
    ) -> ExtractionResult:
        """Extract plain text from document bytes.

        Raises:
            ExtractionError: If extraction fails
        """

    def get_size_limit(self) -> int:
        return SIZE_LIMITS.get(self.document_type, 10 * 1024 * 1024)

    def validate_size(self, file_bytes: bytes) -> tuple[bool, str]:
        """Validate file size against limit.

        Returns:
            Tuple of (is_valid, error_message)
        """
        limit = self.get_size_limit()
        size = len(file_bytes)

        if size > limit:
            limit_mb = limit / (1024 * 1024)
            size_mb = size / (1024 * 1024)
            return False, f"File size ({size_mb:.1f} MB) exceeds limit ({limit_mb:.1f} MB)"

        return True, ""


class ExtractorRegistry:
    """Registry of document extractors, consulted in registration order."""

    _extractors: list[BaseExtractor] = []

    @classmethod
    def register(cls, extractor: BaseExtractor) -> None:
        cls._extractors.append(extractor)

    @classmethod
    def for_type(cls, document_type: DocumentType) -> Optional[BaseExtractor]:
        """Get the extractor registered for a document type."""
        for extractor in cls._extractors:
            if extractor.document_type == document_type:
                return extractor
        return None


def get_file_extension(filename: str) -> str:
    """Lowercase extension including the dot, or '' when there is none."""
    if "." in filename:
        return "." + filename.rsplit(".", 1)[-1].lower()
    return ""


def get_extractor(
    mime_type: str = None,
    file_extension: str = None,
) -> Optional[BaseExtractor]:
    """Get the extractor for a file, resolving its type extension-first."""
    doc_type = detect_document_type(mime_type, file_extension)
    if doc_type is None:
        return None
    return ExtractorRegistry.for_type(doc_type)


def detect_document_type(
    mime_type: str = None,
    file_extension: str = None,
) -> Optional[DocumentType]:
    """Detect document type from extension or MIME type.

    The extension wins: browsers frequently send application/octet-stream
    or an empty type for .md and .docx uploads.
    """
    if file_extension:
        ext = file_extension.lower()
        if not ext.startswith("."):
            ext = f".{ext}"
        if ext in EXTENSION_MAP:
            return EXTENSION_MAP[ext]

    if mime_type:
        base_type = mime_type.split(";", 1)[0].strip().lower()
        if base_type in MIME_TYPE_MAP:
            return MIME_TYPE_MAP[base_type]
        if base_type.startswith("text/"):
            return DocumentType.TEXT

    return None
