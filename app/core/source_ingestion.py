"""Source ingestion: uploaded files -> SourceDocuments -> one corpus.

A file that cannot be extracted is reported and left out; it never aborts the
rest of the batch.
"""

from collections.abc import Sequence

from app.core.config import get_settings
from app.core.document_processing import (
    DocumentType,
    ExtractionError,
    get_extractor,
    get_file_extension,
)
from app.core.logging import get_logger
from app.core.schemas_csr import OriginFormat, SourceDocument, SourceUpload

logger = get_logger(__name__)

_ORIGIN_BY_TYPE = {
    DocumentType.PDF: OriginFormat.PDF,
    DocumentType.DOCX: OriginFormat.DOCX,
    DocumentType.TEXT: OriginFormat.PLAIN,
}


def document_marker(name: str) -> str:
    """Boundary line written before each document in the corpus."""
    return f"--- Document: {name} ---"


async def extract_source_document(upload: SourceUpload) -> SourceDocument:
    """
    Extract one upload into a SourceDocument.

    Args:
        upload: File name, bytes and declared content type

    Returns:
        SourceDocument with the extracted plain text

    Raises:
        ExtractionError: If the type is unsupported, the file is too large,
            or the bytes cannot be decoded/parsed
    """
    settings = get_settings()
    if len(upload.data) > settings.MAX_UPLOAD_BYTES:
        raise ExtractionError(
            f"{upload.name} exceeds the upload limit of {settings.MAX_UPLOAD_BYTES} bytes",
            extractor=None,
            recoverable=False,
        )

    extension = get_file_extension(upload.name)
    extractor = get_extractor(upload.content_type, extension)
    if extractor is None:
        raise ExtractionError(
            f"Unsupported file type for {upload.name}: "
            f"{upload.content_type or extension or 'unknown'}. "
            "Upload PDF, DOCX, TXT, MD or HTML files.",
            extractor=None,
            recoverable=False,
        )

    result = await extractor.extract(upload.data, upload.name)
    for warning in result.warnings:
        logger.warning(f"{upload.name}: {warning}")

    return SourceDocument(
        name=upload.name,
        text=result.text,
        origin_format=_ORIGIN_BY_TYPE[result.document_type],
    )


async def ingest_uploads(
    uploads: Sequence[SourceUpload],
) -> list[SourceDocument | ExtractionError]:
    """
    Extract a batch of uploads, in upload order.

    Returns:
        One entry per upload: the SourceDocument, or the ExtractionError that
        excluded it
    """
    outcomes: list[SourceDocument | ExtractionError] = []
    for upload in uploads:
        try:
            outcomes.append(await extract_source_document(upload))
        except ExtractionError as e:
            logger.warning(f"Excluding {upload.name} from corpus: {e}")
            outcomes.append(e)
    return outcomes


def combine_sources(documents: Sequence[SourceDocument]) -> str:
    """
    Concatenate documents into one corpus, each under a boundary marker.

    Order follows ``documents`` (upload order) so the corpus is reproducible.
    """
    return "\n\n".join(f"{document_marker(doc.name)}\n{doc.text}" for doc in documents)
