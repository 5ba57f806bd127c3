"""In-memory drafting sessions.

A session owns the uploaded source documents (in upload order), the
composite document and at most one active generation run. While a run is
active it holds exclusive write access to the document; readers may take
snapshots at any time.
"""

import asyncio
import uuid
from collections.abc import AsyncGenerator, Callable, Sequence
from typing import Any

from app.core.config import get_settings
from app.core.csr_pipeline import CsrDraftPipeline
from app.core.document_assembler import DocumentAssembler
from app.core.document_processing import ExtractionError
from app.core.logging import get_logger
from app.core.outline import SectionOutline, default_outline
from app.core.schemas_csr import (
    GenerationMode,
    GenerationReport,
    ProgressEvent,
    SourceDocument,
    SourceUpload,
)
from app.core.source_ingestion import ingest_uploads

logger = get_logger(__name__)


class GenerationInProgressError(RuntimeError):
    """Raised when the document is written to while a run is active."""


class SessionNotFoundError(KeyError):
    """Raised for unknown session ids."""


class GenerationStream:
    """Event stream of one claimed run.

    The session stays locked until the stream is exhausted or closed. Closing
    releases the lock even when no event was ever read.
    """

    def __init__(
        self,
        events: AsyncGenerator[ProgressEvent, None],
        release: Callable[[], None],
    ):
        self._events = events
        self._release = release

    def __aiter__(self) -> "GenerationStream":
        return self

    async def __anext__(self) -> ProgressEvent:
        return await self._events.__anext__()

    async def aclose(self) -> None:
        try:
            await self._events.aclose()
        finally:
            self._release()


class DraftingSession:
    """Files, document and run state for one editing session."""

    def __init__(self, outline: SectionOutline | None = None, session_id: str | None = None):
        self.session_id = session_id or str(uuid.uuid4())
        self.outline = outline or default_outline()
        self.assembler = DocumentAssembler(self.outline)
        self.last_report: GenerationReport | None = None
        self._documents: list[SourceDocument] = []
        self._active_run: CsrDraftPipeline | None = None
        self._cancel_event: asyncio.Event | None = None

    @property
    def documents(self) -> list[SourceDocument]:
        return list(self._documents)

    @property
    def is_generating(self) -> bool:
        return self._active_run is not None

    async def upload_files(
        self, uploads: Sequence[SourceUpload]
    ) -> list[SourceDocument | ExtractionError]:
        """
        Extract uploads and add the successful ones to the session.

        A re-upload with an existing name replaces that document in place.

        Returns:
            Per-upload outcome, in upload order
        """
        outcomes = await ingest_uploads(uploads)
        for outcome in outcomes:
            if isinstance(outcome, SourceDocument):
                self._add_document(outcome)
        return outcomes

    def _add_document(self, document: SourceDocument) -> None:
        for i, existing in enumerate(self._documents):
            if existing.name == document.name:
                logger.info(f"Replacing source document {document.name}")
                self._documents[i] = document
                return
        self._documents.append(document)

    def remove_document(self, name: str) -> bool:
        before = len(self._documents)
        self._documents = [doc for doc in self._documents if doc.name != name]
        return len(self._documents) != before

    def start_generation(
        self,
        mode: GenerationMode | str | None = None,
        **pipeline_options: Any,
    ) -> GenerationStream:
        """
        Claim the document for a new run and return its event stream.

        Args:
            mode: Generation mode (default from settings)
            **pipeline_options: Passed to CsrDraftPipeline (chains, retry_policy,
                policy, prefilter, sleep)

        Raises:
            GenerationInProgressError: If a run is already active
        """
        if self._active_run is not None:
            raise GenerationInProgressError(
                f"Session {self.session_id} already has an active run"
            )

        mode = GenerationMode(mode or get_settings().DEFAULT_GENERATION_MODE)
        pipeline = CsrDraftPipeline(self.assembler, **pipeline_options)
        self._active_run = pipeline
        self._cancel_event = asyncio.Event()
        return GenerationStream(
            self._stream(pipeline, mode, list(self._documents), self._cancel_event),
            release=lambda: self._release_run(pipeline),
        )

    async def _stream(
        self,
        pipeline: CsrDraftPipeline,
        mode: GenerationMode,
        documents: list[SourceDocument],
        cancel_event: asyncio.Event,
    ) -> AsyncGenerator[ProgressEvent, None]:
        try:
            async for event in pipeline.run(mode, documents, cancel_event):
                yield event
        finally:
            self._release_run(pipeline)

    def _release_run(self, pipeline: CsrDraftPipeline) -> None:
        if self._active_run is not pipeline:
            return
        if pipeline.report is not None:
            self.last_report = pipeline.report
        self._active_run = None
        self._cancel_event = None

    def cancel(self) -> bool:
        """Ask the active run to stop at the next section boundary."""
        if self._cancel_event is None:
            return False
        self._cancel_event.set()
        return True

    async def draft_section(
        self,
        section_id: str,
        mode: GenerationMode | str | None = None,
        **pipeline_options: Any,
    ) -> ProgressEvent:
        """
        Draft one section from the session's documents and place it.

        The document is claimed for the duration of the call.

        Raises:
            GenerationInProgressError: If a run is already active
            SectionNotFoundError: If the section id is not in the outline
        """
        if self._active_run is not None:
            raise GenerationInProgressError(
                f"Session {self.session_id} already has an active run"
            )
        self.outline.lookup(section_id)

        mode = GenerationMode(mode or get_settings().DEFAULT_GENERATION_MODE)
        pipeline = CsrDraftPipeline(self.assembler, **pipeline_options)
        self._active_run = pipeline
        try:
            return await pipeline.draft_single(section_id, mode, list(self._documents))
        finally:
            self._active_run = None

    def place_user_text(self, section_id: str, text: str) -> None:
        if self.is_generating:
            raise GenerationInProgressError("Document is locked while a run is active")
        self.assembler.place_user_text(section_id, text)

    def get_snapshot(self) -> str:
        return self.assembler.snapshot()


class SessionStore:
    """Process-local session registry."""

    def __init__(self):
        self._sessions: dict[str, DraftingSession] = {}

    def create(self, outline: SectionOutline | None = None) -> DraftingSession:
        session = DraftingSession(outline=outline)
        self._sessions[session.session_id] = session
        logger.info(f"Created drafting session {session.session_id}")
        return session

    def get(self, session_id: str) -> DraftingSession:
        try:
            return self._sessions[session_id]
        except KeyError:
            raise SessionNotFoundError(session_id) from None

    def delete(self, session_id: str) -> None:
        session = self.get(session_id)
        session.cancel()
        del self._sessions[session_id]

    def clear(self) -> None:
        """Drop all sessions (for testing)."""
        self._sessions.clear()


# Global session store instance
session_store = SessionStore()
