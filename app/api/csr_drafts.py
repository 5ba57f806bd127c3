"""API endpoints for CSR drafting sessions."""

import json
from collections.abc import AsyncGenerator

from fastapi import APIRouter, File, HTTPException, UploadFile
from fastapi.responses import StreamingResponse
from pydantic import BaseModel

from app.core.document_processing import ExtractionError
from app.core.drafting_session import (
    DraftingSession,
    GenerationInProgressError,
    SessionNotFoundError,
    session_store,
)
from app.core.logging import get_logger
from app.core.outline import SectionNotFoundError, default_outline
from app.core.schemas_csr import (
    GenerationMode,
    GenerationReport,
    ProgressEvent,
    SourceUpload,
)

logger = get_logger(__name__)

router = APIRouter()


class SessionResponse(BaseModel):
    """Response for session creation and lookup."""

    session_id: str
    documents: list[str]
    is_generating: bool
    last_report: GenerationReport | None = None


class DocumentSummary(BaseModel):
    name: str
    origin_format: str
    char_count: int
    word_count: int


class UploadOutcome(BaseModel):
    """Per-file result of an upload batch."""

    filename: str
    ok: bool
    document: DocumentSummary | None = None
    error: str | None = None


class UploadResponse(BaseModel):
    results: list[UploadOutcome]
    accepted: int
    rejected: int


class GenerateRequest(BaseModel):
    mode: GenerationMode | None = None


class SnapshotResponse(BaseModel):
    session_id: str
    html: str
    is_generating: bool
    sections_with_content: list[str]


class SectionTextRequest(BaseModel):
    text: str


class SectionDraftResponse(BaseModel):
    session_id: str
    section_id: str
    html: str
    event: ProgressEvent


def _get_session(session_id: str) -> DraftingSession:
    try:
        return session_store.get(session_id)
    except SessionNotFoundError:
        raise HTTPException(status_code=404, detail=f"Session {session_id} not found")


def _session_response(session: DraftingSession) -> SessionResponse:
    return SessionResponse(
        session_id=session.session_id,
        documents=[doc.name for doc in session.documents],
        is_generating=session.is_generating,
        last_report=session.last_report,
    )


def _sse_event(data: dict) -> str:
    """Format a dict as an SSE data line."""
    return f"data: {json.dumps(data)}\n\n"


@router.get("/outline")
async def get_outline() -> list[dict]:
    """Nested ICH E3 outline with heading anchors, for navigation."""
    return default_outline().to_dict()


@router.post("/sessions")
async def create_session() -> SessionResponse:
    """Create an in-memory drafting session with a fresh document template."""
    return _session_response(session_store.create())


@router.get("/sessions/{session_id}")
async def get_session(session_id: str) -> SessionResponse:
    return _session_response(_get_session(session_id))


@router.delete("/sessions/{session_id}")
async def delete_session(session_id: str) -> dict:
    _get_session(session_id)
    session_store.delete(session_id)
    return {"deleted": session_id}


@router.post("/sessions/{session_id}/documents")
async def upload_documents(
    session_id: str,
    files: list[UploadFile] = File(...),
) -> UploadResponse:
    """Upload source documents (PDF, DOCX, TXT, MD, HTML).

    Files that cannot be extracted are reported individually and excluded;
    the rest of the batch is still accepted.
    """
    session = _get_session(session_id)
    if not files:
        raise HTTPException(status_code=400, detail="No files uploaded")

    uploads = [
        SourceUpload(
            name=file.filename or "untitled",
            data=await file.read(),
            content_type=file.content_type,
        )
        for file in files
    ]
    outcomes = await session.upload_files(uploads)

    results = []
    for upload, outcome in zip(uploads, outcomes):
        if isinstance(outcome, ExtractionError):
            results.append(UploadOutcome(filename=upload.name, ok=False, error=str(outcome)))
        else:
            results.append(
                UploadOutcome(
                    filename=upload.name,
                    ok=True,
                    document=DocumentSummary(
                        name=outcome.name,
                        origin_format=outcome.origin_format.value,
                        char_count=outcome.char_count,
                        word_count=outcome.word_count,
                    ),
                )
            )

    accepted = sum(1 for r in results if r.ok)
    logger.info(f"Session {session_id}: accepted {accepted}/{len(results)} uploaded files")
    return UploadResponse(results=results, accepted=accepted, rejected=len(results) - accepted)


@router.get("/sessions/{session_id}/documents")
async def list_documents(session_id: str) -> list[DocumentSummary]:
    session = _get_session(session_id)
    return [
        DocumentSummary(
            name=doc.name,
            origin_format=doc.origin_format.value,
            char_count=doc.char_count,
            word_count=doc.word_count,
        )
        for doc in session.documents
    ]


@router.delete("/sessions/{session_id}/documents/{name}")
async def remove_document(session_id: str, name: str) -> dict:
    session = _get_session(session_id)
    if not session.remove_document(name):
        raise HTTPException(status_code=404, detail=f"Document {name} not found")
    return {"removed": name}


@router.post("/sessions/{session_id}/generate")
async def generate_draft(session_id: str, request: GenerateRequest) -> StreamingResponse:
    """
    Start a generation run and stream its progress.

    SSE events carry: state, section_id, section_title, status
    (started|done|failed), outcome (drafted|insufficient), percent_complete,
    and on the terminal event the run report.
    """
    session = _get_session(session_id)
    if not session.documents:
        raise HTTPException(status_code=400, detail="Upload at least one source document first")

    try:
        events = session.start_generation(request.mode)
    except GenerationInProgressError as e:
        raise HTTPException(status_code=409, detail=str(e))

    async def generate() -> AsyncGenerator[str, None]:
        try:
            async for event in events:
                yield _sse_event(event.model_dump(mode="json", exclude_none=True))
        except Exception as e:
            logger.error(f"Error in generation stream for session {session_id}: {e}", exc_info=True)
            yield _sse_event({"state": "failed", "message": str(e)})
        finally:
            await events.aclose()

    return StreamingResponse(
        generate(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",  # Disable nginx buffering
        },
    )


@router.post("/sessions/{session_id}/cancel")
async def cancel_generation(session_id: str) -> dict:
    session = _get_session(session_id)
    return {"cancelled": session.cancel()}


@router.get("/sessions/{session_id}/snapshot")
async def get_snapshot(session_id: str) -> SnapshotResponse:
    session = _get_session(session_id)
    return SnapshotResponse(
        session_id=session.session_id,
        html=session.get_snapshot(),
        is_generating=session.is_generating,
        sections_with_content=session.assembler.sections_with_content(),
    )


@router.put("/sessions/{session_id}/sections/{section_id}")
async def update_section_text(
    session_id: str, section_id: str, request: SectionTextRequest
) -> dict:
    """Replace a section body with user-typed text."""
    session = _get_session(session_id)
    try:
        session.place_user_text(section_id, request.text)
    except SectionNotFoundError:
        raise HTTPException(status_code=404, detail=f"Section {section_id} not found")
    except GenerationInProgressError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return {"section_id": section_id, "updated": True}


@router.post("/sessions/{session_id}/sections/{section_id}/draft")
async def draft_single_section(
    session_id: str, section_id: str, request: GenerateRequest
) -> SectionDraftResponse:
    """
    Draft one section from the uploaded documents, leaving the rest untouched.

    The event carries the section outcome (drafted|insufficient) or, when
    drafting failed, a failed state with the error message; the section then
    keeps its previous content.
    """
    session = _get_session(session_id)
    if not session.documents:
        raise HTTPException(status_code=400, detail="Upload at least one source document first")

    try:
        event = await session.draft_section(section_id, request.mode)
    except SectionNotFoundError:
        raise HTTPException(status_code=404, detail=f"Section {section_id} not found")
    except GenerationInProgressError as e:
        raise HTTPException(status_code=409, detail=str(e))

    return SectionDraftResponse(
        session_id=session.session_id,
        section_id=section_id,
        html=session.assembler.section_body(section_id),
        event=event,
    )
