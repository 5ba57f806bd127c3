"""Pydantic models for the CSR drafting pipeline.

Covers the typed LLM boundary (map, draft, full draft), the source documents
held by a session, and the progress events and report a run produces.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

SENTINEL_MESSAGE = "[Insufficient information in source documents to generate this section.]"
SENTINEL_HTML = f"<p>{SENTINEL_MESSAGE}</p>"
PLACEHOLDER_HTML = "<p>[Content for this section will be generated here.]</p>"


# =============================================================================
# Enums
# =============================================================================


class OriginFormat(str, Enum):
    """Format a source document was extracted from."""

    PDF = "pdf"
    DOCX = "docx"
    PLAIN = "plain"


class GenerationMode(str, Enum):
    """How a run turns the corpus into section drafts."""

    PER_SECTION = "per_section"  # one draft call per section over the full corpus
    MAPPED = "mapped"  # one mapping call, then one draft call per section
    SINGLE_SHOT = "single_shot"  # one call for the whole document


class InsufficientInfoPolicy(str, Enum):
    """When the draft generator falls back to the sentinel fragment."""

    SENTINEL = "sentinel"
    BEST_EFFORT = "best_effort"


class RunState(str, Enum):
    """Orchestrator states."""

    IDLE = "idle"
    INGESTING = "ingesting"
    MAPPING = "mapping"
    DRAFTING = "drafting"
    DONE = "done"
    FAILED = "failed"
    CANCELLED = "cancelled"


class SectionStatus(str, Enum):
    STARTED = "started"
    DONE = "done"
    FAILED = "failed"


class SectionOutcome(str, Enum):
    DRAFTED = "drafted"
    INSUFFICIENT = "insufficient"


# =============================================================================
# Source documents
# =============================================================================


class SourceDocument(BaseModel):
    """Plain text extracted from one uploaded file."""

    model_config = ConfigDict(frozen=True)

    name: str
    text: str
    origin_format: OriginFormat

    @property
    def char_count(self) -> int:
        return len(self.text)

    @property
    def word_count(self) -> int:
        return len(self.text.split())


class SourceUpload(BaseModel):
    """Raw upload handed to ingestion."""

    name: str
    data: bytes
    content_type: str | None = None


# =============================================================================
# LLM boundary
# =============================================================================


class SectionRef(BaseModel):
    id: str
    title: str


class SectionMapping(BaseModel):
    """Source text judged relevant to one section."""

    model_config = ConfigDict(populate_by_name=True)

    section_id: str = Field(alias="sectionId")
    section_title: str = Field(default="", alias="sectionTitle")
    relevant_text: str = Field(default="", alias="relevantText")

    @field_validator("relevant_text", mode="before")
    @classmethod
    def _none_to_empty(cls, value):
        return "" if value is None else value


class MapRequest(BaseModel):
    corpus: str
    sections: list[SectionRef]


class MapResponse(BaseModel):
    mappings: list[SectionMapping]


class DraftRequest(BaseModel):
    section_id: str
    section_title: str
    source_text: str = ""


class DraftFragment(BaseModel):
    """Body-only HTML for one section; never empty."""

    section_id: str
    html: str

    @field_validator("html")
    @classmethod
    def _not_empty(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("Draft fragment html must not be empty")
        return value

    @property
    def is_insufficient(self) -> bool:
        return self.html == SENTINEL_HTML


class FullDraftRequest(BaseModel):
    corpus: str
    outline_description: str


class FullDraftResponse(BaseModel):
    html: str


# =============================================================================
# Progress and reporting
# =============================================================================


class ProgressEvent(BaseModel):
    """One entry of a run's event stream."""

    state: RunState
    section_id: str | None = None
    section_title: str | None = None
    status: SectionStatus | None = None
    outcome: SectionOutcome | None = None
    percent_complete: float = 0.0
    message: str | None = None
    report: "GenerationReport | None" = None


class GenerationReport(BaseModel):
    """Summary of a finished (or failed/cancelled) run."""

    run_id: str
    mode: GenerationMode
    state: RunState = RunState.IDLE
    total_sections: int = 0
    processed_sections: int = 0
    drafted_section_ids: list[str] = Field(default_factory=list)
    insufficient_section_ids: list[str] = Field(default_factory=list)
    failed_section_ids: list[str] = Field(default_factory=list)
    omitted_section_ids: list[str] = Field(default_factory=list)
    mapping_discrepancies: list[str] = Field(default_factory=list)
    error: str | None = None

    @property
    def drafted_count(self) -> int:
        return len(self.drafted_section_ids)

    @property
    def insufficient_count(self) -> int:
        return len(self.insufficient_section_ids)

    @property
    def failed_count(self) -> int:
        return len(self.failed_section_ids)

    @property
    def placeholder_count(self) -> int:
        """Sections left without drafted content (sentinel, placeholder or failed)."""
        return self.total_sections - self.drafted_count


ProgressEvent.model_rebuild()
