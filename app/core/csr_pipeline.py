"""
CSR drafting pipeline

Drives one generation run: ingest -> map -> for each section (draft -> place),
streaming progress events as it goes.

States:
  idle -> ingesting -> mapping -> drafting -> done
  ingesting/mapping -> failed   (no usable corpus, mapping call failed)
  drafting -> cancelled          (caller set the cancel event between sections)

A single section's failure never fails the run: it is recorded in the report
and the loop moves on. "Insufficient information" is a successful outcome.

Modes:
- per_section: each section drafted from the full corpus (optionally narrowed
  first with a per-section relevant-text call)
- mapped: one mapping call, then each section drafted from its mapped text
- single_shot: one whole-document call, split back into sections by anchor

``draft_single`` redrafts one chosen section outside a full run.
"""

import asyncio
import logging
import uuid
from collections.abc import AsyncGenerator, Awaitable, Callable, Sequence
from dataclasses import dataclass

from app.chains.generate_full_draft import draft_full
from app.chains.generate_section_draft import draft_section, resolve_policy
from app.chains.map_content_to_sections import (
    MappingIntegrityError,
    find_relevant_text,
    map_content_to_sections,
)
from app.core.config import get_settings
from app.core.document_assembler import DocumentAssembler
from app.core.logging import get_logger, log_with_context
from app.core.outline import SectionNode
from app.core.retry import RetryPolicy, invoke_with_retry
from app.core.schemas_csr import (
    SENTINEL_HTML,
    DraftFragment,
    DraftRequest,
    FullDraftRequest,
    FullDraftResponse,
    GenerationMode,
    GenerationReport,
    InsufficientInfoPolicy,
    MapRequest,
    MapResponse,
    ProgressEvent,
    RunState,
    SectionMapping,
    SectionOutcome,
    SectionRef,
    SectionStatus,
    SourceDocument,
)
from app.core.source_ingestion import combine_sources

logger = get_logger(__name__)


@dataclass
class DraftingChains:
    """The LLM-backed operations a run depends on."""

    map_content: Callable[[MapRequest], Awaitable[MapResponse]] = map_content_to_sections
    draft_section: Callable[[DraftRequest, InsufficientInfoPolicy], Awaitable[DraftFragment]] = (
        draft_section
    )
    draft_full: Callable[[FullDraftRequest], Awaitable[FullDraftResponse]] = draft_full
    find_relevant_text: Callable[[SectionRef, str], Awaitable[SectionMapping]] = find_relevant_text


class CsrDraftPipeline:
    """One generation run over a session's documents and document."""

    def __init__(
        self,
        assembler: DocumentAssembler,
        chains: DraftingChains | None = None,
        retry_policy: RetryPolicy | None = None,
        policy: InsufficientInfoPolicy | str | None = None,
        prefilter: bool | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        run_id: str | None = None,
    ):
        settings = get_settings()
        self._assembler = assembler
        self._outline = assembler.outline
        self._chains = chains or DraftingChains()
        self._retry_policy = retry_policy or RetryPolicy.from_settings(settings)
        self._policy = resolve_policy(policy)
        self._prefilter = settings.PER_SECTION_PREFILTER if prefilter is None else prefilter
        self._sleep = sleep
        self.run_id = run_id or str(uuid.uuid4())
        self.state = RunState.IDLE
        self.report: GenerationReport | None = None

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------

    def _log(self, level: int, msg: str, **context) -> None:
        log_with_context(logger, level, msg, run_id=self.run_id, **context)

    def _transition(self, state: RunState, message: str | None = None) -> ProgressEvent:
        self._log(logging.INFO, f"Run state {self.state.value} -> {state.value}")
        self.state = state
        self.report.state = state
        return ProgressEvent(
            state=state,
            message=message,
            percent_complete=self._percent(self.report.processed_sections),
            report=self.report if state in (RunState.DONE, RunState.FAILED, RunState.CANCELLED) else None,
        )

    def _fail(self, error: BaseException | str) -> ProgressEvent:
        message = error if isinstance(error, str) else f"{type(error).__name__}: {error}"
        self.report.error = message
        self._log(logging.WARNING, f"Run failed: {message}")
        return self._transition(RunState.FAILED, message)

    def _percent(self, processed: int) -> float:
        total = self.report.total_sections if self.report else 0
        return round(processed / total * 100, 1) if total else 0.0

    async def _retry(self, call: Callable[[], Awaitable], label: str):
        return await invoke_with_retry(call, self._retry_policy, sleep=self._sleep, label=label)

    def _record_outcome(self, section_id: str, html: str) -> SectionOutcome:
        if html == SENTINEL_HTML:
            self.report.insufficient_section_ids.append(section_id)
            return SectionOutcome.INSUFFICIENT
        self.report.drafted_section_ids.append(section_id)
        return SectionOutcome.DRAFTED

    # ------------------------------------------------------------------
    # run
    # ------------------------------------------------------------------

    async def run(
        self,
        mode: GenerationMode | str,
        documents: Sequence[SourceDocument],
        cancel_event: asyncio.Event | None = None,
    ) -> AsyncGenerator[ProgressEvent, None]:
        """
        Execute the run, yielding progress events.

        The last event is always a terminal state (done, failed or cancelled)
        carrying the GenerationReport.
        """
        mode = GenerationMode(mode)
        sections = self._outline.flatten()
        self.report = GenerationReport(
            run_id=self.run_id, mode=mode, total_sections=len(sections)
        )
        self._log(logging.INFO, f"Starting {mode.value} run over {len(sections)} sections", mode=mode.value)

        yield self._transition(RunState.INGESTING, f"Combining {len(documents)} source documents")
        corpus = combine_sources(documents)
        if not any(doc.text.strip() for doc in documents):
            yield self._fail("No source text available: upload at least one non-empty document")
            return

        if mode == GenerationMode.SINGLE_SHOT:
            async for event in self._run_single_shot(corpus, sections):
                yield event
            return

        mappings: dict[str, str] | None = None
        if mode == GenerationMode.MAPPED:
            yield self._transition(RunState.MAPPING, "Mapping source content to sections")
            try:
                mappings = await self._map(corpus, sections)
            except Exception as e:
                yield self._fail(e)
                return

        if cancel_event is not None and cancel_event.is_set():
            yield self._transition(RunState.CANCELLED, "Run cancelled before drafting")
            return

        self._assembler.reset()
        yield self._transition(RunState.DRAFTING, f"Drafting {len(sections)} sections")

        for index, section in enumerate(sections):
            if cancel_event is not None and cancel_event.is_set():
                yield self._transition(
                    RunState.CANCELLED, f"Run cancelled after {index} of {len(sections)} sections"
                )
                return

            yield ProgressEvent(
                state=RunState.DRAFTING,
                section_id=section.id,
                section_title=section.title,
                status=SectionStatus.STARTED,
                percent_complete=self._percent(index),
            )
            yield await self._draft_one(section, mode, corpus, mappings)
            self.report.processed_sections = index + 1

        yield self._transition(
            RunState.DONE,
            f"{self.report.drafted_count} drafted, {self.report.insufficient_count} insufficient, "
            f"{self.report.failed_count} failed",
        )

    async def draft_single(
        self,
        section_id: str,
        mode: GenerationMode | str,
        documents: Sequence[SourceDocument],
    ) -> ProgressEvent:
        """
        Draft one section on demand, leaving every other section as it is.

        Mapped mode narrows the corpus with one relevant-text call for the
        section instead of mapping the whole outline; the other modes draft
        from the full corpus (or the prefiltered text when enabled).

        Returns:
            The section's event with a terminal state and the report attached

        Raises:
            SectionNotFoundError: If the section id is not in the outline
        """
        section = self._outline.lookup(section_id)
        mode = GenerationMode(mode)
        self.report = GenerationReport(run_id=self.run_id, mode=mode, total_sections=1)
        self._log(logging.INFO, f"Drafting section {section.id} on demand", mode=mode.value)

        corpus = combine_sources(documents)
        if not any(doc.text.strip() for doc in documents):
            return self._fail("No source text available: upload at least one non-empty document")

        self.state = self.report.state = RunState.DRAFTING
        mappings: dict[str, str] | None = None
        if mode == GenerationMode.MAPPED:
            ref = SectionRef(id=section.id, title=section.title)
            try:
                mapping = await self._retry(
                    lambda: self._chains.find_relevant_text(ref, corpus),
                    f"find_relevant_text[{section.id}]",
                )
            except Exception as e:
                return self._fail(e)
            mappings = {section.id: mapping.relevant_text}

        event = await self._draft_one(section, mode, corpus, mappings)
        self.report.processed_sections = 1
        if event.status == SectionStatus.FAILED:
            self.report.error = event.message
            final = RunState.FAILED
        else:
            final = RunState.DONE
        self._transition(final)
        return event.model_copy(update={"state": final, "report": self.report})

    async def _map(self, corpus: str, sections: list[SectionNode]) -> dict[str, str]:
        request = MapRequest(
            corpus=corpus,
            sections=[SectionRef(id=s.id, title=s.title) for s in sections],
        )
        try:
            response = await self._retry(lambda: self._chains.map_content(request), "map_content")
            mappings = response.mappings
        except MappingIntegrityError as e:
            self.report.mapping_discrepancies = e.discrepancies()
            self._log(
                logging.WARNING,
                f"Mapping integrity discrepancy, continuing with recovered map: {e}",
                missing=len(e.missing_ids),
                unknown=len(e.unknown_ids),
                duplicated=len(e.duplicate_ids),
            )
            mappings = e.recovered

        texts = {m.section_id: m.relevant_text for m in mappings}
        # Anything still absent degrades to empty text
        return {s.id: texts.get(s.id, "") for s in sections}

    async def _source_for(
        self,
        section: SectionNode,
        mode: GenerationMode,
        corpus: str,
        mappings: dict[str, str] | None,
    ) -> str:
        if mode == GenerationMode.MAPPED:
            return mappings.get(section.id, "")
        if self._prefilter:
            ref = SectionRef(id=section.id, title=section.title)
            mapping = await self._retry(
                lambda: self._chains.find_relevant_text(ref, corpus),
                f"find_relevant_text[{section.id}]",
            )
            return mapping.relevant_text
        return corpus

    async def _draft_one(
        self,
        section: SectionNode,
        mode: GenerationMode,
        corpus: str,
        mappings: dict[str, str] | None,
    ) -> ProgressEvent:
        """Draft and place one section; failures are recorded, never raised."""
        try:
            source_text = await self._source_for(section, mode, corpus, mappings)
            request = DraftRequest(
                section_id=section.id,
                section_title=section.title,
                source_text=source_text,
            )
            fragment = await self._retry(
                lambda: self._chains.draft_section(request, self._policy),
                f"draft_section[{section.id}]",
            )
            self._assembler.place(section.id, fragment)
        except Exception as e:
            self.report.failed_section_ids.append(section.id)
            self._log(
                logging.WARNING,
                f"Section draft failed, keeping placeholder: {type(e).__name__}: {e}",
                section_id=section.id,
            )
            return ProgressEvent(
                state=RunState.DRAFTING,
                section_id=section.id,
                section_title=section.title,
                status=SectionStatus.FAILED,
                percent_complete=self._percent(self.report.processed_sections + 1),
                message=str(e),
            )

        outcome = self._record_outcome(section.id, fragment.html)
        return ProgressEvent(
            state=RunState.DRAFTING,
            section_id=section.id,
            section_title=section.title,
            status=SectionStatus.DONE,
            outcome=outcome,
            percent_complete=self._percent(self.report.processed_sections + 1),
        )

    async def _run_single_shot(
        self, corpus: str, sections: list[SectionNode]
    ) -> AsyncGenerator[ProgressEvent, None]:
        """Mapping and drafting collapse into one guarded call."""
        yield self._transition(RunState.DRAFTING, "Drafting the full report in one call")

        request = FullDraftRequest(corpus=corpus, outline_description=self._outline.describe())
        try:
            response = await self._retry(lambda: self._chains.draft_full(request), "draft_full")
        except Exception as e:
            yield self._fail(e)
            return

        self._assembler.reset()
        split = self._assembler.load_full_draft(response.html)
        self.report.omitted_section_ids = list(split.omitted_ids)

        for index, section in enumerate(sections):
            self.report.processed_sections = index + 1
            if section.id in split.bodies:
                outcome = self._record_outcome(section.id, split.bodies[section.id])
                status = SectionStatus.DONE
            else:
                outcome = None
                status = SectionStatus.FAILED
            yield ProgressEvent(
                state=RunState.DRAFTING,
                section_id=section.id,
                section_title=section.title,
                status=status,
                outcome=outcome,
                percent_complete=self._percent(index + 1),
                message=None if outcome else "Section missing from full draft",
            )

        yield self._transition(
            RunState.DONE,
            f"{self.report.drafted_count} drafted, {self.report.insufficient_count} insufficient, "
            f"{len(split.omitted_ids)} omitted",
        )
