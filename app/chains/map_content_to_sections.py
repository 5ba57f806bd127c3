"""Map source corpus text onto CSR sections.

One Sonnet call receives the whole corpus and every (id, title) pair of the
outline and returns, per section, a verbatim concatenation of the source
spans relevant to drafting it. No drafting happens here.

The response must echo every section id exactly once. Omitted, unknown or
duplicated ids raise ``MappingIntegrityError``; the error carries a recovered
mapping list (one entry per requested section, in request order) so the
caller can log the discrepancy and keep going.

Usage:
    from app.chains.map_content_to_sections import map_content_to_sections

    response = await map_content_to_sections(MapRequest(corpus=corpus, sections=refs))
"""

from __future__ import annotations

import json
import logging
from typing import Any

from pydantic import ValidationError

from app.core.config import Settings, get_settings
from app.core.llm import call_structured_tool
from app.core.schemas_csr import MapRequest, MapResponse, SectionMapping, SectionRef

logger = logging.getLogger(__name__)


class MappingIntegrityError(Exception):
    """The mapper's response did not cover the requested sections exactly."""

    def __init__(
        self,
        message: str,
        *,
        recovered: list[SectionMapping],
        missing_ids: list[str] | None = None,
        unknown_ids: list[str] | None = None,
        duplicate_ids: list[str] | None = None,
    ):
        super().__init__(message)
        self.recovered = recovered
        self.missing_ids = missing_ids or []
        self.unknown_ids = unknown_ids or []
        self.duplicate_ids = duplicate_ids or []

    def discrepancies(self) -> list[str]:
        """Human-readable discrepancy lines for run reports."""
        lines = []
        if self.missing_ids:
            lines.append(f"missing: {', '.join(self.missing_ids)}")
        if self.unknown_ids:
            lines.append(f"unknown: {', '.join(self.unknown_ids)}")
        if self.duplicate_ids:
            lines.append(f"duplicated: {', '.join(self.duplicate_ids)}")
        return lines or [str(self)]


# =============================================================================
# Tool schemas for forced structured output
# =============================================================================

MAPPING_TOOL = {
    "name": "submit_content_map",
    "description": "Submit the source text relevant to every CSR section.",
    "input_schema": {
        "type": "object",
        "properties": {
            "mappings": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {
                        "sectionId": {
                            "type": "string",
                            "description": "ID of the CSR section, e.g. '9.1'",
                        },
                        "sectionTitle": {"type": "string"},
                        "relevantText": {
                            "type": "string",
                            "description": "Verbatim source passages relevant to the section; "
                            "empty string when nothing is relevant",
                        },
                    },
                    "required": ["sectionId", "relevantText"],
                },
            },
        },
        "required": ["mappings"],
    },
}

RELEVANT_TEXT_TOOL = {
    "name": "submit_relevant_text",
    "description": "Submit the source passages relevant to one CSR section.",
    "input_schema": {
        "type": "object",
        "properties": {
            "relevantText": {
                "type": "string",
                "description": "Verbatim source passages; empty string when nothing is relevant",
            },
        },
        "required": ["relevantText"],
    },
}


# =============================================================================
# Prompts
# =============================================================================

MAPPING_SYSTEM_PROMPT = """You are a medical writing assistant preparing a Clinical Study Report (CSR) that follows the ICH E3 guideline.

Your only job is to FIND source text, not to write. For EACH section in the CSR structure, collect every sentence, paragraph, table row and data point from the source documents that a writer would need to draft that section.

Rules:
- Copy passages verbatim. Do not summarize, paraphrase or add anything.
- A passage may be relevant to several sections; repeat it for each.
- If nothing in the sources is relevant to a section, use an empty string.
- Return exactly one entry per section id in the structure. Never omit a section, never invent an id, never repeat an id.

Use the submit_content_map tool."""

RELEVANT_TEXT_SYSTEM_PROMPT = """You are a medical writing assistant acting as a pre-processor for one section of a Clinical Study Report (CSR) following ICH E3.

Read all of the source text and extract ONLY the sentences, paragraphs or data points that are directly relevant to the target section. Copy them verbatim and concatenate them. If nothing is relevant, return an empty string.

Use the submit_relevant_text tool."""


def _build_mapping_prompt(request: MapRequest) -> str:
    sections = [{"id": s.id, "title": s.title} for s in request.sections]
    return f"""## CSR Section Structure
{json.dumps(sections, indent=2)}

## Source Document Text
---
{request.corpus}
---

Map the source text to every section listed above."""


# =============================================================================
# Integrity checking
# =============================================================================


def reconcile_mappings(sections: list[SectionRef], raw: dict[str, Any]) -> MapResponse:
    """
    Validate a raw mapping payload against the requested sections.

    Args:
        sections: Sections that were sent, in canonical order
        raw: Tool input returned by the LLM

    Returns:
        MapResponse with exactly one mapping per section, in request order

    Raises:
        MappingIntegrityError: On schema failure or any missing, unknown or
            duplicated id; ``recovered`` holds the completed mapping list
    """
    titles = {s.id: s.title for s in sections}
    entries = raw.get("mappings") if isinstance(raw, dict) else None

    if not isinstance(entries, list):
        recovered = [SectionMapping(section_id=s.id, section_title=s.title) for s in sections]
        raise MappingIntegrityError(
            "Mapping response has no 'mappings' list",
            recovered=recovered,
            missing_ids=[s.id for s in sections],
        )

    texts: dict[str, list[str]] = {}
    unknown_ids: list[str] = []
    duplicate_ids: list[str] = []
    invalid_entries = 0

    for entry in entries:
        try:
            mapping = SectionMapping.model_validate(entry)
        except ValidationError as e:
            invalid_entries += 1
            logger.warning(f"Skipping malformed mapping entry: {e.errors()[:1]}")
            continue

        section_id = mapping.section_id.strip()
        if section_id not in titles:
            if section_id not in unknown_ids:
                unknown_ids.append(section_id)
            continue
        if section_id in texts:
            if section_id not in duplicate_ids:
                duplicate_ids.append(section_id)
            if mapping.relevant_text and mapping.relevant_text not in texts[section_id]:
                texts[section_id].append(mapping.relevant_text)
            continue
        texts[section_id] = [mapping.relevant_text] if mapping.relevant_text else []

    missing_ids = [s.id for s in sections if s.id not in texts]
    recovered = [
        SectionMapping(
            section_id=s.id,
            section_title=s.title,
            relevant_text="\n\n".join(texts.get(s.id, [])),
        )
        for s in sections
    ]

    if missing_ids or unknown_ids or duplicate_ids or invalid_entries:
        raise MappingIntegrityError(
            f"Mapping response covered {len(texts)}/{len(sections)} sections "
            f"({len(unknown_ids)} unknown, {len(duplicate_ids)} duplicated, "
            f"{invalid_entries} malformed)",
            recovered=recovered,
            missing_ids=missing_ids,
            unknown_ids=unknown_ids,
            duplicate_ids=duplicate_ids,
        )

    return MapResponse(mappings=recovered)


# =============================================================================
# LLM calls
# =============================================================================


async def map_content_to_sections(
    request: MapRequest,
    settings: Settings | None = None,
) -> MapResponse:
    """
    Map the corpus onto every requested section in a single call.

    Raises:
        MappingIntegrityError: If the response does not cover the sections exactly
        anthropic.APIError: Transport/API failures, for the retry wrapper
    """
    settings = settings or get_settings()

    logger.info(
        f"Mapping {len(request.corpus)} corpus chars onto {len(request.sections)} sections"
    )

    try:
        raw = await call_structured_tool(
            system_prompt=MAPPING_SYSTEM_PROMPT,
            user_prompt=_build_mapping_prompt(request),
            tool=MAPPING_TOOL,
            model=settings.MAPPER_MODEL,
            max_tokens=settings.MAPPER_MAX_TOKENS,
            temperature=0.0,
        )
    except ValueError as e:
        # Includes json.JSONDecodeError from an unparseable text fallback
        logger.warning(f"Mapping response was not valid JSON: {e}")
        raw = {}
    return reconcile_mappings(request.sections, raw)


async def find_relevant_text(
    section: SectionRef,
    corpus: str,
    settings: Settings | None = None,
) -> SectionMapping:
    """Narrow the corpus to the passages relevant to one section."""
    settings = settings or get_settings()

    user_prompt = f"""## Target CSR Section
- Section ID: {section.id}
- Section Title: {section.title}

## Source Document Text
---
{corpus}
---"""

    raw = await call_structured_tool(
        system_prompt=RELEVANT_TEXT_SYSTEM_PROMPT,
        user_prompt=user_prompt,
        tool=RELEVANT_TEXT_TOOL,
        model=settings.MAPPER_MODEL,
        max_tokens=settings.DRAFT_MAX_TOKENS,
        temperature=0.0,
    )
    text = raw.get("relevantText") if isinstance(raw, dict) else None
    return SectionMapping(
        section_id=section.id,
        section_title=section.title,
        relevant_text=text if isinstance(text, str) else "",
    )
