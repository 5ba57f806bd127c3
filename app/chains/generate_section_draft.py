"""Draft the body of one CSR section as an HTML fragment.

The fragment never contains the section heading (the document template has
it) and uses only paragraph, list and table markup. "Insufficient
information" is a successful outcome represented by the exact sentinel
fragment; an empty source short-circuits to the sentinel without an LLM call.

Usage:
    from app.chains.generate_section_draft import draft_section

    fragment = await draft_section(
        DraftRequest(section_id="9.1", section_title="...", source_text=text),
        policy=InsufficientInfoPolicy.SENTINEL,
    )
"""

from __future__ import annotations

import logging
from typing import Any

from app.core.config import Settings, get_settings
from app.core.html_fragments import normalize_draft_html
from app.core.llm import call_structured_tool
from app.core.schemas_csr import (
    SENTINEL_HTML,
    DraftFragment,
    DraftRequest,
    InsufficientInfoPolicy,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Tool schema for forced structured output
# =============================================================================

SECTION_DRAFT_TOOL = {
    "name": "submit_section_draft",
    "description": "Submit the drafted body of one CSR section.",
    "input_schema": {
        "type": "object",
        "properties": {
            "html": {
                "type": "string",
                "description": "Section body as HTML using only p, ul, ol, li and table tags. "
                "No heading.",
            },
            "insufficient_information": {
                "type": "boolean",
                "description": "True when the source text cannot support this section",
            },
        },
        "required": ["html", "insufficient_information"],
    },
}


# =============================================================================
# Prompts
# =============================================================================

_BASE_SYSTEM_PROMPT = f"""You are an expert medical writer drafting one section of a Clinical Study Report (CSR), adhering strictly to the ICH E3 guideline.

Rules:
1. Use ONLY the information in the provided source text. Never invent results, numbers, names or dates.
2. Output well-formed HTML for the section BODY only, using <p>, <ul>, <ol>, <li> and <table> markup (with <thead>, <tbody>, <tr>, <th>, <td>).
3. Do NOT include the section heading or any <h1>-<h6> tag. The heading already exists in the document.
4. {{policy_rule}}
   The insufficient-information fragment is exactly: {SENTINEL_HTML}

Use the submit_section_draft tool."""

_POLICY_RULES = {
    InsufficientInfoPolicy.SENTINEL: (
        "If the source text does not contain enough information to draft this section, "
        "set insufficient_information to true and return the insufficient-information fragment."
    ),
    InsufficientInfoPolicy.BEST_EFFORT: (
        "Draft from whatever relevant context exists, even if partial, and note gaps in "
        "brackets. Only when nothing in the source relates to this section, set "
        "insufficient_information to true and return the insufficient-information fragment."
    ),
}


def build_system_prompt(policy: InsufficientInfoPolicy) -> str:
    return _BASE_SYSTEM_PROMPT.format(policy_rule=_POLICY_RULES[policy])


def _build_user_prompt(request: DraftRequest) -> str:
    return f"""## CSR Section to Draft
- Section ID: {request.section_id}
- Section Title: {request.section_title}

## Source Text
---
{request.source_text}
---"""


def sentinel_fragment(section_id: str) -> DraftFragment:
    return DraftFragment(section_id=section_id, html=SENTINEL_HTML)


def build_fragment(section_id: str, raw: dict[str, Any]) -> DraftFragment:
    """Turn a raw tool payload into a DraftFragment (sentinel when appropriate)."""
    if not isinstance(raw, dict) or raw.get("insufficient_information") is True:
        return sentinel_fragment(section_id)

    html = raw.get("html")
    if not isinstance(html, str):
        logger.warning(f"Draft for section {section_id} has no html field")
        return sentinel_fragment(section_id)

    return DraftFragment(section_id=section_id, html=normalize_draft_html(html))


def resolve_policy(value: str | InsufficientInfoPolicy | None) -> InsufficientInfoPolicy:
    if isinstance(value, InsufficientInfoPolicy):
        return value
    try:
        return InsufficientInfoPolicy(value or get_settings().INSUFFICIENT_INFO_POLICY)
    except ValueError:
        logger.warning(f"Unknown insufficient-information policy {value!r}, using sentinel")
        return InsufficientInfoPolicy.SENTINEL


# =============================================================================
# LLM call
# =============================================================================


async def draft_section(
    request: DraftRequest,
    policy: InsufficientInfoPolicy | str | None = None,
    settings: Settings | None = None,
) -> DraftFragment:
    """
    Draft one section body.

    Args:
        request: Section identity and the source text to draft from
        policy: Sentinel vs best-effort policy (default from settings)
        settings: Settings override

    Returns:
        DraftFragment with body HTML or the exact sentinel fragment
    """
    if not request.source_text.strip():
        logger.debug(f"No source text for section {request.section_id}, returning sentinel")
        return sentinel_fragment(request.section_id)

    settings = settings or get_settings()
    policy = resolve_policy(policy)

    raw = await call_structured_tool(
        system_prompt=build_system_prompt(policy),
        user_prompt=_build_user_prompt(request),
        tool=SECTION_DRAFT_TOOL,
        model=settings.DRAFT_MODEL,
        max_tokens=settings.DRAFT_MAX_TOKENS,
        temperature=settings.DRAFT_TEMPERATURE,
    )
    return build_fragment(request.section_id, raw)
