"""Draft the whole CSR in a single call.

Used when minimizing request count matters more than per-section control.
Every section heading in the response must carry ``id="section-<id>"`` so the
result can be split back into the anchor-indexed document.

Usage:
    from app.chains.generate_full_draft import draft_full

    response = await draft_full(FullDraftRequest(corpus=corpus, outline_description=desc))
"""

from __future__ import annotations

import logging

from app.core.config import Settings, get_settings
from app.core.llm import call_structured_tool, strip_llm_fences
from app.core.schemas_csr import SENTINEL_HTML, FullDraftRequest, FullDraftResponse

logger = logging.getLogger(__name__)


FULL_DRAFT_TOOL = {
    "name": "submit_full_draft",
    "description": "Submit the complete CSR draft as one HTML document.",
    "input_schema": {
        "type": "object",
        "properties": {
            "html": {
                "type": "string",
                "description": "Complete CSR HTML starting with <h1>Clinical Study Report</h1>",
            },
        },
        "required": ["html"],
    },
}

FULL_DRAFT_SYSTEM_PROMPT = f"""You are an expert medical writer creating a complete first draft of a Clinical Study Report (CSR) that follows the ICH E3 guideline.

Instructions:
1. Begin the document with <h1>Clinical Study Report</h1>.
2. Write every section and subsection in the structure, in order. Use <h2> for top-level sections, <h3> for their subsections, and so on.
3. Every section heading MUST carry the anchor id shown in the structure, and read "<id> <title>", e.g. <h2 id="section-9">9 Investigational Plan</h2>.
4. Section content uses only <p>, <ul>, <ol>, <li> and <table> markup.
5. Use ONLY information from the source documents. Never invent data.
6. If the sources have nothing relevant for a section, its content is exactly {SENTINEL_HTML}. Never skip a section.

Use the submit_full_draft tool."""


def _build_user_prompt(request: FullDraftRequest) -> str:
    return f"""## ICH E3 Structure to Follow
{request.outline_description}

## Source Document Text
---
{request.corpus}
---

Now write the full CSR draft."""


async def draft_full(
    request: FullDraftRequest,
    settings: Settings | None = None,
) -> FullDraftResponse:
    """
    Draft every section in one call.

    Returns:
        FullDraftResponse with the raw document HTML (code fences stripped)

    Raises:
        ValueError: If the response carries no html
    """
    settings = settings or get_settings()

    logger.info(f"Drafting full CSR from {len(request.corpus)} corpus chars")

    raw = await call_structured_tool(
        system_prompt=FULL_DRAFT_SYSTEM_PROMPT,
        user_prompt=_build_user_prompt(request),
        tool=FULL_DRAFT_TOOL,
        model=settings.FULL_DRAFT_MODEL,
        max_tokens=settings.FULL_DRAFT_MAX_TOKENS,
        temperature=settings.DRAFT_TEMPERATURE,
    )

    html = raw.get("html") if isinstance(raw, dict) else None
    if not isinstance(html, str) or not html.strip():
        raise ValueError("Full draft response contained no html")

    return FullDraftResponse(html=strip_llm_fences(html))
