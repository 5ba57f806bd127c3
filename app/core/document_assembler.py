"""Composite CSR document with anchor-indexed section bodies.

The document is a preamble plus one slot per outline section, kept in
canonical depth-first order. Each slot holds the section heading (carrying
``id="section-<id>"``) and the section body. Placing a fragment swaps one
slot's body through an id -> slot index, so the result never depends on the
order in which sections are drafted.
"""

import html
from dataclasses import dataclass

from app.core.html_fragments import FullDraftSplit, split_full_draft
from app.core.logging import get_logger
from app.core.outline import SectionOutline, SectionNotFoundError, anchor_for
from app.core.schemas_csr import PLACEHOLDER_HTML, DraftFragment

logger = get_logger(__name__)

DOCUMENT_TITLE = "Clinical Study Report"
INTRO_HTML = (
    "<p>This document is structured according to the ICH E3 guidelines.</p>"
    "<p>Upload source documents and start a generation run to draft each section.</p>"
)

# Top-level sections are <h2>; deeper levels clamp at <h6>
TOP_HEADING_LEVEL = 2
MAX_HEADING_LEVEL = 6


@dataclass
class _SectionSlot:
    section_id: str
    heading_html: str
    body_html: str
    has_content: bool = False


def heading_level(depth: int) -> int:
    return min(TOP_HEADING_LEVEL + depth, MAX_HEADING_LEVEL)


def text_to_paragraphs(text: str) -> str:
    """Escape user-typed text into paragraphs split on blank lines."""
    blocks = [block.strip() for block in text.replace("\r\n", "\n").split("\n\n")]
    return "".join(
        "<p>" + "<br/>".join(html.escape(line) for line in block.split("\n")) + "</p>"
        for block in blocks
        if block
    )


class DocumentAssembler:
    """Owns the composite document for one editing session."""

    def __init__(self, outline: SectionOutline, title: str = DOCUMENT_TITLE):
        self._outline = outline
        self._title = title
        self._slots: list[_SectionSlot] = []
        self._index: dict[str, _SectionSlot] = {}
        self.initialize()

    @property
    def outline(self) -> SectionOutline:
        return self._outline

    def initialize(self) -> str:
        """Rebuild the heading/placeholder skeleton and return its HTML."""
        self._slots = []
        self._index = {}
        for node in self._outline.flatten():
            level = heading_level(self._outline.depth(node.id))
            heading = (
                f'<h{level} id="{anchor_for(node.id)}">'
                f"{html.escape(node.id)} {html.escape(node.title)}</h{level}>"
            )
            slot = _SectionSlot(section_id=node.id, heading_html=heading, body_html=PLACEHOLDER_HTML)
            self._slots.append(slot)
            self._index[node.id] = slot
        return self.snapshot()

    def reset(self) -> None:
        """Discard all placed content."""
        self.initialize()

    def _slot(self, section_id: str) -> _SectionSlot:
        try:
            return self._index[section_id]
        except KeyError:
            raise SectionNotFoundError(section_id) from None

    def place(self, section_id: str, fragment: DraftFragment) -> None:
        """
        Replace a section's body with ``fragment.html``. Last write wins.

        Raises:
            SectionNotFoundError: If the section is not in the document
            ValueError: If the fragment belongs to another section
        """
        if fragment.section_id != section_id:
            raise ValueError(
                f"Fragment for section {fragment.section_id} placed at section {section_id}"
            )
        slot = self._slot(section_id)
        slot.body_html = fragment.html
        slot.has_content = not fragment.is_insufficient

    def place_user_text(self, section_id: str, text: str) -> None:
        """Set a section body from literal user-typed text."""
        slot = self._slot(section_id)
        body = text_to_paragraphs(text)
        slot.body_html = body or PLACEHOLDER_HTML
        slot.has_content = bool(body)

    def clear_section(self, section_id: str) -> None:
        """Restore a section's placeholder body."""
        slot = self._slot(section_id)
        slot.body_html = PLACEHOLDER_HTML
        slot.has_content = False

    def load_full_draft(self, draft_html: str) -> FullDraftSplit:
        """Place every anchored section of a whole-document draft.

        Sections missing from the draft keep their current body.
        """
        split = split_full_draft(draft_html, self._outline)
        for section_id, body in split.bodies.items():
            self.place(section_id, DraftFragment(section_id=section_id, html=body))
        if split.omitted_ids:
            logger.warning(
                f"Full draft omitted {len(split.omitted_ids)} sections: {', '.join(split.omitted_ids)}"
            )
        return split

    def section_body(self, section_id: str) -> str:
        return self._slot(section_id).body_html

    def sections_with_content(self) -> list[str]:
        """Ids of sections holding real (non-placeholder, non-sentinel) content."""
        return [slot.section_id for slot in self._slots if slot.has_content]

    def snapshot(self) -> str:
        """Current document HTML; safe to call mid-run."""
        parts = [f"<h1>{html.escape(self._title)}</h1>", INTRO_HTML]
        for slot in self._slots:
            parts.append(slot.heading_html)
            parts.append(slot.body_html)
        return "".join(parts)
