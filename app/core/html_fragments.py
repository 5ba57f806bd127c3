"""HTML fragment normalization for drafted section bodies.

LLM output is parsed with BeautifulSoup and re-serialized so every fragment
spliced into the composite document is balanced markup. Section headings are
removed (the document template already has them) and only paragraph, list,
table and inline-emphasis tags survive; other tags are unwrapped to their text.
"""

import re
from dataclasses import dataclass, field

from bs4 import BeautifulSoup, Comment, NavigableString, Tag

from app.core.outline import SectionOutline, section_id_from_anchor
from app.core.schemas_csr import SENTINEL_HTML

HEADING_TAGS = ["h1", "h2", "h3", "h4", "h5", "h6"]
BLOCK_TAGS = {"p", "ul", "ol", "table"}
ALLOWED_TAGS = BLOCK_TAGS | {
    "li",
    "thead",
    "tbody",
    "tfoot",
    "tr",
    "th",
    "td",
    "caption",
    "strong",
    "em",
    "b",
    "i",
    "u",
    "sup",
    "sub",
    "br",
}
# Attributes kept on table cells; everything else is stripped
_CELL_ATTRIBUTES = {"colspan", "rowspan"}
_DROPPED_TAGS = ["script", "style", "head", "title", "meta", "link"]

_SENTINEL_TEXT = "insufficient information in source documents to generate this section"


def _wrap_loose_content(soup: BeautifulSoup) -> None:
    """Wrap top-level text and inline tags into paragraphs."""
    run: list = []

    def flush() -> None:
        if not run:
            return
        if any(str(node).strip() for node in run):
            paragraph = soup.new_tag("p")
            run[0].insert_before(paragraph)
            for node in run:
                paragraph.append(node.extract())
        run.clear()

    for node in list(soup.contents):
        if isinstance(node, Tag) and node.name in BLOCK_TAGS:
            flush()
        else:
            run.append(node)
    flush()


def sanitize_fragment(html: str) -> str:
    """
    Normalize an LLM-produced section body.

    Returns:
        Balanced, heading-free HTML using only allowed tags; '' if nothing
        with text content remains
    """
    if not html or not html.strip():
        return ""

    soup = BeautifulSoup(html, "html.parser")

    for comment in soup.find_all(string=lambda text: isinstance(text, Comment)):
        comment.extract()
    for tag in soup.find_all(HEADING_TAGS + _DROPPED_TAGS):
        tag.decompose()

    for tag in soup.find_all(True):
        if tag.name not in ALLOWED_TAGS:
            tag.unwrap()
            continue
        keep = _CELL_ATTRIBUTES if tag.name in ("td", "th") else set()
        tag.attrs = {k: v for k, v in tag.attrs.items() if k in keep}

    _wrap_loose_content(soup)

    if not soup.get_text(strip=True):
        return ""
    return str(soup).strip()


def is_sentinel_text(html: str) -> bool:
    """True when a fragment only says the source had insufficient information."""
    text = BeautifulSoup(html or "", "html.parser").get_text(" ", strip=True)
    normalized = re.sub(r"\s+", " ", text).strip(" *_[].").lower()
    return normalized == _SENTINEL_TEXT


def normalize_draft_html(html: str) -> str:
    """Sanitized fragment, or the exact sentinel when nothing usable remains."""
    cleaned = sanitize_fragment(html)
    if not cleaned or is_sentinel_text(cleaned):
        return SENTINEL_HTML
    return cleaned


@dataclass
class FullDraftSplit:
    """Per-section bodies recovered from a whole-document draft."""

    bodies: dict[str, str] = field(default_factory=dict)
    omitted_ids: list[str] = field(default_factory=list)
    has_title: bool = False


def _anchored_section_id(tag: Tag, outline: SectionOutline) -> str | None:
    if tag.name not in HEADING_TAGS:
        return None
    section_id = section_id_from_anchor(tag.get("id", ""))
    if section_id is not None and section_id in outline:
        return section_id
    return None


def _starts_new_section(node, outline: SectionOutline) -> bool:
    if not isinstance(node, Tag):
        return False
    if _anchored_section_id(node, outline) is not None:
        return True
    return any(_anchored_section_id(h, outline) for h in node.find_all(HEADING_TAGS))


def split_full_draft(html: str, outline: SectionOutline) -> FullDraftSplit:
    """
    Split a whole-document draft into section bodies by heading anchor.

    A section's body is every sibling after its anchored heading up to the next
    anchored heading. Sections whose anchor is missing are reported in
    ``omitted_ids``; an anchored heading with no body gets the sentinel.
    """
    soup = BeautifulSoup(html or "", "html.parser")
    split = FullDraftSplit()

    first_tag = soup.find(True)
    split.has_title = bool(first_tag is not None and first_tag.name == "h1")

    for heading in soup.find_all(HEADING_TAGS):
        section_id = _anchored_section_id(heading, outline)
        if section_id is None or section_id in split.bodies:
            continue

        parts = []
        for sibling in heading.next_siblings:
            if _starts_new_section(sibling, outline):
                break
            if isinstance(sibling, NavigableString) and isinstance(sibling, Comment):
                continue
            parts.append(str(sibling))
        split.bodies[section_id] = normalize_draft_html("".join(parts))

    split.omitted_ids = [sid for sid in outline.ids() if sid not in split.bodies]
    return split
