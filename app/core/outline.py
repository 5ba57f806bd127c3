"""Immutable CSR section outline.

The outline is a forest of ``SectionNode``s with dotted ids ("11.4.2").
``flatten()`` yields the canonical document order used everywhere else:
pre-order depth-first, parents before children, siblings as declared.
"""

from collections.abc import Iterator, Sequence
from functools import lru_cache
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from app.core.ich_e3_sections import ICH_E3_SECTIONS

ANCHOR_PREFIX = "section-"


class SectionNotFoundError(KeyError):
    """Raised when a section id is not part of the outline."""

    def __init__(self, section_id: str):
        super().__init__(section_id)
        self.section_id = section_id

    def __str__(self) -> str:
        return f"Unknown section id: {self.section_id}"


class SectionNode(BaseModel):
    """One section of the outline."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)
    title: str
    children: tuple["SectionNode", ...] = ()

    @property
    def is_leaf(self) -> bool:
        return not self.children


def anchor_for(section_id: str) -> str:
    """Stable heading anchor for a section id."""
    return f"{ANCHOR_PREFIX}{section_id}"


def section_id_from_anchor(anchor: str) -> str | None:
    """Inverse of ``anchor_for``; None for anchors that are not section anchors."""
    if anchor and anchor.startswith(ANCHOR_PREFIX) and len(anchor) > len(ANCHOR_PREFIX):
        return anchor[len(ANCHOR_PREFIX):]
    return None


class SectionOutline:
    """Read-only section tree with depth-first traversal and id lookup."""

    def __init__(self, roots: Sequence[SectionNode]):
        self._roots: tuple[SectionNode, ...] = tuple(roots)
        self._flat: list[SectionNode] = []
        self._index: dict[str, SectionNode] = {}
        self._depth: dict[str, int] = {}
        for root in self._roots:
            self._visit(root, parent=None, depth=0)

    def _visit(self, node: SectionNode, parent: SectionNode | None, depth: int) -> None:
        if node.id in self._index:
            raise ValueError(f"Duplicate section id in outline: {node.id}")
        if parent is not None:
            if not node.id.startswith(f"{parent.id}.") or node.id.count(".") != parent.id.count(".") + 1:
                raise ValueError(
                    f"Section id {node.id} is not a direct child id of {parent.id}"
                )
        elif "." in node.id:
            raise ValueError(f"Top-level section id must not be dotted: {node.id}")

        self._flat.append(node)
        self._index[node.id] = node
        self._depth[node.id] = depth
        for child in node.children:
            self._visit(child, parent=node, depth=depth + 1)

    @classmethod
    def from_dicts(cls, data: Sequence[dict[str, Any]]) -> "SectionOutline":
        """Build an outline from nested ``{id, title, children}`` dicts."""
        return cls([SectionNode.model_validate(item) for item in data])

    @property
    def roots(self) -> tuple[SectionNode, ...]:
        return self._roots

    def flatten(self) -> list[SectionNode]:
        """All sections in canonical depth-first order."""
        return list(self._flat)

    def lookup(self, section_id: str) -> SectionNode:
        """Return the node for ``section_id``.

        Raises:
            SectionNotFoundError: If the id is not in the outline
        """
        try:
            return self._index[section_id]
        except KeyError:
            raise SectionNotFoundError(section_id) from None

    def depth(self, section_id: str) -> int:
        """Nesting depth of a section, 0 for top-level sections."""
        self.lookup(section_id)
        return self._depth[section_id]

    def ids(self) -> list[str]:
        return [node.id for node in self._flat]

    def section_refs(self) -> list[tuple[str, str]]:
        """(id, title) pairs in canonical order."""
        return [(node.id, node.title) for node in self._flat]

    def describe(self) -> str:
        """Indented outline text with heading anchors, for prompts."""
        lines = []
        for node in self._flat:
            indent = "  " * self._depth[node.id]
            lines.append(
                f'{indent}- Section {node.id}: {node.title} (anchor id="{anchor_for(node.id)}")'
            )
        return "\n".join(lines)

    def to_dict(self) -> list[dict[str, Any]]:
        """Nested representation with anchors, for the navigator."""

        def _node(node: SectionNode) -> dict[str, Any]:
            return {
                "id": node.id,
                "title": node.title,
                "anchor": anchor_for(node.id),
                "children": [_node(child) for child in node.children],
            }

        return [_node(root) for root in self._roots]

    def __len__(self) -> int:
        return len(self._flat)

    def __iter__(self) -> Iterator[SectionNode]:
        return iter(self._flat)

    def __contains__(self, section_id: object) -> bool:
        return section_id in self._index


@lru_cache(maxsize=1)
def default_outline() -> SectionOutline:
    """The bundled ICH E3 outline."""
    return SectionOutline.from_dicts(ICH_E3_SECTIONS)
