"""Tests for the anchor-indexed composite document."""

import itertools

import pytest

from app.core.document_assembler import DocumentAssembler, heading_level, text_to_paragraphs
from app.core.outline import SectionNotFoundError, default_outline
from app.core.schemas_csr import PLACEHOLDER_HTML, SENTINEL_HTML, DraftFragment


def _fragment(section_id: str, text: str) -> DraftFragment:
    return DraftFragment(section_id=section_id, html=f"<p>{text}</p>")


class TestTemplate:
    def test_initial_snapshot(self, small_outline):
        snapshot = DocumentAssembler(small_outline).snapshot()

        assert snapshot.startswith("<h1>Clinical Study Report</h1>")
        assert (
            '<h2 id="section-9">9 Investigational Plan</h2>' + PLACEHOLDER_HTML
            + '<h3 id="section-9.1">9.1 Overall Study Design</h3>' + PLACEHOLDER_HTML
            + '<h2 id="section-10">10 Study Patients</h2>' + PLACEHOLDER_HTML
        ) in snapshot

    def test_every_default_section_has_one_anchor(self):
        snapshot = DocumentAssembler(default_outline()).snapshot()
        for section_id in default_outline().ids():
            assert snapshot.count(f'id="section-{section_id}"') == 1

    def test_heading_levels_clamp(self):
        assert heading_level(0) == 2
        assert heading_level(2) == 4
        assert heading_level(10) == 6

    def test_title_escaped(self, small_outline):
        snapshot = DocumentAssembler(small_outline, title="Study <A & B>").snapshot()
        assert snapshot.startswith("<h1>Study &lt;A &amp; B&gt;</h1>")


class TestPlacement:
    def test_place_replaces_only_that_section(self, small_outline):
        assembler = DocumentAssembler(small_outline)
        assembler.place("9.1", _fragment("9.1", "Parallel group."))

        assert assembler.section_body("9.1") == "<p>Parallel group.</p>"
        assert assembler.section_body("9") == PLACEHOLDER_HTML
        assert assembler.section_body("10") == PLACEHOLDER_HTML

    def test_last_write_wins(self, small_outline):
        assembler = DocumentAssembler(small_outline)
        assembler.place("10", _fragment("10", "first"))
        assembler.place("10", _fragment("10", "second"))
        assert assembler.section_body("10") == "<p>second</p>"

    def test_place_is_idempotent(self, small_outline):
        assembler = DocumentAssembler(small_outline)
        assembler.place("9", _fragment("9", "Plan."))
        once = assembler.snapshot()
        assembler.place("9", _fragment("9", "Plan."))
        assert assembler.snapshot() == once

    def test_placement_order_does_not_matter(self, small_outline):
        fragments = [_fragment("9", "A"), _fragment("9.1", "B"), _fragment("10", "C")]
        snapshots = set()
        for order in itertools.permutations(fragments):
            assembler = DocumentAssembler(small_outline)
            for fragment in order:
                assembler.place(fragment.section_id, fragment)
            snapshots.add(assembler.snapshot())
        assert len(snapshots) == 1

    def test_unknown_section(self, small_outline):
        assembler = DocumentAssembler(small_outline)
        with pytest.raises(SectionNotFoundError):
            assembler.place("42", _fragment("42", "x"))

    def test_fragment_for_other_section_rejected(self, small_outline):
        assembler = DocumentAssembler(small_outline)
        with pytest.raises(ValueError):
            assembler.place("9", _fragment("10", "x"))

    def test_sections_with_content_excludes_sentinel(self, small_outline):
        assembler = DocumentAssembler(small_outline)
        assembler.place("9", _fragment("9", "Plan."))
        assembler.place("10", DraftFragment(section_id="10", html=SENTINEL_HTML))
        assert assembler.sections_with_content() == ["9"]

    def test_reset_restores_placeholders(self, small_outline):
        assembler = DocumentAssembler(small_outline)
        fresh = assembler.snapshot()
        assembler.place("9", _fragment("9", "Plan."))
        assembler.reset()
        assert assembler.snapshot() == fresh

    def test_clear_section(self, small_outline):
        assembler = DocumentAssembler(small_outline)
        assembler.place("9", _fragment("9", "Plan."))
        assembler.clear_section("9")
        assert assembler.section_body("9") == PLACEHOLDER_HTML
        assert assembler.sections_with_content() == []


class TestUserText:
    def test_text_is_escaped(self, small_outline):
        assembler = DocumentAssembler(small_outline)
        assembler.place_user_text("10", "Dose <5 mg> & more")
        assert assembler.section_body("10") == "<p>Dose &lt;5 mg&gt; &amp; more</p>"
        assert assembler.sections_with_content() == ["10"]

    def test_paragraphs_and_line_breaks(self):
        assert text_to_paragraphs("one\ntwo\n\nthree") == "<p>one<br/>two</p><p>three</p>"

    def test_blank_text_restores_placeholder(self, small_outline):
        assembler = DocumentAssembler(small_outline)
        assembler.place_user_text("10", "   ")
        assert assembler.section_body("10") == PLACEHOLDER_HTML


class TestLoadFullDraft:
    def test_omitted_sections_keep_placeholder(self, small_outline):
        assembler = DocumentAssembler(small_outline)
        split = assembler.load_full_draft(
            "<h1>Clinical Study Report</h1>"
            '<h2 id="section-9">9 Investigational Plan</h2><p>Overview.</p>'
            '<h3 id="section-9.1">9.1 Overall Study Design</h3><p>Design.</p>'
        )

        assert split.omitted_ids == ["10"]
        assert assembler.section_body("9") == "<p>Overview.</p>"
        assert assembler.section_body("9.1") == "<p>Design.</p>"
        assert assembler.section_body("10") == PLACEHOLDER_HTML
