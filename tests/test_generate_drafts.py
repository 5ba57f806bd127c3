"""Tests for the section and full-document drafting chains."""

from unittest.mock import AsyncMock, patch

import pytest

from app.chains.generate_full_draft import FULL_DRAFT_TOOL, draft_full
from app.chains.generate_section_draft import (
    SECTION_DRAFT_TOOL,
    build_fragment,
    build_system_prompt,
    draft_section,
    resolve_policy,
)
from app.core.schemas_csr import (
    SENTINEL_HTML,
    DraftRequest,
    FullDraftRequest,
    InsufficientInfoPolicy,
)


def _request(source_text: str = "The study enrolled 120 patients.") -> DraftRequest:
    return DraftRequest(section_id="10", section_title="Study Patients", source_text=source_text)


class TestDraftSection:
    @pytest.mark.asyncio
    async def test_empty_source_short_circuits(self):
        with patch(
            "app.chains.generate_section_draft.call_structured_tool",
            new_callable=AsyncMock,
        ) as mock_call:
            fragment = await draft_section(_request("   \n"))

        mock_call.assert_not_called()
        assert fragment.section_id == "10"
        assert fragment.html == SENTINEL_HTML
        assert fragment.is_insufficient

    @pytest.mark.asyncio
    async def test_drafted_html_normalized(self):
        raw = {
            "html": "<h2>10 Study Patients</h2><p>120 patients were <b>randomized</b>.</p>",
            "insufficient_information": False,
        }
        with patch(
            "app.chains.generate_section_draft.call_structured_tool",
            new_callable=AsyncMock,
            return_value=raw,
        ) as mock_call:
            fragment = await draft_section(_request())

        assert fragment.html == "<p>120 patients were <b>randomized</b>.</p>"
        kwargs = mock_call.call_args.kwargs
        assert kwargs["tool"] == SECTION_DRAFT_TOOL
        assert "Section ID: 10" in kwargs["user_prompt"]
        assert "120 patients" in kwargs["user_prompt"]

    @pytest.mark.asyncio
    async def test_insufficient_flag_gives_exact_sentinel(self):
        raw = {"html": "<p>Not enough data.</p>", "insufficient_information": True}
        with patch(
            "app.chains.generate_section_draft.call_structured_tool",
            new_callable=AsyncMock,
            return_value=raw,
        ):
            fragment = await draft_section(_request())
        assert fragment.html == SENTINEL_HTML

    @pytest.mark.asyncio
    async def test_policy_changes_prompt(self):
        with patch(
            "app.chains.generate_section_draft.call_structured_tool",
            new_callable=AsyncMock,
            return_value={"html": "<p>x</p>", "insufficient_information": False},
        ) as mock_call:
            await draft_section(_request(), policy=InsufficientInfoPolicy.BEST_EFFORT)

        assert mock_call.call_args.kwargs["system_prompt"] == build_system_prompt(
            InsufficientInfoPolicy.BEST_EFFORT
        )


class TestBuildFragment:
    def test_missing_html_is_sentinel(self):
        assert build_fragment("9", {"insufficient_information": False}).html == SENTINEL_HTML

    def test_markup_only_is_sentinel(self):
        raw = {"html": "<h3>9 Investigational Plan</h3>", "insufficient_information": False}
        assert build_fragment("9", raw).html == SENTINEL_HTML

    def test_prompts_differ_by_policy(self):
        sentinel = build_system_prompt(InsufficientInfoPolicy.SENTINEL)
        best_effort = build_system_prompt(InsufficientInfoPolicy.BEST_EFFORT)
        assert sentinel != best_effort
        assert SENTINEL_HTML in sentinel and SENTINEL_HTML in best_effort


class TestResolvePolicy:
    def test_default_from_settings(self):
        assert resolve_policy(None) == InsufficientInfoPolicy.SENTINEL

    def test_string_value(self):
        assert resolve_policy("best_effort") == InsufficientInfoPolicy.BEST_EFFORT

    def test_unknown_value_falls_back(self):
        assert resolve_policy("aggressive") == InsufficientInfoPolicy.SENTINEL


class TestDraftFull:
    @pytest.mark.asyncio
    async def test_fences_stripped(self):
        with patch(
            "app.chains.generate_full_draft.call_structured_tool",
            new_callable=AsyncMock,
            return_value={"html": "```html\n<h1>Clinical Study Report</h1>\n```"},
        ) as mock_call:
            response = await draft_full(
                FullDraftRequest(corpus="source", outline_description="- Section 9: Plan")
            )

        assert response.html == "<h1>Clinical Study Report</h1>"
        kwargs = mock_call.call_args.kwargs
        assert kwargs["tool"] == FULL_DRAFT_TOOL
        assert "- Section 9: Plan" in kwargs["user_prompt"]

    @pytest.mark.asyncio
    async def test_missing_html_raises(self):
        with patch(
            "app.chains.generate_full_draft.call_structured_tool",
            new_callable=AsyncMock,
            return_value={},
        ):
            with pytest.raises(ValueError):
                await draft_full(FullDraftRequest(corpus="source", outline_description="x"))

    @pytest.mark.asyncio
    async def test_document_with_inline_backticks_kept_whole(self):
        html = (
            '<h1>Clinical Study Report</h1><h2 id="section-9">9 Investigational Plan</h2>'
            "<p>Use ```x``` markers</p>"
        )
        with patch(
            "app.chains.generate_full_draft.call_structured_tool",
            new_callable=AsyncMock,
            return_value={"html": html},
        ):
            response = await draft_full(FullDraftRequest(corpus="source", outline_description="x"))

        assert response.html == html
