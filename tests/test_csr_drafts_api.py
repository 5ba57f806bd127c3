"""Tests for the CSR drafting API endpoints."""

import json
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from app.core.csr_pipeline import DraftingChains
from app.core.drafting_session import session_store
from app.core.schemas_csr import SENTINEL_HTML, DraftFragment, SectionMapping
from app.main import app

client = TestClient(app)


@pytest.fixture(autouse=True)
def clear_sessions():
    session_store.clear()
    yield
    session_store.clear()


def _create_session() -> str:
    response = client.post("/v1/sessions")
    assert response.status_code == 200
    return response.json()["session_id"]


def _upload(session_id: str, *files):
    return client.post(
        f"/v1/sessions/{session_id}/documents",
        files=[("files", f) for f in files],
    )


def _sse_events(body: str) -> list[dict]:
    return [
        json.loads(line[len("data: "):])
        for line in body.splitlines()
        if line.startswith("data: ")
    ]


async def _fake_draft(request, policy):
    if request.section_id == "12.2":
        return DraftFragment(section_id="12.2", html="<p>Headache was the most common AE.</p>")
    return DraftFragment(section_id=request.section_id, html=SENTINEL_HTML)


class TestOutline:
    def test_outline_tree(self):
        response = client.get("/v1/outline")
        assert response.status_code == 200
        roots = response.json()
        assert len(roots) == 16
        assert roots[0]["anchor"] == "section-1"
        section_11 = roots[10]
        assert section_11["id"] == "11"
        assert [c["id"] for c in section_11["children"]] == ["11.1", "11.2", "11.3", "11.4"]


class TestSessions:
    def test_create_and_get(self):
        session_id = _create_session()
        response = client.get(f"/v1/sessions/{session_id}")
        assert response.status_code == 200
        assert response.json() == {
            "session_id": session_id,
            "documents": [],
            "is_generating": False,
            "last_report": None,
        }

    def test_unknown_session_404(self):
        assert client.get("/v1/sessions/missing/snapshot").status_code == 404
        assert client.post("/v1/sessions/missing/cancel").status_code == 404

    def test_delete_session(self):
        session_id = _create_session()
        assert client.delete(f"/v1/sessions/{session_id}").status_code == 200
        assert client.get(f"/v1/sessions/{session_id}").status_code == 404

    def test_initial_snapshot_has_placeholders(self):
        session_id = _create_session()
        data = client.get(f"/v1/sessions/{session_id}/snapshot").json()
        assert data["html"].startswith("<h1>Clinical Study Report</h1>")
        assert '<h2 id="section-1">1 Title Page</h2>' in data["html"]
        assert data["sections_with_content"] == []
        assert data["is_generating"] is False


class TestDocuments:
    def test_upload_reports_each_file(self):
        session_id = _create_session()
        response = _upload(
            session_id,
            ("protocol.txt", b"The study enrolled 120 patients.", "text/plain"),
            ("scan.png", b"\x89PNG", "image/png"),
        )

        assert response.status_code == 200
        data = response.json()
        assert data["accepted"] == 1
        assert data["rejected"] == 1
        ok, failed = data["results"]
        assert ok["document"]["origin_format"] == "plain"
        assert ok["document"]["word_count"] == 5
        assert "Unsupported" in failed["error"]

        listed = client.get(f"/v1/sessions/{session_id}/documents").json()
        assert [d["name"] for d in listed] == ["protocol.txt"]

    def test_remove_document(self):
        session_id = _create_session()
        _upload(session_id, ("a.txt", b"alpha", "text/plain"))

        assert client.delete(f"/v1/sessions/{session_id}/documents/a.txt").status_code == 200
        assert client.delete(f"/v1/sessions/{session_id}/documents/a.txt").status_code == 404


class TestGenerate:
    def test_requires_documents(self):
        session_id = _create_session()
        response = client.post(f"/v1/sessions/{session_id}/generate", json={"mode": "per_section"})
        assert response.status_code == 400

    def test_streams_progress_and_updates_snapshot(self):
        session_id = _create_session()
        _upload(session_id, ("safety.txt", b"Headache was reported by 12 patients.", "text/plain"))

        with patch(
            "app.core.csr_pipeline.DraftingChains",
            return_value=DraftingChains(draft_section=_fake_draft),
        ):
            response = client.post(
                f"/v1/sessions/{session_id}/generate", json={"mode": "per_section"}
            )

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        events = _sse_events(response.text)
        assert events[0]["state"] == "ingesting"
        assert events[-1]["state"] == "done"
        report = events[-1]["report"]
        assert report["drafted_section_ids"] == ["12.2"]
        assert len(report["insufficient_section_ids"]) == 36

        started = [e["section_id"] for e in events if e.get("status") == "started"]
        assert started[0] == "1" and started[-1] == "16.4"

        snapshot = client.get(f"/v1/sessions/{session_id}/snapshot").json()
        assert "<p>Headache was the most common AE.</p>" in snapshot["html"]
        assert snapshot["sections_with_content"] == ["12.2"]
        assert snapshot["is_generating"] is False

        session = client.get(f"/v1/sessions/{session_id}").json()
        assert session["last_report"]["state"] == "done"

    def test_invalid_mode_rejected(self):
        session_id = _create_session()
        _upload(session_id, ("a.txt", b"alpha", "text/plain"))
        response = client.post(f"/v1/sessions/{session_id}/generate", json={"mode": "fastest"})
        assert response.status_code == 422

    def test_concurrent_run_conflict(self):
        session_id = _create_session()
        _upload(session_id, ("a.txt", b"alpha", "text/plain"))
        session_store.get(session_id).start_generation("per_section")

        response = client.post(f"/v1/sessions/{session_id}/generate", json={"mode": "per_section"})
        assert response.status_code == 409

        response = client.put(f"/v1/sessions/{session_id}/sections/10", json={"text": "typed"})
        assert response.status_code == 409

    def test_cancel_without_run(self):
        session_id = _create_session()
        response = client.post(f"/v1/sessions/{session_id}/cancel")
        assert response.json() == {"cancelled": False}


class TestSectionEdits:
    def test_user_text_placed(self):
        session_id = _create_session()
        response = client.put(
            f"/v1/sessions/{session_id}/sections/10", json={"text": "120 patients <enrolled>"}
        )
        assert response.status_code == 200

        snapshot = client.get(f"/v1/sessions/{session_id}/snapshot").json()
        assert "<p>120 patients &lt;enrolled&gt;</p>" in snapshot["html"]
        assert snapshot["sections_with_content"] == ["10"]

    def test_unknown_section_404(self):
        session_id = _create_session()
        response = client.put(f"/v1/sessions/{session_id}/sections/99", json={"text": "x"})
        assert response.status_code == 404


class TestDraftSingleSection:
    def test_drafts_only_requested_section(self):
        session_id = _create_session()
        _upload(session_id, ("safety.txt", b"Headache was reported by 12 patients.", "text/plain"))
        client.put(f"/v1/sessions/{session_id}/sections/10", json={"text": "Typed by hand"})

        with patch(
            "app.core.csr_pipeline.DraftingChains",
            return_value=DraftingChains(draft_section=_fake_draft),
        ):
            response = client.post(
                f"/v1/sessions/{session_id}/sections/12.2/draft", json={"mode": "per_section"}
            )

        assert response.status_code == 200
        body = response.json()
        assert body["html"] == "<p>Headache was the most common AE.</p>"
        assert body["event"]["state"] == "done"
        assert body["event"]["outcome"] == "drafted"
        assert body["event"]["report"]["drafted_section_ids"] == ["12.2"]

        snapshot = client.get(f"/v1/sessions/{session_id}/snapshot").json()
        assert snapshot["sections_with_content"] == ["10", "12.2"]
        assert snapshot["is_generating"] is False

        session = client.get(f"/v1/sessions/{session_id}").json()
        assert session["last_report"] is None

    def test_mapped_mode_uses_relevant_text(self):
        session_id = _create_session()
        _upload(session_id, ("sites.txt", b"Twelve sites in three countries.", "text/plain"))
        seen = []

        async def relevant(section, corpus):
            seen.append(section.id)
            return SectionMapping(section_id=section.id, section_title=section.title, relevant_text="")

        with patch(
            "app.core.csr_pipeline.DraftingChains",
            return_value=DraftingChains(draft_section=_fake_draft, find_relevant_text=relevant),
        ):
            response = client.post(
                f"/v1/sessions/{session_id}/sections/12.2/draft", json={"mode": "mapped"}
            )

        assert response.status_code == 200
        assert seen == ["12.2"]

    def test_requires_documents(self):
        session_id = _create_session()
        response = client.post(f"/v1/sessions/{session_id}/sections/12.2/draft", json={})
        assert response.status_code == 400

    def test_unknown_section_404(self):
        session_id = _create_session()
        _upload(session_id, ("a.txt", b"alpha", "text/plain"))
        response = client.post(f"/v1/sessions/{session_id}/sections/99/draft", json={})
        assert response.status_code == 404

    def test_conflicts_with_active_run(self):
        session_id = _create_session()
        _upload(session_id, ("a.txt", b"alpha", "text/plain"))
        session_store.get(session_id).start_generation("per_section")

        response = client.post(f"/v1/sessions/{session_id}/sections/12.2/draft", json={})
        assert response.status_code == 409
