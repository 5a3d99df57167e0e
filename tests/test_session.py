"""
Session start/end tests.
"""

import json

import yaml

from mcp_server_engram import (
    _brain_capture_impl,
    _brain_session_end_impl,
    _brain_session_start_impl,
)
from mcp_server_engram.runtime.session_ops import SESSION_GUIDE_FULL, SESSION_GUIDE_SHORT


def test_session_start_with_task_injects(temp_brain, sample_engrams):
    res = json.loads(_brain_session_start_impl(task="set up the database for integration tests"))
    assert res["success"] is True
    data = res["data"]
    assert data["engrams"]["count"] >= 1
    assert "migrations" in data["engrams"]["text"]
    assert "ENG-2026-0301-001" in data["engrams"]["injected_ids"]
    assert data["pending_candidates"] == 1
    assert data["guide"] == SESSION_GUIDE_SHORT
    assert any("engram_capture" in r for r in data["recommendations"])


def test_session_start_fresh_brain_gets_full_guide(temp_brain):
    data = json.loads(_brain_session_start_impl())["data"]
    assert data["engrams"] is None
    assert data["journal_today"] is None
    assert data["pending_candidates"] == 0
    assert data["guide"] == SESSION_GUIDE_FULL
    assert "engram_inject" in data["_hints"]["related"]


def test_session_start_includes_today_journal(temp_brain):
    _brain_capture_impl("journal", "Morning standup notes")
    data = json.loads(_brain_session_start_impl())["data"]
    assert "Morning standup notes" in data["journal_today"]


def test_session_end_captures_and_learns(temp_brain):
    res = json.loads(_brain_session_end_impl(
        "Migrated the auth service",
        tags=["auth"],
        engram_suggestions=[
            {"statement": "Always rotate tokens after migration"},
            {"statement": "Document the rollback path", "type": "procedural"},
            {"statement": "   "},
        ],
    ))
    assert res["success"] is True
    data = res["data"]
    assert data["engrams_created"] == 2
    assert len(data["errors"]) == 1
    assert "2 engram(s) created as candidates" in data["_hints"]["next"]

    journal = open(data["journal_path"], encoding="utf-8").read()
    assert "Migrated the auth service" in journal
    assert "#auth" in journal

    stored = yaml.safe_load((temp_brain / "engrams.yaml").read_text(encoding="utf-8"))["engrams"]
    assert [e["status"] for e in stored] == ["candidate", "candidate"]
    assert stored[1]["type"] == "procedural"


def test_session_end_requires_summary(temp_brain):
    res = json.loads(_brain_session_end_impl(""))
    assert res["success"] is False
    assert res["error_code"] == "INVALID_ARGUMENT"
