"""
Journal and knowledge tests: capture, search and ingest.
"""

import json
from datetime import datetime

import pytest
import yaml

from mcp_server_engram import _brain_capture_impl, _brain_ingest_impl, _brain_search_impl
from mcp_server_engram.runtime.journal_ops import extract_engram_suggestions


def _frontmatter(text):
    assert text.startswith("---\n")
    return yaml.safe_load(text.split("---\n")[1])


def test_capture_journal_appends_sections(temp_brain):
    first = json.loads(_brain_capture_impl("journal", "Started the refactor"))
    second = json.loads(_brain_capture_impl("journal", "Finished the refactor"))
    assert first["success"] and second["success"]
    assert first["data"]["path"] == second["data"]["path"]

    today = datetime.now().strftime("%Y-%m-%d")
    content = (temp_brain / "journal" / f"{today}.md").read_text(encoding="utf-8")
    assert content.startswith(f"# {today}\n\n## ")
    assert content.count("\n## ") == 2
    assert content.index("Started") < content.index("Finished")


def test_capture_knowledge_writes_note_with_frontmatter(temp_brain):
    res = json.loads(_brain_capture_impl("knowledge", "Retries need jitter.", title="Retry Policy",
                                         tags=["ops", "reliability"]))
    assert res["success"] is True
    path = res["data"]["path"]
    assert path.endswith("-retry-policy.md")
    text = open(path, encoding="utf-8").read()
    meta = _frontmatter(text)
    assert meta["title"] == "Retry Policy"
    assert isinstance(meta["created"], str)
    assert "Retries need jitter." in text
    assert "#ops #reliability" in text


def test_capture_title_with_quotes_and_newlines(temp_brain):
    title = 'The "fast" path\nand: more'
    path = json.loads(_brain_capture_impl("knowledge", "body", title=title))["data"]["path"]
    meta = _frontmatter(open(path, encoding="utf-8").read())
    assert meta["title"] == title


def test_capture_rejects_bad_input(temp_brain):
    assert json.loads(_brain_capture_impl("diary", "x"))["error_code"] == "INVALID_ARGUMENT"
    too_long_title = json.loads(_brain_capture_impl("knowledge", "x", title="t" * 201))
    assert too_long_title["success"] is False
    assert "Title too long" in too_long_title["error"]
    too_big = json.loads(_brain_capture_impl("journal", "x" * 1_000_001))
    assert "Content too large" in too_big["error"]


def test_search_ranks_by_occurrences(temp_brain):
    _brain_capture_impl("knowledge", "cache cache cache invalidation", title="Caching")
    _brain_capture_impl("knowledge", "one cache mention", title="Other")
    _brain_capture_impl("journal", "Nothing relevant here")

    res = json.loads(_brain_search_impl("CACHE"))
    assert res["success"] is True
    results = res["data"]["results"]
    assert [r["score"] for r in results] == [3, 1]
    assert results[0]["path"].endswith("-caching.md")
    assert "cache" in results[0]["snippet"]


def test_search_scope_and_limit(temp_brain):
    _brain_capture_impl("journal", "deploy went fine")
    _brain_capture_impl("knowledge", "deploy checklist", title="Deploy")

    journal_only = json.loads(_brain_search_impl("deploy", scope="journal"))["data"]
    assert journal_only["count"] == 1
    assert "/journal/" in journal_only["results"][0]["path"]

    limited = json.loads(_brain_search_impl("deploy", limit=1))["data"]
    assert limited["count"] == 1

    assert json.loads(_brain_search_impl("deploy", scope="web"))["error_code"] == "INVALID_ARGUMENT"


def test_search_snippet_is_windowed(temp_brain):
    body = ("a" * 200) + " needle " + ("b" * 200)
    _brain_capture_impl("knowledge", body, title="Haystack")
    [hit] = json.loads(_brain_search_impl("needle"))["data"]["results"]
    assert hit["snippet"].startswith("...")
    assert hit["snippet"].endswith("...")
    assert len(hit["snippet"]) == 3 + 50 + len("needle") + 50 + 3


def test_search_empty_brain(temp_brain):
    res = json.loads(_brain_search_impl("anything"))
    assert res["data"]["results"] == []


@pytest.mark.parametrize("content,expected", [
    ("You should always validate user input.", ["always validate user input"]),
    ("Never deploy on Fridays. Prefer small commits.", ["Never deploy on Fridays", "Prefer small commits"]),
    ("Avoid it.", []),
    ("Ensure backups are tested", ["Ensure backups are tested"]),
])
def test_extract_engram_suggestions(content, expected):
    assert sorted(extract_engram_suggestions(content)) == sorted(expected)


def test_ingest_stores_note_and_suggests(temp_brain):
    res = json.loads(_brain_ingest_impl("Always pin versions. Notes follow.", title="Release notes"))
    assert res["success"] is True
    data = res["data"]
    assert data["note_path"].endswith("-release-notes.md")
    assert data["engram_suggestions"] == ["Always pin versions"]
    assert "engram_learn" in data["_hints"]["related"]
    assert "type: ingested" in open(data["note_path"], encoding="utf-8").read()


def test_ingest_without_suggestions(temp_brain):
    data = json.loads(_brain_ingest_impl("Plain meeting notes."))["data"]
    assert "engram_suggestions" not in data
    assert data["note_path"].endswith("-ingested.md")
