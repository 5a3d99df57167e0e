import re
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional
import logging

import yaml

from .common import (
    build_hints,
    get_brain_path,
    get_journal_path,
    get_knowledge_path,
    make_response,
    validate_content,
    validate_title,
)
from .config import load_config
from .event_ops import _emit_event

logger = logging.getLogger("engram.journal")

SNIPPET_CONTEXT = 50
SUGGESTION_MIN_LENGTH = 11
SUGGESTION_MAX_LENGTH = 199
SEARCH_SCOPES = ("journal", "knowledge", "all")

SUGGESTION_PATTERNS = [
    re.compile(rf"\b({verb}\s+\w[\w\s]*?)(?:\.|$)", re.IGNORECASE)
    for verb in ("always", "never", "prefer", "avoid", "ensure")
]


def _slugify(title: Optional[str], default: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", (title or default).lower())[:50]


def _tag_line(tags: Optional[List[str]]) -> str:
    if not tags:
        return ""
    return "\n" + " ".join(f"#{t}" for t in tags) + "\n"


def _write_note(content: str, title: Optional[str], tags: Optional[List[str]],
                default_title: str, default_slug: str, note_type: Optional[str] = None) -> Path:
    now = datetime.now()
    knowledge_dir = get_knowledge_path()
    knowledge_dir.mkdir(parents=True, exist_ok=True)

    file_path = knowledge_dir / f"{now:%Y-%m-%dT%H-%M-%S}-{_slugify(title, default_slug)}.md"
    heading = title or default_title
    meta = {"title": heading, "created": now.isoformat()}
    if note_type:
        meta["type"] = note_type
    frontmatter = "---\n" + yaml.safe_dump(meta, sort_keys=False, allow_unicode=True) + "---\n\n"

    file_path.write_text(f"{frontmatter}{content}\n{_tag_line(tags)}", encoding="utf-8")
    return file_path


def _append_journal(content: str) -> Path:
    now = datetime.now()
    journal_dir = get_journal_path()
    journal_dir.mkdir(parents=True, exist_ok=True)

    day = f"{now:%Y-%m-%d}"
    file_path = journal_dir / f"{day}.md"
    section = f"## {now:%H:%M}\n\n{content}\n"
    if file_path.exists():
        with open(file_path, "a", encoding="utf-8") as f:
            f.write(f"\n{section}")
    else:
        file_path.write_text(f"# {day}\n\n{section}", encoding="utf-8")
    return file_path


def _read_today_journal() -> Optional[str]:
    file_path = get_journal_path() / f"{datetime.now():%Y-%m-%d}.md"
    if not file_path.exists():
        return None
    return file_path.read_text(encoding="utf-8")


# ── search ──────────────────────────────────────────────────────────

def _extract_snippet(content: str, query: str, max_length: int) -> str:
    idx = content.lower().find(query.lower())
    if idx == -1:
        return content[:100]
    start = max(0, idx - SNIPPET_CONTEXT)
    end = min(len(content), idx + len(query) + SNIPPET_CONTEXT)
    snippet = ("..." if start > 0 else "") + content[start:end] + ("..." if end < len(content) else "")
    return snippet[:max_length]


def _search_dir(directory: Path, query: str, snippet_length: int) -> List[Dict]:
    if not directory.exists():
        return []
    lowered = query.lower()
    results = []
    for file_path in sorted(directory.rglob("*.md")):
        try:
            content = file_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(f"Skipping unreadable file {file_path}: {e}")
            continue
        occurrences = content.lower().count(lowered)
        if occurrences == 0:
            continue
        results.append({
            "path": str(file_path),
            "snippet": _extract_snippet(content, query, snippet_length),
            "score": occurrences,
        })
    return results


def _search_files(query: str, scope: str = "all", limit: Optional[int] = None) -> List[Dict]:
    """Occurrence-count ranking over journal and/or knowledge markdown files."""
    config = load_config(get_brain_path())
    limit = limit if limit is not None else config.search.max_results

    results: List[Dict] = []
    if scope in ("journal", "all"):
        results.extend(_search_dir(get_journal_path(), query, config.search.snippet_length))
    if scope in ("knowledge", "all"):
        results.extend(_search_dir(get_knowledge_path(), query, config.search.snippet_length))

    results.sort(key=lambda r: r["score"], reverse=True)
    return results[:limit]


def _brain_search_impl(query: str, scope: str = "all", limit: Optional[int] = None) -> str:
    if not query or not query.strip():
        return make_response(False, error="Query must not be empty", error_code="INVALID_ARGUMENT")
    if scope not in SEARCH_SCOPES:
        return make_response(False, error=f"scope must be one of: {list(SEARCH_SCOPES)}",
                             error_code="INVALID_ARGUMENT")
    try:
        results = _search_files(query, scope, limit)
        return make_response(True, data={"query": query, "count": len(results), "results": results})
    except Exception as e:
        logger.error(f"Search failed: {e}")
        return make_response(False, error=f"Search failed: {e}")


# ── capture ─────────────────────────────────────────────────────────

def _brain_capture_impl(capture_type: str, content: str, title: Optional[str] = None,
                        tags: Optional[List[str]] = None) -> str:
    """Append to today's journal or write a standalone knowledge note."""
    if capture_type not in ("journal", "knowledge"):
        return make_response(False, error="type must be 'journal' or 'knowledge'",
                             error_code="INVALID_ARGUMENT")
    error = validate_content(content) or validate_title(title)
    if error:
        return make_response(False, error=error, error_code="INVALID_ARGUMENT")
    try:
        if capture_type == "journal":
            path = _append_journal(content)
        else:
            path = _write_note(content, title, tags, "Untitled", "note")
        _emit_event("captured", "engram_capture", {"type": capture_type, "path": str(path)})
        return make_response(True, data={"path": str(path)})
    except OSError as e:
        logger.error(f"Capture failed: {e}")
        return make_response(False, error=f"Capture failed: {e}")


# ── ingest ──────────────────────────────────────────────────────────

def extract_engram_suggestions(content: str) -> List[str]:
    """Directive-looking phrases ("always ...", "never ...") worth turning into engrams."""
    suggestions = []
    for pattern in SUGGESTION_PATTERNS:
        for match in pattern.finditer(content):
            suggestion = match.group(1).strip()
            if SUGGESTION_MIN_LENGTH <= len(suggestion) <= SUGGESTION_MAX_LENGTH:
                suggestions.append(suggestion)
    return suggestions


def _brain_ingest_impl(content: str, title: Optional[str] = None,
                       tags: Optional[List[str]] = None) -> str:
    error = validate_content(content) or validate_title(title)
    if error:
        return make_response(False, error=error, error_code="INVALID_ARGUMENT")
    try:
        config = load_config(get_brain_path())
        path = _write_note(content, title, tags, "Ingested Note", "ingested", note_type="ingested")
        suggestions = extract_engram_suggestions(content)
        _emit_event("ingested", "engram_ingest", {"path": str(path), "suggestions": len(suggestions)})

        data = {"note_path": str(path)}
        if suggestions:
            data["engram_suggestions"] = suggestions
            data["_hints"] = build_hints(
                config.hints.enabled,
                next_step=f"Found {len(suggestions)} possible engram(s). "
                          "Use engram_learn to keep the ones worth remembering.",
                related=["engram_learn"],
            )
        return make_response(True, data=data)
    except OSError as e:
        logger.error(f"Ingest failed: {e}")
        return make_response(False, error=f"Ingest failed: {e}")
