
# =============================================================================
# Engram MCP Server v0.3.0
# =============================================================================
__version__ = "0.3.0"

import os
import json
import logging
from datetime import date
from typing import List, Optional, Dict, Any

# Configure FastMCP to disable banner and use stderr for logging to avoid breaking MCP protocol
os.environ.setdefault("FASTMCP_SHOW_CLI_BANNER", "False")
os.environ.setdefault("FASTMCP_LOG_LEVEL", "WARNING")

from fastmcp import FastMCP

from .runtime.common import get_engrams_path, get_journal_path
from .runtime.event_ops import _read_events
from .runtime.engram_ops import (
    _brain_learn_impl,
    _brain_promote_impl,
    _brain_forget_impl,
    _brain_feedback_impl,
    _brain_inject_impl,
    _brain_recall_impl,
    _brain_status_impl,
)
from .runtime.journal_ops import (
    _brain_capture_impl,
    _brain_search_impl,
    _brain_ingest_impl,
)
from .runtime.session_ops import (
    SESSION_GUIDE_FULL,
    _brain_session_start_impl,
    _brain_session_end_impl,
)
from .runtime.pack_ops import (
    _brain_packs_discover_impl,
    _brain_packs_install_impl,
    _brain_packs_export_impl,
)
from .runtime.repository import load_engrams
from .runtime.schemas import EngramStatus

logger = logging.getLogger("engram")

mcp = FastMCP("Engram")


# ============================================================
# ENGRAM LIFECYCLE
# ============================================================

@mcp.tool()
def engram_learn(statement: str, type: str = "behavioral", scope: str = "global",
                 tags: Optional[List[str]] = None, domain: Optional[str] = None,
                 rationale: Optional[str] = None, contraindications: Optional[List[str]] = None,
                 visibility: str = "private") -> str:
    """
    Record a reusable learning as an engram.

    New engrams start as candidates (unless engrams.auto_promote is set) and
    are only injected once promoted.

    Args:
        statement: The learning itself, phrased as a directive ("Always X", "Prefer Y")
        type: behavioral, terminological, procedural or architectural
        scope: "global" or a scope path such as "project:billing"
        tags: Keywords used when matching prompts
        domain: Dotted domain, e.g. "software.testing"
        rationale: Why the learning holds
        contraindications: Situations where it does not apply
        visibility: private (default), public or template; only public/template can be exported

    Returns:
        The created engram record
    """
    return _brain_learn_impl(statement, type, scope, tags, domain, rationale, contraindications, visibility)


@mcp.tool()
def engram_promote(id: Optional[str] = None, ids: Optional[List[str]] = None) -> str:
    """
    Activate candidate engrams so they take part in injection.

    Args:
        id: A single engram ID
        ids: Several engram IDs; each is reported separately
    """
    return _brain_promote_impl(id, ids)


@mcp.tool()
def engram_forget(id: Optional[str] = None, search: Optional[str] = None) -> str:
    """
    Retire an engram. Retired engrams are never injected or promoted again.

    Args:
        id: Exact engram ID to retire
        search: Text to match; retires only when exactly one engram matches
    """
    return _brain_forget_impl(id, search)


@mcp.tool()
def engram_feedback(engram_id: Optional[str] = None, signal: Optional[str] = None,
                    comment: Optional[str] = None,
                    signals: Optional[List[Dict[str, str]]] = None) -> str:
    """
    Rate whether injected engrams helped. Positive feedback boosts future
    ranking, negative feedback dampens it.

    Args:
        engram_id: Engram to rate (single mode)
        signal: positive, negative or neutral (single mode)
        comment: Optional note, kept in the audit ledger
        signals: Batch mode, a list of {"engram_id": ..., "signal": ...}
    """
    return _brain_feedback_impl(engram_id, signal, signals, comment)


@mcp.tool()
def engram_inject(prompt: str, scope: Optional[str] = None, max_tokens: Optional[int] = None,
                  min_relevance: Optional[float] = None) -> str:
    """
    Get the engrams relevant to a task, formatted as DIRECTIVES and ALSO CONSIDER.

    Args:
        prompt: Task description to match against
        scope: Restrict to engrams whose scope starts with this (global ones always apply)
        max_tokens: Token budget for the injected text (default 8000)
        min_relevance: Minimum relevance score (default 0.3)
    """
    return _brain_inject_impl(prompt, scope, max_tokens, min_relevance)


@mcp.tool()
def engram_recall(topic: str, sources: Optional[List[str]] = None, limit: int = 10) -> str:
    """
    Search everything known about a topic: engrams, journal and knowledge notes.

    Args:
        topic: What to recall
        sources: Any of engrams, journal, knowledge (default: all)
        limit: Maximum results per source
    """
    return _brain_recall_impl(topic, sources, limit)


@mcp.tool()
def engram_status() -> str:
    """System counts, engram health by decay state and actionable recommendations."""
    return _brain_status_impl()


# ============================================================
# JOURNAL & KNOWLEDGE
# ============================================================

@mcp.tool()
def engram_capture(type: str, content: str, title: Optional[str] = None,
                   tags: Optional[List[str]] = None) -> str:
    """
    Write a journal entry (appended to today's journal) or a knowledge note.

    Args:
        type: journal or knowledge
        content: Markdown content
        title: Note title (knowledge only)
        tags: Tags appended as #hashtags (knowledge only)
    """
    return _brain_capture_impl(type, content, title, tags)


@mcp.tool()
def engram_search(query: str, scope: str = "all", limit: Optional[int] = None) -> str:
    """
    Search journal and knowledge files, ranked by number of occurrences.

    Args:
        query: Text to search for (case-insensitive)
        scope: journal, knowledge or all
        limit: Maximum results (default from search.max_results)
    """
    return _brain_search_impl(query, scope, limit)


@mcp.tool()
def engram_ingest(content: str, title: Optional[str] = None, tags: Optional[List[str]] = None) -> str:
    """
    Store text as a knowledge note and suggest engrams from directive phrases
    ("always ...", "never ...", "prefer ...", "avoid ...", "ensure ...").
    """
    return _brain_ingest_impl(content, title, tags)


# ============================================================
# SESSIONS
# ============================================================

@mcp.tool()
def engram_session_start(task: Optional[str] = None, tags: Optional[List[str]] = None) -> str:
    """
    Start a working session. Call this first in any new conversation.

    Returns relevant engrams for the task, today's journal, pending candidates
    and a short usage guide.
    """
    return _brain_session_start_impl(task, tags)


@mcp.tool()
def engram_session_end(summary: str, tags: Optional[List[str]] = None,
                       engram_suggestions: Optional[List[Dict[str, Any]]] = None) -> str:
    """
    End a session: journal the summary and create engrams from suggestions.

    Args:
        summary: What was done and learned
        tags: Tags for the journal entry
        engram_suggestions: List of {"statement": ..., "type": ...} to learn as engrams
    """
    return _brain_session_end_impl(summary, tags, engram_suggestions)


# ============================================================
# PACKS
# ============================================================

@mcp.tool()
def engram_packs_discover(query: Optional[str] = None, tags: Optional[List[str]] = None) -> str:
    """List packs from the local registry with their install state."""
    return _brain_packs_discover_impl(query, tags)


@mcp.tool()
def engram_packs_install(source: str, checksum: Optional[str] = None) -> str:
    """
    Install or upgrade a pack from a local directory.

    Args:
        source: Directory containing SKILL.md and engrams.yaml
        checksum: Optional expected SHA-256 of SKILL.md + engrams.yaml
    """
    return _brain_packs_install_impl(source, checksum)


@mcp.tool()
def engram_packs_export(name: str, description: str, engram_ids: Optional[List[str]] = None,
                        filter_tags: Optional[List[str]] = None, filter_domain: Optional[str] = None,
                        confirm: bool = False) -> str:
    """
    Export active public/template engrams as a shareable pack.

    Shows a preview unless confirm is true. Private engrams are never exported.
    """
    return _brain_packs_export_impl(name, description, engram_ids, filter_tags, filter_domain, confirm)


# ============================================================
# MCP RESOURCES
# ============================================================

@mcp.resource("engram://status")
def resource_status() -> str:
    """Engram counts and health summary."""
    return _brain_status_impl()


@mcp.resource("engram://engrams/active")
def resource_active_engrams() -> str:
    """All active personal engrams with their metadata."""
    engrams = [e.to_record() for e in load_engrams(get_engrams_path())
               if e.status == EngramStatus.ACTIVE]
    return json.dumps(engrams, indent=2)


@mcp.resource("engram://journal/today")
def resource_journal_today() -> str:
    """Today's journal entry."""
    today = date.today().isoformat()
    journal_file = get_journal_path() / f"{today}.md"
    if not journal_file.exists():
        return f"No journal entry for {today}."
    return journal_file.read_text(encoding="utf-8")


@mcp.resource("engram://guide")
def resource_guide() -> str:
    """Workflow guide for agents: session lifecycle, engram lifecycle, tool reference."""
    return SESSION_GUIDE_FULL


@mcp.resource("engram://events")
def resource_events() -> str:
    """Recent audit events."""
    return json.dumps(_read_events(limit=20), indent=2)


# ============================================================
# MCP PROMPTS
# ============================================================

@mcp.prompt()
def cold_start() -> str:
    """Instant context for a new session. Call this first in any new conversation."""
    return SESSION_GUIDE_FULL + "\n\nStart by calling engram_session_start with your task."
