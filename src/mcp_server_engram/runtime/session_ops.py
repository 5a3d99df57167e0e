"""
Engram Runtime - Session Operations
===================================
Session start/end coordinators. They compose the leaf operations (inject,
capture, learn); leaf operations never call back into this module.
"""

from typing import Any, Dict, List, Optional

from .common import build_hints, logger, make_response, validate_content
from .engram_ops import _context, _inject, _learn
from .event_ops import _emit_event
from .injection import InjectionRequest
from .journal_ops import _append_journal, _read_today_journal
from .schemas import EngramStatus

SESSION_GUIDE_FULL = """## Engram Quick Start

Engram gives you persistent memory through **engrams**: short learnings that
are injected into context when they are relevant to the task at hand.

### Use Proactively
- **engram_learn**: call when you discover patterns, preferences, or insights
- **engram_feedback**: rate injected engrams after engram_session_start
- **engram_session_end**: call before the conversation ends to capture what was learned

### Session Workflow
1. **engram_session_start** (you just called this): get context
2. Work on your task. Use **engram_recall** to search everything, **engram_search** for files.
3. **engram_feedback**: rate which injected engrams helped (strengthens useful ones)
4. **engram_session_end**: capture a summary and suggest new engrams

### Other Tools
- **engram_capture**: write a journal entry or knowledge note
- **engram_ingest**: import text and extract engram suggestions
- **engram_status**: system health and actionable recommendations
- **engram_forget**: retire an engram you no longer need
- **engram_packs_discover** / **engram_packs_install** / **engram_packs_export**: share engrams as packs

### How Engrams Work
learn -> candidate -> promote -> active -> inject -> feedback -> stronger/weaker
Positive feedback strengthens engrams. Unused ones naturally decay.
"""

SESSION_GUIDE_SHORT = "Session started. Workflow: work -> engram_feedback -> engram_session_end."


def _brain_session_start_impl(task: Optional[str] = None, tags: Optional[List[str]] = None) -> str:
    """Open a session: relevant engrams for the task, today's journal and pending work."""
    try:
        repository, config = _context()

        engrams_block = None
        if task and task.strip():
            scope = f"tags:{','.join(tags)}" if tags else None
            injected = _inject(repository, config, InjectionRequest(task, scope=scope))
            if injected["count"] > 0:
                engrams_block = {
                    "text": injected["text"],
                    "count": injected["count"],
                    "injected_ids": injected["injected_ids"],
                }

        journal_today = _read_today_journal()
        all_engrams = repository.load()
        pending = sum(1 for e in all_engrams if e.status == EngramStatus.CANDIDATE)
        active = sum(1 for e in all_engrams if e.status == EngramStatus.ACTIVE)

        recommendations = []
        if pending:
            recommendations.append(f"{pending} candidate engram(s) awaiting review. "
                                   "Use engram_promote to activate.")
        if not journal_today:
            recommendations.append("No journal entry today. Use engram_capture to start one.")

        if task:
            hints = build_hints(config.hints.enabled,
                                next_step="Work on your task. End with engram_session_end.",
                                related=["engram_session_end", "engram_feedback"])
        else:
            hints = build_hints(config.hints.enabled,
                                next_step="No task specified, showing journal and candidates only. "
                                          "Call engram_inject when ready.",
                                related=["engram_inject", "engram_session_end"])

        _emit_event("session_started", "engram_session_start", {"task": task, "tags": tags or []})
        return make_response(True, data={
            "engrams": engrams_block,
            "journal_today": journal_today,
            "pending_candidates": pending,
            "recommendations": recommendations,
            "guide": SESSION_GUIDE_FULL if active == 0 else SESSION_GUIDE_SHORT,
            "_hints": hints,
        })
    except Exception as e:
        logger.error(f"Error starting session: {e}")
        return make_response(False, error=f"Error starting session: {e}")


def _brain_session_end_impl(summary: str, tags: Optional[List[str]] = None,
                            engram_suggestions: Optional[List[Dict[str, Any]]] = None) -> str:
    """Close a session: journal the summary and learn every suggested engram."""
    if not summary or not summary.strip():
        return make_response(False, error="Summary must not be empty", error_code="INVALID_ARGUMENT")
    error = validate_content(summary)
    if error:
        return make_response(False, error=error, error_code="INVALID_ARGUMENT")
    try:
        repository, config = _context()
        content = summary
        if tags:
            content += "\n\n" + " ".join(f"#{t}" for t in tags)
        journal_path = _append_journal(content)

        created, errors = [], []
        for suggestion in engram_suggestions or []:
            statement = (suggestion.get("statement") or "").strip()
            if not statement:
                errors.append({"suggestion": suggestion, "error": "Statement must not be empty"})
                continue
            try:
                engram = _learn(repository, config, statement, engram_type=suggestion.get("type"))
                created.append(engram.id)
            except ValueError as e:
                errors.append({"suggestion": suggestion, "error": str(e)})

        status_label = "active" if config.engrams.auto_promote else "candidates"
        _emit_event("session_ended", "engram_session_end",
                    {"journal_path": str(journal_path), "engrams_created": created})
        data = {
            "journal_path": str(journal_path),
            "engrams_created": len(created),
            "engram_ids": created,
            "_hints": build_hints(
                config.hints.enabled,
                next_step=f"Session captured. {len(created)} engram(s) created as {status_label}."
                if created else "Session captured.",
                related=["engram_session_start", "engram_status"],
            ),
        }
        if errors:
            data["errors"] = errors
        return make_response(True, data=data)
    except Exception as e:
        logger.error(f"Error ending session: {e}")
        return make_response(False, error=f"Error ending session: {e}")
