"""Engram Operations: the agent-facing learn, promote, forget, feedback, inject, recall and status tools.

Each ``_brain_*_impl`` loads state fresh, delegates the decision to the core
modules (lifecycle, feedback, injection) and returns a make_response()
envelope. Core failures (not found, lifecycle conflicts) come back as
``success: false``; nothing here raises to the transport.
"""

from datetime import date
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from .common import (
    build_hints,
    get_brain_path,
    get_engrams_path,
    get_journal_path,
    get_knowledge_path,
    get_packs_path,
    logger,
    make_response,
)
from .config import EngramConfig, load_config
from .decay import EngramState, decayed_strength, engram_state
from .event_ops import _emit_event
from .feedback import FeedbackOutcome, FeedbackSignal, FeedbackSummary, apply_signal
from .injection import InjectionRequest, format_injection, run_injection
from .journal_ops import _search_files
from .lifecycle import (
    NOT_FOUND,
    find_engram,
    new_engram,
    promote,
    retire,
    search_retirable,
)
from .repository import EngramRepository, PersonalRepository, load_all_packs
from .schemas import Engram, EngramStatus, EngramType, Visibility

MAX_FORGET_MATCHES = 100


def _context() -> Tuple[PersonalRepository, EngramConfig]:
    brain = get_brain_path()
    return PersonalRepository(get_engrams_path(brain)), load_config(brain)


def _today() -> date:
    return date.today()


def _parse_enum(enum_cls, value: Optional[str], default):
    if value is None:
        return default
    try:
        return enum_cls(value)
    except ValueError:
        allowed = [m.value for m in enum_cls]
        raise ValueError(f"{enum_cls.__name__} must be one of: {allowed}")


# ── learn ───────────────────────────────────────────────────────────

def _learn(repository: PersonalRepository, config: EngramConfig, statement: str,
           engram_type: Optional[str] = None, scope: Optional[str] = None,
           tags: Optional[List[str]] = None, domain: Optional[str] = None,
           rationale: Optional[str] = None, contraindications: Optional[List[str]] = None,
           visibility: Optional[str] = None) -> Engram:
    engrams = repository.load()
    engram = new_engram(
        engrams, statement, _today(),
        auto_promote=config.engrams.auto_promote,
        engram_type=_parse_enum(EngramType, engram_type, EngramType.BEHAVIORAL),
        scope=scope or "global",
        visibility=_parse_enum(Visibility, visibility, Visibility.PRIVATE),
        tags=tags,
        domain=domain,
        rationale=rationale,
        contraindications=contraindications,
    )
    engrams.append(engram)
    repository.save(engrams)
    _emit_event("engram_learned", "engram_learn", {"id": engram.id, "status": engram.status.value})
    return engram


def _brain_learn_impl(statement: str, engram_type: Optional[str] = None, scope: Optional[str] = None,
                      tags: Optional[List[str]] = None, domain: Optional[str] = None,
                      rationale: Optional[str] = None, contraindications: Optional[List[str]] = None,
                      visibility: Optional[str] = None) -> str:
    """Record a reusable learning as a new engram."""
    if not statement or not statement.strip():
        return make_response(False, error="Statement must not be empty", error_code="INVALID_ARGUMENT")
    try:
        repository, config = _context()
        engram = _learn(repository, config, statement.strip(), engram_type, scope, tags,
                        domain, rationale, contraindications, visibility)
        label = "active" if engram.status.value == "active" else "a candidate"
        return make_response(True, data={
            "engram": engram.to_record(),
            "_hints": build_hints(
                config.hints.enabled,
                next_step=f"Engram {engram.id} created as {label}."
                + ("" if engram.status.value == "active" else " Use engram_promote to activate it."),
                related=["engram_promote", "engram_inject"],
            ),
        })
    except ValueError as e:
        return make_response(False, error=str(e), error_code="INVALID_ARGUMENT")
    except Exception as e:
        logger.error(f"Error learning engram: {e}")
        return make_response(False, error=f"Error learning engram: {e}")


# ── promote ─────────────────────────────────────────────────────────

def _brain_promote_impl(engram_id: Optional[str] = None, engram_ids: Optional[List[str]] = None) -> str:
    """Activate one or more candidate engrams. Per-id errors do not stop the batch."""
    target_ids = engram_ids or ([engram_id] if engram_id else [])
    if not target_ids:
        return make_response(False, error="At least one engram ID required (engram_id or engram_ids)",
                             error_code="INVALID_ARGUMENT")
    try:
        repository, config = _context()
        engrams = repository.load()
        today = _today()

        promoted, errors = [], []
        for target in target_ids:
            result = promote(engrams, target, today)
            if result.success:
                promoted.append({"id": result.engram.id, "statement": result.engram.statement})
            else:
                errors.append({"id": target, "error": result.error})

        if promoted:
            repository.save(engrams)
            _emit_event("engrams_promoted", "engram_promote", {"ids": [p["id"] for p in promoted]})

        data = {
            "promoted": promoted,
            "errors": errors,
            "_hints": build_hints(
                config.hints.enabled,
                next_step=f"Promoted {len(promoted)} engram(s). They will now appear in inject results."
                if promoted else "No engrams were promoted. Check the errors above.",
                related=["engram_inject", "engram_status"],
            ),
        }
        if errors:
            code = "NOT_FOUND" if all(e["error"] == NOT_FOUND for e in errors) else "LIFECYCLE_CONFLICT"
            return make_response(False, data=data, error=f"{len(errors)} engram(s) could not be promoted",
                                 error_code=code)
        return make_response(True, data=data)
    except Exception as e:
        logger.error(f"Error promoting engrams: {e}")
        return make_response(False, error=f"Error promoting engrams: {e}")


# ── forget ──────────────────────────────────────────────────────────

def _brain_forget_impl(engram_id: Optional[str] = None, search: Optional[str] = None) -> str:
    """Retire an engram by id, or by a search that matches exactly one engram."""
    if not engram_id and not search:
        return make_response(False, error="Provide either engram_id or search", error_code="INVALID_ARGUMENT")
    try:
        repository, _ = _context()
        engrams = repository.load()

        if engram_id:
            result = retire(engrams, engram_id)
            if not result.success:
                code = "NOT_FOUND" if result.not_found else "LIFECYCLE_CONFLICT"
                return make_response(False, error=f"Engram {engram_id}: {result.error}", error_code=code)
        else:
            matches = search_retirable(engrams, search)
            if not matches:
                return make_response(False, error=f'No engrams matching "{search}"',
                                     error_code="NOT_FOUND")
            if len(matches) > 1:
                shown = matches[:MAX_FORGET_MATCHES]
                truncated = " (showing first 100)" if len(matches) > MAX_FORGET_MATCHES else ""
                return make_response(False, data={
                    "matches": [{"id": e.id, "statement": e.statement} for e in shown],
                    "total_matches": len(matches),
                }, error=f"{len(matches)} matches found{truncated}. Specify an exact ID to retire.",
                    error_code="AMBIGUOUS")
            result = retire(engrams, matches[0].id)

        repository.save(engrams)
        _emit_event("engram_retired", "engram_forget", {"id": result.engram.id})
        return make_response(True, data={"retired": {"id": result.engram.id,
                                                     "statement": result.engram.statement}})
    except Exception as e:
        logger.error(f"Error forgetting engram: {e}")
        return make_response(False, error=f"Error forgetting engram: {e}")


# ── feedback ────────────────────────────────────────────────────────

class _FeedbackTargets:
    """Personal store plus every installed pack, loaded once per request."""

    def __init__(self, repository: PersonalRepository):
        self.personal_repository = repository
        self.personal = repository.load()
        self.packs = load_all_packs(get_packs_path())
        self.dirty: Dict[int, Tuple[EngramRepository, List[Engram]]] = {}

    def locate(self, engram_id: str) -> Optional[Tuple[Engram, str]]:
        engram = find_engram(self.personal, engram_id)
        if engram is not None:
            self.dirty[id(self.personal_repository)] = (self.personal_repository, self.personal)
            return engram, self.personal_repository.label
        for pack in self.packs:
            engram = find_engram(pack.engrams, engram_id)
            if engram is not None:
                self.dirty[id(pack.repository)] = (pack.repository, pack.engrams)
                return engram, pack.repository.label
        return None

    def flush(self) -> None:
        for repository, engrams in self.dirty.values():
            repository.save(engrams)


def _record_feedback(targets: _FeedbackTargets, engram_id: str, signal: FeedbackSignal,
                     today: date) -> FeedbackOutcome:
    found = targets.locate(engram_id)
    if found is None:
        return FeedbackOutcome(engram_id, signal.value, False, error=f"Engram {engram_id} not found")
    engram, source = found
    counters = apply_signal(engram, signal, today)
    return FeedbackOutcome(engram_id, signal.value, True, source=source, counters=counters)


def _brain_feedback_impl(engram_id: Optional[str] = None, signal: Optional[str] = None,
                         signals: Optional[List[Dict[str, str]]] = None,
                         comment: Optional[str] = None) -> str:
    """Rate personal or pack engrams. A batch in ``signals`` takes precedence over a single signal."""
    try:
        repository, config = _context()
        today = _today()

        if signals:
            parsed = []
            for item in signals:
                parsed.append((item.get("engram_id", ""),
                               _parse_enum(FeedbackSignal, item.get("signal"), None)))
            if any(s is None for _, s in parsed):
                return make_response(False, error="Every batch item needs engram_id and signal",
                                     error_code="INVALID_ARGUMENT")

            targets = _FeedbackTargets(repository)
            summary = FeedbackSummary()
            for target_id, sig in parsed:
                outcome = _record_feedback(targets, target_id, sig, today)
                if outcome.success:
                    summary.count(sig)
                summary.outcomes.append(outcome)
            targets.flush()
            _emit_event("feedback_recorded", "engram_feedback", {
                "mode": "batch", "positive": summary.positive,
                "negative": summary.negative, "neutral": summary.neutral,
            })
            return make_response(True, data={
                "mode": "batch",
                "results": [o.to_dict() for o in summary.outcomes],
                "summary": {"positive": summary.positive, "negative": summary.negative,
                            "neutral": summary.neutral},
                "_hints": build_hints(
                    config.hints.enabled,
                    next_step=f"Batch feedback recorded: {summary.positive} positive, "
                              f"{summary.negative} negative, {summary.neutral} neutral.",
                    related=["engram_session_end", "engram_status"],
                ),
            })

        if not engram_id or not signal:
            return make_response(False, error="Provide engram_id and signal, or signals",
                                 error_code="INVALID_ARGUMENT")
        sig = _parse_enum(FeedbackSignal, signal, None)
        targets = _FeedbackTargets(repository)
        outcome = _record_feedback(targets, engram_id, sig, today)
        if not outcome.success:
            return make_response(False, data={"mode": "single", **outcome.to_dict()},
                                 error=outcome.error, error_code="NOT_FOUND")
        targets.flush()
        _emit_event("feedback_recorded", "engram_feedback", {
            "mode": "single", "id": engram_id, "signal": sig.value, "comment": comment,
        })
        return make_response(True, data={"mode": "single", **outcome.to_dict()})
    except ValueError as e:
        return make_response(False, error=str(e), error_code="INVALID_ARGUMENT")
    except Exception as e:
        logger.error(f"Error recording feedback: {e}")
        return make_response(False, error=f"Error recording feedback: {e}")


# ── inject ──────────────────────────────────────────────────────────

def _brain_inject_impl(prompt: str, scope: Optional[str] = None, max_tokens: Optional[int] = None,
                       min_relevance: Optional[float] = None) -> str:
    """Select the engrams relevant to a task and format them for the agent's context."""
    if not prompt or not prompt.strip():
        return make_response(False, error="Prompt must not be empty", error_code="INVALID_ARGUMENT")
    if max_tokens is not None and max_tokens < 0:
        return make_response(False, error="max_tokens must be >= 0", error_code="INVALID_ARGUMENT")
    try:
        repository, config = _context()
        data = _inject(repository, config, InjectionRequest(prompt, scope, max_tokens, min_relevance))
        return make_response(True, data=data)
    except Exception as e:
        logger.error(f"Error injecting engrams: {e}")
        return make_response(False, error=f"Error injecting engrams: {e}")


def _inject(repository: PersonalRepository, config: EngramConfig,
            request: InjectionRequest) -> Dict[str, Any]:
    result = run_injection(request, repository, get_packs_path(), config, _today())
    if result.count == 0:
        return {"text": "", "count": 0, "tokens_used": 0, "injected_ids": []}

    ids_list = f" Injected IDs: {', '.join(result.injected_ids)}" if result.injected_ids else ""
    return {
        "text": format_injection(result),
        "count": result.count,
        "tokens_used": result.tokens_used,
        "injected_ids": result.injected_ids,
        "_hints": build_hints(
            config.hints.enabled,
            next_step=f"After the task, call engram_feedback on helpful/unhelpful engrams.{ids_list}",
            related=["engram_feedback", "engram_session_end"],
        ),
    }


# ── recall ──────────────────────────────────────────────────────────

RECALL_SOURCES = ("engrams", "journal", "knowledge")


def _recall_engrams(engrams: List[Engram], topic: str, limit: int) -> List[Dict[str, Any]]:
    words = [w for w in topic.lower().split() if len(w) > 2]
    scored = []
    for engram in engrams:
        if engram.status == EngramStatus.RETIRED:
            continue
        text = f"{engram.statement} {' '.join(engram.tags)}".lower()
        score = sum(1 for w in words if w in text)
        if score > 0:
            scored.append({"id": engram.id, "statement": engram.statement, "score": score})
    scored.sort(key=lambda r: r["score"], reverse=True)
    return scored[:limit]


def _brain_recall_impl(topic: str, sources: Optional[List[str]] = None, limit: int = 10) -> str:
    """Everything known about a topic: engrams plus journal and knowledge matches."""
    if not topic or not topic.strip():
        return make_response(False, error="Topic must not be empty", error_code="INVALID_ARGUMENT")
    sources = sources or list(RECALL_SOURCES)
    unknown = [s for s in sources if s not in RECALL_SOURCES]
    if unknown:
        return make_response(False, error=f"Unknown sources: {unknown}", error_code="INVALID_ARGUMENT")
    try:
        repository, config = _context()
        data: Dict[str, Any] = {}
        if "engrams" in sources:
            matches = _recall_engrams(repository.load(), topic, limit)
            if matches:
                data["engrams"] = matches
        for scope in ("journal", "knowledge"):
            if scope in sources:
                matches = _search_files(topic, scope, limit)
                if matches:
                    data[scope] = matches
        data["_hints"] = build_hints(
            config.hints.enabled,
            next_step="Use engram_feedback on helpful engrams, or engram_learn to create new ones.",
            related=["engram_feedback", "engram_learn"],
        )
        return make_response(True, data=data)
    except Exception as e:
        logger.error(f"Error recalling topic: {e}")
        return make_response(False, error=f"Error recalling topic: {e}")


# ── status ──────────────────────────────────────────────────────────

SCALING_THRESHOLD = 500
RETIREMENT_NET_FEEDBACK = -3


def _get_version() -> str:
    from mcp_server_engram import __version__
    return __version__


def _count_files(directory: Path, suffix: str = ".md") -> int:
    if not directory.exists():
        return 0
    return sum(1 for _ in directory.rglob(f"*{suffix}"))


def _count_dirs(directory: Path) -> int:
    if not directory.exists():
        return 0
    return sum(1 for d in directory.iterdir() if d.is_dir())


def _health_summary(engrams: List[Engram], config: EngramConfig, today: date) -> Dict[str, int]:
    """Decay classification of active personal engrams. Advisory only, nothing is changed."""
    summary = {state.value: 0 for state in EngramState}
    for engram in engrams:
        if engram.status != EngramStatus.ACTIVE:
            continue
        strength = decayed_strength(engram.activation.retrieval_strength,
                                    engram.activation.last_accessed, today,
                                    rate=config.decay.rate, floor=config.decay.floor)
        summary[engram_state(strength).value] += 1
    return summary


def _recommendations(engrams: List[Engram], health: Dict[str, int]) -> List[str]:
    recommendations = []
    candidates = sum(1 for e in engrams if e.status == EngramStatus.CANDIDATE)
    if candidates:
        recommendations.append(f"{candidates} candidate engram(s) awaiting review. "
                               "Promote the useful ones with engram_promote.")
    disliked = [e.id for e in engrams
                if e.status == EngramStatus.ACTIVE and e.feedback_signals is not None
                and e.feedback_signals.net <= RETIREMENT_NET_FEEDBACK]
    if disliked:
        recommendations.append(f"Consider retiring engrams with persistent negative feedback: "
                               f"{', '.join(disliked)}")
    fading = health[EngramState.DORMANT.value] + health[EngramState.RETIREMENT_CANDIDATE.value]
    if fading:
        recommendations.append(f"{fading} active engram(s) have faded from disuse. "
                               "Review them with engram_recall or retire with engram_forget.")
    return recommendations


def _brain_status_impl() -> str:
    try:
        brain = get_brain_path()
        repository, config = _context()
        engrams = repository.load()

        by_status = {status.value: 0 for status in EngramStatus}
        for engram in engrams:
            by_status[engram.status.value] += 1
        health = _health_summary(engrams, config, _today())

        data: Dict[str, Any] = {
            "version": _get_version(),
            "brain_path": str(brain),
            "engrams": len(engrams),
            "engrams_by_status": by_status,
            "packs": _count_dirs(get_packs_path(brain)),
            "journal_entries": _count_files(get_journal_path(brain)),
            "knowledge_notes": _count_files(get_knowledge_path(brain)),
            "health": health,
            "recommendations": _recommendations(engrams, health),
        }
        if len(engrams) >= SCALING_THRESHOLD:
            data["scaling_hint"] = (f"You have {len(engrams)} engrams. Consider retiring stale ones "
                                    "or moving to an indexed store for faster search.")
        return make_response(True, data=data)
    except Exception as e:
        logger.error(f"Error reading status: {e}")
        return make_response(False, error=f"Error reading status: {e}")
