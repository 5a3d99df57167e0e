"""
Engram lifecycle: creation, promotion and retirement.

    learn ──> candidate ──promote──> active ──forget──> retired
      └───── (auto_promote) ───────────┘

Retired is terminal. Transitions operate on an already-loaded list of
engrams and report failures in a TransitionResult instead of raising, so
batch callers can collect per-id errors and keep going.
"""

from dataclasses import dataclass
from datetime import date
from typing import List, Optional, Sequence

from .schemas import (
    RECORD_VERSION,
    Activation,
    Engram,
    EngramStatus,
    EngramType,
    Visibility,
)

ID_PREFIX = "ENG"

CANDIDATE_RETRIEVAL = 0.5
CANDIDATE_STORAGE = 0.3
ACTIVE_RETRIEVAL = 0.7
ACTIVE_STORAGE = 1.0

NOT_FOUND = "Engram not found"
ALREADY_ACTIVE = "Already active"
PROMOTE_RETIRED = "Cannot promote retired engram"
ALREADY_RETIRED = "Engram is already retired"


@dataclass
class TransitionResult:
    engram_id: str
    success: bool
    engram: Optional[Engram] = None
    error: Optional[str] = None

    @classmethod
    def ok(cls, engram: Engram) -> "TransitionResult":
        return cls(engram_id=engram.id, success=True, engram=engram)

    @classmethod
    def fail(cls, engram_id: str, error: str, engram: Optional[Engram] = None) -> "TransitionResult":
        return cls(engram_id=engram_id, success=False, engram=engram, error=error)

    @property
    def not_found(self) -> bool:
        return not self.success and self.error == NOT_FOUND


def generate_engram_id(existing: Sequence[Engram], today: date) -> str:
    """ENG-YYYY-MMDD-NNN, one past the highest sequence already used today."""
    prefix = f"{ID_PREFIX}-{today:%Y}-{today:%m%d}-"
    max_seq = 0
    for engram in existing:
        if not engram.id.startswith(prefix):
            continue
        suffix = engram.id[len(prefix):]
        if suffix.isdigit():
            max_seq = max(max_seq, int(suffix))
    next_seq = max_seq + 1
    return f"{prefix}{next_seq:03d}"


def initial_activation(status: EngramStatus, today: date) -> Activation:
    if status == EngramStatus.ACTIVE:
        return Activation(retrieval_strength=ACTIVE_RETRIEVAL, storage_strength=ACTIVE_STORAGE,
                          frequency=0, last_accessed=today)
    return Activation(retrieval_strength=CANDIDATE_RETRIEVAL, storage_strength=CANDIDATE_STORAGE,
                      frequency=0, last_accessed=today)


def new_engram(existing: Sequence[Engram], statement: str, today: date, *,
               auto_promote: bool = False,
               engram_type: EngramType = EngramType.BEHAVIORAL,
               scope: str = "global",
               visibility: Visibility = Visibility.PRIVATE,
               tags: Optional[List[str]] = None,
               domain: Optional[str] = None,
               rationale: Optional[str] = None,
               contraindications: Optional[List[str]] = None) -> Engram:
    """Create a personal engram; candidate unless auto-promotion is configured."""
    status = EngramStatus.ACTIVE if auto_promote else EngramStatus.CANDIDATE
    return Engram(
        id=generate_engram_id(existing, today),
        version=RECORD_VERSION,
        status=status,
        consolidated=False,
        type=engram_type,
        scope=scope,
        visibility=visibility,
        statement=statement,
        rationale=rationale,
        contraindications=contraindications or None,
        derivation_count=1,
        domain=domain,
        tags=list(tags or []),
        activation=initial_activation(status, today),
        pack=None,
    )


def find_engram(engrams: Sequence[Engram], engram_id: str) -> Optional[Engram]:
    for engram in engrams:
        if engram.id == engram_id:
            return engram
    return None


def promote(engrams: Sequence[Engram], engram_id: str, today: date) -> TransitionResult:
    engram = find_engram(engrams, engram_id)
    if engram is None:
        return TransitionResult.fail(engram_id, NOT_FOUND)
    if engram.status == EngramStatus.ACTIVE:
        return TransitionResult.fail(engram_id, ALREADY_ACTIVE, engram)
    if engram.status == EngramStatus.RETIRED:
        return TransitionResult.fail(engram_id, PROMOTE_RETIRED, engram)

    engram.status = EngramStatus.ACTIVE
    engram.activation.retrieval_strength = ACTIVE_RETRIEVAL
    engram.activation.storage_strength = ACTIVE_STORAGE
    engram.activation.last_accessed = today
    return TransitionResult.ok(engram)


def retire(engrams: Sequence[Engram], engram_id: str) -> TransitionResult:
    engram = find_engram(engrams, engram_id)
    if engram is None:
        return TransitionResult.fail(engram_id, NOT_FOUND)
    if engram.status == EngramStatus.RETIRED:
        return TransitionResult.fail(engram_id, ALREADY_RETIRED, engram)

    engram.status = EngramStatus.RETIRED
    return TransitionResult.ok(engram)


def search_retirable(engrams: Sequence[Engram], query: str) -> List[Engram]:
    """Non-retired engrams whose statement, id or tags contain ``query`` (case-insensitive)."""
    needle = query.lower()
    return [
        e for e in engrams
        if e.status != EngramStatus.RETIRED and (
            needle in e.statement.lower()
            or needle in e.id.lower()
            or any(needle in t.lower() for t in e.tags)
        )
    ]
