"""Usage counters: explicit feedback signals and implicit injection events."""

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Dict, Iterable, List, Optional

from .schemas import Engram, FeedbackSignals


class FeedbackSignal(str, Enum):
    POSITIVE = "positive"
    NEGATIVE = "negative"
    NEUTRAL = "neutral"


@dataclass
class FeedbackOutcome:
    engram_id: str
    signal: str
    success: bool
    source: Optional[str] = None
    counters: Optional[Dict[str, int]] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict:
        data = {"engram_id": self.engram_id, "signal": self.signal, "success": self.success}
        if self.source:
            data["source"] = self.source
        if self.counters is not None:
            data["feedback_signals"] = self.counters
        if self.error:
            data["error"] = self.error
        return data


@dataclass
class FeedbackSummary:
    positive: int = 0
    negative: int = 0
    neutral: int = 0
    outcomes: List[FeedbackOutcome] = field(default_factory=list)

    def count(self, signal: FeedbackSignal) -> None:
        setattr(self, signal.value, getattr(self, signal.value) + 1)


def apply_signal(engram: Engram, signal: FeedbackSignal, today: date) -> Dict[str, int]:
    """Bump one counter and touch last_accessed. Counters are never reset."""
    if engram.feedback_signals is None:
        engram.feedback_signals = FeedbackSignals()
    counters = engram.feedback_signals
    setattr(counters, signal.value, getattr(counters, signal.value) + 1)
    engram.activation.last_accessed = today
    return counters.model_dump()


def record_usage(engrams: Iterable[Engram], selected_ids: Iterable[str], today: date) -> List[str]:
    """
    Injection side effect: frequency +1 and last_accessed = today for every
    engram whose id was selected. Returns the ids actually updated.
    """
    wanted = set(selected_ids)
    touched: List[str] = []
    for engram in engrams:
        if engram.id in wanted:
            engram.activation.frequency += 1
            engram.activation.last_accessed = today
            touched.append(engram.id)
    return touched
