"""Time-based decay of retrieval strength.

Strength decays exponentially with the days since an engram was last touched
and never drops below a floor, so a sufficiently specific prompt can always
bring an old engram back.
"""

import math
from datetime import date
from enum import Enum
from typing import Optional

DECAY_RATE = 0.05
DECAY_FLOOR = 0.05


class EngramState(str, Enum):
    ACTIVE = "active"
    FADING = "fading"
    DORMANT = "dormant"
    RETIREMENT_CANDIDATE = "retirement_candidate"


def elapsed_days(last_accessed: date, now: Optional[date] = None) -> int:
    """Whole days since last access; a future date counts as zero."""
    current = now or date.today()
    return max(0, (current - last_accessed).days)


def decayed_strength(base: float, last_accessed: date, now: Optional[date] = None,
                     rate: float = DECAY_RATE, floor: float = DECAY_FLOOR) -> float:
    """Compute decayed retrieval strength as of ``now``."""
    days = elapsed_days(last_accessed, now)
    return max(base * math.exp(-rate * days), floor)


def engram_state(strength: float) -> EngramState:
    """Classify a strength for health reporting. Never feeds back into scoring."""
    if strength >= 0.5:
        return EngramState.ACTIVE
    if strength >= 0.3:
        return EngramState.FADING
    if strength >= 0.1:
        return EngramState.DORMANT
    return EngramState.RETIREMENT_CANDIDATE
