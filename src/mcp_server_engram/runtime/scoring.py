"""Relevance scoring of a single engram against a task prompt.

Score = term hits x effective retrieval strength, then adjusted by net
feedback and the consolidation boost. Zero term hits always means zero,
whatever the strength or feedback.
"""

import re
from dataclasses import dataclass
from datetime import date
from typing import Iterable, Optional, Set

from .config import DecaySettings
from .decay import decayed_strength
from .schemas import Engram

GLOBAL_SCOPE = "global"
MIN_WORD_LENGTH = 3

POSITIVE_STEP = 0.05
POSITIVE_CAP = 0.3
NEGATIVE_STEP = 0.1
NEGATIVE_FLOOR = 0.5
CONSOLIDATION_BOOST = 1.1

_WORD_SPLIT = re.compile(r"\W+")
_DOMAIN_SPLIT = re.compile(r"[./]")


@dataclass
class ScoredEngram:
    engram: Engram
    score: float


def prompt_words(prompt: str) -> Set[str]:
    """Lower-cased prompt words longer than two characters."""
    return {w for w in _WORD_SPLIT.split(prompt.lower()) if len(w) >= MIN_WORD_LENGTH}


def in_scope(engram: Engram, scope_filter: Optional[str]) -> bool:
    if not scope_filter:
        return True
    if engram.scope == GLOBAL_SCOPE:
        return True
    return engram.scope.startswith(scope_filter)


def term_hits(engram: Engram, prompt_lower: str, words: Set[str],
              pack_match_terms: Iterable[str] = ()) -> float:
    hits = 0.0
    for term in pack_match_terms:
        if term and term.lower() in prompt_lower:
            hits += 1
    for tag in engram.tags:
        if tag.lower() in words:
            hits += 1
    if engram.domain:
        for part in _DOMAIN_SPLIT.split(engram.domain):
            if part and part.lower() in words:
                hits += 1
    statement = engram.statement.lower()
    for word in words:
        if word in statement:
            hits += 0.5
    return hits


def feedback_multiplier(engram: Engram) -> float:
    if engram.feedback_signals is None:
        return 1.0
    net = engram.feedback_signals.net
    if net > 0:
        return 1 + min(net * POSITIVE_STEP, POSITIVE_CAP)
    if net < 0:
        return max(1 + net * NEGATIVE_STEP, NEGATIVE_FLOOR)
    return 1.0


def effective_strength(engram: Engram, apply_decay: bool, now: Optional[date] = None,
                       decay: Optional[DecaySettings] = None) -> float:
    """Stored strength for curated pack engrams, decayed strength for personal ones."""
    stored = engram.activation.retrieval_strength
    if not apply_decay:
        return stored
    decay = decay or DecaySettings()
    return decayed_strength(stored, engram.activation.last_accessed, now,
                            rate=decay.rate, floor=decay.floor)


def score_engram(engram: Engram, prompt: str, words: Optional[Set[str]] = None,
                 pack_match_terms: Iterable[str] = (), scope_filter: Optional[str] = None,
                 *, apply_decay: bool = True, now: Optional[date] = None,
                 decay: Optional[DecaySettings] = None) -> float:
    """Relevance of one engram to a prompt; 0.0 when out of scope or unmatched."""
    if not in_scope(engram, scope_filter):
        return 0.0

    prompt_lower = prompt.lower()
    if words is None:
        words = prompt_words(prompt)

    hits = term_hits(engram, prompt_lower, words, pack_match_terms)
    if hits == 0:
        return 0.0

    score = hits * effective_strength(engram, apply_decay, now, decay)
    score *= feedback_multiplier(engram)
    if engram.consolidated:
        score *= CONSOLIDATION_BOOST
    return score
