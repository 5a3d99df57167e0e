"""Token-budget allocation with per-pack and per-domain diversity caps."""

import logging
import math
from collections import Counter
from typing import List, Optional, Sequence, Tuple

from .config import InjectionSettings
from .schemas import Engram
from .scoring import ScoredEngram

logger = logging.getLogger("engram.allocator")

PERSONAL_KEY = "__personal__"
NO_DOMAIN_KEY = "__none__"


def rank(scored: Sequence[ScoredEngram], min_relevance: float) -> List[ScoredEngram]:
    """Drop candidates under the threshold and sort by score, keeping encounter order on ties."""
    passing = [s for s in scored if s.score >= min_relevance]
    # sorted() is stable
    return sorted(passing, key=lambda s: s.score, reverse=True)


def allocate(ranked: Sequence[ScoredEngram], max_tokens: int,
             settings: Optional[InjectionSettings] = None) -> List[Engram]:
    """
    Greedy budget fill over ranked candidates.

    Every item costs the same, so the first item that does not fit ends the
    walk. A candidate over its pack or domain cap is skipped and the walk
    continues. Personal engrams are exempt from the pack cap; engrams without
    a domain share one capped bucket.
    """
    settings = settings or InjectionSettings()
    cost = settings.tokens_per_engram

    selected: List[Engram] = []
    pack_counts: Counter = Counter()
    domain_counts: Counter = Counter()
    tokens_used = 0

    for candidate in ranked:
        if tokens_used + cost > max_tokens:
            break

        engram = candidate.engram
        pack_key = engram.pack or PERSONAL_KEY
        if pack_key != PERSONAL_KEY and pack_counts[pack_key] >= settings.max_per_pack:
            logger.debug(f"Pack cap reached for {pack_key}, skipping {engram.id}")
            continue

        domain_key = engram.top_domain or NO_DOMAIN_KEY
        if domain_counts[domain_key] >= settings.max_per_domain:
            logger.debug(f"Domain cap reached for {domain_key}, skipping {engram.id}")
            continue

        selected.append(engram)
        tokens_used += cost
        pack_counts[pack_key] += 1
        domain_counts[domain_key] += 1

    return selected


def split_tiers(selected: Sequence[Engram]) -> Tuple[List[Engram], List[Engram]]:
    """First two thirds (rounded up) are directives, the rest are 'consider'."""
    split_point = math.ceil(len(selected) * 2 / 3)
    return list(selected[:split_point]), list(selected[split_point:])
