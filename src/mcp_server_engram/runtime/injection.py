"""
Injection orchestrator.

Loads personal engrams and installed packs fresh, scores every eligible
engram, ranks and allocates under the token budget, then records usage on
the personal engrams that made the cut. Nothing is cached between requests.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import List, Optional, Sequence

from .allocator import allocate, rank, split_tiers
from .config import EngramConfig
from .feedback import record_usage
from .repository import LoadedPack, PersonalRepository, load_all_packs
from .schemas import Engram, EngramStatus, InjectionPolicy
from .scoring import ScoredEngram, prompt_words, score_engram

logger = logging.getLogger("engram.injection")

FULL_DETAIL_BELOW = 10
ATTRIBUTED_BELOW = 30


@dataclass
class InjectionRequest:
    prompt: str
    scope: Optional[str] = None
    max_tokens: Optional[int] = None
    min_relevance: Optional[float] = None


@dataclass
class InjectionResult:
    directives: List[Engram] = field(default_factory=list)
    consider: List[Engram] = field(default_factory=list)
    tokens_used: int = 0
    injected_ids: List[str] = field(default_factory=list)

    @property
    def selected(self) -> List[Engram]:
        return self.directives + self.consider

    @property
    def count(self) -> int:
        return len(self.directives) + len(self.consider)


def _score_all(request: InjectionRequest, personal: Sequence[Engram],
               packs: Sequence[LoadedPack], config: EngramConfig,
               today: date) -> List[ScoredEngram]:
    words = prompt_words(request.prompt)
    scored: List[ScoredEngram] = []

    for engram in personal:
        if engram.status != EngramStatus.ACTIVE:
            continue
        score = score_engram(engram, request.prompt, words, (), request.scope,
                             apply_decay=PersonalRepository.ages_engrams, now=today,
                             decay=config.decay)
        if score > 0:
            scored.append(ScoredEngram(engram, score))

    for pack in packs:
        if pack.manifest.extension.injection_policy == InjectionPolicy.ON_REQUEST:
            continue
        match_terms = pack.manifest.extension.match_terms
        for engram in pack.engrams:
            if engram.status != EngramStatus.ACTIVE:
                continue
            score = score_engram(engram, request.prompt, words, match_terms, request.scope,
                                 apply_decay=pack.repository.ages_engrams, now=today,
                                 decay=config.decay)
            if score > 0:
                scored.append(ScoredEngram(engram, score))

    return scored


def select_engrams(request: InjectionRequest, personal: Sequence[Engram],
                   packs: Sequence[LoadedPack], config: EngramConfig,
                   today: Optional[date] = None) -> InjectionResult:
    """Pure selection: score, rank, allocate and split. No side effects."""
    today = today or date.today()
    settings = config.injection
    max_tokens = request.max_tokens if request.max_tokens is not None else settings.max_tokens
    min_relevance = request.min_relevance if request.min_relevance is not None else settings.min_relevance

    ranked = rank(_score_all(request, personal, packs, config, today), min_relevance)
    selected = allocate(ranked, max_tokens, settings)
    directives, consider = split_tiers(selected)

    personal_objects = {id(e) for e in personal}
    return InjectionResult(
        directives=directives,
        consider=consider,
        tokens_used=len(selected) * settings.tokens_per_engram,
        injected_ids=[e.id for e in selected if id(e) in personal_objects],
    )


def run_injection(request: InjectionRequest, repository: PersonalRepository, packs_dir: Path,
                  config: EngramConfig, today: Optional[date] = None) -> InjectionResult:
    """Full load -> select -> record usage -> persist cycle."""
    today = today or date.today()
    personal = repository.load()
    packs = load_all_packs(packs_dir)

    result = select_engrams(request, personal, packs, config, today)
    if result.injected_ids:
        record_usage(personal, result.injected_ids, today)
        repository.save(personal)
        logger.info(f"Injected {result.count} engrams, usage recorded for {len(result.injected_ids)}")
    return result


def format_engram(engram: Engram, total_count: int) -> str:
    if total_count < FULL_DETAIL_BELOW:
        text = f"- **{engram.statement}**"
        if engram.rationale:
            text += f"\n  _{engram.rationale}_"
        if engram.contraindications:
            text += f"\n  Except: {', '.join(engram.contraindications)}"
        return text
    if total_count < ATTRIBUTED_BELOW:
        source = f" [{engram.pack}]" if engram.pack else ""
        return f"- {engram.statement}{source}"
    return f"- {engram.statement}"


def format_injection(result: InjectionResult) -> str:
    """Markdown for the agent's context; verbosity drops as the result grows."""
    total = result.count
    if total == 0:
        return ""

    lines: List[str] = []
    if result.directives:
        lines.append("## DIRECTIVES\n")
        lines.extend(format_engram(e, total) for e in result.directives)
    if result.consider:
        lines.append("\n## ALSO CONSIDER\n")
        lines.extend(format_engram(e, total) for e in result.consider)
    return "\n".join(lines)
