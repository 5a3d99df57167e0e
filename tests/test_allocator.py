"""Tests for ranking, token-budget allocation and tier split."""

from conftest import build_engram
from mcp_server_engram.runtime.allocator import allocate, rank, split_tiers
from mcp_server_engram.runtime.config import InjectionSettings
from mcp_server_engram.runtime.scoring import ScoredEngram


def scored(n, score=1.0, **extra):
    return [ScoredEngram(build_engram(f"ENG-2026-0301-{i:03d}", statement=f"Rule {i}", **extra), score)
            for i in range(1, n + 1)]


def test_rank_filters_below_threshold_and_sorts_descending():
    items = [ScoredEngram(build_engram("ENG-A"), 0.2),
             ScoredEngram(build_engram("ENG-B"), 0.9),
             ScoredEngram(build_engram("ENG-C"), 0.5)]
    ranked = rank(items, 0.3)
    assert [s.engram.id for s in ranked] == ["ENG-B", "ENG-C"]


def test_rank_is_stable_for_ties():
    items = [ScoredEngram(build_engram(f"ENG-{c}"), 0.7) for c in "XYZ"]
    assert [s.engram.id for s in rank(items, 0.3)] == ["ENG-X", "ENG-Y", "ENG-Z"]


def test_budget_limits_item_count():
    selected = allocate(scored(8), max_tokens=200)
    assert len(selected) == 5


def test_zero_budget_selects_nothing():
    assert allocate(scored(3), max_tokens=0) == []


def test_pack_cap_skips_and_continues():
    pack_items = scored(7, pack="starter", domain="a")
    personal = [ScoredEngram(build_engram("ENG-P-1", domain="b"), 0.5)]
    selected = allocate(pack_items + personal, max_tokens=8000)
    pack_selected = [e for e in selected if e.pack == "starter"]
    assert len(pack_selected) == 5
    assert selected[-1].id == "ENG-P-1"


def test_personal_engrams_are_exempt_from_pack_cap():
    items = [ScoredEngram(build_engram(f"ENG-P-{i}", domain=f"d{i}"), 1.0) for i in range(8)]
    assert len(allocate(items, max_tokens=8000)) == 8


def test_domain_cap_uses_top_level_segment():
    items = [ScoredEngram(build_engram(f"ENG-D-{i}", domain=f"software.area{i}"), 1.0) for i in range(12)]
    assert len(allocate(items, max_tokens=8000)) == 10


def test_engrams_without_domain_share_a_capped_bucket():
    assert len(allocate(scored(15), max_tokens=8000)) == 10


def test_custom_caps():
    settings = InjectionSettings(max_per_domain=2, tokens_per_engram=10)
    assert len(allocate(scored(5), max_tokens=100, settings=settings)) == 2


def test_split_tiers_two_thirds_rounded_up():
    engrams = [build_engram(f"ENG-T-{i}") for i in range(4)]
    directives, consider = split_tiers(engrams)
    assert len(directives) == 3
    assert len(consider) == 1

    one = split_tiers(engrams[:1])
    assert (len(one[0]), len(one[1])) == (1, 0)
    assert split_tiers([]) == ([], [])
