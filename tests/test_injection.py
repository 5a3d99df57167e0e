"""Tests for engram selection, formatting and the full inject cycle."""

from datetime import date, timedelta

import pytest

from conftest import TODAY, build_engram, write_pack
from mcp_server_engram.runtime.config import EngramConfig
from mcp_server_engram.runtime.injection import (
    InjectionRequest,
    format_injection,
    run_injection,
    select_engrams,
)
from mcp_server_engram.runtime.repository import PersonalRepository, load_all_packs, save_engrams


@pytest.fixture
def config():
    return EngramConfig()


def test_only_active_personal_engrams_are_selected(config):
    personal = [build_engram("ENG-A", "Always X", tags=["testing"]),
                build_engram("ENG-C", "Always Y", tags=["testing"], status="candidate"),
                build_engram("ENG-R", "Always Z", tags=["testing"], status="retired")]
    result = select_engrams(InjectionRequest("testing"), personal, [], config, TODAY)
    assert [e.id for e in result.selected] == ["ENG-A"]
    assert result.injected_ids == ["ENG-A"]
    assert result.tokens_used == 40


def test_min_relevance_filters_weak_matches(config):
    stale = build_engram("ENG-S", "Always X", tags=["testing"], last_accessed=TODAY - timedelta(days=90))
    result = select_engrams(InjectionRequest("testing"), [stale], [], config, TODAY)
    assert result.count == 0
    relaxed = select_engrams(InjectionRequest("testing", min_relevance=0.01), [stale], [], config, TODAY)
    assert relaxed.count == 1


def test_pack_engrams_selected_but_not_reported_as_injected(tmp_path, config):
    write_pack(tmp_path / "starter", "starter",
               [build_engram("ENG-P", "Pin your dependencies", last_accessed=TODAY - timedelta(days=365))],
               match_terms=["python"])
    packs = load_all_packs(tmp_path)
    result = select_engrams(InjectionRequest("python project setup"), [], packs, config, TODAY)
    assert [e.id for e in result.selected] == ["ENG-P"]
    assert result.injected_ids == []


def test_on_request_packs_are_never_auto_injected(tmp_path, config):
    write_pack(tmp_path / "manual", "manual", [build_engram("ENG-M", "Always X", tags=["testing"])],
               injection_policy="on_request")
    packs = load_all_packs(tmp_path)
    assert select_engrams(InjectionRequest("testing"), [], packs, config, TODAY).count == 0


def test_same_id_in_personal_and_pack_only_personal_counts(tmp_path, config):
    write_pack(tmp_path / "starter", "starter", [build_engram("ENG-SAME", "Always X", tags=["testing"])])
    packs = load_all_packs(tmp_path)
    result = select_engrams(InjectionRequest("testing"), [], packs, config, TODAY)
    assert result.count == 1
    assert result.injected_ids == []


def test_zero_budget_returns_empty(config):
    personal = [build_engram("ENG-A", "Always X", tags=["testing"])]
    result = select_engrams(InjectionRequest("testing", max_tokens=0), personal, [], config, TODAY)
    assert result.count == 0
    assert format_injection(result) == ""


class TestFormatting:
    def test_small_result_has_full_detail(self, config):
        personal = [build_engram("ENG-A", "Always X", tags=["testing"], rationale="Because Y",
                                 contraindications=["prototypes"])]
        text = format_injection(select_engrams(InjectionRequest("testing"), personal, [], config, TODAY))
        assert text.startswith("## DIRECTIVES")
        assert "**Always X**" in text
        assert "_Because Y_" in text
        assert "Except: prototypes" in text
        assert "ALSO CONSIDER" not in text

    def test_medium_result_shows_pack_attribution(self, tmp_path, config):
        engrams = [build_engram(f"ENG-P-{i}", f"Rule {i}", tags=["testing"], domain=f"d{i}")
                   for i in range(5)]
        write_pack(tmp_path / "alpha", "alpha", engrams)
        write_pack(tmp_path / "beta", "beta",
                   [e.model_copy(update={"id": e.id.replace("P", "Q")}) for e in engrams])
        write_pack(tmp_path / "gamma", "gamma",
                   [e.model_copy(update={"id": e.id.replace("P", "R")}) for e in engrams])
        result = select_engrams(InjectionRequest("testing"), [], load_all_packs(tmp_path), config, TODAY)
        assert result.count == 15
        text = format_injection(result)
        assert "## ALSO CONSIDER" in text
        assert "- Rule 0 [alpha]" in text
        assert "**" not in text

    def test_large_result_is_bare(self, config):
        personal = [build_engram(f"ENG-L-{i}", f"Rule {i}", tags=["testing"], domain=f"d{i}")
                    for i in range(35)]
        result = select_engrams(InjectionRequest("testing"), personal, [], config, TODAY)
        assert result.count == 35
        lines = [line for line in format_injection(result).splitlines() if line.startswith("- ")]
        assert lines[0] == "- Rule 0"
        assert len(lines) == 35


def test_run_injection_records_usage(temp_brain, config):
    today = date.today()
    path = temp_brain / "engrams.yaml"
    save_engrams(path, [build_engram("ENG-A", "Always X", tags=["testing"], last_accessed=today),
                        build_engram("ENG-B", "Unrelated", tags=["cooking"], last_accessed=today)])
    repository = PersonalRepository(path)

    result = run_injection(InjectionRequest("testing"), repository, temp_brain / "packs", config, today)
    assert result.injected_ids == ["ENG-A"]

    reloaded = {e.id: e for e in repository.load()}
    assert reloaded["ENG-A"].activation.frequency == 1
    assert reloaded["ENG-B"].activation.frequency == 0
