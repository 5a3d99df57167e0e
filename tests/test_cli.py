"""Tests for engram-init."""

import json

import yaml

from mcp_server_engram.cli import create_brain_structure, get_engram_config_block, main
from mcp_server_engram.runtime.config import load_config


def test_create_brain_structure(tmp_path):
    brain = tmp_path / ".brain"
    created = create_brain_structure(brain)
    for name in ("journal", "knowledge", "packs", "ledger"):
        assert (brain / name).is_dir()
    assert yaml.safe_load((brain / "engrams.yaml").read_text(encoding="utf-8")) == {"engrams": []}
    assert load_config(brain).injection.max_tokens == 8000
    assert len(created) == 6


def test_create_brain_structure_keeps_existing_files(tmp_path):
    brain = tmp_path / ".brain"
    brain.mkdir()
    (brain / "engrams.yaml").write_text("engrams: [keep-me]\n", encoding="utf-8")
    create_brain_structure(brain)
    assert "keep-me" in (brain / "engrams.yaml").read_text(encoding="utf-8")
    assert create_brain_structure(brain) == []


def test_config_block_points_at_brain(tmp_path):
    block = get_engram_config_block(tmp_path / ".brain")
    assert block["command"] == "mcp-server-engram"
    assert block["env"]["ENGRAM_BRAIN_PATH"].endswith(".brain")


def test_main_prints_config(tmp_path, capsys):
    assert main(["--path", str(tmp_path)]) == 0
    out = capsys.readouterr().out
    assert "Created brain at" in out
    config = json.loads(out[out.index("{"):])
    assert "engram" in config["mcpServers"]
