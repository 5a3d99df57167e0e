import pytest
import os
import tempfile
from datetime import date
from pathlib import Path

import yaml

from mcp_server_engram.runtime.schemas import Engram

TODAY = date(2026, 3, 1)


def build_engram(engram_id="ENG-2026-0301-001", statement="Always write tests first",
                 status="active", retrieval_strength=0.7, last_accessed=TODAY, **extra):
    """Engram record with sensible defaults; any field can be overridden."""
    data = {
        "id": engram_id,
        "version": 2,
        "status": status,
        "type": "behavioral",
        "scope": "global",
        "visibility": "private",
        "statement": statement,
        "activation": {
            "retrieval_strength": retrieval_strength,
            "storage_strength": 1.0,
            "frequency": 0,
            "last_accessed": last_accessed,
        },
        "tags": [],
    }
    data.update(extra)
    return Engram.model_validate(data)


def write_pack(pack_dir: Path, pack_id: str, engrams, version="1.0.0",
               injection_policy="on_match", match_terms=None, creator=None):
    """Write a minimal pack directory (SKILL.md + engrams.yaml)."""
    pack_dir.mkdir(parents=True, exist_ok=True)
    manifest = {
        "name": pack_id.replace("-", " ").title(),
        "description": f"Test pack {pack_id}",
        "version": version,
        "x-engram": {
            "id": pack_id,
            "injection_policy": injection_policy,
            "match_terms": match_terms or [],
            "engram_count": len(engrams),
        },
    }
    if creator:
        manifest["creator"] = creator
    (pack_dir / "SKILL.md").write_text(
        "---\n" + yaml.safe_dump(manifest, sort_keys=False) + "---\n\n# Pack\n", encoding="utf-8")
    (pack_dir / "engrams.yaml").write_text(
        yaml.safe_dump({"engrams": [e.to_record() for e in engrams]}, sort_keys=False), encoding="utf-8")
    return pack_dir


@pytest.fixture
def temp_brain():
    """Create a temporary brain directory for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        old_brain = os.environ.get("ENGRAM_BRAIN_PATH")
        os.environ["ENGRAM_BRAIN_PATH"] = tmpdir

        brain_path = Path(tmpdir)
        (brain_path / "packs").mkdir(parents=True, exist_ok=True)
        (brain_path / "ledger").mkdir(parents=True, exist_ok=True)

        yield brain_path

        if old_brain:
            os.environ["ENGRAM_BRAIN_PATH"] = old_brain
        else:
            del os.environ["ENGRAM_BRAIN_PATH"]


@pytest.fixture
def sample_engrams(temp_brain):
    """Seed the personal store with a few engrams."""
    engrams = [
        build_engram("ENG-2026-0301-001", "Always run the database migrations before tests",
                     tags=["database"], domain="software.testing", last_accessed=date.today()),
        build_engram("ENG-2026-0301-002", "Prefer composition over inheritance",
                     tags=["design"], domain="software.architecture", last_accessed=date.today()),
        build_engram("ENG-2026-0301-003", "Never commit secrets", status="candidate",
                     retrieval_strength=0.5, tags=["security"], last_accessed=date.today()),
    ]
    (temp_brain / "engrams.yaml").write_text(
        yaml.safe_dump({"engrams": [e.to_record() for e in engrams]}, sort_keys=False), encoding="utf-8")
    return engrams
