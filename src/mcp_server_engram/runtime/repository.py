"""
Engram repositories: the personal store and per-pack stores.

Both are YAML documents of the form ``{engrams: [...]}``. Loads are forgiving
(bad records are skipped, bad files read as empty); saves go through a temp
file and an atomic rename so readers never see a half-written store. There is
no cross-process locking: two concurrent writers are last-writer-wins.
"""

import abc
import logging
import os
import re
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Set

import yaml
from pydantic import ValidationError

from .schemas import Engram, PackManifest

logger = logging.getLogger("engram.repository")

SKILL_FILENAME = "SKILL.md"
PACK_ENGRAMS_FILENAME = "engrams.yaml"

_FRONTMATTER = re.compile(r"^---\r?\n(.*?)\r?\n---", re.DOTALL)


class PackLoadError(Exception):
    """A pack directory whose manifest is missing or invalid."""


def load_engrams(file_path: Path) -> List[Engram]:
    """Load and validate every record in an engram store."""
    file_path = Path(file_path)
    if not file_path.exists():
        return []

    try:
        raw = yaml.safe_load(file_path.read_text(encoding="utf-8"))
    except (yaml.YAMLError, OSError, UnicodeDecodeError) as e:
        logger.error(f"Failed to parse engrams file {file_path}: {e}")
        return []

    if raw is None:
        return []
    if not isinstance(raw, dict) or not isinstance(raw.get("engrams"), list):
        logger.error(f"Engrams file {file_path} has no 'engrams' list; treating it as empty")
        return []

    valid: List[Engram] = []
    for entry in raw["engrams"]:
        try:
            valid.append(Engram.model_validate(entry))
        except ValidationError as e:
            engram_id = entry.get("id", "unknown") if isinstance(entry, dict) else "unknown"
            logger.warning(f"Skipping invalid engram {engram_id}: {e}")
    return valid


def atomic_write_yaml(file_path: Path, data: Any) -> None:
    file_path = Path(file_path)
    file_path.parent.mkdir(parents=True, exist_ok=True)
    content = yaml.safe_dump(data, sort_keys=False, allow_unicode=True, width=120)

    fd, tmp_name = tempfile.mkstemp(prefix=f".{file_path.name}.", suffix=".tmp",
                                    dir=str(file_path.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
        os.replace(tmp_name, file_path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise


def save_engrams(file_path: Path, engrams: List[Engram]) -> None:
    atomic_write_yaml(file_path, {"engrams": [e.to_record() for e in engrams]})


def parse_frontmatter(file_path: Path) -> Dict[str, Any]:
    content = Path(file_path).read_text(encoding="utf-8")
    match = _FRONTMATTER.match(content)
    if not match:
        raise PackLoadError(f"No frontmatter found in {file_path}")
    try:
        data = yaml.safe_load(match.group(1))
    except yaml.YAMLError as e:
        raise PackLoadError(f"Failed to parse YAML frontmatter in {file_path}: {e}") from e
    if not isinstance(data, dict):
        raise PackLoadError(f"Frontmatter in {file_path} is not a mapping")
    return data


class EngramRepository(abc.ABC):
    """
    A place engrams are loaded from and written back to.
    ``ages_engrams`` tells the scorer whether time decay applies.
    """

    ages_engrams: bool = True

    def __init__(self, path: Path):
        self.path = Path(path)

    @property
    @abc.abstractmethod
    def label(self) -> str:
        """Short source name used in results ('personal' or 'pack')."""

    def load(self) -> List[Engram]:
        return load_engrams(self.path)

    def save(self, engrams: List[Engram]) -> None:
        save_engrams(self.path, engrams)

    def __repr__(self):
        return f"<{type(self).__name__}: {self.path}>"


class PersonalRepository(EngramRepository):
    ages_engrams = True

    @property
    def label(self) -> str:
        return "personal"


class PackRepository(EngramRepository):
    """A pack's own engrams.yaml. Packs are curated, so nothing here decays."""

    ages_engrams = False

    def __init__(self, pack_dir: Path, pack_id: Optional[str] = None):
        self.pack_dir = Path(pack_dir)
        self.pack_id = pack_id
        self._attributed: Set[str] = set()
        super().__init__(self.pack_dir / PACK_ENGRAMS_FILENAME)

    @property
    def label(self) -> str:
        return "pack"

    def load(self) -> List[Engram]:
        engrams = super().load()
        self._attributed = set()
        if self.pack_id:
            for engram in engrams:
                if engram.pack is None:
                    engram.pack = self.pack_id
                    self._attributed.add(engram.id)
        return engrams

    def save(self, engrams: List[Engram]) -> None:
        """Write back, leaving out the pack attribution ``load`` filled in."""
        records = []
        for engram in engrams:
            record = engram.to_record()
            if engram.id in self._attributed and record.get("pack") == self.pack_id:
                record.pop("pack")
            records.append(record)
        atomic_write_yaml(self.path, {"engrams": records})


@dataclass
class LoadedPack:
    manifest: PackManifest
    engrams: List[Engram]
    repository: PackRepository

    @property
    def pack_id(self) -> str:
        return self.manifest.pack_id


def load_manifest(pack_dir: Path) -> PackManifest:
    skill_path = Path(pack_dir) / SKILL_FILENAME
    if not skill_path.exists():
        raise PackLoadError(f"No {SKILL_FILENAME} in {pack_dir}")
    raw = parse_frontmatter(skill_path)
    try:
        return PackManifest.model_validate(raw)
    except ValidationError as e:
        raise PackLoadError(f"Invalid manifest in {skill_path}: {e}") from e


def load_pack(pack_dir: Path) -> LoadedPack:
    manifest = load_manifest(pack_dir)
    repository = PackRepository(pack_dir, manifest.pack_id)
    return LoadedPack(manifest=manifest, engrams=repository.load(), repository=repository)


def load_all_packs(packs_dir: Path) -> List[LoadedPack]:
    """Load every installed pack fresh from disk; broken packs are logged and skipped."""
    packs_dir = Path(packs_dir)
    if not packs_dir.exists():
        return []

    packs: List[LoadedPack] = []
    for pack_dir in sorted(packs_dir.iterdir()):
        if not pack_dir.is_dir() or not (pack_dir / SKILL_FILENAME).exists():
            continue
        try:
            packs.append(load_pack(pack_dir))
        except (PackLoadError, OSError, UnicodeDecodeError) as e:
            logger.warning(f"Failed to load pack {pack_dir.name}: {e}")
    return packs
