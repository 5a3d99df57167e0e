"""Pack Operations: discover, install and export shareable engram packs."""

import hashlib
import json
import re
import shutil
from datetime import date
from pathlib import Path
from typing import Any, Dict, List, Optional
import logging

import yaml

from .common import build_hints, get_brain_path, get_engrams_path, get_packs_path, make_response
from .config import load_config
from .event_ops import _emit_event
from .lifecycle import ACTIVE_RETRIEVAL, ACTIVE_STORAGE
from .repository import (
    PACK_ENGRAMS_FILENAME,
    SKILL_FILENAME,
    PackLoadError,
    load_engrams,
    load_manifest,
    save_engrams,
)
from .schemas import Activation, Engram, EngramStatus, FeedbackSignals, Visibility

logger = logging.getLogger("engram.packs")

REGISTRY_FILENAME = "registry.json"
CHECKSUM_FILES = (SKILL_FILENAME, PACK_ENGRAMS_FILENAME)
EXPORTABLE = (Visibility.PUBLIC, Visibility.TEMPLATE)
PREVIEW_STATEMENTS = 10


def compute_pack_checksum(pack_dir: Path) -> Optional[str]:
    """SHA-256 over SKILL.md then engrams.yaml; None when neither exists."""
    digest = hashlib.sha256()
    has_content = False
    for name in CHECKSUM_FILES:
        file_path = Path(pack_dir) / name
        if file_path.exists():
            digest.update(file_path.read_bytes())
            has_content = True
    return digest.hexdigest() if has_content else None


def _installed_version(pack_dir: Path) -> Optional[str]:
    try:
        return load_manifest(pack_dir).version
    except (PackLoadError, OSError):
        return None


def _load_registry(brain: Path) -> List[Dict[str, Any]]:
    registry_path = brain / REGISTRY_FILENAME
    if not registry_path.exists():
        return []
    try:
        with open(registry_path, "r", encoding="utf-8") as f:
            raw = json.load(f)
    except (json.JSONDecodeError, OSError) as e:
        logger.error(f"Failed to read pack registry {registry_path}: {e}")
        return []
    packs = raw.get("packs") if isinstance(raw, dict) else None
    return [p for p in packs or [] if isinstance(p, dict) and p.get("id")]


# ── discover ────────────────────────────────────────────────────────

def _brain_packs_discover_impl(query: Optional[str] = None, tags: Optional[List[str]] = None) -> str:
    """List registry packs, annotated with local install state."""
    try:
        brain = get_brain_path()
        packs_dir = get_packs_path(brain)

        packs = []
        for entry in _load_registry(brain):
            local_dir = packs_dir / entry["id"]
            installed = (local_dir / SKILL_FILENAME).exists()
            installed_version = _installed_version(local_dir) if installed else None
            packs.append({
                **entry,
                "installed": installed,
                "installed_version": installed_version,
                "upgradeable": installed and installed_version != str(entry.get("version")),
            })

        if query:
            q = query.lower()
            packs = [p for p in packs
                     if q in str(p.get("name", "")).lower()
                     or q in str(p.get("description", "")).lower()
                     or any(q in str(t).lower() for t in p.get("tags", []))]

        if tags:
            wanted = {t.lower() for t in tags}
            packs = [p for p in packs if any(str(t).lower() in wanted for t in p.get("tags", []))]

        return make_response(True, data={"packs": packs, "count": len(packs)})
    except Exception as e:
        logger.error(f"Pack discovery failed: {e}")
        return make_response(False, error=f"Pack discovery failed: {e}")


# ── install ─────────────────────────────────────────────────────────

def _brain_packs_install_impl(source: str, checksum: Optional[str] = None) -> str:
    """Copy a pack directory into packs/<id>, upgrading a different installed version."""
    src_dir = Path(source).expanduser()
    if not (src_dir / SKILL_FILENAME).exists():
        return make_response(False, error=f"No {SKILL_FILENAME} found in source directory",
                             error_code="INVALID_ARGUMENT")
    try:
        manifest = load_manifest(src_dir)
    except PackLoadError as e:
        return make_response(False, error=str(e), error_code="INVALID_ARGUMENT")

    actual = compute_pack_checksum(src_dir)
    if checksum and checksum.lower() != actual:
        return make_response(False, data={"expected": checksum, "actual": actual},
                             error="Pack checksum mismatch", error_code="CHECKSUM_MISMATCH")

    try:
        brain = get_brain_path()
        config = load_config(brain)
        pack_id = manifest.pack_id
        packs_dir = get_packs_path(brain)
        dest_dir = packs_dir / pack_id
        if dest_dir.resolve().parent != packs_dir.resolve():
            return make_response(False, error=f"Invalid pack id: {pack_id}", error_code="INVALID_ARGUMENT")
        trusted = bool(manifest.creator) and manifest.creator in config.packs.trusted_publishers

        data: Dict[str, Any] = {"pack_id": pack_id, "version": manifest.version,
                                "checksum": actual, "trusted": trusted}
        if (dest_dir / SKILL_FILENAME).exists():
            if _installed_version(dest_dir) == manifest.version:
                data["already_current"] = True
                return make_response(True, data=data)
            shutil.rmtree(dest_dir)
            data["upgraded"] = True

        dest_dir.parent.mkdir(parents=True, exist_ok=True)
        shutil.copytree(src_dir, dest_dir)
        _emit_event("pack_installed", "engram_packs_install", {
            "pack_id": pack_id, "version": manifest.version, "checksum": actual,
            "upgraded": data.get("upgraded", False),
        })

        if not trusted:
            data["_hints"] = build_hints(
                config.hints.enabled,
                warning=f"Publisher '{manifest.creator or 'unknown'}' is not in packs.trusted_publishers. "
                        "Review the pack's engrams before relying on them.",
            )
        return make_response(True, data=data)
    except Exception as e:
        logger.error(f"Pack install failed: {e}")
        return make_response(False, error=f"Pack install failed: {e}")


# ── export ──────────────────────────────────────────────────────────

def _pack_slug(name: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", name.lower())[:50]


def _is_exportable(engram: Engram) -> bool:
    return engram.status == EngramStatus.ACTIVE and engram.visibility in EXPORTABLE


def _select_for_export(engrams: List[Engram], engram_ids: Optional[List[str]],
                       filter_tags: Optional[List[str]], filter_domain: Optional[str]) -> List[Engram]:
    if engram_ids:
        wanted = set(engram_ids)
        selected = [e for e in engrams if e.id in wanted and _is_exportable(e)]
    else:
        selected = [e for e in engrams if _is_exportable(e)]

    if filter_tags:
        tag_set = {t.lower() for t in filter_tags}
        selected = [e for e in selected if any(t.lower() in tag_set for t in e.tags)]
    if filter_domain:
        selected = [e for e in selected if e.domain and e.domain.startswith(filter_domain)]
    return selected


def _export_record(engram: Engram, pack_id: str, today: date) -> Engram:
    """Copy of an engram with personal usage history reset."""
    return engram.model_copy(update={
        "status": EngramStatus.ACTIVE,
        "activation": Activation(retrieval_strength=ACTIVE_RETRIEVAL, storage_strength=ACTIVE_STORAGE,
                                 frequency=0, last_accessed=today),
        "feedback_signals": FeedbackSignals(),
        "pack": pack_id,
    })


def _skill_markdown(name: str, description: str, pack_id: str, count: int) -> str:
    frontmatter = {
        "name": name,
        "description": description,
        "version": "1.0.0",
        "x-engram": {
            "id": pack_id,
            "injection_policy": "on_match",
            "match_terms": [],
            "engram_count": count,
        },
    }
    header = yaml.safe_dump(frontmatter, sort_keys=False, allow_unicode=True)
    return f"---\n{header}---\n\n# {name}\n\n{description}\n\nExported {count} engrams.\n"


def _brain_packs_export_impl(name: str, description: str, engram_ids: Optional[List[str]] = None,
                             filter_tags: Optional[List[str]] = None, filter_domain: Optional[str] = None,
                             confirm: bool = False) -> str:
    """Preview (default) or write a pack from active public/template engrams."""
    if not name or not name.strip():
        return make_response(False, error="Pack name must not be empty", error_code="INVALID_ARGUMENT")
    pack_id = _pack_slug(name).strip("-")
    if not pack_id:
        return make_response(False, error="Pack name must contain letters or digits",
                             error_code="INVALID_ARGUMENT")
    try:
        brain = get_brain_path()
        engrams = load_engrams(get_engrams_path(brain))

        if engram_ids:
            by_id = {e.id: e for e in engrams}
            private = [i for i in engram_ids if i in by_id and by_id[i].visibility == Visibility.PRIVATE]
            if private:
                return make_response(False, error=f"Cannot export private engrams: {', '.join(private)}. "
                                                  "Set visibility to public or template first.",
                                     error_code="INVALID_ARGUMENT")
        elif not any(_is_exportable(e) for e in engrams):
            return make_response(False, error="No exportable engrams found "
                                              "(only active public/template engrams can be exported)",
                                 error_code="NOT_FOUND")

        selected = _select_for_export(engrams, engram_ids, filter_tags, filter_domain)
        if not selected:
            return make_response(False, error="No engrams match the filter criteria", error_code="NOT_FOUND")

        pack_dir = get_packs_path(brain) / pack_id
        if not confirm:
            return make_response(True, data={"preview": {
                "count": len(selected),
                "statements": [e.statement for e in selected][:PREVIEW_STATEMENTS],
                "pack_path": str(pack_dir),
            }})

        if pack_dir.exists():
            return make_response(False, error=f"Pack directory already exists at {pack_dir}. "
                                              "Remove it first or use a different name.",
                                 error_code="ALREADY_EXISTS")

        pack_dir.mkdir(parents=True)
        (pack_dir / SKILL_FILENAME).write_text(
            _skill_markdown(name, description, pack_id, len(selected)), encoding="utf-8")
        today = date.today()
        save_engrams(pack_dir / PACK_ENGRAMS_FILENAME, [_export_record(e, pack_id, today) for e in selected])

        checksum = compute_pack_checksum(pack_dir)
        _emit_event("pack_exported", "engram_packs_export",
                    {"pack_id": pack_id, "count": len(selected), "checksum": checksum})
        return make_response(True, data={"pack_id": pack_id, "pack_path": str(pack_dir),
                                         "count": len(selected), "checksum": checksum})
    except Exception as e:
        logger.error(f"Pack export failed: {e}")
        return make_response(False, error=f"Pack export failed: {e}")
