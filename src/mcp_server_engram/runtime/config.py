"""Engram configuration.

Progressive enhancement with <brain>/config.yaml: every key is optional and a
missing or broken file falls back to defaults. The loaded EngramConfig is
passed into each operation explicitly rather than cached process-wide.
"""

import logging
from pathlib import Path
from typing import List, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger("engram.config")

CONFIG_FILENAME = "config.yaml"

DEFAULT_CONFIG_TEXT = """# Engram MCP configuration
version: 2
# engrams:
#   auto_promote: false
# injection:
#   max_tokens: 8000
#   min_relevance: 0.3
# decay:
#   rate: 0.05
#   floor: 0.05
# packs:
#   trusted_publishers: []
# search:
#   max_results: 20
#   snippet_length: 500
# hints:
#   enabled: true
"""


class EngramSettings(BaseModel):
    auto_promote: bool = False


class InjectionSettings(BaseModel):
    max_tokens: int = Field(8000, ge=0)
    min_relevance: float = Field(0.3, ge=0)
    tokens_per_engram: int = Field(40, gt=0)
    max_per_pack: int = Field(5, ge=1)
    max_per_domain: int = Field(10, ge=1)


class DecaySettings(BaseModel):
    rate: float = Field(0.05, ge=0)
    floor: float = Field(0.05, ge=0, le=1)


class PackSettings(BaseModel):
    trusted_publishers: List[str] = Field(default_factory=list)


class SearchSettings(BaseModel):
    max_results: int = Field(20, ge=1)
    snippet_length: int = Field(500, ge=20)


class HintSettings(BaseModel):
    enabled: bool = True


class EngramConfig(BaseModel):
    version: int = 2
    engrams: EngramSettings = Field(default_factory=EngramSettings)
    injection: InjectionSettings = Field(default_factory=InjectionSettings)
    decay: DecaySettings = Field(default_factory=DecaySettings)
    packs: PackSettings = Field(default_factory=PackSettings)
    search: SearchSettings = Field(default_factory=SearchSettings)
    hints: HintSettings = Field(default_factory=HintSettings)


def load_config(brain_path: Optional[Path] = None) -> EngramConfig:
    """
    Load <brain>/config.yaml if it exists.
    Returns the default config if the file is missing, unparseable or invalid.
    """
    if brain_path is None:
        from .common import get_brain_path
        brain_path = get_brain_path()

    config_file = Path(brain_path) / CONFIG_FILENAME
    if not config_file.exists():
        return EngramConfig()

    try:
        raw = yaml.safe_load(config_file.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        logger.warning(f"Could not parse {config_file}: {e}")
        return EngramConfig()

    if not isinstance(raw, dict):
        logger.warning(f"Ignoring {config_file}: expected a mapping, got {type(raw).__name__}")
        return EngramConfig()

    try:
        return EngramConfig.model_validate(raw)
    except ValidationError as e:
        logger.warning(f"Invalid configuration in {config_file}, using defaults: {e}")
        return EngramConfig()
