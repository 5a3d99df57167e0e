"""Engram and pack record schemas.

These models describe exactly what lives in ``engrams.yaml`` and in a pack's
``SKILL.md`` frontmatter. Records are validated one by one on load so a single
malformed entry never takes down the whole store.
"""

from datetime import date, datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

ENGRAM_ID_PATTERN = r"^ENG-[A-Za-z0-9-]+$"
# Pack ids name a directory under packs/, so no separators or leading dots.
PACK_ID_PATTERN = r"^[a-z0-9][a-z0-9._-]*$"
RECORD_VERSION = 2


class EngramStatus(str, Enum):
    CANDIDATE = "candidate"
    ACTIVE = "active"
    DORMANT = "dormant"
    RETIRED = "retired"


class EngramType(str, Enum):
    BEHAVIORAL = "behavioral"
    TERMINOLOGICAL = "terminological"
    PROCEDURAL = "procedural"
    ARCHITECTURAL = "architectural"


class Visibility(str, Enum):
    PRIVATE = "private"      # never exported
    PUBLIC = "public"
    TEMPLATE = "template"


class InjectionPolicy(str, Enum):
    ON_MATCH = "on_match"
    ON_REQUEST = "on_request"


class Activation(BaseModel):
    retrieval_strength: float = Field(..., ge=0, le=1)
    storage_strength: float = Field(..., ge=0, le=1)
    frequency: int = Field(0, ge=0)
    last_accessed: date

    @field_validator("last_accessed", mode="before")
    @classmethod
    def _truncate_to_date(cls, value):
        # Timestamps written by other tools keep only their calendar date
        if isinstance(value, datetime):
            return value.date()
        if isinstance(value, str) and "T" in value:
            return value.split("T", 1)[0]
        return value


class KnowledgeType(BaseModel):
    memory_class: str = Field(..., pattern=r"^(semantic|episodic|procedural|metacognitive)$")
    cognitive_level: str = Field(..., pattern=r"^(remember|understand|apply|analyze|evaluate|create)$")


class Relations(BaseModel):
    broader: List[str] = Field(default_factory=list)
    narrower: List[str] = Field(default_factory=list)
    related: List[str] = Field(default_factory=list)
    conflicts: List[str] = Field(default_factory=list)


class Provenance(BaseModel):
    origin: str
    chain: List[str] = Field(default_factory=list)
    signature: Optional[str] = None
    license: str = "cc-by-sa-4.0"


class FeedbackSignals(BaseModel):
    positive: int = 0
    negative: int = 0
    neutral: int = 0

    @property
    def net(self) -> int:
        return self.positive - self.negative


class Engram(BaseModel):
    """A single unit of reusable knowledge with activation state and lifecycle status."""

    model_config = ConfigDict(validate_assignment=True)

    id: str = Field(..., pattern=ENGRAM_ID_PATTERN)
    version: int = Field(1, ge=1)
    status: EngramStatus
    consolidated: bool = False

    type: EngramType
    scope: str
    visibility: Visibility = Visibility.PRIVATE
    statement: str = Field(..., min_length=1)
    rationale: Optional[str] = None
    contraindications: Optional[List[str]] = None
    source_patterns: Optional[List[str]] = None
    derivation_count: int = Field(1, ge=0)

    knowledge_type: Optional[KnowledgeType] = None
    domain: Optional[str] = None
    relations: Optional[Relations] = None
    activation: Activation
    provenance: Optional[Provenance] = None
    feedback_signals: Optional[FeedbackSignals] = None
    tags: List[str] = Field(default_factory=list)
    pack: Optional[str] = None
    abstract: Optional[str] = None
    derived_from: Optional[str] = None

    @property
    def is_personal(self) -> bool:
        return self.pack is None

    @property
    def top_domain(self) -> Optional[str]:
        if not self.domain:
            return None
        return self.domain.split(".")[0]

    def to_record(self) -> dict:
        """Plain dict for YAML, optional fields omitted when absent."""
        return self.model_dump(mode="json", exclude_none=True)


class PackExtension(BaseModel):
    id: str = Field(..., pattern=PACK_ID_PATTERN)
    injection_policy: InjectionPolicy
    match_terms: List[str] = Field(default_factory=list)
    domain: Optional[str] = None
    engram_count: int = Field(0, ge=0)


class PackManifest(BaseModel):
    """SKILL.md frontmatter of an engram pack."""

    model_config = ConfigDict(populate_by_name=True)

    name: str
    description: str
    version: str
    creator: Optional[str] = None
    license: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    extension: PackExtension = Field(..., alias="x-engram")

    @field_validator("version", mode="before")
    @classmethod
    def _coerce_version(cls, value):
        # YAML reads an unquoted 1.0 as a float
        if isinstance(value, (int, float)):
            return str(value)
        return value

    @property
    def pack_id(self) -> str:
        return self.extension.id
