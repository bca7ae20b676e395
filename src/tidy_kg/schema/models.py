"""Pydantic models for entities, entity sets and relationships.

Entity sets are what the extractor produces for one document: entities
grouped by category (people, projects, materials, ...) plus shared
provenance. Both an entity set and a single entity can own relationships,
so the relationship bookkeeping lives on a shared base class.

Models serialise with camelCase keys to stay compatible with the
on-disk entity set format, and accept either camelCase or snake_case.
"""

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

SCHEMA_VERSION = "2.0.0"
LEGACY_SCHEMA_VERSION = "1.0.0"

# Names the extractor emits when it could not find one
PLACEHOLDER_NAMES = {"", "unnamed"}


def utc_now_iso() -> str:
    return datetime.now(UTC).isoformat()


class CamelModel(BaseModel):
    """Base model: camelCase on the wire, unknown keys preserved."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )

    def to_json_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class Relationship(CamelModel):
    """A directed, typed edge from the owning holder to ``target``.

    Confidence is deliberately unconstrained here: range checking is the
    registry's job so that bad input surfaces as a validation error.
    """

    type: str
    target: str
    confidence: float | None = None
    source: str | None = None  # Provenance: content_inference, manual, ...
    established_on: str | None = None
    temporal: dict[str, Any] | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: str = Field(default_factory=utc_now_iso)
    updated_at: str | None = None


class RelationshipTracking(CamelModel):
    """Relationship bookkeeping kept in a holder's metadata."""

    relationship_count: int = 0
    last_relationship_update: str | None = None
    relationship_sources: list[str] = Field(default_factory=list)


class EntityMetadata(RelationshipTracking):
    source: str | None = None  # Source document reference
    extraction_date: str | None = None
    last_updated: str | None = None
    tags: list[str] = Field(default_factory=list)
    merge_history: list[str] = Field(default_factory=list)


class SetMetadata(RelationshipTracking):
    source: str | None = None
    migrated_at: str | None = None
    legacy_schema: str | None = None


class RelationshipHolder(CamelModel):
    """Anything that owns an ordered relationship list."""

    id: str | None = None
    relationships: list[Relationship] = Field(default_factory=list)
    metadata: RelationshipTracking = Field(default_factory=RelationshipTracking)


class Entity(RelationshipHolder):
    """A named thing inside one category."""

    name: str = ""
    category: str = "unknown"
    confidence: float = 0.5
    description: str | None = None
    role: str | None = None
    type: str | None = None
    status: str | None = None
    designation: str | None = None
    assigned_to: str | None = None
    conversation_id: str | None = None
    timestamp: str | None = None
    metadata: EntityMetadata = Field(default_factory=EntityMetadata)
    children: list[str] = Field(default_factory=list)
    merged_from: list[str] = Field(default_factory=list)
    consolidated_count: int | None = None

    @model_validator(mode="before")
    @classmethod
    def _fallback_name(cls, data: Any) -> Any:
        # Materials sometimes come as {item: ...}, locations as {address: ...}
        if isinstance(data, dict) and not data.get("name"):
            for key in ("item", "address", "title"):
                if data.get(key):
                    return {**data, "name": data[key]}
        return data

    @field_validator("name", mode="before")
    @classmethod
    def _strip_name(cls, v: Any) -> str:
        return str(v).strip() if v is not None else ""

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp_confidence(cls, v: Any) -> float:
        try:
            value = float(v)
        except (TypeError, ValueError):
            return 0.5
        return max(0.0, min(1.0, value))

    @property
    def has_name(self) -> bool:
        return self.name.lower() not in PLACEHOLDER_NAMES


class EntitySet(RelationshipHolder):
    """One document's worth of extracted entities."""

    conversation_id: str | None = None
    user_id: str | None = None
    domain: str = "default"
    timestamp: str | None = None
    entities: dict[str, list[Entity]] = Field(default_factory=dict)
    metadata: SetMetadata = Field(default_factory=SetMetadata)
    schema_version: str | None = None
    migrated_from: str | None = None
    migration_timestamp: str | None = None

    def category(self, name: str) -> list[Entity]:
        return self.entities.get(name, [])

    def has(self, category: str) -> bool:
        return len(self.category(category)) > 0

    @property
    def entity_count(self) -> int:
        return sum(len(items) for items in self.entities.values())

    def category_counts(self) -> dict[str, int]:
        return {name: len(items) for name, items in self.entities.items() if items}
