"""Relationship-aware operations on entity sets and entities.

EntitySchema owns the rules for how relationships are attached to a
holder: every relationship is validated against the registry, a holder
never relates to itself, and at most one relationship per
``(type, target)`` is kept, the higher-confidence one winning.
"""

import logging
from collections import Counter
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ValidationError

from tidy_kg.errors import RelationshipValidationError
from tidy_kg.registry import RelationshipTypeRegistry
from tidy_kg.schema.models import (
    LEGACY_SCHEMA_VERSION,
    SCHEMA_VERSION,
    EntitySet,
    Relationship,
    RelationshipHolder,
    utc_now_iso,
)

logger = logging.getLogger(__name__)

# Top-level fields every stored entity set must carry
REQUIRED_SET_FIELDS = ("id", "conversation_id", "user_id", "timestamp", "domain")


class EntityValidationReport(BaseModel):
    """All problems found in one entity set."""

    valid: bool
    errors: list[str] = []


class EntitySchema:
    """Relationship bookkeeping bound to one relationship type registry."""

    def __init__(self, registry: RelationshipTypeRegistry) -> None:
        self.registry = registry

    def create_entity(self, base: EntitySet | Mapping[str, Any]) -> EntitySet:
        """Build a schema 2.0.0 entity set from ``base`` with no relationships."""
        data = _as_dict(base)
        data["relationships"] = []
        metadata = dict(data.get("metadata") or {})
        metadata.update(
            relationshipCount=0,
            lastRelationshipUpdate=None,
            relationshipSources=[],
        )
        # Drop snake_case duplicates of the keys just reset
        for key in ("relationship_count", "last_relationship_update", "relationship_sources"):
            metadata.pop(key, None)
        data["metadata"] = metadata
        data["schemaVersion"] = SCHEMA_VERSION
        data.pop("schema_version", None)
        return EntitySet.model_validate(data)

    def create_relationship(self, **config: Any) -> Relationship:
        return Relationship.model_validate(config)

    def add_relationship(self, holder: RelationshipHolder, **config: Any) -> RelationshipHolder:
        """Validate and attach a relationship to ``holder``.

        If the holder already has a relationship with the same type and
        target, it is replaced only when the new confidence is strictly
        higher. Tracking metadata is refreshed either way.

        Raises:
            RelationshipValidationError: If the registry rejects the
                relationship, it has no target, or it points back at the
                holder itself
        """
        validation = self.registry.validate(config)
        if not validation.valid:
            raise RelationshipValidationError(f"Invalid relationship: {validation.error}")

        target = config.get("target")
        if not isinstance(target, str) or not target.strip():
            raise RelationshipValidationError("Invalid relationship: missing target")
        if holder.id is not None and target == holder.id:
            raise RelationshipValidationError(
                f"Invalid relationship: '{holder.id}' cannot relate to itself"
            )

        try:
            relationship = self.create_relationship(**config)
        except ValidationError as e:
            raise RelationshipValidationError(f"Invalid relationship: {e}") from e
        existing = _find(holder, relationship.type, relationship.target)
        if existing is None:
            holder.relationships.append(relationship)
        elif (relationship.confidence or 0.0) > (existing.confidence or 0.0):
            relationship.updated_at = utc_now_iso()
            holder.relationships[holder.relationships.index(existing)] = relationship
        else:
            logger.debug(
                f"Kept existing {relationship.type} -> {relationship.target} "
                f"({existing.confidence} >= {relationship.confidence})"
            )

        tracking = holder.metadata
        tracking.relationship_count = len(holder.relationships)
        tracking.last_relationship_update = utc_now_iso()
        if relationship.source and relationship.source not in tracking.relationship_sources:
            tracking.relationship_sources.append(relationship.source)
        return holder

    def remove_relationship(
        self, holder: RelationshipHolder, type_name: str, target: str
    ) -> RelationshipHolder:
        """Drop every relationship matching ``(type_name, target)``. Idempotent."""
        holder.relationships = [
            r for r in holder.relationships if not (r.type == type_name and r.target == target)
        ]
        holder.metadata.relationship_count = len(holder.relationships)
        holder.metadata.last_relationship_update = utc_now_iso()
        return holder

    def relationships_by_type(self, holder: RelationshipHolder, type_name: str) -> list[Relationship]:
        return [r for r in holder.relationships if r.type == type_name]

    def relationships_by_target(self, holder: RelationshipHolder, target: str) -> list[Relationship]:
        return [r for r in holder.relationships if r.target == target]

    def relationship_targets(self, holder: RelationshipHolder) -> list[str]:
        return [r.target for r in holder.relationships]

    def validate_entity(self, entity_set: EntitySet) -> EntityValidationReport:
        """Collect every structural and relationship problem in ``entity_set``."""
        errors = []
        for field in REQUIRED_SET_FIELDS:
            if getattr(entity_set, field, None) is None:
                errors.append(f"Missing required field: {field}")

        for index, relationship in enumerate(entity_set.relationships):
            validation = self.registry.validate(relationship)
            if not validation.valid:
                errors.append(f"Invalid relationship at index {index}: {validation.error}")

        for category, items in entity_set.entities.items():
            for position, entity in enumerate(items):
                label = f"{category}[{position}]"
                if not entity.name:
                    errors.append(f"Entity {label} has an empty name")
                for index, relationship in enumerate(entity.relationships):
                    validation = self.registry.validate(relationship)
                    if not validation.valid:
                        errors.append(
                            f"Invalid relationship on entity {label} at index {index}: "
                            f"{validation.error}"
                        )

        return EntityValidationReport(valid=not errors, errors=errors)

    def migrate_legacy_entity(self, legacy: EntitySet | Mapping[str, Any]) -> EntitySet:
        """Upgrade a schema 1.0.0 entity set, keeping its relationships verbatim."""
        data = _as_dict(legacy)
        migrated = self.create_entity(data)

        existing = data.get("relationships") or []
        if existing:
            migrated.relationships = [Relationship.model_validate(r) for r in existing]
            migrated.metadata.relationship_count = len(existing)
            migrated.metadata.last_relationship_update = utc_now_iso()

        migrated.metadata.migrated_at = utc_now_iso()
        migrated.metadata.legacy_schema = LEGACY_SCHEMA_VERSION
        return migrated

    def summarize(self, entity_set: EntitySet) -> dict[str, Any]:
        counts = Counter(r.type for r in entity_set.relationships)
        return {
            "id": entity_set.id,
            "domain": entity_set.domain,
            "entity_count": entity_set.entity_count,
            "relationship_count": len(entity_set.relationships),
            "relationship_types": list(counts),
            "relationship_counts": dict(counts),
            "last_updated": entity_set.metadata.last_relationship_update or entity_set.timestamp,
        }


def _find(holder: RelationshipHolder, type_name: str, target: str) -> Relationship | None:
    for relationship in holder.relationships:
        if relationship.type == type_name and relationship.target == target:
            return relationship
    return None


def _as_dict(value: BaseModel | Mapping[str, Any]) -> dict[str, Any]:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", by_alias=True)
    return dict(value)
