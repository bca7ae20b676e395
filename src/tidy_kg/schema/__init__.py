"""Entity and relationship data model."""

from tidy_kg.schema.entity_schema import EntitySchema, EntityValidationReport
from tidy_kg.schema.graph import RelationshipGraph
from tidy_kg.schema.models import (
    SCHEMA_VERSION,
    Entity,
    EntityMetadata,
    EntitySet,
    Relationship,
    RelationshipHolder,
    SetMetadata,
)

__all__ = [
    "SCHEMA_VERSION",
    "Entity",
    "EntityMetadata",
    "EntitySchema",
    "EntitySet",
    "EntityValidationReport",
    "Relationship",
    "RelationshipGraph",
    "RelationshipHolder",
    "SetMetadata",
]
