"""Relationship type registry: the vocabulary of allowed semantic links."""

from tidy_kg.registry.models import (
    RelationshipTypeDefinition,
    ValidationResult,
    ValidationRules,
)
from tidy_kg.registry.registry import RelationshipTypeRegistry, list_bundled_catalogs, load_catalog

__all__ = [
    "RelationshipTypeDefinition",
    "RelationshipTypeRegistry",
    "ValidationResult",
    "ValidationRules",
    "list_bundled_catalogs",
    "load_catalog",
]
