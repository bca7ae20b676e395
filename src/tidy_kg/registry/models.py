"""Pydantic models for relationship type catalogs.

Defines the schema for catalog YAML files that declare which semantic
relationship types exist, which domains they apply to, and what a
relationship of that type must carry to be valid.
"""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

Cardinality = Literal["one-to-one", "one-to-many", "many-to-one", "many-to-many"]

UNIVERSAL_DOMAIN = "universal"


class ValidationRules(BaseModel):
    """Endpoint kinds and required fields for a relationship type."""

    model_config = ConfigDict(frozen=True)

    source_types: tuple[str, ...] = ()
    target_types: tuple[str, ...] = ()
    required: tuple[str, ...] = ("confidence", "source")


class RelationshipTypeDefinition(BaseModel):
    """A single entry of the relationship vocabulary."""

    model_config = ConfigDict(frozen=True)

    label: str
    description: str = ""
    domains: frozenset[str] = Field(default_factory=lambda: frozenset({UNIVERSAL_DOMAIN}))
    cardinality: Cardinality = "many-to-many"
    inverse: str | None = None
    bidirectional: bool = False
    temporal: bool = False
    validation: ValidationRules = Field(default_factory=ValidationRules)

    def applies_to(self, domain: str) -> bool:
        return UNIVERSAL_DOMAIN in self.domains or domain in self.domains


class ValidationResult(BaseModel):
    """Outcome of validating one relationship."""

    valid: bool
    error: str | None = None

    @classmethod
    def ok(cls) -> "ValidationResult":
        return cls(valid=True)

    @classmethod
    def fail(cls, error: str) -> "ValidationResult":
        return cls(valid=False, error=error)
