"""Relationship type registry.

Loads relationship type catalogs from YAML files and validates
relationships against them. Three catalogs ship with tidy-kg
(universal, cybersec, construction); additional catalogs can be
loaded from user-provided files.

A registry is an ordinary value: build one at startup and pass it to
whatever needs it. Nothing here is module-global.
"""

import logging
from collections.abc import Iterable, Mapping
from pathlib import Path
from types import MappingProxyType
from typing import Any

import yaml
from pydantic import BaseModel

from tidy_kg.registry.models import (
    UNIVERSAL_DOMAIN,
    RelationshipTypeDefinition,
    ValidationResult,
    ValidationRules,
)

logger = logging.getLogger(__name__)

# Bundled catalogs directory (shipped with the package)
BUNDLED_CATALOGS_DIR = Path(__file__).parent / "bundled"

DEFAULT_CATALOGS = ("universal", "cybersec", "construction")


def _to_camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


def _as_mapping(relationship: Any) -> Mapping[str, Any]:
    """Accept a relationship model or a plain mapping."""
    if isinstance(relationship, BaseModel):
        return relationship.model_dump()
    if isinstance(relationship, Mapping):
        return relationship
    raise TypeError(
        f"Expected a relationship model or mapping, got {type(relationship).__name__}"
    )


def _field_present(data: Mapping[str, Any], field: str) -> bool:
    """A required field counts as present if set on the relationship or its temporal block."""
    for key in (field, _to_camel(field)):
        if data.get(key) is not None:
            return True
    temporal = data.get("temporal")
    if isinstance(temporal, Mapping):
        return any(temporal.get(key) is not None for key in (field, _to_camel(field)))
    return False


def load_catalog(path: Path) -> dict[str, RelationshipTypeDefinition]:
    """Parse one catalog YAML file into relationship definitions.

    Definitions without an explicit ``domains`` list default to the
    catalog name (``universal`` for the universal catalog).

    Raises:
        ValueError: If the file is missing or malformed
    """
    path = Path(path)
    if not path.exists():
        raise ValueError(f"Relationship catalog not found: {path}")

    raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    catalog_name = raw.get("name", path.stem)
    entries = raw.get("relationship_types", {})
    if not isinstance(entries, dict):
        raise ValueError(f"Catalog {path} has no relationship_types mapping")

    definitions: dict[str, RelationshipTypeDefinition] = {}
    for type_name, cfg in entries.items():
        if isinstance(cfg, str):
            # Simple form: "uses: [Actor] uses [Tool]"
            cfg = {"label": type_name.replace("_", " ").title(), "description": cfg}
        domains = cfg.get("domains") or [catalog_name]
        validation = cfg.get("validation") or {}
        definitions[type_name] = RelationshipTypeDefinition(
            label=cfg.get("label", type_name.replace("_", " ").title()),
            description=cfg.get("description", ""),
            domains=frozenset(domains),
            cardinality=cfg.get("cardinality", "many-to-many"),
            inverse=cfg.get("inverse"),
            bidirectional=cfg.get("bidirectional", False),
            temporal=cfg.get("temporal", False),
            validation=ValidationRules(
                source_types=tuple(validation.get("source_types", ())),
                target_types=tuple(validation.get("target_types", ())),
                required=tuple(validation.get("required", ("confidence", "source"))),
            ),
        )

    logger.debug(f"Loaded catalog '{catalog_name}' ({len(definitions)} relationship types)")
    return definitions


class RelationshipTypeRegistry:
    """Immutable catalog of relationship types plus the relationship validator."""

    def __init__(self, definitions: Mapping[str, RelationshipTypeDefinition]) -> None:
        self._definitions = MappingProxyType(dict(definitions))

    @classmethod
    def from_catalogs(cls, paths: Iterable[Path]) -> "RelationshipTypeRegistry":
        """Union several catalog files. A type defined twice is an error."""
        merged: dict[str, RelationshipTypeDefinition] = {}
        for path in paths:
            for type_name, definition in load_catalog(path).items():
                if type_name in merged:
                    raise ValueError(
                        f"Relationship type '{type_name}' defined in more than one catalog ({path})"
                    )
                merged[type_name] = definition
        registry = cls(merged)
        logger.info(
            f"Relationship registry ready: {len(registry)} types across "
            f"{len(registry.domains())} domains"
        )
        return registry

    @classmethod
    def from_bundled(
        cls,
        names: Iterable[str] = DEFAULT_CATALOGS,
        extra_paths: Iterable[Path] = (),
    ) -> "RelationshipTypeRegistry":
        """Build a registry from bundled catalogs and optional custom files."""
        paths = []
        for name in names:
            path = BUNDLED_CATALOGS_DIR / f"{name}.yaml"
            if not path.exists():
                raise ValueError(
                    f"Bundled catalog '{name}' not found. Available: {list_bundled_catalogs()}"
                )
            paths.append(path)
        paths.extend(Path(p) for p in extra_paths)
        return cls.from_catalogs(paths)

    def __len__(self) -> int:
        return len(self._definitions)

    def __contains__(self, type_name: object) -> bool:
        return type_name in self._definitions

    @property
    def definitions(self) -> Mapping[str, RelationshipTypeDefinition]:
        return self._definitions

    def types(self) -> list[str]:
        return list(self._definitions)

    def domains(self) -> list[str]:
        found: set[str] = set()
        for definition in self._definitions.values():
            found.update(definition.domains)
        return sorted(found)

    def definition(self, type_name: str) -> RelationshipTypeDefinition | None:
        return self._definitions.get(type_name)

    def is_valid_type(self, type_name: str) -> bool:
        return type_name in self._definitions

    def validate(
        self,
        relationship: Any,
        source_kind: str | None = None,
        target_kind: str | None = None,
    ) -> ValidationResult:
        """Validate a relationship against its type definition.

        Checks that the type exists, that every field the definition marks
        as required is present, and that confidence lies in [0, 1]. When
        endpoint kinds are supplied they are checked against the allowed
        source and target kinds as well.

        Data problems produce a failed result; only a wrong argument type
        raises.

        Raises:
            TypeError: If ``relationship`` is neither a model nor a mapping
        """
        data = _as_mapping(relationship)
        type_name = data.get("type")

        if not isinstance(type_name, str) or not self.is_valid_type(type_name):
            return ValidationResult.fail(f"Unknown relationship type: {type_name}")

        definition = self._definitions[type_name]
        for field in definition.validation.required:
            if not _field_present(data, field):
                return ValidationResult.fail(f"Missing required field: {field}")

        confidence = data.get("confidence")
        if confidence is not None:
            try:
                value = float(confidence)
            except (TypeError, ValueError):
                return ValidationResult.fail(f"Confidence is not a number: {confidence!r}")
            if not 0.0 <= value <= 1.0:
                return ValidationResult.fail("Confidence must be between 0 and 1")

        rules = definition.validation
        if source_kind and rules.source_types and source_kind not in rules.source_types:
            return ValidationResult.fail(
                f"'{type_name}' cannot start at a {source_kind} "
                f"(allowed: {', '.join(rules.source_types)})"
            )
        if target_kind and rules.target_types and target_kind not in rules.target_types:
            return ValidationResult.fail(
                f"'{type_name}' cannot point at a {target_kind} "
                f"(allowed: {', '.join(rules.target_types)})"
            )

        return ValidationResult.ok()

    def relationships_for_domain(self, domain: str) -> dict[str, RelationshipTypeDefinition]:
        """All definitions that apply to ``domain`` (universal ones included)."""
        return {
            type_name: definition
            for type_name, definition in self._definitions.items()
            if definition.applies_to(domain)
        }

    def inverse_of(self, type_name: str) -> str | None:
        definition = self._definitions.get(type_name)
        return definition.inverse if definition else None

    def is_bidirectional(self, type_name: str) -> bool:
        definition = self._definitions.get(type_name)
        return definition.bidirectional if definition else False


def list_bundled_catalogs() -> list[str]:
    """List available bundled catalog names."""
    if not BUNDLED_CATALOGS_DIR.exists():
        return []
    return sorted(p.stem for p in BUNDLED_CATALOGS_DIR.glob("*.yaml"))


__all__ = [
    "BUNDLED_CATALOGS_DIR",
    "DEFAULT_CATALOGS",
    "UNIVERSAL_DOMAIN",
    "RelationshipTypeRegistry",
    "list_bundled_catalogs",
    "load_catalog",
]
