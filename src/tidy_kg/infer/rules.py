"""Heuristic rules for inferring relationships between entity sets.

A rule looks at two entity sets A and B and decides whether A should
relate to B with the rule's relationship type. The predicates read the
category lists of each set (people, projects, tasks, ...) and the
role/type/name fields of the entities in them.

Directional rules are only tried in the A -> B orientation; the rest
are also tried as B -> A.
"""

from collections.abc import Callable
from dataclasses import dataclass

from tidy_kg.schema.models import Entity, EntitySet

Condition = Callable[[EntitySet, EntitySet], bool]

OWNERSHIP_KEYWORDS = ("owner", "owns", "property", "deed", "title")


@dataclass(frozen=True)
class InferenceRule:
    """A named condition that proposes one relationship type."""

    name: str
    relationship: str
    confidence: float
    description: str
    condition: Condition
    directional: bool = False


def _field_contains(entities: list[Entity], field: str, keywords: tuple[str, ...]) -> bool:
    for entity in entities:
        value = getattr(entity, field, None)
        if value and any(keyword in value.lower() for keyword in keywords):
            return True
    return False


# Universal predicates


def has_person_and_project(a: EntitySet, b: EntitySet) -> bool:
    """A names people and B names projects.

    The rule is non-directional, so the engine also tries (B, A); the
    edge always runs from the set holding the people.
    """
    return a.has("people") and b.has("projects")


def has_task_assignment(a: EntitySet, b: EntitySet) -> bool:
    """A task in A is assigned to someone named in B."""
    for task in a.category("tasks"):
        if not task.assigned_to:
            continue
        assignee = task.assigned_to.lower()
        for person in b.category("people"):
            if person.name and person.name.lower() in assignee:
                return True
    return False


def has_project_location(a: EntitySet, b: EntitySet) -> bool:
    return a.has("projects") and b.has("locations")


def has_ownership_indicators(a: EntitySet, b: EntitySet) -> bool:
    """A's source document uses ownership wording.

    Only A is read; the engine tries (B, A) as well, so each side can
    claim ownership from its own source.
    """
    source = (a.metadata.source or "").lower()
    return any(keyword in source for keyword in OWNERSHIP_KEYWORDS)


# Cybersecurity predicates


def has_consultant_project(a: EntitySet, b: EntitySet) -> bool:
    return _field_contains(a.category("people"), "role", ("consultant",)) and _field_contains(
        b.category("projects"), "type", ("security", "assessment", "compliance")
    )


def has_security_monitoring(a: EntitySet, b: EntitySet) -> bool:
    return _field_contains(
        a.category("projects"), "name", ("monitoring", "siem", "detection")
    ) and _field_contains(b.category("projects"), "type", ("system", "network", "infrastructure"))


def has_system_integration(a: EntitySet, b: EntitySet) -> bool:
    keywords = ("integration", "platform", "system")
    return _field_contains(a.category("projects"), "name", keywords) and _field_contains(
        b.category("projects"), "name", keywords
    )


# Construction predicates


def has_material_requirement(a: EntitySet, b: EntitySet) -> bool:
    return a.has("projects") and b.has("materials")


def has_component_installation(a: EntitySet, b: EntitySet) -> bool:
    return _field_contains(
        a.category("materials"), "type", ("component", "fixture", "system")
    ) and b.has("locations")


def has_vendor_supply(a: EntitySet, b: EntitySet) -> bool:
    return _field_contains(
        a.category("people"), "role", ("vendor", "supplier", "contractor")
    ) and b.has("materials")


UNIVERSAL_RULES = (
    InferenceRule(
        name="person_project_management",
        relationship="manages",
        confidence=0.75,
        description="Person appears to manage or be involved with project",
        condition=has_person_and_project,
    ),
    InferenceRule(
        name="task_assignment",
        relationship="assigned_to",
        confidence=0.85,
        description="Task is assigned to specific person",
        condition=has_task_assignment,
        directional=True,
    ),
    InferenceRule(
        name="project_location",
        relationship="located_at",
        confidence=0.70,
        description="Project appears to be located at specific location",
        condition=has_project_location,
    ),
    InferenceRule(
        name="ownership_relationship",
        relationship="owns",
        confidence=0.80,
        description="Ownership relationship detected",
        condition=has_ownership_indicators,
    ),
)

DOMAIN_RULES: dict[str, tuple[InferenceRule, ...]] = {
    "cybersec": (
        InferenceRule(
            name="consultant_responsibility",
            relationship="responsible_for",
            confidence=0.85,
            description="Cybersecurity consultant responsible for project/assessment",
            condition=has_consultant_project,
            directional=True,
        ),
        InferenceRule(
            name="security_tool_monitoring",
            relationship="monitors",
            confidence=0.80,
            description="Security tool monitors system or network",
            condition=has_security_monitoring,
            directional=True,
        ),
        InferenceRule(
            name="system_integration",
            relationship="integrates_with",
            confidence=0.75,
            description="Systems integrate with each other",
            condition=has_system_integration,
        ),
    ),
    "construction": (
        InferenceRule(
            name="material_requirement",
            relationship="requires",
            confidence=0.80,
            description="Project or task requires specific materials",
            condition=has_material_requirement,
            directional=True,
        ),
        InferenceRule(
            name="component_installation",
            relationship="installed_in",
            confidence=0.85,
            description="Component installed in structure or location",
            condition=has_component_installation,
            directional=True,
        ),
        InferenceRule(
            name="vendor_supply",
            relationship="supplies",
            confidence=0.80,
            description="Vendor supplies materials or services",
            condition=has_vendor_supply,
            directional=True,
        ),
    ),
}


def default_rules() -> dict[str, list[InferenceRule]]:
    """Fresh, mutable copy of the built-in rule table keyed by domain."""
    rules = {"universal": list(UNIVERSAL_RULES)}
    for domain, domain_rules in DOMAIN_RULES.items():
        rules[domain] = list(domain_rules)
    return rules
