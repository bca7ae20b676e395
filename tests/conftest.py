"""Shared test fixtures for tidy-kg."""

import json
import tempfile
from pathlib import Path

import pytest

from tidy_kg.registry import RelationshipTypeRegistry
from tidy_kg.schema import Entity, EntitySchema, EntitySet


@pytest.fixture
def tmp_dir():
    """Temporary directory that cleans up after test."""
    with tempfile.TemporaryDirectory() as d:
        yield Path(d)


@pytest.fixture
def registry() -> RelationshipTypeRegistry:
    """Registry built from the bundled catalogs."""
    return RelationshipTypeRegistry.from_bundled()


@pytest.fixture
def schema(registry) -> EntitySchema:
    return EntitySchema(registry)


@pytest.fixture
def person_set() -> EntitySet:
    """Entity set mentioning a person (Mike)."""
    return EntitySet(
        id="set_a",
        conversation_id="conv-a",
        user_id="user-1",
        timestamp="2024-03-01T10:00:00Z",
        domain="default",
        entities={"people": [Entity(name="Mike Torres", role="Site lead")]},
    )


@pytest.fixture
def project_set() -> EntitySet:
    """Entity set mentioning a project (Foundation Work)."""
    return EntitySet(
        id="set_b",
        conversation_id="conv-b",
        user_id="user-1",
        timestamp="2024-03-02T10:00:00Z",
        domain="default",
        entities={"projects": [Entity(name="Foundation Work", type="construction")]},
    )


@pytest.fixture
def sample_entities() -> list[Entity]:
    """Flat entity population with one obvious duplicate pair."""
    return [
        Entity(id="ent_siem_1", name="SIEM", category="systems", confidence=0.8),
        Entity(
            id="ent_siem_2",
            name="Security Information and Event Management",
            category="systems",
            confidence=0.9,
        ),
        Entity(id="ent_p1", name="Alice Chen", category="people"),
        Entity(id="ent_p2", name="Bob Stone", category="people"),
    ]


def _write_set(directory: Path, payload: dict) -> None:
    directory.mkdir(parents=True, exist_ok=True)
    (directory / f"{payload['id']}.json").write_text(json.dumps(payload), encoding="utf-8")


@pytest.fixture
def data_dir(tmp_dir) -> Path:
    """Data directory with two cybersec entity sets on disk."""
    root = tmp_dir / "data"
    entities = root / "cybersec" / "entities"
    _write_set(
        entities,
        {
            "id": "set_a",
            "conversationId": "conv-a",
            "userId": "user-1",
            "timestamp": "2024-03-01T10:00:00Z",
            "domain": "cybersec",
            "entities": {
                "systems": [{"id": "ent_siem_1", "name": "SIEM", "confidence": 0.8}],
                "people": [{"id": "ent_p1", "name": "Alice Chen", "role": "SOC analyst"}],
            },
        },
    )
    _write_set(
        entities,
        {
            "id": "set_b",
            "conversationId": "conv-b",
            "userId": "user-1",
            "timestamp": "2024-03-02T10:00:00Z",
            "domain": "cybersec",
            "entities": {
                "systems": [
                    {
                        "id": "ent_siem_2",
                        "name": "Security Information and Event Management",
                        "confidence": 0.9,
                    }
                ],
                "people": [{"id": "ent_p2", "name": "Bob Stone"}],
            },
        },
    )
    return root
