"""Tests for entity models and relationship bookkeeping."""

import pytest

from tidy_kg.errors import RelationshipValidationError
from tidy_kg.schema import SCHEMA_VERSION, Entity, EntitySet


def _manages(target: str = "set_b", confidence: float = 0.75, source: str = "content_inference"):
    return {"type": "manages", "target": target, "confidence": confidence, "source": source}


class TestEntityModel:
    """Test entity field normalization."""

    def test_name_fallback(self):
        """Materials and locations without a name use item / address."""
        assert Entity.model_validate({"item": "Rebar #5"}).name == "Rebar #5"
        assert Entity.model_validate({"address": "12 Main St"}).name == "12 Main St"
        assert Entity.model_validate({"name": "", "title": "Roof plan"}).name == "Roof plan"

    def test_name_stripped(self):
        """Whitespace around names is removed."""
        assert Entity(name="  Mike  ").name == "Mike"

    def test_placeholder_names(self):
        """Empty and 'unnamed' entities have no usable name."""
        assert not Entity(name="").has_name
        assert not Entity(name="Unnamed").has_name
        assert Entity(name="Mike").has_name

    def test_confidence_clamped(self):
        """Confidence is clamped to [0, 1]; garbage becomes 0.5."""
        assert Entity(name="a", confidence=3).confidence == 1.0
        assert Entity(name="a", confidence=-1).confidence == 0.0
        assert Entity(name="a", confidence="high").confidence == 0.5

    def test_camel_case_round_trip(self):
        """Entity sets read and write camelCase keys and keep unknown ones."""
        entity_set = EntitySet.model_validate(
            {"id": "s1", "conversationId": "c1", "userId": "u1", "customField": 7}
        )
        assert entity_set.conversation_id == "c1"
        data = entity_set.to_json_dict()
        assert data["conversationId"] == "c1"
        assert data["customField"] == 7
        assert "conversation_id" not in data

    def test_category_helpers(self, person_set):
        """Category lookups and counts."""
        assert person_set.has("people")
        assert not person_set.has("projects")
        assert person_set.category("projects") == []
        assert person_set.category_counts() == {"people": 1}
        assert person_set.entity_count == 1


class TestAddRelationship:
    """Test attaching relationships through EntitySchema."""

    def test_add_valid(self, schema, person_set):
        """A valid relationship is attached and tracked."""
        schema.add_relationship(person_set, **_manages())
        assert len(person_set.relationships) == 1
        rel = person_set.relationships[0]
        assert rel.type == "manages"
        assert rel.target == "set_b"
        assert rel.created_at
        assert person_set.metadata.relationship_count == 1
        assert person_set.metadata.relationship_sources == ["content_inference"]
        assert person_set.metadata.last_relationship_update is not None

    def test_invalid_rejected(self, schema, person_set):
        """Registry rejections raise and leave the holder unchanged."""
        with pytest.raises(RelationshipValidationError, match="Unknown relationship type"):
            schema.add_relationship(person_set, type="befriends", target="x", confidence=0.5, source="m")
        assert person_set.relationships == []

    def test_validation_error_is_value_error(self, schema, person_set):
        """Callers can catch validation failures as ValueError."""
        with pytest.raises(ValueError):
            schema.add_relationship(person_set, type="manages", target="x", confidence=0.5)

    @pytest.mark.parametrize("confidence", [1.5, -0.1])
    def test_out_of_range_confidence_rejected(self, schema, person_set, confidence):
        """Confidence outside [0, 1] raises and attaches nothing."""
        with pytest.raises(RelationshipValidationError, match="Confidence"):
            schema.add_relationship(person_set, **_manages(confidence=confidence))
        assert person_set.relationships == []
        assert person_set.metadata.relationship_count == 0

    @pytest.mark.parametrize("target", [None, "", "   "])
    def test_missing_target_rejected(self, schema, person_set, target):
        """A relationship needs somewhere to point."""
        with pytest.raises(RelationshipValidationError, match="missing target"):
            schema.add_relationship(person_set, **_manages(target=target))
        assert person_set.relationships == []

    def test_self_relationship_rejected(self, schema, person_set):
        """A holder cannot relate to itself."""
        with pytest.raises(RelationshipValidationError, match="itself"):
            schema.add_relationship(person_set, **_manages(target="set_a"))

    def test_lower_confidence_duplicate_ignored(self, schema, person_set):
        """Re-adding with lower or equal confidence keeps the original."""
        schema.add_relationship(person_set, **_manages(confidence=0.8))
        schema.add_relationship(person_set, **_manages(confidence=0.6))
        schema.add_relationship(person_set, **_manages(confidence=0.8, source="manual"))
        assert len(person_set.relationships) == 1
        assert person_set.relationships[0].confidence == 0.8
        assert person_set.relationships[0].source == "content_inference"
        assert person_set.relationships[0].updated_at is None

    def test_higher_confidence_duplicate_replaces(self, schema, person_set):
        """Strictly higher confidence replaces and stamps updated_at."""
        schema.add_relationship(person_set, **_manages(confidence=0.6))
        schema.add_relationship(person_set, **_manages(confidence=0.9, source="manual"))
        assert len(person_set.relationships) == 1
        rel = person_set.relationships[0]
        assert rel.confidence == 0.9
        assert rel.source == "manual"
        assert rel.updated_at is not None
        assert person_set.metadata.relationship_sources == ["content_inference", "manual"]

    def test_same_target_different_types(self, schema, person_set):
        """Uniqueness is per (type, target)."""
        schema.add_relationship(person_set, **_manages())
        schema.add_relationship(
            person_set, type="reports_to", target="set_b", confidence=0.5, source="manual"
        )
        assert len(person_set.relationships) == 2
        assert len(schema.relationships_by_target(person_set, "set_b")) == 2
        assert len(schema.relationships_by_type(person_set, "manages")) == 1
        assert schema.relationship_targets(person_set) == ["set_b", "set_b"]

    def test_entities_hold_relationships(self, schema):
        """Single entities use the same bookkeeping."""
        mike = Entity(id="ent_mike", name="Mike")
        schema.add_relationship(mike, **_manages(target="ent_project"))
        assert mike.relationships[0].target == "ent_project"
        assert mike.metadata.relationship_count == 1

    def test_remove_is_idempotent(self, schema, person_set):
        """Removing twice is the same as removing once."""
        schema.add_relationship(person_set, **_manages())
        schema.remove_relationship(person_set, "manages", "set_b")
        schema.remove_relationship(person_set, "manages", "set_b")
        assert person_set.relationships == []
        assert person_set.metadata.relationship_count == 0


class TestValidateAndMigrate:
    """Test entity set validation and legacy migration."""

    def test_valid_entity_set(self, schema, person_set):
        """A complete set with valid relationships passes."""
        schema.add_relationship(person_set, **_manages())
        report = schema.validate_entity(person_set)
        assert report.valid
        assert report.errors == []

    def test_missing_fields_reported(self, schema):
        """Every missing top-level field is listed."""
        report = schema.validate_entity(EntitySet(id="s1"))
        assert not report.valid
        assert "Missing required field: conversation_id" in report.errors
        assert "Missing required field: user_id" in report.errors
        assert "Missing required field: timestamp" in report.errors

    def test_invalid_stored_relationship_reported(self, schema, person_set):
        """Relationships loaded from disk are re-validated."""
        person_set.relationships.append(
            schema.create_relationship(type="befriends", target="set_b", confidence=0.5, source="m")
        )
        report = schema.validate_entity(person_set)
        assert not report.valid
        assert report.errors[0].startswith("Invalid relationship at index 0")

    def test_contained_entities_checked(self, schema, person_set):
        """Entity names and entity-level relationships are validated too."""
        mike = person_set.category("people")[0]
        mike.relationships.append(
            schema.create_relationship(type="befriends", target="ent_x", confidence=0.5, source="m")
        )
        person_set.entities["people"].append(Entity(name="   "))
        report = schema.validate_entity(person_set)
        assert not report.valid
        assert report.errors[0].startswith("Invalid relationship on entity people[0] at index 0")
        assert "Entity people[1] has an empty name" in report.errors

    def test_create_entity_resets_relationships(self, schema, person_set):
        """create_entity starts from an empty relationship list."""
        schema.add_relationship(person_set, **_manages())
        fresh = schema.create_entity(person_set)
        assert fresh.relationships == []
        assert fresh.metadata.relationship_count == 0
        assert fresh.schema_version == SCHEMA_VERSION
        assert fresh.id == "set_a"

    def test_migrate_legacy_keeps_relationships(self, schema, person_set):
        """Migration upgrades the version and keeps existing relationships."""
        schema.add_relationship(person_set, **_manages())
        migrated = schema.migrate_legacy_entity(person_set)
        assert migrated.schema_version == "2.0.0"
        assert migrated.metadata.legacy_schema == "1.0.0"
        assert migrated.metadata.migrated_at is not None
        assert [r.type for r in migrated.relationships] == ["manages"]
        assert migrated.metadata.relationship_count == 1
        assert migrated.category("people")[0].name == "Mike Torres"

    def test_migrate_plain_mapping(self, schema):
        """Raw dicts from older files migrate too."""
        migrated = schema.migrate_legacy_entity(
            {"id": "old", "conversationId": "c", "entities": {"people": [{"name": "Ann"}]}}
        )
        assert migrated.id == "old"
        assert migrated.relationships == []
        assert migrated.entity_count == 1

    def test_summarize(self, schema, person_set):
        """Summary counts relationships by type."""
        schema.add_relationship(person_set, **_manages())
        schema.add_relationship(person_set, **_manages(target="set_c"))
        summary = schema.summarize(person_set)
        assert summary["relationship_count"] == 2
        assert summary["relationship_counts"] == {"manages": 2}
        assert summary["entity_count"] == 1
