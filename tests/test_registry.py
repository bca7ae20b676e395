"""Tests for the relationship type registry."""

import pytest

from tidy_kg.registry import RelationshipTypeRegistry, list_bundled_catalogs, load_catalog
from tidy_kg.schema import Relationship


class TestBundledCatalogs:
    """Test the catalogs shipped with the package."""

    def test_bundled_list(self):
        """All three catalogs are bundled."""
        assert {"universal", "cybersec", "construction"} <= set(list_bundled_catalogs())

    def test_registry_has_types_from_every_catalog(self, registry):
        """Universal and domain types are all loaded."""
        assert "manages" in registry
        assert "monitors" in registry
        assert "requires" in registry
        assert "not_a_type" not in registry

    def test_universal_types_apply_everywhere(self, registry):
        """Universal types show up in any domain, domain types only in theirs."""
        cybersec = registry.relationships_for_domain("cybersec")
        assert "manages" in cybersec
        assert "monitors" in cybersec
        assert "requires" not in cybersec

        default = registry.relationships_for_domain("default")
        assert "manages" in default
        assert "monitors" not in default

    def test_domains(self, registry):
        """Domains are collected from the definitions."""
        assert registry.domains() == ["construction", "cybersec", "universal"]

    def test_inverse_and_bidirectional(self, registry):
        """Inverse names and symmetry come from the catalog."""
        assert registry.inverse_of("manages") == "managed_by"
        assert registry.inverse_of("not_a_type") is None
        assert registry.is_bidirectional("integrates_with") is True
        assert registry.is_bidirectional("manages") is False

    def test_unknown_bundled_catalog(self):
        """Asking for a catalog that is not bundled raises."""
        with pytest.raises(ValueError, match="not found"):
            RelationshipTypeRegistry.from_bundled(names=("universal", "aviation"))


class TestValidate:
    """Test relationship validation against the registry."""

    def test_valid_relationship(self, registry):
        """A known type with confidence and source passes."""
        result = registry.validate(
            {"type": "manages", "target": "set_b", "confidence": 0.8, "source": "manual"}
        )
        assert result.valid
        assert result.error is None

    def test_accepts_models(self, registry):
        """Relationship models validate the same as mappings."""
        rel = Relationship(type="uses", target="x", confidence=0.5, source="manual")
        assert registry.validate(rel).valid

    def test_unknown_type(self, registry):
        """Unknown types fail with a message naming the type."""
        result = registry.validate({"type": "befriends", "confidence": 0.8, "source": "manual"})
        assert not result.valid
        assert "Unknown relationship type: befriends" in result.error

    def test_missing_required_field(self, registry):
        """Missing source is reported."""
        result = registry.validate({"type": "manages", "target": "x", "confidence": 0.8})
        assert not result.valid
        assert result.error == "Missing required field: source"

    def test_confidence_out_of_range(self, registry):
        """Confidence above 1 is rejected."""
        result = registry.validate(
            {"type": "manages", "target": "x", "confidence": 1.5, "source": "manual"}
        )
        assert not result.valid
        assert "between 0 and 1" in result.error

    def test_temporal_required_field(self, registry):
        """Temporal types need their time field, on the relationship or its temporal block."""
        base = {"type": "configured_on", "target": "x", "confidence": 0.9, "source": "manual"}
        assert not registry.validate(base).valid
        assert registry.validate({**base, "timestamp": "2024-01-01"}).valid
        assert registry.validate({**base, "temporal": {"timestamp": "2024-01-01"}}).valid

    def test_camel_case_required_field(self, registry):
        """startDate satisfies a start_date requirement."""
        rel = {
            "type": "active_during",
            "target": "q1",
            "confidence": 0.7,
            "source": "manual",
            "startDate": "2024-01-01",
        }
        assert registry.validate(rel).valid

    def test_endpoint_kinds(self, registry):
        """Endpoint kinds are checked only when supplied."""
        rel = {"type": "manages", "target": "x", "confidence": 0.8, "source": "manual"}
        assert registry.validate(rel, source_kind="person", target_kind="project").valid
        result = registry.validate(rel, source_kind="task")
        assert not result.valid
        assert "cannot start at a task" in result.error

    def test_wrong_argument_type(self, registry):
        """Non-mapping input is a programming error."""
        with pytest.raises(TypeError):
            registry.validate(["manages"])


class TestCustomCatalogs:
    """Test loading user-provided catalogs."""

    def test_extra_catalog(self, tmp_dir):
        """Extra catalogs extend the bundled vocabulary."""
        path = tmp_dir / "aviation.yaml"
        path.write_text(
            "name: aviation\n"
            "relationship_types:\n"
            "  inspected_by:\n"
            "    label: Inspected By\n"
            "    inverse: inspects\n"
            "  flies: \"[Pilot] flies [Aircraft]\"\n"
        )
        registry = RelationshipTypeRegistry.from_bundled(extra_paths=[path])
        assert "inspected_by" in registry
        assert registry.definition("inspected_by").domains == frozenset({"aviation"})
        assert registry.definition("flies").label == "Flies"
        assert "flies" in registry.relationships_for_domain("aviation")
        assert "flies" not in registry.relationships_for_domain("cybersec")

    def test_duplicate_type_rejected(self, tmp_dir):
        """A type defined in two catalogs is an error."""
        path = tmp_dir / "dupe.yaml"
        path.write_text("name: dupe\nrelationship_types:\n  manages: Duplicate\n")
        with pytest.raises(ValueError, match="more than one catalog"):
            RelationshipTypeRegistry.from_bundled(extra_paths=[path])

    def test_missing_catalog(self, tmp_dir):
        """Missing catalog files raise ValueError."""
        with pytest.raises(ValueError, match="not found"):
            load_catalog(tmp_dir / "nope.yaml")

    def test_malformed_catalog(self, tmp_dir):
        """relationship_types must be a mapping."""
        path = tmp_dir / "bad.yaml"
        path.write_text("name: bad\nrelationship_types: [a, b]\n")
        with pytest.raises(ValueError, match="no relationship_types mapping"):
            load_catalog(path)

    def test_registry_is_a_value(self, tmp_dir):
        """Two registries do not share state."""
        path = tmp_dir / "extra.yaml"
        path.write_text("name: extra\nrelationship_types:\n  sponsors: Sponsors\n")
        with_extra = RelationshipTypeRegistry.from_bundled(extra_paths=[path])
        plain = RelationshipTypeRegistry.from_bundled()
        assert "sponsors" in with_extra
        assert "sponsors" not in plain
        assert len(with_extra) == len(plain) + 1
