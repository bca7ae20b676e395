"""Tests for merge candidate detection."""

import pytest

from tidy_kg.merge import DedupConfig, MergeCandidateDetector
from tidy_kg.schema import Entity


@pytest.fixture
def detector() -> MergeCandidateDetector:
    return MergeCandidateDetector()


class TestDedupConfig:
    """Test loading the dedup table."""

    def test_bundled(self):
        """The bundled table has the SIEM bucket and both threshold sets."""
        config = DedupConfig.load()
        assert "siem" in [b.key for b in config.buckets]
        assert config.default.accept == 0.7
        assert config.default.auto_merge == 0.9
        assert config.relaxed.accept == 0.4
        assert config.relaxed.auto_merge == 0.5

    def test_missing_file(self, tmp_dir):
        """A missing custom table raises ValueError."""
        with pytest.raises(ValueError, match="not found"):
            DedupConfig.load(tmp_dir / "nope.yaml")

    def test_custom_file(self, tmp_dir):
        """Custom tables replace the bundled one."""
        path = tmp_dir / "dedup.yaml"
        path.write_text(
            "buckets:\n"
            "  - key: hvac\n"
            "    patterns: [hvac, heating ventilation]\n"
            "thresholds:\n"
            "  default: {accept: 0.6, auto_merge: 0.95}\n"
        )
        config = DedupConfig.load(path)
        assert config.buckets[0].key == "hvac"
        assert config.default.accept == 0.6
        # No relaxed set falls back to default
        assert config.relaxed.auto_merge == 0.95


class TestBuckets:
    """Test bucket keys and relaxed keywords."""

    def test_configured_bucket(self, detector):
        """Acronym and expansion share the configured bucket."""
        assert detector.bucket_key("SIEM") == "siem"
        assert detector.bucket_key("Security Information and Event Management") == "siem"
        assert detector.bucket_key("Splunk SIEM cluster") == "siem"

    def test_first_word_bucket(self, detector):
        """Unconfigured names bucket by first significant word."""
        assert detector.bucket_key("Projects Falcon") == "project"

    def test_aliases_fold_to_key(self, detector):
        """The expansion compares as the acronym."""
        assert detector.comparable_name("Security Information and Event Management", "siem") == "siem"
        assert detector.comparable_name("Alice Chen", "alice") == "alice chen"

    def test_relaxed_keywords_match_substrings(self, detector):
        """Relaxed keywords match anywhere in the name by default."""
        assert detector.is_relaxed("soc analyst")
        assert detector.is_relaxed("new siem")
        assert detector.is_relaxed("soc2 report")
        assert detector.is_relaxed("siems")
        assert not detector.is_relaxed("splunk cluster")

    def test_relaxed_word_match(self):
        """relaxed_match: word requires the keyword to stand alone."""
        detector = MergeCandidateDetector(
            DedupConfig(relaxed_keywords=["soc"], relaxed_match="word")
        )
        assert detector.is_relaxed("soc analyst")
        assert not detector.is_relaxed("soc2 report")
        assert not detector.is_relaxed("associate director")


class TestFindCandidates:
    """Test candidate scoring and filtering."""

    def test_siem_auto_mergeable(self, detector, sample_entities):
        """SIEM and its expansion are an auto-mergeable candidate."""
        candidates = detector.find_candidates(sample_entities)
        assert len(candidates) == 1
        candidate = candidates[0]
        assert candidate.primary.id == "ent_siem_1"
        assert candidate.secondary.id == "ent_siem_2"
        assert candidate.similarity.name == 1.0
        assert candidate.similarity.category == 1.0
        assert candidate.similarity.overall == pytest.approx(1.0)
        assert candidate.auto_mergeable
        assert candidate.bucket == "siem"
        assert candidate.pair_key == "ent_siem_1|ent_siem_2"
        assert "Relaxed thresholds (acronym match)" in candidate.reasons

    def test_merged_pairs_never_returned(self, detector, sample_entities):
        """Already merged pairs are excluded."""
        assert detector.find_candidates(sample_entities, {"ent_siem_1|ent_siem_2"}) == []

    def test_primary_independent_of_order(self, detector, sample_entities):
        """The smaller id is primary whatever the input order."""
        forward = detector.find_candidates(sample_entities)
        backward = detector.find_candidates(list(reversed(sample_entities)))
        assert [c.pair_key for c in forward] == [c.pair_key for c in backward]
        assert backward[0].primary.id == "ent_siem_1"

    def test_default_thresholds(self, detector):
        """Near-identical names in different categories are candidates, not auto."""
        entities = [
            Entity(id="e1", name="Project Falcon", category="projects"),
            Entity(id="e2", name="Project Falcons", category="systems"),
        ]
        candidates = detector.find_candidates(entities)
        assert len(candidates) == 1
        candidate = candidates[0]
        assert candidate.similarity.category == 0.5
        assert candidate.similarity.overall == pytest.approx(0.8 * 14 / 15 + 0.1)
        assert not candidate.auto_mergeable
        assert "Different categories" in candidate.reasons

    def test_same_category_near_match_auto(self, detector):
        """Near-identical names in one category clear the auto threshold."""
        entities = [
            Entity(id="e1", name="Project Falcon", category="projects"),
            Entity(id="e2", name="Project Falcons", category="projects"),
        ]
        assert detector.find_candidates(entities)[0].auto_mergeable

    def test_keyword_inside_word_relaxes(self, detector):
        """'SOC2' names get the relaxed thresholds."""
        entities = [
            Entity(id="e1", name="SOC2 report", category="documents"),
            Entity(id="e2", name="SOC2 type II report", category="documents"),
        ]
        candidates = detector.find_candidates(entities)
        assert len(candidates) == 1
        assert candidates[0].similarity.overall == pytest.approx(0.8 * 11 / 19 + 0.2)
        assert candidates[0].auto_mergeable

    def test_below_threshold(self, detector):
        """Same bucket but dissimilar names are not candidates."""
        entities = [
            Entity(id="e1", name="Project Falcon", category="projects"),
            Entity(id="e2", name="Project Hydra Expansion", category="projects"),
        ]
        assert detector.find_candidates(entities) == []

    def test_different_buckets_not_compared(self, detector):
        """Identical categories alone do not make a candidate."""
        entities = [
            Entity(id="e1", name="Nessus Scanner", category="systems"),
            Entity(id="e2", name="Splunk", category="systems"),
        ]
        assert detector.find_candidates(entities) == []

    def test_sorted_descending(self, detector, sample_entities):
        """Candidates come out highest similarity first."""
        entities = sample_entities + [
            Entity(id="e1", name="Project Falcon", category="projects"),
            Entity(id="e2", name="Project Falcons", category="systems"),
        ]
        overall = [c.similarity.overall for c in detector.find_candidates(entities)]
        assert overall == sorted(overall, reverse=True)
        assert len(overall) == 2

    def test_nameless_entities_ignored(self, detector):
        """Entities without a name or id are skipped."""
        entities = [Entity(id="e1", name=""), Entity(id="e2", name=""), Entity(name="SIEM")]
        assert detector.find_candidates(entities) == []
