"""Merge candidate detection over a flat entity population.

Entities are bucketed by a cheap key (a configured keyword bucket, or
the first significant word of the name) and only entities sharing a
bucket are scored against each other. Scoring is a weighted blend of
edit-distance name similarity and category agreement, with looser
thresholds for acronym-heavy names listed as relaxed keywords.

The bucket table and thresholds are data (``bundled/dedup.yaml``), not
code, so new domains can tune them without touching the detector.
"""

import logging
import re
from collections.abc import Iterable
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field

from tidy_kg.merge.models import EntitySummary, MergeCandidate, Similarity
from tidy_kg.merge.similarity import first_significant_word, normalize_name, pair_key, string_similarity
from tidy_kg.schema.models import Entity

logger = logging.getLogger(__name__)

BUNDLED_DEDUP_CONFIG = Path(__file__).parent / "bundled" / "dedup.yaml"


class BucketRule(BaseModel):
    """Names containing any pattern share the bucket ``key``."""

    key: str
    patterns: list[str] = Field(min_length=1)
    aliases: list[str] = Field(default_factory=list)


class Thresholds(BaseModel):
    accept: float = Field(ge=0.0, le=1.0)
    auto_merge: float = Field(ge=0.0, le=1.0)


class Weights(BaseModel):
    name: float = 0.8
    category: float = 0.2


class CategoryScores(BaseModel):
    same: float = 1.0
    different: float = 0.5


class DedupConfig(BaseModel):
    """Bucket table, relaxed keywords and score thresholds."""

    buckets: list[BucketRule] = Field(default_factory=list)
    relaxed_keywords: list[str] = Field(default_factory=list)
    relaxed_match: Literal["substring", "word"] = "substring"
    thresholds: dict[str, Thresholds] = Field(
        default_factory=lambda: {
            "default": Thresholds(accept=0.7, auto_merge=0.9),
            "relaxed": Thresholds(accept=0.4, auto_merge=0.5),
        }
    )
    weights: Weights = Field(default_factory=Weights)
    category_scores: CategoryScores = Field(default_factory=CategoryScores)

    @classmethod
    def load(cls, path: Path | None = None) -> "DedupConfig":
        """Load a dedup table from YAML (the bundled one by default).

        Raises:
            ValueError: If the file is missing
        """
        path = Path(path) if path else BUNDLED_DEDUP_CONFIG
        if not path.exists():
            raise ValueError(f"Dedup config not found: {path}")
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        config = cls.model_validate(data)
        logger.debug(f"Loaded dedup config from {path} ({len(config.buckets)} buckets)")
        return config

    @property
    def default(self) -> Thresholds:
        return self.thresholds["default"]

    @property
    def relaxed(self) -> Thresholds:
        return self.thresholds.get("relaxed", self.thresholds["default"])


class MergeCandidateDetector:
    """Finds likely duplicate pairs in an entity population."""

    def __init__(self, config: DedupConfig | None = None) -> None:
        self.config = config or DedupConfig.load()
        self._buckets = {rule.key: rule for rule in self.config.buckets}
        boundary = r"\b" if self.config.relaxed_match == "word" else ""
        self._relaxed = [
            re.compile(rf"{boundary}{re.escape(keyword.lower())}{boundary}")
            for keyword in self.config.relaxed_keywords
        ]

    def bucket_key(self, name: str) -> str:
        normalized = normalize_name(name)
        for rule in self.config.buckets:
            if any(pattern in normalized for pattern in rule.patterns):
                return rule.key
        return first_significant_word(normalized)

    def comparable_name(self, name: str, bucket: str) -> str:
        """Normalized name with the bucket's alias phrases folded onto its key."""
        normalized = normalize_name(name)
        rule = self._buckets.get(bucket)
        if rule is None:
            return normalized
        for alias in rule.aliases:
            normalized = normalized.replace(alias, rule.key)
        return normalized

    def is_relaxed(self, *comparable_names: str) -> bool:
        return any(
            pattern.search(name) for pattern in self._relaxed for name in comparable_names
        )

    def score(self, first: Entity, second: Entity, bucket: str) -> tuple[Similarity, bool]:
        """Similarity of two entities in ``bucket`` and whether relaxed thresholds apply."""
        name1 = self.comparable_name(first.name, bucket)
        name2 = self.comparable_name(second.name, bucket)
        name_score = string_similarity(name1, name2)
        scores = self.config.category_scores
        category_score = scores.same if first.category == second.category else scores.different
        weights = self.config.weights
        overall = weights.name * name_score + weights.category * category_score
        similarity = Similarity(name=name_score, category=category_score, overall=overall)
        return similarity, self.is_relaxed(name1, name2)

    def find_candidates(
        self,
        entities: Iterable[Entity],
        merged_pairs: set[str] | None = None,
    ) -> list[MergeCandidate]:
        """Score every same-bucket pair and keep those above threshold.

        Pairs whose key is in ``merged_pairs`` are never returned. Each
        candidate's primary is the entity with the smaller id, matching
        the way consolidation folds a pair.

        Returns:
            Candidates sorted by overall similarity, highest first
        """
        merged_pairs = merged_pairs or set()
        groups: dict[str, list[Entity]] = {}
        for entity in entities:
            if not entity.name or not entity.id:
                continue
            groups.setdefault(self.bucket_key(entity.name), []).append(entity)

        candidates = []
        for bucket, group in groups.items():
            if len(group) < 2:
                continue
            for i, first in enumerate(group):
                for second in group[i + 1 :]:
                    if first.id == second.id:
                        continue
                    if pair_key(first.id, second.id) in merged_pairs:
                        continue
                    candidate = self._evaluate(first, second, bucket)
                    if candidate is not None:
                        candidates.append(candidate)

        candidates.sort(key=lambda c: c.similarity.overall, reverse=True)
        logger.debug(
            f"Found {len(candidates)} merge candidates in {len(groups)} buckets "
            f"({sum(c.auto_mergeable for c in candidates)} auto-mergeable)"
        )
        return candidates

    def _evaluate(self, first: Entity, second: Entity, bucket: str) -> MergeCandidate | None:
        similarity, relaxed = self.score(first, second, bucket)
        thresholds = self.config.relaxed if relaxed else self.config.default
        if similarity.overall < thresholds.accept:
            return None

        if second.id < first.id:
            first, second = second, first

        reasons = [
            f"Name similarity: {similarity.name * 100:.0f}%",
            "Same category" if first.category == second.category else "Different categories",
            f"Overall confidence: {similarity.overall * 100:.0f}%",
        ]
        if relaxed:
            reasons.append("Relaxed thresholds (acronym match)")

        return MergeCandidate(
            primary=EntitySummary.from_entity(first),
            secondary=EntitySummary.from_entity(second),
            similarity=similarity,
            confidence=similarity.overall,
            auto_mergeable=similarity.overall >= thresholds.auto_merge,
            reasons=reasons,
            bucket=bucket,
        )
