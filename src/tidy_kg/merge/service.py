"""Merge operations for one domain, as the dashboard API consumes them.

MergeService ties the pieces together: it loads the domain's entity
population from storage, finds candidates, records accepted merges in
the merged-pairs file and the merge history, and exposes undo/redo.

The merged-pairs file is the source of truth for what is merged.
Consolidation is recomputed from it on every read, so undoing a merge
only has to remove its pair key (see MergedPairsRestorer).
"""

import logging
import uuid
from pathlib import Path
from typing import Any

from pydantic import Field

from tidy_kg.config import TidyConfig
from tidy_kg.errors import EntityNotFoundError, MergeUnavailableError
from tidy_kg.merge.consolidator import consolidate
from tidy_kg.merge.detector import DedupConfig, MergeCandidateDetector
from tidy_kg.merge.history import JsonHistoryStore, MergeHistory, UndoResult
from tidy_kg.merge.models import MergeCandidate, MergeOperation, MergeRecord, Similarity
from tidy_kg.merge.similarity import pair_key
from tidy_kg.registry import RelationshipTypeDefinition, RelationshipTypeRegistry
from tidy_kg.schema.models import CamelModel, Entity
from tidy_kg.storage import (
    flatten_entity_sets,
    history_path,
    load_entity_sets,
    read_merged_pairs,
    write_merged_pairs,
)

logger = logging.getLogger(__name__)


class MergedPair(CamelModel):
    primary: str
    secondary: str
    confidence: float


class AutoMergeResult(CamelModel):
    merges_performed: int = 0
    auto_mergeable_candidates: int = 0
    merged_pairs: list[MergedPair] = Field(default_factory=list)
    batch_id: str | None = None
    domain: str
    message: str = ""


class MergeResult(CamelModel):
    """A performed manual merge and the consolidated entity it produced."""

    record_id: str
    entity: Entity
    message: str


class MergePreview(CamelModel):
    primary: Entity
    secondary: Entity
    similarity: Similarity
    auto_mergeable: bool
    reasons: list[str] = Field(default_factory=list)
    merged_entity: Entity


class HistoryPage(CamelModel):
    records: list[MergeRecord] = Field(default_factory=list)
    statistics: dict[str, Any] = Field(default_factory=dict)
    total: int = 0
    page: int = 0
    limit: int | None = None


class MergedPairsRestorer:
    """Undo/redo a merge by editing the domain's merged-pairs file."""

    def __init__(self, data_dir: Path, domain: str) -> None:
        self.data_dir = Path(data_dir)
        self.domain = domain

    def undo(self, record: MergeRecord) -> dict[str, Any]:
        pairs = read_merged_pairs(self.data_dir, self.domain)
        key = record.pair_key
        removed = key in pairs
        pairs.discard(key)
        write_merged_pairs(self.data_dir, self.domain, pairs)
        if not removed:
            logger.warning(f"Pair {key} was not in the merged pairs file")
        return {
            "pair_removed": key if removed else None,
            "entities_restored": [record.primary_entity.id, record.secondary_entity.id],
        }

    def redo(self, record: MergeRecord) -> dict[str, Any]:
        pairs = read_merged_pairs(self.data_dir, self.domain)
        key = record.pair_key
        pairs.add(key)
        write_merged_pairs(self.data_dir, self.domain, pairs)
        return {"pair_added": key, "entity_created": record.resulting_entity.id}


class MergeService:
    """Duplicate detection and merge bookkeeping for one domain."""

    def __init__(
        self,
        data_dir: Path,
        domain: str = "default",
        registry: RelationshipTypeRegistry | None = None,
        dedup_config: DedupConfig | None = None,
        history: MergeHistory | None = None,
        auto_merge_limit: int = 10,
    ) -> None:
        self.data_dir = Path(data_dir)
        self.domain = domain
        self.registry = registry or RelationshipTypeRegistry.from_bundled()
        self.detector = MergeCandidateDetector(dedup_config)
        self.history = history or MergeHistory(
            store=JsonHistoryStore(history_path(self.data_dir, domain)),
            restorer=MergedPairsRestorer(self.data_dir, domain),
        )
        self.auto_merge_limit = auto_merge_limit

    @classmethod
    def from_config(cls, config: TidyConfig, domain: str | None = None) -> "MergeService":
        domain = domain or config.domain
        registry = RelationshipTypeRegistry.from_bundled(extra_paths=config.catalog_paths)
        history = MergeHistory(
            store=JsonHistoryStore(history_path(config.data_dir, domain)),
            restorer=MergedPairsRestorer(config.data_dir, domain),
            max_history_size=config.max_history_size,
            max_undo_size=config.max_undo_size,
        )
        return cls(
            config.data_dir,
            domain,
            registry=registry,
            dedup_config=DedupConfig.load(config.dedup_config_path),
            history=history,
            auto_merge_limit=config.auto_merge_limit,
        )

    def entities(self) -> list[Entity]:
        """The domain's flat entity population, before consolidation."""
        return flatten_entity_sets(load_entity_sets(self.data_dir, self.domain))

    def merged_pairs(self) -> set[str]:
        return read_merged_pairs(self.data_dir, self.domain)

    def consolidated_entities(self) -> list[Entity]:
        return consolidate(self.entities(), self.merged_pairs())

    def relationship_types(self) -> dict[str, RelationshipTypeDefinition]:
        return self.registry.relationships_for_domain(self.domain)

    def get_candidates(self) -> list[MergeCandidate]:
        """Merge candidates, never including already merged pairs."""
        return self.detector.find_candidates(self.entities(), self.merged_pairs())

    def auto_merge(self, limit: int | None = None) -> AutoMergeResult:
        """Accept the top auto-mergeable candidates as one batch.

        A candidate that fails to record is logged and skipped; the rest
        of the batch still goes through.
        """
        limit = limit or self.auto_merge_limit
        entities = self.entities()
        pairs = self.merged_pairs()
        auto = [c for c in self.detector.find_candidates(entities, pairs) if c.auto_mergeable]

        result = AutoMergeResult(domain=self.domain, auto_mergeable_candidates=len(auto))
        if not auto:
            result.message = "No auto-mergeable candidates found"
            return result

        by_id = {entity.id: entity for entity in entities}
        batch_id = f"batch_{uuid.uuid4().hex[:12]}"
        for candidate in auto[:limit]:
            key = candidate.pair_key
            if key in pairs:
                continue
            pairs.add(key)
            try:
                self.history.record_merge(
                    MergeOperation(
                        type="auto",
                        primary_entity=by_id[candidate.primary.id],
                        secondary_entity=by_id[candidate.secondary.id],
                        resulting_entity=self._resulting(entities, pairs, candidate.primary.id),
                        similarity=candidate.similarity,
                        confidence=candidate.confidence,
                        reasons=candidate.reasons,
                        source="auto-merge",
                        batch_id=batch_id,
                    )
                )
            except Exception as e:
                logger.warning(f"Failed to record auto-merge of {key}: {e}")
                pairs.discard(key)
                continue
            result.merged_pairs.append(
                MergedPair(
                    primary=candidate.primary.name,
                    secondary=candidate.secondary.name,
                    confidence=candidate.confidence,
                )
            )

        write_merged_pairs(self.data_dir, self.domain, pairs)
        result.merges_performed = len(result.merged_pairs)
        result.batch_id = batch_id
        result.message = f"Auto-merged {result.merges_performed} high-confidence entity pairs"
        logger.info(f"Auto-merged {result.merges_performed} entity pairs in domain: {self.domain}")
        return result

    def manual_merge(
        self, primary_id: str, secondary_id: str, user_id: str = "system"
    ) -> MergeResult:
        """Merge two entities on a user's say-so.

        The pair is recorded in consolidation order: whichever id sorts
        first survives and is the record's primary, whatever order the
        ids were passed in.

        Raises:
            EntityNotFoundError: If either id is not in the population
            ValueError: If the ids are equal or the pair is already merged
        """
        entities = self.entities()
        primary, secondary = self._pair(entities, primary_id, secondary_id)
        pairs = self.merged_pairs()
        key = pair_key(primary.id, secondary.id)
        if key in pairs:
            raise ValueError(f"Entities already merged: {key}")

        pairs.add(key)
        similarity, _ = self.detector.score(
            primary, secondary, self.detector.bucket_key(primary.name)
        )
        resulting = self._resulting(entities, pairs, primary.id)
        write_merged_pairs(self.data_dir, self.domain, pairs)
        record = self.history.record_merge(
            MergeOperation(
                type="manual",
                primary_entity=primary,
                secondary_entity=secondary,
                resulting_entity=resulting,
                similarity=similarity,
                confidence=similarity.overall,
                reasons=["Manual merge"],
                user_id=user_id,
            )
        )
        logger.info(f"Merged '{secondary.name}' into '{resulting.name}' ({self.domain})")
        return MergeResult(
            record_id=record.id,
            entity=resulting,
            message=f"Merged {record.describe()}",
        )

    def preview_merge(self, primary_id: str, secondary_id: str) -> MergePreview:
        """What a manual merge would produce, without saving anything.

        Raises:
            EntityNotFoundError: If either id is not in the population
        """
        entities = self.entities()
        primary, secondary = self._pair(entities, primary_id, secondary_id)
        bucket = self.detector.bucket_key(primary.name)
        similarity, relaxed = self.detector.score(primary, secondary, bucket)
        thresholds = self.detector.config.relaxed if relaxed else self.detector.config.default
        pairs = self.merged_pairs() | {pair_key(primary.id, secondary.id)}
        return MergePreview(
            primary=primary,
            secondary=secondary,
            similarity=similarity,
            auto_mergeable=similarity.overall >= thresholds.auto_merge,
            reasons=[
                f"Name similarity: {similarity.name * 100:.0f}%",
                "Same category" if primary.category == secondary.category else "Different categories",
            ],
            merged_entity=self._resulting(entities, pairs, primary.id),
        )

    def history_page(
        self,
        type: str | None = None,
        entity_id: str | None = None,
        page: int = 0,
        limit: int | None = 20,
    ) -> HistoryPage:
        matching = self.history.get_history(type=type, entity_id=entity_id)
        records = self.history.get_history(type=type, entity_id=entity_id, page=page, limit=limit)
        return HistoryPage(
            records=records,
            statistics=self.history.get_statistics(),
            total=len(matching),
            page=page,
            limit=limit,
        )

    def undo(self) -> UndoResult:
        """Undo the last merge; an empty stack is reported, not raised."""
        try:
            return self.history.undo_last_merge()
        except MergeUnavailableError as e:
            return UndoResult(success=False, message=str(e))

    def redo(self) -> UndoResult:
        """Redo the last undo; an empty stack is reported, not raised."""
        try:
            return self.history.redo_last_undo()
        except MergeUnavailableError as e:
            return UndoResult(success=False, message=str(e))

    def chain(self, entity_id: str) -> list[MergeRecord]:
        return self.history.get_merge_chain(entity_id)

    def _pair(self, entities: list[Entity], primary_id: str, secondary_id: str) -> tuple[Entity, Entity]:
        if primary_id == secondary_id:
            raise ValueError("Cannot merge an entity with itself")
        by_id = {entity.id: entity for entity in entities}
        missing = [i for i in (primary_id, secondary_id) if i not in by_id]
        if missing:
            raise EntityNotFoundError(f"Entity not found: {', '.join(missing)}")
        # Consolidation keeps the smaller id, so that one is the primary
        first, second = sorted((primary_id, secondary_id))
        return by_id[first], by_id[second]

    def _resulting(self, entities: list[Entity], pairs: set[str], entity_id: str) -> Entity:
        """The consolidated entity that ``entity_id`` ends up in under ``pairs``."""
        for entity in consolidate(entities, pairs):
            if entity.id == entity_id or entity_id in entity.children:
                return entity
        raise EntityNotFoundError(f"Entity not found: {entity_id}")
