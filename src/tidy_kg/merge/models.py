"""Pydantic models for merge candidates and merge history.

Two kinds of objects live here:
  1. Merge candidates: ephemeral proposals produced by the detector
  2. Merge records: the persisted audit trail with undo/redo state
"""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

from tidy_kg.merge.similarity import pair_key
from tidy_kg.schema.models import CamelModel, Entity

MergeType = Literal["auto", "manual", "batch"]
MergeStatus = Literal["completed", "undone"]


# ============================================================================
# Candidates
# ============================================================================


class EntitySummary(CamelModel):
    """The parts of an entity a reviewer needs to judge a merge."""

    id: str
    name: str
    category: str
    confidence: float = 0.5
    description: str = ""
    designation: str | None = None

    @classmethod
    def from_entity(cls, entity: Entity) -> "EntitySummary":
        return cls(
            id=entity.id or "",
            name=entity.name,
            category=entity.category,
            confidence=entity.confidence,
            description=entity.description or "",
            designation=entity.designation,
        )


class Similarity(CamelModel):
    name: float
    category: float
    overall: float


class MergeCandidate(CamelModel):
    """Two entities that look like duplicates."""

    primary: EntitySummary
    secondary: EntitySummary
    similarity: Similarity
    confidence: float
    auto_mergeable: bool = False
    reasons: list[str] = Field(default_factory=list)
    bucket: str = ""

    @property
    def pair_key(self) -> str:
        return pair_key(self.primary.id, self.secondary.id)


# ============================================================================
# History
# ============================================================================


class SnapshotMetadata(CamelModel):
    source: str | None = None
    extraction_date: str | None = None
    last_updated: str | None = None
    tags: list[str] = Field(default_factory=list)
    merge_history: list[str] = Field(default_factory=list)


class EntitySnapshot(CamelModel):
    """Frozen copy of an entity as it was when a merge was recorded."""

    id: str
    name: str
    category: str = "unknown"
    designation: str | None = None
    confidence: float = 0.5
    description: str | None = None
    parent_id: str | None = None
    children: list[str] = Field(default_factory=list)
    relationships: list[dict[str, Any]] = Field(default_factory=list)
    metadata: SnapshotMetadata = Field(default_factory=SnapshotMetadata)

    @classmethod
    def from_entity(cls, entity: Entity) -> "EntitySnapshot":
        return cls(
            id=entity.id or "",
            name=entity.name,
            category=entity.category,
            designation=entity.designation,
            confidence=entity.confidence,
            description=entity.description,
            parent_id=getattr(entity, "parent_id", None),
            children=list(entity.children),
            relationships=[
                {
                    "target": r.target,
                    "type": r.type,
                    "confidence": r.confidence,
                    "metadata": dict(r.metadata),
                }
                for r in entity.relationships
            ],
            metadata=SnapshotMetadata(
                source=entity.metadata.source,
                extraction_date=entity.metadata.extraction_date,
                last_updated=entity.metadata.last_updated,
                tags=list(entity.metadata.tags),
                merge_history=list(entity.metadata.merge_history),
            ),
        )


class MergeImpact(CamelModel):
    relationships_added: int = 0
    relationships_removed: int = 0
    confidence_change: float = 0.0
    children_merged: int = 0
    tags_added: int = 0


class MergeMetadata(CamelModel):
    user_id: str = "system"
    source: str = "merge-interface"
    batch_id: str | None = None
    undoable: bool = True


class MergeRecord(CamelModel):
    """One merge in the audit trail."""

    id: str
    timestamp: datetime
    type: MergeType
    status: MergeStatus = "completed"
    primary_entity: EntitySnapshot
    secondary_entity: EntitySnapshot
    resulting_entity: EntitySnapshot
    similarity: Similarity | None = None
    confidence: float | None = None
    reasons: list[str] = Field(default_factory=list)
    impact: MergeImpact = Field(default_factory=MergeImpact)
    metadata: MergeMetadata = Field(default_factory=MergeMetadata)
    undo_timestamp: datetime | None = None
    redo_timestamp: datetime | None = None

    def involves(self, entity_id: str) -> bool:
        return entity_id in (
            self.primary_entity.id,
            self.secondary_entity.id,
            self.resulting_entity.id,
        )

    @property
    def pair_key(self) -> str:
        return pair_key(self.primary_entity.id, self.secondary_entity.id)

    def describe(self) -> str:
        return f'"{self.primary_entity.name}" and "{self.secondary_entity.name}"'


class MergeOperation(BaseModel):
    """What a caller hands to MergeHistory.record_merge."""

    type: MergeType
    primary_entity: Entity
    secondary_entity: Entity
    resulting_entity: Entity
    similarity: Similarity | None = None
    confidence: float | None = None
    reasons: list[str] = Field(default_factory=list)
    impact: MergeImpact | None = None
    user_id: str = "system"
    source: str = "merge-interface"
    batch_id: str | None = None
    undoable: bool = True


class HistoryState(CamelModel):
    """Everything a history store persists."""

    history: list[MergeRecord] = Field(default_factory=list)
    undo_stack: list[str] = Field(default_factory=list)
    redo_stack: list[str] = Field(default_factory=list)
    last_saved: datetime | None = None
