"""tidy-kg: Typed relationships and duplicate cleanup for knowledge graphs.

Attaches validated, domain-scoped relationships to extracted entity sets,
infers new ones from their content, and finds and merges duplicate
entities with a full undo/redo audit trail.
"""

__version__ = "0.1.0"

from tidy_kg.config import TidyConfig
from tidy_kg.infer import ContentRelationshipInference, MigrationUtility
from tidy_kg.merge import MergeCandidateDetector, MergeHistory, MergeService, consolidate
from tidy_kg.registry import RelationshipTypeRegistry
from tidy_kg.schema import Entity, EntitySchema, EntitySet, Relationship, RelationshipGraph

__all__ = [
    "__version__",
    "ContentRelationshipInference",
    "Entity",
    "EntitySchema",
    "EntitySet",
    "MergeCandidateDetector",
    "MergeHistory",
    "MergeService",
    "MigrationUtility",
    "Relationship",
    "RelationshipGraph",
    "RelationshipTypeRegistry",
    "TidyConfig",
    "consolidate",
]
