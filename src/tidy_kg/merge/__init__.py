"""Duplicate entity detection, consolidation and merge history.

Bucketed edit-distance candidate detection, consolidation as a pure view
over accepted pair keys, and an auditable history with undo/redo.
"""

from tidy_kg.merge.consolidator import consolidate
from tidy_kg.merge.detector import DedupConfig, MergeCandidateDetector
from tidy_kg.merge.history import (
    HistoryStore,
    InMemoryHistoryStore,
    JsonHistoryStore,
    MergeHistory,
    MergeRestorer,
    UndoResult,
)
from tidy_kg.merge.models import MergeCandidate, MergeOperation, MergeRecord
from tidy_kg.merge.service import MergedPairsRestorer, MergeService

__all__ = [
    "DedupConfig",
    "HistoryStore",
    "InMemoryHistoryStore",
    "JsonHistoryStore",
    "MergeCandidate",
    "MergeCandidateDetector",
    "MergeHistory",
    "MergeOperation",
    "MergeRecord",
    "MergeRestorer",
    "MergeService",
    "MergedPairsRestorer",
    "UndoResult",
    "consolidate",
]
