"""Merge history: audit trail, statistics and undo/redo.

MergeHistory keeps a bounded list of merge records plus undo and redo
stacks. Persistence and the actual restoration of entities are injected:

  - a HistoryStore loads and saves the history state
  - a MergeRestorer reverses (undo) or re-applies (redo) one merge

With no restorer, undo/redo only flip record state. MergeService wires
in a restorer that edits the merged-pairs file.
"""

import csv
import io
import json
import logging
import time
import uuid
from collections import Counter
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any, Literal, Protocol

from pydantic import BaseModel, ValidationError

from tidy_kg.errors import MergeUnavailableError, RestoreFailureError
from tidy_kg.merge.models import (
    EntitySnapshot,
    HistoryState,
    MergeImpact,
    MergeMetadata,
    MergeOperation,
    MergeRecord,
    MergeType,
)

logger = logging.getLogger(__name__)

TimeRange = Literal["all", "today", "week", "month"]

CSV_HEADERS = [
    "ID",
    "Timestamp",
    "Type",
    "Status",
    "Primary Entity",
    "Secondary Entity",
    "Resulting Entity",
    "Similarity",
    "Confidence Change",
    "Relationships Added",
    "User ID",
    "Source",
]


class HistoryStore(Protocol):
    def load(self) -> HistoryState | None: ...

    def save(self, state: HistoryState) -> None: ...


class MergeRestorer(Protocol):
    def undo(self, record: MergeRecord) -> dict[str, Any] | None: ...

    def redo(self, record: MergeRecord) -> dict[str, Any] | None: ...


class InMemoryHistoryStore:
    """Keeps the last saved state in memory (tests, throwaway sessions)."""

    def __init__(self, state: HistoryState | None = None) -> None:
        self.state = state
        self.saves = 0

    def load(self) -> HistoryState | None:
        return self.state.model_copy(deep=True) if self.state else None

    def save(self, state: HistoryState) -> None:
        self.state = state.model_copy(deep=True)
        self.saves += 1


class JsonHistoryStore:
    """History state as a JSON file (``merge-history-<domain>.json``)."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def load(self) -> HistoryState | None:
        if not self.path.exists():
            return None
        try:
            return HistoryState.model_validate_json(self.path.read_text(encoding="utf-8"))
        except ValidationError as e:
            logger.warning(f"Ignoring unreadable merge history {self.path}: {e}")
            return None

    def save(self, state: HistoryState) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(
            json.dumps(state.to_json_dict(), indent=2, ensure_ascii=False), encoding="utf-8"
        )


class UndoResult(BaseModel):
    """Outcome of a successful undo or redo."""

    success: bool = True
    operation: MergeRecord | None = None
    message: str
    result: dict[str, Any] | None = None


def generate_merge_id() -> str:
    return f"merge_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


def compute_impact(primary: EntitySnapshot, resulting: EntitySnapshot) -> MergeImpact:
    """Derive merge impact from the before/after snapshots of the survivor."""
    relationship_delta = len(resulting.relationships) - len(primary.relationships)
    return MergeImpact(
        relationships_added=max(relationship_delta, 0),
        relationships_removed=max(-relationship_delta, 0),
        confidence_change=resulting.confidence - primary.confidence,
        children_merged=max(len(resulting.children) - len(primary.children), 0),
        tags_added=len(set(resulting.metadata.tags) - set(primary.metadata.tags)),
    )


def _range_start(time_range: TimeRange, now: datetime) -> datetime | None:
    if time_range == "all":
        return None
    if time_range == "today":
        return now.replace(hour=0, minute=0, second=0, microsecond=0)
    if time_range == "week":
        return now - timedelta(days=7)
    if time_range == "month":
        return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    raise ValueError(f"Unknown time range: {time_range!r}. Choose from: all, today, week, month")


class MergeHistory:
    """Bounded merge audit trail with undo and redo stacks."""

    def __init__(
        self,
        store: HistoryStore | None = None,
        restorer: MergeRestorer | None = None,
        max_history_size: int = 1000,
        max_undo_size: int = 50,
    ) -> None:
        self.store = store if store is not None else InMemoryHistoryStore()
        self.restorer = restorer
        self.max_history_size = max_history_size
        self.max_undo_size = max_undo_size

        self.history: list[MergeRecord] = []
        self.undo_stack: list[MergeRecord] = []
        self.redo_stack: list[MergeRecord] = []
        self._load()

    @property
    def can_undo(self) -> bool:
        return bool(self.undo_stack)

    @property
    def can_redo(self) -> bool:
        return bool(self.redo_stack)

    def record_merge(self, operation: MergeOperation) -> MergeRecord:
        """Snapshot a merge into the history and, if undoable, the undo stack.

        Recording a new undoable merge clears the redo stack.
        """
        primary = EntitySnapshot.from_entity(operation.primary_entity)
        resulting = EntitySnapshot.from_entity(operation.resulting_entity)
        record = MergeRecord(
            id=generate_merge_id(),
            timestamp=datetime.now(UTC),
            type=operation.type,
            primary_entity=primary,
            secondary_entity=EntitySnapshot.from_entity(operation.secondary_entity),
            resulting_entity=resulting,
            similarity=operation.similarity,
            confidence=operation.confidence,
            reasons=list(operation.reasons),
            impact=operation.impact or compute_impact(primary, resulting),
            metadata=MergeMetadata(
                user_id=operation.user_id,
                source=operation.source,
                batch_id=operation.batch_id,
                undoable=operation.undoable,
            ),
        )

        self.history.append(record)
        if len(self.history) > self.max_history_size:
            self.history.pop(0)

        if record.metadata.undoable:
            self.undo_stack.append(record)
            self.redo_stack = []
            if len(self.undo_stack) > self.max_undo_size:
                self.undo_stack.pop(0)

        self._save()
        logger.debug(f"Recorded {record.type} merge {record.id}: {record.describe()}")
        return record

    def undo_last_merge(self) -> UndoResult:
        """Reverse the most recent undoable merge.

        Raises:
            MergeUnavailableError: If there is nothing to undo
            RestoreFailureError: If the restorer fails; the record stays on
                the undo stack
        """
        if not self.undo_stack:
            raise MergeUnavailableError("No operations to undo")

        record = self.undo_stack.pop()
        try:
            result = self.restorer.undo(record) if self.restorer else None
        except Exception as e:
            self.undo_stack.append(record)
            raise RestoreFailureError(f"Undo of {record.id} failed: {e}", record.id) from e

        record.status = "undone"
        record.undo_timestamp = datetime.now(UTC)
        self.redo_stack.append(record)
        self._save()
        return UndoResult(
            operation=record, message=f"Undid merge of {record.describe()}", result=result
        )

    def redo_last_undo(self) -> UndoResult:
        """Re-apply the most recently undone merge.

        Raises:
            MergeUnavailableError: If there is nothing to redo
            RestoreFailureError: If the restorer fails; the record stays on
                the redo stack
        """
        if not self.redo_stack:
            raise MergeUnavailableError("No operations to redo")

        record = self.redo_stack.pop()
        try:
            result = self.restorer.redo(record) if self.restorer else None
        except Exception as e:
            self.redo_stack.append(record)
            raise RestoreFailureError(f"Redo of {record.id} failed: {e}", record.id) from e

        record.status = "completed"
        record.redo_timestamp = datetime.now(UTC)
        self.undo_stack.append(record)
        self._save()
        return UndoResult(
            operation=record, message=f"Redid merge of {record.describe()}", result=result
        )

    def get_history(
        self,
        type: MergeType | None = None,
        entity_id: str | None = None,
        user_id: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
        sort_order: Literal["asc", "desc"] = "desc",
        page: int = 0,
        limit: int | None = None,
    ) -> list[MergeRecord]:
        """Filtered, sorted and optionally paginated records.

        Newest first by default. ``page`` is zero-based and only applies
        when ``limit`` is set.
        """
        records = list(self.history)
        if start is not None:
            records = [r for r in records if r.timestamp >= start]
        if end is not None:
            records = [r for r in records if r.timestamp <= end]
        if type is not None:
            records = [r for r in records if r.type == type]
        if entity_id is not None:
            records = [r for r in records if r.involves(entity_id)]
        if user_id is not None:
            records = [r for r in records if r.metadata.user_id == user_id]

        records.sort(key=lambda r: r.timestamp, reverse=sort_order != "asc")

        if limit:
            offset = page * limit
            records = records[offset : offset + limit]
        return records

    def get_statistics(self, time_range: TimeRange = "all") -> dict[str, Any]:
        """Aggregate counts and averages over records in ``time_range``.

        Raises:
            ValueError: If ``time_range`` is not all, today, week or month
        """
        since = _range_start(time_range, datetime.now(UTC))
        records = [r for r in self.history if since is None or r.timestamp >= since]
        total = len(records)
        types = Counter(r.type for r in records)

        stats: dict[str, Any] = {
            "total_merges": total,
            "auto_merges": types["auto"],
            "manual_merges": types["manual"],
            "batch_merges": types["batch"],
            "average_similarity": 0.0,
            "average_confidence_change": 0.0,
            "total_relationships_added": 0,
            "total_entities_consolidated": total * 2,
            "category_breakdown": {},
            "designation_breakdown": {},
            "daily_activity": {},
            "success_rate": sum(r.status == "completed" for r in records) / max(total, 1),
            "undoable_operations": sum(r.metadata.undoable for r in records),
        }
        if not records:
            return stats

        stats["average_similarity"] = (
            sum(r.similarity.overall if r.similarity else 0.0 for r in records) / total
        )
        stats["average_confidence_change"] = (
            sum(r.impact.confidence_change for r in records) / total
        )
        stats["total_relationships_added"] = sum(r.impact.relationships_added for r in records)
        stats["category_breakdown"] = dict(Counter(r.primary_entity.category for r in records))
        stats["designation_breakdown"] = dict(
            Counter(r.primary_entity.designation or "generic" for r in records)
        )
        stats["daily_activity"] = dict(Counter(r.timestamp.date().isoformat() for r in records))
        return stats

    def get_merge_chain(self, entity_id: str) -> list[MergeRecord]:
        """Completed merges that produced ``entity_id``, oldest first.

        Walks backwards from merges whose result is ``entity_id`` through
        their primary and secondary entities.
        """
        chain: list[MergeRecord] = []
        visited: set[str] = set()
        pending = [entity_id]

        while pending:
            current = pending.pop()
            if current in visited:
                continue
            visited.add(current)
            for record in self.history:
                if record.status != "completed" or record.resulting_entity.id != current:
                    continue
                if all(r.id != record.id for r in chain):
                    chain.append(record)
                pending.append(record.primary_entity.id)
                pending.append(record.secondary_entity.id)

        chain.sort(key=lambda r: r.timestamp)
        return chain

    def export_history(self, fmt: Literal["json", "csv"] = "json") -> str:
        """Serialize the full history for backup or analysis.

        Raises:
            ValueError: If ``fmt`` is not json or csv
        """
        if fmt == "json":
            data = {
                "exportTimestamp": datetime.now(UTC).isoformat(),
                "totalRecords": len(self.history),
                "statistics": self.get_statistics(),
                "history": [r.to_json_dict() for r in self.history],
            }
            return json.dumps(data, indent=2, ensure_ascii=False)
        if fmt == "csv":
            buffer = io.StringIO()
            writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
            writer.writerow(CSV_HEADERS)
            for r in self.history:
                writer.writerow(
                    [
                        r.id,
                        r.timestamp.isoformat(),
                        r.type,
                        r.status,
                        r.primary_entity.name,
                        r.secondary_entity.name,
                        r.resulting_entity.name,
                        r.similarity.overall if r.similarity else 0,
                        r.impact.confidence_change,
                        r.impact.relationships_added,
                        r.metadata.user_id,
                        r.metadata.source,
                    ]
                )
            return buffer.getvalue()
        raise ValueError(f"Unknown export format: {fmt!r}. Choose from: json, csv")

    def validate_integrity(self) -> dict[str, Any]:
        issues = []
        for index, record in enumerate(self.history):
            if record.primary_entity.id == record.secondary_entity.id:
                issues.append(f"Record {index}: Primary and secondary entities are the same")
            if index > 0 and record.timestamp < self.history[index - 1].timestamp:
                issues.append(f"Record {index}: Timestamp out of order")

        known = {id(r) for r in self.history}
        for name, stack in (("undo", self.undo_stack), ("redo", self.redo_stack)):
            for record in stack:
                if id(record) not in known:
                    issues.append(f"{name.title()} stack entry {record.id} is not in history")

        return {"valid": not issues, "issues": issues}

    def clear_history(self) -> None:
        self.history = []
        self.undo_stack = []
        self.redo_stack = []
        self._save()
        logger.info("Merge history cleared")

    def _save(self) -> None:
        state = HistoryState(
            history=self.history,
            undo_stack=[r.id for r in self.undo_stack],
            redo_stack=[r.id for r in self.redo_stack],
            last_saved=datetime.now(UTC),
        )
        self.store.save(state)

    def _load(self) -> None:
        state = self.store.load()
        if state is None:
            return

        self.history = list(state.history)
        by_id = {record.id: record for record in self.history}

        def resolve(ids: list[str], name: str) -> list[MergeRecord]:
            records = []
            for record_id in ids:
                record = by_id.get(record_id)
                if record is None:
                    logger.warning(f"Dropping unknown record {record_id} from {name} stack")
                    continue
                records.append(record)
            return records

        self.undo_stack = resolve(state.undo_stack, "undo")
        self.redo_stack = resolve(state.redo_stack, "redo")
        logger.debug(
            f"Loaded merge history: {len(self.history)} records, "
            f"{len(self.undo_stack)} undoable, {len(self.redo_stack)} redoable"
        )
