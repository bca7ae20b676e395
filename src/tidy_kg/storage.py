"""Read and write entity sets and merged-pair files under the data directory.

Layout::

    <data_dir>/<domain>/entities/<entity_set_id>.json
    <data_dir>/merged-pairs-<domain>.json
    <data_dir>/merge-history-<domain>.json
"""

import hashlib
import json
import logging
import shutil
from collections.abc import Iterable
from datetime import UTC, datetime
from pathlib import Path

from pydantic import Field, ValidationError

from tidy_kg.schema.models import CamelModel, Entity, EntitySet, utc_now_iso

logger = logging.getLogger(__name__)

BACKUP_PREFIX = "backup-"


class MergedPairsFile(CamelModel):
    """Top-level model for merged-pairs-<domain>.json."""

    merged_pairs: list[str] = Field(default_factory=list)
    last_updated: str | None = None
    domain: str = "default"


def entities_dir(data_dir: Path, domain: str) -> Path:
    return Path(data_dir) / domain / "entities"


def merged_pairs_path(data_dir: Path, domain: str) -> Path:
    return Path(data_dir) / f"merged-pairs-{domain}.json"


def history_path(data_dir: Path, domain: str) -> Path:
    return Path(data_dir) / f"merge-history-{domain}.json"


def list_domains(data_dir: Path) -> list[str]:
    """Domains that have an entities directory. Backup copies are not domains."""
    data_dir = Path(data_dir)
    if not data_dir.exists():
        return []
    return sorted(
        p.name
        for p in data_dir.iterdir()
        if (p / "entities").is_dir() and not p.name.startswith(BACKUP_PREFIX)
    )


def load_entity_sets(data_dir: Path, domain: str) -> list[EntitySet]:
    """Load every entity set of a domain, sorted by file name.

    Files that are not valid JSON or do not match the entity set shape
    are logged and skipped.
    """
    directory = entities_dir(data_dir, domain)
    if not directory.exists():
        logger.debug(f"No entities directory for domain '{domain}' at {directory}")
        return []

    entity_sets = []
    for path in sorted(directory.glob("*.json")):
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            entity_set = EntitySet.model_validate(data)
        except (json.JSONDecodeError, ValidationError) as e:
            logger.warning(f"Skipping unreadable entity set {path.name}: {e}")
            continue
        if entity_set.id is None:
            entity_set.id = path.stem
        entity_sets.append(entity_set)

    logger.debug(f"Loaded {len(entity_sets)} entity sets from {directory}")
    return entity_sets


def save_entity_set(entity_set: EntitySet, data_dir: Path, domain: str | None = None) -> Path:
    """Write one entity set to ``<domain>/entities/<id>.json``."""
    if not entity_set.id:
        raise ValueError("Cannot save an entity set without an id")
    directory = entities_dir(data_dir, domain or entity_set.domain)
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / f"{entity_set.id}.json"
    path.write_text(
        json.dumps(entity_set.to_json_dict(), indent=2, ensure_ascii=False), encoding="utf-8"
    )
    return path


def create_backup(data_dir: Path, domain: str) -> Path:
    """Copy a domain directory to ``backup-<domain>-<timestamp>``.

    Raises:
        ValueError: If the domain directory does not exist
    """
    data_dir = Path(data_dir)
    source = data_dir / domain
    if not source.exists():
        raise ValueError(f"Domain directory not found: {source}")
    stamp = datetime.now(UTC).strftime("%Y-%m-%dT%H-%M-%S-%f")
    backup = data_dir / f"{BACKUP_PREFIX}{domain}-{stamp}"
    shutil.copytree(source, backup)
    logger.info(f"Backup created: {backup}")
    return backup


def read_merged_pairs(data_dir: Path, domain: str) -> set[str]:
    """Read the set of accepted ``a|b`` pair keys. A missing file is an empty set."""
    path = merged_pairs_path(data_dir, domain)
    if not path.exists():
        return set()
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        logger.warning(f"Ignoring corrupt merged pairs file {path}: {e}")
        return set()
    return set(MergedPairsFile.model_validate(data).merged_pairs)


def write_merged_pairs(data_dir: Path, domain: str, pairs: Iterable[str]) -> Path:
    path = merged_pairs_path(data_dir, domain)
    path.parent.mkdir(parents=True, exist_ok=True)
    payload = MergedPairsFile(merged_pairs=sorted(pairs), last_updated=utc_now_iso(), domain=domain)
    path.write_text(json.dumps(payload.to_json_dict(), indent=2), encoding="utf-8")
    logger.debug(f"Wrote {len(payload.merged_pairs)} merged pairs to {path}")
    return path


def make_entity_id(name: str, category: str, conversation_id: str | None) -> str:
    """Deterministic id for an entity that was extracted without one."""
    digest = hashlib.sha1(f"{name}_{category}_{conversation_id}".encode()).hexdigest()
    return f"entity_{digest[:10]}"


def flatten_entity_sets(entity_sets: Iterable[EntitySet]) -> list[Entity]:
    """Turn grouped entity sets into one flat entity population.

    Each entity takes its category from the group it sits in and inherits
    the set's conversation id and timestamp. Entities with an empty or
    placeholder name are dropped.
    """
    flat = []
    for entity_set in entity_sets:
        for category, entities in entity_set.entities.items():
            category = category.lower()
            for entity in entities:
                if not entity.has_name:
                    continue
                copy = entity.model_copy(deep=True)
                copy.category = category
                copy.conversation_id = entity_set.conversation_id
                copy.timestamp = entity_set.timestamp
                if copy.metadata.source is None:
                    copy.metadata.source = entity_set.metadata.source
                if not copy.id:
                    copy.id = make_entity_id(copy.name, category, entity_set.conversation_id)
                flat.append(copy)
    return flat
