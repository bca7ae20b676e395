"""Upgrade stored entity sets to the relationship-aware schema.

For each domain: load the entity sets, infer relationships between them,
apply the proposals, migrate every set to schema 2.0.0 and save it back.
"""

import logging
from pathlib import Path

from pydantic import BaseModel, Field

from tidy_kg.infer.engine import ContentRelationshipInference
from tidy_kg.schema.entity_schema import EntitySchema
from tidy_kg.storage import create_backup, list_domains, load_entity_sets, save_entity_set

logger = logging.getLogger(__name__)


class MigrationResult(BaseModel):
    """Counts for one migration run (one domain or the sum of several)."""

    total_entities: int = 0
    migrated_entities: int = 0
    relationships_created: int = 0
    skipped_relationships: int = 0
    errors: list[str] = Field(default_factory=list)

    def add(self, other: "MigrationResult") -> None:
        self.total_entities += other.total_entities
        self.migrated_entities += other.migrated_entities
        self.relationships_created += other.relationships_created
        self.skipped_relationships += other.skipped_relationships
        self.errors.extend(other.errors)


class MigrationUtility:
    """Runs inference and schema migration over the data directory."""

    def __init__(
        self,
        data_dir: Path,
        schema: EntitySchema,
        inference: ContentRelationshipInference | None = None,
    ) -> None:
        self.data_dir = Path(data_dir)
        self.schema = schema
        self.inference = inference or ContentRelationshipInference(schema)

    def migrate(self, domain: str | None = None, dry_run: bool = False) -> MigrationResult:
        """Migrate one domain, or every domain found under the data directory.

        A domain that fails is recorded in ``errors``; the others still run.
        """
        domains = [domain] if domain else list_domains(self.data_dir)
        logger.info(f"Starting migration{' (dry run)' if dry_run else ''} of {len(domains)} domain(s)")

        result = MigrationResult()
        for name in domains:
            try:
                result.add(self.migrate_domain(name, dry_run=dry_run))
            except Exception as e:
                logger.error(f"Error migrating domain {name}: {e}")
                result.errors.append(f"Domain {name}: {e}")

        logger.info(
            f"Migration done: {result.total_entities} entity sets, "
            f"{result.migrated_entities} enhanced, "
            f"{result.relationships_created} relationships, {len(result.errors)} errors"
        )
        return result

    def migrate_domain(self, domain: str, dry_run: bool = False) -> MigrationResult:
        result = MigrationResult()
        entity_sets = load_entity_sets(self.data_dir, domain)
        result.total_entities = len(entity_sets)
        if not entity_sets:
            logger.info(f"No entity sets found in {domain}")
            return result

        proposals = self.inference.infer_relationships(entity_sets, domain)
        stats = self.inference.apply_relationships_to_entities(entity_sets, proposals)
        result.skipped_relationships = stats["skipped"]

        for entity_set in entity_sets:
            try:
                migrated = self.schema.migrate_legacy_entity(entity_set)
                if migrated.relationships:
                    result.migrated_entities += 1
                    result.relationships_created += len(migrated.relationships)
                if not dry_run:
                    save_entity_set(migrated, self.data_dir, domain)
            except (ValueError, OSError) as e:
                result.errors.append(f"Entity set {entity_set.id}: {e}")

        logger.info(
            f"  {domain}: {result.total_entities} entity sets, "
            f"{result.migrated_entities} enhanced, {result.relationships_created} relationships"
        )
        return result

    def create_backup(self, domain: str) -> Path:
        return create_backup(self.data_dir, domain)
