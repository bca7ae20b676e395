"""Content-based relationship inference between entity sets.

Compares every pair of entity sets against the universal rules plus the
rules registered for the domain, producing relationship proposals. The
proposals are then applied to the source sets through EntitySchema,
which validates each one against the relationship registry.
"""

import logging
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, Field

from tidy_kg.errors import RelationshipValidationError
from tidy_kg.infer.rules import InferenceRule, default_rules
from tidy_kg.schema.entity_schema import EntitySchema
from tidy_kg.schema.models import EntitySet

logger = logging.getLogger(__name__)

CONTENT_INFERENCE = "content_inference"


class RelationshipProposal(BaseModel):
    """A relationship a rule suggests between two entity sets."""

    source_id: str | None
    target_id: str | None
    type: str
    confidence: float
    source: str = CONTENT_INFERENCE
    rule: str
    description: str = ""
    metadata: dict[str, Any] = Field(default_factory=dict)


def entity_set_summary(entity_set: EntitySet) -> dict[str, Any]:
    """Id, domain and per-category counts, for proposal metadata."""
    return {"id": entity_set.id, "domain": entity_set.domain, **entity_set.category_counts()}


class ContentRelationshipInference:
    """Rule-driven relationship discovery across entity sets."""

    def __init__(
        self,
        schema: EntitySchema,
        rules: Mapping[str, list[InferenceRule]] | None = None,
    ) -> None:
        self.schema = schema
        self.rules: dict[str, list[InferenceRule]] = (
            {domain: list(r) for domain, r in rules.items()} if rules is not None else default_rules()
        )

    def register_rule(self, domain: str, rule: InferenceRule) -> None:
        self.rules.setdefault(domain, []).append(rule)

    def rules_for(self, domain: str) -> list[InferenceRule]:
        applicable = list(self.rules.get("universal", []))
        if domain != "universal":
            applicable.extend(self.rules.get(domain, []))
        return applicable

    def infer_relationships(
        self, entity_sets: list[EntitySet], domain: str = "universal"
    ) -> list[RelationshipProposal]:
        """Run every applicable rule over every pair of entity sets.

        A rule that raises is logged and skipped for that pair; it never
        aborts the batch.

        Returns:
            De-duplicated proposals in discovery order
        """
        rules = self.rules_for(domain)
        logger.info(f"Analyzing {len(entity_sets)} entity sets with {len(rules)} rules")

        proposals: list[RelationshipProposal] = []
        for i, first in enumerate(entity_sets):
            for second in entity_sets[i + 1 :]:
                for rule in rules:
                    try:
                        if rule.condition(first, second):
                            proposals.append(self._propose(rule, first, second))
                        if not rule.directional and rule.condition(second, first):
                            proposals.append(self._propose(rule, second, first))
                    except Exception as e:
                        logger.warning(f"Error applying rule {rule.name}: {e}")

        logger.info(f"Generated {len(proposals)} potential relationships")
        return self.deduplicate_relationships(proposals)

    def deduplicate_relationships(
        self, proposals: list[RelationshipProposal]
    ) -> list[RelationshipProposal]:
        """Keep the first proposal for each (source, target, type)."""
        seen: set[tuple[str | None, str | None, str]] = set()
        unique = []
        for proposal in proposals:
            key = (proposal.source_id, proposal.target_id, proposal.type)
            if key in seen:
                continue
            seen.add(key)
            unique.append(proposal)

        if len(unique) != len(proposals):
            logger.debug(f"Deduplicated {len(proposals)} relationships to {len(unique)}")
        return unique

    def apply_relationships_to_entities(
        self, entity_sets: list[EntitySet], proposals: list[RelationshipProposal]
    ) -> dict[str, int]:
        """Attach proposals to their source entity sets in place.

        Proposals the registry rejects are logged as warnings and counted
        under ``skipped``; proposals whose source set is not in
        ``entity_sets`` are counted under ``unmatched``.

        Returns:
            Stats dict with counts
        """
        stats = {"applied": 0, "skipped": 0, "unmatched": 0}
        by_id = {entity_set.id: entity_set for entity_set in entity_sets if entity_set.id}

        for proposal in proposals:
            holder = by_id.get(proposal.source_id)
            if holder is None:
                stats["unmatched"] += 1
                continue
            try:
                self.schema.add_relationship(
                    holder,
                    type=proposal.type,
                    target=proposal.target_id,
                    confidence=proposal.confidence,
                    source=proposal.source,
                    metadata=proposal.metadata,
                )
            except RelationshipValidationError as e:
                logger.warning(
                    f"Failed to apply {proposal.type} from {proposal.source_id} "
                    f"to {proposal.target_id}: {e}"
                )
                stats["skipped"] += 1
                continue
            stats["applied"] += 1

        logger.info(f"Applied {stats['applied']} relationships ({stats['skipped']} skipped)")
        return stats

    def _propose(
        self, rule: InferenceRule, source: EntitySet, target: EntitySet
    ) -> RelationshipProposal:
        return RelationshipProposal(
            source_id=source.id,
            target_id=target.id,
            type=rule.relationship,
            confidence=rule.confidence,
            rule=rule.name,
            description=rule.description,
            metadata={
                "inferenceRule": rule.name,
                "sourceEntity": entity_set_summary(source),
                "targetEntity": entity_set_summary(target),
            },
        )
