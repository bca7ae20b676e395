"""Fold accepted merge pairs into a consolidated entity view.

Consolidation is a pure function of the entity population and the set
of accepted pair keys: undoing a merge is just removing its key and
recomputing the view.
"""

import logging
from collections.abc import Iterable

from tidy_kg.merge.similarity import split_pair_key
from tidy_kg.schema.models import Entity

logger = logging.getLogger(__name__)


def _start(entity: Entity) -> Entity:
    copy = entity.model_copy(deep=True)
    copy.consolidated_count = entity.consolidated_count or 1
    return copy


def consolidate(entities: list[Entity], merged_pairs: Iterable[str]) -> list[Entity]:
    """Apply merged pairs to an entity list without modifying it.

    Keys are processed in sorted order. For ``"a|b"`` the entity ``a``
    is primary: it survives, absorbing ``b``'s name into ``merged_from``,
    ``b``'s id into ``children``, the higher of the two confidences and
    ``b``'s consolidation count. ``b`` disappears from the result.

    Chained keys (``a|b`` then ``b|c``) fold into the root survivor.
    Keys naming an id that is not in ``entities`` are ignored.

    Args:
        entities: Flat entity population (not modified)
        merged_pairs: Accepted ``a|b`` pair keys

    Returns:
        Entities in their original order, absorbed ones removed and
        survivors replaced by consolidated copies
    """
    by_id = {entity.id: entity for entity in entities if entity.id}
    parent: dict[str, str] = {}
    consolidated: dict[str, Entity] = {}

    def root(entity_id: str) -> str:
        while entity_id in parent:
            entity_id = parent[entity_id]
        return entity_id

    for key in sorted(merged_pairs):
        try:
            first_id, second_id = split_pair_key(key)
        except ValueError as e:
            logger.warning(f"{e}, skipping")
            continue
        if first_id not in by_id or second_id not in by_id:
            logger.debug(f"Merge pair {key} references a missing entity, skipping")
            continue

        first_root, second_root = root(first_id), root(second_id)
        if first_root == second_root:
            continue
        primary_id, secondary_id = sorted((first_root, second_root))

        primary = consolidated.get(primary_id) or _start(by_id[primary_id])
        secondary = consolidated.pop(secondary_id, None) or _start(by_id[secondary_id])

        primary.merged_from.append(secondary.name)
        primary.merged_from.extend(secondary.merged_from)
        primary.children.append(secondary_id)
        primary.children.extend(c for c in secondary.children if c not in primary.children)
        primary.confidence = max(primary.confidence, secondary.confidence)
        primary.consolidated_count = (primary.consolidated_count or 1) + (
            secondary.consolidated_count or 1
        )

        consolidated[primary_id] = primary
        parent[secondary_id] = primary_id

    result = []
    for entity in entities:
        if entity.id in parent:
            continue
        result.append(consolidated.get(entity.id, entity))

    if parent:
        logger.debug(f"Consolidated {len(entities)} entities into {len(result)}")
    return result

