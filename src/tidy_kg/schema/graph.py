"""Relationship graph over entity sets using NetworkX MultiDiGraph."""

import logging
from collections.abc import Iterable
from typing import Any

import networkx as nx

from tidy_kg.schema.models import RelationshipHolder

logger = logging.getLogger(__name__)


class RelationshipGraph:
    """Directed multigraph: one node per holder, one edge per relationship."""

    def __init__(self) -> None:
        self.graph = nx.MultiDiGraph()

    @classmethod
    def build(cls, holders: Iterable[RelationshipHolder]) -> "RelationshipGraph":
        rg = cls()
        for holder in holders:
            rg.add_holder(holder)
        logger.debug(
            f"Relationship graph: {rg.graph.number_of_nodes()} nodes, "
            f"{rg.graph.number_of_edges()} edges"
        )
        return rg

    def add_holder(self, holder: RelationshipHolder) -> None:
        if holder.id is None:
            logger.debug("Skipping holder without id")
            return
        self.graph.add_node(
            holder.id,
            domain=getattr(holder, "domain", None),
            name=getattr(holder, "name", None),
        )
        for relationship in holder.relationships:
            # Keyed by type so re-adding the same holder does not duplicate edges
            self.graph.add_edge(
                holder.id,
                relationship.target,
                key=relationship.type,
                relationship=relationship.type,
                confidence=relationship.confidence,
                metadata=relationship.metadata,
            )

    def find_paths(
        self, source_id: str, target_id: str, max_depth: int = 3
    ) -> list[list[dict[str, Any]]]:
        """All simple directed paths of at most ``max_depth`` edges.

        Each path is a list of edge dicts (source, target, type, confidence).
        """
        if source_id not in self.graph or target_id not in self.graph or source_id == target_id:
            return []

        paths = []
        for edge_path in nx.all_simple_edge_paths(
            self.graph, source_id, target_id, cutoff=max_depth
        ):
            paths.append([self._edge_dict(u, v, key) for u, v, key in edge_path])
        return paths

    def neighbors(self, entity_id: str) -> dict[str, list[dict[str, Any]]]:
        result: dict[str, list[dict[str, Any]]] = {"outgoing": [], "incoming": []}
        if entity_id not in self.graph:
            return result

        for _, target, data in self.graph.out_edges(entity_id, data=True):
            result["outgoing"].append(
                {
                    "target": target,
                    "relationship": data["relationship"],
                    "confidence": data.get("confidence"),
                }
            )
        for source, _, data in self.graph.in_edges(entity_id, data=True):
            result["incoming"].append(
                {
                    "source": source,
                    "relationship": data["relationship"],
                    "confidence": data.get("confidence"),
                }
            )
        return result

    def _edge_dict(self, source: str, target: str, key: str) -> dict[str, Any]:
        data = self.graph.edges[source, target, key]
        return {
            "source": source,
            "target": target,
            "type": data["relationship"],
            "confidence": data.get("confidence"),
        }
