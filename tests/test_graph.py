"""Tests for the relationship graph (path finding and neighbors)."""

import pytest

from tidy_kg.schema import EntitySet, RelationshipGraph


@pytest.fixture
def chain_sets(schema) -> list[EntitySet]:
    """a --manages--> b --located_at--> c, plus a --owns--> c."""
    a = EntitySet(id="a", domain="default")
    b = EntitySet(id="b", domain="default")
    c = EntitySet(id="c", domain="default")
    schema.add_relationship(a, type="manages", target="b", confidence=0.75, source="manual")
    schema.add_relationship(b, type="located_at", target="c", confidence=0.7, source="manual")
    schema.add_relationship(a, type="owns", target="c", confidence=0.8, source="manual")
    return [a, b, c]


class TestRelationshipGraph:
    """Test graph construction and traversal."""

    def test_build(self, chain_sets):
        """One node per holder, one edge per relationship."""
        rg = RelationshipGraph.build(chain_sets)
        assert rg.graph.number_of_nodes() == 3
        assert rg.graph.number_of_edges() == 3

    def test_re_adding_holder_does_not_duplicate_edges(self, chain_sets):
        """Edges are keyed by relationship type."""
        rg = RelationshipGraph.build(chain_sets)
        rg.add_holder(chain_sets[0])
        assert rg.graph.number_of_edges() == 3

    def test_find_paths(self, chain_sets):
        """Both the direct edge and the two-hop path are found."""
        rg = RelationshipGraph.build(chain_sets)
        paths = rg.find_paths("a", "c")
        assert len(paths) == 2
        by_length = sorted(paths, key=len)
        assert by_length[0] == [{"source": "a", "target": "c", "type": "owns", "confidence": 0.8}]
        assert [edge["type"] for edge in by_length[1]] == ["manages", "located_at"]

    def test_max_depth(self, chain_sets):
        """Paths longer than max_depth are dropped."""
        rg = RelationshipGraph.build(chain_sets)
        paths = rg.find_paths("a", "c", max_depth=1)
        assert len(paths) == 1
        assert paths[0][0]["type"] == "owns"

    def test_paths_are_directed(self, chain_sets):
        """No path runs against edge direction."""
        rg = RelationshipGraph.build(chain_sets)
        assert rg.find_paths("c", "a") == []

    def test_unknown_or_same_node(self, chain_sets):
        """Unknown ids and source == target give no paths."""
        rg = RelationshipGraph.build(chain_sets)
        assert rg.find_paths("a", "zzz") == []
        assert rg.find_paths("a", "a") == []

    def test_neighbors(self, chain_sets):
        """Outgoing and incoming edges are listed separately."""
        rg = RelationshipGraph.build(chain_sets)
        neighbors = rg.neighbors("b")
        assert neighbors["outgoing"] == [
            {"target": "c", "relationship": "located_at", "confidence": 0.7}
        ]
        assert neighbors["incoming"] == [
            {"source": "a", "relationship": "manages", "confidence": 0.75}
        ]
        assert rg.neighbors("missing") == {"outgoing": [], "incoming": []}

    def test_holder_without_id_skipped(self):
        """Holders without an id are not added."""
        rg = RelationshipGraph.build([EntitySet(domain="default")])
        assert rg.graph.number_of_nodes() == 0
