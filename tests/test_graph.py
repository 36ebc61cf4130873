"""Tests for memory/graph.py - entity co-occurrence graph."""

from __future__ import annotations

import random

import pytest

from recallmate.memory.entities import NodeType
from recallmate.memory.graph import (
    GraphEdge,
    GraphNode,
    GraphSnapshot,
    MemoryGraphBuilder,
    build_graph,
    category_key,
)
from recallmate.memory.layout import LayoutSimulation
from recallmate.records import InMemoryRecordStore, MemoryCategory


def _by_id(nodes: list[GraphNode]) -> dict[str, GraphNode]:
    return {n.id: n for n in nodes}


# =============================================================================
# Nodes and edges
# =============================================================================


class TestGraphNode:
    def test_color_defaults_to_type(self) -> None:
        node = GraphNode(id="alice", label="Alice", type=NodeType.PERSON)
        assert node.color == "green"
        assert node.icon == "person"

    def test_radius_clamped(self) -> None:
        assert GraphNode("a", "A", NodeType.TOPIC, weight=1).radius == 16.0
        assert GraphNode("a", "A", NodeType.TOPIC, weight=3).radius == 24.0
        assert GraphNode("a", "A", NodeType.TOPIC, weight=50).radius == 40.0


class TestGraphEdge:
    def test_other_and_touches(self) -> None:
        edge = GraphEdge("alice", "paris")
        assert edge.touches("alice")
        assert not edge.touches("bob")
        assert edge.other("alice") == "paris"
        assert edge.other("paris") == "alice"


# =============================================================================
# build_graph
# =============================================================================


class TestBuildGraph:
    def test_shared_place_and_category(self, tagger, make_record) -> None:
        records = [
            make_record("Trip", "Flights to Paris booked"),
            make_record("Museum list", "Best museums in Paris"),
        ]
        nodes, edges = build_graph(records, tagger=tagger, rng=random.Random(1))
        by_id = _by_id(nodes)

        assert by_id["paris"].label == "Paris"
        assert by_id["paris"].type is NodeType.PLACE
        assert by_id["paris"].weight == 2
        assert by_id["cat_Note"].label == "Note"
        assert by_id["cat_Note"].type is NodeType.CATEGORY
        assert by_id["cat_Note"].weight == 2
        assert [e.key for e in edges] == [("cat_Note", "paris")]
        assert edges[0].weight == 1

    def test_category_node_uses_category_color(self, tagger, make_record) -> None:
        record = make_record("Link", category=MemoryCategory.LINK)
        nodes, _ = build_graph([record], tagger=tagger)
        (node,) = nodes
        assert node.id == category_key(record) == "cat_Link"
        assert node.color == "blue"

    def test_repeated_mention_counts_once_per_record(self, tagger, make_record) -> None:
        nodes, _ = build_graph([make_record("Alice", "Alice and alice again")], tagger=tagger)
        assert _by_id(nodes)["alice"].weight == 1

    def test_all_pairs_within_record(self, tagger, make_record) -> None:
        nodes, edges = build_graph(
            [make_record("Alice and Bob in Berlin", category=MemoryCategory.MESSAGE)],
            tagger=tagger,
        )
        assert len(nodes) == 4
        assert len(edges) == 6
        assert all(e.source < e.target for e in edges)

    def test_no_duplicate_edges_across_records(self, tagger, make_record) -> None:
        records = [make_record("Alice with Bob") for _ in range(3)]
        _, edges = build_graph(records, tagger=tagger)
        keys = [e.key for e in edges]
        assert len(keys) == len(set(keys))
        assert all(e.weight == 1 for e in edges)

    def test_node_cap_and_edge_endpoints(self, make_record, no_ner_tagger) -> None:
        records = [
            make_record(f"Bookmark https://site{i}.example.com/page https://shared.example.com")
            for i in range(60)
        ]
        nodes, edges = build_graph(records, tagger=no_ner_tagger, max_nodes=40)
        ids = {n.id for n in nodes}

        assert len(nodes) == 40
        # The heaviest nodes survive the cut
        assert "cat_Note" in ids
        assert "shared.example.com" in ids
        assert all(e.source in ids and e.target in ids for e in edges)

    def test_ties_keep_first_seen(self, make_record, no_ner_tagger) -> None:
        records = [make_record(f"https://a{i}.example.com") for i in range(5)]
        nodes, _ = build_graph(records, tagger=no_ner_tagger, max_nodes=3)
        assert [n.id for n in nodes] == ["cat_Note", "a0.example.com", "a1.example.com"]

    def test_text_over_pipeline_limit(self, tagger, make_record) -> None:
        record = make_record("Scan from Paris", "word " * 250_000, category=MemoryCategory.FILE)

        nodes, _ = build_graph([record], tagger=tagger)

        assert {n.id for n in nodes} == {"paris", "cat_File"}
        assert max(tagger._nlp.seen_lengths) <= tagger._nlp.max_length

    def test_small_pipeline_limit_respected(self, tagger, make_record) -> None:
        tagger._nlp.max_length = 50
        nodes, _ = build_graph([make_record("Alice", "x" * 500)], tagger=tagger)

        assert "alice" in {n.id for n in nodes}
        assert tagger._nlp.seen_lengths == [50]

    def test_empty_input(self, tagger) -> None:
        assert build_graph([], tagger=tagger) == ([], [])

    def test_initial_positions_inside_canvas(self, tagger, make_record) -> None:
        records = [make_record("Alice in Paris"), make_record("Bob at Initech")]
        nodes, _ = build_graph(records, tagger=tagger, canvas=(400, 700), rng=random.Random(7))
        for node in nodes:
            assert 0 <= node.x <= 400
            assert 0 <= node.y <= 700
            assert node.vx == 0 and node.vy == 0


# =============================================================================
# MemoryGraphBuilder
# =============================================================================


class TestMemoryGraphBuilder:
    @pytest.mark.asyncio
    async def test_build_publishes_snapshot(self, tagger, make_record) -> None:
        store = InMemoryRecordStore(
            [make_record("Trip", "Paris"), make_record("Museums", "Paris again")]
        )
        builder = MemoryGraphBuilder(store, tagger=tagger)
        received: list[GraphSnapshot] = []
        builder.graphs.subscribe(received.append)

        snapshot = await builder.build()

        assert received == [snapshot]
        assert builder.graphs.latest is snapshot
        assert snapshot.record_count == 2
        assert {n.id for n in snapshot.nodes} == {"paris", "cat_Note"}
        data = snapshot.to_dict()
        assert data["edges"] == [{"source": "cat_Note", "target": "paris", "weight": 1}]

    @pytest.mark.asyncio
    async def test_fetch_failure_gives_empty_graph(self, tagger, failing_store) -> None:
        builder = MemoryGraphBuilder(failing_store, tagger=tagger)
        snapshot = await builder.build()

        assert snapshot.nodes == []
        assert snapshot.edges == []
        assert snapshot.record_count == 0
        assert builder.graphs.latest is snapshot

    @pytest.mark.asyncio
    async def test_simulation_uses_snapshot(self, tagger, make_record) -> None:
        builder = MemoryGraphBuilder(
            InMemoryRecordStore([make_record("Alice in Paris")]), tagger=tagger
        )
        snapshot = await builder.build()
        sim = builder.simulation(snapshot)

        assert isinstance(sim, LayoutSimulation)
        assert [n.id for n in sim.nodes] == [n.id for n in snapshot.nodes]
        assert sim.canvas == builder.canvas
