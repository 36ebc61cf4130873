"""Entity co-occurrence graph.

Builds a graph from recent records:
1. Extract entities from each record's title + body
2. One node per lowercased entity label, plus one per record category
   (key "cat_<Display Name>"); weight counts the records touching it
3. Every pair of keys touched by the same record becomes an edge
   (weight 1, unordered pairs de-duplicated)
4. Keep the 40 heaviest nodes and the edges between survivors
5. Place survivors on a jittered ring, ready for the layout simulation

Nothing is persisted: the graph is rebuilt on every request.
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any

from ..channels import ResultChannel
from ..config import GRAPH, LAYOUT
from ..records import MemoryRecord, RecordAccess, fetch_records
from .entities import EntityTagger, NodeType, extract_entities
from .layout import LayoutSimulation, initial_layout

logger = logging.getLogger(__name__)

CATEGORY_KEY_PREFIX = "cat_"


@dataclass
class GraphNode:
    """An entity or category in the graph.

    weight is mutated while building; x/y/vx/vy belong to the layout
    simulation.
    """

    id: str
    label: str
    type: NodeType
    weight: int = 1
    color: str = ""

    x: float = 0.0
    y: float = 0.0
    vx: float = 0.0
    vy: float = 0.0

    def __post_init__(self) -> None:
        if not self.color:
            self.color = self.type.color

    @property
    def radius(self) -> float:
        return float(min(max(self.weight * 4 + 12, 16), 40))

    @property
    def icon(self) -> str:
        return self.type.icon

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "label": self.label,
            "type": self.type.value,
            "weight": self.weight,
            "color": self.color,
            "icon": self.icon,
            "radius": self.radius,
            "x": self.x,
            "y": self.y,
        }


@dataclass(frozen=True)
class GraphEdge:
    """Undirected co-occurrence edge. source <= target lexicographically."""

    source: str
    target: str
    weight: int = 1

    @property
    def key(self) -> tuple[str, str]:
        return (self.source, self.target)

    def touches(self, node_id: str) -> bool:
        return node_id in (self.source, self.target)

    def other(self, node_id: str) -> str:
        return self.target if node_id == self.source else self.source

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {"source": self.source, "target": self.target, "weight": self.weight}


@dataclass
class GraphSnapshot:
    """Result of one graph build."""

    nodes: list[GraphNode] = field(default_factory=list)
    edges: list[GraphEdge] = field(default_factory=list)
    record_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "nodes": [n.to_dict() for n in self.nodes],
            "edges": [e.to_dict() for e in self.edges],
            "record_count": self.record_count,
        }


def category_key(record: MemoryRecord) -> str:
    return f"{CATEGORY_KEY_PREFIX}{record.category.display_name}"


def build_graph(
    records: Iterable[MemoryRecord],
    *,
    tagger: EntityTagger | None = None,
    max_nodes: int = GRAPH.MAX_NODES,
    canvas: tuple[float, float] = (LAYOUT.CANVAS_WIDTH, LAYOUT.CANVAS_HEIGHT),
    rng: random.Random | None = None,
) -> tuple[list[GraphNode], list[GraphEdge]]:
    """Build the co-occurrence graph for a batch of records.

    Args:
        records: Records to scan, newest first.
        tagger: NER tagger (shared singleton if None).
        max_nodes: Node cap; heaviest kept, ties go to the first seen.
        canvas: (width, height) for the initial ring layout.
        rng: Jitter source for the initial layout.

    Returns:
        (nodes, edges); every edge joins two returned nodes.
    """
    nodes: dict[str, GraphNode] = {}
    co_occurrences: dict[str, set[str]] = {}
    # Discovery order of each key's partners, for deterministic edge order
    partner_order: dict[str, list[str]] = {}

    for record in records:
        # Keys touched by this record, in first-mention order, once each
        touched: dict[str, None] = {}

        cat_key = category_key(record)
        touched[cat_key] = None
        if cat_key not in nodes:
            nodes[cat_key] = GraphNode(
                id=cat_key,
                label=record.category.display_name,
                type=NodeType.CATEGORY,
                color=record.category.display.color,
            )
        else:
            nodes[cat_key].weight += 1

        for entity in extract_entities(record.text, tagger=tagger):
            key = entity.key
            if key in touched:
                continue
            touched[key] = None
            if key not in nodes:
                nodes[key] = GraphNode(id=key, label=entity.label, type=entity.type)
            else:
                nodes[key].weight += 1

        keys = list(touched)
        for key in keys:
            partners = co_occurrences.setdefault(key, set())
            order = partner_order.setdefault(key, [])
            for other in keys:
                if other != key and other not in partners:
                    partners.add(other)
                    order.append(other)

    edges: list[GraphEdge] = []
    seen_pairs: set[tuple[str, str]] = set()
    for source, partners in partner_order.items():
        for target in partners:
            pair = tuple(sorted((source, target)))
            if pair in seen_pairs:
                continue
            seen_pairs.add(pair)
            # Repeated co-occurrence is not weighted above 1
            edges.append(GraphEdge(source=pair[0], target=pair[1], weight=1))

    # sorted() is stable, so equal weights keep first-seen order
    kept = sorted(nodes.values(), key=lambda n: n.weight, reverse=True)[:max_nodes]
    kept_ids = {n.id for n in kept}
    kept_edges = [e for e in edges if e.source in kept_ids and e.target in kept_ids]

    initial_layout(kept, canvas, rng=rng)

    logger.debug(
        "Built graph: %d nodes (%d before cut), %d edges (%d before cut)",
        len(kept),
        len(nodes),
        len(kept_edges),
        len(edges),
    )
    return kept, kept_edges


class MemoryGraphBuilder:
    """Builds the graph from the most recent records and publishes it."""

    def __init__(
        self,
        records: RecordAccess,
        *,
        tagger: EntityTagger | None = None,
        canvas: tuple[float, float] = (LAYOUT.CANVAS_WIDTH, LAYOUT.CANVAS_HEIGHT),
    ) -> None:
        self._records = records
        self._tagger = tagger
        self.canvas = canvas
        self.graphs: ResultChannel[GraphSnapshot] = ResultChannel("graph")

    async def build(self) -> GraphSnapshot:
        """Fetch recent records, build the graph, publish the snapshot."""
        generation = self.graphs.next_generation()

        records: Sequence[MemoryRecord] = await fetch_records(
            "fetch_recent", self._records.fetch_recent, GRAPH.RECENT_RECORDS
        )
        nodes, edges = await asyncio.to_thread(
            build_graph, records, tagger=self._tagger, canvas=self.canvas
        )

        snapshot = GraphSnapshot(nodes=nodes, edges=edges, record_count=len(records))
        self.graphs.publish(generation, snapshot)
        return snapshot

    def simulation(self, snapshot: GraphSnapshot) -> LayoutSimulation:
        """Create a layout simulation over a built snapshot."""
        return LayoutSimulation(snapshot.nodes, snapshot.edges, self.canvas)
