"""Force-directed layout for the entity graph.

layout_step() is a pure fixed-timestep update: it takes node states and
returns new ones. LayoutSimulation drives it from an asyncio loop at a
fixed tick rate until a wall-clock budget runs out. The relaxation is
cosmetic and is not expected to converge.

Per tick, for every node not being dragged:
- inverse-square repulsion from every other node
- linear spring pull toward each neighbor
- weak pull toward the canvas center
- velocity damping, then clamping inside the canvas margin
"""

from __future__ import annotations

import asyncio
import logging
import math
import random
import time
from collections.abc import Callable, Sequence
from dataclasses import replace
from typing import TYPE_CHECKING

from ..config import LAYOUT, LayoutParams

if TYPE_CHECKING:
    from .graph import GraphEdge, GraphNode

logger = logging.getLogger(__name__)


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def initial_layout(
    nodes: Sequence["GraphNode"],
    canvas: tuple[float, float],
    *,
    rng: random.Random | None = None,
    params: LayoutParams = LAYOUT,
) -> None:
    """Spread nodes evenly on a ring around the canvas center, with jitter."""
    if not nodes:
        return
    rng = rng or random.Random()
    width, height = canvas
    cx, cy = width / 2, height / 2
    ring = min(width, height) * params.RING_RATIO

    for i, node in enumerate(nodes):
        angle = (2 * math.pi / len(nodes)) * i
        node.x = cx + math.cos(angle) * ring + rng.uniform(-params.JITTER, params.JITTER)
        node.y = cy + math.sin(angle) * ring + rng.uniform(-params.JITTER, params.JITTER)
        node.vx = 0.0
        node.vy = 0.0


def layout_step(
    nodes: Sequence["GraphNode"],
    edges: Sequence["GraphEdge"],
    canvas: tuple[float, float],
    *,
    pinned: str | None = None,
    params: LayoutParams = LAYOUT,
) -> list["GraphNode"]:
    """Advance the simulation by one tick.

    Forces are computed from the incoming positions, so the result does
    not depend on node order.

    Args:
        nodes: Current node states (not modified).
        edges: Graph edges; edges to unknown nodes are ignored.
        canvas: (width, height).
        pinned: Id of a node under interactive drag; returned unchanged.

    Returns:
        New node states in the same order.
    """
    width, height = canvas
    cx, cy = width / 2, height / 2
    index = {n.id: i for i, n in enumerate(nodes)}

    neighbors: dict[str, list[int]] = {n.id: [] for n in nodes}
    for edge in edges:
        if edge.source in index and edge.target in index:
            neighbors[edge.source].append(index[edge.target])
            neighbors[edge.target].append(index[edge.source])

    updated: list[GraphNode] = []
    for i, node in enumerate(nodes):
        if node.id == pinned:
            updated.append(node)
            continue

        fx = 0.0
        fy = 0.0

        for j, other in enumerate(nodes):
            if i == j:
                continue
            dx = node.x - other.x
            dy = node.y - other.y
            dist = max(math.hypot(dx, dy), 1.0)
            force = params.REPULSION / (dist * dist)
            fx += (dx / dist) * force
            fy += (dy / dist) * force

        for j in neighbors[node.id]:
            fx += (nodes[j].x - node.x) * params.ATTRACTION
            fy += (nodes[j].y - node.y) * params.ATTRACTION

        fx += (cx - node.x) * params.CENTER_GRAVITY
        fy += (cy - node.y) * params.CENTER_GRAVITY

        vx = (node.vx + fx) * params.DAMPING
        vy = (node.vy + fy) * params.DAMPING
        x = _clamp(node.x + vx, params.MARGIN, width - params.MARGIN)
        y = _clamp(node.y + vy, params.MARGIN, height - params.MARGIN)

        updated.append(replace(node, x=x, y=y, vx=vx, vy=vy))

    return updated


class LayoutSimulation:
    """Time-bounded driver for layout_step.

    Only tick() and begin_drag() replace node states; callers read
    self.nodes or subscribe with on_tick.
    """

    def __init__(
        self,
        nodes: Sequence["GraphNode"],
        edges: Sequence["GraphEdge"],
        canvas: tuple[float, float],
        *,
        tick_interval: float = LAYOUT.TICK_INTERVAL,
        duration: float = LAYOUT.DURATION,
        clock: Callable[[], float] = time.monotonic,
        on_tick: Callable[[list["GraphNode"]], None] | None = None,
        params: LayoutParams = LAYOUT,
    ) -> None:
        self.nodes: list[GraphNode] = list(nodes)
        self.edges = list(edges)
        self.canvas = canvas
        self.tick_interval = tick_interval
        self.duration = duration
        self.ticks = 0
        self._clock = clock
        self._on_tick = on_tick
        self._params = params
        self._dragged: str | None = None
        self._stopped = False
        self._running = False

    @property
    def dragged(self) -> str | None:
        return self._dragged

    @property
    def is_running(self) -> bool:
        return self._running

    def tick(self) -> None:
        self.nodes = layout_step(
            self.nodes,
            self.edges,
            self.canvas,
            pinned=self._dragged,
            params=self._params,
        )
        self.ticks += 1
        if self._on_tick is not None:
            self._on_tick(self.nodes)

    def begin_drag(self, node_id: str, x: float, y: float) -> None:
        """Move a node to the pointer and hold it there until end_drag()."""
        for i, node in enumerate(self.nodes):
            if node.id == node_id:
                self.nodes[i] = replace(node, x=x, y=y, vx=0.0, vy=0.0)
                self._dragged = node_id
                return
        logger.debug("Ignoring drag of unknown node %s", node_id)

    def end_drag(self) -> None:
        self._dragged = None

    def stop(self) -> None:
        """Stop at the next tick boundary (component teardown)."""
        self._stopped = True

    async def run(self) -> int:
        """Tick at a fixed rate until the time budget is spent.

        Returns:
            Number of ticks performed.
        """
        started = self._clock()
        self._running = True
        try:
            while not self._stopped and self._clock() - started < self.duration:
                self.tick()
                await asyncio.sleep(self.tick_interval)
        finally:
            self._running = False

        logger.debug("Layout simulation finished after %d ticks", self.ticks)
        return self.ticks
