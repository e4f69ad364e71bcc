"""Incremental expansion: merge a fragment into the graph without re-layout.

A full re-layout on every expansion would reflow parts of the graph the
user has already looked at. Instead, new nodes go into a column to the
right of the node that triggered the expansion, at the first vertical
slot that does not collide with what is already in that column.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field

from codescape.config import MergeConfig
from codescape.graph.geometry import DEFAULT_SIZE, estimate
from codescape.graph.models import Edge, Node, Position, Size
from codescape.graph.state import CodeGraph

logger = logging.getLogger("codescape.merge")


@dataclass
class MergeResult:
    """What a merge changed."""

    source_id: str
    added_nodes: list[str] = field(default_factory=list)
    added_edges: list[str] = field(default_factory=list)
    duplicate_nodes: int = 0
    duplicate_edges: int = 0
    dangling_edges: int = 0
    placement_attempts: int = 0

    @property
    def changed(self) -> bool:
        return bool(self.added_nodes or self.added_edges)


def merge_expansion(
    graph: CodeGraph,
    source_id: str,
    new_nodes: Sequence[Node],
    new_edges: Sequence[Edge],
    config: MergeConfig | None = None,
) -> MergeResult:
    """Merge the fragment produced by expanding ``source_id`` into ``graph``.

    Existing nodes are never moved or overwritten. Surviving new nodes are
    stacked in a column right of the source; surviving new edges are
    appended. The source is marked expanded either way.
    """
    config = config or MergeConfig()
    result = MergeResult(source_id=source_id)

    fresh: list[Node] = []
    seen: set[str] = set()
    for node in new_nodes:
        if node.id in graph or node.id in seen:
            result.duplicate_nodes += 1
            continue
        seen.add(node.id)
        fresh.append(node)

    if fresh:
        result.placement_attempts = _place_column(graph, source_id, fresh, config)
        for node in fresh:
            graph.add_node(node)
            result.added_nodes.append(node.id)

    for edge in new_edges:
        if graph.has_edge(edge.source, edge.target):
            result.duplicate_edges += 1
        elif graph.add_edge(edge):
            result.added_edges.append(edge.id)
        else:
            result.dangling_edges += 1

    graph.mark_expanded(source_id)

    if result.duplicate_nodes or result.duplicate_edges:
        logger.debug(
            f"Merge from {source_id}: skipped {result.duplicate_nodes} known nodes, "
            f"{result.duplicate_edges} known edges"
        )
    if result.dangling_edges:
        logger.debug(f"Merge from {source_id}: dropped {result.dangling_edges} dangling edges")
    return result


def _place_column(
    graph: CodeGraph, source_id: str, fresh: list[Node], config: MergeConfig
) -> int:
    """Assign positions to ``fresh``; returns the number of placement attempts."""
    source = graph.get(source_id)
    if source is None:
        logger.warning(f"Expansion source {source_id} not in graph, placing at origin")
        origin, source_size = Position(), DEFAULT_SIZE
    else:
        origin, source_size = source.position, estimate(source)

    target_x = origin.x + source_size.width + config.horizontal_gap
    sizes = [estimate(n) for n in fresh]
    column_width = max(s.width for s in sizes)

    occupied = []
    for node in graph.nodes:
        if abs(node.position.x - target_x) < column_width:
            top = node.position.y
            occupied.append((top, top + estimate(node).height))

    start_y, attempts = find_free_y(origin.y, sizes, occupied, config)

    y = start_y
    for node, size in zip(fresh, sizes):
        node.position = Position(x=target_x, y=y)
        y += size.height + config.vertical_gap
    return attempts


def find_free_y(
    start_y: float,
    sizes: Sequence[Size],
    occupied: Sequence[tuple[float, float]],
    config: MergeConfig | None = None,
) -> tuple[float, int]:
    """First-fit scan for a vertical slot that fits the whole stack.

    Steps down by one node height per failed attempt. When the attempts run
    out the last tried y is used anyway: overlap there is a display
    degradation, not an error.

    Returns:
        (y, attempts) where attempts counts the slots tried.
    """
    config = config or MergeConfig()
    needed = sum(s.height for s in sizes) + config.vertical_gap * (len(sizes) - 1)
    step = max(s.height for s in sizes) + config.vertical_gap

    y = start_y
    for attempt in range(1, config.max_placement_attempts + 1):
        bottom = y + needed
        if not any(y < r_bottom and r_top < bottom for r_top, r_bottom in occupied):
            return y, attempt
        if attempt < config.max_placement_attempts:
            y += step

    logger.debug(
        f"No free slot after {config.max_placement_attempts} attempts, "
        f"placing at y={y:g} regardless"
    )
    return y, config.max_placement_attempts
