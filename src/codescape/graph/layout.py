"""Full-graph layout: a column grid without edges, a layered layout with them.

The layered layout is a Sugiyama-style pipeline over NetworkX:

  1. Cycle breaking (DFS back-edges, reversed)
  2. Rank assignment (longest path from the sources)
  3. Dummy nodes for edges spanning several ranks
  4. Crossing reduction (barycenter sweeps)
  5. Coordinate assignment (ranks along the rank axis, balanced placement
     across it)

Every step iterates nodes and edges in insertion order and breaks ties by
the current index, so identical input always gives identical positions.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

import networkx as nx

from codescape.config import LayoutConfig
from codescape.exceptions import LayoutError
from codescape.graph.geometry import estimate
from codescape.graph.models import Edge, FileNode, Node, Position, Size

logger = logging.getLogger("codescape.layout")

DIRECTIONS = ("LR", "RL", "TB", "BT")
DUMMY_PREFIX = "__dummy_"
BALANCE_ITERATIONS = 4


def layout(
    nodes: Sequence[Node],
    edges: Sequence[Edge],
    direction: str = "LR",
    config: LayoutConfig | None = None,
) -> list[Node]:
    """Position nodes in place and return them.

    Without edges the nodes are laid out as a grid grouped by file;
    otherwise a layered layout in the given direction is computed.
    """
    config = config or LayoutConfig()
    if direction not in DIRECTIONS:
        raise LayoutError(f"Unknown layout direction: {direction!r}")
    if not nodes:
        return []
    if not edges:
        return grid_layout(nodes, config)
    return layered_layout(nodes, edges, direction, config)


# ----------------------------------------------------------------------
# Grid layout (no edges)
# ----------------------------------------------------------------------


def grid_layout(nodes: Sequence[Node], config: LayoutConfig | None = None) -> list[Node]:
    """File nodes on one row, everything else in a wrapped grid below.

    Graphs without any file node (symbol-only pushes) are laid out as one
    column per originating file, one row per symbol in arrival order.
    """
    config = config or LayoutConfig()
    file_nodes = [n for n in nodes if isinstance(n, FileNode)]
    other_nodes = [n for n in nodes if not isinstance(n, FileNode)]

    if file_nodes:
        sizes = [estimate(n) for n in file_nodes]
        col_width = max(s.width for s in sizes) + config.column_gap
        for index, node in enumerate(file_nodes):
            node.position = Position(x=index * col_width, y=0)

        top = max(s.height for s in sizes) + config.grid_row_offset
        cell_width = _cell_width(other_nodes, config)
        cols = max(1, config.grid_columns)
        for index, node in enumerate(other_nodes):
            node.position = Position(
                x=(index % cols) * cell_width,
                y=top + (index // cols) * config.grid_row_height,
            )
        return list(nodes)

    by_file: dict[str, list[Node]] = {}
    for node in nodes:
        key = node.file or node.filepath or "unknown"
        by_file.setdefault(key, []).append(node)

    cell_width = _cell_width(nodes, config)
    for col, key in enumerate(sorted(by_file)):
        for row, node in enumerate(by_file[key]):
            node.position = Position(x=col * cell_width, y=row * config.grid_row_height)
    return list(nodes)


def _cell_width(nodes: Sequence[Node], config: LayoutConfig) -> float:
    widest = max((estimate(n).width for n in nodes), default=0.0)
    return max(config.grid_col_width, widest + config.column_gap)


# ----------------------------------------------------------------------
# Layered layout (edges present)
# ----------------------------------------------------------------------


def layered_layout(
    nodes: Sequence[Node],
    edges: Sequence[Edge],
    direction: str = "LR",
    config: LayoutConfig | None = None,
) -> list[Node]:
    """Layered directed layout using estimated node sizes for spacing."""
    config = config or LayoutConfig()
    sizes: dict[str, Size] = {n.id: estimate(n) for n in nodes}

    graph = nx.DiGraph()
    graph.add_nodes_from(sizes)
    for edge in edges:
        if edge.source == edge.target:
            continue
        if edge.source in sizes and edge.target in sizes:
            graph.add_edge(edge.source, edge.target)

    dag = break_cycles(graph)
    ranks = assign_ranks(dag)
    augmented, ranks = insert_dummy_nodes(dag, ranks)
    layers = order_layers(augmented, ranks, config.crossing_passes)

    horizontal = direction in ("LR", "RL")

    def rank_extent(node_id: str) -> float:
        size = sizes.get(node_id)
        if size is None:
            return 0.0
        return size.width if horizontal else size.height

    def cross_extent(node_id: str) -> float:
        size = sizes.get(node_id)
        if size is None:
            return 0.0
        return size.height if horizontal else size.width

    max_rank = max(rank_extent(n) for n in sizes)
    max_cross = max(cross_extent(n) for n in sizes)
    rank_step = max_rank + config.layer_margin
    node_sep = max(config.min_node_sep, config.node_sep_ratio * max_cross)

    cross = assign_cross_coordinates(augmented, layers, cross_extent, node_sep)

    last_rank = len(layers) - 1
    centers: dict[str, tuple[float, float]] = {}
    for node_id in sizes:
        rank = ranks[node_id]
        if direction in ("RL", "BT"):
            rank = last_rank - rank
        along = rank * rank_step + max_rank / 2
        if horizontal:
            centers[node_id] = (along, cross[node_id])
        else:
            centers[node_id] = (cross[node_id], along)

    # Engine reports centers; nodes are positioned by their top-left corner.
    corners = {
        node_id: (cx - sizes[node_id].width / 2, cy - sizes[node_id].height / 2)
        for node_id, (cx, cy) in centers.items()
    }
    min_x = min(x for x, _ in corners.values())
    min_y = min(y for _, y in corners.values())
    for node in nodes:
        x, y = corners[node.id]
        node.position = Position(x=x - min_x, y=y - min_y)

    logger.debug(
        f"Layered layout: {len(sizes)} nodes, {graph.number_of_edges()} edges, "
        f"{len(layers)} ranks, direction {direction}"
    )
    return list(nodes)


def break_cycles(graph: nx.DiGraph) -> nx.DiGraph:
    """Return an acyclic copy with DFS back-edges reversed.

    Self-loops are dropped. Traversal follows insertion order so the
    reversed set is stable for identical input.
    """
    visiting, done = 1, 2
    state: dict[str, int] = {}
    back_edges: set[tuple[str, str]] = set()

    for root in graph.nodes:
        if root in state:
            continue
        state[root] = visiting
        stack = [(root, iter(graph.successors(root)))]
        while stack:
            node, successors = stack[-1]
            for succ in successors:
                mark = state.get(succ)
                if mark == visiting:
                    back_edges.add((node, succ))
                elif mark is None:
                    state[succ] = visiting
                    stack.append((succ, iter(graph.successors(succ))))
                    break
            else:
                state[node] = done
                stack.pop()

    dag = nx.DiGraph()
    dag.add_nodes_from(graph.nodes)
    for src, tgt in graph.edges:
        if src == tgt:
            continue
        if (src, tgt) in back_edges:
            src, tgt = tgt, src
        if not dag.has_edge(src, tgt):
            dag.add_edge(src, tgt)
    return dag


def assign_ranks(dag: nx.DiGraph) -> dict[str, int]:
    """Longest-path ranking: every edge points to a strictly higher rank."""
    ranks: dict[str, int] = {}
    try:
        order = list(nx.topological_sort(dag))
    except nx.NetworkXUnfeasible as e:
        raise LayoutError("Rank assignment needs an acyclic graph") from e
    for node in order:
        ranks[node] = max((ranks[p] + 1 for p in dag.predecessors(node)), default=0)
    return ranks


def insert_dummy_nodes(
    dag: nx.DiGraph, ranks: dict[str, int]
) -> tuple[nx.DiGraph, dict[str, int]]:
    """Split edges spanning several ranks into chains of zero-size dummies.

    Afterwards every edge connects adjacent ranks.
    """
    augmented = nx.DiGraph()
    augmented.add_nodes_from(dag.nodes)
    ranks = dict(ranks)

    for index, (src, tgt) in enumerate(list(dag.edges)):
        span = ranks[tgt] - ranks[src]
        if span <= 1:
            augmented.add_edge(src, tgt)
            continue
        prev = src
        for step in range(1, span):
            dummy = f"{DUMMY_PREFIX}{index}_{step}"
            augmented.add_node(dummy)
            ranks[dummy] = ranks[src] + step
            augmented.add_edge(prev, dummy)
            prev = dummy
        augmented.add_edge(prev, tgt)

    return augmented, ranks


def order_layers(
    graph: nx.DiGraph, ranks: dict[str, int], passes: int = 8
) -> list[list[str]]:
    """Order nodes within each rank to reduce edge crossings.

    Alternating down/up barycenter sweeps; the ordering with the fewest
    crossings seen is kept.
    """
    layer_count = max(ranks.values(), default=-1) + 1
    layers: list[list[str]] = [[] for _ in range(layer_count)]
    for node in graph.nodes:
        layers[ranks[node]].append(node)

    best = [list(layer) for layer in layers]
    best_crossings = count_crossings(graph, best)

    for _ in range(passes):
        if best_crossings == 0:
            break
        for i in range(1, layer_count):
            layers[i] = _barycenter_sort(layers[i], layers[i - 1], graph.predecessors)
        for i in range(layer_count - 2, -1, -1):
            layers[i] = _barycenter_sort(layers[i], layers[i + 1], graph.successors)
        crossings = count_crossings(graph, layers)
        if crossings < best_crossings:
            best = [list(layer) for layer in layers]
            best_crossings = crossings

    return best


def _barycenter_sort(layer: list[str], fixed: list[str], neighbors) -> list[str]:
    index = {node: i for i, node in enumerate(fixed)}

    def key(item: tuple[int, str]) -> tuple[float, int]:
        current, node = item
        positions = [index[n] for n in neighbors(node) if n in index]
        if not positions:
            return (float(current), current)
        return (sum(positions) / len(positions), current)

    return [node for _, node in sorted(enumerate(layer), key=key)]


def count_crossings(graph: nx.DiGraph, layers: list[list[str]]) -> int:
    """Count pairwise edge crossings between adjacent layers."""
    total = 0
    for upper, lower in zip(layers, layers[1:]):
        lower_index = {node: i for i, node in enumerate(lower)}
        pairs = []
        for i, node in enumerate(upper):
            for succ in graph.successors(node):
                if succ in lower_index:
                    pairs.append((i, lower_index[succ]))
        pairs.sort()
        for a in range(len(pairs)):
            for b in range(a + 1, len(pairs)):
                if pairs[a][0] < pairs[b][0] and pairs[a][1] > pairs[b][1]:
                    total += 1
    return total


def assign_cross_coordinates(
    graph: nx.DiGraph,
    layers: list[list[str]],
    extent,
    node_sep: float,
) -> dict[str, float]:
    """Center coordinate of every node across the rank axis.

    Nodes start stacked in layer order, then are pulled toward the mean of
    their neighbours in the adjacent rank. Each pull keeps the layer order
    and the minimum separation by averaging a forward and a backward
    compaction of the desired positions.
    """
    coords: dict[str, float] = {}
    for layer in layers:
        cursor = 0.0
        for node in layer:
            size = extent(node)
            coords[node] = cursor + size / 2
            cursor += size + node_sep

    for _ in range(BALANCE_ITERATIONS):
        for i in range(1, len(layers)):
            _balance_layer(layers[i], coords, graph.predecessors, extent, node_sep)
        for i in range(len(layers) - 2, -1, -1):
            _balance_layer(layers[i], coords, graph.successors, extent, node_sep)

    return coords


def _balance_layer(layer, coords, neighbors, extent, node_sep) -> None:
    if not layer:
        return
    desired = []
    for node in layer:
        around = [coords[n] for n in neighbors(node)]
        desired.append(sum(around) / len(around) if around else coords[node])

    gaps = [
        (extent(layer[k - 1]) + extent(layer[k])) / 2 + node_sep
        for k in range(1, len(layer))
    ]

    forward = list(desired)
    for k in range(1, len(layer)):
        forward[k] = max(desired[k], forward[k - 1] + gaps[k - 1])

    backward = list(desired)
    for k in range(len(layer) - 2, -1, -1):
        backward[k] = min(desired[k], backward[k + 1] - gaps[k])

    for k, node in enumerate(layer):
        coords[node] = (forward[k] + backward[k]) / 2
