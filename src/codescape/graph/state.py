"""The running graph of a visualization session."""

from __future__ import annotations

import logging
from collections.abc import Iterable

import networkx as nx

from codescape.graph.models import Edge, FileNode, Node, NodeType

logger = logging.getLogger("codescape.graph")


class CodeGraph:
    """Deduplicated nodes and edges observed so far in a session.

    Backed by a NetworkX DiGraph: each graph node carries its model under
    the ``node`` attribute, each edge carries its ``Edge`` under ``edge``.
    Insertion order is preserved, which keeps layouts reproducible.

    Invariants:
    - node ids are unique (first-seen wins);
    - (source, target) pairs are unique;
    - both endpoints of every stored edge are present.
    """

    def __init__(self) -> None:
        self.graph = nx.DiGraph()
        self.highlighted: set[str] = set()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def __len__(self) -> int:
        return self.graph.number_of_nodes()

    def __contains__(self, node_id: object) -> bool:
        return self.graph.has_node(node_id)

    @property
    def nodes(self) -> list[Node]:
        return [data["node"] for _, data in self.graph.nodes(data=True)]

    @property
    def edges(self) -> list[Edge]:
        return [data["edge"] for _, _, data in self.graph.edges(data=True)]

    def get(self, node_id: str) -> Node | None:
        data = self.graph.nodes.get(node_id)
        return data["node"] if data else None

    def has_edge(self, source: str, target: str) -> bool:
        return self.graph.has_edge(source, target)

    def successors(self, node_id: str) -> list[str]:
        if not self.graph.has_node(node_id):
            return []
        return list(self.graph.successors(node_id))

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def add_node(self, node: Node) -> bool:
        """Add a node unless its id is already present. Returns True if added."""
        if self.graph.has_node(node.id):
            logger.debug(f"Node {node.id} already present, keeping the first")
            return False
        self.graph.add_node(node.id, node=node)
        return True

    def add_edge(self, edge: Edge) -> bool:
        """Add an edge if its pair is new and both endpoints exist."""
        if not (self.graph.has_node(edge.source) and self.graph.has_node(edge.target)):
            logger.debug(f"Dropping dangling edge {edge.source} -> {edge.target}")
            return False
        if self.graph.has_edge(edge.source, edge.target):
            return False
        self.graph.add_edge(edge.source, edge.target, edge=edge)
        return True

    def replace(self, nodes: Iterable[Node], edges: Iterable[Edge]) -> None:
        """Discard everything and load a fresh graph push."""
        self.graph = nx.DiGraph()
        self.highlighted = set()
        for node in nodes:
            self.add_node(node)
        for edge in edges:
            self.add_edge(edge)

    def mark_expanded(self, node_id: str) -> None:
        node = self.get(node_id)
        if node is not None:
            node.expanded = True

    def toggle_collapsed(self, node_id: str) -> bool | None:
        """Flip a file node's symbol list; returns the new collapsed state."""
        node = self.get(node_id)
        if not isinstance(node, FileNode):
            return None
        node.collapsed = not node.collapsed
        return node.collapsed

    # ------------------------------------------------------------------
    # Display overlay
    # ------------------------------------------------------------------

    def highlight(self, files: Iterable[str]) -> None:
        """Mark files as highlighted. Display-only: positions never change."""
        self.highlighted = {f for f in files if f}

    def clear_highlight(self) -> None:
        self.highlighted = set()

    def is_highlighted(self, node: Node) -> bool:
        return bool(node.filepath) and node.filepath in self.highlighted

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------

    def node_to_dict(self, node: Node) -> dict:
        """Render a node in the renderer's ``{id, type, position, data}`` shape."""
        data = node.model_dump(exclude={"id", "type", "position"})
        data["highlighted"] = self.is_highlighted(node)
        return {
            "id": node.id,
            "type": node.type,
            "position": node.position.model_dump(),
            "data": data,
        }

    def to_dict(self) -> dict:
        return {
            "nodes": [self.node_to_dict(n) for n in self.nodes],
            "edges": [e.model_dump() for e in self.edges],
            "highlighted": sorted(self.highlighted),
        }

    def get_stats(self) -> dict:
        """Get graph statistics."""
        file_count = sum(1 for n in self.nodes if n.type == NodeType.FILE)
        return {
            "total_nodes": self.graph.number_of_nodes(),
            "total_edges": self.graph.number_of_edges(),
            "files": file_count,
            "symbols": self.graph.number_of_nodes() - file_count,
            "expanded": sum(1 for n in self.nodes if n.expanded),
            "self_loops": nx.number_of_selfloops(self.graph),
            "highlighted": len(self.highlighted),
        }
