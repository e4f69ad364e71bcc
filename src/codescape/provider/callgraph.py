"""Assemble graph fragments from call-hierarchy and symbol answers.

These helpers are for Python-side providers that talk to a language
server themselves. Traversal is an explicit worklist processed one depth
level at a time; the outgoing-call lookups of a level run concurrently
under ``asyncio.gather``.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable
from pathlib import Path

from pydantic import BaseModel

from codescape.config import ScanConfig
from codescape.exceptions import MalformedFragmentError, ProviderError
from codescape.graph.ingest import parse_symbol_entry
from codescape.graph.models import Edge, FileNode, Fragment, SymbolNode

logger = logging.getLogger("codescape.callgraph")


class CallItem(BaseModel):
    """A call-hierarchy item as reported by the language server."""

    name: str
    filepath: str
    line: int
    col: int = 1
    end_line: int | None = None
    kind: str = "Function"

    @property
    def node_id(self) -> str:
        return f"{self.filepath}:{self.line}"


class CallHierarchySource(ABC):
    """Something that can list the outgoing calls of a call-hierarchy item."""

    @abstractmethod
    async def outgoing_calls(self, item: CallItem) -> list[CallItem]:
        ...


def is_project_file(filepath: str, cwd: str | Path, scan: ScanConfig | None = None) -> bool:
    """True if ``filepath`` lives under ``cwd`` outside dependency directories."""
    scan = scan or ScanConfig()
    try:
        rel = Path(filepath).relative_to(Path(cwd))
    except ValueError:
        return False
    excluded = set(scan.exclude_dirs)
    return not any(part in excluded for part in rel.parts[:-1])


def relative_path(filepath: str, cwd: str | Path) -> str:
    try:
        return str(Path(filepath).relative_to(Path(cwd)))
    except ValueError:
        return filepath


class CallGraphBuilder:
    """Builds call-graph fragments by walking outgoing calls.

    Node ids are ``{filepath}:{line}``. Calls into files outside the project
    are skipped. Self-calls produce self-loop edges unless
    ``include_self_calls`` is off.
    """

    def __init__(
        self,
        source: CallHierarchySource,
        cwd: str | Path,
        scan: ScanConfig | None = None,
        include_self_calls: bool = True,
    ) -> None:
        self.source = source
        self.cwd = Path(cwd)
        self.scan = scan or ScanConfig()
        self.include_self_calls = include_self_calls

    def _node(self, item: CallItem) -> SymbolNode:
        return SymbolNode(
            id=item.node_id,
            label=item.name,
            filepath=item.filepath,
            line=item.line,
            end_line=item.end_line,
            col=item.col,
            kind=item.kind,
            expandable=True,
        )

    async def _calls(self, item: CallItem) -> list[CallItem]:
        try:
            calls = await self.source.outgoing_calls(item)
        except ProviderError as e:
            logger.warning(f"Outgoing calls for {item.name} failed: {e}")
            return []
        return [c for c in calls if is_project_file(c.filepath, self.cwd, self.scan)]

    def _keep_edge(self, source_id: str, target_id: str) -> bool:
        return self.include_self_calls or source_id != target_id

    async def build(self, root: CallItem, max_depth: int | None = None) -> Fragment:
        """Walk outgoing calls from ``root`` up to ``max_depth`` levels."""
        depth_limit = self.scan.call_depth if max_depth is None else max_depth
        nodes: dict[str, SymbolNode] = {root.node_id: self._node(root)}
        edges: dict[tuple[str, str], Edge] = {}

        frontier = [root]
        depth = 0
        while frontier and depth < depth_limit:
            results = await asyncio.gather(*(self._calls(item) for item in frontier))
            next_frontier: list[CallItem] = []
            for item, calls in zip(frontier, results):
                for call in calls:
                    if call.node_id not in nodes:
                        nodes[call.node_id] = self._node(call)
                        next_frontier.append(call)
                    key = (item.node_id, call.node_id)
                    if key not in edges and self._keep_edge(*key):
                        edges[key] = Edge(source=key[0], target=key[1])
            frontier = next_frontier
            depth += 1

        logger.info(f"Call graph from {root.name}: {len(nodes)} functions, {len(edges)} calls")
        return Fragment(nodes=list(nodes.values()), edges=list(edges.values()))

    async def expand(self, item: CallItem) -> Fragment:
        """One level of outgoing calls, without the item itself (expand result)."""
        nodes: dict[str, SymbolNode] = {}
        edges: dict[tuple[str, str], Edge] = {}
        for call in await self._calls(item):
            nodes.setdefault(call.node_id, self._node(call))
            key = (item.node_id, call.node_id)
            if key not in edges and self._keep_edge(*key):
                edges[key] = Edge(source=key[0], target=key[1])
        return Fragment(nodes=list(nodes.values()), edges=list(edges.values()))

    async def connect(self, items: Iterable[CallItem]) -> Fragment:
        """Nodes for ``items`` plus the calls among them (workspace view)."""
        items = list(items)
        nodes: dict[str, SymbolNode] = {}
        for item in items:
            nodes.setdefault(item.node_id, self._node(item))

        results = await asyncio.gather(*(self._calls(item) for item in items))
        edges: dict[tuple[str, str], Edge] = {}
        for item, calls in zip(items, results):
            for call in calls:
                key = (item.node_id, call.node_id)
                if call.node_id in nodes and key not in edges and self._keep_edge(*key):
                    edges[key] = Edge(source=key[0], target=key[1])

        logger.info(f"Workspace graph: {len(nodes)} functions, {len(edges)} connections")
        return Fragment(nodes=list(nodes.values()), edges=list(edges.values()))


def symbols_to_file_nodes(symbols: Iterable[dict], cwd: str | Path) -> list[FileNode]:
    """Group reported symbols into one file node per file, in reported order."""
    grouped: dict[str, list] = {}
    for raw in symbols:
        filepath = raw.get("filepath") or raw.get("path") or raw.get("file")
        if not filepath:
            logger.warning(f"Dropping symbol without a file: {raw.get('name')!r}")
            continue
        entries = grouped.setdefault(filepath, [])
        try:
            entries.append(parse_symbol_entry(raw))
        except MalformedFragmentError as e:
            logger.warning(f"Dropping symbol in {filepath}: {e}")

    return [
        FileNode(
            id=filepath,
            filepath=filepath,
            path=relative_path(filepath, cwd),
            symbols=entries,
        )
        for filepath, entries in grouped.items()
    ]
