"""A visualization session: the graph, its in-flight requests and caches."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any

from codescape.config import ProjectConfig
from codescape.exceptions import MalformedFragmentError, ProviderError, RequestTimeoutError
from codescape.graph.ingest import file_nodes_from_paths, parse_fragment, parse_symbol_entry
from codescape.graph.layout import layout
from codescape.graph.merge import MergeResult, merge_expansion
from codescape.graph.models import Edge, FileNode, Fragment, SnippetLine, SymbolEntry, SymbolNode
from codescape.graph.state import CodeGraph
from codescape.provider.base import (
    AnalysisProvider,
    ExpandRequest,
    FileExpandRequest,
    NullProvider,
    ReferencesRequest,
    SymbolsRequest,
)
from codescape.provider.scanner import scan_project
from codescape.session.correlation import PendingRequests
from codescape.session.snippets import SnippetReader

logger = logging.getLogger("codescape.session")

ChangeCallback = Callable[[dict], None]


class VisualizerSession:
    """Owns everything a running visualization needs.

    The graph, the pending-request registry and the symbol cache all live
    here and die with the session. All methods run on one event loop; the
    only suspension points are the provider round-trips, so several
    expansions may be in flight and each merges independently when its
    answer arrives.

    Provider failures (unavailable, timeout) never propagate: the affected
    operation simply yields no new data.
    """

    def __init__(
        self,
        provider: AnalysisProvider | None = None,
        config: ProjectConfig | None = None,
        on_change: ChangeCallback | None = None,
    ) -> None:
        self.config = config or ProjectConfig()
        self.provider = provider or NullProvider()
        self.on_change = on_change
        self.graph = CodeGraph()
        self.pending = PendingRequests()
        self.snippets = SnippetReader(
            self._lookup_symbols, max_lines=self.config.bridge.max_snippet_lines
        )
        self._hover_request: str | None = None
        # Bumped whenever the graph is replaced; expansions started against an
        # older graph are discarded when their answer arrives.
        self._generation = 0

    async def __aenter__(self) -> VisualizerSession:
        return self

    async def __aexit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        """Drop outstanding requests and caches."""
        self.pending.close()
        self.snippets.invalidate()
        self._hover_request = None
        self._generation += 1

    # ------------------------------------------------------------------
    # Graph push and layout
    # ------------------------------------------------------------------

    def load_graph(self, payload: Any) -> Fragment:
        """Replace the whole graph with a pushed one and lay it out."""
        fragment = parse_fragment(payload)
        self._replace(fragment)
        logger.info(
            f"Graph loaded: {len(self.graph)} nodes, {len(self.graph.edges)} edges"
            + (f", {fragment.dropped} malformed entries dropped" if fragment.dropped else "")
        )
        self._changed()
        return fragment

    def load_project(self, root: str | Path) -> Fragment:
        """Replace the graph with the file/import graph of a project directory."""
        fragment = scan_project(root, self.config.scan)
        self._replace(fragment)
        logger.info(
            f"Project scanned: {len(self.graph)} files, {len(self.graph.edges)} imports"
        )
        self._changed()
        return fragment

    def _replace(self, fragment: Fragment) -> None:
        self.graph.replace(fragment.nodes, fragment.edges)
        self.snippets.invalidate()
        self._hover_request = None
        self._generation += 1
        self.relayout(notify=False)

    def relayout(self, direction: str | None = None, notify: bool = True) -> None:
        layout(
            self.graph.nodes,
            self.graph.edges,
            direction or self.config.layout.direction,
            self.config.layout,
        )
        if notify:
            self._changed()

    def toggle_file(self, node_id: str) -> bool | None:
        """Collapse or reopen a file node's symbol list."""
        collapsed = self.graph.toggle_collapsed(node_id)
        if collapsed is not None:
            self._changed()
        return collapsed

    def snapshot(self) -> dict:
        return self.graph.to_dict()

    # ------------------------------------------------------------------
    # Expansion
    # ------------------------------------------------------------------

    async def expand_calls(self, node_id: str) -> MergeResult:
        """Fetch and merge the outgoing calls of a symbol node."""
        node = self.graph.get(node_id)
        if not isinstance(node, SymbolNode) or not node.can_expand_calls:
            logger.info(f"Node {node_id} has no call hierarchy to expand")
            return MergeResult(source_id=node_id)

        generation = self._generation
        payload = await self._request(
            "expand",
            self.config.bridge.expand_timeout_ms,
            lambda rid: self.provider.request_expand(
                ExpandRequest(request_id=rid, filepath=node.filepath, line=node.line, column=node.col)
            ),
        )
        if payload is None or self._is_stale(node_id, generation):
            return MergeResult(source_id=node_id)

        fragment = parse_fragment(payload)
        return self._merge(node_id, fragment.nodes, fragment.edges)

    async def expand_file(self, node_id: str) -> MergeResult:
        """Fetch and merge the files a file node imports."""
        node = self.graph.get(node_id)
        if not isinstance(node, FileNode):
            logger.info(f"Node {node_id} is not a file node")
            return MergeResult(source_id=node_id)

        generation = self._generation
        payload = await self._request(
            "expand_file",
            self.config.bridge.expand_timeout_ms,
            lambda rid: self.provider.request_file_expand(
                FileExpandRequest(request_id=rid, filepath=node.filepath)
            ),
        )
        if payload is None or self._is_stale(node_id, generation):
            return MergeResult(source_id=node_id)

        fragment = parse_fragment(payload)
        new_nodes = list(fragment.nodes)
        files = payload.get("files")
        if isinstance(files, list):
            new_nodes.extend(file_nodes_from_paths(files))
        new_edges = list(fragment.edges)
        new_edges.extend(Edge(source=node_id, target=n.id) for n in new_nodes if n.id != node_id)
        return self._merge(node_id, new_nodes, new_edges)

    def _is_stale(self, node_id: str, generation: int) -> bool:
        if generation != self._generation or node_id not in self.graph:
            logger.info(f"Discarding expansion of {node_id}: graph was replaced meanwhile")
            return True
        return False

    def _merge(self, node_id: str, nodes, edges) -> MergeResult:
        result = merge_expansion(self.graph, node_id, nodes, edges, self.config.merge)
        logger.info(
            f"Expanded {node_id}: +{len(result.added_nodes)} nodes, +{len(result.added_edges)} edges"
        )
        self._changed()
        return result

    # ------------------------------------------------------------------
    # Hover highlighting (display only)
    # ------------------------------------------------------------------

    async def highlight_references(self, node_id: str, symbol: str, line: int) -> set[str]:
        """Highlight the files referencing ``symbol``. Never moves or merges nodes."""
        node = self.graph.get(node_id)
        if node is None or not node.filepath:
            return set()

        def send(rid: str) -> Awaitable[None]:
            self._hover_request = rid
            return self.provider.request_references(
                ReferencesRequest(request_id=rid, filepath=node.filepath, line=line, name=symbol)
            )

        payload = await self._request("refs", self.config.bridge.references_timeout_ms, send)
        files = payload.get("files") if isinstance(payload, dict) else None
        if not isinstance(files, list):
            return set()
        if self._hover_request != payload.get("requestId", payload.get("request_id")):
            logger.debug(f"Stale references result for {symbol}, hover already left")
            return set()

        self.graph.highlight(f for f in files if isinstance(f, str))
        self._changed()
        return set(self.graph.highlighted)

    def clear_highlight(self) -> None:
        self._hover_request = None
        if self.graph.highlighted:
            self.graph.clear_highlight()
            self._changed()

    # ------------------------------------------------------------------
    # Inbound results, navigation, snippets
    # ------------------------------------------------------------------

    def handle_result(self, payload: Any) -> bool:
        """Route an out-of-band result to the request waiting for it."""
        if not isinstance(payload, dict):
            logger.warning("Ignoring result that is not an object")
            return False
        request_id = payload.get("requestId", payload.get("request_id"))
        if not isinstance(request_id, str):
            logger.warning("Ignoring result without a request id")
            return False
        return self.pending.resolve(request_id, payload)

    async def navigate(self, filepath: str, line: int = 1) -> bool:
        """Ask the editor to jump to a location. Best effort."""
        try:
            await self.provider.navigate(filepath, max(1, line))
        except ProviderError as e:
            logger.warning(f"Navigate to {filepath}:{line} failed: {e}")
            return False
        return True

    async def fetch_snippet(
        self,
        filepath: str,
        line: int,
        end_line: int | None = None,
        context_lines: int | None = None,
    ) -> list[SnippetLine]:
        if context_lines is None:
            context_lines = self.config.bridge.snippet_context_lines
        return await self.snippets.fetch(filepath, line, end_line, context_lines)

    async def _lookup_symbols(self, filepath: str) -> list[SymbolEntry]:
        payload = await self._request(
            "symbols",
            self.config.bridge.symbols_timeout_ms,
            lambda rid: self.provider.request_symbols(SymbolsRequest(request_id=rid, filepath=filepath)),
        )
        if payload is None:
            raise ProviderError(f"no symbols for {filepath}")

        raw_symbols = payload.get("symbols")
        if not isinstance(raw_symbols, list):
            raw_symbols = []
        symbols = []
        for raw in raw_symbols:
            try:
                symbols.append(parse_symbol_entry(raw))
            except MalformedFragmentError as e:
                logger.debug(f"Skipping symbol of {filepath}: {e}")
        return symbols

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _request(
        self,
        prefix: str,
        timeout_ms: float,
        send: Callable[[str], Awaitable[None]],
    ) -> dict | None:
        """Send a correlated request and wait for its answer; None on failure."""
        pending = self.pending.create(prefix, timeout_ms)
        try:
            await send(pending.request_id)
        except ProviderError as e:
            pending.cancel()
            logger.warning(f"{prefix} request not sent: {e}")
            return None

        try:
            payload = await pending
        except RequestTimeoutError as e:
            logger.warning(str(e))
            return None
        if not isinstance(payload, dict):
            logger.warning(f"{prefix} result is not an object, ignoring")
            return None
        return payload

    def _changed(self) -> None:
        if self.on_change is not None:
            self.on_change(self.snapshot())
