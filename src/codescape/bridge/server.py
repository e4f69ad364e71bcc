"""Editor bridge: JSON-RPC 2.0 over stdio between the editor and a session.

Implements the protocol framing by hand (``Content-Length`` headers, like
LSP), with no RPC library. The peer is the editor plugin, which also
relays the renderer's user actions.

Outbound (bridge -> editor), all notifications:
  - expand/request, expandFile/request, references/request,
    symbols/request: correlated by ``requestId``
  - navigate: best effort, never answered
  - graph/changed: full snapshot after every graph mutation

Inbound notifications (editor -> bridge):
  - graph/push: replace the graph and lay it out
  - expand/result, expandFile/result, references/result, symbols/result
  - hover/leave

Inbound requests are answered with a response carrying the same id:
  initialize, ping, graph/snapshot, graph/layout, graph/scan, graph/expand,
  graph/expandFile, graph/hover, graph/toggle, code/snippet, navigate
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from collections.abc import Coroutine
from typing import Any

from codescape import __version__
from codescape.config import ProjectConfig
from codescape.exceptions import ProviderUnavailableError
from codescape.graph.merge import MergeResult
from codescape.provider.base import (
    AnalysisProvider,
    ExpandRequest,
    FileExpandRequest,
    ReferencesRequest,
    SymbolsRequest,
)
from codescape.session.session import VisualizerSession

logger = logging.getLogger("codescape.bridge")

RESULT_METHODS = (
    "expand/result",
    "expandFile/result",
    "references/result",
    "symbols/result",
)


class EditorBridge(AnalysisProvider):
    """Connects one editor over a byte stream to a ``VisualizerSession``.

    The bridge is the session's analysis provider: provider calls become
    outbound notifications, and inbound ``*/result`` notifications are fed
    back into the session's request correlation.
    """

    PROTOCOL_VERSION = "2024-11-05"
    SERVER_NAME = "codescape"

    def __init__(self, config: ProjectConfig | None = None) -> None:
        self.session = VisualizerSession(self, config, on_change=self._on_graph_changed)
        self._writer: asyncio.StreamWriter | None = None
        self._write_lock = asyncio.Lock()
        self._tasks: set[asyncio.Task] = set()

    # =========================================================================
    # AnalysisProvider
    # =========================================================================

    @property
    def available(self) -> bool:
        return self._writer is not None and not self._writer.is_closing()

    async def request_expand(self, request: ExpandRequest) -> None:
        await self._notify("expand/request", request.to_params())

    async def request_file_expand(self, request: FileExpandRequest) -> None:
        await self._notify("expandFile/request", request.to_params())

    async def request_references(self, request: ReferencesRequest) -> None:
        await self._notify("references/request", request.to_params())

    async def request_symbols(self, request: SymbolsRequest) -> None:
        await self._notify("symbols/request", request.to_params())

    async def navigate(self, filepath: str, line: int) -> None:
        await self._notify("navigate", {"filepath": filepath, "line": line})

    async def _notify(self, method: str, params: dict) -> None:
        if not self.available:
            raise ProviderUnavailableError("editor not connected")
        try:
            await self._write_message(
                self._writer, {"jsonrpc": "2.0", "method": method, "params": params}
            )
        except ConnectionError as e:
            raise ProviderUnavailableError(str(e)) from e

    def _on_graph_changed(self, snapshot: dict) -> None:
        if self.available:
            self._spawn(self._push_snapshot(snapshot))

    async def _push_snapshot(self, snapshot: dict) -> None:
        try:
            await self._notify("graph/changed", snapshot)
        except ProviderUnavailableError as e:
            logger.debug(f"Snapshot not delivered: {e}")

    # =========================================================================
    # Transport (JSON-RPC 2.0 with Content-Length framing)
    # =========================================================================

    async def run_stdio(self) -> None:
        """Serve the editor over this process's stdin/stdout."""
        loop = asyncio.get_running_loop()
        reader = asyncio.StreamReader()
        protocol = asyncio.StreamReaderProtocol(reader)
        await loop.connect_read_pipe(lambda: protocol, sys.stdin.buffer)

        writer_transport, writer_protocol = await loop.connect_write_pipe(
            asyncio.streams.FlowControlMixin, sys.stdout.buffer
        )
        writer = asyncio.StreamWriter(writer_transport, writer_protocol, None, loop)
        await self.serve(reader, writer)

    async def serve(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        """Read and handle messages until the peer closes the stream."""
        self._writer = writer
        logger.info("codescape bridge started")

        try:
            while True:
                try:
                    message = await self._read_message(reader)
                except ValueError as e:
                    # Covers JSONDecodeError and UnicodeDecodeError
                    logger.error(f"Malformed message: {e}")
                    continue
                except (asyncio.IncompleteReadError, ConnectionError):
                    break
                if message is None:
                    break
                await self._handle_message(message)
        finally:
            self._writer = None
            for task in list(self._tasks):
                task.cancel()
            self.session.close()
            logger.info("codescape bridge shutting down")

    async def _read_message(self, reader: asyncio.StreamReader) -> dict | None:
        """Read a JSON-RPC message with Content-Length header.

        Returns None at end of stream. A frame that cannot be decoded raises
        ``ValueError``; the stream stays usable for the next frame.
        """
        header_value = None
        while True:
            line = await reader.readline()
            if not line:
                return None
            line = line.decode("utf-8", errors="replace").strip()
            if not line:
                break  # End of headers
            if line.lower().startswith("content-length:"):
                header_value = line.split(":", 1)[1].strip()

        if header_value is None:
            raise ValueError("frame without Content-Length header")
        content_length = int(header_value)
        if content_length < 0:
            raise ValueError(f"negative Content-Length: {content_length}")

        body = await reader.readexactly(content_length)
        message = json.loads(body.decode("utf-8"))
        if not isinstance(message, dict):
            raise ValueError(f"message is not an object: {type(message).__name__}")
        return message

    async def _write_message(self, writer: asyncio.StreamWriter, message: dict) -> None:
        """Write a JSON-RPC message with Content-Length header."""
        body = json.dumps(message).encode("utf-8")
        header = f"Content-Length: {len(body)}\r\n\r\n".encode()
        async with self._write_lock:
            writer.write(header + body)
            await writer.drain()

    def _spawn(self, coro: Coroutine) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    # =========================================================================
    # Message routing
    # =========================================================================

    async def _handle_message(self, message: dict) -> None:
        """Route one inbound message.

        Requests run as separate tasks: an expansion waits for a result that
        arrives later on this same stream, so the read loop must keep going.
        """
        method = message.get("method", "")
        msg_id = message.get("id")
        params = message.get("params") or {}
        if not isinstance(params, dict):
            logger.warning(f"{method}: params is not an object, ignoring them")
            params = {}

        if msg_id is None:
            try:
                self._handle_notification(method, params)
            except Exception as e:
                logger.warning(f"{method} notification failed: {e}")
            return
        self._spawn(self._respond(msg_id, method, params))

    async def _respond(self, msg_id: Any, method: str, params: dict) -> None:
        try:
            result = await self._dispatch(method, params)
            response = {"jsonrpc": "2.0", "id": msg_id, "result": result}
        except Exception as e:
            logger.warning(f"{method} failed: {e}")
            response = {
                "jsonrpc": "2.0",
                "id": msg_id,
                "error": {"code": -32603, "message": str(e)},
            }
        if self._writer is not None:
            try:
                await self._write_message(self._writer, response)
            except ConnectionError as e:
                logger.warning(f"Response to {method} not delivered: {e}")

    def _handle_notification(self, method: str, params: dict) -> None:
        """Handle a notification (no response needed)."""
        if method == "graph/push":
            self.session.load_graph(params)
        elif method in RESULT_METHODS:
            if not self.session.handle_result(params):
                logger.debug(f"{method} for an unknown or expired request")
        elif method == "hover/leave":
            self.session.clear_highlight()
        elif method == "notifications/initialized":
            logger.info("Editor initialized")
        else:
            logger.debug(f"Ignoring notification {method}")

    async def _dispatch(self, method: str, params: dict) -> Any:
        """Dispatch a JSON-RPC request to its handler."""
        session = self.session
        if method == "initialize":
            return self._rpc_initialize(params)
        elif method == "ping":
            return {}
        elif method == "graph/snapshot":
            return session.snapshot()
        elif method == "graph/layout":
            session.relayout(params.get("direction"))
            return session.snapshot()
        elif method == "graph/scan":
            fragment = session.load_project(params["root"])
            return {"status": "ok", "files": len(fragment.nodes), "imports": len(fragment.edges)}
        elif method == "graph/expand":
            return _merge_summary(await session.expand_calls(params["nodeId"]))
        elif method == "graph/expandFile":
            return _merge_summary(await session.expand_file(params["nodeId"]))
        elif method == "graph/hover":
            files = await session.highlight_references(
                params["nodeId"], params.get("symbol", ""), int(params.get("line", 1))
            )
            return {"files": sorted(files)}
        elif method == "graph/toggle":
            return {"collapsed": session.toggle_file(params["nodeId"])}
        elif method == "code/snippet":
            lines = await session.fetch_snippet(
                params["filepath"],
                int(params["line"]),
                params.get("endLine", params.get("end_line")),
                params.get("contextLines", params.get("context")),
            )
            return {"status": "ok", "lines": [line.model_dump() for line in lines]}
        elif method == "navigate":
            ok = await session.navigate(params["filepath"], int(params.get("line") or 1))
            return {"status": "ok" if ok else "error"}
        else:
            raise ValueError(f"Unknown method: {method}")

    def _rpc_initialize(self, params: dict) -> dict:
        """Handle the initialize handshake."""
        return {
            "protocolVersion": self.PROTOCOL_VERSION,
            "capabilities": {
                "graph": {"push": True, "changed": True},
                "expand": ["calls", "imports"],
                "references": True,
                "snippets": True,
            },
            "serverInfo": {
                "name": self.SERVER_NAME,
                "version": __version__,
            },
        }


def _merge_summary(result: MergeResult) -> dict:
    return {
        "status": "ok",
        "sourceId": result.source_id,
        "addedNodes": result.added_nodes,
        "addedEdges": result.added_edges,
    }
