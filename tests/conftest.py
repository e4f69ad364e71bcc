"""Shared test fixtures for codescape."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path

import pytest

from codescape.graph.models import FileNode, SymbolEntry, SymbolNode
from codescape.provider.base import AnalysisProvider


def make_symbol(node_id: str, label: str = "", filepath: str = "/proj/app.py", line: int = 1) -> SymbolNode:
    return SymbolNode(id=node_id, label=label or node_id, filepath=filepath, line=line, expandable=True)


def make_file(filepath: str, symbols: list[tuple[str, str, int]] | None = None) -> FileNode:
    return FileNode(
        id=filepath,
        filepath=filepath,
        symbols=[SymbolEntry(name=n, kind=k, line=line) for n, k, line in symbols or []],
    )


class FakeProvider(AnalysisProvider):
    """Records outbound requests and answers them through the session.

    ``answers`` maps a request kind (expand, file_expand, references,
    symbols) to the payload to send back; kinds without an answer are left
    to time out.
    """

    def __init__(self, answers: dict | None = None, fail: bool = False) -> None:
        self.answers = answers or {}
        self.fail = fail
        self.session = None
        self.requests: list[tuple[str, object]] = []
        self.navigations: list[tuple[str, int]] = []

    def _answer(self, kind: str, request) -> None:
        from codescape.exceptions import ProviderUnavailableError

        if self.fail:
            raise ProviderUnavailableError("test provider offline")
        self.requests.append((kind, request))
        if kind in self.answers and self.session is not None:
            payload = dict(self.answers[kind], requestId=request.request_id)
            asyncio.get_running_loop().call_soon(self.session.handle_result, payload)

    async def request_expand(self, request) -> None:
        self._answer("expand", request)

    async def request_file_expand(self, request) -> None:
        self._answer("file_expand", request)

    async def request_references(self, request) -> None:
        self._answer("references", request)

    async def request_symbols(self, request) -> None:
        self._answer("symbols", request)

    async def navigate(self, filepath: str, line: int) -> None:
        from codescape.exceptions import ProviderUnavailableError

        if self.fail:
            raise ProviderUnavailableError("test provider offline")
        self.navigations.append((filepath, line))


@pytest.fixture
def file_a() -> FileNode:
    """A file node with two functions, positioned at the origin."""
    return make_file("/proj/fileA.py", [("load", "Function", 3), ("save", "Function", 10)])


@pytest.fixture
def file_b() -> FileNode:
    return make_file("/proj/fileB.py", [("helper", "Function", 1)])


@pytest.fixture
def call_chain_payload() -> dict:
    """A small call graph in the renderer's wire shape."""
    def node(node_id: str, label: str, line: int) -> dict:
        return {
            "id": node_id,
            "type": "function",
            "position": {"x": 0, "y": 0},
            "data": {
                "label": label,
                "filepath": "/proj/app.py",
                "line": line,
                "expandable": True,
            },
        }

    return {
        "nodes": [
            node("/proj/app.py:1", "main", 1),
            node("/proj/app.py:10", "parse", 10),
            node("/proj/app.py:20", "run", 20),
            node("/proj/app.py:30", "report", 30),
        ],
        "edges": [
            {"id": "e1", "source": "/proj/app.py:1", "target": "/proj/app.py:10"},
            {"id": "e2", "source": "/proj/app.py:1", "target": "/proj/app.py:20"},
            {"id": "e3", "source": "/proj/app.py:20", "target": "/proj/app.py:30"},
        ],
    }


@pytest.fixture
def source_file(tmp_path: Path) -> Path:
    """A Python source file with known line numbers."""
    path = tmp_path / "service.py"
    lines = [f"# line {i}" for i in range(1, 41)]
    lines[9] = "def handler(request):"
    lines[10] = "    data = request.json()"
    lines[11] = "    return process(data)"
    path.write_text("\n".join(lines) + "\n")
    return path


@pytest.fixture
def graph_file(tmp_path: Path, call_chain_payload: dict) -> Path:
    path = tmp_path / "graph.json"
    path.write_text(json.dumps(call_chain_payload))
    return path
