"""Tests for the visualization session."""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest
from conftest import FakeProvider

from codescape.config import ProjectConfig
from codescape.graph.geometry import estimate
from codescape.session.session import VisualizerSession


def _session(provider: FakeProvider | None = None, **bridge) -> VisualizerSession:
    config = ProjectConfig()
    for key, value in bridge.items():
        setattr(config.bridge, key, value)
    session = VisualizerSession(provider, config)
    if provider is not None:
        provider.session = session
    return session


def _file_payload(*paths: str) -> dict:
    return {"nodes": [{"id": p, "type": "file", "filepath": p, "symbols": []} for p in paths]}


def _calls_answer(request, name: str) -> dict:
    """Two callees in /proj/<name>.py for an expand request."""
    source = f"{request.filepath}:{request.line}"
    callees = [f"/proj/{name}.py:{line}" for line in (1, 2)]
    return {
        "requestId": request.request_id,
        "nodes": [
            {"id": c, "label": f"{name}{i}", "filepath": f"/proj/{name}.py", "line": i + 1}
            for i, c in enumerate(callees)
        ],
        "edges": [{"source": source, "target": c} for c in callees],
    }


async def _wait_for_requests(provider: FakeProvider, count: int) -> None:
    while len(provider.requests) < count:
        await asyncio.sleep(0)


class TestLoadGraph:
    def test_push_replaces_and_lays_out(self, call_chain_payload):
        session = _session()
        session.load_graph(_file_payload("/proj/old.py"))
        fragment = session.load_graph(call_chain_payload)

        assert len(session.graph) == 4
        assert "/proj/old.py" not in session.graph
        assert fragment.dropped == 0
        xs = {n.id: n.position.x for n in session.graph.nodes}
        assert xs["/proj/app.py:1"] < xs["/proj/app.py:10"]

    def test_change_callback_gets_snapshot(self, call_chain_payload):
        snapshots = []
        session = VisualizerSession(on_change=snapshots.append)
        session.load_graph(call_chain_payload)
        assert len(snapshots) == 1
        assert len(snapshots[0]["nodes"]) == 4

    def test_relayout_direction(self, call_chain_payload):
        session = _session()
        session.load_graph(call_chain_payload)
        session.relayout("TB")
        ys = {n.id: n.position.y for n in session.graph.nodes}
        assert ys["/proj/app.py:1"] < ys["/proj/app.py:20"]

    def test_load_project(self, tmp_path: Path):
        (tmp_path / "main.py").write_text("import helpers\n")
        (tmp_path / "helpers.py").write_text("def assist():\n    pass\n")
        snapshots = []
        session = VisualizerSession(on_change=snapshots.append)

        fragment = session.load_project(tmp_path)

        assert len(fragment.nodes) == 2
        root = tmp_path.resolve()
        main, helpers = str(root / "main.py"), str(root / "helpers.py")
        assert session.graph.has_edge(main, helpers)
        assert session.graph.get(main).position.x < session.graph.get(helpers).position.x
        assert len(snapshots) == 1

    def test_toggle_file(self):
        session = _session()
        session.load_graph(_file_payload("/proj/a.py"))
        assert session.toggle_file("/proj/a.py") is True
        assert session.snapshot()["nodes"][0]["data"]["collapsed"] is True


class TestExpandCalls:
    @pytest.mark.asyncio
    async def test_expand_merges_answer(self, call_chain_payload):
        answer = {
            "nodes": [{"id": "/proj/lib.py:5", "label": "fetch", "filepath": "/proj/lib.py", "line": 5}],
            "edges": [{"source": "/proj/app.py:30", "target": "/proj/lib.py:5"}],
        }
        provider = FakeProvider({"expand": answer})
        session = _session(provider)
        session.load_graph(call_chain_payload)

        result = await session.expand_calls("/proj/app.py:30")

        assert result.added_nodes == ["/proj/lib.py:5"]
        assert session.graph.has_edge("/proj/app.py:30", "/proj/lib.py:5")
        assert session.graph.get("/proj/app.py:30").expanded
        kind, request = provider.requests[0]
        assert kind == "expand"
        assert request.filepath == "/proj/app.py"
        assert request.line == 30
        assert len(session.pending) == 0

    @pytest.mark.asyncio
    async def test_timeout_yields_empty_result(self, call_chain_payload):
        provider = FakeProvider()
        session = _session(provider, expand_timeout_ms=10)
        session.load_graph(call_chain_payload)

        result = await session.expand_calls("/proj/app.py:30")
        assert not result.changed
        assert not session.graph.get("/proj/app.py:30").expanded
        assert len(session.pending) == 0

    @pytest.mark.asyncio
    async def test_unavailable_provider_yields_empty_result(self, call_chain_payload):
        session = _session()
        session.load_graph(call_chain_payload)
        result = await session.expand_calls("/proj/app.py:1")
        assert not result.changed
        assert len(session.graph) == 4

    @pytest.mark.asyncio
    async def test_unknown_or_file_node_is_not_expanded(self):
        provider = FakeProvider({"expand": {"nodes": []}})
        session = _session(provider)
        session.load_graph(_file_payload("/proj/a.py"))
        await session.expand_calls("/proj/a.py")
        await session.expand_calls("missing")
        assert provider.requests == []

    @pytest.mark.asyncio
    async def test_repeated_expansion_is_idempotent(self, call_chain_payload):
        answer = {
            "nodes": [{"id": "/proj/app.py:10", "label": "parse", "filepath": "/proj/app.py", "line": 10}],
            "edges": [{"source": "/proj/app.py:1", "target": "/proj/app.py:10"}],
        }
        session = _session(FakeProvider({"expand": answer}))
        session.load_graph(call_chain_payload)
        before = session.snapshot()

        result = await session.expand_calls("/proj/app.py:1")
        after = session.snapshot()
        assert not result.changed
        assert [n["position"] for n in after["nodes"]] == [n["position"] for n in before["nodes"]]
        assert after["edges"] == before["edges"]

    @pytest.mark.asyncio
    async def test_answer_after_graph_replaced_is_discarded(self, call_chain_payload):
        provider = FakeProvider()
        session = _session(provider)
        session.load_graph(call_chain_payload)

        task = asyncio.create_task(session.expand_calls("/proj/app.py:30"))
        await _wait_for_requests(provider, 1)
        session.load_graph(_file_payload("/proj/fresh.py"))

        _, request = provider.requests[0]
        assert session.handle_result(_calls_answer(request, "callee"))
        result = await task

        assert not result.changed
        assert [n.id for n in session.graph.nodes] == ["/proj/fresh.py"]
        assert session.graph.edges == []

    @pytest.mark.asyncio
    async def test_answer_after_same_graph_repushed_is_discarded(self, call_chain_payload):
        provider = FakeProvider()
        session = _session(provider)
        session.load_graph(call_chain_payload)

        task = asyncio.create_task(session.expand_calls("/proj/app.py:30"))
        await _wait_for_requests(provider, 1)
        session.load_graph(call_chain_payload)

        _, request = provider.requests[0]
        session.handle_result(_calls_answer(request, "callee"))
        result = await task

        assert not result.changed
        assert len(session.graph) == 4
        assert not session.graph.get("/proj/app.py:30").expanded

    @pytest.mark.asyncio
    async def test_out_of_order_answers_merge_without_overlap(self, call_chain_payload):
        provider = FakeProvider()
        session = _session(provider)
        session.load_graph(call_chain_payload)

        first = asyncio.create_task(session.expand_calls("/proj/app.py:10"))
        second = asyncio.create_task(session.expand_calls("/proj/app.py:20"))
        await _wait_for_requests(provider, 2)
        requests = {request.line: request for _, request in provider.requests}

        assert session.handle_result(_calls_answer(requests[20], "second"))
        assert session.handle_result(_calls_answer(requests[10], "first"))
        first_result, second_result = await asyncio.gather(first, second)

        assert len(first_result.added_nodes) == 2
        assert len(second_result.added_nodes) == 2
        nodes = session.graph.nodes
        assert len(nodes) == 8
        assert len({n.id for n in nodes}) == 8
        assert len(session.pending) == 0

        boxes = [(n.id, n.position.x, n.position.y, estimate(n)) for n in nodes]
        for i, (a, ax, ay, a_size) in enumerate(boxes):
            for b, bx, by, b_size in boxes[i + 1:]:
                overlaps = (
                    ax < bx + b_size.width and bx < ax + a_size.width
                    and ay < by + b_size.height and by < ay + a_size.height
                )
                assert not overlaps, f"{a} overlaps {b}"


class TestExpandFile:
    @pytest.mark.asyncio
    async def test_imported_files_get_edges_from_source(self, file_a):
        answer = {"files": ["/proj/fileB.py", "/proj/fileC.py", file_a.filepath]}
        session = _session(FakeProvider({"file_expand": answer}))
        session.load_graph({"nodes": [file_a.model_dump()]})

        result = await session.expand_file(file_a.id)

        assert sorted(result.added_nodes) == ["/proj/fileB.py", "/proj/fileC.py"]
        assert session.graph.has_edge(file_a.id, "/proj/fileB.py")
        assert session.graph.has_edge(file_a.id, "/proj/fileC.py")
        assert not session.graph.has_edge(file_a.id, file_a.id)
        b = session.graph.get("/proj/fileB.py")
        source = session.graph.get(file_a.id)
        assert b.position.x == source.position.x + estimate(source).width + 60

    @pytest.mark.asyncio
    async def test_symbol_node_is_not_a_file(self, call_chain_payload):
        provider = FakeProvider({"file_expand": {"files": ["/proj/x.py"]}})
        session = _session(provider)
        session.load_graph(call_chain_payload)
        result = await session.expand_file("/proj/app.py:1")
        assert not result.changed
        assert provider.requests == []


class TestHighlight:
    @pytest.mark.asyncio
    async def test_references_highlight_files(self):
        provider = FakeProvider({"references": {"files": ["/proj/b.py", "/proj/elsewhere.py"]}})
        session = _session(provider)
        session.load_graph(_file_payload("/proj/a.py", "/proj/b.py"))
        positions = [n.position.model_dump() for n in session.graph.nodes]

        files = await session.highlight_references("/proj/a.py", "User", 3)

        assert files == {"/proj/b.py", "/proj/elsewhere.py"}
        flags = {n["id"]: n["data"]["highlighted"] for n in session.snapshot()["nodes"]}
        assert flags == {"/proj/a.py": False, "/proj/b.py": True}
        assert [n.position.model_dump() for n in session.graph.nodes] == positions
        assert len(session.graph) == 2

        session.clear_highlight()
        assert session.graph.highlighted == set()

    @pytest.mark.asyncio
    async def test_unavailable_provider_highlights_nothing(self):
        session = _session(FakeProvider(fail=True))
        session.load_graph(_file_payload("/proj/a.py"))
        assert await session.highlight_references("/proj/a.py", "User", 3) == set()


class TestResultsAndNavigation:
    def test_handle_result_requires_request_id(self):
        session = _session()
        assert session.handle_result({"nodes": []}) is False
        assert session.handle_result("junk") is False
        assert session.handle_result({"requestId": "expand_1_deadbeef"}) is False

    @pytest.mark.asyncio
    async def test_navigate(self):
        provider = FakeProvider()
        session = _session(provider)
        assert await session.navigate("/proj/a.py", 0) is True
        assert provider.navigations == [("/proj/a.py", 1)]

    @pytest.mark.asyncio
    async def test_navigate_without_editor(self):
        assert await _session().navigate("/proj/a.py", 4) is False

    @pytest.mark.asyncio
    async def test_snippet_uses_symbol_ranges(self, source_file: Path):
        answer = {"symbols": [{"name": "handler", "kind": 12, "line": 10, "end_line": 12}]}
        session = _session(FakeProvider({"symbols": answer}))
        lines = await session.fetch_snippet(str(source_file), 11)
        assert [line.num for line in lines] == [10, 11, 12]

    @pytest.mark.asyncio
    async def test_snippet_without_editor_uses_context(self, source_file: Path):
        session = _session()
        lines = await session.fetch_snippet(str(source_file), 20)
        assert [line.num for line in lines] == list(range(15, 26))

    @pytest.mark.asyncio
    async def test_close_cancels_pending(self):
        async with _session() as session:
            session.pending.create("expand", 1000)
        assert len(session.pending) == 0
