"""Tests for fragment validation and normalisation."""

from __future__ import annotations

import pytest

from codescape.exceptions import MalformedFragmentError
from codescape.graph.ingest import (
    file_nodes_from_paths,
    kind_name,
    parse_edge,
    parse_fragment,
    parse_node,
    parse_symbol_entry,
)
from codescape.graph.models import FileNode, SymbolNode


class TestParseNode:
    def test_renderer_shape(self):
        node = parse_node({
            "id": "/p/a.py:4",
            "type": "function",
            "position": {"x": 10, "y": 20},
            "data": {"label": "go", "filepath": "/p/a.py", "line": 4, "expandable": True},
        })
        assert isinstance(node, SymbolNode)
        assert node.label == "go"
        assert node.file == "a.py"
        assert node.position.x == 10
        assert node.can_expand_calls

    def test_flat_file_node(self):
        node = parse_node({
            "id": "/p/models.py",
            "type": "file",
            "path": "models.py",
            "filepath": "/p/models.py",
            "symbols": [{"name": "User", "kind": 5, "line": 3}],
        })
        assert isinstance(node, FileNode)
        assert node.filename == "models.py"
        assert node.path == "models.py"
        assert node.symbols[0].kind == "Class"

    def test_file_type_inferred_from_symbols(self):
        node = parse_node({"id": "x.py", "path": "x.py", "symbols": []})
        assert isinstance(node, FileNode)
        assert node.filepath == "x.py"

    def test_legacy_file_key(self):
        node = parse_node({"id": "n", "label": "f", "file": "/p/legacy.py", "line": 2})
        assert isinstance(node, SymbolNode)
        assert node.filepath == "/p/legacy.py"

    def test_is_expanded_alias(self):
        node = parse_node({"id": "f.py", "type": "file", "filepath": "f.py", "isExpanded": True})
        assert node.expanded

    def test_missing_id(self):
        with pytest.raises(MalformedFragmentError):
            parse_node({"label": "nameless"})

    def test_file_without_path(self):
        with pytest.raises(MalformedFragmentError):
            parse_node({"id": "f", "type": "file"})

    def test_not_an_object(self):
        with pytest.raises(MalformedFragmentError):
            parse_node(["id", "x"])

    def test_bad_symbols_are_dropped_individually(self):
        node = parse_node({
            "id": "f.py",
            "type": "file",
            "filepath": "f.py",
            "symbols": [{"name": "", "line": 1}, {"name": "ok", "line": 2}, {"name": "neg", "line": 0}],
        })
        assert [s.name for s in node.symbols] == ["ok"]


class TestSymbolEntries:
    def test_end_line_aliases(self):
        entry = parse_symbol_entry({"name": "f", "line": 3, "endLine": 9, "column": 5})
        assert entry.end_line == 9
        assert entry.col == 5
        assert entry.contains(6)
        assert not entry.contains(10)

    def test_end_before_start(self):
        with pytest.raises(MalformedFragmentError):
            parse_symbol_entry({"name": "f", "line": 9, "end_line": 3})

    def test_kind_names(self):
        assert kind_name({"kind": 12}) == "Function"
        assert kind_name({"kind": 99}) == "Unknown"
        assert kind_name({"kind_name": "Method", "kind": 12}) == "Method"
        assert kind_name({}) == "Function"


class TestParseFragment:
    def test_drops_bad_entries_and_keeps_rest(self):
        fragment = parse_fragment({
            "nodes": [{"id": "a", "label": "a"}, {"label": "no id"}, "junk"],
            "edges": [{"source": "a", "target": "b"}, {"source": "a"}],
        })
        assert [n.id for n in fragment.nodes] == ["a"]
        assert len(fragment.edges) == 1
        assert fragment.dropped == 3

    def test_edge_id_is_derived(self):
        edge = parse_edge({"id": "ignored", "source": "a", "target": "b"})
        assert edge.id == "e_1:a_b"

    def test_edge_ids_distinct_when_ids_contain_separator(self):
        first = parse_edge({"source": "a_b", "target": "c"})
        second = parse_edge({"source": "a", "target": "b_c"})
        assert first.id != second.id

    def test_non_list_nodes_and_edges_are_dropped(self):
        fragment = parse_fragment({"nodes": 5, "edges": {"source": "a", "target": "b"}})
        assert fragment.is_empty
        assert fragment.dropped == 2

    def test_non_object_payload(self):
        fragment = parse_fragment(None)
        assert fragment.is_empty
        assert fragment.dropped == 1

    def test_missing_lists(self):
        assert parse_fragment({}).is_empty

    def test_file_nodes_from_paths(self):
        nodes = file_nodes_from_paths(["/p/a.py", "", 3, "/p/b.py"])
        assert [n.id for n in nodes] == ["/p/a.py", "/p/b.py"]
        assert nodes[1].filename == "b.py"
