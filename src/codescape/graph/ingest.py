"""Boundary validation for fragments arriving from the analysis provider.

Payloads come from editor plugins that grew their shapes organically:
nodes may be flat or nested under ``data`` (the renderer convention), the
file path may be spelled ``filepath``, ``path`` or ``file``, and symbol
kinds may be LSP integers or names. All of that is normalised here, once,
into the tagged ``FileNode`` / ``SymbolNode`` variants. Entries that cannot
be normalised are dropped one by one; the rest of the fragment survives.
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import TypeAdapter, ValidationError

from codescape.exceptions import MalformedFragmentError
from codescape.graph.models import Edge, FileNode, Fragment, Node, NodeType, SymbolEntry

logger = logging.getLogger("codescape.ingest")

_node_adapter: TypeAdapter[Node] = TypeAdapter(Node)

# LSP SymbolKind numbers -> display names
LSP_SYMBOL_KINDS: dict[int, str] = {
    1: "File",
    2: "Module",
    3: "Namespace",
    4: "Package",
    5: "Class",
    6: "Method",
    7: "Property",
    8: "Field",
    9: "Constructor",
    10: "Enum",
    11: "Interface",
    12: "Function",
    13: "Variable",
    14: "Constant",
    15: "String",
    16: "Number",
    17: "Boolean",
    18: "Array",
    19: "Object",
    20: "Key",
    21: "Null",
    22: "EnumMember",
    23: "Struct",
    24: "Event",
    25: "Operator",
    26: "TypeParameter",
}

_PATH_KEYS = ("filepath", "path", "file")


def kind_name(raw: dict[str, Any]) -> str:
    """Resolve a symbol kind tag from `kind_name`, a string kind or an LSP number."""
    name = raw.get("kind_name")
    if isinstance(name, str) and name:
        return name
    kind = raw.get("kind")
    if isinstance(kind, str) and kind:
        return kind
    if isinstance(kind, int):
        return LSP_SYMBOL_KINDS.get(kind, "Unknown")
    return "Function"


def _flatten(raw: dict[str, Any]) -> dict[str, Any]:
    """Merge the renderer-style ``data`` payload into the top level."""
    data = raw.get("data")
    flat = {k: v for k, v in raw.items() if k != "data"}
    if isinstance(data, dict):
        for key, value in data.items():
            flat.setdefault(key, value)
    return flat


def _first_path(flat: dict[str, Any]) -> str:
    for key in _PATH_KEYS:
        value = flat.get(key)
        if isinstance(value, str) and value:
            return value
    return ""


def parse_symbol_entry(raw: Any) -> SymbolEntry:
    """Normalise one symbol of a file node."""
    if not isinstance(raw, dict):
        raise MalformedFragmentError(f"symbol entry is not an object: {raw!r}")
    try:
        return SymbolEntry(
            name=raw.get("name", ""),
            kind=kind_name(raw),
            line=raw.get("line", 0),
            end_line=raw.get("end_line", raw.get("endLine")),
            col=raw.get("col", raw.get("column", 1)) or 1,
        )
    except ValidationError as e:
        raise MalformedFragmentError(f"invalid symbol entry: {e.errors()[0]['msg']}") from e


def parse_node(raw: Any) -> Node:
    """Normalise one wire node into a tagged node model.

    Raises:
        MalformedFragmentError: If the node lacks an id or required fields.
    """
    if not isinstance(raw, dict):
        raise MalformedFragmentError(f"node is not an object: {raw!r}")
    flat = _flatten(raw)
    node_id = flat.get("id")
    if not isinstance(node_id, str) or not node_id:
        raise MalformedFragmentError("node without an id")

    node_type = flat.get("type")
    if node_type != NodeType.FILE and "symbols" in flat and "label" not in flat:
        node_type = NodeType.FILE

    fields: dict[str, Any]
    if node_type == NodeType.FILE:
        symbols = []
        for sym in flat.get("symbols") or []:
            try:
                symbols.append(parse_symbol_entry(sym))
            except MalformedFragmentError as e:
                logger.warning(f"Dropping symbol in {node_id}: {e}")
        fields = {
            "type": NodeType.FILE,
            "id": node_id,
            "filepath": _first_path(flat),
            "filename": flat.get("filename") or flat.get("label") or "",
            "path": flat.get("path") or "",
            "symbols": symbols,
            "collapsed": bool(flat.get("collapsed", False)),
            "expanded": bool(flat.get("expanded", flat.get("isExpanded", False))),
        }
    else:
        fields = {
            "type": NodeType.SYMBOL,
            "id": node_id,
            "label": flat.get("label") or flat.get("name") or "",
            "filepath": _first_path(flat),
            "file": flat.get("file") or "",
            "line": flat.get("line") or 0,
            "end_line": flat.get("end_line", flat.get("endLine")),
            "col": flat.get("col", flat.get("column")) or 1,
            "kind": kind_name(flat),
            "expandable": bool(flat.get("expandable", False)),
            "expanded": bool(flat.get("expanded", False)),
        }
    position = flat.get("position")
    if isinstance(position, dict):
        fields["position"] = position

    try:
        return _node_adapter.validate_python(fields)
    except ValidationError as e:
        raise MalformedFragmentError(
            f"invalid {node_type or 'symbol'} node {node_id}: {e.errors()[0]['msg']}"
        ) from e


def parse_edge(raw: Any) -> Edge:
    """Normalise one wire edge."""
    if not isinstance(raw, dict):
        raise MalformedFragmentError(f"edge is not an object: {raw!r}")
    source, target = raw.get("source"), raw.get("target")
    if not isinstance(source, str) or not isinstance(target, str) or not source or not target:
        raise MalformedFragmentError(f"edge without source/target: {raw!r}")
    return Edge(source=source, target=target)


def _entry_list(payload: dict, key: str) -> list | None:
    """The list stored under ``key``; [] when absent, None when not a list."""
    value = payload.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        logger.warning(f"Ignoring non-list {key!r} in fragment: {type(value).__name__}")
        return None
    return value


def parse_fragment(payload: Any) -> Fragment:
    """Build a Fragment from a ``{nodes, edges}`` payload, dropping bad entries."""
    if not isinstance(payload, dict):
        logger.warning(f"Ignoring non-object fragment payload: {type(payload).__name__}")
        return Fragment(dropped=1)

    nodes: list[Node] = []
    edges: list[Edge] = []
    dropped = 0

    raw_nodes = _entry_list(payload, "nodes")
    raw_edges = _entry_list(payload, "edges")
    if raw_nodes is None:
        dropped += 1
        raw_nodes = []
    if raw_edges is None:
        dropped += 1
        raw_edges = []

    for raw in raw_nodes:
        try:
            nodes.append(parse_node(raw))
        except MalformedFragmentError as e:
            dropped += 1
            logger.warning(f"Dropping node: {e}")

    for raw in raw_edges:
        try:
            edges.append(parse_edge(raw))
        except MalformedFragmentError as e:
            dropped += 1
            logger.warning(f"Dropping edge: {e}")

    return Fragment(nodes=nodes, edges=edges, dropped=dropped)


def file_nodes_from_paths(paths: list[str]) -> list[FileNode]:
    """File nodes for a bare list of paths (references / imports results)."""
    nodes = []
    for path in paths:
        if isinstance(path, str) and path:
            nodes.append(FileNode(id=path, filepath=path))
    return nodes
