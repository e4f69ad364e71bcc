"""Estimate the on-screen size of nodes from their content.

The renderer sizes nodes from their text, so the layout and merge engines
need a matching estimate before anything is painted. Numbers follow the
renderer's stylesheet: ~8px per character, 28px per symbol row, 24px per
symbol-group header, and a 300px code-preview panel beside file nodes.
"""

from __future__ import annotations

from codescape.graph.models import FileNode, Node, Size, SymbolNode

CHAR_WIDTH = 8

SYMBOL_MIN_WIDTH = 180
SYMBOL_PADDING = 80
SYMBOL_HEIGHT = 70

FILE_MIN_WIDTH = 280
FILE_PADDING = 120
FILE_PREVIEW_WIDTH = 300
FILE_HEADER_HEIGHT = 50
FILE_ROW_HEIGHT = 28
FILE_GROUP_HEADER_HEIGHT = 24
FILE_MAX_BODY_HEIGHT = 300
FILE_BOTTOM_PADDING = 16

DEFAULT_SIZE = Size(width=SYMBOL_MIN_WIDTH, height=SYMBOL_HEIGHT)


def estimate_symbol(node: SymbolNode) -> Size:
    width = max(SYMBOL_MIN_WIDTH, CHAR_WIDTH * len(node.label) + SYMBOL_PADDING)
    return Size(width=width, height=SYMBOL_HEIGHT)


def estimate_file(node: FileNode) -> Size:
    longest = max((len(s.name) for s in node.symbols), default=0)
    text_width = CHAR_WIDTH * max(len(node.filename), longest) + FILE_PADDING
    width = max(FILE_MIN_WIDTH, text_width) + FILE_PREVIEW_WIDTH

    body = 0
    if not node.collapsed:
        body = min(
            FILE_MAX_BODY_HEIGHT,
            FILE_ROW_HEIGHT * len(node.symbols)
            + FILE_GROUP_HEADER_HEIGHT * len(node.symbol_kinds),
        )
    return Size(width=width, height=FILE_HEADER_HEIGHT + body + FILE_BOTTOM_PADDING)


def estimate(node: Node) -> Size:
    """Expected width/height of a node. Pure; call again after content changes."""
    if isinstance(node, FileNode):
        return estimate_file(node)
    return estimate_symbol(node)
