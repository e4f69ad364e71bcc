"""Data models for graph nodes, edges and fragments."""

from __future__ import annotations

from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, model_validator


class NodeType:
    """Discriminant values for the node variants."""

    FILE = "file"
    SYMBOL = "symbol"


# Preferred display order of symbol groups inside a file node.
KIND_ORDER = ["Class", "Function", "Method", "Variable", "Constant", "Property"]


class Position(BaseModel):
    """Top-left corner of a node on the canvas."""

    x: float = 0.0
    y: float = 0.0


class Size(BaseModel):
    """Estimated on-screen size of a node."""

    width: float
    height: float


class SymbolEntry(BaseModel):
    """A symbol listed inside a file node."""

    name: str = Field(min_length=1)
    kind: str = "Function"
    line: int = Field(ge=1)
    end_line: int | None = None
    col: int = 1

    @model_validator(mode="after")
    def _check_range(self) -> SymbolEntry:
        if self.end_line is not None and self.end_line < self.line:
            raise ValueError(
                f"end_line {self.end_line} is before line {self.line} for {self.name!r}"
            )
        return self

    def contains(self, line: int) -> bool:
        end = self.end_line if self.end_line is not None else self.line
        return self.line <= line <= end


class FileNode(BaseModel):
    """A source file with its ordered symbol list."""

    type: Literal["file"] = "file"
    id: str = Field(min_length=1)
    filepath: str = Field(min_length=1)
    filename: str = ""
    path: str = ""  # display path relative to the project root
    symbols: list[SymbolEntry] = Field(default_factory=list)
    collapsed: bool = False
    expanded: bool = False
    position: Position = Field(default_factory=Position)

    def model_post_init(self, __context: object) -> None:
        if not self.filename:
            self.filename = self.filepath.replace("\\", "/").rsplit("/", 1)[-1]
        if not self.path:
            self.path = self.filepath

    @property
    def symbol_kinds(self) -> list[str]:
        """Distinct symbol kinds in first-seen order."""
        seen: dict[str, None] = {}
        for sym in self.symbols:
            seen.setdefault(sym.kind, None)
        return list(seen)

    def grouped_symbols(self) -> dict[str, list[SymbolEntry]]:
        """Symbols grouped by kind, known kinds first then the rest as seen."""
        groups: dict[str, list[SymbolEntry]] = {}
        for sym in self.symbols:
            groups.setdefault(sym.kind, []).append(sym)
        ordered = {k: groups[k] for k in KIND_ORDER if k in groups}
        for kind, syms in groups.items():
            ordered.setdefault(kind, syms)
        return ordered


class SymbolNode(BaseModel):
    """A function or method shown as its own node (call graphs)."""

    type: Literal["symbol"] = "symbol"
    id: str = Field(min_length=1)
    label: str = ""
    filepath: str = ""
    file: str = ""  # display filename
    line: int = Field(default=0, ge=0)
    end_line: int | None = None
    col: int = 1
    kind: str = "Function"
    expandable: bool = False
    expanded: bool = False
    position: Position = Field(default_factory=Position)

    def model_post_init(self, __context: object) -> None:
        if not self.label:
            self.label = self.id
        if self.filepath and not self.file:
            self.file = self.filepath.replace("\\", "/").rsplit("/", 1)[-1]

    @property
    def can_expand_calls(self) -> bool:
        return bool(self.filepath) and self.line > 0


Node = Annotated[Union[FileNode, SymbolNode], Field(discriminator="type")]


class Edge(BaseModel):
    """A directed relationship between two nodes."""

    id: str = ""
    source: str = Field(min_length=1)
    target: str = Field(min_length=1)

    def model_post_init(self, __context: object) -> None:
        if not self.id:
            self.id = edge_id(self.source, self.target)

    @property
    def key(self) -> tuple[str, str]:
        return (self.source, self.target)


def edge_id(source: str, target: str) -> str:
    """Deterministic edge id for a (source, target) pair.

    The source is length-prefixed so distinct pairs never share an id,
    even when node ids contain the separator.
    """
    return f"e_{len(source)}:{source}_{target}"


class Fragment(BaseModel):
    """A partial node/edge set produced by one analysis call."""

    nodes: list[Node] = Field(default_factory=list)
    edges: list[Edge] = Field(default_factory=list)
    dropped: int = 0  # malformed entries rejected at ingest

    @property
    def is_empty(self) -> bool:
        return not self.nodes and not self.edges


class SnippetLine(BaseModel):
    """One numbered line of a code snippet."""

    num: int
    text: str
