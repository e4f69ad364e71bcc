"""Read code snippets for the preview panel."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from pathlib import Path

from codescape.exceptions import ProviderError
from codescape.graph.models import SnippetLine, SymbolEntry

logger = logging.getLogger("codescape.snippets")

SymbolLookup = Callable[[str], Awaitable[list[SymbolEntry]]]


def read_lines(filepath: str | Path, start: int, end: int, max_lines: int = 200) -> list[SnippetLine]:
    """Lines ``start..end`` (1-indexed, inclusive), clamped to the file."""
    start = max(1, start)
    end = min(end, start + max_lines - 1)
    if end < start:
        return []

    lines: list[SnippetLine] = []
    try:
        with open(filepath, encoding="utf-8", errors="replace") as f:
            for num, text in enumerate(f, start=1):
                if num > end:
                    break
                if num >= start:
                    lines.append(SnippetLine(num=num, text=text.rstrip("\r\n")))
    except OSError as e:
        logger.warning(f"Cannot read {filepath}: {e}")
        return []
    return lines


class SnippetReader:
    """Fetches snippets, resolving symbol ranges through a cached lookup.

    The symbol list of each file is asked for once and cached until
    ``invalidate`` is called; failed lookups are not cached.
    """

    def __init__(self, symbol_lookup: SymbolLookup | None = None, max_lines: int = 200) -> None:
        self.symbol_lookup = symbol_lookup
        self.max_lines = max_lines
        self._symbols: dict[str, list[SymbolEntry]] = {}

    def invalidate(self, filepath: str | None = None) -> None:
        if filepath is None:
            self._symbols.clear()
        else:
            self._symbols.pop(filepath, None)

    async def symbols_for(self, filepath: str) -> list[SymbolEntry]:
        if filepath in self._symbols:
            return self._symbols[filepath]
        if self.symbol_lookup is None:
            return []
        try:
            symbols = await self.symbol_lookup(filepath)
        except ProviderError as e:
            logger.info(f"Symbol lookup for {filepath} failed: {e}")
            return []
        self._symbols[filepath] = symbols
        return symbols

    async def enclosing_symbol(self, filepath: str, line: int) -> SymbolEntry | None:
        """The symbol starting at ``line``, else the innermost one containing it."""
        symbols = await self.symbols_for(filepath)
        for sym in symbols:
            if sym.line == line and sym.end_line is not None:
                return sym
        containing = [s for s in symbols if s.end_line is not None and s.contains(line)]
        if not containing:
            return None
        return min(containing, key=lambda s: s.end_line - s.line)

    async def fetch(
        self,
        filepath: str,
        line: int,
        end_line: int | None = None,
        context_lines: int = 5,
    ) -> list[SnippetLine]:
        """Snippet for a symbol: its true range when known, else ``line ± context``."""
        if end_line is not None and end_line >= line:
            return read_lines(filepath, line, end_line, self.max_lines)

        symbol = await self.enclosing_symbol(filepath, line)
        if symbol is not None:
            return read_lines(filepath, symbol.line, symbol.end_line, self.max_lines)
        return read_lines(filepath, line - context_lines, line + context_lines, self.max_lines)
