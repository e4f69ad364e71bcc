"""Tests for the snippet reader."""

from __future__ import annotations

from pathlib import Path

import pytest

from codescape.exceptions import ProviderUnavailableError
from codescape.graph.models import SymbolEntry
from codescape.session.snippets import SnippetReader, read_lines


class TestReadLines:
    def test_range(self, source_file: Path):
        lines = read_lines(source_file, 10, 12)
        assert [line.num for line in lines] == [10, 11, 12]
        assert lines[0].text == "def handler(request):"

    def test_clamped_to_file(self, source_file: Path):
        lines = read_lines(source_file, -3, 2)
        assert [line.num for line in lines] == [1, 2]
        assert read_lines(source_file, 38, 100)[-1].num == 40

    def test_max_lines(self, source_file: Path):
        assert len(read_lines(source_file, 1, 40, max_lines=5)) == 5

    def test_missing_file(self, tmp_path: Path):
        assert read_lines(tmp_path / "missing.py", 1, 5) == []


class TestSnippetReader:
    @pytest.mark.asyncio
    async def test_context_window_without_symbols(self, source_file: Path):
        reader = SnippetReader()
        lines = await reader.fetch(str(source_file), 20, context_lines=3)
        assert [line.num for line in lines] == list(range(17, 24))

    @pytest.mark.asyncio
    async def test_explicit_range(self, source_file: Path):
        reader = SnippetReader()
        lines = await reader.fetch(str(source_file), 10, end_line=12)
        assert [line.num for line in lines] == [10, 11, 12]

    @pytest.mark.asyncio
    async def test_uses_enclosing_symbol_range(self, source_file: Path):
        calls = []

        async def lookup(filepath: str) -> list[SymbolEntry]:
            calls.append(filepath)
            return [
                SymbolEntry(name="module_block", line=1, end_line=40),
                SymbolEntry(name="handler", line=10, end_line=12),
            ]

        reader = SnippetReader(lookup)
        lines = await reader.fetch(str(source_file), 11)
        assert [line.num for line in lines] == [10, 11, 12]

        # Start line of a symbol picks that symbol; lookups are cached.
        lines = await reader.fetch(str(source_file), 10)
        assert [line.num for line in lines] == [10, 11, 12]
        assert calls == [str(source_file)]

    @pytest.mark.asyncio
    async def test_failed_lookup_falls_back_and_is_not_cached(self, source_file: Path):
        calls = []

        async def lookup(filepath: str) -> list[SymbolEntry]:
            calls.append(filepath)
            raise ProviderUnavailableError()

        reader = SnippetReader(lookup)
        lines = await reader.fetch(str(source_file), 20, context_lines=1)
        assert [line.num for line in lines] == [19, 20, 21]
        await reader.fetch(str(source_file), 20, context_lines=1)
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_invalidate(self, source_file: Path):
        calls = []

        async def lookup(filepath: str) -> list[SymbolEntry]:
            calls.append(filepath)
            return []

        reader = SnippetReader(lookup)
        await reader.symbols_for(str(source_file))
        reader.invalidate(str(source_file))
        await reader.symbols_for(str(source_file))
        assert len(calls) == 2
