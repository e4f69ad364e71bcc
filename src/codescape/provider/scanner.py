"""Build a file-level import graph by scanning a project directory.

Python imports are read with the built-in ``ast`` module; JavaScript and
TypeScript imports with tree-sitter. Every source file becomes a file node
and an edge runs from a file to each project file it imports. Imports that
resolve to nothing inside the project are dropped. Symbol lists are left
empty: they come from the editor's language server.
"""

from __future__ import annotations

import ast
import logging
import os
import posixpath
import re
from pathlib import Path

from codescape.config import ScanConfig
from codescape.exceptions import ScanError
from codescape.graph.models import Edge, FileNode, Fragment

logger = logging.getLogger("codescape.scanner")

SOURCE_LANGUAGES = {
    ".py": "python",
    ".js": "javascript",
    ".jsx": "javascript",
    ".mjs": "javascript",
    ".ts": "typescript",
    ".tsx": "tsx",
}

# Grammar module and the function returning its language pointer
_TS_GRAMMARS = {
    "javascript": ("tree_sitter_javascript", "language"),
    "typescript": ("tree_sitter_typescript", "language_typescript"),
    "tsx": ("tree_sitter_typescript", "language_tsx"),
}

# Files that stand for their directory when imported by directory name
_PACKAGE_FILES = {"__init__.py", "index.js", "index.ts", "index.tsx", "index.jsx"}

_RELATIVE_PREFIX = re.compile(r"^(\.\.?/)+")


def detect_language(filename: str) -> str | None:
    return SOURCE_LANGUAGES.get(os.path.splitext(filename)[1].lower())


def collect_files(root: Path, scan: ScanConfig | None = None) -> list[Path]:
    """All source files under ``root``, skipping hidden and excluded directories."""
    scan = scan or ScanConfig()
    excluded = set(scan.exclude_dirs)
    max_size = scan.max_file_size_kb * 1024
    files = []

    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = [d for d in dirnames if d not in excluded and not d.startswith(".")]

        for filename in filenames:
            if detect_language(filename) is None:
                continue
            full_path = Path(dirpath) / filename
            try:
                if full_path.stat().st_size > max_size:
                    continue
            except OSError:
                continue
            files.append(full_path)

    return sorted(files)


# =============================================================================
# Python
# =============================================================================


def python_imports(source: str, filepath: str = "<unknown>") -> list[str]:
    """Module names imported by a Python source, relative ones keeping their dots.

    ``from pkg import mod`` yields both ``pkg.mod`` and ``pkg`` so that
    submodule imports resolve to the submodule file when one exists.
    """
    try:
        tree = ast.parse(source, filename=filepath)
    except SyntaxError as e:
        logger.warning(f"Skipping imports of {filepath}: SyntaxError: {e}")
        return []

    imports: list[str] = []
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            imports.extend(alias.name for alias in node.names)
        elif isinstance(node, ast.ImportFrom):
            prefix = "." * node.level
            base = f"{prefix}{node.module}" if node.module else prefix
            joiner = "." if node.module else ""
            for alias in node.names:
                if alias.name != "*":
                    imports.append(f"{base}{joiner}{alias.name}")
            if node.module:
                imports.append(base)
    return imports


# =============================================================================
# JavaScript / TypeScript (tree-sitter)
# =============================================================================


def _get_language(language: str):
    """Get a tree-sitter Language object for the given language."""
    from tree_sitter import Language

    if language not in _TS_GRAMMARS:
        raise ValueError(f"No tree-sitter grammar for language: {language}")
    module_name, func_name = _TS_GRAMMARS[language]
    module = __import__(module_name)
    return Language(getattr(module, func_name)())


def script_imports(source: str, language: str, filepath: str = "<unknown>") -> list[str]:
    """Import specifiers of a JavaScript/TypeScript source.

    Covers ``import ... from``, ``export ... from`` and ``require("x")``.
    """
    from tree_sitter import Parser

    try:
        parser = Parser(_get_language(language))
        tree = parser.parse(source.encode("utf-8"))
    except Exception as e:
        logger.warning(f"tree-sitter parse error in {filepath}: {e}")
        return []

    imports: list[str] = []
    _walk_script(tree.root_node, imports)
    return imports


def _walk_script(node, imports: list[str]) -> None:
    for child in node.children:
        if child.type in ("import_statement", "export_statement"):
            source_node = child.child_by_field_name("source")
            if source_node is not None:
                imports.append(_string_value(source_node))
        elif child.type == "call_expression":
            spec = _require_target(child)
            if spec:
                imports.append(spec)
        _walk_script(child, imports)


def _require_target(node) -> str | None:
    """The module of a ``require("x")`` call, else None."""
    func = node.child_by_field_name("function")
    args = node.child_by_field_name("arguments")
    if func is None or args is None or func.text != b"require":
        return None
    for arg in args.named_children:
        if arg.type == "string":
            return _string_value(arg)
    return None


def _string_value(node) -> str:
    return node.text.decode("utf-8").strip("'\"`")


# =============================================================================
# Resolution
# =============================================================================


def build_file_map(rel_paths: list[str]) -> dict[str, str]:
    """Lookup keys for each project file, mapped to its relative path.

    Path keys (with and without extension, and package directories) take
    precedence over bare file names and stems. Within each group the first
    file in sorted order wins.
    """
    file_map: dict[str, str] = {}
    for rel in rel_paths:
        stem_path = os.path.splitext(rel)[0]
        file_map.setdefault(rel, rel)
        file_map.setdefault(stem_path, rel)
        if posixpath.basename(rel) in _PACKAGE_FILES and posixpath.dirname(rel):
            file_map.setdefault(posixpath.dirname(rel), rel)
    for rel in rel_paths:
        filename = posixpath.basename(rel)
        file_map.setdefault(filename, rel)
        file_map.setdefault(os.path.splitext(filename)[0], rel)
    return file_map


def resolve_import(spec: str, file_map: dict[str, str], importer: str = "") -> str | None:
    """Resolve an import specifier to a project file's relative path.

    Tries, in order: the exact specifier; a relative path against the
    importing file's directory; a Python relative module; the specifier
    with leading ``./`` and ``../`` stripped; a dotted module as a path;
    and finally its last component.
    """
    if not spec:
        return None
    if spec in file_map:
        return file_map[spec]

    importer_dir = posixpath.dirname(importer)
    candidates = []
    if spec.startswith(("./", "../")):
        candidates.append(posixpath.normpath(posixpath.join(importer_dir, spec)))
        candidates.append(_RELATIVE_PREFIX.sub("", spec))
    elif spec.startswith("."):
        level = len(spec) - len(spec.lstrip("."))
        base = importer_dir
        for _ in range(level - 1):
            base = posixpath.dirname(base)
        module = spec.lstrip(".").replace(".", "/")
        candidates.append(posixpath.join(base, module) if module else base)
    else:
        candidates.append(spec.replace(".", "/"))

    for candidate in candidates:
        candidate = candidate.strip("/")
        if candidate in file_map:
            return file_map[candidate]

    parts = [p for p in re.split(r"[/.]", spec) if p]
    if parts and parts[-1] in file_map:
        return file_map[parts[-1]]
    return None


# =============================================================================
# Project scan
# =============================================================================


def scan_project(root: str | Path, scan: ScanConfig | None = None) -> Fragment:
    """Scan ``root`` into a fragment of file nodes and import edges.

    Node ids are absolute file paths; each node's ``path`` is relative to
    ``root``. Self-imports and duplicate edges are skipped.
    """
    root = Path(root).resolve()
    if not root.is_dir():
        raise ScanError(f"Not a directory: {root}")

    files = collect_files(root, scan)
    rel_paths = [path.relative_to(root).as_posix() for path in files]
    file_map = build_file_map(rel_paths)

    nodes: list[FileNode] = []
    imports_by_file: dict[str, list[str]] = {}
    for path, rel in zip(files, rel_paths):
        try:
            source = path.read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            logger.warning(f"Skipping {rel}: {e}")
            continue

        language = detect_language(path.name)
        if language == "python":
            imports = python_imports(source, rel)
        else:
            imports = script_imports(source, language, rel)

        nodes.append(FileNode(id=str(path), filepath=str(path), path=rel))
        imports_by_file[rel] = imports

    edges: list[Edge] = []
    seen: set[tuple[str, str]] = set()
    unresolved = 0
    for rel, imports in imports_by_file.items():
        source_id = str(root / rel)
        for spec in imports:
            target = resolve_import(spec, file_map, rel)
            if target is None:
                unresolved += 1
                continue
            if target == rel or target not in imports_by_file:
                continue
            target_id = str(root / target)
            if (source_id, target_id) in seen:
                continue
            seen.add((source_id, target_id))
            edges.append(Edge(source=source_id, target=target_id))

    logger.info(
        f"Scanned {root}: {len(nodes)} files, {len(edges)} import edges, "
        f"{unresolved} external imports"
    )
    return Fragment(nodes=nodes, edges=edges)
