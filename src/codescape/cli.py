"""Command-line interface for codescape."""

from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path

import click

from codescape import __version__
from codescape.config import (
    ProjectConfig,
    find_project_root,
    load_config,
    save_config,
    set_config_value,
)
from codescape.exceptions import CodescapeError, ConfigError
from codescape.ui.console import Console, setup_logging

console = Console()


def _get_project_root(path: str | None = None) -> Path:
    """Find the project root or error."""
    if path:
        root = Path(path).resolve()
        if not root.exists():
            console.error(f"Path does not exist: {path}")
            sys.exit(1)
        return root

    root = find_project_root()
    if root is None:
        console.error(
            "No codescape project found. Run 'codescape init' first, "
            "or specify a path with --path."
        )
        sys.exit(1)
    return root


def _load_project_config(path: str | None = None) -> ProjectConfig:
    """Config of the enclosing project, or defaults outside one."""
    root = Path(path).resolve() if path else find_project_root()
    if root is None:
        return ProjectConfig()
    try:
        return load_config(root)
    except ConfigError as e:
        console.error(str(e))
        sys.exit(1)


def _read_graph(graph_json: str):
    from codescape.graph.ingest import parse_fragment
    from codescape.graph.state import CodeGraph

    try:
        payload = json.loads(Path(graph_json).read_text())
    except (OSError, json.JSONDecodeError) as e:
        console.error(f"Cannot read graph from {graph_json}: {e}")
        sys.exit(1)

    fragment = parse_fragment(payload)
    if fragment.dropped:
        console.warning(f"Dropped {fragment.dropped} malformed entries")
    graph = CodeGraph()
    graph.replace(fragment.nodes, fragment.edges)
    return graph


@click.group()
@click.version_option(version=__version__, prog_name="codescape")
@click.option("--verbose", "-v", is_flag=True, help="Log debug output to stderr.")
def main(verbose: bool):
    """codescape - explore a codebase as an incrementally expanded graph."""
    setup_logging(verbose)


@main.command()
@click.option("--path", "-p", default=None, help="Path to the project root.")
@click.option(
    "--direction", "-d",
    type=click.Choice(["LR", "RL", "TB", "BT"]),
    default=None,
    help="Default layout direction.",
)
def init(path: str | None, direction: str | None):
    """Initialize codescape for a repository."""
    root = Path(path or ".").resolve()
    if not root.exists():
        console.error(f"Path does not exist: {root}")
        sys.exit(1)

    console.banner()
    console.info(f"Initializing codescape for: {root}")

    try:
        config = load_config(root)
    except ConfigError as e:
        console.warning(f"{e}; starting from defaults")
        config = ProjectConfig()
    config.name = root.name
    config.root_path = str(root)
    if direction:
        config.layout.direction = direction

    save_config(root, config)
    console.success("Configuration saved to .codescape/")


# =========================================================================
# Offline graph tools
# =========================================================================

@main.command("layout")
@click.argument("graph_json", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--direction", "-d",
    type=click.Choice(["LR", "RL", "TB", "BT"]),
    default=None,
    help="Layout direction (default: from config, else LR).",
)
@click.option("--output", "-o", default=None, help="Write the laid-out graph here instead of stdout.")
@click.option("--stats", is_flag=True, help="Show graph statistics instead of JSON.")
@click.option("--path", "-p", default=None, help="Path to the project root.")
def layout_cmd(graph_json: str, direction: str | None, output: str | None, stats: bool, path: str | None):
    """Lay out a graph JSON file ({nodes, edges}) and print it with positions."""
    from codescape.graph.layout import layout

    config = _load_project_config(path)
    graph = _read_graph(graph_json)
    try:
        layout(graph.nodes, graph.edges, direction or config.layout.direction, config.layout)
    except CodescapeError as e:
        console.error(f"Layout failed: {e}")
        sys.exit(1)

    if stats:
        console.show_stats(graph.get_stats())
        return

    text = json.dumps(graph.to_dict(), indent=2)
    if output:
        Path(output).write_text(text)
        console.success(f"Wrote {len(graph)} nodes to {output}")
    else:
        click.echo(text)


@main.command()
@click.argument("directory", type=click.Path(exists=True, file_okay=False), default=".")
@click.option(
    "--direction", "-d",
    type=click.Choice(["LR", "RL", "TB", "BT"]),
    default=None,
    help="Layout direction (default: from config, else LR).",
)
@click.option("--output", "-o", default=None, help="Write the laid-out graph here instead of stdout.")
@click.option("--stats", is_flag=True, help="Show graph statistics instead of JSON.")
def scan(directory: str, direction: str | None, output: str | None, stats: bool):
    """Build and lay out the file/import graph of DIRECTORY."""
    from codescape.session.session import VisualizerSession

    root = Path(directory).resolve()
    config = _load_project_config(str(root))
    if direction:
        config.layout.direction = direction

    session = VisualizerSession(config=config)
    try:
        session.load_project(root)
    except CodescapeError as e:
        console.error(f"Scan failed: {e}")
        sys.exit(1)

    graph = session.graph
    if stats:
        console.show_stats(graph.get_stats())
        return

    text = json.dumps(graph.to_dict(), indent=2)
    if output:
        Path(output).write_text(text)
        console.success(f"Wrote {len(graph)} files to {output}")
    else:
        click.echo(text)


@main.command()
@click.argument("graph_json", type=click.Path(exists=True, dir_okay=False))
def estimate(graph_json: str):
    """Show the estimated on-screen size of every node in a graph JSON file."""
    graph = _read_graph(graph_json)
    if not len(graph):
        console.warning("Graph has no nodes")
        return
    console.show_sizes(graph.nodes)


@main.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.argument("line", type=int)
@click.option("--end-line", "-e", type=int, default=None, help="Last line of the range.")
@click.option("--context", "-c", type=int, default=None, help="Lines of context around LINE.")
@click.option("--path", "-p", default=None, help="Path to the project root.")
def snippet(file: str, line: int, end_line: int | None, context: int | None, path: str | None):
    """Print the code around LINE of FILE, as the preview panel shows it."""
    from codescape.session.snippets import SnippetReader

    config = _load_project_config(path)
    reader = SnippetReader(max_lines=config.bridge.max_snippet_lines)
    if context is None:
        context = config.bridge.snippet_context_lines
    lines = asyncio.run(reader.fetch(file, line, end_line, context))
    console.snippet(lines, file)


@main.command()
@click.option("--path", "-p", default=None, help="Path to the project root.")
@click.option(
    "--transport", "-t",
    type=click.Choice(["stdio"]),
    default="stdio",
    help="Transport protocol (default: stdio).",
)
def serve(path: str | None, transport: str):
    """Run the editor bridge.

    The editor plugin starts this command and talks JSON-RPC over
    stdin/stdout: it pushes graphs, forwards the user's expand, hover and
    preview actions, and answers the bridge's call-hierarchy, reference
    and symbol requests. Logs go to stderr.
    """
    from codescape.bridge.server import EditorBridge

    config = _load_project_config(path)
    bridge = EditorBridge(config)

    if transport == "stdio":
        asyncio.run(bridge.run_stdio())


# =========================================================================
# Config Management
# =========================================================================

@main.command("config")
@click.argument("action", type=click.Choice(["set", "get", "show"]))
@click.argument("key", required=False)
@click.argument("value", required=False)
@click.option("--path", "-p", default=None, help="Path to the project root.")
def config_cmd(action: str, key: str | None, value: str | None, path: str | None):
    """Manage codescape configuration."""
    root = _get_project_root(path)
    try:
        config = load_config(root)
    except ConfigError as e:
        console.error(str(e))
        sys.exit(1)

    if action == "show":
        console.console.print_json(json.dumps(config.model_dump(), indent=2))
    elif action == "get":
        if not key:
            console.error("Usage: codescape config get <key>")
            sys.exit(1)
        data = config.model_dump()
        for part in key.split("."):
            if isinstance(data, dict) and part in data:
                data = data[part]
            else:
                console.error(f"Unknown key: {key}")
                sys.exit(1)
        console.console.print(f"{key} = {data}")
    elif action == "set":
        if not key or value is None:
            console.error("Usage: codescape config set <key> <value>")
            sys.exit(1)
        try:
            # Try to parse as JSON for non-string values
            try:
                parsed_value = json.loads(value)
            except json.JSONDecodeError:
                parsed_value = value

            config = set_config_value(config, key, parsed_value)
            save_config(root, config)
            console.success(f"Set {key} = {parsed_value}")
        except KeyError:
            console.error(f"Unknown config key: {key}")
            sys.exit(1)
        except ConfigError as e:
            console.error(str(e))
            sys.exit(1)


if __name__ == "__main__":
    main()
