"""Rich-powered console output for codescape."""

from __future__ import annotations

import logging

from rich.console import Console as RichConsole
from rich.logging import RichHandler
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table

from codescape import __version__
from codescape.graph.geometry import estimate
from codescape.graph.models import FileNode, SnippetLine


class Console:
    """Terminal output for codescape using Rich."""

    def __init__(self, stderr: bool = False) -> None:
        self.console = RichConsole(stderr=stderr)

    def banner(self) -> None:
        """Show the codescape banner."""
        self.console.print(
            Panel(
                f"[bold cyan]codescape[/bold cyan] [dim]v{__version__}[/dim]\n"
                "[dim]Explore your code as a graph, one expansion at a time[/dim]",
                border_style="cyan",
                padding=(1, 2),
            )
        )

    def success(self, message: str) -> None:
        self.console.print(f"[green]✓[/green] {message}")

    def error(self, message: str) -> None:
        self.console.print(f"[red]✗[/red] {message}")

    def warning(self, message: str) -> None:
        self.console.print(f"[yellow]![/yellow] {message}")

    def info(self, message: str) -> None:
        self.console.print(f"[blue]i[/blue] {message}")

    def snippet(self, lines: list[SnippetLine], filepath: str = "") -> None:
        """Render snippet lines with their real line numbers."""
        if not lines:
            self.warning(f"No lines to show for {filepath}")
            return
        code = "\n".join(line.text for line in lines)
        lexer = Syntax.guess_lexer(filepath, code=code) if filepath else "text"
        self.console.print(
            Syntax(
                code,
                lexer,
                theme="monokai",
                line_numbers=True,
                start_line=lines[0].num,
            )
        )

    def show_stats(self, stats: dict) -> None:
        """Display graph statistics in a table."""
        table = Table(title="Graph Statistics", border_style="cyan")
        table.add_column("Metric", style="bold")
        table.add_column("Count", justify="right", style="cyan")

        table.add_row("Files", str(stats.get("files", 0)))
        table.add_row("Symbols", str(stats.get("symbols", 0)))
        table.add_row("Total Nodes", str(stats.get("total_nodes", 0)))
        table.add_row("Total Edges", str(stats.get("total_edges", 0)))
        table.add_row("Expanded", str(stats.get("expanded", 0)))
        if stats.get("self_loops"):
            table.add_row("Self Loops", str(stats["self_loops"]))

        self.console.print(table)

    def show_sizes(self, nodes: list) -> None:
        """Display the estimated box of every node."""
        table = Table(title="Estimated Node Sizes", border_style="cyan")
        table.add_column("Node", style="bold")
        table.add_column("Type")
        table.add_column("Width", justify="right", style="cyan")
        table.add_column("Height", justify="right", style="cyan")

        for node in nodes:
            size = estimate(node)
            kind = "file" if isinstance(node, FileNode) else node.kind
            table.add_row(node.id, kind, f"{size.width:g}", f"{size.height:g}")

        self.console.print(table)


def setup_logging(verbose: bool = False) -> None:
    """Send codescape logs to stderr; stdout may carry the stdio protocol."""
    handler = RichHandler(
        console=RichConsole(stderr=True),
        show_path=False,
        rich_tracebacks=True,
    )
    logger = logging.getLogger("codescape")
    logger.handlers[:] = [handler]
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    logger.propagate = False
