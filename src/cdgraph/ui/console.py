"""Rich-powered console output for cdgraph."""

from __future__ import annotations

from rich.console import Console as RichConsole
from rich.panel import Panel
from rich.table import Table
from rich.tree import Tree

from cdgraph.diff.models import EdgeStatus, NodeStatus
from cdgraph.engine import EngineResult

NODE_STYLES = {
    NodeStatus.CREATED: "green",
    NodeStatus.MODIFIED: "yellow",
    NodeStatus.UNCHANGED: "dim",
    NodeStatus.DELETED: "red",
}

EDGE_STYLES = {
    EdgeStatus.SEVERED: "red",
    EdgeStatus.SIMPLIFIED: "yellow",
    EdgeStatus.UNCHANGED: "dim",
    EdgeStatus.NEW: "green",
}


class Console:
    """Terminal output for cdgraph using Rich."""

    def __init__(self, stderr: bool = False) -> None:
        self.console = RichConsole(stderr=stderr)

    def success(self, message: str) -> None:
        self.console.print(f"[green]✓[/green] {message}")

    def error(self, message: str) -> None:
        self.console.print(f"[red]✗[/red] {message}")

    def warning(self, message: str) -> None:
        self.console.print(f"[yellow]![/yellow] {message}")

    def info(self, message: str) -> None:
        self.console.print(f"[blue]i[/blue] {message}")

    def show_summary(self, result: EngineResult) -> None:
        """Headline numbers in a panel, colored by how much was severed."""
        summary = result.summary()
        severed = summary["edges"]["severed"]
        color = "green" if severed == 0 else "yellow" if severed < 3 else "red"
        self.console.print(
            Panel(
                f"[bold]Seeds:[/bold] {summary['seeds']}\n"
                f"[bold]Affected:[/bold] {summary['affected']}\n"
                f"[bold]Severed edges:[/bold] [{color}]{severed}[/{color}]\n"
                f"[bold]Simplified edges:[/bold] {summary['edges']['simplified']}\n"
                f"[bold]Warnings:[/bold] {summary['warnings']}",
                title="[bold]Blast Radius[/bold]",
                border_style=color,
            )
        )

    def show_nodes(self, result: EngineResult) -> None:
        table = Table(title="Components", border_style="cyan")
        table.add_column("Identity", style="bold")
        table.add_column("Name")
        table.add_column("Status")
        table.add_column("Affected", justify="center")
        table.add_column("Match", justify="right", style="cyan")

        for node in result.nodes:
            style = NODE_STYLES[node.status]
            table.add_row(
                node.identity,
                node.display_name,
                f"[{style}]{node.status.value}[/{style}]",
                "[red]yes[/red]" if node.affected else "",
                f"{node.match_score:.2f}" if node.match_score is not None else "",
            )
        self.console.print(table)

    def show_edges(self, result: EngineResult) -> None:
        table = Table(title="Edges", border_style="cyan")
        table.add_column("From", style="bold")
        table.add_column("To", style="bold")
        table.add_column("Kind")
        table.add_column("Status")
        table.add_column("Changes", style="dim")

        for edge in result.edges:
            style = EDGE_STYLES[edge.status]
            table.add_row(
                edge.from_identity,
                edge.to_identity,
                edge.kind.value,
                f"[{style}]{edge.status.value}[/{style}]",
                "; ".join(edge.changes),
            )
        self.console.print(table)

    def show_explanations(self, result: EngineResult) -> None:
        """Ranked narrative, key edges highlighted."""
        if not result.explanations:
            self.success("No severed or simplified edges")
            return
        key_edges = set(result.report.key_edges)
        tree = Tree("[bold cyan]Ranked consequences[/bold cyan]")
        for explanation in result.explanations:
            if explanation.edge_id in key_edges:
                tree.add(f"[bold red]{explanation.ranked_explanation}[/bold red]")
            else:
                tree.add(explanation.ranked_explanation)
        self.console.print(tree)

    def show_warnings(self, result: EngineResult) -> None:
        for warning in result.report.warnings:
            location = warning.path + (f":{warning.line}" if warning.line else "")
            snapshot = f" [dim]({warning.snapshot})[/dim]" if warning.snapshot else ""
            self.warning(f"[dim]{warning.kind.value}[/dim] {location}{snapshot} {warning.message}")

    def show_report(self, result: EngineResult) -> None:
        """Render everything the engine produced."""
        self.show_summary(result)
        self.show_nodes(result)
        self.show_edges(result)
        self.show_explanations(result)
        self.show_warnings(result)
