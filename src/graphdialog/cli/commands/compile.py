"""Compile command: build a graph and print its structure."""

import asyncio
from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from graphdialog.compiler.graph import NodeGraph
from graphdialog.core.errors import GraphDialogError
from graphdialog.observability.logging import setup_logging

console = Console()


def _nodes_table(graph: NodeGraph) -> Table:
    table = Table(title=f"{graph.id or '(unnamed)'} nodes")
    table.add_column("id", style="cyan")
    table.add_column("name")
    table.add_column("type", style="magenta")
    table.add_column("parent")
    table.add_column("next")
    table.add_column("steps", justify="right")
    table.add_column("scenarios", justify="right")
    for row in graph.describe():
        table.add_row(
            row["id"],
            row["name"],
            row["type"],
            row["parent"] or "",
            row["next"] or "",
            str(row["steps"]),
            str(row["scenarios"]),
        )
    return table


def compile_command(
    spec: Path = typer.Argument(
        ..., help="Graph spec (.json/.yaml) or graphdialog.yaml", exists=True
    ),
    scenarios: Path | None = typer.Option(
        None, "--scenarios", "-s", help="Directory holding sub-flow specs"
    ),
    module: str | None = typer.Option(
        None, "--module", "-m", help="Python module registering handlers (e.g. 'app.handlers')"
    ),
    log_file: Path | None = typer.Option(
        None, "--log-file", help="Write JSON log records of the build to this file"
    ),
) -> None:
    """Compile a graph spec and print its nodes."""
    from graphdialog.cli.chat_runner import load_dialog

    if log_file is not None:
        setup_logging("INFO", json_file=log_file, console_level="WARNING")

    try:
        dialog = asyncio.run(load_dialog(spec, scenarios=scenarios, module=module))
    except (GraphDialogError, FileNotFoundError) as e:
        console.print(f"[red]Compilation failed: {escape(str(e))}[/]")
        raise typer.Exit(1)

    graph = dialog.graph
    console.print(f"Dialog: [bold]{graph.id}[/]")
    console.print(f"Version: [green]{graph.version}[/]")
    console.print(f"Models: {', '.join(graph.models) or '-'}")
    console.print(f"Handlers: {', '.join(graph.handlers) or '-'}")
    if graph.root_id is not None:
        console.print(_nodes_table(graph))
    for block in graph.blocks.values():
        console.print(_nodes_table(block))
