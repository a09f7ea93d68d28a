"""Main CLI entry point for GraphDialog"""

import typer

from graphdialog.__version__ import __version__
from graphdialog.cli.commands.chat import chat_command
from graphdialog.cli.commands.compile import compile_command

app = typer.Typer(
    name="graphdialog",
    help="GraphDialog - declarative graph-based conversation flows",
    add_completion=False,
)

app.command("compile", help="Compile a graph spec and print its nodes")(compile_command)
app.command("chat", help="Chat with a graph in the terminal")(chat_command)


def version_callback(value: bool) -> None:
    """Print version and exit"""
    if value:
        typer.echo(f"GraphDialog version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-v",
        help="Show version and exit",
        callback=version_callback,
        is_eager=True,
    ),
) -> None:
    """GraphDialog - declarative graph-based conversation flows"""
    pass


def cli() -> None:
    """Entry point for CLI"""
    app()


if __name__ == "__main__":
    cli()
