"""Chat command for interactive sessions."""

import asyncio
from pathlib import Path

import typer

from graphdialog.core.errors import GraphDialogError


def chat_command(
    spec: Path = typer.Argument(
        ..., help="Graph spec (.json/.yaml) or graphdialog.yaml", exists=True
    ),
    scenarios: Path | None = typer.Option(
        None, "--scenarios", "-s", help="Directory holding sub-flow specs"
    ),
    module: str | None = typer.Option(
        None, "--module", "-m", help="Python module registering handlers (e.g. 'app.handlers')"
    ),
    session_id: str | None = typer.Option(None, "--session", help="Session ID"),
    debug: bool = typer.Option(False, "--debug", help="Debug mode"),
    log_file: Path | None = typer.Option(
        None, "--log-file", help="Also write JSON log records to this file"
    ),
) -> None:
    """Start interactive chat session."""
    from graphdialog.cli.chat_runner import ChatConfig, run_chat_session

    chat_config = ChatConfig(
        spec_path=spec,
        scenarios=scenarios,
        module=module,
        session_id=session_id,
        debug=debug,
        log_file=log_file,
    )

    try:
        asyncio.run(run_chat_session(chat_config))
    except KeyboardInterrupt:
        pass
    except (GraphDialogError, FileNotFoundError) as e:
        typer.echo(f"Fatal error: {e}", err=True)
        raise typer.Exit(1)
