"""Interactive chat runner and dialog loading for the GraphDialog CLI."""

import importlib
import logging
import os
import sys
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from dotenv import load_dotenv
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.prompt import Prompt

from graphdialog.config.loader import ConfigLoader, FileScenarioSource, load_spec
from graphdialog.config.settings import EngineSettings
from graphdialog.core.errors import ConfigError, GraphDialogError
from graphdialog.core.message_sink import MessageSink
from graphdialog.core.state import SessionState, create_session_state
from graphdialog.core.types import OutboundMessage
from graphdialog.dialog import GraphDialog
from graphdialog.observability.logging import setup_logging
from graphdialog.pipeline.prompts import choice_entries

logger = logging.getLogger(__name__)

CONFIG_FILENAMES = ("graphdialog.yaml", "config.yaml")


class ConsoleMessageSink(MessageSink):
    """Sink that prints to rich console."""

    def __init__(self, console: Console):
        self.console = console

    async def send(self, message: OutboundMessage) -> None:
        if message.text:
            self.console.print(f"[bold blue]Bot > [/]{escape(message.text)}")
        if message.kind == "prompt":
            for index, (_, label) in enumerate(choice_entries(message.options), start=1):
                self.console.print(f"       [cyan]{index}.[/] {escape(label)}")
        elif message.payload is not None:
            self.console.print(self._render_payload(message.payload))
        self.console.print()

    def _render_payload(self, payload: Any) -> Any:
        if not isinstance(payload, dict):
            return payload
        if payload.get("type") == "carousel":
            return Panel(
                "\n\n".join(self._card_body(card) for card in payload.get("cards", [])),
                title="carousel",
            )
        return Panel(self._card_body(payload), title=payload.get("title"))

    @staticmethod
    def _card_body(card: dict[str, Any]) -> str:
        lines = [card[key] for key in ("title", "subtitle", "text") if card.get(key)]
        lines += [f"[{button['label']}]" for button in card.get("buttons", [])]
        return escape("\n".join(str(line) for line in lines))


@dataclass
class ChatConfig:
    """Configuration for chat runner."""

    spec_path: Path
    scenarios: Path | None = None
    module: str | None = None
    session_id: str | None = None
    debug: bool = False
    log_file: Path | None = None


def import_handlers_module(module: str) -> None:
    """Import a module so its decorators populate the default registries."""
    # Ensure cwd is in python path
    cwd = os.getcwd()
    if cwd not in sys.path:
        sys.path.insert(0, cwd)
    importlib.import_module(module)
    logger.debug(f"Loaded module: {module}")


async def load_dialog(
    spec_path: Path,
    scenarios: Path | None = None,
    module: str | None = None,
) -> GraphDialog:
    """
    Build a GraphDialog from a spec file or a graphdialog.yaml config.

    Args:
        spec_path: Graph spec (.json/.yaml), config file, or directory holding one
        scenarios: Directory of sub-flows (defaults to the spec's directory)
        module: Python module registering handlers

    Raises:
        BuildError: If the graph does not compile
        ConfigError: If the files are not valid
    """
    load_dotenv()

    settings = EngineSettings()
    graph_path = spec_path
    if spec_path.is_dir() or spec_path.name in CONFIG_FILENAMES:
        config = ConfigLoader.load(spec_path)
        if not config.graph:
            raise ConfigError(f"Config {spec_path} does not name a graph")
        graph_path = Path(config.graph)
        settings = config.settings
        if scenarios is None and config.scenarios:
            scenarios = Path(config.scenarios)
        module = module or config.handlers_module

    if module:
        import_handlers_module(module)

    spec = load_spec(graph_path)
    source = FileScenarioSource(scenarios or graph_path.parent)
    return await GraphDialog.from_spec(spec, scenario_source=source, settings=settings)


class ChatRunner:
    """Interactive chat session runner.

    Encapsulates the setup and execution of an interactive chat session
    against one compiled dialog.
    """

    def __init__(self, config: ChatConfig, console: Console | None = None):
        self.config = config
        self.console = console or Console()
        self.dialog: GraphDialog | None = None
        self.state: SessionState = create_session_state(
            config.session_id or f"cli_{uuid.uuid4().hex[:6]}"
        )
        self.sink = ConsoleMessageSink(self.console)

    async def setup(self) -> None:
        """Compile the dialog.

        Raises:
            GraphDialogError: If the dialog cannot be built
        """
        setup_logging(
            "DEBUG" if self.config.debug else "INFO",
            json_file=self.config.log_file,
            console_level=None if self.config.debug else "WARNING",
        )
        self.dialog = await load_dialog(
            self.config.spec_path,
            scenarios=self.config.scenarios,
            module=self.config.module,
        )

    async def start(self) -> None:
        """Start the interactive session."""
        if self.dialog is None:
            await self.setup()
        assert self.dialog is not None

        self.console.print(
            f"Dialog [bold]{self.dialog.dialog_id}[/] (version {self.dialog.version})"
        )
        self.console.print(f"Session ID: [green]{self.state.session_id}[/]")
        self.console.print("Type '/restart' to start over, 'exit' or 'quit' to end session.\n")

        while True:
            try:
                user_input = Prompt.ask("[bold green]You[/]", console=self.console)

                if self._is_exit_command(user_input):
                    self.console.print("\n[yellow]Goodbye![/]")
                    break

                if user_input.strip() == "/restart":
                    self.dialog.restart(self.state)
                    self.console.print("[yellow]Dialog restarted[/]\n")
                    continue

                result = await self.dialog.handle_message(self.state, user_input, sink=self.sink)
                if result.ended:
                    self.console.print(
                        "[dim]Conversation ended. Type anything to start again.[/]\n"
                    )

            except (KeyboardInterrupt, EOFError):
                self.console.print("\n[yellow]Goodbye![/]")
                break
            except GraphDialogError as e:
                if self.config.debug:
                    self.console.print_exception()
                else:
                    self.console.print(f"[red]Error: {escape(str(e))}[/]")
                self.console.print("[yellow]Restarting dialog[/]\n")
                self.dialog.restart(self.state)

    def _is_exit_command(self, user_input: str) -> bool:
        """Check if input is an exit command."""
        return user_input.strip().lower() in ("quit", "exit", "q", "/quit", "/exit")


async def run_chat_session(config: ChatConfig) -> None:
    """Run an interactive chat session.

    Args:
        config: Chat configuration
    """
    runner = ChatRunner(config)
    await runner.setup()
    await runner.start()
