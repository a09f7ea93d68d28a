"""GraphDialog - high-level API over a compiled graph.

    from graphdialog import GraphDialog, create_session_state

    dialog = await GraphDialog.from_spec(spec)
    state = create_session_state()

    result = await dialog.handle_message(state, "hi")
    print(result.texts)
"""

import asyncio
import copy
import logging
from collections import Counter
from collections.abc import AsyncIterator, Mapping
from contextlib import asynccontextmanager
from typing import Any

from cachetools import TTLCache

from graphdialog.actions.registry import NodeTypeRegistry
from graphdialog.compiler.builder import GraphBuilder
from graphdialog.compiler.graph import NodeGraph
from graphdialog.config.settings import EngineSettings
from graphdialog.core.errors import BuildError, BuildErrorReason, ConfigError
from graphdialog.core.events import EventBus
from graphdialog.core.expression import replace_variables
from graphdialog.core.interfaces import (
    HandlerSource,
    IntentScorer,
    Renderer,
    RuleEvaluator,
    ScenarioSource,
)
from graphdialog.core.message_sink import MessageSink
from graphdialog.core.state import SessionState
from graphdialog.core.types import TurnResult
from graphdialog.observability.logging import ContextLogger
from graphdialog.parsing.registry import ParserRegistry
from graphdialog.pipeline.step_pipeline import PostProcessHook, PreProcessHook, StepPipeline
from graphdialog.validation.registry import ValidatorRegistry

logger = logging.getLogger(__name__)
context_logger = ContextLogger(__name__)

# Upper bound on concurrently tracked session locks
MAX_SESSION_LOCKS = 10000


class GraphDialog:
    """A compiled graph plus the collaborators needed to run conversations.

    Build one with :meth:`from_spec` or :meth:`from_scenario`; the constructor
    takes an already compiled NodeGraph.
    """

    def __init__(
        self,
        graph: NodeGraph,
        *,
        spec: Mapping[str, Any] | None = None,
        scenario: str | None = None,
        scenario_source: ScenarioSource | None = None,
        handler_source: HandlerSource | None = None,
        settings: EngineSettings | None = None,
        events: EventBus | None = None,
        evaluator: RuleEvaluator | None = None,
        parsers: ParserRegistry | None = None,
        validators: ValidatorRegistry | None = None,
        node_types: NodeTypeRegistry | None = None,
        renderer: Renderer | None = None,
        intent_scorer: IntentScorer | None = None,
        pre_process: PreProcessHook | None = None,
        post_process: PostProcessHook | None = None,
    ) -> None:
        self.settings = settings or EngineSettings()
        self.events = events or EventBus()
        self.scenario_source = scenario_source
        self.handler_source = handler_source
        self._spec = copy.deepcopy(dict(spec)) if spec is not None else None
        self._scenario = scenario
        self._collaborators: dict[str, Any] = {
            "evaluator": evaluator,
            "parsers": parsers,
            "validators": validators,
            "node_types": node_types,
            "renderer": renderer,
            "intent_scorer": intent_scorer,
            "pre_process": pre_process,
            "post_process": post_process,
        }
        # Idle locks expire; locks of running turns stay in _active_locks
        self._locks: TTLCache[str, asyncio.Lock] = TTLCache(
            maxsize=MAX_SESSION_LOCKS, ttl=self.settings.session_lock_ttl
        )
        self._active_locks: dict[str, asyncio.Lock] = {}
        self._lock_users: Counter[str] = Counter()
        self._install(graph)

    def _install(self, graph: NodeGraph) -> None:
        self.graph = graph
        self.pipeline = StepPipeline(
            graph,
            events=self.events,
            settings=self.settings,
            dialog=self,
            **self._collaborators,
        )

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    async def from_spec(cls, spec: Mapping[str, Any], **options: Any) -> "GraphDialog":
        """
        Compile ``spec`` and wrap it in a dialog.

        Args:
            spec: Raw graph spec (never mutated)
            **options: ``scenario_source``, ``handler_source`` and any
                constructor keyword

        Raises:
            BuildError: If the spec does not compile
        """
        builder = GraphBuilder(
            scenario_source=options.get("scenario_source"),
            handler_source=options.get("handler_source"),
        )
        graph = await builder.compile(spec)
        return cls(graph, spec=spec, **options)

    @classmethod
    async def from_scenario(
        cls,
        identifier: str,
        scenario_source: ScenarioSource,
        **options: Any,
    ) -> "GraphDialog":
        """Load the root spec through ``scenario_source`` and compile it."""
        spec = await cls._load_root(identifier, scenario_source)
        builder = GraphBuilder(
            scenario_source=scenario_source,
            handler_source=options.get("handler_source"),
        )
        graph = await builder.compile(spec)
        return cls(graph, scenario=identifier, scenario_source=scenario_source, **options)

    @staticmethod
    async def _load_root(identifier: str, scenario_source: ScenarioSource) -> dict[str, Any]:
        try:
            return await scenario_source.load_scenario(identifier)
        except Exception as e:
            raise BuildError(
                f"Failed to load scenario '{identifier}': {e}",
                reason=BuildErrorReason.SCENARIO_LOAD_FAILED,
                scenario=identifier,
            ) from e

    async def reload(self) -> "GraphDialog":
        """
        Rebuild the graph wholesale from its source.

        The current graph stays in place if the rebuild fails. Sessions
        positioned on nodes that no longer exist should be restarted.
        """
        if self._scenario is not None and self.scenario_source is not None:
            spec = await self._load_root(self._scenario, self.scenario_source)
        elif self._spec is not None:
            spec = self._spec
        else:
            raise ConfigError(f"Dialog '{self.dialog_id}' has no source to reload from")

        builder = GraphBuilder(
            scenario_source=self.scenario_source,
            handler_source=self.handler_source,
        )
        graph = await builder.compile(spec)
        logger.info(
            f"Reloaded dialog '{graph.id}': version {self.version} -> {graph.version}",
            extra={"dialog_id": graph.id},
        )
        self._install(graph)
        return self

    def for_block(self, block_id: str) -> "GraphDialog":
        """A dialog running one compiled block, sharing collaborators and events."""
        block = self.graph.get_block(block_id)
        if block is None:
            raise ConfigError(
                f"Block '{block_id}' not found in dialog '{self.dialog_id}'",
                block=block_id,
            )
        return GraphDialog(
            block,
            scenario_source=self.scenario_source,
            handler_source=self.handler_source,
            settings=self.settings,
            events=self.events,
            **self._collaborators,
        )

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def version(self) -> str:
        return self.graph.version

    @property
    def dialog_id(self) -> str:
        return self.graph.id

    # ------------------------------------------------------------------
    # Conversation
    # ------------------------------------------------------------------

    def _session_lock(self, session_id: str) -> asyncio.Lock:
        lock = self._active_locks.get(session_id) or self._locks.get(session_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[session_id] = lock
        return lock

    @asynccontextmanager
    async def _session_turn(self, session_id: str) -> AsyncIterator[None]:
        """Hold the session lock for one turn.

        While a turn of the session runs or waits, its lock lives outside the
        expiring cache; the last one out puts it back with a fresh TTL.
        """
        lock = self._session_lock(session_id)
        self._active_locks[session_id] = lock
        self._lock_users[session_id] += 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[session_id] -= 1
            if self._lock_users[session_id] <= 0:
                del self._lock_users[session_id]
                self._locks[session_id] = self._active_locks.pop(session_id)

    async def handle_message(
        self,
        state: SessionState,
        text: str | None,
        source: str | None = None,
        sink: MessageSink | None = None,
    ) -> TurnResult:
        """
        Process one inbound message for a conversation.

        Turns of the same session run strictly one after another.

        Args:
            state: The conversation's session state (mutated in place)
            text: Inbound message text
            source: Channel name (e.g. ``slack``)
            sink: Optional sink receiving messages as they are produced

        Returns:
            TurnResult for the turn
        """
        log = context_logger.with_context(session_id=state.session_id, dialog_id=self.dialog_id)
        async with self._session_turn(state.session_id):
            log.debug(f"Handling message at node {state.current_node_id}")
            result = await self.pipeline.run_turn(state, text, source=source, sink=sink)
            log.debug(
                f"Turn finished at node {result.current_node_id} "
                f"(awaiting_reply={result.awaiting_reply}, ended={result.ended})"
            )
            return result

    def restart(self, state: SessionState) -> None:
        """Cancel the current conversation and start over on the next message.

        Clears variables, position and nested frames, and bumps the session's
        generation so in-flight scoring results are discarded.
        """
        state.clear()
        state.generation += 1
        logger.info(
            f"Restarted session (generation {state.generation})",
            extra={"session_id": state.session_id},
        )

    def reload_session(self, state: SessionState) -> None:
        """Forget the recorded position only; variables are kept."""
        state.current_node_id = None

    def replace_variables(self, text: str, state: SessionState) -> str:
        return replace_variables(text, state.variables)
