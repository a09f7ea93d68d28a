"""Per-turn step pipeline.

Each turn runs the current node through a fixed sequence of stages and then
loops onto the next node until a node suspends (waits for the user), the
dialog ends, or the turn is discarded:

    PreProcess -> Interaction -> ValueParsing -> Validation
        -> ResultCollection -> PostProcess -> StepAdvance -> (loop)

A suspended turn resumes at ValueParsing with the next inbound message.
"""

import dataclasses
import inspect
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from graphdialog.actions.context import HandlerContext, invoke_handler
from graphdialog.actions.registry import NodeTypeRegistry
from graphdialog.compiler.graph import NodeGraph
from graphdialog.config.settings import EngineSettings
from graphdialog.core.errors import (
    ConfigError,
    HandlerError,
    NavigationError,
    NavigationErrorReason,
    UnknownNodeTypeError,
)
from graphdialog.core.events import (
    ChatEnded,
    ChatStarted,
    EventBus,
    StepChanged,
    StepEnded,
    StepOverridden,
    StepStarted,
    StepValidationFailed,
    VariableSet,
)
from graphdialog.core.expression import ExpressionEvaluator, replace_variables
from graphdialog.core.interfaces import IntentScorer, Renderer, RuleEvaluator
from graphdialog.core.message_sink import MessageSink
from graphdialog.core.state import DialogFrame, SessionState
from graphdialog.core.types import (
    HandlerResult,
    IntentMatch,
    Node,
    NodeType,
    OutboundMessage,
    PromptAnswer,
    TurnResult,
)
from graphdialog.navigation.navigator import Navigator
from graphdialog.parsing.registry import ParserRegistry
from graphdialog.pipeline.prompts import choice_value, recognize
from graphdialog.rendering.renderer import PlainRenderer
from graphdialog.utils.loop_guard import TurnLoopGuard
from graphdialog.validation.registry import ValidatorRegistry

logger = logging.getLogger(__name__)

PreProcessHook = Callable[[SessionState, str | None], Awaitable[str | None] | str | None]
PostProcessHook = Callable[[SessionState, str | None], Awaitable[None] | None]


class _Flow(Enum):
    CONTINUE = "continue"
    SUSPEND = "suspend"
    ENDED = "ended"
    STALE = "stale"


@dataclass
class _StepOutcome:
    """What the Interaction stage hands to the remaining stages."""

    flow: _Flow = _Flow.CONTINUE
    response: Any = None
    handler_result: HandlerResult | None = None
    entered_block: bool = False
    # Recognition failed; skip straight to StepAdvance
    skip_collection: bool = False


class _TurnSink(MessageSink):
    """Records every message of the turn and forwards it downstream."""

    def __init__(self, messages: list[OutboundMessage], downstream: MessageSink | None) -> None:
        self.messages = messages
        self.downstream = downstream

    async def send(self, message: OutboundMessage) -> None:
        self.messages.append(message)
        if self.downstream is not None:
            await self.downstream.send(message)


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


class StepPipeline:
    """Drives one conversation turn over a compiled graph.

    Args:
        graph: Top-level compiled graph
        events: Bus receiving lifecycle events
        settings: Engine defaults (messages, thresholds, turn limit)
        evaluator: Scenario condition evaluator
        parsers: Value parser registry
        validators: Validator registry
        node_types: Custom node type registry
        renderer: Renderer for rich cards and carousels
        intent_scorer: Scorer used by ``score`` nodes
        pre_process: Hook run before the first stage; returning None vetoes the turn
        post_process: Hook run after result collection on every step
        dialog: Owning dialog, exposed to handlers through their context
    """

    def __init__(
        self,
        graph: NodeGraph,
        *,
        events: EventBus | None = None,
        settings: EngineSettings | None = None,
        evaluator: RuleEvaluator | None = None,
        parsers: ParserRegistry | None = None,
        validators: ValidatorRegistry | None = None,
        node_types: NodeTypeRegistry | None = None,
        renderer: Renderer | None = None,
        intent_scorer: IntentScorer | None = None,
        pre_process: PreProcessHook | None = None,
        post_process: PostProcessHook | None = None,
        dialog: Any = None,
    ) -> None:
        self.graph = graph
        self.events = events or EventBus()
        self.settings = settings or EngineSettings()
        self.evaluator = evaluator or ExpressionEvaluator()
        self.parsers = parsers if parsers is not None else ParserRegistry.get_default()
        self.validators = validators if validators is not None else ValidatorRegistry.get_default()
        self.node_types = node_types if node_types is not None else NodeTypeRegistry.get_default()
        self.renderer = renderer or PlainRenderer()
        self.intent_scorer = intent_scorer
        self.pre_process = pre_process
        self.post_process = post_process
        self.dialog = dialog
        self._navigators: dict[str, Navigator] = {}

    # ------------------------------------------------------------------
    # Turn loop
    # ------------------------------------------------------------------

    async def run_turn(
        self,
        state: SessionState,
        message: str | None,
        source: str | None = None,
        sink: MessageSink | None = None,
    ) -> TurnResult:
        """
        Run one turn for ``state`` with the inbound ``message``.

        Args:
            state: Session state; mutated in place
            message: Inbound text (None for a proactive turn)
            source: Channel name, passed to parsers and handlers
            sink: Optional downstream sink receiving messages as they are sent

        Returns:
            TurnResult with every message sent during the turn

        Raises:
            NavigationError: Desynchronized position, failed condition or turn limit
            HandlerError: A handler or custom node type failed
            UnknownNodeTypeError: A node type has no behavior
        """
        result = TurnResult()
        turn_sink = _TurnSink(result.messages, sink)
        generation = state.generation

        if self.pre_process is not None:
            message = await _maybe_await(self.pre_process(state, message))
            if message is None:
                logger.info(
                    "Turn vetoed by pre-process hook",
                    extra={"session_id": state.session_id},
                )
                result.vetoed = True
                result.current_node_id = state.current_node_id
                result.awaiting_reply = state.awaiting_reply
                return result

        if message is not None:
            state.last_message = message
        state.last_interaction = datetime.now(timezone.utc)

        resuming = state.awaiting_reply
        state.awaiting_reply = False
        guard = TurnLoopGuard(self.settings.max_steps_per_turn)

        while True:
            graph = self._active_graph(state)
            navigator = self._navigator(graph)
            node = navigator.get_current_node(state)
            guard.visit(node.id)

            if state.repeat:
                # A nested block just returned; only advance
                state.repeat = False
                flow = await self._advance(state, node, graph, navigator, result)
                if flow is _Flow.ENDED:
                    break
                continue

            context = HandlerContext(
                state=state,
                node=node,
                sink=turn_sink,
                dialog=self.dialog,
                message=message,
                source=source,
            )

            if resuming:
                resuming = False
                outcome = await self._resume(node, context, message)
            else:
                outcome = await self._interact(node, context, graph, generation)

            if outcome.flow is _Flow.STALE:
                logger.info(
                    "Discarding stale turn after restart",
                    extra={"session_id": state.session_id, "node_id": node.id},
                )
                result.stale = True
                return result
            if outcome.flow is _Flow.SUSPEND:
                state.awaiting_reply = True
                break
            if outcome.flow is _Flow.ENDED:
                result.ended = True
                break
            if outcome.entered_block:
                continue

            if not outcome.skip_collection:
                response = self._parse(node, context, outcome.response)
                if await self._validate(node, context, response):
                    await self._collect(node, context, response, outcome.handler_result)

            if self.post_process is not None:
                await _maybe_await(self.post_process(state, message))

            flow = await self._advance(state, node, graph, navigator, result)
            if flow is _Flow.ENDED:
                break

        result.current_node_id = state.current_node_id
        result.awaiting_reply = state.awaiting_reply
        return result

    # ------------------------------------------------------------------
    # Interaction
    # ------------------------------------------------------------------

    async def _interact(
        self,
        node: Node,
        context: HandlerContext,
        graph: NodeGraph,
        generation: int,
    ) -> _StepOutcome:
        state = context.state
        data = node.data
        logger.debug(
            f"Interaction: {node.id} ({node.type_name})",
            extra={"session_id": state.session_id, "node_id": node.id},
        )

        if node.type is NodeType.TEXT:
            texts = data.get("text")
            for text in texts if isinstance(texts, list) else [texts]:
                if text is not None:
                    await context.send(text)
            return _StepOutcome()

        if node.type is NodeType.PROMPT:
            flags = state.flags_for(node.id)
            if flags.skip_prompt:
                flags.skip_prompt = False
            else:
                await context.sink.send(self._prompt_message(node, state))
            return _StepOutcome(flow=_Flow.SUSPEND)

        if node.type is NodeType.SCORE:
            return await self._score(node, state, graph, generation)

        if node.type is NodeType.HANDLER:
            name = data.get("name", "")
            handler = graph.handlers.get(name) or self.graph.handlers.get(name)
            if handler is None:
                raise HandlerError(
                    f"Handler '{name}' is not loaded for node '{node.id}'",
                    handler=name,
                    node_id=node.id,
                )
            return self._handler_outcome(
                context, await invoke_handler(name, handler, context, data)
            )

        if node.type is NodeType.SEQUENCE:
            if data.get("block"):
                self._enter_block(state, node, graph, data["block"])
                return _StepOutcome(entered_block=True)
            return _StepOutcome()

        if node.type is NodeType.END:
            await context.send(data.get("text") or self.settings.end_message)
            await self.events.emit(state, StepEnded(node=node))
            await self.events.emit(state, ChatEnded(root=self._top_root(node)))
            logger.info(
                f"Dialog ended at node '{node.id}'",
                extra={"session_id": state.session_id},
            )
            state.clear()
            return _StepOutcome(flow=_Flow.ENDED)

        if node.type is NodeType.RICH_CARD:
            await self._send_rendered(node, context)
            return _StepOutcome()

        if node.type is NodeType.CAROUSEL:
            await self._send_rendered(node, context)
            if data.get("wait_for_response"):
                state.flags_for(node.id).sent = True
                return _StepOutcome(flow=_Flow.SUSPEND)
            return _StepOutcome()

        custom = self.node_types.get(node.type_name)
        if custom is not None:
            logger.debug(
                f"Invoking custom node type '{node.type_name}'",
                extra={"node_id": node.id},
            )
            return self._handler_outcome(
                context, await invoke_handler(node.type_name, custom, context, data)
            )

        raise UnknownNodeTypeError(
            f"Node type '{node.type_name}' is not recognized",
            node_id=node.id,
            type_name=node.type_name,
        )

    def _handler_outcome(self, context: HandlerContext, result: HandlerResult) -> _StepOutcome:
        if result.suspend:
            # Apply side effects now; the reply becomes the response next turn
            self._apply_handler_result(context.state, result)
            return _StepOutcome(flow=_Flow.SUSPEND)
        return _StepOutcome(response=result.response, handler_result=result)

    async def _resume(
        self,
        node: Node,
        context: HandlerContext,
        message: str | None,
    ) -> _StepOutcome:
        """Turn the inbound reply into the suspended node's response."""
        state = context.state
        if node.type is NodeType.PROMPT:
            recognition = recognize(node.data.get("type"), message, node.data.get("options"))
            if not recognition.recognized:
                logger.debug(
                    f"Unrecognised answer for prompt '{node.id}'",
                    extra={"session_id": state.session_id},
                )
                state.flags_for(node.id).needs_revalidation = True
                await context.send(self.settings.retry_message)
                return _StepOutcome(skip_collection=True)
            return _StepOutcome(response=recognition.value)

        if node.type is NodeType.CAROUSEL:
            state.flags_for(node.id).sent = False

        return _StepOutcome(response=message)

    async def _score(
        self,
        node: Node,
        state: SessionState,
        graph: NodeGraph,
        generation: int,
    ) -> _StepOutcome:
        if self.intent_scorer is None:
            raise ConfigError(
                f"Score node '{node.id}' requires an intent scorer",
                node_id=node.id,
            )
        data = node.data
        models = []
        for name in data.get("models") or []:
            model = graph.models.get(name) or self.graph.models.get(name)
            if model is None:
                logger.warning(
                    f"Score node '{node.id}' references unknown model '{name}'",
                    extra={"node_id": node.id, "model": name},
                )
                continue
            models.append(model)

        source = data.get("source")
        text = (state.variables.get(source) if source else None) or state.last_message
        threshold = data.get("threshold", data.get("threashold"))
        if threshold is None:
            threshold = self.settings.score_threshold

        logger.debug(
            f"Scoring for node '{node.id}' with {len(models)} model(s)",
            extra={"session_id": state.session_id, "node_id": node.id},
        )
        intents = await self.intent_scorer.score_intents(models, text or "", float(threshold))

        if state.generation != generation:
            return _StepOutcome(flow=_Flow.STALE)
        if not intents:
            return _StepOutcome()
        return _StepOutcome(response=intents[0])

    def _prompt_message(self, node: Node, state: SessionState) -> OutboundMessage:
        data = node.data
        config = data.get("config") or {}
        return OutboundMessage(
            kind="prompt",
            text=replace_variables(data.get("text") or "", state.variables),
            options=data.get("options"),
            payload={
                "prompt_type": data.get("type") or "text",
                "list_style": config.get("listStyle") or "button",
            },
            node_id=node.id,
        )

    async def _send_rendered(self, node: Node, context: HandlerContext, data: Any = None) -> None:
        rendered = self.renderer.render(data or node.data, context.state.variables)
        for item in rendered if isinstance(rendered, list) else [rendered]:
            if isinstance(item, str):
                await context.sink.send(OutboundMessage(kind="text", text=item, node_id=node.id))
            else:
                kind = node.type_name
                if isinstance(item, dict):
                    kind = item.get("type", kind)
                await context.sink.send(OutboundMessage(kind=kind, payload=item, node_id=node.id))

    # ------------------------------------------------------------------
    # ValueParsing / Validation / ResultCollection
    # ------------------------------------------------------------------

    def _parse(self, node: Node, context: HandlerContext, response: Any) -> Any:
        if response is None or not node.varname:
            return response
        names = node.data.get("valueParser")
        if not names:
            return response
        for name in names if isinstance(names, list) else [names]:
            parser = self.parsers.get(name)
            if parser is None:
                logger.warning(
                    f"Unknown value parser '{name}' on node '{node.id}'",
                    extra={"node_id": node.id, "parser": name},
                )
                continue
            try:
                response = parser(context, response)
            except Exception as e:
                logger.warning(
                    f"Value parser '{name}' failed on node '{node.id}': {e}",
                    extra={"node_id": node.id, "parser": name},
                )
        return response

    async def _validate(self, node: Node, context: HandlerContext, response: Any) -> bool:
        entries = node.data.get("validation")
        if response is None or not node.varname or not isinstance(entries, list):
            return True

        outcome = self.validators.validate(entries, response)
        if outcome.valid:
            return True

        state = context.state
        setup = outcome.failed.get("setup") or {}
        flags = state.flags_for(node.id)
        flags.needs_revalidation = True
        if setup.get("repeat_prompt") is False:
            flags.skip_prompt = True
        await context.send(setup.get("invalid_msg") or self.settings.invalid_message)
        await self.events.emit(
            state,
            StepValidationFailed(node=node, response=response, validator=outcome.failed),
        )
        return False

    def _apply_handler_result(self, state: SessionState, result: HandlerResult) -> None:
        if result.assignments:
            state.variables.update(result.assignments)
        if result.next_step_id:
            state.override_next_id = result.next_step_id

    async def _collect(
        self,
        node: Node,
        context: HandlerContext,
        response: Any,
        handler_result: HandlerResult | None,
    ) -> None:
        state = context.state
        if handler_result is not None:
            self._apply_handler_result(state, handler_result)

        if response is None or not node.varname:
            return

        value = response
        data = node.data
        if node.type is NodeType.PROMPT and isinstance(response, PromptAnswer):
            prompt_type = data.get("type")
            if prompt_type == "choice" and response.index is not None:
                value = choice_value(data.get("options"), response.index)
            elif prompt_type in ("time", "date"):
                value = response.entity
        elif node.type is NodeType.CAROUSEL and data.get("responses") is not None:
            responses = data["responses"]
            if response not in responses:
                state.flags_for(node.id).needs_revalidation = True
                return
            for card in data.get("cards") or []:
                if card.get("id") == responses[response]:
                    card_data = {**(card.get("data") or {}), "buttons": []}
                    await self._send_rendered(node, context, card_data)
        elif isinstance(response, IntentMatch):
            value = dataclasses.asdict(response)

        state.variables[node.varname] = value
        for alias in node.additional_varnames:
            state.variables[alias] = value
        logger.debug(
            f"Collected response for node '{node.id}' into '{node.varname}'",
            extra={"session_id": state.session_id, "node_id": node.id},
        )
        await self.events.emit(state, VariableSet(node=node, varname=node.varname, value=value))

    # ------------------------------------------------------------------
    # StepAdvance
    # ------------------------------------------------------------------

    async def _advance(
        self,
        state: SessionState,
        node: Node,
        graph: NodeGraph,
        navigator: Navigator,
        result: TurnResult,
    ) -> _Flow:
        if state.active_block is None and node.id == graph.root_id and not state.chat_started:
            state.chat_started = True
            await self.events.emit(state, ChatStarted(root=node))

        flags = state.flags_for(node.id)
        if flags.needs_revalidation:
            flags.needs_revalidation = False
            next_node: Node | None = node
            state.current_node_id = node.id
        else:
            override = state.override_next_id
            state.override_next_id = None
            next_node = navigator.get_next_node(state, override)
            if override and next_node is not None and next_node.id == override:
                await self.events.emit(state, StepOverridden(from_node=node, to_node=next_node))

        if next_node is None or next_node.id != node.id:
            await self.events.emit(state, StepEnded(node=node))

        if next_node is not None:
            if next_node.id != node.id:
                await self.events.emit(state, StepChanged(from_node=node, to_node=next_node))
                await self.events.emit(state, StepStarted(node=next_node))
            return _Flow.CONTINUE

        if state.frames:
            frame = state.frames.pop()
            logger.debug(
                f"Block '{state.active_block}' finished, returning to '{frame.return_node_id}'",
                extra={"session_id": state.session_id},
            )
            state.active_block = frame.block_id
            state.current_node_id = frame.return_node_id
            state.repeat = True
            return _Flow.CONTINUE

        await self.events.emit(state, ChatEnded(root=self._top_root(node)))
        logger.info("Dialog completed", extra={"session_id": state.session_id})
        state.clear()
        result.ended = True
        return _Flow.ENDED

    # ------------------------------------------------------------------
    # Blocks
    # ------------------------------------------------------------------

    def _enter_block(self, state: SessionState, node: Node, graph: NodeGraph, name: str) -> None:
        block = graph.get_block(name) or self.graph.get_block(name)
        if block is None or block.root_id is None:
            raise NavigationError(
                f"Node '{node.id}' enters unknown block '{name}'",
                reason=NavigationErrorReason.STALE_POSITION,
                node_id=node.id,
                block=name,
            )
        logger.debug(
            f"Entering block '{block.id}' from node '{node.id}'",
            extra={"session_id": state.session_id},
        )
        state.frames.append(DialogFrame(block_id=state.active_block, return_node_id=node.id))
        state.active_block = block.id
        state.current_node_id = None

    def _active_graph(self, state: SessionState) -> NodeGraph:
        if state.active_block is None:
            return self.graph
        pending = [self.graph]
        while pending:
            candidate = pending.pop()
            if state.active_block in candidate.blocks:
                return candidate.blocks[state.active_block]
            pending.extend(candidate.blocks.values())
        raise NavigationError(
            f"Active block '{state.active_block}' not found in graph '{self.graph.id}'",
            reason=NavigationErrorReason.STALE_POSITION,
            block=state.active_block,
        )

    def _navigator(self, graph: NodeGraph) -> Navigator:
        navigator = self._navigators.get(graph.id)
        if navigator is None:
            navigator = Navigator(graph, self.evaluator)
            self._navigators[graph.id] = navigator
        return navigator

    def _top_root(self, fallback: Node) -> Node:
        return self.graph.root if self.graph.root_id else fallback
