"""Typed lifecycle events and the bus that delivers them.

Each interested collaborator subscribes explicitly to the event classes it
cares about. Callbacks receive ``(state, event)`` and may be coroutines.
"""

import inspect
import logging
from collections import defaultdict
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, ClassVar, TypeVar

from graphdialog.core.types import Node

if TYPE_CHECKING:
    from graphdialog.core.state import SessionState

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    """Wire names of lifecycle events."""

    CHAT_START = "chat_start"
    CHAT_END = "chat_end"
    STEP_START = "step_start"
    STEP_END = "step_end"
    STEP_CHANGE = "step_change"
    STEP_OVERRIDE = "step_override"
    STEP_VALIDATION_FAILED = "step_validation_failed"
    VARIABLE_SET = "variable_set"


@dataclass(frozen=True)
class DialogEvent:
    """Base class for lifecycle events."""

    type: ClassVar[EventType]


@dataclass(frozen=True)
class ChatStarted(DialogEvent):
    type: ClassVar[EventType] = EventType.CHAT_START
    root: Node


@dataclass(frozen=True)
class ChatEnded(DialogEvent):
    type: ClassVar[EventType] = EventType.CHAT_END
    root: Node


@dataclass(frozen=True)
class StepStarted(DialogEvent):
    type: ClassVar[EventType] = EventType.STEP_START
    node: Node


@dataclass(frozen=True)
class StepEnded(DialogEvent):
    type: ClassVar[EventType] = EventType.STEP_END
    node: Node


@dataclass(frozen=True)
class StepChanged(DialogEvent):
    type: ClassVar[EventType] = EventType.STEP_CHANGE
    from_node: Node
    to_node: Node


@dataclass(frozen=True)
class StepOverridden(DialogEvent):
    type: ClassVar[EventType] = EventType.STEP_OVERRIDE
    from_node: Node
    to_node: Node


@dataclass(frozen=True)
class StepValidationFailed(DialogEvent):
    type: ClassVar[EventType] = EventType.STEP_VALIDATION_FAILED
    node: Node
    response: Any
    validator: dict[str, Any]


@dataclass(frozen=True)
class VariableSet(DialogEvent):
    type: ClassVar[EventType] = EventType.VARIABLE_SET
    node: Node
    varname: str
    value: Any


E = TypeVar("E", bound=DialogEvent)
EventCallback = Callable[["SessionState", Any], Awaitable[None] | None]


class EventBus:
    """Delivers events to explicitly registered callbacks."""

    def __init__(self) -> None:
        self._subscribers: dict[type[DialogEvent], list[EventCallback]] = defaultdict(list)

    def subscribe(
        self,
        event_class: type[E],
        callback: Callable[["SessionState", E], Awaitable[None] | None],
    ) -> Callable[[], None]:
        """Register a callback for one event class.

        Returns:
            A function that removes the registration.
        """
        self._subscribers[event_class].append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers[event_class]:
                self._subscribers[event_class].remove(callback)

        return unsubscribe

    async def emit(self, state: "SessionState", event: DialogEvent) -> None:
        """Deliver an event. A failing subscriber is logged and skipped."""
        callbacks = list(self._subscribers.get(type(event), ()))
        logger.debug(
            f"Emitting {event.type.value} to {len(callbacks)} subscriber(s)",
            extra={"event": event.type.value, "session_id": state.session_id},
        )
        for callback in callbacks:
            try:
                result = callback(state, event)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception(
                    f"Event subscriber failed for {event.type.value}",
                    extra={"event": event.type.value},
                )

    def clear(self) -> None:
        self._subscribers.clear()
