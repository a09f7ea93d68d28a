"""Core type definitions for compiled graphs and turn results."""

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class NodeType(str, Enum):
    """Built-in node types. Anything else is a custom type."""

    TEXT = "text"
    PROMPT = "prompt"
    SCORE = "score"
    HANDLER = "handler"
    SEQUENCE = "sequence"
    END = "end"
    RICH_CARD = "richCard"
    CAROUSEL = "carousel"
    CUSTOM = "custom"

    @classmethod
    def from_name(cls, name: str | None) -> "NodeType":
        """Map a raw type name onto a member, falling back to CUSTOM."""
        if not name:
            return cls.SEQUENCE
        if name == "heroCard":
            return cls.RICH_CARD
        for member in cls:
            if member is not cls.CUSTOM and member.value == name:
                return member
        return cls.CUSTOM


@dataclass(frozen=True)
class Scenario:
    """A conditional branch attached to a node.

    The target is either ``node_id`` or the first of ``step_ids``.
    """

    condition: str | None
    node_id: str | None = None
    step_ids: tuple[str, ...] = ()

    @property
    def target_id(self) -> str | None:
        if self.node_id:
            return self.node_id
        return self.step_ids[0] if self.step_ids else None


@dataclass(frozen=True)
class Node:
    """A compiled node. Relationships are id references into the graph arena."""

    id: str
    name: str
    type: NodeType
    type_name: str
    varname: str
    additional_varnames: tuple[str, ...] = ()
    data: Mapping[str, Any] = field(default_factory=dict)
    step_ids: tuple[str, ...] = ()
    scenarios: tuple[Scenario, ...] = ()
    parent_id: str | None = None
    prev_id: str | None = None
    next_id: str | None = None
    subflow: str | None = None


@dataclass(frozen=True)
class ModelRef:
    """A scoring model reference declared in a spec."""

    name: str
    url: str = ""


@dataclass
class IntentMatch:
    """One ranked result returned by an intent scorer."""

    intent: str
    score: float
    model: str | None = None
    entities: list[dict[str, Any]] = field(default_factory=list)


@dataclass
class PromptAnswer:
    """A recognised structured answer to a choice or time prompt."""

    entity: Any
    index: int | None = None
    resolution: datetime | None = None
    text: str = ""


@dataclass
class HandlerResult:
    """What a handler or custom node type hands back to the pipeline."""

    response: Any = None
    assignments: dict[str, Any] | None = None
    next_step_id: str | None = None
    suspend: bool = False

    @classmethod
    def coerce(cls, value: "HandlerResult | Mapping[str, Any] | None") -> "HandlerResult":
        if value is None:
            return cls()
        if isinstance(value, HandlerResult):
            return value
        if isinstance(value, Mapping):
            return cls(
                response=value.get("response"),
                assignments=value.get("assignments"),
                next_step_id=value.get("next_step_id") or value.get("nextStepId"),
                suspend=bool(value.get("suspend", False)),
            )
        raise TypeError(f"Unsupported handler result type: {type(value).__name__}")


@dataclass
class OutboundMessage:
    """A message emitted by the pipeline to the channel."""

    kind: str
    text: str | None = None
    payload: Any = None
    options: Any = None
    node_id: str | None = None


@dataclass
class TurnResult:
    """Outcome of one pipeline turn."""

    messages: list[OutboundMessage] = field(default_factory=list)
    current_node_id: str | None = None
    awaiting_reply: bool = False
    ended: bool = False
    vetoed: bool = False
    stale: bool = False

    @property
    def texts(self) -> list[str]:
        return [m.text for m in self.messages if m.text is not None]
