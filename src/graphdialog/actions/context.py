"""Execution context handed to handlers and custom node types."""

import copy
import inspect
from collections.abc import Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from graphdialog.core.errors import HandlerError
from graphdialog.core.expression import replace_variables
from graphdialog.core.interfaces import Handler
from graphdialog.core.message_sink import MessageSink
from graphdialog.core.state import SessionState
from graphdialog.core.types import HandlerResult, Node, OutboundMessage

if TYPE_CHECKING:
    from graphdialog.dialog import GraphDialog


@dataclass
class HandlerContext:
    """What a handler sees of the running turn."""

    state: SessionState
    node: Node
    sink: MessageSink
    dialog: "GraphDialog | None" = None
    message: str | None = None
    source: str | None = None

    @property
    def variables(self) -> dict[str, Any]:
        return self.state.variables

    async def send(self, text: str) -> None:
        """Send a text message, substituting ``{{%var%}}`` placeholders."""
        await self.sink.send(
            OutboundMessage(
                kind="text",
                text=replace_variables(text, self.state.variables),
                node_id=self.node.id,
            )
        )


async def invoke_handler(
    name: str,
    handler: Handler,
    context: HandlerContext,
    data: Mapping[str, Any],
) -> HandlerResult:
    """Run a handler (sync or async) and normalise its result.

    The handler receives its own deep copy of ``data``; compiled node data is
    shared by every session.

    Raises:
        HandlerError: If the handler raises or returns an unsupported value.
    """
    try:
        result = handler(context, copy.deepcopy(dict(data)))
        if inspect.isawaitable(result):
            result = await result
        return HandlerResult.coerce(result)
    except HandlerError:
        raise
    except Exception as e:
        raise HandlerError(
            f"Handler '{name}' failed on node '{context.node.id}': {e}",
            handler=name,
            node_id=context.node.id,
        ) from e
