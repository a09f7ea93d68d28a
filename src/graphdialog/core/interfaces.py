"""Collaborator interfaces (Protocols) for GraphDialog.

Everything the core needs from the outside world goes through one of these.
"""

from collections.abc import Awaitable, Callable, Mapping, Sequence
from typing import TYPE_CHECKING, Any, Protocol, TypeAlias

from graphdialog.core.types import HandlerResult, IntentMatch, ModelRef

if TYPE_CHECKING:
    from graphdialog.actions.context import HandlerContext

ChannelMessage: TypeAlias = Any

HandlerReturn: TypeAlias = HandlerResult | Mapping[str, Any] | None

# A handler (or custom node type) receives the turn context and the node data.
# It may be a plain function or a coroutine function.
Handler: TypeAlias = Callable[
    ["HandlerContext", Mapping[str, Any]], HandlerReturn | Awaitable[HandlerReturn]
]


class ScenarioSource(Protocol):
    """Loads raw graph specs (or fragments) by identifier."""

    async def load_scenario(self, identifier: str) -> dict[str, Any]:
        """Return the raw spec fragment for ``identifier``.

        Raises:
            Exception: Any failure; the builder wraps it as a BuildError.
        """
        ...


class HandlerSource(Protocol):
    """Resolves handler callables by name at compile time.

    Implementations may be sync or async; returning None means "not found".
    """

    def load_handler(self, name: str) -> Handler | None | Awaitable[Handler | None]:
        ...


class Renderer(Protocol):
    """Turns a rich node payload into channel messages."""

    def render(
        self,
        data: Mapping[str, Any],
        variables: Mapping[str, Any],
    ) -> ChannelMessage | list[ChannelMessage]:
        ...


class IntentScorer(Protocol):
    """Scores text against models; results ranked best first."""

    async def score_intents(
        self,
        models: Sequence[ModelRef],
        text: str,
        threshold: float,
    ) -> list[IntentMatch]:
        ...


class RuleEvaluator(Protocol):
    """Evaluates an opaque scenario condition against session variables."""

    def evaluate(self, expression: str, variables: Mapping[str, Any]) -> bool:
        ...
