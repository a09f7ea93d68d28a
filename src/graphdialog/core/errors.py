"""Error hierarchy for GraphDialog."""

from enum import Enum
from typing import Any


class GraphDialogError(Exception):
    """Base class for all GraphDialog errors.

    Keyword arguments are kept as structured context for logging.
    """

    def __init__(self, message: str = "", **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context = context


class ConfigError(GraphDialogError):
    """Raised when configuration is invalid or a collaborator is missing."""


class BuildErrorReason(str, Enum):
    """Why a graph failed to compile."""

    MALFORMED_SPEC = "malformed_spec"
    HANDLER_LOAD_FAILED = "handler_load_failed"
    GRAPH_CYCLE = "graph_cycle"
    DUPLICATE_NODE_ID = "duplicate_node_id"
    UNRESOLVED_REFERENCE = "unresolved_reference"
    SCENARIO_LOAD_FAILED = "scenario_load_failed"


class BuildError(GraphDialogError):
    """Error raised during graph compilation. Never leaves a partial graph."""

    def __init__(
        self,
        message: str,
        reason: BuildErrorReason = BuildErrorReason.MALFORMED_SPEC,
        **context: Any,
    ) -> None:
        super().__init__(message, **context)
        self.reason = reason


class NavigationErrorReason(str, Enum):
    """Why the navigator could not resolve a position."""

    STALE_POSITION = "stale_position"
    CONDITION_FAILED = "condition_failed"
    TURN_LIMIT = "turn_limit"


class NavigationError(GraphDialogError):
    """Raised when the session position cannot be resolved.

    Callers should treat this as a desynchronized session and restart it.
    """

    def __init__(
        self,
        message: str,
        reason: NavigationErrorReason = NavigationErrorReason.STALE_POSITION,
        **context: Any,
    ) -> None:
        super().__init__(message, **context)
        self.reason = reason


class ParseError(GraphDialogError):
    """Raised by value parsers. Always caught by the pipeline."""


class UnknownNodeTypeError(GraphDialogError):
    """Raised when a node type has no built-in or registered behavior."""


class HandlerError(GraphDialogError):
    """Raised when a handler or custom node type fails during a turn."""
