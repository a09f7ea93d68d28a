"""Core domain types and infrastructure."""

from graphdialog.core.message_sink import BufferedMessageSink, MessageSink
from graphdialog.core.state import SessionState, create_session_state
from graphdialog.core.types import Node, NodeType, Scenario, TurnResult

__all__ = [
    "BufferedMessageSink",
    "MessageSink",
    "Node",
    "NodeType",
    "Scenario",
    "SessionState",
    "TurnResult",
    "create_session_state",
]
