"""Handler and custom node type extension points"""

from graphdialog.actions.context import HandlerContext, invoke_handler
from graphdialog.actions.registry import (
    HandlerRegistry,
    NodeTypeRegistry,
    register_handler,
    register_node_type,
)

__all__ = [
    "HandlerContext",
    "HandlerRegistry",
    "NodeTypeRegistry",
    "invoke_handler",
    "register_handler",
    "register_node_type",
]
