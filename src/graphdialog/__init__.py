"""GraphDialog - declarative graph-based conversation flows.

A JSON or YAML graph of messages, prompts, branching scenarios, handlers and
nested sub-flows is compiled once and then steers each conversation turn.

Quick start:
    from graphdialog import GraphDialog, create_session_state

    dialog = await GraphDialog.from_spec(spec)
    state = create_session_state()

    result = await dialog.handle_message(state, "hi")
    print(result.texts)
"""

from graphdialog.__version__ import __version__

__author__ = "GraphDialog Contributors"

# High-level API
from graphdialog.actions.context import HandlerContext
from graphdialog.actions.registry import (
    HandlerRegistry,
    NodeTypeRegistry,
    register_handler,
    register_node_type,
)
from graphdialog.compiler.builder import GraphBuilder, compile_graph
from graphdialog.compiler.graph import NodeGraph
from graphdialog.config.settings import EngineSettings
from graphdialog.core.errors import (
    BuildError,
    BuildErrorReason,
    ConfigError,
    GraphDialogError,
    HandlerError,
    NavigationError,
    NavigationErrorReason,
    ParseError,
    UnknownNodeTypeError,
)
from graphdialog.core.events import EventBus
from graphdialog.core.state import SessionState, create_session_state
from graphdialog.core.types import HandlerResult, IntentMatch, Node, NodeType, TurnResult
from graphdialog.dialog import GraphDialog
from graphdialog.navigation.navigator import Navigator
from graphdialog.parsing.registry import ParserRegistry, register_parser
from graphdialog.pipeline.step_pipeline import StepPipeline
from graphdialog.validation.registry import (
    PredicateRegistry,
    ValidatorRegistry,
    register_predicate,
    register_validator,
)

__all__ = [
    # Version info
    "__version__",
    "__author__",
    # High-level API
    "GraphDialog",
    "GraphBuilder",
    "compile_graph",
    "NodeGraph",
    "Navigator",
    "StepPipeline",
    "EngineSettings",
    "EventBus",
    # Core classes
    "SessionState",
    "create_session_state",
    "Node",
    "NodeType",
    "HandlerContext",
    "HandlerResult",
    "IntentMatch",
    "TurnResult",
    # Registries
    "HandlerRegistry",
    "NodeTypeRegistry",
    "ParserRegistry",
    "ValidatorRegistry",
    "PredicateRegistry",
    "register_handler",
    "register_node_type",
    "register_parser",
    "register_validator",
    "register_predicate",
    # Errors
    "GraphDialogError",
    "BuildError",
    "BuildErrorReason",
    "NavigationError",
    "NavigationErrorReason",
    "ConfigError",
    "ParseError",
    "HandlerError",
    "UnknownNodeTypeError",
]
