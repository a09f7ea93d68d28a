"""Shared fixtures for GraphDialog tests.

Scenario sources and handler registries are in-memory so tests stay
deterministic and never touch the global default registries.
"""

from typing import Any

import pytest

from graphdialog.actions.registry import HandlerRegistry, NodeTypeRegistry
from graphdialog.core.events import EventBus
from graphdialog.core.state import SessionState, create_session_state
from tests.factories import DictScenarioSource, EventRecorder, prompt_node, sequence, text_node


@pytest.fixture
def handler_registry() -> HandlerRegistry:
    """Fresh, empty handler registry."""
    return HandlerRegistry()


@pytest.fixture
def node_type_registry() -> NodeTypeRegistry:
    return NodeTypeRegistry()


@pytest.fixture
def scenario_source() -> DictScenarioSource:
    return DictScenarioSource()


@pytest.fixture
def state() -> SessionState:
    return create_session_state("test-session")


@pytest.fixture
def event_recorder() -> EventRecorder:
    return EventRecorder()


@pytest.fixture
def events() -> EventBus:
    return EventBus()


@pytest.fixture
def simple_spec() -> dict[str, Any]:
    """Greeting, a name prompt and a goodbye."""
    return {
        "id": "simple",
        "root": sequence(
            "root",
            text_node("hello", "Hello!"),
            prompt_node("ask_name", "What's your name?", varname="name"),
            text_node("bye", "Nice to meet you, {{%name%}}"),
        ),
    }
