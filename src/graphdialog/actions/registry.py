"""Registries for handler nodes and custom node types."""

from typing import Optional

from graphdialog.core.interfaces import Handler
from graphdialog.core.registry import NamedRegistry


class HandlerRegistry(NamedRegistry[Handler]):
    """Registry for ``handler`` node callables.

    Doubles as the default HandlerSource: the builder asks it for each
    handler named in the spec, ahead of any turn.

    Usage:
        registry = HandlerRegistry()

        @registry.register("lookup_order")
        async def lookup_order(context, data):
            return {"assignments": {"order_status": "shipped"}}
    """

    kind = "handler"
    _default_instance: Optional["HandlerRegistry"] = None

    @classmethod
    def get_default(cls) -> "HandlerRegistry":
        """Get the default global registry instance."""
        if cls._default_instance is None:
            cls._default_instance = cls()
        return cls._default_instance

    def load_handler(self, name: str) -> Handler | None:
        return self.get(name)


class NodeTypeRegistry(NamedRegistry[Handler]):
    """Registry for custom node types, keyed by the node's type name."""

    kind = "node type"
    _default_instance: Optional["NodeTypeRegistry"] = None

    @classmethod
    def get_default(cls) -> "NodeTypeRegistry":
        if cls._default_instance is None:
            cls._default_instance = cls()
        return cls._default_instance


def register_handler(name: str):
    """Decorator registering a handler in the default HandlerRegistry."""
    return HandlerRegistry.get_default().register(name)


def register_node_type(name: str):
    """Decorator registering a custom node type in the default NodeTypeRegistry."""
    return NodeTypeRegistry.get_default().register(name)
