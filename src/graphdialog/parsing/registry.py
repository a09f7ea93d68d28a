"""Registry for value parsers applied to raw responses."""

from collections.abc import Callable
from typing import TYPE_CHECKING, Any, Optional

from graphdialog.core.registry import NamedRegistry

if TYPE_CHECKING:
    from graphdialog.actions.context import HandlerContext

# A parser receives the turn context and the current value and returns the
# parsed value. Raising ParseError (or anything else) leaves the value as-is.
ValueParser = Callable[["HandlerContext", Any], Any]


class ParserRegistry(NamedRegistry[ValueParser]):
    """Name -> parser map. The default instance carries the built-ins."""

    kind = "parser"
    _default_instance: Optional["ParserRegistry"] = None

    @classmethod
    def get_default(cls) -> "ParserRegistry":
        if cls._default_instance is None:
            cls._default_instance = cls()
            from graphdialog.parsing.parsers import register_builtin_parsers

            register_builtin_parsers(cls._default_instance)
        return cls._default_instance


def register_parser(name: str):
    """Decorator registering a parser in the default ParserRegistry."""
    return ParserRegistry.get_default().register(name)
