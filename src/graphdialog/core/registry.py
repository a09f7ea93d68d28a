"""Thread-safe name -> callable registry shared by all extension points."""

import logging
from collections.abc import Callable
from threading import Lock
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=Callable)


class NamedRegistry(Generic[T]):
    """Thread-safe registry of named callables.

    All mutations are protected by a lock so registries can be populated
    from import-time decorators in any thread.
    """

    kind = "callable"

    def __init__(self) -> None:
        self._items: dict[str, T] = {}
        self._lock = Lock()

    def add(self, name: str, func: T) -> T:
        """Register ``func`` under ``name``, overwriting any previous entry."""
        if not callable(func):
            raise TypeError(f"{self.kind} '{name}' must be callable")
        with self._lock:
            if name in self._items:
                logger.warning(
                    f"{self.kind} '{name}' already registered, overwriting",
                    extra={"registry": self.kind, "entry": name},
                )
            self._items[name] = func
        logger.debug(f"Registered {self.kind} '{name}'", extra={"registry": self.kind})
        return func

    def register(self, name: str) -> Callable[[T], T]:
        """Decorator form of :meth:`add`.

        Usage:
            @registry.register("lookup_order")
            async def lookup_order(context, data):
                ...
        """

        def decorator(func: T) -> T:
            return self.add(name, func)

        return decorator

    def get(self, name: str) -> T | None:
        with self._lock:
            return self._items.get(name)

    def names(self) -> list[str]:
        with self._lock:
            return list(self._items)

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._items

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def clear(self) -> None:
        """Remove every entry. Primarily for tests."""
        with self._lock:
            count = len(self._items)
            self._items.clear()
        logger.debug(f"Cleared {count} {self.kind}(s)", extra={"registry": self.kind})
