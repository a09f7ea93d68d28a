"""Dictionary merging for sub-flow fragments and block shared data."""

import copy
from collections.abc import Mapping
from typing import Any


def deep_merge(base: Mapping[str, Any], overlay: Mapping[str, Any]) -> dict[str, Any]:
    """Return a new dict with ``overlay`` merged onto ``base``.

    Nested mappings merge recursively; lists and scalars from ``overlay``
    replace the value in ``base``. Neither input is mutated.

    Example:
        >>> deep_merge({"data": {"a": 1, "b": 2}}, {"data": {"b": 3}})
        {'data': {'a': 1, 'b': 3}}
    """
    result = copy.deepcopy(dict(base))
    for key, value in overlay.items():
        current = result.get(key)
        if isinstance(current, Mapping) and isinstance(value, Mapping):
            result[key] = deep_merge(current, value)
        else:
            result[key] = copy.deepcopy(value)
    return result
