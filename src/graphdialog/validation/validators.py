"""Built-in validators: regex, length, date and function."""

import logging
import re
from collections.abc import Mapping
from datetime import date, datetime
from typing import TYPE_CHECKING, Any

from graphdialog.core.types import PromptAnswer
from graphdialog.validation.registry import PredicateRegistry

if TYPE_CHECKING:
    from graphdialog.validation.registry import ValidatorRegistry

logger = logging.getLogger(__name__)

_REGEX_FLAGS = {"i": re.IGNORECASE, "m": re.MULTILINE, "s": re.DOTALL}


def _as_text(value: Any) -> str:
    if isinstance(value, PromptAnswer):
        return value.text or str(value.entity)
    return "" if value is None else str(value)


def _as_datetime(value: Any) -> datetime | None:
    if isinstance(value, PromptAnswer):
        value = value.resolution
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    return None


def validate_regex(value: Any, setup: Mapping[str, Any]) -> bool:
    flags = 0
    for flag in setup.get("flags") or "":
        flags |= _REGEX_FLAGS.get(flag, 0)
    return re.search(setup.get("pattern", ""), _as_text(value), flags) is not None


def validate_length(value: Any, setup: Mapping[str, Any]) -> bool:
    """Bounds of zero or less are ignored."""
    length = len(_as_text(value))
    minimum = int(setup.get("min") or 0)
    maximum = int(setup.get("max") or 0)
    if minimum > 0 and length < minimum:
        return False
    if maximum > 0 and length > maximum:
        return False
    return True


def validate_date(value: Any, setup: Mapping[str, Any]) -> bool:
    moment = _as_datetime(value)
    if moment is None:
        return False
    # Compare naive against naive so tz-aware answers still validate
    moment = moment.replace(tzinfo=None)
    if setup.get("min_date"):
        if moment < datetime.fromisoformat(str(setup["min_date"])).replace(tzinfo=None):
            return False
    if setup.get("max_date"):
        if moment > datetime.fromisoformat(str(setup["max_date"])).replace(tzinfo=None):
            return False
    return True


def validate_function(value: Any, setup: Mapping[str, Any]) -> bool:
    """Run a registered predicate named by ``setup.name``.

    A missing predicate or one that raises counts as a failed validation.
    """
    name = setup.get("name") or setup.get("function")
    predicate = PredicateRegistry.get_default().get(name) if name else None
    if predicate is None:
        logger.warning(
            f"Validation predicate '{name}' is not registered",
            extra={"predicate": name},
        )
        return False
    try:
        return bool(predicate(value))
    except Exception:
        logger.exception(
            f"Validation predicate '{name}' raised",
            extra={"predicate": name},
        )
        return False


def register_builtin_validators(registry: "ValidatorRegistry") -> None:
    registry.add("regex", validate_regex)
    registry.add("length", validate_length)
    registry.add("date", validate_date)
    registry.add("function", validate_function)
