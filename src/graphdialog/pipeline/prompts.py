"""Prompt answer recognition.

A prompt node suspends the turn; the next inbound text is recognised here
according to the prompt's ``data.type`` before it enters value parsing.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Any

from graphdialog.core.types import PromptAnswer

PROMPT_TYPES = frozenset({"text", "number", "confirm", "choice", "time", "date"})

_YES = frozenset({"yes", "y", "yeah", "yep", "sure", "ok", "okay", "true", "1"})
_NO = frozenset({"no", "n", "nope", "nah", "false", "0"})


@dataclass
class Recognition:
    """Outcome of recognising one answer."""

    recognized: bool
    value: Any = None


_UNRECOGNIZED = Recognition(recognized=False)


def choice_entries(options: Any) -> list[tuple[str, str]]:
    """Normalise prompt options into ``(key, label)`` pairs, in order."""
    if isinstance(options, Mapping):
        return [(str(key), str(label)) for key, label in options.items()]
    if isinstance(options, (list, tuple)):
        return [(str(item), str(item)) for item in options]
    if isinstance(options, str):
        # "red|green|blue"
        return [(item, item) for item in options.split("|") if item]
    return []


def choice_value(options: Any, index: int) -> Any:
    """Map a chosen index onto the declared options (dict or list)."""
    if isinstance(options, Mapping):
        keys = list(options)
        return options[keys[index]] if 0 <= index < len(keys) else None
    if isinstance(options, (list, tuple)):
        return options[index] if 0 <= index < len(options) else None
    entries = choice_entries(options)
    return entries[index][1] if 0 <= index < len(entries) else None


def _recognize_number(text: str) -> Recognition:
    cleaned = text.replace(",", "")
    try:
        return Recognition(True, int(cleaned))
    except ValueError:
        pass
    try:
        return Recognition(True, float(cleaned))
    except ValueError:
        return _UNRECOGNIZED


def _recognize_confirm(text: str) -> Recognition:
    lowered = text.lower()
    if lowered in _YES:
        return Recognition(True, True)
    if lowered in _NO:
        return Recognition(True, False)
    return _UNRECOGNIZED


def _recognize_choice(text: str, options: Any) -> Recognition:
    entries = choice_entries(options)
    lowered = text.lower()
    if text.isdigit():
        index = int(text) - 1
        if 0 <= index < len(entries):
            return Recognition(True, PromptAnswer(entity=entries[index][0], index=index, text=text))
    for index, (key, label) in enumerate(entries):
        if lowered in (key.lower(), label.lower()):
            return Recognition(True, PromptAnswer(entity=key, index=index, text=text))
    return _UNRECOGNIZED


def _recognize_moment(text: str, prompt_type: str) -> Recognition:
    moment: datetime | None = None
    try:
        moment = datetime.fromisoformat(text)
    except ValueError:
        try:
            if prompt_type == "time":
                moment = datetime.combine(date.today(), time.fromisoformat(text))
            else:
                moment = datetime.combine(date.fromisoformat(text), time())
        except ValueError:
            return _UNRECOGNIZED
    return Recognition(True, PromptAnswer(entity=text, resolution=moment, text=text))


def recognize(prompt_type: str | None, text: str | None, options: Any = None) -> Recognition:
    """
    Recognise an answer to a prompt.

    Args:
        prompt_type: ``text``, ``number``, ``confirm``, ``choice``, ``time`` or ``date``
        text: Raw inbound text
        options: The prompt's declared options (choice prompts)

    Returns:
        Recognition; ``recognized`` is False when the answer does not fit.

    Examples:
        >>> recognize("choice", "2", {"a": "Apple", "b": "Banana"}).value.index
        1
        >>> recognize("confirm", "yes").value
        True
    """
    stripped = (text or "").strip()
    if not stripped:
        return _UNRECOGNIZED

    kind = prompt_type or "text"
    if kind == "number":
        return _recognize_number(stripped)
    if kind == "confirm":
        return _recognize_confirm(stripped)
    if kind == "choice":
        return _recognize_choice(stripped, options)
    if kind in ("time", "date"):
        return _recognize_moment(stripped, kind)
    return Recognition(True, stripped)
