"""Built-in value parsers."""

import re
from datetime import date, datetime
from typing import TYPE_CHECKING, Any

from graphdialog.core.errors import ParseError
from graphdialog.core.types import PromptAnswer

if TYPE_CHECKING:
    from graphdialog.actions.context import HandlerContext
    from graphdialog.parsing.registry import ParserRegistry

_SLACK_MAILTO = re.compile(r"^<mailto:(.*)\|.*>$")
_SKYPE_MAILTO = re.compile(r'^<a\s+href="mailto:(.+)">.*$')


def _resolution(value: Any) -> datetime | date:
    if isinstance(value, PromptAnswer) and value.resolution is not None:
        return value.resolution
    if isinstance(value, (datetime, date)):
        return value
    raise ParseError(f"Value has no date/time resolution: {value!r}")


def parse_time(context: "HandlerContext", value: Any) -> Any:
    """Set the answer's entity to ``H:MM:SS``."""
    start = _resolution(value)
    if not isinstance(start, datetime):
        raise ParseError(f"Date value has no time component: {value!r}")
    entity = f"{start.hour}:{start.minute:02d}:{start.second:02d}"
    if isinstance(value, PromptAnswer):
        value.entity = entity
        return value
    return PromptAnswer(entity=entity, resolution=start)


def parse_date(context: "HandlerContext", value: Any) -> Any:
    """Set the answer's entity to ``YYYY-MM-DD``."""
    start = _resolution(value)
    entity = f"{start.year}-{start.month:02d}-{start.day:02d}"
    if isinstance(value, PromptAnswer):
        value.entity = entity
        return value
    return PromptAnswer(
        entity=entity,
        resolution=start if isinstance(start, datetime) else None,
    )


def parse_email(context: "HandlerContext", value: Any) -> Any:
    """Unwrap channel-specific mailto markup (Slack, Skype)."""
    if not isinstance(value, str):
        return value
    pattern = {"slack": _SLACK_MAILTO, "skype": _SKYPE_MAILTO}.get(context.source or "")
    if pattern is not None:
        match = pattern.match(value)
        if match:
            return match.group(1)
    return value


def parse_trim(context: "HandlerContext", value: Any) -> Any:
    if isinstance(value, str):
        return value.strip()
    return value


def register_builtin_parsers(registry: "ParserRegistry") -> None:
    registry.add("time", parse_time)
    registry.add("date", parse_date)
    registry.add("email", parse_email)
    registry.add("trim", parse_trim)
