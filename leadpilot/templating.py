"""``{{placeholder}}`` substitution for automated message bodies.

Templates are written by coaches in the admin UI, so they use camelCase
paths (``{{lead.firstName}}``) while our contexts are built from Python
records with snake_case keys. Lookups try the literal key first, then its
camelCase and snake_case spellings. Anything that cannot be resolved is left
in the output verbatim so a broken template is visible rather than silently
emptied.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Mapping
from datetime import datetime, timezone
from typing import Any

_TOKEN = re.compile(r"\{\{\s*([A-Za-z_][\w]*(?:\.[A-Za-z_][\w]*)*)\s*\}\}")
_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])([A-Z])")

_MISSING = object()


def _now() -> datetime:
    return datetime.now(timezone.utc)


BUILTINS: dict[str, Callable[[datetime], str]] = {
    "currentDate": lambda now: now.date().isoformat(),
    "currentTime": lambda now: now.time().replace(microsecond=0).isoformat(),
    "currentDateTime": lambda now: now.isoformat(),
    "timestamp": lambda now: str(int(now.timestamp())),
}


def to_camel_case(key: str) -> str:
    head, *rest = key.split("_")
    return head + "".join(part[:1].upper() + part[1:] for part in rest)


def to_snake_case(key: str) -> str:
    return _CAMEL_BOUNDARY.sub(r"_\1", key).lower()


def _lookup(container: Any, key: str) -> Any:
    for candidate in dict.fromkeys((key, to_camel_case(key), to_snake_case(key))):
        if isinstance(container, Mapping):
            if candidate in container:
                return container[candidate]
        elif hasattr(container, candidate):
            return getattr(container, candidate)
    return _MISSING


def resolve_path(context: Any, path: str) -> Any:
    """Walk ``path`` (dot separated) through ``context``.

    Returns ``None`` when any segment is missing or resolves to ``None``.
    """

    current = context
    for segment in path.split("."):
        if current is None:
            return None
        current = _lookup(current, segment)
        if current is _MISSING:
            return None
    return current


def _stringify(value: Any) -> str:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def render(template: Any, context: Mapping[str, Any] | None, *, now: datetime | None = None) -> Any:
    """Substitute ``{{path}}`` tokens in ``template`` from ``context``.

    Non-string templates are returned unchanged. Bare identifiers matching a
    built-in time variable (``currentDate``, ``currentTime``,
    ``currentDateTime``, ``timestamp``) are resolved from the clock before
    the context is consulted.
    """

    if not isinstance(template, str):
        return template
    context = context or {}
    moment = now or _now()

    def _replace(match: re.Match[str]) -> str:
        path = match.group(1)
        if "." not in path and path in BUILTINS:
            return BUILTINS[path](moment)
        value = resolve_path(context, path)
        if value is None:
            return match.group(0)
        return _stringify(value)

    return _TOKEN.sub(_replace, template)


__all__ = ["BUILTINS", "render", "resolve_path", "to_camel_case", "to_snake_case"]
