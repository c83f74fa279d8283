"""Typed outcome of a single automation step or action."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    TRANSIENT = "transient"
    MISSING_DATA = "missing_data"
    UNKNOWN_ACTION = "unknown_action"
    PERSISTENCE = "persistence"
    SKIPPED_CONDITION = "skipped_condition"


@dataclass(frozen=True)
class ActionResult:
    """Outcome returned by every action handler.

    ``ok`` results may carry ``data`` (for example values that enrich the
    event payload for later actions); failures carry an :class:`ErrorKind`
    and a human-readable ``detail``.
    """

    ok: bool
    error: ErrorKind | None = None
    detail: str | None = None
    data: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def success(cls, detail: str | None = None, **data: Any) -> "ActionResult":
        return cls(ok=True, detail=detail, data=data)

    @classmethod
    def failure(cls, error: ErrorKind, detail: str) -> "ActionResult":
        return cls(ok=False, error=error, detail=detail)

    @property
    def skipped(self) -> bool:
        return self.error in {ErrorKind.SKIPPED_CONDITION, ErrorKind.UNKNOWN_ACTION}

    def as_dict(self) -> dict[str, Any]:
        return {
            "ok": self.ok,
            "error": self.error.value if self.error else None,
            "detail": self.detail,
        }


__all__ = ["ActionResult", "ErrorKind"]
