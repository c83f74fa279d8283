"""Service and HTTP access logging.

``init_logging`` sends the ``leadpilot`` logger tree to ``leadpilot.log``
and uvicorn's access logger to ``access.log``, both rotated at midnight.
Webhook bodies carry contact details, so access lines have credentials
redacted and phone numbers masked before they are written.

Environment variables: LOG_DIR, LOG_LEVEL, LOG_JSON, LOG_REQUEST_BODIES,
LOG_RETENTION_DAYS, LOG_ROTATE_UTC.
"""

from __future__ import annotations

import json
import logging
import os
import re
import time
from dataclasses import dataclass
from logging.handlers import TimedRotatingFileHandler
from typing import Any, cast
from uuid import uuid4

from fastapi import FastAPI, Request

LOGGER_NAME = "leadpilot"
ACCESS_LOGGER_NAME = "uvicorn.access"

SENSITIVE_FIELDS = {
    "authorization",
    "cookie",
    "set-cookie",
    "x-hub-signature-256",
    "api_key",
    "token",
    "access_token",
}

# Keys holding a contact address; only the last four digits are kept.
PHONE_FIELDS = {"phone", "remotejid", "participant", "to", "from", "recipient"}

_SKIP_PATHS = frozenset({"/api/health", "/api/metrics"})
_DIGIT = re.compile(r"\d")


def _flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() == "true"


@dataclass(frozen=True)
class LogOptions:
    directory: str
    level: int
    json: bool
    retention_days: int
    rotate_utc: bool

    @classmethod
    def from_env(cls) -> "LogOptions":
        level_name = os.getenv("LOG_LEVEL", "INFO").upper()
        return cls(
            directory=os.getenv("LOG_DIR", "logs"),
            level=getattr(logging, level_name, logging.INFO),
            json=_flag("LOG_JSON"),
            retention_days=int(os.getenv("LOG_RETENTION_DAYS", "7")),
            rotate_utc=_flag("LOG_ROTATE_UTC"),
        )


class JsonFormatter(logging.Formatter):
    """One JSON object per record, including pipeline context passed via ``extra``."""

    context_fields = (
        "tenant_id",
        "lead_id",
        "event",
        "action_type",
        "rule",
        "rule_id",
        "step_kind",
        "reason",
    )

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "level": record.levelname,
            "time": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(
            {
                field: str(getattr(record, field))
                for field in self.context_fields
                if getattr(record, field, None) is not None
            }
        )
        if record.exc_info:
            entry["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(entry)


def _formatter(options: LogOptions) -> logging.Formatter:
    if options.json:
        return JsonFormatter()
    return logging.Formatter("[%(asctime)s] %(levelname)s in %(name)s: %(message)s")


def _rotating_handler(options: LogOptions, filename: str) -> TimedRotatingFileHandler:
    handler = TimedRotatingFileHandler(
        os.path.join(options.directory, filename),
        when="midnight",
        backupCount=options.retention_days,
        utc=options.rotate_utc,
    )
    handler.setFormatter(_formatter(options))
    return handler


def mask_phone(value: str) -> str:
    """Replace every digit of ``value`` but the last four with ``*``."""

    hidden = len(_DIGIT.findall(value)) - 4
    if hidden <= 0:
        return value
    masked = []
    for char in value:
        if char.isdigit() and hidden > 0:
            masked.append("*")
            hidden -= 1
        else:
            masked.append(char)
    return "".join(masked)


def _scrub(data: object) -> object:
    if isinstance(data, list):
        return [_scrub(item) for item in data]
    if not isinstance(data, dict):
        return data
    cleaned: dict[Any, object] = {}
    for key, value in data.items():
        name = str(key).lower()
        if name in SENSITIVE_FIELDS:
            cleaned[key] = "***"
        elif name in PHONE_FIELDS and isinstance(value, str):
            cleaned[key] = mask_phone(value)
        else:
            cleaned[key] = _scrub(value)
    return cleaned


async def _capture_body(request: Request) -> object | None:
    """Read the body for logging and replay it to the route handler."""

    raw = await request.body()

    async def replay() -> dict:  # pragma: no cover - internal
        return {"type": "http.request", "body": raw, "more_body": False}

    request._receive = replay  # type: ignore[attr-defined]
    if not raw:
        return None
    try:
        return _scrub(json.loads(raw))
    except ValueError:
        return raw.decode("utf-8", errors="replace")


def _client_ip(request: Request) -> str | None:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded
    return request.client.host if request.client else None


def _install_access_logging(app: FastAPI) -> None:
    """Log one JSON line per request and echo ``X-Request-Id``.

    Probe endpoints are not logged.
    """

    log_bodies = _flag("LOG_REQUEST_BODIES")
    access_logger = logging.getLogger(ACCESS_LOGGER_NAME)

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        if request.url.path in _SKIP_PATHS:
            return await call_next(request)

        request_id = request.headers.get("X-Request-Id") or uuid4().hex
        request.state.request_id = request_id
        started = time.perf_counter()
        body = await _capture_body(request) if log_bodies else None

        response = await call_next(request)

        line: dict[str, Any] = {
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
            "status": response.status_code,
            "latency_ms": round((time.perf_counter() - started) * 1000, 2),
            "client_ip": _client_ip(request),
            "headers": _scrub(dict(request.headers)),
        }
        if body is not None:
            line["body"] = body
        response.headers["X-Request-Id"] = request_id
        access_logger.info(json.dumps(line, default=str))
        return response


def init_logging(app: FastAPI | None = None) -> None:
    """Attach file handlers to the service and access loggers.

    The service logger keeps handlers it already has; the access logger's
    handlers are replaced so uvicorn's console handler does not double-log.
    """

    options = LogOptions.from_env()
    os.makedirs(options.directory, exist_ok=True)

    service_logger = logging.getLogger(LOGGER_NAME)
    if not service_logger.handlers:
        service_logger.addHandler(_rotating_handler(options, "leadpilot.log"))
    service_logger.setLevel(options.level)

    access_logger = logging.getLogger(ACCESS_LOGGER_NAME)
    access_logger.handlers.clear()
    access_logger.addHandler(_rotating_handler(options, "access.log"))
    access_logger.setLevel(options.level)

    if app is not None:
        cast(Any, app).logger = service_logger
        _install_access_logging(app)


__all__ = [
    "JsonFormatter",
    "LOGGER_NAME",
    "LogOptions",
    "PHONE_FIELDS",
    "SENSITIVE_FIELDS",
    "init_logging",
    "mask_phone",
]
