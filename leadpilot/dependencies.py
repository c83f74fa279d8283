"""FastAPI dependencies shared by the routers."""

from __future__ import annotations

import os
from typing import Annotated

from fastapi import Depends, Request
from slowapi import Limiter

from .container import Container

WEBHOOK_RATE_LIMIT = os.getenv("WEBHOOK_RATE_LIMIT", "120/minute")


def get_client_ip(request: Request) -> str:
    """Extract a best-effort client IP for rate limiting.

    Prefer ``X-Forwarded-For`` (first hop) if present, otherwise use the
    socket peer address.
    """
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


limiter = Limiter(key_func=get_client_ip)


def get_container(request: Request) -> Container:
    return request.app.state.container


ContainerDep = Annotated[Container, Depends(get_container)]

__all__ = ["ContainerDep", "WEBHOOK_RATE_LIMIT", "get_client_ip", "get_container", "limiter"]
