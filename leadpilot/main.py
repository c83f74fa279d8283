"""FastAPI application wiring for the WhatsApp lead automation service.

- Configures logging, Prometheus metrics and rate limiting.
- Builds the service container (SQL-backed when ``DATABASE_URL`` is set)
  and starts the scheduled-step worker for the lifetime of the app.
- Exposes the inbound webhook, conversation/escalation routes and rule
  management routes.
"""

import logging
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI
from prometheus_fastapi_instrumentator import Instrumentator
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from .__version__ import __build_date__, __commit_sha__, __version__
from .app_logging import init_logging
from .container import Container, build_container
from .dependencies import limiter
from .routers import automation, conversations, webhooks

load_dotenv()

logger = logging.getLogger(__name__)


def create_app(container: Container | None = None, *, start_worker: bool = True) -> FastAPI:
    """Create the application around ``container`` (built from env if omitted)."""

    container = container or build_container()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if start_worker:
            container.start()
            logger.info("Scheduled step worker started")
        try:
            yield
        finally:
            if start_worker:
                container.stop()

    app = FastAPI(title="LeadPilot", version=__version__, lifespan=lifespan)
    init_logging(app)
    app.state.container = container
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_middleware(SlowAPIMiddleware)
    app.include_router(webhooks.router)
    app.include_router(conversations.router)
    app.include_router(automation.router)

    @app.get("/api/health")
    async def health():
        """Liveness/readiness probe with a minimal JSON body."""
        return {"status": "ok", "scheduler_running": container.worker.running}

    @app.get("/api/version")
    async def version():
        """Return version information for the application."""
        return {
            "version": __version__,
            "build_date": __build_date__,
            "commit_sha": __commit_sha__,
        }

    # Expose Prometheus metrics
    Instrumentator().instrument(app).expose(
        app, include_in_schema=False, endpoint="/api/metrics"
    )
    return app


app = create_app()
