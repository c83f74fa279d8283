"""Engine, session factory and dialect helpers."""

from __future__ import annotations

import os

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session, sessionmaker

from . import Base

_PSYCOPG_PREFIX = "postgresql+psycopg://"


def _driver_url(url: str) -> str:
    # Bare postgres URLs would select psycopg2, which is not installed.
    for prefix in ("postgresql://", "postgres://"):
        if url.startswith(prefix):
            return _PSYCOPG_PREFIX + url[len(prefix) :]
    return url


def get_engine(database_url: str | None = None, **kwargs: object) -> Engine:
    """Create an engine for ``database_url`` (default: ``DATABASE_URL``).

    SQLite connections get foreign keys switched on so lead deletes cascade
    the same way they do on PostgreSQL.
    """

    url = database_url or os.getenv("DATABASE_URL")
    if not url:
        raise RuntimeError("DATABASE_URL is not configured.")

    engine = create_engine(_driver_url(url), **kwargs)

    if engine.dialect.name == "sqlite":

        @event.listens_for(engine, "connect")
        def _enable_foreign_keys(dbapi_connection, _connection_record):  # pragma: no cover - dialect hook
            dbapi_connection.execute("PRAGMA foreign_keys=ON")

    return engine


def session_factory_for(engine: Engine) -> sessionmaker[Session]:
    # Records are converted to pydantic after commit, so keep attributes loaded.
    return sessionmaker(bind=engine, expire_on_commit=False, future=True)


def get_sessionmaker(database_url: str | None = None, **kwargs: object) -> sessionmaker[Session]:
    return session_factory_for(get_engine(database_url=database_url, **kwargs))


def create_schema(engine: Engine) -> None:
    """Create all tables directly; production databases use the migrations."""

    Base.metadata.create_all(engine)


def dialect_insert(session: Session, table):
    """``INSERT`` construct with ``on_conflict_*`` support for the bound dialect."""

    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert(table)
    if dialect == "sqlite":
        return sqlite.insert(table)
    raise RuntimeError(f"Upserts are not supported on the {dialect} dialect")


__all__ = [
    "Base",
    "create_schema",
    "dialect_insert",
    "get_engine",
    "get_sessionmaker",
    "session_factory_for",
]
