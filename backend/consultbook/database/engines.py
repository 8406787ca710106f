"""Database engine factory for the booking store."""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.pool import QueuePool, StaticPool

from ..core.config import settings

logger = logging.getLogger(__name__)


def _add_sqlite_events(engine: Engine) -> None:
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection: Any, _connection_record: Any) -> None:
        # Let SQLAlchemy emit BEGIN itself so the "begin" hook below controls it
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn: Any) -> None:
        # Take the write lock up front: SQLite has no row locks, so this is
        # what serializes concurrent slot/package updates.
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def _add_pool_events(engine: Engine, pool_name: str) -> None:
    @event.listens_for(engine, "connect")
    def _on_connect(_dbapi_connection: Any, _connection_record: Any) -> None:
        logger.info("[%s] Database connection established", pool_name)

    @event.listens_for(engine, "checkout")
    def _on_checkout(
        _dbapi_connection: Any, _connection_record: Any, _connection_proxy: Any
    ) -> None:
        logger.debug("[%s] Connection checked out from pool", pool_name)

    @event.listens_for(engine, "invalidate")
    def _on_invalidate(_dbapi_connection: Any, _connection_record: Any, exception: Any) -> None:
        logger.warning(
            "[%s] Connection invalidated",
            pool_name,
            extra={
                "event": "db_connection_invalidated",
                "exception": str(exception) if exception else "unknown",
            },
        )


def create_engine_for_url(db_url: str, *, pool_name: str = "API") -> Engine:
    """
    Build an engine configured for the booking critical section.

    SQLite (development and tests) gets a busy timeout and immediate
    transactions; PostgreSQL gets a bounded pool and a statement timeout.
    Row-level lock timeouts are applied per transaction by the repositories.
    """
    if db_url.startswith("sqlite"):
        connect_args = {
            "check_same_thread": False,
            "timeout": settings.sqlite_busy_timeout_s,
        }
        if ":memory:" in db_url or db_url.rstrip("/") in ("sqlite:", "sqlite+pysqlite:"):
            engine = create_engine(
                db_url, connect_args=connect_args, poolclass=StaticPool, future=True
            )
        else:
            engine = create_engine(db_url, connect_args=connect_args, future=True)
        _add_sqlite_events(engine)
        return engine

    engine = create_engine(
        db_url,
        poolclass=QueuePool,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_timeout=settings.db_pool_timeout,
        pool_recycle=settings.db_pool_recycle,
        pool_pre_ping=True,
        pool_use_lifo=True,
        future=True,
        connect_args={
            "connect_timeout": 5,
            "options": f"-c statement_timeout={settings.db_statement_timeout_ms}",
            "application_name": "consultbook",
        },
    )
    _add_pool_events(engine, pool_name)
    return engine


_api_engine: Engine | None = None


def get_api_engine() -> Engine:
    global _api_engine
    if _api_engine is None:
        _api_engine = create_engine_for_url(settings.resolved_database_url)
    return _api_engine


__all__ = ["create_engine_for_url", "get_api_engine"]
