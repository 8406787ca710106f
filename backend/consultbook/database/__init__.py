"""
Database engine, session factory, and metadata shared across the application.
"""

from __future__ import annotations

import logging
import random
import time
from typing import Callable, Generator, TypeVar

from sqlalchemy.orm import DeclarativeMeta, Session, declarative_base, sessionmaker

from ..core.config import settings
from ..core.exceptions import BusyException
from ..monitoring.prometheus_metrics import prometheus_metrics
from .engines import get_api_engine

logger = logging.getLogger(__name__)

Base: DeclarativeMeta = declarative_base()

SessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False)


def init_session_factory() -> None:
    """Bind the session factory to the configured engine (idempotent)."""
    SessionLocal.configure(bind=get_api_engine())


def get_db() -> Generator[Session, None, None]:
    """Get database session with proper cleanup."""
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


T = TypeVar("T")


def _retry_delay(attempt: int, base_delay: float) -> float:
    base = base_delay * (2 ** (attempt - 1))
    return base + random.uniform(0, base_delay * attempt)


def with_busy_retry(
    op_name: str,
    func: Callable[[], T],
    *,
    max_attempts: int | None = None,
    base_delay: float | None = None,
) -> T:
    """
    Run ``func`` again when it fails because rows were locked by another transaction.

    ``func`` must open and close its own transaction so each attempt starts
    from a clean, rolled-back state. After ``max_attempts`` the last
    ``BusyException`` propagates.
    """
    attempts = max_attempts or settings.booking_max_retries
    delay_base = settings.booking_retry_base_delay_s if base_delay is None else base_delay

    attempt = 1
    while True:
        try:
            return func()
        except BusyException as exc:
            if attempt >= attempts:
                exc.details["attempts"] = attempt
                raise
            delay = _retry_delay(attempt, delay_base)
            logger.warning(
                "Lock contention detected, retrying",
                extra={
                    "event": "busy_retry",
                    "op": op_name,
                    "attempt": attempt,
                    "delay": delay,
                },
            )
            prometheus_metrics.inc_busy_retry(op_name)
            time.sleep(delay)
            attempt += 1


init_session_factory()


__all__ = [
    "Base",
    "SessionLocal",
    "get_db",
    "init_session_factory",
    "with_busy_retry",
]
