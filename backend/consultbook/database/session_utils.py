"""
Helpers for working with SQLAlchemy sessions in a dialect-agnostic way.
"""

from __future__ import annotations

from sqlalchemy import text
from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import Session

# PostgreSQL SQLSTATEs raised when a lock wait is cut short
_LOCK_NOT_AVAILABLE = "55P03"
_DEADLOCK_DETECTED = "40P01"
_SERIALIZATION_FAILURE = "40001"

_LOCK_MESSAGE_SNIPPETS = (
    "database is locked",
    "lock timeout",
    "canceling statement due to lock timeout",
    "deadlock detected",
    "could not obtain lock",
)


def get_dialect_name(session: Session, default: str = "sqlite") -> str:
    """
    Return SQLAlchemy dialect name without touching Session.bind directly.

    Falls back to ``default`` when the bound engine cannot be resolved.
    """
    try:
        bind = session.get_bind()
    except Exception:
        return default
    dialect = getattr(bind, "dialect", None)
    return getattr(dialect, "name", None) or default


def is_lock_contention_error(exc: BaseException) -> bool:
    """True when ``exc`` means another transaction held the rows we needed."""
    if not isinstance(exc, DBAPIError):
        return False
    orig = getattr(exc, "orig", None)
    pgcode = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if pgcode in (_LOCK_NOT_AVAILABLE, _DEADLOCK_DETECTED, _SERIALIZATION_FAILURE):
        return True
    message = str(exc).lower()
    return any(snippet in message for snippet in _LOCK_MESSAGE_SNIPPETS)


def set_local_lock_timeout(session: Session, timeout_ms: int) -> None:
    """Bound row-lock waits for the current transaction (PostgreSQL only)."""
    if get_dialect_name(session) != "postgresql":
        return
    session.execute(text(f"SET LOCAL lock_timeout = '{int(timeout_ms)}ms'"))
