# backend/consultbook/services/base.py
"""
Base service for the booking engine.

Services own the transaction boundary: repositories only flush, and a
service commits or rolls back the whole unit of work. Lock contention
surfacing from the database is translated to ``BusyException`` here so the
retry helper can tell it apart from real failures.
"""

from contextlib import contextmanager
from functools import wraps
import logging
import time
from typing import Any, Callable, Iterator, TypeVar, cast

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.exceptions import BusyException, ServiceException
from ..database.session_utils import is_lock_contention_error, set_local_lock_timeout
from ..monitoring.prometheus_metrics import prometheus_metrics

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


class BaseService:
    """
    Base class for all service layer components.

    Provides common patterns for:
    - Transaction handling
    - Logging
    - Performance monitoring
    """

    def __init__(self, db: Session):
        self.db = db
        self.logger = logging.getLogger(self.__class__.__name__)

    @contextmanager
    def transaction(self, *, lock_timeout: bool = False) -> Iterator[Session]:
        """
        Context manager for database transactions.

        Usage:
            with self.transaction(lock_timeout=True):
                slot = self.slot_repository.get_for_update(slot_id)
                # commit is handled automatically

        Args:
            lock_timeout: Bound row-lock waits with ``LOCK_TIMEOUT_MS`` (PostgreSQL)
        """
        try:
            if lock_timeout:
                set_local_lock_timeout(self.db, settings.lock_timeout_ms)
            yield self.db
            self.db.commit()
            self.logger.debug("Transaction committed successfully")
        except SQLAlchemyError as e:
            self.db.rollback()
            if is_lock_contention_error(e):
                self.logger.info("Transaction hit lock contention: %s", e)
                raise BusyException(self.__class__.__name__) from e
            self.logger.error(f"Transaction failed: {str(e)}")
            raise ServiceException(f"Database operation failed: {str(e)}") from e
        except Exception:
            self.db.rollback()
            raise

    @staticmethod
    def measure_operation(operation_name: str) -> Callable[[F], F]:
        """
        Decorator to measure operation performance.

        Usage:
            @BaseService.measure_operation("create_booking")
            def create_booking(self, ...):
                ...

        Args:
            operation_name: Name of the operation for metrics
        """

        def decorator(func: F) -> F:
            @wraps(func)
            def wrapper(self, *args, **kwargs):
                start_time = time.monotonic()
                error_type = None
                try:
                    return func(self, *args, **kwargs)
                except Exception as e:
                    error_type = type(e).__name__
                    raise
                finally:
                    elapsed = time.monotonic() - start_time

                    if elapsed > settings.slow_operation_threshold_s:
                        self.logger.warning(
                            f"Slow operation detected: {operation_name} took {elapsed:.2f}s"
                        )

                    if settings.metrics_enabled:
                        prometheus_metrics.record_service_operation(
                            service=self.__class__.__name__,
                            operation=operation_name,
                            duration=elapsed,
                            status="error" if error_type else "success",
                            error_type=error_type,
                        )

            return cast(F, wrapper)

        return decorator

    def log_operation(self, operation: str, **context: Any) -> None:
        """
        Log an operation with context.

        Args:
            operation: Operation name
            **context: Additional context to log
        """
        self.logger.info(f"Operation: {operation}", extra={"operation": operation, **context})
