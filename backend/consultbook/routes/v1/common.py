# backend/consultbook/routes/v1/common.py
"""Helpers shared by the v1 routers."""

from typing import NoReturn, TypeVar

from fastapi import HTTPException, status

from ...core.exceptions import DomainException
from ...core.results import Outcome

T = TypeVar("T")

ULID_PATH_PATTERN = r"^[0-9A-HJKMNP-TV-Z]{26}$"


def handle_domain_exception(exc: DomainException) -> NoReturn:
    """Convert domain exceptions to HTTP exceptions."""
    if hasattr(exc, "to_http_exception"):
        raise exc.to_http_exception()
    raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


def unwrap_outcome(outcome: Outcome[T]) -> T:
    """Return the value of a successful outcome, or raise its error as an HTTP error."""
    if outcome.error is not None:
        handle_domain_exception(outcome.error)
    return outcome.value  # type: ignore[return-value]
