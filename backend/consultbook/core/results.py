# backend/consultbook/core/results.py
"""
Typed results for operations whose failures are expected business outcomes.

Slot-full, exhausted-package and invalid-transition conditions are part of
normal booking traffic, so the allocator and lifecycle manager hand them back
as values the caller has to inspect instead of raising them through the stack.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

from .exceptions import DomainException

T = TypeVar("T")


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """Either a value or the domain error that prevented producing it."""

    value: Optional[T] = None
    error: Optional[DomainException] = None

    @classmethod
    def success(cls, value: T) -> "Outcome[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: DomainException) -> "Outcome[T]":
        return cls(error=error)

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def code(self) -> Optional[str]:
        return self.error.code if self.error is not None else None

    def unwrap(self) -> T:
        """Return the value or raise the carried error."""
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]
