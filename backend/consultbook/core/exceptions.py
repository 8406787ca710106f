# backend/consultbook/core/exceptions.py
"""
Domain-specific exceptions for the booking engine.

These exceptions carry a stable machine-readable ``code`` alongside a human
message. Recoverable ones (validation, capacity, not-found) travel inside
``Outcome`` results; invariant violations are raised.
"""

from typing import Any, Dict, Optional

from fastapi import HTTPException, status

HTTP_422_UNPROCESSABLE: int = getattr(status, "HTTP_422_UNPROCESSABLE_CONTENT", 422)


class DomainException(Exception):
    """Base exception for all domain-specific errors."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=self.status_code,
            detail={
                "message": self.message,
                "code": self.code,
                "details": self.details,
            },
        )


class ValidationException(DomainException):
    """Raised when business validation fails."""

    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundException(DomainException):
    """Raised when a requested resource is not found."""

    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, resource: str, resource_id: Any) -> None:
        super().__init__(
            message=f"{resource} {resource_id} not found",
            code="NOT_FOUND",
            details={"resource": resource, "id": str(resource_id)},
        )


class ConflictException(DomainException):
    """Raised when there's a conflict with existing data."""

    status_code = status.HTTP_409_CONFLICT


class BusinessRuleException(DomainException):
    """Raised when a business rule is violated."""

    status_code = HTTP_422_UNPROCESSABLE


class ServiceException(DomainException):
    """Raised when a service operation fails."""

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={
                "message": self.message or "An error occurred processing your request",
                "code": self.code,
                "details": self.details if self.details else {},
            },
        )


class BusyException(DomainException):
    """Raised when a row lock could not be acquired in time. Safe to retry."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    def __init__(self, resource: str, attempts: int = 1) -> None:
        super().__init__(
            message=f"{resource} is busy, please retry",
            code="Busy",
            details={"resource": resource, "attempts": attempts},
        )

    def to_http_exception(self) -> HTTPException:
        exc = super().to_http_exception()
        exc.headers = {"Retry-After": "1"}
        return exc


# Recurrence / slot store


class InvalidRuleError(ValidationException):
    """Raised when a recurrence rule cannot be expanded."""

    def __init__(self, message: str, *, field: Optional[str] = None) -> None:
        super().__init__(
            message=message,
            code="InvalidRuleError",
            details={"field": field} if field else {},
        )


class SlotConflictException(ConflictException):
    """Raised when a candidate slot collides with an existing one and duplicates are not skipped."""

    def __init__(self, start_times: list[str]) -> None:
        super().__init__(
            message=f"{len(start_times)} slot(s) already exist at the requested times",
            code="SlotConflict",
            details={"start_times": start_times},
        )


class SlotInUseException(ConflictException):
    """Raised when deleting a slot that still carries bookings."""

    def __init__(self, slot_id: str, booked_count: int) -> None:
        super().__init__(
            message="Slot has bookings; cancel them before deleting it",
            code="SlotInUse",
            details={"slot_id": slot_id, "booked_count": booked_count},
        )


# Booking allocation


class SlotUnavailableException(ConflictException):
    def __init__(self, slot_id: str) -> None:
        super().__init__(
            message="This slot is not available for booking",
            code="SlotUnavailable",
            details={"slot_id": slot_id},
        )


class SlotFullException(ConflictException):
    def __init__(self, slot_id: str, requested: int, remaining: int) -> None:
        super().__init__(
            message=f"Slot has {remaining} seat(s) left, {requested} requested",
            code="SlotFull",
            details={"slot_id": slot_id, "requested": requested, "remaining": remaining},
        )


class PackageExhaustedException(BusinessRuleException):
    def __init__(self, user_package_id: str) -> None:
        super().__init__(
            message="This package has no remaining sessions",
            code="PackageExhausted",
            details={"user_package_id": user_package_id},
        )


class PackageInactiveException(BusinessRuleException):
    def __init__(self, user_package_id: str) -> None:
        super().__init__(
            message="This package has been deactivated",
            code="PackageInactive",
            details={"user_package_id": user_package_id},
        )


class PackageOwnershipException(BusinessRuleException):
    def __init__(self, user_package_id: str, client_id: str) -> None:
        super().__init__(
            message="This package belongs to another client",
            code="PackageOwnership",
            details={"user_package_id": user_package_id, "client_id": client_id},
        )


class ClientInactiveException(BusinessRuleException):
    def __init__(self, client_id: str) -> None:
        super().__init__(
            message="Client account is not active",
            code="ClientInactive",
            details={"client_id": client_id},
        )


class PackageTypeMismatchException(ValidationException):
    def __init__(self, package_type: str, booking_type: str) -> None:
        super().__init__(
            message=f"A {package_type} package cannot be used for a {booking_type} booking",
            code="PackageTypeMismatch",
            details={"package_type": package_type, "booking_type": booking_type},
        )


class GroupSizeExceededException(ValidationException):
    def __init__(self, group_size: int, max_group_size: int) -> None:
        super().__init__(
            message=f"Group size {group_size} exceeds the allowed maximum of {max_group_size}",
            code="GroupSizeExceeded",
            details={"group_size": group_size, "max_group_size": max_group_size},
        )


class DurationMismatchException(ValidationException):
    def __init__(self, slot_minutes: int, package_minutes: int) -> None:
        super().__init__(
            message=(
                f"Slot lasts {slot_minutes} minutes but the package is for "
                f"{package_minutes}-minute sessions"
            ),
            code="DurationMismatch",
            details={"slot_minutes": slot_minutes, "package_minutes": package_minutes},
        )


class InvalidTransitionException(BusinessRuleException):
    def __init__(self, booking_id: str, current: str, target: str) -> None:
        super().__init__(
            message=f"Booking cannot move from {current} to {target}",
            code="InvalidTransition",
            details={"booking_id": booking_id, "from": current, "to": target},
        )


# Catalog


class InvalidCatalogEntryException(ValidationException):
    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message=message, code="InvalidCatalogEntry", details=details)


class InvalidPricingException(ValidationException):
    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message=message, code="InvalidPricing", details=details)


class CatalogInUseException(ConflictException):
    """Raised when a referenced catalog row would be changed or removed."""


# Invariant violations (programming / data corruption errors)


class LedgerInvariantViolation(ServiceException):
    """
    Raised when a ledger write would break
    ``sessions_remaining + sessions_used == sessions_count`` or push a counter
    below zero. The allocator must make this unreachable, so it is never
    returned to callers as an expected outcome.
    """

    def __init__(self, user_package_id: str, message: str, **details: Any) -> None:
        super().__init__(
            message=message,
            code="LEDGER_INVARIANT_VIOLATION",
            details={"user_package_id": user_package_id, **details},
        )


class CapacityInvariantViolation(ServiceException):
    """Raised when a slot's booked_count would leave ``0..capacity``."""

    def __init__(self, slot_id: str, message: str, **details: Any) -> None:
        super().__init__(
            message=message,
            code="CAPACITY_INVARIANT_VIOLATION",
            details={"slot_id": slot_id, **details},
        )


class RepositoryException(Exception):
    """
    Exception raised for repository layer errors.

    This exception is used when data access operations fail,
    such as database connection issues, query failures, or
    constraint violations.
    """
