# backend/consultbook/services/package_ledger.py
"""
Package Ledger service.

Tracks how many prepaid sessions each purchased package has left. Packages
enter the ledger from payment confirmation events; sessions leave it through
``reserve`` (called by the booking allocator) and come back through
``restore`` (called by the lifecycle manager).

``reserve`` and ``restore`` never open a transaction of their own: they run
inside the caller's, after the caller has locked the package row.
"""

from dataclasses import dataclass
import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from ..core.enums import DeactivationReason, PaymentStatus
from ..core.exceptions import (
    InvalidPricingException,
    LedgerInvariantViolation,
    NotFoundException,
    PackageExhaustedException,
    PackageInactiveException,
    RepositoryException,
)
from ..database import with_busy_retry
from ..models.user_package import UserPackage
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.catalog_repository import PackagePriceRepository
from ..repositories.client_repository import ClientRepository
from ..repositories.user_package_repository import UserPackageRepository
from .base import BaseService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PaymentConfirmedEvent:
    client_id: str
    package_price_id: str
    status: PaymentStatus
    payment_reference: Optional[str] = None


class PackageLedger(BaseService):
    def __init__(self, db: Session):
        super().__init__(db)
        self.repository = UserPackageRepository(db)
        self.price_repository = PackagePriceRepository(db)
        self.client_repository = ClientRepository(db)

    # Purchases

    @BaseService.measure_operation("purchase")
    def purchase(
        self,
        client_id: str,
        package_price_id: str,
        payment_reference: Optional[str] = None,
    ) -> UserPackage:
        """
        Credit a client with a new package bought at ``package_price_id``.

        A repeated ``payment_reference`` returns the package created the first
        time instead of crediting the client twice.
        """

        def _purchase() -> UserPackage:
            with self.transaction():
                if payment_reference:
                    existing = self.repository.get_by_payment_reference(payment_reference)
                    if existing is not None:
                        logger.info(
                            "Payment %s already credited as package %s",
                            payment_reference,
                            existing.id,
                        )
                        return existing

                if self.client_repository.get_by_id(client_id) is None:
                    raise NotFoundException("Client", client_id)
                package_price = self.price_repository.get_by_id(package_price_id)
                if package_price is None:
                    raise NotFoundException("PackagePrice", package_price_id)
                definition = package_price.package_definition
                if not package_price.is_active or not definition.is_active:
                    raise InvalidPricingException(
                        "This package is not currently on sale", package_price_id=package_price_id
                    )

                user_package = self.repository.create(
                    client_id=client_id,
                    package_price_id=package_price_id,
                    price_paid=package_price.price,
                    sessions_remaining=int(definition.sessions_count),
                    sessions_used=0,
                    is_active=True,
                    payment_reference=payment_reference,
                )
            return user_package

        try:
            user_package = with_busy_retry("purchase", _purchase)
        except RepositoryException:
            # Lost a race with the same payment event
            if not payment_reference:
                raise
            with self.transaction():
                existing = self.repository.get_by_payment_reference(payment_reference)
            if existing is None:
                raise
            return existing

        prometheus_metrics.inc_ledger_movement("purchase", int(user_package.sessions_remaining))
        self.log_operation(
            "purchase",
            user_package_id=user_package.id,
            client_id=client_id,
            sessions=user_package.sessions_remaining,
        )
        return user_package

    def handle_payment_confirmed(self, event: PaymentConfirmedEvent) -> Optional[UserPackage]:
        """Purchase on completed payments; other statuses are logged and ignored."""
        if event.status != PaymentStatus.COMPLETED:
            logger.info(
                "Ignoring payment event with status %s",
                event.status.value,
                extra={
                    "client_id": event.client_id,
                    "payment_reference": event.payment_reference,
                },
            )
            return None
        return self.purchase(event.client_id, event.package_price_id, event.payment_reference)

    # Session movements (inside the caller's transaction)

    def reserve(self, user_package: UserPackage) -> UserPackage:
        """
        Take one session from a locked package.

        Deactivates the package with reason ``exhausted`` when it reaches zero.

        Raises:
            PackageExhaustedException / PackageInactiveException: the guarded
                update found nothing to take
        """
        if not self.repository.consume_session(user_package.id):
            current = self.repository.reload(user_package.id)
            if current is None:
                raise NotFoundException("UserPackage", user_package.id)
            if current.sessions_remaining < 1:
                raise PackageExhaustedException(current.id)
            raise PackageInactiveException(current.id)

        current = self._reload_checked(user_package.id, "reserve")
        if current.sessions_remaining == 0:
            self.repository.update(
                current, is_active=False, deactivation_reason=DeactivationReason.EXHAUSTED
            )
            logger.info("User package %s exhausted and deactivated", current.id)
        prometheus_metrics.inc_ledger_movement("reserve")
        return current

    def restore(self, user_package: UserPackage) -> UserPackage:
        """
        Give one session back to a locked package.

        Re-activates the package only if it was deactivated for exhaustion.

        Raises:
            LedgerInvariantViolation: restoring would exceed sessions_count or
                push sessions_used below zero
        """
        sessions_count = user_package.sessions_count
        if not self.repository.restore_session(user_package.id, sessions_count):
            current = self.repository.reload(user_package.id)
            self._violation(
                user_package.id,
                "Restoring a session would exceed the package size",
                sessions_remaining=getattr(current, "sessions_remaining", None),
                sessions_used=getattr(current, "sessions_used", None),
                sessions_count=sessions_count,
            )

        current = self._reload_checked(user_package.id, "restore")
        if not current.is_active and current.deactivation_reason == DeactivationReason.EXHAUSTED:
            self.repository.update(current, is_active=True, deactivation_reason=None)
            logger.info("User package %s re-activated after a session was restored", current.id)
        prometheus_metrics.inc_ledger_movement("restore")
        return current

    # Administration

    @BaseService.measure_operation("deactivate_package")
    def deactivate(self, user_package_id: str) -> UserPackage:
        """Withdraw a package by hand. It will not be re-activated by restores."""

        def _deactivate() -> UserPackage:
            with self.transaction(lock_timeout=True):
                user_package = self.repository.get_for_update(user_package_id)
                if user_package is None:
                    raise NotFoundException("UserPackage", user_package_id)
                self.repository.update(
                    user_package, is_active=False, deactivation_reason=DeactivationReason.MANUAL
                )
            return user_package

        user_package = with_busy_retry("deactivate_package", _deactivate)
        prometheus_metrics.inc_ledger_movement("deactivate")
        self.log_operation("deactivate_package", user_package_id=user_package_id)
        return user_package

    def get(self, user_package_id: str) -> UserPackage:
        user_package = self.repository.get_by_id(user_package_id)
        if user_package is None:
            raise NotFoundException("UserPackage", user_package_id)
        return user_package

    def list_for_client(self, client_id: str, active_only: bool = False) -> List[UserPackage]:
        return self.repository.list_for_client(client_id, active_only=active_only)

    # Helpers

    def _reload_checked(self, user_package_id: str, movement: str) -> UserPackage:
        current = self.repository.reload(user_package_id)
        if current is None:
            raise NotFoundException("UserPackage", user_package_id)
        remaining = int(current.sessions_remaining)
        used = int(current.sessions_used)
        expected = current.sessions_count
        if remaining < 0 or used < 0 or remaining + used != expected:
            self._violation(
                user_package_id,
                f"Ledger counters inconsistent after {movement}",
                sessions_remaining=remaining,
                sessions_used=used,
                sessions_count=expected,
            )
        return current

    def _violation(self, user_package_id: str, message: str, **details) -> None:
        logger.error(
            "Ledger invariant violated for %s: %s",
            user_package_id,
            message,
            extra={"user_package_id": user_package_id, **details},
        )
        raise LedgerInvariantViolation(user_package_id, message, **details)
