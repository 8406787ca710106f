"""
Integration tests for the package ledger.
"""

from decimal import Decimal

import pytest
from sqlalchemy.orm import Session

from consultbook.core.enums import DeactivationReason, PaymentStatus
from consultbook.core.exceptions import (
    InvalidPricingException,
    LedgerInvariantViolation,
    NotFoundException,
    PackageExhaustedException,
)
from consultbook.services.package_ledger import PackageLedger, PaymentConfirmedEvent


@pytest.fixture
def ledger(db: Session) -> PackageLedger:
    return PackageLedger(db)


class TestPurchase:
    def test_purchase_snapshots_price_and_sessions(self, ledger, catalog, active_client):
        package = ledger.purchase(active_client.id, catalog.individual_price.id)

        assert package.sessions_remaining == 5
        assert package.sessions_used == 0
        assert package.is_active is True
        assert package.price_paid == Decimal("500.00")

    def test_payment_reference_is_idempotent(self, ledger, catalog, active_client):
        first = ledger.purchase(active_client.id, catalog.individual_price.id, "pay_123")
        second = ledger.purchase(active_client.id, catalog.individual_price.id, "pay_123")

        assert first.id == second.id
        assert len(ledger.list_for_client(active_client.id)) == 1

    def test_unknown_client(self, ledger, catalog):
        with pytest.raises(NotFoundException):
            ledger.purchase("01ARZ3NDEKTSV4RRFFQ69G5FAV", catalog.individual_price.id)

    def test_inactive_price_is_not_on_sale(self, ledger, catalog, active_client, db: Session):
        catalog.individual_price.is_active = False
        db.commit()

        with pytest.raises(InvalidPricingException):
            ledger.purchase(active_client.id, catalog.individual_price.id)


class TestPaymentEvents:
    def test_completed_payment_creates_package(self, ledger, catalog, active_client):
        event = PaymentConfirmedEvent(
            client_id=active_client.id,
            package_price_id=catalog.group_price.id,
            status=PaymentStatus.COMPLETED,
            payment_reference="pay_1",
        )

        package = ledger.handle_payment_confirmed(event)

        assert package is not None
        assert package.payment_reference == "pay_1"

    @pytest.mark.parametrize("status", [PaymentStatus.PENDING, PaymentStatus.FAILED])
    def test_other_statuses_are_ignored(self, ledger, catalog, active_client, status):
        event = PaymentConfirmedEvent(
            client_id=active_client.id,
            package_price_id=catalog.group_price.id,
            status=status,
        )

        assert ledger.handle_payment_confirmed(event) is None
        assert ledger.list_for_client(active_client.id) == []


class TestMovements:
    def test_reserve_until_exhausted_then_restore(self, ledger, catalog, active_client, db):
        package = ledger.purchase(active_client.id, catalog.individual_price.id)

        for _ in range(5):
            with ledger.transaction():
                package = ledger.reserve(ledger.repository.get_for_update(package.id))

        assert package.sessions_remaining == 0
        assert package.sessions_used == 5
        assert package.is_active is False
        assert package.deactivation_reason == DeactivationReason.EXHAUSTED

        with pytest.raises(PackageExhaustedException):
            with ledger.transaction():
                ledger.reserve(ledger.repository.get_for_update(package.id))

        with ledger.transaction():
            package = ledger.restore(ledger.repository.get_for_update(package.id))

        assert package.sessions_remaining == 1
        assert package.is_active is True
        assert package.deactivation_reason is None

    def test_restore_beyond_package_size_is_a_violation(self, ledger, catalog, active_client):
        package = ledger.purchase(active_client.id, catalog.individual_price.id)

        with pytest.raises(LedgerInvariantViolation):
            with ledger.transaction():
                ledger.restore(ledger.repository.get_for_update(package.id))

        assert ledger.get(package.id).sessions_remaining == 5

    def test_manual_deactivation_survives_restore(self, ledger, catalog, active_client):
        package = ledger.purchase(active_client.id, catalog.individual_price.id)
        with ledger.transaction():
            ledger.reserve(ledger.repository.get_for_update(package.id))

        ledger.deactivate(package.id)
        with ledger.transaction():
            package = ledger.restore(ledger.repository.get_for_update(package.id))

        assert package.sessions_remaining == 5
        assert package.is_active is False
        assert package.deactivation_reason == DeactivationReason.MANUAL

    def test_list_active_only(self, ledger, catalog, active_client):
        kept = ledger.purchase(active_client.id, catalog.individual_price.id)
        dropped = ledger.purchase(active_client.id, catalog.group_price.id)
        ledger.deactivate(dropped.id)

        assert [p.id for p in ledger.list_for_client(active_client.id, active_only=True)] == [kept.id]
