"""
Unit tests for the pure booking and pricing rules.
"""

from decimal import Decimal
from unittest.mock import Mock

import pytest

from consultbook.core.enums import BookingType, PackageType
from consultbook.core.exceptions import GroupSizeExceededException, PackageTypeMismatchException
from consultbook.services.booking_allocator import check_package_rules
from consultbook.services.catalog_service import calculate_price


def _definition(package_type: PackageType, max_group_size=None) -> Mock:
    definition = Mock()
    definition.package_type = package_type
    definition.max_group_size = max_group_size
    return definition


class TestCheckPackageRules:
    def test_individual_package_accepts_single_individual_booking(self):
        check_package_rules(_definition(PackageType.INDIVIDUAL), BookingType.INDIVIDUAL, 1)

    def test_individual_package_rejects_group_booking(self):
        with pytest.raises(PackageTypeMismatchException) as exc_info:
            check_package_rules(_definition(PackageType.INDIVIDUAL), BookingType.GROUP, 1)
        assert exc_info.value.code == "PackageTypeMismatch"

    def test_individual_package_rejects_more_than_one_seat(self):
        with pytest.raises(PackageTypeMismatchException):
            check_package_rules(_definition(PackageType.INDIVIDUAL), BookingType.INDIVIDUAL, 2)

    def test_group_package_rejects_individual_booking(self):
        with pytest.raises(PackageTypeMismatchException):
            check_package_rules(_definition(PackageType.GROUP, 4), BookingType.INDIVIDUAL, 1)

    def test_group_package_enforces_max_group_size(self):
        check_package_rules(_definition(PackageType.GROUP, 4), BookingType.GROUP, 4)

        with pytest.raises(GroupSizeExceededException) as exc_info:
            check_package_rules(_definition(PackageType.GROUP, 4), BookingType.GROUP, 5)
        assert exc_info.value.code == "GroupSizeExceeded"

    def test_mixed_package_accepts_both_types(self):
        definition = _definition(PackageType.MIXED, 3)

        check_package_rules(definition, BookingType.INDIVIDUAL, 1)
        check_package_rules(definition, BookingType.GROUP, 3)

    def test_mixed_package_limits(self):
        definition = _definition(PackageType.MIXED, 3)

        with pytest.raises(GroupSizeExceededException):
            check_package_rules(definition, BookingType.GROUP, 4)
        with pytest.raises(GroupSizeExceededException):
            check_package_rules(definition, BookingType.INDIVIDUAL, 2)


class TestCalculatePrice:
    def test_converts_through_rates(self):
        assert calculate_price(Decimal("100.00"), Decimal("0.92"), Decimal("1")) == Decimal("92.00")

    def test_rounds_half_up_to_cents(self):
        # 10 * 1.2345 = 12.345 -> 12.35
        assert calculate_price(Decimal("10"), Decimal("1.2345"), Decimal("1")) == Decimal("12.35")

    def test_uses_default_rate_as_denominator(self):
        assert calculate_price(Decimal("50"), Decimal("3"), Decimal("2")) == Decimal("75.00")
