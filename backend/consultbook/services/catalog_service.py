# backend/consultbook/services/catalog_service.py
"""
Catalog Service for the booking engine.

Manages the reference data bookings are priced and timed against:
currencies, session durations, package definitions and package prices.

Pricing rules:
- Exactly one currency is the default. Promoting another one demotes the
  previous default in the same transaction.
- A calculated price is derived from the custom price of the same package
  definition in the default currency:
  ``base * target_rate / default_rate``, rounded half-up to 2 decimals.
- Changing a base price, an exchange rate or the default currency
  recalculates every affected calculated price.
- Switching the default currency rebases prices: the new default keeps its
  amount as a custom price and the old default becomes calculated. Every
  package with calculated prices must already be priced in the new default.
"""

from decimal import ROUND_HALF_UP, Decimal
import logging
import re
from typing import Iterable, List, Optional

from sqlalchemy.orm import Session

from ..core.enums import PackageType, PricingMode
from ..core.exceptions import (
    CatalogInUseException,
    InvalidCatalogEntryException,
    InvalidPricingException,
    NotFoundException,
)
from ..models.catalog import Currency, PackageDefinition, PackagePrice, SessionDuration
from ..repositories.catalog_repository import (
    CurrencyRepository,
    PackageDefinitionRepository,
    PackagePriceRepository,
    SessionDurationRepository,
)
from .base import BaseService

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")
_CURRENCY_CODE = re.compile(r"^[A-Z]{3}$")


def calculate_price(base_price: Decimal, target_rate: Decimal, default_rate: Decimal) -> Decimal:
    """Convert a default-currency price into another currency."""
    converted = Decimal(base_price) * Decimal(target_rate) / Decimal(default_rate)
    return converted.quantize(CENTS, rounding=ROUND_HALF_UP)


class CatalogService(BaseService):
    """Service layer for currencies, durations, package definitions and prices."""

    def __init__(self, db: Session):
        super().__init__(db)
        self.currency_repository = CurrencyRepository(db)
        self.duration_repository = SessionDurationRepository(db)
        self.definition_repository = PackageDefinitionRepository(db)
        self.price_repository = PackagePriceRepository(db)

    # Currencies

    @BaseService.measure_operation("create_currency")
    def create_currency(
        self,
        code: str,
        name: str,
        symbol: str,
        exchange_rate: Decimal = Decimal("1"),
        make_default: bool = False,
    ) -> Currency:
        normalized = (code or "").strip().upper()
        if not _CURRENCY_CODE.match(normalized):
            raise InvalidCatalogEntryException("Currency code must be three letters", code=code)
        self._validate_rate(exchange_rate)

        with self.transaction():
            if self.currency_repository.get_by_code(normalized) is not None:
                raise InvalidCatalogEntryException(
                    f"Currency {normalized} already exists", code=normalized
                )
            previous_default = self.currency_repository.get_default()
            is_first = previous_default is None
            if make_default and not is_first:
                self.currency_repository.clear_default()
            currency = self.currency_repository.create(
                code=normalized,
                name=name,
                symbol=symbol,
                exchange_rate=Decimal(exchange_rate),
                is_default=is_first or make_default,
            )
            if make_default and not is_first:
                self._rebase_prices(previous_default, currency)
                self._recalculate_prices()

        self.log_operation("create_currency", code=normalized, is_default=currency.is_default)
        return currency

    def list_currencies(self) -> List[Currency]:
        return self.currency_repository.list_all()

    def get_currency(self, currency_id: str) -> Currency:
        currency = self.currency_repository.get_by_id(currency_id)
        if currency is None:
            raise NotFoundException("Currency", currency_id)
        return currency

    @BaseService.measure_operation("set_default_currency")
    def set_default_currency(self, currency_id: str) -> Currency:
        with self.transaction():
            currency = self.get_currency(currency_id)
            if not currency.is_default:
                previous_default = self.currency_repository.get_default()
                self.currency_repository.clear_default()
                self.currency_repository.update(currency, is_default=True)
                self._rebase_prices(previous_default, currency)
                self._recalculate_prices()

        self.log_operation("set_default_currency", code=currency.code)
        return currency

    @BaseService.measure_operation("update_exchange_rate")
    def update_exchange_rate(self, currency_id: str, exchange_rate: Decimal) -> Currency:
        self._validate_rate(exchange_rate)
        with self.transaction():
            currency = self.get_currency(currency_id)
            self.currency_repository.update(currency, exchange_rate=Decimal(exchange_rate))
            if currency.is_default:
                self._recalculate_prices()
            else:
                self._recalculate_prices(currency_id=currency.id)

        self.log_operation("update_exchange_rate", code=currency.code, rate=str(exchange_rate))
        return currency

    # Session durations

    @BaseService.measure_operation("create_duration")
    def create_duration(
        self, name: str, duration_minutes: int, description: Optional[str] = None
    ) -> SessionDuration:
        self._validate_minutes(duration_minutes)
        with self.transaction():
            duration = self.duration_repository.create(
                name=name, duration_minutes=duration_minutes, description=description
            )
        return duration

    def list_durations(self, active_only: bool = False) -> List[SessionDuration]:
        return self.duration_repository.list_all(active_only=active_only)

    def get_duration(self, duration_id: str) -> SessionDuration:
        duration = self.duration_repository.get_by_id(duration_id)
        if duration is None:
            raise NotFoundException("SessionDuration", duration_id)
        return duration

    @BaseService.measure_operation("update_duration")
    def update_duration(
        self,
        duration_id: str,
        *,
        name: Optional[str] = None,
        duration_minutes: Optional[int] = None,
        description: Optional[str] = None,
        is_active: Optional[bool] = None,
    ) -> SessionDuration:
        """
        Update a session duration.

        ``duration_minutes`` is frozen once a package definition or slot
        refers to the duration.
        """
        with self.transaction():
            duration = self.get_duration(duration_id)
            changes = {}
            if duration_minutes is not None and duration_minutes != duration.duration_minutes:
                self._validate_minutes(duration_minutes)
                if self.duration_repository.is_referenced(duration_id):
                    raise CatalogInUseException(
                        "Session duration is referenced by packages or slots",
                        code="DurationInUse",
                        details={"session_duration_id": duration_id},
                    )
                changes["duration_minutes"] = duration_minutes
            if name is not None:
                changes["name"] = name
            if description is not None:
                changes["description"] = description
            if is_active is not None:
                changes["is_active"] = is_active
            self.duration_repository.update(duration, **changes)
        return duration

    # Package definitions

    @BaseService.measure_operation("create_package_definition")
    def create_package_definition(
        self,
        name: str,
        sessions_count: int,
        session_duration_id: str,
        package_type: PackageType = PackageType.INDIVIDUAL,
        max_group_size: Optional[int] = None,
        description: Optional[str] = None,
    ) -> PackageDefinition:
        if sessions_count <= 0:
            raise InvalidCatalogEntryException(
                "sessions_count must be positive", sessions_count=sessions_count
            )
        if package_type.allows_groups:
            if max_group_size is None or max_group_size <= 1:
                raise InvalidCatalogEntryException(
                    f"A {package_type.value} package needs max_group_size greater than 1",
                    max_group_size=max_group_size,
                )
        elif max_group_size is not None:
            raise InvalidCatalogEntryException(
                "An individual package cannot set max_group_size", max_group_size=max_group_size
            )

        with self.transaction():
            self.get_duration(session_duration_id)
            definition = self.definition_repository.create(
                name=name,
                description=description,
                sessions_count=sessions_count,
                session_duration_id=session_duration_id,
                package_type=package_type,
                max_group_size=max_group_size,
            )

        self.log_operation(
            "create_package_definition",
            package_definition_id=definition.id,
            package_type=package_type.value,
        )
        return definition

    def list_package_definitions(self, active_only: bool = False) -> List[PackageDefinition]:
        return self.definition_repository.list_all(active_only=active_only)

    def get_package_definition(self, definition_id: str) -> PackageDefinition:
        definition = self.definition_repository.get_by_id(definition_id)
        if definition is None:
            raise NotFoundException("PackageDefinition", definition_id)
        return definition

    # Package prices

    @BaseService.measure_operation("create_price")
    def create_price(
        self,
        package_definition_id: str,
        currency_id: str,
        pricing_mode: PricingMode = PricingMode.CUSTOM,
        price: Optional[Decimal] = None,
    ) -> PackagePrice:
        with self.transaction():
            self.get_package_definition(package_definition_id)
            currency = self.get_currency(currency_id)
            if self.price_repository.get_for_pair(package_definition_id, currency_id) is not None:
                raise InvalidPricingException(
                    f"Package already has a price in {currency.code}",
                    package_definition_id=package_definition_id,
                    currency=currency.code,
                )

            if pricing_mode == PricingMode.CUSTOM:
                amount = self._validate_amount(price)
            else:
                if currency.is_default:
                    raise InvalidPricingException(
                        "The default currency price must be custom", currency=currency.code
                    )
                amount = self._derive_price(package_definition_id, currency)

            package_price = self.price_repository.create(
                package_definition_id=package_definition_id,
                currency_id=currency_id,
                price=amount,
                pricing_mode=pricing_mode,
            )

        self.log_operation(
            "create_price",
            package_definition_id=package_definition_id,
            currency=currency.code,
            pricing_mode=pricing_mode.value,
            price=str(amount),
        )
        return package_price

    def list_prices(self, package_definition_id: str) -> List[PackagePrice]:
        self.get_package_definition(package_definition_id)
        return self.price_repository.list_for_definition(package_definition_id)

    def get_price(self, price_id: str) -> PackagePrice:
        package_price = self.price_repository.get_by_id(price_id)
        if package_price is None:
            raise NotFoundException("PackagePrice", price_id)
        return package_price

    @BaseService.measure_operation("update_price")
    def update_price(self, price_id: str, price: Decimal) -> PackagePrice:
        """Change a custom price; calculated prices of the definition follow a base change."""
        amount = self._validate_amount(price)
        with self.transaction():
            package_price = self.get_price(price_id)
            if package_price.pricing_mode == PricingMode.CALCULATED:
                raise InvalidPricingException(
                    "Calculated prices are derived from the default currency price",
                    package_price_id=price_id,
                )
            self.price_repository.update(package_price, price=amount)
            if package_price.currency.is_default:
                self._recalculate_prices(definition_ids=[package_price.package_definition_id])
        return package_price

    @BaseService.measure_operation("delete_price")
    def delete_price(self, price_id: str) -> None:
        with self.transaction():
            package_price = self.get_price(price_id)
            if self.price_repository.is_in_use(price_id):
                raise CatalogInUseException(
                    "Price has been purchased and cannot be deleted",
                    code="PriceInUse",
                    details={"package_price_id": price_id},
                )
            if package_price.currency.is_default and self.price_repository.list_calculated(
                package_definition_id=package_price.package_definition_id
            ):
                raise InvalidPricingException(
                    "Calculated prices depend on this price; delete them first",
                    package_price_id=price_id,
                )
            self.price_repository.delete(package_price)
        self.log_operation("delete_price", package_price_id=price_id)

    # Helpers

    def _derive_price(self, package_definition_id: str, currency: Currency) -> Decimal:
        default = self.currency_repository.get_default()
        if default is None:
            raise InvalidPricingException("No default currency is configured")
        base = self.price_repository.get_for_pair(package_definition_id, default.id)
        if base is None or base.pricing_mode != PricingMode.CUSTOM:
            raise InvalidPricingException(
                f"A custom {default.code} price is required before calculating other currencies",
                package_definition_id=package_definition_id,
            )
        amount = calculate_price(base.price, currency.exchange_rate, default.exchange_rate)
        if amount <= 0:
            raise InvalidPricingException(
                "Calculated price rounds to zero", currency=currency.code, base=str(base.price)
            )
        return amount

    def _rebase_prices(self, previous_default: Optional[Currency], new_default: Currency) -> None:
        """
        Move the price base of every calculated package to ``new_default``.

        The new default's price becomes custom at its current amount and the
        previous default's custom price becomes calculated, so the following
        recalculation derives it from the new base. A definition with
        calculated prices but no price in ``new_default`` cannot be rebased.
        """
        definition_ids = sorted(
            {row.package_definition_id for row in self.price_repository.list_calculated()}
        )
        for definition_id in definition_ids:
            base = self.price_repository.get_for_pair(definition_id, new_default.id)
            if base is None:
                raise InvalidPricingException(
                    f"Package has calculated prices but no {new_default.code} price to base them on",
                    package_definition_id=definition_id,
                    currency=new_default.code,
                )
            if base.pricing_mode == PricingMode.CALCULATED:
                self.price_repository.update(base, pricing_mode=PricingMode.CUSTOM)

            if previous_default is None:
                continue
            former = self.price_repository.get_for_pair(definition_id, previous_default.id)
            if former is not None and former.pricing_mode == PricingMode.CUSTOM:
                self.price_repository.update(former, pricing_mode=PricingMode.CALCULATED)

        if definition_ids:
            logger.info(
                "Rebased %d package definition(s) on %s", len(definition_ids), new_default.code
            )

    def _recalculate_prices(
        self,
        *,
        definition_ids: Optional[Iterable[str]] = None,
        currency_id: Optional[str] = None,
    ) -> int:
        """Re-derive calculated prices. Returns how many changed."""
        if definition_ids is None:
            rows = self.price_repository.list_calculated(currency_id=currency_id)
        else:
            rows = []
            for definition_id in definition_ids:
                rows.extend(self.price_repository.list_calculated(package_definition_id=definition_id))

        changed = 0
        for row in rows:
            try:
                amount = self._derive_price(row.package_definition_id, row.currency)
            except InvalidPricingException as exc:
                logger.warning(
                    "Calculated price %s left unchanged: %s",
                    row.id,
                    exc.message,
                    extra={"package_price_id": row.id},
                )
                continue
            if amount != row.price:
                self.price_repository.update(row, price=amount)
                changed += 1

        if changed:
            logger.info("Recalculated %d package price(s)", changed)
        return changed

    @staticmethod
    def _validate_rate(exchange_rate: Decimal) -> None:
        if exchange_rate is None or Decimal(exchange_rate) <= 0:
            raise InvalidCatalogEntryException(
                "exchange_rate must be positive", exchange_rate=str(exchange_rate)
            )

    @staticmethod
    def _validate_minutes(duration_minutes: int) -> None:
        if duration_minutes is None or duration_minutes <= 0:
            raise InvalidCatalogEntryException(
                "duration_minutes must be positive", duration_minutes=duration_minutes
            )

    @staticmethod
    def _validate_amount(price: Optional[Decimal]) -> Decimal:
        if price is None or Decimal(price) <= 0:
            raise InvalidPricingException("A custom price must be positive", price=str(price))
        return Decimal(price).quantize(CENTS, rounding=ROUND_HALF_UP)
