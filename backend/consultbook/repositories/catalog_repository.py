# backend/consultbook/repositories/catalog_repository.py
"""
Repositories for catalog reference data: currencies, session durations,
package definitions and package prices.
"""

from typing import List, Optional

from sqlalchemy.orm import Session

from ..core.enums import PricingMode
from ..models.catalog import Currency, PackageDefinition, PackagePrice, SessionDuration
from ..models.schedule import ScheduleSlot
from ..models.user_package import UserPackage
from .base_repository import BaseRepository


class CurrencyRepository(BaseRepository[Currency]):
    def __init__(self, db: Session):
        super().__init__(db, Currency)

    def get_by_code(self, code: str) -> Optional[Currency]:
        return self.find_one_by(code=code)

    def get_default(self) -> Optional[Currency]:
        return self.find_one_by(is_default=True)

    def list_all(self) -> List[Currency]:
        return self._execute_query(self._build_query().order_by(Currency.code))

    def clear_default(self) -> None:
        """Demote whichever currency is currently the default."""
        with self._db_errors("demote"):
            for currency in self.find_by(is_default=True):
                currency.is_default = False
            self.db.flush()


class SessionDurationRepository(BaseRepository[SessionDuration]):
    def __init__(self, db: Session):
        super().__init__(db, SessionDuration)

    def list_all(self, active_only: bool = False) -> List[SessionDuration]:
        query = self._build_query()
        if active_only:
            query = query.filter(SessionDuration.is_active.is_(True))
        return self._execute_query(query.order_by(SessionDuration.duration_minutes))

    def is_referenced(self, duration_id: str) -> bool:
        """True once a package definition or a slot points at the duration."""
        with self._db_errors("check references of"):
            in_packages = (
                self.db.query(PackageDefinition.id)
                .filter(PackageDefinition.session_duration_id == duration_id)
                .first()
            )
            if in_packages is not None:
                return True
            in_slots = (
                self.db.query(ScheduleSlot.id)
                .filter(ScheduleSlot.session_duration_id == duration_id)
                .first()
            )
            return in_slots is not None


class PackageDefinitionRepository(BaseRepository[PackageDefinition]):
    def __init__(self, db: Session):
        super().__init__(db, PackageDefinition)

    def list_all(self, active_only: bool = False) -> List[PackageDefinition]:
        query = self._build_query()
        if active_only:
            query = query.filter(PackageDefinition.is_active.is_(True))
        return self._execute_query(query.order_by(PackageDefinition.name))


class PackagePriceRepository(BaseRepository[PackagePrice]):
    def __init__(self, db: Session):
        super().__init__(db, PackagePrice)

    def get_for_pair(self, package_definition_id: str, currency_id: str) -> Optional[PackagePrice]:
        return self.find_one_by(package_definition_id=package_definition_id, currency_id=currency_id)

    def list_for_definition(self, package_definition_id: str) -> List[PackagePrice]:
        return self._execute_query(
            self._build_query().filter(PackagePrice.package_definition_id == package_definition_id)
        )

    def list_calculated(
        self,
        *,
        package_definition_id: Optional[str] = None,
        currency_id: Optional[str] = None,
    ) -> List[PackagePrice]:
        query = self._build_query().filter(PackagePrice.pricing_mode == PricingMode.CALCULATED)
        if package_definition_id is not None:
            query = query.filter(PackagePrice.package_definition_id == package_definition_id)
        if currency_id is not None:
            query = query.filter(PackagePrice.currency_id == currency_id)
        return self._execute_query(query)

    def is_in_use(self, price_id: str) -> bool:
        """True when any user package was purchased at this price."""
        with self._db_errors("check usage of"):
            return (
                self.db.query(UserPackage.id)
                .filter(UserPackage.package_price_id == price_id)
                .first()
                is not None
            )
