# backend/consultbook/repositories/user_package_repository.py
"""
User package repository.

The session counters move in lockstep (one down, the other up) in a single
guarded UPDATE, which keeps their sum constant by construction.
"""

from typing import List, Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from ..models.user_package import UserPackage
from .base_repository import BaseRepository


class UserPackageRepository(BaseRepository[UserPackage]):
    def __init__(self, db: Session):
        super().__init__(db, UserPackage)

    def get_by_payment_reference(self, payment_reference: str) -> Optional[UserPackage]:
        return self.find_one_by(payment_reference=payment_reference)

    def list_for_client(self, client_id: str, active_only: bool = False) -> List[UserPackage]:
        query = self._build_query().filter(UserPackage.client_id == client_id)
        if active_only:
            query = query.filter(UserPackage.is_active.is_(True))
        return self._execute_query(query.order_by(UserPackage.purchased_at.desc(), UserPackage.id))

    def consume_session(self, user_package_id: str) -> bool:
        """Move one session from remaining to used if the package is active and not empty."""
        with self._db_errors("consume a session of"):
            result = self.db.execute(
                update(UserPackage)
                .where(
                    UserPackage.id == user_package_id,
                    UserPackage.is_active.is_(True),
                    UserPackage.sessions_remaining >= 1,
                )
                .values(
                    sessions_remaining=UserPackage.sessions_remaining - 1,
                    sessions_used=UserPackage.sessions_used + 1,
                )
                .execution_options(synchronize_session=False)
            )
        return result.rowcount == 1

    def restore_session(self, user_package_id: str, sessions_count: int) -> bool:
        """Move one session back from used to remaining, never above ``sessions_count``."""
        with self._db_errors("restore a session of"):
            result = self.db.execute(
                update(UserPackage)
                .where(
                    UserPackage.id == user_package_id,
                    UserPackage.sessions_used >= 1,
                    UserPackage.sessions_remaining + 1 <= sessions_count,
                )
                .values(
                    sessions_remaining=UserPackage.sessions_remaining + 1,
                    sessions_used=UserPackage.sessions_used - 1,
                )
                .execution_options(synchronize_session=False)
            )
        return result.rowcount == 1

    def reload(self, user_package_id: str) -> Optional[UserPackage]:
        with self._db_errors("reload"):
            return (
                self.db.query(UserPackage)
                .filter(UserPackage.id == user_package_id)
                .populate_existing()
                .first()
            )
