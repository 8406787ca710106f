# backend/consultbook/repositories/client_repository.py
from typing import Optional

from sqlalchemy.orm import Session

from ..models.client import Client
from .base_repository import BaseRepository


class ClientRepository(BaseRepository[Client]):
    def __init__(self, db: Session):
        super().__init__(db, Client)

    def get_by_email(self, email: str) -> Optional[Client]:
        return self.find_one_by(email=email)
