# backend/consultbook/models/client.py
"""
Minimal client record.

Client profiles are managed elsewhere; the engine only needs to know that a
client exists and whether it may book.
"""

from sqlalchemy import Column, DateTime, String
from sqlalchemy.sql import func

from ..core.enums import ClientStatus
from ..core.ulid_helper import generate_ulid
from ..database import Base
from .base_enum import create_safe_enum


class Client(Base):
    __tablename__ = "clients"

    id = Column(String(26), primary_key=True, default=generate_ulid)
    email = Column(String(255), nullable=False, unique=True)
    name = Column(String(200), nullable=True)
    status = Column(
        create_safe_enum(ClientStatus, "client_status_enum", native_enum=False),
        nullable=False,
        default=ClientStatus.ACTIVE,
    )
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self) -> str:
        return f"<Client {self.id}: {self.email} ({self.status})>"
