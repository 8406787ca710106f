# backend/consultbook/services/client_registry.py
"""
Client registry.

Client profiles live outside the booking engine; the allocator only asks
whether a client exists and may book. ``ClientRegistry`` is that seam, and
``ClientRegistryService`` is the database-backed implementation used by the
application.
"""

from dataclasses import dataclass
import logging
from typing import Optional, Protocol

from sqlalchemy.orm import Session

from ..core.enums import ClientStatus
from ..core.exceptions import InvalidCatalogEntryException, NotFoundException
from ..models.client import Client
from ..repositories.client_repository import ClientRepository
from .base import BaseService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClientRecord:
    id: str
    email: str
    status: ClientStatus

    @property
    def is_active(self) -> bool:
        return self.status == ClientStatus.ACTIVE


class ClientRegistry(Protocol):
    def get_client(self, client_id: str) -> Optional[ClientRecord]:
        ...


class ClientRegistryService(BaseService):
    def __init__(self, db: Session, repository: Optional[ClientRepository] = None):
        super().__init__(db)
        self.repository = repository or ClientRepository(db)

    def get_client(self, client_id: str) -> Optional[ClientRecord]:
        client = self.repository.get_by_id(client_id)
        if client is None:
            return None
        return ClientRecord(id=client.id, email=client.email, status=ClientStatus(client.status))

    def get(self, client_id: str) -> Client:
        client = self.repository.get_by_id(client_id)
        if client is None:
            raise NotFoundException("Client", client_id)
        return client

    @BaseService.measure_operation("register_client")
    def register(self, email: str, name: Optional[str] = None) -> Client:
        normalized = email.strip().lower()
        with self.transaction():
            if self.repository.get_by_email(normalized) is not None:
                raise InvalidCatalogEntryException("A client with this email already exists", email=normalized)
            client = self.repository.create(email=normalized, name=name, status=ClientStatus.ACTIVE)
        self.log_operation("register_client", client_id=client.id)
        return client

    @BaseService.measure_operation("set_client_status")
    def set_status(self, client_id: str, status: ClientStatus) -> Client:
        with self.transaction():
            client = self.repository.get_by_id(client_id)
            if client is None:
                raise NotFoundException("Client", client_id)
            self.repository.update(client, status=status)
        logger.info("Client %s is now %s", client_id, status.value)
        return client
