# backend/consultbook/schemas/client.py
from typing import Optional

from pydantic import Field

from ..core.enums import ClientStatus
from ._strict_base import StrictRequestModel
from .base import StandardizedModel


class ClientCreate(StrictRequestModel):
    email: str = Field(..., min_length=3, max_length=255, pattern=r"^[^@\s]+@[^@\s]+$")
    name: Optional[str] = Field(None, max_length=200)


class ClientStatusUpdate(StrictRequestModel):
    status: ClientStatus


class ClientResponse(StandardizedModel):
    id: str
    email: str
    name: Optional[str] = None
    status: ClientStatus
