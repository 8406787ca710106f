# backend/consultbook/api/dependencies/actor.py
from typing import Optional

from fastapi import Header


def get_actor_id(
    x_actor_id: Optional[str] = Header(None, alias="X-Actor-Id", max_length=64),
) -> Optional[str]:
    """Identity recorded in the booking status history for this request."""
    if x_actor_id is None:
        return None
    return x_actor_id.strip() or None
