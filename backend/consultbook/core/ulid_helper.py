"""ULID generation helper utilities."""

from ulid import ULID


def generate_ulid() -> str:
    """Generate a new ULID string (sortable by creation time)."""
    return str(ULID())
