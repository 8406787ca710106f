# backend/consultbook/routes/v1/__init__.py
"""
API v1 Routes

Versioned API endpoints under /api/v1.
"""

from . import bookings, catalog, clients, packages, slots

__all__ = ["bookings", "catalog", "clients", "packages", "slots"]
