# backend/consultbook/schemas/__init__.py
"""
Pydantic schemas for the booking engine API.

Request models forbid unknown fields; response models read ORM objects.
"""
