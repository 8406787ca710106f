# backend/consultbook/models/base_enum.py
"""
Safe enum helper for SQLAlchemy.

SQLAlchemy's Enum type persists member NAMES ('MIXED') by default, while the
API, raw SQL check constraints and seed scripts all speak in VALUES ('mixed').
Columns built with ``create_safe_enum`` store the values.

Usage:
    package_type = Column(
        create_safe_enum(PackageType, "package_type_enum", native_enum=False),
        nullable=False,
    )
"""

from enum import Enum
from typing import Sequence, Type

from sqlalchemy import Enum as SAEnum


def create_safe_enum(
    enum_class: Type[Enum],
    name: str,
    *,
    native_enum: bool = True,
    validate_strings: bool = True,
) -> SAEnum:
    """
    Create a SQLAlchemy Enum that stores enum values (not names).

    Args:
        enum_class: The Python Enum class to use
        name: Database type name for PostgreSQL native enum
        native_enum: Whether to use a native enum type where the dialect has one
        validate_strings: Reject unknown string values on assignment
    """
    return SAEnum(
        enum_class,
        name=name,
        native_enum=native_enum,
        validate_strings=validate_strings,
        values_callable=_get_enum_values,
        length=20,
    )


def _get_enum_values(enum_class: Type[Enum]) -> Sequence[str]:
    return [member.value for member in enum_class]
