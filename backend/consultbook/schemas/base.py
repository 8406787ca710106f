"""
Base schemas with standardized field types for consistent API responses.
"""
from decimal import Decimal, InvalidOperation
from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic_core import core_schema


class StandardizedModel(BaseModel):
    """Response base: reads ORM objects, emits enum values."""

    model_config = ConfigDict(use_enum_values=True, populate_by_name=True, from_attributes=True)


class Money(Decimal):
    """Money field that always serializes as float"""

    @classmethod
    def __get_pydantic_core_schema__(cls, source_type: Any, handler: Any) -> core_schema.CoreSchema:
        def validate_money(value: Any) -> Decimal:
            if isinstance(value, bool):
                raise ValueError("Cannot convert bool to Money")
            if isinstance(value, (int, float)):
                return Decimal(str(value))
            if isinstance(value, str):
                try:
                    parsed = Decimal(value.strip())
                except InvalidOperation:
                    raise ValueError(f"Invalid amount: {value!r}")
                if not parsed.is_finite():
                    raise ValueError(f"Invalid amount: {value!r}")
                return parsed
            if isinstance(value, Decimal):
                return value
            raise ValueError(f"Cannot convert {type(value)} to Money")

        return core_schema.no_info_after_validator_function(
            validate_money,
            core_schema.union_schema(
                [
                    core_schema.int_schema(),
                    core_schema.float_schema(),
                    core_schema.str_schema(),
                    core_schema.is_instance_schema(Decimal),
                ]
            ),
            serialization=core_schema.plain_serializer_function_ser_schema(
                float,
                info_arg=False,
                return_schema=core_schema.float_schema(),
            ),
        )
