"""Conversions from engine values to JSON-safe tool output."""

from datetime import datetime
from decimal import Decimal

from pydantic import ConfigDict
from pydantic.alias_generators import to_camel

#: Shared model config for tool arguments: camelCase on the wire, snake_case in code.
REQUEST_CONFIG = ConfigDict(
    alias_generator=to_camel,
    populate_by_name=True,
    extra="ignore",
)


def money(value: Decimal) -> float:
    return float(value)


def iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None
