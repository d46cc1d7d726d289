"""Shared utilities for pandas conversion operations."""

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

import pandas as pd  # type: ignore


def decimal_to_float(value: Decimal) -> float:
    """Convert Decimal to float for pandas compatibility."""
    return float(value)


def float_to_decimal(value: float) -> Decimal:
    """Convert float to Decimal, avoiding binary representation noise.

    Args:
        value: Float value to convert

    Returns:
        Decimal representation of the float

    Raises:
        TypeError: If value is not numeric

    Example:
        >>> float_to_decimal(19.99)
        Decimal('19.99')
    """
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise TypeError(f"Expected numeric type, got {type(value)}")
    return Decimal(str(value))


def to_optional_datetime(value: Any) -> Optional[datetime]:
    """Convert a DataFrame cell to a datetime, mapping NaT/None/NaN to None."""
    if value is None or pd.isna(value):
        return None
    return pd.Timestamp(value).to_pydatetime()
