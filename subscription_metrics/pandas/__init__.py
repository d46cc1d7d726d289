"""Pandas DataFrame adapters for subscription metrics components."""

from .subscriptions import (
    subscriptions_to_dataframe,
    dataframe_to_subscriptions,
    growth_to_dataframe,
    calculate_subscription_growth_df,
)

__all__ = [
    "subscriptions_to_dataframe",
    "dataframe_to_subscriptions",
    "growth_to_dataframe",
    "calculate_subscription_growth_df",
]
