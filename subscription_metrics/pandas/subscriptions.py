"""Pandas DataFrame adapters for subscriptions and growth series."""

from datetime import datetime
from typing import List, Optional, Sequence

import pandas as pd  # type: ignore

from subscription_metrics.analyses.growth import (
    GrowthPeriod,
    TimeGranularity,
    calculate_subscription_growth,
)
from subscription_metrics.foundation.records import Subscription
from ._utils import decimal_to_float, float_to_decimal, to_optional_datetime

SUBSCRIPTION_COLUMNS = [
    "subscription_id",
    "external_id",
    "customer_id",
    "product_id",
    "status",
    "amount",
    "start_date",
    "end_date",
    "canceled_at",
    "currency",
]

_REQUIRED_COLUMNS = [
    "subscription_id",
    "customer_id",
    "product_id",
    "status",
    "amount",
    "start_date",
]

GROWTH_COLUMNS = [
    "period",
    "new_subscriptions",
    "canceled_subscriptions",
    "net_growth",
    "total_subscriptions",
]


def subscriptions_to_dataframe(subscriptions: Sequence[Subscription]) -> pd.DataFrame:
    """Convert subscriptions to a DataFrame, one row per subscription.

    Args:
        subscriptions: Sequence of Subscription records

    Returns:
        DataFrame with columns listed in ``SUBSCRIPTION_COLUMNS``; ``amount``
        is a float and optional dates are NaT when missing. Rows keep the
        input order.
    """
    if not subscriptions:
        return pd.DataFrame(columns=SUBSCRIPTION_COLUMNS)

    rows = [
        {
            "subscription_id": s.subscription_id,
            "external_id": s.external_id,
            "customer_id": s.customer_id,
            "product_id": s.product_id,
            "status": s.status,
            "amount": decimal_to_float(s.amount),
            "start_date": s.start_date,
            "end_date": s.end_date,
            "canceled_at": s.canceled_at,
            "currency": s.currency,
        }
        for s in subscriptions
    ]
    return pd.DataFrame(rows, columns=SUBSCRIPTION_COLUMNS)


def dataframe_to_subscriptions(df: pd.DataFrame) -> List[Subscription]:
    """Convert a DataFrame back to validated Subscription records.

    ``external_id`` defaults to ``subscription_id`` and ``currency`` to
    ``usd`` when those columns are absent.

    Raises:
        ValueError: If required columns are missing or contain nulls, or a
            row fails Subscription validation
    """
    missing_cols = set(_REQUIRED_COLUMNS) - set(df.columns)
    if missing_cols:
        raise ValueError(f"DataFrame missing required columns: {missing_cols}")

    if df.empty:
        return []

    null_cols = df[_REQUIRED_COLUMNS].isnull().any()
    if null_cols.any():
        null_col_names = null_cols[null_cols].index.tolist()
        raise ValueError(f"Null/NaN values found in columns: {null_col_names}")

    subscriptions = []
    for record in df.to_dict("records"):
        subscription_id = str(record["subscription_id"])
        external_id = record.get("external_id")
        currency = record.get("currency")
        subscriptions.append(
            Subscription(
                subscription_id=subscription_id,
                external_id=subscription_id if pd.isna(external_id) else str(external_id),
                customer_id=str(record["customer_id"]),
                product_id=str(record["product_id"]),
                status=str(record["status"]),
                amount=float_to_decimal(float(record["amount"])),
                start_date=to_optional_datetime(record["start_date"]),
                end_date=to_optional_datetime(record.get("end_date")),
                canceled_at=to_optional_datetime(record.get("canceled_at")),
                currency="usd" if pd.isna(currency) else str(currency),
            )
        )
    return subscriptions


def growth_to_dataframe(periods: Sequence[GrowthPeriod]) -> pd.DataFrame:
    """Convert a growth series to a DataFrame ordered by period."""
    if not periods:
        return pd.DataFrame(columns=GROWTH_COLUMNS)
    rows = [
        {
            "period": p.period,
            "new_subscriptions": p.new_subscriptions,
            "canceled_subscriptions": p.canceled_subscriptions,
            "net_growth": p.net_growth,
            "total_subscriptions": p.total_subscriptions,
        }
        for p in periods
    ]
    return pd.DataFrame(rows, columns=GROWTH_COLUMNS)


def calculate_subscription_growth_df(
    subscriptions_df: pd.DataFrame,
    granularity: TimeGranularity = TimeGranularity.MONTHLY,
    since: Optional[datetime] = None,
) -> pd.DataFrame:
    """Growth series straight from a subscriptions DataFrame.

    Example:
        >>> growth_df = calculate_subscription_growth_df(subs_df, "weekly")
        >>> growth_df.plot(x="period", y="total_subscriptions")
    """
    subscriptions = dataframe_to_subscriptions(subscriptions_df)
    return growth_to_dataframe(
        calculate_subscription_growth(subscriptions, granularity, since=since)
    )
