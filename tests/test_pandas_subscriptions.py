"""Tests for subscription pandas adapters."""

from datetime import datetime, timezone
from decimal import Decimal

import pandas as pd  # type: ignore
import pytest

from subscription_metrics.pandas import (
    calculate_subscription_growth_df,
    dataframe_to_subscriptions,
    growth_to_dataframe,
    subscriptions_to_dataframe,
)


def _utc(year, month, day):
    return datetime(year, month, day, tzinfo=timezone.utc)


class TestSubscriptionsToDataFrame:
    """Test subscriptions_to_dataframe conversion."""

    def test_one_row_per_subscription(self, make_subscription):
        subs = [
            make_subscription("C-1", "Plus", _utc(2024, 1, 5)),
            make_subscription(
                "C-2",
                "Pro",
                _utc(2024, 1, 9),
                status="canceled",
                canceled_at=_utc(2024, 2, 3),
                end=_utc(2024, 3, 4),
            ),
        ]

        df = subscriptions_to_dataframe(subs)

        assert len(df) == 2
        assert df["subscription_id"].tolist() == ["S-1", "S-2"]
        assert df.iloc[1]["amount"] == 200.0
        assert pd.isna(df.iloc[0]["end_date"])

    def test_empty_input_keeps_columns(self):
        df = subscriptions_to_dataframe([])
        assert df.empty
        assert "start_date" in df.columns


class TestDataFrameToSubscriptions:
    def test_restores_records(self, make_subscription):
        original = make_subscription(
            "C-2",
            "Plus",
            _utc(2024, 1, 9),
            status="canceled",
            canceled_at=_utc(2024, 2, 3),
            end=_utc(2024, 3, 4),
            amount=Decimal("19.99"),
        )

        (restored,) = dataframe_to_subscriptions(subscriptions_to_dataframe([original]))

        assert restored.amount == Decimal("19.99")
        assert restored.canceled_at == _utc(2024, 2, 3)
        assert restored.end_date == _utc(2024, 3, 4)
        assert restored.status == "canceled"

    def test_optional_columns_default(self):
        df = pd.DataFrame(
            {
                "subscription_id": ["S-1"],
                "customer_id": ["C-1"],
                "product_id": ["P-2"],
                "status": ["active"],
                "amount": [20.0],
                "start_date": [pd.Timestamp("2024-01-05", tz="UTC")],
            }
        )

        (sub,) = dataframe_to_subscriptions(df)

        assert sub.external_id == "S-1"
        assert sub.currency == "usd"
        assert sub.end_date is None

    def test_missing_required_column(self):
        df = pd.DataFrame({"subscription_id": ["S-1"]})
        with pytest.raises(ValueError, match="missing required columns"):
            dataframe_to_subscriptions(df)

    def test_null_required_value(self):
        df = pd.DataFrame(
            {
                "subscription_id": ["S-1"],
                "customer_id": [None],
                "product_id": ["P-2"],
                "status": ["active"],
                "amount": [20.0],
                "start_date": [pd.Timestamp("2024-01-05", tz="UTC")],
            }
        )
        with pytest.raises(ValueError, match="customer_id"):
            dataframe_to_subscriptions(df)


class TestGrowthDataFrame:
    """Test calculate_subscription_growth_df convenience function."""

    def test_monthly_growth(self, make_subscription):
        subs = [
            make_subscription("C-1", "Plus", _utc(2024, 1, 5)),
            make_subscription(
                "C-2", "Plus", _utc(2024, 1, 9), status="canceled", canceled_at=_utc(2024, 2, 3)
            ),
        ]

        growth_df = calculate_subscription_growth_df(subscriptions_to_dataframe(subs))

        assert growth_df["period"].tolist() == ["2024-01", "2024-02"]
        assert growth_df["net_growth"].tolist() == [2, -1]
        assert growth_df["total_subscriptions"].tolist() == [2, 1]

    def test_weekly_keys_are_mondays(self, make_subscription):
        subs = [make_subscription("C-1", "Plus", _utc(2024, 1, 7))]  # a Sunday

        growth_df = calculate_subscription_growth_df(
            subscriptions_to_dataframe(subs), "weekly"
        )

        assert growth_df["period"].tolist() == ["2024-01-01"]

    def test_empty_series(self):
        df = growth_to_dataframe([])
        assert df.empty
        assert list(df.columns) == [
            "period",
            "new_subscriptions",
            "canceled_subscriptions",
            "net_growth",
            "total_subscriptions",
        ]
