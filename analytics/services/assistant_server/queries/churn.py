"""Cohort churn tool."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from subscription_metrics.analyses.churn import calculate_churn_rate
from subscription_metrics.analyses.time_periods import TimePeriod
from subscription_metrics.foundation.store import Entity, RecordStore

from analytics.services.assistant_server.queries._serialize import REQUEST_CONFIG, money

ALL_PRODUCTS = "all products"


class ChurnRateRequest(BaseModel):
    """Arguments for calculateChurnRate."""

    model_config = REQUEST_CONFIG

    product: str | None = Field(
        default=None, description="Product name to filter by (optional)"
    )
    time_period: TimePeriod = Field(
        default=TimePeriod.ALL_TIME,
        description="Time period to analyze (e.g., 'all time', 'last month', 'last 3 months')",
    )


def calculate_churn_rate_impl(
    request: ChurnRateRequest, store: RecordStore, now: datetime
) -> dict[str, Any]:
    """Share of subscriptions started within the period that are now canceled."""
    subscriptions = store.find_many(Entity.SUBSCRIPTION, include=("product",))
    result = calculate_churn_rate(
        subscriptions,
        period_start=request.time_period.start_from(now),
        product_name=request.product,
    )
    return {
        "totalSubscriptions": result.total_subscriptions,
        "canceledSubscriptions": result.canceled_subscriptions,
        "churnRate": money(result.churn_rate_pct),
        "timePeriod": request.time_period.value,
        "product": request.product or ALL_PRODUCTS,
    }
