"""Subscription growth tool."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from subscription_metrics.analyses.growth import (
    TimeGranularity,
    calculate_subscription_growth,
)
from subscription_metrics.analyses.time_periods import TimePeriod
from subscription_metrics.foundation.store import Entity, RecordStore

from analytics.services.assistant_server.queries._serialize import REQUEST_CONFIG


class SubscriptionGrowthRequest(BaseModel):
    """Arguments for getSubscriptionGrowth."""

    model_config = REQUEST_CONFIG

    time_granularity: TimeGranularity = Field(
        default=TimeGranularity.MONTHLY, description="Time granularity for the data"
    )
    time_period: TimePeriod = Field(
        default=TimePeriod.ALL_TIME, description="Time period to analyze"
    )


def get_subscription_growth_impl(
    request: SubscriptionGrowthRequest, store: RecordStore, now: datetime
) -> dict[str, Any]:
    """New, canceled and cumulative subscriptions per period."""
    subscriptions = store.find_many(Entity.SUBSCRIPTION)
    periods = calculate_subscription_growth(
        subscriptions,
        request.time_granularity,
        since=request.time_period.start_from(now),
    )
    return {
        "growthByPeriod": [
            {
                "period": p.period,
                "newSubscriptions": p.new_subscriptions,
                "canceledSubscriptions": p.canceled_subscriptions,
                "netGrowth": p.net_growth,
                "totalSubscriptions": p.total_subscriptions,
            }
            for p in periods
        ],
        "timeGranularity": request.time_granularity.value,
        "timePeriod": request.time_period.value,
    }
