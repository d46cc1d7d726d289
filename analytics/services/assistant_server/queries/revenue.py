"""Revenue metrics tool."""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from subscription_metrics.analyses.revenue import (
    ASSUMED_LIFETIME_MONTHS,
    RevenueMetrics,
    calculate_revenue_metrics,
)
from subscription_metrics.foundation.store import Entity, RecordStore

from analytics.services.assistant_server.queries._serialize import REQUEST_CONFIG, money


class RevenueMetric(str, Enum):
    MRR = "mrr"
    ARR = "arr"
    LTV = "ltv"
    ALL = "all"


class RevenueMetricsRequest(BaseModel):
    """Arguments for getRevenueMetrics."""

    model_config = REQUEST_CONFIG

    metric: RevenueMetric = Field(
        default=RevenueMetric.ALL, description="Specific metric to retrieve"
    )
    by_product: bool = Field(
        default=False, description="Whether to break down by product"
    )


def _product_rows(metrics: RevenueMetrics) -> list[dict[str, Any]]:
    return [
        {
            "name": p.name,
            "customerCount": p.customer_count,
            "mrr": money(p.mrr),
            "arr": money(p.arr),
            "percentOfMrr": money(p.percent_of_mrr),
        }
        for p in metrics.by_product or ()
    ]


def get_revenue_metrics_impl(
    request: RevenueMetricsRequest,
    store: RecordStore,
    now: datetime,
    assumed_lifetime_months: int = ASSUMED_LIFETIME_MONTHS,
) -> dict[str, Any]:
    """MRR, ARR, LTV and averages, or just the requested metric.

    ``mrr`` and ``arr`` keep the product breakdown when asked for it;
    ``ltv`` never includes it.
    """
    subscriptions = store.find_many(Entity.SUBSCRIPTION, include=("product",))
    metrics = calculate_revenue_metrics(
        subscriptions,
        total_customer_count=store.count(Entity.CUSTOMER),
        by_product=request.by_product,
        assumed_lifetime_months=assumed_lifetime_months,
    )

    breakdown = {"byProduct": _product_rows(metrics)} if request.by_product else {}
    if request.metric is RevenueMetric.MRR:
        return {"mrr": money(metrics.mrr), **breakdown}
    if request.metric is RevenueMetric.ARR:
        return {"arr": money(metrics.arr), **breakdown}
    if request.metric is RevenueMetric.LTV:
        return {"ltv": money(metrics.ltv)}

    return {
        "mrr": money(metrics.mrr),
        "arr": money(metrics.arr),
        "ltv": money(metrics.ltv),
        "activeCustomerCount": metrics.active_customer_count,
        "avgRevenuePerCustomer": money(metrics.avg_revenue_per_customer),
        **breakdown,
    }
