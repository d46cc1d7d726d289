"""Dashboard MCP Tools

Chart series for the dashboard and point-in-time metric snapshots.
"""

from datetime import datetime

import structlog
from fastmcp import Context
from pydantic import BaseModel, Field

from subscription_metrics.analyses.trends import calculate_monthly_trends
from subscription_metrics.foundation.store import Entity, RecordStore
from subscription_metrics.snapshots import generate_metric_snapshots as take_snapshots

from analytics.services.assistant_server.instance import mcp
from analytics.services.assistant_server.state import get_app_context

logger = structlog.get_logger(__name__)


class DashboardTrendsRequest(BaseModel):
    months: int = Field(
        default=12, ge=1, le=36, description="Number of calendar months to chart"
    )


class MonthlyValue(BaseModel):
    month: str = Field(description="Calendar month as YYYY-MM")
    value: float


class PlanShareModel(BaseModel):
    name: str
    customer_count: int


class DashboardTrendsResponse(BaseModel):
    """Monthly series, oldest first; the last month ends now."""

    mrr_trend: list[MonthlyValue]
    customer_growth: list[MonthlyValue]
    plan_distribution: list[PlanShareModel]
    churn_trend: list[MonthlyValue]


class MetricSnapshotsResponse(BaseModel):
    mrr: float
    churn_rate: float = Field(description="Churn over the previous calendar month (%)")
    active_customers: int
    mrr_trend: list[MonthlyValue] = Field(description="MRR for the last six months")
    snapshot_ids: list[str]
    recorded_at: str


def get_dashboard_trends_impl(
    request: DashboardTrendsRequest, store: RecordStore, now: datetime
) -> DashboardTrendsResponse:
    trends = calculate_monthly_trends(
        store.find_many(Entity.SUBSCRIPTION),
        store.find_many(Entity.PRODUCT),
        now,
        months=request.months,
    )

    def series(points) -> list[MonthlyValue]:
        return [MonthlyValue(month=p.month, value=float(p.value)) for p in points]

    return DashboardTrendsResponse(
        mrr_trend=series(trends.mrr_trend),
        customer_growth=series(trends.customer_growth),
        plan_distribution=[
            PlanShareModel(name=share.name, customer_count=share.customer_count)
            for share in trends.plan_distribution
        ],
        churn_trend=series(trends.churn_trend),
    )


def generate_metric_snapshots_impl(
    store: RecordStore, now: datetime
) -> MetricSnapshotsResponse:
    report = take_snapshots(store, now)
    return MetricSnapshotsResponse(
        mrr=float(report.mrr),
        churn_rate=float(report.churn_rate),
        active_customers=report.active_customers,
        mrr_trend=[
            MonthlyValue(month=point.month, value=float(point.mrr))
            for point in report.mrr_trend
        ],
        snapshot_ids=[snapshot.snapshot_id for snapshot in report.snapshots],
        recorded_at=now.isoformat(),
    )


@mcp.tool()
async def get_dashboard_trends(
    request: DashboardTrendsRequest, ctx: Context
) -> DashboardTrendsResponse:
    """
    Get monthly MRR, customer, churn and plan distribution series.

    Returns:
        DashboardTrendsResponse with one point per month for MRR, customers
        and churn, plus current active customers per plan
    """
    context = get_app_context()
    await ctx.info(f"Building dashboard trends for {request.months} months")
    response = get_dashboard_trends_impl(request, context.store, context.clock())
    logger.info("dashboard_trends_built", months=request.months)
    return response


@mcp.tool()
async def generate_metric_snapshots(ctx: Context) -> MetricSnapshotsResponse:
    """
    Compute current MRR, last month's churn and active subscriptions, and
    store them as metric snapshots.
    """
    context = get_app_context()
    response = generate_metric_snapshots_impl(context.store, context.clock())
    await ctx.info(f"Stored {len(response.snapshot_ids)} metric snapshots")
    return response
