"""Subscription metrics engine.

Pure functions that turn mirrored billing records into business metrics:

1. Churn - cohort churn and period churn
2. Revenue - MRR, ARR, LTV and per-product breakdown
3. Growth - new/canceled subscriptions bucketed over time
4. Retention - net dollar retention and gross logo retention
5. Plan changes - upgrades and downgrades between products
6. Trends - monthly series for the dashboard

None of these functions read the clock; callers pass ``now`` explicitly.
"""

from .churn import ChurnRateMetrics, calculate_churn_rate, calculate_period_churn_rate
from .customers import current_subscription, months_billed, plan_history, total_paid
from .growth import (
    GrowthPeriod,
    TimeGranularity,
    calculate_subscription_growth,
    period_key,
)
from .plan_changes import (
    ChangeType,
    PlanChangeAnalysis,
    PlanChangeGroup,
    PlanChangeSummary,
    PlanTransition,
    analyze_plan_changes,
)
from .retention import (
    RetentionSummary,
    calculate_gross_logo_retention,
    calculate_net_dollar_retention,
    summarize_retention,
)
from .revenue import (
    ASSUMED_LIFETIME_MONTHS,
    ProductRevenue,
    RevenueMetrics,
    calculate_revenue_metrics,
)
from .time_periods import TimePeriod, subtract_months
from .trends import DashboardTrends, PlanShare, TrendPoint, calculate_monthly_trends

__all__ = [
    # Churn
    "ChurnRateMetrics",
    "calculate_churn_rate",
    "calculate_period_churn_rate",
    # Customers
    "current_subscription",
    "months_billed",
    "plan_history",
    "total_paid",
    # Growth
    "GrowthPeriod",
    "TimeGranularity",
    "calculate_subscription_growth",
    "period_key",
    # Plan changes
    "ChangeType",
    "PlanChangeAnalysis",
    "PlanChangeGroup",
    "PlanChangeSummary",
    "PlanTransition",
    "analyze_plan_changes",
    # Retention
    "RetentionSummary",
    "calculate_gross_logo_retention",
    "calculate_net_dollar_retention",
    "summarize_retention",
    # Revenue
    "ASSUMED_LIFETIME_MONTHS",
    "ProductRevenue",
    "RevenueMetrics",
    "calculate_revenue_metrics",
    # Time periods
    "TimePeriod",
    "subtract_months",
    # Trends
    "DashboardTrends",
    "PlanShare",
    "TrendPoint",
    "calculate_monthly_trends",
]
