"""Monthly series backing the dashboard charts.

Every series covers the last ``months`` calendar months ending with the
month that contains ``now``. Month windows are half-open
``[month_start, next_month_start)`` except the current one, which ends at
``now``. A subscription counts for a month when it overlaps the window:
it started before the window ends and had not ended when the window began.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Sequence

from subscription_metrics.analyses.time_periods import (
    month_start,
    next_month_start,
    subtract_months,
)
from subscription_metrics.foundation.records import Product, Subscription

CHURN_TREND_PRECISION = Decimal("0.1")


@dataclass(frozen=True)
class MonthWindow:
    label: str
    start: datetime
    end: datetime


@dataclass(frozen=True)
class TrendPoint:
    """One month of a series; ``month`` is ``YYYY-MM``."""

    month: str
    value: Decimal


@dataclass(frozen=True)
class PlanShare:
    """Distinct customers currently holding an active subscription to a product."""

    name: str
    customer_count: int


@dataclass(frozen=True)
class DashboardTrends:
    """Chart data for the dashboard.

    Attributes
    ----------
    mrr_trend:
        Summed amount of subscriptions overlapping each month
    customer_growth:
        Distinct customers with a subscription overlapping each month
    plan_distribution:
        Current distinct active customers per product, in product order
    churn_trend:
        Percent of the previous month's customers whose subscriptions had all
        ended before the month began; the first month is always 0
    """

    mrr_trend: tuple[TrendPoint, ...]
    customer_growth: tuple[TrendPoint, ...]
    plan_distribution: tuple[PlanShare, ...]
    churn_trend: tuple[TrendPoint, ...]


def month_windows(now: datetime, months: int = 12) -> list[MonthWindow]:
    """Calendar-month windows, oldest first, the last one ending at ``now``."""
    if months <= 0:
        raise ValueError(f"months must be positive: {months}")
    current = month_start(now)
    windows = []
    for offset in range(months - 1, -1, -1):
        start = subtract_months(current, offset)
        end = now if offset == 0 else next_month_start(start)
        windows.append(
            MonthWindow(label=f"{start.year:04d}-{start.month:02d}", start=start, end=end)
        )
    return windows


def overlaps(subscription: Subscription, window_start: datetime, window_end: datetime) -> bool:
    if subscription.start_date >= window_end:
        return False
    return subscription.end_date is None or subscription.end_date > window_start


def subscriptions_active_during(
    subscriptions: Iterable[Subscription], window_start: datetime, window_end: datetime
) -> list[Subscription]:
    return [s for s in subscriptions if overlaps(s, window_start, window_end)]


def _customers_during(
    subscriptions: Iterable[Subscription], window: MonthWindow
) -> set[str]:
    return {
        s.customer_id for s in subscriptions_active_during(subscriptions, window.start, window.end)
    }


def _churn_series(
    subscriptions: Sequence[Subscription], windows: Sequence[MonthWindow]
) -> list[TrendPoint]:
    by_customer: dict[str, list[Subscription]] = {}
    for subscription in subscriptions:
        by_customer.setdefault(subscription.customer_id, []).append(subscription)

    points = []
    for index, window in enumerate(windows):
        if index == 0:
            points.append(TrendPoint(month=window.label, value=Decimal("0")))
            continue
        previous_customers = _customers_during(subscriptions, windows[index - 1])
        lost = sum(
            1
            for customer_id in previous_customers
            if all(
                s.end_date is not None and s.end_date < window.start
                for s in by_customer[customer_id]
            )
        )
        if previous_customers:
            rate = (Decimal(lost) / Decimal(len(previous_customers)) * 100).quantize(
                CHURN_TREND_PRECISION, rounding=ROUND_HALF_UP
            )
        else:
            rate = Decimal("0")
        points.append(TrendPoint(month=window.label, value=rate))
    return points


def calculate_monthly_trends(
    subscriptions: Sequence[Subscription],
    products: Sequence[Product],
    now: datetime,
    months: int = 12,
) -> DashboardTrends:
    """Build the MRR, customer, plan and churn series for the dashboard."""
    windows = month_windows(now, months)

    mrr_trend = tuple(
        TrendPoint(
            month=w.label,
            value=sum(
                (s.amount for s in subscriptions_active_during(subscriptions, w.start, w.end)),
                Decimal("0"),
            ),
        )
        for w in windows
    )
    customer_growth = tuple(
        TrendPoint(month=w.label, value=Decimal(len(_customers_during(subscriptions, w))))
        for w in windows
    )

    plan_distribution = tuple(
        PlanShare(
            name=product.name,
            customer_count=len(
                {
                    s.customer_id
                    for s in subscriptions
                    if s.is_active and s.product_id == product.product_id
                }
            ),
        )
        for product in products
    )

    return DashboardTrends(
        mrr_trend=mrr_trend,
        customer_growth=customer_growth,
        plan_distribution=plan_distribution,
        churn_trend=tuple(_churn_series(subscriptions, windows)),
    )
