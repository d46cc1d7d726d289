"""Point-in-time metric snapshots.

Snapshots are an audit trail of what the dashboard showed at a given moment.
They are written here and never read back by any metric computation.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Sequence

import structlog

from subscription_metrics.analyses.churn import calculate_period_churn_rate
from subscription_metrics.analyses.time_periods import (
    month_start,
    next_month_start,
    subtract_months,
)
from subscription_metrics.analyses.trends import subscriptions_active_during
from subscription_metrics.foundation.records import MetricSnapshot, Subscription
from subscription_metrics.foundation.store import Entity, RecordStore

logger = structlog.get_logger(__name__)

MRR_TREND_MONTHS = 6


@dataclass(frozen=True)
class MonthlyMrr:
    month: str
    mrr: Decimal


@dataclass(frozen=True)
class SnapshotReport:
    """Metrics computed for a snapshot run.

    Attributes
    ----------
    mrr:
        Current MRR from active and trialing subscriptions
    churn_rate:
        Churn over the previous calendar month
    active_customers:
        Number of active and trialing subscriptions
    mrr_trend:
        MRR of active subscriptions overlapping each of the last six months,
        oldest first
    snapshots:
        The persisted snapshot records
    """

    mrr: Decimal
    churn_rate: Decimal
    active_customers: int
    mrr_trend: tuple[MonthlyMrr, ...]
    snapshots: tuple[MetricSnapshot, ...]


def mrr_trend(
    subscriptions: Sequence[Subscription], now: datetime, months: int = MRR_TREND_MONTHS
) -> list[MonthlyMrr]:
    active = [s for s in subscriptions if s.is_active]
    points = []
    for offset in range(months - 1, -1, -1):
        start = subtract_months(month_start(now), offset)
        end = next_month_start(start)
        points.append(
            MonthlyMrr(
                month=f"{start.year:04d}-{start.month:02d}",
                mrr=sum(
                    (s.amount for s in subscriptions_active_during(active, start, end)),
                    Decimal("0"),
                ),
            )
        )
    return points


def generate_metric_snapshots(store: RecordStore, now: datetime) -> SnapshotReport:
    """Compute current headline metrics and persist them as snapshots."""
    subscriptions = store.find_many(Entity.SUBSCRIPTION)
    active = [s for s in subscriptions if s.is_active]
    mrr = sum((s.amount for s in active), Decimal("0"))

    last_month_start = subtract_months(month_start(now), 1)
    last_month_end = month_start(now) - timedelta(microseconds=1)
    churn_rate = calculate_period_churn_rate(
        subscriptions, last_month_start, last_month_end
    )

    snapshots = tuple(
        store.create(
            Entity.METRIC_SNAPSHOT,
            {"metric_type": metric_type, "value": value, "recorded_at": now},
        )
        for metric_type, value in (
            ("mrr", mrr),
            ("churn_rate", churn_rate),
            ("active_customers", Decimal(len(active))),
        )
    )
    logger.info(
        "metric_snapshots_generated",
        mrr=str(mrr),
        churn_rate=str(churn_rate),
        active_customers=len(active),
    )
    return SnapshotReport(
        mrr=mrr,
        churn_rate=churn_rate,
        active_customers=len(active),
        mrr_trend=tuple(mrr_trend(subscriptions, now)),
        snapshots=snapshots,
    )
