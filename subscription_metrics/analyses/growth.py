"""Subscription growth over time.

Each subscription contributes at most one "new" event (its start date) and
at most one "canceled" event (its cancellation date). Events are bucketed by
calendar day, ISO week (Monday start) or calendar month, and a running total
of net growth is carried across buckets in ascending order.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional, Sequence

from subscription_metrics.foundation.records import Subscription


class TimeGranularity(str, Enum):
    """Bucket sizes for growth series."""

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


@dataclass(frozen=True)
class GrowthPeriod:
    """Subscription movement within one bucket.

    Attributes
    ----------
    period:
        Bucket key: ``YYYY-MM-DD`` for daily and weekly buckets (weekly keys
        are the Monday of the ISO week), ``YYYY-MM`` for monthly buckets
    new_subscriptions:
        Subscriptions that started in the bucket
    canceled_subscriptions:
        Subscriptions canceled in the bucket
    net_growth:
        new - canceled
    total_subscriptions:
        Running sum of net growth up to and including this bucket
    """

    period: str
    new_subscriptions: int
    canceled_subscriptions: int
    net_growth: int
    total_subscriptions: int

    def __post_init__(self) -> None:
        if self.new_subscriptions < 0 or self.canceled_subscriptions < 0:
            raise ValueError(
                f"Event counts cannot be negative (period={self.period})"
            )
        if self.net_growth != self.new_subscriptions - self.canceled_subscriptions:
            raise ValueError(
                f"net_growth ({self.net_growth}) must equal new - canceled "
                f"(period={self.period})"
            )


def period_key(instant: datetime, granularity: TimeGranularity) -> str:
    """Truncate ``instant`` to its bucket key."""
    day = instant.date()
    if granularity is TimeGranularity.DAILY:
        return day.isoformat()
    if granularity is TimeGranularity.WEEKLY:
        return (day - timedelta(days=day.weekday())).isoformat()
    if granularity is TimeGranularity.MONTHLY:
        return f"{day.year:04d}-{day.month:02d}"
    raise ValueError(f"Unsupported granularity: {granularity}")


def calculate_subscription_growth(
    subscriptions: Sequence[Subscription],
    granularity: TimeGranularity = TimeGranularity.MONTHLY,
    since: Optional[datetime] = None,
) -> list[GrowthPeriod]:
    """Bucket new and canceled subscriptions and accumulate net growth.

    Parameters
    ----------
    subscriptions:
        Subscriptions to consider.
    granularity:
        Bucket size.
    since:
        Only events on/after this instant are counted. Start and cancellation
        events are filtered independently, so a subscription started before
        ``since`` and canceled after it contributes only its cancellation.
        The running total starts from zero at the first included bucket.

    Returns
    -------
    list[GrowthPeriod]
        Buckets with at least one event, sorted ascending by period key.
        Empty when there are no events.

    Examples
    --------
    >>> from datetime import datetime, timezone
    >>> from decimal import Decimal
    >>> utc = timezone.utc
    >>> subs = [
    ...     Subscription("s1", "sub_1", "c1", "p1", "active", Decimal("20"), datetime(2024, 1, 5, tzinfo=utc)),
    ...     Subscription("s2", "sub_2", "c2", "p1", "canceled", Decimal("20"), datetime(2024, 1, 9, tzinfo=utc),
    ...                  canceled_at=datetime(2024, 2, 3, tzinfo=utc)),
    ... ]
    >>> [(p.period, p.net_growth, p.total_subscriptions) for p in calculate_subscription_growth(subs)]
    [('2024-01', 2, 2), ('2024-02', -1, 1)]
    """
    granularity = TimeGranularity(granularity)
    new_counts: dict[str, int] = {}
    canceled_counts: dict[str, int] = {}

    for subscription in subscriptions:
        if since is None or subscription.start_date >= since:
            key = period_key(subscription.start_date, granularity)
            new_counts[key] = new_counts.get(key, 0) + 1

        canceled_at = subscription.canceled_at
        if canceled_at is not None and (since is None or canceled_at >= since):
            key = period_key(canceled_at, granularity)
            canceled_counts[key] = canceled_counts.get(key, 0) + 1

    periods: list[GrowthPeriod] = []
    running_total = 0
    for key in sorted(set(new_counts) | set(canceled_counts)):
        new = new_counts.get(key, 0)
        canceled = canceled_counts.get(key, 0)
        running_total += new - canceled
        periods.append(
            GrowthPeriod(
                period=key,
                new_subscriptions=new,
                canceled_subscriptions=canceled,
                net_growth=new - canceled,
                total_subscriptions=running_total,
            )
        )
    return periods
