"""Subscription churn.

Two views of churn are provided:

- :func:`calculate_churn_rate` is the cohort view used by the assistant:
  of the subscriptions that started inside the window, how many are
  canceled now?
- :func:`calculate_period_churn_rate` is the dashboard view: of the
  subscriptions billing at the start of the window, how many were canceled
  during it?
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Sequence

from subscription_metrics.foundation.records import Subscription, is_active_at

PERCENTAGE_PRECISION = Decimal("0.01")


@dataclass(frozen=True)
class ChurnRateMetrics:
    """Cohort churn results.

    Attributes
    ----------
    total_subscriptions:
        Subscriptions that started within the window (and match the product)
    canceled_subscriptions:
        The subset of those whose status is canceled
    churn_rate_pct:
        canceled / total * 100, or 0 when there are no subscriptions
    """

    total_subscriptions: int
    canceled_subscriptions: int
    churn_rate_pct: Decimal

    def __post_init__(self) -> None:
        if self.canceled_subscriptions > self.total_subscriptions:
            raise ValueError(
                f"Canceled subscriptions ({self.canceled_subscriptions}) cannot exceed "
                f"total subscriptions ({self.total_subscriptions})"
            )
        if not 0 <= self.churn_rate_pct <= 100:
            raise ValueError(f"Churn rate must be 0-100: {self.churn_rate_pct}")


def _percentage(part: int, whole: int) -> Decimal:
    if whole <= 0:
        return Decimal("0")
    return (Decimal(part) / Decimal(whole) * 100).quantize(
        PERCENTAGE_PRECISION, rounding=ROUND_HALF_UP
    )


def calculate_churn_rate(
    subscriptions: Sequence[Subscription],
    period_start: Optional[datetime] = None,
    period_end: Optional[datetime] = None,
    product_name: Optional[str] = None,
) -> ChurnRateMetrics:
    """Churn rate of the subscriptions that started within a window.

    Parameters
    ----------
    subscriptions:
        Subscriptions to consider. When ``product_name`` is given, each
        subscription must have its ``product`` relation included.
    period_start:
        Only subscriptions starting on/after this instant count; None means
        all time.
    period_end:
        Only subscriptions starting on/before this instant count; None means
        no upper bound.
    product_name:
        Restrict to subscriptions of the product with this exact name.

    Returns
    -------
    ChurnRateMetrics
        Churn is 0 (not an error) when no subscription matches.

    Examples
    --------
    >>> from datetime import datetime, timezone
    >>> from decimal import Decimal
    >>> subs = [
    ...     Subscription("s1", "sub_1", "c1", "p1", "active", Decimal("20"), datetime(2024, 1, 1, tzinfo=timezone.utc)),
    ...     Subscription("s2", "sub_2", "c2", "p1", "canceled", Decimal("20"), datetime(2024, 2, 1, tzinfo=timezone.utc)),
    ... ]
    >>> calculate_churn_rate(subs).churn_rate_pct
    Decimal('50.00')
    """
    cohort = []
    for subscription in subscriptions:
        if period_start is not None and subscription.start_date < period_start:
            continue
        if period_end is not None and subscription.start_date > period_end:
            continue
        if product_name is not None:
            if subscription.product is None:
                raise ValueError(
                    "Product filter requires subscriptions with the product relation "
                    f"included (subscription_id={subscription.subscription_id})"
                )
            if subscription.product.name != product_name:
                continue
        cohort.append(subscription)

    canceled = sum(1 for s in cohort if s.is_canceled)
    return ChurnRateMetrics(
        total_subscriptions=len(cohort),
        canceled_subscriptions=canceled,
        churn_rate_pct=_percentage(canceled, len(cohort)),
    )


def calculate_period_churn_rate(
    subscriptions: Sequence[Subscription],
    period_start: datetime,
    period_end: datetime,
) -> Decimal:
    """Cancellations within ``[period_start, period_end]`` over subscriptions active at the start.

    Only cancellations of subscriptions that were billing at ``period_start``
    are counted, so the rate stays within 0-100.
    """
    if period_start > period_end:
        raise ValueError("period_start must be <= period_end")

    active_at_start = [s for s in subscriptions if is_active_at(s, period_start)]
    churned = sum(
        1
        for s in active_at_start
        if s.canceled_at is not None and period_start <= s.canceled_at <= period_end
    )
    return _percentage(churned, len(active_at_start))
