"""Per-customer billing figures: months billed, total paid, plan history."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Iterable, Optional, Sequence

from subscription_metrics.analyses.time_periods import months_between
from subscription_metrics.foundation.records import Subscription


def months_billed(subscription: Subscription, now: datetime) -> int:
    """Calendar months a subscription has been billed, never less than one.

    The span runs from ``start_date`` to ``end_date`` (or ``now`` for
    open-ended subscriptions) and counts month boundaries only, so
    Jan 31 to Feb 1 is one month and Jan 1 to Jan 31 is also one month.
    """
    end = subscription.end_date if subscription.end_date is not None else now
    return max(1, months_between(subscription.start_date, end))


def total_paid(subscriptions: Iterable[Subscription], now: datetime) -> Decimal:
    """Sum of amount x months billed over a customer's subscriptions."""
    return sum(
        (s.amount * months_billed(s, now) for s in subscriptions),
        Decimal("0"),
    )


def plan_history(subscriptions: Iterable[Subscription]) -> list[Subscription]:
    """Subscriptions ordered by start date, oldest first."""
    return sorted(subscriptions, key=lambda s: s.start_date)


def current_subscription(
    subscriptions: Sequence[Subscription],
) -> Optional[Subscription]:
    """The most recently started subscription that still counts as active."""
    active = [s for s in subscriptions if s.is_active]
    if not active:
        return None
    return max(active, key=lambda s: s.start_date)
