"""Revenue and logo retention between two instants.

Both metrics compare the set of subscriptions billing at the start of a
window with what happened by its end. "Billing at" follows
:func:`subscription_metrics.foundation.records.is_active_at`.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Sequence

import structlog

from subscription_metrics.analyses.churn import calculate_period_churn_rate
from subscription_metrics.analyses.revenue import ASSUMED_LIFETIME_MONTHS
from subscription_metrics.analyses.time_periods import subtract_months
from subscription_metrics.foundation.records import Subscription, is_active_at

logger = structlog.get_logger(__name__)

PERCENTAGE_PRECISION = Decimal("0.01")


@dataclass(frozen=True)
class RetentionSummary:
    """Retention snapshot over a trailing window.

    Attributes
    ----------
    ndr:
        Net dollar retention in percent
    churn_rate:
        Period churn in percent, see
        :func:`~subscription_metrics.analyses.churn.calculate_period_churn_rate`
    ltv:
        Average subscription amount times the assumed lifetime
    active_subscriptions:
        Subscriptions billing at the end of the window
    gross_logo_retention:
        Share of start-cohort customers that did not churn, in percent
    """

    ndr: Decimal
    churn_rate: Decimal
    ltv: Decimal
    active_subscriptions: int
    gross_logo_retention: Decimal

    def __post_init__(self) -> None:
        if not 0 <= self.gross_logo_retention <= 100:
            raise ValueError(
                f"Gross logo retention must be 0-100: {self.gross_logo_retention}"
            )
        if self.ndr < 0:
            raise ValueError(f"NDR cannot be negative: {self.ndr}")


def _validate_window(period_start: datetime, period_end: datetime) -> None:
    if period_start > period_end:
        raise ValueError(
            f"period_start ({period_start.isoformat()}) must be <= "
            f"period_end ({period_end.isoformat()})"
        )


def calculate_net_dollar_retention(
    subscriptions: Sequence[Subscription],
    period_start: datetime,
    period_end: datetime,
) -> Decimal:
    """Revenue billing at ``period_end`` over revenue billing at ``period_start``, x100.

    Returns 0 when nothing was billing at the start of the window. Values
    above 100 mean expansion outweighed churn.
    """
    _validate_window(period_start, period_end)
    start_revenue = sum(
        (s.amount for s in subscriptions if is_active_at(s, period_start)),
        Decimal("0"),
    )
    end_revenue = sum(
        (s.amount for s in subscriptions if is_active_at(s, period_end)),
        Decimal("0"),
    )
    if start_revenue == 0:
        return Decimal("0")
    return (end_revenue / start_revenue * 100).quantize(
        PERCENTAGE_PRECISION, rounding=ROUND_HALF_UP
    )


def calculate_gross_logo_retention(
    subscriptions: Sequence[Subscription],
    period_start: datetime,
    period_end: datetime,
) -> Decimal:
    """Share of distinct customers billing at ``period_start`` who did not churn.

    A customer churns when any of their start-cohort subscriptions has a
    cancellation inside ``[period_start, period_end]``. Customers outside
    the start cohort are ignored, so the result stays within 0-100. An empty
    cohort yields 100.
    """
    _validate_window(period_start, period_end)
    cohort = [s for s in subscriptions if is_active_at(s, period_start)]
    cohort_customers = {s.customer_id for s in cohort}
    if not cohort_customers:
        return Decimal("100")

    churned_customers = {
        s.customer_id
        for s in cohort
        if s.canceled_at is not None and period_start <= s.canceled_at <= period_end
    }
    retained = len(cohort_customers) - len(churned_customers)
    return (Decimal(retained) / Decimal(len(cohort_customers)) * 100).quantize(
        PERCENTAGE_PRECISION, rounding=ROUND_HALF_UP
    )


def summarize_retention(
    subscriptions: Sequence[Subscription],
    now: datetime,
    months: int = 1,
    assumed_lifetime_months: int = ASSUMED_LIFETIME_MONTHS,
) -> RetentionSummary:
    """Retention metrics over the ``months`` calendar months ending at ``now``.

    Parameters
    ----------
    subscriptions:
        All subscriptions, regardless of status.
    now:
        End of the window.
    months:
        Window length in calendar months.
    assumed_lifetime_months:
        Lifetime multiplier for the LTV figure.
    """
    if months <= 0:
        raise ValueError(f"months must be positive: {months}")

    period_start = subtract_months(now, months)
    active_at_end = sum(1 for s in subscriptions if is_active_at(s, now))

    if subscriptions:
        average_amount = sum((s.amount for s in subscriptions), Decimal("0")) / Decimal(
            len(subscriptions)
        )
        ltv = (average_amount * assumed_lifetime_months).quantize(
            PERCENTAGE_PRECISION, rounding=ROUND_HALF_UP
        )
    else:
        ltv = Decimal("0")

    summary = RetentionSummary(
        ndr=calculate_net_dollar_retention(subscriptions, period_start, now),
        churn_rate=calculate_period_churn_rate(subscriptions, period_start, now),
        ltv=ltv,
        active_subscriptions=active_at_end,
        gross_logo_retention=calculate_gross_logo_retention(
            subscriptions, period_start, now
        ),
    )
    logger.debug(
        "retention_summarized",
        period_start=period_start.isoformat(),
        period_end=now.isoformat(),
        subscriptions=len(subscriptions),
        ndr=str(summary.ndr),
    )
    return summary
