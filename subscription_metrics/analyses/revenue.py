"""Recurring revenue metrics: MRR, ARR, LTV and per-product breakdown."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Sequence

from subscription_metrics.foundation.records import Subscription

PERCENTAGE_PRECISION = Decimal("0.01")
MONEY_PRECISION = Decimal("0.01")

# Simplifying assumption: every customer stays for one year on average.
# There is no historical basis for this number; callers may override it but
# it is never inferred from data.
ASSUMED_LIFETIME_MONTHS = 12

MONTHS_PER_YEAR = 12


@dataclass(frozen=True)
class ProductRevenue:
    """Revenue contributed by one product.

    Attributes
    ----------
    name:
        Product name
    customer_count:
        Number of active subscriptions on the product
    mrr:
        Sum of active subscription amounts on the product
    arr:
        mrr * 12
    percent_of_mrr:
        Share of total MRR, 0 when total MRR is 0
    """

    name: str
    customer_count: int
    mrr: Decimal
    arr: Decimal
    percent_of_mrr: Decimal


@dataclass(frozen=True)
class RevenueMetrics:
    """Revenue results.

    Attributes
    ----------
    mrr:
        Monthly recurring revenue from active and trialing subscriptions
    arr:
        mrr * 12
    ltv:
        (mrr / total customers) * assumed lifetime in months
    active_customer_count:
        Number of active subscriptions
    avg_revenue_per_customer:
        mrr / active_customer_count, 0 when there are none
    by_product:
        Per-product breakdown, only when requested
    """

    mrr: Decimal
    arr: Decimal
    ltv: Decimal
    active_customer_count: int
    avg_revenue_per_customer: Decimal
    by_product: Optional[tuple[ProductRevenue, ...]] = None

    def __post_init__(self) -> None:
        if self.mrr < 0:
            raise ValueError(f"MRR cannot be negative: {self.mrr}")
        if self.active_customer_count < 0:
            raise ValueError(
                f"Active customer count cannot be negative: {self.active_customer_count}"
            )


def _money(value: Decimal) -> Decimal:
    return value.quantize(MONEY_PRECISION, rounding=ROUND_HALF_UP)


def calculate_revenue_metrics(
    subscriptions: Sequence[Subscription],
    total_customer_count: int,
    by_product: bool = False,
    assumed_lifetime_months: int = ASSUMED_LIFETIME_MONTHS,
) -> RevenueMetrics:
    """Compute MRR, ARR, LTV and average revenue.

    Parameters
    ----------
    subscriptions:
        Subscriptions to consider; only active and trialing ones contribute.
        With ``by_product`` each must have its ``product`` relation included.
    total_customer_count:
        Number of customers (all of them, not just active ones) used as the
        LTV denominator.
    by_product:
        Whether to include a per-product breakdown.
    assumed_lifetime_months:
        Average customer lifetime used for LTV, see
        :data:`ASSUMED_LIFETIME_MONTHS`.

    Returns
    -------
    RevenueMetrics
        All values are 0 when nothing is active or there are no customers.
    """
    if total_customer_count < 0:
        raise ValueError(f"total_customer_count cannot be negative: {total_customer_count}")
    if assumed_lifetime_months <= 0:
        raise ValueError(
            f"assumed_lifetime_months must be positive: {assumed_lifetime_months}"
        )

    active = [s for s in subscriptions if s.is_active]
    mrr = sum((s.amount for s in active), Decimal("0"))
    arr = mrr * MONTHS_PER_YEAR

    if total_customer_count > 0:
        ltv = _money(mrr / Decimal(total_customer_count) * assumed_lifetime_months)
    else:
        ltv = Decimal("0")

    avg_revenue = _money(mrr / Decimal(len(active))) if active else Decimal("0")

    breakdown = None
    if by_product:
        breakdown = _breakdown_by_product(active, mrr)

    return RevenueMetrics(
        mrr=mrr,
        arr=arr,
        ltv=ltv,
        active_customer_count=len(active),
        avg_revenue_per_customer=avg_revenue,
        by_product=breakdown,
    )


def _breakdown_by_product(
    active: Sequence[Subscription], total_mrr: Decimal
) -> tuple[ProductRevenue, ...]:
    counts: dict[str, int] = {}
    sums: dict[str, Decimal] = {}
    for subscription in active:
        if subscription.product is None:
            raise ValueError(
                "Product breakdown requires subscriptions with the product relation "
                f"included (subscription_id={subscription.subscription_id})"
            )
        name = subscription.product.name
        counts[name] = counts.get(name, 0) + 1
        sums[name] = sums.get(name, Decimal("0")) + subscription.amount

    groups = []
    for name, group_mrr in sums.items():
        if total_mrr > 0:
            share = (group_mrr / total_mrr * 100).quantize(
                PERCENTAGE_PRECISION, rounding=ROUND_HALF_UP
            )
        else:
            share = Decimal("0")
        groups.append(
            ProductRevenue(
                name=name,
                customer_count=counts[name],
                mrr=group_mrr,
                arr=group_mrr * MONTHS_PER_YEAR,
                percent_of_mrr=share,
            )
        )

    groups.sort(key=lambda g: (-g.mrr, g.name))
    return tuple(groups)
