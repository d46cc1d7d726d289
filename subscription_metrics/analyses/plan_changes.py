"""Upgrade and downgrade detection from customer plan history.

A plan change is never an in-place mutation: it shows up as a new
subscription. Walking each customer's subscriptions in start-date order and
comparing the list price of consecutive products therefore reveals every
upgrade (price went up) and downgrade (price went down). Moves between
equally priced products are ignored.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Optional, Sequence

from subscription_metrics.foundation.records import Customer, Subscription

RATIO_PRECISION = Decimal("0.01")
RECENT_EXAMPLES_LIMIT = 5
PATH_SEPARATOR = " → "


class ChangeType(str, Enum):
    UPGRADES = "upgrades"
    DOWNGRADES = "downgrades"
    BOTH = "both"


@dataclass(frozen=True)
class PlanTransition:
    """One move between consecutive subscriptions of a customer.

    Attributes
    ----------
    customer_id:
        Customer who changed plans
    email:
        Customer email
    from_plan:
        Product name of the earlier subscription
    to_plan:
        Product name of the later subscription
    price_difference:
        Absolute list-price difference between the two products
    changed_at:
        Start date of the later subscription
    """

    customer_id: str
    email: str
    from_plan: str
    to_plan: str
    price_difference: Decimal
    changed_at: datetime

    @property
    def path(self) -> str:
        return f"{self.from_plan}{PATH_SEPARATOR}{self.to_plan}"


@dataclass(frozen=True)
class PlanChangeGroup:
    """All transitions in one direction.

    Attributes
    ----------
    count:
        Number of transitions
    paths:
        Transition counts keyed by ``"From → To"``
    recent_examples:
        Up to five most recent transitions, newest first
    """

    count: int
    paths: dict[str, int]
    recent_examples: tuple[PlanTransition, ...]


@dataclass(frozen=True)
class PlanChangeSummary:
    total_upgrades: int
    total_downgrades: int
    upgrade_downgrade_ratio: Decimal


@dataclass(frozen=True)
class PlanChangeAnalysis:
    summary: PlanChangeSummary
    upgrades: Optional[PlanChangeGroup] = None
    downgrades: Optional[PlanChangeGroup] = None


def _ordered_history(customer: Customer) -> list[Subscription]:
    history = sorted(customer.subscriptions, key=lambda s: s.start_date)
    for subscription in history:
        if subscription.product is None:
            raise ValueError(
                "Plan change analysis requires subscriptions with the product relation "
                f"included (customer_id={customer.customer_id}, "
                f"subscription_id={subscription.subscription_id})"
            )
    return history


def detect_transitions(
    customers: Sequence[Customer],
) -> tuple[list[PlanTransition], list[PlanTransition]]:
    """Split every consecutive-subscription move into upgrades and downgrades."""
    upgrades: list[PlanTransition] = []
    downgrades: list[PlanTransition] = []

    for customer in customers:
        history = _ordered_history(customer)
        for previous, current in zip(history, history[1:]):
            old_price = previous.product.price
            new_price = current.product.price
            if new_price == old_price:
                continue
            transition = PlanTransition(
                customer_id=customer.customer_id,
                email=customer.email,
                from_plan=previous.product.name,
                to_plan=current.product.name,
                price_difference=abs(new_price - old_price),
                changed_at=current.start_date,
            )
            if new_price > old_price:
                upgrades.append(transition)
            else:
                downgrades.append(transition)

    return upgrades, downgrades


def _group(transitions: Sequence[PlanTransition]) -> PlanChangeGroup:
    paths: dict[str, int] = {}
    for transition in transitions:
        paths[transition.path] = paths.get(transition.path, 0) + 1
    recent = sorted(transitions, key=lambda t: t.changed_at, reverse=True)
    return PlanChangeGroup(
        count=len(transitions),
        paths=paths,
        recent_examples=tuple(recent[:RECENT_EXAMPLES_LIMIT]),
    )


def analyze_plan_changes(
    customers: Sequence[Customer],
    change_type: ChangeType = ChangeType.BOTH,
) -> PlanChangeAnalysis:
    """Summarize upgrades and downgrades across customers.

    Parameters
    ----------
    customers:
        Customers with their ``subscriptions`` included, each subscription
        with its ``product`` included. Order of subscriptions does not
        matter; they are sorted by start date here.
    change_type:
        Which detail groups to return. The summary is always returned.

    Returns
    -------
    PlanChangeAnalysis
        ``upgrade_downgrade_ratio`` is 0 when there are no downgrades.
    """
    change_type = ChangeType(change_type)
    upgrades, downgrades = detect_transitions(customers)

    if downgrades:
        ratio = (Decimal(len(upgrades)) / Decimal(len(downgrades))).quantize(
            RATIO_PRECISION, rounding=ROUND_HALF_UP
        )
    else:
        ratio = Decimal("0")

    summary = PlanChangeSummary(
        total_upgrades=len(upgrades),
        total_downgrades=len(downgrades),
        upgrade_downgrade_ratio=ratio,
    )

    include_upgrades = change_type in (ChangeType.UPGRADES, ChangeType.BOTH)
    include_downgrades = change_type in (ChangeType.DOWNGRADES, ChangeType.BOTH)
    return PlanChangeAnalysis(
        summary=summary,
        upgrades=_group(upgrades) if include_upgrades else None,
        downgrades=_group(downgrades) if include_downgrades else None,
    )
