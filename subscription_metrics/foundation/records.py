"""Record definitions for mirrored billing data.

Customers, products and subscriptions are copied from the billing provider
into the local record store. Every metric in :mod:`subscription_metrics.analyses`
is recomputed from these raw records; metric snapshots are an audit trail only.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional


class SubscriptionStatus(str, Enum):
    """Subscription states reported by the billing provider."""

    ACTIVE = "active"
    TRIALING = "trialing"
    CANCELED = "canceled"
    PAST_DUE = "past_due"
    UNPAID = "unpaid"
    INCOMPLETE = "incomplete"
    INCOMPLETE_EXPIRED = "incomplete_expired"
    PAUSED = "paused"


#: Statuses that contribute to recurring revenue.
ACTIVE_STATUSES = frozenset(
    {SubscriptionStatus.ACTIVE.value, SubscriptionStatus.TRIALING.value}
)


@dataclass(frozen=True)
class Product:
    """A pricing tier.

    Attributes
    ----------
    product_id:
        Local identifier
    name:
        Display name of the tier (e.g. "Free", "Plus", "Pro")
    price:
        Current monthly list price. Changing it never alters the amount
        snapshotted on existing subscriptions.
    external_id:
        Identifier at the billing provider, if the product was synced
    subscriptions:
        Related subscriptions, populated only when explicitly included
    """

    product_id: str
    name: str
    price: Decimal
    external_id: Optional[str] = None
    subscriptions: tuple["Subscription", ...] = field(
        default=(), compare=False, repr=False
    )

    def __post_init__(self) -> None:
        if self.price < 0:
            raise ValueError(
                f"Product price cannot be negative: {self.price} (product_id={self.product_id})"
            )


@dataclass(frozen=True)
class Customer:
    """A billing customer.

    Attributes
    ----------
    customer_id:
        Local identifier
    external_id:
        Identifier at the billing provider (upsert key for syncs)
    email:
        Contact email; overwritten on resync
    name:
        Optional display name; overwritten on resync
    subscriptions:
        Related subscriptions, populated only when explicitly included
    """

    customer_id: str
    external_id: str
    email: str
    name: Optional[str] = None
    subscriptions: tuple["Subscription", ...] = field(
        default=(), compare=False, repr=False
    )


@dataclass(frozen=True)
class Subscription:
    """One subscription of a customer to a product.

    Plan changes create a new subscription rather than mutating this one,
    so ordering a customer's subscriptions by ``start_date`` reconstructs
    their plan history.

    Attributes
    ----------
    subscription_id:
        Local identifier
    external_id:
        Identifier at the billing provider (upsert key for syncs)
    customer_id:
        Owning customer
    product_id:
        Referenced product
    status:
        Provider status string, see :class:`SubscriptionStatus`
    amount:
        Monthly amount snapshotted when the subscription was created or updated
    start_date:
        When the subscription started
    end_date:
        When the subscription stopped being billed, if it has
    canceled_at:
        When the cancellation was requested, if it was
    currency:
        ISO currency code, lowercase
    product:
        Related product, populated only when explicitly included
    customer:
        Related customer, populated only when explicitly included
    """

    subscription_id: str
    external_id: str
    customer_id: str
    product_id: str
    status: str
    amount: Decimal
    start_date: datetime
    end_date: Optional[datetime] = None
    canceled_at: Optional[datetime] = None
    currency: str = "usd"
    product: Optional[Product] = field(default=None, compare=False, repr=False)
    customer: Optional[Customer] = field(default=None, compare=False, repr=False)

    def __post_init__(self) -> None:
        if self.amount < 0:
            raise ValueError(
                f"Subscription amount cannot be negative: {self.amount} "
                f"(subscription_id={self.subscription_id})"
            )
        if self.end_date is not None and self.end_date < self.start_date:
            raise ValueError(
                f"end_date ({self.end_date.isoformat()}) must be >= start_date "
                f"({self.start_date.isoformat()}) (subscription_id={self.subscription_id})"
            )

    @property
    def is_active(self) -> bool:
        """Whether the current status counts towards recurring revenue."""
        return self.status in ACTIVE_STATUSES

    @property
    def is_canceled(self) -> bool:
        return self.status == SubscriptionStatus.CANCELED.value


@dataclass(frozen=True)
class Connection:
    """OAuth credentials for one connected billing provider account.

    Attributes
    ----------
    account_id:
        Provider account identifier (upsert key)
    access_token:
        Token used to scope sync calls
    refresh_token:
        Token used to obtain a new access token
    scope:
        Granted OAuth scope
    livemode:
        Whether the account is in live (not test) mode
    updated_at:
        Last time the credentials were exchanged or refreshed
    """

    account_id: str
    access_token: str
    refresh_token: Optional[str] = None
    scope: Optional[str] = None
    livemode: bool = False
    updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class MetricSnapshot:
    """Point-in-time record of a computed metric.

    Snapshots are never read back into metric computations.
    """

    snapshot_id: str
    metric_type: str
    value: Decimal
    recorded_at: datetime


def is_active_at(subscription: Subscription, instant: datetime) -> bool:
    """Return True if the subscription was billing at ``instant``.

    A subscription is active from its start date (inclusive) until its end
    date (exclusive); subscriptions without an end date are open-ended.
    """
    if subscription.start_date > instant:
        return False
    return subscription.end_date is None or subscription.end_date > instant
