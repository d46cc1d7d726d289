from __future__ import annotations

from dataclasses import dataclass, field, fields
from datetime import datetime, timedelta
from decimal import Decimal
import random
from typing import List, Optional, Sequence

import structlog

from subscription_metrics.analyses.time_periods import subtract_months
from subscription_metrics.foundation.records import (
    Customer,
    Product,
    Subscription,
    SubscriptionStatus,
)
from subscription_metrics.foundation.store import Entity, RecordStore

logger = structlog.get_logger(__name__)

#: Default pricing tiers as (name, monthly price).
DEFAULT_TIERS: tuple[tuple[str, Decimal], ...] = (
    ("Free", Decimal("0")),
    ("Plus", Decimal("20")),
    ("Pro", Decimal("200")),
)


@dataclass(frozen=True)
class GeneratorConfig:
    """Knobs for synthetic subscription data.

    Attributes
    ----------
    min_customers: Lower bound on customers created per run (inclusive).
    max_customers: Upper bound on customers created per run (inclusive).
    max_start_months_ago: First subscriptions start 1..N calendar months before now.
    active_probability: Chance that a first subscription is still active.
    second_subscription_probability: Chance of a later (usually upgraded) subscription.
    second_active_probability: Chance that a second subscription is still active.
    second_start_min_days: Earliest start of the second subscription after the first.
    second_start_max_days: Latest start of the second subscription after the first.
    cancellation_grace_days: Days between cancellation and end of billing.
    tier_weights: Probability of each tier (cheapest first) for first subscriptions.
    seed: Optional RNG seed for reproducibility.
    """

    min_customers: int = 10
    max_customers: int = 30
    max_start_months_ago: int = 12
    active_probability: float = 0.8
    second_subscription_probability: float = 0.15
    second_active_probability: float = 0.9
    second_start_min_days: int = 30
    second_start_max_days: int = 119
    cancellation_grace_days: int = 30
    tier_weights: tuple[float, ...] = (0.3, 0.5, 0.2)
    seed: Optional[int] = None

    def __post_init__(self) -> None:
        if self.min_customers < 0 or self.max_customers < self.min_customers:
            raise ValueError(
                f"Invalid customer range: {self.min_customers}..{self.max_customers}"
            )
        if self.max_start_months_ago < 1:
            raise ValueError("max_start_months_ago must be >= 1")
        for name in (
            "active_probability",
            "second_subscription_probability",
            "second_active_probability",
        ):
            value = getattr(self, name)
            if not 0 <= value <= 1:
                raise ValueError(f"{name} must be within [0, 1]: {value}")
        if self.second_start_max_days < self.second_start_min_days:
            raise ValueError("second_start_max_days must be >= second_start_min_days")


@dataclass(frozen=True)
class SyntheticDataset:
    products: tuple[Product, ...]
    customers: tuple[Customer, ...] = field(default=())
    subscriptions: tuple[Subscription, ...] = field(default=())


@dataclass(frozen=True)
class SeedResult:
    new_customers_count: int
    total_customers_count: int
    total_subscriptions_count: int


def generate_products() -> List[Product]:
    """Products for the default Free/Plus/Pro tiers."""
    return [
        Product(product_id=f"P-{i + 1}", name=name, price=price)
        for i, (name, price) in enumerate(DEFAULT_TIERS)
    ]


def _cancellation(
    rng: random.Random, start: datetime, now: datetime, grace_days: int
) -> tuple[datetime, datetime]:
    days_since_start = max(0, (now - start).days)
    offset = rng.randrange(days_since_start) if days_since_start > 0 else 0
    canceled_at = start + timedelta(days=offset)
    return canceled_at, canceled_at + timedelta(days=grace_days)


def _upgrade_target(rng: random.Random, tiers: Sequence[Product], current: Product) -> Product:
    # Cheapest tier moves to the next one 70% of the time, otherwise to the top;
    # everyone else moves to (or stays on) the top tier.
    if len(tiers) >= 3 and current.product_id == tiers[0].product_id:
        return tiers[1] if rng.random() < 0.7 else tiers[-1]
    return tiers[-1]


def generate_dataset(
    now: datetime,
    *,
    products: Optional[Sequence[Product]] = None,
    start_number: int = 1,
    config: Optional[GeneratorConfig] = None,
) -> SyntheticDataset:
    """Generate customers and their subscriptions relative to ``now``.

    Each customer gets one subscription that started 1-12 months ago. Some
    are canceled, in which case billing ends ``cancellation_grace_days``
    after the cancellation. A fraction of customers get a second
    subscription 30-119 days after the first, usually an upgrade, but only
    when that start is still in the past.
    """
    config = config or GeneratorConfig()
    rng = random.Random(config.seed)
    catalog = list(products) if products is not None else generate_products()
    if not catalog:
        raise ValueError("At least one product is required")
    tiers = sorted(catalog, key=lambda p: p.price)
    weights = list(config.tier_weights[: len(tiers)])
    weights += [weights[-1] if weights else 1.0] * (len(tiers) - len(weights))

    n_customers = rng.randint(config.min_customers, config.max_customers)
    customers: List[Customer] = []
    subscriptions: List[Subscription] = []

    for i in range(n_customers):
        number = start_number + i
        customer = Customer(
            customer_id=f"C-{number}",
            external_id=f"cus_test{number}",
            email=f"customer{number}@example.com",
        )
        customers.append(customer)

        start = subtract_months(now, rng.randint(1, config.max_start_months_ago))
        product = rng.choices(tiers, weights=weights, k=1)[0]
        is_active = rng.random() < config.active_probability
        canceled_at = end_date = None
        if not is_active:
            canceled_at, end_date = _cancellation(
                rng, start, now, config.cancellation_grace_days
            )
        subscriptions.append(
            Subscription(
                subscription_id=f"S-{number}",
                external_id=f"sub_test{number}",
                customer_id=customer.customer_id,
                product_id=product.product_id,
                status=(
                    SubscriptionStatus.ACTIVE.value
                    if is_active
                    else SubscriptionStatus.CANCELED.value
                ),
                amount=product.price,
                start_date=start,
                end_date=end_date,
                canceled_at=canceled_at,
            )
        )

        if rng.random() >= config.second_subscription_probability:
            continue
        second_start = start + timedelta(
            days=rng.randint(config.second_start_min_days, config.second_start_max_days)
        )
        if second_start >= now:
            continue
        second_product = _upgrade_target(rng, tiers, product)
        second_active = rng.random() < config.second_active_probability
        second_canceled = second_end = None
        if not second_active:
            second_canceled, second_end = _cancellation(
                rng, second_start, now, config.cancellation_grace_days
            )
        subscriptions.append(
            Subscription(
                subscription_id=f"S-{number}-2",
                external_id=f"sub_test{number}_second",
                customer_id=customer.customer_id,
                product_id=second_product.product_id,
                status=(
                    SubscriptionStatus.ACTIVE.value
                    if second_active
                    else SubscriptionStatus.CANCELED.value
                ),
                amount=second_product.price,
                start_date=second_start,
                end_date=second_end,
                canceled_at=second_canceled,
            )
        )

    return SyntheticDataset(
        products=tuple(catalog),
        customers=tuple(customers),
        subscriptions=tuple(subscriptions),
    )


_RELATION_FIELDS = frozenset({"subscriptions", "product", "customer"})


def _record_values(record) -> dict:
    return {
        f.name: getattr(record, f.name)
        for f in fields(record)
        if f.name not in _RELATION_FIELDS
    }


def load_dataset(store: RecordStore, dataset: SyntheticDataset) -> None:
    """Write every record of ``dataset`` to ``store``, products first."""
    for product in dataset.products:
        store.create(Entity.PRODUCT, _record_values(product))
    for customer in dataset.customers:
        store.create(Entity.CUSTOMER, _record_values(customer))
    for subscription in dataset.subscriptions:
        store.create(Entity.SUBSCRIPTION, _record_values(subscription))


def populate_store(
    store: RecordStore,
    now: datetime,
    config: Optional[GeneratorConfig] = None,
) -> SeedResult:
    """Append a batch of synthetic customers to ``store``.

    Products are created only when the store has none; existing products are
    reused. Customer numbering continues after the customers already stored,
    so repeated calls keep adding new customers.
    """
    products = store.find_many(Entity.PRODUCT)
    if not products:
        products = [
            store.create(Entity.PRODUCT, {"name": name, "price": price})
            for name, price in DEFAULT_TIERS
        ]
        logger.info("synthetic_products_created", count=len(products))

    start_number = store.count(Entity.CUSTOMER) + 1
    dataset = generate_dataset(
        now, products=products, start_number=start_number, config=config
    )
    load_dataset(
        store,
        SyntheticDataset(
            products=(),
            customers=dataset.customers,
            subscriptions=dataset.subscriptions,
        ),
    )

    result = SeedResult(
        new_customers_count=len(dataset.customers),
        total_customers_count=store.count(Entity.CUSTOMER),
        total_subscriptions_count=store.count(Entity.SUBSCRIPTION),
    )
    logger.info(
        "synthetic_data_generated",
        new_customers=result.new_customers_count,
        total_customers=result.total_customers_count,
        total_subscriptions=result.total_subscriptions_count,
    )
    return result
