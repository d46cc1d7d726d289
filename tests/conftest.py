"""Shared fixtures: record builders and a small populated store."""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from subscription_metrics.foundation.records import Customer, Product, Subscription
from subscription_metrics.foundation.store import Entity, InMemoryRecordStore

NOW = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)


def utc(year: int, month: int, day: int) -> datetime:
    return datetime(year, month, day, tzinfo=timezone.utc)


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def products() -> dict[str, Product]:
    return {
        "Free": Product(product_id="P-1", name="Free", price=Decimal("0")),
        "Plus": Product(product_id="P-2", name="Plus", price=Decimal("20")),
        "Pro": Product(product_id="P-3", name="Pro", price=Decimal("200")),
    }


@pytest.fixture
def make_subscription(products):
    """Build a Subscription with its product attached."""
    counter = {"n": 0}

    def _make(
        customer_id: str,
        plan: str,
        start: datetime,
        status: str = "active",
        end: datetime | None = None,
        canceled_at: datetime | None = None,
        amount: Decimal | None = None,
    ) -> Subscription:
        counter["n"] += 1
        product = products[plan]
        return Subscription(
            subscription_id=f"S-{counter['n']}",
            external_id=f"sub_{counter['n']}",
            customer_id=customer_id,
            product_id=product.product_id,
            status=status,
            amount=product.price if amount is None else amount,
            start_date=start,
            end_date=end,
            canceled_at=canceled_at,
            product=product,
        )

    return _make


@pytest.fixture
def store(products) -> InMemoryRecordStore:
    """Three customers on Free/Plus/Pro.

    - C-1 alice: Free (Jan 2024) then Plus (Mar 2024), both active
    - C-2 bob: Pro since Feb 2024, canceled May 20th, ends June 19th
    - C-3 carol: Plus since May 2024, trialing
    """
    store = InMemoryRecordStore()
    for product in products.values():
        store.create(
            Entity.PRODUCT,
            {"product_id": product.product_id, "name": product.name, "price": product.price},
        )
    for customer in (
        Customer("C-1", "cus_1", "alice@example.com", "Alice"),
        Customer("C-2", "cus_2", "bob@example.com", "Bob"),
        Customer("C-3", "cus_3", "carol@another.org", None),
    ):
        store.create(
            Entity.CUSTOMER,
            {
                "customer_id": customer.customer_id,
                "external_id": customer.external_id,
                "email": customer.email,
                "name": customer.name,
            },
        )
    rows = [
        ("S-1", "C-1", "P-1", "active", "0", utc(2024, 1, 10), None, None),
        ("S-2", "C-1", "P-2", "active", "20", utc(2024, 3, 10), None, None),
        ("S-3", "C-2", "P-3", "canceled", "200", utc(2024, 2, 1), utc(2024, 6, 19), utc(2024, 5, 20)),
        ("S-4", "C-3", "P-2", "trialing", "20", utc(2024, 5, 1), None, None),
    ]
    for sub_id, customer_id, product_id, status, amount, start, end, canceled in rows:
        store.create(
            Entity.SUBSCRIPTION,
            {
                "subscription_id": sub_id,
                "external_id": f"sub_{sub_id}",
                "customer_id": customer_id,
                "product_id": product_id,
                "status": status,
                "amount": Decimal(amount),
                "start_date": start,
                "end_date": end,
                "canceled_at": canceled,
            },
        )
    return store
