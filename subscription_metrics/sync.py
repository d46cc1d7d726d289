"""Mirror billing-provider records into the record store.

The provider is reached through :class:`BillingProviderClient`, a thin
paginated list interface. Payloads follow the provider's JSON shape
(epoch-second timestamps, amounts in minor currency units). Records are
upserted by their provider id, so running a sync twice is harmless and the
latest provider values win.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Mapping, Optional, Protocol, Sequence

import structlog

from subscription_metrics.foundation.records import Connection, Customer, Product
from subscription_metrics.foundation.store import Entity, FieldEquals, RecordStore

logger = structlog.get_logger(__name__)

PAGE_SIZE = 100
MINOR_UNITS_PER_MAJOR = Decimal(100)


class Resource(str, Enum):
    CUSTOMERS = "customers"
    SUBSCRIPTIONS = "subscriptions"


@dataclass(frozen=True)
class Page:
    data: Sequence[Mapping[str, Any]]
    has_more: bool


class BillingProviderClient(Protocol):
    """Paginated read access to a connected billing account."""

    def list_page(
        self,
        resource: Resource,
        access_token: str,
        starting_after: Optional[str] = None,
        limit: int = PAGE_SIZE,
    ) -> Page: ...


class ExportFileClient:
    """``BillingProviderClient`` over a JSON export of a provider account.

    The export is an object with ``customers`` and ``subscriptions`` lists in
    the provider's payload shape. Pages are cut the same way the live API
    cuts them, so a sync from an export behaves like an online sync.
    """

    def __init__(self, payload: Mapping[str, Any]):
        self._items = {
            resource: list(payload.get(resource.value) or []) for resource in Resource
        }

    def list_page(
        self,
        resource: Resource,
        access_token: str,
        starting_after: Optional[str] = None,
        limit: int = PAGE_SIZE,
    ) -> Page:
        items = self._items[resource]
        start = 0
        if starting_after is not None:
            ids = [item["id"] for item in items]
            if starting_after not in ids:
                raise SyncError(f"Unknown {resource.value} cursor: {starting_after}")
            start = ids.index(starting_after) + 1
        chunk = items[start : start + limit]
        return Page(data=chunk, has_more=start + limit < len(items))


@dataclass(frozen=True)
class SyncResult:
    customers_count: int
    subscriptions_count: int
    skipped_subscriptions: int = 0


class SyncError(RuntimeError):
    """Raised when a provider payload cannot be mirrored."""


def fetch_all(
    client: BillingProviderClient,
    resource: Resource,
    access_token: str,
    page_size: int = PAGE_SIZE,
) -> list[Mapping[str, Any]]:
    """Follow ``starting_after`` cursors until the provider reports no more pages."""
    items: list[Mapping[str, Any]] = []
    starting_after: Optional[str] = None
    while True:
        page = client.list_page(
            resource, access_token, starting_after=starting_after, limit=page_size
        )
        items.extend(page.data)
        if not page.has_more or not page.data:
            break
        starting_after = page.data[-1]["id"]
    logger.debug("provider_resource_fetched", resource=resource.value, count=len(items))
    return items


def _timestamp(value: Optional[int]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromtimestamp(value, tz=timezone.utc)


def _major_units(unit_amount: Optional[int]) -> Decimal:
    if not unit_amount:
        return Decimal("0")
    return Decimal(unit_amount) / MINOR_UNITS_PER_MAJOR


def _reference_id(reference: Any) -> str:
    # Expanded references arrive as objects, collapsed ones as bare ids.
    if isinstance(reference, Mapping):
        return reference["id"]
    return reference


def _sync_customer(store: RecordStore, payload: Mapping[str, Any]) -> Customer:
    email = payload.get("email") or ""
    name = payload.get("name")
    return store.upsert(
        Entity.CUSTOMER,
        where=FieldEquals("external_id", payload["id"]),
        create={"external_id": payload["id"], "email": email, "name": name},
        update={"email": email, "name": name},
    )


def _sync_product(store: RecordStore, price: Mapping[str, Any]) -> Product:
    reference = price["product"]
    external_id = _reference_id(reference)
    name = reference.get("name", external_id) if isinstance(reference, Mapping) else external_id
    amount = _major_units(price.get("unit_amount"))
    return store.upsert(
        Entity.PRODUCT,
        where=FieldEquals("external_id", external_id),
        create={"external_id": external_id, "name": name, "price": amount},
        update={"name": name, "price": amount},
    )


def _first_price(payload: Mapping[str, Any]) -> Optional[Mapping[str, Any]]:
    items = payload.get("items", {}).get("data", [])
    if not items:
        return None
    price = items[0].get("price")
    if not price or not price.get("product"):
        return None
    return price


def sync_billing_data(
    client: BillingProviderClient,
    connection: Connection,
    store: RecordStore,
) -> SyncResult:
    """Mirror all customers, then all subscriptions (and their products).

    Subscriptions whose customer is unknown locally, or that carry no
    priced item, are skipped and logged rather than failing the sync.
    """
    log = logger.bind(account_id=connection.account_id)
    log.info("billing_sync_started")

    customers = fetch_all(client, Resource.CUSTOMERS, connection.access_token)
    for payload in customers:
        _sync_customer(store, payload)

    subscriptions = fetch_all(client, Resource.SUBSCRIPTIONS, connection.access_token)
    synced = 0
    skipped = 0
    for payload in subscriptions:
        customer = store.find_first(
            Entity.CUSTOMER,
            [FieldEquals("external_id", _reference_id(payload["customer"]))],
        )
        price = _first_price(payload)
        if customer is None or price is None:
            skipped += 1
            log.warning(
                "subscription_skipped",
                subscription=payload.get("id"),
                reason="unknown_customer" if customer is None else "no_price",
            )
            continue

        product = _sync_product(store, price)
        values = {
            "status": payload["status"],
            "amount": _major_units(price.get("unit_amount")),
            "product_id": product.product_id,
            "end_date": _timestamp(payload.get("ended_at")),
            "canceled_at": _timestamp(payload.get("canceled_at")),
        }
        try:
            store.upsert(
                Entity.SUBSCRIPTION,
                where=FieldEquals("external_id", payload["id"]),
                create={
                    **values,
                    "external_id": payload["id"],
                    "customer_id": customer.customer_id,
                    "currency": payload.get("currency", "usd"),
                    "start_date": _timestamp(payload["start_date"]),
                },
                update=values,
            )
        except (KeyError, ValueError) as exc:
            raise SyncError(
                f"Cannot mirror subscription {payload.get('id')}: {exc}"
            ) from exc
        synced += 1

    result = SyncResult(
        customers_count=len(customers),
        subscriptions_count=synced,
        skipped_subscriptions=skipped,
    )
    log.info(
        "billing_sync_completed",
        customers=result.customers_count,
        subscriptions=result.subscriptions_count,
        skipped=result.skipped_subscriptions,
    )
    return result


def record_connection(
    store: RecordStore, token_response: Mapping[str, Any], now: datetime
) -> Connection:
    """Store the credentials returned by the provider's OAuth token exchange.

    An existing connection for the same account has its tokens replaced.
    """
    account_id = token_response.get("stripe_user_id") or token_response.get("account_id")
    if not account_id or not token_response.get("access_token"):
        raise SyncError("Token response is missing the account id or access token")

    values = {
        "access_token": token_response["access_token"],
        "refresh_token": token_response.get("refresh_token"),
        "scope": token_response.get("scope"),
        "livemode": bool(token_response.get("livemode", False)),
        "updated_at": now,
    }
    connection = store.upsert(
        Entity.CONNECTION,
        where=FieldEquals("account_id", account_id),
        create={**values, "account_id": account_id},
        update=values,
    )
    logger.info("billing_connection_recorded", account_id=account_id)
    return connection
