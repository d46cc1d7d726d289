"""Customer lookup tools: counts, samples and email search."""

from datetime import datetime
from enum import Enum
from typing import Any

import structlog
from pydantic import BaseModel, Field

from subscription_metrics.analyses.customers import (
    current_subscription,
    plan_history,
    total_paid,
)
from subscription_metrics.foundation.records import ACTIVE_STATUSES, Customer
from subscription_metrics.foundation.store import (
    Entity,
    FieldEquals,
    FieldIn,
    HasRelated,
    RecordStore,
    TextMatch,
)

from analytics.services.assistant_server.queries._serialize import (
    REQUEST_CONFIG,
    iso,
    money,
)

logger = structlog.get_logger(__name__)

DEFAULT_SAMPLE_SIZE = 10
MAX_SAMPLE_SIZE = 20
MAX_EMAIL_MATCHES = 5
NO_EMAIL_MATCH_MESSAGE = "No customers found with that email"


class CustomerFilter(str, Enum):
    ALL = "all"
    WITH_ACTIVE_SUBSCRIPTIONS = "with active subscriptions"


class CountCustomersRequest(BaseModel):
    """Arguments for countCustomers."""

    model_config = REQUEST_CONFIG

    filter: CustomerFilter = Field(
        default=CustomerFilter.ALL,
        description="Filter to apply: 'all' or 'with active subscriptions'",
    )


class CustomerSampleRequest(BaseModel):
    """Arguments for getCustomerSample."""

    model_config = REQUEST_CONFIG

    count: int = Field(
        default=DEFAULT_SAMPLE_SIZE,
        ge=1,
        description=f"Number of customers to retrieve (default: {DEFAULT_SAMPLE_SIZE}, max: {MAX_SAMPLE_SIZE})",
    )
    product_filter: str | None = Field(
        default=None, description="Filter by product name (e.g., 'Free', 'Plus', 'Pro')"
    )
    status_filter: str | None = Field(
        default=None,
        description="Filter by subscription status (e.g., 'active', 'canceled')",
    )


class FindCustomerByEmailRequest(BaseModel):
    """Arguments for findCustomerByEmail."""

    model_config = REQUEST_CONFIG

    email: str = Field(
        min_length=1, description="Email address to search for (partial match allowed)"
    )


def count_customers_impl(
    request: CountCustomersRequest, store: RecordStore, now: datetime
) -> dict[str, Any]:
    """Count all customers, or those holding an active or trialing subscription."""
    total = store.count(Entity.CUSTOMER)
    if request.filter is CustomerFilter.ALL:
        return {"count": total}

    active = store.count(
        Entity.CUSTOMER,
        [HasRelated("subscriptions", [FieldIn("status", ACTIVE_STATUSES)])],
    )
    return {"activeCustomers": active, "totalCustomers": total}


def get_customer_sample_impl(
    request: CustomerSampleRequest,
    store: RecordStore,
    now: datetime,
    max_count: int = MAX_SAMPLE_SIZE,
) -> dict[str, Any]:
    """Return up to ``min(count, max_count)`` customers with billing totals.

    Product and status filters apply to the same subscription: a customer
    matches when one subscription is on the product *and* has the status.
    """
    limit = min(request.count, max_count)

    subscription_criteria = []
    if request.product_filter:
        subscription_criteria.append(
            HasRelated("product", [FieldEquals("name", request.product_filter)])
        )
    if request.status_filter:
        subscription_criteria.append(FieldEquals("status", request.status_filter))
    criteria = (
        [HasRelated("subscriptions", subscription_criteria)]
        if subscription_criteria
        else []
    )

    customers = store.find_many(
        Entity.CUSTOMER,
        criteria,
        include=("subscriptions.product",),
        limit=limit,
    )
    logger.debug("customer_sample_selected", requested=request.count, returned=len(customers))
    return {
        "customers": [
            {
                "id": c.customer_id,
                "email": c.email,
                "name": c.name,
                "totalPaid": money(total_paid(c.subscriptions, now)),
                "subscriptionCount": len(c.subscriptions),
                "products": [
                    s.product.name for s in c.subscriptions if s.product is not None
                ],
            }
            for c in customers
        ]
    }


def _customer_profile(customer: Customer, now: datetime) -> dict[str, Any]:
    current = current_subscription(customer.subscriptions)
    current_plan = "None"
    if current is not None:
        current_plan = current.product.name if current.product is not None else "Unknown"
    return {
        "id": customer.customer_id,
        "email": customer.email,
        "name": customer.name,
        "currentPlan": current_plan,
        "monthlyValue": money(current.amount) if current is not None else 0.0,
        "isActive": current is not None,
        "totalPaid": money(total_paid(customer.subscriptions, now)),
        "subscriptionHistory": [
            {
                "product": s.product.name if s.product is not None else None,
                "price": money(s.amount),
                "status": s.status,
                "startDate": iso(s.start_date),
                "endDate": iso(s.end_date),
                "canceledAt": iso(s.canceled_at),
            }
            for s in plan_history(customer.subscriptions)
        ],
    }


def find_customer_by_email_impl(
    request: FindCustomerByEmailRequest, store: RecordStore, now: datetime
) -> dict[str, Any]:
    """Case-insensitive substring search on email, at most five matches.

    No match is not an error: an informational message is returned instead.
    """
    customers = store.find_many(
        Entity.CUSTOMER,
        [TextMatch("email", request.email)],
        include=("subscriptions.product",),
        limit=MAX_EMAIL_MATCHES,
    )
    if not customers:
        return {"message": NO_EMAIL_MATCH_MESSAGE}
    return {"customers": [_customer_profile(c, now) for c in customers]}
