"""Foundational building blocks for the subscription metrics platform.

This package exposes the mirrored billing records (customers, products,
subscriptions, provider connections, metric snapshots) and the record store
they live in, including its closed filter-criteria vocabulary.
"""

from .records import (
    ACTIVE_STATUSES,
    Connection,
    Customer,
    MetricSnapshot,
    Product,
    Subscription,
    SubscriptionStatus,
    is_active_at,
)
from .store import (
    DateRange,
    Entity,
    FieldEquals,
    FieldIn,
    HasRelated,
    InMemoryRecordStore,
    InvalidCriteriaError,
    RecordStore,
    TextMatch,
    validate_criteria,
)

__all__ = [
    "ACTIVE_STATUSES",
    "Connection",
    "Customer",
    "MetricSnapshot",
    "Product",
    "Subscription",
    "SubscriptionStatus",
    "is_active_at",
    "DateRange",
    "Entity",
    "FieldEquals",
    "FieldIn",
    "HasRelated",
    "InMemoryRecordStore",
    "InvalidCriteriaError",
    "RecordStore",
    "TextMatch",
    "validate_criteria",
]
