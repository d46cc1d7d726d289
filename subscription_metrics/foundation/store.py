"""Record store with a closed set of filter criteria.

The store is the only stateful collaborator of the metrics engine. It is
constructed once by the application entrypoint and handed to every component
that needs it; nothing in this package creates a store of its own.

Filters are expressed with a small, closed family of criterion types instead
of ad hoc dictionaries, and are validated against the target entity before
any record is read:

- :class:`FieldEquals` / :class:`FieldIn`: equality and membership
- :class:`TextMatch`: substring match, case-insensitive by default
- :class:`DateRange`: inclusive lower and/or upper bound on a datetime field
- :class:`HasRelated`: at least one related record matches the sub-criteria
"""

from __future__ import annotations

import threading
import uuid
from dataclasses import dataclass, fields, replace
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Mapping, Optional, Protocol, Sequence, Union

from subscription_metrics.foundation.records import (
    Connection,
    Customer,
    MetricSnapshot,
    Product,
    Subscription,
)


class Entity(str, Enum):
    """Record types held by the store."""

    CUSTOMER = "customer"
    PRODUCT = "product"
    SUBSCRIPTION = "subscription"
    CONNECTION = "connection"
    METRIC_SNAPSHOT = "metric_snapshot"


class InvalidCriteriaError(ValueError):
    """Raised when a filter, include or ordering does not fit the entity."""


@dataclass(frozen=True)
class _EntityInfo:
    record_type: type
    key_field: str


@dataclass(frozen=True)
class _Relation:
    target: Entity
    local_field: str
    remote_field: str
    many: bool


_ENTITIES: dict[Entity, _EntityInfo] = {
    Entity.CUSTOMER: _EntityInfo(Customer, "customer_id"),
    Entity.PRODUCT: _EntityInfo(Product, "product_id"),
    Entity.SUBSCRIPTION: _EntityInfo(Subscription, "subscription_id"),
    Entity.CONNECTION: _EntityInfo(Connection, "account_id"),
    Entity.METRIC_SNAPSHOT: _EntityInfo(MetricSnapshot, "snapshot_id"),
}

_RELATIONS: dict[tuple[Entity, str], _Relation] = {
    (Entity.CUSTOMER, "subscriptions"): _Relation(
        Entity.SUBSCRIPTION, "customer_id", "customer_id", many=True
    ),
    (Entity.PRODUCT, "subscriptions"): _Relation(
        Entity.SUBSCRIPTION, "product_id", "product_id", many=True
    ),
    (Entity.SUBSCRIPTION, "product"): _Relation(
        Entity.PRODUCT, "product_id", "product_id", many=False
    ),
    (Entity.SUBSCRIPTION, "customer"): _Relation(
        Entity.CUSTOMER, "customer_id", "customer_id", many=False
    ),
}


@dataclass(frozen=True)
class FieldEquals:
    """Field value equals ``value``."""

    field: str
    value: Any


@dataclass(frozen=True)
class FieldIn:
    """Field value is one of ``values``."""

    field: str
    values: frozenset

    def __post_init__(self) -> None:
        object.__setattr__(self, "values", frozenset(self.values))


@dataclass(frozen=True)
class TextMatch:
    """Field value contains ``text``."""

    field: str
    text: str
    case_insensitive: bool = True


@dataclass(frozen=True)
class DateRange:
    """Field value lies within ``[start, end]``; open bounds are None.

    Records whose field is None never match.
    """

    field: str
    start: Optional[datetime] = None
    end: Optional[datetime] = None

    def __post_init__(self) -> None:
        if self.start is not None and self.end is not None and self.start > self.end:
            raise InvalidCriteriaError(
                f"DateRange start ({self.start.isoformat()}) is after end ({self.end.isoformat()})"
            )


@dataclass(frozen=True)
class HasRelated:
    """At least one related record matches all of ``criteria``."""

    relation: str
    criteria: tuple["Criterion", ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "criteria", tuple(self.criteria))


Criterion = Union[FieldEquals, FieldIn, TextMatch, DateRange, HasRelated]


def _relation_names(entity: Entity) -> set[str]:
    return {name for (owner, name) in _RELATIONS if owner == entity}


def _scalar_fields(entity: Entity) -> set[str]:
    record_type = _ENTITIES[entity].record_type
    return {f.name for f in fields(record_type)} - _relation_names(entity)


def get_relation(entity: Entity, relation: str) -> _Relation:
    try:
        return _RELATIONS[(entity, relation)]
    except KeyError:
        raise InvalidCriteriaError(
            f"Unknown relation '{relation}' for {entity.value}"
        ) from None


def validate_criteria(entity: Entity, criteria: Sequence[Criterion]) -> None:
    """Check that every criterion refers to a real field or relation.

    Raises
    ------
    InvalidCriteriaError
        If a criterion names an unknown field or relation, or is not one of
        the supported criterion types.
    """
    known = _scalar_fields(entity)
    for criterion in criteria:
        if isinstance(criterion, HasRelated):
            relation = get_relation(entity, criterion.relation)
            validate_criteria(relation.target, criterion.criteria)
            continue
        if not isinstance(criterion, (FieldEquals, FieldIn, TextMatch, DateRange)):
            raise InvalidCriteriaError(
                f"Unsupported criterion type: {type(criterion).__name__}"
            )
        if criterion.field not in known:
            raise InvalidCriteriaError(
                f"Unknown field '{criterion.field}' for {entity.value}"
            )


def _parse_includes(entity: Entity, include: Sequence[str]) -> dict[str, list[str]]:
    """Split dotted include paths into first hop -> nested paths."""
    tree: dict[str, list[str]] = {}
    for path in include:
        head, _, rest = path.partition(".")
        get_relation(entity, head)
        nested = tree.setdefault(head, [])
        if rest:
            nested.append(rest)
    return tree


class RecordStore(Protocol):
    """Operations the metrics core needs from durable storage."""

    def count(self, entity: Entity, criteria: Sequence[Criterion] = ()) -> int: ...

    def find_many(
        self,
        entity: Entity,
        criteria: Sequence[Criterion] = (),
        include: Sequence[str] = (),
        limit: Optional[int] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> list[Any]: ...

    def find_first(
        self,
        entity: Entity,
        criteria: Sequence[Criterion] = (),
        include: Sequence[str] = (),
    ) -> Optional[Any]: ...

    def create(self, entity: Entity, values: Mapping[str, Any]) -> Any: ...

    def upsert(
        self,
        entity: Entity,
        where: FieldEquals,
        create: Mapping[str, Any],
        update: Mapping[str, Any],
    ) -> Any: ...

    def aggregate(
        self, entity: Entity, criteria: Sequence[Criterion], sum_field: str
    ) -> Decimal: ...


class InMemoryRecordStore:
    """Thread-safe in-process implementation of :class:`RecordStore`.

    Records are kept per entity in insertion order, so unordered queries
    return records in the order they were first created. Upserts keep the
    original position of the record they update.
    """

    def __init__(self) -> None:
        self._tables: dict[Entity, dict[str, Any]] = {entity: {} for entity in Entity}
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def count(self, entity: Entity, criteria: Sequence[Criterion] = ()) -> int:
        validate_criteria(entity, criteria)
        with self._lock:
            return sum(1 for _ in self._iter_matching(entity, criteria))

    def find_many(
        self,
        entity: Entity,
        criteria: Sequence[Criterion] = (),
        include: Sequence[str] = (),
        limit: Optional[int] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> list[Any]:
        validate_criteria(entity, criteria)
        include_tree = _parse_includes(entity, include)
        if order_by is not None and order_by not in _scalar_fields(entity):
            raise InvalidCriteriaError(
                f"Cannot order {entity.value} by unknown field '{order_by}'"
            )
        if limit is not None and limit < 0:
            raise InvalidCriteriaError(f"limit must be non-negative: {limit}")

        with self._lock:
            records = list(self._iter_matching(entity, criteria))
            if order_by is not None:
                records = _sorted_records(records, order_by, descending)
            if limit is not None:
                records = records[:limit]
            return [self._attach(entity, record, include_tree) for record in records]

    def find_first(
        self,
        entity: Entity,
        criteria: Sequence[Criterion] = (),
        include: Sequence[str] = (),
    ) -> Optional[Any]:
        found = self.find_many(entity, criteria, include=include, limit=1)
        return found[0] if found else None

    def aggregate(
        self, entity: Entity, criteria: Sequence[Criterion], sum_field: str
    ) -> Decimal:
        validate_criteria(entity, criteria)
        if sum_field not in _scalar_fields(entity):
            raise InvalidCriteriaError(
                f"Unknown field '{sum_field}' for {entity.value}"
            )
        with self._lock:
            total = Decimal("0")
            for record in self._iter_matching(entity, criteria):
                value = getattr(record, sum_field)
                if value is None:
                    continue
                if isinstance(value, bool) or not isinstance(value, (int, Decimal)):
                    raise InvalidCriteriaError(
                        f"Field '{sum_field}' of {entity.value} is not numeric"
                    )
                total += Decimal(value)
            return total

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create(self, entity: Entity, values: Mapping[str, Any]) -> Any:
        info = _ENTITIES[entity]
        payload = dict(values)
        unknown = set(payload) - _scalar_fields(entity)
        if unknown:
            raise InvalidCriteriaError(
                f"Unknown fields for {entity.value}: {sorted(unknown)}"
            )
        if not payload.get(info.key_field):
            payload[info.key_field] = uuid.uuid4().hex
        record = info.record_type(**payload)
        key = getattr(record, info.key_field)
        with self._lock:
            table = self._tables[entity]
            if key in table:
                raise ValueError(f"Duplicate {entity.value} key: {key}")
            table[key] = record
        return record

    def upsert(
        self,
        entity: Entity,
        where: FieldEquals,
        create: Mapping[str, Any],
        update: Mapping[str, Any],
    ) -> Any:
        """Update the first record matching ``where`` or create a new one."""
        validate_criteria(entity, [where])
        unknown = set(update) - _scalar_fields(entity)
        if unknown:
            raise InvalidCriteriaError(
                f"Unknown fields for {entity.value}: {sorted(unknown)}"
            )
        info = _ENTITIES[entity]
        with self._lock:
            existing = next(self._iter_matching(entity, [where]), None)
            if existing is None:
                return self.create(entity, create)
            updated = replace(existing, **update)
            table = self._tables[entity]
            old_key = getattr(existing, info.key_field)
            new_key = getattr(updated, info.key_field)
            if new_key != old_key:
                raise ValueError(
                    f"Upsert cannot change the {entity.value} key ({old_key} -> {new_key})"
                )
            table[old_key] = updated
            return updated

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _iter_matching(self, entity: Entity, criteria: Sequence[Criterion]):
        for record in self._tables[entity].values():
            if all(self._matches(entity, record, c) for c in criteria):
                yield record

    def _matches(self, entity: Entity, record: Any, criterion: Criterion) -> bool:
        if isinstance(criterion, HasRelated):
            relation = get_relation(entity, criterion.relation)
            return any(
                all(self._matches(relation.target, related, c) for c in criterion.criteria)
                for related in self._related(relation, record)
            )

        value = getattr(record, criterion.field)
        if isinstance(criterion, FieldEquals):
            return value == criterion.value
        if isinstance(criterion, FieldIn):
            return value in criterion.values
        if isinstance(criterion, TextMatch):
            if value is None:
                return False
            if criterion.case_insensitive:
                return criterion.text.casefold() in str(value).casefold()
            return criterion.text in str(value)
        if isinstance(criterion, DateRange):
            if value is None:
                return False
            if criterion.start is not None and value < criterion.start:
                return False
            if criterion.end is not None and value > criterion.end:
                return False
            return True
        raise InvalidCriteriaError(
            f"Unsupported criterion type: {type(criterion).__name__}"
        )

    def _related(self, relation: _Relation, record: Any) -> list[Any]:
        local_value = getattr(record, relation.local_field)
        return [
            candidate
            for candidate in self._tables[relation.target].values()
            if getattr(candidate, relation.remote_field) == local_value
        ]

    def _attach(self, entity: Entity, record: Any, include_tree: dict[str, list[str]]) -> Any:
        if not include_tree:
            return record
        attached: dict[str, Any] = {}
        for name, nested_paths in include_tree.items():
            relation = get_relation(entity, name)
            nested_tree = _parse_includes(relation.target, nested_paths)
            related = [
                self._attach(relation.target, item, nested_tree)
                for item in self._related(relation, record)
            ]
            if relation.many:
                attached[name] = tuple(related)
            else:
                attached[name] = related[0] if related else None
        return replace(record, **attached)


def _sorted_records(records: list[Any], order_by: str, descending: bool) -> list[Any]:
    present = [r for r in records if getattr(r, order_by) is not None]
    missing = [r for r in records if getattr(r, order_by) is None]
    present.sort(key=lambda r: getattr(r, order_by), reverse=descending)
    return present + missing
