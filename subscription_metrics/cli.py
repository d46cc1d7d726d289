"""Command line entry points for the subscription metrics toolkit."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Any, Optional

from subscription_metrics.analyses.churn import calculate_churn_rate
from subscription_metrics.analyses.growth import TimeGranularity
from subscription_metrics.analyses.retention import summarize_retention
from subscription_metrics.analyses.revenue import (
    ASSUMED_LIFETIME_MONTHS,
    calculate_revenue_metrics,
)
from subscription_metrics.foundation.records import (
    Connection,
    Customer,
    Product,
    Subscription,
)
from subscription_metrics.foundation.store import Entity, InMemoryRecordStore
from subscription_metrics.pandas.subscriptions import (
    calculate_subscription_growth_df,
    subscriptions_to_dataframe,
)
from subscription_metrics.sync import ExportFileClient, sync_billing_data
from subscription_metrics.synthetic.generator import (
    GeneratorConfig,
    SyntheticDataset,
    generate_dataset,
)

logger = logging.getLogger(__name__)


MAX_INPUT_BYTES = 25 * 1024 * 1024  # 25 MiB cap to avoid accidental OOM


def _parse_instant(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def dataset_to_dict(dataset: SyntheticDataset) -> dict[str, Any]:
    """Serialize a dataset to JSON-safe primitives (amounts as strings)."""
    return {
        "products": [
            {
                "product_id": p.product_id,
                "name": p.name,
                "price": str(p.price),
                "external_id": p.external_id,
            }
            for p in dataset.products
        ],
        "customers": [
            {
                "customer_id": c.customer_id,
                "external_id": c.external_id,
                "email": c.email,
                "name": c.name,
            }
            for c in dataset.customers
        ],
        "subscriptions": [
            {
                "subscription_id": s.subscription_id,
                "external_id": s.external_id,
                "customer_id": s.customer_id,
                "product_id": s.product_id,
                "status": s.status,
                "amount": str(s.amount),
                "start_date": _iso(s.start_date),
                "end_date": _iso(s.end_date),
                "canceled_at": _iso(s.canceled_at),
                "currency": s.currency,
            }
            for s in dataset.subscriptions
        ],
    }


def dataset_from_dict(payload: dict[str, Any]) -> SyntheticDataset:
    products = tuple(
        Product(
            product_id=item["product_id"],
            name=item["name"],
            price=Decimal(str(item["price"])),
            external_id=item.get("external_id"),
        )
        for item in payload.get("products", [])
    )
    customers = tuple(
        Customer(
            customer_id=item["customer_id"],
            external_id=item["external_id"],
            email=item["email"],
            name=item.get("name"),
        )
        for item in payload.get("customers", [])
    )
    by_product = {p.product_id: p for p in products}
    subscriptions = tuple(
        Subscription(
            subscription_id=item["subscription_id"],
            external_id=item["external_id"],
            customer_id=item["customer_id"],
            product_id=item["product_id"],
            status=item["status"],
            amount=Decimal(str(item["amount"])),
            start_date=_parse_instant(item["start_date"]),
            end_date=_parse_instant(item.get("end_date")),
            canceled_at=_parse_instant(item.get("canceled_at")),
            currency=item.get("currency", "usd"),
            product=by_product.get(item["product_id"]),
        )
        for item in payload.get("subscriptions", [])
    )
    return SyntheticDataset(
        products=products, customers=customers, subscriptions=subscriptions
    )


def _read_json_object(path: Path) -> dict[str, Any]:
    resolved = path.resolve()
    size = resolved.stat().st_size
    if size > MAX_INPUT_BYTES:
        raise ValueError(
            f"Input file {resolved} is {size} bytes; exceeds limit of {MAX_INPUT_BYTES} bytes"
        )
    with path.open("r", encoding="utf-8") as fh:
        payload = json.load(fh)
    if not isinstance(payload, dict):
        raise ValueError(f"Expected an object at the top level of {resolved}")
    return payload


def _write_json(payload: dict[str, Any], output: Optional[Path]) -> None:
    if output:
        output.parent.mkdir(parents=True, exist_ok=True)
        with output.open("w", encoding="utf-8") as fh:
            json.dump(payload, fh, indent=2)
    else:  # stdout fallback enables piping in shell usage.
        json.dump(payload, fp=sys.stdout, indent=2)
        print()


def _load_dataset(path: Path) -> SyntheticDataset:
    return dataset_from_dict(_read_json_object(path))


def generate_data_cli(argv: list[str] | None = None) -> int:
    """Write a synthetic Free/Plus/Pro subscription dataset as JSON."""

    parser = argparse.ArgumentParser(description=generate_data_cli.__doc__)
    parser.add_argument(
        "--output",
        type=Path,
        help="Optional path for the JSON dataset (defaults to stdout).",
    )
    parser.add_argument("--seed", type=int, help="RNG seed for reproducible output.")
    parser.add_argument(
        "--now",
        type=str,
        help="Reference instant (ISO 8601). Defaults to the current UTC time.",
    )
    parser.add_argument("--min-customers", type=int, default=10)
    parser.add_argument("--max-customers", type=int, default=30)

    args = parser.parse_args(argv)
    now = _parse_instant(args.now) or datetime.now(timezone.utc)
    config = GeneratorConfig(
        min_customers=args.min_customers,
        max_customers=args.max_customers,
        seed=args.seed,
    )
    dataset = generate_dataset(now, config=config)
    payload = dataset_to_dict(dataset)
    logger.info(
        f"Generated {len(dataset.customers)} customers and "
        f"{len(dataset.subscriptions)} subscriptions"
    )

    _write_json(payload, args.output)
    return 0


def metrics_cli(argv: list[str] | None = None) -> int:
    """Print revenue, churn and retention metrics for a JSON dataset."""

    parser = argparse.ArgumentParser(description=metrics_cli.__doc__)
    parser.add_argument("input", type=Path, help="Path to a JSON dataset")
    parser.add_argument(
        "--now",
        type=str,
        help="Reference instant (ISO 8601). Defaults to the current UTC time.",
    )
    parser.add_argument(
        "--retention-months",
        type=int,
        default=1,
        help="Trailing window for retention metrics in months (default: 1)",
    )
    parser.add_argument(
        "--lifetime-months",
        type=int,
        default=ASSUMED_LIFETIME_MONTHS,
        help=f"Assumed customer lifetime for LTV (default: {ASSUMED_LIFETIME_MONTHS})",
    )

    args = parser.parse_args(argv)
    now = _parse_instant(args.now) or datetime.now(timezone.utc)
    dataset = _load_dataset(args.input)

    if not dataset.subscriptions:
        logger.error("No subscriptions found in input file")
        return 1

    revenue = calculate_revenue_metrics(
        dataset.subscriptions,
        total_customer_count=len(dataset.customers),
        by_product=True,
        assumed_lifetime_months=args.lifetime_months,
    )
    churn = calculate_churn_rate(dataset.subscriptions)
    retention = summarize_retention(
        dataset.subscriptions,
        now,
        months=args.retention_months,
        assumed_lifetime_months=args.lifetime_months,
    )

    report = {
        "revenue": {
            "mrr": float(revenue.mrr),
            "arr": float(revenue.arr),
            "ltv": float(revenue.ltv),
            "active_customer_count": revenue.active_customer_count,
            "avg_revenue_per_customer": float(revenue.avg_revenue_per_customer),
            "by_product": [
                {
                    "name": p.name,
                    "customer_count": p.customer_count,
                    "mrr": float(p.mrr),
                    "arr": float(p.arr),
                    "percent_of_mrr": float(p.percent_of_mrr),
                }
                for p in revenue.by_product or ()
            ],
        },
        "churn": {
            "total_subscriptions": churn.total_subscriptions,
            "canceled_subscriptions": churn.canceled_subscriptions,
            "churn_rate": float(churn.churn_rate_pct),
        },
        "retention": {
            "ndr": float(retention.ndr),
            "churn_rate": float(retention.churn_rate),
            "ltv": float(retention.ltv),
            "active_subscriptions": retention.active_subscriptions,
            "gross_logo_retention": float(retention.gross_logo_retention),
        },
    }
    json.dump(report, fp=sys.stdout, indent=2, sort_keys=True)
    print()
    return 0


def growth_cli(argv: list[str] | None = None) -> int:
    """Export the subscription growth series of a JSON dataset to CSV."""

    parser = argparse.ArgumentParser(description=growth_cli.__doc__)
    parser.add_argument("input", type=Path, help="Path to a JSON dataset")
    parser.add_argument(
        "--output", type=Path, required=True, help="Path for the output CSV file"
    )
    parser.add_argument(
        "--granularity",
        choices=[item.value for item in TimeGranularity],
        default=TimeGranularity.MONTHLY.value,
        help="Bucket size (default: monthly)",
    )
    parser.add_argument(
        "--since",
        type=str,
        help="Only count events on/after this instant (ISO 8601).",
    )

    args = parser.parse_args(argv)
    dataset = _load_dataset(args.input)
    growth_df = calculate_subscription_growth_df(
        subscriptions_to_dataframe(dataset.subscriptions),
        TimeGranularity(args.granularity),
        since=_parse_instant(args.since),
    )

    args.output.parent.mkdir(parents=True, exist_ok=True)
    growth_df.to_csv(args.output, index=False)
    logger.info(f"Growth series with {len(growth_df)} periods exported to {args.output}")
    return 0


def sync_cli(argv: list[str] | None = None) -> int:
    """Mirror a billing-provider account export into a JSON dataset."""

    parser = argparse.ArgumentParser(description=sync_cli.__doc__)
    parser.add_argument(
        "export",
        type=Path,
        help="Provider export with 'customers' and 'subscriptions' lists",
    )
    parser.add_argument(
        "--output",
        type=Path,
        help="Optional path for the JSON dataset (defaults to stdout).",
    )
    parser.add_argument("--account-id", default="export", help="Connected account id")

    args = parser.parse_args(argv)
    payload = _read_json_object(args.export)

    store = InMemoryRecordStore()
    connection = Connection(account_id=args.account_id, access_token="export")
    result = sync_billing_data(ExportFileClient(payload), connection, store)
    logger.info(
        f"Synced {result.customers_count} customers and "
        f"{result.subscriptions_count} subscriptions "
        f"({result.skipped_subscriptions} skipped)"
    )

    dataset = SyntheticDataset(
        products=tuple(store.find_many(Entity.PRODUCT)),
        customers=tuple(store.find_many(Entity.CUSTOMER)),
        subscriptions=tuple(store.find_many(Entity.SUBSCRIPTION)),
    )
    _write_json(dataset_to_dict(dataset), args.output)
    return 0


def main() -> None:
    raise SystemExit(metrics_cli())


if __name__ == "__main__":  # pragma: no cover
    main()
