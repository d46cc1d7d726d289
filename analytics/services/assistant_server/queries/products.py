"""Per-product subscription statistics."""

from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel

from subscription_metrics.foundation.store import Entity, RecordStore

from analytics.services.assistant_server.queries._serialize import REQUEST_CONFIG, money


class ProductStatsRequest(BaseModel):
    """getProductStats takes no arguments."""

    model_config = REQUEST_CONFIG


def get_product_stats_impl(
    request: ProductStatsRequest, store: RecordStore, now: datetime
) -> dict[str, Any]:
    """List every product with subscription counts and MRR, plus overall totals."""
    products = store.find_many(Entity.PRODUCT, include=("subscriptions",))

    rows = []
    total_subscriptions = 0
    total_active = 0
    total_mrr = Decimal("0")
    for product in products:
        active = [s for s in product.subscriptions if s.is_active]
        mrr = sum((s.amount for s in active), Decimal("0"))
        rows.append(
            {
                "id": product.product_id,
                "name": product.name,
                "price": money(product.price),
                "totalSubscriptions": len(product.subscriptions),
                "activeSubscriptions": len(active),
                "mrr": money(mrr),
            }
        )
        total_subscriptions += len(product.subscriptions)
        total_active += len(active)
        total_mrr += mrr

    return {
        "products": rows,
        "totals": {
            "products": len(rows),
            "totalSubscriptions": total_subscriptions,
            "activeSubscriptions": total_active,
            "mrr": money(total_mrr),
        },
    }
