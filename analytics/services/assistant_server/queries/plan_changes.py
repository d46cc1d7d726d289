"""Upgrade/downgrade analysis tool."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from subscription_metrics.analyses.plan_changes import (
    ChangeType,
    PlanChangeGroup,
    analyze_plan_changes,
)
from subscription_metrics.foundation.store import Entity, RecordStore

from analytics.services.assistant_server.queries._serialize import (
    REQUEST_CONFIG,
    iso,
    money,
)


class PlanChangesRequest(BaseModel):
    """Arguments for analyzePlanChanges."""

    model_config = REQUEST_CONFIG

    change_type: ChangeType = Field(
        default=ChangeType.BOTH, description="Type of plan change to analyze"
    )


def _group_payload(group: PlanChangeGroup) -> dict[str, Any]:
    return {
        "count": group.count,
        "paths": dict(group.paths),
        "recentExamples": [
            {
                "customerId": t.customer_id,
                "email": t.email,
                "fromPlan": t.from_plan,
                "toPlan": t.to_plan,
                "priceDifference": money(t.price_difference),
                "date": iso(t.changed_at),
            }
            for t in group.recent_examples
        ],
    }


def analyze_plan_changes_impl(
    request: PlanChangesRequest, store: RecordStore, now: datetime
) -> dict[str, Any]:
    customers = store.find_many(Entity.CUSTOMER, include=("subscriptions.product",))
    analysis = analyze_plan_changes(customers, request.change_type)

    result: dict[str, Any] = {
        "summary": {
            "totalUpgrades": analysis.summary.total_upgrades,
            "totalDowngrades": analysis.summary.total_downgrades,
            "upgradeDowngradeRatio": money(analysis.summary.upgrade_downgrade_ratio),
        }
    }
    if analysis.upgrades is not None:
        result["upgrades"] = _group_payload(analysis.upgrades)
    if analysis.downgrades is not None:
        result["downgrades"] = _group_payload(analysis.downgrades)
    return result
