"""Query Tool Registry

The fixed catalog of query functions the language model may call. Each entry
pairs a name and description with a pydantic request model (whose JSON
schema is advertised to the model) and a handler that runs against the
record store.

``ToolRegistry.invoke`` is the single dispatch point and never raises: an
unknown name, invalid arguments or a failing handler all come back as
``{"error": message}`` so one bad call cannot take down the others in the
same batch.
"""

import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import datetime, timezone
from functools import partial
from typing import Any

import structlog
from pydantic import BaseModel, ValidationError

from subscription_metrics.foundation.store import RecordStore

from analytics.services.assistant_server.config import AssistantSettings
from analytics.services.assistant_server.metrics import record_tool_call
from analytics.services.assistant_server.queries import (
    ChurnRateRequest,
    CountCustomersRequest,
    CustomerSampleRequest,
    FindCustomerByEmailRequest,
    PlanChangesRequest,
    ProductStatsRequest,
    RevenueMetricsRequest,
    SubscriptionGrowthRequest,
    analyze_plan_changes_impl,
    calculate_churn_rate_impl,
    count_customers_impl,
    find_customer_by_email_impl,
    get_customer_sample_impl,
    get_product_stats_impl,
    get_revenue_metrics_impl,
    get_subscription_growth_impl,
)

logger = structlog.get_logger(__name__)

Clock = Callable[[], datetime]
Handler = Callable[[BaseModel, RecordStore, datetime], dict[str, Any]]

#: Names advertised to the model, in catalog order.
TOOL_CATALOG = (
    "countCustomers",
    "getProductStats",
    "getCustomerSample",
    "calculateChurnRate",
    "getRevenueMetrics",
    "getSubscriptionGrowth",
    "findCustomerByEmail",
    "analyzePlanChanges",
)


class RegistryError(RuntimeError):
    """Raised when the registered tools do not match the advertised catalog."""


@dataclass(frozen=True)
class ToolSpec:
    name: str
    description: str
    request_model: type[BaseModel]
    handler: Handler

    def input_schema(self) -> dict[str, Any]:
        """JSON schema of the arguments, camelCase, with enum references inlined."""
        schema = self.request_model.model_json_schema(by_alias=True)
        schema.pop("title", None)
        defs = schema.pop("$defs", {})
        resolved = _inline_refs(schema, defs)
        resolved.setdefault("properties", {})
        return resolved


def _inline_refs(node: Any, defs: dict[str, Any]) -> Any:
    if isinstance(node, dict):
        if "$ref" in node:
            target = defs[node["$ref"].rsplit("/", 1)[-1]]
            siblings = {k: v for k, v in node.items() if k != "$ref"}
            merged = {**_inline_refs(target, defs), **_inline_refs(siblings, defs)}
            merged.pop("title", None)
            return merged
        return {key: _inline_refs(value, defs) for key, value in node.items()}
    if isinstance(node, list):
        return [_inline_refs(item, defs) for item in node]
    return node


def _describe_validation_error(name: str, exc: ValidationError) -> str:
    problems = "; ".join(
        f"{'.'.join(str(part) for part in error['loc']) or 'arguments'}: {error['msg']}"
        for error in exc.errors()
    )
    return f"Invalid arguments for {name}: {problems}"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ToolRegistry:
    """Named, schema-validated query functions bound to one record store."""

    def __init__(self, store: RecordStore, clock: Clock = _utc_now):
        self._store = store
        self._clock = clock
        self._tools: dict[str, ToolSpec] = {}

    def register(self, spec: ToolSpec) -> None:
        if spec.name in self._tools:
            raise RegistryError(f"Tool already registered: {spec.name}")
        self._tools[spec.name] = spec
        logger.debug("tool_registered", tool_name=spec.name)

    def names(self) -> list[str]:
        return list(self._tools)

    def get(self, name: str) -> ToolSpec | None:
        return self._tools.get(name)

    def catalog(self) -> list[dict[str, Any]]:
        """Tool definitions in the shape the Anthropic messages API expects."""
        return [
            {
                "name": spec.name,
                "description": spec.description,
                "input_schema": spec.input_schema(),
            }
            for spec in self._tools.values()
        ]

    def ensure_complete(self, expected_names: Iterable[str] = TOOL_CATALOG) -> None:
        """Fail fast when advertised and registered tool names differ."""
        expected = set(expected_names)
        registered = set(self._tools)
        if expected != registered:
            raise RegistryError(
                "Tool catalog mismatch: "
                f"missing={sorted(expected - registered)}, "
                f"unexpected={sorted(registered - expected)}"
            )

    def invoke(self, name: str, arguments: dict[str, Any] | None) -> dict[str, Any]:
        """Validate arguments and run one tool; errors are returned, not raised."""
        spec = self._tools.get(name)
        if spec is None:
            logger.warning("unknown_tool_requested", tool_name=name)
            return {"error": f"Function {name} not found"}

        try:
            request = spec.request_model.model_validate(arguments or {})
        except ValidationError as e:
            logger.warning("tool_arguments_invalid", tool_name=name, error_count=e.error_count())
            return {"error": _describe_validation_error(name, e)}

        start = time.perf_counter()
        try:
            result = spec.handler(request, self._store, self._clock())
        except Exception as e:
            duration = time.perf_counter() - start
            record_tool_call(name, duration, success=False)
            logger.error(
                "tool_call_failed",
                tool_name=name,
                error=str(e),
                error_type=type(e).__name__,
            )
            return {"error": str(e) or type(e).__name__}

        duration = time.perf_counter() - start
        record_tool_call(name, duration, success=True)
        logger.info("tool_call_completed", tool_name=name, duration_ms=duration * 1000)
        return result


def build_default_registry(
    store: RecordStore,
    clock: Clock = _utc_now,
    settings: AssistantSettings | None = None,
) -> ToolRegistry:
    """Register the full query catalog against ``store``."""
    settings = settings or AssistantSettings()
    registry = ToolRegistry(store, clock)

    specs = [
        ToolSpec(
            "countCustomers",
            "Count the total number of customers or customers with specific criteria",
            CountCustomersRequest,
            count_customers_impl,
        ),
        ToolSpec(
            "getProductStats",
            "Get statistics about products including subscription counts and revenue",
            ProductStatsRequest,
            get_product_stats_impl,
        ),
        ToolSpec(
            "getCustomerSample",
            "Get a sample of customers with their subscription details",
            CustomerSampleRequest,
            partial(get_customer_sample_impl, max_count=settings.customer_sample_cap),
        ),
        ToolSpec(
            "calculateChurnRate",
            "Calculate churn rate for the entire customer base or by product",
            ChurnRateRequest,
            calculate_churn_rate_impl,
        ),
        ToolSpec(
            "getRevenueMetrics",
            "Get revenue metrics for the business",
            RevenueMetricsRequest,
            partial(
                get_revenue_metrics_impl,
                assumed_lifetime_months=settings.ltv_assumed_lifetime_months,
            ),
        ),
        ToolSpec(
            "getSubscriptionGrowth",
            "Get subscription growth over time",
            SubscriptionGrowthRequest,
            get_subscription_growth_impl,
        ),
        ToolSpec(
            "findCustomerByEmail",
            "Find a specific customer by email",
            FindCustomerByEmailRequest,
            find_customer_by_email_impl,
        ),
        ToolSpec(
            "analyzePlanChanges",
            "Analyze customers upgrading or downgrading between plans",
            PlanChangesRequest,
            analyze_plan_changes_impl,
        ),
    ]
    for spec in specs:
        registry.register(spec)

    registry.ensure_complete(TOOL_CATALOG)
    logger.info("tool_registry_built", tools=registry.names())
    return registry
