"""Tests for the query tool registry: catalog, validation and dispatch."""

import json
from datetime import datetime, timezone

import pytest
from prometheus_client import REGISTRY
from pydantic import BaseModel

from analytics.services.assistant_server.config import AssistantSettings
from analytics.services.assistant_server.registry import (
    TOOL_CATALOG,
    RegistryError,
    ToolRegistry,
    ToolSpec,
    build_default_registry,
)


class EmptyRequest(BaseModel):
    pass


def _failing_handler(request, store, now):
    raise RuntimeError("database unavailable")


def _silent_failure(request, store, now):
    raise ZeroDivisionError()


@pytest.fixture
def registry(store, now):
    return build_default_registry(store, clock=lambda: now)


def test_catalog_order_and_shape(registry):
    """Every advertised tool is registered, in catalog order."""
    catalog = registry.catalog()

    assert [tool["name"] for tool in catalog] == list(TOOL_CATALOG)
    for tool in catalog:
        assert tool["description"]
        assert tool["input_schema"]["type"] == "object"
        assert "properties" in tool["input_schema"]


def test_catalog_schemas_are_camel_case_and_self_contained(registry):
    """Argument names use camelCase and enum references are inlined."""
    schemas = {tool["name"]: tool["input_schema"] for tool in registry.catalog()}

    assert set(schemas["getCustomerSample"]["properties"]) == {
        "count",
        "productFilter",
        "statusFilter",
    }
    assert schemas["countCustomers"]["properties"]["filter"]["enum"] == [
        "all",
        "with active subscriptions",
    ]
    assert "timePeriod" in schemas["calculateChurnRate"]["properties"]
    assert schemas["getProductStats"]["properties"] == {}
    assert "$ref" not in json.dumps(schemas)
    assert "$defs" not in json.dumps(schemas)


def test_invoke_runs_tool(registry):
    assert registry.invoke("countCustomers", {}) == {"count": 3}
    assert registry.invoke("countCustomers", None) == {"count": 3}


def test_invoke_accepts_camel_case_arguments(registry):
    result = registry.invoke("getRevenueMetrics", {"metric": "mrr", "byProduct": True})
    assert result["mrr"] == 40.0
    assert "byProduct" in result


def test_unknown_tool_returns_error(registry):
    """Unknown names come back as an error result, not an exception."""
    assert registry.invoke("dropAllTables", {}) == {"error": "Function dropAllTables not found"}


def test_invalid_arguments_return_error(registry):
    result = registry.invoke("calculateChurnRate", {"timePeriod": "forever"})

    assert result["error"].startswith("Invalid arguments for calculateChurnRate: timePeriod:")


def test_sample_count_must_be_positive(registry):
    result = registry.invoke("getCustomerSample", {"count": 0})
    assert "count" in result["error"]


def test_handler_failure_is_isolated(store, now):
    """A raising handler yields an error result and is counted as a failure."""
    registry = ToolRegistry(store, clock=lambda: now)
    registry.register(ToolSpec("flaky", "Always fails", EmptyRequest, _failing_handler))
    registry.register(ToolSpec("silent", "Fails without message", EmptyRequest, _silent_failure))
    before = REGISTRY.get_sample_value(
        "tool_call_total", {"tool_name": "flaky", "status": "failure"}
    ) or 0.0

    assert registry.invoke("flaky", {}) == {"error": "database unavailable"}
    assert registry.invoke("silent", {}) == {"error": "ZeroDivisionError"}
    after = REGISTRY.get_sample_value(
        "tool_call_total", {"tool_name": "flaky", "status": "failure"}
    )
    assert after == before + 1


def test_duplicate_registration_rejected(store):
    registry = ToolRegistry(store)
    spec = ToolSpec("flaky", "Always fails", EmptyRequest, _failing_handler)
    registry.register(spec)

    with pytest.raises(RegistryError, match="already registered"):
        registry.register(spec)


def test_ensure_complete_reports_mismatch(store):
    registry = ToolRegistry(store)
    registry.register(ToolSpec("flaky", "Always fails", EmptyRequest, _failing_handler))

    with pytest.raises(RegistryError, match="missing=.*countCustomers"):
        registry.ensure_complete()


def test_settings_bound_into_handlers(store, now):
    """Sample cap and LTV lifetime come from settings."""
    settings = AssistantSettings(customer_sample_cap=1, ltv_assumed_lifetime_months=24)
    registry = build_default_registry(store, clock=lambda: now, settings=settings)

    sample = registry.invoke("getCustomerSample", {"count": 10})
    ltv = registry.invoke("getRevenueMetrics", {"metric": "ltv"})

    assert len(sample["customers"]) == 1
    assert ltv == {"ltv": 320.0}


def test_clock_is_read_per_call(store):
    """Relative periods are resolved against the registry clock."""
    registry = build_default_registry(
        store, clock=lambda: datetime(2024, 3, 1, tzinfo=timezone.utc)
    )

    result = registry.invoke("getSubscriptionGrowth", {"timePeriod": "last month"})

    periods = [p["period"] for p in result["growthByPeriod"]]
    assert periods[0] == "2024-02"
    assert "2024-01" not in periods
