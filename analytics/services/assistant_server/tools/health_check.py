"""Health Check MCP Tool

Reports whether the record store, tool registry and chat model are usable,
with record counts and server uptime.
"""

import time
from datetime import datetime, timezone

import structlog
from fastmcp import Context
from opentelemetry import trace
from pydantic import BaseModel, Field

from subscription_metrics.foundation.store import Entity

from analytics.services.assistant_server.instance import mcp
from analytics.services.assistant_server.registry import TOOL_CATALOG, RegistryError
from analytics.services.assistant_server.state import AppContext, get_app_context

logger = structlog.get_logger(__name__)

_SERVER_START_TIME = time.time()


class HealthCheckResponse(BaseModel):
    """Health check response with system status."""

    status: str = Field(
        description="Overall health status: 'healthy', 'degraded', or 'unhealthy'"
    )
    timestamp: str = Field(description="ISO timestamp of health check")
    checks: dict[str, str] = Field(description="Individual component health checks")
    uptime_seconds: float
    record_counts: dict[str, int] = Field(
        default_factory=dict, description="Stored records per entity"
    )


def health_check_impl(context: AppContext | None) -> HealthCheckResponse:
    checks: dict[str, str] = {}
    record_counts: dict[str, int] = {}
    status = "healthy"

    if context is None:
        checks["server"] = "unhealthy: not initialized"
        status = "unhealthy"
    else:
        checks["server"] = "healthy"

        try:
            record_counts = {
                entity.value: context.store.count(entity)
                for entity in (Entity.CUSTOMER, Entity.PRODUCT, Entity.SUBSCRIPTION)
            }
            checks["record_store"] = "healthy"
            if not record_counts[Entity.SUBSCRIPTION.value]:
                checks["data"] = "no subscriptions loaded (use generate_test_data)"
        except Exception as e:
            checks["record_store"] = f"unhealthy: {e}"
            status = "unhealthy"
            logger.error("record_store_check_failed", error=str(e))

        try:
            context.registry.ensure_complete(TOOL_CATALOG)
            checks["tool_registry"] = f"healthy ({len(TOOL_CATALOG)} tools)"
        except RegistryError as e:
            checks["tool_registry"] = f"unhealthy: {e}"
            status = "unhealthy"

        if context.coordinator is None:
            checks["chat"] = "degraded: ANTHROPIC_API_KEY not set"
            if status == "healthy":
                status = "degraded"
        else:
            checks["chat"] = "healthy"

    tracer_provider = trace.get_tracer_provider()
    checks["tracing"] = (
        "configured"
        if type(tracer_provider).__name__ != "ProxyTracerProvider"
        else "not configured"
    )

    return HealthCheckResponse(
        status=status,
        timestamp=datetime.now(timezone.utc).isoformat(),
        checks=checks,
        uptime_seconds=time.time() - _SERVER_START_TIME,
        record_counts=record_counts,
    )


@mcp.tool()
async def health_check(ctx: Context) -> HealthCheckResponse:
    """
    Check health of the assistant server and its dependencies.

    Returns:
        HealthCheckResponse with overall status and per-component checks
    """
    logger.info("health_check_starting")
    try:
        context = get_app_context()
    except RuntimeError:
        context = None

    response = health_check_impl(context)
    logger.info("health_check_complete", status=response.status, checks=response.checks)
    if response.status != "healthy":
        await ctx.warning(f"Health status: {response.status}")
    return response
