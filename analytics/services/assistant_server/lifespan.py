"""Server startup and shutdown.

Startup reads settings from the environment, configures tracing and the
Prometheus endpoint, builds the shared services and optionally seeds the
store with synthetic data. Shutdown clears the shared services.
"""

from contextlib import asynccontextmanager

import structlog

from subscription_metrics.synthetic import populate_store

from analytics.services.assistant_server.config import AssistantSettings
from analytics.services.assistant_server.metrics import start_metrics_server
from analytics.services.assistant_server.observability import configure_observability
from analytics.services.assistant_server.state import (
    build_app_context,
    set_app_context,
)

logger = structlog.get_logger(__name__)

VERSION = "1.0.0"


@asynccontextmanager
async def app_lifespan(app):
    """Initialize and clean up assistant server resources."""
    settings = AssistantSettings.from_env()
    logger.info("assistant_server_starting", version=VERSION, environment=settings.environment)

    configure_observability(
        environment=settings.environment,
        otlp_endpoint=settings.otlp_endpoint,
        sampling_rate=settings.sampling_rate,
        service_version=VERSION,
    )

    try:
        start_metrics_server(port=settings.prometheus_metrics_port)
        logger.info("prometheus_metrics_server_started", port=settings.prometheus_metrics_port)
    except RuntimeError as e:
        # Already running, e.g. during hot reload
        logger.warning("prometheus_metrics_server_already_running", error=str(e))
    except OSError as e:
        logger.error(
            "prometheus_metrics_server_failed",
            error=str(e),
            port=settings.prometheus_metrics_port,
        )

    context = build_app_context(settings)
    if settings.seed_test_data:
        seeded = populate_store(context.store, context.clock())
        logger.info("test_data_seeded", customers=seeded.total_customers_count)

    set_app_context(context)
    try:
        yield context
    finally:
        set_app_context(None)
        logger.info("assistant_server_stopping")
