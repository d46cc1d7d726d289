"""
Tracing setup for the assistant server

Spans go to an OTLP gRPC collector when an endpoint is configured and to
stderr otherwise. stdout is reserved for the MCP protocol.
"""

import sys

import structlog
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from opentelemetry.sdk.trace.sampling import (
    ParentBasedTraceIdRatio,
    Sampler,
    TraceIdRatioBased,
)

logger = structlog.get_logger(__name__)

SERVICE_NAME = "saas-metrics-assistant"


def configure_observability(
    service_name: str = SERVICE_NAME,
    environment: str = "development",
    otlp_endpoint: str | None = None,
    sampling_rate: float = 1.0,
    service_version: str = "1.0.0",
) -> trace.Tracer:
    """
    Configure OpenTelemetry tracing.

    Args:
        service_name: Name of the service for telemetry identification
        environment: Deployment environment (development, staging, production)
        otlp_endpoint: OTLP gRPC endpoint (e.g., 'localhost:4317' for Jaeger).
                      If None, spans are printed to stderr
        sampling_rate: Trace sampling rate (0.0-1.0). Default 1.0 = sample all traces.
        service_version: Reported as ``service.version``

    Returns:
        Tracer for the service
    """
    resource = Resource.create(
        {
            "service.name": service_name,
            "service.version": service_version,
            "deployment.environment": environment,
        }
    )
    provider = TracerProvider(resource=resource, sampler=_create_sampler(sampling_rate))

    if otlp_endpoint:
        logger.info(
            "configuring_otlp_tracing",
            endpoint=otlp_endpoint,
            environment=environment,
            sampling_rate=sampling_rate,
        )
        # Plain gRPC; collectors are expected on a local or private network
        exporter = OTLPSpanExporter(endpoint=otlp_endpoint, insecure=True)
    else:
        logger.info("configuring_console_tracing", environment=environment)
        exporter = ConsoleSpanExporter(out=sys.stderr)

    provider.add_span_processor(BatchSpanProcessor(exporter))
    trace.set_tracer_provider(provider)

    logger.info(
        "observability_configured",
        service_name=service_name,
        environment=environment,
        otlp_enabled=otlp_endpoint is not None,
        sampling_rate=sampling_rate,
    )
    return trace.get_tracer(service_name)


def _create_sampler(sampling_rate: float) -> Sampler:
    if sampling_rate >= 1.0:
        return ParentBasedTraceIdRatio(1.0)
    if sampling_rate <= 0.0:
        return TraceIdRatioBased(0.0)
    return ParentBasedTraceIdRatio(sampling_rate)
