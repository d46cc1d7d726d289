"""Prometheus Metrics Exporter

This module exports assistant server metrics to Prometheus for monitoring and alerting.

Metrics exported:
- tool_call_duration_seconds: Histogram of query tool execution times
- tool_call_total: Counter of query tool calls by status
- model_call_duration_seconds: Histogram of language-model call latency by phase
- model_call_total: Counter of language-model calls by phase and status
- model_tokens_total: Counter of tokens consumed, by direction
- question_duration_seconds: Histogram of end-to-end question handling time
- active_questions: Gauge of questions currently being answered

Usage:
    # Start Prometheus metrics server on port 8000
    >>> start_metrics_server(port=8000)

    # Metrics available at http://localhost:8000/metrics
"""

from threading import Lock

import structlog
from prometheus_client import Counter, Gauge, Histogram, generate_latest, start_http_server

logger = structlog.get_logger(__name__)

# Metrics definitions
tool_call_duration = Histogram(
    "tool_call_duration_seconds",
    "Query tool execution duration in seconds",
    ["tool_name"],
    buckets=[0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0],
)

tool_call_total = Counter(
    "tool_call_total",
    "Total query tool calls",
    ["tool_name", "status"],  # status: success or failure
)

model_call_duration = Histogram(
    "model_call_duration_seconds",
    "Language model call duration in seconds",
    ["phase"],  # phase: planning or synthesis
    buckets=[0.5, 1.0, 2.0, 5.0, 10.0, 20.0, 30.0, 60.0],
)

model_call_total = Counter(
    "model_call_total",
    "Total language model calls",
    ["phase", "status"],  # status: success, timeout or failure
)

model_tokens_total = Counter(
    "model_tokens_total",
    "Tokens consumed by language model calls",
    ["direction"],  # direction: input or output
)

question_duration = Histogram(
    "question_duration_seconds",
    "End-to-end question handling duration in seconds",
    buckets=[0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0, 120.0],
)

active_questions = Gauge("active_questions", "Number of questions currently being answered")

# Global state
_metrics_server_started = False
_metrics_lock = Lock()


def start_metrics_server(port: int = 8000):
    """Start Prometheus metrics HTTP server.

    Args:
        port: Port to expose metrics on (default: 8000)

    Raises:
        RuntimeError: If metrics server is already running
    """
    global _metrics_server_started

    with _metrics_lock:
        if _metrics_server_started:
            raise RuntimeError("Metrics server is already running")

        try:
            start_http_server(port)
            _metrics_server_started = True
            logger.info("prometheus_metrics_server_started", port=port)
        except Exception as e:
            logger.error(
                "prometheus_metrics_server_failed", port=port, error=str(e), error_type=type(e).__name__
            )
            raise


def get_metrics_text() -> bytes:
    """Get current Prometheus metrics in text format."""
    return generate_latest()


def record_tool_call(tool_name: str, duration_seconds: float, success: bool):
    """Record a query tool call.

    Args:
        tool_name: Registered tool name (e.g., 'getRevenueMetrics')
        duration_seconds: Execution duration in seconds
        success: Whether the handler returned without raising

    Example:
        >>> record_tool_call('countCustomers', 0.002, True)
    """
    status = "success" if success else "failure"

    tool_call_duration.labels(tool_name=tool_name).observe(duration_seconds)
    tool_call_total.labels(tool_name=tool_name, status=status).inc()


def record_model_call(
    phase: str,
    duration_seconds: float,
    status: str,
    input_tokens: int = 0,
    output_tokens: int = 0,
):
    """Record a language model call.

    Args:
        phase: 'planning' or 'synthesis'
        duration_seconds: Call latency in seconds
        status: 'success', 'timeout' or 'failure'
        input_tokens: Prompt tokens reported by the provider
        output_tokens: Completion tokens reported by the provider
    """
    model_call_duration.labels(phase=phase).observe(duration_seconds)
    model_call_total.labels(phase=phase, status=status).inc()
    if input_tokens:
        model_tokens_total.labels(direction="input").inc(input_tokens)
    if output_tokens:
        model_tokens_total.labels(direction="output").inc(output_tokens)


def record_question_duration(duration_seconds: float):
    """Record how long one question took end to end."""
    question_duration.observe(duration_seconds)


def increment_active_questions():
    """Call when a question starts."""
    active_questions.inc()


def decrement_active_questions():
    """Call when a question completes (success or failure)."""
    active_questions.dec()
