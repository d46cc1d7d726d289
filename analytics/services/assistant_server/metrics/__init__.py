"""Metrics package for the assistant server

This package provides Prometheus metrics collection and export for monitoring.
"""

from analytics.services.assistant_server.metrics.prometheus_exporter import (
    decrement_active_questions,
    get_metrics_text,
    increment_active_questions,
    record_model_call,
    record_question_duration,
    record_tool_call,
    start_metrics_server,
)

__all__ = [
    "start_metrics_server",
    "get_metrics_text",
    "record_tool_call",
    "record_model_call",
    "record_question_duration",
    "increment_active_questions",
    "decrement_active_questions",
]
