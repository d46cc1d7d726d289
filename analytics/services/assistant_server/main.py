"""
SaaS Metrics Assistant MCP Server

Exposes the analytics chat assistant, dashboard trends, metric snapshots,
synthetic data generation and a health check as MCP tools.
"""

import logging
import sys

import structlog

# stdout carries the MCP protocol; all logs go to stderr
logging.basicConfig(
    format="%(message)s",
    stream=sys.stderr,
    level=logging.INFO,
)

structlog.configure(
    processors=[
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.JSONRenderer(),
    ],
    wrapper_class=structlog.make_filtering_bound_logger(logging.INFO),
    logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
)

logger = structlog.get_logger(__name__)

from analytics.services.assistant_server.instance import mcp  # noqa: E402

# Each module registers its tools with @mcp.tool() on import
from analytics.services.assistant_server.tools import (  # noqa: E402, F401
    assistant,
    dashboard,
    health_check,
    test_data,
)

logger.info(
    "assistant_server_initialized",
    tools=[
        "ask_analytics_question",
        "get_dashboard_trends",
        "generate_metric_snapshots",
        "generate_test_data",
        "health_check",
    ],
)


def main() -> None:
    mcp.run()


if __name__ == "__main__":
    main()
