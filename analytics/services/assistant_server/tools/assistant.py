"""Analytics Question MCP Tool

Answers a free-text business question about the subscription data by letting
the language model pick query tools, running them, and summarizing the
results.
"""

from typing import Any

import structlog
from fastmcp import Context
from pydantic import BaseModel, Field

from analytics.services.assistant_server.instance import mcp
from analytics.services.assistant_server.state import AppContext, get_app_context

logger = structlog.get_logger(__name__)

NOT_CONFIGURED_MESSAGE = "ANTHROPIC_API_KEY is required to answer questions."


class AnalyticsQuestionRequest(BaseModel):
    """Request for a natural-language analytics answer."""

    question: str = Field(
        description="Question about customers, revenue, churn, growth or plan changes"
    )


class AnalyticsQuestionResponse(BaseModel):
    reply: str | None = Field(default=None, description="Answer for the user")
    tool_results: list[dict[str, Any]] = Field(
        default_factory=list,
        description="Each executed query tool call with its call id and result",
    )
    error: str | None = None
    error_code: str | None = Field(
        default=None,
        description="invalid_question, model_timeout, model_call_failed or not_configured",
    )
    execution_time_ms: float = 0.0


async def ask_analytics_question_impl(
    request: AnalyticsQuestionRequest, context: AppContext
) -> AnalyticsQuestionResponse:
    if context.coordinator is None:
        logger.error("anthropic_api_key_missing")
        return AnalyticsQuestionResponse(
            error=NOT_CONFIGURED_MESSAGE, error_code="not_configured"
        )

    result = await context.coordinator.ask(request.question)
    return AnalyticsQuestionResponse(**result.to_dict())


@mcp.tool()
async def ask_analytics_question(
    request: AnalyticsQuestionRequest, ctx: Context
) -> AnalyticsQuestionResponse:
    """
    Answer a question about the SaaS business in plain language.

    The assistant can count and sample customers, look customers up by email,
    compute churn, MRR/ARR/LTV and subscription growth, and analyze upgrades
    and downgrades. Each question is answered independently.

    Example questions:
        - "What is our MRR broken down by product?"
        - "How many customers churned in the last 3 months?"
        - "Are more customers upgrading or downgrading?"
    """
    await ctx.info(f"Answering analytics question: {request.question[:100]}")

    response = await ask_analytics_question_impl(request, get_app_context())

    if response.error:
        await ctx.warning(f"Question failed ({response.error_code}): {response.error}")
    else:
        await ctx.info(
            f"Answered with {len(response.tool_results)} query tool call(s) "
            f"in {response.execution_time_ms:.0f} ms"
        )
    return response
