"""LangGraph coordinator for analytics questions

Answers one free-text question with two model calls around a batch of query
tool invocations:

1. plan: the model sees the question and the tool catalog and may request
   any number of tool calls (low temperature)
2. execute_tools: each requested call runs through the tool registry, one
   after another; every result is tagged with its call id
3. synthesize: the model sees the question, its own planning turn and all
   tool results and writes the answer (higher temperature)

Tool failures never stop the batch; they reach synthesis as ``{"error": ...}``
results. A failed planning or synthesis call ends the request with a generic
message and a machine-readable error code. Nothing is retried and no state is
kept between questions.
"""

import json
import time
from dataclasses import asdict, dataclass, field
from typing import Any, TypedDict

import structlog
from langgraph.graph import END, StateGraph
from opentelemetry import trace

from analytics.services.assistant_server.config import AssistantSettings
from analytics.services.assistant_server.metrics import (
    decrement_active_questions,
    increment_active_questions,
    record_model_call,
    record_question_duration,
)
from analytics.services.assistant_server.orchestration.llm_client import (
    LanguageModelClient,
    ModelCallError,
    ModelReply,
    ModelTimeoutError,
)
from analytics.services.assistant_server.orchestration.security import (
    sanitize_user_input,
)
from analytics.services.assistant_server.registry import ToolRegistry

logger = structlog.get_logger(__name__)
tracer = trace.get_tracer(__name__)

PLANNING_PROMPT = """You are an analytics AI assistant for a SaaS business.
To answer the user's question, you'll need to decide what data to query.
You have access to several functions that can retrieve specific data from the database.
Think step by step about what data you need, then call the appropriate functions."""

SYNTHESIS_PROMPT = (
    "You are an expert SaaS analytics assistant. Analyze the data retrieved from "
    "the database and provide insights based on the user's question. Format your "
    "response in a clear, professional manner with relevant metrics highlighted. "
    "If appropriate, suggest visualizations or further analyses that might be "
    "valuable."
)

NO_TOOLS_FOLLOW_UP = "No data was retrieved. Answer the question using your notes above."

FALLBACK_REPLY ="I couldn't analyze the data at this time. Please try again."
FAILURE_MESSAGE = "Failed to process your request. Please try again."

ERROR_INVALID_QUESTION = "invalid_question"
ERROR_MODEL_TIMEOUT = "model_timeout"
ERROR_MODEL_CALL_FAILED = "model_call_failed"


class ChatState(TypedDict, total=False):
    """Workflow state for one question; fields fill in as nodes run."""

    question: str
    planning_reply: ModelReply | None
    tool_results: list[dict[str, Any]]
    reply: str | None


@dataclass
class ChatResult:
    """Outcome of one question.

    Attributes
    ----------
    reply:
        Answer text, or ``None`` when the request failed
    tool_results:
        ``{"tool_call_id", "name", "arguments", "result"}`` per executed call
    error:
        User-facing error message
    error_code:
        ``invalid_question``, ``model_timeout`` or ``model_call_failed``
    execution_time_ms:
        Wall time spent on the question
    """

    reply: str | None
    tool_results: list[dict[str, Any]] = field(default_factory=list)
    error: str | None = None
    error_code: str | None = None
    execution_time_ms: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class ChatCoordinator:
    """Plans, runs and summarizes query tool calls for a single question."""

    def __init__(
        self,
        registry: ToolRegistry,
        model_client: LanguageModelClient,
        settings: AssistantSettings | None = None,
    ):
        self.registry = registry
        self.model_client = model_client
        self.settings = settings or AssistantSettings()
        self.graph = self._build_graph()

    def _build_graph(self) -> Any:
        workflow = StateGraph(ChatState)

        workflow.add_node("plan", self._plan)
        workflow.add_node("execute_tools", self._execute_tools)
        workflow.add_node("synthesize", self._synthesize)

        workflow.set_entry_point("plan")
        workflow.add_edge("plan", "execute_tools")
        workflow.add_edge("execute_tools", "synthesize")
        workflow.add_edge("synthesize", END)

        return workflow.compile()

    async def _call_model(self, phase: str, **kwargs: Any) -> ModelReply:
        start = time.perf_counter()
        try:
            reply = await self.model_client.complete(**kwargs)
        except ModelTimeoutError:
            record_model_call(phase, time.perf_counter() - start, "timeout")
            raise
        except ModelCallError:
            record_model_call(phase, time.perf_counter() - start, "failure")
            raise
        record_model_call(
            phase,
            time.perf_counter() - start,
            "success",
            input_tokens=reply.input_tokens,
            output_tokens=reply.output_tokens,
        )
        return reply

    async def _plan(self, state: ChatState) -> ChatState:
        reply = await self._call_model(
            "planning",
            system=PLANNING_PROMPT,
            messages=[{"role": "user", "content": state["question"]}],
            tools=self.registry.catalog(),
            temperature=self.settings.planning_temperature,
            max_tokens=self.settings.planning_max_tokens,
            tool_choice={"type": "auto"},
        )
        logger.info(
            "planning_complete",
            tool_calls=[call.name for call in reply.tool_calls],
        )
        return {"planning_reply": reply}

    async def _execute_tools(self, state: ChatState) -> ChatState:
        planning_reply = state.get("planning_reply")
        tool_results = []
        for call in planning_reply.tool_calls if planning_reply else []:
            result = self.registry.invoke(call.name, call.arguments)
            tool_results.append(
                {
                    "tool_call_id": call.id,
                    "name": call.name,
                    "arguments": call.arguments,
                    "result": result,
                }
            )

        failed = [r["name"] for r in tool_results if "error" in r["result"]]
        logger.info(
            "tool_execution_complete",
            executed=len(tool_results),
            failed=failed,
        )
        return {"tool_results": tool_results}

    def _synthesis_messages(self, state: ChatState) -> list[dict[str, Any]]:
        messages: list[dict[str, Any]] = [
            {"role": "user", "content": state["question"]}
        ]
        tool_results = state.get("tool_results") or []
        planning_reply = state.get("planning_reply")
        if planning_reply is None or not planning_reply.raw_content:
            return messages

        messages.append({"role": "assistant", "content": planning_reply.raw_content})
        if not tool_results:
            # The request must end on a user turn
            messages.append({"role": "user", "content": NO_TOOLS_FOLLOW_UP})
            return messages

        messages.append(
            {
                "role": "user",
                "content": [
                    {
                        "type": "tool_result",
                        "tool_use_id": item["tool_call_id"],
                        "content": json.dumps(item["result"]),
                        "is_error": "error" in item["result"],
                    }
                    for item in tool_results
                ],
            }
        )
        return messages

    async def _synthesize(self, state: ChatState) -> ChatState:
        has_tool_results = bool(state.get("tool_results"))
        reply = await self._call_model(
            "synthesis",
            system=SYNTHESIS_PROMPT,
            messages=self._synthesis_messages(state),
            # tool_result blocks need the tool definitions; the answer must be text
            tools=self.registry.catalog() if has_tool_results else None,
            temperature=self.settings.synthesis_temperature,
            max_tokens=self.settings.synthesis_max_tokens,
            tool_choice={"type": "none"} if has_tool_results else None,
        )
        text = reply.content.strip()
        if not text:
            logger.warning("synthesis_returned_empty_content")
        return {"reply": text or FALLBACK_REPLY}

    async def ask(self, question: str) -> ChatResult:
        """Answer one question.

        Returns a ``ChatResult`` in every case; model transport failures are
        reported through ``error`` and ``error_code`` rather than raised.
        """
        start = time.perf_counter()

        try:
            question = sanitize_user_input(question)
        except ValueError as e:
            logger.warning("question_rejected", error=str(e))
            return ChatResult(
                reply=None,
                error=str(e),
                error_code=ERROR_INVALID_QUESTION,
            )

        increment_active_questions()
        with tracer.start_as_current_span("analytics_question") as span:
            span.set_attribute("question_length", len(question))
            logger.info("question_received", question=question[:200])

            initial_state: ChatState = {
                "question": question,
                "planning_reply": None,
                "tool_results": [],
                "reply": None,
            }

            try:
                final_state = await self.graph.ainvoke(initial_state)
            except ModelCallError as e:
                error_code = (
                    ERROR_MODEL_TIMEOUT
                    if isinstance(e, ModelTimeoutError)
                    else ERROR_MODEL_CALL_FAILED
                )
                span.record_exception(e)
                span.set_attribute("success", False)
                span.set_attribute("error_code", error_code)
                logger.error(
                    "question_failed",
                    error=str(e),
                    error_type=type(e).__name__,
                    error_code=error_code,
                )
                return ChatResult(
                    reply=None,
                    error=FAILURE_MESSAGE,
                    error_code=error_code,
                    execution_time_ms=(time.perf_counter() - start) * 1000,
                )
            finally:
                duration = time.perf_counter() - start
                record_question_duration(duration)
                decrement_active_questions()

            tool_results = final_state.get("tool_results", [])
            span.set_attribute("tool_call_count", len(tool_results))
            span.set_attribute("success", True)

            execution_time_ms = duration * 1000
            logger.info(
                "question_answered",
                tool_call_count=len(tool_results),
                execution_time_ms=execution_time_ms,
            )
            return ChatResult(
                reply=final_state.get("reply") or FALLBACK_REPLY,
                tool_results=tool_results,
                execution_time_ms=execution_time_ms,
            )
