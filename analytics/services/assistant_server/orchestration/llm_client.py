"""Language model client

A narrow async interface over the model provider: one ``complete`` call that
takes a system prompt, a message list and an optional tool catalog, and
returns the reply text plus any tool calls the model requested.

``AnthropicModelClient`` is the production implementation. Tests inject any
object with the same ``complete`` signature.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Protocol

import anthropic
import structlog
from anthropic import AsyncAnthropic

logger = structlog.get_logger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30.0


class ModelCallError(RuntimeError):
    """The model provider could not be reached or rejected the request."""


class ModelTimeoutError(ModelCallError):
    """The model call did not complete within the configured timeout."""


@dataclass(frozen=True)
class ToolCall:
    id: str
    name: str
    arguments: dict[str, Any]


@dataclass(frozen=True)
class ModelReply:
    """One model response.

    ``raw_content`` holds the response blocks as plain dicts so they can be
    replayed verbatim as an assistant turn in a follow-up request.
    """

    content: str
    tool_calls: list[ToolCall] = field(default_factory=list)
    raw_content: list[dict[str, Any]] = field(default_factory=list)
    input_tokens: int = 0
    output_tokens: int = 0


class LanguageModelClient(Protocol):
    async def complete(
        self,
        system: str,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
        temperature: float = 0.0,
        max_tokens: int = 1024,
        tool_choice: dict[str, Any] | None = None,
    ) -> ModelReply: ...


def _block_to_dict(block: Any) -> dict[str, Any] | None:
    if block.type == "text":
        # Empty text blocks are rejected when replayed as an assistant turn
        return {"type": "text", "text": block.text} if block.text else None
    if block.type == "tool_use":
        return {
            "type": "tool_use",
            "id": block.id,
            "name": block.name,
            "input": dict(block.input or {}),
        }
    return None


class AnthropicModelClient:
    """``LanguageModelClient`` backed by the Anthropic messages API.

    Token usage is accumulated across calls for cost monitoring.
    """

    def __init__(
        self,
        api_key: str,
        model: str = "claude-3-5-sonnet-20241022",
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        client: AsyncAnthropic | None = None,
    ):
        """Initialize the client.

        Args:
            api_key: Anthropic API key
            model: Claude model used for every call
            timeout_seconds: Upper bound on a single call
            client: Preconstructed SDK client (tests pass a mock)
        """
        self.client = client or AsyncAnthropic(api_key=api_key)
        self.model = model
        self.timeout_seconds = timeout_seconds
        self._total_input_tokens = 0
        self._total_output_tokens = 0
        logger.info("model_client_initialized", model=model)

    @property
    def token_usage(self) -> dict[str, int]:
        return {
            "input_tokens": self._total_input_tokens,
            "output_tokens": self._total_output_tokens,
        }

    async def complete(
        self,
        system: str,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
        temperature: float = 0.0,
        max_tokens: int = 1024,
        tool_choice: dict[str, Any] | None = None,
    ) -> ModelReply:
        """Send one messages request and normalize the response.

        Raises:
            ModelTimeoutError: If the call exceeds ``timeout_seconds``
            ModelCallError: If the provider returns an error or is unreachable
        """
        kwargs: dict[str, Any] = {
            "model": self.model,
            "system": system,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if tools:
            kwargs["tools"] = tools
            if tool_choice is not None:
                kwargs["tool_choice"] = tool_choice

        try:
            response = await asyncio.wait_for(
                self.client.messages.create(**kwargs),
                timeout=self.timeout_seconds,
            )
        except (asyncio.TimeoutError, anthropic.APITimeoutError) as e:
            logger.error("model_call_timed_out", timeout_seconds=self.timeout_seconds)
            raise ModelTimeoutError(
                f"Model call timed out after {self.timeout_seconds} seconds"
            ) from e
        except anthropic.APIError as e:
            logger.error("model_call_failed", error=str(e), error_type=type(e).__name__)
            raise ModelCallError(str(e)) from e

        usage = response.usage
        self._total_input_tokens += usage.input_tokens
        self._total_output_tokens += usage.output_tokens

        raw_content = [
            block for block in (_block_to_dict(b) for b in response.content) if block
        ]
        text = "".join(b["text"] for b in raw_content if b["type"] == "text")
        tool_calls = [
            ToolCall(id=b["id"], name=b["name"], arguments=b["input"])
            for b in raw_content
            if b["type"] == "tool_use"
        ]

        logger.info(
            "model_response_received",
            input_tokens=usage.input_tokens,
            output_tokens=usage.output_tokens,
            total_input_tokens=self._total_input_tokens,
            total_output_tokens=self._total_output_tokens,
            tool_call_count=len(tool_calls),
            stop_reason=response.stop_reason,
        )

        return ModelReply(
            content=text,
            tool_calls=tool_calls,
            raw_content=raw_content,
            input_tokens=usage.input_tokens,
            output_tokens=usage.output_tokens,
        )
