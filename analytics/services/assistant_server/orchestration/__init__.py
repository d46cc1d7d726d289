"""Two-phase question answering over the query tool registry."""

from analytics.services.assistant_server.orchestration.coordinator import (
    ChatCoordinator,
    ChatResult,
    ChatState,
)
from analytics.services.assistant_server.orchestration.llm_client import (
    AnthropicModelClient,
    LanguageModelClient,
    ModelCallError,
    ModelReply,
    ModelTimeoutError,
    ToolCall,
)

__all__ = [
    "AnthropicModelClient",
    "ChatCoordinator",
    "ChatResult",
    "ChatState",
    "LanguageModelClient",
    "ModelCallError",
    "ModelReply",
    "ModelTimeoutError",
    "ToolCall",
]
