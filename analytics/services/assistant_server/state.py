"""Process-wide services for the assistant server.

The server lifespan builds one ``AppContext`` (record store, tool registry,
chat coordinator, settings and clock) and installs it here; MCP tools fetch
it with ``get_app_context()``. Components below the tools receive their
collaborators explicitly and never touch this module.
"""

import threading
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone

import structlog

from subscription_metrics.foundation.store import InMemoryRecordStore, RecordStore

from analytics.services.assistant_server.config import AssistantSettings
from analytics.services.assistant_server.orchestration import (
    AnthropicModelClient,
    ChatCoordinator,
    LanguageModelClient,
)
from analytics.services.assistant_server.registry import (
    ToolRegistry,
    build_default_registry,
)

logger = structlog.get_logger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class AppContext:
    """Services shared by every tool call.

    ``coordinator`` is ``None`` when no Anthropic API key is configured; the
    query tools and dashboard still work in that case.
    """

    store: RecordStore
    registry: ToolRegistry
    coordinator: ChatCoordinator | None
    settings: AssistantSettings
    clock: Callable[[], datetime] = utc_now


def build_app_context(
    settings: AssistantSettings,
    store: RecordStore | None = None,
    clock: Callable[[], datetime] = utc_now,
    model_client: LanguageModelClient | None = None,
) -> AppContext:
    """Wire the store, registry and coordinator from ``settings``."""
    store = store if store is not None else InMemoryRecordStore()
    registry = build_default_registry(store, clock, settings)

    if model_client is None and settings.anthropic_api_key:
        model_client = AnthropicModelClient(
            api_key=settings.anthropic_api_key,
            model=settings.anthropic_model,
            timeout_seconds=settings.llm_timeout_seconds,
        )

    coordinator = None
    if model_client is not None:
        coordinator = ChatCoordinator(registry, model_client, settings)
    else:
        logger.warning("chat_disabled_missing_api_key")

    return AppContext(
        store=store,
        registry=registry,
        coordinator=coordinator,
        settings=settings,
        clock=clock,
    )


_lock = threading.Lock()
_app_context: AppContext | None = None


def set_app_context(context: AppContext | None) -> None:
    global _app_context
    with _lock:
        _app_context = context


def get_app_context() -> AppContext:
    """Return the installed context.

    Raises:
        RuntimeError: If the server lifespan has not run
    """
    with _lock:
        if _app_context is None:
            raise RuntimeError("Assistant server is not initialized")
        return _app_context
