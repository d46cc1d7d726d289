"""Tests for the Anthropic-backed language model client."""

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, Mock

import anthropic
import httpx
import pytest

from analytics.services.assistant_server.orchestration.llm_client import (
    AnthropicModelClient,
    ModelCallError,
    ModelTimeoutError,
)


def _response(*blocks, input_tokens=10, output_tokens=5, stop_reason="end_turn"):
    return SimpleNamespace(
        content=list(blocks),
        usage=SimpleNamespace(input_tokens=input_tokens, output_tokens=output_tokens),
        stop_reason=stop_reason,
    )


def _text(text):
    return SimpleNamespace(type="text", text=text)


def _tool_use(block_id, name, arguments):
    return SimpleNamespace(type="tool_use", id=block_id, name=name, input=arguments)


@pytest.fixture
def sdk_client():
    client = Mock()
    client.messages.create = AsyncMock()
    return client


@pytest.fixture
def model_client(sdk_client):
    return AnthropicModelClient(api_key="test-key", model="claude-test", client=sdk_client)


@pytest.mark.asyncio
async def test_text_and_tool_calls_are_normalized(model_client, sdk_client):
    """Tool-use blocks become ToolCalls; text blocks are concatenated."""
    sdk_client.messages.create.return_value = _response(
        _text("Checking."),
        _tool_use("toolu_1", "countCustomers", {"filter": "all"}),
        stop_reason="tool_use",
    )

    reply = await model_client.complete(
        system="sys",
        messages=[{"role": "user", "content": "How many customers?"}],
        tools=[{"name": "countCustomers", "description": "d", "input_schema": {}}],
        tool_choice={"type": "auto"},
    )

    assert reply.content == "Checking."
    assert [(c.id, c.name, c.arguments) for c in reply.tool_calls] == [
        ("toolu_1", "countCustomers", {"filter": "all"})
    ]
    assert reply.raw_content == [
        {"type": "text", "text": "Checking."},
        {"type": "tool_use", "id": "toolu_1", "name": "countCustomers", "input": {"filter": "all"}},
    ]


@pytest.mark.asyncio
async def test_request_parameters(model_client, sdk_client):
    sdk_client.messages.create.return_value = _response(_text("ok"))
    tools = [{"name": "countCustomers", "description": "d", "input_schema": {}}]

    await model_client.complete(
        system="sys",
        messages=[{"role": "user", "content": "hi"}],
        tools=tools,
        temperature=0.2,
        max_tokens=256,
        tool_choice={"type": "auto"},
    )

    kwargs = sdk_client.messages.create.call_args.kwargs
    assert kwargs["model"] == "claude-test"
    assert kwargs["system"] == "sys"
    assert kwargs["temperature"] == 0.2
    assert kwargs["max_tokens"] == 256
    assert kwargs["tools"] == tools
    assert kwargs["tool_choice"] == {"type": "auto"}


@pytest.mark.asyncio
async def test_tool_choice_omitted_without_tools(model_client, sdk_client):
    sdk_client.messages.create.return_value = _response(_text("ok"))

    await model_client.complete(
        system="sys",
        messages=[{"role": "user", "content": "hi"}],
        tool_choice={"type": "none"},
    )

    kwargs = sdk_client.messages.create.call_args.kwargs
    assert "tools" not in kwargs
    assert "tool_choice" not in kwargs


@pytest.mark.asyncio
async def test_empty_text_blocks_dropped(model_client, sdk_client):
    sdk_client.messages.create.return_value = _response(
        _text(""), _tool_use("toolu_1", "getProductStats", None)
    )

    reply = await model_client.complete(system="sys", messages=[])

    assert reply.content == ""
    assert reply.raw_content == [
        {"type": "tool_use", "id": "toolu_1", "name": "getProductStats", "input": {}}
    ]


@pytest.mark.asyncio
async def test_token_usage_accumulates(model_client, sdk_client):
    sdk_client.messages.create.side_effect = [
        _response(_text("a"), input_tokens=100, output_tokens=20),
        _response(_text("b"), input_tokens=50, output_tokens=10),
    ]

    first = await model_client.complete(system="sys", messages=[])
    await model_client.complete(system="sys", messages=[])

    assert (first.input_tokens, first.output_tokens) == (100, 20)
    assert model_client.token_usage == {"input_tokens": 150, "output_tokens": 30}


@pytest.mark.asyncio
async def test_slow_call_times_out(sdk_client):
    async def never_returns(**kwargs):
        await asyncio.sleep(10)

    sdk_client.messages.create = never_returns
    client = AnthropicModelClient(api_key="test-key", timeout_seconds=0.01, client=sdk_client)

    with pytest.raises(ModelTimeoutError, match="timed out"):
        await client.complete(system="sys", messages=[])


@pytest.mark.asyncio
async def test_provider_error_wrapped(model_client, sdk_client):
    request = httpx.Request("POST", "https://api.anthropic.com/v1/messages")
    sdk_client.messages.create.side_effect = anthropic.APIConnectionError(request=request)

    with pytest.raises(ModelCallError) as excinfo:
        await model_client.complete(system="sys", messages=[])

    assert not isinstance(excinfo.value, ModelTimeoutError)
    assert isinstance(excinfo.value.__cause__, anthropic.APIConnectionError)


@pytest.mark.asyncio
async def test_provider_timeout_wrapped(model_client, sdk_client):
    request = httpx.Request("POST", "https://api.anthropic.com/v1/messages")
    sdk_client.messages.create.side_effect = anthropic.APITimeoutError(request=request)

    with pytest.raises(ModelTimeoutError):
        await model_client.complete(system="sys", messages=[])
