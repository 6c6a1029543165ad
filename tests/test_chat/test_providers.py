from __future__ import annotations

from types import SimpleNamespace
from typing import Any

import anthropic
import httpx
import pytest

from chaindesk_daemon.config import ProvidersConfig
from chaindesk_daemon.exceptions import DeskError, ErrorCode
from chaindesk_daemon.models.chat import AssistantToolCalls, ChatMessage, ToolInvocation, ToolResult, ToolResults
from chaindesk_daemon.providers import build_provider
from chaindesk_daemon.providers.anthropic import AnthropicProvider, to_anthropic_messages
from chaindesk_daemon.providers.base import ToolSpec
from chaindesk_daemon.providers.gemini import GeminiProvider, to_gemini_contents

TOOL = ToolSpec(name="get_option_chain", description="Chain lookup", parameters={"type": "object"})

TRANSCRIPT = [
    ChatMessage(role="user", content="How do AAPL calls look?"),
    AssistantToolCalls(
        text="Let me check.",
        invocations=[ToolInvocation(id="call_1", name="get_option_chain", arguments={"ticker": "AAPL"})],
    ),
    ToolResults(results=[ToolResult(invocation_id="call_1", name="get_option_chain", content="table")]),
]


class _FakeStream:
    def __init__(self, chunks: list[str]) -> None:
        self._chunks = chunks
        self.text_stream = self._iterate()

    async def __aenter__(self) -> "_FakeStream":
        return self

    async def __aexit__(self, *exc: object) -> None:
        return None

    async def _iterate(self):  # type: ignore[no-untyped-def]
        for chunk in self._chunks:
            yield chunk


class FakeAnthropicMessages:
    def __init__(self, *, response: Any = None, chunks: list[str] | None = None, error: Exception | None = None) -> None:
        self.response = response
        self.chunks = chunks or []
        self.error = error
        self.calls: list[dict[str, Any]] = []

    async def create(self, **kwargs: Any) -> Any:
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        return self.response

    def stream(self, **kwargs: Any) -> _FakeStream:
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        return _FakeStream(self.chunks)


def _cfg(**overrides: Any) -> ProvidersConfig:
    values = {"anthropic_api_key": "sk-test", "gemini_api_key": "gm-test"}
    values.update(overrides)
    return ProvidersConfig(**values)


def test_anthropic_transcript_conversion() -> None:
    messages = to_anthropic_messages(TRANSCRIPT)

    assert messages[0] == {"role": "user", "content": "How do AAPL calls look?"}
    assert messages[1] == {
        "role": "assistant",
        "content": [
            {"type": "text", "text": "Let me check."},
            {"type": "tool_use", "id": "call_1", "name": "get_option_chain", "input": {"ticker": "AAPL"}},
        ],
    }
    assert messages[2]["role"] == "user"
    assert messages[2]["content"] == [
        {"type": "tool_result", "tool_use_id": "call_1", "content": "table", "is_error": False}
    ]


def test_gemini_transcript_conversion() -> None:
    contents = to_gemini_contents(TRANSCRIPT)

    assert [c.role for c in contents] == ["user", "model", "user"]
    assert contents[0].parts[0].text == "How do AAPL calls look?"
    call = contents[1].parts[1].function_call
    assert (call.id, call.name, call.args) == ("call_1", "get_option_chain", {"ticker": "AAPL"})
    response = contents[2].parts[0].function_response
    assert response.name == "get_option_chain"
    assert response.response == {"result": "table"}


@pytest.mark.asyncio
async def test_anthropic_tool_round_collects_text_and_invocations() -> None:
    response = SimpleNamespace(
        stop_reason="tool_use",
        content=[
            SimpleNamespace(type="text", text="Checking the chain."),
            SimpleNamespace(type="tool_use", id="toolu_1", name="get_option_chain", input={"ticker": "MSFT"}),
        ],
    )
    messages = FakeAnthropicMessages(response=response)
    provider = AnthropicProvider(_cfg(), client=SimpleNamespace(messages=messages))

    result = await provider.complete_tool_round("system", TRANSCRIPT[:1], [TOOL])

    assert result.text == "Checking the chain."
    assert result.wants_tools
    assert result.invocations[0].arguments == {"ticker": "MSFT"}
    assert messages.calls[0]["tools"][0]["input_schema"] == {"type": "object"}
    assert messages.calls[0]["system"] == "system"


@pytest.mark.asyncio
async def test_anthropic_final_stream_forbids_new_tool_calls() -> None:
    messages = FakeAnthropicMessages(chunks=["Calls ", "", "look rich."])
    provider = AnthropicProvider(_cfg(), client=SimpleNamespace(messages=messages))

    chunks = [chunk async for chunk in provider.stream_final("system", TRANSCRIPT, [TOOL])]

    assert chunks == ["Calls ", "look rich."]
    assert messages.calls[0]["tool_choice"] == {"type": "none"}


@pytest.mark.asyncio
async def test_anthropic_final_stream_without_tools_omits_tool_choice() -> None:
    messages = FakeAnthropicMessages(chunks=["Hi"])
    provider = AnthropicProvider(_cfg(), client=SimpleNamespace(messages=messages))

    chunks = [chunk async for chunk in provider.stream_final("system", TRANSCRIPT[:1], [])]

    assert chunks == ["Hi"]
    assert "tools" not in messages.calls[0]
    assert "tool_choice" not in messages.calls[0]


@pytest.mark.asyncio
async def test_anthropic_timeout_maps_to_timeout_code() -> None:
    request = httpx.Request("POST", "https://api.anthropic.com/v1/messages")
    messages = FakeAnthropicMessages(error=anthropic.APITimeoutError(request=request))
    provider = AnthropicProvider(_cfg(), client=SimpleNamespace(messages=messages))

    with pytest.raises(DeskError) as exc_info:
        await provider.complete_tool_round("system", TRANSCRIPT[:1], [TOOL])

    assert exc_info.value.code == ErrorCode.TIMEOUT


@pytest.mark.asyncio
async def test_anthropic_api_error_maps_to_provider_error() -> None:
    request = httpx.Request("POST", "https://api.anthropic.com/v1/messages")
    messages = FakeAnthropicMessages(error=anthropic.APIConnectionError(request=request))
    provider = AnthropicProvider(_cfg(), client=SimpleNamespace(messages=messages))

    with pytest.raises(DeskError) as exc_info:
        await provider.complete_tool_round("system", TRANSCRIPT[:1], [TOOL])

    assert exc_info.value.code == ErrorCode.PROVIDER_ERROR
    assert exc_info.value.details["phase"] == "tool round"
    assert exc_info.value.details["model"] == provider.model


class FakeGeminiModels:
    def __init__(self, *, response: Any = None, chunks: list[Any] | None = None) -> None:
        self.response = response
        self.chunks = chunks or []
        self.calls: list[dict[str, Any]] = []

    async def generate_content(self, **kwargs: Any) -> Any:
        self.calls.append(kwargs)
        return self.response

    async def generate_content_stream(self, **kwargs: Any) -> Any:
        self.calls.append(kwargs)

        async def _iterate():  # type: ignore[no-untyped-def]
            for chunk in self.chunks:
                yield chunk

        return _iterate()


def _gemini_response(text: str, calls: list[Any] | None = None) -> SimpleNamespace:
    part = SimpleNamespace(text=text, thought=None)
    return SimpleNamespace(
        function_calls=calls,
        candidates=[SimpleNamespace(content=SimpleNamespace(parts=[part]))],
    )


@pytest.mark.asyncio
async def test_gemini_tool_round_assigns_missing_call_ids() -> None:
    call = SimpleNamespace(id=None, name="get_option_chain", args={"ticker": "AAPL"})
    models = FakeGeminiModels(response=_gemini_response("Looking.", [call]))
    provider = GeminiProvider(_cfg(), client=SimpleNamespace(aio=SimpleNamespace(models=models)))

    result = await provider.complete_tool_round("system", TRANSCRIPT[:1], [TOOL])

    assert result.text == "Looking."
    assert result.invocations[0].id.startswith("call_")
    assert result.invocations[0].arguments == {"ticker": "AAPL"}
    config = models.calls[0]["config"]
    assert config.system_instruction == "system"
    assert config.automatic_function_calling.disable is True
    assert config.tool_config is None


@pytest.mark.asyncio
async def test_gemini_final_stream_disables_function_calling() -> None:
    models = FakeGeminiModels(chunks=[_gemini_response("Sell "), _gemini_response(""), _gemini_response("the 110s.")])
    provider = GeminiProvider(_cfg(), client=SimpleNamespace(aio=SimpleNamespace(models=models)))

    chunks = [chunk async for chunk in provider.stream_final("system", TRANSCRIPT, [TOOL])]

    assert chunks == ["Sell ", "the 110s."]
    mode = models.calls[0]["config"].tool_config.function_calling_config.mode
    assert mode.value == "NONE"


def test_build_provider_requires_api_key() -> None:
    with pytest.raises(DeskError) as exc_info:
        build_provider("anthropic", ProvidersConfig())

    assert exc_info.value.code == ErrorCode.PROVIDER_UNAVAILABLE
    assert "ANTHROPIC_API_KEY" in (exc_info.value.suggestion or "")


def test_build_provider_rejects_unknown_name() -> None:
    with pytest.raises(DeskError) as exc_info:
        build_provider("openai", _cfg())

    assert exc_info.value.code == ErrorCode.INVALID_ARGS
    assert exc_info.value.details["supported"] == ["anthropic", "gemini"]


def test_build_provider_falls_back_to_default() -> None:
    provider = build_provider("", _cfg(default="gemini"))

    assert isinstance(provider, GeminiProvider)
