from __future__ import annotations

from pathlib import Path
import shutil
import tempfile
from typing import Any, AsyncIterator, Callable, Iterator, Sequence

import pytest
import pytest_asyncio

from chaindesk_daemon.config import AppConfig, ProvidersConfig
from chaindesk_daemon.daemon.server import DaemonServer
from chaindesk_daemon.exceptions import DeskError, ErrorCode
from chaindesk_daemon.market.upstream import UpstreamClient
from chaindesk_daemon.models.chat import ToolInvocation, ToolResults, ToolRound, TranscriptEntry
from chaindesk_daemon.providers.base import ChatProvider, ToolSpec
from chaindesk_sdk import Client

FINAL_TEXT = (
    "Sell the 110 calls.\n\n"
    "<<<FILE_UPDATE>>>\n"
    '{"target": "strategy", "content": "Covered calls on AAPL."}\n'
    "<<<END_FILE_UPDATE>>>"
)


class ScriptedProvider(ChatProvider):
    name = "anthropic"

    def __init__(self, rounds: list[ToolRound], chunks: list[str], *, fail_after_chunks: bool = False) -> None:
        self._rounds = list(rounds)
        self._chunks = chunks
        self._fail = fail_after_chunks
        self.final_transcript: list[TranscriptEntry] = []
        self.closed = False

    @property
    def model(self) -> str:
        return "scripted-1"

    async def complete_tool_round(
        self, system: str, transcript: Sequence[TranscriptEntry], tools: Sequence[ToolSpec]
    ) -> ToolRound:
        return self._rounds.pop(0) if self._rounds else ToolRound()

    async def stream_final(
        self, system: str, transcript: Sequence[TranscriptEntry], tools: Sequence[ToolSpec]
    ) -> AsyncIterator[str]:
        self.final_transcript = list(transcript)
        for chunk in self._chunks:
            yield chunk
        if self._fail:
            raise DeskError(ErrorCode.PROVIDER_ERROR, "stream dropped")

    async def aclose(self) -> None:
        self.closed = True


class ProviderScript:
    def __init__(self) -> None:
        self.next: ScriptedProvider | Exception | None = None
        self.created: list[ScriptedProvider] = []

    def __call__(self, name: str, cfg: ProvidersConfig) -> ChatProvider:
        if isinstance(self.next, Exception):
            raise self.next
        assert self.next is not None
        self.created.append(self.next)
        return self.next


@pytest.fixture
def script() -> ProviderScript:
    return ProviderScript()


@pytest.fixture
def socket_config(app_config: AppConfig, fake_home: Path) -> Iterator[AppConfig]:
    # unix socket paths must stay short
    short_dir = Path(tempfile.mkdtemp(prefix="cd-"))
    runtime = app_config.runtime.model_copy(update={"socket_path": short_dir / "d.sock"})
    try:
        yield app_config.model_copy(update={"runtime": runtime})
    finally:
        shutil.rmtree(short_dir, ignore_errors=True)


@pytest_asyncio.fixture
async def running(
    socket_config: AppConfig,
    script: ProviderScript,
    market_upstream: Callable[[AppConfig], UpstreamClient],
) -> AsyncIterator[Client]:
    daemon = DaemonServer(socket_config, upstream=market_upstream(socket_config), provider_factory=script)
    await daemon.start()
    try:
        yield Client(socket_path=socket_config.runtime.socket_path, timeout_seconds=5, stream_timeout_seconds=5)
    finally:
        await daemon.stop()


def _user(text: str) -> list[dict[str, str]]:
    return [{"role": "user", "content": text}]


@pytest.mark.asyncio
async def test_chat_turn_streams_tool_calls_text_and_mutation(running: Client, script: ProviderScript) -> None:
    lookup = ToolInvocation(id="t1", name="get_option_chain", arguments={"ticker": "AAPL", "type": "calls"})
    script.next = ScriptedProvider([ToolRound(text="Checking.", invocations=[lookup])], [FINAL_TEXT[:12], FINAL_TEXT[12:]])

    events = [event async for event in running.chat(_user("Ideas for AAPL?"))]

    assert [e["type"] for e in events] == ["tool_call", "text", "text", "done"]
    assert events[0] == {"type": "tool_call", "name": "get_option_chain", "arguments": lookup.arguments, "round": 1}
    done = events[-1]
    assert done["tool_rounds"] == 1
    assert done["display_text"] == "Sell the 110 calls."
    assert done["mutation"] == {"target": "strategy", "content": "Covered calls on AAPL."}

    provider = script.created[0]
    results = [entry for entry in provider.final_transcript if isinstance(entry, ToolResults)]
    assert "AAPL" in results[0].results[0].content
    assert not results[0].results[0].is_error

    tool_calls = (await running.audit_tool_calls(tool="get_option_chain"))["tool_calls"]
    assert len(tool_calls) == 1
    assert tool_calls[0]["provider"] == "anthropic"
    proposed = (await running.audit_mutations(event="proposed"))["mutation_events"]
    assert [e["target"] for e in proposed] == ["strategy"]
    assert provider.closed


@pytest.mark.asyncio
async def test_chat_turn_without_tools_skips_tool_rounds(running: Client, script: ProviderScript) -> None:
    lookup = ToolInvocation(id="t1", name="get_option_chain", arguments={"ticker": "AAPL"})
    script.next = ScriptedProvider([ToolRound(invocations=[lookup])], ["Hello."])

    events = [event async for event in running.chat(_user("hi"), tools=False, system_context="Be brief.")]

    assert [e["type"] for e in events] == ["text", "done"]
    assert events[-1]["tool_rounds"] == 0
    assert events[-1]["mutation"] is None


@pytest.mark.asyncio
async def test_provider_failure_after_ack_raises_from_stream(running: Client, script: ProviderScript) -> None:
    script.next = ScriptedProvider([], ["partial "], fail_after_chunks=True)
    seen: list[dict[str, Any]] = []

    with pytest.raises(DeskError) as exc:
        async for event in running.chat(_user("hi"), tools=False):
            seen.append(event)

    assert exc.value.code == ErrorCode.PROVIDER_ERROR
    assert seen == [{"type": "text", "text": "partial "}]
    status = await running.daemon_status()
    assert status["active_turns"] == 0
    assert script.created[0].closed


@pytest.mark.asyncio
async def test_unavailable_provider_fails_before_any_event(running: Client, script: ProviderScript) -> None:
    script.next = DeskError(ErrorCode.PROVIDER_UNAVAILABLE, "gemini API key is not configured")

    with pytest.raises(DeskError) as exc:
        async for _ in running.chat(_user("hi"), provider="gemini"):
            pass

    assert exc.value.code == ErrorCode.PROVIDER_UNAVAILABLE


@pytest.mark.asyncio
async def test_invalid_transcript_is_rejected(running: Client, script: ProviderScript) -> None:
    script.next = ScriptedProvider([], ["unused"])

    with pytest.raises(DeskError) as exc:
        async for _ in running.chat([{"role": "assistant", "content": "hello"}], tools=False):
            pass

    assert exc.value.code == ErrorCode.INVALID_ARGS
    assert script.created == []


@pytest.mark.asyncio
async def test_plain_requests_share_the_socket(running: Client) -> None:
    quotes = await running.quote("AAPL")
    chain = await running.query_chain("AAPL", kind="puts", underlying_price=97)

    assert quotes[0]["price"] == 105.0
    assert [c["strike"] for c in chain["contracts"]] == [95]
    with pytest.raises(DeskError) as exc:
        await running.raw_chain("ZZZZ")
    assert exc.value.code == ErrorCode.INVALID_SYMBOL

