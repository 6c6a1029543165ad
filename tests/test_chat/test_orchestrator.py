from __future__ import annotations

import asyncio
from typing import AsyncIterator, Sequence

import pytest

from chaindesk_daemon.chat.orchestrator import Orchestrator
from chaindesk_daemon.exceptions import DeskError, ErrorCode
from chaindesk_daemon.models.chat import (
    AssistantToolCalls,
    ChatMessage,
    DoneEvent,
    TextEvent,
    ToolCallEvent,
    ToolInvocation,
    ToolResult,
    ToolResults,
    ToolRound,
    TranscriptEntry,
)
from chaindesk_daemon.providers.base import ChatProvider, ToolSpec


class ScriptedProvider(ChatProvider):
    name = "scripted"

    def __init__(self, rounds: list[ToolRound], chunks: Sequence[str] = ("Hello", " world"), *, delay: float = 0) -> None:
        self._rounds = list(rounds)
        self._chunks = list(chunks)
        self._delay = delay
        self.round_transcripts: list[list[TranscriptEntry]] = []
        self.final_transcript: list[TranscriptEntry] | None = None
        self.final_tools: Sequence[ToolSpec] | None = None

    @property
    def model(self) -> str:
        return "scripted-1"

    async def complete_tool_round(
        self,
        system: str,
        transcript: Sequence[TranscriptEntry],
        tools: Sequence[ToolSpec],
    ) -> ToolRound:
        if self._delay:
            await asyncio.sleep(self._delay)
        self.round_transcripts.append(list(transcript))
        return self._rounds.pop(0) if self._rounds else ToolRound(text="done thinking")

    async def stream_final(
        self,
        system: str,
        transcript: Sequence[TranscriptEntry],
        tools: Sequence[ToolSpec],
    ) -> AsyncIterator[str]:
        self.final_transcript = list(transcript)
        self.final_tools = tools
        for chunk in self._chunks:
            yield chunk


def _wants_tool(call_id: str, ticker: str = "AAPL") -> ToolRound:
    return ToolRound(
        text="Let me check.",
        invocations=[ToolInvocation(id=call_id, name="get_option_chain", arguments={"ticker": ticker})],
    )


async def _echo_executor(invocation: ToolInvocation) -> ToolResult:
    return ToolResult(invocation_id=invocation.id, name=invocation.name, content=f"chain for {invocation.arguments['ticker']}")


async def _collect(orchestrator: Orchestrator, provider: ChatProvider, executor=_echo_executor, messages=None) -> list:
    messages = messages or [ChatMessage(role="user", content="What are AAPL calls trading at?")]
    return [event async for event in orchestrator.run_turn(messages, "system", provider, executor)]


@pytest.mark.asyncio
async def test_turn_without_tool_use_streams_text_then_done() -> None:
    provider = ScriptedProvider([ToolRound(text="no tools needed")])

    events = await _collect(Orchestrator(), provider)

    assert events == [TextEvent(text="Hello"), TextEvent(text=" world"), DoneEvent(tool_rounds=0)]
    assert len(provider.round_transcripts) == 1
    assert provider.final_transcript == [ChatMessage(role="user", content="What are AAPL calls trading at?")]


@pytest.mark.asyncio
async def test_tool_round_results_feed_the_final_answer() -> None:
    provider = ScriptedProvider([_wants_tool("call-1")])

    events = await _collect(Orchestrator(), provider)

    assert events[0] == ToolCallEvent(name="get_option_chain", arguments={"ticker": "AAPL"}, round=1)
    assert isinstance(events[-1], DoneEvent) and events[-1].tool_rounds == 1
    assert provider.final_transcript is not None
    calls, results = provider.final_transcript[1], provider.final_transcript[2]
    assert isinstance(calls, AssistantToolCalls) and calls.text == "Let me check."
    assert isinstance(results, ToolResults)
    assert results.results[0].invocation_id == "call-1"
    assert results.results[0].content == "chain for AAPL"


@pytest.mark.asyncio
async def test_rounds_are_bounded_and_a_final_answer_still_streams() -> None:
    provider = ScriptedProvider([_wants_tool(f"call-{i}") for i in range(6)])

    events = await _collect(Orchestrator(max_tool_rounds=5), provider)

    tool_events = [e for e in events if isinstance(e, ToolCallEvent)]
    assert [e.round for e in tool_events] == [1, 2, 3, 4, 5]
    assert len(provider.round_transcripts) == 5
    assert [e for e in events if isinstance(e, DoneEvent)] == [DoneEvent(tool_rounds=5)]
    assert [e.text for e in events if isinstance(e, TextEvent)] == ["Hello", " world"]


@pytest.mark.asyncio
async def test_parallel_invocations_keep_order() -> None:
    provider = ScriptedProvider(
        [
            ToolRound(
                invocations=[
                    ToolInvocation(id="a", name="get_option_chain", arguments={"ticker": "AAPL"}),
                    ToolInvocation(id="b", name="get_option_chain", arguments={"ticker": "MSFT"}),
                ]
            )
        ]
    )

    events = await _collect(Orchestrator(), provider)

    assert [e.arguments["ticker"] for e in events if isinstance(e, ToolCallEvent)] == ["AAPL", "MSFT"]
    results = provider.final_transcript[2]
    assert isinstance(results, ToolResults)
    assert [r.invocation_id for r in results.results] == ["a", "b"]


@pytest.mark.asyncio
async def test_executor_failure_becomes_error_result() -> None:
    async def broken(invocation: ToolInvocation) -> ToolResult:
        raise RuntimeError("kaboom")

    provider = ScriptedProvider([_wants_tool("call-1")])

    events = await _collect(Orchestrator(), provider, executor=broken)

    assert isinstance(events[-1], DoneEvent)
    results = provider.final_transcript[2]
    assert isinstance(results, ToolResults)
    assert results.results[0].is_error is True
    assert "kaboom" in results.results[0].content


@pytest.mark.asyncio
async def test_slow_tool_times_out_into_error_result() -> None:
    async def slow(invocation: ToolInvocation) -> ToolResult:
        await asyncio.sleep(5)
        raise AssertionError("unreachable")

    provider = ScriptedProvider([_wants_tool("call-1")])

    await _collect(Orchestrator(tool_timeout_seconds=0.01), provider, executor=slow)

    result = provider.final_transcript[2].results[0]
    assert result.is_error is True
    assert "timed out" in result.content


@pytest.mark.asyncio
async def test_slow_round_raises_timeout() -> None:
    provider = ScriptedProvider([ToolRound()], delay=5)

    with pytest.raises(DeskError) as exc:
        await _collect(Orchestrator(round_timeout_seconds=0.01), provider)

    assert exc.value.code == ErrorCode.TIMEOUT


@pytest.mark.asyncio
async def test_without_executor_no_tools_are_offered() -> None:
    provider = ScriptedProvider([_wants_tool("never")])

    events = await _collect(Orchestrator(), provider, executor=None)

    assert provider.round_transcripts == []
    assert tuple(provider.final_tools) == ()
    assert events[-1] == DoneEvent(tool_rounds=0)


@pytest.mark.asyncio
async def test_caller_messages_are_not_mutated() -> None:
    messages = [ChatMessage(role="user", content="hi")]
    provider = ScriptedProvider([_wants_tool("call-1")])

    await _collect(Orchestrator(), provider, messages=messages)

    assert messages == [ChatMessage(role="user", content="hi")]


def test_negative_round_budget_is_rejected() -> None:
    with pytest.raises(ValueError):
        Orchestrator(max_tool_rounds=-1)
