"""Bounded tool-calling loop followed by one streamed answer.

A turn runs up to ``max_tool_rounds`` non-streamed completions, so that a
provider's tool-use decision can be inspected in full, then streams the final
prose over everything gathered. Exhausting the rounds still streams an answer.
"""

from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator, Awaitable, Callable, Sequence

from chaindesk_daemon.chat.tools import TOOLS
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
    TurnEvent,
)
from chaindesk_daemon.providers.base import ChatProvider, ToolSpec

logger = logging.getLogger(__name__)

DEFAULT_MAX_TOOL_ROUNDS = 5

ToolExecutor = Callable[[ToolInvocation], Awaitable[ToolResult]]


class Orchestrator:
    """Stateless across turns; every call to ``run_turn`` starts fresh."""

    def __init__(
        self,
        *,
        max_tool_rounds: int = DEFAULT_MAX_TOOL_ROUNDS,
        round_timeout_seconds: float = 90.0,
        tool_timeout_seconds: float = 30.0,
        tools: Sequence[ToolSpec] = TOOLS,
    ) -> None:
        if max_tool_rounds < 0:
            raise ValueError("max_tool_rounds must be >= 0")
        self._max_tool_rounds = max_tool_rounds
        self._round_timeout = round_timeout_seconds
        self._tool_timeout = tool_timeout_seconds
        self._tools = tuple(tools)

    @property
    def max_tool_rounds(self) -> int:
        return self._max_tool_rounds

    async def run_turn(
        self,
        messages: Sequence[ChatMessage],
        system_context: str,
        provider: ChatProvider,
        tool_executor: ToolExecutor | None = None,
    ) -> AsyncIterator[TurnEvent]:
        transcript: list[TranscriptEntry] = list(messages)
        tools = self._tools if tool_executor is not None else ()
        rounds = 0

        if tool_executor is not None:
            while rounds < self._max_tool_rounds:
                tool_round = await self._complete_round(provider, system_context, transcript, tools)
                if not tool_round.wants_tools:
                    break
                rounds += 1
                for invocation in tool_round.invocations:
                    yield ToolCallEvent(name=invocation.name, arguments=invocation.arguments, round=rounds)

                results = await asyncio.gather(
                    *(self._execute(tool_executor, invocation) for invocation in tool_round.invocations)
                )
                transcript.append(AssistantToolCalls(text=tool_round.text, invocations=tool_round.invocations))
                transcript.append(ToolResults(results=list(results)))
            else:
                if self._max_tool_rounds:
                    logger.warning(
                        "%s still requesting tools after %d rounds; streaming final answer",
                        provider.name,
                        rounds,
                    )

        stream = provider.stream_final(system_context, transcript, tools).__aiter__()
        try:
            while True:
                try:
                    async with asyncio.timeout(self._round_timeout):
                        delta = await anext(stream)
                except StopAsyncIteration:
                    break
                except TimeoutError as exc:
                    raise self._timeout_error(provider, "final stream") from exc
                if delta:
                    yield TextEvent(text=delta)
        finally:
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                await aclose()

        yield DoneEvent(tool_rounds=rounds)

    async def _complete_round(
        self,
        provider: ChatProvider,
        system_context: str,
        transcript: list[TranscriptEntry],
        tools: Sequence[ToolSpec],
    ) -> ToolRound:
        try:
            return await asyncio.wait_for(
                provider.complete_tool_round(system_context, list(transcript), tools),
                timeout=self._round_timeout,
            )
        except TimeoutError as exc:
            raise self._timeout_error(provider, "tool round") from exc

    async def _execute(self, executor: ToolExecutor, invocation: ToolInvocation) -> ToolResult:
        try:
            return await asyncio.wait_for(executor(invocation), timeout=self._tool_timeout)
        except TimeoutError:
            logger.warning("tool %s timed out after %.1fs", invocation.name, self._tool_timeout)
            return ToolResult(
                invocation_id=invocation.id,
                name=invocation.name,
                content=f"Error: {invocation.name} timed out after {self._tool_timeout:g}s",
                is_error=True,
            )
        except Exception as exc:
            logger.warning("tool %s raised %s: %s", invocation.name, type(exc).__name__, exc)
            return ToolResult(
                invocation_id=invocation.id,
                name=invocation.name,
                content=f"Error executing {invocation.name}: {exc}",
                is_error=True,
            )

    def _timeout_error(self, provider: ChatProvider, phase: str) -> DeskError:
        return DeskError(
            ErrorCode.TIMEOUT,
            f"{provider.name} {phase} exceeded {self._round_timeout:g}s",
            details={"provider": provider.name, "phase": phase},
            suggestion="Retry, or raise providers.round_timeout_seconds.",
        )
