"""Anthropic Messages API provider."""

from __future__ import annotations

import logging
from typing import Any, AsyncIterator, Sequence

import anthropic

from chaindesk_daemon.config import ProvidersConfig
from chaindesk_daemon.exceptions import DeskError, ErrorCode
from chaindesk_daemon.models.chat import (
    AssistantToolCalls,
    ChatMessage,
    ToolInvocation,
    ToolResults,
    ToolRound,
    TranscriptEntry,
)
from chaindesk_daemon.providers.base import ChatProvider, ToolSpec

logger = logging.getLogger(__name__)


class AnthropicProvider(ChatProvider):
    name = "anthropic"

    def __init__(self, cfg: ProvidersConfig, *, client: Any | None = None) -> None:
        self._model = cfg.anthropic_model
        self._max_tokens = cfg.max_tokens
        self._client = client or anthropic.AsyncAnthropic(
            api_key=cfg.anthropic_api_key,
            timeout=cfg.round_timeout_seconds,
        )

    @property
    def model(self) -> str:
        return self._model

    async def complete_tool_round(
        self,
        system: str,
        transcript: Sequence[TranscriptEntry],
        tools: Sequence[ToolSpec],
    ) -> ToolRound:
        try:
            response = await self._client.messages.create(
                model=self._model,
                max_tokens=self._max_tokens,
                system=system,
                messages=to_anthropic_messages(transcript),
                tools=_tool_params(tools),
            )
        except anthropic.APITimeoutError as exc:
            raise _timeout_error(exc) from exc
        except anthropic.APIError as exc:
            raise self._provider_error(exc, phase="tool round") from exc

        text_parts: list[str] = []
        invocations: list[ToolInvocation] = []
        for block in response.content:
            block_type = getattr(block, "type", None)
            if block_type == "text":
                text_parts.append(block.text)
            elif block_type == "tool_use":
                invocations.append(ToolInvocation(id=block.id, name=block.name, arguments=dict(block.input or {})))
        logger.debug("anthropic tool round: stop_reason=%s tools=%d", getattr(response, "stop_reason", None), len(invocations))
        return ToolRound(text="".join(text_parts), invocations=invocations)

    async def stream_final(
        self,
        system: str,
        transcript: Sequence[TranscriptEntry],
        tools: Sequence[ToolSpec],
    ) -> AsyncIterator[str]:
        kwargs: dict[str, Any] = {
            "model": self._model,
            "max_tokens": self._max_tokens,
            "system": system,
            "messages": to_anthropic_messages(transcript),
        }
        if tools:
            # prior tool_use blocks need the tool declared; forbid new calls
            kwargs["tools"] = _tool_params(tools)
            kwargs["tool_choice"] = {"type": "none"}
        try:
            async with self._client.messages.stream(**kwargs) as stream:
                async for text in stream.text_stream:
                    if text:
                        yield text
        except anthropic.APITimeoutError as exc:
            raise _timeout_error(exc) from exc
        except anthropic.APIError as exc:
            raise self._provider_error(exc, phase="final stream") from exc

    async def aclose(self) -> None:
        close = getattr(self._client, "close", None)
        if close is not None:
            await close()


def to_anthropic_messages(transcript: Sequence[TranscriptEntry]) -> list[dict[str, Any]]:
    messages: list[dict[str, Any]] = []
    for entry in transcript:
        if isinstance(entry, ChatMessage):
            messages.append({"role": entry.role, "content": entry.content})
        elif isinstance(entry, AssistantToolCalls):
            blocks: list[dict[str, Any]] = []
            if entry.text:
                blocks.append({"type": "text", "text": entry.text})
            for inv in entry.invocations:
                blocks.append({"type": "tool_use", "id": inv.id, "name": inv.name, "input": inv.arguments})
            messages.append({"role": "assistant", "content": blocks})
        elif isinstance(entry, ToolResults):
            messages.append(
                {
                    "role": "user",
                    "content": [
                        {
                            "type": "tool_result",
                            "tool_use_id": result.invocation_id,
                            "content": result.content,
                            "is_error": result.is_error,
                        }
                        for result in entry.results
                    ],
                }
            )
    return messages


def _tool_params(tools: Sequence[ToolSpec]) -> list[dict[str, Any]]:
    return [{"name": t.name, "description": t.description, "input_schema": t.parameters} for t in tools]


def _timeout_error(exc: Exception) -> DeskError:
    return DeskError(
        ErrorCode.TIMEOUT,
        "anthropic request timed out",
        details={"provider": "anthropic", "error": str(exc)},
        suggestion="Retry, or raise providers.round_timeout_seconds.",
    )
