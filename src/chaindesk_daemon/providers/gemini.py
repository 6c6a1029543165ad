"""Google Gemini provider (google-genai SDK)."""

from __future__ import annotations

import logging
from typing import Any, AsyncIterator, Sequence
from uuid import uuid4

from google import genai
from google.genai import errors as genai_errors
from google.genai import types as genai_types
import httpx

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


class GeminiProvider(ChatProvider):
    name = "gemini"

    def __init__(self, cfg: ProvidersConfig, *, client: Any | None = None) -> None:
        self._model = cfg.gemini_model
        self._max_tokens = cfg.max_tokens
        self._client = client or genai.Client(
            api_key=cfg.gemini_api_key,
            http_options=genai_types.HttpOptions(timeout=int(cfg.round_timeout_seconds * 1000)),
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
        config = self._config(system, tools, allow_calls=True)
        try:
            response = await self._client.aio.models.generate_content(
                model=self._model,
                contents=to_gemini_contents(transcript),
                config=config,
            )
        except httpx.TimeoutException as exc:
            raise _timeout_error(exc) from exc
        except genai_errors.APIError as exc:
            raise self._provider_error(exc, phase="tool round") from exc

        invocations = [
            ToolInvocation(id=call.id or f"call_{uuid4().hex[:12]}", name=call.name or "", arguments=dict(call.args or {}))
            for call in (response.function_calls or [])
        ]
        return ToolRound(text=_response_text(response), invocations=invocations)

    async def stream_final(
        self,
        system: str,
        transcript: Sequence[TranscriptEntry],
        tools: Sequence[ToolSpec],
    ) -> AsyncIterator[str]:
        config = self._config(system, tools, allow_calls=False)
        try:
            stream = await self._client.aio.models.generate_content_stream(
                model=self._model,
                contents=to_gemini_contents(transcript),
                config=config,
            )
            async for chunk in stream:
                text = _response_text(chunk)
                if text:
                    yield text
        except httpx.TimeoutException as exc:
            raise _timeout_error(exc) from exc
        except genai_errors.APIError as exc:
            raise self._provider_error(exc, phase="final stream") from exc

    def _config(self, system: str, tools: Sequence[ToolSpec], *, allow_calls: bool) -> genai_types.GenerateContentConfig:
        kwargs: dict[str, Any] = {
            "system_instruction": system or None,
            "max_output_tokens": self._max_tokens,
        }
        if tools:
            kwargs["tools"] = [
                genai_types.Tool(
                    function_declarations=[
                        genai_types.FunctionDeclaration(
                            name=t.name,
                            description=t.description,
                            parameters_json_schema=t.parameters,
                        )
                        for t in tools
                    ]
                )
            ]
            kwargs["automatic_function_calling"] = genai_types.AutomaticFunctionCallingConfig(disable=True)
            if not allow_calls:
                kwargs["tool_config"] = genai_types.ToolConfig(
                    function_calling_config=genai_types.FunctionCallingConfig(mode=genai_types.FunctionCallingConfigMode.NONE)
                )
        return genai_types.GenerateContentConfig(**kwargs)


def to_gemini_contents(transcript: Sequence[TranscriptEntry]) -> list[genai_types.Content]:
    contents: list[genai_types.Content] = []
    for entry in transcript:
        if isinstance(entry, ChatMessage):
            role = "model" if entry.role == "assistant" else "user"
            contents.append(genai_types.Content(role=role, parts=[genai_types.Part.from_text(text=entry.content)]))
        elif isinstance(entry, AssistantToolCalls):
            parts: list[genai_types.Part] = []
            if entry.text:
                parts.append(genai_types.Part.from_text(text=entry.text))
            for inv in entry.invocations:
                parts.append(
                    genai_types.Part(function_call=genai_types.FunctionCall(id=inv.id, name=inv.name, args=inv.arguments))
                )
            contents.append(genai_types.Content(role="model", parts=parts))
        elif isinstance(entry, ToolResults):
            contents.append(
                genai_types.Content(
                    role="user",
                    parts=[
                        genai_types.Part.from_function_response(
                            name=result.name,
                            response={"error": result.content} if result.is_error else {"result": result.content},
                        )
                        for result in entry.results
                    ],
                )
            )
    return contents


def _response_text(response: Any) -> str:
    candidates = getattr(response, "candidates", None) or []
    if not candidates or candidates[0].content is None:
        return ""
    return "".join(part.text for part in (candidates[0].content.parts or []) if part.text and not part.thought)


def _timeout_error(exc: Exception) -> DeskError:
    return DeskError(
        ErrorCode.TIMEOUT,
        "gemini request timed out",
        details={"provider": "gemini", "error": str(exc)},
        suggestion="Retry, or raise providers.round_timeout_seconds.",
    )
