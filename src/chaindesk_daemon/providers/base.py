"""Provider abstraction for generative-text backends."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Sequence

from pydantic import BaseModel, Field

from chaindesk_daemon.exceptions import DeskError, ErrorCode
from chaindesk_daemon.models.chat import ToolRound, TranscriptEntry


class ToolSpec(BaseModel):
    """Provider-neutral tool declaration; ``parameters`` is a JSON schema object."""

    name: str
    description: str
    parameters: dict[str, Any] = Field(default_factory=dict)


class ChatProvider(ABC):
    name: str = "provider"

    @property
    @abstractmethod
    def model(self) -> str:
        raise NotImplementedError

    @abstractmethod
    async def complete_tool_round(
        self,
        system: str,
        transcript: Sequence[TranscriptEntry],
        tools: Sequence[ToolSpec],
    ) -> ToolRound:
        """Non-streamed completion whose tool-use decision can be inspected."""
        raise NotImplementedError

    @abstractmethod
    def stream_final(
        self,
        system: str,
        transcript: Sequence[TranscriptEntry],
        tools: Sequence[ToolSpec],
    ) -> AsyncIterator[str]:
        """Stream the closing prose; tools are declared but must not be called."""
        raise NotImplementedError

    async def aclose(self) -> None:
        return None

    def _provider_error(self, exc: Exception, *, phase: str) -> DeskError:
        return DeskError(
            ErrorCode.PROVIDER_ERROR,
            f"{self.name} {phase} failed: {exc}",
            details={"provider": self.name, "model": self.model, "phase": phase, "error_type": type(exc).__name__},
            suggestion="Retry the turn, or switch provider.",
        )
