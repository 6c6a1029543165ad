"""Conversation, tool and mutation models."""

from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import AliasChoices, BaseModel, Field, model_validator

ProviderName = Literal["anthropic", "gemini"]
MutationTarget = Literal["holdings", "strategy"]


class ChatMessage(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class ConversationTurn(BaseModel):
    messages: list[ChatMessage]
    system_context: str = ""
    provider: ProviderName = "anthropic"

    @model_validator(mode="after")
    def _require_messages(self) -> "ConversationTurn":
        if not self.messages:
            raise ValueError("messages must contain at least one entry")
        if self.messages[-1].role != "user":
            raise ValueError("the last message of a turn must come from the user")
        return self


class ToolInvocation(BaseModel):
    id: str
    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)


class ToolResult(BaseModel):
    invocation_id: str
    name: str
    content: str
    is_error: bool = False


class AssistantToolCalls(BaseModel):
    """Assistant turn that requested tools; kept in the working transcript."""

    kind: Literal["tool_calls"] = "tool_calls"
    text: str = ""
    invocations: list[ToolInvocation]


class ToolResults(BaseModel):
    kind: Literal["tool_results"] = "tool_results"
    results: list[ToolResult]


TranscriptEntry = Union[ChatMessage, AssistantToolCalls, ToolResults]


class ToolRound(BaseModel):
    """Complete, non-streamed provider answer for one tool round."""

    text: str = ""
    invocations: list[ToolInvocation] = Field(default_factory=list)

    @property
    def wants_tools(self) -> bool:
        return bool(self.invocations)


class TextEvent(BaseModel):
    type: Literal["text"] = "text"
    text: str


class ToolCallEvent(BaseModel):
    type: Literal["tool_call"] = "tool_call"
    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)
    round: int


class DoneEvent(BaseModel):
    type: Literal["done"] = "done"
    tool_rounds: int = 0


TurnEvent = Annotated[Union[TextEvent, ToolCallEvent, DoneEvent], Field(discriminator="type")]


class MutationCommand(BaseModel):
    target: MutationTarget = Field(validation_alias=AliasChoices("target", "file"))
    content: dict[str, Any] | str

    @model_validator(mode="after")
    def _content_matches_target(self) -> "MutationCommand":
        if self.target == "holdings" and not isinstance(self.content, dict):
            raise ValueError("holdings content must be an object")
        if self.target == "strategy" and not isinstance(self.content, str):
            raise ValueError("strategy content must be text")
        return self
