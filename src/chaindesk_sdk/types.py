"""Shared Python SDK type aliases and discoverable constants."""

from __future__ import annotations

from typing import Literal, TypeAlias

PROVIDERS = ("anthropic", "gemini")
OPTION_TYPES = ("call", "put")
CHAIN_KINDS = ("calls", "puts", "both")
MUTATION_TARGETS = ("holdings", "strategy")
MUTATION_EVENTS = ("proposed", "applied", "parse_failed")
AUDIT_SOURCES = ("cli", "sdk")
CHAT_EVENT_TYPES = ("text", "tool_call", "done", "error")

Provider: TypeAlias = Literal["anthropic", "gemini"]
OptionType: TypeAlias = Literal["call", "put"]
ChainKind: TypeAlias = Literal["calls", "puts", "both"]
MutationTarget: TypeAlias = Literal["holdings", "strategy"]
MutationEvent: TypeAlias = Literal["proposed", "applied", "parse_failed"]
AuditSource: TypeAlias = Literal["cli", "sdk"]
