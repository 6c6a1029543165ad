"""Typed domain models."""

from chaindesk_daemon.models.chat import (
    AssistantToolCalls,
    ChatMessage,
    ConversationTurn,
    DoneEvent,
    MutationCommand,
    TextEvent,
    ToolCallEvent,
    ToolInvocation,
    ToolResult,
    ToolResults,
    ToolRound,
    TranscriptEntry,
    TurnEvent,
)
from chaindesk_daemon.models.holdings import Account, AccountSummary, Holdings, OptionEntry, StockEntry
from chaindesk_daemon.models.market import (
    ChainFilter,
    ChainView,
    ChainViewRow,
    DecodedContract,
    EquityQuote,
    FilteredContract,
    OptionKind,
    OptionMid,
    OptionPrice,
    PricesSnapshot,
    RawContract,
    TermStructurePoint,
)

__all__ = [
    "Account",
    "AccountSummary",
    "AssistantToolCalls",
    "ChainFilter",
    "ChainView",
    "ChainViewRow",
    "ChatMessage",
    "ConversationTurn",
    "DecodedContract",
    "DoneEvent",
    "EquityQuote",
    "FilteredContract",
    "Holdings",
    "MutationCommand",
    "OptionEntry",
    "OptionKind",
    "OptionMid",
    "OptionPrice",
    "PricesSnapshot",
    "RawContract",
    "StockEntry",
    "TermStructurePoint",
    "TextEvent",
    "ToolCallEvent",
    "ToolInvocation",
    "ToolResult",
    "ToolResults",
    "ToolRound",
    "TranscriptEntry",
    "TurnEvent",
]
