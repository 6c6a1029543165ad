"""Async Python SDK for chaindesk-daemon."""

from chaindesk_sdk.client import Client
from chaindesk_sdk.types import (
    AUDIT_SOURCES,
    CHAIN_KINDS,
    CHAT_EVENT_TYPES,
    MUTATION_EVENTS,
    MUTATION_TARGETS,
    OPTION_TYPES,
    PROVIDERS,
)

__all__ = [
    "AUDIT_SOURCES",
    "CHAIN_KINDS",
    "CHAT_EVENT_TYPES",
    "Client",
    "MUTATION_EVENTS",
    "MUTATION_TARGETS",
    "OPTION_TYPES",
    "PROVIDERS",
]
