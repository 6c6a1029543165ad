"""Generative-text provider abstractions and concrete implementations."""

from __future__ import annotations

from chaindesk_daemon.config import SUPPORTED_PROVIDERS, ProvidersConfig
from chaindesk_daemon.exceptions import DeskError, ErrorCode
from chaindesk_daemon.providers.base import ChatProvider, ToolSpec


def build_provider(name: str, cfg: ProvidersConfig) -> ChatProvider:
    provider = (name or cfg.default).strip().lower()
    if provider not in SUPPORTED_PROVIDERS:
        raise DeskError(
            ErrorCode.INVALID_ARGS,
            f"unknown provider '{name}'",
            details={"supported": list(SUPPORTED_PROVIDERS)},
        )

    if provider == "anthropic":
        if not cfg.anthropic_api_key:
            raise _missing_key(provider, "ANTHROPIC_API_KEY")
        from chaindesk_daemon.providers.anthropic import AnthropicProvider

        return AnthropicProvider(cfg)

    if not cfg.gemini_api_key:
        raise _missing_key(provider, "GEMINI_API_KEY")
    from chaindesk_daemon.providers.gemini import GeminiProvider

    return GeminiProvider(cfg)


def _missing_key(provider: str, env_name: str) -> DeskError:
    return DeskError(
        ErrorCode.PROVIDER_UNAVAILABLE,
        f"{provider} API key is not configured",
        details={"provider": provider},
        suggestion=f"Set {env_name} or providers.{provider}_api_key in config.json.",
    )


__all__ = ["ChatProvider", "ToolSpec", "build_provider"]
