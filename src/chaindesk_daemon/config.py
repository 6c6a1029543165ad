"""Chaindesk config loading from config.json plus env overrides."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator


def _env_path(name: str, fallback: Path) -> Path:
    raw = os.environ.get(name, "").strip()
    return Path(raw).expanduser() if raw else fallback.expanduser()


_USER_HOME = Path.home()
_XDG_CONFIG_HOME = _env_path("XDG_CONFIG_HOME", _USER_HOME / ".config")
_XDG_STATE_HOME = _env_path("XDG_STATE_HOME", _USER_HOME / ".local" / "state")
_XDG_DATA_HOME = _env_path("XDG_DATA_HOME", _USER_HOME / ".local" / "share")
DEFAULT_CONFIG_HOME = _XDG_CONFIG_HOME / "chaindesk"
DEFAULT_STATE_HOME = _XDG_STATE_HOME / "chaindesk"
DEFAULT_DATA_HOME = _XDG_DATA_HOME / "chaindesk"
DEFAULT_CHAINDESK_CONFIG_JSON = _env_path("CHAINDESK_CONFIG_JSON", DEFAULT_CONFIG_HOME / "config.json")

SUPPORTED_PROVIDERS = ("anthropic", "gemini")
SECTIONS = frozenset({"upstream", "providers", "storage", "logging", "runtime"})


class UpstreamConfig(BaseModel):
    cboe_base_url: str = "https://cdn.cboe.com/api/global/delayed_quotes/options"
    quote_base_url: str = "https://query1.finance.yahoo.com/v8/finance/chart"
    user_agent: str = "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36"
    timeout_seconds: float = 15.0
    connect_timeout_seconds: float = 5.0
    chain_cache_ttl_seconds: int = 300


class ProvidersConfig(BaseModel):
    default: str = "anthropic"
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-sonnet-4-6"
    gemini_api_key: str = ""
    gemini_model: str = "gemini-2.5-flash"
    max_tokens: int = 4096
    max_tool_rounds: int = 5
    round_timeout_seconds: float = 90.0
    tool_timeout_seconds: float = 30.0

    @field_validator("default")
    @classmethod
    def _validate_default(cls, value: str) -> str:
        provider = value.strip().lower()
        if provider not in SUPPORTED_PROVIDERS:
            raise ValueError(f"provider must be one of {', '.join(SUPPORTED_PROVIDERS)}")
        return provider

    @field_validator("max_tool_rounds")
    @classmethod
    def _validate_rounds(cls, value: int) -> int:
        if value < 0:
            raise ValueError("max_tool_rounds must be >= 0")
        return value


class StorageConfig(BaseModel):
    data_dir: Path = DEFAULT_DATA_HOME


class LoggingConfig(BaseModel):
    level: str = "INFO"
    audit_db: Path = DEFAULT_STATE_HOME / "audit.db"
    log_file: Path = DEFAULT_STATE_HOME / "chaindesk.log"


class RuntimeConfig(BaseModel):
    socket_path: Path = DEFAULT_STATE_HOME / "chaindesk.sock"
    pid_file: Path = DEFAULT_STATE_HOME / "chaindesk-daemon.pid"
    request_timeout_seconds: int = 30
    stream_timeout_seconds: int = 300


class AppConfig(BaseModel):
    upstream: UpstreamConfig = Field(default_factory=UpstreamConfig)
    providers: ProvidersConfig = Field(default_factory=ProvidersConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    runtime: RuntimeConfig = Field(default_factory=RuntimeConfig)

    def expanded(self) -> "AppConfig":
        clone = self.model_copy(deep=True)
        clone.storage.data_dir = clone.storage.data_dir.expanduser()
        clone.logging.audit_db = clone.logging.audit_db.expanduser()
        clone.logging.log_file = clone.logging.log_file.expanduser()
        clone.runtime.socket_path = clone.runtime.socket_path.expanduser()
        clone.runtime.pid_file = clone.runtime.pid_file.expanduser()
        return clone

    def ensure_dirs(self) -> None:
        expanded = self.expanded()
        expanded.storage.data_dir.mkdir(parents=True, exist_ok=True)
        expanded.runtime.socket_path.parent.mkdir(parents=True, exist_ok=True)
        expanded.runtime.pid_file.parent.mkdir(parents=True, exist_ok=True)
        expanded.logging.audit_db.parent.mkdir(parents=True, exist_ok=True)
        expanded.logging.log_file.parent.mkdir(parents=True, exist_ok=True)


def _coerce_env_value(value: str) -> Any:
    lower = value.lower()
    if lower in {"true", "false"}:
        return lower == "true"
    try:
        if "." in value:
            return float(value)
        return int(value)
    except ValueError:
        return value


def _read_config_json(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}

    try:
        loaded = json.loads(path.read_text(encoding="utf-8"))
    except Exception:
        return {}

    if isinstance(loaded, dict):
        return loaded
    return {}


def _extract_chaindesk_config(data: dict[str, Any]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    raw = data.get("chaindesk")
    if not isinstance(raw, dict):
        return out
    for section in SECTIONS:
        value = raw.get(section)
        if isinstance(value, dict):
            out[section] = value
    return out


def _apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    result = dict(data)
    for key, raw in os.environ.items():
        if not key.startswith("CHAINDESK_") or key == "CHAINDESK_CONFIG_JSON":
            continue
        tokens = key[len("CHAINDESK_") :].lower().split("_")
        section = tokens[0]
        if section not in SECTIONS or len(tokens) == 1:
            continue
        field = "_".join(tokens[1:])
        section_obj = dict(result.get(section, {}))
        section_obj[field] = _coerce_env_value(raw)
        result[section] = section_obj
    return result


def _apply_api_key_fallbacks(data: dict[str, Any]) -> dict[str, Any]:
    result = dict(data)
    providers = dict(result.get("providers", {}))
    for field, env_name in (("anthropic_api_key", "ANTHROPIC_API_KEY"), ("gemini_api_key", "GEMINI_API_KEY")):
        if providers.get(field):
            continue
        value = os.environ.get(env_name, "").strip()
        if value:
            providers[field] = value
    result["providers"] = providers
    return result


def load_config(*, dotenv_path: Path | None = None) -> AppConfig:
    load_dotenv(dotenv_path or Path.cwd() / ".env", override=False)
    raw = _read_config_json(DEFAULT_CHAINDESK_CONFIG_JSON)
    merged = _apply_api_key_fallbacks(_apply_env_overrides(_extract_chaindesk_config(raw)))
    cfg = AppConfig.model_validate(merged).expanded()
    cfg.ensure_dirs()
    return cfg
