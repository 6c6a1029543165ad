from __future__ import annotations

from datetime import date, timedelta
import os
from pathlib import Path
from typing import Any, AsyncIterator, Callable

import httpx
import pytest
import pytest_asyncio

from chaindesk_daemon.config import AppConfig, LoggingConfig, RuntimeConfig, StorageConfig
from chaindesk_daemon.daemon.server import DaemonServer
from chaindesk_daemon.market.symbols import encode
from chaindesk_daemon.market.upstream import UpstreamClient

MARKET_SPOT = 105.0
MARKET_EXPIRY_DAYS = 30


@pytest.fixture
def fake_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    home = tmp_path / "home"
    home.mkdir(parents=True)
    state = home / ".local" / "state" / "chaindesk"
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.chdir(home)
    monkeypatch.setenv("CHAINDESK_RUNTIME_SOCKET_PATH", str(state / "chaindesk.sock"))
    monkeypatch.setenv("CHAINDESK_RUNTIME_PID_FILE", str(state / "chaindesk-daemon.pid"))
    monkeypatch.setenv("CHAINDESK_LOGGING_AUDIT_DB", str(state / "audit.db"))
    monkeypatch.setenv("CHAINDESK_LOGGING_LOG_FILE", str(state / "chaindesk.log"))
    monkeypatch.setenv("CHAINDESK_STORAGE_DATA_DIR", str(home / ".local" / "share" / "chaindesk"))
    return home


@pytest.fixture(autouse=True)
def clear_chaindesk_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in list(os.environ.keys()):
        if key.startswith("CHAINDESK_") or key in {"ANTHROPIC_API_KEY", "GEMINI_API_KEY"}:
            monkeypatch.delenv(key, raising=False)


@pytest.fixture
def app_config(tmp_path: Path) -> AppConfig:
    return AppConfig(
        storage=StorageConfig(data_dir=tmp_path / "data"),
        logging=LoggingConfig(
            audit_db=tmp_path / "audit.db",
            log_file=tmp_path / "chaindesk.log",
        ),
        runtime=RuntimeConfig(
            socket_path=tmp_path / "chaindesk.sock",
            pid_file=tmp_path / "chaindesk-daemon.pid",
            request_timeout_seconds=5,
        ),
    )


@pytest.fixture
def chain_expiry() -> date:
    return date.today() + timedelta(days=MARKET_EXPIRY_DAYS)


def _market_upstream(cfg: AppConfig) -> UpstreamClient:
    """Upstream client answering an AAPL chain and quote; every other ticker is a 404."""
    expiry = date.today() + timedelta(days=MARKET_EXPIRY_DAYS)

    def handler(request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path == "/options/AAPL.json":
            return httpx.Response(200, json={"data": {"options": _chain_rows(expiry)}})
        if path == "/chart/AAPL":
            meta = {"regularMarketPrice": MARKET_SPOT, "chartPreviousClose": 100.0, "regularMarketVolume": 1000}
            return httpx.Response(200, json={"chart": {"result": [{"meta": meta}], "error": None}})
        return httpx.Response(404, text="Not Found")

    upstream_cfg = cfg.upstream.model_copy(
        update={"cboe_base_url": "https://chains.test/options", "quote_base_url": "https://quotes.test/chart"}
    )
    return UpstreamClient(upstream_cfg, transport=httpx.MockTransport(handler))


@pytest.fixture
def market_upstream() -> Callable[[AppConfig], UpstreamClient]:
    return _market_upstream


@pytest_asyncio.fixture
async def server(app_config: AppConfig) -> AsyncIterator[DaemonServer]:
    daemon = DaemonServer(app_config, upstream=_market_upstream(app_config))
    await daemon._audit.start()  # noqa: SLF001
    try:
        yield daemon
    finally:
        await daemon._audit.close()  # noqa: SLF001
        await daemon._upstream.stop()  # noqa: SLF001


def _chain_rows(expiry: date) -> list[dict[str, Any]]:
    rows = []
    for kind, strike, bid, ask in (
        ("call", 100, 6.0, 6.4),
        ("call", 110, 1.9, 2.1),
        ("call", 120, 0.5, 0.7),
        ("put", 95, 0.8, 1.0),
        ("put", 100, 1.6, 1.8),
    ):
        rows.append(
            {
                "option": encode("AAPL", kind, strike, expiry),
                "bid": bid,
                "ask": ask,
                "iv": 0.28,
                "open_interest": 1200,
                "volume": 80,
                "delta": 0.4 if kind == "call" else -0.3,
            }
        )
    return rows
