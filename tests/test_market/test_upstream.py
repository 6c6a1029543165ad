from __future__ import annotations

from typing import Any, Callable

import httpx
import pytest

from chaindesk_daemon.config import UpstreamConfig
from chaindesk_daemon.exceptions import ErrorCode, UpstreamError
from chaindesk_daemon.market.quotes import QuoteService
from chaindesk_daemon.market.upstream import UpstreamClient


def _client(handler: Callable[[httpx.Request], httpx.Response]) -> UpstreamClient:
    cfg = UpstreamConfig(cboe_base_url="https://chains.test/options", quote_base_url="https://quotes.test/chart")
    return UpstreamClient(cfg, transport=httpx.MockTransport(handler))


def _chart(meta: dict[str, Any]) -> dict[str, Any]:
    return {"chart": {"result": [{"meta": meta}], "error": None}}


@pytest.mark.asyncio
async def test_fetch_chain_parses_options_and_skips_bad_rows() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            json={
                "data": {
                    "options": [
                        {"option": "AAPL260321C00100000", "bid": 1.5, "ask": 1.7, "iv": 0.31, "volume": None},
                        {"bid": 2.0},
                        "nonsense",
                    ]
                }
            },
        )

    upstream = _client(handler)
    try:
        contracts = await upstream.fetch_chain("aapl")
    finally:
        await upstream.stop()

    assert [c.symbol for c in contracts] == ["AAPL260321C00100000"]
    assert contracts[0].mid == pytest.approx(1.6)
    assert contracts[0].volume == 0.0
    assert str(seen[0].url) == "https://chains.test/options/AAPL.json"
    assert seen[0].headers["Accept"] == "application/json"
    assert seen[0].headers["User-Agent"].startswith("Mozilla/5.0")


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("status", "code"),
    [
        (404, ErrorCode.INVALID_SYMBOL),
        (429, ErrorCode.RATE_LIMITED),
        (500, ErrorCode.UPSTREAM_ERROR),
    ],
)
async def test_fetch_chain_maps_http_status(status: int, code: ErrorCode) -> None:
    upstream = _client(lambda request: httpx.Response(status, text="nope"))

    with pytest.raises(UpstreamError) as exc:
        await upstream.fetch_chain("AAPL")
    await upstream.stop()

    assert exc.value.code == code
    assert exc.value.status_code == status
    assert exc.value.reason == "nope"


@pytest.mark.asyncio
async def test_fetch_chain_rejects_body_without_options() -> None:
    upstream = _client(lambda request: httpx.Response(200, json={"data": {}}))

    with pytest.raises(UpstreamError) as exc:
        await upstream.fetch_chain("AAPL")
    await upstream.stop()

    assert exc.value.reason == "malformed body"


@pytest.mark.asyncio
async def test_transport_failures_become_upstream_errors() -> None:
    def timeout(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    def refused(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    slow = _client(timeout)
    with pytest.raises(UpstreamError) as exc:
        await slow.fetch_chain("AAPL")
    await slow.stop()
    assert exc.value.code == ErrorCode.TIMEOUT

    down = _client(refused)
    with pytest.raises(UpstreamError) as exc:
        await down.fetch_chain("AAPL")
    await down.stop()
    assert exc.value.code == ErrorCode.UPSTREAM_ERROR
    assert exc.value.reason == "ConnectError"


@pytest.mark.asyncio
async def test_quote_reads_chart_meta() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            json=_chart(
                {
                    "regularMarketPrice": 110.0,
                    "chartPreviousClose": 100.0,
                    "regularMarketVolume": 12345,
                    "marketCap": 2.5e12,
                }
            ),
        )

    upstream = _client(handler)
    quote = await QuoteService(upstream).quote("msft")
    await upstream.stop()

    assert quote.ticker == "MSFT"
    assert quote.price == 110.0
    assert quote.change == pytest.approx(10.0)
    assert quote.change_percent == pytest.approx(10.0)
    assert quote.volume == 12345
    assert quote.market_cap == 2.5e12
    assert seen[0].url.params["interval"] == "1d"
    assert seen[0].url.params["range"] == "1d"


@pytest.mark.asyncio
async def test_quote_without_previous_close_has_zero_change() -> None:
    upstream = _client(lambda request: httpx.Response(200, json=_chart({"regularMarketPrice": 50})))
    quote = await QuoteService(upstream).quote("XYZ")
    await upstream.stop()

    assert quote.prev_close == 50
    assert quote.change == 0
    assert quote.change_percent == 0


@pytest.mark.asyncio
async def test_quote_errors_for_unknown_symbol() -> None:
    upstream = _client(lambda request: httpx.Response(200, json={"chart": {"result": []}}))

    with pytest.raises(UpstreamError) as exc:
        await QuoteService(upstream).quote("ZZZZ")
    await upstream.stop()

    assert exc.value.code == ErrorCode.INVALID_SYMBOL


@pytest.mark.asyncio
async def test_quotes_batch_omits_failures() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/BAD"):
            return httpx.Response(404)
        return httpx.Response(200, json=_chart({"regularMarketPrice": 10}))

    upstream = _client(handler)
    quotes = await QuoteService(upstream).quotes(["aapl", "BAD", "AAPL", " "])
    await upstream.stop()

    assert list(quotes) == ["AAPL"]
