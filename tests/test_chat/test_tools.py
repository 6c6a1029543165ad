from __future__ import annotations

from datetime import date, timedelta

import pytest

from chaindesk_daemon.chat.tools import OPTION_CHAIN_TOOL, ChainToolExecutor, render_chain_table
from chaindesk_daemon.exceptions import UpstreamError
from chaindesk_daemon.market.chain_cache import ChainCache
from chaindesk_daemon.market.query import ChainQueryEngine
from chaindesk_daemon.market.symbols import encode
from chaindesk_daemon.models.chat import ToolInvocation
from chaindesk_daemon.models.market import ChainFilter, FilteredContract, OptionKind, RawContract


def _engine(contracts: list[RawContract] | None = None, error: Exception | None = None) -> ChainQueryEngine:
    async def fetch(_: str) -> list[RawContract]:
        if error is not None:
            raise error
        return contracts or []

    return ChainQueryEngine(ChainCache(fetch))


def _invoke(**arguments: object) -> ToolInvocation:
    return ToolInvocation(id="t1", name="get_option_chain", arguments=arguments)


def _chain() -> list[RawContract]:
    expiry = date.today() + timedelta(days=30)
    return [
        RawContract(symbol=encode("XYZ", "call", strike, expiry), bid=1.0, ask=1.5, iv=0.42, delta=0.35, volume=1200)
        for strike in (100, 110, 120)
    ]


def test_tool_declaration_requires_ticker() -> None:
    assert OPTION_CHAIN_TOOL.name == "get_option_chain"
    assert OPTION_CHAIN_TOOL.parameters["required"] == ["ticker"]
    assert OPTION_CHAIN_TOOL.parameters["properties"]["type"]["enum"] == ["calls", "puts", "both"]


@pytest.mark.asyncio
async def test_unknown_tool_is_reported() -> None:
    result = await ChainToolExecutor(_engine())(ToolInvocation(id="x", name="get_weather"))

    assert result.is_error is True
    assert result.content == "Unknown tool: get_weather"
    assert result.invocation_id == "x"


@pytest.mark.asyncio
async def test_missing_ticker_is_reported() -> None:
    result = await ChainToolExecutor(_engine())(_invoke(type="calls"))

    assert result.is_error is True
    assert result.content == "Error: ticker is required"


@pytest.mark.asyncio
async def test_table_uses_spot_for_moneyness() -> None:
    executor = ChainToolExecutor(_engine(_chain()), {"xyz": 105.0})

    result = await executor(_invoke(ticker="xyz", type="calls"))

    assert result.is_error is False
    lines = result.content.splitlines()
    assert lines[0] == "XYZ options  |  underlying: $105.00"
    assert lines[1] == "Filters: calls, DTE 20-90 days, OTM only: true  |  2 contracts"
    assert "$110" in lines[5] and "$120" in lines[6]
    assert "42.0%" in lines[5]
    assert "1,200" in lines[5]


@pytest.mark.asyncio
async def test_no_matches_suggests_widening() -> None:
    executor = ChainToolExecutor(_engine(_chain()))

    result = await executor(_invoke(ticker="XYZ", type="puts", dte_min=1, dte_max=5))

    assert result.is_error is False
    assert result.content == (
        "No XYZ options matched (puts, DTE 1-5, OTM: true). Try widening filters or check the ticker."
    )


@pytest.mark.asyncio
async def test_null_optional_arguments_use_defaults() -> None:
    executor = ChainToolExecutor(_engine(_chain()), {"XYZ": 105.0})

    result = await executor(
        _invoke(ticker="XYZ", type=None, dte_min=None, dte_max=None, otm_only=None, max_results=None)
    )

    assert result.is_error is False
    assert result.content.splitlines()[1] == "Filters: both, DTE 20-90 days, OTM only: true  |  2 contracts"


@pytest.mark.asyncio
async def test_fetch_failure_is_reported_as_text() -> None:
    executor = ChainToolExecutor(_engine(error=UpstreamError("chain request for XYZ failed: HTTP 503")))

    result = await executor(_invoke(ticker="XYZ"))

    assert result.is_error is True
    assert result.content == "Error fetching XYZ options: chain request for XYZ failed: HTTP 503"


@pytest.mark.asyncio
async def test_invalid_arguments_are_reported() -> None:
    result = await ChainToolExecutor(_engine(_chain()))(_invoke(ticker="XYZ", dte_min="soon"))

    assert result.is_error is True
    assert result.content.startswith("Error: invalid arguments for get_option_chain")


def test_render_without_spot_shows_na() -> None:
    contract = FilteredContract(
        kind=OptionKind.PUT,
        strike=87.5,
        expiry=date(2026, 3, 20),
        dte=30,
        bid=2.0,
        ask=2.2,
        mid=2.1,
        iv=0.5,
        delta=-0.3,
        volume=0,
        open_interest=15000,
    )

    table = render_chain_table("XYZ", ChainFilter(kind="puts", otm_only=False), [contract])

    assert table.splitlines()[0] == "XYZ options  |  underlying: N/A"
    assert "OTM only: false" in table
    assert "2026-03-20" in table and "PUT" in table and "$87.5" in table and "15,000" in table
