"""Spot equity quotes."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Iterable

from chaindesk_daemon.exceptions import ErrorCode, UpstreamError
from chaindesk_daemon.market.upstream import UpstreamClient
from chaindesk_daemon.models.market import EquityQuote

logger = logging.getLogger(__name__)


class QuoteService:
    def __init__(self, upstream: UpstreamClient) -> None:
        self._upstream = upstream

    async def quote(self, ticker: str) -> EquityQuote:
        symbol = ticker.strip().upper()
        meta = await self._upstream.fetch_quote_meta(symbol)
        price = _as_float(meta.get("regularMarketPrice"))
        if price is None:
            raise UpstreamError(
                f"quote for {symbol} has no market price",
                code=ErrorCode.INVALID_SYMBOL,
                reason="missing regularMarketPrice",
                details={"ticker": symbol},
            )
        prev_close = _as_float(meta.get("chartPreviousClose"))
        if prev_close is None:
            prev_close = price
        change = price - prev_close
        change_percent = (change / prev_close) * 100 if prev_close > 0 else 0.0
        return EquityQuote(
            ticker=symbol,
            price=price,
            prev_close=prev_close,
            change=change,
            change_percent=change_percent,
            volume=_as_float(meta.get("regularMarketVolume")) or 0.0,
            market_cap=_as_float(meta.get("marketCap")),
        )

    async def quotes(self, tickers: Iterable[str]) -> dict[str, EquityQuote]:
        """Best-effort batch; tickers that fail are logged and left out."""
        symbols = list(dict.fromkeys(t.strip().upper() for t in tickers if t and t.strip()))
        if not symbols:
            return {}
        results = await asyncio.gather(*(self.quote(symbol) for symbol in symbols), return_exceptions=True)
        out: dict[str, EquityQuote] = {}
        for symbol, result in zip(symbols, results):
            if isinstance(result, EquityQuote):
                out[symbol] = result
            elif isinstance(result, UpstreamError):
                logger.warning("quote for %s unavailable: %s", symbol, result.message)
            elif isinstance(result, BaseException):
                logger.warning("quote for %s failed unexpectedly: %s", symbol, result)
        return out


def _as_float(value: Any) -> float | None:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None
