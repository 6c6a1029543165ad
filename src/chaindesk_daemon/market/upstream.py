"""HTTP transport for the delayed-quote chain feed and spot quotes."""

from __future__ import annotations

from contextlib import suppress
import logging
from typing import Any

import httpx
from pydantic import ValidationError

from chaindesk_daemon.config import UpstreamConfig
from chaindesk_daemon.exceptions import ErrorCode, UpstreamError
from chaindesk_daemon.models.market import RawContract

logger = logging.getLogger(__name__)


class UpstreamClient:
    """Owns one ``httpx.AsyncClient`` shared by chain and quote fetches."""

    def __init__(self, cfg: UpstreamConfig, *, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._cfg = cfg
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def start(self) -> None:
        if self._client is not None:
            return
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(self._cfg.timeout_seconds, connect=self._cfg.connect_timeout_seconds),
            headers={"User-Agent": self._cfg.user_agent, "Accept": "application/json"},
            transport=self._transport,
        )

    async def stop(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def fetch_chain(self, ticker: str) -> list[RawContract]:
        """Return the raw contract records for ``ticker``.

        Records that do not fit the wire shape are skipped. Symbol decoding is
        left to callers.
        """
        symbol = ticker.strip().upper()
        url = f"{self._cfg.cboe_base_url.rstrip('/')}/{symbol}.json"
        payload = await self._request_json(url, operation="chain", ticker=symbol)

        data = payload.get("data")
        options = data.get("options") if isinstance(data, dict) else None
        if not isinstance(options, list):
            raise UpstreamError(
                f"chain response for {symbol} has no options list",
                reason="malformed body",
                details={"ticker": symbol},
            )

        contracts: list[RawContract] = []
        skipped = 0
        for row in options:
            if not isinstance(row, dict):
                skipped += 1
                continue
            try:
                contracts.append(RawContract.model_validate(row))
            except ValidationError:
                skipped += 1
        if skipped:
            logger.debug("chain %s: skipped %d malformed records", symbol, skipped)
        logger.info("fetched chain %s (%d contracts)", symbol, len(contracts))
        return contracts

    async def fetch_quote_meta(self, ticker: str) -> dict[str, Any]:
        symbol = ticker.strip().upper()
        url = f"{self._cfg.quote_base_url.rstrip('/')}/{symbol}"
        payload = await self._request_json(
            url,
            operation="quote",
            ticker=symbol,
            params={"interval": "1d", "range": "1d"},
        )
        chart = payload.get("chart")
        results = chart.get("result") if isinstance(chart, dict) else None
        if not isinstance(results, list) or not results or not isinstance(results[0], dict):
            raise UpstreamError(
                f"no quote data for {symbol}",
                code=ErrorCode.INVALID_SYMBOL,
                reason="empty chart result",
                details={"ticker": symbol},
                suggestion="Confirm the ticker symbol.",
            )
        meta = results[0].get("meta")
        if not isinstance(meta, dict):
            raise UpstreamError(f"quote for {symbol} has no meta block", reason="malformed body")
        return meta

    async def _request(
        self,
        url: str,
        *,
        operation: str,
        ticker: str,
        params: dict[str, Any] | None = None,
    ) -> httpx.Response:
        if self._client is None:
            await self.start()
        assert self._client is not None

        try:
            response = await self._client.get(url, params=params)
        except httpx.TimeoutException as exc:
            raise UpstreamError(
                f"{operation} request for {ticker} timed out",
                code=ErrorCode.TIMEOUT,
                reason="timeout",
                details={"operation": operation, "ticker": ticker},
                suggestion="Retry, or raise upstream.timeout_seconds.",
            ) from exc
        except httpx.RequestError as exc:
            raise UpstreamError(
                f"{operation} request for {ticker} failed: {exc}",
                reason=type(exc).__name__,
                details={"operation": operation, "ticker": ticker},
                suggestion="Check network connectivity.",
            ) from exc

        if response.status_code >= 400:
            self._raise_http_error(response, operation=operation, ticker=ticker)
        return response

    async def _request_json(
        self,
        url: str,
        *,
        operation: str,
        ticker: str,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        response = await self._request(url, operation=operation, ticker=ticker, params=params)
        try:
            payload = response.json()
        except ValueError as exc:
            raise UpstreamError(
                f"{operation} response for {ticker} is not JSON",
                status_code=response.status_code,
                reason="invalid json",
                details={"operation": operation, "ticker": ticker},
            ) from exc
        if not isinstance(payload, dict):
            raise UpstreamError(
                f"{operation} response for {ticker} is not an object",
                status_code=response.status_code,
                reason="malformed body",
            )
        return payload

    def _raise_http_error(self, response: httpx.Response, *, operation: str, ticker: str) -> None:
        status_code = response.status_code
        reason = response.reason_phrase or ""
        with suppress(Exception):
            text = response.text.strip()
            if text and len(text) <= 200:
                reason = text

        code = ErrorCode.UPSTREAM_ERROR
        suggestion: str | None = None
        if status_code == 429:
            code = ErrorCode.RATE_LIMITED
            suggestion = "Retry with lower request frequency."
        elif status_code in {403, 404}:
            code = ErrorCode.INVALID_SYMBOL
            suggestion = "Confirm the ticker has listed options."

        logger.warning("%s %s failed: HTTP %d", operation, ticker, status_code)
        raise UpstreamError(
            f"{operation} request for {ticker} failed: HTTP {status_code}",
            status_code=status_code,
            reason=reason,
            code=code,
            details={"operation": operation, "ticker": ticker},
            suggestion=suggestion,
        )
