"""Async Python SDK for chaindesk-daemon."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Iterable
from pathlib import Path
from typing import Any

from chaindesk_daemon.config import load_config
from chaindesk_daemon.exceptions import DeskError, ErrorCode
from chaindesk_daemon.protocol import Request, Response, decode_event, decode_response, encode_model, frame_payload, read_framed
from chaindesk_sdk.types import AuditSource, ChainKind, MutationEvent, OptionType, Provider


class Client:
    """Async chaindesk client over the daemon Unix socket.

    Every operation routes through `chaindesk-daemon`, so the chain cache and audit logging are shared.
    """

    def __init__(
        self,
        socket_path: str | Path | None = None,
        timeout_seconds: int | None = None,
        stream_timeout_seconds: int | None = None,
    ) -> None:
        cfg = load_config()
        self._socket_path = Path(socket_path).expanduser() if socket_path else cfg.runtime.socket_path
        self._timeout = timeout_seconds or cfg.runtime.request_timeout_seconds
        self._stream_timeout = stream_timeout_seconds or cfg.runtime.stream_timeout_seconds

    async def __aenter__(self) -> "Client":
        return self

    async def __aexit__(self, *_: object) -> None:
        return None

    async def _connect(self) -> tuple[asyncio.StreamReader, asyncio.StreamWriter]:
        try:
            return await asyncio.open_unix_connection(str(self._socket_path))
        except (FileNotFoundError, ConnectionRefusedError) as exc:
            raise DeskError(
                ErrorCode.DAEMON_NOT_RUNNING,
                "chaindesk-daemon socket not found",
                details={"socket_path": str(self._socket_path)},
                suggestion="Start the daemon first: `chaindesk daemon start`.",
            ) from exc

    async def _request(self, command: str, params: dict[str, Any] | None = None, *, source: str = "sdk") -> Any:
        req = Request(command=command, params=params or {}, source=source)
        reader, writer = await self._connect()

        writer.write(frame_payload(encode_model(req)))
        await writer.drain()

        try:
            payload = await asyncio.wait_for(read_framed(reader), timeout=self._timeout)
        except asyncio.TimeoutError as exc:
            writer.close()
            await _safe_wait_closed(writer)
            raise DeskError(
                ErrorCode.TIMEOUT,
                "request timed out waiting for daemon response",
                details={"timeout_seconds": self._timeout},
                suggestion="Retry or increase runtime.request_timeout_seconds in config.",
            ) from exc

        writer.close()
        await _safe_wait_closed(writer)

        response = decode_response(payload)
        return _unwrap_response(response)

    async def chat(
        self,
        messages: Iterable[dict[str, str]],
        *,
        provider: Provider | None = None,
        system_context: str | None = None,
        tools: bool = True,
        account_id: str | None = None,
        source: str = "sdk",
    ) -> AsyncIterator[dict[str, Any]]:
        """Run one chat turn and yield its events (`tool_call`, `text`, `done`).

        The `done` event carries `display_text`, `mutation` and `tool_rounds`. An
        `error` event from the daemon is raised as `DeskError`.
        """
        params: dict[str, Any] = {"messages": list(messages), "tools": tools}
        if provider:
            params["provider"] = provider
        if system_context is not None:
            params["system_context"] = system_context
        if account_id:
            params["account_id"] = account_id

        req = Request(command="chat.turn", params=params, stream=True, source=source)
        reader, writer = await self._connect()
        try:
            writer.write(frame_payload(encode_model(req)))
            await writer.drain()

            first = decode_response(await self._read_stream_frame(reader))
            _unwrap_response(first)

            while True:
                try:
                    payload = await self._read_stream_frame(reader)
                except asyncio.IncompleteReadError:
                    return
                data = decode_event(payload).data
                if data.get("type") == "error":
                    raise _error_from_payload(data.get("error") or {})
                yield data
                if data.get("type") == "done":
                    return
        finally:
            writer.close()
            await _safe_wait_closed(writer)

    async def _read_stream_frame(self, reader: asyncio.StreamReader) -> bytes:
        try:
            return await asyncio.wait_for(read_framed(reader), timeout=self._stream_timeout)
        except asyncio.TimeoutError as exc:
            raise DeskError(
                ErrorCode.TIMEOUT,
                "chat turn stalled waiting for the next event",
                details={"timeout_seconds": self._stream_timeout},
                suggestion="Retry or increase runtime.stream_timeout_seconds in config.",
            ) from exc

    async def daemon_status(self) -> dict[str, Any]:
        """Fetch daemon uptime, cache and provider status."""
        return await self._request("daemon.status")

    async def daemon_stop(self) -> dict[str, Any]:
        """Request graceful daemon shutdown."""
        return await self._request("daemon.stop")

    async def quote(self, *tickers: str) -> list[dict[str, Any]]:
        """Return equity quotes for one or more tickers; unknown tickers are omitted."""
        data = await self._request("quote.snapshot", {"tickers": list(tickers)})
        return data.get("quotes", [])

    async def raw_chain(self, ticker: str) -> list[dict[str, Any]]:
        data = await self._request("chain.raw", {"ticker": ticker})
        return data.get("contracts", [])

    async def query_chain(
        self,
        ticker: str,
        *,
        kind: ChainKind = "both",
        dte_min: float = 20,
        dte_max: float = 90,
        otm_only: bool = True,
        max_results: int = 25,
        underlying_price: float | None = None,
    ) -> dict[str, Any]:
        params: dict[str, Any] = {
            "ticker": ticker,
            "kind": kind,
            "dte_min": dte_min,
            "dte_max": dte_max,
            "otm_only": otm_only,
            "max_results": max_results,
        }
        if underlying_price is not None:
            params["underlying_price"] = underlying_price
        return await self._request("chain.query", params)

    async def chain_view(self, ticker: str, expiry: str | None = None) -> dict[str, Any]:
        params: dict[str, Any] = {"ticker": ticker}
        if expiry:
            params["expiry"] = expiry
        return await self._request("chain.view", params)

    async def iv30(self, ticker: str, underlying_price: float | None = None) -> dict[str, Any]:
        params: dict[str, Any] = {"ticker": ticker}
        if underlying_price is not None:
            params["underlying_price"] = underlying_price
        return await self._request("chain.iv30", params)

    async def option_mid(self, ticker: str, option_type: OptionType, strike: float, expiry: str) -> dict[str, Any]:
        return await self._request(
            "chain.mid",
            {"ticker": ticker, "type": option_type, "strike": strike, "expiry": expiry},
        )

    async def refresh_chain(self, ticker: str | None = None) -> dict[str, Any]:
        return await self._request("chain.refresh", {"ticker": ticker} if ticker else {})

    async def prices(self, account_id: str | None = None) -> dict[str, Any]:
        return await self._request("prices.snapshot", _account(account_id))

    async def holdings(self, account_id: str | None = None) -> dict[str, Any]:
        data = await self._request("holdings.get", _account(account_id))
        return data.get("holdings", {})

    async def set_holdings(self, holdings: dict[str, Any], account_id: str | None = None) -> dict[str, Any]:
        data = await self._request("holdings.set", {"holdings": holdings, **_account(account_id)})
        return data.get("holdings", {})

    async def watch_option(
        self,
        ticker: str,
        option_type: OptionType,
        strike: float,
        expiration: str,
        *,
        notes: str = "",
        account_id: str | None = None,
    ) -> dict[str, Any]:
        return await self._request(
            "holdings.watch_option",
            {
                "ticker": ticker,
                "type": option_type,
                "strike": strike,
                "expiration": expiration,
                "notes": notes,
                **_account(account_id),
            },
        )

    async def strategy(self, account_id: str | None = None) -> str:
        data = await self._request("strategy.get", _account(account_id))
        return data.get("strategy", "")

    async def set_strategy(self, text: str, account_id: str | None = None) -> str:
        data = await self._request("strategy.set", {"text": text, **_account(account_id)})
        return data.get("strategy", "")

    async def persona(self) -> str:
        data = await self._request("persona.get")
        return data.get("persona", "")

    async def set_persona(self, text: str) -> str:
        data = await self._request("persona.set", {"text": text})
        return data.get("persona", "")

    async def accounts(self) -> dict[str, Any]:
        return await self._request("accounts.list")

    async def active_account(self) -> dict[str, Any]:
        return await self._request("accounts.active")

    async def switch_account(self, account_id: str) -> dict[str, Any]:
        return await self._request("accounts.switch", {"id": account_id})

    async def create_account(self, name: str, *, activate: bool = False) -> dict[str, Any]:
        return await self._request("accounts.create", {"name": name, "activate": activate})

    async def delete_account(self, account_id: str) -> dict[str, Any]:
        return await self._request("accounts.delete", {"id": account_id})

    async def chat_context(self, account_id: str | None = None) -> dict[str, Any]:
        return await self._request("chat.context", _account(account_id))

    async def extract_mutation(self, text: str) -> dict[str, Any]:
        return await self._request("mutation.extract", {"text": text})

    async def apply_mutation(
        self,
        mutation: dict[str, Any],
        *,
        account_id: str | None = None,
        request_id: str | None = None,
    ) -> dict[str, Any]:
        params: dict[str, Any] = {"mutation": mutation, **_account(account_id)}
        if request_id:
            params["request_id"] = request_id
        return await self._request("mutation.apply", params)

    async def audit_commands(
        self,
        source: AuditSource | None = None,
        command: str | None = None,
        since: str | None = None,
        limit: int = 100,
    ) -> dict[str, Any]:
        params: dict[str, Any] = {"limit": limit}
        if source:
            params["source"] = source
        if command:
            params["command"] = command
        if since:
            params["since"] = since
        return await self._request("audit.commands", params)

    async def audit_tool_calls(
        self,
        request_id: str | None = None,
        tool: str | None = None,
        since: str | None = None,
        limit: int = 100,
    ) -> dict[str, Any]:
        params: dict[str, Any] = {"limit": limit}
        if request_id:
            params["request_id"] = request_id
        if tool:
            params["tool"] = tool
        if since:
            params["since"] = since
        return await self._request("audit.tool_calls", params)

    async def audit_mutations(
        self,
        event: MutationEvent | None = None,
        since: str | None = None,
        limit: int = 100,
    ) -> dict[str, Any]:
        params: dict[str, Any] = {"limit": limit}
        if event:
            params["event"] = event
        if since:
            params["since"] = since
        return await self._request("audit.mutations", params)


def _account(account_id: str | None) -> dict[str, Any]:
    return {"account_id": account_id} if account_id else {}


def _unwrap_response(response: Response) -> Any:
    if response.ok:
        return response.data

    error = response.error
    if not error:
        raise DeskError(ErrorCode.INTERNAL_ERROR, "daemon returned malformed error response")

    raise DeskError(_error_code(error.code), error.message, details=error.details, suggestion=error.suggestion)


def _error_from_payload(payload: dict[str, Any]) -> DeskError:
    code = _error_code(str(payload.get("code", "")))
    return DeskError(
        code,
        str(payload.get("message") or "chat turn failed"),
        details=payload.get("details") or {},
        suggestion=payload.get("suggestion"),
    )


def _error_code(raw: str) -> ErrorCode:
    return ErrorCode(raw) if raw in {e.value for e in ErrorCode} else ErrorCode.INTERNAL_ERROR


async def _safe_wait_closed(writer: asyncio.StreamWriter) -> None:
    try:
        await writer.wait_closed()
    except Exception:
        return
