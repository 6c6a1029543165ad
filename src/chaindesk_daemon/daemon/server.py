"""Unix-domain socket daemon exposing the chaindesk command protocol."""

from __future__ import annotations

import argparse
import asyncio
from datetime import date
from difflib import get_close_matches
import logging
import os
import signal
import time
from pathlib import Path
from typing import Any, Callable

from pydantic import ValidationError

from chaindesk_daemon.audit.logger import AuditLogger
from chaindesk_daemon.audit.query import query_commands, query_mutation_events, query_tool_calls
from chaindesk_daemon.chat.context import build_system_prompt, collect_prices
from chaindesk_daemon.chat.mutation import MutationParseError, parse as parse_mutation
from chaindesk_daemon.chat.orchestrator import Orchestrator, ToolExecutor
from chaindesk_daemon.chat.tools import ChainToolExecutor
from chaindesk_daemon.config import AppConfig, ProvidersConfig, load_config
from chaindesk_daemon.exceptions import DeskError, ErrorCode, UpstreamError
from chaindesk_daemon.market.chain_cache import ChainCache
from chaindesk_daemon.market.query import ChainQueryEngine
from chaindesk_daemon.market.quotes import QuoteService
from chaindesk_daemon.market.symbols import encode
from chaindesk_daemon.market.upstream import UpstreamClient
from chaindesk_daemon.market.volatility import estimate_30day_iv, term_structure
from chaindesk_daemon.models.chat import ConversationTurn, DoneEvent, MutationCommand, TextEvent, ToolInvocation
from chaindesk_daemon.models.holdings import OptionEntry
from chaindesk_daemon.models.market import ChainFilter, OptionKind
from chaindesk_daemon.protocol import (
    ErrorResponse,
    Request,
    Response,
    decode_request,
    encode_model,
    frame_event,
    frame_payload,
    read_framed,
)
from chaindesk_daemon.providers import ChatProvider, build_provider
from chaindesk_daemon.storage.accounts import AccountStore

logger = logging.getLogger(__name__)

KNOWN_COMMANDS: tuple[str, ...] = (
    "daemon.status",
    "daemon.stop",
    "chain.raw",
    "chain.query",
    "chain.view",
    "chain.iv30",
    "chain.mid",
    "chain.refresh",
    "quote.snapshot",
    "prices.snapshot",
    "holdings.get",
    "holdings.set",
    "holdings.watch_option",
    "strategy.get",
    "strategy.set",
    "persona.get",
    "persona.set",
    "accounts.list",
    "accounts.active",
    "accounts.switch",
    "accounts.create",
    "accounts.delete",
    "chat.context",
    "chat.turn",
    "mutation.extract",
    "mutation.apply",
    "audit.commands",
    "audit.tool_calls",
    "audit.mutations",
)
STREAMING_COMMANDS = frozenset({"chat.turn"})

ProviderFactory = Callable[[str, ProvidersConfig], ChatProvider]


class DaemonServer:
    def __init__(
        self,
        cfg: AppConfig,
        *,
        upstream: UpstreamClient | None = None,
        provider_factory: ProviderFactory = build_provider,
    ) -> None:
        self._cfg = cfg
        self._start_monotonic = time.monotonic()
        self._shutdown = asyncio.Event()

        self._audit = AuditLogger(cfg.logging.audit_db)
        self._upstream = upstream or UpstreamClient(cfg.upstream)
        self._cache = ChainCache(self._upstream.fetch_chain, ttl_seconds=cfg.upstream.chain_cache_ttl_seconds)
        self._engine = ChainQueryEngine(self._cache)
        self._quotes = QuoteService(self._upstream)
        self._accounts = AccountStore(cfg.storage.data_dir)
        self._orchestrator = Orchestrator(
            max_tool_rounds=cfg.providers.max_tool_rounds,
            round_timeout_seconds=cfg.providers.round_timeout_seconds,
            tool_timeout_seconds=cfg.providers.tool_timeout_seconds,
        )
        self._provider_factory = provider_factory

        self._server: asyncio.AbstractServer | None = None
        self._active_turns = 0

    @property
    def socket_path(self) -> Path:
        return self._cfg.runtime.socket_path

    async def start(self) -> None:
        self._cfg.ensure_dirs()
        await self._audit.start()
        await self._upstream.start()

        if self.socket_path.exists():
            if await _socket_is_active(self.socket_path):
                raise RuntimeError(f"daemon socket already in use: {self.socket_path}")
            self.socket_path.unlink()

        self._server = await asyncio.start_unix_server(self._handle_client, path=str(self.socket_path))
        os.chmod(self.socket_path, 0o600)
        self._cfg.runtime.pid_file.write_text(str(os.getpid()), encoding="utf-8")
        logger.info("chaindesk daemon listening on %s", self.socket_path)

    async def serve(self) -> None:
        if not self._server:
            raise RuntimeError("server not started")

        async with self._server:
            await self._shutdown.wait()

    async def stop(self) -> None:
        if self._shutdown.is_set():
            return

        self._shutdown.set()

        if self._server:
            self._server.close()
            await self._server.wait_closed()
            self._server = None

        await self._upstream.stop()
        await self._audit.close()

        if self.socket_path.exists():
            self.socket_path.unlink()
        if self._cfg.runtime.pid_file.exists():
            self._cfg.runtime.pid_file.unlink()
        logger.info("chaindesk daemon stopped")

    async def _handle_client(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        request: Request | None = None
        result_code = 0
        started = time.monotonic()

        try:
            payload = await read_framed(reader)
            request = decode_request(payload)

            if request.command in STREAMING_COMMANDS:
                result_code = await self._stream_chat_turn(request, writer)
                writer.close()
                await _safe_wait_closed(writer)
                await self._log_command(request, result_code, started)
                return

            data = await self._dispatch(request)
            response = Response(request_id=request.request_id, ok=True, data=data)
        except asyncio.IncompleteReadError:
            writer.close()
            await _safe_wait_closed(writer)
            return
        except (ValidationError, KeyError, TypeError, ValueError) as exc:
            err = _invalid_args_error(exc)
            result_code = err.exit_code
            response = _error_response(request, err)
        except DeskError as exc:
            result_code = exc.exit_code
            response = _error_response(request, exc)
        except Exception as exc:
            logger.exception("unhandled daemon error")
            result_code = 1
            response = Response(
                request_id=request.request_id if request else "",
                ok=False,
                error=ErrorResponse(code=ErrorCode.INTERNAL_ERROR.value, message=str(exc)),
            )

        writer.write(frame_payload(encode_model(response)))
        await writer.drain()
        writer.close()
        await _safe_wait_closed(writer)

        if request:
            await self._log_command(request, result_code, started)

    async def _log_command(self, request: Request, result_code: int, started: float) -> None:
        if self._shutdown.is_set():
            return
        await self._audit.log_command(
            request.source,
            request.command,
            request.params,
            result_code,
            duration_ms=round((time.monotonic() - started) * 1000, 3),
        )

    async def _stream_chat_turn(self, request: Request, writer: asyncio.StreamWriter) -> int:
        """Run one chat turn, writing an ack ``Response`` then one event frame per turn event.

        Failures before the ack are plain error responses; after it they are
        ``error`` events. Returns the audit result code.
        """
        try:
            turn, provider, executor = await self._prepare_turn(request)
        except (ValidationError, KeyError, TypeError, ValueError) as exc:
            err = _invalid_args_error(exc)
            await _write_frame(writer, frame_payload(encode_model(_error_response(request, err))))
            return err.exit_code
        except DeskError as exc:
            await _write_frame(writer, frame_payload(encode_model(_error_response(request, exc))))
            return exc.exit_code
        except Exception as exc:
            logger.exception("chat turn %s could not start", request.request_id)
            err = DeskError(ErrorCode.INTERNAL_ERROR, str(exc))
            await _write_frame(writer, frame_payload(encode_model(_error_response(request, err))))
            return 1

        ack = Response(
            request_id=request.request_id,
            ok=True,
            data={
                "provider": provider.name,
                "model": provider.model,
                "max_tool_rounds": self._orchestrator.max_tool_rounds,
                "tools": executor is not None,
            },
        )
        self._active_turns += 1
        events = self._orchestrator.run_turn(turn.messages, turn.system_context, provider, executor)
        text_parts: list[str] = []
        result_code = 0
        try:
            await _write_frame(writer, frame_payload(encode_model(ack)))
            async for event in events:
                data = event.model_dump(mode="json")
                if isinstance(event, TextEvent):
                    text_parts.append(event.text)
                elif isinstance(event, DoneEvent):
                    data.update(await self._finish_turn("".join(text_parts), request.request_id))
                await _write_frame(writer, frame_event(request.request_id, data))
        except (ConnectionResetError, BrokenPipeError):
            logger.info("client abandoned chat turn %s", request.request_id)
            result_code = 1
        except DeskError as exc:
            result_code = exc.exit_code
            await _write_error_event(writer, request.request_id, exc.to_error_payload())
        except Exception as exc:
            logger.exception("chat turn %s failed", request.request_id)
            result_code = 1
            await _write_error_event(
                writer,
                request.request_id,
                {"code": ErrorCode.INTERNAL_ERROR.value, "message": str(exc), "details": {}},
            )
        finally:
            await events.aclose()
            await provider.aclose()
            self._active_turns -= 1
        return result_code

    async def _prepare_turn(self, request: Request) -> tuple[ConversationTurn, ChatProvider, ToolExecutor | None]:
        p = request.params
        provider_name = str(p.get("provider") or self._cfg.providers.default).lower()
        use_tools = _parse_bool(p.get("tools", True), field_name="tools")

        system_context = p.get("system_context")
        spot_prices: dict[str, float] = {}
        if system_context is None or use_tools:
            account = self._accounts.read(p.get("account_id"))
            prices = await collect_prices(account.holdings, self._quotes, self._cache)
            spot_prices = prices.spot_prices()
            if system_context is None:
                system_context = build_system_prompt(
                    self._accounts.persona(), account.strategy, account.holdings, prices
                )

        turn = ConversationTurn.model_validate(
            {"messages": p["messages"], "system_context": system_context, "provider": provider_name}
        )
        provider = self._provider_factory(turn.provider, self._cfg.providers)
        executor: ToolExecutor | None = None
        if use_tools:
            executor = self._audited_executor(
                ChainToolExecutor(self._engine, spot_prices),
                request_id=request.request_id,
                provider_name=provider.name,
            )
        return turn, provider, executor

    def _audited_executor(self, executor: ToolExecutor, *, request_id: str, provider_name: str) -> ToolExecutor:
        async def _run(invocation: ToolInvocation):
            started = time.monotonic()
            result = await executor(invocation)
            await self._audit.log_tool_call(
                request_id=request_id,
                provider=provider_name,
                tool=invocation.name,
                arguments=invocation.arguments,
                is_error=result.is_error,
                duration_ms=round((time.monotonic() - started) * 1000, 3),
            )
            return result

        return _run

    async def _finish_turn(self, text: str, request_id: str) -> dict[str, Any]:
        try:
            display_text, command = parse_mutation(text)
        except MutationParseError as exc:
            logger.warning("chat turn %s: malformed mutation block: %s", request_id, exc)
            await self._audit.log_mutation_event("parse_failed", request_id=request_id, details={"error": str(exc)})
            return {"display_text": text, "mutation": None}

        if command is not None:
            await self._audit.log_mutation_event("proposed", request_id=request_id, target=command.target)
        return {
            "display_text": display_text,
            "mutation": command.model_dump(mode="json") if command else None,
        }

    async def _dispatch(self, request: Request) -> dict[str, Any]:
        cmd = request.command
        p = request.params

        if cmd == "daemon.status":
            return self._cmd_daemon_status()
        if cmd == "daemon.stop":
            asyncio.create_task(self.stop())
            return {"stopping": True}

        if cmd == "chain.raw":
            ticker = _require_ticker(p)
            contracts = await self._cache.get_chain(ticker)
            return {
                "ticker": ticker,
                "count": len(contracts),
                "contracts": [c.model_dump(mode="json") for c in contracts],
            }

        if cmd == "chain.query":
            ticker = _require_ticker(p)
            spot = _maybe_float(p.get("underlying_price"))
            if spot is None:
                spot = await self._spot_or_none(ticker)
            chain_filter = ChainFilter.model_validate(
                {
                    "kind": str(p.get("kind", p.get("type", "both"))).lower(),
                    "dte_min": p.get("dte_min", 20),
                    "dte_max": p.get("dte_max", 90),
                    "otm_only": p.get("otm_only", True),
                    "max_results": p.get("max_results", 25),
                    "underlying_price": spot,
                }
            )
            contracts = await self._engine.query(ticker, chain_filter)
            return {
                "ticker": ticker,
                "underlying_price": spot,
                "filter": chain_filter.model_dump(mode="json"),
                "contracts": [c.model_dump(mode="json") for c in contracts],
            }

        if cmd == "chain.view":
            ticker = _require_ticker(p)
            expiry = _parse_date(p["expiry"], field_name="expiry") if p.get("expiry") else None
            spot = _maybe_float(p.get("underlying_price"))
            if spot is None:
                spot = await self._spot_or_none(ticker)
            view = await self._engine.chain_view(ticker, expiry=expiry, underlying_price=spot)
            return view.model_dump(mode="json")

        if cmd == "chain.iv30":
            ticker = _require_ticker(p)
            spot = _maybe_float(p.get("underlying_price"))
            if spot is None:
                spot = (await self._quotes.quote(ticker)).price
            contracts = await self._cache.get_chain(ticker)
            return {
                "ticker": ticker,
                "underlying_price": spot,
                "iv30": estimate_30day_iv(contracts, spot),
                "term_structure": [pt.model_dump(mode="json") for pt in term_structure(contracts, spot)],
            }

        if cmd == "chain.mid":
            ticker = _require_ticker(p)
            kind = _parse_kind(p["type"])
            strike = float(p["strike"])
            expiry = _parse_date(p["expiry"], field_name="expiry")
            mid = await self._cache.get_mid(ticker, kind, strike, expiry)
            return {
                "ticker": ticker,
                "symbol": encode(ticker, kind, strike, expiry),
                "mid": mid.model_dump(mode="json") if mid else None,
            }

        if cmd == "chain.refresh":
            ticker = p.get("ticker")
            if ticker:
                key = str(ticker).strip().upper()
                return {"invalidated": [key] if self._cache.invalidate(key) else []}
            return {"cleared": self._cache.clear()}

        if cmd == "quote.snapshot":
            tickers = [str(t).strip().upper() for t in p.get("tickers", []) if str(t).strip()]
            if not tickers:
                raise DeskError(
                    ErrorCode.INVALID_ARGS,
                    "tickers is required and must contain at least one item",
                    suggestion="Example: chaindesk quote AAPL MSFT",
                )
            quotes = await self._quotes.quotes(tickers)
            return {
                "quotes": [q.model_dump(mode="json") for q in quotes.values()],
                "missing": [t for t in tickers if t not in quotes],
            }

        if cmd == "prices.snapshot":
            account = self._accounts.read(p.get("account_id"))
            prices = await collect_prices(account.holdings, self._quotes, self._cache)
            return {"account_id": account.id, **prices.model_dump(mode="json")}

        if cmd == "holdings.get":
            account = self._accounts.read(p.get("account_id"))
            return {"account_id": account.id, "holdings": account.holdings.model_dump(mode="json")}
        if cmd == "holdings.set":
            holdings = self._accounts.set_holdings(p["holdings"], p.get("account_id"))
            return {"holdings": holdings.model_dump(mode="json")}
        if cmd == "holdings.watch_option":
            return await self._cmd_watch_option(p)

        if cmd == "strategy.get":
            return {"strategy": self._accounts.strategy(p.get("account_id"))}
        if cmd == "strategy.set":
            return {"strategy": self._accounts.set_strategy(str(p["text"]), p.get("account_id"))}

        if cmd == "persona.get":
            return {"persona": self._accounts.persona()}
        if cmd == "persona.set":
            return {"persona": self._accounts.set_persona(str(p["text"]))}

        if cmd == "accounts.list":
            return {
                "active": self._accounts.active_id(),
                "accounts": [a.model_dump(mode="json") for a in self._accounts.list_accounts()],
            }
        if cmd == "accounts.active":
            account = self._accounts.read()
            return {"id": account.id, "name": account.name}
        if cmd == "accounts.switch":
            account = self._accounts.set_active(str(p["id"]))
            return {"id": account.id, "name": account.name}
        if cmd == "accounts.create":
            account = self._accounts.create(str(p["name"]))
            if _parse_bool(p.get("activate", False), field_name="activate"):
                self._accounts.set_active(account.id)
            return {"id": account.id, "name": account.name}
        if cmd == "accounts.delete":
            self._accounts.delete(str(p["id"]))
            return {"deleted": str(p["id"]), "active": self._accounts.active_id()}

        if cmd == "chat.context":
            account = self._accounts.read(p.get("account_id"))
            prices = await collect_prices(account.holdings, self._quotes, self._cache)
            return {
                "system_prompt": build_system_prompt(
                    self._accounts.persona(), account.strategy, account.holdings, prices
                ),
                "prices": prices.model_dump(mode="json"),
                "holdings": account.holdings.model_dump(mode="json"),
            }

        if cmd == "mutation.extract":
            text = str(p["text"])
            try:
                display_text, command = parse_mutation(text)
            except MutationParseError as exc:
                await self._audit.log_mutation_event("parse_failed", details={"error": str(exc)})
                return {"display_text": text, "mutation": None, "error": str(exc)}
            return {"display_text": display_text, "mutation": command.model_dump(mode="json") if command else None}

        if cmd == "mutation.apply":
            return await self._cmd_apply_mutation(p)

        if cmd == "audit.commands":
            rows = await query_commands(
                self._audit,
                source=p.get("source"),
                command=p.get("command"),
                since=p.get("since"),
                limit=_positive_int(p.get("limit", 100), field_name="limit"),
            )
            return {"commands": rows}
        if cmd == "audit.tool_calls":
            rows = await query_tool_calls(
                self._audit,
                request_id=p.get("request_id"),
                tool=p.get("tool"),
                since=p.get("since"),
                limit=_positive_int(p.get("limit", 100), field_name="limit"),
            )
            return {"tool_calls": rows}
        if cmd == "audit.mutations":
            rows = await query_mutation_events(
                self._audit,
                event=p.get("event"),
                since=p.get("since"),
                limit=_positive_int(p.get("limit", 100), field_name="limit"),
            )
            return {"mutation_events": rows}

        if cmd in STREAMING_COMMANDS:
            raise DeskError(ErrorCode.INVALID_ARGS, f"{cmd} must be sent as a streaming request")

        raise _unknown_command_error(cmd)

    def _cmd_daemon_status(self) -> dict[str, Any]:
        providers = self._cfg.providers
        return {
            "uptime_seconds": round(time.monotonic() - self._start_monotonic, 3),
            "socket": str(self.socket_path),
            "active_account": self._accounts.active_id(),
            "cached_chains": self._cache.tickers(),
            "chain_age_seconds": {t: round(self._cache.age(t) or 0.0, 1) for t in self._cache.tickers()},
            "chain_cache_ttl_seconds": self._cache.ttl_seconds,
            "active_turns": self._active_turns,
            "providers": {
                "default": providers.default,
                "anthropic": {"configured": bool(providers.anthropic_api_key), "model": providers.anthropic_model},
                "gemini": {"configured": bool(providers.gemini_api_key), "model": providers.gemini_model},
            },
        }

    async def _cmd_watch_option(self, p: dict[str, Any]) -> dict[str, Any]:
        ticker = _require_ticker(p)
        kind = _parse_kind(p["type"])
        strike = float(p["strike"])
        if strike <= 0:
            raise DeskError(ErrorCode.INVALID_ARGS, "strike must be > 0")
        expiration = _parse_date(p["expiration"], field_name="expiration")
        key = encode(ticker, kind, strike, expiration)

        mid = await self._cache.get_mid(ticker, kind, strike, expiration)
        saved_price = mid.mid if mid else None

        account = self._accounts.read(p.get("account_id"))
        holdings = account.holdings.model_copy(deep=True)
        holdings.options[key] = OptionEntry(
            ticker=ticker,
            type=kind.value,
            strike=strike,
            expiration=expiration,
            contracts=0,
            premium_paid=0.0,
            saved_price=saved_price,
            target_price=0.0,
            notes=str(p.get("notes", "")),
        )
        self._accounts.set_holdings(holdings, account.id)
        return {"key": key, "mid": saved_price}

    async def _cmd_apply_mutation(self, p: dict[str, Any]) -> dict[str, Any]:
        raw = p.get("mutation") or {k: p[k] for k in ("target", "file", "content") if k in p}
        command = MutationCommand.model_validate(raw)
        account_id = p.get("account_id")
        if isinstance(command.content, dict):
            holdings = self._accounts.set_holdings(command.content, account_id)
            result: dict[str, Any] = {"target": "holdings", "holdings": holdings.model_dump(mode="json")}
        else:
            result = {"target": "strategy", "strategy": self._accounts.set_strategy(command.content, account_id)}
        await self._audit.log_mutation_event(
            "applied",
            request_id=p.get("request_id"),
            target=command.target,
            details={"account_id": account_id or self._accounts.active_id()},
        )
        return result

    async def _spot_or_none(self, ticker: str) -> float | None:
        try:
            return (await self._quotes.quote(ticker)).price
        except UpstreamError as exc:
            logger.warning("spot price for %s unavailable: %s", ticker, exc.message)
            return None


def _error_response(request: Request | None, err: DeskError) -> Response:
    return Response(
        request_id=request.request_id if request else "",
        ok=False,
        error=ErrorResponse.model_validate(err.to_error_payload()),
    )


async def _write_frame(writer: asyncio.StreamWriter, frame: bytes) -> None:
    writer.write(frame)
    await writer.drain()


async def _write_error_event(writer: asyncio.StreamWriter, request_id: str, error: dict[str, Any]) -> None:
    try:
        await _write_frame(writer, frame_event(request_id, {"type": "error", "error": error}))
    except (ConnectionResetError, BrokenPipeError):
        logger.info("client gone before error event for %s", request_id)


def _unknown_command_error(command: str) -> DeskError:
    matches = get_close_matches(command, KNOWN_COMMANDS, n=3, cutoff=0.45)
    suggestion = None
    if matches:
        suggestion = f"Did you mean: {', '.join(matches)}"
    return DeskError(
        ErrorCode.INVALID_ARGS,
        f"unknown command '{command}'",
        details={"known_commands": sorted(KNOWN_COMMANDS)},
        suggestion=suggestion,
    )


def _invalid_args_error(exc: Exception) -> DeskError:
    details: dict[str, Any] = {"exception": type(exc).__name__}
    message = str(exc)
    suggestion = "Run `chaindesk --help` or `<command> --help` for expected parameters."
    if isinstance(exc, KeyError):
        missing = str(exc).strip("'")
        details["missing_param"] = missing
        message = f"missing required parameter '{missing}'"
        suggestion = f"Include required parameter `{missing}` and retry."
    elif isinstance(exc, ValidationError):
        details["validation"] = exc.errors(include_url=False, include_context=False)
        message = "request validation failed"
    return DeskError(ErrorCode.INVALID_ARGS, message, details=details, suggestion=suggestion)


def _require_ticker(p: dict[str, Any]) -> str:
    ticker = str(p.get("ticker") or "").strip().upper()
    if not ticker:
        raise DeskError(
            ErrorCode.INVALID_ARGS,
            "ticker is required",
            suggestion="Example: chaindesk chain query AAPL",
        )
    if not ticker.isalpha() or not ticker.isascii():
        raise DeskError(ErrorCode.INVALID_SYMBOL, f"invalid ticker '{ticker}'")
    return ticker


def _parse_kind(raw: Any) -> OptionKind:
    try:
        return OptionKind.parse(raw)
    except ValueError as exc:
        raise DeskError(
            ErrorCode.INVALID_ARGS,
            str(exc),
            suggestion="Use type call or put.",
        ) from exc


def _parse_date(raw: Any, *, field_name: str) -> date:
    if isinstance(raw, date):
        return raw
    try:
        return date.fromisoformat(str(raw).strip())
    except ValueError as exc:
        raise DeskError(
            ErrorCode.INVALID_ARGS,
            f"{field_name} must be an ISO date (YYYY-MM-DD)",
            details={field_name: raw},
        ) from exc


def _parse_bool(raw: Any, *, field_name: str) -> bool:
    if isinstance(raw, bool):
        return raw
    lowered = str(raw).strip().lower()
    if lowered in {"1", "true", "yes", "on"}:
        return True
    if lowered in {"0", "false", "no", "off"}:
        return False
    raise DeskError(ErrorCode.INVALID_ARGS, f"{field_name} must be a boolean")


def _positive_int(raw: Any, *, field_name: str) -> int:
    try:
        value = int(raw)
    except (TypeError, ValueError) as exc:
        raise DeskError(ErrorCode.INVALID_ARGS, f"{field_name} must be an integer") from exc
    if value < 1:
        raise DeskError(ErrorCode.INVALID_ARGS, f"{field_name} must be >= 1")
    return value


def _maybe_float(value: Any) -> float | None:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


async def _safe_wait_closed(writer: asyncio.StreamWriter) -> None:
    try:
        await writer.wait_closed()
    except Exception:
        return


async def _socket_is_active(socket_path: Path) -> bool:
    try:
        _, writer = await asyncio.open_unix_connection(str(socket_path))
    except Exception:
        return False
    writer.close()
    await _safe_wait_closed(writer)
    return True


async def run_daemon() -> None:
    cfg = load_config()

    logging.basicConfig(
        level=getattr(logging, cfg.logging.level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
        handlers=[logging.FileHandler(cfg.logging.log_file), logging.StreamHandler()],
    )

    daemon = DaemonServer(cfg)
    await daemon.start()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, lambda: asyncio.create_task(daemon.stop()))
        except NotImplementedError:
            pass

    await daemon.serve()


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="chaindesk daemon")
    return parser.parse_args(argv)


def main() -> None:
    _parse_args()
    try:
        asyncio.run(run_daemon())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
