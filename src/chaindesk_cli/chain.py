"""Option chain and quote commands."""

from __future__ import annotations

from datetime import date
from enum import Enum

import typer

from chaindesk_cli._common import build_typer, daemon_request, get_state, handle_error, print_output, run_async
from chaindesk_daemon.exceptions import DeskError

app = build_typer("Option chain commands (`raw`, `query`, `view`, `iv30`, `mid`, `refresh`).")


class ChainKind(str, Enum):
    CALLS = "calls"
    PUTS = "puts"
    BOTH = "both"


class OptionType(str, Enum):
    CALL = "call"
    PUT = "put"


def quote(
    ctx: typer.Context,
    tickers: list[str] = typer.Argument(
        ...,
        metavar="TICKER...",
        help="One or more tickers. Example: AAPL MSFT",
    ),
) -> None:
    state = get_state(ctx)
    try:
        data = run_async(daemon_request(state, "quote.snapshot", {"tickers": tickers}))
        missing = data.get("missing", [])
        if missing and not state.json_output:
            typer.echo(f"No quote for: {', '.join(missing)}", err=True)
        print_output(data if state.json_output else data.get("quotes", []), json_output=state.json_output, title="Quotes")
    except DeskError as exc:
        handle_error(exc, json_output=state.json_output)


def prices(
    ctx: typer.Context,
    account: str | None = typer.Option(None, "--account", help="Account id (default: active account)."),
) -> None:
    state = get_state(ctx)
    try:
        data = run_async(daemon_request(state, "prices.snapshot", _account(account)))
        print_output(data, json_output=state.json_output, title="Prices")
    except DeskError as exc:
        handle_error(exc, json_output=state.json_output)


@app.command("raw", help="Dump the cached upstream chain for a ticker.")
def raw(ctx: typer.Context, ticker: str) -> None:
    state = get_state(ctx)
    try:
        data = run_async(daemon_request(state, "chain.raw", {"ticker": ticker}))
        print_output(data if state.json_output else data.get("contracts", []), json_output=state.json_output, title=ticker.upper())
    except DeskError as exc:
        handle_error(exc, json_output=state.json_output)


@app.command("query", help="Filter a chain by side, days to expiry and moneyness.")
def query(
    ctx: typer.Context,
    ticker: str,
    kind: ChainKind = typer.Option(ChainKind.BOTH, "--kind", case_sensitive=False),
    dte_min: float = typer.Option(20, "--dte-min", help="Minimum days to expiry."),
    dte_max: float = typer.Option(90, "--dte-max", help="Maximum days to expiry."),
    otm_only: bool = typer.Option(True, "--otm/--all-strikes", help="Only out-of-the-money contracts."),
    limit: int = typer.Option(25, "--limit", min=0, help="Maximum contracts returned (capped at 50)."),
    spot: float | None = typer.Option(None, "--spot", help="Underlying price override."),
) -> None:
    if dte_min > dte_max:
        raise typer.BadParameter("--dte-min must not exceed --dte-max")
    state = get_state(ctx)
    params: dict[str, object] = {
        "ticker": ticker,
        "kind": kind.value,
        "dte_min": dte_min,
        "dte_max": dte_max,
        "otm_only": otm_only,
        "max_results": limit,
    }
    if spot is not None:
        params["underlying_price"] = spot
    try:
        data = run_async(daemon_request(state, "chain.query", params))
        print_output(data if state.json_output else data.get("contracts", []), json_output=state.json_output, title=ticker.upper())
    except DeskError as exc:
        handle_error(exc, json_output=state.json_output)


@app.command("view", help="Calls and puts for one expiry (nearest by default).")
def view(
    ctx: typer.Context,
    ticker: str,
    expiry: str | None = typer.Option(None, "--expiry", help="YYYY-MM-DD"),
) -> None:
    state = get_state(ctx)
    params: dict[str, object] = {"ticker": ticker}
    if expiry:
        params["expiry"] = _iso_date(expiry, "--expiry")
    try:
        data = run_async(daemon_request(state, "chain.view", params))
        if state.json_output:
            print_output(data, json_output=True)
            return
        title = f"{data.get('ticker')} {data.get('expiry') or ''}".strip()
        print_output(data.get("calls", []), json_output=False, title=f"{title} calls")
        print_output(data.get("puts", []), json_output=False, title=f"{title} puts")
    except DeskError as exc:
        handle_error(exc, json_output=state.json_output)


@app.command("iv30", help="Interpolated 30-day implied volatility and the ATM term structure.")
def iv30(
    ctx: typer.Context,
    ticker: str,
    spot: float | None = typer.Option(None, "--spot", help="Underlying price override."),
) -> None:
    state = get_state(ctx)
    params: dict[str, object] = {"ticker": ticker}
    if spot is not None:
        params["underlying_price"] = spot
    try:
        data = run_async(daemon_request(state, "chain.iv30", params))
        print_output(data, json_output=state.json_output, title="IV30")
    except DeskError as exc:
        handle_error(exc, json_output=state.json_output)


@app.command("mid", help="Bid/ask/mid for one contract.")
def mid(
    ctx: typer.Context,
    ticker: str,
    option_type: OptionType = typer.Argument(..., metavar="TYPE", case_sensitive=False),
    strike: float = typer.Argument(...),
    expiry: str = typer.Argument(..., help="YYYY-MM-DD"),
) -> None:
    state = get_state(ctx)
    params = {"ticker": ticker, "type": option_type.value, "strike": strike, "expiry": _iso_date(expiry, "EXPIRY")}
    try:
        data = run_async(daemon_request(state, "chain.mid", params))
        print_output(data, json_output=state.json_output)
    except DeskError as exc:
        handle_error(exc, json_output=state.json_output)


@app.command("refresh", help="Drop cached chains so the next read refetches.")
def refresh(ctx: typer.Context, ticker: str | None = typer.Argument(None)) -> None:
    state = get_state(ctx)
    try:
        data = run_async(daemon_request(state, "chain.refresh", {"ticker": ticker} if ticker else {}))
        print_output(data, json_output=state.json_output)
    except DeskError as exc:
        handle_error(exc, json_output=state.json_output)


def _iso_date(raw: str, field_name: str) -> str:
    try:
        return date.fromisoformat(raw.strip()).isoformat()
    except ValueError as exc:
        raise typer.BadParameter(f"{field_name} must be YYYY-MM-DD") from exc


def _account(account: str | None) -> dict[str, object]:
    return {"account_id": account} if account else {}
