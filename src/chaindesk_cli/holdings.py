"""Holdings, strategy and persona document commands."""

from __future__ import annotations

from datetime import date
import json
from pathlib import Path

import typer

from chaindesk_cli._common import build_typer, daemon_request, get_state, handle_error, print_output, run_async
from chaindesk_cli.chain import OptionType
from chaindesk_daemon.exceptions import DeskError

app = build_typer("Holdings commands (`show`, `set`, `watch-option`).")
strategy_app = build_typer("Trading strategy text (`show`, `set`).")
persona_app = build_typer("Assistant persona prompt (`show`, `set`).")

AccountOption = typer.Option(None, "--account", help="Account id (default: active account).")


@app.command("show", help="Show stocks and options held or watched.")
def show(ctx: typer.Context, account: str | None = AccountOption) -> None:
    state = get_state(ctx)
    try:
        data = run_async(daemon_request(state, "holdings.get", _account(account)))
        print_output(data, json_output=state.json_output, title="Holdings")
    except DeskError as exc:
        handle_error(exc, json_output=state.json_output)


@app.command("set", help="Replace holdings from a JSON file (`-` reads stdin).")
def set_holdings(
    ctx: typer.Context,
    file: str = typer.Argument(..., metavar="FILE"),
    account: str | None = AccountOption,
) -> None:
    state = get_state(ctx)
    try:
        holdings = json.loads(_read_text(file))
    except ValueError as exc:
        raise typer.BadParameter(f"FILE is not valid JSON: {exc}") from exc
    if not isinstance(holdings, dict):
        raise typer.BadParameter("FILE must contain a JSON object")
    try:
        data = run_async(daemon_request(state, "holdings.set", {"holdings": holdings, **_account(account)}))
        print_output(data, json_output=state.json_output)
    except DeskError as exc:
        handle_error(exc, json_output=state.json_output)


@app.command("watch-option", help="Add a zero-contract option to the watchlist at its current mid.")
def watch_option(
    ctx: typer.Context,
    ticker: str,
    option_type: OptionType = typer.Argument(..., metavar="TYPE", case_sensitive=False),
    strike: float = typer.Argument(...),
    expiration: str = typer.Argument(..., help="YYYY-MM-DD"),
    notes: str = typer.Option("", "--notes"),
    account: str | None = AccountOption,
) -> None:
    try:
        expiry = date.fromisoformat(expiration.strip()).isoformat()
    except ValueError as exc:
        raise typer.BadParameter("EXPIRATION must be YYYY-MM-DD") from exc
    state = get_state(ctx)
    params = {
        "ticker": ticker,
        "type": option_type.value,
        "strike": strike,
        "expiration": expiry,
        "notes": notes,
        **_account(account),
    }
    try:
        data = run_async(daemon_request(state, "holdings.watch_option", params))
        print_output(data, json_output=state.json_output)
    except DeskError as exc:
        handle_error(exc, json_output=state.json_output)


@strategy_app.command("show", help="Print the account's strategy text.")
def strategy_show(ctx: typer.Context, account: str | None = AccountOption) -> None:
    state = get_state(ctx)
    try:
        data = run_async(daemon_request(state, "strategy.get", _account(account)))
        print_output(data if state.json_output else data.get("strategy", ""), json_output=state.json_output)
    except DeskError as exc:
        handle_error(exc, json_output=state.json_output)


@strategy_app.command("set", help="Replace strategy text from a file (`-` reads stdin).")
def strategy_set(
    ctx: typer.Context,
    file: str = typer.Argument(..., metavar="FILE"),
    account: str | None = AccountOption,
) -> None:
    state = get_state(ctx)
    try:
        data = run_async(daemon_request(state, "strategy.set", {"text": _read_text(file), **_account(account)}))
        print_output({"updated": True, "chars": len(data.get("strategy", ""))}, json_output=state.json_output)
    except DeskError as exc:
        handle_error(exc, json_output=state.json_output)


@persona_app.command("show", help="Print the persona prompt that opens every system context.")
def persona_show(ctx: typer.Context) -> None:
    state = get_state(ctx)
    try:
        data = run_async(daemon_request(state, "persona.get", {}))
        print_output(data if state.json_output else data.get("persona", ""), json_output=state.json_output)
    except DeskError as exc:
        handle_error(exc, json_output=state.json_output)


@persona_app.command("set", help="Replace the persona prompt from a file (`-` reads stdin).")
def persona_set(ctx: typer.Context, file: str = typer.Argument(..., metavar="FILE")) -> None:
    state = get_state(ctx)
    try:
        data = run_async(daemon_request(state, "persona.set", {"text": _read_text(file)}))
        print_output({"updated": True, "chars": len(data.get("persona", ""))}, json_output=state.json_output)
    except DeskError as exc:
        handle_error(exc, json_output=state.json_output)


def _read_text(file: str) -> str:
    if file == "-":
        return typer.get_text_stream("stdin").read()
    path = Path(file).expanduser()
    try:
        return path.read_text(encoding="utf-8")
    except OSError as exc:
        raise typer.BadParameter(f"cannot read {path}: {exc.strerror}") from exc


def _account(account: str | None) -> dict[str, object]:
    return {"account_id": account} if account else {}
