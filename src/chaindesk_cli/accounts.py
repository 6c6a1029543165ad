"""Account management commands."""

from __future__ import annotations

import typer

from chaindesk_cli._common import build_typer, daemon_request, get_state, handle_error, print_output, run_async
from chaindesk_daemon.exceptions import DeskError

app = build_typer("Account commands (`list`, `active`, `switch`, `create`, `delete`).")


@app.command("list", help="List accounts; the demo account is always first.")
def list_accounts(ctx: typer.Context) -> None:
    state = get_state(ctx)
    try:
        data = run_async(daemon_request(state, "accounts.list", {}))
        if state.json_output:
            print_output(data, json_output=True)
            return
        active = data.get("active")
        rows = [{**row, "active": row.get("id") == active} for row in data.get("accounts", [])]
        print_output(rows, json_output=False, title="Accounts")
    except DeskError as exc:
        handle_error(exc, json_output=state.json_output)


@app.command("active", help="Show the active account.")
def active(ctx: typer.Context) -> None:
    state = get_state(ctx)
    try:
        data = run_async(daemon_request(state, "accounts.active", {}))
        print_output(data, json_output=state.json_output)
    except DeskError as exc:
        handle_error(exc, json_output=state.json_output)


@app.command("switch", help="Make another account active.")
def switch(ctx: typer.Context, account_id: str = typer.Argument(..., metavar="ID")) -> None:
    state = get_state(ctx)
    try:
        data = run_async(daemon_request(state, "accounts.switch", {"id": account_id}))
        print_output(data, json_output=state.json_output)
    except DeskError as exc:
        handle_error(exc, json_output=state.json_output)


@app.command("create", help="Create an empty account.")
def create(
    ctx: typer.Context,
    name: str,
    activate: bool = typer.Option(False, "--activate", help="Switch to the new account."),
) -> None:
    state = get_state(ctx)
    try:
        data = run_async(daemon_request(state, "accounts.create", {"name": name, "activate": activate}))
        print_output(data, json_output=state.json_output)
    except DeskError as exc:
        handle_error(exc, json_output=state.json_output)


@app.command("delete", help="Delete an account (the demo account is protected).")
def delete(
    ctx: typer.Context,
    account_id: str = typer.Argument(..., metavar="ID"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation."),
) -> None:
    state = get_state(ctx)
    if not yes and not typer.confirm(f"Delete account {account_id}?"):
        raise typer.Exit(code=1)
    try:
        data = run_async(daemon_request(state, "accounts.delete", {"id": account_id}))
        print_output(data, json_output=state.json_output)
    except DeskError as exc:
        handle_error(exc, json_output=state.json_output)
