"""Audit query commands."""

from __future__ import annotations

from enum import Enum

import typer

from chaindesk_cli._common import build_typer, daemon_request, get_state, handle_error, print_output, run_async
from chaindesk_daemon.exceptions import DeskError

app = build_typer("Audit log queries (`commands`, `tools`, `mutations`).")


class AuditSource(str, Enum):
    CLI = "cli"
    SDK = "sdk"


class MutationEvent(str, Enum):
    PROPOSED = "proposed"
    APPLIED = "applied"
    PARSE_FAILED = "parse_failed"


@app.command("commands", help="Query command invocation audit records.")
def commands(
    ctx: typer.Context,
    source: AuditSource | None = typer.Option(None, "--source", case_sensitive=False),
    command: str | None = typer.Option(None, "--command", help="Exact command name, e.g. chain.query"),
    since: str | None = typer.Option(None, "--since", help="YYYY-MM-DD"),
    limit: int = typer.Option(100, "--limit", min=1),
) -> None:
    state = get_state(ctx)
    params: dict[str, object] = {"limit": limit}
    if source:
        params["source"] = source.value
    if command:
        params["command"] = command
    if since:
        params["since"] = since

    try:
        data = run_async(daemon_request(state, "audit.commands", params))
        print_output(data.get("commands", []), json_output=state.json_output, title="Audit Commands")
    except DeskError as exc:
        handle_error(exc, json_output=state.json_output)


@app.command("tools", help="Query tool invocations made during chat turns.")
def tools(
    ctx: typer.Context,
    request_id: str | None = typer.Option(None, "--request-id"),
    tool: str | None = typer.Option(None, "--tool"),
    since: str | None = typer.Option(None, "--since", help="YYYY-MM-DD"),
    limit: int = typer.Option(100, "--limit", min=1),
) -> None:
    state = get_state(ctx)
    params: dict[str, object] = {"limit": limit}
    if request_id:
        params["request_id"] = request_id
    if tool:
        params["tool"] = tool
    if since:
        params["since"] = since

    try:
        data = run_async(daemon_request(state, "audit.tool_calls", params))
        print_output(data.get("tool_calls", []), json_output=state.json_output, title="Audit Tool Calls")
    except DeskError as exc:
        handle_error(exc, json_output=state.json_output)


@app.command("mutations", help="Query proposed, applied and malformed mutation records.")
def mutations(
    ctx: typer.Context,
    event: MutationEvent | None = typer.Option(None, "--event", case_sensitive=False),
    since: str | None = typer.Option(None, "--since", help="YYYY-MM-DD"),
    limit: int = typer.Option(100, "--limit", min=1),
) -> None:
    state = get_state(ctx)
    params: dict[str, object] = {"limit": limit}
    if event:
        params["event"] = event.value
    if since:
        params["since"] = since

    try:
        data = run_async(daemon_request(state, "audit.mutations", params))
        print_output(data.get("mutation_events", []), json_output=state.json_output, title="Audit Mutations")
    except DeskError as exc:
        handle_error(exc, json_output=state.json_output)
