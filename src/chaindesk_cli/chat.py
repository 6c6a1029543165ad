"""Chat turn and mutation commands."""

from __future__ import annotations

import asyncio
from enum import Enum
import json
from pathlib import Path
from typing import Any

import typer

from chaindesk_cli._common import (
    CLIState,
    build_typer,
    client_for,
    daemon_request,
    get_state,
    handle_error,
    print_output,
    run_async,
)
from chaindesk_daemon.exceptions import DeskError

app = build_typer("Chat with the desk assistant (`ask`, `context`, `extract`, `apply`).")


class Provider(str, Enum):
    ANTHROPIC = "anthropic"
    GEMINI = "gemini"


@app.command("ask", help="Run one chat turn; JSON mode streams events as JSONL.")
def ask(
    ctx: typer.Context,
    message: str = typer.Argument(..., help="The user message for this turn."),
    provider: Provider | None = typer.Option(None, "--provider", case_sensitive=False),
    history: Path | None = typer.Option(
        None,
        "--history",
        help="JSON file with earlier messages: [{\"role\": \"user\"|\"assistant\", \"content\": \"...\"}].",
    ),
    tools: bool = typer.Option(True, "--tools/--no-tools", help="Allow the option-chain tool."),
    apply: bool = typer.Option(False, "--apply", help="Apply a proposed holdings/strategy update without asking."),
    account: str | None = typer.Option(None, "--account", help="Account id (default: active account)."),
) -> None:
    state = get_state(ctx)
    messages = _load_history(history) + [{"role": "user", "content": message}]

    try:
        done = asyncio.run(_stream_turn(state, messages, provider=provider, tools=tools, account=account))
    except KeyboardInterrupt:
        raise typer.Exit(code=130)
    except DeskError as exc:
        handle_error(exc, json_output=state.json_output)
        return

    mutation = (done or {}).get("mutation")
    if not mutation:
        return
    if not apply:
        if state.json_output:
            return
        typer.echo("")
        if not typer.confirm(f"Apply the proposed {mutation.get('target')} update?", default=False):
            return
    try:
        params: dict[str, Any] = {"mutation": mutation}
        if account:
            params["account_id"] = account
        data = run_async(daemon_request(state, "mutation.apply", params))
        print_output({"applied": data.get("target")}, json_output=state.json_output)
    except DeskError as exc:
        handle_error(exc, json_output=state.json_output)


@app.command("context", help="Show the system context a chat turn would start from.")
def context(
    ctx: typer.Context,
    account: str | None = typer.Option(None, "--account", help="Account id (default: active account)."),
) -> None:
    state = get_state(ctx)
    try:
        data = run_async(daemon_request(state, "chat.context", {"account_id": account} if account else {}))
        print_output(data if state.json_output else data.get("system_prompt", ""), json_output=state.json_output)
    except DeskError as exc:
        handle_error(exc, json_output=state.json_output)


@app.command("extract", help="Split assistant text into display prose and a FILE_UPDATE command.")
def extract(ctx: typer.Context, file: Path = typer.Argument(..., metavar="FILE")) -> None:
    state = get_state(ctx)
    try:
        data = run_async(daemon_request(state, "mutation.extract", {"text": _read(file)}))
        print_output(data, json_output=state.json_output)
    except DeskError as exc:
        handle_error(exc, json_output=state.json_output)


@app.command("apply", help="Apply a mutation JSON object ({\"target\": ..., \"content\": ...}).")
def apply_mutation(
    ctx: typer.Context,
    file: Path = typer.Argument(..., metavar="FILE"),
    account: str | None = typer.Option(None, "--account", help="Account id (default: active account)."),
) -> None:
    state = get_state(ctx)
    try:
        mutation = json.loads(_read(file))
    except ValueError as exc:
        raise typer.BadParameter(f"FILE is not valid JSON: {exc}") from exc
    params: dict[str, Any] = {"mutation": mutation}
    if account:
        params["account_id"] = account
    try:
        data = run_async(daemon_request(state, "mutation.apply", params))
        print_output(data, json_output=state.json_output)
    except DeskError as exc:
        handle_error(exc, json_output=state.json_output)


async def _stream_turn(
    state: CLIState,
    messages: list[dict[str, str]],
    *,
    provider: Provider | None,
    tools: bool,
    account: str | None,
) -> dict[str, Any] | None:
    done: dict[str, Any] | None = None
    async with client_for(state) as client:
        async for event in client.chat(
            messages,
            provider=provider.value if provider else None,
            tools=tools,
            account_id=account,
            source="cli",
        ):
            if state.json_output:
                print(json.dumps(event, default=str, separators=(",", ":")), flush=True)
            elif event.get("type") == "text":
                typer.echo(event.get("text", ""), nl=False)
            elif event.get("type") == "tool_call":
                args = json.dumps(event.get("arguments", {}), separators=(",", ":"))
                typer.echo(f"[round {event.get('round')}] {event.get('name')} {args}", err=True)
            if event.get("type") == "done":
                done = event
    if done is not None and not state.json_output:
        typer.echo("")
    return done


def _load_history(path: Path | None) -> list[dict[str, str]]:
    if path is None:
        return []
    try:
        loaded = json.loads(_read(path))
    except ValueError as exc:
        raise typer.BadParameter(f"--history is not valid JSON: {exc}") from exc
    if not isinstance(loaded, list) or not all(isinstance(item, dict) for item in loaded):
        raise typer.BadParameter("--history must be a JSON list of message objects")
    return [{"role": str(item.get("role", "")), "content": str(item.get("content", ""))} for item in loaded]


def _read(path: Path) -> str:
    try:
        return path.expanduser().read_text(encoding="utf-8")
    except OSError as exc:
        raise typer.BadParameter(f"cannot read {path}: {exc.strerror}") from exc
