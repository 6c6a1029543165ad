"""Daemon lifecycle commands."""

from __future__ import annotations

import os
import signal
import time

import typer

from chaindesk_cli._common import (
    CLIState,
    build_typer,
    daemon_request,
    get_state,
    handle_error,
    is_pid_running,
    print_output,
    read_pid_file,
    run_async,
    start_daemon_process,
)
from chaindesk_daemon.config import AppConfig
from chaindesk_daemon.exceptions import DeskError

app = build_typer("Daemon lifecycle commands (`start`, `stop`, `status`, `restart`).")

LOG_HINT = "Check the chaindesk log (default: ~/.local/state/chaindesk/chaindesk.log)."


@app.command("start", help="Start chaindesk-daemon and wait for socket readiness.")
def start(
    ctx: typer.Context,
    provider: str | None = typer.Option(None, "--provider", help="Default chat provider: anthropic or gemini."),
) -> None:
    state = get_state(ctx)

    env: dict[str, str] = {}
    if provider:
        env["CHAINDESK_PROVIDERS_DEFAULT"] = provider.strip().lower()

    code = start_daemon_process(state.config, extra_env=env or None)
    if code != 0:
        typer.echo(f"Failed to start daemon. {LOG_HINT}", err=True)
        raise typer.Exit(code=1)

    print_output({"socket": str(state.config.runtime.socket_path)}, json_output=state.json_output)


@app.command("stop", help="Request graceful daemon shutdown.")
def stop(ctx: typer.Context) -> None:
    state = get_state(ctx)
    try:
        data = run_async(daemon_request(state, "daemon.stop", {}))
        print_output(data, json_output=state.json_output)
    except DeskError as exc:
        handle_error(exc, json_output=state.json_output)


@app.command("status", help="Show daemon uptime, cached chains, and provider configuration.")
def status(ctx: typer.Context) -> None:
    state = get_state(ctx)
    try:
        data = run_async(daemon_request(state, "daemon.status", {}))
        print_output(data, json_output=state.json_output, title="Daemon")
    except DeskError as exc:
        handle_error(exc, json_output=state.json_output)


@app.command("restart", help="Stop then start the daemon.")
def restart(ctx: typer.Context) -> None:
    state = get_state(ctx)
    try:
        run_async(daemon_request(state, "daemon.stop", {}))
    except DeskError:
        pass

    if not _wait_for_daemon_shutdown(state.config, timeout_seconds=10):
        pid = read_pid_file(state.config.runtime.pid_file)
        if pid is not None and is_pid_running(pid):
            try:
                os.kill(pid, signal.SIGTERM)
            except OSError:
                pass
        if not _wait_for_daemon_shutdown(state.config, timeout_seconds=5):
            typer.echo("Timed out waiting for daemon shutdown. Check for stale chaindesk-daemon processes.", err=True)
            raise typer.Exit(code=1)

    if start_daemon_process(state.config) != 0:
        typer.echo(f"Failed to restart daemon. {LOG_HINT}", err=True)
        raise typer.Exit(code=1)
    print_output({"restarted": True}, json_output=state.json_output)


def _wait_for_daemon_shutdown(cfg: AppConfig, *, timeout_seconds: float) -> bool:
    deadline = time.time() + timeout_seconds
    while time.time() < deadline:
        socket_exists = cfg.runtime.socket_path.exists()
        pid = read_pid_file(cfg.runtime.pid_file)
        pid_running = pid is not None and is_pid_running(pid)

        daemon_responding = False
        if socket_exists:
            try:
                run_async(daemon_request(CLIState(cfg, json_output=True), "daemon.status", {}))
                daemon_responding = True
            except Exception:
                daemon_responding = False

        if socket_exists and not daemon_responding and not pid_running:
            cfg.runtime.socket_path.unlink(missing_ok=True)
            socket_exists = False

        if not socket_exists and not daemon_responding and not pid_running:
            return True
        time.sleep(0.1)
    return False
