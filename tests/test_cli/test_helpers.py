from __future__ import annotations

import json
from pathlib import Path

import pytest
import typer

from chaindesk_cli._common import handle_error, read_pid_file, resolve_json_mode
from chaindesk_cli.chain import _iso_date
from chaindesk_cli.chat import _load_history
from chaindesk_daemon.exceptions import DeskError, ErrorCode


def test_iso_date_normalizes_and_rejects() -> None:
    assert _iso_date(" 2026-03-20 ", "--expiry") == "2026-03-20"
    with pytest.raises(typer.BadParameter):
        _iso_date("03/20/2026", "--expiry")


def test_json_flag_forces_json_mode() -> None:
    assert resolve_json_mode(True) is True


def test_read_pid_file_tolerates_garbage(tmp_path: Path) -> None:
    pid_file = tmp_path / "chaindesk-daemon.pid"
    assert read_pid_file(pid_file) is None
    pid_file.write_text("not-a-pid", encoding="utf-8")
    assert read_pid_file(pid_file) is None
    pid_file.write_text("4242\n", encoding="utf-8")
    assert read_pid_file(pid_file) == 4242


def test_load_history_coerces_fields(tmp_path: Path) -> None:
    history = tmp_path / "history.json"
    history.write_text(json.dumps([{"role": "user", "content": 5}]), encoding="utf-8")

    assert _load_history(history) == [{"role": "user", "content": "5"}]
    assert _load_history(None) == []


def test_handle_error_emits_default_suggestion(capsys: pytest.CaptureFixture[str]) -> None:
    with pytest.raises(typer.Exit) as exc:
        handle_error(DeskError(ErrorCode.DAEMON_NOT_RUNNING, "chaindesk-daemon socket not found"), json_output=True)

    assert exc.value.exit_code == 3
    payload = json.loads(capsys.readouterr().out)
    assert payload["error"]["code"] == "DAEMON_NOT_RUNNING"
    assert payload["error"]["suggestion"] == "Start the daemon with `chaindesk daemon start`."
