from __future__ import annotations

from pathlib import Path

import pytest

from chaindesk_daemon.exceptions import DeskError, ErrorCode
from chaindesk_daemon.protocol import ErrorResponse, Response
from chaindesk_sdk import CHAT_EVENT_TYPES, MUTATION_TARGETS, PROVIDERS, Client
from chaindesk_sdk.client import _error_from_payload, _unwrap_response


def test_unwrap_success() -> None:
    response = Response(request_id="1", ok=True, data={"ok": True})
    assert _unwrap_response(response) == {"ok": True}


def test_unwrap_error() -> None:
    response = Response(
        request_id="1",
        ok=False,
        error=ErrorResponse(code=ErrorCode.INVALID_SYMBOL.value, message="bad ticker", suggestion="Check it."),
    )
    with pytest.raises(DeskError) as exc:
        _unwrap_response(response)
    assert exc.value.code == ErrorCode.INVALID_SYMBOL
    assert exc.value.suggestion == "Check it."


def test_unwrap_error_without_payload_is_internal() -> None:
    with pytest.raises(DeskError) as exc:
        _unwrap_response(Response(request_id="1", ok=False))
    assert exc.value.code == ErrorCode.INTERNAL_ERROR


def test_stream_error_payload_with_unknown_code() -> None:
    err = _error_from_payload({"code": "SOMETHING_NEW", "message": "boom", "details": {"phase": "final stream"}})

    assert err.code == ErrorCode.INTERNAL_ERROR
    assert err.message == "boom"
    assert err.details == {"phase": "final stream"}


def test_exported_constants_are_non_empty() -> None:
    assert PROVIDERS == ("anthropic", "gemini")
    assert "holdings" in MUTATION_TARGETS
    assert "done" in CHAT_EVENT_TYPES


@pytest.mark.asyncio
async def test_missing_socket_reports_daemon_not_running(fake_home: Path) -> None:
    client = Client(socket_path=fake_home / "absent.sock")

    with pytest.raises(DeskError) as exc:
        await client.daemon_status()

    assert exc.value.code == ErrorCode.DAEMON_NOT_RUNNING
    assert exc.value.exit_code == 3
