"""Async audit logger backed by SQLite."""

from __future__ import annotations

import json
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import aiosqlite

from chaindesk_daemon.audit.schema import SCHEMA_STATEMENTS


class AuditLogger:
    def __init__(self, db_path: Path) -> None:
        self._db_path = db_path
        self._conn: aiosqlite.Connection | None = None

    @property
    def db_path(self) -> Path:
        return self._db_path

    async def start(self) -> None:
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = await aiosqlite.connect(self._db_path)
        self._conn.row_factory = aiosqlite.Row
        for statement in SCHEMA_STATEMENTS:
            await self._conn.execute(statement)
        await self._conn.commit()

    async def close(self) -> None:
        if self._conn:
            await self._conn.close()
            self._conn = None

    async def _execute(self, query: str, params: tuple[Any, ...]) -> None:
        if not self._conn:
            raise RuntimeError("AuditLogger has not been started")
        await self._conn.execute(query, params)
        await self._conn.commit()

    async def log_command(
        self,
        source: str,
        command: str,
        arguments: dict[str, Any],
        result_code: int,
        *,
        duration_ms: float | None = None,
    ) -> None:
        await self._execute(
            "INSERT INTO commands (timestamp, source, command, arguments, result_code, duration_ms) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (
                _now(),
                source,
                command,
                json.dumps(_redact(arguments), sort_keys=True, default=str),
                result_code,
                duration_ms,
            ),
        )

    async def log_tool_call(
        self,
        *,
        request_id: str,
        provider: str,
        tool: str,
        arguments: dict[str, Any],
        is_error: bool,
        duration_ms: float | None = None,
    ) -> None:
        await self._execute(
            "INSERT INTO tool_calls (timestamp, request_id, provider, tool, arguments, is_error, duration_ms) "
            "VALUES (?, ?, ?, ?, ?, ?, ?)",
            (
                _now(),
                request_id,
                provider,
                tool,
                json.dumps(arguments, sort_keys=True, default=str),
                int(is_error),
                duration_ms,
            ),
        )

    async def log_mutation_event(
        self,
        event: str,
        *,
        request_id: str | None = None,
        target: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        await self._execute(
            "INSERT INTO mutation_events (timestamp, request_id, event, target, details) VALUES (?, ?, ?, ?, ?)",
            (_now(), request_id, event, target, json.dumps(details or {}, sort_keys=True, default=str)),
        )

    async def fetch_all(self, query: str, params: tuple[Any, ...] = ()) -> list[dict[str, Any]]:
        if not self._conn:
            raise RuntimeError("AuditLogger has not been started")
        async with self._conn.execute(query, params) as cursor:
            rows = await cursor.fetchall()
        return [dict(row) for row in rows]


def _now() -> str:
    return datetime.now(UTC).isoformat()


def _redact(arguments: dict[str, Any]) -> dict[str, Any]:
    # chat transcripts and document bodies are not worth keeping in the audit trail
    out: dict[str, Any] = {}
    for key, value in arguments.items():
        if key in {"messages", "content", "holdings", "text"}:
            out[key] = f"<{type(value).__name__}>"
        else:
            out[key] = value
    return out
