"""Audit query helpers."""

from __future__ import annotations

from typing import Any

from chaindesk_daemon.audit.logger import AuditLogger

DEFAULT_LIMIT = 100


def _where_clause(filters: dict[str, Any]) -> tuple[str, list[Any]]:
    clauses: list[str] = []
    values: list[Any] = []
    for key, value in filters.items():
        if value is None:
            continue
        clauses.append(f"{key} = ?")
        values.append(value)
    if not clauses:
        return "", values
    return "WHERE " + " AND ".join(clauses), values


def _with_since(where: str, values: list[Any], since: str | None) -> str:
    if not since:
        return where
    values.append(since)
    return f"{where} {'AND' if where else 'WHERE'} timestamp >= ?"


async def query_commands(
    logger: AuditLogger,
    *,
    source: str | None = None,
    command: str | None = None,
    since: str | None = None,
    limit: int = DEFAULT_LIMIT,
) -> list[dict[str, Any]]:
    where, values = _where_clause({"source": source, "command": command})
    where = _with_since(where, values, since)
    values.append(limit)
    return await logger.fetch_all(
        "SELECT timestamp, source, command, arguments, result_code, duration_ms "
        f"FROM commands {where} ORDER BY id DESC LIMIT ?",
        tuple(values),
    )


async def query_tool_calls(
    logger: AuditLogger,
    *,
    request_id: str | None = None,
    tool: str | None = None,
    since: str | None = None,
    limit: int = DEFAULT_LIMIT,
) -> list[dict[str, Any]]:
    where, values = _where_clause({"request_id": request_id, "tool": tool})
    where = _with_since(where, values, since)
    values.append(limit)
    rows = await logger.fetch_all(
        "SELECT timestamp, request_id, provider, tool, arguments, is_error, duration_ms "
        f"FROM tool_calls {where} ORDER BY id DESC LIMIT ?",
        tuple(values),
    )
    for row in rows:
        row["is_error"] = bool(row["is_error"])
    return rows


async def query_mutation_events(
    logger: AuditLogger,
    *,
    event: str | None = None,
    since: str | None = None,
    limit: int = DEFAULT_LIMIT,
) -> list[dict[str, Any]]:
    where, values = _where_clause({"event": event})
    where = _with_since(where, values, since)
    values.append(limit)
    return await logger.fetch_all(
        f"SELECT timestamp, request_id, event, target, details FROM mutation_events {where} ORDER BY id DESC LIMIT ?",
        tuple(values),
    )
