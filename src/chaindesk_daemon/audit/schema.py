"""SQLite schema for chaindesk audit storage."""

from __future__ import annotations

SCHEMA_STATEMENTS = [
    """
    CREATE TABLE IF NOT EXISTS commands (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        timestamp TEXT NOT NULL,
        source TEXT NOT NULL,
        command TEXT NOT NULL,
        arguments TEXT,
        result_code INTEGER NOT NULL,
        duration_ms REAL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS tool_calls (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        timestamp TEXT NOT NULL,
        request_id TEXT NOT NULL,
        provider TEXT NOT NULL,
        tool TEXT NOT NULL,
        arguments TEXT,
        is_error INTEGER NOT NULL,
        duration_ms REAL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS mutation_events (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        timestamp TEXT NOT NULL,
        request_id TEXT,
        event TEXT NOT NULL,
        target TEXT,
        details TEXT
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_tool_calls_request ON tool_calls (request_id)",
]
