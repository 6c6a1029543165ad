"""SQLite-backed audit trail."""

from chaindesk_daemon.audit.logger import AuditLogger

__all__ = ["AuditLogger"]
