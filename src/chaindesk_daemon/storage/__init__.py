"""Local document storage."""

from chaindesk_daemon.storage.accounts import AccountStore

__all__ = ["AccountStore"]
