"""Flat JSON document store for accounts, holdings, strategy and persona."""

from __future__ import annotations

from datetime import date
import json
import logging
from pathlib import Path
import re
from typing import Any
from uuid import uuid4

from pydantic import ValidationError

from chaindesk_daemon.exceptions import DeskError, ErrorCode
from chaindesk_daemon.models.holdings import DEFAULT_PERSONA, Account, AccountSummary, Holdings

logger = logging.getLogger(__name__)

DEMO_ACCOUNT_ID = "demo"
DEMO_ACCOUNT_NAME = "Demo"
ACCOUNTS_DIR = "accounts"
ACTIVE_ACCOUNT_FILE = "active-account.json"
PERSONA_FILE = "system_prompt.md"

_ACCOUNT_ID_RE = re.compile(r"[A-Za-z0-9][A-Za-z0-9_-]{0,63}")


class AccountStore:
    """Reads and writes ``<data_dir>/accounts/<id>.json`` documents.

    Single-process use only; every write replaces the whole document.
    """

    def __init__(self, data_dir: Path) -> None:
        self._data_dir = data_dir
        self._accounts_dir = data_dir / ACCOUNTS_DIR

    @property
    def data_dir(self) -> Path:
        return self._data_dir

    def list_accounts(self) -> list[AccountSummary]:
        self._ensure_demo()
        summaries: list[AccountSummary] = []
        for path in self._accounts_dir.glob("*.json"):
            loaded = self._read_json_object(path)
            account_id = loaded.get("id")
            name = loaded.get("name")
            if not isinstance(account_id, str) or not isinstance(name, str):
                logger.warning("skipping malformed account file %s", path.name)
                continue
            summaries.append(AccountSummary(id=account_id, name=name))
        summaries.sort(key=lambda s: (s.id != DEMO_ACCOUNT_ID, s.name.lower()))
        return summaries

    def active_id(self) -> str:
        loaded = self._read_json_object(self._data_dir / ACTIVE_ACCOUNT_FILE)
        account_id = loaded.get("id")
        if isinstance(account_id, str) and _ACCOUNT_ID_RE.fullmatch(account_id) and self._account_path(account_id).exists():
            return account_id
        return DEMO_ACCOUNT_ID

    def set_active(self, account_id: str) -> Account:
        account = self.read(account_id)
        self._write_json_atomic(self._data_dir / ACTIVE_ACCOUNT_FILE, {"id": account.id})
        logger.info("active account set to %s", account.id)
        return account

    def read(self, account_id: str | None = None) -> Account:
        account_id = account_id or self.active_id()
        if account_id == DEMO_ACCOUNT_ID:
            self._ensure_demo()
        path = self._account_path(account_id)
        if not path.exists():
            raise DeskError(
                ErrorCode.NOT_FOUND,
                f"account '{account_id}' does not exist",
                suggestion="List accounts with `chaindesk accounts list`.",
            )
        try:
            return Account.model_validate_json(path.read_text(encoding="utf-8"))
        except ValidationError as exc:
            raise DeskError(
                ErrorCode.INTERNAL_ERROR,
                f"account file for '{account_id}' is malformed",
                details={"path": str(path), "errors": exc.error_count()},
            ) from exc

    def write(self, account: Account) -> Account:
        self._write_json_atomic(self._account_path(account.id), account.model_dump(mode="json"))
        return account

    def create(self, name: str) -> Account:
        cleaned = name.strip()
        if not cleaned:
            raise DeskError(ErrorCode.INVALID_ARGS, "account name must not be empty")
        account = Account(id=str(uuid4()), name=cleaned, holdings=Holdings(last_updated=date.today()))
        self.write(account)
        logger.info("created account %s (%s)", account.id, account.name)
        return account

    def delete(self, account_id: str) -> None:
        if account_id == DEMO_ACCOUNT_ID:
            raise DeskError(ErrorCode.INVALID_ARGS, "the demo account cannot be deleted")
        path = self._account_path(account_id)
        if not path.exists():
            raise DeskError(ErrorCode.NOT_FOUND, f"account '{account_id}' does not exist")
        path.unlink()
        if self._read_json_object(self._data_dir / ACTIVE_ACCOUNT_FILE).get("id") == account_id:
            self._write_json_atomic(self._data_dir / ACTIVE_ACCOUNT_FILE, {"id": DEMO_ACCOUNT_ID})
        logger.info("deleted account %s", account_id)

    def holdings(self, account_id: str | None = None) -> Holdings:
        return self.read(account_id).holdings

    def set_holdings(self, holdings: Holdings | dict[str, Any], account_id: str | None = None) -> Holdings:
        validated = holdings if isinstance(holdings, Holdings) else Holdings.model_validate(holdings)
        stamped = validated.model_copy(update={"last_updated": date.today()})
        account = self.read(account_id)
        self.write(account.model_copy(update={"holdings": stamped}))
        return stamped

    def strategy(self, account_id: str | None = None) -> str:
        return self.read(account_id).strategy

    def set_strategy(self, text: str, account_id: str | None = None) -> str:
        account = self.read(account_id)
        self.write(account.model_copy(update={"strategy": text}))
        return text

    def persona(self) -> str:
        path = self._data_dir / PERSONA_FILE
        if not path.exists():
            return DEFAULT_PERSONA
        text = path.read_text(encoding="utf-8")
        return text if text.strip() else DEFAULT_PERSONA

    def set_persona(self, text: str) -> str:
        path = self._data_dir / PERSONA_FILE
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
        return text

    def _ensure_demo(self) -> None:
        path = self._account_path(DEMO_ACCOUNT_ID)
        if path.exists():
            return
        self.write(Account(id=DEMO_ACCOUNT_ID, name=DEMO_ACCOUNT_NAME))
        logger.info("created demo account in %s", self._accounts_dir)

    def _account_path(self, account_id: str) -> Path:
        if not _ACCOUNT_ID_RE.fullmatch(account_id or ""):
            raise DeskError(
                ErrorCode.INVALID_ARGS,
                f"invalid account id '{account_id}'",
                suggestion="Account ids contain only letters, digits, '-' and '_'.",
            )
        return self._accounts_dir / f"{account_id}.json"

    def _read_json_object(self, path: Path) -> dict[str, Any]:
        if not path.exists():
            return {}
        try:
            loaded = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            return {}
        if not isinstance(loaded, dict):
            return {}
        return loaded

    def _write_json_atomic(self, path: Path, payload: Any) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_name(f".{path.name}.tmp")
        tmp_path.write_text(json.dumps(payload, indent=2) + "\n", encoding="utf-8")
        tmp_path.replace(path)
