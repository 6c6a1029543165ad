"""Extraction of the single ``FILE_UPDATE`` block a model may embed in prose."""

from __future__ import annotations

import json
import logging

from pydantic import ValidationError

from chaindesk_daemon.models.chat import MutationCommand

logger = logging.getLogger(__name__)

BLOCK_START = "<<<FILE_UPDATE>>>"
BLOCK_END = "<<<END_FILE_UPDATE>>>"


class MutationParseError(ValueError):
    """A delimited block was present but its payload was unusable."""


def extract(text: str) -> tuple[str, MutationCommand | None]:
    """Split ``text`` into display prose and at most one mutation command.

    A well-formed block is cut out and the remainder stripped. A malformed one
    leaves ``text`` untouched so the raw payload stays visible for review.
    """
    try:
        return parse(text)
    except MutationParseError as exc:
        logger.warning("ignoring malformed %s block: %s", BLOCK_START, exc)
        return text, None


def parse(text: str) -> tuple[str, MutationCommand | None]:
    """Like ``extract`` but raises ``MutationParseError`` on a bad block."""
    start = text.find(BLOCK_START)
    if start < 0:
        return text, None
    end = text.find(BLOCK_END, start + len(BLOCK_START))
    if end < 0:
        raise MutationParseError("missing closing delimiter")

    payload = text[start + len(BLOCK_START) : end].strip()
    try:
        raw = json.loads(payload)
    except json.JSONDecodeError as exc:
        raise MutationParseError(f"payload is not valid JSON: {exc.msg}") from exc
    try:
        command = MutationCommand.model_validate(raw)
    except ValidationError as exc:
        raise MutationParseError(f"payload does not match the mutation schema: {exc.error_count()} error(s)") from exc

    display = (text[:start] + text[end + len(BLOCK_END) :]).strip()
    return display, command
