"""OCC-style option symbol codec.

``AAPL260321C00100000`` = ticker ``AAPL``, expiry 2026-03-21, call, strike 100.
The suffix is fixed width: ``YYMMDD`` + ``C``/``P`` + strike * 1000 in 8 digits.
"""

from __future__ import annotations

from datetime import UTC, date, datetime, time
import math
import re

from chaindesk_daemon.exceptions import DeskError, ErrorCode
from chaindesk_daemon.models.market import DecodedContract, OptionKind

_OCC_RE = re.compile(r"([A-Z]+)([0-9]{2})([0-9]{2})([0-9]{2})([CP])([0-9]{8})")
_TICKER_RE = re.compile(r"[A-Z]+")
STRIKE_SCALE = 1000
MAX_SCALED_STRIKE = 99_999_999
EXPIRY_SETTLE_TIME = time(12, 0)
SECONDS_PER_DAY = 86_400


def decode(symbol: str) -> DecodedContract | None:
    """Return the structured contract, or None when the symbol is malformed."""
    if not isinstance(symbol, str):
        return None
    match = _OCC_RE.fullmatch(symbol)
    if match is None:
        return None
    ticker, yy, mm, dd, cp, strike_digits = match.groups()
    try:
        expiry = date(2000 + int(yy), int(mm), int(dd))
    except ValueError:
        return None
    return DecodedContract(
        underlying=ticker,
        expiry=expiry,
        kind=OptionKind.CALL if cp == "C" else OptionKind.PUT,
        strike=int(strike_digits) / STRIKE_SCALE,
    )


def encode(ticker: str, kind: str | OptionKind, strike: float, expiry: date) -> str:
    underlying = str(ticker).strip().upper()
    if not _TICKER_RE.fullmatch(underlying):
        raise DeskError(
            ErrorCode.INVALID_ARGS,
            f"invalid ticker '{ticker}'",
            suggestion="Use an alphabetic ticker such as AAPL.",
        )
    try:
        option_kind = OptionKind.parse(kind)
    except ValueError as exc:
        raise DeskError(ErrorCode.INVALID_ARGS, str(exc), suggestion="Use kind call or put.") from exc

    scaled = round(float(strike) * STRIKE_SCALE)
    if scaled < 0 or scaled > MAX_SCALED_STRIKE:
        raise DeskError(
            ErrorCode.INVALID_ARGS,
            f"strike {strike} cannot be encoded in 8 digits",
            details={"strike": strike},
        )
    yy = f"{expiry.year % 100:02d}"
    return f"{underlying}{yy}{expiry.month:02d}{expiry.day:02d}{option_kind.code}{scaled:08d}"


def days_to_expiry(expiry: date, now: datetime | None = None) -> float:
    """Fractional days from ``now`` to 12:00 UTC on the expiry date."""
    current = now or datetime.now(UTC)
    if current.tzinfo is None:
        current = current.replace(tzinfo=UTC)
    settle = datetime.combine(expiry, EXPIRY_SETTLE_TIME, tzinfo=UTC)
    return (settle - current).total_seconds() / SECONDS_PER_DAY


def round_half_up(value: float) -> int:
    return math.floor(value + 0.5)
