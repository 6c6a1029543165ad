"""30-day implied-volatility estimate from a chain's term structure.

One point per expiry: the average IV of the call and put struck closest to the
underlying. The 30-day value is read off those points by linear interpolation
between the neighbouring maturities and clamped flat beyond the ends.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Iterable

from chaindesk_daemon.market.symbols import days_to_expiry, decode
from chaindesk_daemon.models.market import OptionKind, RawContract, TermStructurePoint

TARGET_DTE = 30.0
MIN_BUCKET_DTE = 5.0
EXACT_MATCH_WINDOW = 1.0


@dataclass
class _ExpiryBucket:
    dte: float
    calls: list[tuple[float, float]] = field(default_factory=list)
    puts: list[tuple[float, float]] = field(default_factory=list)


def term_structure(
    contracts: Iterable[RawContract],
    underlying_price: float,
    now: datetime | None = None,
) -> list[TermStructurePoint]:
    buckets: dict[date, _ExpiryBucket] = {}
    for contract in contracts:
        decoded = decode(contract.symbol)
        if decoded is None or contract.iv <= 0:
            continue
        bucket = buckets.get(decoded.expiry)
        if bucket is None:
            bucket = _ExpiryBucket(dte=days_to_expiry(decoded.expiry, now))
            buckets[decoded.expiry] = bucket
        side = bucket.calls if decoded.kind is OptionKind.CALL else bucket.puts
        side.append((decoded.strike, contract.iv))

    points: list[TermStructurePoint] = []
    for bucket in buckets.values():
        if bucket.dte < MIN_BUCKET_DTE:
            continue
        ivs = [iv for iv in (_atm_iv(bucket.calls, underlying_price), _atm_iv(bucket.puts, underlying_price)) if iv]
        if not ivs:
            continue
        points.append(TermStructurePoint(dte=bucket.dte, iv=sum(ivs) / len(ivs)))

    points.sort(key=lambda point: point.dte)
    return points


def estimate_30day_iv(
    contracts: Iterable[RawContract],
    underlying_price: float,
    now: datetime | None = None,
) -> float | None:
    points = term_structure(contracts, underlying_price, now)
    if not points:
        return None

    for point in points:
        if abs(point.dte - TARGET_DTE) < EXACT_MATCH_WINDOW:
            return point.iv

    below = [p for p in points if p.dte < TARGET_DTE]
    above = [p for p in points if p.dte > TARGET_DTE]
    if not below:
        return above[0].iv
    if not above:
        return below[-1].iv

    near, far = below[-1], above[0]
    weight = (TARGET_DTE - near.dte) / (far.dte - near.dte)
    return near.iv + weight * (far.iv - near.iv)


def _atm_iv(side: list[tuple[float, float]], underlying_price: float) -> float | None:
    # first of equally-close strikes wins
    best: tuple[float, float] | None = None
    for strike, iv in side:
        if best is None or abs(strike - underlying_price) < abs(best[0] - underlying_price):
            best = (strike, iv)
    if best is None or best[1] <= 0:
        return None
    return best[1]
