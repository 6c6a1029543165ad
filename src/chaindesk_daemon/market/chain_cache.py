"""Per-underlying option-chain cache with time-based invalidation."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
import logging
import time
from typing import Awaitable, Callable

from chaindesk_daemon.exceptions import DeskError, UpstreamError
from chaindesk_daemon.market import symbols
from chaindesk_daemon.models.market import OptionKind, OptionMid, RawContract

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 300
STRIKE_TOLERANCE = 0.005

ChainFetcher = Callable[[str], Awaitable[list[RawContract]]]


@dataclass(frozen=True)
class ChainCacheEntry:
    fetched_at: float
    contracts: tuple[RawContract, ...]


class ChainCache:
    """Maps upper-cased ticker to the last fetched chain.

    Entries are only ever replaced, never mutated or evicted by age; an expired
    entry just forces the next read to refetch. Concurrent refetches of the same
    ticker are tolerated and the last writer wins.
    """

    def __init__(
        self,
        fetcher: ChainFetcher,
        *,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._fetcher = fetcher
        self._ttl = float(ttl_seconds)
        self._clock = clock
        self._entries: dict[str, ChainCacheEntry] = {}

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    def tickers(self) -> list[str]:
        return sorted(self._entries)

    def age(self, ticker: str) -> float | None:
        entry = self._entries.get(_key(ticker))
        if entry is None:
            return None
        return self._clock() - entry.fetched_at

    async def get_chain(self, ticker: str) -> list[RawContract]:
        key = _key(ticker)
        entry = self._entries.get(key)
        if entry is not None and self._clock() - entry.fetched_at < self._ttl:
            return list(entry.contracts)

        try:
            fetched = await self._fetcher(key)
        except UpstreamError:
            raise
        except DeskError as exc:
            raise UpstreamError(exc.message, details=exc.details, suggestion=exc.suggestion) from exc

        contracts = tuple(fetched)
        self._entries[key] = ChainCacheEntry(fetched_at=self._clock(), contracts=contracts)
        logger.debug("chain cache stored %s (%d contracts)", key, len(contracts))
        return list(contracts)

    async def get_mid(
        self,
        ticker: str,
        kind: str | OptionKind,
        strike: float,
        expiry: date,
    ) -> OptionMid | None:
        """Look up one contract's bid/ask/mid; None on miss or any failure."""
        try:
            option_kind = OptionKind.parse(kind)
            wanted_strike = float(strike)
        except (TypeError, ValueError):
            return None
        try:
            chain = await self.get_chain(ticker)
        except DeskError as exc:
            logger.warning("mid lookup for %s failed: %s", _key(ticker), exc.message)
            return None
        except Exception as exc:
            logger.warning("mid lookup for %s failed: %s: %s", _key(ticker), type(exc).__name__, exc)
            return None

        for contract in chain:
            decoded = symbols.decode(contract.symbol)
            if decoded is None:
                continue
            if decoded.kind is not option_kind or decoded.expiry != expiry:
                continue
            if abs(decoded.strike - wanted_strike) >= STRIKE_TOLERANCE:
                continue
            return OptionMid(
                bid=contract.bid,
                ask=contract.ask,
                mid=contract.mid,
                last=contract.last,
                iv=contract.iv,
            )
        return None

    def invalidate(self, ticker: str) -> bool:
        return self._entries.pop(_key(ticker), None) is not None

    def clear(self) -> int:
        count = len(self._entries)
        self._entries = {}
        return count


def _key(ticker: str) -> str:
    return str(ticker).strip().upper()
