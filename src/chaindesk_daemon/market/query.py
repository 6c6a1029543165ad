"""Filtered, ordered projections of a cached option chain."""

from __future__ import annotations

from datetime import date, datetime
import logging

from chaindesk_daemon.market.chain_cache import ChainCache
from chaindesk_daemon.market.symbols import days_to_expiry, decode, round_half_up
from chaindesk_daemon.models.market import (
    ChainFilter,
    ChainView,
    ChainViewRow,
    FilteredContract,
    OptionKind,
)

logger = logging.getLogger(__name__)

_KIND_BY_FILTER = {"calls": OptionKind.CALL, "puts": OptionKind.PUT}


class ChainQueryEngine:
    def __init__(self, cache: ChainCache) -> None:
        self._cache = cache

    @property
    def cache(self) -> ChainCache:
        return self._cache

    async def query(
        self,
        ticker: str,
        chain_filter: ChainFilter | None = None,
        now: datetime | None = None,
    ) -> list[FilteredContract]:
        """Nearest-dated, closest-to-the-money contracts first.

        Filters run kind, DTE window, OTM (only with a known spot), then
        non-zero mid. Upstream failures propagate unchanged.
        """
        flt = chain_filter or ChainFilter()
        chain = await self._cache.get_chain(ticker)
        wanted_kind = _KIND_BY_FILTER.get(flt.kind)
        spot = flt.underlying_price

        results: list[FilteredContract] = []
        for contract in chain:
            decoded = decode(contract.symbol)
            if decoded is None:
                continue
            if wanted_kind is not None and decoded.kind is not wanted_kind:
                continue

            dte = days_to_expiry(decoded.expiry, now)
            if dte < flt.dte_min or dte > flt.dte_max:
                continue

            if flt.otm_only and spot is not None and not _is_otm(decoded.kind, decoded.strike, spot):
                continue

            mid = contract.mid
            if mid <= 0:
                continue

            results.append(
                FilteredContract(
                    kind=decoded.kind,
                    strike=decoded.strike,
                    expiry=decoded.expiry,
                    dte=round_half_up(dte),
                    bid=contract.bid,
                    ask=contract.ask,
                    mid=mid,
                    iv=contract.iv,
                    delta=contract.delta,
                    volume=contract.volume,
                    open_interest=contract.open_interest,
                )
            )

        if spot is not None:
            results.sort(key=lambda c: (c.dte, abs(c.strike - spot)))
        else:
            results.sort(key=lambda c: (c.dte, c.strike))

        limit = flt.effective_limit
        logger.debug("chain query %s: %d matched, returning %d", ticker, len(results), min(limit, len(results)))
        return results[:limit]

    async def chain_view(
        self,
        ticker: str,
        *,
        expiry: date | None = None,
        underlying_price: float | None = None,
    ) -> ChainView:
        """One expiry of the chain split into strike-sorted calls and puts.

        Defaults to the nearest listed expiry.
        """
        chain = await self._cache.get_chain(ticker)
        decoded_chain = [(contract, decode(contract.symbol)) for contract in chain]
        expirations = sorted({d.expiry for _, d in decoded_chain if d is not None})
        target = expiry or (expirations[0] if expirations else None)

        view = ChainView(
            ticker=ticker.strip().upper(),
            underlying_price=underlying_price,
            expirations=expirations,
            expiry=target,
        )
        if target is None:
            return view

        for contract, decoded in decoded_chain:
            if decoded is None or decoded.expiry != target:
                continue
            itm = underlying_price is not None and _is_itm(decoded.kind, decoded.strike, underlying_price)
            row = ChainViewRow(
                symbol=contract.symbol,
                strike=decoded.strike,
                expiry=decoded.expiry,
                bid=contract.bid,
                ask=contract.ask,
                mid=contract.mid,
                last=contract.last,
                volume=contract.volume,
                open_interest=contract.open_interest,
                iv=contract.iv,
                delta=contract.delta,
                in_the_money=itm,
            )
            (view.calls if decoded.kind is OptionKind.CALL else view.puts).append(row)

        view.calls.sort(key=lambda row: row.strike)
        view.puts.sort(key=lambda row: row.strike)
        return view


def _is_otm(kind: OptionKind, strike: float, spot: float) -> bool:
    if kind is OptionKind.CALL:
        return strike > spot
    return strike < spot


def _is_itm(kind: OptionKind, strike: float, spot: float) -> bool:
    if kind is OptionKind.CALL:
        return spot > strike
    return spot < strike

