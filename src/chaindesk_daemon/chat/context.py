"""System context assembly: persona, strategy, holdings and live prices."""

from __future__ import annotations

import asyncio
from datetime import datetime
import logging

from chaindesk_daemon.exceptions import DeskError
from chaindesk_daemon.market.chain_cache import ChainCache
from chaindesk_daemon.market.quotes import QuoteService
from chaindesk_daemon.market.symbols import days_to_expiry, round_half_up
from chaindesk_daemon.market.volatility import estimate_30day_iv
from chaindesk_daemon.models.holdings import Holdings, OptionEntry, StockEntry
from chaindesk_daemon.models.market import EquityQuote, OptionKind, OptionPrice, PricesSnapshot

logger = logging.getLogger(__name__)

MUTATION_INSTRUCTIONS = """## Instructions
- Provide thoughtful, data-driven advice based on the user's strategy and current positions
- Reference specific holdings and prices when relevant
- Be concise but thorough
- Use the get_option_chain tool whenever you need current option prices, strikes or expirations
- When suggesting changes to holdings or strategy, include a FILE_UPDATE block at the end of your response in EXACTLY this format:

<<<FILE_UPDATE>>>
{"target": "holdings", "content": { ...full new holdings object... }}
<<<END_FILE_UPDATE>>>

Or for strategy:

<<<FILE_UPDATE>>>
{"target": "strategy", "content": "...full new strategy markdown..."}
<<<END_FILE_UPDATE>>>

IMPORTANT for holdings updates: preserve the exact schema format (stocks as an object keyed by ticker, options as an object keyed by a string ID, snake_case field names). Only include ONE FILE_UPDATE block per response."""


async def collect_prices(
    holdings: Holdings,
    quotes: QuoteService,
    cache: ChainCache,
    *,
    now: datetime | None = None,
) -> PricesSnapshot:
    """Best-effort price snapshot for everything the account holds or watches.

    Live option marks are only looked up for owned contracts.
    """
    snapshot = PricesSnapshot(stocks=await quotes.quotes(holdings.tickers()))

    async def _option_price(key: str, entry: OptionEntry) -> OptionPrice | None:
        try:
            kind = OptionKind.parse(entry.type)
        except ValueError:
            logger.warning("option %s has unknown type %r; skipped", key, entry.type)
            return None
        price = OptionPrice(
            key=key,
            ticker=entry.ticker.upper(),
            strike=entry.strike,
            expiration=entry.expiration,
            kind=kind,
            days_to_expiration=max(0, round_half_up(days_to_expiry(entry.expiration, now))),
        )
        if entry.contracts > 0:
            mid = await cache.get_mid(entry.ticker, kind, entry.strike, entry.expiration)
            if mid is not None:
                price = price.model_copy(update=mid.model_dump())
        return price

    async def _iv30(ticker: str) -> float | None:
        quote = snapshot.stocks.get(ticker)
        if quote is None or quote.price <= 0:
            return None
        try:
            chain = await cache.get_chain(ticker)
        except DeskError as exc:
            logger.warning("iv30 for %s unavailable: %s", ticker, exc.message)
            return None
        return estimate_30day_iv(chain, quote.price, now)

    option_items = list(holdings.options.items())
    option_prices = await asyncio.gather(*(_option_price(key, entry) for key, entry in option_items))
    snapshot.options = {price.key: price for price in option_prices if price is not None}

    stock_tickers = list(holdings.stocks)
    iv_values = await asyncio.gather(*(_iv30(ticker.upper()) for ticker in stock_tickers))
    snapshot.iv30 = {ticker.upper(): value for ticker, value in zip(stock_tickers, iv_values)}
    return snapshot


def build_system_prompt(persona: str, strategy: str, holdings: Holdings, prices: PricesSnapshot) -> str:
    def section(items: list[str]) -> str:
        return "\n\n".join(items) if items else "  (none)"

    owned_stocks = [_fmt_owned_stock(t, s, prices.stocks.get(t.upper())) for t, s in holdings.owned_stocks().items()]
    watched_stocks = [
        _fmt_watched_stock(t, s, prices.stocks.get(t.upper())) for t, s in holdings.watched_stocks().items()
    ]
    owned_options = [_fmt_owned_option(o, prices.options.get(k)) for k, o in holdings.owned_options().items()]
    watched_options = [_fmt_watched_option(o) for o in holdings.watched_options().values()]

    iv_lines = [f"  {t}: {v * 100:.1f}%" for t, v in prices.iv30.items() if v is not None]

    parts = [
        persona.strip(),
        f"## Trading Strategy\n{strategy}",
        f"## Current Holdings (as of {holdings.last_updated.isoformat()})",
        f"### Stocks - Owned\n{section(owned_stocks)}",
        f"### Stocks - Watching\n{section(watched_stocks)}",
        f"### Options - Owned\n{section(owned_options)}",
        f"### Options - Watching\n{section(watched_options)}",
    ]
    if iv_lines:
        parts.append("### 30-day implied volatility\n" + "\n".join(iv_lines))
    parts.append(MUTATION_INSTRUCTIONS)
    return "\n\n".join(parts)


def _today(quote: EquityQuote | None) -> str:
    price = quote.price if quote else 0.0
    pct = quote.change_percent if quote else 0.0
    return f"    Current: ${price:.2f} ({pct:.2f}% today)"


def _fmt_owned_stock(ticker: str, stock: StockEntry, quote: EquityQuote | None) -> str:
    current = quote.price if quote else 0.0
    pnl = (current - stock.cost_basis) * stock.shares
    pnl_pct = ((current - stock.cost_basis) / stock.cost_basis) * 100 if stock.cost_basis > 0 else 0.0
    lines = [
        f"  {ticker}: {_qty(stock.shares)} shares @ cost basis ${stock.cost_basis:.2f}",
        _today(quote),
        f"    P&L: ${pnl:.2f} ({pnl_pct:.1f}%)",
        f"    Target allocation: {_qty(stock.target_allocation_pct)}%",
    ]
    if stock.notes:
        lines.append(f"    Notes: {stock.notes}")
    return "\n".join(lines)


def _fmt_watched_stock(ticker: str, stock: StockEntry, quote: EquityQuote | None) -> str:
    lines = [f"  {ticker}: watching (not owned)", _today(quote)]
    if stock.cost_basis > 0:
        lines.append(f"    Cost target / reference: ${stock.cost_basis:.2f}")
    if stock.notes:
        lines.append(f"    Notes: {stock.notes}")
    return "\n".join(lines)


def _fmt_owned_option(option: OptionEntry, price: OptionPrice | None) -> str:
    lines = [
        f"  {_option_title(option)} x{_qty(option.contracts)} contracts",
        f"    Premium paid: ${option.premium_paid:.2f}/contract",
    ]
    mid = price.mid if price else None
    if mid is not None:
        lines.append(f"    Current mid: ${mid:.2f} | Bid/Ask: {_maybe_money(price.bid)}/{_maybe_money(price.ask)}")
    else:
        lines.append("    Current mid: N/A")
    dte = price.days_to_expiration if price else "N/A"
    if price is not None and price.iv is not None:
        lines.append(f"    IV: {price.iv * 100:.1f}% | DTE: {dte} days")
    else:
        lines.append(f"    DTE: {dte} days")
    if mid is not None:
        gain = (mid - option.premium_paid) * option.contracts * 100
        cost = option.premium_paid * option.contracts * 100
        gain_pct = f"{(gain / cost) * 100:.1f}%" if cost > 0 else "N/A"
        lines.append(f"    P&L: ${gain:.2f} ({gain_pct})")
    if option.notes:
        lines.append(f"    Notes: {option.notes}")
    return "\n".join(lines)


def _fmt_watched_option(option: OptionEntry) -> str:
    lines = [f"  {_option_title(option)}: watching (not owned)"]
    if option.saved_price is not None:
        lines.append(f"    Mid when added to watchlist: ${option.saved_price:.2f}")
    if option.target_price is not None and option.target_price > 0:
        lines.append(f"    Target mid price: ${option.target_price:.2f}")
    if option.notes:
        lines.append(f"    Notes: {option.notes}")
    return "\n".join(lines)


def _option_title(option: OptionEntry) -> str:
    return f"{option.ticker.upper()} {option.type.upper()} ${_qty(option.strike)} exp {option.expiration.isoformat()}"


def _maybe_money(value: float | None) -> str:
    return "N/A" if value is None else f"${value:.2f}"


def _qty(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else f"{value:g}"
