"""The option-chain tool exposed to chat providers."""

from __future__ import annotations

import logging
from typing import Any, Mapping

from chaindesk_daemon.exceptions import DeskError
from chaindesk_daemon.market.query import ChainQueryEngine
from chaindesk_daemon.models.chat import ToolInvocation, ToolResult
from chaindesk_daemon.models.market import MAX_QUERY_RESULTS, ChainFilter, FilteredContract
from chaindesk_daemon.providers.base import ToolSpec

logger = logging.getLogger(__name__)

OPTION_CHAIN_TOOL = ToolSpec(
    name="get_option_chain",
    description=(
        "Fetch live options chain data for a stock ticker. Returns bid, ask, mid, implied volatility, "
        "delta, volume and open interest for contracts filtered by type, days to expiry and moneyness. "
        "Use this when the user asks about option prices, premiums, strikes, expirations, or wants "
        "trade ideas involving options."
    ),
    parameters={
        "type": "object",
        "properties": {
            "ticker": {"type": "string", "description": "Stock ticker symbol, e.g. AAPL"},
            "type": {
                "type": "string",
                "enum": ["calls", "puts", "both"],
                "description": "Option type to return. Defaults to both.",
            },
            "dte_min": {"type": "number", "description": "Minimum days to expiration. Defaults to 20."},
            "dte_max": {"type": "number", "description": "Maximum days to expiration. Defaults to 90."},
            "otm_only": {
                "type": "boolean",
                "description": "Only return out-of-the-money contracts. Defaults to true.",
            },
            "max_results": {
                "type": "number",
                "description": f"Maximum number of contracts to return. Defaults to 25, max {MAX_QUERY_RESULTS}.",
            },
        },
        "required": ["ticker"],
    },
)

TOOLS = (OPTION_CHAIN_TOOL,)

_RULE = "-" * 90


class ChainToolExecutor:
    """Runs chain tool invocations for one turn.

    ``spot_prices`` is the turn's ticker -> underlying price map; it drives the
    moneyness filter. Every failure is reported as text so the model can react.
    """

    def __init__(self, engine: ChainQueryEngine, spot_prices: Mapping[str, float] | None = None) -> None:
        self._engine = engine
        self._spot_prices = {k.upper(): float(v) for k, v in (spot_prices or {}).items() if v}

    async def __call__(self, invocation: ToolInvocation) -> ToolResult:
        if invocation.name != OPTION_CHAIN_TOOL.name:
            return _result(invocation, f"Unknown tool: {invocation.name}", is_error=True)

        args = invocation.arguments
        ticker = str(args.get("ticker") or "").strip().upper()
        if not ticker:
            return _result(invocation, "Error: ticker is required", is_error=True)

        try:
            chain_filter = ChainFilter(
                kind=str(args.get("type") or "both").lower(),
                dte_min=float(_arg(args, "dte_min", 20)),
                dte_max=float(_arg(args, "dte_max", 90)),
                otm_only=args.get("otm_only") is not False,
                max_results=min(int(_arg(args, "max_results", 25)), MAX_QUERY_RESULTS),
                underlying_price=self._spot_prices.get(ticker),
            )
        except (TypeError, ValueError) as exc:
            return _result(invocation, f"Error: invalid arguments for {invocation.name}: {exc}", is_error=True)

        try:
            contracts = await self._engine.query(ticker, chain_filter)
        except DeskError as exc:
            logger.warning("chain tool failed for %s: %s", ticker, exc.message)
            return _result(invocation, f"Error fetching {ticker} options: {exc.message}", is_error=True)

        if not contracts:
            return _result(
                invocation,
                f"No {ticker} options matched ({chain_filter.kind}, DTE {_num(chain_filter.dte_min)}-"
                f"{_num(chain_filter.dte_max)}, OTM: {_flag(chain_filter.otm_only)}). "
                "Try widening filters or check the ticker.",
            )
        return _result(invocation, render_chain_table(ticker, chain_filter, contracts))


def _arg(args: Mapping[str, Any], name: str, default: float) -> Any:
    # explicit null means "use the default"
    value = args.get(name)
    return default if value is None else value


def render_chain_table(ticker: str, chain_filter: ChainFilter, contracts: list[FilteredContract]) -> str:
    spot = chain_filter.underlying_price
    lines = [
        f"{ticker} options  |  underlying: {_money(spot) if spot is not None else 'N/A'}",
        f"Filters: {chain_filter.kind}, DTE {_num(chain_filter.dte_min)}-{_num(chain_filter.dte_max)} days, "
        f"OTM only: {_flag(chain_filter.otm_only)}  |  {len(contracts)} contracts",
        "",
        f"{'Expiry':<12} {'DTE':>3}  {'Type':<4}  {'Strike':>7}  {'Bid':>6}  {'Ask':>6}  {'Mid':>6}"
        f"  {'IV%':>5}  {'Delta':>6}  {'Vol':>7}  {'OI':>7}",
        _RULE,
    ]
    for c in contracts:
        lines.append(
            f"{c.expiry.isoformat():<12} {c.dte:>3}  {c.kind.value.upper():<4}  {'$' + _num(c.strike):>7}"
            f"  {_money(c.bid):>6}  {_money(c.ask):>6}  {_money(c.mid):>6}"
            f"  {f'{c.iv * 100:.1f}%':>5}  {c.delta:>6.3f}"
            f"  {int(c.volume):>7,}  {int(c.open_interest):>7,}"
        )
    return "\n".join(lines)


def _result(invocation: ToolInvocation, content: str, *, is_error: bool = False) -> ToolResult:
    return ToolResult(invocation_id=invocation.id, name=invocation.name, content=content, is_error=is_error)


def _money(value: float) -> str:
    return f"${value:.2f}"


def _num(value: Any) -> str:
    number = float(value)
    return str(int(number)) if number.is_integer() else f"{number:g}"


def _flag(value: bool) -> str:
    return "true" if value else "false"
