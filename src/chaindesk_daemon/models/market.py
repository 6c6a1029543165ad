"""Market-data domain models."""

from __future__ import annotations

from datetime import UTC, date, datetime
from enum import Enum
from typing import Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

MAX_QUERY_RESULTS = 50

ChainKindFilter = Literal["calls", "puts", "both"]


class OptionKind(str, Enum):
    CALL = "call"
    PUT = "put"

    @property
    def code(self) -> str:
        return "C" if self is OptionKind.CALL else "P"

    @classmethod
    def parse(cls, value: "str | OptionKind") -> "OptionKind":
        if isinstance(value, OptionKind):
            return value
        normalized = str(value).strip().lower()
        if normalized in {"c", "call", "calls"}:
            return cls.CALL
        if normalized in {"p", "put", "puts"}:
            return cls.PUT
        raise ValueError(f"unsupported option kind '{value}'")


class RawContract(BaseModel):
    """One upstream-reported option instrument, as received."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    symbol: str = Field(validation_alias=AliasChoices("option", "symbol"))
    bid: float = 0.0
    ask: float = 0.0
    iv: float = 0.0
    open_interest: float = 0.0
    volume: float = 0.0
    delta: float = 0.0
    last_trade_price: float = 0.0
    prev_day_close: float = 0.0

    @field_validator(
        "bid",
        "ask",
        "iv",
        "open_interest",
        "volume",
        "delta",
        "last_trade_price",
        "prev_day_close",
        mode="before",
    )
    @classmethod
    def _none_as_zero(cls, value: object) -> object:
        return 0.0 if value is None else value

    @property
    def mid(self) -> float:
        return (self.bid + self.ask) / 2

    @property
    def last(self) -> float:
        return self.last_trade_price or self.prev_day_close or 0.0


class DecodedContract(BaseModel):
    model_config = ConfigDict(frozen=True)

    underlying: str
    expiry: date
    kind: OptionKind
    strike: float


class OptionMid(BaseModel):
    bid: float
    ask: float
    mid: float
    last: float
    iv: float


class TermStructurePoint(BaseModel):
    model_config = ConfigDict(frozen=True)

    dte: float
    iv: float


class ChainFilter(BaseModel):
    kind: ChainKindFilter = "both"
    dte_min: float = 20
    dte_max: float = 90
    otm_only: bool = True
    max_results: int = 25
    underlying_price: float | None = None

    @property
    def effective_limit(self) -> int:
        return max(0, min(self.max_results, MAX_QUERY_RESULTS))


class FilteredContract(BaseModel):
    kind: OptionKind
    strike: float
    expiry: date
    dte: int
    bid: float
    ask: float
    mid: float
    iv: float
    delta: float
    volume: float
    open_interest: float


class ChainViewRow(BaseModel):
    symbol: str
    strike: float
    expiry: date
    bid: float
    ask: float
    mid: float
    last: float
    volume: float
    open_interest: float
    iv: float
    delta: float
    in_the_money: bool


class ChainView(BaseModel):
    ticker: str
    underlying_price: float | None = None
    expirations: list[date] = Field(default_factory=list)
    expiry: date | None = None
    calls: list[ChainViewRow] = Field(default_factory=list)
    puts: list[ChainViewRow] = Field(default_factory=list)


class EquityQuote(BaseModel):
    ticker: str
    price: float
    prev_close: float
    change: float = 0.0
    change_percent: float = 0.0
    volume: float = 0.0
    market_cap: float | None = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))


class OptionPrice(BaseModel):
    key: str
    ticker: str
    strike: float
    expiration: date
    kind: OptionKind
    days_to_expiration: int
    bid: float | None = None
    ask: float | None = None
    mid: float | None = None
    last: float | None = None
    iv: float | None = None


class PricesSnapshot(BaseModel):
    stocks: dict[str, EquityQuote] = Field(default_factory=dict)
    options: dict[str, OptionPrice] = Field(default_factory=dict)
    iv30: dict[str, float | None] = Field(default_factory=dict)

    def spot_prices(self) -> dict[str, float]:
        return {ticker: quote.price for ticker, quote in self.stocks.items() if quote.price > 0}
