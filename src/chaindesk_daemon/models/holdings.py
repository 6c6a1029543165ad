"""Account document shapes kept by the flat JSON store."""

from __future__ import annotations

from datetime import date

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

DEFAULT_PERSONA = "You are a knowledgeable stock trading assistant helping manage a personal investment portfolio."


class StockEntry(BaseModel):
    model_config = ConfigDict(extra="allow")

    shares: float = 0
    cost_basis: float = 0.0
    target_allocation_pct: float = 0.0
    notes: str = ""


class OptionEntry(BaseModel):
    model_config = ConfigDict(extra="allow")

    ticker: str
    type: str
    strike: float
    expiration: date
    contracts: float = 0
    premium_paid: float = 0.0
    saved_price: float | None = None
    target_price: float | None = None
    notes: str = ""


class Holdings(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    last_updated: date = Field(default_factory=date.today, validation_alias=AliasChoices("last_updated", "lastUpdated"))
    stocks: dict[str, StockEntry] = Field(default_factory=dict)
    options: dict[str, OptionEntry] = Field(default_factory=dict)

    def owned_stocks(self) -> dict[str, StockEntry]:
        return {ticker: s for ticker, s in self.stocks.items() if s.shares > 0}

    def watched_stocks(self) -> dict[str, StockEntry]:
        return {ticker: s for ticker, s in self.stocks.items() if s.shares <= 0}

    def owned_options(self) -> dict[str, OptionEntry]:
        return {key: o for key, o in self.options.items() if o.contracts > 0}

    def watched_options(self) -> dict[str, OptionEntry]:
        return {key: o for key, o in self.options.items() if o.contracts <= 0}

    def tickers(self) -> list[str]:
        seen: dict[str, None] = dict.fromkeys(ticker.upper() for ticker in self.stocks)
        for option in self.options.values():
            seen.setdefault(option.ticker.upper(), None)
        return list(seen)


class Account(BaseModel):
    id: str
    name: str
    holdings: Holdings = Field(default_factory=Holdings)
    strategy: str = ""


class AccountSummary(BaseModel):
    id: str
    name: str
