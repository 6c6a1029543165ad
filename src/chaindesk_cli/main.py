"""Root Typer app and command registration."""

from __future__ import annotations

import typer

from chaindesk_cli import accounts, audit, chain, chat, daemon, holdings
from chaindesk_cli._common import CLIState, build_typer, load_config, resolve_json_mode

app = build_typer(
    """chaindesk command-line interface for option chains, holdings, and the chat desk.

    Examples:
      chaindesk daemon start
      chaindesk quote AAPL MSFT
      chaindesk chain query AAPL --kind calls --dte-min 20 --dte-max 60
      chaindesk chat ask "Should I roll my NVDA calls?"
    """
)

app.add_typer(daemon.app, name="daemon")
app.add_typer(chain.app, name="chain")
app.add_typer(holdings.app, name="holdings")
app.add_typer(holdings.strategy_app, name="strategy")
app.add_typer(holdings.persona_app, name="persona")
app.add_typer(accounts.app, name="accounts")
app.add_typer(chat.app, name="chat")
app.add_typer(audit.app, name="audit")

app.command("quote", help="Snapshot quote(s) for one or more tickers.")(chain.quote)
app.command("prices", help="Live prices, option mids and IV30 for everything the account holds or watches.")(chain.prices)


@app.callback()
def root(
    ctx: typer.Context,
    json_output: bool = typer.Option(
        False,
        "--json",
        help="Emit machine-readable JSON only.",
    ),
) -> None:
    cfg = load_config()
    ctx.obj = CLIState(config=cfg, json_output=resolve_json_mode(json_output))


def run() -> None:
    app()
