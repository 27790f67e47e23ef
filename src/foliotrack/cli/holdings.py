#!/usr/bin/env python3
"""Holdings subcommand - Display open positions and realized PnL."""

from rich.console import Console
from rich.table import Table
from rich.panel import Panel

from ..cash import ExplicitCashBalances, ImplicitCashLedger, has_explicit_cash_history
from ..holdings import calculate_holdings
from ..portfolio import get_latest_quotes
from .common import add_project_arguments, format_currency, format_percentage, load_context


def register_subcommand(subparsers):
    """Register the holdings subcommand with the argument parser.

    Args:
        subparsers: The argparse subparsers action to add the command to.
    """
    parser = subparsers.add_parser(
        "holdings",
        help="Display open positions",
        description="Display open positions valued at the latest quotes, realized PnL and cash.",
    )
    add_project_arguments(parser)
    parser.set_defaults(func=run)


def run(args):
    """Display holdings, cash and totals.

    Args:
        args: Parsed argparse namespace with filename, currency, portfolio,
            date, quiet and verbose attributes.

    Returns:
        int: Exit code (0 for success, 1 for errors).
    """
    try:
        ctx = load_context(args)
    except (FileNotFoundError, ValueError) as e:
        print(f"Error: {e}")
        return 1

    base = ctx.base_currency
    quotes = get_latest_quotes(ctx.project.securities, ctx.as_of)
    holdings, realized_pnl = calculate_holdings(
        ctx.transactions, ctx.project.securities, quotes, ctx.fx, base, as_of=ctx.as_of
    )

    console = Console()

    holdings_table = Table(title=f"Open Positions on {ctx.as_of.isoformat()}")
    holdings_table.add_column("ISIN", style="cyan", justify="left")
    holdings_table.add_column("Name", justify="left")
    holdings_table.add_column("Quantity", style="magenta", justify="right")
    holdings_table.add_column("Unit Price\n(Avg → Current)", justify="right")
    holdings_table.add_column(f"Invested ({base})", style="yellow", justify="right")
    holdings_table.add_column(f"Value ({base})", style="green", justify="right")
    holdings_table.add_column("Return", justify="right")

    for holding in holdings:
        current = f"{holding.current_price_original:,.2f}"
        if holding.price_is_estimated:
            current += "*"
        holdings_table.add_row(
            holding.isin,
            holding.name,
            f"{holding.quantity:,.4f}".rstrip("0").rstrip("."),
            f"{holding.average_buy_price_original:,.2f} → {current} {holding.currency}",
            f"{holding.invested:,.2f}",
            f"{holding.value:,.2f}",
            format_percentage(holding.total_return_percent),
        )

    console.print(holdings_table)
    if any(h.price_is_estimated for h in holdings):
        console.print("[dim]* no quote available, valued at average buy price[/dim]")

    # Cash at the valuation date, explicit balances when recorded
    if has_explicit_cash_history(ctx.cash_accounts):
        balances = ExplicitCashBalances(ctx.cash_accounts).balances_by_currency(ctx.as_of)
    else:
        ledger = ImplicitCashLedger()
        for tx in sorted(ctx.transactions, key=lambda t: (t.date, 0 if t.is_inflow else 1)):
            if tx.date <= ctx.as_of:
                ledger.apply(tx)
        balances = dict(ledger.balances)

    cash_table = Table(title="Cash Balances")
    cash_table.add_column("Currency", style="cyan", justify="left")
    cash_table.add_column("Balance", style="yellow", justify="right")
    for currency, balance in sorted(balances.items()):
        cash_table.add_row(currency, f"{balance:,.2f}")
    console.print(cash_table)

    cash_value = sum(ctx.fx.convert(b, c, base, ctx.as_of) for c, b in balances.items())
    holdings_value = sum(h.value for h in holdings)
    console.print(
        Panel(
            f"[bold green]Total Value: {format_currency(holdings_value + cash_value, base)}[/bold green]\n"
            f"Realized PnL: {format_currency(realized_pnl, base)}",
            title="Summary",
        )
    )

    return 0
