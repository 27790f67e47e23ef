#!/usr/bin/env python3
"""History subcommand - Display the replayed value history with return series."""

from rich.console import Console
from rich.table import Table

from ..history import calculate_portfolio_history
from ..metrics import build_mwr_series, calculate_twr_series, starts_at_inception
from ..periods import Granularity, TimeRange
from .common import add_project_arguments, format_currency, format_percentage, load_context


def register_subcommand(subparsers):
    """Register the history subcommand with the argument parser.

    Args:
        subparsers: The argparse subparsers action to add the command to.
    """
    parser = subparsers.add_parser(
        "history",
        help="Display portfolio value history",
        description="Replay the transaction ledger and display value, invested capital, dividends, TWR and MWR per date.",
    )
    add_project_arguments(parser)
    parser.add_argument(
        "--range",
        "-r",
        dest="time_range",
        default="1J",
        choices=[r.value for r in TimeRange] + ["1Y", "3Y", "5Y"],
        help="Look-back window (default: 1J = one year)",
    )
    parser.add_argument(
        "--granularity",
        "-g",
        default=Granularity.WEEKLY.value,
        choices=[g.value for g in Granularity],
        help="Grid granularity (default: weekly)",
    )
    parser.add_argument(
        "--include-dividends",
        action="store_true",
        help="Count dividend income in the return series",
    )
    parser.set_defaults(func=run)


def calculate_return_columns(history, transactions, is_full_range=False, include_dividends=False):
    """Calculate the TWR and MWR columns of the history table.

    Both start from the first valuation's gain when the range begins at
    inception, so a single lump sum shows the same figure in both columns.

    Returns:
        tuple: (twr, mwr) lists of PerformancePoint.
    """
    start, end = history[0].date, history[-1].date
    at_inception = starts_at_inception(start, is_full_range, transactions)
    twr = calculate_twr_series(history, include_dividends=include_dividends, day_one_alpha=at_inception)
    mwr = build_mwr_series(
        history,
        start,
        end,
        include_dividends=include_dividends,
        is_full_range=is_full_range,
        transactions=transactions,
    )
    return twr, mwr


def run(args):
    """Display the value history table.

    Args:
        args: Parsed argparse namespace with the project arguments plus
            time_range, granularity and include_dividends.

    Returns:
        int: Exit code (0 for success, 1 for errors).
    """
    try:
        ctx = load_context(args)
    except (FileNotFoundError, ValueError) as e:
        print(f"Error: {e}")
        return 1

    time_range = TimeRange.parse(args.time_range)
    history = calculate_portfolio_history(
        ctx.transactions,
        ctx.project.securities,
        ctx.fx,
        ctx.cash_accounts,
        ctx.base_currency,
        time_range,
        args.granularity,
        as_of=ctx.as_of,
    )

    console = Console()
    if not history:
        console.print("[yellow]No transactions on or before the valuation date.[/yellow]")
        return 0

    twr, mwr = calculate_return_columns(
        history,
        ctx.transactions,
        is_full_range=time_range == TimeRange.MAX,
        include_dividends=args.include_dividends,
    )

    base = ctx.base_currency
    table = Table(title=f"Portfolio History ({time_range.value}, {args.granularity}) as of {ctx.as_of.isoformat()}")
    table.add_column("Date", style="cyan", justify="left")
    table.add_column(f"Value ({base})", style="green", justify="right")
    table.add_column(f"Invested ({base})", style="yellow", justify="right")
    table.add_column(f"Dividends ({base})", justify="right")
    table.add_column("TWR", justify="right")
    table.add_column("MWR", justify="right")

    for point, twr_point, mwr_point in zip(history, twr, mwr):
        table.add_row(
            point.date.isoformat(),
            f"{point.value:,.2f}",
            f"{point.invested:,.2f}",
            f"{point.dividend:,.2f}",
            format_percentage(twr_point.value),
            format_percentage(mwr_point.value),
        )

    console.print(table)
    last = history[-1]
    console.print(
        f"[bold]Value:[/bold] {format_currency(last.value, base)}  "
        f"[bold]Invested:[/bold] {format_currency(last.invested, base)}  "
        f"[bold]Dividends:[/bold] {format_currency(last.dividend, base)}"
    )
    return 0
