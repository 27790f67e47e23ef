#!/usr/bin/env python3
"""Metrics subcommand - Display portfolio risk and return metrics."""

import os

from rich.console import Console
from rich.table import Table
from rich.panel import Panel

from ..history import calculate_portfolio_history
from ..metrics import (
    DEFAULT_RISK_FREE_RATE,
    aggregate_quarterly_returns,
    aggregate_yearly_returns,
    build_benchmark_series,
    build_mwr_series,
    calculate_analysis_metrics,
    calculate_rolling_risk_series,
    monthly_returns_for_year,
)
from ..periods import Granularity, TimeRange
from .common import add_project_arguments, format_percentage, format_ratio, load_context


def register_subcommand(subparsers):
    """Register the metrics subcommand with the argument parser.

    Args:
        subparsers: The argparse subparsers action to add the command to.
    """
    parser = subparsers.add_parser(
        "metrics",
        help="Display portfolio metrics report",
        description="Display volatility, Sharpe ratio, drawdown and calendar returns over the full history.",
    )
    add_project_arguments(parser)
    parser.add_argument(
        "--risk-free-rate",
        "-r",
        type=float,
        default=float(os.getenv("FOLIOTRACK_RISK_FREE_RATE", DEFAULT_RISK_FREE_RATE)),
        help="Annual risk-free rate for the Sharpe ratio (default: FOLIOTRACK_RISK_FREE_RATE or 0.02 = 2%%)",
    )
    parser.add_argument(
        "--year",
        "-y",
        type=int,
        default=None,
        help="Year for the monthly and quarterly tables (default: latest year)",
    )
    parser.add_argument(
        "--include-dividends",
        action="store_true",
        help="Count dividend income as return",
    )
    parser.add_argument(
        "--benchmark",
        "-b",
        action="append",
        default=[],
        help="ISIN of a project security to compare against (repeatable)",
    )
    parser.set_defaults(func=run)


def run(args):
    """Display the metrics report.

    Args:
        args: Parsed argparse namespace with the project arguments plus
            risk_free_rate, year, include_dividends and benchmark.

    Returns:
        int: Exit code (0 for success, 1 for errors).
    """
    try:
        ctx = load_context(args)
    except (FileNotFoundError, ValueError) as e:
        print(f"Error: {e}")
        return 1

    console = Console()
    history = calculate_portfolio_history(
        ctx.transactions,
        ctx.project.securities,
        ctx.fx,
        ctx.cash_accounts,
        ctx.base_currency,
        TimeRange.MAX,
        Granularity.DAILY,
        as_of=ctx.as_of,
    )
    if not history:
        console.print("[yellow]No transactions on or before the valuation date.[/yellow]")
        return 0

    metrics = calculate_analysis_metrics(history, args.risk_free_rate, include_dividends=args.include_dividends)
    rolling = calculate_rolling_risk_series(metrics.twr_series, args.risk_free_rate)

    console.print(f"\n[bold]Portfolio Metrics Report[/bold] - As of {ctx.as_of.isoformat()}")
    console.print(
        f"[dim]Currency: {ctx.base_currency} | Risk-Free Rate: {args.risk_free_rate:.2%} | "
        f"History: {history[0].date.isoformat()} to {history[-1].date.isoformat()}[/dim]\n"
    )

    # ==================== Risk ====================
    risk_table = Table(title="Risk Metrics")
    risk_table.add_column("Metric", style="cyan", justify="left")
    risk_table.add_column("Value", justify="right")

    total_twr = metrics.twr_series[-1].value if metrics.twr_series else None
    risk_table.add_row("Time-Weighted Return", format_percentage(total_twr))
    risk_table.add_row("Volatility (annualized, trailing year)", f"{metrics.volatility:.1f}%")
    risk_table.add_row("Sharpe Ratio", format_ratio(metrics.sharpe_ratio))
    drawdown_date = metrics.max_drawdown_date.isoformat() if metrics.max_drawdown_date else "-"
    risk_table.add_row("Max Drawdown", f"{format_percentage(metrics.max_drawdown, 1)} ({drawdown_date})")
    if rolling.volatility:
        risk_table.add_row("Rolling 1Y Volatility", f"{rolling.volatility[-1].value:.1f}%")
        risk_table.add_row("Rolling 1Y Sharpe", format_ratio(rolling.sharpe[-1].value))
    else:
        risk_table.add_row("Rolling 1Y Volatility", "[dim]Insufficient data[/dim]")
        risk_table.add_row("Rolling 1Y Sharpe", "[dim]Insufficient data[/dim]")
    console.print(risk_table)

    # ==================== Calendar Returns ====================
    year = args.year or (metrics.available_years[0] if metrics.available_years else history[-1].date.year)

    monthly_table = Table(title=f"Monthly Returns {year}")
    monthly = monthly_returns_for_year(metrics.monthly_returns_map, year)
    for label, _ in monthly:
        monthly_table.add_column(label, justify="right")
    monthly_table.add_row(*[
        format_percentage(value, 1) if f"{year}-{month:02d}" in metrics.monthly_returns_map else "[dim]-[/dim]"
        for month, (_, value) in enumerate(monthly, start=1)
    ])
    console.print(monthly_table)

    period_table = Table(title="Quarterly and Yearly Returns")
    period_table.add_column("Period", style="cyan", justify="left")
    period_table.add_column("Return", justify="right")
    for quarter in aggregate_quarterly_returns(metrics.monthly_returns_map, year):
        period_table.add_row(f"{year} {quarter.label}", format_percentage(quarter.value, 1) if quarter.has_data else "[dim]-[/dim]")
    for yearly in aggregate_yearly_returns(metrics.monthly_returns_map, metrics.available_years):
        period_table.add_row(yearly.label, format_percentage(yearly.value, 1))
    console.print(period_table)

    # ==================== Benchmarks ====================
    if args.benchmark:
        start, end = history[0].date, history[-1].date
        portfolio_mwr = build_mwr_series(
            history, start, end,
            include_dividends=args.include_dividends,
            is_full_range=True,
            transactions=ctx.transactions,
        )
        bench_table = Table(title="Money-Weighted Return vs. Benchmarks")
        bench_table.add_column("Series", style="cyan", justify="left")
        bench_table.add_column("MWR", justify="right")
        bench_table.add_row("Portfolio", format_percentage(portfolio_mwr[-1].value if portfolio_mwr else None))

        for isin in args.benchmark:
            security = ctx.project.securities.get(isin)
            if security is None or not security.price_history:
                bench_table.add_row(isin, "[dim]No price history[/dim]")
                continue
            series = build_benchmark_series(
                history, security.price_history, security.currency, ctx.base_currency, ctx.fx,
                start, end, is_full_range=True, transactions=ctx.transactions,
            )
            bench_table.add_row(security.name, format_percentage(series[-1].value if series else None))
        console.print(bench_table)

    console.print(
        Panel(
            f"Available years: {', '.join(str(y) for y in metrics.available_years)}",
            title="Summary",
        )
    )
    return 0
