"""Shared argument handling and formatting for the foliotrack subcommands."""

import os
import warnings
from dataclasses import dataclass
from datetime import date, datetime

from dotenv import load_dotenv

load_dotenv()

from .. import history as history_module
from ..currency import PivotExchangeRateManager
from ..portfolio import (
    CashAccount,
    Project,
    Transaction,
    filter_cash_accounts_by_portfolio,
    filter_transactions_by_portfolio,
    load_project_from_json,
    load_transactions_from_excel,
)


def format_percentage(value: float | None, precision: int = 2) -> str:
    """Format a value that is already in percent (e.g. 5.0 becomes "+5.00%").

    Args:
        value: Percentage to format.
        precision: Number of decimal places in the output.

    Returns:
        Signed percentage string wrapped in rich color markup, or "N/A".
    """
    if value is None:
        return "N/A"
    if value >= 0:
        return f"[green]+{value:.{precision}f}%[/green]"
    return f"[red]{value:.{precision}f}%[/red]"


def format_ratio(value: float | None, precision: int = 2) -> str:
    if value is None:
        return "N/A"
    return f"{value:.{precision}f}"


def format_currency(value: float | None, currency: str, precision: int = 2) -> str:
    """Format a monetary amount with thousands separators and its currency code."""
    if value is None:
        return "N/A"
    return f"{value:,.{precision}f} {currency}"


def add_project_arguments(parser) -> None:
    """Add the arguments every project-based subcommand accepts.

    Args:
        parser: The subcommand's argparse parser.
    """
    parser.add_argument("filename", help="Path to a JSON project file or an Excel transactions sheet")
    parser.add_argument(
        "--currency",
        "-c",
        default=os.getenv("FOLIOTRACK_BASE_CURRENCY"),
        help="Base currency for valuation (default: FOLIOTRACK_BASE_CURRENCY or the project's setting)",
    )
    parser.add_argument(
        "--portfolio",
        "-p",
        action="append",
        default=[],
        help="Restrict to a portfolio id (repeatable; default: all portfolios)",
    )
    parser.add_argument(
        "--date",
        "-d",
        type=str,
        default=None,
        help="Valuation date (format: YYYY-MM-DD). If not specified, uses today.",
    )
    parser.add_argument(
        "--quiet",
        "-q",
        action="store_true",
        help="Suppress data quality warnings (missing rates or prices)",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Print replay progress to stderr",
    )


@dataclass
class ProjectContext:
    """A loaded project narrowed to the selected portfolios."""
    project: Project
    transactions: list[Transaction]
    cash_accounts: list[CashAccount]
    fx: PivotExchangeRateManager
    base_currency: str
    as_of: date


def load_context(args) -> ProjectContext:
    """Load the project named on the command line and apply the common options.

    Args:
        args: Parsed argparse namespace from ``add_project_arguments``.

    Returns:
        The loaded ProjectContext.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the file or the ``--date`` argument is invalid.
    """
    if args.quiet:
        warnings.filterwarnings("ignore", category=UserWarning)
    history_module.verbose = args.verbose

    if args.filename.lower().endswith((".xlsx", ".xls")):
        project = Project(transactions=load_transactions_from_excel(args.filename))
    else:
        project = load_project_from_json(args.filename)

    if args.date:
        try:
            as_of = datetime.strptime(args.date, "%Y-%m-%d").date()
        except ValueError:
            raise ValueError(f"Invalid date format '{args.date}'. Expected YYYY-MM-DD (e.g., 2025-01-15)")
    else:
        as_of = date.today()

    base_currency = (args.currency or project.base_currency).upper()
    return ProjectContext(
        project=project,
        transactions=filter_transactions_by_portfolio(project, args.portfolio),
        cash_accounts=filter_cash_accounts_by_portfolio(project, args.portfolio),
        fx=PivotExchangeRateManager(project.fx_data),
        base_currency=base_currency,
        as_of=as_of,
    )
