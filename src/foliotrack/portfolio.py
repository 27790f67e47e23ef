# pyright: reportUnknownMemberType=false, reportUnknownArgumentType=false

from dataclasses import dataclass, field, asdict
from datetime import date
from enum import Enum
from typing import Any
import hashlib
import json
import os
import warnings

import pandas as pd
from openpyxl import Workbook

from .asof import parse_date, parse_date_series
from .currency import PIVOT_CURRENCY, FxData

# Quantities and balances below this are treated as zero
EPSILON = 1e-6


class TransactionType(Enum):
    """Enumeration of supported portfolio transaction types."""

    BUY = "Buy"
    SELL = "Sell"
    DIVIDEND = "Dividend"
    TAX = "Tax"
    FEE = "Fee"
    DEPOSIT = "Deposit"
    WITHDRAWAL = "Withdrawal"
    SPLIT = "Split" # Informational only, quantity changes come from Security.splits

    @classmethod
    def parse(cls, value: "str | TransactionType") -> "TransactionType":
        """Parse a transaction type, accepting aliases and any letter case.

        Raises:
            ValueError: If the value is not a known transaction type.
        """
        if isinstance(value, TransactionType):
            return value
        key = str(value).strip().lower()
        if key in TRANSACTION_TYPE_ALIASES:
            return TRANSACTION_TYPE_ALIASES[key]
        raise ValueError(f"Unknown transaction type: {value}")


TRANSACTION_TYPE_ALIASES: dict[str, TransactionType] = {
    **{t.value.lower(): t for t in TransactionType},
    "sparplan_buy": TransactionType.BUY,
    "savings_plan_buy": TransactionType.BUY,
}

OUTFLOW_TYPES = frozenset({TransactionType.BUY, TransactionType.FEE, TransactionType.TAX, TransactionType.WITHDRAWAL})
INFLOW_TYPES = frozenset({TransactionType.SELL, TransactionType.DIVIDEND, TransactionType.DEPOSIT})
CASH_TYPES = OUTFLOW_TYPES | INFLOW_TYPES
EXTERNAL_FLOW_TYPES = frozenset({TransactionType.DEPOSIT, TransactionType.WITHDRAWAL})


@dataclass(frozen=True)
class Transaction:
    """A single ledger entry.

    ``amount`` follows the signed convention: negative for Buy, Fee, Tax and
    Withdrawal, positive for Sell, Dividend and Deposit. ``shares`` is never
    negative. Use ``normalize_transaction`` to build one from a raw record.
    """
    id: str
    date: date
    type: TransactionType
    amount: float
    currency: str
    isin: str | None = None
    shares: float | None = None
    portfolio_id: str | None = None
    name: str | None = None
    broker: str = ""
    manual_cash_entry: bool = False

    @property
    def is_inflow(self) -> bool:
        return self.type in INFLOW_TYPES

    @property
    def is_outflow(self) -> bool:
        return self.type in OUTFLOW_TYPES

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "date": self.date.isoformat(),
            "type": self.type.value,
            "isin": self.isin,
            "name": self.name,
            "shares": self.shares,
            "amount": self.amount,
            "currency": self.currency,
            "broker": self.broker,
            "portfolioId": self.portfolio_id,
            "manualCashEntry": self.manual_cash_entry,
        }


def _first_present(record: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        value = record.get(key)
        if value is None:
            continue
        if isinstance(value, float) and pd.isna(value):
            continue
        if isinstance(value, str) and not value.strip():
            continue
        return value
    return None


def _as_text(value: Any) -> str | None:
    # Spreadsheet readers return numeric id columns as floats (1 -> 1.0)
    if value is None:
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value)


def normalize_transaction(record: dict[str, Any], default_id: str | None = None) -> Transaction:
    """
    Build a Transaction from a raw record, resolving field-name variants.

    Accepts ``shares`` or ``quantity`` for the share count, ``pricePerShare``
    or ``price`` to derive a missing amount, ``portfolioId`` or
    ``portfolio_id``, and the savings-plan type ``Sparplan_Buy`` as a Buy.
    The amount sign is rewritten to match the transaction type.

    Args:
        record: Raw transaction mapping (e.g. one entry of a project file).
        default_id: Id to use when the record has none.

    Returns:
        The normalized, immutable Transaction.

    Raises:
        ValueError: If the type, date or currency is missing or invalid.
    """
    raw_type = _first_present(record, "type", "TYPE")
    if raw_type is None:
        raise ValueError(f"Transaction is missing a type: {record}")
    tx_type = TransactionType.parse(raw_type)

    raw_date = _first_present(record, "date", "DATE")
    if raw_date is None:
        raise ValueError(f"Transaction is missing a date: {record}")
    tx_date = parse_date(raw_date)

    currency = _first_present(record, "currency", "CURRENCY")
    if currency is None:
        raise ValueError(f"Transaction is missing a currency: {record}")

    shares = _first_present(record, "shares", "quantity", "SHARES")
    shares = abs(float(shares)) if shares is not None else None

    amount = _first_present(record, "amount", "AMOUNT")
    if amount is None:
        price = _first_present(record, "pricePerShare", "price", "PRICE")
        amount = float(price) * shares if price is not None and shares is not None else 0.0
    amount = float(amount)

    if tx_type in OUTFLOW_TYPES:
        amount = -abs(amount)
    elif tx_type in INFLOW_TYPES:
        amount = abs(amount)

    original_data = record.get("originalData")
    manual_cash_entry = bool(record.get("manualCashEntry")) or (
        isinstance(original_data, dict) and bool(original_data.get("manualCashEntry"))
    )

    tx_id = _first_present(record, "id", "ID")
    isin = _first_present(record, "isin", "ISIN")
    portfolio_id = _first_present(record, "portfolioId", "portfolio_id", "PORTFOLIO")
    return Transaction(
        id=_as_text(tx_id) if tx_id is not None else (default_id or ""),
        date=tx_date,
        type=tx_type,
        amount=amount,
        currency=str(currency).upper(),
        isin=str(isin) if isin is not None else None,
        shares=shares,
        portfolio_id=_as_text(portfolio_id),
        name=_first_present(record, "name", "NAME"),
        broker=_first_present(record, "broker", "BROKER") or "",
        manual_cash_entry=manual_cash_entry,
    )


@dataclass
class Security:
    """A tradable instrument with its (split back-adjusted) price history."""
    isin: str
    name: str
    currency: str
    price_history: dict[date, float] = field(default_factory=dict)
    splits: dict[date, float] = field(default_factory=dict)   # date -> ratio, e.g. 2.0 for 2:1
    symbol: str | None = None
    quote_type: str | None = None
    sector: str | None = None
    industry: str | None = None
    region: str | None = None
    country: str | None = None
    dividend_history: list[dict[str, Any]] = field(default_factory=list)
    upcoming_dividends: list[dict[str, Any]] = field(default_factory=list)

    def __post_init__(self):
        self.currency = (self.currency or PIVOT_CURRENCY).upper()
        self.price_history = parse_date_series(self.price_history)
        self.splits = parse_date_series(self.splits)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Security":
        return cls(
            isin=data["isin"],
            name=data.get("name") or data["isin"],
            currency=data.get("currency") or PIVOT_CURRENCY,
            price_history=data.get("priceHistory") or {},
            splits=data.get("splits") or {},
            symbol=data.get("symbol"),
            quote_type=data.get("quoteType"),
            sector=data.get("sector"),
            industry=data.get("industry"),
            region=data.get("region"),
            country=data.get("country"),
            dividend_history=data.get("dividendHistory") or [],
            upcoming_dividends=data.get("upcomingDividends") or [],
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "isin": self.isin,
            "name": self.name,
            "currency": self.currency,
            "symbol": self.symbol,
            "quoteType": self.quote_type,
            "sector": self.sector,
            "industry": self.industry,
            "region": self.region,
            "country": self.country,
            "priceHistory": {d.isoformat(): p for d, p in sorted(self.price_history.items())},
            "splits": {d.isoformat(): r for d, r in sorted(self.splits.items())},
            "dividendHistory": self.dividend_history,
            "upcomingDividends": self.upcoming_dividends,
        }


@dataclass
class CashAccount:
    """A cash account with end-of-day balances in its own currency."""
    id: str
    currency: str
    balance_history: dict[date, float] = field(default_factory=dict)
    name: str | None = None
    portfolio_id: str | None = None

    def __post_init__(self):
        self.currency = self.currency.upper()
        self.balance_history = parse_date_series(self.balance_history)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CashAccount":
        return cls(
            id=str(data["id"]),
            currency=data["currency"],
            balance_history=data.get("balanceHistory") or {},
            name=data.get("name"),
            portfolio_id=data.get("portfolioId"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "portfolioId": self.portfolio_id,
            "currency": self.currency,
            "balanceHistory": {d.isoformat(): b for d, b in sorted(self.balance_history.items())},
        }


@dataclass
class HistoryPoint:
    """Portfolio state at one grid date, all amounts in the base currency."""
    date: date
    value: float
    invested: float     # External capital contributed, not cost basis
    dividend: float = 0.0   # Cumulative dividends received

    def __post_init__(self):
        self.date = parse_date(self.date)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["date"] = self.date.isoformat()
        return data


@dataclass
class PerformancePoint:
    """A cumulative return, in percent, at one date."""
    date: date
    value: float

    def __post_init__(self):
        self.date = parse_date(self.date)


@dataclass
class PortfolioInfo:
    id: str
    name: str


@dataclass
class Project:
    """Everything the engine needs to value a set of portfolios."""
    transactions: list[Transaction] = field(default_factory=list)
    securities: dict[str, Security] = field(default_factory=dict)
    fx_data: FxData = field(default_factory=FxData)
    cash_accounts: list[CashAccount] = field(default_factory=list)
    portfolios: list[PortfolioInfo] = field(default_factory=list)
    base_currency: str = PIVOT_CURRENCY
    name: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "settings": {"baseCurrency": self.base_currency},
            "portfolios": [asdict(p) for p in self.portfolios],
            "transactions": [t.to_dict() for t in self.transactions],
            "securities": {isin: s.to_dict() for isin, s in sorted(self.securities.items())},
            "fxData": self.fx_data.to_dict(),
            "cashAccounts": [a.to_dict() for a in self.cash_accounts],
        }


def project_from_dict(data: dict[str, Any]) -> Project:
    """
    Build a Project from its JSON-compatible dictionary form.

    ``securities`` may be either a list or a mapping keyed by ISIN.

    Raises:
        ValueError: If a transaction record is invalid.
    """
    raw_securities = data.get("securities") or {}
    if isinstance(raw_securities, dict):
        raw_securities = list(raw_securities.values())
    securities = {s.isin: s for s in (Security.from_dict(item) for item in raw_securities)}

    transactions = [
        normalize_transaction(record, default_id=f"tx-{index}")
        for index, record in enumerate(data.get("transactions") or [])
    ]

    settings = data.get("settings") or {}
    return Project(
        transactions=transactions,
        securities=securities,
        fx_data=FxData.from_dict(data.get("fxData")),
        cash_accounts=[CashAccount.from_dict(item) for item in data.get("cashAccounts") or []],
        portfolios=[PortfolioInfo(id=str(p["id"]), name=p.get("name", "")) for p in data.get("portfolios") or []],
        base_currency=(settings.get("baseCurrency") or PIVOT_CURRENCY).upper(),
        name=data.get("name", ""),
    )


def load_project_from_json(file_path: str) -> Project:
    """
    Load a project from a JSON file.

    Args:
        file_path: Path to the JSON project file.

    Returns:
        Project populated with transactions, securities, fx data and cash accounts.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the file is not a JSON object or contains invalid transactions.
    """
    if not os.path.exists(file_path):
        raise FileNotFoundError(f"Project file not found: {file_path}")

    with open(file_path, "r", encoding="utf-8") as f:
        data = json.load(f)

    if not isinstance(data, dict):
        raise ValueError(f"Project file '{file_path}' must contain a JSON object.")

    return project_from_dict(data)


def save_project_to_json(project: Project, file_path: str) -> None:
    """Save a project to a JSON file."""
    with open(file_path, "w", encoding="utf-8") as f:
        json.dump(project.to_dict(), f, indent=2)


EXCEL_HEADERS = ["ID", "DATE", "TYPE", "ISIN", "NAME", "SHARES", "AMOUNT", "CURRENCY", "PORTFOLIO"]


def _create_empty_transactions_excel(file_path: str) -> None:
    wb = Workbook()
    ws = wb.active
    assert ws is not None
    for col, header in enumerate(EXCEL_HEADERS, start=1):
        ws.cell(row=1, column=col, value=header)
    wb.save(file_path)


def load_transactions_from_excel(file_path: str, create_if_missing: bool = False) -> list[Transaction]:
    """
    Load transactions from an Excel sheet.

    Args:
        file_path: Path to the Excel file containing transactions.
        create_if_missing: If True and the file doesn't exist, create an empty
                          file with headers and return no transactions.

    Returns:
        Normalized transactions in sheet order.

    Expected Excel columns (order independent):
        - DATE: Transaction date (YYYY-MM-DD)
        - TYPE: Buy, Sell, Dividend, Tax, Fee, Deposit, Withdrawal, Split
        - AMOUNT: Cash amount; the sign is normalized from TYPE
        - CURRENCY: Currency code. If empty for a row, uses the currency
                   from the first row.
        - ID, ISIN, NAME, SHARES, PRICE, PORTFOLIO: optional

    Raises:
        FileNotFoundError: If the file does not exist and create_if_missing is False.
        ValueError: If required columns are missing or a row is invalid.
    """
    if not os.path.exists(file_path):
        if create_if_missing:
            _create_empty_transactions_excel(file_path)
            return []
        raise FileNotFoundError(f"Transactions file not found: {file_path}")

    df = pd.read_excel(file_path)
    if df.empty:
        return []

    required_columns = {"DATE", "TYPE", "CURRENCY"}
    missing_columns = required_columns - set(df.columns)
    if missing_columns:
        raise ValueError(f"Missing required columns: {missing_columns}")
    if "AMOUNT" not in df.columns and not {"SHARES", "PRICE"} <= set(df.columns):
        raise ValueError("Either an AMOUNT column or SHARES and PRICE columns are required.")

    default_currency = df["CURRENCY"].iloc[0]
    any_missing_currency = False

    transactions: list[Transaction] = []
    for index, row in df.iterrows():
        record = {key: value for key, value in row.items() if pd.notna(value)}
        if "CURRENCY" not in record:
            record["CURRENCY"] = default_currency
            any_missing_currency = True
        transactions.append(normalize_transaction(record, default_id=f"row-{index}"))

    if any_missing_currency:
        warnings.warn(
            f"Some transactions in '{file_path}' had no currency. "
            f"Assuming {default_currency} for these transactions.",
            UserWarning
        )

    return transactions


def save_transactions_to_excel(transactions: list[Transaction], file_path: str) -> None:
    """
    Save transactions to an Excel file using the columns read by
    ``load_transactions_from_excel``.
    """
    wb = Workbook()
    ws = wb.active
    assert ws is not None

    for col, header in enumerate(EXCEL_HEADERS, start=1):
        ws.cell(row=1, column=col, value=header)

    for row, txn in enumerate(transactions, start=2):
        ws.cell(row=row, column=1, value=txn.id)
        ws.cell(row=row, column=2, value=txn.date.isoformat())
        ws.cell(row=row, column=3, value=txn.type.value)
        ws.cell(row=row, column=4, value=txn.isin)
        ws.cell(row=row, column=5, value=txn.name)
        ws.cell(row=row, column=6, value=txn.shares)
        ws.cell(row=row, column=7, value=txn.amount)
        ws.cell(row=row, column=8, value=txn.currency)
        ws.cell(row=row, column=9, value=txn.portfolio_id)

    wb.save(file_path)


def _active_portfolio_ids(project: Project, selected_ids: list[str]) -> list[str]:
    valid_ids = {p.id for p in project.portfolios}
    return [pid for pid in selected_ids if pid in valid_ids]


def filter_transactions_by_portfolio(project: Project, selected_ids: list[str]) -> list[Transaction]:
    """
    Select the transactions of the given portfolios.

    Unknown ids are ignored. When no valid id remains, every transaction
    is returned.
    """
    active_ids = _active_portfolio_ids(project, selected_ids)
    if not active_ids:
        return list(project.transactions)
    return [t for t in project.transactions if t.portfolio_id in active_ids]


def filter_cash_accounts_by_portfolio(project: Project, selected_ids: list[str]) -> list[CashAccount]:
    """Select the cash accounts of the given portfolios, with the same fallback as transactions."""
    active_ids = _active_portfolio_ids(project, selected_ids)
    if not active_ids:
        return list(project.cash_accounts)
    return [a for a in project.cash_accounts if a.portfolio_id in active_ids]


def get_latest_quotes(
    securities: dict[str, Security] | list[Security],
    as_of: date | None = None,
) -> dict[str, float]:
    """Map each ISIN to the last close in its price history, on or before ``as_of`` if given."""
    values = securities.values() if isinstance(securities, dict) else securities
    quotes: dict[str, float] = {}
    for security in values:
        dates = [d for d in security.price_history if as_of is None or d <= as_of]
        if dates:
            quotes[security.isin] = security.price_history[max(dates)]
    return quotes


def project_content_hash(project: Project) -> str:
    """
    Hash the project's content so callers can cache derived results.

    Identical inputs always hash identically; any change to a transaction,
    price, rate or balance changes the hash.
    """
    payload = json.dumps(project.to_dict(), sort_keys=True, default=str)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()
