"""
Per-security position replay.

Each security's transactions and split events are merged into one timeline
(splits first on a shared date) and replayed with weighted-average cost
accounting. The same replay state is reused by the history replayer, which
advances it incrementally instead of rebuilding it for every valuation date.
"""

from collections import defaultdict
from dataclasses import dataclass
from datetime import date

from .asof import parse_date
from .currency import PIVOT_CURRENCY, ExchangeRateManager
from .portfolio import EPSILON, Security, Transaction, TransactionType


@dataclass
class TimelineEvent:
    """Either a split (``split_ratio`` set) or a transaction on a security."""
    date: date
    split_ratio: float | None = None
    transaction: Transaction | None = None

    @property
    def is_split(self) -> bool:
        return self.split_ratio is not None


def build_security_timeline(transactions: list[Transaction], security: Security | None) -> list[TimelineEvent]:
    """
    Merge a security's transactions with its split events.

    Args:
        transactions: Transactions on this security, in any order.
        security: The security, whose ``splits`` are merged in. May be None.

    Returns:
        Events in date order. On the same date splits come before
        transactions; transactions keep their input order.
    """
    events = [TimelineEvent(date=tx.date, transaction=tx) for tx in transactions]
    if security is not None:
        events.extend(TimelineEvent(date=d, split_ratio=ratio) for d, ratio in security.splits.items())
    events.sort(key=lambda e: (e.date, 0 if e.is_split else 1))
    return events


def group_transactions_by_isin(transactions: list[Transaction]) -> dict[str, list[Transaction]]:
    """Group transactions that reference a security, sorted by date."""
    grouped: dict[str, list[Transaction]] = defaultdict(list)
    for tx in sorted(transactions, key=lambda t: t.date):
        if tx.isin:
            grouped[tx.isin].append(tx)
    return dict(grouped)


@dataclass
class HoldingState:
    """Running position in one security."""
    currency: str
    quantity: float = 0.0
    invested_base: float = 0.0
    invested_original: float = 0.0
    realized_pnl: float = 0.0

    def apply_split(self, ratio: float) -> None:
        """Multiply the share count by ``ratio``. Ignored without shares or with a ratio <= 0."""
        if ratio > 0 and self.quantity > 0:
            self.quantity *= ratio

    def buy(self, shares: float, amount_base: float, amount_original: float) -> None:
        self.quantity += shares
        self.invested_base += amount_base
        self.invested_original += amount_original

    def sell(self, shares: float, amount_base: float) -> float:
        """
        Reduce the position at average cost.

        Args:
            shares: Shares sold.
            amount_base: Sale proceeds in the base currency.

        Returns:
            The realized profit or loss of this sale.
        """
        avg_cost = self.invested_base / self.quantity if self.quantity > 0 else 0.0
        cost_basis = shares * avg_cost
        pnl = amount_base - cost_basis

        if self.quantity > 0:
            self.invested_original -= self.invested_original * min(shares / self.quantity, 1.0)
        self.realized_pnl += pnl
        self.invested_base -= cost_basis
        self.quantity -= shares

        if self.quantity < EPSILON:
            self.quantity = 0.0
            self.invested_base = 0.0
            self.invested_original = 0.0
        return pnl

    def apply(self, event: TimelineEvent, fx: ExchangeRateManager, base_currency: str) -> float:
        """
        Apply one timeline event.

        Returns:
            Realized profit or loss (0 for anything but a sell).
        """
        if event.is_split:
            self.apply_split(event.split_ratio or 0.0)
            return 0.0

        tx = event.transaction
        if tx is None or tx.type not in (TransactionType.BUY, TransactionType.SELL):
            return 0.0

        shares = abs(tx.shares or 0.0)
        amount_original = abs(tx.amount)
        amount_base = fx.convert(amount_original, tx.currency, base_currency, tx.date)

        if tx.type == TransactionType.BUY:
            self.buy(shares, amount_base, amount_original)
            return 0.0
        return self.sell(shares, amount_base)


@dataclass
class Holding:
    """An open position valued at the current quote."""
    isin: str
    name: str
    quantity: float
    average_buy_price: float                    # Base currency
    average_buy_price_original: float           # Transaction currency
    current_price_original: float               # Transaction currency
    value: float                                # Base currency
    invested: float                             # Base currency cost basis
    total_return: float
    total_return_percent: float
    currency: str                               # Transaction currency
    realized_pnl: float = 0.0
    quote_type: str | None = None
    sector: str | None = None
    industry: str | None = None
    region: str | None = None
    country: str | None = None
    price_is_estimated: bool = False


def calculate_holdings(
    transactions: list[Transaction],
    securities: dict[str, Security] | list[Security],
    quotes: dict[str, float] | None,
    fx: ExchangeRateManager,
    base_currency: str = PIVOT_CURRENCY,
    as_of: date | str | None = None,
) -> tuple[list[Holding], float]:
    """
    Replay every security's timeline into its current position.

    Args:
        transactions: All ledger transactions; those without an ISIN are ignored.
        securities: Known securities, as a list or a mapping keyed by ISIN.
        quotes: Current price per ISIN in the security's trading currency.
        fx: Exchange rate manager used for conversions.
        base_currency: Currency of invested amounts, values and PnL.
        as_of: If given, only events on or before this date are replayed.

    Returns:
        Open positions ordered by ISIN, and the total realized PnL across all
        securities (including fully closed ones).
    """
    if isinstance(securities, list):
        securities = {s.isin: s for s in securities}
    quotes = quotes or {}
    cutoff = parse_date(as_of) if as_of is not None else None

    holdings: list[Holding] = []
    realized_pnl = 0.0
    for isin, security_txs in sorted(group_transactions_by_isin(transactions).items()):
        security = securities.get(isin)
        first_currency = security_txs[0].currency if security_txs else None
        state = HoldingState(currency=first_currency or (security.currency if security else PIVOT_CURRENCY))

        for event in build_security_timeline(security_txs, security):
            if cutoff is not None and event.date > cutoff:
                break
            realized_pnl += state.apply(event, fx, base_currency)

        if state.quantity <= EPSILON:
            continue

        security_currency = security.currency if security else state.currency
        price = quotes.get(isin) or 0.0
        estimated = not price
        if estimated:
            avg_original = state.invested_original / state.quantity
            price = fx.convert(avg_original, state.currency, security_currency)

        value = fx.convert(state.quantity * price, security_currency, base_currency)
        total_return = value - state.invested_base

        holdings.append(Holding(
            isin=isin,
            name=security.name if security else isin,
            quantity=state.quantity,
            average_buy_price=state.invested_base / state.quantity,
            average_buy_price_original=state.invested_original / state.quantity,
            current_price_original=fx.convert(price, security_currency, state.currency),
            value=value,
            invested=state.invested_base,
            total_return=total_return,
            total_return_percent=(total_return / state.invested_base * 100) if state.invested_base > 0 else 0.0,
            currency=state.currency,
            realized_pnl=state.realized_pnl,
            quote_type=security.quote_type if security else None,
            sector=security.sector if security else None,
            industry=security.industry if security else None,
            region=security.region if security else None,
            country=security.country if security else None,
            price_is_estimated=estimated,
        ))

    return holdings, realized_pnl
