"""
Cash accounting for the history replay.

Two modes exist. When any cash account carries a balance history, cash is
read from those balances ("explicit"). Otherwise a per-currency ledger is
derived from the transactions and any shortfall is treated as an implicit
contribution of new capital ("implicit").
"""

from collections import defaultdict
from dataclasses import replace
from datetime import date
import uuid

from .asof import AsOfCursor, parse_date
from .currency import ExchangeRateManager
from .portfolio import CASH_TYPES, CashAccount, HistoryPoint, Transaction, TransactionType

# Balances closer to zero than this are treated as empty
BALANCE_EPSILON = 1e-7

MANUAL_CASH_TYPES = frozenset({
    TransactionType.DEPOSIT,
    TransactionType.WITHDRAWAL,
    TransactionType.DIVIDEND,
    TransactionType.TAX,
    TransactionType.FEE,
})


def has_explicit_cash_history(cash_accounts: list[CashAccount] | None) -> bool:
    """Return True if any cash account has at least one recorded balance."""
    return any(account.balance_history for account in cash_accounts or [])


class ImplicitCashLedger():
    """Per-currency cash balances inferred from transactions.

    An outflow that would leave a currency negative is funded by an
    implicit contribution equal to the shortfall.
    """

    def __init__(self):
        self.balances: dict[str, float] = defaultdict(float)

    def apply(self, tx: Transaction) -> float:
        """
        Apply a transaction's signed amount to its currency.

        Args:
            tx: The transaction. Non-cash types (Split) are ignored.

        Returns:
            The implicit contribution needed, in the transaction currency
            (0 when the balance stayed non-negative).
        """
        if tx.type not in CASH_TYPES:
            return 0.0
        self.balances[tx.currency] += tx.amount
        if self.balances[tx.currency] < 0:
            shortfall = -self.balances[tx.currency]
            self.balances[tx.currency] = 0.0
            return shortfall
        return 0.0

    def value(self, fx: ExchangeRateManager, base_currency: str, on_date: date) -> float:
        return sum(
            fx.convert(balance, currency, base_currency, on_date)
            for currency, balance in self.balances.items()
        )


class ExplicitCashBalances():
    """As-of view over every cash account's recorded balances."""

    def __init__(self, cash_accounts: list[CashAccount]):
        self.accounts = [
            (account.currency, AsOfCursor(account.balance_history, before_first="default", default=0.0))
            for account in cash_accounts
            if account.balance_history
        ]

    def balances_by_currency(self, on_date: date) -> dict[str, float]:
        balances: dict[str, float] = defaultdict(float)
        for currency, cursor in self.accounts:
            balances[currency] += cursor.value_at(on_date)
        return balances

    def value(self, fx: ExchangeRateManager, base_currency: str, on_date: date) -> float:
        return sum(
            fx.convert(balance, currency, base_currency, on_date)
            for currency, balance in self.balances_by_currency(on_date).items()
        )


def normalize_invested_for_explicit_cash(
    history: list[HistoryPoint],
    transactions: list[Transaction],
    cash_accounts: list[CashAccount] | None,
    fx: ExchangeRateManager,
    base_currency: str,
) -> list[HistoryPoint]:
    """
    Fold cash movements that the ledger does not explain into ``invested``.

    Broker statements often omit transfers, so recorded balances can move
    without a matching Deposit or Withdrawal, or stay flat while a Buy is
    recorded. The reconciliation starts from empty accounts before the
    first transaction: the first point compares its balances with every
    cash transaction up to its date, each later point compares the change
    of all balances since the previous point with the signed amounts of the
    transactions dated in between. The cumulative difference is treated as
    external capital, so ``invested`` on a date does not depend on where
    the history starts.

    Args:
        history: Replayed history in ascending date order.
        transactions: The ledger the history was replayed from.
        cash_accounts: Cash accounts with recorded balances.
        fx: Exchange rate manager used for conversions.
        base_currency: Currency of the history amounts.

    Returns:
        The same list object when no account has recorded balances,
        otherwise a new list with adjusted ``invested`` values.
    """
    if not history or not has_explicit_cash_history(cash_accounts):
        return history

    balances = ExplicitCashBalances(cash_accounts or [])
    cash_txs = sorted((t for t in transactions if t.type in CASH_TYPES), key=lambda t: t.date)

    tx_index = 0
    previous: dict[str, float] = {}
    unexplained_total = 0.0
    result: list[HistoryPoint] = []

    for point in history:
        current = balances.balances_by_currency(point.date)

        observed = 0.0
        for currency in set(previous) | set(current):
            delta = current.get(currency, 0.0) - previous.get(currency, 0.0)
            if delta:
                observed += fx.convert(delta, currency, base_currency, point.date)

        expected = 0.0
        while tx_index < len(cash_txs) and cash_txs[tx_index].date <= point.date:
            tx = cash_txs[tx_index]
            expected += fx.convert(tx.amount, tx.currency, base_currency, tx.date)
            tx_index += 1

        unexplained_total += observed - expected
        result.append(replace(point, invested=point.invested + unexplained_total))
        previous = current

    return result


def apply_manual_cash_entry(
    cash_accounts: list[CashAccount],
    portfolio_id: str | None,
    tx: Transaction,
    multiplier: int = 1,
    portfolio_name: str | None = None,
) -> list[CashAccount]:
    """
    Mirror a manually entered cash movement in the portfolio's cash account.

    Only manual entries of cash movement types are applied. The delta is
    added to every recorded balance on or after the transaction date; a
    balance for the transaction date itself is seeded from the prior one.
    Use ``multiplier=-1`` to undo an entry.

    Args:
        cash_accounts: Current cash accounts (not modified).
        portfolio_id: The portfolio the entry belongs to.
        tx: The manual transaction.
        multiplier: 1 to apply, -1 to revert.
        portfolio_name: Used to name a newly created account.

    Returns:
        The updated list of cash accounts. The input list is returned
        unchanged when the entry does not apply.
    """
    if not portfolio_id or not tx.manual_cash_entry or tx.type not in MANUAL_CASH_TYPES:
        return cash_accounts

    delta = (tx.amount or 0.0) * multiplier
    if abs(delta) < BALANCE_EPSILON or not tx.currency:
        return cash_accounts

    accounts = list(cash_accounts)
    index = next(
        (i for i, a in enumerate(accounts) if a.portfolio_id == portfolio_id and a.currency == tx.currency),
        None,
    )

    if index is None:
        if multiplier < 0:
            return cash_accounts
        accounts.append(CashAccount(
            id=str(uuid.uuid4()),
            currency=tx.currency,
            balance_history={tx.date: delta},
            name=f"{portfolio_name or 'Depot'} {tx.currency} Account",
            portfolio_id=portfolio_id,
        ))
        return accounts

    account = accounts[index]
    history = dict(account.balance_history)
    tx_date = parse_date(tx.date)

    if not history:
        history[tx_date] = delta
    else:
        if tx_date not in history:
            earlier = [d for d in history if d <= tx_date]
            history[tx_date] = history[max(earlier)] if earlier else 0.0
        for d in history:
            if d >= tx_date:
                history[d] += delta

    has_non_zero = any(abs(balance) > BALANCE_EPSILON for balance in history.values())
    accounts[index] = replace(account, balance_history=history if has_non_zero else {})
    return accounts
