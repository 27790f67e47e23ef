# pyright: reportUnknownMemberType=false

from dataclasses import dataclass, field
from datetime import date
import sys
import warnings

from .asof import AsOfCursor, parse_date
from .cash import (
    ExplicitCashBalances,
    ImplicitCashLedger,
    has_explicit_cash_history,
    normalize_invested_for_explicit_cash,
)
from .currency import PIVOT_CURRENCY, ExchangeRateManager, FxData, PivotExchangeRateManager
from .holdings import HoldingState, TimelineEvent, build_security_timeline, group_transactions_by_isin
from .periods import Granularity, TimeRange, build_date_grid, range_start
from .portfolio import (
    EPSILON,
    EXTERNAL_FLOW_TYPES,
    CashAccount,
    HistoryPoint,
    Security,
    Transaction,
    TransactionType,
)

# Module-level verbosity flag; set to True to print replay progress
verbose: bool = False


class MissingPriceHistoryWarning(UserWarning):
    """Emitted when a held security has no prices and is valued at cost."""


@dataclass
class _SecurityReplay:
    """Replay cursor and running position for one security."""
    isin: str
    currency: str
    events: list[TimelineEvent]
    state: HoldingState
    prices: AsOfCursor
    # Split dates ascending with the product of all ratios from that split onward
    split_dates: list[date] = field(default_factory=list)
    split_suffix_factors: list[float] = field(default_factory=list)
    event_index: int = 0
    split_index: int = 0

    def advance(self, until: date, fx: ExchangeRateManager, base_currency: str) -> None:
        while self.event_index < len(self.events) and self.events[self.event_index].date <= until:
            self.state.apply(self.events[self.event_index], fx, base_currency)
            self.event_index += 1

    def future_split_factor(self, on_date: date) -> float:
        """Product of the ratios of all splits dated after ``on_date``."""
        while self.split_index < len(self.split_dates) and self.split_dates[self.split_index] <= on_date:
            self.split_index += 1
        if self.split_index >= len(self.split_suffix_factors):
            return 1.0
        return self.split_suffix_factors[self.split_index]


def _build_security_replay(isin: str, transactions: list[Transaction], security: Security | None) -> _SecurityReplay:
    currency = security.currency if security else transactions[0].currency
    splits = sorted((d, r) for d, r in security.splits.items() if r > 0) if security else []

    suffix: list[float] = [1.0] * len(splits)
    running = 1.0
    for i in range(len(splits) - 1, -1, -1):
        running *= splits[i][1]
        suffix[i] = running

    return _SecurityReplay(
        isin=isin,
        currency=currency,
        events=build_security_timeline(transactions, security),
        state=HoldingState(currency=transactions[0].currency),
        prices=AsOfCursor(security.price_history if security else {}, before_first="earliest", default=0.0),
        split_dates=[d for d, _ in splits],
        split_suffix_factors=suffix,
    )


def _cash_flow_order(tx: Transaction) -> tuple[date, int]:
    # Same-day inflows settle before outflows so proceeds fund purchases
    return (tx.date, 0 if tx.is_inflow else 1)


def calculate_portfolio_history(
    transactions: list[Transaction],
    securities: dict[str, Security] | list[Security],
    fx: ExchangeRateManager | FxData | None,
    cash_accounts: list[CashAccount] | None = None,
    base_currency: str = PIVOT_CURRENCY,
    time_range: TimeRange | str = TimeRange.ONE_YEAR,
    granularity: Granularity | str = Granularity.WEEKLY,
    *,
    as_of: date | str,
    reconcile_explicit_cash: bool = True,
) -> list[HistoryPoint]:
    """
    Replay the ledger over a date grid into value, invested capital and dividends.

    Every security's events and the global transaction list are consumed
    through forward-only cursors, so the replay is linear in the number of
    grid dates plus events.

    Args:
        transactions: The full ledger.
        securities: Known securities with split back-adjusted prices.
        fx: Exchange rate manager, or raw rate tables to build one from.
        cash_accounts: Optional cash accounts. If any has recorded balances,
                       cash is read from them; otherwise it is inferred.
        base_currency: Currency of all output amounts.
        time_range: Look-back window ending at ``as_of``. The start never
                    precedes the first transaction.
        granularity: ``daily`` or ``weekly`` grid.
        as_of: The valuation date treated as "now".
        reconcile_explicit_cash: Fold unexplained explicit balance changes
                                 into ``invested``.

    Returns:
        One HistoryPoint per grid date, ascending. Empty when there are no
        transactions on or before ``as_of``.
    """
    if not isinstance(fx, ExchangeRateManager):
        fx = PivotExchangeRateManager(fx)
    if isinstance(securities, list):
        securities = {s.isin: s for s in securities}
    cash_accounts = cash_accounts or []
    as_of = parse_date(as_of)

    if not transactions:
        return []

    sorted_txs = sorted(transactions, key=_cash_flow_order)
    first_tx_date = sorted_txs[0].date
    if first_tx_date > as_of:
        return []

    start = range_start(TimeRange.parse(time_range), as_of, earliest=first_tx_date)
    grid = build_date_grid(start, as_of, granularity)

    replays = [
        _build_security_replay(isin, txs, securities.get(isin))
        for isin, txs in group_transactions_by_isin(sorted_txs).items()
    ]

    explicit_mode = has_explicit_cash_history(cash_accounts)
    explicit_cash = ExplicitCashBalances(cash_accounts) if explicit_mode else None
    ledger = ImplicitCashLedger()

    if verbose:
        mode = "explicit" if explicit_mode else "implicit"
        print(f"  Replaying {len(sorted_txs)} transactions over {len(grid)} dates ({mode} cash)", file=sys.stderr, flush=True)

    unpriced_warned: set[str] = set()
    invested = 0.0
    cumulative_dividend = 0.0
    tx_index = 0
    history: list[HistoryPoint] = []

    for grid_date in grid:
        for replay in replays:
            replay.advance(grid_date, fx, base_currency)

        while tx_index < len(sorted_txs) and sorted_txs[tx_index].date <= grid_date:
            tx = sorted_txs[tx_index]
            tx_index += 1

            if tx.type == TransactionType.DIVIDEND:
                cumulative_dividend += fx.convert(tx.amount, tx.currency, base_currency, tx.date)

            if tx.type in EXTERNAL_FLOW_TYPES:
                invested += fx.convert(tx.amount, tx.currency, base_currency, tx.date)

            if not explicit_mode:
                shortfall = ledger.apply(tx)
                if shortfall > 0:
                    invested += fx.convert(shortfall, tx.currency, base_currency, tx.date)

        securities_value = 0.0
        for replay in replays:
            state = replay.state
            if state.quantity <= EPSILON:
                continue

            if not len(replay.prices):
                if replay.isin not in unpriced_warned:
                    unpriced_warned.add(replay.isin)
                    warnings.warn(
                        f"No price history for {replay.isin}. Valuing the position at cost.",
                        MissingPriceHistoryWarning,
                    )
                securities_value += state.invested_base
                continue

            price = replay.prices.value_at(grid_date) * replay.future_split_factor(grid_date)
            securities_value += fx.convert(state.quantity * price, replay.currency, base_currency, grid_date)

        if explicit_cash is not None:
            cash_value = explicit_cash.value(fx, base_currency, grid_date)
        else:
            cash_value = ledger.value(fx, base_currency, grid_date)

        history.append(HistoryPoint(
            date=grid_date,
            value=securities_value + cash_value,
            invested=invested,
            dividend=cumulative_dividend,
        ))

    if explicit_mode and reconcile_explicit_cash:
        history = normalize_invested_for_explicit_cash(history, transactions, cash_accounts, fx, base_currency)

    return history
