"""Tests for the portfolio history replay."""

from datetime import date, timedelta

import pytest

import foliotrack.history as history_module
from foliotrack.currency import FixedExchangeRateManager, FxData, PivotExchangeRateManager
from foliotrack.history import MissingPriceHistoryWarning, calculate_portfolio_history
from foliotrack.portfolio import CashAccount, Security, normalize_transaction

ISIN_A = "AA0000000001"
ISIN_B = "BB0000000002"


def daily_prices(start, days, price):
    return {start + timedelta(days=i): price for i in range(days)}


def make_tx(tx_id, day, tx_type, amount, shares=None, isin=None, currency="EUR"):
    return normalize_transaction({
        "id": tx_id, "date": day, "type": tx_type, "amount": amount,
        "shares": shares, "isin": isin, "currency": currency,
    })


@pytest.fixture
def fx():
    return PivotExchangeRateManager(FxData())


@pytest.fixture
def securities():
    return {
        ISIN_A: Security(isin=ISIN_A, name="A", currency="EUR", price_history=daily_prices(date(2024, 1, 1), 60, 100.0)),
        ISIN_B: Security(isin=ISIN_B, name="B", currency="EUR", price_history=daily_prices(date(2024, 1, 1), 60, 50.0)),
    }


def replay(transactions, securities, fx, as_of, **kwargs):
    kwargs.setdefault("time_range", "MAX")
    kwargs.setdefault("granularity", "daily")
    return calculate_portfolio_history(transactions, securities, fx, as_of=as_of, **kwargs)


class TestBasics:
    """Tests for grid construction and empty inputs."""

    def test_no_transactions_returns_empty(self, securities, fx):
        assert replay([], securities, fx, date(2024, 1, 10)) == []

    def test_first_transaction_after_as_of_returns_empty(self, securities, fx):
        txs = [make_tx("b1", "2024-02-01", "Buy", 100, shares=1, isin=ISIN_A)]
        assert replay(txs, securities, fx, date(2024, 1, 10)) == []

    def test_single_buy_is_funded_implicitly(self, securities, fx):
        txs = [make_tx("b1", "2024-01-01", "Buy", 100, shares=1, isin=ISIN_A)]
        history = replay(txs, securities, fx, date(2024, 1, 3))

        assert [p.date for p in history] == [date(2024, 1, 1), date(2024, 1, 2), date(2024, 1, 3)]
        assert [p.value for p in history] == pytest.approx([100, 100, 100])
        assert [p.invested for p in history] == pytest.approx([100, 100, 100])

    def test_weekly_grid_includes_month_start_and_as_of(self, securities, fx):
        txs = [make_tx("b1", "2024-01-01", "Buy", 100, shares=1, isin=ISIN_A)]
        history = replay(txs, securities, fx, date(2024, 2, 20), granularity="weekly")
        dates = [p.date for p in history]

        assert dates[0] == date(2024, 1, 1)
        assert date(2024, 1, 8) in dates
        assert date(2024, 2, 1) in dates
        assert dates[-1] == date(2024, 2, 20)
        assert dates == sorted(set(dates))

    def test_range_is_clamped_to_first_transaction(self, securities, fx):
        txs = [make_tx("b1", "2024-01-15", "Buy", 100, shares=1, isin=ISIN_A)]
        history = replay(txs, securities, fx, date(2024, 2, 15), time_range="1J")
        assert history[0].date == date(2024, 1, 15)

    def test_range_start_after_first_transaction_keeps_earlier_state(self, securities, fx):
        txs = [make_tx("b1", "2024-01-01", "Buy", 100, shares=1, isin=ISIN_A)]
        history = replay(txs, securities, fx, date(2024, 2, 15), time_range="1M")

        assert history[0].date == date(2024, 1, 15)
        assert history[0].value == pytest.approx(100)
        assert history[0].invested == pytest.approx(100)

    def test_transactions_after_as_of_are_ignored(self, securities, fx):
        txs = [
            make_tx("b1", "2024-01-01", "Buy", 100, shares=1, isin=ISIN_A),
            make_tx("b2", "2024-01-05", "Buy", 100, shares=1, isin=ISIN_A),
        ]
        history = replay(txs, securities, fx, date(2024, 1, 3))
        assert history[-1].value == pytest.approx(100)
        assert history[-1].invested == pytest.approx(100)

    def test_replay_is_deterministic(self, securities, fx):
        txs = [
            make_tx("b1", "2024-01-01", "Buy", 100, shares=1, isin=ISIN_A),
            make_tx("b2", "2024-01-03", "Buy", 100, shares=2, isin=ISIN_B),
        ]
        assert replay(txs, securities, fx, "2024-01-20") == replay(txs, securities, fx, "2024-01-20")

    def test_accepts_raw_fx_data(self, securities):
        txs = [make_tx("b1", "2024-01-01", "Buy", 100, shares=1, isin=ISIN_A)]
        history = calculate_portfolio_history(txs, securities, FxData(), as_of="2024-01-02", time_range="MAX")
        assert history[-1].value == pytest.approx(100)


class TestImplicitCash:
    """Tests for cash inferred from transactions."""

    def test_same_day_rebalancing_keeps_value_and_invested(self, securities, fx):
        """Verify a sell and buy on the same day net out regardless of input order."""
        txs = [
            make_tx("b1", "2024-01-01", "Buy", 100, shares=1, isin=ISIN_A),
            make_tx("b2", "2024-01-02", "Buy", 100, shares=2, isin=ISIN_B),
            make_tx("s1", "2024-01-02", "Sell", 100, shares=1, isin=ISIN_A),
        ]
        history = replay(txs, securities, fx, date(2024, 1, 3))

        assert [p.value for p in history] == pytest.approx([100, 100, 100])
        assert [p.invested for p in history] == pytest.approx([100, 100, 100])

    def test_rebalancing_across_gap_day_holds_cash(self, securities, fx):
        """Verify sale proceeds stay in cash until the next purchase."""
        txs = [
            make_tx("b1", "2024-01-01", "Buy", 100, shares=1, isin=ISIN_A),
            make_tx("s1", "2024-01-02", "Sell", 100, shares=1, isin=ISIN_A),
            make_tx("b2", "2024-01-03", "Buy", 100, shares=2, isin=ISIN_B),
        ]
        history = replay(txs, securities, fx, date(2024, 1, 3))

        assert history[1].value == pytest.approx(100)
        assert [p.value for p in history] == pytest.approx([100, 100, 100])
        assert [p.invested for p in history] == pytest.approx([100, 100, 100])

    def test_deposit_counts_as_invested(self, securities, fx):
        txs = [
            make_tx("d1", "2024-01-01", "Deposit", 1000),
            make_tx("b1", "2024-01-02", "Buy", 100, shares=1, isin=ISIN_A),
        ]
        history = replay(txs, securities, fx, date(2024, 1, 2))

        assert [p.invested for p in history] == pytest.approx([1000, 1000])
        assert [p.value for p in history] == pytest.approx([1000, 1000])

    def test_withdrawal_reduces_invested(self, securities, fx):
        txs = [
            make_tx("d1", "2024-01-01", "Deposit", 1000),
            make_tx("w1", "2024-01-02", "Withdrawal", 400),
        ]
        history = replay(txs, securities, fx, date(2024, 1, 2))
        assert history[-1].invested == pytest.approx(600)
        assert history[-1].value == pytest.approx(600)

    def test_dividends_accumulate_and_stay_in_cash(self, securities, fx):
        txs = [
            make_tx("b1", "2024-01-01", "Buy", 100, shares=1, isin=ISIN_A),
            make_tx("v1", "2024-01-02", "Dividend", 5, isin=ISIN_A),
        ]
        history = replay(txs, securities, fx, date(2024, 1, 3))

        assert [p.dividend for p in history] == pytest.approx([0, 5, 5])
        assert [p.value for p in history] == pytest.approx([100, 105, 105])
        assert [p.invested for p in history] == pytest.approx([100, 100, 100])

    def test_fee_is_funded_implicitly(self, securities, fx):
        txs = [
            make_tx("b1", "2024-01-01", "Buy", 100, shares=1, isin=ISIN_A),
            make_tx("f1", "2024-01-02", "Fee", 2),
        ]
        history = replay(txs, securities, fx, date(2024, 1, 2))
        assert history[-1].invested == pytest.approx(102)
        assert history[-1].value == pytest.approx(100)


class TestPricing:
    """Tests for split un-adjustment, currency conversion and missing prices."""

    def test_back_adjusted_prices_are_unadjusted_before_split(self, fx):
        """Verify a 2:1 split does not create a jump in value."""
        security = Security(
            isin=ISIN_A, name="A", currency="EUR",
            price_history=daily_prices(date(2024, 1, 1), 5, 50.0),
            splits={"2024-01-03": 2},
        )
        txs = [make_tx("b1", "2024-01-01", "Buy", 100, shares=1, isin=ISIN_A)]
        history = replay(txs, {ISIN_A: security}, fx, date(2024, 1, 5))

        assert [p.value for p in history] == pytest.approx([100, 100, 100, 100, 100])

    def test_foreign_security_is_converted(self):
        fx = FixedExchangeRateManager({"USD": 1.25})
        security = Security(isin=ISIN_A, name="A", currency="USD", price_history=daily_prices(date(2024, 1, 1), 3, 125.0))
        txs = [make_tx("b1", "2024-01-01", "Buy", 125, shares=1, isin=ISIN_A, currency="USD")]
        history = replay(txs, [security], fx, date(2024, 1, 2))

        assert [p.value for p in history] == pytest.approx([100, 100])
        assert [p.invested for p in history] == pytest.approx([100, 100])

    def test_price_before_first_quote_uses_earliest_price(self, fx):
        security = Security(isin=ISIN_A, name="A", currency="EUR", price_history={"2024-01-03": 120.0})
        txs = [make_tx("b1", "2024-01-01", "Buy", 100, shares=1, isin=ISIN_A)]
        history = replay(txs, [security], fx, date(2024, 1, 3))
        assert [p.value for p in history] == pytest.approx([120, 120, 120])

    def test_missing_price_history_values_at_cost_and_warns(self, fx):
        security = Security(isin=ISIN_A, name="A", currency="EUR")
        txs = [make_tx("b1", "2024-01-01", "Buy", 100, shares=1, isin=ISIN_A)]

        with pytest.warns(MissingPriceHistoryWarning) as record:
            history = replay(txs, [security], fx, date(2024, 1, 3))

        assert len(record) == 1
        assert [p.value for p in history] == pytest.approx([100, 100, 100])


class TestExplicitCash:
    """Tests for cash read from recorded account balances."""

    def test_balances_replace_inferred_cash(self, securities, fx):
        accounts = [CashAccount(id="c1", currency="EUR", balance_history={"2024-01-01": 1000, "2024-01-02": 900})]
        txs = [
            make_tx("d1", "2024-01-01", "Deposit", 1000),
            make_tx("b1", "2024-01-02", "Buy", 100, shares=1, isin=ISIN_A),
        ]
        history = replay(txs, securities, fx, date(2024, 1, 2), cash_accounts=accounts)

        assert [p.value for p in history] == pytest.approx([1000, 1000])
        assert [p.invested for p in history] == pytest.approx([1000, 1000])

    def test_unrecorded_deposit_is_reconciled(self, securities, fx):
        """Verify a balance increase without a matching Deposit becomes invested capital."""
        accounts = [CashAccount(id="c1", currency="EUR", balance_history={"2024-01-01": 0, "2024-01-02": 500})]
        txs = [make_tx("b1", "2024-01-01", "Buy", 100, shares=1, isin=ISIN_A)]

        reconciled = replay(txs, securities, fx, date(2024, 1, 2), cash_accounts=accounts)
        raw = replay(txs, securities, fx, date(2024, 1, 2), cash_accounts=accounts, reconcile_explicit_cash=False)

        assert [p.value for p in reconciled] == pytest.approx([100, 600])
        assert [p.invested for p in raw] == pytest.approx([0, 0])
        # The first Buy left the empty account untouched, so it was funded from outside too
        assert [p.invested for p in reconciled] == pytest.approx([100, 600])

    def test_opening_balance_without_deposit_is_invested(self, securities, fx):
        accounts = [CashAccount(id="c1", currency="EUR", balance_history={"2024-01-01": 900})]
        txs = [make_tx("b1", "2024-01-01", "Buy", 100, shares=1, isin=ISIN_A)]
        history = replay(txs, securities, fx, date(2024, 1, 2), cash_accounts=accounts)

        assert [p.value for p in history] == pytest.approx([1000, 1000])
        assert [p.invested for p in history] == pytest.approx([1000, 1000])

    def test_invested_does_not_depend_on_range(self, securities, fx):
        """Verify an unrecorded transfer before a short range is still part of invested."""
        accounts = [CashAccount(id="c1", currency="EUR", balance_history={
            "2024-01-01": 0, "2024-01-10": 500, "2024-01-11": 400,
        })]
        txs = [
            make_tx("b1", "2024-01-01", "Buy", 100, shares=1, isin=ISIN_A),
            make_tx("b2", "2024-01-11", "Buy", 100, shares=1, isin=ISIN_A),
        ]
        full = replay(txs, securities, fx, date(2024, 2, 29), cash_accounts=accounts)
        month = replay(txs, securities, fx, date(2024, 2, 29), cash_accounts=accounts, time_range="1M")

        by_date = {p.date: p for p in full}
        assert month[0].date == date(2024, 1, 29)
        for point in month:
            assert point.invested == pytest.approx(by_date[point.date].invested)
            assert point.value == pytest.approx(by_date[point.date].value)
        assert month[-1].invested == pytest.approx(600)
        assert month[-1].value == pytest.approx(600)


def test_verbose_reports_progress(securities, fx, capsys, monkeypatch):
    monkeypatch.setattr(history_module, "verbose", True)
    txs = [make_tx("b1", "2024-01-01", "Buy", 100, shares=1, isin=ISIN_A)]
    replay(txs, securities, fx, date(2024, 1, 2))
    assert "Replaying 1 transactions over 2 dates (implicit cash)" in capsys.readouterr().err
