"""Tests for drawdown, volatility, Sharpe ratio and calendar returns."""

import math
from datetime import date, timedelta

import pytest

from foliotrack.metrics import (
    AnalysisMetrics,
    aggregate_quarterly_returns,
    aggregate_yearly_returns,
    calculate_analysis_metrics,
    calculate_annualized_return,
    calculate_max_drawdown,
    calculate_monthly_returns,
    calculate_rolling_risk_series,
    calculate_sharpe_ratio,
    calculate_volatility,
)
from foliotrack.portfolio import HistoryPoint, PerformancePoint


def daily_history(start, values, invested=100.0):
    return [
        HistoryPoint(date=start + timedelta(days=i), value=v, invested=invested)
        for i, v in enumerate(values)
    ]


def test_empty_history_returns_defaults():
    assert calculate_analysis_metrics([]) == AnalysisMetrics()


class TestMonthlyReturns:

    def test_month_boundaries(self):
        """Verify each month is chained from the previous month's close."""
        history = [
            HistoryPoint(date="2024-01-01", value=100, invested=100),
            HistoryPoint(date="2024-01-31", value=110, invested=100),
            HistoryPoint(date="2024-02-01", value=120, invested=100),
            HistoryPoint(date="2024-02-29", value=132, invested=100),
        ]
        metrics = calculate_analysis_metrics(history)

        assert metrics.monthly_returns_map == pytest.approx({"2024-01": 10.0, "2024-02": 20.0})
        assert metrics.available_years == [2024]
        assert len(metrics.monthly_returns) == 12
        assert metrics.monthly_returns[0] == ("Jan", pytest.approx(10.0))
        assert metrics.monthly_returns[1] == ("Feb", pytest.approx(20.0))
        assert metrics.monthly_returns[2] == ("Mar", 0.0)

    def test_first_month_includes_day_one_gain(self):
        history = [
            HistoryPoint(date="2024-01-01", value=105, invested=100),
            HistoryPoint(date="2024-01-31", value=105, invested=100),
        ]
        assert calculate_analysis_metrics(history).monthly_returns_map == pytest.approx({"2024-01": 5.0})

    def test_month_without_positive_start_is_skipped(self):
        index_points = [(date(2024, 1, 31), 0.0), (date(2024, 2, 29), 1.0)]
        assert calculate_monthly_returns(index_points) == {"2024-01": -100.0}

    def test_quarterly_and_yearly_linking(self):
        monthly = {"2023-12": 5.0, "2024-01": 10.0, "2024-02": 10.0}

        quarters = aggregate_quarterly_returns(monthly, 2024)
        assert [q.label for q in quarters] == ["Q1", "Q2", "Q3", "Q4"]
        assert quarters[0].value == pytest.approx(21.0)
        assert quarters[0].has_data
        assert quarters[0].end_date == date(2024, 3, 31)
        assert not quarters[1].has_data
        assert quarters[1].value == 0.0

        years = aggregate_yearly_returns(monthly)
        assert [y.label for y in years] == ["2024", "2023"]
        assert years[0].value == pytest.approx(21.0)
        assert years[1].value == pytest.approx(5.0)


class TestDrawdown:

    def test_max_drawdown_from_peak(self):
        history = daily_history(date(2024, 1, 1), [100, 120, 90, 130])
        metrics = calculate_analysis_metrics(history)

        assert metrics.max_drawdown == pytest.approx(-25.0)
        assert metrics.max_drawdown_date == date(2024, 1, 3)
        trough = next(p for p in metrics.drawdown_history if p.date == metrics.max_drawdown_date)
        assert trough.value == metrics.max_drawdown
        assert all(p.value <= 0 for p in metrics.drawdown_history)
        assert metrics.drawdown_history[-1].value == 0.0

    def test_loss_at_first_valuation_is_a_drawdown(self):
        history = daily_history(date(2024, 1, 1), [90, 90])
        metrics = calculate_analysis_metrics(history)
        assert metrics.drawdown_history[0].value == pytest.approx(-10.0)
        assert metrics.max_drawdown == pytest.approx(-10.0)

    def test_rising_index_has_no_drawdown(self):
        assert calculate_max_drawdown([(date(2024, 1, 1), 1.0), (date(2024, 1, 2), 1.1)]) == (0.0, None)


class TestRisk:

    def test_constant_value_has_no_volatility(self):
        metrics = calculate_analysis_metrics(daily_history(date(2024, 1, 1), [100] * 30))
        assert metrics.volatility == 0.0
        assert metrics.sharpe_ratio == 0.0

    def test_volatility_uses_population_std(self):
        history = daily_history(date(2024, 1, 1), [100, 110, 99])
        metrics = calculate_analysis_metrics(history)

        expected_vol = 0.1 * math.sqrt(365) * 100
        assert metrics.volatility == pytest.approx(expected_vol)

        annualized = 0.99 ** (365 / 2) - 1
        assert metrics.sharpe_ratio == pytest.approx((annualized - 0.02) / (expected_vol / 100))

    def test_volatility_only_looks_at_trailing_year(self):
        """Verify swings older than 365 days do not affect volatility."""
        volatile = [100 if i % 2 == 0 else 110 for i in range(365)]
        calm = [100] * 366
        history = daily_history(date(2023, 1, 1), volatile + calm)
        assert history[-1].date == date(2024, 12, 31)

        assert calculate_analysis_metrics(history).volatility == pytest.approx(0.0)

    def test_fewer_than_two_returns_have_no_volatility(self):
        assert calculate_volatility([]) == 0.0
        assert calculate_volatility([0.05]) == 0.0

    def test_sharpe_guards(self):
        assert calculate_sharpe_ratio(0.1, 0.0, 0.02) == 0.0
        assert calculate_sharpe_ratio(0.12, 20.0, 0.02) == pytest.approx(0.5)
        assert calculate_annualized_return(1.0, 1.1, date(2024, 1, 1), date(2024, 1, 1)) == 0.0
        assert calculate_annualized_return(0.0, 1.1, date(2024, 1, 1), date(2024, 6, 1)) == 0.0

    def test_annualized_return_over_one_year(self):
        assert calculate_annualized_return(1.0, 1.1, date(2023, 1, 1), date(2024, 1, 1)) == pytest.approx(0.1)


class TestRollingRisk:

    def test_short_series_emits_nothing(self):
        series = [PerformancePoint(date=date(2024, 1, 1) + timedelta(days=i), value=float(i)) for i in range(100)]
        result = calculate_rolling_risk_series(series)
        assert result.volatility == []
        assert result.sharpe == []

    def test_points_start_once_window_is_full(self):
        start = date(2023, 1, 1)
        series = [
            PerformancePoint(date=start + timedelta(days=i), value=(1.0001 ** i - 1) * 100)
            for i in range(400)
        ]
        result = calculate_rolling_risk_series(series, risk_free_rate=0.0)

        assert result.volatility
        assert len(result.volatility) == len(result.sharpe)
        assert (result.volatility[0].date - start).days >= 365
        assert result.volatility[-1].date == series[-1].date
        assert all(p.value == pytest.approx(0.0, abs=1e-6) for p in result.volatility)
