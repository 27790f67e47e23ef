"""
Full-history analysis metrics.

All figures derive from one TWR index with day-one-alpha seeding, so the
drawdown, the monthly map and the risk figures agree with each other.
"""

from dataclasses import dataclass, field
from datetime import date

from ..portfolio import HistoryPoint, PerformancePoint
from .calendar_returns import available_years, calculate_monthly_returns, monthly_returns_for_year
from .max_drawdown import calculate_drawdown_series, calculate_max_drawdown
from .returns import calculate_twr_index
from .sharpe import calculate_trailing_sharpe_ratio
from .volatility import calculate_trailing_volatility

DEFAULT_RISK_FREE_RATE = 0.02


@dataclass
class AnalysisMetrics:
    """Risk and return figures for a portfolio history."""
    volatility: float = 0.0                     # Annualized, percent
    sharpe_ratio: float = 0.0
    max_drawdown: float = 0.0                   # Percent, <= 0
    max_drawdown_date: date | None = None
    drawdown_history: list[PerformancePoint] = field(default_factory=list)
    monthly_returns: list[tuple[str, float]] = field(default_factory=list)   # Latest year, Jan..Dec
    monthly_returns_map: dict[str, float] = field(default_factory=dict)     # YYYY-MM -> percent
    available_years: list[int] = field(default_factory=list)                # Newest first
    twr_series: list[PerformancePoint] = field(default_factory=list)


def calculate_analysis_metrics(
    history: list[HistoryPoint],
    risk_free_rate: float = DEFAULT_RISK_FREE_RATE,
    include_dividends: bool = False,
) -> AnalysisMetrics:
    """
    Calculate volatility, Sharpe ratio, drawdown and calendar returns.

    Args:
        history: Full replayed history in ascending date order.
        risk_free_rate: Annual risk-free rate as a decimal.
        include_dividends: Count dividend income as return.

    Returns:
        AnalysisMetrics; all zero/empty for an empty history.
    """
    if not history:
        return AnalysisMetrics()

    index_points = calculate_twr_index(history, include_dividends=include_dividends, day_one_alpha=True)

    monthly_map = calculate_monthly_returns(index_points, base_index=1.0)
    volatility = calculate_trailing_volatility(index_points)
    sharpe_ratio = calculate_trailing_sharpe_ratio(index_points, volatility, risk_free_rate)
    max_drawdown, max_drawdown_date = calculate_max_drawdown(index_points)

    return AnalysisMetrics(
        volatility=volatility,
        sharpe_ratio=sharpe_ratio,
        max_drawdown=max_drawdown,
        max_drawdown_date=max_drawdown_date,
        drawdown_history=calculate_drawdown_series(index_points),
        monthly_returns=monthly_returns_for_year(monthly_map, history[-1].date.year),
        monthly_returns_map=monthly_map,
        available_years=available_years(monthly_map),
        twr_series=[PerformancePoint(date=d, value=(index - 1) * 100) for d, index in index_points],
    )
