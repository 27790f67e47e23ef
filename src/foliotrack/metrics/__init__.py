"""Portfolio performance and risk metrics.

Provides time-weighted and money-weighted return series, maximum
drawdown, volatility, Sharpe ratio, calendar-period returns and a
benchmark synthesizer that replays a portfolio's cash flows into an
external instrument.
"""

from .analysis import (
    DEFAULT_RISK_FREE_RATE,
    AnalysisMetrics,
    calculate_analysis_metrics,
)
from .benchmark import (
    build_benchmark_history,
    build_benchmark_series,
)
from .calendar_returns import (
    PeriodReturn,
    aggregate_quarterly_returns,
    aggregate_yearly_returns,
    available_years,
    calculate_monthly_returns,
    monthly_returns_for_year,
)
from .max_drawdown import (
    calculate_drawdown_series,
    calculate_max_drawdown,
)
from .returns import (
    build_mwr_series,
    calculate_twr_index,
    calculate_twr_series,
    rebase_twr_series,
    slice_history,
    starts_at_inception,
)
from .sharpe import (
    RiskSeries,
    calculate_annualized_return,
    calculate_rolling_risk_series,
    calculate_sharpe_ratio,
    calculate_trailing_sharpe_ratio,
)
from .volatility import (
    calculate_index_returns,
    calculate_trailing_volatility,
    calculate_volatility,
)

__all__ = [
    # Analysis
    "DEFAULT_RISK_FREE_RATE",
    "AnalysisMetrics",
    "calculate_analysis_metrics",
    # Benchmark functions
    "build_benchmark_history",
    "build_benchmark_series",
    # Calendar returns
    "PeriodReturn",
    "aggregate_quarterly_returns",
    "aggregate_yearly_returns",
    "available_years",
    "calculate_monthly_returns",
    "monthly_returns_for_year",
    # Max drawdown functions
    "calculate_drawdown_series",
    "calculate_max_drawdown",
    # Return series
    "build_mwr_series",
    "calculate_twr_index",
    "calculate_twr_series",
    "rebase_twr_series",
    "slice_history",
    "starts_at_inception",
    # Sharpe ratio functions
    "RiskSeries",
    "calculate_annualized_return",
    "calculate_rolling_risk_series",
    "calculate_sharpe_ratio",
    "calculate_trailing_sharpe_ratio",
    # Volatility functions
    "calculate_index_returns",
    "calculate_trailing_volatility",
    "calculate_volatility",
]
