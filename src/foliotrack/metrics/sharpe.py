from dataclasses import dataclass, field
from datetime import date

import numpy as np

from ..portfolio import PerformancePoint
from .volatility import ANNUALIZATION_DAYS, trailing_window


def calculate_annualized_return(
    start_index: float,
    end_index: float,
    start_date: date,
    end_date: date,
) -> float:
    """
    Annualize the growth between two index values.

    Returns:
        ``(end / start) ** (1 / years) - 1`` as a decimal, or 0.0 when no time
        elapsed or the start index is not positive.
    """
    years = (end_date - start_date).days / ANNUALIZATION_DAYS
    if years <= 0 or start_index <= 0 or end_index <= 0:
        return 0.0
    return (end_index / start_index) ** (1 / years) - 1


def calculate_sharpe_ratio(
    annualized_return: float,
    annualized_volatility_percent: float,
    risk_free_rate: float,
) -> float:
    """
    Calculate the Sharpe ratio from annualized figures.

    Args:
        annualized_return: Annualized return as a decimal (0.08 = 8%).
        annualized_volatility_percent: Annualized volatility in percent.
        risk_free_rate: Annual risk-free rate as a decimal.

    Returns:
        The Sharpe ratio, or 0.0 if volatility is zero.
    """
    if annualized_volatility_percent <= 0:
        return 0.0
    return (annualized_return - risk_free_rate) / (annualized_volatility_percent / 100)


def calculate_trailing_sharpe_ratio(
    index_points: list[tuple[date, float]],
    annualized_volatility_percent: float,
    risk_free_rate: float,
    days: int = ANNUALIZATION_DAYS,
) -> float:
    """Sharpe ratio over the same trailing window used for volatility."""
    window = trailing_window(index_points, days)
    if len(window) < 2:
        return 0.0
    (start_date, start_index), (end_date, end_index) = window[0], window[-1]
    annualized_return = calculate_annualized_return(start_index, end_index, start_date, end_date)
    return calculate_sharpe_ratio(annualized_return, annualized_volatility_percent, risk_free_rate)


@dataclass
class RiskSeries:
    """Rolling risk figures, one point per date with a full window behind it."""
    volatility: list[PerformancePoint] = field(default_factory=list)
    sharpe: list[PerformancePoint] = field(default_factory=list)


def calculate_rolling_risk_series(
    twr_series: list[PerformancePoint],
    risk_free_rate: float = 0.02,
    window_days: int = ANNUALIZATION_DAYS,
) -> RiskSeries:
    """
    Calculate rolling annualized volatility and Sharpe ratio along a TWR series.

    A point is emitted once the returns in the window span at least
    ``window_days``. Volatility is the population standard deviation of the
    window's returns; the annualized return compares the index at the end of
    the window with the index just before its first return.

    Args:
        twr_series: Cumulative TWR in percent, ascending.
        risk_free_rate: Annual risk-free rate as a decimal.
        window_days: Length of the rolling window in days.

    Returns:
        RiskSeries with volatility (percent) and Sharpe points.
    """
    result = RiskSeries()
    if len(twr_series) < 2:
        return result

    dates = [p.date for p in twr_series]
    index = np.array([1 + p.value / 100 for p in twr_series], dtype=float)
    returns = np.zeros(len(index))
    for i in range(1, len(index)):
        returns[i] = index[i] / index[i - 1] - 1 if index[i - 1] > 0 else 0.0

    window_start = 1
    for i in range(1, len(index)):
        while window_start < i and (dates[i] - dates[window_start]).days > window_days:
            window_start += 1

        count = i - window_start + 1
        if count < 2 or (dates[i] - dates[window_start]).days < window_days:
            continue

        window_returns = returns[window_start:i + 1]
        volatility = float(window_returns.std(ddof=0)) * float(np.sqrt(ANNUALIZATION_DAYS)) * 100

        base = max(window_start - 1, 0)
        annualized_return = calculate_annualized_return(float(index[base]), float(index[i]), dates[base], dates[i])
        sharpe = calculate_sharpe_ratio(annualized_return, volatility, risk_free_rate)

        result.volatility.append(PerformancePoint(date=dates[i], value=volatility))
        result.sharpe.append(PerformancePoint(date=dates[i], value=sharpe))

    return result
