from datetime import date, timedelta

import numpy as np

# Calendar days used to annualize daily figures
ANNUALIZATION_DAYS = 365


def calculate_index_returns(
    index_points: list[tuple[date, float]]
) -> list[tuple[date, float]]:
    """
    Calculate simple period returns of a growth index.

    Args:
        index_points: ``(date, index)`` pairs in ascending date order.

    Returns:
        ``(date, return)`` pairs starting at the second point. Periods that
        start from a non-positive index are skipped.
    """
    returns: list[tuple[date, float]] = []
    for (_, prev_index), (curr_date, curr_index) in zip(index_points, index_points[1:]):
        if prev_index > 0:
            returns.append((curr_date, curr_index / prev_index - 1))
    return returns


def calculate_volatility(
    returns: list[float],
    periods_in_year: int = ANNUALIZATION_DAYS
) -> float:
    """
    Calculate annualized volatility in percent from a list of returns.

    Uses the population standard deviation of the returns.

    Args:
        returns: Period returns as decimals (e.g., 0.002 = 0.2%).
        periods_in_year: Periods in a year (365 for calendar days).

    Returns:
        Annualized volatility in percent, or 0.0 with fewer than two returns.
    """
    if len(returns) < 2:
        return 0.0

    returns_array = np.array(returns, dtype=float)
    period_volatility = float(returns_array.std(ddof=0))
    return period_volatility * float(np.sqrt(periods_in_year)) * 100


def trailing_window(
    index_points: list[tuple[date, float]],
    days: int = ANNUALIZATION_DAYS
) -> list[tuple[date, float]]:
    """
    Select the points of the trailing ``days`` ending at the last point.

    Falls back to the whole series when the window holds fewer than two points.
    """
    if not index_points:
        return []
    cutoff = index_points[-1][0] - timedelta(days=days)
    window = [p for p in index_points if p[0] >= cutoff]
    if len(window) < 2:
        return list(index_points)
    return window


def calculate_trailing_volatility(
    index_points: list[tuple[date, float]],
    days: int = ANNUALIZATION_DAYS
) -> float:
    """Annualized volatility in percent over the trailing window of a growth index."""
    window = trailing_window(index_points, days)
    return calculate_volatility([r for _, r in calculate_index_returns(window)])
