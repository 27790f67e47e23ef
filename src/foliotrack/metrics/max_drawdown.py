from datetime import date
from typing import Tuple

from ..portfolio import PerformancePoint


def calculate_drawdown_series(
    index_points: list[tuple[date, float]]
) -> list[PerformancePoint]:
    """
    Calculate the drawdown at each point of a growth index.

    The running peak starts at 1.0, so an index seeded below 1.0 (a loss at
    the first valuation) already starts under water.

    Args:
        index_points: ``(date, index)`` pairs in ascending date order.

    Returns:
        Drawdown in percent per point, always <= 0.
        A drawdown of -10.0 means the index is 10% below its peak.
    """
    drawdowns: list[PerformancePoint] = []
    peak = 1.0

    for d, index in index_points:
        if index > peak:
            peak = index

        if peak > 0 and index < peak:
            drawdowns.append(PerformancePoint(date=d, value=-(peak - index) / peak * 100))
        else:
            drawdowns.append(PerformancePoint(date=d, value=0.0))

    return drawdowns


def calculate_max_drawdown(
    index_points: list[tuple[date, float]]
) -> Tuple[float, date | None]:
    """
    Calculate the maximum peak-to-trough decline of a growth index.

    Args:
        index_points: ``(date, index)`` pairs in ascending date order.

    Returns:
        Tuple of (max_drawdown, trough_date).
        max_drawdown is a non-positive percentage (e.g. -25.0).
        trough_date is None when the index never fell below its peak.
    """
    max_drawdown = 0.0
    trough_date: date | None = None

    for point in calculate_drawdown_series(index_points):
        if point.value < max_drawdown:
            max_drawdown = point.value
            trough_date = point.date

    return max_drawdown, trough_date
