"""
Time-weighted and money-weighted return series.

Both consume a replayed history and produce cumulative percentages. TWR
chains period returns so that the size and timing of contributions do not
matter; MWR measures profit against the capital actually at work, which is
what an investor experiences. They are kept separate on purpose and differ
in how they treat the very first valuation ("day-one alpha").
"""

from datetime import date, timedelta

from ..asof import parse_date
from ..portfolio import HistoryPoint, PerformancePoint, Transaction


def slice_history(
    history: list[HistoryPoint],
    start: date | str | None = None,
    end: date | str | None = None,
) -> list[HistoryPoint]:
    """Return the points dated within ``[start, end]`` (either bound optional)."""
    start_date = parse_date(start) if start is not None else None
    end_date = parse_date(end) if end is not None else None
    return [
        p for p in history
        if (start_date is None or p.date >= start_date) and (end_date is None or p.date <= end_date)
    ]


def starts_at_inception(
    start: date | str,
    is_full_range: bool = False,
    transactions: list[Transaction] | None = None,
) -> bool:
    """True when a range covers the whole history or starts within a day of the first transaction."""
    if is_full_range:
        return True
    if not transactions:
        return False
    first_tx_date = min(t.date for t in transactions)
    return abs(parse_date(start) - first_tx_date) <= timedelta(days=1)


def calculate_twr_index(
    history: list[HistoryPoint],
    include_dividends: bool = False,
    day_one_alpha: bool = False,
) -> list[tuple[date, float]]:
    """
    Chain period returns into a growth index.

    Cash flows (changes of ``invested``) are assumed to arrive at the start
    of each period: ``r = (value[t] - (value[t-1] + flow)) / (value[t-1] + flow)``.

    Args:
        history: Points in ascending date order.
        include_dividends: Add each period's dividend income to the end value.
        day_one_alpha: Seed the first index with ``value / invested`` instead
                       of 1.0, so a gain at the first valuation is kept.

    Returns:
        ``(date, index)`` pairs, one per point.
    """
    if not history:
        return []

    first = history[0]
    index = 1.0
    if day_one_alpha and first.invested > 0:
        index = first.value / first.invested

    result = [(first.date, index)]
    for prev, curr in zip(history, history[1:]):
        cash_flow = curr.invested - prev.invested
        denominator = prev.value + cash_flow
        end_value = curr.value
        if include_dividends:
            end_value += curr.dividend - prev.dividend

        period_return = (end_value - denominator) / denominator if denominator != 0 else 0.0
        index *= 1 + period_return
        result.append((curr.date, index))

    return result


def calculate_twr_series(
    history: list[HistoryPoint],
    start: date | str | None = None,
    end: date | str | None = None,
    include_dividends: bool = False,
    day_one_alpha: bool = False,
) -> list[PerformancePoint]:
    """
    Calculate the cumulative time-weighted return for a sub-range.

    Args:
        history: Replayed history in ascending date order.
        start: First date of the range (inclusive). None for the first point.
        end: Last date of the range (inclusive). None for the last point.
        include_dividends: Count dividend income as return.
        day_one_alpha: Start from the first point's gain over invested capital
                       instead of 0%.

    Returns:
        Cumulative TWR in percent per point; empty for an empty range.
    """
    points = slice_history(history, start, end)
    return [
        PerformancePoint(date=d, value=(index - 1) * 100)
        for d, index in calculate_twr_index(points, include_dividends, day_one_alpha)
    ]


def build_mwr_series(
    history: list[HistoryPoint],
    range_start: date | str | None = None,
    range_end: date | str | None = None,
    include_dividends: bool = False,
    is_full_range: bool = False,
    transactions: list[Transaction] | None = None,
) -> list[PerformancePoint]:
    """
    Calculate the cumulative money-weighted return for a sub-range.

    For each point, profit since the range start net of new contributions
    is divided by the capital at work: the start value plus contributions
    made since. When the range starts at the portfolio's inception (full
    range, or within a day of the first transaction) the start value is
    replaced by the invested capital, so the gain of the first valuation
    shows up as the first point.

    Args:
        history: Replayed history in ascending date order.
        range_start: First date of the range (inclusive).
        range_end: Last date of the range (inclusive).
        include_dividends: Add cumulative dividends to each value.
        is_full_range: The range covers the whole history.
        transactions: The ledger, used to detect a range starting at inception.

    Returns:
        Cumulative MWR in percent per point; empty for an empty range.
    """
    points = slice_history(history, range_start, range_end)
    if not points:
        return []

    def total_value(point: HistoryPoint) -> float:
        return point.value + (point.dividend if include_dividends else 0.0)

    start_point = points[0]
    start_value = total_value(start_point)
    start_invested = start_point.invested

    at_inception = starts_at_inception(start_point.date, is_full_range, transactions)
    if at_inception and start_invested > 0:
        start_value = start_invested

    first_value = 0.0
    if at_inception and start_invested > 0:
        first_value = (total_value(start_point) - start_invested) / start_invested * 100
    series = [PerformancePoint(date=start_point.date, value=first_value)]

    for point in points[1:]:
        delta_invested = point.invested - start_invested
        capital_at_work = start_value + delta_invested
        percent = 0.0
        if capital_at_work > 0:
            profit = (total_value(point) - start_value) - delta_invested
            percent = profit / capital_at_work * 100
        series.append(PerformancePoint(date=point.date, value=percent))

    return series


def rebase_twr_series(
    series: list[PerformancePoint],
    period_start: date | str,
    period_end: date | str,
) -> list[PerformancePoint]:
    """
    Re-anchor a cumulative TWR series to a sub-period.

    The point just before ``period_start`` becomes the 0% baseline, so the
    first in-period point already shows that period's first return.

    Args:
        series: Cumulative TWR series in percent, ascending.
        period_start: First date of the period (inclusive).
        period_end: Last date of the period (inclusive).

    Returns:
        The baseline point followed by the in-period points, rebased.
        Empty when no point falls within the period.
    """
    start = parse_date(period_start)
    end = parse_date(period_end)

    start_index = next((i for i, p in enumerate(series) if p.date >= start), None)
    if start_index is None or series[start_index].date > end:
        return []

    baseline_index = max(start_index - 1, 0)
    end_index = start_index
    while end_index + 1 < len(series) and series[end_index + 1].date <= end:
        end_index += 1

    baseline = 1 + series[baseline_index].value / 100
    window = series[baseline_index:end_index + 1]
    if baseline == 0:
        return [PerformancePoint(date=p.date, value=0.0) for p in window]

    return [
        PerformancePoint(date=p.date, value=((1 + p.value / 100) / baseline - 1) * 100)
        for p in window
    ]
