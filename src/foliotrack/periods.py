from datetime import date, timedelta
from enum import Enum

import pandas as pd

from .asof import parse_date


class TimeRange(Enum):
    """Named look-back windows for history and performance charts."""

    ONE_MONTH = "1M"
    SIX_MONTHS = "6M"
    YTD = "YTD"
    ONE_YEAR = "1J"
    THREE_YEARS = "3J"
    FIVE_YEARS = "5J"
    MAX = "MAX"

    @classmethod
    def parse(cls, value: "str | TimeRange") -> "TimeRange":
        """Parse a range name. ``1Y``/``3Y``/``5Y`` are accepted for the year ranges.

        Raises:
            ValueError: If the name is unknown.
        """
        if isinstance(value, TimeRange):
            return value
        key = str(value).strip().upper()
        key = {"1Y": "1J", "3Y": "3J", "5Y": "5J"}.get(key, key)
        for member in cls:
            if member.value == key:
                return member
        raise ValueError(f"Unknown time range: {value}")


class Granularity(Enum):
    DAILY = "daily"
    WEEKLY = "weekly"


_RANGE_OFFSETS = {
    TimeRange.ONE_MONTH: pd.DateOffset(months=1),
    TimeRange.SIX_MONTHS: pd.DateOffset(months=6),
    TimeRange.ONE_YEAR: pd.DateOffset(years=1),
    TimeRange.THREE_YEARS: pd.DateOffset(years=3),
    TimeRange.FIVE_YEARS: pd.DateOffset(years=5),
}


def range_start(time_range: TimeRange, end: date, earliest: date | None = None) -> date:
    """
    Compute the first date of a named range ending at ``end``.

    Month and year steps are calendar arithmetic, clamped to the end of a
    shorter month (e.g. 31 March minus one month is 28/29 February).

    Args:
        time_range: The named range.
        end: The last date of the range.
        earliest: The earliest meaningful date (first transaction or first
                  data point). The start never precedes it, and MAX starts on it.

    Returns:
        The range start date.
    """
    if time_range == TimeRange.MAX:
        start = earliest if earliest is not None else end
    elif time_range == TimeRange.YTD:
        start = date(end.year, 1, 1)
    else:
        start = (pd.Timestamp(end) - _RANGE_OFFSETS[time_range]).date()

    if earliest is not None and start < earliest:
        start = earliest
    return start


def build_date_grid(start: date, end: date, granularity: Granularity | str = Granularity.WEEKLY) -> list[date]:
    """
    Build the sorted, de-duplicated list of valuation dates between two dates.

    Daily grids contain every calendar day. Weekly grids step seven days
    from ``start``, add the first day of every month crossed by a step, and
    always end on ``end``.

    Args:
        start: The first grid date.
        end: The last grid date ("as of").
        granularity: ``daily`` or ``weekly``.

    Returns:
        Ascending grid dates. A single date when ``start >= end``.
    """
    granularity = Granularity(granularity)
    points = [start]
    current = start

    while current < end:
        if granularity == Granularity.DAILY:
            current = current + timedelta(days=1)
        else:
            next_week = current + timedelta(days=7)
            if (next_week.year, next_week.month) != (current.year, current.month):
                month_start = date(next_week.year, next_week.month, 1)
                if current < month_start <= end:
                    points.append(month_start)
            current = next_week

        if current <= end:
            points.append(current)

    if points[-1] != end and end > start:
        points.append(end)

    return sorted(set(points))


def resolve_range_dates(series_dates: list[date], time_range: TimeRange | str) -> tuple[date, date] | None:
    """
    Resolve a named range against an existing series.

    The range ends on the series' last date and starts the range's length
    earlier, but never before the series' first date.

    Args:
        series_dates: Ascending dates of a return or history series.
        time_range: The named range.

    Returns:
        ``(start, end)``, or None for an empty series.
    """
    if not series_dates:
        return None
    time_range = TimeRange.parse(time_range)
    first = parse_date(series_dates[0])
    end = parse_date(series_dates[-1])
    return range_start(time_range, end, earliest=first), end
