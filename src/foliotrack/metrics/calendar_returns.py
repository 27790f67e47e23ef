from dataclasses import dataclass
from datetime import date
import calendar

MONTH_LABELS = ["Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]


def month_key(d: date) -> str:
    return f"{d.year}-{d.month:02d}"


def calculate_monthly_returns(
    index_points: list[tuple[date, float]],
    base_index: float = 1.0,
) -> dict[str, float]:
    """
    Calculate the return of every calendar month from a growth index.

    Each month runs from the previous month's closing index to this
    month's closing index. The first month starts from ``base_index``.

    Args:
        index_points: ``(date, index)`` pairs in ascending date order.
        base_index: Index level before the first point.

    Returns:
        Mapping of ``YYYY-MM`` to return in percent. Months without a
        positive starting index are omitted.
    """
    closing: dict[str, float] = {}
    for d, index in index_points:
        closing[month_key(d)] = index

    returns: dict[str, float] = {}
    start_index = base_index
    for key, end_index in closing.items():
        if start_index > 0:
            returns[key] = (end_index / start_index - 1) * 100
        start_index = end_index

    return returns


def available_years(monthly_returns: dict[str, float]) -> list[int]:
    """Distinct years present in a monthly-returns map, newest first."""
    return sorted({int(key[:4]) for key in monthly_returns}, reverse=True)


def monthly_returns_for_year(monthly_returns: dict[str, float], year: int) -> list[tuple[str, float]]:
    """The twelve months of ``year`` as ``(label, return)`` pairs, 0.0 where missing."""
    return [
        (label, monthly_returns.get(f"{year}-{month:02d}", 0.0))
        for month, label in enumerate(MONTH_LABELS, start=1)
    ]


@dataclass
class PeriodReturn:
    """Return of a quarter or year linked from its monthly returns."""
    label: str
    value: float        # Percent, 0.0 without data
    has_data: bool
    start_date: date
    end_date: date


def _link_months(monthly_returns: dict[str, float], year: int, months: range) -> tuple[float, bool]:
    growth = 1.0
    has_data = False
    for month in months:
        key = f"{year}-{month:02d}"
        if key in monthly_returns:
            growth *= 1 + monthly_returns[key] / 100
            has_data = True
    return ((growth - 1) * 100 if has_data else 0.0), has_data


def aggregate_quarterly_returns(monthly_returns: dict[str, float], year: int) -> list[PeriodReturn]:
    """Geometrically link monthly returns into the four quarters of ``year``."""
    quarters: list[PeriodReturn] = []
    for quarter in range(4):
        first_month = quarter * 3 + 1
        last_month = first_month + 2
        value, has_data = _link_months(monthly_returns, year, range(first_month, last_month + 1))
        quarters.append(PeriodReturn(
            label=f"Q{quarter + 1}",
            value=value,
            has_data=has_data,
            start_date=date(year, first_month, 1),
            end_date=date(year, last_month, calendar.monthrange(year, last_month)[1]),
        ))
    return quarters


def aggregate_yearly_returns(monthly_returns: dict[str, float], years: list[int] | None = None) -> list[PeriodReturn]:
    """Geometrically link monthly returns into calendar years (default: all available, newest first)."""
    if years is None:
        years = available_years(monthly_returns)
    result: list[PeriodReturn] = []
    for year in years:
        value, has_data = _link_months(monthly_returns, year, range(1, 13))
        result.append(PeriodReturn(
            label=str(year),
            value=value,
            has_data=has_data,
            start_date=date(year, 1, 1),
            end_date=date(year, 12, 31),
        ))
    return result
