from bisect import bisect_right
from datetime import date, datetime
from typing import Any, Mapping


def parse_date(value: Any) -> date:
    """Coerce a date-like value into a ``datetime.date``.

    Accepts ``date``, ``datetime``, pandas ``Timestamp`` and ``YYYY-MM-DD``
    strings (a trailing time component is ignored).

    Args:
        value: The value to coerce.

    Returns:
        The calendar date.

    Raises:
        ValueError: If the value cannot be interpreted as a date.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if hasattr(value, "to_pydatetime"):
        return value.to_pydatetime().date()
    if isinstance(value, str):
        text = value.strip()[:10]
        try:
            return date.fromisoformat(text)
        except ValueError:
            raise ValueError(f"Invalid date '{value}'. Expected YYYY-MM-DD.")
    raise ValueError(f"Cannot interpret {value!r} as a date.")


def parse_date_series(series: Mapping[Any, float] | None) -> dict[date, float]:
    """Convert a date-keyed mapping with string keys into ``date`` keys."""
    if not series:
        return {}
    return {parse_date(key): float(value) for key, value in series.items()}


class AsOfCursor():
    """Monotonic "last value at or before" lookup over a date-keyed series.

    Queries with non-decreasing dates advance an internal index and cost
    O(1) amortized. A query that moves backwards falls back to a binary
    search and repositions the cursor.
    """

    def __init__(self, series: Mapping[date, float], before_first: str = "default", default: float = 0.0):
        """Initialize the cursor.

        Args:
            series: Mapping of dates to values.
            before_first: What to return for a date earlier than every key.
                ``"earliest"`` returns the first value, ``"default"`` returns
                ``default``.
            default: Value returned for empty series, and for early dates
                when ``before_first`` is ``"default"``.
        """
        if before_first not in ("earliest", "default"):
            raise ValueError(f"Unknown before_first policy: {before_first}")
        self.dates: list[date] = sorted(series.keys())
        self.values: list[float] = [series[d] for d in self.dates]
        self.before_first = before_first
        self.default = default
        # Index of the last key <= the last queried date, -1 before the first key
        self._index = -1
        self._last_query: date | None = None

    def __len__(self) -> int:
        return len(self.dates)

    def _seek(self, query: date) -> int:
        if self._last_query is not None and query < self._last_query:
            self._index = bisect_right(self.dates, query) - 1
        else:
            while self._index + 1 < len(self.dates) and self.dates[self._index + 1] <= query:
                self._index += 1
        self._last_query = query
        return self._index

    def value_at(self, query: date) -> float:
        """Return the value at the last key on or before ``query``."""
        if not self.dates:
            return self.default
        index = self._seek(query)
        if index < 0:
            if self.before_first == "earliest":
                return self.values[0]
            return self.default
        return self.values[index]

    def date_at(self, query: date) -> date | None:
        """Return the key used for ``query``, or None before the first key."""
        if not self.dates:
            return None
        index = self._seek(query)
        if index < 0:
            return self.dates[0] if self.before_first == "earliest" else None
        return self.dates[index]

    def latest(self) -> float:
        """Return the value at the last key."""
        if not self.values:
            return self.default
        return self.values[-1]
