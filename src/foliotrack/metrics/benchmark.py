from datetime import date

from ..asof import AsOfCursor, parse_date_series
from ..currency import ExchangeRateManager
from ..portfolio import HistoryPoint, PerformancePoint, Transaction
from .returns import build_mwr_series, slice_history


def build_benchmark_history(
    history: list[HistoryPoint],
    prices: dict[date, float] | dict[str, float],
    currency: str,
    base_currency: str,
    fx: ExchangeRateManager,
    range_start: date | str | None = None,
    range_end: date | str | None = None,
) -> list[HistoryPoint]:
    """
    Replay the portfolio's contributions into a benchmark instrument.

    Every change of the portfolio's invested capital buys (or sells)
    synthetic benchmark shares at the benchmark's last price on or before
    that date, converted into the base currency at the price date. Flows
    dated before the first usable price are carried forward and invested
    at the first price available.

    Args:
        history: Portfolio history providing the cash-flow schedule.
        prices: Benchmark closes in ``currency`` keyed by date.
        currency: Trading currency of the benchmark.
        base_currency: Currency of the portfolio history.
        fx: Exchange rate manager used for conversions.
        range_start: First date of the range (inclusive).
        range_end: Last date of the range (inclusive).

    Returns:
        HistoryPoint series of the synthetic holding, one point per
        portfolio date with a usable benchmark price.
    """
    points = slice_history(history, range_start, range_end)
    price_cursor = AsOfCursor(parse_date_series(prices), before_first="default", default=0.0)
    if not points or not len(price_cursor):
        return []

    shares = 0.0
    invested = 0.0
    pending_flow = 0.0
    synthetic: list[HistoryPoint] = []

    for i, point in enumerate(points):
        pending_flow += point.invested if i == 0 else point.invested - points[i - 1].invested

        price_date = price_cursor.date_at(point.date)
        raw_price = price_cursor.value_at(point.date)
        if price_date is None or not raw_price:
            continue

        price = fx.convert(raw_price, currency, base_currency, price_date)
        if price <= 0:
            continue

        if pending_flow != 0:
            shares += pending_flow / price
            invested += pending_flow
            pending_flow = 0.0

        synthetic.append(HistoryPoint(date=point.date, value=shares * price, invested=invested, dividend=0.0))

    return synthetic


def build_benchmark_series(
    history: list[HistoryPoint],
    prices: dict[date, float] | dict[str, float],
    currency: str,
    base_currency: str,
    fx: ExchangeRateManager,
    range_start: date | str | None = None,
    range_end: date | str | None = None,
    is_full_range: bool = False,
    transactions: list[Transaction] | None = None,
) -> list[PerformancePoint]:
    """
    Money-weighted return of the benchmark under the portfolio's cash flows.

    Comparable point for point with ``build_mwr_series`` of the portfolio.
    """
    synthetic = build_benchmark_history(history, prices, currency, base_currency, fx, range_start, range_end)
    return build_mwr_series(
        synthetic,
        range_start,
        range_end,
        include_dividends=False,
        is_full_range=is_full_range,
        transactions=transactions,
    )
