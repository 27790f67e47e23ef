from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date
from typing import Any
import warnings

from .asof import AsOfCursor, parse_date, parse_date_series

# All rate tables are quoted against this currency: 1 EUR = rate units
PIVOT_CURRENCY = "EUR"


class MissingExchangeRateWarning(UserWarning):
    """Emitted when a currency has no rate table and is converted at 1:1."""


@dataclass
class FxData:
    """Pivot-relative exchange rate tables.

    ``rates[currency][date]`` is the number of units of ``currency`` that one
    unit of ``base_currency`` buys on that date.
    """
    base_currency: str = PIVOT_CURRENCY
    rates: dict[str, dict[date, float]] = field(default_factory=dict)

    def __post_init__(self):
        self.base_currency = self.base_currency.upper()
        self.rates = {
            currency.upper(): parse_date_series(table)
            for currency, table in (self.rates or {}).items()
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "FxData":
        """Build FxData from a ``{"baseCurrency": ..., "rates": {...}}`` mapping."""
        if not data:
            return cls()
        return cls(
            base_currency=data.get("baseCurrency", data.get("base_currency", PIVOT_CURRENCY)),
            rates=data.get("rates", {}),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "baseCurrency": self.base_currency,
            "rates": {
                currency: {d.isoformat(): rate for d, rate in sorted(table.items())}
                for currency, table in self.rates.items()
            },
        }


class ExchangeRateManager(ABC):
    """Abstract base class for currency exchange rate providers."""

    @abstractmethod
    def get_rate(self, currency: str, on_date: date | None = None) -> float:
        """Get the pivot-relative rate of a currency.

        Args:
            currency: ISO currency code.
            on_date: The date for the rate lookup. If None, uses the latest rate.

        Returns:
            Units of ``currency`` per one unit of the pivot currency.

        Raises:
            NotImplementedError: Always, must be overridden by subclasses.
        """
        raise NotImplementedError("This method should be overridden by subclasses.")

    @property
    def pivot_currency(self) -> str:
        return PIVOT_CURRENCY

    def convert(self, amount: float, from_currency: str, to_currency: str, on_date: date | None = None) -> float:
        """Convert an amount between two currencies through the pivot currency.

        Args:
            amount: The amount in ``from_currency``.
            from_currency: The source currency.
            to_currency: The target currency.
            on_date: The date whose rates are used. If None, uses the latest rates.

        Returns:
            The amount expressed in ``to_currency``.
        """
        if from_currency == to_currency:
            return amount
        amount_in_pivot = amount / self.get_rate(from_currency, on_date)
        if to_currency == self.pivot_currency:
            return amount_in_pivot
        return amount_in_pivot * self.get_rate(to_currency, on_date)


class FixedExchangeRateManager(ExchangeRateManager):
    """Exchange rate manager with one constant pivot-relative rate per currency.

    Useful for testing or when historical rates are not needed.
    """

    def __init__(self, rates: dict[str, float] | None = None):
        self.rates = {currency.upper(): rate for currency, rate in (rates or {}).items()}

    def set_rate(self, currency: str, rate: float) -> None:
        """Set or override the rate for a currency."""
        self.rates[currency.upper()] = rate

    def get_rate(self, currency: str, on_date: date | None = None) -> float:
        currency = currency.upper()
        if currency == self.pivot_currency:
            return 1.0
        rate = self.rates.get(currency)
        if not rate:
            return 1.0
        return rate


class PivotExchangeRateManager(ExchangeRateManager):
    """Exchange rate manager backed by historical pivot-relative rate tables.

    Each currency gets its own as-of cursor, so a replay that queries dates in
    ascending order touches every rate entry at most once. Currencies without
    a table are converted at 1:1 and reported once through
    ``MissingExchangeRateWarning``.
    """

    def __init__(self, fx_data: FxData | None = None):
        """Initialize from rate tables.

        Args:
            fx_data: Pivot-relative rate tables. None behaves like an empty table.
        """
        self.fx_data = fx_data if fx_data is not None else FxData()
        self._cursors: dict[str, AsOfCursor] = {}
        self._warned: set[str] = set()

    @property
    def pivot_currency(self) -> str:
        return self.fx_data.base_currency

    def _cursor(self, currency: str) -> AsOfCursor | None:
        cursor = self._cursors.get(currency)
        if cursor is None:
            table = self.fx_data.rates.get(currency)
            if not table:
                return None
            cursor = AsOfCursor(table, before_first="earliest", default=1.0)
            self._cursors[currency] = cursor
        return cursor

    def get_rate(self, currency: str, on_date: date | None = None) -> float:
        """Get the pivot-relative rate of a currency.

        Uses the last rate on or before ``on_date``, the earliest rate when
        ``on_date`` precedes the table, and the latest rate when ``on_date``
        is None. Missing tables and zero rates yield 1.

        Args:
            currency: ISO currency code.
            on_date: The date for the rate lookup.

        Returns:
            Units of ``currency`` per one unit of the pivot currency.
        """
        currency = currency.upper()
        if currency == self.pivot_currency:
            return 1.0

        cursor = self._cursor(currency)
        if cursor is None:
            if currency not in self._warned:
                self._warned.add(currency)
                warnings.warn(
                    f"No exchange rates available for {currency}. "
                    f"Converting {currency} amounts at a rate of 1.",
                    MissingExchangeRateWarning,
                )
            return 1.0

        if on_date is None:
            rate = cursor.latest()
        else:
            rate = cursor.value_at(parse_date(on_date))
        return rate or 1.0

    def available_currencies(self) -> list[str]:
        """Return the pivot currency followed by every currency with a rate table."""
        currencies = [self.pivot_currency]
        for currency in sorted(self.fx_data.rates):
            if currency not in currencies:
                currencies.append(currency)
        return currencies
