"""
Currency Normalizer

Converts amounts typed in a display currency into the single storage
currency (RUB) and back, using a static rate table. No live rates are
ever fetched.

Stored values keep full float precision; only `format_display` rounds.
"""

from typing import Mapping, Optional


STORAGE_CURRENCY = "RUB"

# Units of storage currency per one unit of the given currency
RATES: dict[str, float] = {
    "RUB": 1.0,
    "USD": 90.0,
    "EUR": 98.0,
    "CNY": 12.5,
    "KZT": 0.19,
}

SYMBOLS: dict[str, str] = {
    "RUB": "₽",
    "USD": "$",
    "EUR": "€",
    "CNY": "¥",
    "KZT": "₸",
}


class UnsupportedCurrencyError(ValueError):
    """Raised for a currency code missing from the rate table."""

    def __init__(self, currency: str):
        self.currency = currency
        super().__init__(f"Unsupported currency: {currency}")


class CurrencyNormalizer:
    """
    Static-rate converter.

    Usage:
        normalizer = CurrencyNormalizer()
        normalizer.to_storage(100, "USD")   # 9000.0
    """

    def __init__(
        self,
        rates: Optional[Mapping[str, float]] = None,
        storage_currency: str = STORAGE_CURRENCY,
    ):
        self._rates = dict(rates or RATES)
        self.storage_currency = storage_currency.upper()
        if self._rates.get(self.storage_currency) != 1.0:
            raise ValueError(
                f"Rate table must price {self.storage_currency} at exactly 1.0"
            )

    @property
    def currencies(self) -> list[str]:
        return list(self._rates)

    def supports(self, currency: str) -> bool:
        return currency.upper() in self._rates

    def rate(self, currency: str) -> float:
        try:
            return self._rates[currency.upper()]
        except KeyError:
            raise UnsupportedCurrencyError(currency)

    def to_storage(self, amount: float, currency: str) -> float:
        """Amount in `currency` -> amount in the storage currency."""
        return amount * self.rate(currency)

    def from_storage(self, amount: float, currency: str) -> float:
        """Amount in the storage currency -> amount in `currency`."""
        return amount / self.rate(currency)

    def format_display(self, amount: float, currency: Optional[str] = None) -> str:
        """
        Render a stored amount in a display currency, rounded to whole units.

        >>> CurrencyNormalizer().format_display(9000, "USD")
        '100 $'
        """
        currency = (currency or self.storage_currency).upper()
        value = round(self.from_storage(amount, currency))
        whole = f"{value:,}".replace(",", " ")
        return f"{whole} {SYMBOLS.get(currency, currency)}"
