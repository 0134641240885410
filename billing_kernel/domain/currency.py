"""Currency -- ISO 4217 registry and the rounding precision of each document currency."""

from dataclasses import dataclass
from decimal import Decimal
from typing import ClassVar


@dataclass(frozen=True)
class CurrencyInfo:
    """Information about a single ISO 4217 currency."""

    code: str
    decimal_places: int
    name: str

    @property
    def quantum(self) -> Decimal:
        """Smallest representable unit, used as the ``Decimal.quantize`` target."""
        if self.decimal_places == 0:
            return Decimal("1")
        return Decimal("0." + "0" * (self.decimal_places - 1) + "1")


class CurrencyRegistry:
    """Registry of the currencies documents may be issued in."""

    _CURRENCIES: ClassVar[dict[str, CurrencyInfo]] = {
        # Three decimal currencies (millimes, fils, baisa)
        "TND": CurrencyInfo("TND", 3, "Tunisian Dinar"),
        "LYD": CurrencyInfo("LYD", 3, "Libyan Dinar"),
        "BHD": CurrencyInfo("BHD", 3, "Bahraini Dinar"),
        "JOD": CurrencyInfo("JOD", 3, "Jordanian Dinar"),
        "KWD": CurrencyInfo("KWD", 3, "Kuwaiti Dinar"),
        "OMR": CurrencyInfo("OMR", 3, "Omani Rial"),
        # Two decimal currencies
        "EUR": CurrencyInfo("EUR", 2, "Euro"),
        "USD": CurrencyInfo("USD", 2, "US Dollar"),
        "GBP": CurrencyInfo("GBP", 2, "Pound Sterling"),
        "CHF": CurrencyInfo("CHF", 2, "Swiss Franc"),
        "CAD": CurrencyInfo("CAD", 2, "Canadian Dollar"),
        "MAD": CurrencyInfo("MAD", 2, "Moroccan Dirham"),
        "DZD": CurrencyInfo("DZD", 2, "Algerian Dinar"),
        "EGP": CurrencyInfo("EGP", 2, "Egyptian Pound"),
        "AED": CurrencyInfo("AED", 2, "UAE Dirham"),
        "SAR": CurrencyInfo("SAR", 2, "Saudi Riyal"),
        # Zero decimal currencies
        "JPY": CurrencyInfo("JPY", 0, "Japanese Yen"),
        "XOF": CurrencyInfo("XOF", 0, "West African CFA Franc"),
        "XAF": CurrencyInfo("XAF", 0, "Central African CFA Franc"),
    }

    DEFAULT_CURRENCY: ClassVar[str] = "TND"

    @classmethod
    def is_valid(cls, code: str) -> bool:
        """Check if a currency code is registered."""
        if not code or not isinstance(code, str):
            return False
        return code.upper().strip() in cls._CURRENCIES

    @classmethod
    def get_info(cls, code: str) -> CurrencyInfo | None:
        """Get currency information by code."""
        if not code or not isinstance(code, str):
            return None
        return cls._CURRENCIES.get(code.upper().strip())

    @classmethod
    def get_decimal_places(cls, code: str) -> int:
        info = cls.get_info(code)
        if info is None:
            raise ValueError(f"Unknown currency code: {code!r}")
        return info.decimal_places

    @classmethod
    def get_quantum(cls, code: str) -> Decimal:
        info = cls.get_info(code)
        if info is None:
            raise ValueError(f"Unknown currency code: {code!r}")
        return info.quantum

    @classmethod
    def validate(cls, code: str) -> str:
        """Validate and normalize a currency code."""
        if not code or not isinstance(code, str):
            raise ValueError(f"Invalid currency code: {code!r}")

        normalized = code.upper().strip()

        if len(normalized) != 3:
            raise ValueError(f"Currency code must be 3 characters: {code!r}")

        if normalized not in cls._CURRENCIES:
            raise ValueError(f"Invalid ISO 4217 currency code: {code!r}")

        return normalized

    @classmethod
    def all_codes(cls) -> frozenset[str]:
        return frozenset(cls._CURRENCIES.keys())
