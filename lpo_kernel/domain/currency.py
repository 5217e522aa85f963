"""Currency -- ISO 4217 codes accepted on orders and precision-derived rounding."""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import ClassVar


@dataclass(frozen=True)
class CurrencyInfo:
    """Information about a single ISO 4217 currency."""

    code: str
    decimal_places: int
    name: str

    @property
    def quantum(self) -> Decimal:
        """Smallest representable amount, e.g. ``Decimal("0.001")`` for OMR."""
        return Decimal(1).scaleb(-self.decimal_places)


class CurrencyRegistry:
    """Currencies an order may be raised in, with their minor-unit precision."""

    _CURRENCIES: ClassVar[dict[str, CurrencyInfo]] = {
        # Gulf region, three decimals unless noted
        "OMR": CurrencyInfo("OMR", 3, "Omani Rial"),
        "BHD": CurrencyInfo("BHD", 3, "Bahraini Dinar"),
        "KWD": CurrencyInfo("KWD", 3, "Kuwaiti Dinar"),
        "JOD": CurrencyInfo("JOD", 3, "Jordanian Dinar"),
        "AED": CurrencyInfo("AED", 2, "UAE Dirham"),
        "SAR": CurrencyInfo("SAR", 2, "Saudi Riyal"),
        "QAR": CurrencyInfo("QAR", 2, "Qatari Riyal"),
        # Common supplier currencies
        "USD": CurrencyInfo("USD", 2, "US Dollar"),
        "EUR": CurrencyInfo("EUR", 2, "Euro"),
        "GBP": CurrencyInfo("GBP", 2, "Pound Sterling"),
        "INR": CurrencyInfo("INR", 2, "Indian Rupee"),
        "CNY": CurrencyInfo("CNY", 2, "Chinese Yuan"),
        "JPY": CurrencyInfo("JPY", 0, "Japanese Yen"),
    }

    @classmethod
    def is_valid(cls, code: str) -> bool:
        if not code or not isinstance(code, str):
            return False
        return code.upper().strip() in cls._CURRENCIES

    @classmethod
    def get_info(cls, code: str) -> CurrencyInfo:
        """Get currency information by code.

        Raises:
            ValueError: code is not a supported ISO 4217 currency.
        """
        return cls._CURRENCIES[cls.validate(code)]

    @classmethod
    def validate(cls, code: str) -> str:
        """Validate and normalize a currency code."""
        if not code or not isinstance(code, str):
            raise ValueError(f"Invalid currency code: {code!r}")
        normalized = code.upper().strip()
        if len(normalized) != 3:
            raise ValueError(f"Currency code must be 3 characters: {code!r}")
        if normalized not in cls._CURRENCIES:
            raise ValueError(f"Unsupported ISO 4217 currency code: {code!r}")
        return normalized

    @classmethod
    def all_codes(cls) -> frozenset[str]:
        return frozenset(cls._CURRENCIES)


def quantize_amount(amount: Decimal, currency: str) -> Decimal:
    """Round ``amount`` half-up to the currency's minor unit."""
    return amount.quantize(CurrencyRegistry.get_info(currency).quantum, rounding=ROUND_HALF_UP)
