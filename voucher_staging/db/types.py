"""
Module: voucher_staging.db.types
Responsibility: Annotated column type aliases and currency validation shared by the
    ORM models and the ledger gateway.
Architecture position: DB layer.  MUST NOT import from models/, services/ or
    domain/.

Invariants enforced:
    - No floats for money.  Staged amounts are whole currency units held as
      Decimal and compared exactly.
    - validate_currency() is the single ISO 4217 check used at the ledger
      boundary.
"""

from decimal import Decimal
from typing import Annotated

# Aliases resolved through Base.type_annotation_map

# Monetary amount, 38 digits with 9 decimal places
Money = Annotated[Decimal, "money"]

# Exchange rate
Rate = Annotated[Decimal, "rate"]

# ISO 4217 currency code
Currency = Annotated[str, "currency"]

# Account codes, document numbers, dimension codes
ShortCode = Annotated[str, "short_code"]

# Free text
LongText = Annotated[str, "long_text"]


ISO_4217_CURRENCIES: frozenset[str] = frozenset({
    "USD", "EUR", "GBP", "JPY", "CHF", "CAD", "AUD", "NZD",
    "CNY", "HKD", "SGD", "KRW", "THB", "MYR", "IDR", "PHP",
    "INR", "LAK", "KHR", "MMK", "TWD", "VND",
})


class InvalidCurrencyError(ValueError):
    """Raised when an invalid ISO 4217 currency code is provided."""

    def __init__(self, currency: str):
        self.currency = currency
        super().__init__(f"Invalid ISO 4217 currency code: '{currency}'")


def validate_currency(currency: str) -> str:
    """
    Validate that a currency code is a supported ISO 4217 code.

    Returns:
        The validated currency code (uppercase, trimmed).

    Raises:
        InvalidCurrencyError: If the currency code is not valid.
    """
    if not currency or not isinstance(currency, str):
        raise InvalidCurrencyError(str(currency))

    normalized = currency.upper().strip()
    if len(normalized) != 3 or normalized not in ISO_4217_CURRENCIES:
        raise InvalidCurrencyError(currency)
    return normalized
