"""
Money primitives -- rounding, currency codes, ownership splits.

``round_money`` is the only sanctioned rounding function for monetary
amounts produced by the engine (translation, NCI split, elimination
conversions).  Everything else stays exact ``Decimal``.
"""

from __future__ import annotations

import re
from decimal import ROUND_HALF_UP, Decimal

from consolidation_kernel.exceptions import (
    InvalidCurrencyCodeError,
    InvalidOwnershipPercentageError,
)

ZERO = Decimal("0")
HUNDRED = Decimal("100")
DEFAULT_ROUNDING = ROUND_HALF_UP

_CURRENCY_RE = re.compile(r"^[A-Z]{3}$")


def round_money(
    value: Decimal,
    decimal_places: int = 2,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """Round a monetary value to the given decimal places (half-up)."""
    quantize_str = "1" if decimal_places == 0 else "0." + "0" * decimal_places
    return value.quantize(Decimal(quantize_str), rounding=rounding)


def validate_currency_code(currency: str) -> str:
    """Return the upper-cased code, or raise ``InvalidCurrencyCodeError``."""
    if not isinstance(currency, str):
        raise InvalidCurrencyCodeError(str(currency))
    normalized = currency.strip().upper()
    if not _CURRENCY_RE.match(normalized):
        raise InvalidCurrencyCodeError(currency)
    return normalized


def validate_ownership_percentage(company_id: str, percentage: Decimal) -> Decimal:
    """Ownership must lie in the closed range 0..100."""
    pct = Decimal(percentage)
    if pct < ZERO or pct > HUNDRED:
        raise InvalidOwnershipPercentageError(company_id, pct)
    return pct


def split_by_ownership(balance: Decimal, ownership_percentage: Decimal) -> tuple[Decimal, Decimal]:
    """
    Split a balance into (parent_share, nci_share).

    The NCI share is rounded; the parent share is the remainder so the two
    always sum back exactly to ``balance``.
    """
    nci = round_money(balance * (HUNDRED - ownership_percentage) / HUNDRED)
    return balance - nci, nci
