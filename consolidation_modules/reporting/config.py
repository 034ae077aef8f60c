"""
Reporting Configuration Schema.

Controls cash identification for the cash flow statement, the balance
check tolerance, and zero-balance presentation.  Section assignment is
not configurable: it follows the account category taxonomy.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Self

from consolidation_kernel.logging_config import get_logger

logger = get_logger("modules.reporting.config")


@dataclass(frozen=True)
class ReportingConfig:
    """Configuration for consolidated report generation."""

    # Current-asset accounts treated as cash and cash equivalents
    cash_account_prefixes: tuple[str, ...] = ("1000", "1020", "1030", "1040")
    cash_tag: str = "cash"

    # |assets - (liabilities + equity)| allowed before the check fails
    balance_tolerance: Decimal = Decimal("0.01")

    # Whether to include accounts with zero balance in report sections
    include_zero_balances: bool = False

    def __post_init__(self):
        if self.balance_tolerance < 0:
            raise ValueError("balance_tolerance cannot be negative")

    def is_cash_account(self, account_number: str, tags: tuple[str, ...]) -> bool:
        if self.cash_tag in tags:
            return True
        return any(account_number.startswith(p) for p in self.cash_account_prefixes)

    @classmethod
    def with_defaults(cls) -> Self:
        """Create config with standard defaults."""
        return cls()

    @classmethod
    def from_dict(cls, data: dict) -> Self:
        """Create config from dictionary."""
        data = dict(data)
        if "cash_account_prefixes" in data:
            data["cash_account_prefixes"] = tuple(str(p) for p in data["cash_account_prefixes"])
        if "balance_tolerance" in data:
            data["balance_tolerance"] = Decimal(str(data["balance_tolerance"]))
        logger.info(
            "reporting_config_loading_from_dict",
            extra={"keys": sorted(data.keys())},
        )
        return cls(**data)
