"""
Configuration schema for the consolidation engine.

Frozen dataclasses validated in ``__post_init__``; parsed from YAML by
``consolidation_config.loader``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

from consolidation_kernel.domain.accounts import AccountCategory
from consolidation_kernel.domain.dtos import AccountRef
from consolidation_kernel.domain.intercompany import EliminationRule


@dataclass(frozen=True)
class SpecialAccounts:
    """Accounts the engine books to on its own initiative."""

    cta: AccountRef
    ic_variance: AccountRef
    equity_method_investment: AccountRef
    equity_pickup_income: AccountRef

    def __post_init__(self) -> None:
        if self.cta.category != AccountCategory.OTHER_COMPREHENSIVE_INCOME:
            raise ValueError("CTA account must be an OtherComprehensiveIncome account")
        if self.equity_method_investment.category not in (
            AccountCategory.NON_CURRENT_ASSET,
            AccountCategory.FIXED_ASSET,
            AccountCategory.INTANGIBLE_ASSET,
        ):
            raise ValueError("Equity-method investment must be a non-current asset")


@dataclass(frozen=True)
class ConsolidationConfig:
    """Consolidation engine configuration."""

    accounts: SpecialAccounts
    elimination_rules: tuple[EliminationRule, ...] = ()
    matching_tolerance: Decimal = Decimal("0.01")
    date_tolerance_days: int = 3
    max_workers: int = 4
    chart: dict[str, AccountRef] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.matching_tolerance < 0:
            raise ValueError("matching_tolerance cannot be negative")
        if self.date_tolerance_days < 0:
            raise ValueError("date_tolerance_days cannot be negative")
        if self.max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        names = [r.name for r in self.elimination_rules]
        if len(names) != len(set(names)):
            raise ValueError("Elimination rule names must be unique")

    @classmethod
    def with_defaults(cls) -> ConsolidationConfig:
        """Packaged default chart and rule table."""
        from consolidation_config.loader import load_config

        return load_config()

    @classmethod
    def from_dict(cls, data: dict) -> ConsolidationConfig:
        from consolidation_config.loader import parse_config

        return parse_config(data)
