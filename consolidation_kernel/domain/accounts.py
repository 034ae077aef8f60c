"""
Account taxonomy (``consolidation_kernel.domain.accounts``).

Responsibility
--------------
The closed set of account categories shared by every member company's
chart of accounts, together with the two exhaustive mappings that the
rest of the engine depends on: the normal balance side of a category
and the statement section it belongs to.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants enforced
-------------------
* Every ``AccountCategory`` member has exactly one ``NormalSide`` and one
  ``StatementSection``; lookups go through ``match`` statements with no
  default branch, and an unmapped value raises
  ``UnmappedAccountCategoryError``.
* Balances throughout the engine are *natural* balances: positive on the
  account's normal side.  TreasuryStock is debit-normal and therefore
  reduces equity.
"""

from __future__ import annotations

from enum import Enum

from consolidation_kernel.exceptions import UnmappedAccountCategoryError


class AccountCategory(str, Enum):
    """Fixed accounting taxonomy used by all member companies."""

    CURRENT_ASSET = "CurrentAsset"
    NON_CURRENT_ASSET = "NonCurrentAsset"
    FIXED_ASSET = "FixedAsset"
    INTANGIBLE_ASSET = "IntangibleAsset"
    CURRENT_LIABILITY = "CurrentLiability"
    NON_CURRENT_LIABILITY = "NonCurrentLiability"
    CONTRIBUTED_CAPITAL = "ContributedCapital"
    RETAINED_EARNINGS = "RetainedEarnings"
    OTHER_COMPREHENSIVE_INCOME = "OtherComprehensiveIncome"
    TREASURY_STOCK = "TreasuryStock"
    OPERATING_REVENUE = "OperatingRevenue"
    OTHER_REVENUE = "OtherRevenue"
    COST_OF_GOODS_SOLD = "CostOfGoodsSold"
    OPERATING_EXPENSE = "OperatingExpense"
    DEPRECIATION_AMORTIZATION = "DepreciationAmortization"
    INTEREST_EXPENSE = "InterestExpense"
    OTHER_EXPENSE = "OtherExpense"
    TAX_EXPENSE = "TaxExpense"


class NormalSide(str, Enum):
    DEBIT = "debit"
    CREDIT = "credit"


class StatementSection(str, Enum):
    """Presentation section of a category on the consolidated statements."""

    CURRENT_ASSETS = "current_assets"
    NON_CURRENT_ASSETS = "non_current_assets"
    CURRENT_LIABILITIES = "current_liabilities"
    NON_CURRENT_LIABILITIES = "non_current_liabilities"
    EQUITY = "equity"
    REVENUE = "revenue"
    COST_OF_SALES = "cost_of_sales"
    OPERATING_EXPENSES = "operating_expenses"
    OTHER_INCOME_EXPENSE = "other_income_expense"
    TAX = "tax"

    @property
    def is_balance_sheet(self) -> bool:
        return self in _BALANCE_SHEET_SECTIONS


_BALANCE_SHEET_SECTIONS = frozenset({
    StatementSection.CURRENT_ASSETS,
    StatementSection.NON_CURRENT_ASSETS,
    StatementSection.CURRENT_LIABILITIES,
    StatementSection.NON_CURRENT_LIABILITIES,
    StatementSection.EQUITY,
})


def statement_section(category: AccountCategory) -> StatementSection:
    """Map a category to its statement section (exhaustive)."""
    match category:
        case AccountCategory.CURRENT_ASSET:
            return StatementSection.CURRENT_ASSETS
        case (
            AccountCategory.NON_CURRENT_ASSET
            | AccountCategory.FIXED_ASSET
            | AccountCategory.INTANGIBLE_ASSET
        ):
            return StatementSection.NON_CURRENT_ASSETS
        case AccountCategory.CURRENT_LIABILITY:
            return StatementSection.CURRENT_LIABILITIES
        case AccountCategory.NON_CURRENT_LIABILITY:
            return StatementSection.NON_CURRENT_LIABILITIES
        case (
            AccountCategory.CONTRIBUTED_CAPITAL
            | AccountCategory.RETAINED_EARNINGS
            | AccountCategory.OTHER_COMPREHENSIVE_INCOME
            | AccountCategory.TREASURY_STOCK
        ):
            return StatementSection.EQUITY
        case AccountCategory.OPERATING_REVENUE:
            return StatementSection.REVENUE
        case AccountCategory.COST_OF_GOODS_SOLD:
            return StatementSection.COST_OF_SALES
        case (
            AccountCategory.OPERATING_EXPENSE
            | AccountCategory.DEPRECIATION_AMORTIZATION
        ):
            return StatementSection.OPERATING_EXPENSES
        case (
            AccountCategory.OTHER_REVENUE
            | AccountCategory.INTEREST_EXPENSE
            | AccountCategory.OTHER_EXPENSE
        ):
            return StatementSection.OTHER_INCOME_EXPENSE
        case AccountCategory.TAX_EXPENSE:
            return StatementSection.TAX
    raise UnmappedAccountCategoryError(str(category))


def normal_side(category: AccountCategory) -> NormalSide:
    """Normal balance side of a category (exhaustive)."""
    match category:
        case (
            AccountCategory.CURRENT_ASSET
            | AccountCategory.NON_CURRENT_ASSET
            | AccountCategory.FIXED_ASSET
            | AccountCategory.INTANGIBLE_ASSET
            | AccountCategory.TREASURY_STOCK
            | AccountCategory.COST_OF_GOODS_SOLD
            | AccountCategory.OPERATING_EXPENSE
            | AccountCategory.DEPRECIATION_AMORTIZATION
            | AccountCategory.INTEREST_EXPENSE
            | AccountCategory.OTHER_EXPENSE
            | AccountCategory.TAX_EXPENSE
        ):
            return NormalSide.DEBIT
        case (
            AccountCategory.CURRENT_LIABILITY
            | AccountCategory.NON_CURRENT_LIABILITY
            | AccountCategory.CONTRIBUTED_CAPITAL
            | AccountCategory.RETAINED_EARNINGS
            | AccountCategory.OTHER_COMPREHENSIVE_INCOME
            | AccountCategory.OPERATING_REVENUE
            | AccountCategory.OTHER_REVENUE
        ):
            return NormalSide.CREDIT
    raise UnmappedAccountCategoryError(str(category))


def is_balance_sheet(category: AccountCategory) -> bool:
    return statement_section(category).is_balance_sheet


def is_income_statement(category: AccountCategory) -> bool:
    return not statement_section(category).is_balance_sheet


def is_revenue(category: AccountCategory) -> bool:
    """Credit-normal income statement category."""
    return is_income_statement(category) and normal_side(category) == NormalSide.CREDIT


def signed_for_debit(category: AccountCategory) -> int:
    """+1 when a debit increases the natural balance, -1 otherwise."""
    return 1 if normal_side(category) == NormalSide.DEBIT else -1
