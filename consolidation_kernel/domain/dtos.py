"""
Domain DTOs (``consolidation_kernel.domain.dtos``).

Responsibility
--------------
Frozen value objects that cross the boundary between collaborators
(ledger, fiscal calendar), the pure engines and the module services:
group membership, member trial balances, and the consolidated trial
balance a completed run owns.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants enforced
-------------------
* ``MemberCompany.ownership_percentage`` lies in 0..100 and the
  functional currency is a three-letter code (rejected at construction).
* A member built without an explicit method takes the one its ownership
  implies (``determine_method``).
* A ``ConsolidationGroup`` contains its parent exactly once, owned 100%
  under FullConsolidation.
* ``ConsolidatedTrialBalance`` holds one line per account number,
  ordered by account number; ``nci_amount`` is ``None`` unless a
  FullConsolidation subsidiary with ownership < 100% contributed.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from consolidation_kernel.domain.accounts import AccountCategory
from consolidation_kernel.domain.values import (
    HUNDRED,
    ZERO,
    validate_currency_code,
    validate_ownership_percentage,
)


class ConsolidationMethod(str, Enum):
    FULL_CONSOLIDATION = "FullConsolidation"
    EQUITY_METHOD = "EquityMethod"
    COST_METHOD = "CostMethod"
    VARIABLE_INTEREST_ENTITY = "VariableInterestEntity"

    @property
    def is_line_by_line(self) -> bool:
        """Full consolidation and VIEs are aggregated account by account."""
        return self in (
            ConsolidationMethod.FULL_CONSOLIDATION,
            ConsolidationMethod.VARIABLE_INTEREST_ENTITY,
        )


FULL_CONSOLIDATION_THRESHOLD = Decimal("50")
EQUITY_METHOD_THRESHOLD = Decimal("20")


def determine_method(
    ownership_percentage: Decimal,
    is_vie_primary_beneficiary: bool = False,
) -> ConsolidationMethod:
    """
    Consolidation method implied by ownership.

    Above 50% is full consolidation, 20% to 50% inclusive is the equity
    method, below 20% is the cost method.  A primary beneficiary of a
    variable interest entity consolidates fully whatever it owns.
    """
    if is_vie_primary_beneficiary:
        return ConsolidationMethod.FULL_CONSOLIDATION
    if ownership_percentage > FULL_CONSOLIDATION_THRESHOLD:
        return ConsolidationMethod.FULL_CONSOLIDATION
    if ownership_percentage >= EQUITY_METHOD_THRESHOLD:
        return ConsolidationMethod.EQUITY_METHOD
    return ConsolidationMethod.COST_METHOD


@dataclass(frozen=True)
class AccountRef:
    """Identity of an account in the shared group chart of accounts."""

    number: str
    name: str
    category: AccountCategory


@dataclass(frozen=True)
class MemberCompany:
    """A company in a consolidation group; immutable for a run."""

    company_id: str
    name: str
    ownership_percentage: Decimal
    functional_currency: str
    method: ConsolidationMethod | None = None
    is_vie_primary_beneficiary: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(
            self,
            "ownership_percentage",
            validate_ownership_percentage(self.company_id, self.ownership_percentage),
        )
        object.__setattr__(
            self, "functional_currency", validate_currency_code(self.functional_currency),
        )
        if self.method is None:
            object.__setattr__(
                self,
                "method",
                determine_method(self.ownership_percentage, self.is_vie_primary_beneficiary),
            )

    @property
    def has_nci(self) -> bool:
        return (
            self.method == ConsolidationMethod.FULL_CONSOLIDATION
            and self.ownership_percentage < HUNDRED
        )


@dataclass(frozen=True)
class ConsolidationGroup:
    group_id: str
    name: str
    parent_company_id: str
    reporting_currency: str
    members: tuple[MemberCompany, ...]

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "reporting_currency", validate_currency_code(self.reporting_currency),
        )
        ids = [m.company_id for m in self.members]
        if len(ids) != len(set(ids)):
            raise ValueError(f"Group {self.group_id} lists a member more than once")
        parent = self.member(self.parent_company_id)
        if parent is None:
            raise ValueError(
                f"Parent company {self.parent_company_id} is not a member of "
                f"group {self.group_id}"
            )
        if (
            parent.method != ConsolidationMethod.FULL_CONSOLIDATION
            or parent.ownership_percentage != HUNDRED
        ):
            raise ValueError(
                f"Parent company {self.parent_company_id} must be fully "
                f"consolidated at 100%"
            )

    def member(self, company_id: str | None) -> MemberCompany | None:
        for m in self.members:
            if m.company_id == company_id:
                return m
        return None

    @property
    def line_by_line_members(self) -> tuple[MemberCompany, ...]:
        return tuple(m for m in self.members if m.method.is_line_by_line)

    @property
    def equity_method_members(self) -> tuple[MemberCompany, ...]:
        return tuple(
            m for m in self.members if m.method == ConsolidationMethod.EQUITY_METHOD
        )


@dataclass(frozen=True)
class FiscalPeriod:
    period_ref: str
    start_date: date
    end_date: date

    def contains(self, d: date) -> bool:
        return self.start_date <= d <= self.end_date


# =========================================================================
# Member trial balances (from the ledger collaborator)
# =========================================================================


@dataclass(frozen=True)
class MemberBalance:
    """Natural balance of one account in the member's own currency."""

    account_number: str
    account_name: str
    category: AccountCategory
    balance: Decimal
    tags: tuple[str, ...] = ()

    @property
    def account(self) -> AccountRef:
        return AccountRef(self.account_number, self.account_name, self.category)


@dataclass(frozen=True)
class MemberTrialBalance:
    company_id: str
    period_ref: str
    currency: str
    lines: tuple[MemberBalance, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "currency", validate_currency_code(self.currency))


# =========================================================================
# Consolidated trial balance
# =========================================================================


@dataclass(frozen=True)
class ConsolidatedTrialBalanceLineItem:
    """
    One account across the group, netted and eliminated.

    ``consolidated_balance`` is the parent-attributable natural balance;
    ``nci_amount`` is the non-controlling share, or ``None`` when no
    partially-owned FullConsolidation subsidiary contributed.
    """

    account_number: str
    account_name: str
    category: AccountCategory
    consolidated_balance: Decimal
    nci_amount: Decimal | None = None
    tags: tuple[str, ...] = ()

    @property
    def total_balance(self) -> Decimal:
        return self.consolidated_balance + (self.nci_amount or ZERO)


@dataclass(frozen=True)
class ConsolidatedTrialBalance:
    run_id: UUID
    group_id: str
    as_of_date: date
    period_ref: str
    currency: str
    line_items: tuple[ConsolidatedTrialBalanceLineItem, ...] = field(default=())

    def __post_init__(self) -> None:
        numbers = [li.account_number for li in self.line_items]
        if len(numbers) != len(set(numbers)):
            raise ValueError("Consolidated trial balance has duplicate accounts")
        object.__setattr__(
            self,
            "line_items",
            tuple(sorted(self.line_items, key=lambda li: li.account_number)),
        )

    def get(self, account_number: str) -> ConsolidatedTrialBalanceLineItem | None:
        for li in self.line_items:
            if li.account_number == account_number:
                return li
        return None
