"""
Intercompany domain types (``consolidation_kernel.domain.intercompany``).

Responsibility
--------------
Value objects for intercompany transactions, the elimination rule table,
and the elimination entries the engine produces.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants enforced
-------------------
* ``from_company_id != to_company_id`` (rejected at construction).
* ``variance_amount`` is present iff the status has a variance
  (PartiallyMatched or VarianceApproved).
* ``variance_explanation`` is a non-empty string iff the status is
  VarianceApproved.
* ``requires_elimination`` iff the status is Matched or VarianceApproved.

Direction convention: the *from* company holds the income or asset side
of the dealing (seller, service provider, lender, dividend recipient,
contributing investor); the *to* company holds the expense, liability or
equity side.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, replace
from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from consolidation_kernel.domain.dtos import AccountRef
from consolidation_kernel.domain.values import ZERO, validate_currency_code
from consolidation_kernel.exceptions import (
    InvalidMatchingStatusTransitionError,
    SelfReferentialIntercompanyTransactionError,
    VarianceExplanationRequiredError,
)


class IntercompanyTransactionType(str, Enum):
    SALE_PURCHASE = "SalePurchase"
    LOAN = "Loan"
    MANAGEMENT_FEE = "ManagementFee"
    DIVIDEND = "Dividend"
    CAPITAL_CONTRIBUTION = "CapitalContribution"
    COST_ALLOCATION = "CostAllocation"
    ROYALTY = "Royalty"


class MatchingStatus(str, Enum):
    MATCHED = "Matched"
    UNMATCHED = "Unmatched"
    PARTIALLY_MATCHED = "PartiallyMatched"
    VARIANCE_APPROVED = "VarianceApproved"

    @property
    def has_variance(self) -> bool:
        return self in (MatchingStatus.PARTIALLY_MATCHED, MatchingStatus.VARIANCE_APPROVED)

    @property
    def requires_elimination(self) -> bool:
        return self in (MatchingStatus.MATCHED, MatchingStatus.VARIANCE_APPROVED)


class TransactionSide(str, Enum):
    FROM = "from"
    TO = "to"


class DiscrepancyReason(str, Enum):
    MISSING_COUNTERPART = "MissingCounterpart"
    AMOUNT_MISMATCH = "AmountMismatch"
    NO_ELIMINATION_RULE = "NoEliminationRule"


@dataclass(frozen=True)
class LedgerReference:
    """A posted ledger entry on one side of an intercompany dealing."""

    entry_id: str
    amount: Decimal
    recorded_on: date | None = None


@dataclass(frozen=True)
class IntercompanyTransaction:
    id: UUID
    from_company_id: str
    to_company_id: str
    transaction_type: IntercompanyTransactionType
    transaction_date: date
    amount: Decimal
    currency: str
    from_entry: LedgerReference | None = None
    to_entry: LedgerReference | None = None
    matching_status: MatchingStatus = MatchingStatus.UNMATCHED
    variance_amount: Decimal | None = None
    variance_explanation: str | None = None
    interest_amount: Decimal = ZERO
    settled_amount: Decimal = ZERO
    description: str = ""

    def __post_init__(self) -> None:
        if self.from_company_id == self.to_company_id:
            raise SelfReferentialIntercompanyTransactionError(self.from_company_id)
        object.__setattr__(self, "currency", validate_currency_code(self.currency))
        if self.matching_status.has_variance != (self.variance_amount is not None):
            raise ValueError(
                f"Transaction {self.id}: variance_amount must be present iff "
                f"status is PartiallyMatched or VarianceApproved "
                f"(status={self.matching_status.value})"
            )
        approved = self.matching_status == MatchingStatus.VARIANCE_APPROVED
        explained = bool(self.variance_explanation and self.variance_explanation.strip())
        if approved and not explained:
            raise VarianceExplanationRequiredError(str(self.id))
        if not approved and self.variance_explanation is not None:
            raise ValueError(
                f"Transaction {self.id}: variance_explanation is only "
                f"recorded on approved variances"
            )

    @property
    def has_variance(self) -> bool:
        return self.matching_status.has_variance

    @property
    def requires_elimination(self) -> bool:
        return self.matching_status.requires_elimination

    def entry_for(self, side: TransactionSide) -> LedgerReference | None:
        return self.from_entry if side == TransactionSide.FROM else self.to_entry

    def company_for(self, side: TransactionSide) -> str:
        return self.from_company_id if side == TransactionSide.FROM else self.to_company_id

    def side_amount(self, side: TransactionSide) -> Decimal:
        """
        Amount to eliminate on one side.

        Approved variances use what each side actually recorded; every other
        status uses the agreed amount.
        """
        entry = self.entry_for(side)
        if self.matching_status == MatchingStatus.VARIANCE_APPROVED and entry is not None:
            return entry.amount
        return self.amount

    def with_status(
        self,
        status: MatchingStatus,
        variance_amount: Decimal | None = None,
        variance_explanation: str | None = None,
    ) -> IntercompanyTransaction:
        return replace(
            self,
            matching_status=status,
            variance_amount=variance_amount,
            variance_explanation=variance_explanation,
        )

    def approve_variance(self, explanation: str) -> IntercompanyTransaction:
        """Reviewer approval; the only manually triggered status change."""
        if self.matching_status != MatchingStatus.PARTIALLY_MATCHED:
            raise InvalidMatchingStatusTransitionError(
                str(self.id),
                self.matching_status.value,
                MatchingStatus.VARIANCE_APPROVED.value,
            )
        if not explanation or not explanation.strip():
            raise VarianceExplanationRequiredError(str(self.id))
        return self.with_status(
            MatchingStatus.VARIANCE_APPROVED,
            variance_amount=self.variance_amount,
            variance_explanation=explanation.strip(),
        )


@dataclass(frozen=True)
class ReconciliationItem:
    """An intercompany dealing excluded from elimination, for manual review."""

    transaction_id: UUID
    from_company_id: str
    to_company_id: str
    transaction_type: IntercompanyTransactionType
    transaction_date: date
    amount: Decimal
    currency: str
    matching_status: MatchingStatus
    reason: DiscrepancyReason
    variance_amount: Decimal | None = None

    @classmethod
    def from_transaction(cls, txn: IntercompanyTransaction) -> ReconciliationItem:
        reason = (
            DiscrepancyReason.AMOUNT_MISMATCH
            if txn.matching_status == MatchingStatus.PARTIALLY_MATCHED
            else DiscrepancyReason.MISSING_COUNTERPART
        )
        return cls(
            transaction_id=txn.id,
            from_company_id=txn.from_company_id,
            to_company_id=txn.to_company_id,
            transaction_type=txn.transaction_type,
            transaction_date=txn.transaction_date,
            amount=txn.amount,
            currency=txn.currency,
            matching_status=txn.matching_status,
            reason=reason,
            variance_amount=txn.variance_amount,
        )


# =========================================================================
# Elimination rules and entries
# =========================================================================


class EliminationType(str, Enum):
    RECEIVABLE_PAYABLE = "IntercompanyReceivablePayable"
    REVENUE_EXPENSE = "IntercompanyRevenueExpense"
    LOAN = "IntercompanyLoan"
    INTEREST = "IntercompanyInterest"
    DIVIDEND = "IntercompanyDividend"
    INVESTMENT = "IntercompanyInvestment"
    UNREALIZED_PROFIT_INVENTORY = "UnrealizedProfitInventory"


class AmountBasis(str, Enum):
    """Which amount of the transaction an elimination pair removes."""

    AMOUNT = "amount"
    OUTSTANDING = "outstanding"
    INTEREST = "interest"
    UNREALIZED_PROFIT = "unrealized_profit"


@dataclass(frozen=True)
class EliminationPair:
    """
    Debit one account, credit another.

    The debit line carries the ``debit_side`` company's amount and the
    credit line the ``credit_side`` company's amount.
    """

    elimination_type: EliminationType
    debit_account: AccountRef
    debit_side: TransactionSide
    credit_account: AccountRef
    credit_side: TransactionSide
    basis: AmountBasis = AmountBasis.AMOUNT


@dataclass(frozen=True)
class EliminationRule:
    """Elimination treatment for one transaction type; lower priority runs first."""

    name: str
    transaction_type: IntercompanyTransactionType
    pairs: tuple[EliminationPair, ...]
    priority: int = 100
    is_active: bool = True
    is_automatic: bool = True
    unrealized_profit_rate: Decimal | None = None
    description: str = ""

    def __post_init__(self) -> None:
        if not self.pairs:
            raise ValueError(f"Elimination rule {self.name} has no account pairs")
        needs_rate = any(p.basis == AmountBasis.UNREALIZED_PROFIT for p in self.pairs)
        if needs_rate and self.unrealized_profit_rate is None:
            raise ValueError(
                f"Elimination rule {self.name} eliminates unrealized profit "
                f"but has no unrealized_profit_rate"
            )
        if self.unrealized_profit_rate is not None and not (
            ZERO <= self.unrealized_profit_rate <= Decimal("1")
        ):
            raise ValueError(
                f"Elimination rule {self.name}: unrealized_profit_rate must be "
                f"between 0 and 1"
            )


def applicable_rules(
    rules: Iterable[EliminationRule],
    transaction_type: IntercompanyTransactionType,
) -> tuple[EliminationRule, ...]:
    """Active automatic rules for a transaction type, lowest priority first."""
    return tuple(
        sorted(
            (
                r for r in rules
                if r.transaction_type == transaction_type
                and r.is_active
                and r.is_automatic
            ),
            key=lambda r: (r.priority, r.name),
        )
    )


@dataclass(frozen=True)
class EliminationLine:
    """One debit or credit line in group currency."""

    account: AccountRef
    company_id: str | None
    debit: Decimal = ZERO
    credit: Decimal = ZERO
    memo: str = ""


@dataclass(frozen=True)
class EliminationEntry:
    transaction_id: UUID
    rule_name: str
    elimination_types: tuple[EliminationType, ...]
    lines: tuple[EliminationLine, ...]

    @property
    def total_debits(self) -> Decimal:
        return sum((line.debit for line in self.lines), ZERO)

    @property
    def total_credits(self) -> Decimal:
        return sum((line.credit for line in self.lines), ZERO)

    @property
    def is_balanced(self) -> bool:
        return self.total_debits == self.total_credits
