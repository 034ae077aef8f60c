"""
Typed exception hierarchy for the consolidation engine.

Every error has a typed class (catch by type, not message), a class-level
``code`` attribute (machine-readable, API-safe) and structured data
attributes (not just a message string).

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    ConsolidationError (base)
    |
    +-- DataAvailabilityError            fatal to a run
    |   +-- MissingExchangeRateError
    |   +-- MissingMemberTrialBalanceError
    |   +-- FiscalPeriodNotFoundError
    |   +-- ConsolidationGroupNotFoundError
    |
    +-- ConsistencyError                 fatal, never auto-corrected
    |   +-- BalanceSheetNotBalancedError
    |   +-- TrialBalanceNotBalancedError
    |   +-- EliminationEntryNotBalancedError
    |
    +-- ValidationError                  rejected at creation time
    |   +-- InvalidOwnershipPercentageError
    |   +-- SelfReferentialIntercompanyTransactionError
    |   +-- InvalidCurrencyCodeError
    |   +-- UnmappedAccountCategoryError
    |   +-- ChartOfAccountsConflictError
    |   +-- MemberCurrencyMismatchError
    |   +-- VarianceExplanationRequiredError
    |   +-- InvalidMatchingStatusTransitionError
    |
    +-- RunError
    |   +-- ConsolidationRunNotFoundError
    |   +-- ConsolidationRunNotCompletedError
    |   +-- ConsolidationRunExistsError
    |   +-- InvalidRunTransitionError
    |
    +-- IntercompanyTransactionNotFoundError

===============================================================================
ERROR CODE REFERENCE
===============================================================================

Category        | Code                                  | When raised
----------------|---------------------------------------|---------------------------
Data            | EXCHANGE_RATE_NOT_FOUND               | No closing/average rate
Data            | MEMBER_TRIAL_BALANCE_NOT_FOUND        | Ledger has no TB for member
Data            | FISCAL_PERIOD_NOT_FOUND               | periodRef does not resolve
Data            | CONSOLIDATION_GROUP_NOT_FOUND         | Unknown group id
Consistency     | BALANCE_SHEET_NOT_BALANCED            | A != L + E beyond 0.01
Consistency     | ELIMINATION_ENTRY_NOT_BALANCED        | Debits != credits in entry
Consistency     | TRIAL_BALANCE_NOT_BALANCED            | Consolidated Dr != Cr
Validation      | INVALID_OWNERSHIP_PERCENTAGE          | Outside 0..100
Validation      | SELF_REFERENTIAL_IC_TRANSACTION       | from == to company
Validation      | INVALID_CURRENCY_CODE                 | Not a 3-letter code
Validation      | UNMAPPED_ACCOUNT_CATEGORY             | No section for category
Validation      | CHART_OF_ACCOUNTS_CONFLICT            | Category differs by member
Validation      | MEMBER_CURRENCY_MISMATCH              | TB not in functional ccy
Validation      | VARIANCE_EXPLANATION_REQUIRED         | Blank approval text
Validation      | INVALID_MATCHING_STATUS_TRANSITION    | Approve non-variance item
Run             | CONSOLIDATION_RUN_NOT_FOUND           | Unknown run id
Run             | CONSOLIDATION_RUN_NOT_COMPLETED       | TB requested too early
Run             | CONSOLIDATION_RUN_EXISTS              | Second active run insert
Run             | INVALID_RUN_TRANSITION                | Illegal state change

Usage::

    try:
        tb = service.get_consolidated_trial_balance(run_id)
    except ConsolidationRunNotCompletedError as e:
        api_response(code=e.code, run_id=str(e.run_id), status=e.status)
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID


class ConsolidationError(Exception):
    """
    Base exception for all consolidation errors.

    All subclasses carry a ``code`` class attribute.
    """

    code: str = "CONSOLIDATION_ERROR"


# =============================================================================
# Data availability
# =============================================================================


class DataAvailabilityError(ConsolidationError):
    """Required input data is missing; fatal to the run."""

    code: str = "DATA_AVAILABILITY_ERROR"


class MissingExchangeRateError(DataAvailabilityError):
    """No exchange rate exists for the currency pair and date/period."""

    code: str = "EXCHANGE_RATE_NOT_FOUND"

    def __init__(self, from_currency: str, to_currency: str, as_of: str, rate_type: str):
        self.from_currency = from_currency
        self.to_currency = to_currency
        self.as_of = as_of
        self.rate_type = rate_type
        super().__init__(
            f"No {rate_type} exchange rate found for "
            f"{from_currency}/{to_currency} as of {as_of}"
        )


class MissingMemberTrialBalanceError(DataAvailabilityError):
    """The ledger has no trial balance for a member company in the period."""

    code: str = "MEMBER_TRIAL_BALANCE_NOT_FOUND"

    def __init__(self, company_id: str, period_ref: str):
        self.company_id = company_id
        self.period_ref = period_ref
        super().__init__(
            f"No trial balance for member company {company_id} in period {period_ref}"
        )


class FiscalPeriodNotFoundError(DataAvailabilityError):
    """The period reference does not resolve to a fiscal period."""

    code: str = "FISCAL_PERIOD_NOT_FOUND"

    def __init__(self, period_ref: str):
        self.period_ref = period_ref
        super().__init__(f"Fiscal period not found: {period_ref}")


class ConsolidationGroupNotFoundError(DataAvailabilityError):
    """Unknown consolidation group."""

    code: str = "CONSOLIDATION_GROUP_NOT_FOUND"

    def __init__(self, group_id: str):
        self.group_id = group_id
        super().__init__(f"Consolidation group not found: {group_id}")


# =============================================================================
# Consistency
# =============================================================================


class ConsistencyError(ConsolidationError):
    """Consolidated figures violate an accounting identity."""

    code: str = "CONSISTENCY_ERROR"


class BalanceSheetNotBalancedError(ConsistencyError):
    """Total assets differ from liabilities plus equity beyond tolerance."""

    code: str = "BALANCE_SHEET_NOT_BALANCED"

    def __init__(self, total_assets: Decimal, total_liabilities_and_equity: Decimal):
        self.total_assets = total_assets
        self.total_liabilities_and_equity = total_liabilities_and_equity
        self.difference = total_assets - total_liabilities_and_equity
        super().__init__(
            f"Consolidated balance sheet does not balance: assets "
            f"{total_assets} vs liabilities and equity "
            f"{total_liabilities_and_equity} (difference {self.difference})"
        )


class TrialBalanceNotBalancedError(ConsistencyError):
    """The consolidated trial balance debits and credits differ."""

    code: str = "TRIAL_BALANCE_NOT_BALANCED"

    def __init__(self, debits: Decimal, credits: Decimal):
        self.debits = debits
        self.credits = credits
        self.difference = debits - credits
        super().__init__(
            f"Consolidated trial balance does not balance: debits {debits}, "
            f"credits {credits} (difference {self.difference})"
        )


class EliminationEntryNotBalancedError(ConsistencyError):
    """An elimination entry's debits and credits differ."""

    code: str = "ELIMINATION_ENTRY_NOT_BALANCED"

    def __init__(self, transaction_id: str, debits: Decimal, credits: Decimal):
        self.transaction_id = transaction_id
        self.debits = debits
        self.credits = credits
        super().__init__(
            f"Elimination entry for {transaction_id} is not balanced: "
            f"debits {debits}, credits {credits}"
        )


# =============================================================================
# Input validation
# =============================================================================


class ValidationError(ConsolidationError):
    """Input rejected at creation time; never enters a run."""

    code: str = "VALIDATION_ERROR"


class InvalidOwnershipPercentageError(ValidationError):
    """Ownership percentage outside the 0..100 range."""

    code: str = "INVALID_OWNERSHIP_PERCENTAGE"

    def __init__(self, company_id: str, ownership_percentage: Decimal):
        self.company_id = company_id
        self.ownership_percentage = ownership_percentage
        super().__init__(
            f"Ownership percentage {ownership_percentage} for company "
            f"{company_id} must be between 0 and 100"
        )


class SelfReferentialIntercompanyTransactionError(ValidationError):
    """An intercompany transaction names the same company on both sides."""

    code: str = "SELF_REFERENTIAL_IC_TRANSACTION"

    def __init__(self, company_id: str):
        self.company_id = company_id
        super().__init__(
            f"Intercompany transaction cannot reference the same company "
            f"on both sides: {company_id}"
        )


class InvalidCurrencyCodeError(ValidationError):
    """Currency code is not a three-letter ISO 4217 style code."""

    code: str = "INVALID_CURRENCY_CODE"

    def __init__(self, currency: str):
        self.currency = currency
        super().__init__(f"Invalid currency code: {currency!r}")


class UnmappedAccountCategoryError(ValidationError):
    """An account category has no statement mapping."""

    code: str = "UNMAPPED_ACCOUNT_CATEGORY"

    def __init__(self, category: str):
        self.category = category
        super().__init__(f"Account category has no mapping: {category}")


class ChartOfAccountsConflictError(ValidationError):
    """Members report the same account number under different categories."""

    code: str = "CHART_OF_ACCOUNTS_CONFLICT"

    def __init__(self, account_number: str, categories: list[str]):
        self.account_number = account_number
        self.categories = categories
        super().__init__(
            f"Account {account_number} is reported under conflicting "
            f"categories: {', '.join(sorted(categories))}"
        )


class MemberCurrencyMismatchError(ValidationError):
    """A member trial balance is not in the member's functional currency."""

    code: str = "MEMBER_CURRENCY_MISMATCH"

    def __init__(self, company_id: str, expected: str, actual: str):
        self.company_id = company_id
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Trial balance for {company_id} is in {actual}, expected "
            f"functional currency {expected}"
        )


class VarianceExplanationRequiredError(ValidationError):
    """A variance cannot be approved without a non-empty explanation."""

    code: str = "VARIANCE_EXPLANATION_REQUIRED"

    def __init__(self, transaction_id: str):
        self.transaction_id = transaction_id
        super().__init__(
            f"Variance explanation required to approve transaction {transaction_id}"
        )


class InvalidMatchingStatusTransitionError(ValidationError):
    """Matching status change not allowed from the current status."""

    code: str = "INVALID_MATCHING_STATUS_TRANSITION"

    def __init__(self, transaction_id: str, current_status: str, target_status: str):
        self.transaction_id = transaction_id
        self.current_status = current_status
        self.target_status = target_status
        super().__init__(
            f"Intercompany transaction {transaction_id} cannot move from "
            f"{current_status} to {target_status}"
        )


# =============================================================================
# Run lifecycle
# =============================================================================


class RunError(ConsolidationError):
    """Base for consolidation run lifecycle errors."""

    code: str = "RUN_ERROR"


class ConsolidationRunNotFoundError(RunError):
    """Unknown consolidation run."""

    code: str = "CONSOLIDATION_RUN_NOT_FOUND"

    def __init__(self, run_id: UUID | str):
        self.run_id = run_id
        super().__init__(f"Consolidation run not found: {run_id}")


class ConsolidationRunNotCompletedError(RunError):
    """The consolidated trial balance is only available once a run completes."""

    code: str = "CONSOLIDATION_RUN_NOT_COMPLETED"

    def __init__(self, run_id: UUID | str, status: str):
        self.run_id = run_id
        self.status = status
        super().__init__(
            f"Consolidation run {run_id} is {status}; trial balance is only "
            f"available for completed runs"
        )


class ConsolidationRunExistsError(RunError):
    """An active run already exists for the group and period."""

    code: str = "CONSOLIDATION_RUN_EXISTS"

    def __init__(self, group_id: str, period_ref: str):
        self.group_id = group_id
        self.period_ref = period_ref
        super().__init__(
            f"An active consolidation run already exists for group "
            f"{group_id} period {period_ref}"
        )


class InvalidRunTransitionError(RunError):
    """Illegal consolidation run state transition."""

    code: str = "INVALID_RUN_TRANSITION"

    def __init__(self, run_id: UUID | str, from_status: str, to_status: str):
        self.run_id = run_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Consolidation run {run_id} cannot transition from "
            f"{from_status} to {to_status}"
        )


class IntercompanyTransactionNotFoundError(ConsolidationError):
    """Unknown intercompany transaction."""

    code: str = "IC_TRANSACTION_NOT_FOUND"

    def __init__(self, transaction_id: UUID | str):
        self.transaction_id = transaction_id
        super().__init__(f"Intercompany transaction not found: {transaction_id}")
