"""
Consolidated Report Models (``consolidation_modules.reporting.models``).

Responsibility
--------------
Frozen dataclass value objects for the four consolidated statements:
balance sheet, income statement, cash flow statement and statement of
changes in equity.

Architecture position
---------------------
**Modules layer** -- pure data definitions with ZERO I/O.  Built by
``consolidation_modules.reporting.statements`` and returned to callers.

Invariants enforced
-------------------
* All models are ``frozen=True`` (immutable after construction).
* All monetary fields use ``Decimal`` -- NEVER ``float``.
* Report amounts are presented with the section's sign: contra balances
  (e.g. treasury stock within equity, expenses within other income and
  expense) appear negative.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from consolidation_kernel.domain.accounts import AccountCategory


class ReportType(str, Enum):
    """Types of consolidated reports."""

    BALANCE_SHEET = "balance_sheet"
    INCOME_STATEMENT = "income_statement"
    CASH_FLOW = "cash_flow"
    EQUITY_STATEMENT = "equity_statement"


class EquityComponent(str, Enum):
    CONTRIBUTED_CAPITAL = "contributed_capital"
    RETAINED_EARNINGS = "retained_earnings"
    ACCUMULATED_OCI = "accumulated_oci"
    NON_CONTROLLING_INTEREST = "non_controlling_interest"


@dataclass(frozen=True)
class ReportMetadata:
    """Metadata attached to every consolidated report."""

    report_type: ReportType
    group_name: str
    currency: str
    as_of_date: date
    period_ref: str
    run_id: UUID


@dataclass(frozen=True)
class ReportLine:
    """One account as presented in a report section."""

    account_number: str
    account_name: str
    category: AccountCategory
    amount: Decimal
    nci_amount: Decimal | None = None


@dataclass(frozen=True)
class ReportSection:
    label: str
    lines: tuple[ReportLine, ...]
    total: Decimal


# =========================================================================
# Balance Sheet
# =========================================================================


@dataclass(frozen=True)
class BalanceSheetReport:
    """
    Consolidated balance sheet.

    Asset and liability sections present whole-group balances (parent
    plus NCI).  The equity section presents parent-attributable balances;
    the non-controlling interest is shown as one separate figure.
    """

    metadata: ReportMetadata

    current_assets: ReportSection
    non_current_assets: ReportSection
    total_assets: Decimal

    current_liabilities: ReportSection
    non_current_liabilities: ReportSection
    total_liabilities: Decimal

    equity: ReportSection
    net_income_attributable_to_parent: Decimal
    equity_attributable_to_parent: Decimal
    non_controlling_interest: Decimal
    total_equity: Decimal

    total_liabilities_and_equity: Decimal
    is_balanced: bool


# =========================================================================
# Income Statement
# =========================================================================


@dataclass(frozen=True)
class IncomeStatementReport:
    """
    Multi-step consolidated income statement.

    Revenue - Cost of sales = Gross profit
    Gross profit - Operating expenses = Operating income
    Operating income + Other income/expense = Income before tax
    Income before tax - Tax = Net income
    """

    metadata: ReportMetadata

    revenue: ReportSection
    cost_of_sales: ReportSection
    gross_profit: Decimal
    operating_expenses: ReportSection
    operating_income: Decimal
    other_income_expense: ReportSection
    income_before_tax: Decimal
    tax: ReportSection
    net_income: Decimal

    net_income_attributable_to_parent: Decimal
    net_income_attributable_to_nci: Decimal


# =========================================================================
# Cash Flow Statement
# =========================================================================


@dataclass(frozen=True)
class CashFlowLineItem:
    description: str
    amount: Decimal


@dataclass(frozen=True)
class CashFlowSection:
    label: str
    lines: tuple[CashFlowLineItem, ...]
    total: Decimal


@dataclass(frozen=True)
class CashFlowStatementReport:
    """
    Consolidated cash flow statement (indirect method).

    Without a prior trial balance, balances are treated as movements from
    zero and beginning cash is back-solved as ending cash minus the net
    change; ``is_provisional`` flags that approximation.
    """

    metadata: ReportMetadata

    net_income: Decimal

    operating_activities: CashFlowSection
    net_cash_from_operations: Decimal

    investing_activities: CashFlowSection
    net_cash_from_investing: Decimal

    financing_activities: CashFlowSection
    net_cash_from_financing: Decimal

    net_change_in_cash: Decimal
    beginning_cash: Decimal
    ending_cash: Decimal

    cash_change_reconciles: bool
    is_provisional: bool


# =========================================================================
# Statement of Changes in Equity
# =========================================================================


@dataclass(frozen=True)
class EquityStatementRow:
    component: EquityComponent
    opening: Decimal
    net_income: Decimal
    other_movements: Decimal
    closing: Decimal


@dataclass(frozen=True)
class EquityStatementReport:
    """
    Roll-forward of equity components from opening to closing balance.

    ``opening_balance_known`` is False when no prior trial balance was
    supplied; opening balances are then zero and the whole closing
    balance beyond net income appears as other movements.
    """

    metadata: ReportMetadata
    rows: tuple[EquityStatementRow, ...]
    total_opening: Decimal
    total_net_income: Decimal
    total_other_movements: Decimal
    total_closing: Decimal
    opening_balance_known: bool


@dataclass(frozen=True)
class ConsolidatedReports:
    """All four statements built from one completed run."""

    balance_sheet: BalanceSheetReport
    income_statement: IncomeStatementReport
    cash_flow: CashFlowStatementReport
    equity_statement: EquityStatementReport
