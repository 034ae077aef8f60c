"""
Pure consolidated statement transformation functions.

These functions transform a ``ConsolidatedTrialBalance`` into structured
financial statements. ZERO I/O. ZERO side effects.

All monetary values are Decimal. All inputs/outputs are frozen dataclasses.

Functions in this module follow the kernel domain purity convention:
- No database access
- No clock access
- No file I/O
- Deterministic: same inputs always produce same outputs, so a report
  can be regenerated from a trial balance at any time
"""

from __future__ import annotations

import dataclasses
from collections.abc import Iterable
from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from consolidation_kernel.domain.accounts import (
    AccountCategory,
    NormalSide,
    StatementSection,
    is_income_statement,
    normal_side,
    statement_section,
)
from consolidation_kernel.domain.dtos import (
    ConsolidatedTrialBalance,
    ConsolidatedTrialBalanceLineItem,
)
from consolidation_kernel.domain.values import ZERO
from consolidation_kernel.exceptions import BalanceSheetNotBalancedError
from consolidation_modules.reporting.config import ReportingConfig
from consolidation_modules.reporting.models import (
    BalanceSheetReport,
    CashFlowLineItem,
    CashFlowSection,
    CashFlowStatementReport,
    EquityComponent,
    EquityStatementReport,
    EquityStatementRow,
    IncomeStatementReport,
    ReportLine,
    ReportMetadata,
    ReportSection,
    ReportType,
)

# =========================================================================
# Helpers
# =========================================================================


def section_side(section: StatementSection) -> NormalSide:
    """Side on which a section's amounts are presented as positive."""
    match section:
        case (
            StatementSection.CURRENT_ASSETS
            | StatementSection.NON_CURRENT_ASSETS
            | StatementSection.COST_OF_SALES
            | StatementSection.OPERATING_EXPENSES
            | StatementSection.TAX
        ):
            return NormalSide.DEBIT
        case (
            StatementSection.CURRENT_LIABILITIES
            | StatementSection.NON_CURRENT_LIABILITIES
            | StatementSection.EQUITY
            | StatementSection.REVENUE
            | StatementSection.OTHER_INCOME_EXPENSE
        ):
            return NormalSide.CREDIT
    raise ValueError(f"Unknown statement section: {section}")


def present(category: AccountCategory, balance: Decimal, side: NormalSide) -> Decimal:
    """
    Natural balance presented on ``side``.

    A category whose normal side differs from the section's (treasury
    stock in equity, expenses in other income/expense) is negated.
    """
    return balance if normal_side(category) == side else -balance


def _group_by_section(
    tb: ConsolidatedTrialBalance,
) -> dict[StatementSection, list[ConsolidatedTrialBalanceLineItem]]:
    grouped: dict[StatementSection, list[ConsolidatedTrialBalanceLineItem]] = {
        section: [] for section in StatementSection
    }
    for item in tb.line_items:
        grouped[statement_section(item.category)].append(item)
    return grouped


def _make_section(
    label: str,
    section: StatementSection,
    items: Iterable[ConsolidatedTrialBalanceLineItem],
    config: ReportingConfig,
    parent_only: bool = False,
) -> ReportSection:
    """
    Create a report section from line items.

    ``parent_only`` presents the parent-attributable balance instead of
    the whole-group balance (used for the equity section).
    """
    side = section_side(section)
    lines: list[ReportLine] = []
    total = ZERO
    for item in sorted(items, key=lambda x: x.account_number):
        balance = item.consolidated_balance if parent_only else item.total_balance
        amount = present(item.category, balance, side)
        nci = (
            present(item.category, item.nci_amount, side)
            if item.nci_amount is not None else None
        )
        total += amount
        if not config.include_zero_balances and amount == ZERO and not nci:
            continue
        lines.append(
            ReportLine(
                account_number=item.account_number,
                account_name=item.account_name,
                category=item.category,
                amount=amount,
                nci_amount=nci,
            )
        )
    return ReportSection(label=label, lines=tuple(lines), total=total)


def compute_net_income(tb: ConsolidatedTrialBalance) -> tuple[Decimal, Decimal, Decimal]:
    """
    Net income of the group as (total, attributable to parent, attributable to NCI).

    Revenue natural balances minus expense natural balances, over
    income statement categories only.
    """
    parent = ZERO
    nci = ZERO
    for item in tb.line_items:
        if not is_income_statement(item.category):
            continue
        parent += present(item.category, item.consolidated_balance, NormalSide.CREDIT)
        if item.nci_amount is not None:
            nci += present(item.category, item.nci_amount, NormalSide.CREDIT)
    return parent + nci, parent, nci


def _metadata(
    tb: ConsolidatedTrialBalance, group_name: str, report_type: ReportType,
) -> ReportMetadata:
    return ReportMetadata(
        report_type=report_type,
        group_name=group_name,
        currency=tb.currency,
        as_of_date=tb.as_of_date,
        period_ref=tb.period_ref,
        run_id=tb.run_id,
    )


# =========================================================================
# 1. BALANCE SHEET
# =========================================================================


def generate_balance_sheet(
    tb: ConsolidatedTrialBalance,
    group_name: str,
    config: ReportingConfig | None = None,
) -> BalanceSheetReport:
    """
    Build the consolidated balance sheet.

    Classification logic:
    1. Partition line items by statement section
    2. Assets and liabilities at whole-group balances
    3. Equity at parent-attributable balances, plus parent net income
    4. NCI = NCI share of equity accounts + NCI share of net income
    5. Verify |A - (L + E)| <= tolerance

    Raises:
        BalanceSheetNotBalancedError: the identity fails beyond tolerance.
    """
    config = config or ReportingConfig()
    grouped = _group_by_section(tb)

    current_assets = _make_section(
        "Current Assets", StatementSection.CURRENT_ASSETS,
        grouped[StatementSection.CURRENT_ASSETS], config,
    )
    non_current_assets = _make_section(
        "Non-Current Assets", StatementSection.NON_CURRENT_ASSETS,
        grouped[StatementSection.NON_CURRENT_ASSETS], config,
    )
    total_assets = current_assets.total + non_current_assets.total

    current_liabilities = _make_section(
        "Current Liabilities", StatementSection.CURRENT_LIABILITIES,
        grouped[StatementSection.CURRENT_LIABILITIES], config,
    )
    non_current_liabilities = _make_section(
        "Non-Current Liabilities", StatementSection.NON_CURRENT_LIABILITIES,
        grouped[StatementSection.NON_CURRENT_LIABILITIES], config,
    )
    total_liabilities = current_liabilities.total + non_current_liabilities.total

    equity_items = grouped[StatementSection.EQUITY]
    equity = _make_section(
        "Equity", StatementSection.EQUITY, equity_items, config, parent_only=True,
    )
    equity_nci = sum(
        (
            present(item.category, item.nci_amount, NormalSide.CREDIT)
            for item in equity_items if item.nci_amount is not None
        ),
        ZERO,
    )
    _, parent_net_income, nci_net_income = compute_net_income(tb)

    equity_attributable_to_parent = equity.total + parent_net_income
    non_controlling_interest = equity_nci + nci_net_income
    total_equity = equity_attributable_to_parent + non_controlling_interest
    total_l_and_e = total_liabilities + total_equity

    if abs(total_assets - total_l_and_e) > config.balance_tolerance:
        raise BalanceSheetNotBalancedError(total_assets, total_l_and_e)

    return BalanceSheetReport(
        metadata=_metadata(tb, group_name, ReportType.BALANCE_SHEET),
        current_assets=current_assets,
        non_current_assets=non_current_assets,
        total_assets=total_assets,
        current_liabilities=current_liabilities,
        non_current_liabilities=non_current_liabilities,
        total_liabilities=total_liabilities,
        equity=equity,
        net_income_attributable_to_parent=parent_net_income,
        equity_attributable_to_parent=equity_attributable_to_parent,
        non_controlling_interest=non_controlling_interest,
        total_equity=total_equity,
        total_liabilities_and_equity=total_l_and_e,
        is_balanced=True,
    )


# =========================================================================
# 2. INCOME STATEMENT
# =========================================================================


def generate_income_statement(
    tb: ConsolidatedTrialBalance,
    group_name: str,
    config: ReportingConfig | None = None,
) -> IncomeStatementReport:
    """
    Build the multi-step consolidated income statement.

    Net income is attributed between parent and NCI by summing each
    income statement account's NCI amount.
    """
    config = config or ReportingConfig()
    grouped = _group_by_section(tb)

    def section(label: str, s: StatementSection):
        return _make_section(label, s, grouped[s], config)

    revenue = section("Revenue", StatementSection.REVENUE)
    cost_of_sales = section("Cost of Sales", StatementSection.COST_OF_SALES)
    gross_profit = revenue.total - cost_of_sales.total

    operating_expenses = section("Operating Expenses", StatementSection.OPERATING_EXPENSES)
    operating_income = gross_profit - operating_expenses.total

    other = section("Other Income and Expense", StatementSection.OTHER_INCOME_EXPENSE)
    income_before_tax = operating_income + other.total

    tax = section("Income Tax", StatementSection.TAX)
    net_income = income_before_tax - tax.total

    _, parent_net_income, nci_net_income = compute_net_income(tb)

    return IncomeStatementReport(
        metadata=_metadata(tb, group_name, ReportType.INCOME_STATEMENT),
        revenue=revenue,
        cost_of_sales=cost_of_sales,
        gross_profit=gross_profit,
        operating_expenses=operating_expenses,
        operating_income=operating_income,
        other_income_expense=other,
        income_before_tax=income_before_tax,
        tax=tax,
        net_income=net_income,
        net_income_attributable_to_parent=parent_net_income,
        net_income_attributable_to_nci=nci_net_income,
    )


# =========================================================================
# 3. CASH FLOW STATEMENT
# =========================================================================


def _cash_balance(tb: ConsolidatedTrialBalance, config: ReportingConfig) -> Decimal:
    """Sum of cash and cash-equivalent current asset balances."""
    return sum(
        (
            item.total_balance for item in tb.line_items
            if item.category == AccountCategory.CURRENT_ASSET
            and config.is_cash_account(item.account_number, item.tags)
        ),
        ZERO,
    )


def _section_total(lines: list[CashFlowLineItem]) -> Decimal:
    return sum((line.amount for line in lines), ZERO)


def generate_cash_flow(
    tb: ConsolidatedTrialBalance,
    group_name: str,
    prior: ConsolidatedTrialBalance | None = None,
    config: ReportingConfig | None = None,
) -> CashFlowStatementReport:
    """
    Build the consolidated cash flow statement (indirect method).

    Operating: net income, less increases in non-cash current assets,
        plus increases in current liabilities.
    Investing: less increases in non-current assets.
    Financing: increases in non-current liabilities and equity.

    With ``prior``, each movement is the change since the prior trial
    balance and the prior period's net income is netted out of the
    equity movement.  Without it, balances are movements from zero and
    beginning cash is back-solved as ending cash minus the net change.
    """
    config = config or ReportingConfig()
    net_income, _, _ = compute_net_income(tb)

    current = {item.account_number: item for item in tb.line_items}
    previous = {item.account_number: item for item in prior.line_items} if prior else {}

    operating: list[CashFlowLineItem] = [
        CashFlowLineItem(description="Net income", amount=net_income),
    ]
    investing: list[CashFlowLineItem] = []
    financing: list[CashFlowLineItem] = []

    for number in sorted(set(current) | set(previous)):
        item = current.get(number) or previous[number]
        if config.is_cash_account(number, item.tags) and (
            item.category == AccountCategory.CURRENT_ASSET
        ):
            continue
        now = current[number].total_balance if number in current else ZERO
        before = previous[number].total_balance if number in previous else ZERO
        change = now - before
        if change == ZERO:
            continue

        match statement_section(item.category):
            case StatementSection.CURRENT_ASSETS:
                operating.append(CashFlowLineItem(f"Change in {item.account_name}", -change))
            case StatementSection.CURRENT_LIABILITIES:
                operating.append(CashFlowLineItem(f"Change in {item.account_name}", change))
            case StatementSection.NON_CURRENT_ASSETS:
                investing.append(CashFlowLineItem(f"Change in {item.account_name}", -change))
            case StatementSection.NON_CURRENT_LIABILITIES:
                financing.append(CashFlowLineItem(f"Change in {item.account_name}", change))
            case StatementSection.EQUITY:
                financing.append(CashFlowLineItem(
                    f"Change in {item.account_name}",
                    present(item.category, change, NormalSide.CREDIT),
                ))
            case _:
                pass

    if prior is not None:
        prior_net_income, _, _ = compute_net_income(prior)
        if prior_net_income != ZERO:
            financing.append(CashFlowLineItem(
                "Prior period net income carried in equity", -prior_net_income,
            ))

    net_operating = _section_total(operating)
    net_investing = _section_total(investing)
    net_financing = _section_total(financing)
    net_change = net_operating + net_investing + net_financing

    ending_cash = _cash_balance(tb, config)
    if prior is not None:
        beginning_cash = _cash_balance(prior, config)
    else:
        beginning_cash = ending_cash - net_change

    return CashFlowStatementReport(
        metadata=_metadata(tb, group_name, ReportType.CASH_FLOW),
        net_income=net_income,
        operating_activities=CashFlowSection(
            "Operating Activities", tuple(operating), net_operating,
        ),
        net_cash_from_operations=net_operating,
        investing_activities=CashFlowSection(
            "Investing Activities", tuple(investing), net_investing,
        ),
        net_cash_from_investing=net_investing,
        financing_activities=CashFlowSection(
            "Financing Activities", tuple(financing), net_financing,
        ),
        net_cash_from_financing=net_financing,
        net_change_in_cash=net_change,
        beginning_cash=beginning_cash,
        ending_cash=ending_cash,
        cash_change_reconciles=(ending_cash - beginning_cash == net_change),
        is_provisional=prior is None,
    )


# =========================================================================
# 4. STATEMENT OF CHANGES IN EQUITY
# =========================================================================


def _equity_components(tb: ConsolidatedTrialBalance) -> dict[EquityComponent, Decimal]:
    """Closing balance of each equity component, before net income."""
    balances = {component: ZERO for component in EquityComponent}
    for item in tb.line_items:
        match item.category:
            case AccountCategory.CONTRIBUTED_CAPITAL | AccountCategory.TREASURY_STOCK:
                component = EquityComponent.CONTRIBUTED_CAPITAL
            case AccountCategory.RETAINED_EARNINGS:
                component = EquityComponent.RETAINED_EARNINGS
            case AccountCategory.OTHER_COMPREHENSIVE_INCOME:
                component = EquityComponent.ACCUMULATED_OCI
            case _:
                continue
        balances[component] += present(
            item.category, item.consolidated_balance, NormalSide.CREDIT,
        )
        if item.nci_amount is not None:
            balances[EquityComponent.NON_CONTROLLING_INTEREST] += present(
                item.category, item.nci_amount, NormalSide.CREDIT,
            )
    return balances


def _closing_equity(
    tb: ConsolidatedTrialBalance,
) -> tuple[dict[EquityComponent, Decimal], dict[EquityComponent, Decimal]]:
    """(closing balances including net income, net income per component)."""
    balances = _equity_components(tb)
    _, parent_net_income, nci_net_income = compute_net_income(tb)
    income = {component: ZERO for component in EquityComponent}
    income[EquityComponent.RETAINED_EARNINGS] = parent_net_income
    income[EquityComponent.NON_CONTROLLING_INTEREST] = nci_net_income
    closing = {c: balances[c] + income[c] for c in EquityComponent}
    return closing, income


def generate_equity_statement(
    tb: ConsolidatedTrialBalance,
    group_name: str,
    prior: ConsolidatedTrialBalance | None = None,
    config: ReportingConfig | None = None,
) -> EquityStatementReport:
    """
    Build the statement of changes in equity.

    Opening balance (prior closing, including prior net income)
    + Net income (retained earnings for the parent share, NCI for the rest)
    +/- Other movements (contributions, distributions, OCI)
    = Closing balance

    Closing total equity equals the balance sheet's total equity.
    """
    closing, income = _closing_equity(tb)
    if prior is not None:
        opening, _ = _closing_equity(prior)
    else:
        opening = {component: ZERO for component in EquityComponent}

    rows = tuple(
        EquityStatementRow(
            component=component,
            opening=opening[component],
            net_income=income[component],
            other_movements=closing[component] - opening[component] - income[component],
            closing=closing[component],
        )
        for component in EquityComponent
    )
    return EquityStatementReport(
        metadata=_metadata(tb, group_name, ReportType.EQUITY_STATEMENT),
        rows=rows,
        total_opening=sum((r.opening for r in rows), ZERO),
        total_net_income=sum((r.net_income for r in rows), ZERO),
        total_other_movements=sum((r.other_movements for r in rows), ZERO),
        total_closing=sum((r.closing for r in rows), ZERO),
        opening_balance_known=prior is not None,
    )


# =========================================================================
# 5. RENDERER (dict/JSON output)
# =========================================================================


def render_to_dict(obj: object) -> dict | list | str | int | float | bool | None:
    """
    Convert any report dataclass to a plain dict for JSON serialization.

    Handles:
    - Decimal -> str (preserving precision)
    - UUID -> str
    - date -> ISO format string
    - Enum -> .value
    - Nested frozen dataclasses -> nested dicts
    - Tuples -> lists
    """
    if obj is None:
        return None
    if isinstance(obj, (Decimal, UUID)):
        return str(obj)
    if isinstance(obj, date):
        return obj.isoformat()
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (list, tuple)):
        return [render_to_dict(item) for item in obj]
    if isinstance(obj, dict):
        return {str(k): render_to_dict(v) for k, v in obj.items()}
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return {
            f.name: render_to_dict(getattr(obj, f.name))
            for f in dataclasses.fields(obj)
        }
    if isinstance(obj, (str, int, float, bool)):
        return obj
    return str(obj)
