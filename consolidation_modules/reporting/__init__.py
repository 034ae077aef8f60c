"""
Consolidated Reporting Module (``consolidation_modules.reporting``).

Read-only module that turns a consolidated trial balance into the
consolidated balance sheet, income statement, cash flow statement and
statement of changes in equity.  All statement generation is implemented
as pure functions; the same trial balance always yields the same reports.
"""

from consolidation_modules.reporting.config import ReportingConfig
from consolidation_modules.reporting.models import (
    BalanceSheetReport,
    CashFlowStatementReport,
    ConsolidatedReports,
    EquityStatementReport,
    IncomeStatementReport,
    ReportType,
)
from consolidation_modules.reporting.service import ReportingService
from consolidation_modules.reporting.statements import (
    generate_balance_sheet,
    generate_cash_flow,
    generate_equity_statement,
    generate_income_statement,
    render_to_dict,
)

__all__ = [
    "BalanceSheetReport",
    "CashFlowStatementReport",
    "ConsolidatedReports",
    "EquityStatementReport",
    "IncomeStatementReport",
    "ReportType",
    "ReportingConfig",
    "ReportingService",
    "generate_balance_sheet",
    "generate_cash_flow",
    "generate_equity_statement",
    "generate_income_statement",
    "render_to_dict",
]
