"""
Reporting Module Service (``consolidation_modules.reporting.service``).

Responsibility
--------------
Generates consolidated statements from a ``ConsolidatedTrialBalance`` by
delegating to the pure transformation functions in ``statements.py``, and
builds the full statement set for a completed run.

Architecture position
---------------------
**Modules layer** -- thin read-only glue.  No financial logic lives here;
the service adds logging and run lookup.

Invariants enforced
-------------------
* Read-only -- never mutates the trial balance or the run.
* A failed balance check is surfaced to the caller; the trial balance is
  untouched, so generation can be retried without re-running
  consolidation.

Usage::

    reports = ReportingService(run_service).generate_for_run(run.id)
"""

from __future__ import annotations

from uuid import UUID

from consolidation_kernel.domain.dtos import ConsolidatedTrialBalance
from consolidation_kernel.exceptions import BalanceSheetNotBalancedError
from consolidation_kernel.logging_config import get_logger
from consolidation_modules.reporting.config import ReportingConfig
from consolidation_modules.reporting.models import (
    BalanceSheetReport,
    CashFlowStatementReport,
    ConsolidatedReports,
    EquityStatementReport,
    IncomeStatementReport,
)
from consolidation_modules.reporting.statements import (
    generate_balance_sheet,
    generate_cash_flow,
    generate_equity_statement,
    generate_income_statement,
)

logger = get_logger("modules.reporting.service")


class ReportingService:
    """
    Consolidated statement generation.

    Contract
    --------
    * Each ``generate_*`` method returns a typed report DTO; calling it
      twice on the same trial balance returns equal reports.
    * ``generate_for_run`` requires a run service and a Completed run.
    """

    def __init__(self, run_service=None, config: ReportingConfig | None = None):
        self._runs = run_service
        self._config = config or ReportingConfig.with_defaults()

    def generate_balance_sheet(
        self, tb: ConsolidatedTrialBalance, group_name: str,
    ) -> BalanceSheetReport:
        try:
            report = generate_balance_sheet(tb, group_name, self._config)
        except BalanceSheetNotBalancedError as exc:
            logger.error("balance_sheet_not_balanced", extra={
                "run_id": str(tb.run_id),
                "total_assets": str(exc.total_assets),
                "total_liabilities_and_equity": str(exc.total_liabilities_and_equity),
                "difference": str(exc.difference),
            })
            raise
        logger.info("report_generated", extra={
            "report_type": report.metadata.report_type.value,
            "run_id": str(tb.run_id),
            "total_assets": str(report.total_assets),
        })
        return report

    def generate_income_statement(
        self, tb: ConsolidatedTrialBalance, group_name: str,
    ) -> IncomeStatementReport:
        report = generate_income_statement(tb, group_name, self._config)
        logger.info("report_generated", extra={
            "report_type": report.metadata.report_type.value,
            "run_id": str(tb.run_id),
            "net_income": str(report.net_income),
        })
        return report

    def generate_cash_flow(
        self,
        tb: ConsolidatedTrialBalance,
        group_name: str,
        prior: ConsolidatedTrialBalance | None = None,
    ) -> CashFlowStatementReport:
        report = generate_cash_flow(tb, group_name, prior, self._config)
        logger.info("report_generated", extra={
            "report_type": report.metadata.report_type.value,
            "run_id": str(tb.run_id),
            "net_change_in_cash": str(report.net_change_in_cash),
            "is_provisional": report.is_provisional,
        })
        return report

    def generate_equity_statement(
        self,
        tb: ConsolidatedTrialBalance,
        group_name: str,
        prior: ConsolidatedTrialBalance | None = None,
    ) -> EquityStatementReport:
        report = generate_equity_statement(tb, group_name, prior, self._config)
        logger.info("report_generated", extra={
            "report_type": report.metadata.report_type.value,
            "run_id": str(tb.run_id),
            "total_closing": str(report.total_closing),
            "opening_balance_known": report.opening_balance_known,
        })
        return report

    def generate_for_run(
        self, run_id: UUID, prior_run_id: UUID | None = None,
    ) -> ConsolidatedReports:
        """All four statements for a Completed run, optionally against a prior run."""
        if self._runs is None:
            raise ValueError("ReportingService was created without a run service")
        tb = self._runs.get_consolidated_trial_balance(run_id)
        prior = (
            self._runs.get_consolidated_trial_balance(prior_run_id)
            if prior_run_id is not None else None
        )
        group_name = self._runs.get_group(tb.group_id).name
        return ConsolidatedReports(
            balance_sheet=self.generate_balance_sheet(tb, group_name),
            income_statement=self.generate_income_statement(tb, group_name),
            cash_flow=self.generate_cash_flow(tb, group_name, prior),
            equity_statement=self.generate_equity_statement(tb, group_name, prior),
        )
