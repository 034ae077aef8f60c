"""
Consolidation Run Service (``consolidation_modules.consolidation.service``).

Responsibility
--------------
Owns the consolidation run lifecycle: registers groups, creates runs,
drives the step pipeline, persists the step log and outcome, and serves
the consolidated trial balance and reconciliation list of a run.

Architecture position
---------------------
**Modules layer** -- orchestration glue.  Calculation lives in
``consolidation_engines``; the step sequence in
``consolidation_modules.consolidation.pipeline``.  Ledger balances,
exchange rates and fiscal periods arrive through injected collaborators.

Invariants enforced
-------------------
* Status moves only along ``CONSOLIDATION_RUN_WORKFLOW``:
  Pending -> InProgress -> {Completed | Failed}, Pending -> Cancelled.
  Terminal statuses are final; a new run must be created.
* At most one active run per (group, period).  ``start_run`` returns the
  active run instead of creating a second one; the partial unique index
  on ``consolidation_runs`` rejects a racing insert.
* A run pins the intercompany statuses it observed when it started.
* The consolidated trial balance is exposed only for Completed runs.
* Each public write method owns the transaction boundary (``commit`` on
  success, ``rollback`` and re-raise on exception).  Once a run is
  InProgress, any failure (a pipeline step or the loading and persisting
  around it) is recorded on the run as Failed, not raised.

Usage::

    service = ConsolidationRunService(session, ledger, rates, calendar)
    run = service.start_run("GRP", "2024-12", date(2024, 12, 31))
    if run.status == RunStatus.COMPLETED:
        tb = service.get_consolidated_trial_balance(run.id)
"""

from __future__ import annotations

from datetime import date
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from consolidation_config.schema import ConsolidationConfig
from consolidation_kernel.domain.clock import Clock, SystemClock
from consolidation_kernel.domain.dtos import (
    ConsolidatedTrialBalance,
    ConsolidationGroup,
    FiscalPeriod,
)
from consolidation_kernel.domain.intercompany import ReconciliationItem
from consolidation_kernel.domain.ports import (
    ExchangeRateProvider,
    FiscalPeriodResolver,
    LedgerBalanceSource,
)
from consolidation_kernel.domain.run import (
    ACTIVE_RUN_STATUSES,
    ConsolidationRun,
    RunStatus,
)
from consolidation_kernel.exceptions import (
    ConsolidationGroupNotFoundError,
    ConsolidationRunExistsError,
    ConsolidationRunNotCompletedError,
    ConsolidationRunNotFoundError,
    FiscalPeriodNotFoundError,
    InvalidRunTransitionError,
)
from consolidation_kernel.logging_config import LogContext, get_logger
from consolidation_modules.consolidation.orm import (
    ConsolidatedTBLineModel,
    ConsolidationGroupModel,
    ConsolidationRunModel,
    ReconciliationItemModel,
    RunStepModel,
)
from consolidation_modules.consolidation.pipeline import (
    ConsolidationPipeline,
    PipelineOutcome,
)
from consolidation_modules.consolidation.workflows import CONSOLIDATION_RUN_WORKFLOW
from consolidation_modules.intercompany.service import IntercompanyService

logger = get_logger("modules.consolidation")


class ConsolidationRunService:
    """
    Consolidation runs for registered groups.

    Contract
    --------
    * ``start_run`` always returns a run: the existing active run for the
      (group, period), or a new run driven to a terminal status.
    * Group and period are checked before any run row is written; an
      unknown group or period raises and leaves no trace.

    Non-goals
    ---------
    * Does NOT retry failed runs; callers re-invoke ``start_run``.
    * Does NOT build reports; see ``consolidation_modules.reporting``.
    """

    def __init__(
        self,
        session,
        ledger: LedgerBalanceSource,
        rates: ExchangeRateProvider,
        periods: FiscalPeriodResolver,
        config: ConsolidationConfig | None = None,
        clock: Clock | None = None,
    ):
        self._session = session
        self._ledger = ledger
        self._rates = rates
        self._periods = periods
        self._config = config or ConsolidationConfig.with_defaults()
        self._clock = clock or SystemClock()
        self._intercompany = IntercompanyService(session, self._config, self._clock)

    # =========================================================================
    # Groups
    # =========================================================================

    def register_group(self, group: ConsolidationGroup) -> ConsolidationGroup:
        """Persist a group and its members."""
        try:
            self._session.add(ConsolidationGroupModel.from_dto(group))
            self._session.commit()
            logger.info("group_registered", extra={
                "group_id": group.group_id,
                "member_count": len(group.members),
                "reporting_currency": group.reporting_currency,
            })
            return group
        except Exception:
            self._session.rollback()
            raise

    def get_group(self, group_id: str) -> ConsolidationGroup:
        return self._load_group(group_id).to_dto()

    # =========================================================================
    # Run lifecycle
    # =========================================================================

    def create_run(
        self, group_id: str, period_ref: str, as_of_date: date,
    ) -> ConsolidationRun:
        """Create a Pending run; rejects a second active run for the period."""
        try:
            self._load_group(group_id)
            self._resolve_period(period_ref)
            if self._active_run(group_id, period_ref) is not None:
                raise ConsolidationRunExistsError(group_id, period_ref)

            model = ConsolidationRunModel(
                group_id=group_id,
                period_ref=period_ref,
                as_of_date=as_of_date,
                status=RunStatus.PENDING.value,
            )
            self._session.add(model)
            try:
                self._session.flush()
            except IntegrityError as exc:
                raise ConsolidationRunExistsError(group_id, period_ref) from exc
            self._session.commit()
            logger.info("run_created", extra={
                "run_id": str(model.id),
                "group_id": group_id,
                "period_ref": period_ref,
                "as_of_date": as_of_date.isoformat(),
            })
            return model.to_dto()
        except Exception:
            self._session.rollback()
            raise

    def execute_run(self, run_id: UUID) -> ConsolidationRun:
        """Drive a Pending run through the pipeline to Completed or Failed."""
        model = self._load_run(run_id)
        with LogContext.bind(
            run_id=str(model.id),
            group_id=model.group_id,
            period_ref=model.period_ref,
        ):
            try:
                self._transition(model, RunStatus.IN_PROGRESS)
                model.started_at = self._clock.now()
                self._session.commit()
            except Exception:
                self._session.rollback()
                raise
            logger.info("run_started")

            try:
                outcome = self._run_pipeline(model)
            except Exception as exc:
                self._session.rollback()
                return self._fail_run(run_id, exc)

            if outcome.succeeded:
                logger.info("run_completed", extra={
                    "line_count": len(outcome.trial_balance.line_items),
                    "reconciliation_count": len(outcome.reconciliation_items),
                })
            else:
                logger.warning("run_failed", extra={
                    "error_code": outcome.error_code,
                    "error": outcome.error_message,
                })
            return model.to_dto()

    def _run_pipeline(self, model: ConsolidationRunModel) -> PipelineOutcome:
        group = self._load_group(model.group_id).to_dto()
        period = self._resolve_period(model.period_ref)
        snapshot = self._intercompany.list_transactions(
            [m.company_id for m in group.line_by_line_members],
            period.start_date,
            period.end_date,
        )
        outcome = ConsolidationPipeline(
            run_id=model.id,
            group=group,
            period=period,
            as_of_date=model.as_of_date,
            ledger=self._ledger,
            rates=self._rates,
            ic_snapshot=snapshot,
            config=self._config,
            clock=self._clock,
        ).execute()

        for sequence, step in enumerate(outcome.steps):
            model.steps.append(RunStepModel.from_dto(step, sequence))

        if outcome.succeeded:
            for line in outcome.trial_balance.line_items:
                model.tb_lines.append(ConsolidatedTBLineModel.from_dto(line))
            for sequence, item in enumerate(outcome.reconciliation_items):
                model.reconciliation_items.append(
                    ReconciliationItemModel.from_dto(item, sequence),
                )
            self._transition(model, RunStatus.COMPLETED)
        else:
            self._transition(model, RunStatus.FAILED)
            model.error_code = outcome.error_code
            model.error_message = outcome.error_message
        model.completed_at = self._clock.now()
        self._session.commit()
        return outcome

    def _fail_run(self, run_id: UUID, exc: Exception) -> ConsolidationRun:
        """Mark an in-progress run Failed after an error outside the pipeline."""
        error_code = getattr(exc, "code", None) or type(exc).__name__
        try:
            model = self._load_run(run_id)
            self._transition(model, RunStatus.FAILED)
            model.error_code = error_code
            model.error_message = str(exc)
            model.completed_at = self._clock.now()
            self._session.commit()
        except Exception:
            self._session.rollback()
            raise
        logger.error("run_failed", extra={
            "error_code": error_code,
            "error": str(exc),
        })
        return model.to_dto()

    def start_run(
        self, group_id: str, period_ref: str, as_of_date: date,
    ) -> ConsolidationRun:
        """
        Create and execute a run, or return the active run for the
        (group, period) when one already exists.
        """
        existing = self._active_run(group_id, period_ref)
        if existing is not None:
            logger.info("run_already_active", extra={
                "run_id": str(existing.id),
                "group_id": group_id,
                "period_ref": period_ref,
                "status": existing.status,
            })
            return existing.to_dto()
        try:
            run = self.create_run(group_id, period_ref, as_of_date)
        except ConsolidationRunExistsError:
            existing = self._active_run(group_id, period_ref)
            if existing is None:
                raise
            return existing.to_dto()
        return self.execute_run(run.id)

    def cancel_run(self, run_id: UUID) -> ConsolidationRun:
        """Cancel a run that has not started."""
        try:
            model = self._load_run(run_id)
            self._transition(model, RunStatus.CANCELLED)
            model.completed_at = self._clock.now()
            self._session.commit()
            logger.info("run_cancelled", extra={"run_id": str(run_id)})
            return model.to_dto()
        except Exception:
            self._session.rollback()
            raise

    # =========================================================================
    # Queries
    # =========================================================================

    def get_run(self, run_id: UUID) -> ConsolidationRun:
        return self._load_run(run_id).to_dto()

    def get_run_status(self, run_id: UUID) -> RunStatus:
        return RunStatus(self._load_run(run_id).status)

    def list_runs(
        self, group_id: str, period_ref: str | None = None,
    ) -> tuple[ConsolidationRun, ...]:
        stmt = select(ConsolidationRunModel).where(
            ConsolidationRunModel.group_id == group_id,
        )
        if period_ref is not None:
            stmt = stmt.where(ConsolidationRunModel.period_ref == period_ref)
        stmt = stmt.order_by(
            ConsolidationRunModel.period_ref,
            ConsolidationRunModel.created_at,
            ConsolidationRunModel.id,
        )
        return tuple(m.to_dto() for m in self._session.scalars(stmt))

    def get_consolidated_trial_balance(self, run_id: UUID) -> ConsolidatedTrialBalance:
        model = self._load_run(run_id)
        if model.status != RunStatus.COMPLETED.value:
            raise ConsolidationRunNotCompletedError(run_id, model.status)
        group = self._load_group(model.group_id)
        return ConsolidatedTrialBalance(
            run_id=model.id,
            group_id=model.group_id,
            as_of_date=model.as_of_date,
            period_ref=model.period_ref,
            currency=group.reporting_currency,
            line_items=tuple(line.to_dto() for line in model.tb_lines),
        )

    def get_reconciliation_list(self, run_id: UUID) -> tuple[ReconciliationItem, ...]:
        """Intercompany items the run excluded from elimination."""
        return self._load_run(run_id).to_dto().reconciliation_items

    # =========================================================================
    # Internals
    # =========================================================================

    def _load_group(self, group_id: str) -> ConsolidationGroupModel:
        model = self._session.scalars(
            select(ConsolidationGroupModel).where(
                ConsolidationGroupModel.group_id == group_id,
            )
        ).one_or_none()
        if model is None:
            raise ConsolidationGroupNotFoundError(group_id)
        return model

    def _resolve_period(self, period_ref: str) -> FiscalPeriod:
        period = self._periods.resolve(period_ref)
        if period is None:
            raise FiscalPeriodNotFoundError(period_ref)
        return period

    def _load_run(self, run_id: UUID) -> ConsolidationRunModel:
        model = self._session.get(ConsolidationRunModel, run_id)
        if model is None:
            raise ConsolidationRunNotFoundError(run_id)
        return model

    def _active_run(self, group_id: str, period_ref: str) -> ConsolidationRunModel | None:
        return self._session.scalars(
            select(ConsolidationRunModel).where(
                ConsolidationRunModel.group_id == group_id,
                ConsolidationRunModel.period_ref == period_ref,
                ConsolidationRunModel.status.in_([s.value for s in ACTIVE_RUN_STATUSES]),
            )
        ).one_or_none()

    def _transition(self, model: ConsolidationRunModel, target: RunStatus) -> None:
        if not CONSOLIDATION_RUN_WORKFLOW.can_transition(model.status, target.value):
            raise InvalidRunTransitionError(model.id, model.status, target.value)
        logger.debug("run_transition", extra={
            "run_id": str(model.id),
            "from_status": model.status,
            "to_status": target.value,
        })
        model.status = target.value
