"""
Consolidation step pipeline (``consolidation_modules.consolidation.pipeline``).

Responsibility
--------------
Execute the seven consolidation steps for one run over fixed inputs and
record an append-only step log:

    Validate -> Translate -> Aggregate -> MatchIC -> Eliminate -> NCI -> GenerateTB

Architecture position
---------------------
**Modules layer** -- no persistence.  ``ConsolidationRunService`` pins the
inputs (group, period, intercompany snapshot), hands them to the pipeline,
and persists the outcome.

Invariants enforced
-------------------
* Steps run strictly in order; the first failure marks that step Failed,
  every later step Skipped, and no trial balance is produced.
* Member loading and translation fan out across a thread pool; the
  reduction steps (aggregation, elimination, NCI) run single-threaded
  over the complete set of translated balances.
* Intercompany statuses come from the snapshot taken before the run
  started; nothing re-reads them mid-run.
* The generated trial balance is checked: debit-normal totals equal
  credit-normal totals within 0.01.
"""

from __future__ import annotations

import contextvars
import time
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from uuid import UUID

from consolidation_config.schema import ConsolidationConfig
from consolidation_engines.aggregation import (
    ConsolidationLedger,
    aggregate_balances,
    attribute_nci,
    equity_method_pickups,
)
from consolidation_engines.elimination import EliminationEngine, EliminationResult
from consolidation_engines.matching import IntercompanyMatcher
from consolidation_engines.translation import (
    CurrencyTranslator,
    RateConverter,
    TranslatedTrialBalance,
)
from consolidation_kernel.domain.accounts import NormalSide, normal_side
from consolidation_kernel.domain.clock import Clock
from consolidation_kernel.domain.dtos import (
    ConsolidatedTrialBalance,
    ConsolidatedTrialBalanceLineItem,
    ConsolidationGroup,
    FiscalPeriod,
    MemberCompany,
    MemberTrialBalance,
)
from consolidation_kernel.domain.intercompany import (
    IntercompanyTransaction,
    ReconciliationItem,
)
from consolidation_kernel.domain.ports import ExchangeRateProvider, LedgerBalanceSource
from consolidation_kernel.domain.run import STEP_ORDER, RunStep, StepStatus, StepType
from consolidation_kernel.domain.values import ZERO
from consolidation_kernel.exceptions import (
    ConsolidationError,
    MemberCurrencyMismatchError,
    MissingMemberTrialBalanceError,
    TrialBalanceNotBalancedError,
)
from consolidation_kernel.logging_config import get_logger

logger = get_logger("modules.consolidation.pipeline")

TB_TOLERANCE = Decimal("0.01")

UNEXPECTED_ERROR_CODE = "UNEXPECTED_ERROR"


@dataclass(frozen=True)
class PipelineOutcome:
    steps: tuple[RunStep, ...]
    trial_balance: ConsolidatedTrialBalance | None = None
    reconciliation_items: tuple[ReconciliationItem, ...] = ()
    error_code: str | None = None
    error_message: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.trial_balance is not None


@dataclass
class _RunState:
    """Working set threaded through the steps of one run."""

    member_tbs: dict[str, MemberTrialBalance] = field(default_factory=dict)
    translated: dict[str, TranslatedTrialBalance] = field(default_factory=dict)
    ledger: ConsolidationLedger | None = None
    eliminable: tuple[IntercompanyTransaction, ...] = ()
    review: tuple[ReconciliationItem, ...] = ()
    elimination: EliminationResult | None = None
    line_items: tuple[ConsolidatedTrialBalanceLineItem, ...] = ()
    trial_balance: ConsolidatedTrialBalance | None = None


class ConsolidationPipeline:
    """
    One run's worth of consolidation work.

    Contract
    --------
    * ``execute()`` never raises for step failures; the failure is
      recorded on the outcome (failed step, error code and message).
    * Identical inputs produce an identical trial balance.
    """

    def __init__(
        self,
        *,
        run_id: UUID,
        group: ConsolidationGroup,
        period: FiscalPeriod,
        as_of_date: date,
        ledger: LedgerBalanceSource,
        rates: ExchangeRateProvider,
        ic_snapshot: Sequence[IntercompanyTransaction],
        config: ConsolidationConfig,
        clock: Clock,
    ):
        self._run_id = run_id
        self._group = group
        self._period = period
        self._as_of_date = as_of_date
        self._ledger = ledger
        self._ic_snapshot = tuple(ic_snapshot)
        self._config = config
        self._clock = clock
        self._converter = RateConverter(
            rates,
            target_currency=group.reporting_currency,
            as_of_date=as_of_date,
            period_ref=period.period_ref,
        )
        self._state = _RunState()

    # =========================================================================
    # Step runner
    # =========================================================================

    def execute(self) -> PipelineOutcome:
        handlers: dict[StepType, Callable[[], dict[str, str]]] = {
            StepType.VALIDATE: self._validate,
            StepType.TRANSLATE: self._translate,
            StepType.AGGREGATE: self._aggregate,
            StepType.MATCH_IC: self._match_ic,
            StepType.ELIMINATE: self._eliminate,
            StepType.NCI: self._attribute_nci,
            StepType.GENERATE_TB: self._generate_tb,
        }
        steps: list[RunStep] = []
        for index, step_type in enumerate(STEP_ORDER):
            step, error = self._run_step(step_type, handlers[step_type])
            steps.append(step)
            if error is not None:
                steps.extend(
                    RunStep(step_type=remaining, status=StepStatus.SKIPPED)
                    for remaining in STEP_ORDER[index + 1:]
                )
                return PipelineOutcome(
                    steps=tuple(steps),
                    error_code=getattr(error, "code", UNEXPECTED_ERROR_CODE),
                    error_message=str(error),
                )

        return PipelineOutcome(
            steps=tuple(steps),
            trial_balance=self._state.trial_balance,
            reconciliation_items=self._reconciliation_items(),
        )

    def _run_step(
        self,
        step_type: StepType,
        handler: Callable[[], dict[str, str]],
    ) -> tuple[RunStep, Exception | None]:
        started_at = self._clock.now()
        t0 = time.perf_counter()
        logger.info("step_started", extra={"step": step_type.value})
        try:
            details = handler()
        except Exception as exc:
            duration_ms = int((time.perf_counter() - t0) * 1000)
            if isinstance(exc, ConsolidationError):
                logger.error("step_failed", extra={
                    "step": step_type.value,
                    "error_code": exc.code,
                    "error": str(exc),
                    "duration_ms": duration_ms,
                })
            else:
                logger.exception("step_failed", extra={
                    "step": step_type.value,
                    "error_code": UNEXPECTED_ERROR_CODE,
                    "duration_ms": duration_ms,
                })
            step = RunStep(
                step_type=step_type,
                status=StepStatus.FAILED,
                started_at=started_at,
                completed_at=self._clock.now(),
                duration_ms=duration_ms,
                error_message=str(exc),
            )
            return step, exc

        duration_ms = int((time.perf_counter() - t0) * 1000)
        logger.info("step_completed", extra={
            "step": step_type.value,
            "duration_ms": duration_ms,
            **details,
        })
        step = RunStep(
            step_type=step_type,
            status=StepStatus.COMPLETED,
            started_at=started_at,
            completed_at=self._clock.now(),
            duration_ms=duration_ms,
            details=details,
        )
        return step, None

    def _fan_out(self, fn: Callable, items: Sequence) -> list:
        """Apply ``fn`` to each item on the worker pool; results in item order."""
        if not items:
            return []
        workers = min(self._config.max_workers, len(items))
        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = [
                executor.submit(contextvars.copy_context().run, fn, item)
                for item in items
            ]
            return [f.result() for f in futures]

    # =========================================================================
    # Steps
    # =========================================================================

    def _loaded_members(self) -> tuple[MemberCompany, ...]:
        """Members whose balances enter the run; cost-method investees do not."""
        return tuple(
            sorted(
                self._group.line_by_line_members + self._group.equity_method_members,
                key=lambda m: m.company_id,
            )
        )

    def _load_member(self, member: MemberCompany) -> MemberTrialBalance:
        tb = self._ledger.get_trial_balance(
            member.company_id, self._period.period_ref, self._as_of_date,
        )
        if tb is None:
            raise MissingMemberTrialBalanceError(member.company_id, self._period.period_ref)
        if tb.currency != member.functional_currency:
            raise MemberCurrencyMismatchError(
                member.company_id, member.functional_currency, tb.currency,
            )
        return tb

    def _validate(self) -> dict[str, str]:
        members = self._loaded_members()
        tbs = self._fan_out(self._load_member, members)
        self._state.member_tbs = {tb.company_id: tb for tb in tbs}
        return {
            "member_count": str(len(members)),
            "line_count": str(sum(len(tb.lines) for tb in tbs)),
        }

    def _translate(self) -> dict[str, str]:
        translator = CurrencyTranslator(self._converter, self._config.accounts.cta)
        tbs = [self._state.member_tbs[cid] for cid in sorted(self._state.member_tbs)]
        translated = self._fan_out(
            lambda tb: translator.translate(trial_balance=tb), tbs,
        )
        self._state.translated = {t.company_id: t for t in translated}
        total_cta = sum((t.cta_amount for t in translated), ZERO)
        return {
            "translated_count": str(len(translated)),
            "total_cta": str(total_cta),
        }

    def _aggregate(self) -> dict[str, str]:
        line_by_line = [
            self._state.translated[m.company_id]
            for m in self._group.line_by_line_members
        ]
        ledger = aggregate_balances(line_by_line)
        investees = [
            (m, self._state.translated[m.company_id])
            for m in self._group.equity_method_members
        ]
        pickups = equity_method_pickups(
            investees,
            parent_company_id=self._group.parent_company_id,
            investment_account=self._config.accounts.equity_method_investment,
            pickup_account=self._config.accounts.equity_pickup_income,
        )
        ledger.apply(pickups)
        self._state.ledger = ledger
        return {
            "account_count": str(len(ledger)),
            "equity_pickup_lines": str(len(pickups)),
        }

    def _match_ic(self) -> dict[str, str]:
        eliminable, review = IntercompanyMatcher.partition(self._ic_snapshot)
        self._state.eliminable = eliminable
        self._state.review = review
        return {
            "transaction_count": str(len(self._ic_snapshot)),
            "eliminable_count": str(len(eliminable)),
            "reconciliation_count": str(len(review)),
        }

    def _eliminate(self) -> dict[str, str]:
        engine = EliminationEngine(
            rules=self._config.elimination_rules,
            converter=self._converter,
            variance_account=self._config.accounts.ic_variance,
            cta_account=self._config.accounts.cta,
        )
        result = engine.generate(transactions=self._state.eliminable)
        self._state.ledger.apply(result.lines)
        self._state.elimination = result
        return {
            "entry_count": str(len(result.entries)),
            "total_eliminated": str(result.total_eliminated),
        }

    def _attribute_nci(self) -> dict[str, str]:
        self._state.line_items = attribute_nci(self._state.ledger, self._group)
        total_nci = sum(
            (li.nci_amount for li in self._state.line_items if li.nci_amount is not None),
            ZERO,
        )
        return {"total_nci": str(total_nci)}

    def _generate_tb(self) -> dict[str, str]:
        debits = ZERO
        credits = ZERO
        for li in self._state.line_items:
            if normal_side(li.category) == NormalSide.DEBIT:
                debits += li.total_balance
            else:
                credits += li.total_balance
        if abs(debits - credits) > TB_TOLERANCE:
            raise TrialBalanceNotBalancedError(debits, credits)

        self._state.trial_balance = ConsolidatedTrialBalance(
            run_id=self._run_id,
            group_id=self._group.group_id,
            as_of_date=self._as_of_date,
            period_ref=self._period.period_ref,
            currency=self._group.reporting_currency,
            line_items=self._state.line_items,
        )
        return {
            "line_count": str(len(self._state.line_items)),
            "total_debits": str(debits),
        }

    def _reconciliation_items(self) -> tuple[ReconciliationItem, ...]:
        items = list(self._state.review)
        if self._state.elimination is not None:
            items.extend(self._state.elimination.reconciliation_items)
        return tuple(sorted(items, key=lambda i: (i.transaction_date, str(i.transaction_id))))
