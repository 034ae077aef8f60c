"""
Intercompany Module Service (``consolidation_modules.intercompany.service``).

Responsibility
--------------
Records intercompany dealings from either side, keeps each record's
matching status current through ``IntercompanyMatcher``, handles reviewer
variance approval, and answers period queries (transactions, the
reconciliation list, matching summaries).

Architecture position
---------------------
**Modules layer** -- thin glue.  ``IntercompanyService`` is the sole public
entry point for intercompany records.  Pairing and classification live in
``consolidation_engines.matching``; this service loads candidates and
persists what the engine decides.

Invariants enforced
-------------------
* Each public write method owns the transaction boundary (``commit`` on
  success, ``rollback`` and re-raise on exception).
* Records are never deleted; re-recording a side re-evaluates status.
* VarianceApproved is reached only through ``approve_variance`` and only
  from PartiallyMatched with a non-empty explanation.

Usage::

    service = IntercompanyService(session, config, clock)
    result = service.record_entry(SideRecording(...))
    items = service.get_reconciliation_list(["PARENT", "SUB"], start, end)
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date, timedelta
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import select

from consolidation_config.schema import ConsolidationConfig
from consolidation_engines.matching import (
    IntercompanyMatcher,
    MatchingSummary,
    MatchResult,
    SideRecording,
)
from consolidation_kernel.domain.clock import Clock, SystemClock
from consolidation_kernel.domain.intercompany import (
    IntercompanyTransaction,
    IntercompanyTransactionType,
    LedgerReference,
    MatchingStatus,
    ReconciliationItem,
    TransactionSide,
)
from consolidation_kernel.domain.values import ZERO
from consolidation_kernel.exceptions import (
    IntercompanyTransactionNotFoundError,
    InvalidMatchingStatusTransitionError,
)
from consolidation_kernel.logging_config import get_logger
from consolidation_modules.intercompany.orm import IntercompanyTransactionModel
from consolidation_modules.intercompany.workflows import MATCHING_WORKFLOW

logger = get_logger("modules.intercompany")


class IntercompanyService:
    """
    Intercompany record keeping and matching.

    Contract
    --------
    * Write methods return the persisted DTO or the engine's
      ``MatchResult``.
    * Query methods are read-only and never commit.

    Non-goals
    ---------
    * Does NOT post elimination entries; the consolidation run computes
      them from a pinned snapshot of these records.
    """

    def __init__(
        self,
        session,
        config: ConsolidationConfig | None = None,
        clock: Clock | None = None,
    ):
        self._session = session
        self._config = config or ConsolidationConfig.with_defaults()
        self._clock = clock or SystemClock()
        self._matcher = IntercompanyMatcher(
            tolerance=self._config.matching_tolerance,
            date_tolerance_days=self._config.date_tolerance_days,
        )

    # =========================================================================
    # Recording
    # =========================================================================

    def create_transaction(
        self,
        from_company_id: str,
        to_company_id: str,
        transaction_type: IntercompanyTransactionType,
        transaction_date: date,
        amount: Decimal,
        currency: str,
        interest_amount: Decimal = ZERO,
        settled_amount: Decimal = ZERO,
        description: str = "",
    ) -> IntercompanyTransaction:
        """Register an agreed dealing before either side has been recorded."""
        try:
            dto = IntercompanyTransaction(
                id=uuid4(),
                from_company_id=from_company_id,
                to_company_id=to_company_id,
                transaction_type=transaction_type,
                transaction_date=transaction_date,
                amount=amount,
                currency=currency,
                interest_amount=interest_amount,
                settled_amount=settled_amount,
                description=description,
            )
            self._session.add(IntercompanyTransactionModel.from_dto(dto))
            self._session.commit()
            logger.info("ic_transaction_created", extra={
                "transaction_id": str(dto.id),
                "from_company_id": from_company_id,
                "to_company_id": to_company_id,
                "transaction_type": transaction_type.value,
                "amount": str(amount),
                "currency": dto.currency,
            })
            return dto
        except Exception:
            self._session.rollback()
            raise

    def record_entry(self, recording: SideRecording) -> MatchResult:
        """
        Record one company's side of a dealing.

        Pairs with the best open counterpart when one exists, otherwise
        creates a new unilateral (Unmatched) record.
        """
        try:
            candidates = self._open_candidates(recording)
            result = self._matcher.record(recording=recording, candidates=candidates)
            self._check_transition(result)
            self._save(result)
            self._session.commit()
            return result
        except Exception:
            self._session.rollback()
            raise

    def attach_entry(
        self,
        transaction_id: UUID,
        side: TransactionSide,
        entry_id: str,
        amount: Decimal,
        recorded_on: date | None = None,
    ) -> MatchResult:
        """Attach (or replace) the ledger entry on one side of a known record."""
        try:
            model = self._load(transaction_id)
            reference = LedgerReference(entry_id=entry_id, amount=amount, recorded_on=recorded_on)
            result = self._matcher.attach(model.to_dto(), side, reference)
            self._check_transition(result)
            model.apply_dto(result.transaction)
            self._session.commit()
            logger.info("ic_entry_attached", extra={
                "transaction_id": str(transaction_id),
                "side": side.value,
                "status": result.transaction.matching_status.value,
            })
            return result
        except Exception:
            self._session.rollback()
            raise

    def approve_variance(
        self,
        transaction_id: UUID,
        explanation: str,
        actor_id: UUID | None = None,
    ) -> IntercompanyTransaction:
        """Reviewer approval of a PartiallyMatched variance."""
        try:
            model = self._load(transaction_id)
            approved = model.to_dto().approve_variance(explanation)
            model.apply_dto(approved)
            model.approved_by_id = actor_id
            model.approved_at = self._clock.now()
            self._session.commit()
            logger.info("ic_variance_approved", extra={
                "transaction_id": str(transaction_id),
                "variance_amount": str(approved.variance_amount),
                "actor_id": str(actor_id) if actor_id else None,
            })
            return approved
        except Exception:
            self._session.rollback()
            raise

    # =========================================================================
    # Queries
    # =========================================================================

    def get_transaction(self, transaction_id: UUID) -> IntercompanyTransaction:
        return self._load(transaction_id).to_dto()

    def list_transactions(
        self,
        company_ids: Iterable[str],
        start_date: date,
        end_date: date,
        status: MatchingStatus | None = None,
    ) -> tuple[IntercompanyTransaction, ...]:
        """
        Transactions dated in ``[start_date, end_date]`` whose two
        companies are both in ``company_ids``.
        """
        ids = list(company_ids)
        stmt = select(IntercompanyTransactionModel).where(
            IntercompanyTransactionModel.from_company_id.in_(ids),
            IntercompanyTransactionModel.to_company_id.in_(ids),
            IntercompanyTransactionModel.transaction_date >= start_date,
            IntercompanyTransactionModel.transaction_date <= end_date,
        )
        if status is not None:
            stmt = stmt.where(IntercompanyTransactionModel.matching_status == status.value)
        stmt = stmt.order_by(
            IntercompanyTransactionModel.transaction_date,
            IntercompanyTransactionModel.id,
        )
        return tuple(m.to_dto() for m in self._session.scalars(stmt))

    def get_reconciliation_list(
        self,
        company_ids: Iterable[str],
        start_date: date,
        end_date: date,
    ) -> tuple[ReconciliationItem, ...]:
        """Unmatched and PartiallyMatched items for manual review."""
        transactions = self.list_transactions(company_ids, start_date, end_date)
        _, items = self._matcher.partition(transactions)
        return items

    def matching_summary(
        self,
        company_ids: Iterable[str],
        start_date: date,
        end_date: date,
    ) -> MatchingSummary:
        return self._matcher.summarize(
            self.list_transactions(company_ids, start_date, end_date),
        )

    # =========================================================================
    # Internals
    # =========================================================================

    def _load(self, transaction_id: UUID) -> IntercompanyTransactionModel:
        model = self._session.get(IntercompanyTransactionModel, transaction_id)
        if model is None:
            raise IntercompanyTransactionNotFoundError(transaction_id)
        return model

    def _open_candidates(self, recording: SideRecording) -> list[IntercompanyTransaction]:
        window = timedelta(days=self._matcher.date_tolerance_days)
        side_column = (
            IntercompanyTransactionModel.from_entry_id
            if recording.side == TransactionSide.FROM
            else IntercompanyTransactionModel.to_entry_id
        )
        stmt = select(IntercompanyTransactionModel).where(
            IntercompanyTransactionModel.from_company_id == recording.from_company_id,
            IntercompanyTransactionModel.to_company_id == recording.to_company_id,
            IntercompanyTransactionModel.transaction_type == recording.transaction_type.value,
            IntercompanyTransactionModel.currency == recording.currency,
            IntercompanyTransactionModel.transaction_date >= recording.transaction_date - window,
            IntercompanyTransactionModel.transaction_date <= recording.transaction_date + window,
            side_column.is_(None),
        )
        return [m.to_dto() for m in self._session.scalars(stmt)]

    def _check_transition(self, result: MatchResult) -> None:
        if result.previous_status is None or not result.status_changed:
            return
        current = result.previous_status.value
        target = result.transaction.matching_status.value
        transition = MATCHING_WORKFLOW.find_transition(current, target)
        if transition is None or transition.manual:
            raise InvalidMatchingStatusTransitionError(
                str(result.transaction.id), current, target,
            )

    def _save(self, result: MatchResult) -> None:
        if result.created:
            self._session.add(IntercompanyTransactionModel.from_dto(result.transaction))
            return
        self._load(result.transaction.id).apply_dto(result.transaction)
