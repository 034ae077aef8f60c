"""
Module: consolidation_engines.matching
Responsibility:
    Pair intercompany ledger recordings into ``IntercompanyTransaction``
    records and classify each record's matching status from the amounts
    the two sides recorded.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  The intercompany
    service persists what this engine decides.

Invariants enforced:
    - Status is a deterministic function of the recorded sides:
        both sides, |to - from| <= tolerance  -> Matched
        one side only                         -> Unmatched
        both sides, beyond tolerance          -> PartiallyMatched,
                                                 variance = to - from
    - VarianceApproved is never computed here; it is only reached by
      reviewer approval.  Re-evaluating an approved record whose recorded
      amounts are unchanged keeps the approval.
    - Pairing key: counterparty pair, transaction type, currency, and
      transaction date within ``date_tolerance_days``.

Usage:
    matcher = IntercompanyMatcher(tolerance=Decimal("0.01"), date_tolerance_days=3)
    result = matcher.record(recording=side_recording, candidates=open_transactions)
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, replace
from datetime import date
from decimal import Decimal
from uuid import UUID, uuid4

from consolidation_engines.tracer import traced_engine
from consolidation_kernel.domain.intercompany import (
    DiscrepancyReason,
    IntercompanyTransaction,
    IntercompanyTransactionType,
    LedgerReference,
    MatchingStatus,
    ReconciliationItem,
    TransactionSide,
)
from consolidation_kernel.domain.values import ZERO
from consolidation_kernel.logging_config import get_logger

logger = get_logger("engines.matching")


@dataclass(frozen=True)
class SideRecording:
    """One company's ledger entry for an intercompany dealing."""

    company_id: str
    counterparty_id: str
    side: TransactionSide
    transaction_type: IntercompanyTransactionType
    transaction_date: date
    amount: Decimal
    currency: str
    entry_id: str
    interest_amount: Decimal = ZERO
    description: str = ""

    @property
    def from_company_id(self) -> str:
        return self.company_id if self.side == TransactionSide.FROM else self.counterparty_id

    @property
    def to_company_id(self) -> str:
        return self.counterparty_id if self.side == TransactionSide.FROM else self.company_id


@dataclass(frozen=True)
class MatchResult:
    transaction: IntercompanyTransaction
    previous_status: MatchingStatus | None
    created: bool = False
    reason: DiscrepancyReason | None = None

    @property
    def status_changed(self) -> bool:
        return self.previous_status != self.transaction.matching_status


@dataclass(frozen=True)
class MatchingSummary:
    total: int
    matched: int
    unmatched: int
    partially_matched: int
    variance_approved: int
    total_variance: Decimal

    @property
    def eliminable(self) -> int:
        return self.matched + self.variance_approved


class IntercompanyMatcher:
    """
    Deterministic intercompany matcher.

    Contract:
        Stateless apart from its tolerances; identical inputs produce
        identical outputs.
    """

    def __init__(self, tolerance: Decimal = Decimal("0.01"), date_tolerance_days: int = 3):
        self.tolerance = tolerance
        self.date_tolerance_days = date_tolerance_days

    # =========================================================================
    # Classification
    # =========================================================================

    def evaluate(self, transaction: IntercompanyTransaction) -> MatchResult:
        """Recompute the matching status from the recorded sides."""
        previous = transaction.matching_status
        from_entry = transaction.from_entry
        to_entry = transaction.to_entry

        if from_entry is None or to_entry is None:
            updated = transaction.with_status(MatchingStatus.UNMATCHED)
            reason = DiscrepancyReason.MISSING_COUNTERPART
        else:
            variance = to_entry.amount - from_entry.amount
            if abs(variance) <= self.tolerance:
                updated = transaction.with_status(MatchingStatus.MATCHED)
                reason = None
            elif (
                previous == MatchingStatus.VARIANCE_APPROVED
                and transaction.variance_amount == variance
            ):
                updated = transaction
                reason = DiscrepancyReason.AMOUNT_MISMATCH
            else:
                updated = transaction.with_status(
                    MatchingStatus.PARTIALLY_MATCHED, variance_amount=variance,
                )
                reason = DiscrepancyReason.AMOUNT_MISMATCH

        logger.debug("ic_match_evaluated", extra={
            "transaction_id": str(transaction.id),
            "previous_status": previous.value,
            "status": updated.matching_status.value,
            "variance_amount": (
                str(updated.variance_amount)
                if updated.variance_amount is not None else None
            ),
        })
        return MatchResult(transaction=updated, previous_status=previous, reason=reason)

    def attach(
        self,
        transaction: IntercompanyTransaction,
        side: TransactionSide,
        reference: LedgerReference,
    ) -> MatchResult:
        """Attach a ledger entry to one side and re-evaluate."""
        if side == TransactionSide.FROM:
            updated = replace(transaction, from_entry=reference)
        else:
            updated = replace(transaction, to_entry=reference)
        result = self.evaluate(updated)
        return replace(result, previous_status=transaction.matching_status)

    # =========================================================================
    # Pairing
    # =========================================================================

    def is_candidate(
        self, recording: SideRecording, transaction: IntercompanyTransaction,
    ) -> bool:
        """Whether ``recording`` can fill the open side of ``transaction``."""
        if transaction.entry_for(recording.side) is not None:
            return False
        if (
            transaction.from_company_id != recording.from_company_id
            or transaction.to_company_id != recording.to_company_id
        ):
            return False
        if transaction.transaction_type != recording.transaction_type:
            return False
        if transaction.currency != recording.currency:
            return False
        delta = abs((transaction.transaction_date - recording.transaction_date).days)
        return delta <= self.date_tolerance_days

    def find_counterpart(
        self,
        recording: SideRecording,
        candidates: Sequence[IntercompanyTransaction],
    ) -> IntercompanyTransaction | None:
        """
        Best open transaction for a recording.

        Closest date wins, then smallest amount difference, then id, so the
        choice is deterministic.
        """
        eligible = [t for t in candidates if self.is_candidate(recording, t)]
        if not eligible:
            return None
        eligible.sort(key=lambda t: (
            abs((t.transaction_date - recording.transaction_date).days),
            abs(t.amount - recording.amount),
            str(t.id),
        ))
        return eligible[0]

    @traced_engine("ic_matching", "1.0", fingerprint_fields=("recording",))
    def record(
        self,
        *,
        recording: SideRecording,
        candidates: Sequence[IntercompanyTransaction],
        new_id: UUID | None = None,
    ) -> MatchResult:
        """
        Apply one side's recording.

        Fills the open side of the best candidate, or creates a new
        unilateral transaction when no candidate qualifies.
        """
        reference = LedgerReference(
            entry_id=recording.entry_id,
            amount=recording.amount,
            recorded_on=recording.transaction_date,
        )
        counterpart = self.find_counterpart(recording, candidates)
        if counterpart is not None:
            result = self.attach(counterpart, recording.side, reference)
            logger.info("ic_recording_paired", extra={
                "transaction_id": str(counterpart.id),
                "side": recording.side.value,
                "status": result.transaction.matching_status.value,
            })
            return result

        transaction = IntercompanyTransaction(
            id=new_id or uuid4(),
            from_company_id=recording.from_company_id,
            to_company_id=recording.to_company_id,
            transaction_type=recording.transaction_type,
            transaction_date=recording.transaction_date,
            amount=recording.amount,
            currency=recording.currency,
            from_entry=reference if recording.side == TransactionSide.FROM else None,
            to_entry=reference if recording.side == TransactionSide.TO else None,
            interest_amount=recording.interest_amount,
            description=recording.description,
        )
        logger.info("ic_recording_unpaired", extra={
            "transaction_id": str(transaction.id),
            "company_id": recording.company_id,
            "counterparty_id": recording.counterparty_id,
            "transaction_type": recording.transaction_type.value,
        })
        return MatchResult(
            transaction=transaction,
            previous_status=None,
            created=True,
            reason=DiscrepancyReason.MISSING_COUNTERPART,
        )

    # =========================================================================
    # Period views
    # =========================================================================

    @staticmethod
    def partition(
        transactions: Sequence[IntercompanyTransaction],
    ) -> tuple[tuple[IntercompanyTransaction, ...], tuple[ReconciliationItem, ...]]:
        """Split into (eliminable transactions, reconciliation list)."""
        eliminable: list[IntercompanyTransaction] = []
        review: list[ReconciliationItem] = []
        for txn in sorted(transactions, key=lambda t: (t.transaction_date, str(t.id))):
            if txn.requires_elimination:
                eliminable.append(txn)
            else:
                review.append(ReconciliationItem.from_transaction(txn))
        return tuple(eliminable), tuple(review)

    @staticmethod
    def summarize(transactions: Sequence[IntercompanyTransaction]) -> MatchingSummary:
        counts = {status: 0 for status in MatchingStatus}
        total_variance = ZERO
        for txn in transactions:
            counts[txn.matching_status] += 1
            if txn.variance_amount is not None:
                total_variance += txn.variance_amount
        return MatchingSummary(
            total=len(transactions),
            matched=counts[MatchingStatus.MATCHED],
            unmatched=counts[MatchingStatus.UNMATCHED],
            partially_matched=counts[MatchingStatus.PARTIALLY_MATCHED],
            variance_approved=counts[MatchingStatus.VARIANCE_APPROVED],
            total_variance=total_variance,
        )
