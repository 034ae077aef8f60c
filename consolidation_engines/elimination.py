"""
Module: consolidation_engines.elimination
Responsibility:
    Turn intercompany transactions that require elimination into balanced
    elimination entries, in group currency, using the rule table.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  Conversion into the
    reporting currency goes through the run's ``RateConverter``.

Invariants enforced:
    - Only transactions with ``requires_elimination`` (Matched,
      VarianceApproved) are eliminated.  Everything else is returned as a
      reconciliation item and never touches the balances.
    - Rules apply lowest ``priority`` first; inactive or manual rules are
      ignored.
    - Each pair removes the recorded amount from the account it was
      recorded on: the debit line carries the debit-side company's amount,
      the credit line the credit-side company's amount.
    - Every entry is balanced.  A residual from an approved variance is
      booked to the intercompany variance account; a residual from
      translating P&L and balance-sheet legs at different rates is booked
      to the CTA.  Residual lines are group-level (no company).
    - A transaction with no applicable rule is surfaced as a
      reconciliation item (reason NoEliminationRule), never dropped.

Failure modes:
    - EliminationEntryNotBalancedError if an entry still does not balance.
    - MissingExchangeRateError propagated from the converter.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, replace
from decimal import Decimal

from consolidation_engines.translation import RateConverter
from consolidation_engines.tracer import traced_engine
from consolidation_kernel.domain.dtos import AccountRef
from consolidation_kernel.domain.intercompany import (
    AmountBasis,
    DiscrepancyReason,
    EliminationEntry,
    EliminationLine,
    EliminationPair,
    EliminationRule,
    IntercompanyTransaction,
    IntercompanyTransactionType,
    MatchingStatus,
    ReconciliationItem,
    TransactionSide,
    applicable_rules,
)
from consolidation_kernel.domain.values import ZERO, round_money
from consolidation_kernel.exceptions import EliminationEntryNotBalancedError
from consolidation_kernel.logging_config import get_logger

logger = get_logger("engines.elimination")


@dataclass(frozen=True)
class EliminationResult:
    entries: tuple[EliminationEntry, ...]
    reconciliation_items: tuple[ReconciliationItem, ...]
    eliminated_transaction_ids: tuple[str, ...]

    @property
    def lines(self) -> tuple[EliminationLine, ...]:
        return tuple(line for entry in self.entries for line in entry.lines)

    @property
    def total_eliminated(self) -> Decimal:
        return sum((e.total_debits for e in self.entries), ZERO)


class EliminationEngine:
    """
    Rule-driven elimination of intercompany balances.

    Contract:
        ``generate`` is deterministic for a given transaction set, rule
        table and rate snapshot.
    """

    def __init__(
        self,
        rules: Sequence[EliminationRule],
        converter: RateConverter,
        variance_account: AccountRef,
        cta_account: AccountRef,
    ):
        self._rules = tuple(rules)
        self._converter = converter
        self._variance_account = variance_account
        self._cta_account = cta_account

    def rules_for(
        self, transaction_type: IntercompanyTransactionType,
    ) -> tuple[EliminationRule, ...]:
        return applicable_rules(self._rules, transaction_type)

    @traced_engine("elimination", "1.0", fingerprint_fields=("transactions",))
    def generate(
        self, *, transactions: Sequence[IntercompanyTransaction],
    ) -> EliminationResult:
        entries: list[EliminationEntry] = []
        review: list[ReconciliationItem] = []
        eliminated: list[str] = []

        for txn in sorted(transactions, key=lambda t: (t.transaction_date, str(t.id))):
            if not txn.requires_elimination:
                review.append(ReconciliationItem.from_transaction(txn))
                continue

            rules = self.rules_for(txn.transaction_type)
            if not rules:
                logger.warning("elimination_rule_missing", extra={
                    "transaction_id": str(txn.id),
                    "transaction_type": txn.transaction_type.value,
                })
                review.append(replace(
                    ReconciliationItem.from_transaction(txn),
                    reason=DiscrepancyReason.NO_ELIMINATION_RULE,
                ))
                continue

            for rule in rules:
                entry = self._entry_for(txn, rule)
                if entry is not None:
                    entries.append(entry)
            eliminated.append(str(txn.id))

        result = EliminationResult(
            entries=tuple(entries),
            reconciliation_items=tuple(review),
            eliminated_transaction_ids=tuple(eliminated),
        )
        logger.info("eliminations_generated", extra={
            "entry_count": len(entries),
            "eliminated_count": len(eliminated),
            "reconciliation_count": len(review),
            "total_eliminated": str(result.total_eliminated),
        })
        return result

    # =========================================================================
    # Internals
    # =========================================================================

    def _entry_for(
        self, txn: IntercompanyTransaction, rule: EliminationRule,
    ) -> EliminationEntry | None:
        lines: list[EliminationLine] = []
        types = []
        for pair in rule.pairs:
            pair_lines = self._pair_lines(txn, rule, pair)
            if pair_lines:
                lines.extend(pair_lines)
                types.append(pair.elimination_type)
        if not lines:
            return None

        debits = sum((line.debit for line in lines), ZERO)
        credits = sum((line.credit for line in lines), ZERO)
        residual = debits - credits
        if residual != ZERO:
            account = (
                self._variance_account
                if txn.matching_status == MatchingStatus.VARIANCE_APPROVED
                else self._cta_account
            )
            lines.append(EliminationLine(
                account=account,
                company_id=None,
                debit=-residual if residual < ZERO else ZERO,
                credit=residual if residual > ZERO else ZERO,
                memo=f"Elimination residual - {rule.name}",
            ))

        entry = EliminationEntry(
            transaction_id=txn.id,
            rule_name=rule.name,
            elimination_types=tuple(types),
            lines=tuple(lines),
        )
        if not entry.is_balanced:
            raise EliminationEntryNotBalancedError(
                str(txn.id), entry.total_debits, entry.total_credits,
            )
        return entry

    def _pair_lines(
        self,
        txn: IntercompanyTransaction,
        rule: EliminationRule,
        pair: EliminationPair,
    ) -> list[EliminationLine]:
        debit_amount = self._amount(txn, rule, pair.basis, pair.debit_side)
        credit_amount = self._amount(txn, rule, pair.basis, pair.credit_side)
        if debit_amount == ZERO and credit_amount == ZERO:
            return []

        memo = f"{pair.elimination_type.value} - {rule.name}"
        return [
            EliminationLine(
                account=pair.debit_account,
                company_id=txn.company_for(pair.debit_side),
                debit=self._converter.convert(
                    debit_amount, txn.currency, pair.debit_account.category,
                ),
                memo=memo,
            ),
            EliminationLine(
                account=pair.credit_account,
                company_id=txn.company_for(pair.credit_side),
                credit=self._converter.convert(
                    credit_amount, txn.currency, pair.credit_account.category,
                ),
                memo=memo,
            ),
        ]

    @staticmethod
    def _amount(
        txn: IntercompanyTransaction,
        rule: EliminationRule,
        basis: AmountBasis,
        side: TransactionSide,
    ) -> Decimal:
        match basis:
            case AmountBasis.AMOUNT:
                return txn.side_amount(side)
            case AmountBasis.OUTSTANDING:
                return max(txn.side_amount(side) - txn.settled_amount, ZERO)
            case AmountBasis.INTEREST:
                return txn.interest_amount
            case AmountBasis.UNREALIZED_PROFIT:
                return round_money(txn.amount * (rule.unrealized_profit_rate or ZERO))
        raise ValueError(f"Unknown amount basis: {basis}")
