"""
Tests for the intercompany matcher.

Covers:
- Status classification from the recorded sides
- Pairing of recordings with open counterparts
- Approved variances survive re-evaluation with unchanged amounts
- Period partition and summary
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from consolidation_engines.matching import IntercompanyMatcher, SideRecording
from consolidation_kernel.domain.intercompany import (
    DiscrepancyReason,
    IntercompanyTransaction,
    IntercompanyTransactionType,
    LedgerReference,
    MatchingStatus,
    TransactionSide,
)

FEE = IntercompanyTransactionType.MANAGEMENT_FEE


@pytest.fixture
def matcher():
    return IntercompanyMatcher(tolerance=Decimal("0.01"), date_tolerance_days=3)


def _recording(side, amount="1000", day=15, entry_id=None, txn_type=FEE, currency="USD"):
    company, counterparty = ("SUB", "PARENT") if side == TransactionSide.FROM else ("PARENT", "SUB")
    return SideRecording(
        company_id=company,
        counterparty_id=counterparty,
        side=side,
        transaction_type=txn_type,
        transaction_date=date(2024, 12, day),
        amount=Decimal(amount),
        currency=currency,
        entry_id=entry_id or f"{company}-JE-{day}",
    )


def _txn(from_amount=None, to_amount=None, **overrides):
    fields = dict(
        id=uuid4(),
        from_company_id="SUB",
        to_company_id="PARENT",
        transaction_type=FEE,
        transaction_date=date(2024, 12, 15),
        amount=Decimal("1000"),
        currency="USD",
        from_entry=LedgerReference("S-1", Decimal(from_amount)) if from_amount else None,
        to_entry=LedgerReference("P-1", Decimal(to_amount)) if to_amount else None,
    )
    fields.update(overrides)
    return IntercompanyTransaction(**fields)


class TestEvaluate:

    def test_one_side_is_unmatched(self, matcher):
        result = matcher.evaluate(_txn(from_amount="1000"))
        assert result.transaction.matching_status == MatchingStatus.UNMATCHED
        assert result.reason == DiscrepancyReason.MISSING_COUNTERPART

    def test_equal_sides_match(self, matcher):
        result = matcher.evaluate(_txn("1000", "1000"))
        assert result.transaction.matching_status == MatchingStatus.MATCHED
        assert result.transaction.variance_amount is None
        assert result.status_changed

    def test_within_tolerance_matches(self, matcher):
        result = matcher.evaluate(_txn("1000.00", "1000.01"))
        assert result.transaction.matching_status == MatchingStatus.MATCHED

    def test_beyond_tolerance_partially_matches(self, matcher):
        result = matcher.evaluate(_txn("1000", "980"))
        assert result.transaction.matching_status == MatchingStatus.PARTIALLY_MATCHED
        assert result.transaction.variance_amount == Decimal("-20")
        assert result.reason == DiscrepancyReason.AMOUNT_MISMATCH

    def test_approved_variance_kept_when_amounts_unchanged(self, matcher):
        approved = _txn(
            "1000", "980",
            matching_status=MatchingStatus.VARIANCE_APPROVED,
            variance_amount=Decimal("-20"),
            variance_explanation="Wire fee",
        )
        result = matcher.evaluate(approved)
        assert result.transaction.matching_status == MatchingStatus.VARIANCE_APPROVED
        assert not result.status_changed

    def test_approved_variance_reopened_when_amount_changes(self, matcher):
        approved = _txn(
            "1000", "990",
            matching_status=MatchingStatus.VARIANCE_APPROVED,
            variance_amount=Decimal("-20"),
            variance_explanation="Wire fee",
        )
        result = matcher.evaluate(approved)
        assert result.transaction.matching_status == MatchingStatus.PARTIALLY_MATCHED
        assert result.transaction.variance_amount == Decimal("-10")
        assert result.transaction.variance_explanation is None

    def test_never_computes_variance_approved(self, matcher):
        for amounts in [("1000", "1000"), ("1000", "1"), ("1000", None)]:
            result = matcher.evaluate(_txn(*amounts))
            assert result.transaction.matching_status != MatchingStatus.VARIANCE_APPROVED


class TestRecord:

    def test_first_side_creates_unmatched(self, matcher):
        new_id = uuid4()
        result = matcher.record(
            recording=_recording(TransactionSide.FROM), candidates=[], new_id=new_id,
        )
        assert result.created
        assert result.previous_status is None
        assert result.transaction.id == new_id
        assert result.transaction.matching_status == MatchingStatus.UNMATCHED
        assert result.transaction.from_company_id == "SUB"
        assert result.transaction.to_company_id == "PARENT"
        assert result.transaction.from_entry.entry_id == "SUB-JE-15"

    def test_counterpart_pairs(self, matcher):
        first = matcher.record(recording=_recording(TransactionSide.FROM), candidates=[])
        second = matcher.record(
            recording=_recording(TransactionSide.TO, day=17),
            candidates=[first.transaction],
        )
        assert not second.created
        assert second.transaction.id == first.transaction.id
        assert second.previous_status == MatchingStatus.UNMATCHED
        assert second.transaction.matching_status == MatchingStatus.MATCHED

    @pytest.mark.parametrize("change", [
        {"day": 20},
        {"txn_type": IntercompanyTransactionType.ROYALTY},
        {"currency": "EUR"},
    ])
    def test_incompatible_recording_does_not_pair(self, matcher, change):
        first = matcher.record(recording=_recording(TransactionSide.FROM), candidates=[])
        second = matcher.record(
            recording=_recording(TransactionSide.TO, **change),
            candidates=[first.transaction],
        )
        assert second.created

    def test_same_side_does_not_pair(self, matcher):
        first = matcher.record(recording=_recording(TransactionSide.FROM), candidates=[])
        second = matcher.record(
            recording=_recording(TransactionSide.FROM, entry_id="SUB-JE-2"),
            candidates=[first.transaction],
        )
        assert second.created

    def test_closest_date_wins(self, matcher):
        near = _txn(from_amount="1000", transaction_date=date(2024, 12, 16))
        far = _txn(from_amount="1000", transaction_date=date(2024, 12, 13))
        result = matcher.record(
            recording=_recording(TransactionSide.TO, day=15), candidates=[far, near],
        )
        assert result.transaction.id == near.id


class TestPeriodViews:

    def test_partition(self, matcher):
        matched = _txn("1000", "1000", matching_status=MatchingStatus.MATCHED)
        unmatched = _txn("1000", transaction_date=date(2024, 12, 1))
        partial = _txn(
            "1000", "900",
            matching_status=MatchingStatus.PARTIALLY_MATCHED,
            variance_amount=Decimal("-100"),
        )
        eliminable, review = matcher.partition([partial, matched, unmatched])
        assert eliminable == (matched,)
        assert [i.transaction_id for i in review][0] == unmatched.id
        assert {i.matching_status for i in review} == {
            MatchingStatus.UNMATCHED, MatchingStatus.PARTIALLY_MATCHED,
        }

    def test_summary(self, matcher):
        summary = matcher.summarize([
            _txn("1000", "1000", matching_status=MatchingStatus.MATCHED),
            _txn("1000"),
            _txn(
                "1000", "900",
                matching_status=MatchingStatus.PARTIALLY_MATCHED,
                variance_amount=Decimal("-100"),
            ),
        ])
        assert summary.total == 3
        assert summary.matched == 1
        assert summary.unmatched == 1
        assert summary.partially_matched == 1
        assert summary.eliminable == 1
        assert summary.total_variance == Decimal("-100")
