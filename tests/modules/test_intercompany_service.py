"""
Tests for IntercompanyService.

Covers:
- Recording both sides pairs them into one Matched record
- Mismatched amounts become PartiallyMatched with variance to - from
- Variance approval and its guards
- Period queries: transactions, reconciliation list, summary
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from consolidation_engines.matching import SideRecording
from consolidation_kernel.domain.intercompany import (
    DiscrepancyReason,
    IntercompanyTransactionType,
    MatchingStatus,
    TransactionSide,
)
from consolidation_kernel.exceptions import (
    IntercompanyTransactionNotFoundError,
    InvalidMatchingStatusTransitionError,
    SelfReferentialIntercompanyTransactionError,
    VarianceExplanationRequiredError,
)

FEE = IntercompanyTransactionType.MANAGEMENT_FEE
DEC_START = date(2024, 12, 1)
DEC_END = date(2024, 12, 31)


def _fee_from_sub(amount="1000", day=15):
    return SideRecording(
        company_id="SUB", counterparty_id="PARENT", side=TransactionSide.FROM,
        transaction_type=FEE, transaction_date=date(2024, 12, day),
        amount=Decimal(amount), currency="USD", entry_id=f"SUB-JE-{day}",
        description="December management fee",
    )


def _fee_at_parent(amount="1000", day=15):
    return SideRecording(
        company_id="PARENT", counterparty_id="SUB", side=TransactionSide.TO,
        transaction_type=FEE, transaction_date=date(2024, 12, day),
        amount=Decimal(amount), currency="USD", entry_id=f"PARENT-JE-{day}",
    )


class TestRecordEntry:

    def test_first_side_unmatched(self, ic_service):
        result = ic_service.record_entry(_fee_from_sub())
        assert result.created
        stored = ic_service.get_transaction(result.transaction.id)
        assert stored.matching_status == MatchingStatus.UNMATCHED
        assert stored.from_entry.entry_id == "SUB-JE-15"
        assert stored.to_entry is None
        assert stored.description == "December management fee"

    def test_both_sides_match(self, ic_service):
        first = ic_service.record_entry(_fee_from_sub())
        second = ic_service.record_entry(_fee_at_parent(day=16))
        assert second.transaction.id == first.transaction.id
        stored = ic_service.get_transaction(first.transaction.id)
        assert stored.matching_status == MatchingStatus.MATCHED
        assert stored.variance_amount is None
        assert stored.to_entry.amount == Decimal("1000")

    def test_mismatch_partially_matched(self, ic_service):
        first = ic_service.record_entry(_fee_from_sub("1000"))
        ic_service.record_entry(_fee_at_parent("975"))
        stored = ic_service.get_transaction(first.transaction.id)
        assert stored.matching_status == MatchingStatus.PARTIALLY_MATCHED
        assert stored.variance_amount == Decimal("-25")

    def test_recording_logged(self, ic_service, captured_logs):
        ic_service.record_entry(_fee_from_sub())
        messages = [r["message"] for r in captured_logs()]
        assert "ic_recording_unpaired" in messages


class TestCreateAndAttach:

    def test_create_then_attach_both_sides(self, ic_service):
        txn = ic_service.create_transaction(
            "PARENT", "SUB", IntercompanyTransactionType.LOAN,
            date(2024, 12, 2), Decimal("10000"), "usd",
            interest_amount=Decimal("50"),
        )
        assert txn.currency == "USD"
        ic_service.attach_entry(txn.id, TransactionSide.FROM, "P-LN-1", Decimal("10000"))
        result = ic_service.attach_entry(txn.id, TransactionSide.TO, "S-LN-1", Decimal("10000"))
        assert result.previous_status == MatchingStatus.UNMATCHED
        assert result.transaction.matching_status == MatchingStatus.MATCHED
        assert ic_service.get_transaction(txn.id).interest_amount == Decimal("50")

    def test_self_referential_rejected(self, ic_service):
        with pytest.raises(SelfReferentialIntercompanyTransactionError):
            ic_service.create_transaction(
                "SUB", "SUB", FEE, date(2024, 12, 2), Decimal("1"), "USD",
            )

    def test_rerecording_corrects_variance(self, ic_service):
        first = ic_service.record_entry(_fee_from_sub("1000"))
        ic_service.record_entry(_fee_at_parent("975"))
        result = ic_service.attach_entry(
            first.transaction.id, TransactionSide.TO, "PARENT-JE-FIX", Decimal("1000"),
        )
        assert result.previous_status == MatchingStatus.PARTIALLY_MATCHED
        assert result.transaction.matching_status == MatchingStatus.MATCHED

    def test_unknown_transaction(self, ic_service):
        with pytest.raises(IntercompanyTransactionNotFoundError):
            ic_service.attach_entry(uuid4(), TransactionSide.TO, "X", Decimal("1"))


class TestApproveVariance:

    @pytest.fixture
    def partial(self, ic_service):
        first = ic_service.record_entry(_fee_from_sub("1000"))
        ic_service.record_entry(_fee_at_parent("980"))
        return first.transaction.id

    def test_approve(self, ic_service, partial, clock):
        actor = uuid4()
        approved = ic_service.approve_variance(partial, "Bank fee withheld", actor_id=actor)
        assert approved.matching_status == MatchingStatus.VARIANCE_APPROVED
        stored = ic_service.get_transaction(partial)
        assert stored.matching_status == MatchingStatus.VARIANCE_APPROVED
        assert stored.variance_explanation == "Bank fee withheld"
        assert stored.variance_amount == Decimal("-20")
        assert stored.requires_elimination

    def test_explanation_required(self, ic_service, partial):
        with pytest.raises(VarianceExplanationRequiredError):
            ic_service.approve_variance(partial, "   ")
        assert ic_service.get_transaction(partial).matching_status == MatchingStatus.PARTIALLY_MATCHED

    def test_only_from_partially_matched(self, ic_service):
        result = ic_service.record_entry(_fee_from_sub())
        with pytest.raises(InvalidMatchingStatusTransitionError):
            ic_service.approve_variance(result.transaction.id, "n/a")

    def test_changed_amount_reopens_approval(self, ic_service, partial):
        ic_service.approve_variance(partial, "Bank fee withheld")
        result = ic_service.attach_entry(partial, TransactionSide.TO, "PARENT-JE-2", Decimal("990"))
        assert result.transaction.matching_status == MatchingStatus.PARTIALLY_MATCHED
        assert result.transaction.variance_amount == Decimal("-10")
        assert ic_service.get_transaction(partial).variance_explanation is None


class TestQueries:

    @pytest.fixture
    def period_records(self, ic_service):
        matched = ic_service.record_entry(_fee_from_sub(day=10)).transaction.id
        ic_service.record_entry(_fee_at_parent(day=10))
        loan = ic_service.record_entry(SideRecording(
            company_id="SUB", counterparty_id="PARENT", side=TransactionSide.TO,
            transaction_type=IntercompanyTransactionType.LOAN,
            transaction_date=date(2024, 12, 20), amount=Decimal("10000"),
            currency="USD", entry_id="SUB-LN-1",
        )).transaction.id
        outside = ic_service.create_transaction(
            "SUB", "PARENT", FEE, date(2025, 1, 3), Decimal("1000"), "USD",
        ).id
        other_group = ic_service.create_transaction(
            "SUB", "OUTSIDER", FEE, date(2024, 12, 5), Decimal("1000"), "USD",
        ).id
        return {"matched": matched, "loan": loan, "outside": outside, "other": other_group}

    def test_list_filters_period_and_members(self, ic_service, period_records):
        txns = ic_service.list_transactions(["PARENT", "SUB"], DEC_START, DEC_END)
        assert [t.id for t in txns] == [period_records["matched"], period_records["loan"]]

    def test_list_by_status(self, ic_service, period_records):
        txns = ic_service.list_transactions(
            ["PARENT", "SUB"], DEC_START, DEC_END, status=MatchingStatus.UNMATCHED,
        )
        assert [t.id for t in txns] == [period_records["loan"]]

    def test_reconciliation_list(self, ic_service, period_records):
        (item,) = ic_service.get_reconciliation_list(["PARENT", "SUB"], DEC_START, DEC_END)
        assert item.transaction_id == period_records["loan"]
        assert item.from_company_id == "PARENT"
        assert item.to_company_id == "SUB"
        assert item.reason == DiscrepancyReason.MISSING_COUNTERPART

    def test_summary(self, ic_service, period_records):
        summary = ic_service.matching_summary(["PARENT", "SUB"], DEC_START, DEC_END)
        assert summary.total == 2
        assert summary.matched == 1
        assert summary.unmatched == 1
