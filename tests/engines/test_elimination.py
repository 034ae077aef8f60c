"""
Tests for the elimination engine.

Covers:
- Revenue/expense and receivable/payable pairs for a matched fee
- Non-eliminable statuses become reconciliation items
- Approved variances book the residual to the IC variance account
- Mixed-rate residuals book to the CTA
- Settled balances, interest, and missing rules
"""

from dataclasses import replace
from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from consolidation_engines.aggregation import ConsolidationLedger
from consolidation_engines.elimination import EliminationEngine
from consolidation_engines.translation import RateConverter
from consolidation_kernel.domain.intercompany import (
    DiscrepancyReason,
    EliminationType,
    IntercompanyTransaction,
    IntercompanyTransactionType,
    LedgerReference,
    MatchingStatus,
)

AS_OF = date(2024, 12, 31)


@pytest.fixture
def converter(rates):
    return RateConverter(rates, "USD", AS_OF, "2024-12")


@pytest.fixture
def engine(config, converter):
    return EliminationEngine(
        rules=config.elimination_rules,
        converter=converter,
        variance_account=config.accounts.ic_variance,
        cta_account=config.accounts.cta,
    )


def _txn(txn_type=IntercompanyTransactionType.MANAGEMENT_FEE, amount="1000",
         status=MatchingStatus.MATCHED, currency="USD", **overrides):
    fields = dict(
        id=uuid4(),
        from_company_id="SUB",
        to_company_id="PARENT",
        transaction_type=txn_type,
        transaction_date=date(2024, 12, 15),
        amount=Decimal(amount),
        currency=currency,
        from_entry=LedgerReference("S-1", Decimal(amount)),
        to_entry=LedgerReference("P-1", Decimal(amount)),
        matching_status=status,
    )
    fields.update(overrides)
    return IntercompanyTransaction(**fields)


def _by_account(entry):
    return {line.account.number: line for line in entry.lines}


class TestMatchedFee:

    def test_four_balanced_lines(self, engine):
        result = engine.generate(transactions=[_txn()])
        (entry,) = result.entries
        assert entry.rule_name == "ic-management-fees"
        assert entry.is_balanced
        assert entry.elimination_types == (
            EliminationType.REVENUE_EXPENSE, EliminationType.RECEIVABLE_PAYABLE,
        )
        lines = _by_account(entry)
        assert lines["4600"].debit == Decimal("1000.00")
        assert lines["4600"].company_id == "SUB"
        assert lines["6600"].credit == Decimal("1000.00")
        assert lines["6600"].company_id == "PARENT"
        assert lines["2300"].debit == Decimal("1000.00")
        assert lines["2300"].company_id == "PARENT"
        assert lines["1300"].credit == Decimal("1000.00")
        assert lines["1300"].company_id == "SUB"
        assert result.total_eliminated == Decimal("2000.00")

    def test_fully_settled_skips_receivable_payable(self, engine):
        result = engine.generate(transactions=[_txn(settled_amount=Decimal("1000"))])
        (entry,) = result.entries
        assert set(_by_account(entry)) == {"4600", "6600"}
        assert entry.elimination_types == (EliminationType.REVENUE_EXPENSE,)

    def test_partially_settled(self, engine):
        result = engine.generate(transactions=[_txn(settled_amount=Decimal("600"))])
        lines = _by_account(result.entries[0])
        assert lines["2300"].debit == Decimal("400.00")
        assert lines["1300"].credit == Decimal("400.00")


class TestNonEliminable:

    def test_unmatched_goes_to_reconciliation(self, engine):
        txn = _txn(
            txn_type=IntercompanyTransactionType.LOAN, amount="10000",
            status=MatchingStatus.UNMATCHED, from_entry=None,
        )
        result = engine.generate(transactions=[txn])
        assert result.entries == ()
        (item,) = result.reconciliation_items
        assert item.transaction_id == txn.id
        assert item.reason == DiscrepancyReason.MISSING_COUNTERPART
        assert item.amount == Decimal("10000")

    def test_partially_matched_not_eliminated(self, engine):
        txn = _txn(
            status=MatchingStatus.PARTIALLY_MATCHED,
            to_entry=LedgerReference("P-1", Decimal("980")),
            variance_amount=Decimal("-20"),
        )
        result = engine.generate(transactions=[txn])
        assert result.entries == ()
        assert result.reconciliation_items[0].reason == DiscrepancyReason.AMOUNT_MISMATCH
        assert result.eliminated_transaction_ids == ()

    def test_no_rule_surfaces_item(self, config, converter):
        engine = EliminationEngine(
            rules=(), converter=converter,
            variance_account=config.accounts.ic_variance,
            cta_account=config.accounts.cta,
        )
        result = engine.generate(transactions=[_txn()])
        assert result.entries == ()
        assert result.reconciliation_items[0].reason == DiscrepancyReason.NO_ELIMINATION_RULE


class TestResiduals:

    def test_approved_variance_to_variance_account(self, engine, config):
        txn = _txn(
            txn_type=IntercompanyTransactionType.DIVIDEND,
            from_company_id="PARENT",
            to_company_id="SUB",
            status=MatchingStatus.VARIANCE_APPROVED,
            to_entry=LedgerReference("S-1", Decimal("980")),
            variance_amount=Decimal("-20"),
            variance_explanation="Withholding tax deducted at source",
        )
        (entry,) = engine.generate(transactions=[txn]).entries
        lines = _by_account(entry)
        assert lines["7200"].debit == Decimal("1000.00")
        assert lines["3200"].credit == Decimal("980.00")
        residual = lines[config.accounts.ic_variance.number]
        assert residual.company_id is None
        assert residual.credit == Decimal("20.00")
        assert entry.is_balanced

    def test_approved_variance_on_two_pair_rule_needs_no_residual(self, engine, config):
        """Each side is removed at what it recorded, on both of its accounts."""
        txn = _txn(
            status=MatchingStatus.VARIANCE_APPROVED,
            to_entry=LedgerReference("P-1", Decimal("980")),
            variance_amount=Decimal("-20"),
            variance_explanation="Wire fee deducted by bank",
        )
        (entry,) = engine.generate(transactions=[txn]).entries
        lines = _by_account(entry)
        assert lines["4600"].debit == Decimal("1000.00")
        assert lines["6600"].credit == Decimal("980.00")
        assert lines["2300"].debit == Decimal("980.00")
        assert lines["1300"].credit == Decimal("1000.00")
        assert config.accounts.ic_variance.number not in lines

    def test_mixed_rate_residual_to_cta(self, engine, config):
        """Dividend income translates at average, retained earnings at closing."""
        txn = _txn(
            txn_type=IntercompanyTransactionType.DIVIDEND,
            currency="EUR",
            from_company_id="PARENT",
            to_company_id="EUSUB",
        )
        (entry,) = engine.generate(transactions=[txn]).entries
        lines = _by_account(entry)
        assert lines["7200"].debit == Decimal("1080.00")
        assert lines["3200"].credit == Decimal("1100.00")
        cta = lines[config.accounts.cta.number]
        assert cta.debit == Decimal("20.00")
        assert cta.company_id is None
        assert entry.is_balanced


class TestLoans:

    def test_principal_and_interest(self, engine):
        txn = _txn(
            txn_type=IntercompanyTransactionType.LOAN,
            amount="10000",
            from_company_id="PARENT",
            to_company_id="SUB",
            interest_amount=Decimal("250"),
        )
        (entry,) = engine.generate(transactions=[txn]).entries
        lines = _by_account(entry)
        assert lines["2350"].debit == Decimal("10000.00")
        assert lines["2350"].company_id == "SUB"
        assert lines["1350"].credit == Decimal("10000.00")
        assert lines["7100"].debit == Decimal("250.00")
        assert lines["7600"].credit == Decimal("250.00")
        assert entry.is_balanced

    def test_partly_repaid_principal_nets_to_zero(self, engine):
        """$10,000 lent, $4,000 repaid: both ledgers hold $6,000 and nothing more is removed."""
        txn = _txn(
            txn_type=IntercompanyTransactionType.LOAN,
            amount="10000",
            from_company_id="PARENT",
            to_company_id="SUB",
            settled_amount=Decimal("4000"),
        )
        (entry,) = engine.generate(transactions=[txn]).entries
        lines = _by_account(entry)
        assert lines["2350"].debit == Decimal("6000.00")
        assert lines["1350"].credit == Decimal("6000.00")

        ledger = ConsolidationLedger()
        ledger.add(lines["1350"].account, "PARENT", Decimal("6000"))
        ledger.add(lines["2350"].account, "SUB", Decimal("6000"))
        ledger.apply(entry.lines)
        assert ledger.balance("1350") == Decimal("0")
        assert ledger.balance("2350") == Decimal("0")

    def test_fully_repaid_loan_leaves_only_interest(self, engine):
        txn = _txn(
            txn_type=IntercompanyTransactionType.LOAN,
            amount="10000",
            from_company_id="PARENT",
            to_company_id="SUB",
            settled_amount=Decimal("10000"),
            interest_amount=Decimal("250"),
        )
        (entry,) = engine.generate(transactions=[txn]).entries
        assert set(_by_account(entry)) == {"7100", "7600"}
        assert entry.elimination_types == (EliminationType.INTEREST,)

    def test_deterministic(self, engine):
        txns = [_txn(), _txn(txn_type=IntercompanyTransactionType.ROYALTY)]
        first = engine.generate(transactions=txns)
        second = engine.generate(transactions=list(reversed(txns)))
        assert first == second


class TestUnrealizedProfit:

    def test_active_rule_removes_margin_from_inventory(self, config, converter):
        rules = tuple(
            replace(rule, is_active=True) if rule.name == "ic-sales-unrealized-profit" else rule
            for rule in config.elimination_rules
        )
        engine = EliminationEngine(
            rules=rules, converter=converter,
            variance_account=config.accounts.ic_variance,
            cta_account=config.accounts.cta,
        )
        txn = _txn(txn_type=IntercompanyTransactionType.SALE_PURCHASE, amount="5000")
        sales, margin = engine.generate(transactions=[txn]).entries
        assert sales.rule_name == "ic-sales"
        assert margin.rule_name == "ic-sales-unrealized-profit"
        assert margin.elimination_types == (EliminationType.UNREALIZED_PROFIT_INVENTORY,)
        lines = _by_account(margin)
        assert lines["5500"].debit == Decimal("1000.00")
        assert lines["5500"].company_id == "SUB"
        assert lines["1200"].credit == Decimal("1000.00")
        assert lines["1200"].company_id == "PARENT"

    def test_inactive_by_default(self, engine):
        txn = _txn(txn_type=IntercompanyTransactionType.SALE_PURCHASE, amount="5000")
        (entry,) = engine.generate(transactions=[txn]).entries
        assert entry.rule_name == "ic-sales"
