"""
Module: consolidation_engines.aggregation
Responsibility:
    Sum translated member balances per account, apply elimination and
    equity-method adjustments, and split each post-elimination balance
    between the parent and non-controlling interests.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  ``ConsolidationLedger``
    is a run-local working set; it is never shared across runs or threads.

Invariants enforced:
    - Accounts are keyed by account number; one number maps to one
      category across the group (ChartOfAccountsConflictError otherwise).
    - Balances are tracked per contributing company so NCI is attributed
      to the subsidiary that produced the balance.  Group-level lines
      (company None) belong to the parent.
    - For a FullConsolidation subsidiary owned p% (p < 100):
        nci    = round((100 - p)% x balance)
        parent = balance - nci
      so the two always sum back to the pre-split balance.
    - VariableInterestEntity balances are consolidated without an NCI
      split; EquityMethod investees contribute only the one-line pickup.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from decimal import Decimal

from consolidation_engines.translation import TranslatedTrialBalance
from consolidation_engines.tracer import traced_engine
from consolidation_kernel.domain.accounts import signed_for_debit
from consolidation_kernel.domain.dtos import (
    AccountRef,
    ConsolidatedTrialBalanceLineItem,
    ConsolidationGroup,
    MemberCompany,
)
from consolidation_kernel.domain.intercompany import EliminationLine
from consolidation_kernel.domain.values import HUNDRED, ZERO, round_money, split_by_ownership
from consolidation_kernel.exceptions import ChartOfAccountsConflictError
from consolidation_kernel.logging_config import get_logger

logger = get_logger("engines.aggregation")


@dataclass
class AccountPosition:
    """Running natural balance of one account, per contributing company."""

    account: AccountRef
    by_company: dict[str | None, Decimal] = field(default_factory=dict)
    tags: set[str] = field(default_factory=set)

    @property
    def total(self) -> Decimal:
        return sum(self.by_company.values(), ZERO)


class ConsolidationLedger:
    """Mutable per-run working set of account positions."""

    def __init__(self) -> None:
        self._positions: dict[str, AccountPosition] = {}

    def add(
        self,
        account: AccountRef,
        company_id: str | None,
        amount: Decimal,
        tags: Iterable[str] = (),
    ) -> None:
        position = self._positions.get(account.number)
        if position is None:
            position = AccountPosition(account=account)
            self._positions[account.number] = position
        elif position.account.category != account.category:
            raise ChartOfAccountsConflictError(
                account.number,
                [position.account.category.value, account.category.value],
            )
        position.by_company[company_id] = position.by_company.get(company_id, ZERO) + amount
        position.tags.update(tags)

    def add_translated(self, translated: TranslatedTrialBalance) -> None:
        for line in translated.lines:
            self.add(line.account, translated.company_id, line.translated_balance, line.tags)

    def apply(self, lines: Iterable[EliminationLine]) -> None:
        """Post debit/credit adjustment lines as natural-balance deltas."""
        for line in lines:
            delta = (line.debit - line.credit) * signed_for_debit(line.account.category)
            self.add(line.account, line.company_id, delta)

    def positions(self) -> tuple[AccountPosition, ...]:
        return tuple(self._positions[k] for k in sorted(self._positions))

    def balance(self, account_number: str) -> Decimal:
        position = self._positions.get(account_number)
        return position.total if position is not None else ZERO

    def company_balance(self, account_number: str, company_id: str | None) -> Decimal:
        position = self._positions.get(account_number)
        if position is None:
            return ZERO
        return position.by_company.get(company_id, ZERO)

    def __len__(self) -> int:
        return len(self._positions)


@traced_engine("aggregation", "1.0")
def aggregate_balances(
    translated: Sequence[TranslatedTrialBalance],
) -> ConsolidationLedger:
    """Sum translated balances per account across line-by-line members."""
    ledger = ConsolidationLedger()
    for tb in sorted(translated, key=lambda t: t.company_id):
        ledger.add_translated(tb)
    logger.info("balances_aggregated", extra={
        "member_count": len(translated),
        "account_count": len(ledger),
    })
    return ledger


def equity_method_pickups(
    investees: Sequence[tuple[MemberCompany, TranslatedTrialBalance]],
    parent_company_id: str,
    investment_account: AccountRef,
    pickup_account: AccountRef,
) -> tuple[EliminationLine, ...]:
    """
    One-line consolidation of equity-method investees.

    Dr investment / Cr equity in earnings for p% of the investee's net
    income (reversed for a loss), booked on the parent.
    """
    lines: list[EliminationLine] = []
    for member, tb in sorted(investees, key=lambda pair: pair[0].company_id):
        share = round_money(tb.net_income * member.ownership_percentage / HUNDRED)
        if share == ZERO:
            continue
        memo = f"Equity pickup - {member.company_id}"
        if share > ZERO:
            lines.append(EliminationLine(investment_account, parent_company_id, debit=share, memo=memo))
            lines.append(EliminationLine(pickup_account, parent_company_id, credit=share, memo=memo))
        else:
            lines.append(EliminationLine(pickup_account, parent_company_id, debit=-share, memo=memo))
            lines.append(EliminationLine(investment_account, parent_company_id, credit=-share, memo=memo))
        logger.info("equity_pickup_computed", extra={
            "investee_id": member.company_id,
            "ownership_percentage": str(member.ownership_percentage),
            "investee_net_income": str(tb.net_income),
            "pickup": str(share),
        })
    return tuple(lines)


@traced_engine("nci_attribution", "1.0")
def attribute_nci(
    ledger: ConsolidationLedger,
    group: ConsolidationGroup,
) -> tuple[ConsolidatedTrialBalanceLineItem, ...]:
    """Split each account into parent-attributable and NCI portions."""
    items: list[ConsolidatedTrialBalanceLineItem] = []
    total_nci = ZERO
    for position in ledger.positions():
        parent_share = ZERO
        nci: Decimal | None = None
        for company_id in sorted(position.by_company, key=lambda c: c or ""):
            balance = position.by_company[company_id]
            member = group.member(company_id)
            if member is not None and member.has_nci:
                parent_part, nci_part = split_by_ownership(balance, member.ownership_percentage)
                parent_share += parent_part
                nci = (nci or ZERO) + nci_part
            else:
                parent_share += balance
        if nci is not None:
            total_nci += nci
        items.append(
            ConsolidatedTrialBalanceLineItem(
                account_number=position.account.number,
                account_name=position.account.name,
                category=position.account.category,
                consolidated_balance=parent_share,
                nci_amount=nci,
                tags=tuple(sorted(position.tags)),
            )
        )
    logger.info("nci_attributed", extra={
        "account_count": len(items),
        "nci_accounts": sum(1 for i in items if i.nci_amount is not None),
        "total_nci": str(total_nci),
    })
    return tuple(items)
