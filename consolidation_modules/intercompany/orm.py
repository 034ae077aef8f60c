"""
SQLAlchemy ORM persistence for intercompany transactions.

Responsibility
--------------
Persist ``IntercompanyTransaction`` records with both optional ledger-side
references flattened into columns.  Rows are never deleted; matching
re-evaluation updates status columns in place.

Invariants enforced
-------------------
* All monetary fields use ``Decimal`` (Numeric(38,9)) -- NEVER float.
* Company identifiers stored as String(100) (legal entity codes).
* ``from_company_id != to_company_id`` (CHECK constraint; also rejected
  by the DTO before reaching the database).
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import CheckConstraint, Date, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from consolidation_kernel.db.base import TrackedBase
from consolidation_kernel.domain.intercompany import (
    IntercompanyTransaction,
    IntercompanyTransactionType,
    LedgerReference,
    MatchingStatus,
)


class IntercompanyTransactionModel(TrackedBase):
    """
    A single intercompany dealing between two member companies.

    Maps to ``consolidation_kernel.domain.intercompany.IntercompanyTransaction``.
    """

    __tablename__ = "intercompany_transactions"

    __table_args__ = (
        CheckConstraint("from_company_id <> to_company_id", name="ck_ic_txn_distinct_companies"),
        Index("idx_ic_txn_pair_type", "from_company_id", "to_company_id", "transaction_type"),
        Index("idx_ic_txn_date", "transaction_date"),
        Index("idx_ic_txn_status", "matching_status"),
    )

    from_company_id: Mapped[str] = mapped_column(String(100), nullable=False)
    to_company_id: Mapped[str] = mapped_column(String(100), nullable=False)
    transaction_type: Mapped[str] = mapped_column(String(50), nullable=False)
    transaction_date: Mapped[date] = mapped_column(Date, nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)

    from_entry_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    from_recorded_amount: Mapped[Decimal | None] = mapped_column(nullable=True)
    from_recorded_on: Mapped[date | None] = mapped_column(Date, nullable=True)
    to_entry_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    to_recorded_amount: Mapped[Decimal | None] = mapped_column(nullable=True)
    to_recorded_on: Mapped[date | None] = mapped_column(Date, nullable=True)

    matching_status: Mapped[str] = mapped_column(
        String(30), nullable=False, default=MatchingStatus.UNMATCHED.value,
    )
    variance_amount: Mapped[Decimal | None] = mapped_column(nullable=True)
    variance_explanation: Mapped[str | None] = mapped_column(Text, nullable=True)
    approved_by_id: Mapped[UUID | None] = mapped_column(nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(nullable=True)

    interest_amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    settled_amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    description: Mapped[str] = mapped_column(String(500), nullable=False, default="")

    def to_dto(self) -> IntercompanyTransaction:
        from_entry = None
        if self.from_entry_id is not None:
            from_entry = LedgerReference(
                entry_id=self.from_entry_id,
                amount=self.from_recorded_amount,
                recorded_on=self.from_recorded_on,
            )
        to_entry = None
        if self.to_entry_id is not None:
            to_entry = LedgerReference(
                entry_id=self.to_entry_id,
                amount=self.to_recorded_amount,
                recorded_on=self.to_recorded_on,
            )
        return IntercompanyTransaction(
            id=self.id,
            from_company_id=self.from_company_id,
            to_company_id=self.to_company_id,
            transaction_type=IntercompanyTransactionType(self.transaction_type),
            transaction_date=self.transaction_date,
            amount=self.amount,
            currency=self.currency,
            from_entry=from_entry,
            to_entry=to_entry,
            matching_status=MatchingStatus(self.matching_status),
            variance_amount=self.variance_amount,
            variance_explanation=self.variance_explanation,
            interest_amount=self.interest_amount,
            settled_amount=self.settled_amount,
            description=self.description,
        )

    @classmethod
    def from_dto(cls, dto: IntercompanyTransaction) -> "IntercompanyTransactionModel":
        model = cls(
            id=dto.id,
            from_company_id=dto.from_company_id,
            to_company_id=dto.to_company_id,
            transaction_type=dto.transaction_type.value,
            transaction_date=dto.transaction_date,
            amount=dto.amount,
            currency=dto.currency,
            interest_amount=dto.interest_amount,
            settled_amount=dto.settled_amount,
            description=dto.description,
        )
        model.apply_dto(dto)
        return model

    def apply_dto(self, dto: IntercompanyTransaction) -> None:
        """Copy side references and matching fields from a re-evaluated DTO."""
        self.from_entry_id = dto.from_entry.entry_id if dto.from_entry else None
        self.from_recorded_amount = dto.from_entry.amount if dto.from_entry else None
        self.from_recorded_on = dto.from_entry.recorded_on if dto.from_entry else None
        self.to_entry_id = dto.to_entry.entry_id if dto.to_entry else None
        self.to_recorded_amount = dto.to_entry.amount if dto.to_entry else None
        self.to_recorded_on = dto.to_entry.recorded_on if dto.to_entry else None
        self.matching_status = dto.matching_status.value
        self.variance_amount = dto.variance_amount
        self.variance_explanation = dto.variance_explanation

    def __repr__(self) -> str:
        return (
            f"<IntercompanyTransactionModel {self.from_company_id}->{self.to_company_id} "
            f"{self.transaction_type} {self.amount} {self.currency} [{self.matching_status}]>"
        )
