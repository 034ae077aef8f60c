"""
SQLAlchemy ORM persistence for consolidation groups and runs.

Responsibility
--------------
Persist group structure (``ConsolidationGroup`` / ``MemberCompany``), run
state, the append-only step log, the consolidated trial balance of a
completed run, and the run's reconciliation list.

Invariants enforced
-------------------
* At most one active (Pending or InProgress) run per (group, period):
  a partial unique index backs the service-level check, so two racing
  creators cannot both insert.
* Step rows are appended in pipeline order and never rewritten after the
  run reaches a terminal status.
* TB lines exist only for Completed runs.
* All monetary fields use ``Decimal`` (Numeric(38,9)) -- NEVER float.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from consolidation_kernel.db.base import TrackedBase, UUIDString
from consolidation_kernel.domain.accounts import AccountCategory
from consolidation_kernel.domain.dtos import (
    ConsolidatedTrialBalanceLineItem,
    ConsolidationGroup,
    ConsolidationMethod,
    MemberCompany,
)
from consolidation_kernel.domain.intercompany import (
    DiscrepancyReason,
    IntercompanyTransactionType,
    MatchingStatus,
    ReconciliationItem,
)
from consolidation_kernel.domain.run import (
    ConsolidationRun,
    RunStatus,
    RunStep,
    StepStatus,
    StepType,
)

_ACTIVE_RUN_PREDICATE = text("status IN ('Pending', 'InProgress')")


# =============================================================================
# Group structure
# =============================================================================


class ConsolidationGroupModel(TrackedBase):
    """A parent company and the member companies it consolidates."""

    __tablename__ = "consolidation_groups"

    group_id: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    parent_company_id: Mapped[str] = mapped_column(String(100), nullable=False)
    reporting_currency: Mapped[str] = mapped_column(String(3), nullable=False)

    members: Mapped[list["MemberCompanyModel"]] = relationship(
        back_populates="group",
        cascade="all, delete-orphan",
        order_by="MemberCompanyModel.company_id",
        lazy="selectin",
    )

    def to_dto(self) -> ConsolidationGroup:
        return ConsolidationGroup(
            group_id=self.group_id,
            name=self.name,
            parent_company_id=self.parent_company_id,
            reporting_currency=self.reporting_currency,
            members=tuple(m.to_dto() for m in self.members),
        )

    @classmethod
    def from_dto(cls, dto: ConsolidationGroup) -> "ConsolidationGroupModel":
        return cls(
            group_id=dto.group_id,
            name=dto.name,
            parent_company_id=dto.parent_company_id,
            reporting_currency=dto.reporting_currency,
            members=[MemberCompanyModel.from_dto(m) for m in dto.members],
        )

    def __repr__(self) -> str:
        return f"<ConsolidationGroupModel {self.group_id} ({self.reporting_currency})>"


class MemberCompanyModel(TrackedBase):
    """Membership of one legal entity in a consolidation group."""

    __tablename__ = "member_companies"

    __table_args__ = (
        UniqueConstraint("group_pk", "company_id", name="uq_member_company_group"),
    )

    group_pk: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("consolidation_groups.id"),
        nullable=False,
    )
    company_id: Mapped[str] = mapped_column(String(100), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    ownership_percentage: Mapped[Decimal] = mapped_column(nullable=False)
    functional_currency: Mapped[str] = mapped_column(String(3), nullable=False)
    method: Mapped[str] = mapped_column(
        String(30), nullable=False, default=ConsolidationMethod.FULL_CONSOLIDATION.value,
    )
    is_vie_primary_beneficiary: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False,
    )

    group: Mapped["ConsolidationGroupModel"] = relationship(back_populates="members")

    def to_dto(self) -> MemberCompany:
        return MemberCompany(
            company_id=self.company_id,
            name=self.name,
            ownership_percentage=self.ownership_percentage,
            functional_currency=self.functional_currency,
            method=ConsolidationMethod(self.method),
            is_vie_primary_beneficiary=self.is_vie_primary_beneficiary,
        )

    @classmethod
    def from_dto(cls, dto: MemberCompany) -> "MemberCompanyModel":
        return cls(
            company_id=dto.company_id,
            name=dto.name,
            ownership_percentage=dto.ownership_percentage,
            functional_currency=dto.functional_currency,
            method=dto.method.value,
            is_vie_primary_beneficiary=dto.is_vie_primary_beneficiary,
        )


# =============================================================================
# Runs
# =============================================================================


class ConsolidationRunModel(TrackedBase):
    """One attempt to consolidate a group for a fiscal period."""

    __tablename__ = "consolidation_runs"

    __table_args__ = (
        Index(
            "uq_consolidation_run_active",
            "group_id",
            "period_ref",
            unique=True,
            sqlite_where=_ACTIVE_RUN_PREDICATE,
            postgresql_where=_ACTIVE_RUN_PREDICATE,
        ),
        Index("idx_consolidation_run_group_period", "group_id", "period_ref"),
    )

    group_id: Mapped[str] = mapped_column(String(100), nullable=False)
    period_ref: Mapped[str] = mapped_column(String(50), nullable=False)
    as_of_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=RunStatus.PENDING.value,
    )
    started_at: Mapped[datetime | None] = mapped_column(nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    error_code: Mapped[str | None] = mapped_column(String(100), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    steps: Mapped[list["RunStepModel"]] = relationship(
        back_populates="run",
        cascade="all, delete-orphan",
        order_by="RunStepModel.sequence",
        lazy="selectin",
    )
    tb_lines: Mapped[list["ConsolidatedTBLineModel"]] = relationship(
        cascade="all, delete-orphan",
        order_by="ConsolidatedTBLineModel.account_number",
    )
    reconciliation_items: Mapped[list["ReconciliationItemModel"]] = relationship(
        cascade="all, delete-orphan",
        order_by="ReconciliationItemModel.sequence",
    )

    def to_dto(self) -> ConsolidationRun:
        return ConsolidationRun(
            id=self.id,
            group_id=self.group_id,
            period_ref=self.period_ref,
            as_of_date=self.as_of_date,
            status=RunStatus(self.status),
            steps=tuple(s.to_dto() for s in self.steps),
            started_at=self.started_at,
            completed_at=self.completed_at,
            error_code=self.error_code,
            error_message=self.error_message,
            reconciliation_items=tuple(r.to_dto() for r in self.reconciliation_items),
        )

    def __repr__(self) -> str:
        return f"<ConsolidationRunModel {self.group_id} {self.period_ref} [{self.status}]>"


class RunStepModel(TrackedBase):
    """One entry of a run's step log."""

    __tablename__ = "consolidation_run_steps"

    __table_args__ = (
        UniqueConstraint("run_id", "step_type", name="uq_run_step_type"),
    )

    run_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("consolidation_runs.id"),
        nullable=False,
    )
    sequence: Mapped[int] = mapped_column(nullable=False)
    step_type: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    started_at: Mapped[datetime | None] = mapped_column(nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    duration_ms: Mapped[int | None] = mapped_column(nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    details: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    run: Mapped["ConsolidationRunModel"] = relationship(back_populates="steps")

    def to_dto(self) -> RunStep:
        return RunStep(
            step_type=StepType(self.step_type),
            status=StepStatus(self.status),
            started_at=self.started_at,
            completed_at=self.completed_at,
            duration_ms=self.duration_ms,
            error_message=self.error_message,
            details=dict(self.details or {}),
        )

    @classmethod
    def from_dto(cls, dto: RunStep, sequence: int) -> "RunStepModel":
        return cls(
            sequence=sequence,
            step_type=dto.step_type.value,
            status=dto.status.value,
            started_at=dto.started_at,
            completed_at=dto.completed_at,
            duration_ms=dto.duration_ms,
            error_message=dto.error_message,
            details=dict(dto.details) or None,
        )


class ConsolidatedTBLineModel(TrackedBase):
    """One account of a completed run's consolidated trial balance."""

    __tablename__ = "consolidated_tb_lines"

    __table_args__ = (
        UniqueConstraint("run_id", "account_number", name="uq_consolidated_tb_account"),
    )

    run_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("consolidation_runs.id"),
        nullable=False,
    )
    account_number: Mapped[str] = mapped_column(String(50), nullable=False)
    account_name: Mapped[str] = mapped_column(String(200), nullable=False)
    category: Mapped[str] = mapped_column(String(50), nullable=False)
    consolidated_balance: Mapped[Decimal] = mapped_column(nullable=False)
    nci_amount: Mapped[Decimal | None] = mapped_column(nullable=True)
    tags: Mapped[list[str] | None] = mapped_column(JSON, nullable=True)

    def to_dto(self) -> ConsolidatedTrialBalanceLineItem:
        return ConsolidatedTrialBalanceLineItem(
            account_number=self.account_number,
            account_name=self.account_name,
            category=AccountCategory(self.category),
            consolidated_balance=self.consolidated_balance,
            nci_amount=self.nci_amount,
            tags=tuple(self.tags or ()),
        )

    @classmethod
    def from_dto(cls, dto: ConsolidatedTrialBalanceLineItem) -> "ConsolidatedTBLineModel":
        return cls(
            account_number=dto.account_number,
            account_name=dto.account_name,
            category=dto.category.value,
            consolidated_balance=dto.consolidated_balance,
            nci_amount=dto.nci_amount,
            tags=list(dto.tags) or None,
        )


class ReconciliationItemModel(TrackedBase):
    """An intercompany item a run excluded from elimination."""

    __tablename__ = "consolidation_reconciliation_items"

    __table_args__ = (
        Index("idx_recon_item_run", "run_id"),
    )

    run_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("consolidation_runs.id"),
        nullable=False,
    )
    sequence: Mapped[int] = mapped_column(nullable=False)
    transaction_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    from_company_id: Mapped[str] = mapped_column(String(100), nullable=False)
    to_company_id: Mapped[str] = mapped_column(String(100), nullable=False)
    transaction_type: Mapped[str] = mapped_column(String(50), nullable=False)
    transaction_date: Mapped[date] = mapped_column(Date, nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    matching_status: Mapped[str] = mapped_column(String(30), nullable=False)
    reason: Mapped[str] = mapped_column(String(30), nullable=False)
    variance_amount: Mapped[Decimal | None] = mapped_column(nullable=True)

    def to_dto(self) -> ReconciliationItem:
        return ReconciliationItem(
            transaction_id=self.transaction_id,
            from_company_id=self.from_company_id,
            to_company_id=self.to_company_id,
            transaction_type=IntercompanyTransactionType(self.transaction_type),
            transaction_date=self.transaction_date,
            amount=self.amount,
            currency=self.currency,
            matching_status=MatchingStatus(self.matching_status),
            reason=DiscrepancyReason(self.reason),
            variance_amount=self.variance_amount,
        )

    @classmethod
    def from_dto(cls, dto: ReconciliationItem, sequence: int) -> "ReconciliationItemModel":
        return cls(
            sequence=sequence,
            transaction_id=dto.transaction_id,
            from_company_id=dto.from_company_id,
            to_company_id=dto.to_company_id,
            transaction_type=dto.transaction_type.value,
            transaction_date=dto.transaction_date,
            amount=dto.amount,
            currency=dto.currency,
            matching_status=dto.matching_status.value,
            reason=dto.reason.value,
            variance_amount=dto.variance_amount,
        )
