"""
Consolidation run value objects (``consolidation_kernel.domain.run``).

A run carries a single authoritative ``status`` and an append-only log of
step outcomes, so a failure is always diagnosable after the fact.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from uuid import UUID

from consolidation_kernel.domain.intercompany import ReconciliationItem


class RunStatus(str, Enum):
    PENDING = "Pending"
    IN_PROGRESS = "InProgress"
    COMPLETED = "Completed"
    FAILED = "Failed"
    CANCELLED = "Cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (RunStatus.COMPLETED, RunStatus.FAILED, RunStatus.CANCELLED)

    @property
    def is_active(self) -> bool:
        return not self.is_terminal


ACTIVE_RUN_STATUSES = (RunStatus.PENDING, RunStatus.IN_PROGRESS)


class StepType(str, Enum):
    VALIDATE = "Validate"
    TRANSLATE = "Translate"
    AGGREGATE = "Aggregate"
    MATCH_IC = "MatchIC"
    ELIMINATE = "Eliminate"
    NCI = "NCI"
    GENERATE_TB = "GenerateTB"

    @property
    def display_name(self) -> str:
        return _STEP_DISPLAY_NAMES[self]


_STEP_DISPLAY_NAMES = {
    StepType.VALIDATE: "Validate Member Data",
    StepType.TRANSLATE: "Currency Translation",
    StepType.AGGREGATE: "Aggregate Balances",
    StepType.MATCH_IC: "Intercompany Matching",
    StepType.ELIMINATE: "Generate Eliminations",
    StepType.NCI: "Calculate Minority Interest",
    StepType.GENERATE_TB: "Generate Consolidated TB",
}

STEP_ORDER: tuple[StepType, ...] = tuple(StepType)


class StepStatus(str, Enum):
    PENDING = "Pending"
    IN_PROGRESS = "InProgress"
    COMPLETED = "Completed"
    FAILED = "Failed"
    SKIPPED = "Skipped"


@dataclass(frozen=True)
class RunStep:
    step_type: StepType
    status: StepStatus
    started_at: datetime | None = None
    completed_at: datetime | None = None
    duration_ms: int | None = None
    error_message: str | None = None
    details: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class ConsolidationRun:
    id: UUID
    group_id: str
    period_ref: str
    as_of_date: date
    status: RunStatus
    steps: tuple[RunStep, ...] = ()
    started_at: datetime | None = None
    completed_at: datetime | None = None
    error_code: str | None = None
    error_message: str | None = None
    reconciliation_items: tuple[ReconciliationItem, ...] = ()

    def step(self, step_type: StepType) -> RunStep | None:
        for s in self.steps:
            if s.step_type == step_type:
                return s
        return None
