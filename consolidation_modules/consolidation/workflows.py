"""Consolidation run lifecycle."""

from consolidation_kernel.domain.run import RunStatus
from consolidation_kernel.domain.workflow import Guard, Transition, Workflow

_PENDING = RunStatus.PENDING.value
_IN_PROGRESS = RunStatus.IN_PROGRESS.value
_COMPLETED = RunStatus.COMPLETED.value
_FAILED = RunStatus.FAILED.value
_CANCELLED = RunStatus.CANCELLED.value

ALL_STEPS_COMPLETED = Guard(
    name="all_steps_completed",
    description="Every pipeline step completed and the trial balance was built",
)

CONSOLIDATION_RUN_WORKFLOW = Workflow(
    name="consolidation_run",
    description="Consolidation of one group for one fiscal period",
    initial_state=_PENDING,
    states=(_PENDING, _IN_PROGRESS, _COMPLETED, _FAILED, _CANCELLED),
    transitions=(
        Transition(_PENDING, _IN_PROGRESS, action="execute"),
        Transition(_PENDING, _CANCELLED, action="cancel", manual=True),
        Transition(_IN_PROGRESS, _COMPLETED, action="complete", guard=ALL_STEPS_COMPLETED),
        Transition(_IN_PROGRESS, _FAILED, action="fail"),
    ),
    terminal_states=(_COMPLETED, _FAILED, _CANCELLED),
)
