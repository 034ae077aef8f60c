"""Intercompany matching lifecycle."""

from consolidation_kernel.domain.intercompany import MatchingStatus
from consolidation_kernel.domain.workflow import Guard, Transition, Workflow

_U = MatchingStatus.UNMATCHED.value
_M = MatchingStatus.MATCHED.value
_PM = MatchingStatus.PARTIALLY_MATCHED.value
_VA = MatchingStatus.VARIANCE_APPROVED.value

EXPLANATION_PROVIDED = Guard(
    name="explanation_provided",
    description="Reviewer supplied a non-empty variance explanation",
)

MATCHING_WORKFLOW = Workflow(
    name="intercompany_matching",
    description="Matching status of an intercompany transaction",
    initial_state=_U,
    states=(_U, _M, _PM, _VA),
    transitions=(
        Transition(_U, _M, action="counterpart_recorded"),
        Transition(_U, _PM, action="counterpart_recorded"),
        Transition(_M, _PM, action="amount_rerecorded"),
        Transition(_PM, _M, action="amount_rerecorded"),
        Transition(_PM, _PM, action="amount_rerecorded"),
        Transition(_PM, _VA, action="approve_variance", guard=EXPLANATION_PROVIDED, manual=True),
        Transition(_VA, _M, action="amount_rerecorded"),
        Transition(_VA, _PM, action="amount_rerecorded"),
    ),
)
