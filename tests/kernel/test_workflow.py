"""Tests for the workflow state machines (run lifecycle and IC matching)."""

import pytest

from consolidation_kernel.domain.intercompany import MatchingStatus
from consolidation_kernel.domain.run import (
    STEP_ORDER,
    RunStatus,
    StepType,
)
from consolidation_kernel.domain.workflow import Guard, Transition, Workflow
from consolidation_modules.consolidation.workflows import CONSOLIDATION_RUN_WORKFLOW
from consolidation_modules.intercompany.workflows import MATCHING_WORKFLOW


class TestWorkflowValidation:

    def test_initial_state_must_be_declared(self):
        with pytest.raises(ValueError, match="initial state"):
            Workflow("w", "", initial_state="x", states=("a",), transitions=())

    def test_transition_states_must_be_declared(self):
        with pytest.raises(ValueError, match="undeclared state"):
            Workflow("w", "", "a", ("a",), transitions=(Transition("a", "b", "go"),))

    def test_terminal_state_has_no_outgoing_transition(self):
        with pytest.raises(ValueError, match="terminal state"):
            Workflow(
                "w", "", "a", ("a", "b"),
                transitions=(Transition("a", "b", "go"), Transition("b", "a", "back")),
                terminal_states=("b",),
            )

    def test_find_transition(self):
        guard = Guard("ok", "always")
        wf = Workflow("w", "", "a", ("a", "b"), (Transition("a", "b", "go", guard=guard),))
        assert wf.find_transition("a", "b").guard == guard
        assert wf.find_transition("b", "a") is None


class TestRunLifecycle:

    @pytest.mark.parametrize("source,target", [
        (RunStatus.PENDING, RunStatus.IN_PROGRESS),
        (RunStatus.PENDING, RunStatus.CANCELLED),
        (RunStatus.IN_PROGRESS, RunStatus.COMPLETED),
        (RunStatus.IN_PROGRESS, RunStatus.FAILED),
    ])
    def test_allowed(self, source, target):
        assert CONSOLIDATION_RUN_WORKFLOW.can_transition(source.value, target.value)

    @pytest.mark.parametrize("source,target", [
        (RunStatus.PENDING, RunStatus.COMPLETED),
        (RunStatus.IN_PROGRESS, RunStatus.CANCELLED),
        (RunStatus.COMPLETED, RunStatus.IN_PROGRESS),
        (RunStatus.FAILED, RunStatus.IN_PROGRESS),
        (RunStatus.CANCELLED, RunStatus.PENDING),
    ])
    def test_rejected(self, source, target):
        assert not CONSOLIDATION_RUN_WORKFLOW.can_transition(source.value, target.value)

    def test_terminal_states(self):
        for status in RunStatus:
            assert CONSOLIDATION_RUN_WORKFLOW.is_terminal(status.value) == status.is_terminal

    def test_step_order(self):
        assert STEP_ORDER == (
            StepType.VALIDATE,
            StepType.TRANSLATE,
            StepType.AGGREGATE,
            StepType.MATCH_IC,
            StepType.ELIMINATE,
            StepType.NCI,
            StepType.GENERATE_TB,
        )
        assert StepType.NCI.display_name == "Calculate Minority Interest"


class TestMatchingLifecycle:

    def test_initial_state_is_unmatched(self):
        assert MATCHING_WORKFLOW.initial_state == MatchingStatus.UNMATCHED.value

    def test_variance_approval_is_manual(self):
        transition = MATCHING_WORKFLOW.find_transition(
            MatchingStatus.PARTIALLY_MATCHED.value,
            MatchingStatus.VARIANCE_APPROVED.value,
        )
        assert transition.manual
        assert transition.guard is not None

    @pytest.mark.parametrize("source", [MatchingStatus.UNMATCHED, MatchingStatus.MATCHED])
    def test_approval_only_from_partially_matched(self, source):
        assert not MATCHING_WORKFLOW.can_transition(
            source.value, MatchingStatus.VARIANCE_APPROVED.value,
        )

    def test_never_returns_to_unmatched(self):
        for status in MatchingStatus:
            if status != MatchingStatus.UNMATCHED:
                assert not MATCHING_WORKFLOW.can_transition(
                    status.value, MatchingStatus.UNMATCHED.value,
                )
