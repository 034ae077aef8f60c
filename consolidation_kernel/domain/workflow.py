"""
Canonical workflow types (``consolidation_kernel.domain.workflow``).

Responsibility
--------------
Pure value objects for state machines.  Used by the consolidation run
lifecycle and the intercompany matching lifecycle so that Guard,
Transition, and Workflow are defined once.

Invariants enforced
-------------------
* Transitions reference only states in ``Workflow.states``.
* ``initial_state`` is a member of ``states``.
* Terminal states have no outgoing transitions.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Guard:
    """A condition that must be satisfied before a transition fires.

    Descriptive only: the owning service evaluates the condition.
    """

    name: str
    description: str


@dataclass(frozen=True)
class Transition:
    """A valid state transition in a workflow."""

    from_state: str
    to_state: str
    action: str
    guard: Guard | None = None
    manual: bool = False


@dataclass(frozen=True)
class Workflow:
    """A state machine definition for an entity lifecycle."""

    name: str
    description: str
    initial_state: str
    states: tuple[str, ...]
    transitions: tuple[Transition, ...]
    terminal_states: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.initial_state not in self.states:
            raise ValueError(
                f"Workflow {self.name}: initial state {self.initial_state} "
                f"is not a declared state"
            )
        for t in self.transitions:
            if t.from_state not in self.states or t.to_state not in self.states:
                raise ValueError(
                    f"Workflow {self.name}: transition {t.action} references "
                    f"an undeclared state"
                )
            if t.from_state in self.terminal_states:
                raise ValueError(
                    f"Workflow {self.name}: terminal state {t.from_state} "
                    f"has an outgoing transition"
                )

    def find_transition(self, from_state: str, to_state: str) -> Transition | None:
        for t in self.transitions:
            if t.from_state == from_state and t.to_state == to_state:
                return t
        return None

    def can_transition(self, from_state: str, to_state: str) -> bool:
        return self.find_transition(from_state, to_state) is not None

    def is_terminal(self, state: str) -> bool:
        return state in self.terminal_states
