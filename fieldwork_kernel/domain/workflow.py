"""
Canonical workflow types (``fieldwork_kernel.domain.workflow``).

Responsibility
--------------
Pure value objects for document state machines.  The quote and invoice
workflows are two separate ``Workflow`` tables built from these types; they
share the vocabulary, never the table.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants enforced
-------------------
* Transitions reference only states in ``Workflow.states``.
* ``initial_state`` is a member of ``states``.
* Terminal states have no outgoing transition except those whose action
  is listed in ``reopen_actions``.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Guard:
    """A condition that must be satisfied before a transition fires.

    Contract: frozen, descriptive only.
    Non-goals: does not evaluate the condition -- the state machine does.
    """
    name: str
    description: str


@dataclass(frozen=True)
class Transition:
    """A valid state transition in a workflow.

    ``guards`` are all evaluated; the first failing guard rejects the
    transition.  ``system_only`` marks transitions that no user-facing
    status edit may request (payment-driven states).
    """
    from_state: str
    to_state: str
    action: str
    guards: tuple[Guard, ...] = ()
    system_only: bool = False


@dataclass(frozen=True)
class Workflow:
    """A state machine definition for a document lifecycle."""
    name: str
    description: str
    initial_state: str
    states: tuple[str, ...]
    transitions: tuple[Transition, ...]
    terminal_states: tuple[str, ...] = ()
    derived_states: tuple[str, ...] = ()
    reopen_actions: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.initial_state not in self.states:
            raise ValueError(
                f"Workflow {self.name}: initial state {self.initial_state!r} "
                "is not a declared state"
            )
        for t in self.transitions:
            if t.from_state not in self.states or t.to_state not in self.states:
                raise ValueError(
                    f"Workflow {self.name}: transition {t.action} "
                    f"{t.from_state}->{t.to_state} references an unknown state"
                )
            if t.to_state in self.derived_states:
                raise ValueError(
                    f"Workflow {self.name}: {t.to_state} is derived from time "
                    "and cannot be a transition target"
                )
            if (
                t.from_state in self.terminal_states
                and t.action not in self.reopen_actions
            ):
                raise ValueError(
                    f"Workflow {self.name}: terminal state {t.from_state} "
                    f"has outgoing transition {t.action}"
                )

    def transitions_from(self, state: str, action: str | None = None) -> tuple[Transition, ...]:
        """All transitions leaving ``state``, optionally filtered by action."""
        return tuple(
            t for t in self.transitions
            if t.from_state == state and (action is None or t.action == action)
        )

    def is_terminal(self, state: str) -> bool:
        return state in self.terminal_states
