"""
Canonical workflow types (``rental_kernel.domain.workflow``).

Responsibility
--------------
Pure value objects for workflow state machines.  A workflow is declared as
data (states plus transitions); the service layer looks transitions up by
action and current state instead of hand-writing status checks.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``services/``, ``selectors/``, or outer layers.

Invariants enforced
-------------------
* Transitions reference only states in ``Workflow.states``.
* ``initial_state`` is a member of ``states``.
* ``terminal_states`` have no outgoing transitions.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Guard:
    """A condition that must be satisfied before a transition fires.

    Contract: frozen, descriptive only.
    Non-goals: does not evaluate the condition -- the service does.
    """
    name: str
    description: str


@dataclass(frozen=True)
class Transition:
    """A valid state transition in a workflow.

    Contract: frozen.  ``posts_entry=True`` indicates the transition writes
    to the ledger.  ``actor_roles`` lists the party roles allowed to fire it;
    an empty tuple means any party.
    """
    from_state: str
    to_state: str
    action: str
    actor_roles: tuple[str, ...] = ()
    guard: Guard | None = None
    posts_entry: bool = False


@dataclass(frozen=True)
class Workflow:
    """A state machine definition for a document lifecycle.

    Contract: frozen; ``transitions`` reference only states in ``states``.
    Guarantees: ``initial_state`` is a member of ``states``.
    """
    name: str
    description: str
    initial_state: str
    states: tuple[str, ...]
    transitions: tuple[Transition, ...]
    terminal_states: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.initial_state not in self.states:
            raise ValueError(
                f"Workflow {self.name}: initial state {self.initial_state!r} not in states"
            )
        for t in self.transitions:
            if t.from_state not in self.states or t.to_state not in self.states:
                raise ValueError(
                    f"Workflow {self.name}: transition {t.action} "
                    f"{t.from_state}->{t.to_state} references unknown state"
                )
            if t.from_state in self.terminal_states:
                raise ValueError(
                    f"Workflow {self.name}: terminal state {t.from_state} has outgoing "
                    f"transition {t.action}"
                )

    def actions(self) -> frozenset[str]:
        return frozenset(t.action for t in self.transitions)

    def transitions_for(self, action: str) -> tuple[Transition, ...]:
        """All transitions declared for an action, in declaration order."""
        return tuple(t for t in self.transitions if t.action == action)

    def source_states(self, action: str) -> frozenset[str]:
        return frozenset(t.from_state for t in self.transitions_for(action))

    def roles_for(self, action: str) -> frozenset[str]:
        """Union of actor roles allowed to fire ``action`` from any state."""
        roles: set[str] = set()
        for t in self.transitions_for(action):
            roles.update(t.actor_roles)
        return frozenset(roles)

    def find(
        self, action: str, from_state: str, to_state: str | None = None,
    ) -> Transition | None:
        """Return the first transition for ``action`` leaving ``from_state``.

        Actions with several possible outcomes (e.g. ACTIVE or OVERDUE) declare
        one transition per target; pass ``to_state`` to select among them.
        """
        for t in self.transitions:
            if t.action != action or t.from_state != from_state:
                continue
            if to_state is None or t.to_state == to_state:
                return t
        return None

    def is_terminal(self, state: str) -> bool:
        return state in self.terminal_states
