"""
Canonical workflow types (``claims_kernel.domain.workflow``).

Responsibility
--------------
Pure value objects for state machines: a ``Transition`` names an action,
the role allowed to take it, the states it may start from and the state
it ends in.  A ``Workflow`` bundles the transitions and answers lookups.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``services/``, ``selectors/``, or outer layers.

Invariants enforced
-------------------
* Transitions reference only states in ``Workflow.states``.
* ``initial_state`` is a member of ``states``.
* ``terminal_states`` have no outgoing transitions.
* At most one transition per (action, role) pair.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Transition:
    """A valid state transition in a workflow.

    Contract: frozen.  ``requires_reason=True`` means the caller must
    supply a non-empty reason (reject, request revision).
    """
    action: str
    role: str
    from_states: tuple[str, ...]
    to_state: str
    requires_reason: bool = False


@dataclass(frozen=True)
class Workflow:
    """A state machine definition for a document lifecycle."""
    name: str
    description: str
    initial_state: str
    states: tuple[str, ...]
    transitions: tuple[Transition, ...]
    terminal_states: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.initial_state not in self.states:
            raise ValueError(
                f"Workflow {self.name}: initial state {self.initial_state!r} is not a state"
            )
        seen: set[tuple[str, str]] = set()
        for t in self.transitions:
            unknown = [s for s in (*t.from_states, t.to_state) if s not in self.states]
            if unknown:
                raise ValueError(
                    f"Workflow {self.name}: transition {t.action!r} references "
                    f"unknown states {unknown}"
                )
            if set(t.from_states) & set(self.terminal_states):
                raise ValueError(
                    f"Workflow {self.name}: transition {t.action!r} leaves a terminal state"
                )
            key = (t.action, t.role)
            if key in seen:
                raise ValueError(
                    f"Workflow {self.name}: duplicate transition for {key}"
                )
            seen.add(key)

    def find(self, action: str, role: str) -> Transition | None:
        """Return the transition for (action, role), or None if the role has none."""
        for t in self.transitions:
            if t.action == action and t.role == role:
                return t
        return None

    def actions_for(self, role: str) -> tuple[str, ...]:
        return tuple(t.action for t in self.transitions if t.role == role)
