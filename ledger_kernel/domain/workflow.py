"""
Canonical workflow types (``ledger_kernel.domain.workflow``).

Responsibility
--------------
Pure value objects for document state machines, plus the two checks every
state change goes through: ``Workflow.resolve`` decides whether an action is
legal from a state, and ``Workflow.check_guards`` evaluates the guards the
table attaches to that transition.  Payment, refund and return order
lifecycles are all declared as a ``Workflow``; services supply one predicate
per guard name and never compare statuses or re-state a guard themselves.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants enforced
-------------------
* Transitions reference only states in ``Workflow.states``.
* ``initial_state`` is a member of ``states``.
* ``(from_state, action)`` identifies at most one transition.
* Terminal states have no outgoing transitions.
* Every guard on a transition is evaluated before the state is written; a
  guard without a registered check is a programming error.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

from ledger_kernel.exceptions import InvalidTransitionError


# A guard predicate.  Returns False to refuse the transition, or raises a
# more specific domain error (e.g. OverRefundError) itself.
GuardCheck = Callable[[Any], bool]


@dataclass(frozen=True)
class Guard:
    """A condition that must be satisfied before a transition fires.

    Contract: frozen, descriptive only.  The owning service maps ``name`` to
    a ``GuardCheck``; ``Workflow.check_guards`` evaluates it inside the
    transition's transaction.
    """
    name: str
    description: str


@dataclass(frozen=True)
class Transition:
    """A valid state transition in a workflow.

    ``effects`` name the financial side effects the owning service performs
    in the same transaction as the state write (e.g. creating a refund).
    """
    from_state: str
    to_state: str
    action: str
    guards: tuple[Guard, ...] = ()
    effects: tuple[str, ...] = ()


@dataclass(frozen=True)
class Workflow:
    """A state machine definition for a document lifecycle.

    Contract: frozen; ``transitions`` reference only states in ``states``.
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
                f"{self.name}: initial state '{self.initial_state}' is not a state"
            )
        seen: set[tuple[str, str]] = set()
        for t in self.transitions:
            if t.from_state not in self.states or t.to_state not in self.states:
                raise ValueError(
                    f"{self.name}: transition {t.from_state}->{t.to_state} "
                    f"references an unknown state"
                )
            if t.from_state in self.terminal_states:
                raise ValueError(
                    f"{self.name}: terminal state '{t.from_state}' has an "
                    f"outgoing transition"
                )
            key = (t.from_state, t.action)
            if key in seen:
                raise ValueError(
                    f"{self.name}: duplicate transition for {key}"
                )
            seen.add(key)

    @property
    def actions(self) -> tuple[str, ...]:
        """Every action name in declaration order, without duplicates."""
        return tuple(dict.fromkeys(t.action for t in self.transitions))

    def find(self, from_state: str, action: str) -> Transition | None:
        for t in self.transitions:
            if t.from_state == from_state and t.action == action:
                return t
        return None

    def resolve(self, from_state: str, action: str, entity: str) -> Transition:
        """Return the transition for ``action`` from ``from_state``.

        Raises:
            InvalidTransitionError: If the pair is not in the table.
        """
        transition = self.find(from_state, action)
        if transition is None:
            raise InvalidTransitionError(
                entity=entity,
                from_state=from_state,
                action=action,
                to_state=self._target_of(action),
            )
        return transition

    def allowed_actions(self, state: str) -> tuple[str, ...]:
        return tuple(t.action for t in self.transitions if t.from_state == state)

    def is_terminal(self, state: str) -> bool:
        return state in self.terminal_states

    def _target_of(self, action: str) -> str | None:
        targets = {t.to_state for t in self.transitions if t.action == action}
        return targets.pop() if len(targets) == 1 else None

    def check_guards(
        self,
        transition: Transition,
        subject: Any,
        checks: Mapping[str, GuardCheck],
        entity: str,
    ) -> None:
        """Evaluate every guard of ``transition`` against ``subject``, in
        declaration order.

        Raises:
            InvalidTransitionError: A check returned False.
            ValueError: A guard has no entry in ``checks``.
        """
        for guard in transition.guards:
            check = checks.get(guard.name)
            if check is None:
                raise ValueError(
                    f"{self.name}: no check registered for guard '{guard.name}'"
                )
            if not check(subject):
                raise InvalidTransitionError(
                    entity=entity,
                    from_state=transition.from_state,
                    action=transition.action,
                    to_state=transition.to_state,
                    reason=guard.description,
                )
