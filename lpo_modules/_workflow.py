"""
Workflow definitions shared by the module state machines.

A ``Workflow`` is a declarative transition table.  Services consult it
before mutating an entity (``require``) and again after deriving the new
state (``check_target``), so the table and the derived status can never
silently disagree.
"""

from dataclasses import dataclass

from lpo_kernel.exceptions import InvalidStateError


@dataclass(frozen=True)
class Guard:
    """A condition for a transition."""
    name: str
    description: str


@dataclass(frozen=True)
class Transition:
    """A valid state transition."""
    from_state: str
    to_state: str
    action: str
    guard: Guard | None = None


@dataclass(frozen=True)
class Workflow:
    """A state machine definition."""
    name: str
    description: str
    initial_state: str
    states: tuple[str, ...]
    transitions: tuple[Transition, ...]
    terminal_states: tuple[str, ...] = ()

    def transitions_from(self, state: str, action: str | None = None) -> tuple[Transition, ...]:
        return tuple(
            t for t in self.transitions
            if t.from_state == state and (action is None or t.action == action)
        )

    def allowed_actions(self, state: str) -> tuple[str, ...]:
        seen: dict[str, None] = {}
        for t in self.transitions_from(state):
            seen.setdefault(t.action, None)
        return tuple(seen)

    def require(
        self, state: str, action: str, entity_type: str, entity_id, **context
    ) -> tuple[Transition, ...]:
        """Transitions for ``action`` out of ``state``; InvalidStateError if none."""
        found = self.transitions_from(state, action)
        if not found:
            raise InvalidStateError(entity_type, entity_id, state, action, **context)
        return found

    def check_target(
        self, state: str, action: str, target: str, entity_type: str, entity_id
    ) -> Transition:
        for t in self.transitions_from(state, action):
            if t.to_state == target:
                return t
        raise InvalidStateError(
            entity_type, entity_id, state, action,
            detail=f"no transition to {target} in the {self.name} workflow",
        )
