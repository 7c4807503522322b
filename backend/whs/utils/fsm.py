"""Simple finite state machine utility for enforcing allowed status transitions.

Used for both axes of the repair lifecycle that move step by step:
the repair `status` and each item's `status`.
Usage:
    from whs.utils.fsm import TransitionValidator
    ITEM_FSM = TransitionValidator({
        'pending': {'in_progress'},
        'in_progress': {'completed'},
        'completed': set(),
    }, field_name='item status')
    ITEM_FSM.assert_can_transition(current_status, target_status)

Raises ForbiddenTransition if invalid. Staying in the same state is not a
transition and is always accepted.
"""
from __future__ import annotations
from typing import Dict, Set, FrozenSet
from whs.errors import ForbiddenTransition

class TransitionValidator:
    def __init__(self, graph: Dict[str, Set[str]], field_name: str = 'status'):
        self.graph = graph
        self.field_name = field_name

    @property
    def states(self) -> FrozenSet[str]:
        return frozenset(self.graph)

    def is_terminal(self, state: str) -> bool:
        return not self.graph.get(state)

    def can_transition(self, current: str, target: str) -> bool:
        if current == target:
            return True
        return target in self.graph.get(current, set())

    def assert_can_transition(self, current: str, target: str):
        if not self.can_transition(current, target):
            raise ForbiddenTransition(f"Invalid {self.field_name} transition {current} -> {target}")
        return True

__all__ = ['TransitionValidator']
