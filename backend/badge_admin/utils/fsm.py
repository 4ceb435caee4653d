"""Simple finite state machine utility for enforcing allowed status transitions.

Each edge carries the action an actor needs to take it; `None` marks a
system-only edge (e.g. time-driven expiry) that no actor may request.
Usage:
    from badge_admin.utils.fsm import TransitionValidator
    CARD_FSM = TransitionValidator({
        'created': {'ready_to_print': 'approve', 'expired': None},
        'ready_to_print': {'printed': 'edit', 'expired': None},
        'printed': set(),
    })
    edge = CARD_FSM.assert_can_transition(current_status, target_status)
    edge.required_action  # -> 'approve'

Raises InvalidTransition if the edge is absent.
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, Iterable, Mapping, Optional, Union

from badge_admin.errors import InvalidTransition


@dataclass(frozen=True)
class Edge:
    source: str
    target: str
    required_action: Optional[str]

    @property
    def system_only(self) -> bool:
        return self.required_action is None


class TransitionValidator:
    def __init__(self, graph: Mapping[str, Union[Mapping[str, Optional[str]], Iterable[str]]], field_name: str = 'status'):
        # plain sets are accepted for edges that need no particular action
        self.graph: Dict[str, Dict[str, Optional[str]]] = {
            state: dict(targets) if isinstance(targets, Mapping) else {t: None for t in targets}
            for state, targets in graph.items()
        }
        self.field_name = field_name

    @property
    def states(self):
        out = set(self.graph)
        for targets in self.graph.values():
            out.update(targets)
        return out

    def edge(self, current: str, target: str) -> Optional[Edge]:
        targets = self.graph.get(current, {})
        if target not in targets:
            return None
        return Edge(current, target, targets[target])

    def targets(self, current: str):
        return set(self.graph.get(current, {}))

    def is_terminal(self, state: str) -> bool:
        return not self.graph.get(state)

    def assert_can_transition(self, current: str, target: str) -> Edge:
        e = self.edge(current, target)
        if e is None:
            raise InvalidTransition(current, target, f"Invalid {self.field_name} transition {current} -> {target}")
        return e

    def assert_actor_can_request(self, current: str, target: str) -> Edge:
        """Like assert_can_transition but system-only edges are not requestable."""
        e = self.assert_can_transition(current, target)
        if e.system_only:
            raise InvalidTransition(current, target, f"{self.field_name} {target} is set by the system only")
        return e

    def ordered_states(self, initial: str):
        """States in breadth-first order from `initial` (used for documentation)."""
        seen = [initial]
        i = 0
        while i < len(seen):
            for t in self.graph.get(seen[i], {}):
                if t not in seen:
                    seen.append(t)
            i += 1
        return seen

__all__ = ['TransitionValidator', 'Edge']
