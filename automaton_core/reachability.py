"""
Reachability Analysis
=====================
Graph queries over an Automaton used by the validator and the transformations.

- forward reachability from the initial state
- backward reachability (productive states) from the final states
- epsilon closure over state ids

Only real states and transitions are considered; the entry marker never
appears here because the Automaton does not expose it through these queries.
"""

from typing import Dict, Iterable, List, Optional, Set, FrozenSet
from collections import deque

from .automaton import Automaton


def build_successors(automaton: Automaton) -> Dict[str, Set[str]]:
    """state id -> ids reachable in one transition (any symbol, epsilon included)."""
    successors: Dict[str, Set[str]] = {s.id: set() for s in automaton.get_states()}
    for t in automaton.get_transitions():
        successors.setdefault(t.from_state, set()).add(t.to_state)
    return successors


def find_reachable_states(automaton: Automaton, start: Optional[str] = None) -> Set[str]:
    """
    Find all states reachable from the initial state (or ``start``) using BFS.

    Time Complexity: O(|States| + |Transitions|)

    Returns:
        Set of state ids; empty when there is no initial state.
    """
    if start is None:
        initial = automaton.get_initial_state()
        if initial is None:
            return set()
        start = initial.id

    successors = build_successors(automaton)
    reachable: Set[str] = set()
    queue: deque = deque([start])
    while queue:
        current = queue.popleft()
        if current in reachable:
            continue
        reachable.add(current)
        for nxt in successors.get(current, ()):
            if nxt not in reachable:
                queue.append(nxt)
    return reachable


def find_productive_states(automaton: Automaton) -> Set[str]:
    """
    Find all states that can reach at least one final state.
    Uses reverse BFS from the final states.
    """
    reverse_graph: Dict[str, Set[str]] = {s.id: set() for s in automaton.get_states()}
    for t in automaton.get_transitions():
        reverse_graph.setdefault(t.to_state, set()).add(t.from_state)

    productive: Set[str] = set()
    queue: deque = deque(s.id for s in automaton.get_final_states())
    while queue:
        current = queue.popleft()
        if current in productive:
            continue
        productive.add(current)
        for prev_state in reverse_graph.get(current, ()):
            if prev_state not in productive:
                queue.append(prev_state)
    return productive


def find_unreachable_states(automaton: Automaton) -> List[str]:
    """Ids of states not reachable from the initial state, in model order."""
    reachable = find_reachable_states(automaton)
    return [s.id for s in automaton.get_states() if s.id not in reachable]


def epsilon_successors(automaton: Automaton) -> Dict[str, Set[str]]:
    eps = automaton.settings.epsilon_label
    moves: Dict[str, Set[str]] = {}
    for t in automaton.get_transitions():
        if t.has_epsilon(eps):
            moves.setdefault(t.from_state, set()).add(t.to_state)
    return moves


def epsilon_closure(states: Iterable[str], moves: Dict[str, Set[str]]) -> FrozenSet[str]:
    """All states reachable from ``states`` through epsilon moves only (the states included)."""
    closure: Set[str] = set(states)
    stack = list(closure)
    while stack:
        here = stack.pop()
        for nxt in moves.get(here, ()):
            if nxt not in closure:
                closure.add(nxt)
                stack.append(nxt)
    return frozenset(closure)
