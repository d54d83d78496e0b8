"""
Automaton Transformations
=========================
Pure conversions between automaton kinds. Every function returns a brand-new
Automaton and leaves its input untouched.

- dfa_to_nfa / pda_to_nfa: relabel (PDA: drop stack operations, lossy)
- nfa_to_dfa / pda_to_dfa: subset construction with epsilon closure
- dfa_to_pda / nfa_to_pda: relabel, every transition gets a no-op stack operation
- add_sinkstate_to_dfa: make a DFA total with one non-final trap state
"""

import uuid
from collections import deque
from typing import Callable, Dict, FrozenSet, List, Set, Tuple, Union

import structlog

from .automaton import Automaton
from .exceptions import TransformationError
from .models import AutomatonKind, StackOperation, StackOperationType, State, Transition
from .reachability import epsilon_closure, epsilon_successors

log = structlog.get_logger(__name__)


def _new_id() -> str:
    return str(uuid.uuid4())


def _require_kind(automaton: Automaton, *kinds: AutomatonKind) -> None:
    if automaton.kind not in kinds:
        expected = ", ".join(k.value.upper() for k in kinds)
        raise TransformationError(f"Expected a {expected}, got a {automaton.kind.value.upper()}")


def _rebuild(automaton: Automaton, kind: AutomatonKind, states: List[State], transitions: List[Transition]) -> Automaton:
    return Automaton(
        kind,
        states,
        transitions,
        entry_marker_id=automaton.entry_marker_id,
        settings=automaton.settings,
    )


def dfa_to_nfa(automaton: Automaton) -> Automaton:
    """Every DFA already is an NFA; only the kind changes."""
    _require_kind(automaton, AutomatonKind.DFA)
    return automaton.copy(kind=AutomatonKind.NFA)


def to_pda(automaton: Automaton) -> Automaton:
    """Relabel a finite automaton as a PDA whose transitions leave the stack alone."""
    _require_kind(automaton, AutomatonKind.DFA, AutomatonKind.NFA)
    transitions = [
        t.model_copy(update={"stack_operations": [StackOperation(operation=StackOperationType.NONE)]})
        for t in automaton.get_transitions()
    ]
    return _rebuild(automaton, AutomatonKind.PDA, automaton.get_states(), transitions)


dfa_to_pda = to_pda
nfa_to_pda = to_pda


def pda_to_nfa(automaton: Automaton) -> Automaton:
    """
    Project away the stack. Stack-dependent behaviour is lost: the result
    accepts every word some path of the PDA could read if the stack never
    blocked it.
    """
    _require_kind(automaton, AutomatonKind.PDA)
    transitions = automaton.get_transitions()
    discarded = [t.id for t in transitions if t.effective_stack_operations()]
    if discarded:
        log.warning("stack_operations_discarded", transitions=len(discarded))
    transitions = [t.model_copy(update={"stack_operations": None}) for t in transitions]
    return _rebuild(automaton, AutomatonKind.NFA, automaton.get_states(), transitions)


def nfa_to_dfa(automaton: Automaton) -> Automaton:
    """
    Subset construction.

    DFA states are epsilon-closed subsets of NFA states reachable from the
    closure of the initial state. Subsets are frozensets, so the same subset
    reached twice maps to the same DFA state. The empty subset is never
    created; missing moves stay missing (see add_sinkstate_to_dfa).

    Time Complexity: O(2^|States| * |Alphabet|) in the worst case
    """
    _require_kind(automaton, AutomatonKind.NFA)
    nfa_states = {s.id: s for s in automaton.get_states()}
    order = {sid: idx for idx, sid in enumerate(nfa_states)}
    alphabet = automaton.get_alphabet()

    initial = automaton.get_initial_state()
    if initial is None:
        log.warning("subset_construction_skipped", reason="no initial state")
        return _rebuild(automaton, AutomatonKind.DFA, [], [])

    eps = automaton.settings.epsilon_label
    eps_moves = epsilon_successors(automaton)
    symbol_moves: Dict[Tuple[str, str], Set[str]] = {}
    for t in automaton.get_transitions():
        for symbol in t.input_symbols(eps):
            symbol_moves.setdefault((t.from_state, symbol), set()).add(t.to_state)

    def subset_label(subset: FrozenSet[str]) -> str:
        names = [nfa_states[sid].label for sid in sorted(subset, key=order.get)]
        return "{" + ",".join(names) + "}"

    start = epsilon_closure({initial.id}, eps_moves)
    subset_ids: Dict[FrozenSet[str], str] = {start: _new_id()}
    queue: deque = deque([start])
    new_states: List[State] = []
    new_transitions: List[Transition] = []

    while queue:
        subset = queue.popleft()
        state_id = subset_ids[subset]
        new_states.append(State(
            id=state_id,
            label=subset_label(subset),
            is_final=any(nfa_states[sid].is_final for sid in subset),
            is_initial=subset == start,
        ))

        # One transition per target subset, carrying all symbols that lead there
        grouped: Dict[str, List[str]] = {}
        for symbol in alphabet:
            reached: Set[str] = set()
            for sid in subset:
                reached |= symbol_moves.get((sid, symbol), set())
            if not reached:
                continue
            target = epsilon_closure(reached, eps_moves)
            if target not in subset_ids:
                subset_ids[target] = _new_id()
                queue.append(target)
            grouped.setdefault(subset_ids[target], []).append(symbol)

        for target_id, symbols in grouped.items():
            new_transitions.append(Transition(
                id=_new_id(),
                from_state=state_id,
                to_state=target_id,
                symbols=symbols,
            ))

    log.info(
        "subset_construction_complete",
        nfa_states=len(nfa_states),
        dfa_states=len(new_states),
        alphabet=len(alphabet),
    )
    return _rebuild(automaton, AutomatonKind.DFA, new_states, new_transitions)


def pda_to_dfa(automaton: Automaton) -> Automaton:
    """Lossy: drop the stack, then determinize."""
    return nfa_to_dfa(pda_to_nfa(automaton))


def find_missing_symbols(automaton: Automaton) -> Dict[str, List[str]]:
    """state id -> alphabet symbols without an outgoing transition, for states missing at least one."""
    eps = automaton.settings.epsilon_label
    alphabet = automaton.get_alphabet()
    missing: Dict[str, List[str]] = {}
    for state in automaton.get_states():
        covered: Set[str] = set()
        for t in automaton.get_transitions_from_state(state.id):
            covered.update(t.input_symbols(eps))
        gaps = [symbol for symbol in alphabet if symbol not in covered]
        if gaps:
            missing[state.id] = gaps
    return missing


def _unique_label(automaton: Automaton, base: str) -> str:
    taken = {s.label for s in automaton.get_states()}
    if base not in taken:
        return base
    n = 1
    while f"{base}{n}" in taken:
        n += 1
    return f"{base}{n}"


def add_sinkstate_to_dfa(automaton: Automaton) -> Automaton:
    """
    Route every missing (state, symbol) pair of a DFA to a new non-final sink
    state that loops on the whole alphabet. A DFA that is already total is
    returned as an unchanged copy.
    """
    _require_kind(automaton, AutomatonKind.DFA)
    result = automaton.copy()
    missing = find_missing_symbols(result)
    if not missing:
        log.info("dfa_already_total")
        return result

    alphabet = result.get_alphabet()
    sink_id = _new_id()
    result.add_state(State(id=sink_id, label=_unique_label(result, automaton.settings.sink_state_label)))
    result.add_transition(Transition(id=_new_id(), from_state=sink_id, to_state=sink_id, symbols=alphabet))
    for state_id, symbols in missing.items():
        result.add_transition(Transition(id=_new_id(), from_state=state_id, to_state=sink_id, symbols=symbols))

    log.info("sink_state_added", completed_states=len(missing), alphabet=len(alphabet))
    return result


_CONVERSIONS: Dict[Tuple[AutomatonKind, AutomatonKind], Callable[[Automaton], Automaton]] = {
    (AutomatonKind.DFA, AutomatonKind.NFA): dfa_to_nfa,
    (AutomatonKind.DFA, AutomatonKind.PDA): dfa_to_pda,
    (AutomatonKind.NFA, AutomatonKind.DFA): nfa_to_dfa,
    (AutomatonKind.NFA, AutomatonKind.PDA): nfa_to_pda,
    (AutomatonKind.PDA, AutomatonKind.DFA): pda_to_dfa,
    (AutomatonKind.PDA, AutomatonKind.NFA): pda_to_nfa,
}


def convert(automaton: Automaton, target: Union[AutomatonKind, str]) -> Automaton:
    """Switch the automaton to ``target`` kind; converting to the same kind yields a copy."""
    target = AutomatonKind(target)
    if automaton.kind == target:
        return automaton.copy()
    log.info("automaton_convert", source=automaton.kind.value, target=target.value)
    return _CONVERSIONS[(automaton.kind, target)](automaton)
