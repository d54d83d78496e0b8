"""
Automaton Model
===============
Node/transition containers for DFA, NFA and PDA plus the rules that keep them
well-formed while they are being edited:

- at most one initial state; promoting a state clears the flag everywhere else
- an entry marker (owned by this instance) always points at the initial state
- removing a state removes every transition touching it
- transition labels are re-derived from symbols (and stack operations) on
  every transition mutation

Every mutating method enforces these rules itself before returning, bumps
``revision`` and then notifies subscribers with a ModelEvent.
"""

import json
import uuid
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

import structlog
from pydantic import ValidationError

from .config import EngineSettings, get_settings
from .exceptions import AutomatonError
from .models import (
    AutomatonKind,
    FormalDefinition,
    ModelEvent,
    State,
    Transition,
)
from .schemas import AutomatonDocument, parse_document

log = structlog.get_logger(__name__)

Listener = Callable[[ModelEvent], None]
StateLike = Union[State, Dict[str, Any]]
TransitionLike = Union[Transition, Dict[str, Any]]


class Automaton:
    def __init__(
        self,
        kind: Union[AutomatonKind, str],
        states: Optional[Iterable[StateLike]] = None,
        transitions: Optional[Iterable[TransitionLike]] = None,
        entry_marker_id: Optional[str] = None,
        settings: Optional[EngineSettings] = None,
    ):
        self.kind = AutomatonKind(kind)
        self.settings = settings or get_settings()
        self.entry_marker_id = entry_marker_id or self.settings.entry_marker_id
        self.revision = 0

        self._states: Dict[str, State] = {}
        self._transitions: Dict[str, Transition] = {}
        self._entry_marker: Optional[State] = None
        self._entry_transition: Optional[Transition] = None
        self._listeners: List[Listener] = []

        states = list(states or [])
        transitions = list(transitions or [])
        if states or transitions:
            self.update_automaton(states, transitions)

    def __repr__(self) -> str:
        return f"<Automaton {self.kind.value} states={len(self._states)} transitions={len(self._transitions)}>"

    # ------------------------------------------------------------------
    # Construction helpers
    # ------------------------------------------------------------------
    @classmethod
    def from_document(
        cls,
        kind: Union[AutomatonKind, str],
        document: AutomatonDocument,
        settings: Optional[EngineSettings] = None,
    ) -> "Automaton":
        return cls(kind, document.states, document.transitions, settings=settings)

    @classmethod
    def from_json(
        cls,
        kind: Union[AutomatonKind, str],
        data: Union[str, bytes, Dict[str, Any]],
        settings: Optional[EngineSettings] = None,
    ) -> "Automaton":
        """Build a fresh automaton from the portable format. Raises AutomatonImportError."""
        return cls.from_document(kind, parse_document(data), settings=settings)

    def copy(self, kind: Optional[Union[AutomatonKind, str]] = None) -> "Automaton":
        """New, independent automaton with the same states and transitions (listeners are not copied)."""
        return Automaton(
            kind or self.kind,
            self.get_states(),
            self.get_transitions(),
            entry_marker_id=self.entry_marker_id,
            settings=self.settings,
        )

    # ------------------------------------------------------------------
    # Event feed
    # ------------------------------------------------------------------
    def subscribe(self, listener: Listener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def unsubscribe(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _emit(self, action: str, collection: str, ids: List[str]) -> None:
        if not ids:
            return
        event = ModelEvent(action=action, collection=collection, ids=ids)
        for listener in list(self._listeners):
            listener(event)

    # ------------------------------------------------------------------
    # Invariant enforcement
    # ------------------------------------------------------------------
    def _coerce_state(self, data: StateLike) -> State:
        try:
            state = State.model_validate(data.model_dump() if isinstance(data, State) else data)
        except ValidationError as e:
            raise AutomatonError(f"Invalid state: {e}") from e
        if state.id == self.entry_marker_id:
            raise AutomatonError(f"State id '{state.id}' is reserved for the entry marker")
        return state

    def _coerce_transition(self, data: TransitionLike) -> Transition:
        try:
            transition = Transition.model_validate(
                data.model_dump(by_alias=True) if isinstance(data, Transition) else data
            )
        except ValidationError as e:
            raise AutomatonError(f"Invalid transition: {e}") from e
        for ref in (transition.from_state, transition.to_state):
            if ref not in self._states:
                raise AutomatonError(f"Transition '{transition.id}' references unknown state '{ref}'")
        if self.kind != AutomatonKind.PDA and transition.stack_operations is not None:
            transition = transition.model_copy(update={"stack_operations": None})
        return transition

    def render_label(self, transition: Transition) -> str:
        """Canonical label: symbols in display order, then stack operations for PDAs."""
        eps = self.settings.epsilon_label
        text = ", ".join(s or eps for s in transition.symbols) or eps
        if self.kind == AutomatonKind.PDA:
            ops = [op.render() for op in transition.effective_stack_operations()]
            if ops:
                text = f"{text} / {' '.join(ops)}"
        return text

    def _refresh_label(self, transition: Transition) -> Transition:
        label = self.render_label(transition)
        if transition.label != label:
            transition = transition.model_copy(update={"label": label})
        return transition

    def _enforce_initial(self, state_id: str) -> List[str]:
        """Make ``state_id`` the only initial state and re-point the entry marker. Returns demoted ids."""
        demoted = []
        for other_id, other in self._states.items():
            if other_id != state_id and other.is_initial:
                self._states[other_id] = other.model_copy(update={"is_initial": False})
                demoted.append(other_id)

        if self._entry_marker is None:
            self._entry_marker = State(id=self.entry_marker_id, label="")
        self._entry_transition = Transition(
            id=str(uuid.uuid4()),
            from_state=self.entry_marker_id,
            to_state=state_id,
            symbols=[],
            label="",
        )
        self._emit("update", "entry_marker", [self.entry_marker_id])
        return demoted

    def _clear_entry_marker(self) -> None:
        if self._entry_marker is None:
            return
        self._entry_marker = None
        self._entry_transition = None
        self._emit("remove", "entry_marker", [self.entry_marker_id])

    def _touch(self) -> None:
        self.revision += 1

    # ------------------------------------------------------------------
    # State mutations
    # ------------------------------------------------------------------
    def add_state(self, state: StateLike) -> State:
        state = self._coerce_state(state)
        if state.id in self._states:
            raise AutomatonError(f"State '{state.id}' already exists")
        self._states[state.id] = state
        self._touch()
        demoted = self._enforce_initial(state.id) if state.is_initial else []
        log.debug("state_added", state_id=state.id, label=state.label)
        self._emit("add", "states", [state.id])
        self._emit("update", "states", demoted)
        return state.model_copy()

    def update_state(self, state_id: str, **changes: Any) -> State:
        """Apply field changes (``label``, ``is_final``, ``is_initial``) to an existing state."""
        old = self._states.get(state_id)
        if old is None:
            raise AutomatonError(f"Unknown state '{state_id}'")
        if changes.get("id", state_id) != state_id:
            raise AutomatonError("State ids cannot be changed")

        new = self._coerce_state({**old.model_dump(), **changes})
        self._states[state_id] = new
        self._touch()

        demoted: List[str] = []
        if new.is_initial and not old.is_initial:
            demoted = self._enforce_initial(state_id)
        elif old.is_initial and not new.is_initial:
            self._clear_entry_marker()
        self._emit("update", "states", [state_id] + demoted)
        return new.model_copy()

    def remove_state(self, state_id: str) -> None:
        state = self._states.pop(state_id, None)
        if state is None:
            return
        dropped = [
            tid for tid, t in self._transitions.items()
            if t.from_state == state_id or t.to_state == state_id
        ]
        for tid in dropped:
            del self._transitions[tid]
        self._touch()
        if state.is_initial:
            self._clear_entry_marker()
        log.debug("state_removed", state_id=state_id, cascaded_transitions=len(dropped))
        self._emit("remove", "transitions", dropped)
        self._emit("remove", "states", [state_id])

    # ------------------------------------------------------------------
    # Transition mutations
    # ------------------------------------------------------------------
    def add_transition(self, transition: TransitionLike) -> Transition:
        transition = self._refresh_label(self._coerce_transition(transition))
        if transition.id in self._transitions:
            raise AutomatonError(f"Transition '{transition.id}' already exists")
        self._transitions[transition.id] = transition
        self._touch()
        log.debug("transition_added", transition_id=transition.id, label=transition.label)
        self._emit("add", "transitions", [transition.id])
        return transition.model_copy(deep=True)

    def update_transition(self, transition_id: str, **changes: Any) -> Transition:
        """Apply field changes (``symbols``, ``stack_operations``, ``from_state``, ``to_state``)."""
        old = self._transitions.get(transition_id)
        if old is None:
            raise AutomatonError(f"Unknown transition '{transition_id}'")
        if changes.get("id", transition_id) != transition_id:
            raise AutomatonError("Transition ids cannot be changed")

        data = old.model_dump()
        data.update(changes)
        new = self._refresh_label(self._coerce_transition(data))
        self._transitions[transition_id] = new
        self._touch()
        self._emit("update", "transitions", [transition_id])
        return new.model_copy(deep=True)

    def remove_transition(self, transition_id: str) -> None:
        if self._transitions.pop(transition_id, None) is None:
            return
        self._touch()
        self._emit("remove", "transitions", [transition_id])

    def remove_transitions_from_state(self, state_id: str) -> None:
        dropped = [tid for tid, t in self._transitions.items() if t.from_state == state_id]
        for tid in dropped:
            del self._transitions[tid]
        if dropped:
            self._touch()
        self._emit("remove", "transitions", dropped)

    def update_automaton(self, states: Iterable[StateLike], transitions: Iterable[TransitionLike]) -> None:
        """
        Bulk upsert for programmatic loads.

        States are inserted or replaced first, then transitions. When several
        incoming states claim to be initial, the last one wins.
        """
        incoming_states = [self._coerce_state(s) for s in states]
        snapshot = (dict(self._states), dict(self._transitions))
        new_initial = None
        for state in incoming_states:
            self._states[state.id] = state
            if state.is_initial:
                new_initial = state.id

        # Upserted states may have dropped the flag from the current initial state
        current_initial = [sid for sid, s in self._states.items() if s.is_initial]
        if new_initial is None and current_initial:
            new_initial = current_initial[-1]

        transition_ids = []
        try:
            for raw in transitions:
                transition = self._refresh_label(self._coerce_transition(raw))
                self._transitions[transition.id] = transition
                transition_ids.append(transition.id)
        except AutomatonError:
            self._states, self._transitions = snapshot
            raise

        self._touch()
        demoted: List[str] = []
        if new_initial is not None:
            demoted = self._enforce_initial(new_initial)
        else:
            self._clear_entry_marker()

        log.debug("automaton_updated", states=len(incoming_states), transitions=len(transition_ids))
        self._emit("update", "states", [s.id for s in incoming_states] + demoted)
        self._emit("update", "transitions", transition_ids)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def get_state(self, state_id: str) -> Optional[State]:
        state = self._states.get(state_id)
        return state.model_copy() if state else None

    def get_transition(self, transition_id: str) -> Optional[Transition]:
        transition = self._transitions.get(transition_id)
        return transition.model_copy(deep=True) if transition else None

    def get_states(self) -> List[State]:
        return [s.model_copy() for s in self._states.values()]

    def get_transitions(self) -> List[Transition]:
        return [t.model_copy(deep=True) for t in self._transitions.values()]

    def get_transitions_from_state(self, state_id: str) -> List[Transition]:
        return [t.model_copy(deep=True) for t in self._transitions.values() if t.from_state == state_id]

    def get_alphabet(self) -> List[str]:
        eps = self.settings.epsilon_label
        alphabet: Dict[str, None] = {}
        for t in self._transitions.values():
            for symbol in t.symbols:
                if symbol and symbol != eps:
                    alphabet[symbol] = None
        return list(alphabet)

    def get_initial_state(self) -> Optional[State]:
        for state in self._states.values():
            if state.is_initial:
                return state.model_copy()
        return None

    def get_final_states(self) -> List[State]:
        return [s.model_copy() for s in self._states.values() if s.is_final]

    def get_new_state_label(self) -> str:
        labels = {s.label for s in self._states.values()}
        n = len(self._states)
        while f"q{n}" in labels:
            n += 1
        return f"q{n}"

    def get_formal_definition(self) -> FormalDefinition:
        eps = self.settings.epsilon_label
        labels = {sid: s.label for sid, s in self._states.items()}
        tuples = []
        for t in self._transitions.values():
            symbols = t.symbols or [eps]
            for symbol in symbols:
                tuples.append((labels[t.from_state], symbol or eps, labels[t.to_state]))

        initial = self.get_initial_state()
        return FormalDefinition(
            states=[s.label for s in self._states.values()],
            alphabet=self.get_alphabet(),
            transitions=tuples,
            initial_state=initial.label if initial else None,
            final_states=[s.label for s in self._states.values() if s.is_final],
        )

    def get_transition_table(self) -> Dict[str, Dict[str, List[str]]]:
        """state label -> symbol -> target labels, one column per alphabet symbol."""
        alphabet = self.get_alphabet()
        table: Dict[str, Dict[str, List[str]]] = {}
        for state in self._states.values():
            row: Dict[str, List[str]] = {symbol: [] for symbol in alphabet}
            for t in self._transitions.values():
                if t.from_state != state.id:
                    continue
                for symbol in t.symbols:
                    if symbol in row:
                        row[symbol].append(self._states[t.to_state].label)
            table[state.label] = row
        return table

    def get_graph_data(self) -> Dict[str, List[Any]]:
        """Everything a renderer needs, including the entry marker and its transition."""
        states: List[State] = self.get_states()
        transitions: List[Transition] = self.get_transitions()
        if self._entry_marker is not None and self._entry_transition is not None:
            states.append(self._entry_marker.model_copy())
            transitions.append(self._entry_transition.model_copy(deep=True))
        return {"states": states, "transitions": transitions}

    @property
    def entry_transition(self) -> Optional[Transition]:
        return self._entry_transition.model_copy() if self._entry_transition else None

    # ------------------------------------------------------------------
    # Portable format
    # ------------------------------------------------------------------
    def to_document(self) -> AutomatonDocument:
        return AutomatonDocument(states=self.get_states(), transitions=self.get_transitions())

    def export_json(self, indent: Optional[int] = None) -> str:
        return json.dumps(self.to_document().to_dict(), indent=indent, ensure_ascii=False)

    def import_json(self, data: Union[str, bytes, Dict[str, Any]]) -> None:
        """Merge a portable document into this automaton. Raises AutomatonImportError."""
        document = parse_document(data)
        self.update_automaton(document.states, document.transitions)
