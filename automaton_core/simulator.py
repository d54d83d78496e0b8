"""
Simulator Module
================
One execution engine for DFA, NFA and PDA. A configuration is a frontier of
branches ``(state id, stack)``; DFAs keep a single branch, NFAs and PDAs keep
every branch still alive after epsilon closure. Frontiers are sets, so
identical branches reached along different paths are merged.

The simulator snapshots the automaton when it is created. Any later edit of the
automaton makes it stale: stepping then reports a failure asking the caller
to build a new simulator.
"""

import threading
from typing import Callable, Dict, FrozenSet, List, NamedTuple, Optional, Tuple

import structlog

from .animation import AnimationTimer
from .automaton import Automaton
from .config import EngineSettings, PdaAcceptance
from .models import AutomatonKind, Highlight, SimulationResult, StackOperationType, State, Transition
from .schemas import WordResult
from .validator import check_automaton, has_fatal_errors

log = structlog.get_logger(__name__)

AnimationCallback = Callable[[SimulationResult], None]


class Branch(NamedTuple):
    state: str
    stack: Tuple[str, ...] = ()  # top of stack is the last element


Configuration = FrozenSet[Branch]


def split_word(raw: str, delimiter: str = ";") -> List[str]:
    """Split on ``delimiter`` when present, otherwise one symbol per character. Empty tokens are dropped."""
    tokens = raw.split(delimiter) if delimiter in raw else list(raw)
    return [t for t in tokens if t]


class Simulator:
    def __init__(self, automaton: Automaton, settings: Optional[EngineSettings] = None):
        self.automaton = automaton
        self.kind = automaton.kind
        self.settings = settings or automaton.settings
        self.errors = check_automaton(automaton)

        self._revision = automaton.revision
        self._states: Dict[str, State] = {s.id: s for s in automaton.get_states()}
        self._outgoing: Dict[str, List[Transition]] = {sid: [] for sid in self._states}
        for t in automaton.get_transitions():
            self._outgoing[t.from_state].append(t)
        initial = automaton.get_initial_state()
        self._initial_id: Optional[str] = initial.id if initial else None

        self._lock = threading.RLock()
        self._raw_word = ""
        self._word: List[str] = []
        self._position = 0
        self._finished = False
        self._configuration: Configuration = frozenset()
        self._history: List[Tuple[Configuration, int, bool, Highlight]] = []
        self._highlight = Highlight()

        self._animation_callback: Optional[AnimationCallback] = None
        self._timer = AnimationTimer(self.settings.animation_interval, self._animation_tick)

        self.reset()

    # ------------------------------------------------------------------
    # Word & configuration
    # ------------------------------------------------------------------
    @property
    def word(self) -> str:
        return self._raw_word

    @word.setter
    def word(self, raw: str) -> None:
        with self._lock:
            self._raw_word = raw
            self._word = split_word(raw, self.settings.word_delimiter)
            self.reset()

    @property
    def tokens(self) -> List[str]:
        return list(self._word)

    @property
    def remaining(self) -> List[str]:
        return self._word[self._position:]

    @property
    def position(self) -> int:
        return self._position

    @property
    def configuration(self) -> Configuration:
        return self._configuration

    @property
    def current_states(self) -> List[str]:
        return sorted({b.state for b in self._configuration})

    @property
    def highlight(self) -> Highlight:
        return self._highlight.model_copy(deep=True)

    @property
    def is_stale(self) -> bool:
        return self.automaton.revision != self._revision

    @property
    def animating(self) -> bool:
        return self._timer.running

    def reset(self) -> None:
        with self._lock:
            self._position = 0
            self._finished = False
            self._history = []
            self._highlight = Highlight()
            self._configuration = self._initial_configuration()

    # ------------------------------------------------------------------
    # Engine
    # ------------------------------------------------------------------
    def _initial_configuration(self) -> Configuration:
        if self._initial_id is None:
            return frozenset()
        configuration, _ = self._closure({Branch(self._initial_id)})
        return configuration

    def _apply_stack(self, transition: Transition, stack: Tuple[str, ...]) -> Optional[Tuple[str, ...]]:
        """New stack after the transition's operations, or None when the transition is not eligible."""
        if self.kind != AutomatonKind.PDA:
            return stack
        result = list(stack)
        for op in transition.stack_operations or []:
            if op.operation == StackOperationType.PUSH:
                result.append(op.symbol)
            elif op.operation == StackOperationType.POP:
                if not result or result[-1] != op.symbol:
                    return None
                result.pop()
            elif op.operation == StackOperationType.EMPTY:
                if result:
                    return None
        return tuple(result)

    def _within_bounds(self, stack: Tuple[str, ...], transition: Transition, limit: int) -> bool:
        if len(stack) <= limit:
            return True
        log.warning(
            "pda_configuration_dropped",
            reason="max_stack_depth",
            transition_id=transition.id,
            depth=len(stack),
        )
        return False

    def _closure(self, branches) -> Tuple[Configuration, List[Transition]]:
        """
        Follow epsilon moves (NFA/PDA only) until no new branch appears or the
        frontier cap is hit. Epsilon moves may grow the stack by at most
        ``max_stack_depth`` above the deepest branch entering the closure;
        stacks built by reading symbols are bounded by the word itself.
        """
        seen = set(branches)
        used: List[Transition] = []
        if self.kind == AutomatonKind.DFA:
            return frozenset(seen), used

        eps = self.settings.epsilon_label
        limit = max((len(b.stack) for b in seen), default=0) + self.settings.max_stack_depth
        worklist = list(seen)
        while worklist:
            branch = worklist.pop()
            for t in self._outgoing.get(branch.state, ()):
                if not t.has_epsilon(eps):
                    continue
                stack = self._apply_stack(t, branch.stack)
                if stack is None or not self._within_bounds(stack, t, limit):
                    continue
                nxt = Branch(t.to_state, stack)
                if nxt in seen:
                    continue
                if len(seen) >= self.settings.max_configurations:
                    log.warning("frontier_truncated", max_configurations=self.settings.max_configurations)
                    return frozenset(seen), used
                seen.add(nxt)
                used.append(t)
                worklist.append(nxt)
        return frozenset(seen), used

    def _advance(self, configuration: Configuration, symbol: str) -> Tuple[Configuration, List[Transition]]:
        eps = self.settings.epsilon_label
        reached = set()
        used: List[Transition] = []
        for branch in configuration:
            for t in self._outgoing.get(branch.state, ()):
                if not t.reads(symbol, eps):
                    continue
                stack = self._apply_stack(t, branch.stack)
                if stack is None:
                    continue
                reached.add(Branch(t.to_state, stack))
                used.append(t)
        if not reached:
            return frozenset(), used
        closed, closure_used = self._closure(reached)
        return closed, used + closure_used

    def _accepts_branch(self, branch: Branch) -> bool:
        final = self._states[branch.state].is_final
        if self.kind != AutomatonKind.PDA:
            return final
        mode = self.settings.pda_acceptance
        if mode == PdaAcceptance.EMPTY_STACK:
            return not branch.stack
        if mode == PdaAcceptance.FINAL_STATE_AND_EMPTY_STACK:
            return final and not branch.stack
        return final

    def _accepting(self, configuration: Configuration) -> bool:
        return any(self._accepts_branch(b) for b in configuration)

    def _describe(self, configuration: Configuration) -> str:
        if not configuration:
            return "{}"
        parts = []
        for branch in sorted(configuration):
            label = self._states[branch.state].label
            if self.kind == AutomatonKind.PDA:
                label = f"{label}[{''.join(branch.stack)}]"
            parts.append(label)
        if self.kind == AutomatonKind.DFA and len(parts) == 1:
            return parts[0]
        return "{" + ", ".join(parts) + "}"

    def _blocked_result(self) -> Optional[SimulationResult]:
        if has_fatal_errors(self.errors):
            return SimulationResult(success=False, message="The automaton has no initial state")
        if self.is_stale:
            return SimulationResult(
                success=False,
                message="The automaton changed since this simulator was created; create a new simulator",
            )
        return None

    def _run(self, tokens: List[str]) -> SimulationResult:
        blocked = self._blocked_result()
        if blocked is not None:
            return blocked

        configuration = self._initial_configuration()
        for index, symbol in enumerate(tokens):
            before = configuration
            configuration, _ = self._advance(configuration, symbol)
            if not configuration:
                return SimulationResult(
                    success=False,
                    message=f"No eligible transition for '{symbol}' from {self._describe(before)} at position {index + 1}",
                )
        if self._accepting(configuration):
            return SimulationResult(success=True, message=f"Word accepted in {self._describe(configuration)}")
        return SimulationResult(
            success=False,
            message=f"Word rejected: {self._describe(configuration)} is not accepting",
        )

    # ------------------------------------------------------------------
    # Public contract
    # ------------------------------------------------------------------
    def simulate(self) -> SimulationResult:
        """Run the current word to completion without touching the stepping state."""
        result = self._run(self._word)
        log.info(
            "simulation_finished",
            kind=self.kind.value,
            symbols=len(self._word),
            success=result.success,
        )
        return result

    def run_words(self, words: List[str]) -> List[WordResult]:
        """Simulate a batch of raw words; the current word and configuration are left alone."""
        results = []
        for raw in words:
            result = self._run(split_word(raw, self.settings.word_delimiter))
            results.append(WordResult(word=raw, success=result.success, message=result.message))
        return results

    def _final_result(self) -> SimulationResult:
        if self._accepting(self._configuration):
            return SimulationResult(
                success=True,
                message=f"Word accepted in {self._describe(self._configuration)}",
                final_step=True,
            )
        return SimulationResult(
            success=False,
            message=f"Word rejected: {self._describe(self._configuration)} is not accepting",
            final_step=True,
        )

    def step_forward(self, highlight: bool = False) -> SimulationResult:
        with self._lock:
            blocked = self._blocked_result()
            if blocked is not None:
                return blocked
            if self._finished:
                return SimulationResult(success=False, message="The word has already been read completely")

            if self._position >= len(self._word):
                # Empty word: the only step is the acceptance decision
                self._history.append((self._configuration, self._position, self._finished, self._highlight))
                self._finished = True
                if highlight:
                    self._highlight = Highlight(states=self.current_states)
                return self._final_result()

            symbol = self._word[self._position]
            nxt, used = self._advance(self._configuration, symbol)
            if not nxt:
                return SimulationResult(
                    success=False,
                    message=f"No eligible transition for '{symbol}' from {self._describe(self._configuration)}",
                    final_step=False,
                )

            before = self._describe(self._configuration)
            self._history.append((self._configuration, self._position, self._finished, self._highlight))
            self._configuration = nxt
            self._position += 1
            if highlight:
                self._highlight = Highlight(
                    states=self.current_states,
                    transitions=list(dict.fromkeys(t.id for t in used)),
                )
            log.debug("step_forward", symbol=symbol, position=self._position)

            if self._position == len(self._word):
                self._finished = True
                return self._final_result()
            return SimulationResult(
                success=True,
                message=f"Read '{symbol}': {before} -> {self._describe(nxt)}",
                final_step=False,
            )

    def step_backward(self, highlight: bool = False) -> SimulationResult:
        with self._lock:
            blocked = self._blocked_result()
            if blocked is not None:
                return blocked
            if not self._history:
                return SimulationResult(success=False, message="Already at the initial configuration")

            configuration, position, finished, previous_highlight = self._history.pop()
            self._configuration = configuration
            self._position = position
            self._finished = finished
            self._highlight = Highlight(states=self.current_states) if highlight else previous_highlight
            log.debug("step_backward", position=position)
            return SimulationResult(
                success=True,
                message=f"Back at {self._describe(configuration)} with {len(self.remaining)} symbol(s) left",
            )

    # ------------------------------------------------------------------
    # Animation
    # ------------------------------------------------------------------
    def _animation_tick(self) -> bool:
        result = self.step_forward(highlight=True)
        callback = self._animation_callback
        if callback is not None:
            callback(result)
        return result.success and not result.final_step

    def start_animation(self, callback: AnimationCallback) -> None:
        """Step forward every ``animation_interval`` seconds until a failure or the final step."""
        self._animation_callback = callback
        self._timer.start()

    def pause_animation(self, callback: Optional[AnimationCallback] = None) -> None:
        self._timer.cancel()
        if callback is not None:
            callback(SimulationResult(success=True, message="Animation paused"))

    def stop_animation(self, callback: Optional[AnimationCallback] = None) -> None:
        self._timer.cancel()
        self.reset()
        if callback is not None:
            callback(SimulationResult(success=True, message="Animation stopped"))
