from typing import Dict, List

import structlog

from .automaton import Automaton
from .models import AutomatonKind, Diagnostic, Severity, StackOperationType, State, Transition
from .reachability import find_productive_states, find_reachable_states

log = structlog.get_logger(__name__)

NO_INITIAL_STATE = "no_initial_state"
FATAL_CODES = {NO_INITIAL_STATE}


class AutomatonValidator:
    """
    Structural checks per automaton kind. Findings are returned, never raised.
    """

    def check(self, automaton: Automaton) -> List[Diagnostic]:
        diagnostics = self._check_common(automaton)

        if automaton.kind == AutomatonKind.DFA:
            diagnostics.extend(self._check_determinism(automaton))
        elif automaton.kind == AutomatonKind.PDA:
            diagnostics.extend(self._check_stack_operations(automaton))
        # NFA: duplicates and epsilon moves are legal, only the common checks apply

        log.debug(
            "automaton_checked",
            kind=automaton.kind.value,
            errors=sum(1 for d in diagnostics if d.severity == Severity.ERROR),
            warnings=sum(1 for d in diagnostics if d.severity == Severity.WARNING),
        )
        return diagnostics

    def _check_common(self, automaton: Automaton) -> List[Diagnostic]:
        diagnostics: List[Diagnostic] = []
        states = automaton.get_states()
        if not states:
            diagnostics.append(Diagnostic(
                message="The automaton has no states",
                severity=Severity.INFO,
                code="empty_automaton",
            ))

        initial = automaton.get_initial_state()
        if initial is None:
            diagnostics.append(Diagnostic(
                message="No initial state defined",
                severity=Severity.ERROR,
                code=NO_INITIAL_STATE,
            ))

        finals = automaton.get_final_states()
        if states and not finals:
            diagnostics.append(Diagnostic(
                message="No final state defined, every word is rejected",
                severity=Severity.WARNING,
                code="no_final_state",
            ))

        if initial is None:
            return diagnostics

        reachable = find_reachable_states(automaton)
        productive = find_productive_states(automaton) if finals else set()
        for state in states:
            if state.id not in reachable:
                diagnostics.append(Diagnostic(
                    message=f"State '{state.label}' is not reachable from the initial state",
                    severity=Severity.WARNING,
                    code="unreachable_state",
                    state=state,
                ))
            elif finals and state.id not in productive:
                diagnostics.append(Diagnostic(
                    message=f"State '{state.label}' cannot reach a final state",
                    severity=Severity.INFO,
                    code="dead_state",
                    state=state,
                ))
        return diagnostics

    def _check_determinism(self, automaton: Automaton) -> List[Diagnostic]:
        """Exactly one outgoing transition per (state, symbol) and no epsilon moves."""
        diagnostics: List[Diagnostic] = []
        eps = automaton.settings.epsilon_label
        alphabet = automaton.get_alphabet()

        for state in automaton.get_states():
            outgoing = automaton.get_transitions_from_state(state.id)
            by_symbol: Dict[str, List[Transition]] = {symbol: [] for symbol in alphabet}
            for t in outgoing:
                if t.has_epsilon(eps):
                    diagnostics.append(Diagnostic(
                        message=f"Epsilon transition from '{state.label}' is not allowed in a DFA",
                        severity=Severity.ERROR,
                        code="epsilon_transition",
                        state=state,
                        transition=t,
                    ))
                for symbol in t.input_symbols(eps):
                    if symbol in by_symbol:
                        by_symbol[symbol].append(t)

            for symbol, carriers in by_symbol.items():
                if not carriers:
                    diagnostics.append(Diagnostic(
                        message=f"State '{state.label}' has no transition for '{symbol}'",
                        severity=Severity.ERROR,
                        code="missing_transition",
                        state=state,
                    ))
                for extra in carriers[1:]:
                    diagnostics.append(Diagnostic(
                        message=f"State '{state.label}' has more than one transition for '{symbol}'",
                        severity=Severity.ERROR,
                        code="duplicate_transition",
                        state=state,
                        transition=extra,
                    ))
        return diagnostics

    def _check_stack_operations(self, automaton: Automaton) -> List[Diagnostic]:
        """
        Structural well-formedness only; whether a pop can ever find its
        symbol on top is a runtime question for the simulator.
        """
        diagnostics: List[Diagnostic] = []
        states = {s.id: s for s in automaton.get_states()}
        for t in automaton.get_transitions():
            source: State = states[t.from_state]
            pushed = False
            for op in t.stack_operations or []:
                if op.operation in (StackOperationType.PUSH, StackOperationType.POP):
                    if not op.symbol:
                        diagnostics.append(Diagnostic(
                            message=f"Transition '{t.label}' from '{source.label}' has a {op.operation.value} without a stack symbol",
                            severity=Severity.ERROR,
                            code="malformed_stack_operation",
                            state=source,
                            transition=t,
                        ))
                    if op.operation == StackOperationType.PUSH:
                        pushed = True
                elif op.symbol:
                    diagnostics.append(Diagnostic(
                        message=f"Transition '{t.label}' from '{source.label}' gives a symbol to '{op.operation.value}', it is ignored",
                        severity=Severity.WARNING,
                        code="ignored_stack_symbol",
                        state=source,
                        transition=t,
                    ))
                if op.operation == StackOperationType.EMPTY and pushed:
                    diagnostics.append(Diagnostic(
                        message=f"Transition '{t.label}' from '{source.label}' checks for an empty stack right after a push",
                        severity=Severity.ERROR,
                        code="unsatisfiable_stack_operation",
                        state=source,
                        transition=t,
                    ))
        return diagnostics


def check_automaton(automaton: Automaton) -> List[Diagnostic]:
    """Convenience function: run the structural checks for ``automaton.kind``."""
    return AutomatonValidator().check(automaton)


def has_fatal_errors(diagnostics: List[Diagnostic]) -> bool:
    """True when simulation cannot even start (e.g. no initial state)."""
    return any(d.code in FATAL_CODES for d in diagnostics)
