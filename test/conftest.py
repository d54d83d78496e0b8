import sys
import os

import pytest

# Ensure the repository root (automaton_core, api, main) is on sys.path
HERE = os.path.dirname(__file__)
REPO_ROOT = os.path.abspath(os.path.join(HERE, ".."))

if REPO_ROOT not in sys.path:
    sys.path.insert(0, REPO_ROOT)

from automaton_core import Automaton, EngineSettings  # noqa: E402


def state(sid, initial=False, final=False, label=None):
    return {"id": sid, "label": label or sid, "isInitial": initial, "isFinal": final}


def transition(tid, source, target, symbols, ops=None):
    data = {"id": tid, "from": source, "to": target, "symbols": symbols}
    if ops is not None:
        data["stackOperations"] = [{"operation": op, "symbol": sym} for op, sym in ops]
    return data


@pytest.fixture
def settings():
    return EngineSettings()


@pytest.fixture
def dfa_doc():
    """q0 initial, q1 final; accepts words over {a,b} ending in 'a'."""
    return {
        "states": [state("q0", initial=True), state("q1", final=True)],
        "transitions": [
            transition("t1", "q0", "q1", ["a"]),
            transition("t2", "q0", "q0", ["b"]),
            transition("t3", "q1", "q1", ["a"]),
            transition("t4", "q1", "q0", ["b"]),
        ],
    }


@pytest.fixture
def dfa(dfa_doc, settings):
    return Automaton.from_json("dfa", dfa_doc, settings=settings)


@pytest.fixture
def epsilon_nfa_doc():
    """q0 -ε-> q1 -a-> q2 (final)."""
    return {
        "states": [state("q0", initial=True), state("q1"), state("q2", final=True)],
        "transitions": [
            transition("e1", "q0", "q1", []),
            transition("t1", "q1", "q2", ["a"]),
        ],
    }


@pytest.fixture
def epsilon_nfa(epsilon_nfa_doc, settings):
    return Automaton.from_json("nfa", epsilon_nfa_doc, settings=settings)


@pytest.fixture
def contains_ab_nfa(settings):
    """Nondeterministic: accepts words over {a,b} containing 'ab'."""
    return Automaton.from_json("nfa", {
        "states": [state("s0", initial=True), state("s1"), state("s2", final=True)],
        "transitions": [
            transition("t1", "s0", "s0", ["a", "b"]),
            transition("t2", "s0", "s1", ["a"]),
            transition("t3", "s1", "s2", ["b"]),
            transition("t4", "s2", "s2", ["a", "b"]),
        ],
    }, settings=settings)


@pytest.fixture
def anbn_pda(settings):
    """a^n b^n for n >= 1: push X per 'a', pop X per 'b', final p2."""
    return Automaton.from_json("pda", {
        "states": [state("p0", initial=True), state("p1"), state("p2", final=True)],
        "transitions": [
            transition("t1", "p0", "p0", ["a"], [("push", "X")]),
            transition("t2", "p0", "p1", ["b"], [("pop", "X")]),
            transition("t3", "p1", "p1", ["b"], [("pop", "X")]),
            transition("t4", "p1", "p2", [], [("empty", "")]),
        ],
    }, settings=settings)


@pytest.fixture
def pop_mismatch_pda(settings):
    """'a' pushes Y, then 'b' wants to pop X."""
    return Automaton.from_json("pda", {
        "states": [state("p0", initial=True), state("p1"), state("p2", final=True)],
        "transitions": [
            transition("t1", "p0", "p1", ["a"], [("push", "Y")]),
            transition("t2", "p1", "p2", ["b"], [("pop", "X")]),
        ],
    }, settings=settings)


@pytest.fixture
def mixed_epsilon_nfa(settings):
    """q0 -[a, ε]-> q1 (final): one transition that reads 'a' or nothing."""
    return Automaton.from_json("nfa", {
        "states": [state("q0", initial=True), state("q1", final=True)],
        "transitions": [
            transition("t1", "q0", "q1", ["a", ""]),
            transition("t2", "q1", "q1", ["b"]),
        ],
    }, settings=settings)
