"""
Simulator tests: acceptance for each kind, stepping/rewinding, PDA stack
handling, termination bounds and the animation timer.
"""

import itertools
import threading
import time

import pytest

from automaton_core import Automaton, EngineSettings, PdaAcceptance, Simulator, split_word
from automaton_core.simulator import Branch
from conftest import state, transition


def accepts(automaton, word, settings=None):
    simulator = Simulator(automaton, settings)
    simulator.word = word
    return simulator.simulate().success


def step_to_end(simulator):
    """Step until the word is decided; returns the last result."""
    while True:
        result = simulator.step_forward()
        if not result.success or result.final_step:
            return result


SAMPLE_WORDS = ["".join(p) for n in range(5) for p in itertools.product("ab", repeat=n)]


class TestWordSplitting:
    def test_per_character_without_delimiter(self):
        assert split_word("abc") == ["a", "b", "c"]

    def test_delimited_symbols(self):
        assert split_word("go;stop;go") == ["go", "stop", "go"]

    def test_empty_tokens_dropped(self):
        assert split_word("a;;b;") == ["a", "b"]
        assert split_word("") == []

    def test_multi_character_symbols(self, settings):
        automaton = Automaton("dfa", [state("s", initial=True, final=True)], [
            transition("t", "s", "s", ["go", "stop"]),
        ], settings=settings)
        assert accepts(automaton, "go;stop")
        assert not accepts(automaton, "gostop")


class TestAcceptance:
    def test_dfa_scenario(self, dfa):
        assert accepts(dfa, "a")
        assert not accepts(dfa, "ab")

    def test_dfa_reject_message_names_the_state(self, dfa):
        simulator = Simulator(dfa)
        simulator.word = "ab"
        result = simulator.simulate()
        assert result.success is False
        assert "q0" in result.message

    def test_nfa_existential_acceptance(self, contains_ab_nfa):
        assert accepts(contains_ab_nfa, "aab")
        assert accepts(contains_ab_nfa, "babb")
        assert not accepts(contains_ab_nfa, "bba")
        assert not accepts(contains_ab_nfa, "")

    def test_epsilon_closure_applies_to_initial_configuration(self, epsilon_nfa):
        simulator = Simulator(epsilon_nfa)
        assert simulator.current_states == ["q0", "q1"]
        assert accepts(epsilon_nfa, "a")
        assert not accepts(epsilon_nfa, "")
        assert not accepts(epsilon_nfa, "aa")

    def test_unknown_symbol_is_stuck(self, dfa):
        simulator = Simulator(dfa)
        simulator.word = "ac"
        result = simulator.simulate()
        assert result.success is False
        assert "No eligible transition for 'c'" in result.message

    def test_no_initial_state_fails_immediately(self, settings):
        automaton = Automaton("dfa", [state("q0", final=True)], settings=settings)
        simulator = Simulator(automaton)
        assert simulator.simulate().message == "The automaton has no initial state"
        assert simulator.step_forward().success is False

    def test_run_words_keeps_current_word(self, dfa):
        simulator = Simulator(dfa)
        simulator.word = "ba"
        simulator.step_forward()
        results = simulator.run_words(["a", "ab", ""])
        assert [r.success for r in results] == [True, False, False]
        assert [r.word for r in results] == ["a", "ab", ""]
        assert simulator.position == 1
        assert simulator.word == "ba"

    def test_mixed_epsilon_transition_follows_both_branches(self, mixed_epsilon_nfa):
        assert mixed_epsilon_nfa.get_transition("t1").label == "a, ε"
        assert Simulator(mixed_epsilon_nfa).current_states == ["q0", "q1"]
        assert accepts(mixed_epsilon_nfa, "")
        assert accepts(mixed_epsilon_nfa, "a")
        assert accepts(mixed_epsilon_nfa, "b")
        assert accepts(mixed_epsilon_nfa, "abb")
        assert not accepts(mixed_epsilon_nfa, "aa")

    def test_mixed_epsilon_empty_word_by_steps(self, mixed_epsilon_nfa):
        result = Simulator(mixed_epsilon_nfa).step_forward()
        assert result.final_step is True
        assert result.success is True


class TestStepping:
    @pytest.mark.parametrize("word", SAMPLE_WORDS)
    def test_stepping_agrees_with_simulate(self, contains_ab_nfa, word):
        simulator = Simulator(contains_ab_nfa)
        simulator.word = word
        assert step_to_end(simulator).success == simulator.simulate().success

    def test_dfa_scenario_by_steps(self, dfa):
        simulator = Simulator(dfa)
        simulator.word = "ab"
        first = simulator.step_forward()
        assert first.success and first.final_step is False
        last = simulator.step_forward()
        assert last.final_step is True
        assert last.success is False

    def test_empty_word_first_step_is_final(self, dfa):
        simulator = Simulator(dfa)
        result = simulator.step_forward()
        assert result.final_step is True
        assert result.success is False
        assert Simulator(Automaton("dfa", [state("q", initial=True, final=True)])).step_forward().success

    def test_exhausted_word(self, dfa):
        simulator = Simulator(dfa)
        simulator.word = "a"
        simulator.step_forward()
        result = simulator.step_forward()
        assert result.success is False
        assert result.message == "The word has already been read completely"

    def test_backward_restores_configuration(self, contains_ab_nfa):
        simulator = Simulator(contains_ab_nfa)
        simulator.word = "aba"
        simulator.step_forward()
        before = (simulator.configuration, simulator.position)
        simulator.step_forward()
        assert simulator.step_backward().success
        assert (simulator.configuration, simulator.position) == before

    def test_backward_at_start_fails(self, dfa):
        simulator = Simulator(dfa)
        simulator.word = "a"
        result = simulator.step_backward()
        assert result.success is False
        assert result.message == "Already at the initial configuration"

    def test_backward_after_final_step_allows_stepping_again(self, dfa):
        simulator = Simulator(dfa)
        simulator.word = "a"
        simulator.step_forward()
        simulator.step_backward()
        result = simulator.step_forward()
        assert result.final_step is True and result.success is True

    def test_stuck_step_keeps_configuration(self, dfa):
        simulator = Simulator(dfa)
        simulator.word = "ca"
        before = simulator.configuration
        result = simulator.step_forward()
        assert result.success is False
        assert result.final_step is False
        assert simulator.configuration == before
        assert simulator.position == 0

    def test_highlight_tracks_last_step(self, dfa):
        simulator = Simulator(dfa)
        simulator.word = "ab"
        simulator.step_forward(highlight=True)
        assert simulator.highlight.states == ["q1"]
        assert simulator.highlight.transitions == ["t1"]
        simulator.reset()
        assert simulator.highlight.states == []

    def test_setting_word_resets(self, dfa):
        simulator = Simulator(dfa)
        simulator.word = "ab"
        simulator.step_forward()
        simulator.word = "b"
        assert simulator.position == 0
        assert simulator.remaining == ["b"]

    def test_edit_makes_simulator_stale(self, dfa):
        simulator = Simulator(dfa)
        simulator.word = "a"
        dfa.add_state(state("q2"))
        assert simulator.is_stale
        result = simulator.step_forward()
        assert result.success is False
        assert "create a new simulator" in result.message


class TestPushdown:
    def test_anbn(self, anbn_pda):
        assert accepts(anbn_pda, "ab")
        assert accepts(anbn_pda, "aaabbb")
        assert not accepts(anbn_pda, "aab")
        assert not accepts(anbn_pda, "abb")
        assert not accepts(anbn_pda, "")

    def test_pop_mismatch_is_not_eligible(self, pop_mismatch_pda):
        simulator = Simulator(pop_mismatch_pda)
        simulator.word = "ab"
        assert simulator.step_forward().success
        before = simulator.configuration
        result = simulator.step_forward()
        assert result.success is False
        assert result.final_step is False
        assert "No eligible transition for 'b'" in result.message
        assert simulator.configuration == before
        assert simulator.simulate().success is False

    def test_backward_restores_stack(self, anbn_pda):
        simulator = Simulator(anbn_pda)
        simulator.word = "aabb"
        simulator.step_forward()
        simulator.step_forward()
        assert Branch("p0", ("X", "X")) in simulator.configuration
        simulator.step_backward()
        assert simulator.configuration == frozenset({Branch("p0", ("X",))})

    def test_acceptance_modes(self, settings):
        states = [state("p0", initial=True), state("p1", final=True)]
        pda = Automaton("pda", states, [
            transition("t1", "p0", "p1", ["a"], [("push", "X")]),
            transition("t2", "p0", "p1", ["b"], []),
        ], settings=settings)

        by_state = EngineSettings(pda_acceptance=PdaAcceptance.FINAL_STATE)
        by_stack = EngineSettings(pda_acceptance=PdaAcceptance.EMPTY_STACK)
        both = EngineSettings(pda_acceptance=PdaAcceptance.FINAL_STATE_AND_EMPTY_STACK)

        assert accepts(pda, "a", by_state)
        assert not accepts(pda, "a", by_stack)
        assert not accepts(pda, "a", both)
        assert accepts(pda, "b", both)
        # initial configuration has an empty stack in a non-final state
        assert accepts(pda, "", by_stack)
        assert not accepts(pda, "", both)

    def test_unbounded_epsilon_push_terminates(self):
        settings = EngineSettings(max_stack_depth=5)
        pda = Automaton("pda", [state("p0", initial=True, final=True)], [
            transition("loop", "p0", "p0", [], [("push", "X")]),
        ], settings=settings)
        simulator = Simulator(pda)
        assert simulator.simulate().success
        depths = sorted(len(b.stack) for b in simulator.configuration)
        assert depths == [0, 1, 2, 3, 4, 5]

    def test_reading_deep_stacks_is_not_bounded(self, anbn_pda):
        assert anbn_pda.settings.max_stack_depth == 64
        assert accepts(anbn_pda, "a" * 65 + "b" * 65)
        assert accepts(anbn_pda, "a" * 100 + "b" * 100)
        assert not accepts(anbn_pda, "a" * 100 + "b" * 99)

    def test_epsilon_pop_on_a_deep_stack(self, settings):
        pda = Automaton("pda", [state("p0", initial=True), state("p1", final=True)], [
            transition("t1", "p0", "p0", ["a"], [("push", "X")]),
            transition("t2", "p0", "p1", [], [("pop", "X")]),
        ], settings=settings)
        simulator = Simulator(pda)
        simulator.word = "a" * 70
        assert simulator.simulate().success
        result = step_to_end(simulator)
        assert result.final_step and result.success
        assert Branch("p1", ("X",) * 69) in simulator.configuration

    def test_frontier_cap(self):
        settings = EngineSettings(max_configurations=3)
        pda = Automaton("pda", [state("p0", initial=True, final=True)], [
            transition("loop", "p0", "p0", [], [("push", "X")]),
        ], settings=settings)
        simulator = Simulator(pda)
        assert len(simulator.configuration) == 3
        assert simulator.simulate().success


class TestAnimation:
    def test_animation_runs_to_final_step(self, dfa):
        simulator = Simulator(dfa, EngineSettings(animation_interval=0.01))
        simulator.word = "aba"
        results = []
        done = threading.Event()

        def on_step(result):
            results.append(result)
            if not result.success or result.final_step:
                done.set()

        simulator.start_animation(on_step)
        assert done.wait(timeout=5)
        assert len(results) == 3
        assert results[-1].final_step is True
        assert results[-1].success is True
        assert not simulator.animating

    def test_animation_stops_on_failure(self, dfa):
        simulator = Simulator(dfa, EngineSettings(animation_interval=0.01))
        simulator.word = "aca"
        results = []
        done = threading.Event()

        def on_step(result):
            results.append(result)
            if not result.success:
                done.set()

        simulator.start_animation(on_step)
        assert done.wait(timeout=5)
        assert len(results) == 2
        assert not simulator.animating

    def test_pause_keeps_position(self, dfa):
        simulator = Simulator(dfa, EngineSettings(animation_interval=60))
        simulator.word = "ab"
        simulator.step_forward()
        messages = []
        simulator.start_animation(lambda r: messages.append(r.message))
        assert simulator.animating
        simulator.pause_animation(lambda r: messages.append(r.message))
        assert not simulator.animating
        assert simulator.position == 1
        assert messages == ["Animation paused"]

    def test_stop_resets(self, dfa):
        simulator = Simulator(dfa, EngineSettings(animation_interval=60))
        simulator.word = "ab"
        simulator.step_forward()
        simulator.start_animation(lambda r: None)
        messages = []
        simulator.stop_animation(lambda r: messages.append(r.message))
        assert not simulator.animating
        assert simulator.position == 0
        assert messages == ["Animation stopped"]

    def test_callback_can_pause_from_another_thread(self, dfa):
        simulator = Simulator(dfa, EngineSettings(animation_interval=0.01))
        simulator.word = "aba"
        handed_off = []
        done = threading.Event()

        def on_step(result):
            worker = threading.Thread(target=simulator.pause_animation)
            worker.start()
            worker.join(timeout=2)
            handed_off.append(not worker.is_alive())
            done.set()

        simulator.start_animation(on_step)
        assert done.wait(timeout=5)
        time.sleep(0.1)
        assert handed_off == [True]
        assert simulator.position == 1
        assert not simulator.animating

    def test_restart_replaces_running_timer(self, dfa):
        simulator = Simulator(dfa, EngineSettings(animation_interval=60))
        simulator.word = "ab"
        simulator.start_animation(lambda r: None)
        first = simulator._timer._timer
        simulator.start_animation(lambda r: None)
        assert simulator._timer._timer is not first
        assert first.finished.is_set()
        simulator.stop_animation()
