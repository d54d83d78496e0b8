"""
Command-line front end for the automaton workbench.

    python main.py automaton.json --type nfa --word "ab" --word "a;b" --check
    python main.py automaton.json --type nfa --convert dfa --sink --output dfa.json

Exit codes: 0 on success, 1 on errors, 2 when --strict finds a rejected word
or an error diagnostic.
"""

import argparse
import sys
from pathlib import Path
from typing import List, Optional

from automaton_core import (
    Automaton,
    AutomatonError,
    AutomatonKind,
    BatchSummary,
    Diagnostic,
    Severity,
    Simulator,
    add_sinkstate_to_dfa,
    check_automaton,
    convert,
    get_settings,
)
from automaton_core.logging_config import get_logger, setup_logging

log = get_logger("main")

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_REJECTED = 2


class AutomatonWorkbench:
    def __init__(self, automaton: Automaton):
        self.automaton = automaton

    @classmethod
    def load(cls, path: str, kind: AutomatonKind) -> "AutomatonWorkbench":
        text = Path(path).read_text(encoding="utf-8")
        automaton = Automaton.from_json(kind, text, settings=get_settings())
        log.info("automaton_loaded", path=path, kind=kind.value, states=len(automaton.get_states()))
        return cls(automaton)

    def check(self) -> List[Diagnostic]:
        diagnostics = check_automaton(self.automaton)
        if not diagnostics:
            print("[Check] No findings.")
        for d in diagnostics:
            print(f"[Check] {d.severity.value.upper():7} {d.code}: {d.message}")
        return diagnostics

    def transform(self, target: Optional[AutomatonKind], sink: bool) -> None:
        if target is not None:
            self.automaton = convert(self.automaton, target)
            print(f"[Convert] Now a {self.automaton.kind.value.upper()} with {len(self.automaton.get_states())} states.")
        if sink:
            self.automaton = add_sinkstate_to_dfa(self.automaton)
            print(f"[Sink] DFA completed, {len(self.automaton.get_states())} states.")

    def print_definition(self) -> None:
        definition = self.automaton.get_formal_definition()
        print(f"Q  = {{{', '.join(definition.states)}}}")
        print(f"Σ  = {{{', '.join(definition.alphabet)}}}")
        print(f"q0 = {definition.initial_state or '-'}")
        print(f"F  = {{{', '.join(definition.final_states)}}}")
        print("δ  =")
        for source, symbol, target in definition.transitions:
            print(f"     ({source}, {symbol}) -> {target}")

    def simulate(self, words: List[str]) -> BatchSummary:
        summary = BatchSummary.from_results(Simulator(self.automaton).run_words(words))
        for r in summary.results:
            verdict = "ACCEPT" if r.success else "REJECT"
            print(f"[{verdict}] '{r.word}': {r.message}")
        print(f"--- {summary.accepted}/{summary.total} accepted ---")
        return summary

    def write(self, path: str) -> None:
        Path(path).write_text(self.automaton.export_json(indent=2), encoding="utf-8")
        print(f"[Output] Saved to {path}")


def build_parser() -> argparse.ArgumentParser:
    kinds = [k.value for k in AutomatonKind]
    parser = argparse.ArgumentParser(description="Validate, simulate and convert DFA, NFA and PDA")
    parser.add_argument("file", help="Automaton in the portable JSON format")
    parser.add_argument("--type", dest="kind", choices=kinds, required=True, help="Kind of the automaton in FILE")
    parser.add_argument("--word", action="append", default=[], help="Word to simulate (repeatable)")
    parser.add_argument("--words-file", help="File with one word per line")
    parser.add_argument("--check", action="store_true", help="Print structural diagnostics")
    parser.add_argument("--definition", action="store_true", help="Print the formal definition")
    parser.add_argument("--convert", choices=kinds, help="Convert before simulating")
    parser.add_argument("--sink", action="store_true", help="Complete the (converted) DFA with a sink state")
    parser.add_argument("--output", help="Write the resulting automaton as JSON")
    parser.add_argument("--strict", action="store_true", help="Exit 2 on rejected words or error diagnostics")
    parser.add_argument("--log-level", default=None, help="Override the configured log level")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(log_level=args.log_level or get_settings().log_level)

    try:
        workbench = AutomatonWorkbench.load(args.file, AutomatonKind(args.kind))
        workbench.transform(AutomatonKind(args.convert) if args.convert else None, args.sink)

        words = list(args.word)
        if args.words_file:
            lines = Path(args.words_file).read_text(encoding="utf-8").splitlines()
            words.extend(line.strip() for line in lines)

        failed = False
        if args.check:
            diagnostics = workbench.check()
            failed = any(d.severity == Severity.ERROR for d in diagnostics)
        if args.definition:
            workbench.print_definition()
        if words:
            summary = workbench.simulate(words)
            failed = failed or summary.rejected > 0
        if args.output:
            workbench.write(args.output)
    except (AutomatonError, OSError) as e:
        log.error("cli_failed", error=str(e))
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_ERROR

    if args.strict and failed:
        return EXIT_REJECTED
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
