"""
Core modules for the automaton workbench.
Centralized exports for the model, validator, simulator and transformations.
"""

from .automaton import Automaton

from .config import EngineSettings, PdaAcceptance, get_settings, load_settings

from .exceptions import (
    AutomatonError,
    AutomatonImportError,
    TransformationError,
)

from .models import (
    AutomatonKind,
    Diagnostic,
    FormalDefinition,
    Highlight,
    ModelEvent,
    Severity,
    SimulationResult,
    StackOperation,
    StackOperationType,
    State,
    Transition,
)

from .schemas import AutomatonDocument, BatchSummary, WordResult, parse_document

from .simulator import Simulator, split_word

from .transformations import (
    add_sinkstate_to_dfa,
    convert,
    dfa_to_nfa,
    dfa_to_pda,
    nfa_to_dfa,
    nfa_to_pda,
    pda_to_dfa,
    pda_to_nfa,
    to_pda,
)

from .validator import AutomatonValidator, check_automaton, has_fatal_errors

__all__ = [
    # Model
    "Automaton",
    "AutomatonKind",
    "State",
    "Transition",
    "StackOperation",
    "StackOperationType",
    "FormalDefinition",
    "ModelEvent",
    # Serialization
    "AutomatonDocument",
    "parse_document",
    "WordResult",
    "BatchSummary",
    # Validator
    "AutomatonValidator",
    "Diagnostic",
    "Severity",
    "check_automaton",
    "has_fatal_errors",
    # Simulator
    "Simulator",
    "SimulationResult",
    "Highlight",
    "split_word",
    # Transformations
    "dfa_to_nfa",
    "nfa_to_dfa",
    "to_pda",
    "dfa_to_pda",
    "nfa_to_pda",
    "pda_to_nfa",
    "pda_to_dfa",
    "add_sinkstate_to_dfa",
    "convert",
    # Config
    "EngineSettings",
    "PdaAcceptance",
    "get_settings",
    "load_settings",
    # Errors
    "AutomatonError",
    "AutomatonImportError",
    "TransformationError",
]
