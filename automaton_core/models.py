from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import List, Optional, Tuple
from enum import Enum


class AutomatonKind(str, Enum):
    """Automaton classes supported by the engine."""
    DFA = "dfa"
    NFA = "nfa"
    PDA = "pda"


class StackOperationType(str, Enum):
    PUSH = "push"
    POP = "pop"
    EMPTY = "empty"  # succeeds only on an empty stack
    NONE = "none"


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


class StackOperation(BaseModel):
    operation: StackOperationType
    symbol: str = Field(default="", description="Stack symbol for push/pop")

    def render(self) -> str:
        if self.operation in (StackOperationType.PUSH, StackOperationType.POP):
            return f"{self.operation.value}({self.symbol})"
        if self.operation == StackOperationType.EMPTY:
            return "empty?"
        return ""


class State(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., min_length=1)
    label: str
    is_final: bool = Field(default=False, alias="isFinal")
    is_initial: bool = Field(default=False, alias="isInitial")


class Transition(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., min_length=1)
    from_state: str = Field(..., alias="from", min_length=1)
    to_state: str = Field(..., alias="to", min_length=1)
    symbols: List[str]
    label: str = Field(default="", description="Derived from symbols and stack operations")
    stack_operations: Optional[List[StackOperation]] = Field(default=None, alias="stackOperations")

    @field_validator("symbols")
    @classmethod
    def dedupe_symbols(cls, v: List[str]) -> List[str]:
        # Order is kept for display, duplicates are dropped
        return list(dict.fromkeys(v))

    def has_epsilon(self, epsilon_label: str = "ε") -> bool:
        """True when one of the alternatives is an epsilon move, e.g. ``["a", "ε"]``."""
        return not self.symbols or any(s == epsilon_label or s == "" for s in self.symbols)

    def input_symbols(self, epsilon_label: str = "ε") -> List[str]:
        return [s for s in self.symbols if s and s != epsilon_label]

    def reads(self, symbol: str, epsilon_label: str = "ε") -> bool:
        return symbol in self.input_symbols(epsilon_label)

    def effective_stack_operations(self) -> List[StackOperation]:
        return [op for op in (self.stack_operations or []) if op.operation != StackOperationType.NONE]


class Diagnostic(BaseModel):
    """A structural finding about the automaton. Never raised, always returned."""
    message: str
    severity: Severity
    code: str = Field(default="", description="Stable machine-readable identifier, e.g. 'no_initial_state'")
    state: Optional[State] = None
    transition: Optional[Transition] = None


class FormalDefinition(BaseModel):
    """Read-only 5-tuple view, recomputed on every call."""
    states: List[str]
    alphabet: List[str]
    transitions: List[Tuple[str, str, str]]
    initial_state: Optional[str] = None
    final_states: List[str]


class ModelEvent(BaseModel):
    action: str  # add, update, remove
    collection: str  # states, transitions, entry_marker
    ids: List[str]


class SimulationResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool
    message: str
    final_step: Optional[bool] = Field(default=None, alias="finalStep")


class Highlight(BaseModel):
    """States and transitions touched by the last highlighted step."""
    states: List[str] = Field(default_factory=list)
    transitions: List[str] = Field(default_factory=list)
