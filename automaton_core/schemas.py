"""
Schema Validation Module for the portable automaton format.
Uses Pydantic for strict import validation and batch result reporting.
"""

from pydantic import BaseModel, Field, ValidationError, model_validator
from typing import List, Dict, Any, Union

from .exceptions import AutomatonImportError
from .models import State, Transition


class AutomatonDocument(BaseModel):
    """
    Portable form of an automaton:
    {"states": [{id,label,isFinal,isInitial}], "transitions": [{id,from,to,symbols,stackOperations?}]}

    The entry marker never appears in a document.
    """
    states: List[State]
    transitions: List[Transition]

    @model_validator(mode="after")
    def check_references(self):
        state_ids = [s.id for s in self.states]
        duplicates = sorted({i for i in state_ids if state_ids.count(i) > 1})
        if duplicates:
            raise ValueError(f"Duplicate state ids: {', '.join(duplicates)}")

        transition_ids = [t.id for t in self.transitions]
        duplicates = sorted({i for i in transition_ids if transition_ids.count(i) > 1})
        if duplicates:
            raise ValueError(f"Duplicate transition ids: {', '.join(duplicates)}")

        known = set(state_ids)
        for t in self.transitions:
            if t.from_state not in known:
                raise ValueError(f"Transition '{t.id}' starts at unknown state '{t.from_state}'")
            if t.to_state not in known:
                raise ValueError(f"Transition '{t.id}' ends at unknown state '{t.to_state}'")

        initial = [s.id for s in self.states if s.is_initial]
        if len(initial) > 1:
            raise ValueError(f"More than one initial state: {', '.join(initial)}")
        return self

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the JSON-ready export shape (labels of transitions are derived, so omitted)."""
        return {
            "states": [s.model_dump(by_alias=True) for s in self.states],
            "transitions": [
                t.model_dump(by_alias=True, exclude={"label"}, exclude_none=True)
                for t in self.transitions
            ],
        }


def parse_document(data: Union[str, bytes, Dict[str, Any]]) -> AutomatonDocument:
    """
    Validate raw JSON text or an already-decoded mapping.

    Raises:
        AutomatonImportError: on bad JSON, missing required fields or broken references.
    """
    try:
        if isinstance(data, (str, bytes)):
            return AutomatonDocument.model_validate_json(data)
        return AutomatonDocument.model_validate(data)
    except ValidationError as e:
        raise AutomatonImportError(f"Malformed automaton document: {e}") from e


class WordResult(BaseModel):
    """Outcome of simulating one word."""
    word: str
    success: bool
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {"word": self.word, "success": self.success, "message": self.message}


class BatchSummary(BaseModel):
    total: int = 0
    accepted: int = 0
    rejected: int = 0
    results: List[WordResult] = Field(default_factory=list)

    @classmethod
    def from_results(cls, results: List[WordResult]) -> "BatchSummary":
        accepted = sum(1 for r in results if r.success)
        return cls(total=len(results), accepted=accepted, rejected=len(results) - accepted, results=results)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "accepted": self.accepted,
            "rejected": self.rejected,
            "results": [r.to_dict() for r in self.results],
        }
