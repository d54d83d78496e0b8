"""
Automaton Workbench API

FastAPI-based REST API over the automaton core. Stateless: every request
carries the automaton in the portable JSON format together with its kind.

Security features:
  - Rate limiting via slowapi (RATE_LIMIT env var, default 120 req/min)
  - Optional API key authentication (set API_KEY env var to enable)
"""

import os
import uuid
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, HTTPException, Request, Security
from fastapi.middleware.cors import CORSMiddleware
from fastapi.security import APIKeyHeader
from pydantic import BaseModel, Field
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from automaton_core import (
    Automaton,
    AutomatonImportError,
    AutomatonKind,
    BatchSummary,
    EngineSettings,
    Simulator,
    TransformationError,
    add_sinkstate_to_dfa,
    check_automaton,
    convert,
    get_settings,
    has_fatal_errors,
)
from automaton_core.logging_config import get_logger, setup_logging

log = get_logger("api")

API_VERSION = "1.0.0"
RATE_LIMIT = os.environ.get("RATE_LIMIT", "120/minute")
MAX_WORDS = 1000

# --- Rate Limiter ---
limiter = Limiter(key_func=get_remote_address)

# --- API Key Auth (optional) ---
API_KEY = os.environ.get("API_KEY")  # Set to enable auth; unset = disabled
api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


async def verify_api_key(api_key: Optional[str] = Security(api_key_header)):
    """Validate API key if API_KEY env var is set. No-op when unset."""
    if API_KEY is None:
        return
    if api_key != API_KEY:
        raise HTTPException(
            status_code=401,
            detail={
                "error": "Invalid or missing API key",
                "error_type": "AuthenticationError",
                "hint": "Provide a valid X-API-Key header."
            }
        )


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    setup_logging(log_level=settings.log_level)
    app.state.settings = settings
    log.info("api_started", version=API_VERSION)
    yield
    log.info("api_stopped")


app = FastAPI(
    title="Automaton Workbench API",
    version=API_VERSION,
    description="Validation, simulation and conversion of DFA, NFA and PDA",
    lifespan=lifespan
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# --- CORS Configuration ---
ALLOWED_ORIGINS = os.environ.get(
    "CORS_ALLOWED_ORIGINS",
    "http://localhost:5173,http://localhost:3000"
).split(",")

if os.environ.get("ENVIRONMENT") == "development":
    ALLOWED_ORIGINS = ["*"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- Request/Response Models ---

class AutomatonRequest(BaseModel):
    type: AutomatonKind
    automaton: Dict[str, Any] = Field(..., description="Portable document: {states, transitions}")


class SimulateRequest(AutomatonRequest):
    words: List[str] = Field(..., max_length=MAX_WORDS)


class TraceRequest(AutomatonRequest):
    word: str


class ConvertRequest(AutomatonRequest):
    target: AutomatonKind


class HealthResponse(BaseModel):
    status: str
    message: str
    version: str = API_VERSION


# --- Helper Functions ---

def get_engine_settings(request: Request) -> EngineSettings:
    return getattr(request.app.state, "settings", None) or get_settings()


def load_automaton(request: Request, body: AutomatonRequest) -> Automaton:
    """Build the automaton from the request, mapping malformed documents to HTTP 400."""
    try:
        return Automaton.from_json(body.type, body.automaton, settings=get_engine_settings(request))
    except AutomatonImportError as e:
        log.warning("malformed_document", error=str(e))
        raise HTTPException(
            status_code=400,
            detail={
                "error": str(e),
                "error_type": "ImportError",
                "hint": "Send {'states': [{id,label,isFinal,isInitial}], 'transitions': [{id,from,to,symbols}]}."
            }
        )


def serialize(automaton: Automaton) -> Dict[str, Any]:
    return {"type": automaton.kind.value, "automaton": automaton.to_document().to_dict()}


# --- API Endpoints ---

@app.get("/health", response_model=HealthResponse)
@limiter.limit(RATE_LIMIT)
async def health_check(request: Request):
    """Health check endpoint to verify API is running."""
    return HealthResponse(status="healthy", message="Automaton Workbench API is running")


@app.post("/validate", dependencies=[Depends(verify_api_key)])
@limiter.limit(RATE_LIMIT)
async def validate_automaton(request: Request, body: AutomatonRequest):
    """Structural diagnostics for the automaton kind."""
    automaton = load_automaton(request, body)
    diagnostics = check_automaton(automaton)
    return {
        "diagnostics": [d.model_dump(mode="json", by_alias=True, exclude_none=True) for d in diagnostics],
        "fatal": has_fatal_errors(diagnostics),
    }


@app.post("/simulate", dependencies=[Depends(verify_api_key)])
@limiter.limit(RATE_LIMIT)
async def simulate_words(request: Request, body: SimulateRequest):
    """Run every word to completion and report acceptance."""
    request_id = str(uuid.uuid4())[:8]
    automaton = load_automaton(request, body)
    summary = BatchSummary.from_results(Simulator(automaton).run_words(body.words))
    log.info("api_simulate", request_id=request_id, total=summary.total, accepted=summary.accepted)
    return summary.to_dict()


@app.post("/trace", dependencies=[Depends(verify_api_key)])
@limiter.limit(RATE_LIMIT)
async def trace_word(request: Request, body: TraceRequest):
    """Step through one word and return every intermediate result with its highlight."""
    automaton = load_automaton(request, body)
    simulator = Simulator(automaton)
    simulator.word = body.word

    steps = []
    while True:
        result = simulator.step_forward(highlight=True)
        steps.append({
            **result.model_dump(by_alias=True, exclude_none=True),
            "highlight": simulator.highlight.model_dump(),
        })
        if not result.success or result.final_step:
            break
    return {"word": body.word, "tokens": simulator.tokens, "steps": steps}


@app.post("/formal-definition", dependencies=[Depends(verify_api_key)])
@limiter.limit(RATE_LIMIT)
async def formal_definition(request: Request, body: AutomatonRequest):
    automaton = load_automaton(request, body)
    return {
        "definition": automaton.get_formal_definition().model_dump(),
        "table": automaton.get_transition_table(),
    }


@app.post("/convert", dependencies=[Depends(verify_api_key)])
@limiter.limit(RATE_LIMIT)
async def convert_automaton(request: Request, body: ConvertRequest):
    """Switch between DFA, NFA and PDA. PDA -> NFA/DFA drops the stack."""
    automaton = load_automaton(request, body)
    return serialize(convert(automaton, body.target))


@app.post("/sink", dependencies=[Depends(verify_api_key)])
@limiter.limit(RATE_LIMIT)
async def add_sink_state(request: Request, body: AutomatonRequest):
    """Complete a DFA with a sink state."""
    automaton = load_automaton(request, body)
    try:
        completed = add_sinkstate_to_dfa(automaton)
    except TransformationError as e:
        raise HTTPException(
            status_code=400,
            detail={
                "error": str(e),
                "error_type": "TransformationError",
                "hint": "Sink completion only applies to DFAs; convert the automaton first."
            }
        )
    return serialize(completed)


@app.get("/")
async def root():
    """Root endpoint with API information."""
    return {
        "name": "Automaton Workbench API",
        "version": API_VERSION,
        "endpoints": {
            "/health": "Health check (GET)",
            "/validate": "Structural diagnostics (POST)",
            "/simulate": "Accept/reject a batch of words (POST)",
            "/trace": "Step-by-step run of one word (POST)",
            "/formal-definition": "Formal definition and transition table (POST)",
            "/convert": "Convert between DFA, NFA and PDA (POST)",
            "/sink": "Complete a DFA with a sink state (POST)"
        }
    }


if __name__ == "__main__":
    import uvicorn

    host = os.environ.get("API_HOST", "0.0.0.0")
    port = int(os.environ.get("API_PORT", "8000"))
    uvicorn.run(app, host=host, port=port)
