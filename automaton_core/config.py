"""
Engine Settings Module
Loads simulator/model tuning knobs from config/settings.yaml.
"""

import os
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional

import structlog
import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator

log = structlog.get_logger(__name__)

SETTINGS_ENV_VAR = "AUTOMATON_SETTINGS"
LOG_LEVEL_ENV_VAR = "AUTOMATON_LOG_LEVEL"


class PdaAcceptance(str, Enum):
    """How a pushdown automaton decides acceptance once the word is consumed."""
    FINAL_STATE = "final_state"
    EMPTY_STACK = "empty_stack"
    FINAL_STATE_AND_EMPTY_STACK = "final_state_and_empty_stack"


class EngineSettings(BaseModel):
    """
    Immutable settings shared by models, simulators and transformations.
    """
    model_config = ConfigDict(frozen=True)

    word_delimiter: str = Field(default=";", min_length=1, description="Token separator for multi-character symbols")
    animation_interval: float = Field(default=1.0, gt=0, description="Seconds between animation steps")
    pda_acceptance: PdaAcceptance = PdaAcceptance.FINAL_STATE
    max_stack_depth: int = Field(default=64, ge=1, description="Deepest stack explored during epsilon closure")
    max_configurations: int = Field(default=10000, ge=1, description="Frontier size cap per simulation step")
    epsilon_label: str = Field(default="ε", min_length=1)
    entry_marker_id: str = Field(default="__entry__", min_length=1)
    sink_state_label: str = Field(default="q_dead", min_length=1)
    log_level: str = "INFO"

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        v = v.strip().upper()
        if v not in ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]:
            raise ValueError(f"Unknown log level '{v}'")
        return v

    @classmethod
    def from_mapping(cls, data: Dict[str, Any]) -> "EngineSettings":
        """Flatten the sectioned YAML layout into model fields."""
        flat: Dict[str, Any] = {}
        for section in ("simulation", "model"):
            flat.update(data.get(section) or {})
        logging_section = data.get("logging") or {}
        if "level" in logging_section:
            flat["log_level"] = logging_section["level"]
        return cls(**flat)


def _find_settings_file() -> Optional[Path]:
    env_path = os.environ.get(SETTINGS_ENV_VAR)
    if env_path:
        path = Path(env_path)
        if not path.exists():
            raise FileNotFoundError(f"{SETTINGS_ENV_VAR} points to missing file: {env_path}")
        return path

    possible_paths = [
        Path(__file__).parent.parent / "config" / "settings.yaml",
        Path(os.getcwd()) / "config" / "settings.yaml",
    ]
    for path in possible_paths:
        if path.exists():
            return path
    return None


def load_settings(config_path: Optional[str] = None) -> EngineSettings:
    """
    Load settings from YAML. Falls back to defaults when no file is found.

    Args:
        config_path: Explicit settings file. Defaults to $AUTOMATON_SETTINGS
            or config/settings.yaml.
    """
    path = Path(config_path) if config_path else _find_settings_file()
    data: Dict[str, Any] = {}
    if path is not None:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        log.debug("settings_loaded", path=str(path))
    else:
        log.debug("settings_defaults_used")

    settings = EngineSettings.from_mapping(data)
    level_override = os.environ.get(LOG_LEVEL_ENV_VAR)
    if level_override:
        settings = EngineSettings(**{**settings.model_dump(), "log_level": level_override})
    return settings


_settings: Optional[EngineSettings] = None


def get_settings() -> EngineSettings:
    """Get or create the cached EngineSettings."""
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings


def reset_settings() -> None:
    """Drop the cached settings so the next get_settings() reloads them."""
    global _settings
    _settings = None
