"""Council engine configuration.

All settings come from environment variables and are validated once into an
immutable CouncilConfig. Invalid values fail fast with CouncilConfigError.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Final

logger = logging.getLogger(__name__)

ENV_SESSIONS_PATH: Final[str] = "COUNCIL_SESSIONS_PATH"
ENV_SAVE_DEBOUNCE_SECONDS: Final[str] = "COUNCIL_SAVE_DEBOUNCE_SECONDS"
ENV_GENERATION_BACKEND: Final[str] = "COUNCIL_GENERATION_BACKEND"
ENV_DEFAULT_STEP_TURNS: Final[str] = "COUNCIL_DEFAULT_STEP_TURNS"
ENV_DEFAULT_EXTENSION_TURNS: Final[str] = "COUNCIL_DEFAULT_EXTENSION_TURNS"
ENV_TRANSCRIPT_WINDOW: Final[str] = "COUNCIL_TRANSCRIPT_WINDOW"
ENV_ANTHROPIC_MODEL: Final[str] = "COUNCIL_ANTHROPIC_MODEL"

DEFAULT_SESSIONS_PATH: Final[str] = "./var/data/sessions.json"
DEFAULT_SAVE_DEBOUNCE_SECONDS: Final[float] = 5.0
DEFAULT_STEP_TURNS: Final[int] = 8
DEFAULT_EXTENSION_TURNS: Final[int] = 3
DEFAULT_TRANSCRIPT_WINDOW: Final[int] = 1000
DEFAULT_ANTHROPIC_MODEL: Final[str] = "claude-sonnet-4-20250514"


class GenerationBackend(str, Enum):
    """Text-generation backends."""

    DETERMINISTIC = "deterministic"
    ANTHROPIC = "anthropic"


class CouncilConfigError(Exception):
    """Raised when council configuration is invalid."""


@dataclass(frozen=True)
class CouncilConfig:
    """Council engine configuration (immutable).

    Attributes:
        sessions_path: Snapshot file for the session table.
        save_debounce_seconds: Quiet period before a scheduled snapshot is written.
        generation_backend: Which text-generation client to build.
        default_step_turns: Step estimate used when STEP_START omits one.
        default_extension_turns: Extension size used when a request omits one.
        transcript_window: Most recent history entries passed to context building.
        anthropic_model: Model id for the Anthropic backend.
    """

    sessions_path: Path = Path(DEFAULT_SESSIONS_PATH)
    save_debounce_seconds: float = DEFAULT_SAVE_DEBOUNCE_SECONDS
    generation_backend: GenerationBackend = GenerationBackend.DETERMINISTIC
    default_step_turns: int = DEFAULT_STEP_TURNS
    default_extension_turns: int = DEFAULT_EXTENSION_TURNS
    transcript_window: int = DEFAULT_TRANSCRIPT_WINDOW
    anthropic_model: str = DEFAULT_ANTHROPIC_MODEL

    def __post_init__(self) -> None:
        """Validate configuration values."""
        if self.save_debounce_seconds <= 0:
            raise CouncilConfigError(
                f"{ENV_SAVE_DEBOUNCE_SECONDS} must be positive, got {self.save_debounce_seconds}"
            )
        if self.default_step_turns <= 0:
            raise CouncilConfigError(
                f"{ENV_DEFAULT_STEP_TURNS} must be a positive integer, "
                f"got {self.default_step_turns}"
            )
        if self.default_extension_turns <= 0:
            raise CouncilConfigError(
                f"{ENV_DEFAULT_EXTENSION_TURNS} must be a positive integer, "
                f"got {self.default_extension_turns}"
            )
        if self.transcript_window <= 0:
            raise CouncilConfigError(
                f"{ENV_TRANSCRIPT_WINDOW} must be a positive integer, "
                f"got {self.transcript_window}"
            )


def _read_env(env_var: str) -> str | None:
    raw = os.environ.get(env_var)
    if raw is None:
        return None
    raw = raw.strip()
    return raw or None


def _parse_positive_int(env_var: str, default: int) -> int:
    """Parse a positive integer from an environment variable.

    Raises:
        CouncilConfigError: If value is set but not a positive integer.
    """
    raw = _read_env(env_var)
    if raw is None:
        return default

    try:
        value = int(raw)
    except ValueError as e:
        raise CouncilConfigError(f"{env_var} must be a positive integer, got '{raw}'") from e

    if value <= 0:
        raise CouncilConfigError(f"{env_var} must be a positive integer, got {value}")
    return value


def _parse_positive_float(env_var: str, default: float) -> float:
    raw = _read_env(env_var)
    if raw is None:
        return default

    try:
        value = float(raw)
    except ValueError as e:
        raise CouncilConfigError(f"{env_var} must be a positive number, got '{raw}'") from e

    if value <= 0:
        raise CouncilConfigError(f"{env_var} must be a positive number, got {value}")
    return value


def _parse_backend(env_var: str) -> GenerationBackend:
    raw = _read_env(env_var)
    if raw is None:
        return GenerationBackend.DETERMINISTIC
    try:
        return GenerationBackend(raw.lower())
    except ValueError as e:
        valid = ", ".join(b.value for b in GenerationBackend)
        raise CouncilConfigError(f"{env_var} must be one of: {valid}; got '{raw}'") from e


def load_council_config() -> CouncilConfig:
    """Load council configuration from environment variables.

    Environment variables:
        COUNCIL_SESSIONS_PATH: Snapshot file (default: ./var/data/sessions.json)
        COUNCIL_SAVE_DEBOUNCE_SECONDS: Debounce window (default: 5.0)
        COUNCIL_GENERATION_BACKEND: deterministic | anthropic (default: deterministic)
        COUNCIL_DEFAULT_STEP_TURNS: Fallback step estimate (default: 8)
        COUNCIL_DEFAULT_EXTENSION_TURNS: Fallback extension size (default: 3)
        COUNCIL_TRANSCRIPT_WINDOW: History entries given to context (default: 1000)
        COUNCIL_ANTHROPIC_MODEL: Anthropic model id

    Returns:
        CouncilConfig with validated values.

    Raises:
        CouncilConfigError: If any value is invalid.
    """
    config = CouncilConfig(
        sessions_path=Path(_read_env(ENV_SESSIONS_PATH) or DEFAULT_SESSIONS_PATH),
        save_debounce_seconds=_parse_positive_float(
            ENV_SAVE_DEBOUNCE_SECONDS, DEFAULT_SAVE_DEBOUNCE_SECONDS
        ),
        generation_backend=_parse_backend(ENV_GENERATION_BACKEND),
        default_step_turns=_parse_positive_int(ENV_DEFAULT_STEP_TURNS, DEFAULT_STEP_TURNS),
        default_extension_turns=_parse_positive_int(
            ENV_DEFAULT_EXTENSION_TURNS, DEFAULT_EXTENSION_TURNS
        ),
        transcript_window=_parse_positive_int(ENV_TRANSCRIPT_WINDOW, DEFAULT_TRANSCRIPT_WINDOW),
        anthropic_model=_read_env(ENV_ANTHROPIC_MODEL) or DEFAULT_ANTHROPIC_MODEL,
    )
    logger.debug(
        "Council config loaded: backend=%s sessions_path=%s debounce=%.2fs",
        config.generation_backend.value,
        config.sessions_path,
        config.save_debounce_seconds,
    )
    return config
