"""
Startup settings, persona and app state.

Settings come from the environment (optionally a .env file) and are built once
by load_settings(), then handed to every component. Persona and check-in state
live in small JSON files under the data directory.
"""

import logging
import os
from dataclasses import asdict, dataclass, field, replace
from datetime import datetime
from pathlib import Path
from typing import Dict, Mapping, Optional, Tuple

from dotenv import load_dotenv

from errors import ConfigError
from storage import read_json_file, write_json_file

logger = logging.getLogger(__name__)

DEFAULT_API_BASE = "https://api.openai.com"
DEFAULT_HOME = "~/.archie"

DEFAULT_AI_NAME = "Archie"
DEFAULT_USER_NAME = "User"

CONFIG_FILE = "config.json"
STATE_FILE = "state.json"
LOG_DIR = "logs"
MEMORY_FILE = "memory.json"

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off", ""}


@dataclass(frozen=True)
class Settings:
    """Everything a component needs to know about its environment."""

    api_key: str
    api_base: str = DEFAULT_API_BASE
    home: Path = field(default_factory=lambda: Path(DEFAULT_HOME).expanduser())

    model_exec: str = "gpt-4o"
    model_logic: str = "gpt-4o-mini"
    model_creative: str = "gpt-4o-mini"
    model_summary: str = "gpt-4o-mini"
    embedding_model: str = "text-embedding-3-small"

    context_window: int = 128000
    response_reserve: int = 2048
    request_timeout: float = 30.0
    memory_top_k: int = 3
    fusion: bool = False
    log_level: str = "WARNING"

    @property
    def history_budget(self) -> int:
        """Token ceiling for recent-history content."""
        return max(self.context_window - self.response_reserve, 0)

    @property
    def config_path(self) -> Path:
        return self.home / CONFIG_FILE

    @property
    def state_path(self) -> Path:
        return self.home / STATE_FILE

    @property
    def log_dir(self) -> Path:
        return self.home / LOG_DIR

    @property
    def memory_path(self) -> Path:
        return self.home / MEMORY_FILE


def _int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}")


def _float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {raw!r}")


def _bool(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = env.get(name)
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise ConfigError(f"{name} must be a boolean, got {raw!r}")


def load_settings(env: Optional[Mapping[str, str]] = None, dotenv: bool = True) -> Settings:
    """Build Settings from the environment. Raises ConfigError if the API key is missing."""
    if env is None:
        if dotenv:
            load_dotenv()
        env = os.environ

    api_key = (env.get("OPENAI_API_KEY") or "").strip()
    if not api_key:
        raise ConfigError("OPENAI_API_KEY env missing")

    api_base = (env.get("OPENAI_API_BASE") or "").strip() or DEFAULT_API_BASE
    home = Path(env.get("ARCHIE_HOME") or DEFAULT_HOME).expanduser()

    settings = Settings(
        api_key=api_key,
        api_base=api_base.rstrip("/"),
        home=home,
        model_exec=env.get("ARCHIE_MODEL_EXEC") or Settings.model_exec,
        model_logic=env.get("ARCHIE_MODEL_LOGIC") or Settings.model_logic,
        model_creative=env.get("ARCHIE_MODEL_CREATIVE") or Settings.model_creative,
        model_summary=env.get("ARCHIE_MODEL_SUMMARY") or Settings.model_summary,
        embedding_model=env.get("ARCHIE_EMBEDDING_MODEL") or Settings.embedding_model,
        context_window=_int(env, "ARCHIE_CONTEXT_WINDOW", Settings.context_window),
        response_reserve=_int(env, "ARCHIE_RESPONSE_RESERVE", Settings.response_reserve),
        request_timeout=_float(env, "ARCHIE_REQUEST_TIMEOUT", Settings.request_timeout),
        memory_top_k=_int(env, "ARCHIE_MEMORY_TOP_K", Settings.memory_top_k),
        fusion=_bool(env, "ARCHIE_FUSION", Settings.fusion),
        log_level=(env.get("ARCHIE_LOG_LEVEL") or Settings.log_level).upper(),
    )
    if settings.context_window <= 0 or settings.response_reserve < 0:
        raise ConfigError("ARCHIE_CONTEXT_WINDOW must be positive and ARCHIE_RESPONSE_RESERVE non-negative")
    if not isinstance(logging.getLevelName(settings.log_level), int):
        raise ConfigError(f"ARCHIE_LOG_LEVEL is not a logging level: {settings.log_level!r}")
    if settings.request_timeout <= 0:
        raise ConfigError("ARCHIE_REQUEST_TIMEOUT must be positive")
    return settings


# --- Persona ---


@dataclass(frozen=True)
class PersonaConfig:
    user_name: str = DEFAULT_USER_NAME
    ai_name: str = DEFAULT_AI_NAME
    bio: str = ""
    personality: str = ""


class PersonaStore:
    """Persona fields persisted in config.json."""

    def __init__(self, path: Path):
        self.path = path

    def get(self) -> PersonaConfig:
        data = read_json_file(self.path, {})
        if not isinstance(data, dict):
            logger.warning("Ignoring malformed persona file %s", self.path)
            data = {}
        return PersonaConfig(
            user_name=str(data.get("user_name") or DEFAULT_USER_NAME),
            ai_name=str(data.get("ai_name") or DEFAULT_AI_NAME),
            bio=str(data.get("bio") or ""),
            personality=str(data.get("personality") or ""),
        )

    def set(self, **fields: Optional[str]) -> PersonaConfig:
        """Update the given fields; empty or None values leave a field unchanged."""
        allowed = set(PersonaConfig.__dataclass_fields__)
        unknown = set(fields) - allowed
        if unknown:
            raise ValueError(f"Unknown persona field(s): {', '.join(sorted(unknown))}")
        changes = {k: v for k, v in fields.items() if v}
        persona = replace(self.get(), **changes)
        write_json_file(self.path, asdict(persona))
        return persona


# --- Check-in / digest state ---


@dataclass(frozen=True)
class AppState:
    check_in_enabled: bool = True
    last_checked: Optional[datetime] = None
    last_digest_day: Optional[str] = None
    # days digested ahead of the daily batch (ISO dates)
    forced_digest_days: Tuple[str, ...] = ()

    def to_dict(self) -> Dict:
        return {
            "check_in_enabled": self.check_in_enabled,
            "last_checked": self.last_checked.isoformat() if self.last_checked else None,
            "last_digest_day": self.last_digest_day,
            "forced_digest_days": list(self.forced_digest_days),
        }


class StateStore:
    """Check-in flag and bookkeeping persisted in state.json."""

    def __init__(self, path: Path):
        self.path = path

    def get(self) -> AppState:
        data = read_json_file(self.path, {})
        if not isinstance(data, dict):
            logger.warning("Ignoring malformed state file %s", self.path)
            data = {}
        last_checked = None
        if data.get("last_checked"):
            try:
                last_checked = datetime.fromisoformat(data["last_checked"])
            except (TypeError, ValueError):
                logger.warning("Ignoring bad last_checked value in %s", self.path)
        forced = data.get("forced_digest_days")
        if not isinstance(forced, list):
            forced = []
        return AppState(
            check_in_enabled=bool(data.get("check_in_enabled", True)),
            last_checked=last_checked,
            last_digest_day=data.get("last_digest_day") or None,
            forced_digest_days=tuple(str(d) for d in forced),
        )

    def save(self, state: AppState) -> None:
        write_json_file(self.path, state.to_dict())

    def update(self, **changes) -> AppState:
        state = replace(self.get(), **changes)
        self.save(state)
        return state
