"""
Central configuration — bootstrap values from the .env file plus the typed
AnalyzerConfig the analyzer runs on.

Settings priority order:
  1. ImageAnalyzer.update_config() / ConfigManager (JSON file) — live, no restart needed
  2. Environment variable / .env file                           — fallback / bootstrap

Module attributes below are read once at import; default_analyzer_config()
reads them at call time so tests (or a host) can override them.
"""
from __future__ import annotations

import copy
import enum
import logging
import os
import sys
from dataclasses import dataclass, field, fields, replace
from typing import Any, Mapping, Optional

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in ("true", "1", "yes", "on")


# ── Vision mode ───────────────────────────────────────────────────────────────
#   mock    → synthetic results, no network (default)
#   openai  → OpenAI vision chat completion
#   google  → Google Cloud Vision images:annotate
#   local   → placeholder, currently identical to mock
VISION_MODE: str = os.getenv("VISION_MODE", "mock")

# ── Provider credentials ──────────────────────────────────────────────────────
OPENAI_API_KEY: str | None    = os.getenv("OPENAI_API_KEY")
OPENAI_MODEL: str             = os.getenv("OPENAI_MODEL", "gpt-4-vision-preview")
OPENAI_BASE_URL: str | None   = os.getenv("OPENAI_BASE_URL") or None
GOOGLE_API_KEY: str | None    = os.getenv("GOOGLE_API_KEY")
GOOGLE_PROJECT_ID: str        = os.getenv("GOOGLE_PROJECT_ID", "")
LOCAL_MODEL_PATH: str         = os.getenv("LOCAL_MODEL_PATH", "./models")

# ── Result cache ──────────────────────────────────────────────────────────────
CACHE_ENABLED: bool       = _env_bool("CACHE_ENABLED", True)
CACHE_TTL_SECONDS: float  = float(os.getenv("CACHE_TTL_SECONDS", "3600"))   # 0 → never expire
CACHE_MAX_SIZE: int       = int(os.getenv("CACHE_MAX_SIZE", "1000"))        # 0 → unbounded

# ── Behaviour ─────────────────────────────────────────────────────────────────
REQUEST_TIMEOUT_SECONDS: float = float(os.getenv("REQUEST_TIMEOUT_SECONDS", "30"))
# false → backend errors are raised instead of being replaced by a mock result
FALLBACK_TO_MOCK: bool         = _env_bool("FALLBACK_TO_MOCK", True)

AI_CONFIG_FILE: str = os.getenv("AI_CONFIG_FILE", "ai-config.json")
LOG_LEVEL: str      = os.getenv("LOG_LEVEL", "INFO")


def setup_logging(level: Optional[str] = None) -> None:
    """Configure root logging for a host process (web app, script, worker)."""
    logging.basicConfig(
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        level=(level or LOG_LEVEL).upper(),
        handlers=[logging.StreamHandler(sys.stdout)],
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("openai").setLevel(logging.WARNING)


# ── Typed configuration ───────────────────────────────────────────────────────

class AnalysisMode(str, enum.Enum):
    MOCK = "mock"
    OPENAI = "openai"
    GOOGLE = "google"
    LOCAL = "local"

    @classmethod
    def parse(cls, value: Any) -> "AnalysisMode":
        """Unknown modes fall back to mock."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            logger.warning("Unknown vision mode %r — using mock", value)
            return cls.MOCK


# camelCase spellings from JSON/JS-style config files
_KEY_ALIASES = {
    "apiKey":         "api_key",
    "projectId":      "project_id",
    "baseUrl":        "base_url",
    "modelPath":      "model_path",
    "cacheResults":   "cache_enabled",
    "cacheEnabled":   "cache_enabled",
    "cacheTTL":       "cache_ttl",
    "cacheMaxSize":   "cache_max_size",
    "maxSize":        "max_size",
    "fallbackToMock": "fallback_to_mock",
}

# keys of the nested "cache" section → AnalyzerConfig fields
_CACHE_SECTION = {
    "enabled":  "cache_enabled",
    "ttl":      "cache_ttl",
    "max_size": "cache_max_size",
}


def _merge_section(section: Any, values: Mapping[str, Any]) -> Any:
    """Field-by-field merge: keys not supplied keep their current value."""
    known = {f.name for f in fields(section)}
    changes = {}
    for raw_key, value in values.items():
        key = _KEY_ALIASES.get(raw_key, raw_key)
        if key in known:
            changes[key] = value
        else:
            logger.debug("Ignoring unknown %s key %r", type(section).__name__, raw_key)
    return replace(section, **changes)


def _coerce_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes", "on")
    return bool(value)


def _coerce_ttl(value: Any) -> Optional[float]:
    if value is None:
        return None
    ttl = float(value)
    return ttl if ttl > 0 else None


_SCALAR_COERCERS = {
    "cache_enabled":    _coerce_bool,
    "cache_ttl":        _coerce_ttl,
    "cache_max_size":   int,
    "timeout":          float,
    "fallback_to_mock": _coerce_bool,
}


@dataclass
class OpenAISettings:
    api_key: str = ""
    model: str = "gpt-4-vision-preview"
    base_url: Optional[str] = None


@dataclass
class GoogleSettings:
    api_key: str = ""
    project_id: str = ""


@dataclass
class LocalSettings:
    model_path: str = "./models"


@dataclass
class AnalyzerConfig:
    mode: AnalysisMode = AnalysisMode.MOCK
    openai: OpenAISettings = field(default_factory=OpenAISettings)
    google: GoogleSettings = field(default_factory=GoogleSettings)
    local: LocalSettings = field(default_factory=LocalSettings)
    cache_enabled: bool = True
    cache_ttl: Optional[float] = 3600.0     # seconds; None → entries never expire
    cache_max_size: int = 1000              # 0 → unbounded
    timeout: float = 30.0                   # seconds, per backend call
    fallback_to_mock: bool = True

    def __post_init__(self) -> None:
        self.mode = AnalysisMode.parse(self.mode)

    def merged(self, partial: Mapping[str, Any]) -> "AnalyzerConfig":
        """
        Return a copy with `partial` applied.
        Provider sections ("openai", "google", "local") and the "cache" section
        merge field by field, so {"openai": {"api_key": "k"}} keeps the model.
        """
        new = copy.deepcopy(self)
        for raw_key, value in partial.items():
            key = _KEY_ALIASES.get(raw_key, raw_key)
            if key == "mode":
                new.mode = AnalysisMode.parse(value)
            elif key in ("openai", "google", "local"):
                current = getattr(new, key)
                if isinstance(value, type(current)):
                    setattr(new, key, copy.deepcopy(value))
                elif isinstance(value, Mapping):
                    setattr(new, key, _merge_section(current, value))
                else:
                    raise TypeError(f"{key} settings must be a mapping, got {type(value).__name__}")
            elif key == "cache" and isinstance(value, Mapping):
                for cache_key, cache_value in value.items():
                    target = _CACHE_SECTION.get(_KEY_ALIASES.get(cache_key, cache_key))
                    if target:
                        setattr(new, target, _SCALAR_COERCERS[target](cache_value))
            elif key in _SCALAR_COERCERS:
                setattr(new, key, _SCALAR_COERCERS[key](value))
            else:
                logger.debug("Ignoring unknown config key %r", raw_key)
        return new


def default_analyzer_config() -> AnalyzerConfig:
    """Build an AnalyzerConfig from the bootstrap (.env) values above."""
    return AnalyzerConfig(
        mode=AnalysisMode.parse(VISION_MODE),
        openai=OpenAISettings(
            api_key=OPENAI_API_KEY or "",
            model=OPENAI_MODEL,
            base_url=OPENAI_BASE_URL,
        ),
        google=GoogleSettings(api_key=GOOGLE_API_KEY or "", project_id=GOOGLE_PROJECT_ID),
        local=LocalSettings(model_path=LOCAL_MODEL_PATH),
        cache_enabled=CACHE_ENABLED,
        cache_ttl=_coerce_ttl(CACHE_TTL_SECONDS),
        cache_max_size=CACHE_MAX_SIZE,
        timeout=REQUEST_TIMEOUT_SECONDS,
        fallback_to_mock=FALLBACK_TO_MOCK,
    )
