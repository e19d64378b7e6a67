"""
config_manager.py — JSON-file configuration for an ImageAnalyzer.

Priority order for every value:
  1. JSON config file (ai-config.json by default) — saved by update()
  2. Environment variable / .env file            — fills empty API keys only
  3. DEFAULT_CONFIG below

Env-supplied keys are applied to the running analyzer but never written back
to the JSON file.

The analyzer is injected, not imported: whoever hosts the analyzer builds one
and hands it to the manager, which pushes every load/update into it.
"""
from __future__ import annotations

import copy
import json
import logging
import os
from pathlib import Path
from typing import Any, Optional

import config
from config import AnalyzerConfig
from image_analyzer import ImageAnalyzer

logger = logging.getLogger(__name__)

DEFAULT_CONFIG: dict[str, Any] = {
    "mode": "mock",                 # mock | openai | google | local
    "openai": {
        "api_key": "",
        "model": "gpt-4-vision-preview",
    },
    "google": {
        "api_key": "",
        "project_id": "",
    },
    "local": {
        "model_path": "./models",
    },
    "features": {
        "object_detection": True,
        "color_analysis": True,
        "sentiment_analysis": True,
        "text_extraction": True,
        "face_detection": False,
        "nsfw_filter": True,
    },
    "cache": {
        "enabled": True,
        "max_size": 1000,
        "ttl": 3600,                # seconds
    },
    "timeout": 30.0,                # seconds
    "fallback_to_mock": True,
}

# (section, field) → env var consulted when the file leaves the value empty
ENV_FALLBACKS: dict[tuple[str, str], str] = {
    ("openai", "api_key"):    "OPENAI_API_KEY",
    ("google", "api_key"):    "GOOGLE_API_KEY",
    ("google", "project_id"): "GOOGLE_PROJECT_ID",
}

_TESTABLE_PROVIDERS = ("openai", "google")


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _normalise_keys(data: dict[str, Any]) -> dict[str, Any]:
    """Rewrite camelCase keys (apiKey, projectId, ...) to the snake_case used on disk."""
    normalised: dict[str, Any] = {}
    for key, value in data.items():
        if isinstance(value, dict):
            value = _normalise_keys(value)
        normalised[config._KEY_ALIASES.get(key, key)] = value
    return normalised


def mask(value: Optional[str]) -> str:
    """Return a masked version of a secret, safe for logs and status pages."""
    if not value:
        return "not set"
    if len(value) <= 8:
        return "****"
    return f"{value[:4]}{'*' * (len(value) - 8)}{value[-4:]}"


class ConfigManager:

    def __init__(
        self,
        config_file: Optional[str | os.PathLike] = None,
        analyzer: Optional[ImageAnalyzer] = None,
    ) -> None:
        self.config_file = Path(config_file or config.AI_CONFIG_FILE)
        self.analyzer = analyzer
        self.config: dict[str, Any] = copy.deepcopy(DEFAULT_CONFIG)
        self.load_config()

    # ── Persistence ───────────────────────────────────────────────────────────

    def load_config(self) -> dict[str, Any]:
        """
        Merge the config file over DEFAULT_CONFIG and push the result into the analyzer.
        A missing file is created with defaults; a corrupt one is logged and ignored.
        """
        try:
            if self.config_file.exists():
                data = json.loads(self.config_file.read_text(encoding="utf-8"))
                if not isinstance(data, dict):
                    raise ValueError("top-level JSON value must be an object")
                self.config = _deep_merge(DEFAULT_CONFIG, _normalise_keys(data))
                logger.info("AI config loaded from %s", self.config_file)
            else:
                self.config = copy.deepcopy(DEFAULT_CONFIG)
                self.save_config()
                logger.info("Created default AI config at %s", self.config_file)
        except (OSError, ValueError) as exc:
            logger.error("Error loading AI config from %s: %s — using defaults", self.config_file, exc)
            self.config = copy.deepcopy(DEFAULT_CONFIG)

        self._push()
        return self.config

    def save_config(self) -> bool:
        try:
            self.config_file.parent.mkdir(parents=True, exist_ok=True)
            self.config_file.write_text(json.dumps(self.config, indent=2), encoding="utf-8")
        except OSError as exc:
            logger.error("Error saving AI config to %s: %s", self.config_file, exc)
            return False
        logger.info("AI config saved to %s", self.config_file)
        return True

    def update(self, partial: dict[str, Any]) -> dict[str, Any]:
        """Merge `partial` into the file config, persist it, and apply it live."""
        self.config = _deep_merge(self.config, _normalise_keys(partial))
        self.save_config()
        self._push()
        return self.config

    # ── Analyzer wiring ───────────────────────────────────────────────────────

    def effective_config(self) -> dict[str, Any]:
        """File config with empty credentials filled from the environment."""
        effective = copy.deepcopy(self.config)
        for (section, name), env_var in ENV_FALLBACKS.items():
            block = effective.setdefault(section, {})
            if not block.get(name):
                env_val = os.getenv(env_var, "").strip()
                if env_val:
                    block[name] = env_val
        return effective

    def to_analyzer_config(self) -> AnalyzerConfig:
        return config.default_analyzer_config().merged(self.effective_config())

    def _push(self) -> None:
        if self.analyzer is not None:
            self.analyzer.update_config(self.to_analyzer_config())

    # ── Diagnostics ───────────────────────────────────────────────────────────

    async def test_all_connections(self) -> dict[str, Any]:
        """
        Test the active mode, then every provider that has an API key,
        each through a short-lived analyzer so the live one is untouched.
        """
        logger.info("Testing AI connections...")
        effective = self.effective_config()
        base = self.to_analyzer_config()
        results: dict[str, Any] = {"mode": base.mode.value, "tests": []}

        current = self.analyzer or ImageAnalyzer(base)
        results["tests"].append((await current.test_connection()).to_dict())

        for provider in _TESTABLE_PROVIDERS:
            if not effective.get(provider, {}).get("api_key"):
                continue
            logger.info("Testing %s...", provider)
            probe = ImageAnalyzer(base.merged({"mode": provider}))
            results["tests"].append((await probe.test_connection()).to_dict())

        logger.info("Connection test results: %s", json.dumps(results))
        return results

    def get_status(self) -> dict[str, Any]:
        effective = self.effective_config()
        return {
            "mode": effective.get("mode"),
            "config_file": str(self.config_file),
            "keys": {
                provider: mask(effective.get(provider, {}).get("api_key"))
                for provider in _TESTABLE_PROVIDERS
            },
            "features": effective.get("features", {}),
            "stats": self.analyzer.get_stats() if self.analyzer is not None else None,
        }
