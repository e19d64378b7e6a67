"""
Shared types and base class for all vision providers.

Every provider, whatever its native response looks like, must hand back a
NormalizedAnalysis so callers never have to care which backend answered.
"""
from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field, fields
from typing import Any, Mapping, Optional, Union

from errors import InputError
from image_io import ImagePayload

logger = logging.getLogger(__name__)

SENTIMENTS = ("positive", "neutral", "negative", "mixed")


# ── Request options ───────────────────────────────────────────────────────────

# camelCase spellings accepted from JSON/JS-style callers
_OPTION_ALIASES = {
    "maxTokens":    "max_tokens",
    "analysisType": "analysis_type",
}


@dataclass(frozen=True)
class AnalysisOptions:
    """Per-request knobs. Immutable once submitted."""
    prompt: Optional[str] = None
    max_tokens: Optional[int] = None
    detail: Optional[str] = None          # "low" | "high" | "auto" (OpenAI)
    analysis_type: Optional[str] = None

    @classmethod
    def from_mapping(
        cls,
        options: Union["AnalysisOptions", Mapping[str, Any], None],
    ) -> "AnalysisOptions":
        if options is None:
            return cls()
        if isinstance(options, AnalysisOptions):
            return options
        known = {f.name for f in fields(cls)}
        values: dict[str, Any] = {}
        for key, value in options.items():
            name = _OPTION_ALIASES.get(key, key)
            if name in known:
                values[name] = value
            else:
                logger.debug("Ignoring unknown analysis option %r", key)
        if values.get("max_tokens") is not None:
            try:
                values["max_tokens"] = int(values["max_tokens"])
            except (TypeError, ValueError):
                raise InputError(f"Invalid max_tokens option: {values['max_tokens']!r}") from None
        return cls(**values)

    def serialize(self) -> str:
        """Stable JSON of the options that are set — part of the cache fingerprint."""
        return json.dumps(
            {k: v for k, v in asdict(self).items() if v is not None},
            sort_keys=True,
            separators=(",", ":"),
        )


# ── Normalized output ─────────────────────────────────────────────────────────

@dataclass
class ImageMetadata:
    width: Optional[int]
    height: Optional[int]
    format: str
    size_bytes: int

    @classmethod
    def from_payload(cls, image: ImagePayload) -> "ImageMetadata":
        return cls(
            width=image.width,
            height=image.height,
            format=image.format,
            size_bytes=image.size_bytes,
        )


@dataclass
class ScoredLabel:
    description: str
    score: float


@dataclass
class ScoredColor:
    color: str      # "rgb(r, g, b)"
    score: float


@dataclass
class FaceEmotions:
    """Likelihood strings as returned by Google, e.g. "VERY_LIKELY"."""
    joy: str
    sorrow: str
    anger: str
    surprise: str


@dataclass
class NormalizedAnalysis:
    """The one output shape every backend must produce."""
    objects: list[str]
    colors: list[str]           # hex ("#a0aec0") or "rgb(r, g, b)"
    sentiment: str              # positive | neutral | negative | mixed
    confidence: float           # 0.0 – 1.0
    text: str
    metadata: ImageMetadata

    # Provider-specific extras; empty unless the backend supplies them
    description: str = ""
    labels: list[ScoredLabel] = field(default_factory=list)
    color_scores: list[ScoredColor] = field(default_factory=list)
    faces: list[FaceEmotions] = field(default_factory=list)
    texts: list[str] = field(default_factory=list)
    logos: list[str] = field(default_factory=list)
    safe_search: Optional[dict[str, Any]] = None

    def __post_init__(self) -> None:
        if self.sentiment not in SENTIMENTS:
            raise ValueError(f"Unknown sentiment {self.sentiment!r}; expected one of {SENTIMENTS}")
        self.confidence = min(max(float(self.confidence), 0.0), 1.0)


@dataclass
class ProviderResult:
    """What a single provider call returns before the analyzer wraps it."""
    analysis: NormalizedAnalysis
    raw_response: Optional[dict[str, Any]] = None


@dataclass
class AnalysisResult:
    """Result handed back by ImageAnalyzer.analyze_image()."""
    success: bool
    mode: str
    timestamp: str                  # ISO-8601, UTC
    analysis: Optional[NormalizedAnalysis]
    processing_time_ms: float
    error: Optional[str] = None
    # True when the configured backend failed and a mock result was substituted
    degraded: bool = False
    raw_response: Optional[dict[str, Any]] = None

    def to_dict(self, include_raw: bool = False) -> dict[str, Any]:
        data = asdict(self)
        if not include_raw:
            data.pop("raw_response")
        return data


@dataclass
class ConnectivityResult:
    success: bool
    mode: str
    message: str = ""
    models: Optional[int] = None
    error: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}


# ── Abstract base ──────────────────────────────────────────────────────────────

class VisionProvider(ABC):
    """Base class all vision providers must implement."""

    name: str           # "mock" | "openai" | "google" | "local"

    @abstractmethod
    async def analyse(self, image: ImagePayload, options: AnalysisOptions) -> ProviderResult:
        """Run analysis on one image. Raise ConfigurationError / BackendError on failure."""
        ...

    async def test_connection(self) -> ConnectivityResult:
        return ConnectivityResult(
            success=True,
            mode=self.name,
            message="Mock mode - no API connection needed",
        )
