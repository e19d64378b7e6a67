"""
image_analyzer.py — ImageAnalyzer, the one object hosts talk to.

Public entry points (everything a web route, script or batch job needs):
  analyze_image(image, options)   → AnalysisResult
  test_connection()               → ConnectivityResult
  get_stats()                     → dict snapshot
  clear_cache()
  update_config(partial)

Flow of analyze_image():
  fingerprint → cache lookup → load image → dispatch on mode → normalise
  → stats + cache → result

Failure policy:
  ConfigurationError / BackendError  → failed += 1, logged, then either a mock
                                       result tagged degraded=True (default) or
                                       re-raised when fallback_to_mock is off
  InputError                         → failed += 1, success=False result
Degraded and failed results are never cached.

The analyzer is constructed explicitly and passed to whatever hosts it; there
is no module-level instance. All bookkeeping happens between awaits on one event
loop, so the cache and stats need no lock. Two concurrent calls with the same
fingerprint both dispatch; the last one to finish wins the cache slot.
"""
from __future__ import annotations

import copy
import hashlib
import logging
import os
import random
import time
from collections import OrderedDict
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Mapping, Optional, Union

from config import AnalysisMode, AnalyzerConfig
from errors import BackendError, ConfigurationError, InputError
from image_io import ImagePayload, ImageReference, is_path_reference, load_image
from providers.base import AnalysisOptions, AnalysisResult, ConnectivityResult, VisionProvider
from providers.google_provider import GoogleVisionProvider
from providers.local_provider import LocalProvider
from providers.mock_provider import MockProvider
from providers.openai_provider import OpenAIProvider

logger = logging.getLogger(__name__)

OptionsLike = Union[AnalysisOptions, Mapping[str, Any], None]


@dataclass
class AnalyzerStats:
    total_requests: int = 0
    successful: int = 0
    failed: int = 0
    cache_hits: int = 0
    average_response_time_ms: float = 0.0


def cache_key(image: ImageReference, options: AnalysisOptions) -> str:
    """
    Fingerprint of one request.
    Paths key on the path string; buffers key on a hash of their full content,
    so two different images of the same length never collide.
    """
    if is_path_reference(image):
        return f"{os.fspath(image)}-{options.serialize()}"
    if not isinstance(image, (bytes, bytearray, memoryview)):
        raise InputError(f"Unsupported image reference type: {type(image).__name__}")
    digest = hashlib.blake2b(bytes(image), digest_size=16).hexdigest()
    return f"buffer-{digest}-{options.serialize()}"


def _describe(image: ImageReference) -> str:
    if is_path_reference(image):
        return os.fspath(image)
    if isinstance(image, (bytes, bytearray, memoryview)):
        return f"<buffer {len(image)} bytes>"
    return f"<{type(image).__name__}>"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class ImageAnalyzer:

    def __init__(
        self,
        config: Optional[AnalyzerConfig] = None,
        *,
        rng: Optional[random.Random] = None,
    ) -> None:
        self._config = copy.deepcopy(config) if config is not None else AnalyzerConfig()
        self._rng = rng or random.Random()
        self._mock = MockProvider(self._rng)
        self._providers: dict[AnalysisMode, VisionProvider] = {}
        self._cache: OrderedDict[str, tuple[AnalysisResult, float]] = OrderedDict()
        self._stats = AnalyzerStats()

    @property
    def config(self) -> AnalyzerConfig:
        """Copy of the active configuration; change it through update_config()."""
        return copy.deepcopy(self._config)

    # ── Main entry point ──────────────────────────────────────────────────────

    async def analyze_image(self, image: ImageReference, options: OptionsLike = None) -> AnalysisResult:
        self._stats.total_requests += 1

        mode = self._config.mode
        t0 = time.monotonic()

        try:
            opts = AnalysisOptions.from_mapping(options)
            key = cache_key(image, opts)
            cached = self._cache_get(key)
            if cached is not None:
                self._stats.cache_hits += 1
                logger.debug("Cache hit for %s", _describe(image))
                return cached
            payload = await load_image(image)
        except InputError as exc:
            self._stats.failed += 1
            logger.error("Cannot analyse %s: %s", _describe(image), exc)
            return AnalysisResult(
                success=False,
                mode=mode.value,
                timestamp=_now_iso(),
                analysis=None,
                processing_time_ms=(time.monotonic() - t0) * 1000,
                error=str(exc),
            )

        try:
            provider = self._provider_for(mode)
            outcome = await provider.analyse(payload, opts)
        except (ConfigurationError, BackendError) as exc:
            self._stats.failed += 1
            if not self._config.fallback_to_mock:
                logger.error("[%s] Analysis failed: %s", mode.value, exc)
                raise
            logger.warning("[%s] Analysis failed, falling back to mock: %s", mode.value, exc)
            return self._degraded_result(payload, exc, t0)

        elapsed_ms = (time.monotonic() - t0) * 1000
        result = AnalysisResult(
            success=True,
            mode=mode.value,
            timestamp=_now_iso(),
            analysis=outcome.analysis,
            processing_time_ms=elapsed_ms,
            raw_response=outcome.raw_response,
        )
        self._record_success(elapsed_ms)
        logger.info(
            "[%s] OK — confidence=%.2f latency=%dms",
            mode.value, result.analysis.confidence, elapsed_ms,
        )

        if self._config.cache_enabled:
            self._cache_put(key, result)
        return result

    # ── Connectivity ──────────────────────────────────────────────────────────

    async def test_connection(self) -> ConnectivityResult:
        mode = self._config.mode
        try:
            provider = self._provider_for(mode)
        except ConfigurationError as exc:
            return ConnectivityResult(success=False, mode=mode.value, error=str(exc))
        return await provider.test_connection()

    # ── Bookkeeping ───────────────────────────────────────────────────────────

    def get_stats(self) -> dict[str, Any]:
        stats = asdict(self._stats)
        stats.update(
            cache_size=len(self._cache),
            mode=self._config.mode.value,
            cache_enabled=self._config.cache_enabled,
        )
        return stats

    def clear_cache(self) -> None:
        self._cache.clear()
        logger.info("AI analysis cache cleared")

    def update_config(self, partial: Union[AnalyzerConfig, Mapping[str, Any]]) -> None:
        """
        Apply a partial configuration. Provider sections merge field by field;
        passing a full AnalyzerConfig replaces the configuration outright.
        """
        if isinstance(partial, AnalyzerConfig):
            self._config = copy.deepcopy(partial)
        else:
            self._config = self._config.merged(partial)
        # Providers hold credentials/clients — rebuild on next use
        self._providers = {}
        logger.info("AI analyzer configuration updated (mode=%s)", self._config.mode.value)

    # ── Internals ─────────────────────────────────────────────────────────────

    def _provider_for(self, mode: AnalysisMode) -> VisionProvider:
        provider = self._providers.get(mode)
        if provider is not None:
            return provider

        cfg = self._config
        if mode is AnalysisMode.OPENAI:
            provider = OpenAIProvider(
                api_key=cfg.openai.api_key,
                model=cfg.openai.model,
                timeout=cfg.timeout,
                base_url=cfg.openai.base_url,
                rng=self._rng,
            )
        elif mode is AnalysisMode.GOOGLE:
            provider = GoogleVisionProvider(
                api_key=cfg.google.api_key,
                project_id=cfg.google.project_id,
                timeout=cfg.timeout,
            )
        elif mode is AnalysisMode.LOCAL:
            provider = LocalProvider(self._mock, model_path=cfg.local.model_path)
        elif mode is AnalysisMode.MOCK:
            provider = self._mock
        else:
            raise ConfigurationError(f"Unsupported vision mode: {mode!r}")

        self._providers[mode] = provider
        return provider

    def _degraded_result(self, payload: ImagePayload, exc: Exception, t0: float) -> AnalysisResult:
        analysis = self._mock.generate(payload)
        return AnalysisResult(
            success=True,
            mode=AnalysisMode.MOCK.value,
            timestamp=_now_iso(),
            analysis=analysis,
            processing_time_ms=(time.monotonic() - t0) * 1000,
            error=str(exc),
            degraded=True,
        )

    def _record_success(self, elapsed_ms: float) -> None:
        s = self._stats
        s.average_response_time_ms = (
            (s.average_response_time_ms * s.successful + elapsed_ms) / (s.successful + 1)
        )
        s.successful += 1

    def _cache_get(self, key: str) -> Optional[AnalysisResult]:
        if not self._config.cache_enabled:
            return None
        entry = self._cache.get(key)
        if entry is None:
            return None
        result, stored_at = entry
        ttl = self._config.cache_ttl
        if ttl is not None and time.monotonic() - stored_at > ttl:
            del self._cache[key]
            logger.debug("Cache entry expired: %s", key)
            return None
        return result

    def _cache_put(self, key: str, result: AnalysisResult) -> None:
        self._cache[key] = (result, time.monotonic())
        self._cache.move_to_end(key)
        max_size = self._config.cache_max_size
        while max_size > 0 and len(self._cache) > max_size:
            evicted, _ = self._cache.popitem(last=False)
            logger.debug("Cache full — evicted %s", evicted)
