"""
Google Cloud Vision provider — one images:annotate REST call per image.

The annotate response is already structured, so normalisation maps it directly:
  labelAnnotations            → objects (+ scored labels)
  imagePropertiesAnnotation   → "rgb(r, g, b)" colours (+ scores)
  faceAnnotations             → joy / sorrow / anger / surprise likelihoods
  safeSearchAnnotation        → passed through verbatim
  confidence                  → top label score, 0.5 when there are no labels
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any

import aiohttp

from errors import BackendError, ConfigurationError
from image_io import ImagePayload
from providers.base import (
    AnalysisOptions, ConnectivityResult, FaceEmotions, ImageMetadata,
    NormalizedAnalysis, ProviderResult, ScoredColor, ScoredLabel, VisionProvider,
)

logger = logging.getLogger(__name__)

ANNOTATE_URL = "https://vision.googleapis.com/v1/images:annotate"

FEATURES: list[dict[str, Any]] = [
    {"type": "LABEL_DETECTION", "maxResults": 10},
    {"type": "TEXT_DETECTION", "maxResults": 5},
    {"type": "FACE_DETECTION", "maxResults": 5},
    {"type": "LOGO_DETECTION", "maxResults": 5},
    {"type": "SAFE_SEARCH_DETECTION"},
    {"type": "IMAGE_PROPERTIES"},
]

NO_LABEL_CONFIDENCE = 0.5
_LIKELY = {"LIKELY", "VERY_LIKELY"}


def _face_sentiment(faces: list[FaceEmotions]) -> str:
    if not faces:
        return "neutral"
    happy = any(f.joy in _LIKELY for f in faces)
    unhappy = any(f.sorrow in _LIKELY or f.anger in _LIKELY for f in faces)
    if happy and unhappy:
        return "mixed"
    if happy:
        return "positive"
    if unhappy:
        return "negative"
    return "neutral"


def parse_google_response(response: dict[str, Any], metadata: ImageMetadata) -> NormalizedAnalysis:
    """Normalise a single entry of the annotate `responses` array."""
    if not isinstance(response, dict):
        raise BackendError("Malformed Google Vision response", provider="google")

    try:
        labels = [
            ScoredLabel(description=label.get("description", ""), score=float(label.get("score", 0.0)))
            for label in response.get("labelAnnotations") or []
        ]
        texts = [t.get("description", "") for t in response.get("textAnnotations") or []]
        logos = [l.get("description", "") for l in response.get("logoAnnotations") or []]
        faces = [
            FaceEmotions(
                joy=face.get("joyLikelihood", "UNKNOWN"),
                sorrow=face.get("sorrowLikelihood", "UNKNOWN"),
                anger=face.get("angerLikelihood", "UNKNOWN"),
                surprise=face.get("surpriseLikelihood", "UNKNOWN"),
            )
            for face in response.get("faceAnnotations") or []
        ]
        dominant = (
            (response.get("imagePropertiesAnnotation") or {})
            .get("dominantColors", {})
            .get("colors")
            or []
        )
        color_scores = []
        for entry in dominant:
            # Google omits zero-valued channels
            rgb = entry.get("color") or {}
            color_scores.append(ScoredColor(
                color=f"rgb({int(rgb.get('red', 0))}, {int(rgb.get('green', 0))}, {int(rgb.get('blue', 0))})",
                score=float(entry.get("score", 0.0)),
            ))
    except (AttributeError, TypeError, ValueError) as exc:
        raise BackendError(f"Malformed Google Vision response: {exc}", provider="google") from exc

    return NormalizedAnalysis(
        objects=[label.description for label in labels],
        colors=[c.color for c in color_scores],
        sentiment=_face_sentiment(faces),
        confidence=labels[0].score if labels else NO_LABEL_CONFIDENCE,
        text=texts[0] if texts else "",
        metadata=metadata,
        labels=labels,
        color_scores=color_scores,
        faces=faces,
        texts=texts,
        logos=logos,
        safe_search=response.get("safeSearchAnnotation"),
    )


class GoogleVisionProvider(VisionProvider):

    def __init__(self, api_key: str, project_id: str = "", timeout: float = 30.0) -> None:
        self.name = "google"
        self._api_key = api_key
        self.project_id = project_id
        self._timeout = timeout

    async def analyse(self, image: ImagePayload, options: AnalysisOptions) -> ProviderResult:
        if not self._api_key:
            raise ConfigurationError("Google Vision API key not configured")
        logger.info("Using Google Cloud Vision API")

        body = {"requests": [{"image": {"content": image.b64()}, "features": FEATURES}]}
        data = await self._post(body)

        responses = data.get("responses") if isinstance(data, dict) else None
        if not responses:
            raise BackendError("Google Vision response has no results", provider=self.name)
        if not isinstance(responses, list) or not isinstance(responses[0], dict):
            raise BackendError("Malformed Google Vision response", provider=self.name)
        first = responses[0]
        if first.get("error"):
            err = first["error"]
            if isinstance(err, dict):
                message, code = err.get("message", err), err.get("code")
            else:
                message, code = err, None
            raise BackendError(
                f"Google Vision error: {message}",
                provider=self.name,
                status=code if isinstance(code, int) else None,
            )

        return ProviderResult(
            analysis=parse_google_response(first, ImageMetadata.from_payload(image)),
            raw_response=data,
        )

    async def test_connection(self) -> ConnectivityResult:
        # Key presence only — no network round trip
        present = bool(self._api_key)
        return ConnectivityResult(
            success=present,
            mode=self.name,
            message="API key present" if present else "API key missing",
        )

    # ── HTTP helper ───────────────────────────────────────────────────────────

    async def _post(self, body: dict) -> Any:
        try:
            async with aiohttp.ClientSession() as session:
                async with session.post(
                    ANNOTATE_URL,
                    params={"key": self._api_key},
                    json=body,
                    timeout=aiohttp.ClientTimeout(total=self._timeout),
                ) as resp:
                    if not 200 <= resp.status < 300:
                        text = await resp.text()
                        raise BackendError(
                            f"Google Vision error {resp.status}: {text[:200]}",
                            provider=self.name,
                            status=resp.status,
                        )
                    return await resp.json()
        except asyncio.TimeoutError as exc:
            raise BackendError("Google Vision request timed out", provider=self.name) from exc
        except aiohttp.ClientError as exc:
            raise BackendError(f"Google Vision request failed: {exc}", provider=self.name) from exc
        except ValueError as exc:
            raise BackendError(f"Google Vision returned invalid JSON: {exc}", provider=self.name) from exc
