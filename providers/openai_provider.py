"""
OpenAI vision provider — one chat-completions call per image.

The model answers in free text, so normalisation is heuristic:
  sentiment   → positive vs negative keyword count (tie → neutral)
  objects     → substring matches against a small fixed vocabulary
  colors      → one random hex placeholder per colour name mentioned
                (keyword-triggered, NOT real pixel colours)
  confidence  → fixed 0.85
"""
from __future__ import annotations

import logging
import random
from typing import Optional

import openai
from openai import AsyncOpenAI

from errors import BackendError, ConfigurationError
from image_io import ImagePayload
from providers.base import (
    AnalysisOptions, ConnectivityResult, ImageMetadata,
    NormalizedAnalysis, ProviderResult, VisionProvider,
)

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gpt-4-vision-preview"
DEFAULT_PROMPT = (
    "Analyze this image and describe what you see. "
    "Include objects, colors, and overall sentiment."
)
DEFAULT_MAX_TOKENS = 500
OPENAI_CONFIDENCE = 0.85
SUMMARY_LENGTH = 200
CONNECTION_TEST_TIMEOUT = 5.0

OBJECT_VOCABULARY = (
    "person", "computer", "car", "tree", "building",
    "dog", "cat", "food", "mountain", "water",
)
COLOR_NAMES = (
    "red", "blue", "green", "yellow", "black",
    "white", "gray", "brown", "orange", "purple",
)
POSITIVE_WORDS = ("good", "great", "excellent", "happy", "beautiful", "wonderful", "amazing")
NEGATIVE_WORDS = ("bad", "poor", "sad", "ugly", "terrible", "awful", "horrible")


# ── Text heuristics ───────────────────────────────────────────────────────────

def analyse_sentiment(text: str) -> str:
    lower = text.lower()
    positive = sum(1 for word in POSITIVE_WORDS if word in lower)
    negative = sum(1 for word in NEGATIVE_WORDS if word in lower)
    if positive > negative:
        return "positive"
    if negative > positive:
        return "negative"
    return "neutral"


def extract_objects(text: str) -> list[str]:
    lower = text.lower()
    return [obj for obj in OBJECT_VOCABULARY if obj in lower]


def extract_colors(text: str, rng: Optional[random.Random] = None) -> list[str]:
    """One random hex code per colour name mentioned in the text."""
    rng = rng or random.Random()
    lower = text.lower()
    return [f"#{rng.randrange(0x1000000):06x}" for name in COLOR_NAMES if name in lower]


def summarise(text: str) -> str:
    return text[:SUMMARY_LENGTH] + "..."


def parse_openai_response(
    text: str,
    metadata: ImageMetadata,
    rng: Optional[random.Random] = None,
) -> NormalizedAnalysis:
    return NormalizedAnalysis(
        objects=extract_objects(text),
        colors=extract_colors(text, rng),
        sentiment=analyse_sentiment(text),
        confidence=OPENAI_CONFIDENCE,
        text=summarise(text),
        metadata=metadata,
        description=text,
    )


# ── Provider ──────────────────────────────────────────────────────────────────

class OpenAIProvider(VisionProvider):

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_MODEL,
        timeout: float = 30.0,
        base_url: Optional[str] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        if not api_key:
            raise ConfigurationError("OpenAI API key not configured")
        self.name = "openai"
        self.model_id = model or DEFAULT_MODEL
        self._rng = rng
        # No SDK-level retries: a failed call falls straight through to the fallback policy
        self._client = AsyncOpenAI(
            api_key=api_key,
            base_url=base_url,
            timeout=timeout,
            max_retries=0,
        )

    async def analyse(self, image: ImagePayload, options: AnalysisOptions) -> ProviderResult:
        logger.info("Using OpenAI Vision API (%s)", self.model_id)

        image_url = {"url": f"data:{image.mime_type};base64,{image.b64()}"}
        if options.detail:
            image_url["detail"] = options.detail

        try:
            response = await self._client.chat.completions.create(
                model=self.model_id,
                max_tokens=options.max_tokens or DEFAULT_MAX_TOKENS,
                messages=[
                    {
                        "role": "user",
                        "content": [
                            {"type": "text", "text": options.prompt or DEFAULT_PROMPT},
                            {"type": "image_url", "image_url": image_url},
                        ],
                    },
                ],
            )
        except openai.APITimeoutError as exc:
            raise BackendError("OpenAI request timed out", provider=self.name) from exc
        except openai.APIStatusError as exc:
            raise BackendError(
                f"OpenAI API error {exc.status_code}: {exc.message}",
                provider=self.name,
                status=exc.status_code,
            ) from exc
        except openai.OpenAIError as exc:
            raise BackendError(f"OpenAI request failed: {exc}", provider=self.name) from exc

        choices = response.choices or []
        text = choices[0].message.content if choices else None
        if not text:
            raise BackendError("OpenAI returned an empty answer", provider=self.name)

        return ProviderResult(
            analysis=parse_openai_response(text, ImageMetadata.from_payload(image), self._rng),
            raw_response=response.model_dump(),
        )

    async def test_connection(self) -> ConnectivityResult:
        try:
            page = await self._client.with_options(timeout=CONNECTION_TEST_TIMEOUT).models.list()
        except openai.OpenAIError as exc:
            logger.warning("OpenAI connection test failed: %s", exc)
            return ConnectivityResult(success=False, mode=self.name, error=str(exc))
        count = len(page.data)
        return ConnectivityResult(
            success=True,
            mode=self.name,
            message=f"{count} models available",
            models=count,
        )
