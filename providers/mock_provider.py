"""
Mock vision provider — synthesises a plausible analysis without any network call.

Used directly in mock mode, by the local placeholder, and as the fallback
whenever a real backend fails.
"""
from __future__ import annotations

import logging
import random
from typing import Optional

from image_io import ImagePayload
from providers.base import (
    SENTIMENTS,
    AnalysisOptions, ImageMetadata, NormalizedAnalysis, ProviderResult, VisionProvider,
)

logger = logging.getLogger(__name__)

OBJECT_LISTS: tuple[tuple[str, ...], ...] = (
    ("person", "computer", "desk", "chair", "window"),
    ("car", "road", "tree", "building", "sky"),
    ("dog", "cat", "grass", "house", "fence"),
    ("food", "plate", "table", "utensils", "drink"),
    ("mountain", "lake", "forest", "clouds", "sun"),
)

COLOR_PALETTES: tuple[tuple[str, ...], ...] = (
    ("#2d3748", "#4a5568", "#718096", "#a0aec0", "#cbd5e0"),
    ("#667eea", "#764ba2", "#f687b3", "#fed7e2", "#fff5f7"),
    ("#38a169", "#48bb78", "#68d391", "#9ae6b4", "#c6f6d5"),
    ("#dd6b20", "#ed8936", "#f6ad55", "#fbd38d", "#feebc8"),
    ("#3182ce", "#4299e1", "#63b3ed", "#90cdf4", "#bee3f8"),
)

SAMPLE_DESCRIPTIONS: tuple[str, ...] = (
    "A person working at a computer in a modern office environment.",
    "Beautiful landscape with mountains and a lake under clear skies.",
    "Delicious looking food arranged beautifully on a plate.",
    "Urban cityscape with tall buildings and busy streets.",
    "Cute pets playing together in a green garden.",
)

MIN_CONFIDENCE = 0.70
MAX_CONFIDENCE = 1.00


class MockProvider(VisionProvider):

    def __init__(self, rng: Optional[random.Random] = None) -> None:
        self.name = "mock"
        self._rng = rng or random.Random()

    async def analyse(self, image: ImagePayload, options: AnalysisOptions) -> ProviderResult:
        return ProviderResult(analysis=self.generate(image))

    def generate(self, image: ImagePayload) -> NormalizedAnalysis:
        logger.info("Using mock AI analysis")
        rng = self._rng
        # Undecodable images get dimensions in the same range the generator always used
        width = image.width if image.width is not None else rng.randint(800, 1799)
        height = image.height if image.height is not None else rng.randint(600, 1399)
        return NormalizedAnalysis(
            objects=list(rng.choice(OBJECT_LISTS)),
            colors=list(rng.choice(COLOR_PALETTES)),
            sentiment=rng.choice(SENTIMENTS),
            confidence=round(rng.uniform(MIN_CONFIDENCE, MAX_CONFIDENCE), 2),
            text=rng.choice(SAMPLE_DESCRIPTIONS),
            metadata=ImageMetadata(
                width=width,
                height=height,
                format=image.format,
                size_bytes=image.size_bytes,
            ),
        )
