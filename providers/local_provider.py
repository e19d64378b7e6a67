"""
Local model provider — placeholder until on-device inference exists.
Always delegates to the mock generator.
"""
from __future__ import annotations

import logging

from image_io import ImagePayload
from providers.base import AnalysisOptions, ProviderResult, VisionProvider
from providers.mock_provider import MockProvider

logger = logging.getLogger(__name__)


class LocalProvider(VisionProvider):

    def __init__(self, mock: MockProvider, model_path: str = "./models") -> None:
        self.name = "local"
        self.model_path = model_path
        self._mock = mock

    async def analyse(self, image: ImagePayload, options: AnalysisOptions) -> ProviderResult:
        logger.info("Local AI analysis not yet implemented (model_path=%s); using mock", self.model_path)
        return await self._mock.analyse(image, options)
