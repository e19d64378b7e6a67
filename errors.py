"""
errors.py — exception hierarchy shared by the analyzer and every provider.

  AnalysisError
    ├── ConfigurationError   missing credential for the selected mode
    ├── BackendError         non-2xx status, malformed body, network failure, timeout
    └── InputError           image reference cannot be read

Providers translate SDK / aiohttp exceptions into these with ``raise ... from exc``.
ImageAnalyzer is the only place that catches them.
"""
from __future__ import annotations

from typing import Optional


class AnalysisError(Exception):
    """Base class for every error raised while analysing an image."""


class ConfigurationError(AnalysisError):
    """The selected mode is missing a required setting (usually an API key)."""


class BackendError(AnalysisError):
    """A provider call failed or returned something we cannot use."""

    def __init__(self, message: str, provider: str = "", status: Optional[int] = None) -> None:
        super().__init__(message)
        self.provider = provider
        self.status = status


class InputError(AnalysisError):
    """The image reference could not be read."""
