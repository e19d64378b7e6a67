"""
Shared pytest fixtures.

Images are written with Pillow into a per-test tmp directory, so no test
depends on files outside the repo. The analyzer fixture runs in mock mode with a
seeded RNG; nothing here touches the network.
"""
from __future__ import annotations

import io
import random
import sys
from pathlib import Path

import pytest
from PIL import Image

# ── Make the project root importable without installing the package ────────────
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from config import AnalysisMode, AnalyzerConfig  # noqa: E402
from image_analyzer import ImageAnalyzer  # noqa: E402


def make_image_bytes(fmt: str = "PNG", size: tuple[int, int] = (64, 48),
                     color: tuple[int, int, int] = (200, 100, 50)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", size, color).save(buf, fmt)
    return buf.getvalue()


@pytest.fixture
def cat_jpg(tmp_path) -> Path:
    """A real 64×48 JPEG on disk."""
    path = tmp_path / "cat.jpg"
    path.write_bytes(make_image_bytes("JPEG"))
    return path


@pytest.fixture
def png_bytes() -> bytes:
    return make_image_bytes("PNG")


@pytest.fixture
def analyzer() -> ImageAnalyzer:
    return ImageAnalyzer(AnalyzerConfig(mode=AnalysisMode.MOCK), rng=random.Random(1234))


@pytest.fixture
def make_image():
    """Factory: make_image("GIF", size=(10, 10)) → encoded bytes."""
    return make_image_bytes
