"""
image_io.py — turns an image reference (file path or in-memory bytes) into an
ImagePayload: raw bytes plus the metadata every provider reports.

Pixel dimensions come from Pillow when it can decode the data; otherwise they
are left as None and the caller decides what to do.
"""
from __future__ import annotations

import asyncio
import base64
import io
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from PIL import Image, UnidentifiedImageError

from errors import InputError

logger = logging.getLogger(__name__)

ImageReference = Union[str, os.PathLike, bytes, bytearray, memoryview]

_MIME_TYPES = {
    "jpg":  "image/jpeg",
    "jpeg": "image/jpeg",
    "png":  "image/png",
    "gif":  "image/gif",
    "webp": "image/webp",
    "bmp":  "image/bmp",
}


@dataclass
class ImagePayload:
    """Bytes of one image plus what we know about it."""
    data: bytes
    format: str                 # lower-case extension, e.g. "jpg", "png"
    size_bytes: int
    path: Optional[str] = None  # None for in-memory buffers
    width: Optional[int] = None
    height: Optional[int] = None

    @property
    def mime_type(self) -> str:
        return _MIME_TYPES.get(self.format, "image/jpeg")

    def b64(self) -> str:
        return base64.b64encode(self.data).decode("ascii")


def is_path_reference(image: ImageReference) -> bool:
    return isinstance(image, (str, os.PathLike))


def sniff_format(data: bytes) -> Optional[str]:
    """Guess the image format from magic bytes."""
    if data[:8] == b"\x89PNG\r\n\x1a\n":
        return "png"
    if data[:3] == b"\xff\xd8\xff":
        return "jpg"
    if data[:4] == b"GIF8":
        return "gif"
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "webp"
    if data[:2] == b"BM":
        return "bmp"
    return None


def probe_dimensions(data: bytes) -> tuple[Optional[int], Optional[int]]:
    """Return (width, height) if Pillow can identify the image, else (None, None)."""
    try:
        with Image.open(io.BytesIO(data)) as img:
            width, height = img.size
    except (UnidentifiedImageError, OSError, ValueError):
        return None, None
    return width, height


def _format_from_path(path: str) -> str:
    # Extension-derived, same as the file name the caller gave us
    return Path(path).suffix[1:].lower() or "jpg"


def _read_file(path: str) -> bytes:
    try:
        return Path(path).read_bytes()
    except OSError as exc:
        raise InputError(f"Cannot read image file {path!r}: {exc}") from exc


async def load_image(image: ImageReference) -> ImagePayload:
    """
    Resolve an image reference into an ImagePayload.
    File reads run in a worker thread so the event loop is never blocked.
    Raises InputError when the reference cannot be read.
    """
    if is_path_reference(image):
        path = os.fspath(image)
        data = await asyncio.to_thread(_read_file, path)
        fmt = _format_from_path(path)
    elif isinstance(image, (bytes, bytearray, memoryview)):
        path = None
        data = bytes(image)
        fmt = sniff_format(data) or "jpg"
    else:
        raise InputError(f"Unsupported image reference type: {type(image).__name__}")

    width, height = probe_dimensions(data)
    logger.debug(
        "Loaded image %s (%d bytes, format=%s, %sx%s)",
        path or "<buffer>", len(data), fmt, width, height,
    )
    return ImagePayload(
        data=data,
        format=fmt,
        size_bytes=len(data),
        path=path,
        width=width,
        height=height,
    )
