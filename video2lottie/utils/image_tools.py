"""Conversions between encoded images, Pillow images and RGBA arrays."""

from __future__ import annotations

import io
import logging

import numpy as np
from PIL import Image, UnidentifiedImageError

from ..core.errors import RasterContextError

logger = logging.getLogger(__name__)


def to_rgba_array(image: Image.Image) -> np.ndarray:
    """Return a writable ``(h, w, 4)`` uint8 array for the image."""

    return np.array(image.convert("RGBA"), dtype=np.uint8)


def rgb_to_rgba(array: np.ndarray) -> np.ndarray:
    """Add an opaque alpha channel to an RGB(A) frame from a decoder."""

    if array.ndim != 3 or array.shape[2] not in (3, 4):
        raise RasterContextError(f"Unexpected frame shape {array.shape}")
    array = np.asarray(array, dtype=np.uint8)
    if array.shape[2] == 4:
        return array.copy()
    alpha = np.full(array.shape[:2] + (1,), 255, dtype=np.uint8)
    return np.concatenate([array, alpha], axis=2)


def decode_image_bytes(data: bytes) -> np.ndarray:
    """Decode an encoded image (PNG, JPEG, ...) into an RGBA array."""

    try:
        with Image.open(io.BytesIO(data)) as img:
            return to_rgba_array(img)
    except (UnidentifiedImageError, OSError) as exc:
        raise RasterContextError(f"Could not decode image: {exc}") from exc


def encode_png(pixels: np.ndarray) -> bytes:
    """Encode an RGBA array as PNG bytes."""

    if pixels.ndim != 3 or pixels.shape[2] != 4:
        raise RasterContextError(f"Expected an RGBA raster, got shape {pixels.shape}")
    buffer = io.BytesIO()
    Image.fromarray(np.ascontiguousarray(pixels, dtype=np.uint8)).save(buffer, format="PNG")
    return buffer.getvalue()
