"""Chroma-key transparency: alpha-out pixels near a target color."""

from __future__ import annotations

import math

import numpy as np

from . import ChromaKeySettings
from .errors import RasterContextError

MAX_DISTANCE = math.sqrt(3 * 255**2)  # ~441.67, opposite corners of the RGB cube
DISTANCE_PER_PERCENT = 4.41


def key_mask(pixels: np.ndarray, settings: ChromaKeySettings) -> np.ndarray:
    """Boolean ``(h, w)`` mask of pixels within tolerance of the target color."""

    if pixels.ndim != 3 or pixels.shape[2] != 4:
        raise RasterContextError(f"Expected an RGBA raster, got shape {pixels.shape}")
    if settings.tolerance_percent >= 100:
        # Every RGB triple lies within the maximum distance.
        return np.ones(pixels.shape[:2], dtype=bool)
    target = np.asarray(settings.target_color[:3], dtype=np.float64)
    diff = pixels[..., :3].astype(np.float64) - target
    distance = np.sqrt(np.einsum("ijk,ijk->ij", diff, diff))
    return distance < settings.tolerance_percent * DISTANCE_PER_PERCENT


def apply_chroma_key(pixels: np.ndarray, settings: ChromaKeySettings) -> np.ndarray:
    """Zero the alpha of keyed pixels in place and return ``pixels``.

    RGB channels are left untouched.
    """

    mask = key_mask(pixels, settings)
    pixels[..., 3][mask] = 0
    return pixels


def keyed_copy(pixels: np.ndarray, settings: ChromaKeySettings) -> np.ndarray:
    return apply_chroma_key(pixels.copy(), settings)
