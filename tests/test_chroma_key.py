import numpy as np
import pytest

from video2lottie.core import ChromaKeySettings
from video2lottie.core.chroma_key import apply_chroma_key, key_mask, keyed_copy
from video2lottie.core.errors import RasterContextError


def _row(*colors):
    return np.array([[list(c) + [255] for c in colors]], dtype=np.uint8)


def test_pixels_inside_tolerance_lose_alpha_only():
    pixels = _row((0, 255, 0), (44, 255, 0), (45, 255, 0), (255, 0, 255))
    rgb_before = pixels[..., :3].copy()

    apply_chroma_key(pixels, ChromaKeySettings(target_color=(0, 255, 0), tolerance_percent=10))

    # Threshold is 10 * 4.41 = 44.1.
    assert pixels[0, :, 3].tolist() == [0, 0, 255, 255]
    assert np.array_equal(pixels[..., :3], rgb_before)


def test_zero_tolerance_keys_nothing():
    pixels = _row((0, 255, 0), (0, 254, 0))
    mask = key_mask(pixels, ChromaKeySettings(target_color=(0, 255, 0), tolerance_percent=0))
    assert not mask.any()


def test_full_tolerance_keys_everything():
    pixels = _row((0, 0, 0), (255, 255, 255), (255, 0, 255))
    mask = key_mask(pixels, ChromaKeySettings(target_color=(0, 255, 0), tolerance_percent=100))
    assert mask.all()


def test_opposite_corner_survives_just_below_full_tolerance():
    pixels = _row((255, 255, 255), (0, 0, 0))
    mask = key_mask(pixels, ChromaKeySettings(target_color=(0, 0, 0), tolerance_percent=99.99))
    assert mask.tolist() == [[False, True]]


def test_already_transparent_pixels_stay_transparent():
    pixels = _row((200, 10, 10))
    pixels[0, 0, 3] = 0
    apply_chroma_key(pixels, ChromaKeySettings(target_color=(0, 255, 0), tolerance_percent=5))
    assert pixels[0, 0, 3] == 0


def test_keyed_copy_leaves_source_untouched():
    pixels = _row((0, 255, 0))
    keyed = keyed_copy(pixels, ChromaKeySettings())
    assert keyed[0, 0, 3] == 0
    assert pixels[0, 0, 3] == 255


def test_rgb_input_is_rejected():
    with pytest.raises(RasterContextError):
        key_mask(np.zeros((2, 2, 3), dtype=np.uint8), ChromaKeySettings())
