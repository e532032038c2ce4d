import json

import numpy as np
import pytest

from video2lottie.core import Frame
from video2lottie.core.errors import EmptyInputError, ValidationError
from video2lottie.core.manifest_writer import write_manifest
from video2lottie.core.spritesheet_builder import compose, resolve_grid, save_spritesheet


def _frames(count, width=4, height=3):
    frames = []
    for idx in range(count):
        pixels = np.zeros((height, width, 4), dtype=np.uint8)
        pixels[...] = (idx * 10, 0, 0, 255)
        frames.append(Frame(id=idx, pixels=pixels, timestamp=idx / 10))
    return frames


@pytest.mark.parametrize("count", [1, 4, 5, 9, 16])
def test_default_grid_fits_all_frames_without_empty_rows(count):
    columns, rows = resolve_grid(count)
    assert columns * rows >= count
    assert (rows - 1) * columns < count
    assert (columns - 1) * rows < count


def test_resolve_grid_prefers_provided_values():
    assert resolve_grid(10, columns=5) == (5, 2)
    assert resolve_grid(10, rows=4) == (3, 4)
    assert resolve_grid(10, columns=2, rows=5) == (2, 5)
    assert resolve_grid(10, columns=4, rows=4) == (4, 4)


def test_explicit_grid_too_small_for_frames_is_rejected():
    with pytest.raises(ValidationError):
        resolve_grid(10, columns=2, rows=2)
    with pytest.raises(ValidationError):
        compose(_frames(10), frame_rate=10.0, columns=2, rows=2)


def test_frames_are_placed_row_major():
    sheet = compose(_frames(5), frame_rate=10.0)
    pixels = np.array(sheet.image)

    assert (sheet.columns, sheet.rows) == (3, 2)
    assert (sheet.sheet_width, sheet.sheet_height) == (12, 6)
    assert pixels[0, 4, 0] == 10  # frame 1, row 0 col 1
    assert pixels[3, 0, 0] == 30  # frame 3, row 1 col 0
    assert pixels[3, 8, 3] == 0  # empty cell stays transparent


def test_metadata_matches_layout(tmp_path):
    sheet = compose(_frames(4), frame_rate=12.0)
    png = save_spritesheet(sheet, tmp_path / "out")
    manifest = write_manifest(sheet, png)

    assert png.suffix == ".png" and png.exists()
    assert json.loads(manifest.read_text()) == {
        "fps": 12.0,
        "totalFrames": 4,
        "columns": 2,
        "rows": 2,
        "frameWidth": 4,
        "frameHeight": 3,
        "sheetWidth": 8,
        "sheetHeight": 6,
    }


def test_empty_input_is_rejected():
    with pytest.raises(EmptyInputError):
        compose([], frame_rate=24.0)
