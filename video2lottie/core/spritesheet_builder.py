"""Sprite sheet composition using Pillow."""

from __future__ import annotations

import io
import logging
import math
from pathlib import Path
from typing import Sequence

from PIL import Image

from . import Frame, SpriteSheet
from .errors import EmptyInputError, ValidationError
from ..utils import file_tools

logger = logging.getLogger(__name__)


def resolve_grid(frame_count: int, columns: int | None = None, rows: int | None = None) -> tuple[int, int]:
    """Compute grid layout; prefer provided values.

    An explicit grid that cannot hold every frame is rejected.
    """

    if columns and rows:
        if columns * rows < frame_count:
            raise ValidationError(f"A {columns}x{rows} grid cannot hold {frame_count} frames")
        return columns, rows
    if columns:
        rows = math.ceil(frame_count / columns)
        return columns, rows
    if rows:
        columns = math.ceil(frame_count / rows)
        return columns, rows

    # Square-ish fallback
    columns = math.ceil(math.sqrt(frame_count))
    rows = math.ceil(frame_count / columns)
    return columns, rows


def compose(
    frames: Sequence[Frame],
    frame_rate: float,
    columns: int | None = None,
    rows: int | None = None,
) -> SpriteSheet:
    """Blit frames row-major into a grid at native resolution.

    All frames must share the size of the first one.
    """

    if not frames:
        raise EmptyInputError("No frames to compose into a sprite sheet")

    frame_count = len(frames)
    columns, rows = resolve_grid(frame_count, columns, rows)
    frame_width, frame_height = frames[0].width, frames[0].height
    sheet = Image.new("RGBA", (columns * frame_width, rows * frame_height), (0, 0, 0, 0))

    for idx, frame in enumerate(frames):
        col = idx % columns
        row = idx // columns
        sheet.paste(Image.fromarray(frame.pixels), (col * frame_width, row * frame_height))

    logger.info("Composed %s frames into a %sx%s grid", frame_count, columns, rows)
    return SpriteSheet(
        image=sheet,
        columns=columns,
        rows=rows,
        frame_width=frame_width,
        frame_height=frame_height,
        frame_count=frame_count,
        frame_rate=frame_rate,
    )


def encode_png(sheet: SpriteSheet) -> bytes:
    buffer = io.BytesIO()
    sheet.image.save(buffer, format="PNG")
    return buffer.getvalue()


def save_spritesheet(sheet: SpriteSheet, output_path: Path) -> Path:
    """Persist the sheet as PNG without clobbering a previous file on failure."""

    path = output_path.with_suffix(".png")
    file_tools.atomic_write_bytes(path, encode_png(sheet))
    logger.info("Wrote spritesheet to %s", path)
    return path
