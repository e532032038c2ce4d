"""Sidecar metadata for sprite sheets."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Optional

from . import SpriteSheet
from ..utils import file_tools

logger = logging.getLogger(__name__)


def write_manifest(sheet: SpriteSheet, output_path: Path, manifest_path: Optional[Path] = None) -> Path:
    """Write ``{fps, totalFrames, columns, rows, frameWidth, frameHeight, sheetWidth, sheetHeight}``."""

    path = (manifest_path or output_path).with_suffix(".json")
    file_tools.atomic_write_text(path, json.dumps(sheet.metadata(), indent=2))
    logger.info("Wrote manifest to %s", path)
    return path
