"""Validation helpers for user inputs."""

from __future__ import annotations

import re
from pathlib import Path
from typing import Optional

from ..core import CropSettings, TraceOptions, VideoMetadata
from ..core.errors import InvalidVideoError, ValidationError


ALLOWED_VIDEO_EXTENSIONS = {".mp4", ".mov", ".avi", ".mkv", ".webm"}
COLOR_SAMPLING_MODES = {"generated", "random", "deterministic"}
_HEX_COLOR = re.compile(r"^#?([0-9a-fA-F]{2})([0-9a-fA-F]{2})([0-9a-fA-F]{2})$")


def validate_video_path(path: Path) -> Path:
    """Ensure the video path exists and appears to be a supported format."""

    if not path:
        raise InvalidVideoError(Path("<unset>"), reason="No path provided")
    if not path.exists():
        raise InvalidVideoError(path, reason="File not found")
    if path.suffix.lower() not in ALLOWED_VIDEO_EXTENSIONS:
        raise InvalidVideoError(path, reason="Unsupported format")
    return path


def validate_frame_rate(rate: float) -> float:
    if rate is None or rate <= 0:
        raise ValidationError("Frame rate must be greater than zero")
    return float(rate)


def validate_time_range(start: Optional[float], end: Optional[float]) -> None:
    """Ensure start/end make sense."""

    if start is not None and start < 0:
        raise ValidationError("Start time must be zero or greater")
    if start is not None and end is not None and end > 0 and end <= start:
        raise ValidationError("End time must be greater than start time")


def validate_grid(columns: Optional[int], rows: Optional[int]) -> None:
    """Ensure grid dimensions are positive if provided."""

    if columns is not None and columns <= 0:
        raise ValidationError("Columns must be greater than zero")
    if rows is not None and rows <= 0:
        raise ValidationError("Rows must be greater than zero")


def validate_tolerance_percent(value: float) -> float:
    if value < 0 or value > 100:
        raise ValidationError("Tolerance must be between 0 and 100 percent")
    return float(value)


def validate_crop(metadata: VideoMetadata, crop: CropSettings) -> None:
    """Reject square cropping of portrait sources.

    Only landscape sources are cropped; a square source is already square and passes.
    """

    if not crop.enabled:
        return
    if not 0 <= crop.horizontal_offset_percent <= 100:
        raise ValidationError("Crop offset must be between 0 and 100 percent")
    if metadata.width < metadata.height:
        raise ValidationError(
            f"Square crop is only supported for landscape sources (got {metadata.width}x{metadata.height})"
        )


def validate_trace_options(options: TraceOptions) -> TraceOptions:
    if options.number_of_colors < 2:
        raise ValidationError("Number of colors must be at least 2")
    if options.line_threshold < 0 or options.quadratic_threshold < 0:
        raise ValidationError("Error thresholds must be zero or greater")
    if options.path_omit < 0:
        raise ValidationError("Path omit must be zero or greater")
    if options.color_quant_cycles < 1:
        raise ValidationError("Color quantization needs at least one cycle")
    if options.color_sampling not in COLOR_SAMPLING_MODES:
        raise ValidationError(f"Color sampling must be one of {sorted(COLOR_SAMPLING_MODES)}")
    return options


def parse_color_tuple(value: str | None) -> Optional[tuple[int, int, int, int]]:
    """Parse an RGBA color string like '255,0,0,255'."""

    if value is None or value.strip() == "":
        return None
    parts = [p.strip() for p in value.split(",")]
    if len(parts) not in (3, 4):
        raise ValidationError("Color must be R,G,B[,A]")
    try:
        numbers = [int(p) for p in parts]
    except ValueError as exc:
        raise ValidationError("Color must be numeric R,G,B[,A]") from exc
    if len(numbers) == 3:
        numbers.append(255)
    if any(n < 0 or n > 255 for n in numbers):
        raise ValidationError("Color values must be between 0 and 255")
    return tuple(numbers)  # type: ignore


def parse_hex_color(value: str) -> tuple[int, int, int]:
    """Parse '#RRGGBB' (leading '#' optional)."""

    match = _HEX_COLOR.match(value.strip())
    if not match:
        raise ValidationError(f"Invalid hex color: {value!r}")
    return tuple(int(part, 16) for part in match.groups())  # type: ignore


def parse_key_color(value: str) -> tuple[int, int, int]:
    """Accept either '#RRGGBB' or 'R,G,B' and return an RGB triple."""

    if "," in value:
        rgba = parse_color_tuple(value)
        if rgba is None:
            raise ValidationError("Key color must not be empty")
        return rgba[:3]
    return parse_hex_color(value)
