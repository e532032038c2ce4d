"""Core data model for the video-to-vector-animation pipeline."""

__all__ = [
    "VideoMetadata",
    "TrimWindow",
    "CropSettings",
    "TimeInterval",
    "ChromaKeySettings",
    "Frame",
    "PaletteColor",
    "BezierVertex",
    "VectorPath",
    "ShapeGroup",
    "TraceOptions",
    "AnimationLayer",
    "AnimationDocument",
    "SpriteSheet",
    "ExportSettings",
    "ProcessingOutcome",
]

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import numpy as np
from PIL import Image

Point = tuple[float, float]


@dataclass
class VideoMetadata:
    """Basic metadata for a source video."""

    width: int
    height: int
    fps: float
    duration_seconds: float


@dataclass(frozen=True)
class TrimWindow:
    """Time range of the source to sample, in seconds.

    An ``end`` of ``None`` (or ``<= 0``) means "until the end of the source".
    """

    start: float = 0.0
    end: Optional[float] = None


@dataclass(frozen=True)
class CropSettings:
    """Optional square crop of landscape sources."""

    enabled: bool = False
    horizontal_offset_percent: float = 50.0


@dataclass(frozen=True)
class TimeInterval:
    """Half-open interval ``[start, end)`` in seconds."""

    start: float
    end: float

    def contains(self, timestamp: float) -> bool:
        return self.start <= timestamp < self.end


@dataclass(frozen=True)
class ChromaKeySettings:
    """Background color removal settings, consumed per call."""

    target_color: tuple[int, int, int] = (0, 255, 0)
    tolerance_percent: float = 10.0


@dataclass
class Frame:
    """One sampled raster frame.

    ``pixels`` is an RGBA ``uint8`` array of shape ``(height, width, 4)``. Only
    ``selected`` may change after capture.
    """

    id: int
    pixels: np.ndarray
    timestamp: float
    selected: bool = True
    generation: int = 0

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])


@dataclass(frozen=True)
class PaletteColor:
    r: int
    g: int
    b: int
    a: int = 255


@dataclass
class BezierVertex:
    """A path vertex with tangents stored relative to ``vertex``."""

    vertex: Point
    in_tangent: Point = (0.0, 0.0)
    out_tangent: Point = (0.0, 0.0)


@dataclass
class VectorPath:
    vertices: list[BezierVertex] = field(default_factory=list)
    closed: bool = True


@dataclass
class ShapeGroup:
    """Closed paths of one traced color region plus its fill color."""

    color: PaletteColor
    paths: list[VectorPath] = field(default_factory=list)
    name: str = ""


@dataclass(frozen=True)
class TraceOptions:
    """Tracer configuration. Read-only, shared by concurrent trace calls."""

    line_threshold: float = 1.0
    quadratic_threshold: float = 1.0
    path_omit: int = 8
    number_of_colors: int = 16
    color_sampling: str = "deterministic"
    min_color_ratio: float = 0.02
    color_quant_cycles: int = 3
    right_angle_enhance: bool = True
    seed: int = 0


@dataclass
class AnimationLayer:
    """One shape layer, visible during ``[in_point, out_point)`` only."""

    index: int
    source_frame: int
    groups: list[ShapeGroup]
    in_point: int
    out_point: int
    start_time: int


@dataclass(frozen=True)
class AnimationDocument:
    """Layered, time-indexed vector animation. Layers are stored top-first."""

    frame_rate: float
    frame_count: int
    width: int
    height: int
    layers: tuple[AnimationLayer, ...]
    version: str = "5.5.7"
    name: str = "video2lottie export"


@dataclass
class SpriteSheet:
    """Frames packed row-major into a raster grid."""

    image: Image.Image
    columns: int
    rows: int
    frame_width: int
    frame_height: int
    frame_count: int
    frame_rate: float

    @property
    def sheet_width(self) -> int:
        return self.columns * self.frame_width

    @property
    def sheet_height(self) -> int:
        return self.rows * self.frame_height

    def metadata(self) -> dict[str, Any]:
        return {
            "fps": self.frame_rate,
            "totalFrames": self.frame_count,
            "columns": self.columns,
            "rows": self.rows,
            "frameWidth": self.frame_width,
            "frameHeight": self.frame_height,
            "sheetWidth": self.sheet_width,
            "sheetHeight": self.sheet_height,
        }


@dataclass
class ExportSettings:
    """User-configurable settings for one export run."""

    video_path: Path
    output_path: Path
    frame_rate: float = 24.0
    trim: TrimWindow = field(default_factory=TrimWindow)
    crop: CropSettings = field(default_factory=CropSettings)
    chroma_key: Optional[ChromaKeySettings] = None
    trace_options: TraceOptions = field(default_factory=TraceOptions)
    columns: Optional[int] = None
    rows: Optional[int] = None
    max_frames: Optional[int] = None
    remote_url: Optional[str] = None
    workers: Optional[int] = None
    executor: str = "process"
    preview_dir: Optional[Path] = None


@dataclass
class ProcessingOutcome:
    """Result paths produced by an export run."""

    output_path: Path
    manifest_path: Optional[Path]
    frame_count: int
    width: int
    height: int
