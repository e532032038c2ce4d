"""Frame sampling from a seekable video source under trim, crop and rate constraints."""

from __future__ import annotations

import logging
import math
from typing import Iterable, Iterator, Optional, Sequence

import numpy as np

from . import CropSettings, Frame, TimeInterval, TrimWindow
from .errors import RasterContextError, SourceUnavailable
from .session import SessionCounter, SessionToken
from .video_loader import VideoSource

logger = logging.getLogger(__name__)


def resolve_trim(trim: TrimWindow, duration: float) -> tuple[float, float]:
    """Clamp the trim window to the source duration."""

    start = max(0.0, trim.start or 0.0)
    end = trim.end if trim.end is not None and trim.end > 0 else duration
    if duration > 0:
        end = min(end, duration)
    return start, end


def compute_sample_times(
    trim: TrimWindow,
    rate: float,
    duration: float,
    max_frames: int | None = None,
) -> list[float]:
    """Return the capture timestamps ``start, start + 1/rate, ...`` inside the trim window."""

    if rate <= 0:
        raise ValueError("rate must be greater than zero")
    start, end = resolve_trim(trim, duration)
    interval = 1.0 / rate
    # Rounded so that float noise such as 2.3 * 10 == 22.999... does not drop a frame.
    total_frames = math.floor(round((end - start) * rate, 9))

    times: list[float] = []
    frame_id = 0
    current = start
    while current < end and frame_id < total_frames:
        times.append(current)
        frame_id += 1
        current = start + frame_id * interval

    if max_frames is not None and max_frames > 0 and len(times) > max_frames:
        logger.info("Capping frames to %s for memory safety (requested %s)", max_frames, len(times))
        times = times[:max_frames]
    return times


def resolve_crop_box(width: int, height: int, crop: CropSettings | None) -> tuple[int, int, int, int] | None:
    """Return ``(x, y, size, size)`` for a square crop, or ``None`` for the full frame.

    Only sources wider than tall are cropped; there is no rule for portrait sources.
    """

    if crop is None or not crop.enabled:
        return None
    if width <= height:
        if width < height:
            logger.warning("Square crop ignored for portrait source %sx%s", width, height)
        return None
    square_size = height
    offset_percent = min(max(crop.horizontal_offset_percent, 0.0), 100.0)
    offset_x = int(round((width - square_size) * (offset_percent / 100)))
    return offset_x, 0, square_size, square_size


def exclusion_intervals(frames: Iterable[Frame], interval: float) -> list[TimeInterval]:
    """Time ranges covered by deselected frames, ``[timestamp, timestamp + interval)``."""

    return [TimeInterval(f.timestamp, f.timestamp + interval) for f in frames if not f.selected]


def is_excluded(timestamp: float, intervals: Sequence[TimeInterval]) -> bool:
    return any(interval.contains(timestamp) for interval in intervals)


def _capture(source: VideoSource, crop_box: tuple[int, int, int, int] | None) -> np.ndarray:
    raster = source.read_current_frame()
    if raster.ndim != 3 or raster.shape[2] != 4:
        raise RasterContextError(f"Source returned a raster of shape {raster.shape}, expected RGBA")
    if crop_box is None:
        return np.ascontiguousarray(raster, dtype=np.uint8)
    x, y, w, h = crop_box
    region = raster[y : y + h, x : x + w]
    if region.shape[0] != h or region.shape[1] != w:
        raise RasterContextError(f"Crop box {crop_box} does not fit raster of shape {raster.shape}")
    return np.ascontiguousarray(region, dtype=np.uint8)


def iter_frames(
    source: VideoSource,
    rate: float,
    trim: TrimWindow | None = None,
    crop: CropSettings | None = None,
    prior_exclusions: Sequence[TimeInterval] | None = None,
    token: SessionToken | None = None,
    max_frames: int | None = None,
) -> Iterator[Frame]:
    """Seek and capture frames one by one in timestamp order.

    Captures are strictly sequential because the source has one current position.
    Iteration stops silently when ``token`` is replaced by a newer session.
    """

    trim = trim or TrimWindow()
    if source.width <= 0 or source.height <= 0:
        raise RasterContextError(f"Cannot capture from a {source.width}x{source.height} source")
    times = compute_sample_times(trim, rate, source.duration, max_frames=max_frames)
    crop_box = resolve_crop_box(source.width, source.height, crop)
    exclusions = list(prior_exclusions or [])
    half_interval = 0.5 / rate
    generation = token.generation if token else 0

    logger.info("Sampling %s frames at %sfps (crop=%s)", len(times), rate, crop_box)
    for frame_id, timestamp in enumerate(times):
        if token is not None and not token.is_current:
            logger.info("Sampling session %s superseded after %s frames", generation, frame_id)
            return
        try:
            source.seek(timestamp)
        except SourceUnavailable:
            raise
        except Exception as exc:
            raise SourceUnavailable(f"Seek to {timestamp:.3f}s failed: {exc}") from exc
        pixels = _capture(source, crop_box)
        selected = not is_excluded(timestamp + half_interval, exclusions)
        logger.debug("Captured frame %s at %.3fs (selected=%s)", frame_id, timestamp, selected)
        yield Frame(id=frame_id, pixels=pixels, timestamp=timestamp, selected=selected, generation=generation)


class FrameSampler:
    """Owns the frame sequence of one sampling session at a time.

    Starting a new session (``generate`` or ``set_rate``) discards the previous
    sequence wholesale and makes its token stale.
    """

    def __init__(
        self,
        source: VideoSource,
        rate: float = 24.0,
        trim: TrimWindow | None = None,
        crop: CropSettings | None = None,
        max_frames: int | None = None,
    ):
        self.source = source
        self.rate = rate
        self.trim = trim or TrimWindow()
        self.crop = crop
        self.max_frames = max_frames
        self.sessions = SessionCounter()
        self.token: Optional[SessionToken] = None
        self.frames: list[Frame] = []

    @property
    def interval(self) -> float:
        return 1.0 / self.rate

    @property
    def selected_frames(self) -> list[Frame]:
        return [frame for frame in self.frames if frame.selected]

    def generate(self, prior_exclusions: Sequence[TimeInterval] | None = None) -> list[Frame]:
        token = self.sessions.begin()
        self.token = token
        self.frames = []
        frames: list[Frame] = []
        for frame in iter_frames(
            self.source,
            self.rate,
            self.trim,
            self.crop,
            prior_exclusions=prior_exclusions,
            token=token,
            max_frames=self.max_frames,
        ):
            frames.append(frame)
        if token.is_current:
            self.frames = frames
        return self.frames

    def set_rate(self, rate: float) -> list[Frame]:
        """Re-sample at ``rate``, carrying deselected time ranges over to the new frames."""

        if rate <= 0:
            raise ValueError("rate must be greater than zero")
        exclusions = exclusion_intervals(self.frames, self.interval)
        self.rate = rate
        return self.generate(prior_exclusions=exclusions)

    def invalidate(self) -> None:
        """Make any in-flight work for the current session stale."""

        self.sessions.begin()
        self.token = None
        self.frames = []

    def toggle_frame(self, frame_id: int) -> None:
        for frame in self.frames:
            if frame.id == frame_id:
                frame.selected = not frame.selected
                return

    def select_all(self) -> None:
        for frame in self.frames:
            frame.selected = True

    def select_none(self) -> None:
        for frame in self.frames:
            frame.selected = False
