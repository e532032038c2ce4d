"""Video loading, metadata discovery and the seek/capture source used by sampling."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import numpy as np

from . import VideoMetadata
from .errors import InvalidVideoError, ProcessingError, SourceUnavailable
from ..utils import image_tools, validators

logger = logging.getLogger(__name__)


class VideoSource:
    """Decoder with a single current position.

    ``seek`` blocks until the decoder has settled on the requested timestamp;
    ``read_current_frame`` then returns the raster at that position. Callers must not
    interleave seeks.
    """

    width: int
    height: int
    duration: float
    fps: float = 0.0

    def seek(self, timestamp: float) -> None:
        raise NotImplementedError

    def read_current_frame(self) -> np.ndarray:
        raise NotImplementedError

    def metadata(self) -> VideoMetadata:
        return VideoMetadata(width=self.width, height=self.height, fps=self.fps, duration_seconds=self.duration)

    def close(self) -> None:
        pass

    def __enter__(self):
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


class MoviePyVideoSource(VideoSource):
    """``VideoSource`` backed by a moviepy ``VideoFileClip``."""

    def __init__(self, video_path: Path):
        validated_path = validators.validate_video_path(video_path)
        _ensure_ffmpeg_available()
        clip_class = _resolve_video_file_clip()
        try:
            self._clip = clip_class(str(validated_path), audio=False)
        except Exception as exc:  # pragma: no cover - backend dependent
            raise InvalidVideoError(validated_path, reason=f"Could not open video: {exc}") from exc
        self.path = validated_path
        self.width, self.height = (int(v) for v in self._clip.size)
        self.fps = float(getattr(self._clip, "fps", 24.0) or 24.0)
        self.duration = float(getattr(self._clip, "duration", 0.0) or 0.0)
        self._current: Optional[np.ndarray] = None

    def seek(self, timestamp: float) -> None:
        # Decoding is synchronous, so the position has settled once get_frame returns.
        try:
            self._current = self._clip.get_frame(timestamp)
        except Exception as exc:
            raise SourceUnavailable(f"Failed to seek {self.path} to {timestamp:.3f}s: {exc}") from exc

    def read_current_frame(self) -> np.ndarray:
        if self._current is None:
            raise SourceUnavailable("read_current_frame called before seek")
        return image_tools.rgb_to_rgba(self._current)

    def close(self) -> None:
        try:
            self._clip.close()
        except Exception as exc:  # pragma: no cover - moviepy internals
            logger.debug("Closing clip for %s failed: %s", self.path, exc)


def open_video(video_path: Path) -> MoviePyVideoSource:
    return MoviePyVideoSource(video_path)


def load_metadata(video_path: Path) -> VideoMetadata:
    """Return basic metadata for the selected video."""

    with open_video(video_path) as source:
        metadata = source.metadata()

    logger.debug(
        "Loaded metadata for %s -> %sx%s @ %sfps, %ss",
        video_path,
        metadata.width,
        metadata.height,
        metadata.fps,
        metadata.duration_seconds,
    )
    return metadata


def _ensure_ffmpeg_available() -> None:
    """Raise a friendly error if ffmpeg is missing."""

    try:
        from moviepy.config import FFMPEG_BINARY  # type: ignore
    except ModuleNotFoundError as exc:  # pragma: no cover
        raise ProcessingError("moviepy is not installed. Run pip install video2lottie.") from exc

    if not FFMPEG_BINARY:
        raise SourceUnavailable("ffmpeg not found. Install ffmpeg and ensure it is on PATH.")


def _resolve_video_file_clip():
    """Import VideoFileClip from supported moviepy locations."""

    try:
        from moviepy.editor import VideoFileClip  # type: ignore
        return VideoFileClip
    except ModuleNotFoundError:
        try:
            from moviepy.video.io.VideoFileClip import VideoFileClip  # type: ignore
            return VideoFileClip
        except ModuleNotFoundError as exc:  # pragma: no cover
            raise ProcessingError("moviepy is not installed. Run pip install video2lottie.") from exc
