"""Export orchestration: sample -> (chroma key) -> trace -> assemble, or sample -> sprite sheet."""

from __future__ import annotations

import logging
from contextlib import ExitStack
from typing import Optional, Sequence

import numpy as np

from . import AnimationDocument, ChromaKeySettings, ExportSettings, Frame, ProcessingOutcome, ShapeGroup
from . import chroma_key, manifest_writer, spritesheet_builder, svg_preview, timeline, video_loader
from .errors import EmptyInputError
from .frame_sampler import FrameSampler
from .remote import RemoteTracingClient
from .session import SessionToken
from .vectorizer import VectorizationPool
from .. import config
from ..utils import validators

logger = logging.getLogger(__name__)


def validate_settings(settings: ExportSettings) -> None:
    validators.validate_frame_rate(settings.frame_rate)
    validators.validate_time_range(settings.trim.start, settings.trim.end)
    validators.validate_trace_options(settings.trace_options)
    validators.validate_grid(settings.columns, settings.rows)
    if settings.chroma_key is not None:
        validators.validate_tolerance_percent(settings.chroma_key.tolerance_percent)


def prepare_rasters(frames: Sequence[Frame], key: Optional[ChromaKeySettings]) -> list[np.ndarray]:
    """Per-frame rasters for tracing; keyed copies leave the sampled frames untouched."""

    if key is None:
        return [frame.pixels for frame in frames]
    return [chroma_key.keyed_copy(frame.pixels, key) for frame in frames]


def trace_rasters(
    rasters: Sequence[np.ndarray],
    settings: ExportSettings,
    token: SessionToken | None = None,
) -> list[list[ShapeGroup]]:
    if settings.remote_url:
        results: list[list[ShapeGroup]] = []
        with RemoteTracingClient(settings.remote_url, timeout=config.REMOTE_TIMEOUT_SECONDS) as client:
            for index, raster in enumerate(rasters):
                if token is not None:
                    token.ensure_current()
                results.append(client.trace_frame(raster))
                logger.debug("Remote traced frame %s", index)
        return results
    pool = VectorizationPool(settings.trace_options, max_workers=settings.workers, executor=settings.executor)
    return pool.trace_frames(rasters, token=token)


def render_animation(
    frames: Sequence[Frame],
    settings: ExportSettings,
    token: SessionToken | None = None,
) -> AnimationDocument:
    """Trace the selected frames and assemble them; no files are written except previews."""

    selected = [frame for frame in frames if frame.selected]
    if not selected:
        raise EmptyInputError("No selected frames to vectorize")
    width, height = selected[0].width, selected[0].height

    rasters = prepare_rasters(selected, settings.chroma_key)
    shapes = trace_rasters(rasters, settings, token=token)
    if token is not None:
        token.ensure_current()

    document = timeline.assemble(
        [(frame.id, groups) for frame, groups in zip(selected, shapes)],
        settings.frame_rate,
        width,
        height,
    )

    if settings.preview_dir is not None:
        for frame, groups in zip(selected, shapes):
            svg_preview.write_preview(groups, width, height, settings.preview_dir / f"frame_{frame.id:04d}.svg")
    return document


def sample(settings: ExportSettings, source: video_loader.VideoSource) -> FrameSampler:
    validators.validate_crop(source.metadata(), settings.crop)
    sampler = FrameSampler(
        source,
        rate=settings.frame_rate,
        trim=settings.trim,
        crop=settings.crop,
        max_frames=settings.max_frames,
    )
    sampler.generate()
    return sampler


def export_lottie(
    settings: ExportSettings,
    source: video_loader.VideoSource | None = None,
    sampler: FrameSampler | None = None,
) -> ProcessingOutcome:
    """Run the full vector export and write the animation JSON."""

    validate_settings(settings)
    with ExitStack() as stack:
        if sampler is None:
            if source is None:
                source = stack.enter_context(video_loader.open_video(settings.video_path))
            sampler = sample(settings, source)
        document = render_animation(sampler.frames, settings, token=sampler.token)
    path = timeline.write_animation(document, settings.output_path)
    return ProcessingOutcome(
        output_path=path,
        manifest_path=None,
        frame_count=document.frame_count,
        width=document.width,
        height=document.height,
    )


def export_spritesheet(
    settings: ExportSettings,
    source: video_loader.VideoSource | None = None,
    sampler: FrameSampler | None = None,
) -> ProcessingOutcome:
    """Compose the selected frames into a sprite sheet plus sidecar metadata."""

    validate_settings(settings)
    with ExitStack() as stack:
        if sampler is None:
            if source is None:
                source = stack.enter_context(video_loader.open_video(settings.video_path))
            sampler = sample(settings, source)
        selected = sampler.selected_frames
        if not selected:
            raise EmptyInputError("No selected frames to compose")
        rasters = prepare_rasters(selected, settings.chroma_key)

    if settings.remote_url:
        with RemoteTracingClient(settings.remote_url, timeout=config.REMOTE_TIMEOUT_SECONDS) as client:
            sheet = client.compose_sprite_sheet(rasters, settings.frame_rate)
    else:
        keyed = [
            Frame(id=frame.id, pixels=raster, timestamp=frame.timestamp, generation=frame.generation)
            for frame, raster in zip(selected, rasters)
        ]
        sheet = spritesheet_builder.compose(keyed, settings.frame_rate, settings.columns, settings.rows)

    sheet_path = spritesheet_builder.save_spritesheet(sheet, settings.output_path)
    manifest_path = manifest_writer.write_manifest(sheet, settings.output_path)
    return ProcessingOutcome(
        output_path=sheet_path,
        manifest_path=manifest_path,
        frame_count=sheet.frame_count,
        width=sheet.sheet_width,
        height=sheet.sheet_height,
    )
