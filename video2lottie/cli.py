"""Command-line entry point for video-to-vector-animation workflows."""

import argparse
import logging
import sys
from pathlib import Path

from . import config
from .core import ChromaKeySettings, CropSettings, ExportSettings, TraceOptions, TrimWindow, pipeline, video_loader
from .core.errors import ProcessingError, ValidationError
from .core.frame_sampler import compute_sample_times
from .main import configure_logging
from .utils import validators

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="video2lottie",
        description="Convert a source video into a vector (Lottie) animation or a sprite sheet.",
    )
    parser.add_argument("input", type=Path, help="Path to source video clip")
    parser.add_argument("output", type=Path, help="Destination path (.json animation or .png sprite sheet)")
    parser.add_argument(
        "--format",
        choices=("lottie", "sprites"),
        default="lottie",
        help="Export a vector animation or a raster sprite sheet (default: lottie)",
    )
    parser.add_argument(
        "--fps",
        type=float,
        default=24.0,
        help="Sampling rate in frames per second (default: 24)",
    )
    parser.add_argument("--start", type=float, default=0.0, help="Trim start in seconds")
    parser.add_argument("--end", type=float, help="Trim end in seconds (default: clip end)")
    parser.add_argument("--crop", action="store_true", help="Crop a square from landscape sources")
    parser.add_argument(
        "--crop-offset",
        type=float,
        default=50.0,
        help="Horizontal crop position in percent, 0 = left, 100 = right (default: 50)",
    )
    parser.add_argument("--chroma-key", help="Key color as #RRGGBB or R,G,B")
    parser.add_argument("--tolerance", type=float, default=10.0, help="Chroma key tolerance in percent")
    parser.add_argument("--colors", type=int, default=16, help="Palette size used while tracing")
    parser.add_argument("--path-omit", type=int, default=8, help="Drop traced paths with fewer edge points")
    parser.add_argument("--columns", type=int, help="Sprite sheet columns")
    parser.add_argument("--rows", type=int, help="Sprite sheet rows")
    parser.add_argument("--workers", type=int, default=config.TRACE_WORKERS, help="Tracing worker count")
    parser.add_argument(
        "--executor",
        choices=("process", "thread"),
        default=config.TRACE_EXECUTOR,
        help="Worker pool flavour for local tracing",
    )
    parser.add_argument(
        "--remote-url",
        default=config.REMOTE_TRACER_URL,
        help="Base URL of a tracing service to use instead of local tracing",
    )
    parser.add_argument("--preview-dir", type=Path, help="Write one SVG preview per traced frame here")
    parser.add_argument("--max-frames", type=int, help="Stop sampling after this many frames")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Parse arguments and show plan without rendering outputs",
    )
    return parser


def settings_from_args(args: argparse.Namespace) -> ExportSettings:
    key = None
    if args.chroma_key:
        key = ChromaKeySettings(
            target_color=validators.parse_key_color(args.chroma_key),
            tolerance_percent=validators.validate_tolerance_percent(args.tolerance),
        )
    return ExportSettings(
        video_path=args.input,
        output_path=args.output,
        frame_rate=args.fps,
        trim=TrimWindow(start=args.start, end=args.end),
        crop=CropSettings(enabled=args.crop, horizontal_offset_percent=args.crop_offset),
        chroma_key=key,
        trace_options=TraceOptions(number_of_colors=args.colors, path_omit=args.path_omit),
        columns=args.columns,
        rows=args.rows,
        max_frames=args.max_frames,
        remote_url=args.remote_url,
        workers=args.workers,
        executor=args.executor,
        preview_dir=args.preview_dir,
    )


def _describe_source(settings: ExportSettings) -> int:
    """Print what sampling would capture from an existing source."""

    try:
        metadata = video_loader.load_metadata(settings.video_path)
        validators.validate_crop(metadata, settings.crop)
    except (ProcessingError, ValidationError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    times = compute_sample_times(settings.trim, settings.frame_rate, metadata.duration_seconds, settings.max_frames)
    print(
        f"source: {metadata.width}x{metadata.height} @ {metadata.fps:g} fps, "
        f"{metadata.duration_seconds:.2f}s -> {len(times)} frames"
    )
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging()

    try:
        settings = settings_from_args(args)
        pipeline.validate_settings(settings)
    except ValidationError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1

    if args.dry_run:
        print(f"{args.format} export: {settings.video_path} -> {settings.output_path} @ {settings.frame_rate} fps")
        if settings.video_path.exists():
            return _describe_source(settings)
        return 0

    runner = pipeline.export_lottie if args.format == "lottie" else pipeline.export_spritesheet
    try:
        outcome = runner(settings)
    except (ProcessingError, ValidationError) as exc:
        logger.debug("Export failed", exc_info=True)
        print(f"error: {exc}", file=sys.stderr)
        return 1

    print(outcome.output_path)
    if outcome.manifest_path is not None:
        print(outcome.manifest_path)
    return 0


if __name__ == "__main__":
    sys.exit(main())
