"""FastAPI surface: tracing service endpoints and video export endpoints."""

from __future__ import annotations

import base64
import json
import logging
import time
import uuid
from pathlib import Path
from typing import Any, Optional

from fastapi import BackgroundTasks, FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel, Field, field_validator
from starlette.concurrency import run_in_threadpool

from .. import config
from ..core import ChromaKeySettings, CropSettings, ExportSettings, Frame, ProcessingOutcome, TraceOptions, TrimWindow
from ..core import chroma_key, pipeline, spritesheet_builder, svg_preview, timeline, vectorizer
from ..core.errors import EmptyInputError, ProcessingError, RasterContextError, SourceUnavailable, ValidationError
from ..utils import file_tools, image_tools, validators

logger = logging.getLogger(__name__)

ARTIFACTS_DIR = config.ARTIFACTS_DIR
UPLOADS_DIR = config.UPLOADS_DIR
EXPORTS_DIR = config.EXPORTS_DIR
VIDEO_EXTENSIONS = validators.ALLOWED_VIDEO_EXTENSIONS
file_tools.ensure_directory(ARTIFACTS_DIR)
file_tools.ensure_directory(UPLOADS_DIR)
file_tools.ensure_directory(EXPORTS_DIR)


def _parse_key_color(value):
    if value in (None, "", "null"):
        return None
    if isinstance(value, (list, tuple)):
        if len(value) not in (3, 4):
            raise ValueError("Color must be R,G,B[,A]")
        return tuple(int(v) for v in value[:3])
    if isinstance(value, str):
        return validators.parse_key_color(value)
    raise ValueError("Color must be #RRGGBB or R,G,B")


class ExportRequest(BaseModel):
    """Incoming settings payload for an export."""

    frame_rate: float = Field(24.0, gt=0, le=120)
    start_time: float = Field(0.0, ge=0)
    end_time: Optional[float] = Field(None, ge=0)
    crop: bool = False
    crop_offset: float = Field(50.0, ge=0, le=100)
    chroma_key_color: Optional[tuple[int, int, int]] = None
    tolerance: float = Field(10.0, ge=0, le=100)
    number_of_colors: int = Field(16, ge=2, le=64)
    path_omit: int = Field(8, ge=0)
    line_threshold: float = Field(1.0, ge=0)
    quadratic_threshold: float = Field(1.0, ge=0)
    columns: Optional[int] = Field(None, ge=1)
    rows: Optional[int] = Field(None, ge=1)
    max_frames: Optional[int] = Field(None, ge=0)

    @field_validator("chroma_key_color", mode="before")
    @classmethod
    def _parse_color(cls, value):
        return _parse_key_color(value)

    @field_validator("max_frames")
    @classmethod
    def _normalize_max_frames(cls, value):
        if value == 0:
            return None
        return value

    def to_settings(self, video_path: Path, output_path: Path) -> ExportSettings:
        max_frames = min(self.max_frames, config.MAX_FRAME_CAP) if self.max_frames else config.MAX_FRAME_CAP
        return ExportSettings(
            video_path=video_path,
            output_path=output_path,
            frame_rate=self.frame_rate,
            trim=TrimWindow(start=self.start_time, end=self.end_time),
            crop=CropSettings(enabled=self.crop, horizontal_offset_percent=self.crop_offset),
            chroma_key=(
                ChromaKeySettings(target_color=self.chroma_key_color, tolerance_percent=self.tolerance)
                if self.chroma_key_color
                else None
            ),
            trace_options=TraceOptions(
                line_threshold=self.line_threshold,
                quadratic_threshold=self.quadratic_threshold,
                path_omit=self.path_omit,
                number_of_colors=self.number_of_colors,
            ),
            columns=self.columns,
            rows=self.rows,
            max_frames=max_frames,
            remote_url=config.REMOTE_TRACER_URL,
            workers=config.TRACE_WORKERS,
            executor=config.TRACE_EXECUTOR,
        )


class ExportResponse(BaseModel):
    """Payload returned after an export completes."""

    output_url: str
    manifest_url: Optional[str] = None
    frame_count: int
    width: int
    height: int


def _key_settings(color: Optional[str], tolerance: float) -> Optional[ChromaKeySettings]:
    if not color:
        return None
    try:
        return ChromaKeySettings(
            target_color=validators.parse_key_color(color),
            tolerance_percent=validators.validate_tolerance_percent(tolerance),
        )
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc


def create_app() -> FastAPI:
    app = FastAPI(title="video2lottie", version="0.1.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.ALLOWED_ORIGINS,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.mount("/artifacts", StaticFiles(directory=ARTIFACTS_DIR), name="artifacts")

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/api/artifacts")
    async def list_artifacts() -> dict[str, list[str]]:
        exports = file_tools.list_files_with_extensions(EXPORTS_DIR, {".json", ".png"})
        return {"exports": [_artifact_url(p) for p in exports]}

    @app.post("/vectorize")
    async def vectorize(
        request: Request,
        file: UploadFile = File(...),
        format: str = "json",
        chroma_key_color: Optional[str] = Form(None),
        tolerance: float = Form(10.0),
    ):
        _enforce_size_limit(request)
        key = _key_settings(chroma_key_color, tolerance)
        data = await file.read()
        try:
            pixels = image_tools.decode_image_bytes(data)
        except RasterContextError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        if key is not None:
            chroma_key.apply_chroma_key(pixels, key)
        try:
            groups = await run_in_threadpool(vectorizer.trace, pixels, TraceOptions())
        except ProcessingError as exc:
            logger.exception("Tracing failed")
            raise HTTPException(status_code=500, detail=str(exc)) from exc
        if format == "svg":
            height, width = pixels.shape[:2]
            return Response(svg_preview.render_svg(groups, width, height), media_type="image/svg+xml")
        return [timeline.group_to_lottie(group) for group in groups]

    @app.post("/sprites")
    async def sprites(
        request: Request,
        files: list[UploadFile] = File(...),
        fps: float = Form(24.0),
        chroma_key_color: Optional[str] = Form(None),
        tolerance: float = Form(10.0),
    ) -> dict[str, Any]:
        _enforce_size_limit(request)
        if fps <= 0:
            raise HTTPException(status_code=422, detail="fps must be greater than zero")
        key = _key_settings(chroma_key_color, tolerance)
        frames: list[Frame] = []
        for idx, upload in enumerate(files):
            try:
                pixels = image_tools.decode_image_bytes(await upload.read())
            except RasterContextError as exc:
                raise HTTPException(status_code=400, detail=f"Frame {idx}: {exc}") from exc
            if key is not None:
                chroma_key.apply_chroma_key(pixels, key)
            frames.append(Frame(id=idx, pixels=pixels, timestamp=idx / fps))
        if len({(f.width, f.height) for f in frames}) > 1:
            raise HTTPException(status_code=400, detail="All frames must share the same size")
        try:
            sheet = await run_in_threadpool(spritesheet_builder.compose, frames, fps)
        except EmptyInputError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        encoded = base64.b64encode(spritesheet_builder.encode_png(sheet)).decode("ascii")
        return {"image": encoded, "metadata": sheet.metadata()}

    @app.post("/api/export/lottie", response_model=ExportResponse)
    async def export_lottie(
        background_tasks: BackgroundTasks,
        request: Request,
        video: UploadFile = File(...),
        settings: str = Form("{}"),
    ) -> ExportResponse:
        return await _run_export(background_tasks, request, video, settings, pipeline.export_lottie, ".json")

    @app.post("/api/export/spritesheet", response_model=ExportResponse)
    async def export_spritesheet(
        background_tasks: BackgroundTasks,
        request: Request,
        video: UploadFile = File(...),
        settings: str = Form("{}"),
    ) -> ExportResponse:
        return await _run_export(background_tasks, request, video, settings, pipeline.export_spritesheet, ".png")

    return app


async def _run_export(background_tasks, request, video, settings, runner, suffix) -> ExportResponse:
    try:
        payload = json.loads(settings) if settings else {}
    except json.JSONDecodeError as exc:
        raise HTTPException(status_code=400, detail=f"Invalid settings JSON: {exc}") from exc
    try:
        export_request = ExportRequest.model_validate(payload)
    except Exception as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc

    suffix_in = Path(video.filename or "").suffix.lower()
    if suffix_in not in VIDEO_EXTENSIONS:
        raise HTTPException(status_code=400, detail="Unsupported file type")
    _enforce_size_limit(request)
    local_video = _write_upload_file(video, UPLOADS_DIR, suffix_in)
    background_tasks.add_task(_cleanup_file, local_video)

    filename = file_tools.format_output_filename(local_video, "{stem}_{ts}", suffix, timestamp=int(time.time()))
    export_settings = export_request.to_settings(local_video, EXPORTS_DIR / filename)
    try:
        outcome: ProcessingOutcome = await run_in_threadpool(runner, export_settings)
    except (SourceUnavailable, ValidationError, EmptyInputError) as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except ProcessingError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    except Exception as exc:  # pragma: no cover - defensive
        logger.exception("Unexpected failure during export")
        raise HTTPException(status_code=500, detail="Unexpected error") from exc

    return ExportResponse(
        output_url=_artifact_url(outcome.output_path),
        manifest_url=_artifact_url(outcome.manifest_path) if outcome.manifest_path else None,
        frame_count=outcome.frame_count,
        width=outcome.width,
        height=outcome.height,
    )


def _artifact_url(path: Path) -> str:
    try:
        rel = path.relative_to(ARTIFACTS_DIR)
        return f"/artifacts/{rel.as_posix()}"
    except ValueError:
        return f"/artifacts/{path.name}"


def _write_upload_file(file: UploadFile, target_dir: Path, suffix: str) -> Path:
    target_dir.mkdir(parents=True, exist_ok=True)
    target = target_dir / f"{uuid.uuid4().hex}{suffix}"
    written = 0
    with target.open("wb") as handle:
        while True:
            chunk = file.file.read(1024 * 1024)
            if not chunk:
                break
            written += len(chunk)
            if written > config.MAX_UPLOAD_BYTES:
                handle.close()
                target.unlink(missing_ok=True)
                raise HTTPException(status_code=413, detail="File too large")
            handle.write(chunk)
    return target


def _enforce_size_limit(request: Request) -> None:
    """Simple guardrail on upload size based on Content-Length."""

    content_length = request.headers.get("content-length")
    if not content_length:
        return
    try:
        size = int(content_length)
    except ValueError:
        return
    if size > config.MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=413, detail="Upload exceeds limit")


def _cleanup_file(path: Path) -> None:
    """Remove a temporary upload if it exists."""

    try:
        path.unlink(missing_ok=True)
    except OSError as exc:
        logger.debug("Cleanup failed for %s: %s", path, exc)


app = create_app()


if __name__ == "__main__":  # pragma: no cover
    import uvicorn

    uvicorn.run("video2lottie.web.server:app", host="0.0.0.0", port=8000, reload=True)
