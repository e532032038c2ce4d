"""Vectorization engine: traced raster -> cubic-Bezier shape groups, plus the worker pool."""

from __future__ import annotations

import logging
from concurrent.futures import FIRST_COMPLETED, Future, ProcessPoolExecutor, ThreadPoolExecutor, wait
from typing import Optional, Sequence

import numpy as np

from . import BezierVertex, PaletteColor, ShapeGroup, TraceOptions, VectorPath
from .errors import SessionInvalidated, TraceError
from .session import SessionToken
from .tracer import TraceData, TracedPath, trace_image

logger = logging.getLogger(__name__)

Point = tuple[float, float]
_ZERO: Point = (0.0, 0.0)


def quadratic_to_cubic(p0: Point, control: Point, p2: Point) -> tuple[Point, Point]:
    """Return the two cubic control points equivalent to a quadratic segment."""

    cp1 = (p0[0] + (2 / 3) * (control[0] - p0[0]), p0[1] + (2 / 3) * (control[1] - p0[1]))
    cp2 = (p2[0] + (2 / 3) * (control[0] - p2[0]), p2[1] + (2 / 3) * (control[1] - p2[1]))
    return cp1, cp2


def path_from_segments(traced: TracedPath) -> VectorPath:
    """Convert traced line/quadratic segments into a closed cubic path.

    Tangents are stored relative to their vertex; the first vertex has a zero
    in-tangent.
    """

    vertices: list[BezierVertex] = []
    for index, segment in enumerate(traced.segments):
        if index == 0:
            vertices.append(BezierVertex(segment.start, _ZERO, _ZERO))
        if segment.kind == "line":
            vertices.append(BezierVertex(segment.end, _ZERO, _ZERO))
        elif segment.kind == "quadratic":
            if segment.control is None:
                raise TraceError("Quadratic segment without a control point")
            last = vertices[-1]
            p0, p2 = last.vertex, segment.end
            cp1, cp2 = quadratic_to_cubic(p0, segment.control, p2)
            last.out_tangent = (cp1[0] - p0[0], cp1[1] - p0[1])
            vertices.append(BezierVertex(p2, (cp2[0] - p2[0], cp2[1] - p2[1]), _ZERO))
        else:
            raise TraceError(f"Unknown segment type {segment.kind!r}")
    return VectorPath(vertices=vertices, closed=True)


def shape_groups_from_trace(data: TraceData) -> list[ShapeGroup]:
    """One group per visible palette color that produced at least one path."""

    groups: list[ShapeGroup] = []
    for color_index, traced_paths in enumerate(data.layers):
        color = data.palette[color_index]
        if color.a == 0:
            continue
        paths = [path_from_segments(traced) for traced in traced_paths if traced.segments]
        if not paths:
            continue
        # Transparency was applied before tracing, so every emitted group is opaque.
        groups.append(
            ShapeGroup(color=PaletteColor(color.r, color.g, color.b, 255), paths=paths, name=f"Color {color_index}")
        )
    return groups


def trace(pixels: np.ndarray, options: TraceOptions | None = None) -> list[ShapeGroup]:
    """Trace one RGBA raster into shape groups. Pure; safe to run in a worker."""

    try:
        data = trace_image(pixels, options or TraceOptions())
    except TraceError:
        raise
    except Exception as exc:
        raise TraceError(f"Tracer failed: {exc}") from exc
    return shape_groups_from_trace(data)


class VectorizationPool:
    """Bounded pool that traces frames concurrently and returns results in input order."""

    def __init__(self, options: TraceOptions | None = None, max_workers: Optional[int] = None, executor: str = "process"):
        if executor not in ("process", "thread"):
            raise ValueError("executor must be 'process' or 'thread'")
        self.options = options or TraceOptions()
        self.max_workers = max_workers
        self.executor = executor

    def _make_executor(self):
        if self.executor == "thread":
            return ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="trace")
        return ProcessPoolExecutor(max_workers=self.max_workers)

    def trace_frames(self, rasters: Sequence[np.ndarray], token: SessionToken | None = None) -> list[list[ShapeGroup]]:
        """Trace every raster; fails as a whole if any frame fails or the session goes stale."""

        if not rasters:
            return []
        results: list[Optional[list[ShapeGroup]]] = [None] * len(rasters)
        logger.info("Tracing %s frames with a %s pool", len(rasters), self.executor)
        with self._make_executor() as pool:
            pending: dict[Future, int] = {
                pool.submit(trace, raster, self.options): index for index, raster in enumerate(rasters)
            }
            try:
                while pending:
                    done, _ = wait(pending, return_when=FIRST_COMPLETED)
                    for future in done:
                        index = pending.pop(future)
                        if token is not None and not token.is_current:
                            raise SessionInvalidated(f"Discarding trace results of stale session {token.generation}")
                        try:
                            results[index] = future.result()
                        except TraceError as exc:
                            raise TraceError(f"Frame {index}: {exc}") from exc
                        except Exception as exc:
                            raise TraceError(f"Frame {index}: worker failed: {exc}") from exc
                        logger.debug("Traced frame %s (%s groups)", index, len(results[index] or []))
            except BaseException:
                for future in pending:
                    future.cancel()
                raise
        return [groups or [] for groups in results]
