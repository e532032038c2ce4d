"""Bitmap tracer: RGBA raster -> palette + per-color closed paths of line/quadratic segments.

The algorithm follows ImageTracer (public domain, by András Jankovics):

1. Color quantization to a bounded palette.
2. Layering: per palette color, an edge-node grid over pixel corners.
3. Path scan: walk every boundary of each layer into a closed point list.
4. Interpolation: midpoint nodes with 8-way direction codes.
5. Fitting: straight lines or quadratic splines within error thresholds.

Node types are 4-bit masks of which surrounding pixels belong to the color:
1 = top-left, 2 = top-right, 4 = bottom-right, 8 = bottom-left.
Directions: 0 = right, 1 = up, 2 = left, 3 = down.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Optional

import numpy as np

from . import PaletteColor, TraceOptions
from .errors import TraceError

logger = logging.getLogger(__name__)

Point = tuple[float, float]

# PATHSCAN_LOOKUP[node_type][incoming_dir] = (replacement node, outgoing dir, dx, dy)
_INVALID = (-1, -1, -1, -1)
PATHSCAN_LOOKUP = (
    (_INVALID, _INVALID, _INVALID, _INVALID),
    ((0, 1, 0, -1), _INVALID, _INVALID, (0, 2, -1, 0)),
    (_INVALID, _INVALID, (0, 1, 0, -1), (0, 0, 1, 0)),
    ((0, 0, 1, 0), _INVALID, (0, 2, -1, 0), _INVALID),
    (_INVALID, (0, 0, 1, 0), (0, 3, 0, 1), _INVALID),
    ((13, 3, 0, 1), (13, 2, -1, 0), (7, 1, 0, -1), (7, 0, 1, 0)),
    (_INVALID, (0, 1, 0, -1), _INVALID, (0, 3, 0, 1)),
    ((0, 3, 0, 1), (0, 2, -1, 0), _INVALID, _INVALID),
    ((0, 3, 0, 1), (0, 2, -1, 0), _INVALID, _INVALID),
    (_INVALID, (0, 1, 0, -1), _INVALID, (0, 3, 0, 1)),
    ((11, 1, 0, -1), (14, 0, 1, 0), (14, 3, 0, 1), (11, 2, -1, 0)),
    (_INVALID, (0, 0, 1, 0), (0, 3, 0, 1), _INVALID),
    ((0, 0, 1, 0), _INVALID, (0, 2, -1, 0), _INVALID),
    (_INVALID, _INVALID, (0, 1, 0, -1), (0, 0, 1, 0)),
    ((0, 1, 0, -1), _INVALID, _INVALID, (0, 2, -1, 0)),
    (_INVALID, _INVALID, _INVALID, _INVALID),
)

# Outer boundaries start on a lone bottom-right corner, holes on a missing one.
_OUTER_START = 4
_HOLE_START = 11


@dataclass
class TracedSegment:
    """``line`` from start to end, or ``quadratic`` from start to end via control."""

    kind: str
    start: Point
    end: Point
    control: Optional[Point] = None


@dataclass
class TracedPath:
    segments: list[TracedSegment] = field(default_factory=list)
    is_hole: bool = False
    bounding_box: tuple[int, int, int, int] = (0, 0, 0, 0)


@dataclass
class TraceData:
    palette: list[PaletteColor]
    layers: list[list[TracedPath]]
    width: int
    height: int


@dataclass
class _EdgePath:
    points: list[tuple[int, int, int]]
    is_hole: bool
    bounding_box: tuple[int, int, int, int]


@dataclass
class _InterNode:
    x: float
    y: float
    direction: int


# -- 1. color quantization -------------------------------------------------


def _sample_palette_deterministic(flat: np.ndarray, width: int, height: int, count: int) -> np.ndarray:
    """Pick pixels on an evenly spaced grid over the image."""

    columns = math.ceil(math.sqrt(count))
    rows = math.ceil(count / columns)
    step_x = width / (columns + 1)
    step_y = height / (rows + 1)
    colors = []
    for j in range(rows):
        for i in range(columns):
            if len(colors) == count:
                break
            index = int(math.floor((j + 1) * step_y * width + (i + 1) * step_x))
            colors.append(flat[min(index, flat.shape[0] - 1)])
    return np.array(colors, dtype=np.float64)


def _sample_palette_random(flat: np.ndarray, count: int, rng: np.random.Generator) -> np.ndarray:
    indices = rng.integers(0, flat.shape[0], size=count)
    return flat[indices].astype(np.float64)


def _generate_palette(count: int, rng: np.random.Generator) -> np.ndarray:
    """Grayscale ramp for small palettes, otherwise an RGB cube plus random fill."""

    if count < 8:
        step = 255 / (count - 1)
        return np.array([[round(i * step)] * 3 + [255] for i in range(count)], dtype=np.float64)
    per_channel = int(math.floor(count ** (1 / 3)))
    step = math.floor(255 / (per_channel - 1))
    colors = [
        [r * step, g * step, b * step, 255]
        for r in range(per_channel)
        for g in range(per_channel)
        for b in range(per_channel)
    ]
    for _ in range(count - len(colors)):
        colors.append(list(rng.integers(0, 256, size=3)) + [255])
    return np.array(colors, dtype=np.float64)


def _initial_palette(flat: np.ndarray, width: int, height: int, options: TraceOptions, rng) -> np.ndarray:
    if options.color_sampling == "generated":
        return _generate_palette(options.number_of_colors, rng)
    if options.color_sampling == "random":
        return _sample_palette_random(flat, options.number_of_colors, rng)
    return _sample_palette_deterministic(flat, width, height, options.number_of_colors)


def _nearest_palette_index(flat: np.ndarray, palette: np.ndarray) -> np.ndarray:
    """Index of the closest palette entry by RGBA Manhattan distance; ties go to the lowest index."""

    best = np.full(flat.shape[0], np.inf)
    nearest = np.zeros(flat.shape[0], dtype=np.int32)
    for k, color in enumerate(palette):
        distance = np.abs(flat - color).sum(axis=1)
        closer = distance < best
        best[closer] = distance[closer]
        nearest[closer] = k
    return nearest


def quantize_colors(pixels: np.ndarray, options: TraceOptions) -> tuple[np.ndarray, np.ndarray]:
    """Return ``(indexed, palette)``.

    ``indexed`` has shape ``(h + 2, w + 2)`` with a ``-1`` border; ``palette`` has
    shape ``(n, 4)`` with integer-valued RGBA entries.
    """

    height, width = pixels.shape[:2]
    flat = pixels.reshape(-1, 4).astype(np.float64)
    pixel_count = flat.shape[0]
    rng = np.random.default_rng(options.seed)
    palette = _initial_palette(flat, width, height, options, rng)

    nearest = np.zeros(pixel_count, dtype=np.int32)
    counts = np.zeros(len(palette), dtype=np.int64)
    sums = np.zeros_like(palette)
    for cycle in range(options.color_quant_cycles):
        if cycle > 0:
            for k in range(len(palette)):
                if counts[k] > 0:
                    palette[k] = np.floor(sums[k] / counts[k])
                if counts[k] / pixel_count < options.min_color_ratio and cycle < options.color_quant_cycles - 1:
                    palette[k] = rng.integers(0, 256, size=4)
        nearest = _nearest_palette_index(flat, palette)
        counts = np.bincount(nearest, minlength=len(palette))
        sums = np.stack(
            [np.bincount(nearest, weights=flat[:, c], minlength=len(palette)) for c in range(4)], axis=1
        )

    indexed = np.full((height + 2, width + 2), -1, dtype=np.int32)
    indexed[1:-1, 1:-1] = nearest.reshape(height, width)
    return indexed, palette


# -- 2. layering -----------------------------------------------------------


def edge_nodes(indexed: np.ndarray, color_index: int) -> np.ndarray:
    """Node-type grid for one color; node ``(j, i)`` is the corner at pixel ``(i - 1, j - 1)``."""

    member = (indexed == color_index).astype(np.int8)
    nodes = np.zeros(indexed.shape, dtype=np.int8)
    nodes[1:, 1:] = member[:-1, :-1] + member[:-1, 1:] * 2 + member[1:, 1:] * 4 + member[1:, :-1] * 8
    return nodes


# -- 3. path scan ----------------------------------------------------------


def scan_paths(nodes: np.ndarray, path_omit: int) -> list[_EdgePath]:
    """Walk every boundary in the node grid; consumed nodes are cleared as they are walked."""

    grid = nodes.tolist()
    height = len(grid)
    width = len(grid[0]) if height else 0
    max_steps = 4 * height * width + 4
    paths: list[_EdgePath] = []

    # Saddles (type 10) may turn into hole starts while walking, so they are candidates too.
    candidates = np.argwhere(np.isin(nodes, (_OUTER_START, 10, _HOLE_START)))
    for j, i in candidates.tolist():
        if grid[j][i] not in (_OUTER_START, _HOLE_START):
            continue
        px, py = i, j
        is_hole = grid[j][i] == _HOLE_START
        direction = 1
        points: list[tuple[int, int, int]] = []
        min_x = max_x = px - 1
        min_y = max_y = py - 1
        start = (px - 1, py - 1)
        while True:
            node = grid[py][px]
            points.append((px - 1, py - 1, node))
            min_x, max_x = min(min_x, px - 1), max(max_x, px - 1)
            min_y, max_y = min(min_y, py - 1), max(max_y, py - 1)
            replacement, direction, dx, dy = PATHSCAN_LOOKUP[node][direction]
            if direction < 0:
                raise TraceError(f"Inconsistent edge walk at node ({px}, {py}) of type {node}")
            grid[py][px] = replacement
            px += dx
            py += dy
            if (px - 1, py - 1) == start:
                break
            if len(points) > max_steps or not (0 <= px < width and 0 <= py < height):
                raise TraceError(f"Edge walk from {start} did not close")
        if len(points) < path_omit:
            continue
        paths.append(_EdgePath(points=points, is_hole=is_hole, bounding_box=(min_x, min_y, max_x, max_y)))
    return paths


# -- 4. interpolation ------------------------------------------------------


def direction_code(x1: float, y1: float, x2: float, y2: float) -> int:
    """8-way direction: 0 E, 1 SE, 2 S, 3 SW, 4 W, 5 NW, 6 N, 7 NE, 8 none."""

    if x1 < x2:
        if y1 < y2:
            return 1
        if y1 > y2:
            return 7
        return 0
    if x1 > x2:
        if y1 < y2:
            return 3
        if y1 > y2:
            return 5
        return 4
    if y1 < y2:
        return 2
    if y1 > y2:
        return 6
    return 8


def _is_right_angle(points, i1: int, i2: int, i3: int, i4: int, i5: int) -> bool:
    p1, p2, p3, p4, p5 = points[i1], points[i2], points[i3], points[i4], points[i5]
    return (p3[0] == p1[0] and p3[0] == p2[0] and p3[1] == p4[1] and p3[1] == p5[1]) or (
        p3[1] == p1[1] and p3[1] == p2[1] and p3[0] == p4[0] and p3[0] == p5[0]
    )


def interpolate_nodes(path: _EdgePath, right_angle_enhance: bool = True) -> list[_InterNode]:
    points = path.points
    length = len(points)
    nodes: list[_InterNode] = []
    for k in range(length):
        nxt = (k + 1) % length
        nxt2 = (k + 2) % length
        prev = (k - 1) % length
        prev2 = (k - 2) % length
        mid_x = (points[k][0] + points[nxt][0]) / 2
        mid_y = (points[k][1] + points[nxt][1]) / 2

        if right_angle_enhance and _is_right_angle(points, prev2, prev, k, nxt, nxt2):
            # Keep the corner itself so the fit does not round it off.
            corner_x, corner_y = float(points[k][0]), float(points[k][1])
            if nodes:
                nodes[-1].direction = direction_code(nodes[-1].x, nodes[-1].y, corner_x, corner_y)
            nodes.append(_InterNode(corner_x, corner_y, direction_code(corner_x, corner_y, mid_x, mid_y)))

        next_mid_x = (points[nxt][0] + points[nxt2][0]) / 2
        next_mid_y = (points[nxt][1] + points[nxt2][1]) / 2
        nodes.append(_InterNode(mid_x, mid_y, direction_code(mid_x, mid_y, next_mid_x, next_mid_y)))
    return nodes


# -- 5. fitting ------------------------------------------------------------


def _fit_sequence(nodes: list[_InterNode], ltres: float, qtres: float, start: int, end: int) -> list[TracedSegment]:
    """Fit nodes ``start..end`` (wrapping) with a line, a quadratic, or a recursive split."""

    length = len(nodes)
    if end > length or end < 0:
        return []
    span = (end - start) % length or length
    first, last = nodes[start], nodes[end]

    vx = (last.x - first.x) / span
    vy = (last.y - first.y) / span
    error_index, error_value = start, 0.0
    fits = True
    k = (start + 1) % length
    while k != end:
        offset = (k - start) % length
        px = first.x + vx * offset
        py = first.y + vy * offset
        dist2 = (nodes[k].x - px) ** 2 + (nodes[k].y - py) ** 2
        if dist2 > ltres:
            fits = False
        if dist2 > error_value:
            error_index, error_value = k, dist2
        k = (k + 1) % length
    if fits:
        return [TracedSegment("line", (first.x, first.y), (last.x, last.y))]

    # Quadratic through the worst point.
    fit_index = error_index
    t = ((fit_index - start) % length) / span
    t1, t2, t3 = (1 - t) * (1 - t), 2 * (1 - t) * t, t * t
    cpx = (t1 * first.x + t3 * last.x - nodes[fit_index].x) / -t2
    cpy = (t1 * first.y + t3 * last.y - nodes[fit_index].y) / -t2

    fits = True
    k = (start + 1) % length
    while k != end:
        t = ((k - start) % length) / span
        t1, t2, t3 = (1 - t) * (1 - t), 2 * (1 - t) * t, t * t
        px = t1 * first.x + t2 * cpx + t3 * last.x
        py = t1 * first.y + t2 * cpy + t3 * last.y
        dist2 = (nodes[k].x - px) ** 2 + (nodes[k].y - py) ** 2
        if dist2 > qtres:
            fits = False
            break
        k = (k + 1) % length
    if fits:
        return [TracedSegment("quadratic", (first.x, first.y), (last.x, last.y), control=(cpx, cpy))]

    split = fit_index
    return _fit_sequence(nodes, ltres, qtres, start, split) + _fit_sequence(nodes, ltres, qtres, split, end)


def fit_path(nodes: list[_InterNode], ltres: float, qtres: float) -> list[TracedSegment]:
    """Split the node ring into runs of at most two directions and fit each run."""

    segments: list[TracedSegment] = []
    length = len(nodes)
    k = 0
    while k < length:
        dir1 = nodes[k].direction
        dir2 = -1
        seq_end = k + 1
        while (
            nodes[seq_end].direction == dir1 or nodes[seq_end].direction == dir2 or dir2 == -1
        ) and seq_end < length - 1:
            if nodes[seq_end].direction != dir1 and dir2 == -1:
                dir2 = nodes[seq_end].direction
            seq_end += 1
        if seq_end == length - 1:
            seq_end = 0
        segments.extend(_fit_sequence(nodes, ltres, qtres, k, seq_end))
        k = seq_end if seq_end > 0 else length
    return segments


# -- entry point -----------------------------------------------------------


def trace_image(pixels: np.ndarray, options: TraceOptions | None = None) -> TraceData:
    """Trace an RGBA ``uint8`` array of shape ``(h, w, 4)``."""

    options = options or TraceOptions()
    if not isinstance(pixels, np.ndarray) or pixels.ndim != 3 or pixels.shape[2] != 4:
        raise TraceError(f"Tracer needs an RGBA raster, got {getattr(pixels, 'shape', type(pixels))}")
    if pixels.shape[0] == 0 or pixels.shape[1] == 0:
        raise TraceError("Tracer needs a non-empty raster")
    height, width = pixels.shape[:2]

    indexed, palette_values = quantize_colors(pixels, options)
    palette = [PaletteColor(*(int(v) for v in color)) for color in palette_values]

    layers: list[list[TracedPath]] = []
    for color_index in range(len(palette)):
        traced: list[TracedPath] = []
        for edge_path in scan_paths(edge_nodes(indexed, color_index), options.path_omit):
            nodes = interpolate_nodes(edge_path, options.right_angle_enhance)
            traced.append(
                TracedPath(
                    segments=fit_path(nodes, options.line_threshold, options.quadratic_threshold),
                    is_hole=edge_path.is_hole,
                    bounding_box=edge_path.bounding_box,
                )
            )
        layers.append(traced)

    logger.debug(
        "Traced %sx%s raster into %s paths over %s colors",
        width,
        height,
        sum(len(layer) for layer in layers),
        len(palette),
    )
    return TraceData(palette=palette, layers=layers, width=width, height=height)
