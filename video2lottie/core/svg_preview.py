"""SVG rendering of one frame's shape groups, for quick previews."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Sequence

import svgwrite

from . import ShapeGroup, VectorPath
from ..utils import file_tools

logger = logging.getLogger(__name__)


def _fmt(value: float) -> str:
    text = f"{value:.3f}".rstrip("0").rstrip(".")
    return "0" if text in ("", "-0") else text


def path_data(path: VectorPath) -> str:
    """SVG path commands for a cubic path with vertex-relative tangents."""

    vertices = path.vertices
    if not vertices:
        return ""
    first = vertices[0].vertex
    commands = [f"M {_fmt(first[0])} {_fmt(first[1])}"]
    for prev, cur in zip(vertices, vertices[1:]):
        c1 = (prev.vertex[0] + prev.out_tangent[0], prev.vertex[1] + prev.out_tangent[1])
        c2 = (cur.vertex[0] + cur.in_tangent[0], cur.vertex[1] + cur.in_tangent[1])
        commands.append(
            f"C {_fmt(c1[0])} {_fmt(c1[1])} {_fmt(c2[0])} {_fmt(c2[1])} {_fmt(cur.vertex[0])} {_fmt(cur.vertex[1])}"
        )
    if path.closed:
        commands.append("Z")
    return " ".join(commands)


def render_svg(groups: Sequence[ShapeGroup], width: int, height: int) -> str:
    drawing = svgwrite.Drawing(size=(width, height), viewBox=f"0 0 {width} {height}")
    for group in groups:
        color = group.color
        fill = svgwrite.rgb(color.r, color.g, color.b)
        attributes = {"fill": fill, "fill_opacity": round(color.a / 255, 3)}
        if group.name:
            attributes["class_"] = group.name.replace(" ", "-").lower()
        container = drawing.g(**attributes)
        for path in group.paths:
            data = path_data(path)
            if data:
                container.add(drawing.path(d=data))
        drawing.add(container)
    return drawing.tostring()


def write_preview(groups: Sequence[ShapeGroup], width: int, height: int, path: Path) -> Path:
    file_tools.atomic_write_text(path, render_svg(groups, width, height))
    logger.debug("Wrote SVG preview to %s", path)
    return path
