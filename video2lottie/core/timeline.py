"""Timeline assembly of per-frame shape groups and the Lottie JSON codec."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Sequence

from . import AnimationDocument, AnimationLayer, BezierVertex, PaletteColor, ShapeGroup, VectorPath
from .errors import AssemblyError, UnexpectedResponseShape
from ..utils import file_tools

logger = logging.getLogger(__name__)

SHAPE_LAYER = 4
COORDINATE_DIGITS = 3


def assemble(
    per_frame_shapes: Sequence[tuple[int, list[ShapeGroup]]],
    frame_rate: float,
    width: int,
    height: int,
) -> AnimationDocument:
    """Build a document with one layer per frame, visible only in its own frame slot.

    ``per_frame_shapes`` must be ordered by frame index. The position in that sequence is
    the timeline slot, so deselected source frames leave no gaps. The last frame's layer
    is placed first.
    """

    if not per_frame_shapes:
        raise AssemblyError("No frames to assemble")
    if frame_rate <= 0:
        raise AssemblyError(f"Frame rate must be positive, got {frame_rate}")
    if width <= 0 or height <= 0:
        raise AssemblyError(f"Invalid document size {width}x{height}")

    layers: list[AnimationLayer] = []
    previous_index = None
    for slot, entry in enumerate(per_frame_shapes):
        try:
            frame_index, groups = entry
        except (TypeError, ValueError) as exc:
            raise AssemblyError(f"Malformed entry at position {slot}: {entry!r}") from exc
        if previous_index is not None and frame_index <= previous_index:
            raise AssemblyError(f"Frame {frame_index} is out of order after frame {previous_index}")
        if not isinstance(groups, list) or not all(isinstance(g, ShapeGroup) for g in groups):
            raise AssemblyError(f"Frame {frame_index} does not carry a list of shape groups")
        previous_index = frame_index
        layers.append(
            AnimationLayer(
                index=slot,
                source_frame=frame_index,
                groups=groups,
                in_point=slot,
                out_point=slot + 1,
                start_time=slot,
            )
        )

    layers.reverse()
    logger.info("Assembled %s layers at %sfps (%sx%s)", len(layers), frame_rate, width, height)
    return AnimationDocument(
        frame_rate=frame_rate,
        frame_count=len(per_frame_shapes),
        width=width,
        height=height,
        layers=tuple(layers),
    )


# -- encoding --------------------------------------------------------------


def _static(value: Any, index: int | None = None) -> dict[str, Any]:
    prop: dict[str, Any] = {"a": 0, "k": value}
    if index is not None:
        prop["ix"] = index
    return prop


def _num(value: float) -> float | int:
    rounded = round(float(value), COORDINATE_DIGITS)
    if rounded == 0:
        return 0
    return int(rounded) if rounded.is_integer() else rounded


def _pair(point) -> list:
    return [_num(point[0]), _num(point[1])]


def _identity_group_transform() -> dict[str, Any]:
    return {
        "ty": "tr",
        "p": _static([0, 0]),
        "a": _static([0, 0]),
        "s": _static([100, 100]),
        "r": _static(0),
        "o": _static(100),
        "sk": _static(0),
        "sa": _static(0),
        "nm": "Transform",
    }


def path_to_lottie(path: VectorPath) -> dict[str, Any]:
    return {
        "ty": "sh",
        "nm": "Path",
        "ks": _static(
            {
                "i": [_pair(v.in_tangent) for v in path.vertices],
                "o": [_pair(v.out_tangent) for v in path.vertices],
                "v": [_pair(v.vertex) for v in path.vertices],
                "c": path.closed,
            }
        ),
    }


def group_to_lottie(group: ShapeGroup) -> dict[str, Any]:
    color = group.color
    items: list[dict[str, Any]] = [path_to_lottie(path) for path in group.paths]
    items.append(
        {
            "ty": "fl",
            "nm": "Fill",
            "c": _static([_num(color.r / 255), _num(color.g / 255), _num(color.b / 255), 1]),
            "o": _static(_num(color.a / 255 * 100)),
        }
    )
    items.append(_identity_group_transform())
    return {"ty": "gr", "nm": group.name or "Group", "it": items}


def layer_to_lottie(layer: AnimationLayer) -> dict[str, Any]:
    return {
        "ddd": 0,
        "ind": layer.index + 1,
        "ty": SHAPE_LAYER,
        "nm": f"Frame {layer.index}",
        "sr": 1,
        "ks": {
            "o": _static(100, 11),
            "r": _static(0, 10),
            "p": _static([0, 0, 0], 2),
            "a": _static([0, 0, 0], 1),
            "s": _static([100, 100, 100], 6),
        },
        "ao": 0,
        "shapes": [group_to_lottie(group) for group in layer.groups],
        "ip": layer.in_point,
        "op": layer.out_point,
        "st": layer.start_time,
        "bm": 0,
    }


def document_to_lottie(document: AnimationDocument) -> dict[str, Any]:
    return {
        "v": document.version,
        "fr": document.frame_rate,
        "ip": 0,
        "op": document.frame_count,
        "w": document.width,
        "h": document.height,
        "nm": document.name,
        "ddd": 0,
        "assets": [],
        "layers": [layer_to_lottie(layer) for layer in document.layers],
        "markers": [],
    }


def dumps(document: AnimationDocument) -> str:
    """Compact JSON; identical documents always give identical bytes."""

    return json.dumps(document_to_lottie(document), separators=(",", ":"), ensure_ascii=True, allow_nan=False)


def write_animation(document: AnimationDocument, output_path: Path) -> Path:
    """Persist the document atomically; a failed export leaves the old file in place."""

    path = output_path.with_suffix(".json")
    file_tools.atomic_write_text(path, dumps(document))
    logger.info("Wrote animation to %s", path)
    return path


# -- decoding --------------------------------------------------------------


def _point(value: Any) -> tuple[float, float]:
    if not isinstance(value, (list, tuple)) or len(value) < 2:
        raise UnexpectedResponseShape(f"Expected a 2D point, got {value!r}")
    return float(value[0]), float(value[1])


def _static_value(prop: Any) -> Any:
    if isinstance(prop, dict) and "k" in prop:
        return prop["k"]
    raise UnexpectedResponseShape(f"Expected a static property, got {prop!r}")


def path_from_lottie(item: dict[str, Any]) -> VectorPath:
    data = _static_value(item.get("ks"))
    try:
        ins, outs, verts = data["i"], data["o"], data["v"]
    except (KeyError, TypeError) as exc:
        raise UnexpectedResponseShape(f"Path is missing i/o/v: {item!r}") from exc
    if not (len(ins) == len(outs) == len(verts)):
        raise UnexpectedResponseShape("Path tangent and vertex counts differ")
    vertices = [BezierVertex(_point(v), _point(i), _point(o)) for v, i, o in zip(verts, ins, outs)]
    return VectorPath(vertices=vertices, closed=bool(data.get("c", True)))


def group_from_lottie(item: dict[str, Any]) -> ShapeGroup:
    """Decode a Lottie ``gr`` item holding ``sh`` paths and an ``fl`` fill."""

    if not isinstance(item, dict) or item.get("ty") != "gr" or not isinstance(item.get("it"), list):
        raise UnexpectedResponseShape(f"Not a shape group: {item!r}")
    paths: list[VectorPath] = []
    color = PaletteColor(0, 0, 0, 255)
    for child in item["it"]:
        kind = child.get("ty") if isinstance(child, dict) else None
        if kind == "sh":
            paths.append(path_from_lottie(child))
        elif kind == "fl":
            rgba = _static_value(child.get("c"))
            opacity = float(_static_value(child.get("o", {"k": 100})))
            if not isinstance(rgba, (list, tuple)) or len(rgba) < 3:
                raise UnexpectedResponseShape(f"Fill color is malformed: {rgba!r}")
            r, g, b = (int(round(float(channel) * 255)) for channel in rgba[:3])
            color = PaletteColor(r, g, b, int(round(opacity / 100 * 255)))
    return ShapeGroup(color=color, paths=paths, name=str(item.get("nm", "")))
