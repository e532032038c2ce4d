"""Remote tracing service: response ingestion and an httpx client."""

from __future__ import annotations

import base64
import enum
import io
import logging
from typing import Any, Optional, Sequence

import httpx
import numpy as np
from PIL import Image

from . import ChromaKeySettings, ShapeGroup, SpriteSheet
from .errors import TraceError, UnexpectedResponseShape
from .timeline import group_from_lottie
from ..utils import image_tools

logger = logging.getLogger(__name__)


class ResponseKind(enum.Enum):
    FLAT = "flat"  # [group, ...]
    LAYERED = "layered"  # {"layers": [{"shapes": [group, ...]}, ...]}
    ENVELOPED = "enveloped"  # {"data": [group, ...]}


def classify_response(payload: Any) -> ResponseKind:
    if isinstance(payload, dict) and isinstance(payload.get("layers"), list):
        return ResponseKind.LAYERED
    if isinstance(payload, list):
        return ResponseKind.FLAT
    if isinstance(payload, dict) and isinstance(payload.get("data"), list):
        return ResponseKind.ENVELOPED
    raise UnexpectedResponseShape(f"Unrecognized tracing response of type {type(payload).__name__}")


def _raw_groups(payload: Any, kind: ResponseKind) -> list[Any]:
    if kind is ResponseKind.FLAT:
        return list(payload)
    if kind is ResponseKind.ENVELOPED:
        return list(payload["data"])
    groups: list[Any] = []
    for layer in payload["layers"]:
        shapes = layer.get("shapes") if isinstance(layer, dict) else None
        if isinstance(shapes, list):
            groups.extend(shapes)
    return groups


def resolve_shape_response(payload: Any) -> list[ShapeGroup]:
    """Decode any known response envelope into shape groups; raises on unknown shapes."""

    kind = classify_response(payload)
    return [group_from_lottie(item) for item in _raw_groups(payload, kind)]


def unwrap_shapes(payload: Any) -> list[ShapeGroup]:
    """Like ``resolve_shape_response`` but degrades to an empty result."""

    try:
        return resolve_shape_response(payload)
    except UnexpectedResponseShape as exc:
        logger.warning("Unexpected tracing response, treating as empty: %s", exc)
        return []


class RemoteTracingClient:
    """Client for a tracing/export service exposing ``/vectorize`` and ``/sprites``."""

    def __init__(self, base_url: str, timeout: float = 30.0, client: Optional[httpx.Client] = None):
        self._client = client or httpx.Client(base_url=base_url, timeout=timeout)
        self._owns_client = client is None

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _post(self, url: str, **kwargs) -> Any:
        try:
            response = self._client.post(url, **kwargs)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPError as exc:
            raise TraceError(f"Remote tracing request to {url} failed: {exc}") from exc
        except ValueError as exc:
            raise TraceError(f"Remote tracing response from {url} is not JSON: {exc}") from exc

    def trace_frame(self, pixels: np.ndarray) -> list[ShapeGroup]:
        payload = self._post("/vectorize", files={"file": ("frame.png", image_tools.encode_png(pixels), "image/png")})
        return unwrap_shapes(payload)

    def compose_sprite_sheet(
        self,
        rasters: Sequence[np.ndarray],
        frame_rate: float,
        chroma_key: Optional[ChromaKeySettings] = None,
    ) -> SpriteSheet:
        files = [
            ("files", (f"frame_{idx:04d}.png", image_tools.encode_png(raster), "image/png"))
            for idx, raster in enumerate(rasters)
        ]
        data: dict[str, str] = {"fps": str(frame_rate)}
        if chroma_key is not None:
            data["chroma_key_color"] = ",".join(str(c) for c in chroma_key.target_color[:3])
            data["tolerance"] = str(chroma_key.tolerance_percent)
        payload = self._post("/sprites", files=files, data=data)
        try:
            image_bytes = base64.b64decode(payload["image"])
            meta = payload["metadata"]
            with Image.open(io.BytesIO(image_bytes)) as img:
                image = img.convert("RGBA")
            return SpriteSheet(
                image=image,
                columns=int(meta["columns"]),
                rows=int(meta["rows"]),
                frame_width=int(meta["frameWidth"]),
                frame_height=int(meta["frameHeight"]),
                frame_count=int(meta["totalFrames"]),
                frame_rate=float(meta["fps"]),
            )
        except (KeyError, TypeError, ValueError, OSError) as exc:
            raise UnexpectedResponseShape(f"Sprite sheet response is malformed: {exc}") from exc
