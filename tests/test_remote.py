import base64
import io

import httpx
import numpy as np
import pytest
from PIL import Image

from video2lottie.core import ChromaKeySettings
from video2lottie.core.errors import TraceError, UnexpectedResponseShape
from video2lottie.core.remote import (
    RemoteTracingClient,
    ResponseKind,
    classify_response,
    resolve_shape_response,
    unwrap_shapes,
)
from video2lottie.core.timeline import group_to_lottie

from conftest import square_raster, triangle_group


@pytest.fixture
def encoded_group():
    return group_to_lottie(triangle_group())


def test_flat_layered_and_enveloped_responses_agree(encoded_group):
    flat = [encoded_group]
    layered = {"layers": [{"shapes": [encoded_group]}]}
    enveloped = {"data": [encoded_group]}

    assert classify_response(flat) is ResponseKind.FLAT
    assert classify_response(layered) is ResponseKind.LAYERED
    assert classify_response(enveloped) is ResponseKind.ENVELOPED
    decoded = [resolve_shape_response(payload) for payload in (flat, layered, enveloped)]
    assert decoded[0] == decoded[1] == decoded[2]
    assert len(decoded[0]) == 1


def test_layered_response_concatenates_layers(encoded_group):
    payload = {"layers": [{"shapes": [encoded_group]}, {"shapes": [encoded_group, encoded_group]}]}
    assert len(unwrap_shapes(payload)) == 3


def test_unknown_response_degrades_to_empty(caplog):
    assert unwrap_shapes({"unexpected": True}) == []
    assert unwrap_shapes("nope") == []
    assert "Unexpected tracing response" in caplog.text


def test_strict_resolution_raises_on_unknown_shape():
    with pytest.raises(UnexpectedResponseShape):
        resolve_shape_response(42)


def test_client_posts_frame_and_decodes_groups(encoded_group):
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["body"] = request.read()
        return httpx.Response(200, json={"data": [encoded_group]})

    http = httpx.Client(base_url="http://tracer.test", transport=httpx.MockTransport(handler))
    with RemoteTracingClient("http://tracer.test", client=http) as client:
        groups = client.trace_frame(square_raster())

    assert seen["path"] == "/vectorize"
    assert b"\x89PNG" in seen["body"]
    assert groups[0].name == "Color 1"


def test_client_wraps_http_errors():
    http = httpx.Client(
        base_url="http://tracer.test",
        transport=httpx.MockTransport(lambda request: httpx.Response(503)),
    )
    client = RemoteTracingClient("http://tracer.test", client=http)
    with pytest.raises(TraceError):
        client.trace_frame(square_raster())


def test_client_composes_sprite_sheet():
    image = Image.new("RGBA", (8, 4), (1, 2, 3, 255))
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["body"] = request.read()
        return httpx.Response(
            200,
            json={
                "image": base64.b64encode(buffer.getvalue()).decode("ascii"),
                "metadata": {
                    "fps": 12,
                    "totalFrames": 2,
                    "columns": 2,
                    "rows": 1,
                    "frameWidth": 4,
                    "frameHeight": 4,
                },
            },
        )

    http = httpx.Client(base_url="http://tracer.test", transport=httpx.MockTransport(handler))
    client = RemoteTracingClient("http://tracer.test", client=http)
    rasters = [np.zeros((4, 4, 4), dtype=np.uint8)] * 2
    sheet = client.compose_sprite_sheet(rasters, 12.0, ChromaKeySettings(target_color=(0, 255, 0)))

    assert (sheet.columns, sheet.rows, sheet.frame_count) == (2, 1, 2)
    assert sheet.image.size == (8, 4)
    assert b"0,255,0" in seen["body"]


def test_malformed_sprite_sheet_response_is_rejected():
    http = httpx.Client(
        base_url="http://tracer.test",
        transport=httpx.MockTransport(lambda request: httpx.Response(200, json={"image": "???"})),
    )
    client = RemoteTracingClient("http://tracer.test", client=http)
    with pytest.raises(UnexpectedResponseShape):
        client.compose_sprite_sheet([np.zeros((2, 2, 4), dtype=np.uint8)], 10.0)
