import base64
import io

import pytest
from fastapi.testclient import TestClient
from PIL import Image

from video2lottie import config
from video2lottie.utils import image_tools
from video2lottie.web.server import ExportRequest, app

from conftest import square_raster


@pytest.fixture
def client():
    return TestClient(app)


def _png(pixels):
    return image_tools.encode_png(pixels)


def test_export_request_parses_colors_and_max_frames_zero_to_none():
    req = ExportRequest.model_validate({"chroma_key_color": "1,2,3", "max_frames": 0, "crop": True})
    assert req.chroma_key_color == (1, 2, 3)
    assert req.max_frames is None

    settings = req.to_settings(config.UPLOADS_DIR / "a.mp4", config.EXPORTS_DIR / "a.json")
    assert settings.chroma_key.target_color == (1, 2, 3)
    assert settings.crop.enabled
    assert settings.max_frames == config.MAX_FRAME_CAP


def test_export_request_accepts_hex_and_rejects_garbage():
    assert ExportRequest.model_validate({"chroma_key_color": "#00ff00"}).chroma_key_color == (0, 255, 0)
    with pytest.raises(ValueError):
        ExportRequest.model_validate({"chroma_key_color": "green"})
    with pytest.raises(ValueError):
        ExportRequest.model_validate({"tolerance": 150})


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_vectorize_returns_shape_groups(client):
    response = client.post("/vectorize", files={"file": ("frame.png", _png(square_raster()), "image/png")})

    assert response.status_code == 200
    groups = response.json()
    assert len(groups) == 1
    assert groups[0]["ty"] == "gr"


def test_vectorize_can_render_svg(client):
    response = client.post(
        "/vectorize",
        params={"format": "svg"},
        files={"file": ("frame.png", _png(square_raster()), "image/png")},
    )
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("image/svg+xml")
    assert "<svg" in response.text


def test_vectorize_rejects_undecodable_upload(client):
    response = client.post("/vectorize", files={"file": ("frame.png", b"not an image", "image/png")})
    assert response.status_code == 400


def test_sprites_returns_sheet_and_metadata(client):
    files = [("files", (f"f{i}.png", _png(square_raster()), "image/png")) for i in range(2)]
    response = client.post("/sprites", files=files, data={"fps": "12"})

    assert response.status_code == 200
    body = response.json()
    assert body["metadata"]["totalFrames"] == 2
    assert (body["metadata"]["columns"], body["metadata"]["rows"]) == (2, 1)
    with Image.open(io.BytesIO(base64.b64decode(body["image"]))) as img:
        assert img.size == (64, 32)


def test_sprites_applies_chroma_key(client):
    pixels = square_raster()
    pixels[..., 3] = 255
    files = [("files", ("f.png", _png(pixels), "image/png"))]
    response = client.post("/sprites", files=files, data={"fps": "12", "chroma_key_color": "0,0,0", "tolerance": "5"})

    with Image.open(io.BytesIO(base64.b64decode(response.json()["image"]))) as img:
        rgba = img.convert("RGBA")
        assert rgba.getpixel((0, 0))[3] == 0
        assert rgba.getpixel((16, 16)) == (255, 0, 0, 255)


def test_export_rejects_unsupported_upload(client):
    response = client.post(
        "/api/export/lottie",
        files={"video": ("notes.txt", b"hello", "text/plain")},
        data={"settings": "{}"},
    )
    assert response.status_code == 400


def test_export_rejects_malformed_settings(client):
    response = client.post(
        "/api/export/spritesheet",
        files={"video": ("clip.mp4", b"\x00", "video/mp4")},
        data={"settings": "{not json"},
    )
    assert response.status_code == 400
