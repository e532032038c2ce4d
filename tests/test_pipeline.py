import json

import httpx
import numpy as np
import pytest
from PIL import Image

from video2lottie.core import ChromaKeySettings, CropSettings, ExportSettings, TrimWindow, pipeline
from video2lottie.core.errors import AssemblyError, EmptyInputError, ValidationError
from video2lottie.core.remote import RemoteTracingClient
from video2lottie.core.timeline import group_to_lottie

from conftest import FakeVideoSource, triangle_group

GREEN_SCREEN = ChromaKeySettings(target_color=(0, 255, 0), tolerance_percent=10)


def _settings(tmp_path, **overrides):
    values = dict(
        video_path=tmp_path / "clip.mp4",
        output_path=tmp_path / "out.json",
        frame_rate=4.0,
        chroma_key=GREEN_SCREEN,
        executor="thread",
        workers=2,
    )
    values.update(overrides)
    return ExportSettings(**values)


def _scene(duration=0.5, **kwargs):
    return FakeVideoSource(width=32, height=32, duration=duration, scene=True, **kwargs)


def test_lottie_export_traces_every_frame(tmp_path):
    outcome = pipeline.export_lottie(_settings(tmp_path), source=_scene())
    data = json.loads(outcome.output_path.read_text())

    assert outcome.frame_count == 2
    assert (outcome.width, outcome.height) == (32, 32)
    assert len(data["layers"]) == 2
    for layer in data["layers"]:
        assert len(layer["shapes"]) == 1
        fill = next(item for item in layer["shapes"][0]["it"] if item["ty"] == "fl")
        assert fill["c"]["k"] == [1, 0, 0, 1]


def test_deselected_frames_are_skipped(tmp_path):
    settings = _settings(tmp_path, trim=TrimWindow(end=1.0))
    sampler = pipeline.sample(settings, _scene(duration=1.0))
    sampler.toggle_frame(1)

    outcome = pipeline.export_lottie(settings, sampler=sampler)
    data = json.loads(outcome.output_path.read_text())

    assert outcome.frame_count == 3
    assert [layer["ip"] for layer in data["layers"]] == [2, 1, 0]


def test_nothing_selected_is_an_error(tmp_path):
    settings = _settings(tmp_path)
    sampler = pipeline.sample(settings, _scene())
    sampler.select_none()

    with pytest.raises(EmptyInputError):
        pipeline.export_lottie(settings, sampler=sampler)
    assert not settings.output_path.exists()


def test_sampled_frames_keep_their_background(tmp_path):
    settings = _settings(tmp_path)
    sampler = pipeline.sample(settings, _scene())
    rasters = pipeline.prepare_rasters(sampler.frames, settings.chroma_key)

    assert rasters[0][0, 0, 3] == 0
    assert sampler.frames[0].pixels[0, 0, 3] == 255


def test_previews_are_written_per_frame(tmp_path):
    preview_dir = tmp_path / "previews"
    pipeline.export_lottie(_settings(tmp_path, preview_dir=preview_dir), source=_scene())

    previews = sorted(p.name for p in preview_dir.iterdir())
    assert previews == ["frame_0000.svg", "frame_0001.svg"]
    assert "<path" in (preview_dir / "frame_0000.svg").read_text()


def test_spritesheet_export_writes_png_and_manifest(tmp_path):
    settings = _settings(tmp_path, output_path=tmp_path / "sheet.png")
    outcome = pipeline.export_spritesheet(settings, source=_scene(duration=1.0))

    manifest = json.loads(outcome.manifest_path.read_text())
    assert manifest["totalFrames"] == 4
    assert (manifest["columns"], manifest["rows"]) == (2, 2)
    with Image.open(outcome.output_path) as img:
        assert img.size == (64, 64)
        pixels = np.array(img.convert("RGBA"))
    assert pixels[0, 0, 3] == 0  # keyed background
    assert tuple(pixels[16, 16]) == (255, 0, 0, 255)


def test_portrait_crop_is_rejected(tmp_path):
    settings = _settings(tmp_path, crop=CropSettings(enabled=True))
    with pytest.raises(ValidationError):
        pipeline.sample(settings, FakeVideoSource(width=20, height=40, duration=0.5))


def test_invalid_rate_is_rejected_before_sampling(tmp_path):
    source = _scene()
    with pytest.raises(ValidationError):
        pipeline.export_lottie(_settings(tmp_path, frame_rate=0), source=source)
    assert source.seeks == []


def test_remote_tracer_replaces_local_tracing(tmp_path, monkeypatch):
    calls = []

    def handler(request):
        calls.append(request.url.path)
        return httpx.Response(200, json={"layers": [{"shapes": [group_to_lottie(triangle_group())]}]})

    def fake_client(base_url, timeout):
        http = httpx.Client(base_url=base_url, transport=httpx.MockTransport(handler))
        return RemoteTracingClient(base_url, client=http)

    monkeypatch.setattr(pipeline, "RemoteTracingClient", fake_client)
    outcome = pipeline.export_lottie(_settings(tmp_path, remote_url="http://tracer.test"), source=_scene())

    assert calls == ["/vectorize", "/vectorize"]
    layers = json.loads(outcome.output_path.read_text())["layers"]
    assert layers[0]["shapes"][0]["nm"] == "Color 1"


def test_undersized_sprite_grid_writes_nothing(tmp_path):
    settings = _settings(tmp_path, output_path=tmp_path / "sheet.png", columns=1, rows=1)

    with pytest.raises(ValidationError):
        pipeline.export_spritesheet(settings, source=_scene(duration=1.0))
    assert not (tmp_path / "sheet.png").exists()
    assert not (tmp_path / "sheet.json").exists()


def test_failed_assembly_leaves_no_previews(tmp_path, monkeypatch):
    def broken_assemble(*args, **kwargs):
        raise AssemblyError("boom")

    monkeypatch.setattr(pipeline.timeline, "assemble", broken_assemble)
    preview_dir = tmp_path / "previews"

    with pytest.raises(AssemblyError):
        pipeline.export_lottie(_settings(tmp_path, preview_dir=preview_dir), source=_scene())
    assert not preview_dir.exists()
