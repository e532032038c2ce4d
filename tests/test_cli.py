import pytest

from video2lottie import cli
from video2lottie.core import VideoMetadata


def test_build_parser_creates_arguments():
    parser = cli.build_parser()
    args = parser.parse_args(["input.mp4", "out.json", "--fps", "12", "--chroma-key", "#00ff00", "--dry-run"])
    assert args.input.name == "input.mp4"
    assert args.output.name == "out.json"
    assert args.fps == 12
    assert args.format == "lottie"
    assert args.dry_run is True


def test_settings_from_args_builds_key_and_crop():
    args = cli.build_parser().parse_args(
        ["in.mp4", "out.json", "--chroma-key", "0,255,0", "--tolerance", "20", "--crop", "--crop-offset", "25"]
    )
    settings = cli.settings_from_args(args)

    assert settings.chroma_key.target_color == (0, 255, 0)
    assert settings.chroma_key.tolerance_percent == 20
    assert settings.crop.enabled and settings.crop.horizontal_offset_percent == 25


def test_main_dry_run_returns_zero(capsys):
    assert cli.main(["input.mp4", "out.json", "--dry-run"]) == 0
    assert "lottie export" in capsys.readouterr().out


def test_main_rejects_bad_settings():
    assert cli.main(["input.mp4", "out.json", "--fps", "0"]) == 1


def test_main_reports_missing_video(tmp_path, capsys):
    assert cli.main([str(tmp_path / "missing.mp4"), str(tmp_path / "out.json"), "--executor", "thread"]) == 1
    assert "Invalid video file" in capsys.readouterr().err


def test_unknown_format_is_rejected():
    with pytest.raises(SystemExit):
        cli.build_parser().parse_args(["in.mp4", "out.json", "--format", "gif"])


def test_dry_run_reports_planned_frames_for_existing_video(tmp_path, monkeypatch, capsys):
    clip = tmp_path / "clip.mp4"
    clip.write_bytes(b"")
    monkeypatch.setattr(cli.video_loader, "load_metadata", lambda path: VideoMetadata(64, 48, 30.0, 2.0))

    assert cli.main([str(clip), str(tmp_path / "out.json"), "--fps", "8", "--dry-run"]) == 0
    assert "64x48 @ 30 fps, 2.00s -> 16 frames" in capsys.readouterr().out


def test_dry_run_rejects_crop_of_portrait_video(tmp_path, monkeypatch, capsys):
    clip = tmp_path / "clip.mp4"
    clip.write_bytes(b"")
    monkeypatch.setattr(cli.video_loader, "load_metadata", lambda path: VideoMetadata(48, 64, 30.0, 2.0))

    assert cli.main([str(clip), str(tmp_path / "out.json"), "--crop", "--dry-run"]) == 1
    assert "landscape" in capsys.readouterr().err
