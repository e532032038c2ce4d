"""Filesystem helpers."""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path

logger = logging.getLogger(__name__)


def ensure_directory(path: Path) -> Path:
    """Create a directory if it does not exist."""

    path.mkdir(parents=True, exist_ok=True)
    logger.debug("Ensured directory exists: %s", path)
    return path


def list_files_with_extensions(root: Path, extensions: set[str]) -> list[Path]:
    """Return sorted list of files in root with given extensions."""

    if not root.exists():
        return []
    files = [p for p in root.iterdir() if p.is_file() and p.suffix.lower() in extensions]
    return sorted(files)


def format_output_filename(video_path: Path, pattern: str | None, suffix: str, timestamp: int | None = None) -> str:
    """Format an output filename using optional pattern with {stem}, {ext}, {ts}."""

    stem = video_path.stem
    ext = video_path.suffix.lstrip(".")
    fields = {"stem": stem, "ext": ext}
    if timestamp is not None:
        fields["ts"] = timestamp
    name = pattern.format(**fields) if pattern else stem
    return f"{name}{suffix}"


def atomic_write_bytes(path: Path, data: bytes) -> Path:
    """Write ``data`` to ``path`` via a sibling temp file and a rename.

    A failed write leaves any previous file at ``path`` untouched.
    """

    ensure_directory(path.parent)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(data)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise
    return path


def atomic_write_text(path: Path, text: str, encoding: str = "utf-8") -> Path:
    return atomic_write_bytes(path, text.encode(encoding))
