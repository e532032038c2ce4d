"""Environment-driven defaults shared by the CLI and the web surface."""

from __future__ import annotations

import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parents[1]
ARTIFACTS_DIR = Path(os.environ.get("V2L_ARTIFACTS_DIR", str(BASE_DIR / "artifacts")))
UPLOADS_DIR = ARTIFACTS_DIR / "uploads"
EXPORTS_DIR = ARTIFACTS_DIR / "exports"

MAX_UPLOAD_BYTES = int(os.environ.get("V2L_MAX_UPLOAD_MB", "50")) * 1024 * 1024
MAX_FRAME_CAP = int(os.environ.get("V2L_MAX_FRAMES", "400"))

TRACE_WORKERS = int(os.environ.get("V2L_TRACE_WORKERS", "0")) or None  # None -> executor default
TRACE_EXECUTOR = os.environ.get("V2L_TRACE_EXECUTOR", "process")

REMOTE_TRACER_URL = os.environ.get("V2L_REMOTE_TRACER_URL") or None
REMOTE_TIMEOUT_SECONDS = float(os.environ.get("V2L_REMOTE_TIMEOUT", "30"))

ALLOWED_ORIGINS = [
    origin.strip()
    for origin in os.environ.get("V2L_ALLOWED_ORIGINS", "http://localhost:8000").split(",")
    if origin.strip()
]

LOG_LEVEL = os.environ.get("V2L_LOG_LEVEL", "INFO").upper()
