"""Entry point for the video2lottie HTTP service."""

from __future__ import annotations

import logging
import sys

from . import config


def configure_logging(level: str | None = None) -> None:
    logging.basicConfig(
        level=level or config.LOG_LEVEL,
        format="[%(levelname)s] %(name)s: %(message)s",
    )


def run(host: str = "127.0.0.1", port: int = 8000) -> int:
    """Serve the tracing and export endpoints with uvicorn."""

    import uvicorn

    configure_logging()
    uvicorn.run("video2lottie.web.server:app", host=host, port=port, log_level=config.LOG_LEVEL.lower())
    return 0


if __name__ == "__main__":
    sys.exit(run())
