"""Domain-specific exceptions for the vector animation pipeline."""

from pathlib import Path


class ValidationError(ValueError):
    """Raised when user-provided settings fail validation."""


class ProcessingError(RuntimeError):
    """Raised when the pipeline fails."""


class SourceUnavailable(ProcessingError):
    """Raised when the video cannot be opened, read or seeked."""


class InvalidVideoError(SourceUnavailable):
    """Raised when the selected video file is missing or unreadable."""

    def __init__(self, path: Path, reason: str | None = None):
        message = f"Invalid video file: {path}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


class RasterContextError(ProcessingError):
    """Raised when a capture surface cannot be created for a frame."""


class TraceError(ProcessingError):
    """Raised when a frame cannot be traced into vector shapes."""


class AssemblyError(ProcessingError):
    """Raised when the timeline receives empty or malformed shape input."""


class EmptyInputError(ProcessingError):
    """Raised when there are no frames to export."""


class UnexpectedResponseShape(ProcessingError):
    """Raised when a remote tracing response matches no known envelope."""


class SessionInvalidated(ProcessingError):
    """Raised when a newer sampling session replaced the one in flight."""
