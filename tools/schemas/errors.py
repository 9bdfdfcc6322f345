"""
Error taxonomy shared by every render-job stage.

Each stage raises one of these typed exceptions at its own boundary.
RenderExecutor folds render failures into a terminal RenderJob;
JobOrchestrator folds everything into a JobResult, so callers only ever
see ErrorKind values and reason strings, never a traceback.

NormalizationFallback is deliberately not an exception: the normalizer
downgrades to its fallback scene and logs a warning.
"""
from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    GENERATION_FAILED = "generation_failed"
    RENDER_START_FAILED = "render_start_failed"
    RENDER_TIMEOUT = "render_timeout"
    RENDER_FAILED = "render_failed"
    UPLOAD_FAILED = "upload_failed"
    QUOTA_DENIED = "quota_denied"
    NOT_FOUND = "not_found"


class PipelineError(Exception):
    """Base class; *kind* identifies the failure for result objects."""

    kind: ErrorKind

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"[{self.kind.value}] {message}")


class GenerationFailed(PipelineError):
    """The generative source provider raised or returned nothing usable."""
    kind = ErrorKind.GENERATION_FAILED


class RenderError(PipelineError):
    """Base for the three render outcomes that are not success."""


class RenderStartFailed(RenderError):
    """The renderer binary could not be spawned."""
    kind = ErrorKind.RENDER_START_FAILED


class RenderTimeout(RenderError):
    """The wall-clock limit expired; the process group was killed."""
    kind = ErrorKind.RENDER_TIMEOUT


class RenderFailed(RenderError):
    """The renderer exited non-zero (or exited 0 without producing output)."""
    kind = ErrorKind.RENDER_FAILED

    def __init__(self, message: str, returncode: int | None = None, stderr_tail: str = "") -> None:
        self.returncode = returncode
        self.stderr_tail = stderr_tail
        super().__init__(message)


class UploadFailed(PipelineError):
    kind = ErrorKind.UPLOAD_FAILED


class QuotaDenied(PipelineError):
    kind = ErrorKind.QUOTA_DENIED

    def __init__(self, message: str, remaining: int | None = None) -> None:
        self.remaining = remaining
        super().__init__(message)


class NotFound(PipelineError):
    """Lookup of an object key that does not exist."""
    kind = ErrorKind.NOT_FOUND
