"""
RenderJob and JobResult.

RenderJob tracks one execution of the external renderer. source_path is
owned exclusively by the job and is gone once the job reaches a terminal
state; output_path, when produced, is handed to the artifact store.

JobResult is the single user-visible outcome of an orchestrated request:
either an artifact URL or a reason string.
"""
from __future__ import annotations

import uuid
from enum import Enum
from typing import Optional

from pydantic import BaseModel

from schemas.errors import ErrorKind


def new_job_id() -> str:
    """Fresh opaque job identifier; embedded in every per-job path and key."""
    return uuid.uuid4().hex


class JobState(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STATES = frozenset({JobState.COMPLETED, JobState.FAILED})


class RenderJob(BaseModel):
    job_id: str
    state: JobState = JobState.PENDING
    source_path: Optional[str] = None
    output_path: Optional[str] = None
    entry_point: Optional[str] = None
    quality_flag: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    error_message: Optional[str] = None
    returncode: Optional[int] = None
    stdout_tail: str = ""     # diagnostics only; never parsed
    stderr_tail: str = ""

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def mark_running(self) -> None:
        self.state = JobState.RUNNING

    def mark_completed(self, output_path: str) -> None:
        if self.is_terminal:
            raise RuntimeError(f"job {self.job_id} already {self.state.value}")
        self.state = JobState.COMPLETED
        self.output_path = output_path

    def mark_failed(self, kind: ErrorKind, message: str) -> None:
        if self.is_terminal:
            raise RuntimeError(f"job {self.job_id} already {self.state.value}")
        self.state = JobState.FAILED
        self.error_kind = kind
        self.error_message = message


class JobResult(BaseModel):
    success: bool
    job_id: Optional[str] = None
    artifact_url: Optional[str] = None
    object_key: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    reason: Optional[str] = None
    remaining: Optional[int] = None
    description: Optional[str] = None
    estimated_duration_seconds: Optional[int] = None

    @classmethod
    def failure(
        cls,
        kind: ErrorKind,
        reason: str,
        job_id: Optional[str] = None,
        remaining: Optional[int] = None,
    ) -> "JobResult":
        return cls(
            success=False,
            job_id=job_id,
            error_kind=kind,
            reason=reason,
            remaining=remaining,
        )
