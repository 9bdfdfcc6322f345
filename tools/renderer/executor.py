"""
Render executor: NormalizedScript → rendered .mp4 on local disk.

One execute() call owns exactly one RenderJob:

  tmp/animation_<job_id>.py   written here, deleted here on every exit path
  tmp/media_<job_id>/         renderer scratch (partial movies, caches), same
  out/<job_id>.mp4            produced by the renderer, handed to the caller

Both directories are resolved to absolute paths up front: manim treats a
relative -o value as relative to its own media tree, not the working
directory.

All paths embed the job id, so concurrent jobs never share a file and no
locking is needed. The caller must not reuse a job id.

Failures never propagate as exceptions: the returned RenderJob is always
terminal, either COMPLETED with output_path set or FAILED with an
ErrorKind and message.
"""
from __future__ import annotations

import logging
import re
import shutil
from pathlib import Path
from typing import Optional

from schemas.errors import ErrorKind, RenderError, RenderFailed
from schemas.normalized_script import NormalizedScript
from schemas.pipeline_config import PipelineConfig
from schemas.render_job import RenderJob
from schemas.render_request import QualityProfile
from normalizer.source_normalizer import FALLBACK_CLASS_NAME
from renderer.manim_runner import diagnostic_tail, run_renderer

logger = logging.getLogger(__name__)

QUALITY_FLAGS: dict[str, str] = {
    "low": "-ql",
    "medium": "-qm",
    "high": "-qh",
}
DEFAULT_QUALITY_FLAG = QUALITY_FLAGS["medium"]

_CLASS_DECL = re.compile(r"^class\s+(\w+)\s*(?:\(([^)]*)\))?\s*:", re.MULTILINE)


def quality_flag(profile: "QualityProfile | str | None") -> str:
    """Renderer flag for *profile*; anything unrecognised gets the medium flag."""
    key = profile.value if isinstance(profile, QualityProfile) else str(profile or "").lower()
    return QUALITY_FLAGS.get(key, DEFAULT_QUALITY_FLAG)


def entry_point(executable_text: str) -> str:
    """
    Name of the scene class the renderer should run.

    Prefers the first top-level class whose bases mention Scene, then the
    first top-level class of any kind, then the fallback class name.
    """
    first: Optional[str] = None
    for match in _CLASS_DECL.finditer(executable_text):
        name, bases = match.group(1), match.group(2) or ""
        if "Scene" in bases:
            return name
        first = first or name
    return first or FALLBACK_CLASS_NAME


class RenderExecutor:
    """Runs the external renderer for one job at a time per call; safe to share."""

    def __init__(self, config: PipelineConfig) -> None:
        self.config = config
        self.temp_dir = Path(config.temp_dir).resolve()
        self.output_dir = Path(config.output_dir).resolve()

    def source_path_for(self, job_id: str) -> Path:
        return self.temp_dir / f"animation_{job_id}.py"

    def output_path_for(self, job_id: str) -> Path:
        return self.output_dir / f"{job_id}.mp4"

    def media_dir_for(self, job_id: str) -> Path:
        return self.temp_dir / f"media_{job_id}"

    def build_command(
        self, source_path: Path, entry: str, flag: str, output_path: Path, media_dir: Path,
    ) -> list[str]:
        return [
            *self.config.renderer_cmd,
            str(source_path),
            entry,
            flag,
            self.config.output_flag,
            str(output_path),
            self.config.media_flag,
            str(media_dir),
        ]

    async def execute(
        self,
        script: NormalizedScript,
        quality: "QualityProfile | str | None",
        job_id: str,
    ) -> RenderJob:
        source_path = self.source_path_for(job_id)
        output_path = self.output_path_for(job_id)
        media_dir = self.media_dir_for(job_id)
        job = RenderJob(
            job_id=job_id,
            source_path=str(source_path),
            entry_point=entry_point(script.executable_text),
            quality_flag=quality_flag(quality),
        )

        try:
            self.temp_dir.mkdir(parents=True, exist_ok=True)
            self.output_dir.mkdir(parents=True, exist_ok=True)
            source_path.write_text(script.executable_text, encoding="utf-8")
        except OSError as exc:
            logger.error("job %s: could not write scene source: %s", job_id, exc)
            job.mark_failed(ErrorKind.RENDER_START_FAILED, f"could not write scene source: {exc}")
            self._discard(source_path, job_id)
            return job

        cmd = self.build_command(source_path, job.entry_point, job.quality_flag, output_path, media_dir)
        job.mark_running()
        logger.info(
            "job %s: rendering | scene=%s | quality=%s | timeout=%gs",
            job_id, job.entry_point, job.quality_flag, self.config.render_timeout_sec,
        )

        try:
            outcome = await run_renderer(cmd, timeout=self.config.render_timeout_sec)
            job.returncode = outcome.returncode
            job.stdout_tail = diagnostic_tail(outcome.stdout)
            job.stderr_tail = diagnostic_tail(outcome.stderr)
            if not output_path.exists():
                raise RenderFailed(
                    f"renderer exited 0 but produced no file at {output_path}",
                    returncode=outcome.returncode,
                    stderr_tail=job.stderr_tail,
                )
            job.mark_completed(str(output_path))
            logger.info("job %s: render complete → %s", job_id, output_path)
        except RenderError as exc:
            if isinstance(exc, RenderFailed):
                job.returncode = exc.returncode
                job.stderr_tail = exc.stderr_tail
            logger.error("job %s: %s", job_id, exc)
            job.mark_failed(exc.kind, exc.message)
            # Partial output from a failed or killed renderer is never handed on.
            self._discard(output_path, job_id)
        finally:
            self._discard(source_path, job_id)
            self._discard_tree(media_dir, job_id)

        return job

    @staticmethod
    def _discard(path: Path, job_id: str) -> None:
        """Delete a job-owned file; a failure here is logged, never raised."""
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            logger.warning("job %s: could not delete %s: %s", job_id, path, exc)

    @staticmethod
    def _discard_tree(path: Path, job_id: str) -> None:
        """Delete the renderer scratch directory; leftovers are logged, never raised."""
        shutil.rmtree(path, ignore_errors=True)
        if path.exists():
            logger.warning("job %s: could not delete %s", job_id, path)
