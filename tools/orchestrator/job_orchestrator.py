"""
Job orchestrator: quota → normalize → render → upload → usage → URL.

Control flow is strictly linear per request. Every stage failure becomes a
JobResult with an ErrorKind and a reason; nothing raised below this layer
reaches the caller.

Side-effect ordering:
  - quota denial returns before any file I/O or job id exists;
  - render or upload failure returns without touching the usage counter;
  - the usage increment is attempted after a confirmed upload, and its
    outcome does not change the job result.
"""
from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional

from schemas.errors import ErrorKind, GenerationFailed, PipelineError, QuotaDenied
from schemas.pipeline_config import PipelineConfig
from schemas.render_job import JobResult, JobState, new_job_id
from schemas.render_request import ComplexityTier, QualityProfile, RenderRequest
from schemas.usage import EligibilityDecision, UsageRecord
from normalizer.source_normalizer import normalize
from quota.account_store import AccountStore
from quota.gate import check_eligibility
from renderer.executor import RenderExecutor
from storage.artifact_store import ArtifactStore
from generation.provider import SourceProvider

logger = logging.getLogger(__name__)


class JobOrchestrator:

    def __init__(
        self,
        executor: RenderExecutor,
        store: ArtifactStore,
        accounts: AccountStore,
        provider: Optional[SourceProvider] = None,
        config: Optional[PipelineConfig] = None,
    ) -> None:
        self.executor = executor
        self.store = store
        self.accounts = accounts
        self.provider = provider
        self.config = config or executor.config

    # ------------------------------------------------------------------
    # Public entry points
    # ------------------------------------------------------------------

    async def run(self, request: RenderRequest) -> JobResult:
        """Render already-generated source text for *request.account_id*."""
        try:
            _, decision = await self._check_quota(request.account_id, request.complexity)
        except QuotaDenied as exc:
            return JobResult.failure(exc.kind, exc.message, remaining=exc.remaining)
        return await self._guarded(self._render_and_store(request, decision))

    async def generate(
        self,
        prompt: str,
        account_id: str,
        complexity: "ComplexityTier | str" = ComplexityTier.BASIC,
        quality: "QualityProfile | str" = QualityProfile.MEDIUM,
    ) -> JobResult:
        """Ask the provider for scene source, then run it through the pipeline."""
        try:
            complexity = ComplexityTier(complexity)
        except ValueError:
            logger.info("account %s: unknown complexity tier %r", account_id, complexity)
            return JobResult.failure(ErrorKind.QUOTA_DENIED, f"unknown complexity tier {complexity!r}")
        try:
            quality = QualityProfile(quality)
        except ValueError:
            logger.warning("account %s: unknown quality %r, rendering at medium", account_id, quality)
            quality = QualityProfile.MEDIUM
        try:
            usage, decision = await self._check_quota(account_id, complexity)
        except QuotaDenied as exc:
            return JobResult.failure(exc.kind, exc.message, remaining=exc.remaining)
        if self.provider is None:
            return JobResult.failure(ErrorKind.GENERATION_FAILED, "no source provider configured")

        plan = usage.plan_tier
        try:
            source_text = await asyncio.to_thread(self.provider.generate, prompt, complexity, plan)
        except Exception as exc:  # noqa: BLE001
            failure = exc if isinstance(exc, GenerationFailed) else GenerationFailed(f"generation failed: {exc}")
            logger.error("account %s: %s", account_id, failure.message)
            return JobResult.failure(failure.kind, failure.message)

        try:
            request = RenderRequest(
                source_text=source_text,
                complexity=complexity,
                quality=quality,
                account_id=account_id,
                plan_tier=plan,
                prompt=prompt,
            )
        except ValueError as exc:
            logger.error("account %s: unusable provider output: %s", account_id, exc)
            return JobResult.failure(ErrorKind.GENERATION_FAILED, "provider returned unusable output")
        return await self._guarded(self._render_and_store(request, decision))

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    async def _check_quota(
        self, account_id: str, complexity: "ComplexityTier | str",
    ) -> tuple[UsageRecord, EligibilityDecision]:
        """Usage record and an allowing decision, or raise QuotaDenied."""
        try:
            usage = await asyncio.to_thread(self.accounts.get_usage, account_id)
        except Exception as exc:  # noqa: BLE001
            logger.error("account %s: usage lookup failed: %s", account_id, exc)
            raise QuotaDenied(f"usage unavailable: {exc}") from exc
        if usage is None:
            raise QuotaDenied(f"unknown account {account_id}")

        decision = check_eligibility(usage, complexity)
        if not decision.allowed:
            logger.info("account %s: quota denied (%s)", account_id, decision.reason)
            raise QuotaDenied(decision.reason or "denied", remaining=decision.remaining)
        return usage, decision

    async def _render_and_store(self, request: RenderRequest, decision: EligibilityDecision) -> JobResult:
        job_id = new_job_id()
        script = normalize(request.source_text)
        logger.info("job %s: account=%s complexity=%s quality=%s extraction=%s",
                    job_id, request.account_id, request.complexity.value,
                    request.quality.value, script.extraction.value)

        job = await self.executor.execute(script, request.quality, job_id)
        if job.state is not JobState.COMPLETED:
            return JobResult.failure(
                job.error_kind or ErrorKind.RENDER_FAILED,
                job.error_message or "render failed",
                job_id=job_id,
            )

        output_path = Path(job.output_path)
        metadata = {
            "complexity": request.complexity.value,
            "quality": request.quality.value,
            "scene": job.entry_point or "",
            "estimated-duration": str(script.estimated_duration_seconds),
        }
        try:
            artifact = await asyncio.to_thread(
                self.store.upload, output_path, request.account_id, job_id, metadata,
            )
        except PipelineError as exc:
            return JobResult.failure(exc.kind, exc.message, job_id=job_id)
        except Exception as exc:  # noqa: BLE001
            logger.error("job %s: upload raised unexpectedly: %s", job_id, exc, exc_info=True)
            return JobResult.failure(ErrorKind.UPLOAD_FAILED, f"upload failed: {exc}", job_id=job_id)
        finally:
            if not self.config.keep_local_output:
                self._discard_output(output_path, job_id)

        await self._record_usage(request.account_id, job_id)

        url = await asyncio.to_thread(
            self.store.get_retrieval_url, request.account_id, job_id, self.config.url_expiry_sec,
        )
        if not url:
            logger.warning("job %s: stored as %s but no retrieval URL is available yet",
                           job_id, artifact.object_key)

        remaining = None if decision.remaining is None else max(decision.remaining - 1, 0)
        return JobResult(
            success=True,
            job_id=job_id,
            artifact_url=url or None,
            object_key=artifact.object_key,
            remaining=remaining,
            description=script.description,
            estimated_duration_seconds=script.estimated_duration_seconds,
        )

    async def _record_usage(self, account_id: str, job_id: str) -> None:
        try:
            await asyncio.to_thread(self.accounts.increment_usage, account_id)
        except Exception as exc:  # noqa: BLE001
            logger.error("job %s: usage increment for %s failed: %s", job_id, account_id, exc)

    async def _guarded(self, stage) -> JobResult:
        """Last line of defence: an unexpected bug still yields a JobResult."""
        try:
            return await stage
        except Exception as exc:  # noqa: BLE001
            logger.error("Unexpected pipeline error: %s", exc, exc_info=True)
            return JobResult.failure(ErrorKind.RENDER_FAILED, f"unexpected error: {exc}")

    @staticmethod
    def _discard_output(path: Path, job_id: str) -> None:
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            logger.warning("job %s: could not delete local output %s: %s", job_id, path, exc)
