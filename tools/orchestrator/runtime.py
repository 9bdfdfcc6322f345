"""
Process-level wiring for the pipeline.

PipelineRuntime builds every collaborator from one PipelineConfig and owns
the object-storage client for its whole lifetime:

    with PipelineRuntime.create(config) as runtime:
        result = asyncio.run(runtime.orchestrator.run(request))

The generation provider is optional. When none is passed and the config
carries a Gemini API key, a Gemini-backed provider is built.
"""
from __future__ import annotations

import logging
from typing import Any, Optional

from schemas.pipeline_config import PipelineConfig
from generation.provider import GeminiSourceProvider, SourceProvider, build_gemini_client
from orchestrator.job_orchestrator import JobOrchestrator
from quota.account_store import JsonFileAccountStore
from renderer.executor import RenderExecutor
from storage.artifact_store import ArtifactStore
from storage.client import build_s3_client, close_client

logger = logging.getLogger(__name__)


class PipelineRuntime:

    def __init__(
        self,
        config: PipelineConfig,
        client: Any,
        store: ArtifactStore,
        accounts: JsonFileAccountStore,
        executor: RenderExecutor,
        orchestrator: JobOrchestrator,
    ) -> None:
        self.config = config
        self.client = client
        self.store = store
        self.accounts = accounts
        self.executor = executor
        self.orchestrator = orchestrator
        self._closed = False

    @classmethod
    def create(
        cls,
        config: PipelineConfig,
        provider: Optional[SourceProvider] = None,
        client: Any = None,
    ) -> "PipelineRuntime":
        """
        Build the runtime. *client* overrides the boto3 client (tests, or a
        caller that already holds one); it is still closed by close().
        """
        if client is None:
            client = build_s3_client(config.storage)
        if provider is None and config.generation.api_key:
            provider = GeminiSourceProvider(
                build_gemini_client(config.generation.api_key),
                model=config.generation.model,
            )

        store = ArtifactStore(client, config.storage.bucket, config.storage.region)
        accounts = JsonFileAccountStore(config.accounts_path)
        executor = RenderExecutor(config)
        orchestrator = JobOrchestrator(executor, store, accounts, provider=provider, config=config)
        logger.debug("Pipeline runtime ready (bucket=%s, accounts=%s)",
                     config.storage.bucket, config.accounts_path)
        return cls(config, client, store, accounts, executor, orchestrator)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        close_client(self.client)

    def __enter__(self) -> "PipelineRuntime":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
