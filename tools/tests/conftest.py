"""
Shared pytest fixtures for tools/tests/.

Provides:
  - fake_renderer_cmd: runs tests/fake_manim.py with the current interpreter
  - pipeline_config: PipelineConfig rooted in tmp_path, using the fake renderer
  - fake_s3 / artifact_store / account_store: in-memory and tmp-file collaborators
  - require_manim: skip-marker for tests that need the real manim binary
"""
from __future__ import annotations

import shutil
import subprocess
import sys
from pathlib import Path

import pytest

from schemas.pipeline_config import PipelineConfig, StorageSettings
from schemas.render_request import PlanTier
from quota.account_store import JsonFileAccountStore
from storage.artifact_store import ArtifactStore
from tests._fixture_builders import FAKE_MANIM, FAKE_MODE_ENV, TEST_BUCKET, FakeS3Client


@pytest.fixture
def fake_renderer_cmd() -> list[str]:
    return [sys.executable, str(FAKE_MANIM)]


@pytest.fixture
def pipeline_config(tmp_path: Path, fake_renderer_cmd: list[str], monkeypatch) -> PipelineConfig:
    monkeypatch.setenv(FAKE_MODE_ENV, "ok")
    return PipelineConfig(
        temp_dir=tmp_path / "tmp",
        output_dir=tmp_path / "out",
        renderer_cmd=fake_renderer_cmd,
        render_timeout_sec=30,
        accounts_path=tmp_path / "accounts.json",
        storage=StorageSettings(access_key="test-key", secret_key="test-secret", bucket=TEST_BUCKET),
    )


@pytest.fixture
def fake_s3() -> FakeS3Client:
    return FakeS3Client()


@pytest.fixture
def artifact_store(fake_s3: FakeS3Client) -> ArtifactStore:
    return ArtifactStore(fake_s3, TEST_BUCKET)


@pytest.fixture
def account_store(pipeline_config: PipelineConfig) -> JsonFileAccountStore:
    store = JsonFileAccountStore(pipeline_config.accounts_path)
    store.create_account("acct-basic", PlanTier.BASIC)
    store.create_account("acct-advanced", PlanTier.ADVANCED)
    return store


@pytest.fixture
def require_manim():
    """Skip the test if the manim binary is not available on PATH."""
    if shutil.which("manim") is None:
        pytest.skip("manim not available — skipping real render test.")
    result = subprocess.run(["manim", "--version"], capture_output=True, timeout=30)
    if result.returncode != 0:
        pytest.skip("manim --version failed — skipping real render test.")
