"""
Unit tests for renderer.executor and renderer.manim_runner.

The renderer is tests/fake_manim.py run with the current interpreter; its
behaviour is switched through $FAKE_MANIM_MODE (see that file).

Tests:
  - quality flag table and entry-point detection (pure)
  - successful render: output exists, command shape, source and renderer
    scratch removed, relative directories resolved against the working dir
  - every failure branch: classified ErrorKind, source and scratch removed,
    no output
  - timeout: RenderTimeout and the child process is gone afterwards
  - cleanup failures are logged and never change the outcome
"""
from __future__ import annotations

import asyncio
import json
import os
import time
from pathlib import Path

import pytest

from normalizer.source_normalizer import FALLBACK_CLASS_NAME, normalize
from renderer.executor import QUALITY_FLAGS, RenderExecutor, entry_point, quality_flag
from renderer.manim_runner import diagnostic_tail, get_renderer_version, run_renderer
from schemas.errors import ErrorKind, RenderFailed, RenderStartFailed, RenderTimeout
from schemas.render_job import JobState, new_job_id
from schemas.render_request import QualityProfile
from tests._fixture_builders import FAKE_MODE_ENV, fenced_model_output


@pytest.fixture
def script():
    return normalize(fenced_model_output())


@pytest.fixture
def executor(pipeline_config):
    return RenderExecutor(pipeline_config)


def _run(executor, script, quality="medium", job_id=None):
    return asyncio.run(executor.execute(script, quality, job_id or new_job_id()))


def _assert_no_job_files(executor, job):
    assert not executor.source_path_for(job.job_id).exists()
    assert not executor.media_dir_for(job.job_id).exists()
    if job.state is JobState.FAILED:
        assert not executor.output_path_for(job.job_id).exists()


def _pid_is_gone(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return True
    return False


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------

class TestQualityFlag:

    @pytest.mark.parametrize("profile, flag", [
        ("low", "-ql"),
        ("medium", "-qm"),
        ("high", "-qh"),
        (QualityProfile.HIGH, "-qh"),
        ("HIGH", "-qh"),
        ("ultra", "-qm"),
        ("", "-qm"),
        (None, "-qm"),
    ])
    def test_table_with_medium_default(self, profile, flag):
        assert quality_flag(profile) == flag

    def test_three_distinct_flags(self):
        assert len(set(QUALITY_FLAGS.values())) == 3


class TestEntryPoint:

    def test_prefers_scene_subclass(self):
        code = "class Helper:\n    pass\n\nclass Main(Scene):\n    pass"
        assert entry_point(code) == "Main"

    def test_scene_variants_count_as_scene(self):
        assert entry_point("class Zoom(MovingCameraScene):\n    pass") == "Zoom"

    def test_first_class_when_no_scene_base(self):
        assert entry_point("class Only:\n    pass\nclass Other(object):\n    pass") == "Only"

    def test_nested_classes_ignored(self):
        assert entry_point("def f():\n    class Inner(Scene):\n        pass") == FALLBACK_CLASS_NAME

    def test_fallback_when_no_class(self):
        assert entry_point("x = 1") == FALLBACK_CLASS_NAME


class TestPaths:

    def test_paths_embed_job_id(self, executor):
        assert executor.source_path_for("abc").name == "animation_abc.py"
        assert executor.output_path_for("abc").name == "abc.mp4"

    def test_distinct_jobs_never_share_paths(self, executor):
        a, b = new_job_id(), new_job_id()
        assert executor.source_path_for(a) != executor.source_path_for(b)
        assert executor.output_path_for(a) != executor.output_path_for(b)

    def test_build_command_shape(self, executor, fake_renderer_cmd):
        cmd = executor.build_command(
            Path("/t/s.py"), "Main", "-qh", Path("/o/j.mp4"), Path("/t/media_j"),
        )
        assert cmd == [
            *fake_renderer_cmd, "/t/s.py", "Main", "-qh",
            "-o", "/o/j.mp4", "--media_dir", "/t/media_j",
        ]

    def test_media_dir_is_job_scoped_under_temp_dir(self, executor):
        media = executor.media_dir_for("abc")
        assert media.parent == executor.temp_dir
        assert media != executor.media_dir_for("abd")

    def test_relative_dirs_become_absolute(self, pipeline_config, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        config = pipeline_config.model_copy(update={"temp_dir": Path("tmp"), "output_dir": Path("out")})
        executor = RenderExecutor(config)
        cmd = executor.build_command(
            executor.source_path_for("j"), "Main", "-qm",
            executor.output_path_for("j"), executor.media_dir_for("j"),
        )
        output_arg = Path(cmd[cmd.index("-o") + 1])
        assert output_arg.is_absolute()
        assert output_arg == (tmp_path / "out" / "j.mp4").resolve()
        assert Path(cmd[cmd.index("--media_dir") + 1]).is_absolute()

    def test_relative_output_dir_render_lands_in_working_dir(self, pipeline_config, script, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        config = pipeline_config.model_copy(update={"temp_dir": Path("tmp"), "output_dir": Path("out")})
        job = _run(RenderExecutor(config), script, job_id="job-rel")
        assert job.state is JobState.COMPLETED
        assert Path(job.output_path) == (tmp_path / "out" / "job-rel.mp4").resolve()
        assert (tmp_path / "out" / "job-rel.mp4").exists()


# ---------------------------------------------------------------------------
# execute()
# ---------------------------------------------------------------------------

class TestExecuteSuccess:

    def test_output_exists_and_source_removed(self, executor, script):
        job = _run(executor, script, quality="high", job_id="job-ok")
        assert job.state is JobState.COMPLETED
        assert job.error_kind is None
        assert Path(job.output_path).exists()
        assert job.returncode == 0
        _assert_no_job_files(executor, job)

    def test_renderer_saw_script_scene_and_flag(self, executor, script):
        job = _run(executor, script, quality="high", job_id="job-args")
        record = json.loads(Path(job.output_path).read_text(encoding="utf-8"))
        assert record["scene"] == "DrawCircle"
        assert record["quality_flag"] == "-qh"
        assert record["source_text"] == script.executable_text
        assert record["argv"][0] == str(executor.source_path_for("job-args"))

    def test_renderer_scratch_removed_after_success(self, executor, script):
        job = _run(executor, script, job_id="job-media")
        record = json.loads(Path(job.output_path).read_text(encoding="utf-8"))
        assert record["media_dir"] == str(executor.media_dir_for("job-media"))
        assert not executor.media_dir_for("job-media").exists()
        assert [p.name for p in executor.temp_dir.iterdir()] == []

    def test_stdout_kept_for_diagnostics(self, executor, script):
        job = _run(executor, script)
        assert "File ready at" in job.stdout_tail

    def test_concurrent_jobs_are_independent(self, executor, script):
        async def both():
            return await asyncio.gather(
                executor.execute(script, "low", "job-a"),
                executor.execute(script, "high", "job-b"),
            )

        job_a, job_b = asyncio.run(both())
        assert job_a.state is JobState.COMPLETED
        assert job_b.state is JobState.COMPLETED
        assert job_a.output_path != job_b.output_path
        assert json.loads(Path(job_b.output_path).read_text())["quality_flag"] == "-qh"


class TestExecuteFailures:

    def test_nonzero_exit_is_render_failed(self, executor, script, monkeypatch):
        monkeypatch.setenv(FAKE_MODE_ENV, "fail")
        job = _run(executor, script)
        assert job.state is JobState.FAILED
        assert job.error_kind is ErrorKind.RENDER_FAILED
        assert job.returncode == 1
        assert "NameError" in job.stderr_tail
        _assert_no_job_files(executor, job)

    def test_exit_zero_without_output_is_render_failed(self, executor, script, monkeypatch):
        monkeypatch.setenv(FAKE_MODE_ENV, "no_output")
        job = _run(executor, script)
        assert job.error_kind is ErrorKind.RENDER_FAILED
        assert "produced no file" in job.error_message
        _assert_no_job_files(executor, job)

    def test_partial_output_is_discarded(self, executor, script, monkeypatch):
        monkeypatch.setenv(FAKE_MODE_ENV, "partial")
        job = _run(executor, script, job_id="job-partial")
        assert job.error_kind is ErrorKind.RENDER_FAILED
        assert job.returncode == 2
        assert not executor.output_path_for("job-partial").exists()
        _assert_no_job_files(executor, job)

    def test_missing_binary_is_render_start_failed(self, pipeline_config, script):
        config = pipeline_config.model_copy(update={"renderer_cmd": ["/nonexistent/bin/manim"]})
        executor = RenderExecutor(config)
        job = _run(executor, script)
        assert job.error_kind is ErrorKind.RENDER_START_FAILED
        _assert_no_job_files(executor, job)

    def test_unwritable_temp_dir_is_render_start_failed(self, pipeline_config, script, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")
        config = pipeline_config.model_copy(update={"temp_dir": blocker / "sub"})
        job = _run(RenderExecutor(config), script)
        assert job.state is JobState.FAILED
        assert job.error_kind is ErrorKind.RENDER_START_FAILED

    def test_timeout_kills_renderer(self, pipeline_config, script, monkeypatch):
        monkeypatch.setenv(FAKE_MODE_ENV, "hang")
        config = pipeline_config.model_copy(update={"render_timeout_sec": 3.0})
        executor = RenderExecutor(config)

        started = time.monotonic()
        job = _run(executor, script, job_id="job-hang")
        elapsed = time.monotonic() - started

        assert job.state is JobState.FAILED
        assert job.error_kind is ErrorKind.RENDER_TIMEOUT
        assert elapsed < 60
        pid = int(Path(str(executor.output_path_for("job-hang")) + ".pid").read_text())
        assert _pid_is_gone(pid)
        _assert_no_job_files(executor, job)

    def test_cleanup_failure_does_not_mask_result(self, executor, script, monkeypatch, caplog):
        def refuse(self, missing_ok=False):
            raise PermissionError("read-only filesystem")

        monkeypatch.setattr(Path, "unlink", refuse)
        job = _run(executor, script)
        assert job.state is JobState.COMPLETED
        assert "could not delete" in caplog.text


# ---------------------------------------------------------------------------
# manim_runner
# ---------------------------------------------------------------------------

class TestRunRenderer:

    def test_nonzero_exit_raises_render_failed(self, fake_renderer_cmd, tmp_path, monkeypatch):
        monkeypatch.setenv(FAKE_MODE_ENV, "fail")
        cmd = [*fake_renderer_cmd, "s.py", "Scene1", "-qm", "-o", str(tmp_path / "o.mp4")]
        with pytest.raises(RenderFailed) as excinfo:
            asyncio.run(run_renderer(cmd, timeout=30))
        assert excinfo.value.returncode == 1
        assert excinfo.value.kind is ErrorKind.RENDER_FAILED

    def test_timer_loses_to_fast_process(self, fake_renderer_cmd, tmp_path, monkeypatch):
        monkeypatch.setenv(FAKE_MODE_ENV, "no_output")
        cmd = [*fake_renderer_cmd, "s.py", "Scene1", "-qm", "-o", str(tmp_path / "o.mp4")]
        outcome = asyncio.run(run_renderer(cmd, timeout=30))
        assert outcome.returncode == 0

    def test_timeout_raises_and_reaps(self, fake_renderer_cmd, tmp_path, monkeypatch):
        monkeypatch.setenv(FAKE_MODE_ENV, "hang")
        out = tmp_path / "o.mp4"
        cmd = [*fake_renderer_cmd, "s.py", "Scene1", "-qm", "-o", str(out)]
        with pytest.raises(RenderTimeout):
            asyncio.run(run_renderer(cmd, timeout=3.0))
        assert _pid_is_gone(int(Path(str(out) + ".pid").read_text()))

    def test_spawn_failure(self, tmp_path):
        with pytest.raises(RenderStartFailed):
            asyncio.run(run_renderer([str(tmp_path / "missing-binary")], timeout=5))

    def test_version(self, fake_renderer_cmd):
        assert get_renderer_version(fake_renderer_cmd) == "0.18.1"

    def test_version_missing_binary(self, tmp_path):
        with pytest.raises(RenderStartFailed):
            get_renderer_version([str(tmp_path / "missing-binary")])

    def test_diagnostic_tail(self):
        assert diagnostic_tail("abcdef", 3) == "def"
        assert diagnostic_tail("ab", 3) == "ab"


@pytest.mark.slow
class TestRealManim:

    @pytest.fixture(autouse=True)
    def _need_manim(self, require_manim): ...

    def test_renders_circle_scene(self, pipeline_config, script, tmp_path):
        config = pipeline_config.model_copy(update={
            "renderer_cmd": ["manim", "render"],
            "render_timeout_sec": 300,
        })
        job = _run(RenderExecutor(config), script, quality="low")
        assert job.state is JobState.COMPLETED, job.stderr_tail
        assert not list(config.temp_dir.iterdir())
