"""
Bounded runner for the external manim renderer.

Standalone module — imports nothing from the executor or orchestrator.
One call spawns one child process in its own process group and races two
tasks against each other:

  - process completion  (communicate(): drains stdout/stderr, waits for exit)
  - the wall-clock timer

Whichever finishes first decides the outcome and the other is cancelled.
When the timer wins the whole process group is SIGKILLed and reaped before
RenderTimeout is raised, so nothing the renderer writes afterwards can be
trusted or observed. stdout/stderr are kept for diagnostics only; control
flow looks at the exit status and nothing else.
"""
from __future__ import annotations

import asyncio
import logging
import os
import re
import signal
import subprocess
from dataclasses import dataclass
from typing import Sequence

from schemas.errors import RenderFailed, RenderStartFailed, RenderTimeout

logger = logging.getLogger(__name__)

# Diagnostics kept on the job record; the full streams are only logged at debug.
DIAGNOSTIC_TAIL_CHARS = 3000

# Grace period for reaping a killed process group.
_REAP_TIMEOUT_SEC = 5.0


@dataclass(frozen=True)
class ProcessOutcome:
    returncode: int
    stdout: str
    stderr: str
    pid: int


def diagnostic_tail(text: str, limit: int = DIAGNOSTIC_TAIL_CHARS) -> str:
    return text[-limit:] if len(text) > limit else text


# ---------------------------------------------------------------------------
# Version helpers
# ---------------------------------------------------------------------------

def get_renderer_version(renderer_cmd: Sequence[str] = ("manim",)) -> str:
    """
    Return the renderer's version string (e.g. "0.18.1").

    Raises:
        RenderStartFailed: if the binary is missing or `--version` fails.
    """
    try:
        result = subprocess.run(
            [*renderer_cmd, "--version"],
            capture_output=True,
            text=True,
            timeout=30,
            check=True,
        )
    except FileNotFoundError:
        raise RenderStartFailed(
            f"renderer {renderer_cmd[0]!r} not found on PATH. "
            "Install manim (e.g. `pip install manim`)."
        )
    except (subprocess.CalledProcessError, subprocess.TimeoutExpired) as exc:
        raise RenderStartFailed(f"{' '.join(renderer_cmd)} --version failed: {exc}")

    # Typical output: "Manim Community v0.18.1"
    m = re.search(r"v?(\d+\.\d+(?:\.\d+)?)", result.stdout)
    return m.group(1) if m else result.stdout.strip()


# ---------------------------------------------------------------------------
# Runner
# ---------------------------------------------------------------------------

async def run_renderer(cmd: Sequence[str], timeout: float) -> ProcessOutcome:
    """
    Run *cmd* to completion or until *timeout* seconds elapse.

    Returns:
        ProcessOutcome for a zero exit status.

    Raises:
        RenderStartFailed: the process could not be spawned.
        RenderTimeout:     the timer fired first; the process group is dead.
        RenderFailed:      non-zero exit status.
    """
    logger.debug("renderer cmd: %s", " ".join(str(c) for c in cmd))

    try:
        process = await asyncio.create_subprocess_exec(
            *[str(c) for c in cmd],
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            start_new_session=True,  # own process group → clean kill on timeout
        )
    except OSError as exc:
        raise RenderStartFailed(f"failed to start renderer {cmd[0]!r}: {exc}") from exc

    completion = asyncio.ensure_future(process.communicate())
    timer = asyncio.ensure_future(asyncio.sleep(timeout))
    try:
        done, _ = await asyncio.wait({completion, timer}, return_when=asyncio.FIRST_COMPLETED)
    except BaseException:
        # Caller cancelled us: never leave the renderer running.
        timer.cancel()
        await _terminate(process, completion)
        raise

    # A finished process wins even if the timer expired in the same tick;
    # only one of the two branches below can ever run for a given call.
    if completion in done:
        timer.cancel()
        stdout_b, stderr_b = completion.result()
    else:
        await _terminate(process, completion)
        raise RenderTimeout(f"renderer exceeded timeout of {timeout:g}s — killed (pid {process.pid})")

    stdout = stdout_b.decode("utf-8", errors="replace")
    stderr = stderr_b.decode("utf-8", errors="replace")
    logger.debug("renderer pid=%d rc=%s stdout=%d chars stderr=%d chars",
                 process.pid, process.returncode, len(stdout), len(stderr))

    if process.returncode != 0:
        raise RenderFailed(
            f"renderer exited {process.returncode}",
            returncode=process.returncode,
            stderr_tail=diagnostic_tail(stderr),
        )
    return ProcessOutcome(
        returncode=process.returncode,
        stdout=stdout,
        stderr=stderr,
        pid=process.pid,
    )


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

async def _terminate(process: asyncio.subprocess.Process, completion: "asyncio.Future") -> None:
    """Kill the process group, cancel the pending communicate() and reap the child."""
    _kill_group(process)
    completion.cancel()
    await asyncio.gather(completion, return_exceptions=True)
    try:
        await asyncio.wait_for(process.wait(), timeout=_REAP_TIMEOUT_SEC)
    except asyncio.TimeoutError:
        logger.warning("renderer pid=%d did not exit after SIGKILL", process.pid)


def _kill_group(process: asyncio.subprocess.Process) -> None:
    """Kill the process and its entire process group (SIGKILL)."""
    if process.returncode is not None:
        return
    try:
        os.killpg(os.getpgid(process.pid), signal.SIGKILL)
    except ProcessLookupError:
        pass  # already dead
    except OSError as exc:
        logger.warning("Could not kill renderer process group: %s", exc)
        try:
            process.kill()
        except ProcessLookupError:
            pass
