"""ParallelExecutor — run each test file in its own headless nvim process."""

from __future__ import annotations

import asyncio
import os
import shutil
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from pathlib import Path

import structlog

from nvim_test_runner.exceptions import EditorNotFoundError

log = structlog.get_logger("nvim_test_runner.executor")

# Substrings of nvim's stderr that mark a real error rather than noise
DEFAULT_ERROR_MARKERS: tuple[str, ...] = (
    "Error detected while processing",
    "E5113:",
    "stack traceback:",
)

# Hermetic startup: no plugins, no backup/swap files, no shada/viminfo
_ISOLATION_ARGS: tuple[str, ...] = (
    "--noplugin",
    "--headless",
    "--cmd",
    "set nobackup nowritebackup noswapfile",
    "--cmd",
    'set shada="NONE"',
    "-i",
    "NONE",
)


@dataclass
class Outcome:
    """Result of one test file."""

    test_file: Path
    passed: bool
    returncode: int | None
    stdout: str = ""
    stderr: str = ""
    duration: float = 0.0
    timed_out: bool = False


def ensure_editor(nvim: str) -> str:
    """Resolve the editor executable or raise :class:`EditorNotFoundError`."""
    found = shutil.which(nvim)
    if found is None:
        raise EditorNotFoundError(f"{nvim} is not installed or not on PATH")
    return found


def _escape_option(value: str) -> str:
    # Typed through :set, which strips one level of backslashes; a comma in a
    # runtimepath entry must reach the option value as \,
    return value.replace("\\", "\\\\").replace(",", "\\\\,").replace(" ", "\\ ")


def build_command(
    test_file: Path, runtime_paths: Sequence[Path], nvim: str = "nvim"
) -> list[str]:
    """Command line running *test_file* as nvim's init script, then quitting.

    The plugin under test (the working directory) is always first on
    ``runtimepath``, followed by *runtime_paths* in order.
    """
    cmd = [nvim, *_ISOLATION_ARGS, "--cmd", "set rtp+=."]
    for path in runtime_paths:
        cmd += ["--cmd", f"set rtp+={_escape_option(str(path))}"]
    cmd += ["-u", str(test_file), "+qa"]
    return cmd


def classify(returncode: int | None, stderr: str, markers: Sequence[str]) -> bool:
    """True if the test passed.

    A non-zero exit always fails. A zero exit fails only when stderr carries
    one of *markers*; other stderr output is tolerated as noise.
    """
    if returncode != 0:
        return False
    if not stderr.strip():
        return True
    return not any(marker in stderr for marker in markers)


class ParallelExecutor:
    """Fan test files out over a bounded pool of nvim subprocesses."""

    def __init__(
        self,
        runtime_paths: Sequence[Path],
        nvim: str = "nvim",
        jobs: int | None = None,
        timeout: float | None = None,
        error_markers: Sequence[str] | None = None,
        cwd: Path | None = None,
    ) -> None:
        self.runtime_paths = list(runtime_paths)
        self.nvim = nvim
        self.jobs = jobs or os.cpu_count() or 1
        self.timeout = timeout
        self.error_markers = (
            tuple(error_markers) if error_markers is not None else DEFAULT_ERROR_MARKERS
        )
        self.cwd = cwd

    async def run(
        self,
        test_files: Sequence[Path],
        on_outcome: Callable[[Outcome], None] | None = None,
    ) -> list[Outcome]:
        """Run every test to completion; outcomes come back in completion order."""
        if not test_files:
            return []

        sem = asyncio.Semaphore(self.jobs)
        log.debug("executor.start", tests=len(test_files), jobs=self.jobs)
        log.debug("executor.runtime_paths", paths=[str(p) for p in self.runtime_paths])

        async def _run(test_file: Path) -> Outcome:
            async with sem:
                return await self.run_one(test_file)

        outcomes: list[Outcome] = []
        for coro in asyncio.as_completed([_run(f) for f in test_files]):
            outcome = await coro
            outcomes.append(outcome)
            if on_outcome is not None:
                on_outcome(outcome)
        return outcomes

    async def run_one(self, test_file: Path) -> Outcome:
        cmd = build_command(test_file, self.runtime_paths, self.nvim)
        log.debug("executor.command", test=str(test_file), cmd=cmd)
        started = time.monotonic()

        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                stdin=asyncio.subprocess.DEVNULL,
                cwd=self.cwd,
            )
        except OSError as e:
            log.warning("executor.launch_failed", test=str(test_file), error=str(e))
            return Outcome(test_file=test_file, passed=False, returncode=None, stderr=str(e))

        try:
            stdout_b, stderr_b = await asyncio.wait_for(proc.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            duration = time.monotonic() - started
            log.warning("executor.timeout", test=str(test_file), timeout=self.timeout)
            return Outcome(
                test_file=test_file,
                passed=False,
                returncode=proc.returncode,
                stderr=f"Timed out after {self.timeout}s",
                duration=duration,
                timed_out=True,
            )

        stdout = stdout_b.decode(errors="replace")
        stderr = stderr_b.decode(errors="replace")
        passed = classify(proc.returncode, stderr, self.error_markers)
        duration = time.monotonic() - started

        if not passed:
            log.debug(
                "executor.test_failed",
                test=str(test_file),
                returncode=proc.returncode,
                stderr=stderr,
            )
        elif stderr.strip():
            log.debug("executor.stderr_noise", test=str(test_file), stderr=stderr)
        return Outcome(
            test_file=test_file,
            passed=passed,
            returncode=proc.returncode,
            stdout=stdout,
            stderr=stderr,
            duration=duration,
        )
