"""Executor tests. Subprocess tests use a fake nvim that runs each test file with sh."""

from __future__ import annotations

from pathlib import Path

import pytest
from conftest import write_test

from nvim_test_runner.exceptions import EditorNotFoundError
from nvim_test_runner.executor import (
    DEFAULT_ERROR_MARKERS,
    ParallelExecutor,
    build_command,
    classify,
    ensure_editor,
)

PASS = "echo ok\nexit 0\n"
FAIL = "echo 'assertion failed' >&2\nexit 1\n"


# ── build_command ──


class TestBuildCommand:
    def test_shape(self):
        cmd = build_command(Path("tests/a.lua"), [Path("/deps/one"), Path("/deps/two")])
        assert cmd[0] == "nvim"
        assert cmd[-3:] == ["-u", "tests/a.lua", "+qa"]
        assert "--headless" in cmd
        assert "--noplugin" in cmd
        assert cmd[cmd.index("-i") + 1] == "NONE"

    def test_runtime_path_order(self):
        cmd = build_command(Path("t.lua"), [Path("/deps/one"), Path("/deps/two")], nvim="nv")
        rtp = [arg for arg in cmd if arg.startswith("set rtp+=")]
        assert rtp == ["set rtp+=.", "set rtp+=/deps/one", "set rtp+=/deps/two"]
        assert cmd[0] == "nv"

    def test_no_dependencies(self):
        cmd = build_command(Path("t.lua"), [])
        assert [arg for arg in cmd if arg.startswith("set rtp+=")] == ["set rtp+=."]

    def test_spaces_escaped(self):
        cmd = build_command(Path("t.lua"), [Path("/my deps/one")])
        assert "set rtp+=/my\\ deps/one" in cmd

    def test_commas_escaped(self):
        cmd = build_command(Path("t.lua"), [Path("/deps/a,b"), Path("/deps/c")])
        rtp = [arg for arg in cmd if arg.startswith("set rtp+=")]
        assert rtp == ["set rtp+=.", "set rtp+=/deps/a\\\\,b", "set rtp+=/deps/c"]

    def test_backslashes_escaped(self):
        cmd = build_command(Path("t.lua"), [Path("/deps/a\\b")])
        assert "set rtp+=/deps/a\\\\b" in cmd

    def test_no_swap_or_shada(self):
        cmd = build_command(Path("t.lua"), [])
        assert "set nobackup nowritebackup noswapfile" in cmd
        assert 'set shada="NONE"' in cmd


# ── classify ──


class TestClassify:
    @pytest.mark.parametrize(
        "returncode, stderr, passed",
        [
            (0, "", True),
            (0, "  \n", True),
            (0, "some deprecation warning\n", True),
            (0, "Error detected while processing /t.lua:\n", False),
            (0, "E5113: Error while calling lua chunk", False),
            (0, "stack traceback:\n\t[C]: in ?", False),
            (1, "", False),
            (1, "nothing alarming", False),
            (None, "", False),
        ],
    )
    def test_default_markers(self, returncode, stderr, passed):
        assert classify(returncode, stderr, DEFAULT_ERROR_MARKERS) is passed

    def test_custom_markers(self):
        assert classify(0, "FAILED: 1 test", ["FAILED"]) is False
        assert classify(0, "E5113: boom", ["FAILED"]) is True

    def test_no_markers_tolerates_any_stderr(self):
        assert classify(0, "E5113: boom", []) is True


class TestEnsureEditor:
    def test_missing(self, tmp_path: Path):
        with pytest.raises(EditorNotFoundError, match="not installed"):
            ensure_editor(str(tmp_path / "no-nvim"))

    def test_found(self, fake_nvim: str):
        assert ensure_editor(fake_nvim) == fake_nvim


# ── ParallelExecutor ──


class TestParallelExecutor:
    @pytest.mark.asyncio
    async def test_mixed_results(self, project: Path, fake_nvim: str):
        files = [
            write_test(project, f"tests/t{i}.lua", FAIL if i in (1, 3) else PASS)
            for i in range(5)
        ]
        outcomes = await ParallelExecutor([], nvim=fake_nvim, jobs=2).run(files)

        assert len(outcomes) == 5
        failed = sorted(o.test_file.name for o in outcomes if not o.passed)
        assert failed == ["t1.lua", "t3.lua"]
        by_name = {o.test_file.name: o for o in outcomes}
        assert by_name["t0.lua"].stdout.strip() == "ok"
        assert by_name["t1.lua"].returncode == 1
        assert "assertion failed" in by_name["t1.lua"].stderr

    @pytest.mark.asyncio
    async def test_stderr_noise_passes(self, project: Path, fake_nvim: str):
        test = write_test(project, "tests/noisy.lua", "echo 'W: deprecated' >&2\nexit 0\n")
        [outcome] = await ParallelExecutor([], nvim=fake_nvim).run([test])
        assert outcome.passed
        assert "deprecated" in outcome.stderr

    @pytest.mark.asyncio
    async def test_error_marker_fails_clean_exit(self, project: Path, fake_nvim: str):
        test = write_test(
            project, "tests/err.lua", "echo 'E5113: Error while calling lua chunk' >&2\nexit 0\n"
        )
        [outcome] = await ParallelExecutor([], nvim=fake_nvim).run([test])
        assert not outcome.passed
        assert outcome.returncode == 0

    @pytest.mark.asyncio
    async def test_custom_error_markers(self, project: Path, fake_nvim: str):
        test = write_test(project, "tests/t.lua", "echo 'FAILED 1' >&2\nexit 0\n")
        [outcome] = await ParallelExecutor([], nvim=fake_nvim, error_markers=["FAILED"]).run(
            [test]
        )
        assert not outcome.passed

    @pytest.mark.asyncio
    async def test_runs_in_cwd(self, project: Path, fake_nvim: str):
        test = write_test(project, "tests/t.lua", "pwd\n")
        [outcome] = await ParallelExecutor([], nvim=fake_nvim, cwd=project).run([test])
        assert Path(outcome.stdout.strip()).resolve() == project.resolve()

    @pytest.mark.asyncio
    async def test_timeout(self, project: Path, fake_nvim: str):
        test = write_test(project, "tests/hang.lua", "exec sleep 30\n")
        [outcome] = await ParallelExecutor([], nvim=fake_nvim, timeout=0.5).run([test])
        assert not outcome.passed
        assert outcome.timed_out
        assert "Timed out" in outcome.stderr

    @pytest.mark.asyncio
    async def test_launch_failure_is_failed_outcome(self, project: Path, tmp_path: Path):
        test = write_test(project, "tests/t.lua", PASS)
        [outcome] = await ParallelExecutor([], nvim=str(tmp_path / "no-nvim")).run([test])
        assert not outcome.passed
        assert outcome.returncode is None
        assert outcome.stderr

    @pytest.mark.asyncio
    async def test_on_outcome_called_per_test(self, project: Path, fake_nvim: str):
        files = [write_test(project, f"tests/t{i}.lua", PASS) for i in range(3)]
        seen = []
        outcomes = await ParallelExecutor([], nvim=fake_nvim, jobs=3).run(files, seen.append)
        assert seen == outcomes

    @pytest.mark.asyncio
    async def test_no_tests(self, fake_nvim: str):
        assert await ParallelExecutor([], nvim=fake_nvim).run([]) == []

    def test_default_jobs(self):
        assert ParallelExecutor([]).jobs >= 1
