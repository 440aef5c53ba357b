"""Git subprocess helpers for the dependency resolver."""

from __future__ import annotations

import asyncio
import os
from pathlib import Path

from nvim_test_runner.exceptions import GitError


def parse_ls_remote(output: str) -> dict[str, str]:
    """Turn ``git ls-remote`` output into ``{ref_name: commit_hash}``.

    Each line is ``<hash>\\t<ref>``; malformed lines are ignored.
    """
    refs: dict[str, str] = {}
    for line in output.splitlines():
        parts = line.split()
        if len(parts) >= 2:
            refs[parts[1]] = parts[0]
    return refs


class GitClient:
    """Thin async wrapper over the ``git`` executable.

    Every non-zero exit raises :class:`GitError` carrying the tool's stderr.
    """

    def __init__(self, executable: str = "git") -> None:
        self.executable = executable

    async def ensure_available(self) -> None:
        await self._run(["--version"])

    async def ls_remote(self, uri: str) -> dict[str, str]:
        return parse_ls_remote(await self._run(["ls-remote", "--", uri]))

    async def clone(self, uri: str, target: Path, branch: str | None = None) -> None:
        args = ["clone"]
        if branch:
            args += ["--branch", branch]
        await self._run(args + ["--", uri, str(target)])

    async def reset_hard(self, target: Path, revision: str) -> None:
        await self._run(["-C", str(target), "reset", "--hard", revision])

    async def rev_parse_head(self, target: Path) -> str:
        return (await self._run(["-C", str(target), "rev-parse", "HEAD"])).strip()

    async def _run(self, args: list[str]) -> str:
        """Run a git command and return its stdout."""
        cmd = [self.executable, *args]
        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                stdin=asyncio.subprocess.DEVNULL,
                env={**os.environ, "GIT_TERMINAL_PROMPT": "0"},
            )
        except OSError as e:
            raise GitError(cmd, None, str(e)) from e
        stdout, stderr = await proc.communicate()
        if proc.returncode != 0:
            raise GitError(cmd, proc.returncode, stderr.decode(errors="replace").strip())
        return stdout.decode(errors="replace")
