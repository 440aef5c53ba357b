"""Shared pytest fixtures for nvim-test-runner tests."""

from __future__ import annotations

import stat
from pathlib import Path

import pytest

from nvim_test_runner.exceptions import GitError

# Runs the file given to -u as a shell script, so "test files" can choose
# their own exit status and stderr.
_FAKE_NVIM = """#!/bin/sh
while [ $# -gt 0 ]; do
  if [ "$1" = "-u" ]; then
    shift
    exec sh "$1"
  fi
  shift
done
echo "no -u argument" >&2
exit 3
"""


class FakeGit:
    """In-memory stand-in for GitClient.

    ``remotes`` maps a URI to its ``ls-remote`` refs; ``commits`` holds extra
    revisions a clone of that URI can be reset to.
    """

    def __init__(self) -> None:
        self.remotes: dict[str, dict[str, str]] = {}
        self.commits: dict[str, set[str]] = {}
        self.fail_clone: set[str] = set()
        self.calls: list[tuple] = []
        self._origin: dict[Path, str] = {}

    def add_remote(self, uri: str, refs: dict[str, str], commits: tuple[str, ...] = ()) -> None:
        self.remotes[uri] = dict(refs)
        self.commits[uri] = set(commits)

    @property
    def clones(self) -> list[tuple]:
        return [c for c in self.calls if c[0] == "clone"]

    async def ensure_available(self) -> None:
        self.calls.append(("version",))

    async def ls_remote(self, uri: str) -> dict[str, str]:
        self.calls.append(("ls-remote", uri))
        if uri not in self.remotes:
            raise GitError(["git", "ls-remote", "--", uri], 128, f"fatal: repository '{uri}' not found")
        return dict(self.remotes[uri])

    async def clone(self, uri: str, target: Path, branch: str | None = None) -> None:
        self.calls.append(("clone", uri, branch, target))
        ref = f"refs/heads/{branch}" if branch else "HEAD"
        if uri in self.fail_clone or ref not in self.remotes.get(uri, {}):
            target.mkdir(parents=True, exist_ok=True)  # git leaves partial output behind
            raise GitError(["git", "clone", "--", uri, str(target)], 128, "fatal: clone failed")
        target.mkdir(parents=True)
        (target / "HEAD_COMMIT").write_text(self.remotes[uri][ref])
        self._origin[target] = uri

    async def reset_hard(self, target: Path, revision: str) -> None:
        self.calls.append(("reset", target, revision))
        uri = self._origin[target]
        known = set(self.remotes[uri].values()) | self.commits.get(uri, set())
        if revision not in known:
            raise GitError(
                ["git", "-C", str(target), "reset", "--hard", revision],
                128,
                f"fatal: ambiguous argument '{revision}': unknown revision",
            )
        (target / "HEAD_COMMIT").write_text(revision)

    async def rev_parse_head(self, target: Path) -> str:
        self.calls.append(("rev-parse", target))
        return (target / "HEAD_COMMIT").read_text()


@pytest.fixture
def fake_git() -> FakeGit:
    return FakeGit()


@pytest.fixture
def project(tmp_path: Path) -> Path:
    """An empty plugin root."""
    root = tmp_path / "plugin"
    root.mkdir()
    return root


@pytest.fixture
def fake_nvim(tmp_path: Path) -> str:
    path = tmp_path / "bin" / "nvim"
    path.parent.mkdir()
    path.write_text(_FAKE_NVIM)
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return str(path)


@pytest.fixture(autouse=True)
def _log_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the CLI's file log out of /tmp."""
    monkeypatch.setenv("NVIM_TEST_RUNNER_LOG_FILE", str(tmp_path / "runner.log"))


def write_test(root: Path, rel: str, body: str) -> Path:
    path = root / rel
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(body)
    return path
