"""DependencyResolver — materialize declared test dependencies on disk.

Remote dependencies are cloned under ``.test/external-dep`` and reused across
runs for as long as the state record says the on-disk copy still matches the
remote:

* pinned — the stored pin equals the requested pin (the branch head may move);
* unpinned — the stored branch and branch-head hash equal the ones just
  queried with ``git ls-remote``.

Anything else deletes the stale copy and clones again. Dependencies are
processed one at a time: the target directories and the state record are
mutated here and must not race.
"""

from __future__ import annotations

import hashlib
import shutil
from dataclasses import dataclass, field
from pathlib import Path

import structlog

from nvim_test_runner.exceptions import GitError, ResolutionError
from nvim_test_runner.git import GitClient
from nvim_test_runner.models.config import DependencySpec
from nvim_test_runner.models.state import DependencyState, State

log = structlog.get_logger("nvim_test_runner.resolver")

EXTERNAL_DEP_DIR = ".test/external-dep"


@dataclass
class ResolvedDependency:
    """A dependency exposed to tests through ``runtimepath``."""

    path: Path
    spec: DependencySpec
    cached: bool = False


@dataclass
class Resolution:
    """Result of one resolver run."""

    dependencies: list[ResolvedDependency]
    state: State
    fetched: list[str] = field(default_factory=list)

    @property
    def runtime_paths(self) -> list[Path]:
        return [d.path for d in self.dependencies]


class DependencyResolver:
    def __init__(
        self,
        cwd: Path,
        git: GitClient | None = None,
        dep_dir: Path | None = None,
        skip_remote_check: bool = False,
    ) -> None:
        self.cwd = Path(cwd)
        self.git = git or GitClient()
        self.dep_dir = Path(dep_dir) if dep_dir else self.cwd / EXTERNAL_DEP_DIR
        self.skip_remote_check = skip_remote_check
        self._git_checked = False

    def target_dir(self, spec: DependencySpec) -> Path:
        """``<dep_dir>/<name>-<uri digest>``; the digest keeps equal basenames apart."""
        digest = hashlib.sha1(spec.uri.encode()).hexdigest()[:8]
        return self.dep_dir / f"{spec.name}-{digest}"

    async def resolve(self, dependencies: list[DependencySpec], state: State) -> Resolution:
        """Resolve *dependencies* in declaration order against the loaded *state*.

        The returned ``Resolution.state`` is a new record; *state* is not mutated.
        Raises :class:`ResolutionError` (or :class:`ConfigError` for a malformed
        URI) on the first remote dependency that cannot be materialized.
        """
        resolution = Resolution(dependencies=[], state=state.model_copy(deep=True))
        for spec in dependencies:
            log.debug("resolver.dependency", uri=spec.uri, branch=spec.branch, pin=spec.pin)
            if spec.is_local:
                resolved = self._resolve_local(spec)
            elif self.skip_remote_check:
                resolved = self._resolve_offline(spec, state)
            else:
                resolved = await self._resolve_remote(spec, state, resolution)
            if resolved is not None:
                resolution.dependencies.append(resolved)
        return resolution

    # ── local ────────────────────────────────────────────────────────────

    def _resolve_local(self, spec: DependencySpec) -> ResolvedDependency | None:
        path = spec.local_path(self.cwd)
        if not path.exists():
            log.warning("resolver.local_missing", uri=spec.uri, path=str(path))
            return None
        if not path.is_dir():
            log.warning("resolver.local_not_directory", uri=spec.uri, path=str(path))
            return None
        log.info("resolver.local", uri=spec.uri, path=str(path))
        return ResolvedDependency(path=path.resolve(), spec=spec)

    # ── remote, trusting the state record ────────────────────────────────

    def _resolve_offline(self, spec: DependencySpec, state: State) -> ResolvedDependency:
        entry = state.find(spec.uri)
        if entry is None or entry.branch != spec.branch or (spec.pin and entry.pin != spec.pin):
            raise ResolutionError(f"State does not exist for test dependency {spec.label}")
        target = self.target_dir(spec)
        if not target.is_dir():
            raise ResolutionError(
                f"State exists for test dependency {spec.label} but {target} is missing; "
                "run without --skip-remote-check to fetch it again"
            )
        log.debug("resolver.offline_hit", uri=spec.uri, hash=entry.hash, path=str(target))
        return ResolvedDependency(path=target, spec=spec, cached=True)

    # ── remote, checked against ls-remote ────────────────────────────────

    async def _resolve_remote(
        self, spec: DependencySpec, state: State, resolution: Resolution
    ) -> ResolvedDependency:
        target = self.target_dir(spec)

        if not self._git_checked:
            await self.git.ensure_available()
            self._git_checked = True

        try:
            refs = await self.git.ls_remote(spec.uri)
        except GitError as e:
            raise ResolutionError(
                f"{spec.uri} is not a valid git repository or is unreachable:\n{e.stderr}"
            ) from e

        head_hash = refs.get(spec.ref_name)
        if head_hash is None:
            raise ResolutionError(f"Branch {spec.ref_name} does not exist in repository {spec.uri}")

        entry = state.find(spec.uri)
        if entry is not None and target.is_dir() and self._is_fresh(spec, entry, head_hash):
            log.debug("resolver.cache_hit", uri=spec.uri, hash=entry.hash, path=str(target))
            return ResolvedDependency(path=target, spec=spec, cached=True)

        if target.exists():
            log.info("resolver.overwriting", uri=spec.uri, path=str(target))
            try:
                if target.is_dir():
                    shutil.rmtree(target)
                else:
                    target.unlink()
            except OSError as e:
                raise ResolutionError(f"Cannot remove stale copy {target}: {e}") from e
        resolution.state.drop(spec.uri)

        materialized = await self._fetch(spec, target)
        if not spec.pin and materialized != head_hash:
            log.debug(
                "resolver.head_moved", uri=spec.uri, queried=head_hash, materialized=materialized
            )
        resolution.state.upsert(
            DependencyState(uri=spec.uri, hash=materialized, branch=spec.branch, pin=spec.pin)
        )
        resolution.fetched.append(spec.uri)
        return ResolvedDependency(path=target, spec=spec)

    @staticmethod
    def _is_fresh(spec: DependencySpec, entry: DependencyState, head_hash: str) -> bool:
        if spec.pin:
            return entry.pin == spec.pin
        return entry.pin is None and entry.branch == spec.branch and entry.hash == head_hash

    async def _fetch(self, spec: DependencySpec, target: Path) -> str:
        """Clone (and pin) *spec* into *target*, returning the checked-out commit."""
        log.info("resolver.cloning", uri=spec.uri, branch=spec.branch or "HEAD", path=str(target))
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ResolutionError(f"Cannot create dependency directory {target.parent}: {e}") from e
        try:
            await self.git.clone(spec.uri, target, branch=spec.branch)
            if spec.pin:
                log.info("resolver.pinning", uri=spec.uri, pin=spec.pin)
                await self.git.reset_hard(target, spec.pin)
            return await self.git.rev_parse_head(target)
        except GitError:
            # No state entry exists for a half-fetched copy; never leave one behind
            shutil.rmtree(target, ignore_errors=True)
            raise
