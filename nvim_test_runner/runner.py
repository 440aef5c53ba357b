"""TestRunner — resolve dependencies, discover tests, run them, aggregate."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

import structlog

from nvim_test_runner.aggregator import Summary, aggregate
from nvim_test_runner.discovery import discover_tests
from nvim_test_runner.executor import Outcome, ParallelExecutor, ensure_editor
from nvim_test_runner.git import GitClient
from nvim_test_runner.models.config import CONFIG_FILENAME, RunnerConfig, load_config
from nvim_test_runner.progress import ProgressTracker
from nvim_test_runner.resolver import EXTERNAL_DEP_DIR, DependencyResolver, Resolution
from nvim_test_runner.state_store import StateStore, default_state_path

log = structlog.get_logger("nvim_test_runner.runner")


@dataclass
class RunSettings:
    """Everything a run depends on, passed down explicitly."""

    cwd: Path = field(default_factory=Path.cwd)
    config_path: Path | None = None
    state_path: Path | None = None
    dep_dir: Path | None = None
    skip_remote_check: bool = False
    nvim: str = "nvim"
    jobs: int | None = None
    timeout: float | None = None
    verbose: bool = False

    def __post_init__(self) -> None:
        self.cwd = Path(self.cwd).resolve()
        self.config_path = self._under_cwd(self.config_path or CONFIG_FILENAME)
        self.state_path = (
            self._under_cwd(self.state_path) if self.state_path else default_state_path(self.cwd)
        )
        self.dep_dir = self._under_cwd(self.dep_dir or EXTERNAL_DEP_DIR)

    def _under_cwd(self, path: Path | str) -> Path:
        path = Path(path)
        return path if path.is_absolute() else self.cwd / path


class TestRunner:
    """One harness run.

    Order: config → state → resolve → persist → discover → execute. Every
    :class:`RunnerError` is raised before the first test starts; failing
    tests are never raised, only counted.
    """

    def __init__(self, settings: RunSettings, git: GitClient | None = None) -> None:
        self.settings = settings
        self.git = git or GitClient()
        self.progress = ProgressTracker()
        self.resolution: Resolution | None = None

    async def run(self, on_outcome: Callable[[Outcome], None] | None = None) -> Summary:
        s = self.settings
        progress = self.progress

        with progress.track("config") as phase:
            config: RunnerConfig = load_config(s.config_path)
            phase.detail = f"{len(config.test_dependencies)} dependencies"

        store = StateStore(s.state_path)
        with progress.track("state") as phase:
            state = store.load()
            phase.detail = f"{len(state.test_dependencies)} entries"

        resolver = DependencyResolver(
            s.cwd, git=self.git, dep_dir=s.dep_dir, skip_remote_check=s.skip_remote_check
        )
        with progress.track("resolve") as phase:
            resolution = await resolver.resolve(config.test_dependencies, state)
            self.resolution = resolution
            phase.detail = (
                f"{len(resolution.dependencies)} resolved, {len(resolution.fetched)} fetched"
            )

        with progress.track("persist"):
            store.persist(resolution.state)

        with progress.track("discover") as phase:
            test_files = discover_tests(config.test_paths, s.cwd)
            phase.detail = f"{len(test_files)} test files"

        if not test_files:
            log.info("runner.no_tests", cwd=str(s.cwd))
            progress.skip("execute", "no test files matched")
            return aggregate([])

        nvim = ensure_editor(s.nvim)
        executor = ParallelExecutor(
            resolution.runtime_paths,
            nvim=nvim,
            jobs=s.jobs,
            timeout=s.timeout,
            error_markers=config.error_markers,
            cwd=s.cwd,
        )
        with progress.track("execute") as phase:
            outcomes = await executor.run(test_files, on_outcome=on_outcome)
            summary = aggregate(outcomes)
            phase.detail = f"{summary.total} run, {summary.failed_count} failed"

        return summary
