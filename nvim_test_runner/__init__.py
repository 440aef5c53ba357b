"""nvim-test-runner: run Neovim plugin tests in isolated headless nvim processes."""

__version__ = "0.1.0"

from nvim_test_runner.aggregator import Summary, aggregate
from nvim_test_runner.discovery import DEFAULT_TEST_PATHS, discover_tests
from nvim_test_runner.executor import Outcome, ParallelExecutor
from nvim_test_runner.models import DependencySpec, DependencyState, RunnerConfig, State
from nvim_test_runner.resolver import DependencyResolver, Resolution, ResolvedDependency
from nvim_test_runner.runner import RunSettings, TestRunner
from nvim_test_runner.state_store import StateStore

__all__ = [
    "DEFAULT_TEST_PATHS",
    "DependencyResolver",
    "DependencySpec",
    "DependencyState",
    "Outcome",
    "ParallelExecutor",
    "Resolution",
    "ResolvedDependency",
    "RunSettings",
    "RunnerConfig",
    "State",
    "StateStore",
    "Summary",
    "TestRunner",
    "aggregate",
    "discover_tests",
]
