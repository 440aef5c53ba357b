"""Pydantic models — declarative config and persisted state."""

from nvim_test_runner.models.config import DependencySpec, RunnerConfig, load_config
from nvim_test_runner.models.state import DependencyState, State

__all__ = [
    "DependencySpec",
    "DependencyState",
    "RunnerConfig",
    "State",
    "load_config",
]
