"""Declarative runner config — test dependencies and test path globs."""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator, model_validator
from pydantic.alias_generators import to_camel

from nvim_test_runner.exceptions import ConfigError

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "nvim-test-runner.json"

_LOCAL_PREFIX = "file:"
_ABS_LOCAL_PREFIX = "file://"

# Written by `nvim-test-runner init`
CONFIG_TEMPLATE = {
    "testDependencies": [
        {"uri": "https://github.com/nvim-lua/plenary.nvim", "branch": "master"},
        {"uri": "file:../my-test-helpers"},
    ],
    "testPaths": ["tests/**/*.lua"],
}


class DependencySpec(BaseModel):
    """One declared test dependency: a git URI or a ``file:`` local path."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    uri: str
    branch: str | None = None
    pin: str | None = None

    @field_validator("uri", mode="before")
    @classmethod
    def _strip_uri(cls, v: str) -> str:
        v = v.strip() if isinstance(v, str) else v
        if not v:
            raise ValueError("uri must not be empty")
        return v

    @field_validator("branch", "pin", mode="before")
    @classmethod
    def _blank_is_none(cls, v: str | None) -> str | None:
        if isinstance(v, str):
            v = v.strip()
            return v or None
        return v

    @property
    def is_local(self) -> bool:
        return self.uri.startswith(_LOCAL_PREFIX)

    def local_path(self, cwd: Path) -> Path:
        """``file:///abs`` is absolute, ``file:rel`` is relative to *cwd*."""
        if self.uri.startswith(_ABS_LOCAL_PREFIX):
            return Path(self.uri[len(_ABS_LOCAL_PREFIX) :])
        return cwd / self.uri[len(_LOCAL_PREFIX) :]

    @property
    def name(self) -> str:
        """Repository basename, e.g. ``plenary.nvim`` for ``.../plenary.nvim.git``."""
        name = re.split(r"[/:]", self.uri.rstrip("/"))[-1]
        if name.endswith(".git"):
            name = name[: -len(".git")]
        if name in ("", ".", ".."):
            raise ConfigError(f"Invalid uri: {self.uri}")
        return name

    @property
    def ref_name(self) -> str:
        return f"refs/heads/{self.branch}" if self.branch else "HEAD"

    @property
    def label(self) -> str:
        text = f"{self.uri} @ {self.branch or 'HEAD'}"
        if self.pin:
            text += f" (pin {self.pin})"
        return text


class RunnerConfig(BaseModel):
    """Contents of ``nvim-test-runner.json``."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    test_dependencies: list[DependencySpec] = []
    test_paths: list[str] | None = None
    error_markers: list[str] | None = None

    @model_validator(mode="after")
    def _unique_remote_uris(self) -> RunnerConfig:
        seen: set[str] = set()
        for dep in self.test_dependencies:
            if dep.is_local:
                continue
            if dep.uri in seen:
                raise ValueError(f"test dependency {dep.uri} is declared more than once")
            seen.add(dep.uri)
        return self


def load_config(path: Path) -> RunnerConfig:
    """Load and validate the config file; a missing file yields the default config."""
    if not path.exists():
        logger.info("Config file %s not found, using default config", path)
        return RunnerConfig()

    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except OSError as e:
        raise ConfigError(f"Cannot read config file {path}: {e}") from e
    except UnicodeDecodeError as e:
        raise ConfigError(f"Config file {path} is not valid UTF-8: {e}") from e
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in config file {path}: {e}") from e

    try:
        return RunnerConfig.model_validate(raw)
    except ValidationError as e:
        raise ConfigError(f"Invalid config file {path}:\n{e}") from e
