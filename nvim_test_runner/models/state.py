"""Persisted record of materialized remote test dependencies."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

STATE_VERSION = 1


class DependencyState(BaseModel):
    """``uri`` + ``branch`` + ``pin`` resolved to the commit ``hash`` on disk.

    ``branch`` and ``pin`` were added after ``hash``; files written before
    either existed still load, with the missing fields left as None.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    uri: str
    hash: str
    branch: str | None = None
    pin: str | None = None


class State(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    version: int = STATE_VERSION
    test_dependencies: list[DependencyState] = []

    def find(self, uri: str) -> DependencyState | None:
        for entry in self.test_dependencies:
            if entry.uri == uri:
                return entry
        return None

    def drop(self, uri: str) -> None:
        self.test_dependencies = [e for e in self.test_dependencies if e.uri != uri]

    def upsert(self, entry: DependencyState) -> None:
        """Replace the entry for ``entry.uri`` in place, or append it."""
        for i, existing in enumerate(self.test_dependencies):
            if existing.uri == entry.uri:
                self.test_dependencies[i] = entry
                return
        self.test_dependencies.append(entry)
