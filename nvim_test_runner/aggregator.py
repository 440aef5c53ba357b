"""Collapse per-test outcomes into a run-level result."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field

from nvim_test_runner.executor import Outcome

EXIT_OK = 0
EXIT_TESTS_FAILED = 1
EXIT_HARNESS_ERROR = 2


@dataclass
class Summary:
    outcomes: list[Outcome] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.outcomes)

    @property
    def failed(self) -> list[Outcome]:
        return [o for o in self.outcomes if not o.passed]

    @property
    def passed(self) -> list[Outcome]:
        return [o for o in self.outcomes if o.passed]

    @property
    def failed_count(self) -> int:
        return len(self.failed)

    @property
    def ok(self) -> bool:
        return self.failed_count == 0

    @property
    def exit_code(self) -> int:
        return EXIT_OK if self.ok else EXIT_TESTS_FAILED


def aggregate(outcomes: Iterable[Outcome]) -> Summary:
    """Build a :class:`Summary` once every test has finished."""
    return Summary(outcomes=list(outcomes))
