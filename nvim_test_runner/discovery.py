"""Expand test path globs into a concrete list of test files."""

from __future__ import annotations

import glob
import logging
import os
from collections.abc import Sequence
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_TEST_PATHS: tuple[str, ...] = (
    "tests/**/*.lua",
    "test/**/*.lua",
    "lua/tests/**/*.lua",
    "lua/test/**/*.lua",
)


def discover_tests(patterns: Sequence[str] | None, root: Path) -> list[Path]:
    """Return the files matched by *patterns*, relative patterns anchored at *root*.

    Patterns keep their declared order; matches of one pattern are sorted.
    A file matched by several patterns is listed once, at its first match.
    ``None`` selects DEFAULT_TEST_PATHS; an empty list matches nothing.
    """
    root = Path(root)
    if patterns is None:
        patterns = DEFAULT_TEST_PATHS

    seen: set[str] = set()
    files: list[Path] = []
    for pattern in patterns:
        logger.debug("Test path: %s", pattern)
        try:
            matches = sorted(glob.glob(pattern, root_dir=root, recursive=True))
        except OSError as e:
            logger.error("Error expanding test path %s: %s", pattern, e)
            continue

        for match in matches:
            path = root / match
            try:
                if not path.is_file():
                    continue
            except OSError as e:
                logger.error("Error with matched file %s: %s", path, e)
                continue
            key = os.path.normcase(os.path.abspath(path))
            if key in seen:
                continue
            seen.add(key)
            logger.debug("Matched test file: %s", path)
            files.append(path)
    return files
