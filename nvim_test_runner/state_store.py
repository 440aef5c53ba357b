"""Load and persist the dependency state file."""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path

from pydantic import ValidationError

from nvim_test_runner.exceptions import StatePersistenceError
from nvim_test_runner.models.state import State

logger = logging.getLogger(__name__)

STATE_DIR = ".test"
STATE_FILENAME = "state.json"


def default_state_path(cwd: Path) -> Path:
    return cwd / STATE_DIR / STATE_FILENAME


class StateStore:
    """Single local JSON file holding the last resolved remote dependencies."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def load(self) -> State:
        """Return the stored state, or an empty one if the file is missing or unusable.

        A lost state only costs re-fetches, so a bad file is never fatal here.
        """
        try:
            content = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            logger.info("State file %s not found, creating new state", self.path)
            return State()
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("Cannot read state file %s (%s), starting from empty state", self.path, e)
            return State()

        try:
            return State.model_validate_json(content)
        except ValidationError as e:
            logger.warning(
                "State file %s is not valid (%s), starting from empty state",
                self.path,
                e.errors()[0]["msg"] if e.errors() else e,
            )
            return State()

    def persist(self, state: State) -> None:
        """Overwrite the state file with *state* via write-to-temp + rename."""
        payload = state.model_dump_json(by_alias=True, indent=2) + "\n"
        tmp_name: str | None = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self.path.name}.", suffix=".tmp", dir=self.path.parent
            )
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(payload)
            os.replace(tmp_name, self.path)
            tmp_name = None
        except OSError as e:
            raise StatePersistenceError(f"Cannot write state file {self.path}: {e}") from e
        finally:
            if tmp_name is not None and os.path.exists(tmp_name):
                os.unlink(tmp_name)
        logger.debug("Wrote state file %s (%d entries)", self.path, len(state.test_dependencies))
