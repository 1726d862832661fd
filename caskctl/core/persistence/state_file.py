"""
State file persistence — atomic read/write for InstallState.

State is stored as JSON in ``<state_dir>/installs.json``.  Writes are
atomic (write to temp file, then rename) so a crash mid-write never
leaves a truncated file.

``StateStore`` adds a process-wide lock around read-modify-write so
parallel operations on different packages do not lose each other's
updates.
"""

from __future__ import annotations

import json
import logging
import tempfile
import threading
from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path
from typing import TypeVar

from pydantic import ValidationError

from caskctl.core.errors import ConfigError
from caskctl.core.models.state import InstallState, PackageState

logger = logging.getLogger(__name__)

DEFAULT_STATE_FILE = "installs.json"

T = TypeVar("T")


def load_state(path: Path) -> InstallState:
    """Load install state from a JSON file.

    A missing file means nothing is installed yet.  A file that does not
    parse is renamed to ``<name>.corrupt-<timestamp>`` before starting
    fresh, so its uninstall records are never overwritten.

    Raises:
        ConfigError: The file exists but cannot be read or moved aside.
    """
    try:
        raw = path.read_bytes()
    except FileNotFoundError:
        logger.debug("No state file at %s, starting fresh", path)
        return InstallState()
    except OSError as e:
        raise ConfigError(f"cannot read state file {path}: {e}") from e

    try:
        state = InstallState.model_validate_json(raw)
    except ValidationError as e:
        kept = _move_aside(path)
        logger.warning("Corrupt state file %s (%d error(s)), kept as %s; starting fresh", path, e.error_count(), kept.name)
        return InstallState()

    logger.debug("Loaded state from %s (updated_at=%s)", path, state.updated_at)
    return state


def _move_aside(path: Path) -> Path:
    stamp = datetime.now(UTC).strftime("%Y%m%dT%H%M%S%f")
    kept = path.with_name(f"{path.name}.corrupt-{stamp}")
    try:
        path.replace(kept)
    except OSError as e:
        raise ConfigError(f"state file {path} is corrupt and cannot be moved aside: {e}") from e
    return kept


def save_state(state: InstallState, path: Path) -> None:
    """Save install state to a JSON file (atomic write).

    Args:
        state: The state to save.
        path: Target path for the state file.
    """
    state.touch()
    path.parent.mkdir(parents=True, exist_ok=True)

    data = state.model_dump(mode="json")
    content = json.dumps(data, indent=2, ensure_ascii=False) + "\n"

    fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=".installs_", suffix=".tmp")
    tmp = Path(tmp_path)
    try:
        with open(fd, "w", encoding="utf-8") as f:
            f.write(content)
        tmp.replace(path)
        logger.debug("State saved to %s", path)
    except Exception as e:
        tmp.unlink(missing_ok=True)
        logger.error("Failed to save state to %s: %s", path, e)
        raise


class StateStore:
    """Serialized access to one state file."""

    def __init__(self, path: Path):
        self._path = path
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def read(self) -> InstallState:
        with self._lock:
            return load_state(self._path)

    def package(self, identifier: str) -> PackageState:
        """Snapshot of one package's state (fresh entry if never seen)."""
        return self.read().package(identifier).model_copy(deep=True)

    def update(self, identifier: str, change: Callable[[PackageState], T]) -> T:
        """Apply ``change`` to a package's state and persist, atomically."""
        with self._lock:
            state = load_state(self._path)
            result = change(state.package(identifier))
            save_state(state, self._path)
            return result
