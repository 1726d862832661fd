"""
Configuration loader — reads caskctl.yml into Settings.

Reads YAML, validates against the Pydantic schema, and resolves
relative paths against the directory the config file lives in.  When
no config file exists, defaults relative to the working directory are
used.
"""

from __future__ import annotations

import logging
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from caskctl.core.errors import ConfigError

logger = logging.getLogger(__name__)

# Default config filename
CONFIG_FILE = "caskctl.yml"


class DownloadSettings(BaseModel):
    """Artifact retrieval knobs."""

    timeout: float = 60.0           # seconds, per socket operation
    chunk_size: int = 64 * 1024

    @field_validator("timeout", "chunk_size")
    @classmethod
    def _positive(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("must be positive")
        return value


class InstallerSettings(BaseModel):
    """Platform installer knobs."""

    target_volume: str = "/"
    use_sudo: bool = True
    timeout: int = 1800


class Settings(BaseModel):
    """Root configuration model."""

    catalog_dirs: list[Path] = Field(default_factory=lambda: [Path("Casks")])
    state_dir: Path = Path(".state")
    download: DownloadSettings = Field(default_factory=DownloadSettings)
    installer: InstallerSettings = Field(default_factory=InstallerSettings)

    # Where the config was read from (None = defaults)
    config_path: Path | None = Field(default=None, exclude=True)

    def resolved(self, base: Path) -> Settings:
        """Copy with relative paths anchored at ``base``."""
        return self.model_copy(
            update={
                "catalog_dirs": [_anchor(p, base) for p in self.catalog_dirs],
                "state_dir": _anchor(self.state_dir, base),
            }
        )

    @property
    def state_file(self) -> Path:
        return self.state_dir / "installs.json"

    @property
    def audit_file(self) -> Path:
        return self.state_dir / "audit.ndjson"


def _anchor(path: Path, base: Path) -> Path:
    path = path.expanduser()
    return path if path.is_absolute() else (base / path).resolve()


def find_config_file(start_dir: Path | None = None) -> Path | None:
    """Search for caskctl.yml starting from the given directory, walking up.

    Args:
        start_dir: Directory to start searching from (default: cwd).

    Returns:
        Path to caskctl.yml, or None if not found.
    """
    current = (start_dir or Path.cwd()).resolve()

    for _ in range(20):  # safety limit
        candidate = current / CONFIG_FILE
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            break  # filesystem root
        current = parent

    return None


def load_settings(path: Path | None = None) -> Settings:
    """Load and validate caskctl configuration.

    Args:
        path: Explicit path to caskctl.yml.  If None, searches upward and
            falls back to defaults anchored at the working directory.

    Returns:
        Settings with absolute paths.

    Raises:
        ConfigError: If an explicit file is missing, or any file is invalid.
    """
    explicit = path is not None
    if path is None:
        path = find_config_file()

    if path is None:
        logger.debug("No %s found, using defaults", CONFIG_FILE)
        return Settings().resolved(Path.cwd())

    if not path.is_file():
        if explicit:
            raise ConfigError(f"Config file not found: {path}")
        return Settings().resolved(Path.cwd())

    logger.debug("Loading settings from %s", path)

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")

    try:
        settings = Settings.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration in {path}: {e}") from e

    base = path.parent.resolve()
    settings = settings.resolved(base)
    settings.config_path = path
    logger.info("Loaded settings from %s (%d catalog dir(s))", path, len(settings.catalog_dirs))
    return settings
