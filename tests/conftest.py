"""
Shared test fixtures and configuration.
"""

import hashlib
import logging
from collections.abc import Callable
from pathlib import Path

import pytest

from caskctl.adapters.mock import MockAdapter
from caskctl.adapters.registry import AdapterRegistry
from caskctl.core.catalog.catalog import Catalog
from caskctl.core.config.loader import Settings
from caskctl.core.engine.executor import PackageExecutor
from caskctl.core.persistence.audit import AuditWriter
from caskctl.core.persistence.state_file import StateStore

from tests.helpers import ARTIFACT_BYTES, cask_text


@pytest.fixture(autouse=True)
def _restore_root_logger():
    """CLI invocations reconfigure the root logger; undo that afterwards."""
    root = logging.getLogger()
    level = root.level
    yield
    for h in root.handlers[:]:
        if type(h) in (logging.StreamHandler, logging.FileHandler):
            root.removeHandler(h)
            h.close()
    root.setLevel(level)


@pytest.fixture
def fixtures_dir() -> Path:
    """Return the test fixtures directory."""
    return Path(__file__).parent / "fixtures"


@pytest.fixture
def sample_text(fixtures_dir: Path) -> str:
    """The SF Arabic descriptor, exactly as shipped."""
    return (fixtures_dir / "Casks" / "font-sf-arabic.rb").read_text(encoding="utf-8")


@pytest.fixture
def artifact(tmp_path: Path) -> Path:
    """A local artifact file reachable through a file:// URL."""
    path = tmp_path / "remote" / "SF-Arabic.dmg"
    path.parent.mkdir()
    path.write_bytes(ARTIFACT_BYTES)
    return path


@pytest.fixture
def artifact_sha256() -> str:
    return hashlib.sha256(ARTIFACT_BYTES).hexdigest()


@pytest.fixture
def make_cask(tmp_path: Path) -> Callable[..., Path]:
    """Write a descriptor file into ``tmp_path/Casks`` and return its path."""
    casks = tmp_path / "Casks"
    casks.mkdir(exist_ok=True)

    def _make(identifier: str = "font-sf-arabic", **kwargs) -> Path:
        path = casks / f"{identifier}.rb"
        path.write_text(cask_text(identifier, **kwargs), encoding="utf-8")
        return path

    return _make


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(catalog_dirs=[tmp_path / "Casks"], state_dir=tmp_path / ".state")


@pytest.fixture
def mock_adapter() -> MockAdapter:
    return MockAdapter(adapter_name="pkg")


@pytest.fixture
def make_executor(settings: Settings, mock_adapter: MockAdapter) -> Callable[[], PackageExecutor]:
    """Build an executor over whatever is in ``tmp_path/Casks``, with a mock installer."""

    def _make() -> PackageExecutor:
        registry = AdapterRegistry()
        registry.register(mock_adapter)
        return PackageExecutor(
            Catalog.from_directories(settings.catalog_dirs),
            StateStore(settings.state_file),
            registry,
            settings=settings,
            audit=AuditWriter(settings.audit_file),
            sudo_password="",
        )

    return _make
