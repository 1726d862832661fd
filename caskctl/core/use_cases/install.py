"""
Install and uninstall use cases — the vertical slice behind the CLI.

Load settings and catalog, run the executor, and hand back a result
object.  Errors are captured on the result (with their kind and exit
code) rather than raised, so the CLI can render them as text or JSON.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from caskctl.adapters.registry import AdapterRegistry
from caskctl.core.engine.executor import InstallOutcome, UninstallOutcome
from caskctl.core.errors import CaskError
from caskctl.core.use_cases.workspace import Workspace, open_workspace

logger = logging.getLogger(__name__)


@dataclass
class InstallResult:
    """Result of ``install``."""

    identifier: str
    outcome: InstallOutcome | None = None
    error: CaskError | None = None

    @property
    def exit_code(self) -> int:
        return self.error.exit_code if self.error else 0

    def to_dict(self) -> dict:
        if self.error:
            return {"identifier": self.identifier, "error": self.error.to_dict()}
        assert self.outcome is not None
        return self.outcome.to_dict()


@dataclass
class UninstallResult:
    """Result of ``uninstall``."""

    identifier: str
    outcome: UninstallOutcome | None = None
    error: CaskError | None = None

    @property
    def exit_code(self) -> int:
        return self.error.exit_code if self.error else 0

    def to_dict(self) -> dict:
        if self.error:
            return {"identifier": self.identifier, "error": self.error.to_dict()}
        assert self.outcome is not None
        return self.outcome.to_dict()


def install_package(
    identifier: str,
    config_path: Path | None = None,
    *,
    force: bool = False,
    mock_mode: bool = False,
    registry: AdapterRegistry | None = None,
    workspace: Workspace | None = None,
) -> InstallResult:
    """Install one package from the catalog.

    Args:
        identifier: Cask token.
        config_path: Optional explicit caskctl.yml.
        force: Reinstall even if already installed.
        mock_mode: Route installer actions to the mock.
        registry: Pre-configured adapter registry.
        workspace: Pre-built workspace (tests).
    """
    result = InstallResult(identifier=identifier)
    try:
        ws = workspace or open_workspace(config_path, mock_mode=mock_mode, registry=registry)
        result.outcome = ws.executor.install(identifier, force=force)
    except CaskError as e:
        result.error = e
    return result


def uninstall_package(
    identifier: str,
    config_path: Path | None = None,
    *,
    zap: bool = False,
    mock_mode: bool = False,
    registry: AdapterRegistry | None = None,
    workspace: Workspace | None = None,
) -> UninstallResult:
    """Reverse a recorded installation (``zap`` also removes cleanup paths)."""
    result = UninstallResult(identifier=identifier)
    try:
        ws = workspace or open_workspace(config_path, mock_mode=mock_mode, registry=registry)
        result.outcome = ws.executor.uninstall(identifier, zap=zap)
    except CaskError as e:
        result.error = e
    return result
