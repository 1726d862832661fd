"""
Workspace — settings, catalog, state and executor wired together.

Every use case starts here.  Nothing is global: the catalog, the state
store and the executor are built per invocation and passed down.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from caskctl.adapters.macos.pkg import PkgInstallerAdapter
from caskctl.adapters.registry import AdapterRegistry
from caskctl.core.catalog.catalog import Catalog
from caskctl.core.config.loader import Settings, load_settings
from caskctl.core.engine.executor import PackageExecutor
from caskctl.core.persistence.audit import AuditWriter
from caskctl.core.persistence.state_file import StateStore

logger = logging.getLogger(__name__)


@dataclass
class Workspace:
    settings: Settings
    catalog: Catalog
    store: StateStore
    audit: AuditWriter
    registry: AdapterRegistry
    executor: PackageExecutor


def default_registry(mock_mode: bool = False) -> AdapterRegistry:
    registry = AdapterRegistry(mock_mode=mock_mode)
    registry.register(PkgInstallerAdapter())
    return registry


def open_workspace(
    config_path: Path | None = None,
    *,
    mock_mode: bool = False,
    registry: AdapterRegistry | None = None,
    settings: Settings | None = None,
) -> Workspace:
    """Load settings and the catalog and build an executor.

    Raises:
        ConfigError: caskctl.yml is invalid.
        DescriptorError, DuplicateDescriptor: a catalog file is invalid.
    """
    settings = settings or load_settings(config_path)
    catalog = Catalog.from_directories(settings.catalog_dirs)
    store = StateStore(settings.state_file)
    audit = AuditWriter(settings.audit_file)
    registry = registry or default_registry(mock_mode)

    executor = PackageExecutor(
        catalog,
        store,
        registry,
        settings=settings,
        audit=audit,
    )
    logger.debug("Workspace ready: %d descriptor(s), state at %s", len(catalog), store.path)
    return Workspace(
        settings=settings,
        catalog=catalog,
        store=store,
        audit=audit,
        registry=registry,
        executor=executor,
    )
