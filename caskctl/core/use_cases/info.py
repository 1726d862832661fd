"""
Info, status and history use cases — read-only views.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from caskctl.core.catalog.catalog import CatalogCheck, check_directories
from caskctl.core.catalog.parser import dump_descriptor
from caskctl.core.config.loader import load_settings
from caskctl.core.errors import CaskError
from caskctl.core.models.descriptor import PackageDescriptor
from caskctl.core.models.state import PackageState
from caskctl.core.persistence.audit import AuditEntry
from caskctl.core.use_cases.workspace import open_workspace


@dataclass
class InfoResult:
    """One descriptor plus what is known about its installation."""

    identifier: str
    descriptor: PackageDescriptor | None = None
    state: PackageState | None = None
    source: Path | None = None
    error: CaskError | None = None

    @property
    def exit_code(self) -> int:
        return self.error.exit_code if self.error else 0

    def to_dict(self) -> dict[str, Any]:
        if self.error:
            return {"identifier": self.identifier, "error": self.error.to_dict()}
        assert self.descriptor is not None and self.state is not None
        return {
            "descriptor": self.descriptor.summary(),
            "source": str(self.source) if self.source else None,
            "state": self.state.model_dump(mode="json"),
        }


def package_info(identifier: str, config_path: Path | None = None) -> InfoResult:
    result = InfoResult(identifier=identifier)
    try:
        ws = open_workspace(config_path)
        result.descriptor = ws.catalog.get(identifier)
        result.source = ws.catalog.source_of(identifier)
        result.state = ws.executor.status(identifier)
    except CaskError as e:
        result.error = e
    return result


@dataclass
class DumpResult:
    identifier: str
    text: str = ""
    error: CaskError | None = None

    @property
    def exit_code(self) -> int:
        return self.error.exit_code if self.error else 0


def dump_package(identifier: str, config_path: Path | None = None) -> DumpResult:
    """Serialized descriptor text, as the loader read it."""
    result = DumpResult(identifier=identifier)
    try:
        ws = open_workspace(config_path)
        result.text = dump_descriptor(ws.catalog.get(identifier))
    except CaskError as e:
        result.error = e
    return result


@dataclass
class StatusResult:
    """Every package the state file knows about."""

    packages: list[PackageState] = field(default_factory=list)
    error: CaskError | None = None

    @property
    def exit_code(self) -> int:
        return self.error.exit_code if self.error else 0

    def to_dict(self) -> dict[str, Any]:
        if self.error:
            return {"error": self.error.to_dict()}
        return {"packages": [p.model_dump(mode="json") for p in self.packages]}


def get_status(config_path: Path | None = None) -> StatusResult:
    from caskctl.core.persistence.state_file import load_state

    result = StatusResult()
    try:
        settings = load_settings(config_path)
        state = load_state(settings.state_file)
    except CaskError as e:
        result.error = e
        return result
    result.packages = sorted(state.packages.values(), key=lambda p: p.identifier)
    return result


@dataclass
class CatalogListResult:
    descriptors: list[PackageDescriptor] = field(default_factory=list)
    error: CaskError | None = None

    @property
    def exit_code(self) -> int:
        return self.error.exit_code if self.error else 0

    def to_dict(self) -> dict[str, Any]:
        if self.error:
            return {"error": self.error.to_dict()}
        return {
            "descriptors": [
                {"identifier": d.identifier, "version": d.version, "name": d.canonical_name}
                for d in self.descriptors
            ]
        }


def list_catalog(config_path: Path | None = None) -> CatalogListResult:
    result = CatalogListResult()
    try:
        ws = open_workspace(config_path)
        result.descriptors = list(ws.catalog)
    except CaskError as e:
        result.error = e
    return result


def check_catalog(config_path: Path | None = None) -> CatalogCheck:
    """Validate every descriptor file, reporting all problems at once."""
    try:
        settings = load_settings(config_path)
    except CaskError as e:
        return CatalogCheck(errors=[e])
    return check_directories(settings.catalog_dirs)


def recent_history(n: int = 20, config_path: Path | None = None) -> list[AuditEntry]:
    from caskctl.core.persistence.audit import AuditWriter

    settings = load_settings(config_path)
    return AuditWriter(settings.audit_file).read_recent(n)
