"""
InstallState — what caskctl has installed, and how to reverse it.

Serialized to ``<state_dir>/installs.json`` and loaded on every
operation.  One ``PackageState`` per identifier ever touched; the
``record`` on it is the uninstall record written after a successful
install and dropped after a successful uninstall.

Package lifecycle:
    UNINSTALLED → DOWNLOADING → VERIFIED → INSTALLED → UNINSTALLED
    DOWNLOADING → FAILED
    VERIFIED    → FAILED
    FAILED      → DOWNLOADING   (retry, restarts from uninstalled)
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field

from caskctl.core.errors import InvalidTransition
from caskctl.core.models.descriptor import CleanupSpec, InstallTarget, UninstallSpec


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class PackageStatus(StrEnum):
    """Lifecycle states of one package."""

    UNINSTALLED = "uninstalled"
    DOWNLOADING = "downloading"
    VERIFIED = "verified"
    INSTALLED = "installed"
    FAILED = "failed"


TRANSITIONS: dict[PackageStatus, frozenset[PackageStatus]] = {
    PackageStatus.UNINSTALLED: frozenset({PackageStatus.DOWNLOADING}),
    PackageStatus.DOWNLOADING: frozenset({PackageStatus.VERIFIED, PackageStatus.FAILED}),
    PackageStatus.VERIFIED: frozenset({PackageStatus.INSTALLED, PackageStatus.FAILED}),
    PackageStatus.INSTALLED: frozenset({PackageStatus.UNINSTALLED, PackageStatus.DOWNLOADING}),
    PackageStatus.FAILED: frozenset({PackageStatus.DOWNLOADING, PackageStatus.UNINSTALLED}),
}


def can_transition(current: PackageStatus, target: PackageStatus) -> bool:
    return target in TRANSITIONS[current]


class InstallRecord(BaseModel):
    """Everything needed to reverse an installation later."""

    identifier: str
    version: str
    installed_at: str = Field(default_factory=_now_iso)
    install_target: InstallTarget
    uninstall_spec: UninstallSpec
    post_removal_cleanup: CleanupSpec | None = None
    verified: bool = False
    artifact_sha256: str = ""


class PackageState(BaseModel):
    """Runtime state of one package."""

    identifier: str
    status: PackageStatus = PackageStatus.UNINSTALLED
    version: str | None = None
    updated_at: str = Field(default_factory=_now_iso)
    record: InstallRecord | None = None
    last_error: str | None = None

    def advance(self, target: PackageStatus) -> None:
        """Move to ``target``, enforcing the lifecycle."""
        if not can_transition(self.status, target):
            raise InvalidTransition(
                f"{self.identifier}: {self.status.value} → {target.value} is not allowed"
            )
        self.status = target
        self.updated_at = _now_iso()


class InstallState(BaseModel):
    """Root state document.

    Disposable in the sense that losing it only loses uninstall records;
    it never holds anything the catalog cannot reproduce.
    """

    # ── Schema ───────────────────────────────────────────────────
    schema_version: int = 1

    # ── Timestamps ───────────────────────────────────────────────
    created_at: str = Field(default_factory=_now_iso)
    updated_at: str = Field(default_factory=_now_iso)

    # ── Packages ─────────────────────────────────────────────────
    packages: dict[str, PackageState] = Field(default_factory=dict)

    # ── Extensible metadata ──────────────────────────────────────
    metadata: dict[str, Any] = Field(default_factory=dict)

    def touch(self) -> None:
        """Update the updated_at timestamp."""
        self.updated_at = _now_iso()

    def package(self, identifier: str) -> PackageState:
        """Get or create the state entry for ``identifier``."""
        if identifier not in self.packages:
            self.packages[identifier] = PackageState(identifier=identifier)
        return self.packages[identifier]

    def installed(self) -> list[PackageState]:
        return [p for p in self.packages.values() if p.status == PackageStatus.INSTALLED]
