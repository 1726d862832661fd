"""
Install/uninstall executor — the package lifecycle.

    install:    UNINSTALLED → DOWNLOADING → VERIFIED → INSTALLED
    uninstall:  INSTALLED → UNINSTALLED   (needs the stored record)

Every transition is persisted before the next step starts, so the state
file always shows how far an operation got.  Work on one identifier is
serialized through the lock registry.

Failure policy:
    fetch/verify errors     state → FAILED, install record untouched
    installer non-zero      state → FAILED, no rollback, exit detail surfaced
    no install record       UninstallRecordMissing, nothing touched
"""

from __future__ import annotations

import logging
import os
import threading
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from caskctl.adapters.registry import AdapterRegistry
from caskctl.core.catalog.catalog import Catalog
from caskctl.core.config.loader import Settings
from caskctl.core.engine.locks import LockRegistry
from caskctl.core.errors import CaskError, InstallerInvocationError, UninstallRecordMissing
from caskctl.core.fetch.download import FetchResult, scoped_fetch
from caskctl.core.models.action import Action, Receipt
from caskctl.core.models.descriptor import PackageDescriptor
from caskctl.core.models.state import InstallRecord, PackageState, PackageStatus
from caskctl.core.persistence.audit import AuditEntry, AuditWriter
from caskctl.core.persistence.state_file import StateStore

logger = logging.getLogger(__name__)

SUDO_PASSWORD_ENV = "CASKCTL_SUDO_PASSWORD"


def generate_operation_id() -> str:
    """Short unique id for one executor operation."""
    return f"op-{uuid.uuid4().hex[:12]}"


@dataclass
class InstallOutcome:
    """Result of a successful (or skipped) install."""

    identifier: str
    version: str
    status: PackageStatus
    operation_id: str
    skipped: bool = False
    fetch: FetchResult | None = None
    receipt: Receipt | None = None

    @property
    def unverified(self) -> bool:
        return bool(self.fetch and self.fetch.unverified)

    def to_dict(self) -> dict[str, Any]:
        return {
            "identifier": self.identifier,
            "version": self.version,
            "status": self.status.value,
            "operation_id": self.operation_id,
            "skipped": self.skipped,
            "unverified": self.unverified,
            "fetch": self.fetch.to_dict() if self.fetch else None,
            "receipt": self.receipt.model_dump(mode="json") if self.receipt else None,
        }


@dataclass
class UninstallOutcome:
    """Result of a successful uninstall."""

    identifier: str
    version: str
    operation_id: str
    zapped: bool = False
    receipt: Receipt | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "identifier": self.identifier,
            "version": self.version,
            "operation_id": self.operation_id,
            "zapped": self.zapped,
            "receipt": self.receipt.model_dump(mode="json") if self.receipt else None,
        }


class PackageExecutor:
    """Drives install and uninstall for descriptors in a catalog."""

    def __init__(
        self,
        catalog: Catalog,
        store: StateStore,
        registry: AdapterRegistry,
        *,
        settings: Settings | None = None,
        audit: AuditWriter | None = None,
        locks: LockRegistry | None = None,
        adapter_name: str = "pkg",
        fetcher: Callable[..., Any] = scoped_fetch,
        sudo_password: str | None = None,
    ):
        self.catalog = catalog
        self.store = store
        self.registry = registry
        self.settings = settings or Settings()
        self.audit = audit
        self.locks = locks or LockRegistry()
        self.adapter_name = adapter_name
        self._fetcher = fetcher
        self._sudo_password = (
            sudo_password if sudo_password is not None else os.environ.get(SUDO_PASSWORD_ENV, "")
        )

    # ── Queries ──────────────────────────────────────────────────

    def status(self, identifier: str) -> PackageState:
        return self.store.package(identifier)

    # ── Install ──────────────────────────────────────────────────

    def install(
        self,
        identifier: str,
        *,
        force: bool = False,
        cancel_event: threading.Event | None = None,
    ) -> InstallOutcome:
        """Fetch, verify and install one package.

        Raises:
            UnknownPackage: Not in the catalog.
            NetworkError, ArtifactNotFound, ChecksumMismatch, FetchCancelled:
                Fetch/verify failed; nothing was installed.
            InstallerInvocationError: The platform installer failed.
        """
        descriptor = self.catalog.get(identifier)
        operation_id = generate_operation_id()
        start = time.monotonic()

        with self.locks.lock(identifier):
            current = self.store.package(identifier)
            if current.status == PackageStatus.INSTALLED and not force:
                logger.info("%s %s is already installed", identifier, current.version)
                self._audit("install", operation_id, descriptor, "skipped", start)
                return InstallOutcome(
                    identifier=identifier,
                    version=current.version or descriptor.version,
                    status=PackageStatus.INSTALLED,
                    operation_id=operation_id,
                    skipped=True,
                )

            self.store.update(identifier, _begin_download)
            fetched: FetchResult | None = None
            try:
                with self._fetcher(
                    descriptor,
                    timeout=self.settings.download.timeout,
                    chunk_size=self.settings.download.chunk_size,
                    cancel_event=cancel_event,
                ) as fetched:
                    self.store.update(identifier, lambda p: p.advance(PackageStatus.VERIFIED))
                    receipt = self._dispatch(
                        "install",
                        identifier,
                        {
                            "artifact": str(fetched.path),
                            "target": descriptor.install_target.path,
                            "allow_untrusted": descriptor.install_target.allow_untrusted,
                        },
                    )
                    if not receipt.ok:
                        raise _installer_error(identifier, "install", receipt)

                    record = _record_for(descriptor, fetched)
                    self.store.update(identifier, lambda p: _mark_installed(p, record))
            except CaskError as e:
                self.store.update(identifier, lambda p: _mark_failed(p, e))
                logger.error("Install of %s failed: %s (%s)", identifier, e.message, e.kind)
                self._audit(
                    "install", operation_id, descriptor, "failed", start,
                    error=e, unverified=bool(fetched and fetched.unverified),
                )
                raise

        assert fetched is not None
        if fetched.unverified:
            logger.warning("%s installed without checksum verification", identifier)
        self._audit(
            "install", operation_id, descriptor, "ok", start, unverified=fetched.unverified
        )
        return InstallOutcome(
            identifier=identifier,
            version=descriptor.version,
            status=PackageStatus.INSTALLED,
            operation_id=operation_id,
            fetch=fetched,
            receipt=receipt,
        )

    # ── Uninstall ────────────────────────────────────────────────

    def uninstall(self, identifier: str, *, zap: bool = False) -> UninstallOutcome:
        """Reverse a recorded installation.

        Works from the stored record alone, so a package can be removed
        even after its descriptor left the catalog.

        Args:
            identifier: Package to remove.
            zap: Also remove the post-removal cleanup paths.

        Raises:
            UninstallRecordMissing: No successful install on record.
            InstallerInvocationError: A removal command failed.
        """
        operation_id = generate_operation_id()
        start = time.monotonic()

        with self.locks.lock(identifier):
            record = self.store.package(identifier).record
            if record is None:
                error = UninstallRecordMissing("no install record; nothing to uninstall", identifier=identifier)
                self._audit("uninstall", operation_id, None, "failed", start, error=error, identifier=identifier)
                raise error

            cleanup = record.post_removal_cleanup if zap else None
            receipt = self._dispatch(
                "uninstall",
                identifier,
                {
                    "uninstall": record.uninstall_spec.model_dump(mode="json"),
                    "cleanup": cleanup.model_dump(mode="json") if cleanup else None,
                },
            )
            if not receipt.ok:
                error = _installer_error(identifier, "uninstall", receipt)
                logger.error("Uninstall of %s failed: %s", identifier, error.message)
                self._audit(
                    "uninstall", operation_id, None, "failed", start,
                    error=error, identifier=identifier, version=record.version,
                )
                raise error

            self.store.update(identifier, _mark_uninstalled)

        logger.info("Uninstalled %s %s", identifier, record.version)
        self._audit(
            "uninstall", operation_id, None, "ok", start,
            identifier=identifier, version=record.version, context={"zap": zap},
        )
        return UninstallOutcome(
            identifier=identifier,
            version=record.version,
            operation_id=operation_id,
            zapped=zap and cleanup is not None,
            receipt=receipt,
        )

    # ── Internals ────────────────────────────────────────────────

    def _dispatch(self, operation: str, identifier: str, params: dict[str, Any]) -> Receipt:
        action = Action(
            id=f"{operation}:{identifier}",
            adapter=self.adapter_name,
            operation=operation,  # type: ignore[arg-type]
            identifier=identifier,
            params=params,
        )
        installer = self.settings.installer
        return self.registry.execute_action(
            action,
            target_volume=installer.target_volume,
            use_sudo=installer.use_sudo,
            timeout=installer.timeout,
            sudo_password=self._sudo_password,
        )

    def _audit(
        self,
        operation: str,
        operation_id: str,
        descriptor: PackageDescriptor | None,
        status: str,
        start: float,
        *,
        error: CaskError | None = None,
        unverified: bool = False,
        identifier: str = "",
        version: str = "",
        context: dict[str, Any] | None = None,
    ) -> None:
        if self.audit is None:
            return
        self.audit.write(
            AuditEntry(
                operation_id=operation_id,
                operation_type=operation,
                identifier=descriptor.identifier if descriptor else identifier,
                version=descriptor.version if descriptor else version,
                status=status,
                unverified=unverified,
                error_kind=error.kind if error else None,
                error=error.message if error else None,
                duration_ms=int((time.monotonic() - start) * 1000),
                context=context or {},
            )
        )


# ── State changes (run under the store lock) ────────────────────


def _recover_interrupted(state: PackageState) -> None:
    # DOWNLOADING/VERIFIED while we hold the lock means a previous run died
    if state.status in (PackageStatus.DOWNLOADING, PackageStatus.VERIFIED):
        logger.warning("%s was left %s by an interrupted run", state.identifier, state.status.value)
        state.advance(PackageStatus.FAILED)


def _begin_download(state: PackageState) -> None:
    _recover_interrupted(state)
    state.advance(PackageStatus.DOWNLOADING)
    state.last_error = None


def _mark_installed(state: PackageState, record: InstallRecord) -> None:
    state.advance(PackageStatus.INSTALLED)
    state.version = record.version
    state.record = record


def _mark_failed(state: PackageState, error: CaskError) -> None:
    state.advance(PackageStatus.FAILED)
    state.last_error = f"{error.kind}: {error.message}"


def _mark_uninstalled(state: PackageState) -> None:
    _recover_interrupted(state)
    state.advance(PackageStatus.UNINSTALLED)
    state.record = None
    state.version = None
    state.last_error = None


def _record_for(descriptor: PackageDescriptor, fetched: FetchResult) -> InstallRecord:
    return InstallRecord(
        identifier=descriptor.identifier,
        version=descriptor.version,
        install_target=descriptor.install_target,
        uninstall_spec=descriptor.uninstall_spec,
        post_removal_cleanup=descriptor.post_removal_cleanup,
        verified=fetched.verified,
        artifact_sha256=fetched.sha256,
    )


def _installer_error(identifier: str, operation: str, receipt: Receipt) -> InstallerInvocationError:
    detail = {
        "operation": operation,
        "return_code": receipt.return_code,
        "stderr": receipt.stderr[-500:],
    }
    message = receipt.error or f"{operation} failed"
    if receipt.return_code is not None:
        message = f"{message} (exit {receipt.return_code})"
    return InstallerInvocationError(message, identifier=identifier, detail=detail)
