"""
Error taxonomy — every failure a caller can see.

Each kind maps to a distinct process exit code so scripts driving the
CLI can tell failures apart without parsing output.  Every error carries
the identifier of the package it concerns (when known).

    parse time    MalformedDescriptor, UnsupportedDirective, DuplicateField
    catalog       DuplicateDescriptor, UnknownPackage
    fetch         NetworkError, ChecksumMismatch, ArtifactNotFound, FetchCancelled
    install       InstallerInvocationError, UninstallRecordMissing
"""

from __future__ import annotations

from typing import Any


class CaskError(Exception):
    """Base class for all user-facing caskctl errors."""

    exit_code: int = 1

    def __init__(
        self,
        message: str,
        *,
        identifier: str | None = None,
        detail: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.identifier = identifier
        self.detail = detail or {}

    @property
    def kind(self) -> str:
        return type(self).__name__

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "kind": self.kind,
            "identifier": self.identifier,
            "message": self.message,
            "exit_code": self.exit_code,
        }
        if self.detail:
            data["detail"] = self.detail
        return data

    def __str__(self) -> str:
        if self.identifier:
            return f"{self.identifier}: {self.message}"
        return self.message


class ConfigError(CaskError):
    """Raised when caskctl.yml or the state file is unreadable or invalid."""

    exit_code = 2


# ── Parse ───────────────────────────────────────────────────────


class DescriptorError(CaskError):
    """Base for errors raised while loading descriptor text."""

    def __init__(
        self,
        message: str,
        *,
        identifier: str | None = None,
        line: int | None = None,
        source: str | None = None,
        detail: dict[str, Any] | None = None,
    ):
        detail = dict(detail or {})
        if line is not None:
            detail["line"] = line
        if source is not None:
            detail["source"] = source
        super().__init__(message, identifier=identifier, detail=detail)
        self.line = line
        self.source = source

    def __str__(self) -> str:
        where = self.source or "<descriptor>"
        if self.line is not None:
            where = f"{where}:{self.line}"
        prefix = f"{self.identifier} ({where})" if self.identifier else where
        return f"{prefix}: {self.message}"


class MalformedDescriptor(DescriptorError):
    """Syntax error or missing required field."""

    exit_code = 10


class UnsupportedDirective(DescriptorError):
    """Unknown stanza or unknown stanza option."""

    exit_code = 11


class DuplicateField(DescriptorError):
    """A non-repeatable stanza appears more than once."""

    exit_code = 12


# ── Catalog ─────────────────────────────────────────────────────


class DuplicateDescriptor(CaskError):
    """Two descriptors in one catalog share an identifier."""

    exit_code = 13


class UnknownPackage(CaskError):
    """No descriptor with this identifier in the catalog."""

    exit_code = 14


# ── Fetch & verify ──────────────────────────────────────────────


class NetworkError(CaskError):
    """Artifact host unreachable, or the transfer was interrupted."""

    exit_code = 20


class ChecksumMismatch(CaskError):
    """Downloaded content does not hash to the descriptor's digest."""

    exit_code = 21


class ArtifactNotFound(CaskError):
    """The remote resource does not exist."""

    exit_code = 22


class FetchCancelled(CaskError):
    """The fetch was cancelled; the partial artifact was discarded."""

    exit_code = 23


# ── Install / uninstall ─────────────────────────────────────────


class InstallerInvocationError(CaskError):
    """The platform installer returned a non-zero result."""

    exit_code = 30


class UninstallRecordMissing(CaskError):
    """Uninstall requested for a package with no stored install record."""

    exit_code = 31


class InvalidTransition(Exception):
    """Internal: a state change not allowed by the package lifecycle."""
