"""
PackageDescriptor — the in-memory form of one cask descriptor.

Descriptors are authored once, versioned over time and consumed at
install/uninstall time.  They are never mutated at runtime, so the
models here are frozen.

The loader attaches a ``layout`` (one entry per source line) so the
descriptor can be written back byte-for-byte.  The layout is not part
of the descriptor's identity: two descriptors with the same fields are
equal regardless of how their source text was formatted.
"""

from __future__ import annotations

import re
from pathlib import PurePosixPath
from typing import Any, Literal
from urllib.parse import unquote, urlparse

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

IDENTIFIER_RE = re.compile(r"^[a-z0-9][a-z0-9.\-]*$")
SHA256_RE = re.compile(r"^[0-9a-f]{64}$")

NO_CHECK = ":no_check"


class Checksum(BaseModel):
    """Either a sha256 digest or the explicit ``:no_check`` opt-out."""

    model_config = ConfigDict(frozen=True)

    sha256: str | None = None
    no_check: bool = False

    @model_validator(mode="after")
    def _exactly_one(self) -> Checksum:
        if self.no_check and self.sha256 is not None:
            raise ValueError("checksum cannot be both a digest and :no_check")
        if not self.no_check and self.sha256 is None:
            raise ValueError("checksum needs a digest or an explicit :no_check")
        if self.sha256 is not None and not SHA256_RE.match(self.sha256):
            raise ValueError(f"not a lowercase sha256 hex digest: {self.sha256!r}")
        return self

    @classmethod
    def skip(cls) -> Checksum:
        return cls(no_check=True)

    @classmethod
    def digest(cls, value: str) -> Checksum:
        return cls(sha256=value)

    def __str__(self) -> str:
        return NO_CHECK if self.no_check else str(self.sha256)


class InstallTarget(BaseModel):
    """The sub-artifact handed to the platform installer."""

    model_config = ConfigDict(frozen=True)

    path: str
    allow_untrusted: bool = False


class UninstallSpec(BaseModel):
    """What to remove to reverse an installation."""

    model_config = ConfigDict(frozen=True)

    pkgutil: tuple[str, ...] = ()   # installer-registered package ids
    delete: tuple[str, ...] = ()
    rmdir: tuple[str, ...] = ()

    def is_empty(self) -> bool:
        return not (self.pkgutil or self.delete or self.rmdir)


class CleanupSpec(BaseModel):
    """Extra paths removed on a full (zap) uninstall."""

    model_config = ConfigDict(frozen=True)

    trash: tuple[str, ...] = ()
    delete: tuple[str, ...] = ()
    rmdir: tuple[str, ...] = ()

    def is_empty(self) -> bool:
        return not (self.trash or self.delete or self.rmdir)

    def paths(self) -> list[str]:
        return [*self.trash, *self.delete, *self.rmdir]


class LayoutLine(BaseModel):
    """One source line as seen by the loader.

    ``kind`` is ``"directive"`` for stanza lines (``key``/``index``/``value``
    name the field it populated) and ``"raw"`` for everything else: the
    header, blank lines, comments and ``end``.
    """

    model_config = ConfigDict(frozen=True)

    kind: Literal["raw", "directive"]
    text: str
    key: str | None = None
    index: int = 0
    value: Any = None


class PackageDescriptor(BaseModel):
    """Declarative record describing one installable package."""

    model_config = ConfigDict(frozen=True)

    identifier: str
    version: str
    checksum: Checksum
    source_url: str
    display_names: tuple[str, ...]
    description: str | None = None
    homepage_url: str | None = None
    install_target: InstallTarget
    uninstall_spec: UninstallSpec
    post_removal_cleanup: CleanupSpec | None = None

    layout: tuple[LayoutLine, ...] = Field(default=(), exclude=True, repr=False)
    trailing_newline: bool = Field(default=True, exclude=True, repr=False)

    @field_validator("identifier")
    @classmethod
    def _check_identifier(cls, value: str) -> str:
        if not IDENTIFIER_RE.match(value):
            raise ValueError(f"invalid cask token: {value!r}")
        return value

    @field_validator("version")
    @classmethod
    def _check_version(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("version must not be empty")
        return value

    @field_validator("display_names")
    @classmethod
    def _check_names(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        if not value:
            raise ValueError("at least one name is required")
        return value

    @field_validator("uninstall_spec")
    @classmethod
    def _check_uninstall(cls, value: UninstallSpec) -> UninstallSpec:
        if value.is_empty():
            raise ValueError("uninstall needs at least one of pkgutil, delete, rmdir")
        return value

    @property
    def canonical_name(self) -> str:
        """First display name — the package's canonical name."""
        return self.display_names[0]

    @property
    def unverified(self) -> bool:
        """Whether the author opted out of checksum verification."""
        return self.checksum.no_check

    @property
    def artifact_filename(self) -> str:
        """Filename for the fetched artifact, taken from the URL path.

        The path is decoded before its last component is taken, so an
        encoded ``..%2F`` can never name a file outside the fetch directory.
        """
        name = PurePosixPath(unquote(urlparse(self.source_url).path)).name
        if name in ("", ".", "..") or "\x00" in name:
            return f"{self.identifier}.download"
        return name

    def field_value(self, key: str, index: int = 0) -> Any:
        """Value of the field a stanza keyword populates."""
        if key == "name":
            return self.display_names[index] if index < len(self.display_names) else None
        return getattr(self, STANZA_FIELDS[key])

    def summary(self) -> dict[str, Any]:
        """Flat, JSON-friendly view used by ``info``."""
        data = self.model_dump(mode="json")
        data["canonical_name"] = self.canonical_name
        data["checksum"] = str(self.checksum)
        data["unverified"] = self.unverified
        return data

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PackageDescriptor):
            return NotImplemented
        return self.model_dump() == other.model_dump()

    def __hash__(self) -> int:
        return hash((self.identifier, self.version))


# Stanza keyword → descriptor field
STANZA_FIELDS: dict[str, str] = {
    "version": "version",
    "sha256": "checksum",
    "url": "source_url",
    "name": "display_names",
    "desc": "description",
    "homepage": "homepage_url",
    "pkg": "install_target",
    "uninstall": "uninstall_spec",
    "zap": "post_removal_cleanup",
}
