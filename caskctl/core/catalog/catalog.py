"""
Catalog — the set of descriptors caskctl knows about.

An explicit object, created by the caller and passed into every
operation; there is no module-level registry.  Identifiers are unique
within one catalog.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from pathlib import Path

from caskctl.core.catalog.parser import load_descriptor_file
from caskctl.core.errors import (
    CaskError,
    DuplicateDescriptor,
    MalformedDescriptor,
    UnknownPackage,
)
from caskctl.core.models.descriptor import PackageDescriptor

logger = logging.getLogger(__name__)

DESCRIPTOR_SUFFIX = ".rb"


class Catalog:
    """Descriptors keyed by identifier."""

    def __init__(self, descriptors: Iterable[PackageDescriptor] = ()):
        self._descriptors: dict[str, PackageDescriptor] = {}
        self._sources: dict[str, Path] = {}
        for descriptor in descriptors:
            self.add(descriptor)

    def add(self, descriptor: PackageDescriptor, source: Path | None = None) -> None:
        """Add a descriptor.

        Raises:
            DuplicateDescriptor: The identifier is already in the catalog.
        """
        existing = self._sources.get(descriptor.identifier)
        if descriptor.identifier in self._descriptors:
            where = f" (already loaded from {existing})" if existing else ""
            raise DuplicateDescriptor(
                f"duplicate identifier in catalog{where}",
                identifier=descriptor.identifier,
            )
        self._descriptors[descriptor.identifier] = descriptor
        if source is not None:
            self._sources[descriptor.identifier] = source

    def get(self, identifier: str) -> PackageDescriptor:
        """Look up a descriptor.

        Raises:
            UnknownPackage: No descriptor with this identifier.
        """
        try:
            return self._descriptors[identifier]
        except KeyError:
            raise UnknownPackage("no such package in catalog", identifier=identifier) from None

    def source_of(self, identifier: str) -> Path | None:
        """File the descriptor was loaded from, if any."""
        return self._sources.get(identifier)

    def identifiers(self) -> list[str]:
        return sorted(self._descriptors)

    def __contains__(self, identifier: object) -> bool:
        return identifier in self._descriptors

    def __iter__(self) -> Iterator[PackageDescriptor]:
        for identifier in self.identifiers():
            yield self._descriptors[identifier]

    def __len__(self) -> int:
        return len(self._descriptors)

    def __repr__(self) -> str:
        return f"<Catalog descriptors={len(self)}>"

    # ── Loading ──────────────────────────────────────────────────

    def load_file(self, path: Path) -> PackageDescriptor:
        """Load one descriptor file into the catalog.

        The file stem must equal the cask token it declares.
        """
        descriptor = load_descriptor_file(path)
        if path.stem != descriptor.identifier:
            raise MalformedDescriptor(
                f"file name '{path.name}' does not match token",
                identifier=descriptor.identifier,
                source=str(path),
            )
        self.add(descriptor, source=path)
        return descriptor

    def load_directory(self, directory: Path) -> int:
        """Load every ``*.rb`` file in ``directory``.  Stops at the first error."""
        count = 0
        for path in _descriptor_files(directory):
            self.load_file(path)
            count += 1
        logger.info("Loaded %d descriptor(s) from %s", count, directory)
        return count

    @classmethod
    def from_directories(cls, directories: Iterable[Path]) -> Catalog:
        catalog = cls()
        for directory in directories:
            catalog.load_directory(directory)
        return catalog


@dataclass
class CatalogCheck:
    """Per-file outcome of validating a catalog directory."""

    loaded: list[str] = field(default_factory=list)
    errors: list[CaskError] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors

    def to_dict(self) -> dict:
        return {
            "valid": self.valid,
            "loaded": self.loaded,
            "errors": [e.to_dict() for e in self.errors],
        }


def check_directories(directories: Iterable[Path]) -> CatalogCheck:
    """Validate every descriptor file, collecting all errors."""
    result = CatalogCheck()
    catalog = Catalog()
    for directory in directories:
        for path in _descriptor_files(directory):
            try:
                descriptor = catalog.load_file(path)
            except CaskError as e:
                logger.debug("Invalid descriptor %s: %s", path, e)
                result.errors.append(e)
                continue
            result.loaded.append(descriptor.identifier)
    return result


def _descriptor_files(directory: Path) -> list[Path]:
    if not directory.is_dir():
        logger.warning("Catalog directory does not exist: %s", directory)
        return []
    return sorted(p for p in directory.iterdir() if p.suffix == DESCRIPTOR_SUFFIX and p.is_file())
