"""
Fetch & verify — retrieve a descriptor's artifact and check its digest.

The artifact is streamed into a caller-provided directory and hashed as
it arrives.  ``scoped_fetch`` owns a temporary directory for the
duration of an install and removes it on exit, whatever happened.

Outcomes:
    explicit digest, matches   → FetchResult(verified=True)
    explicit digest, differs   → ChecksumMismatch (file removed)
    sha256 :no_check           → FetchResult(unverified=True), content ignored
"""

from __future__ import annotations

import hashlib
import http.client
import logging
import tempfile
import threading
import urllib.error
import urllib.request
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any

from caskctl import __version__
from caskctl.core.errors import (
    ArtifactNotFound,
    ChecksumMismatch,
    FetchCancelled,
    NetworkError,
)
from caskctl.core.models.descriptor import PackageDescriptor

logger = logging.getLogger(__name__)

USER_AGENT = f"caskctl/{__version__}"
NOT_FOUND_CODES = {404, 410}

Opener = Callable[..., Any]


@dataclass(frozen=True)
class FetchResult:
    """A retrieved artifact, ready for the installer."""

    identifier: str
    path: Path
    size_bytes: int
    sha256: str
    verified: bool
    unverified: bool

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["path"] = str(self.path)
        return data


def sha256_file(path: Path, chunk_size: int = 64 * 1024) -> str:
    """Hex sha256 of a file on disk."""
    h = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(chunk_size), b""):
            h.update(chunk)
    return h.hexdigest()


def _fmt_size(n: int | float) -> str:
    """Format byte count to human-readable string."""
    for unit in ("B", "KB", "MB", "GB"):
        if n < 1024:
            return f"{n:.1f} {unit}"
        n /= 1024
    return f"{n:.1f} TB"


def _open(descriptor: PackageDescriptor, opener: Opener, timeout: float) -> Any:
    url = descriptor.source_url
    request = urllib.request.Request(url, headers={"User-Agent": USER_AGENT})
    try:
        return opener(request, timeout=timeout)
    except urllib.error.HTTPError as e:
        if e.code in NOT_FOUND_CODES:
            raise ArtifactNotFound(
                f"{url} returned HTTP {e.code}", identifier=descriptor.identifier,
                detail={"url": url, "status": e.code},
            ) from e
        raise NetworkError(
            f"{url} returned HTTP {e.code}", identifier=descriptor.identifier,
            detail={"url": url, "status": e.code},
        ) from e
    except urllib.error.URLError as e:
        if isinstance(e.reason, FileNotFoundError):
            raise ArtifactNotFound(
                f"{url} does not exist", identifier=descriptor.identifier, detail={"url": url}
            ) from e
        raise NetworkError(
            f"cannot reach {url}: {e.reason}", identifier=descriptor.identifier,
            detail={"url": url},
        ) from e
    except (TimeoutError, OSError, ValueError) as e:
        raise NetworkError(
            f"cannot open {url}: {e}", identifier=descriptor.identifier, detail={"url": url}
        ) from e


def _expected_length(response: Any) -> int | None:
    headers = getattr(response, "headers", None)
    value = headers.get("Content-Length") if headers is not None else None
    try:
        return int(value) if value is not None else None
    except ValueError:
        return None


def fetch_artifact(
    descriptor: PackageDescriptor,
    dest_dir: Path,
    *,
    timeout: float = 60.0,
    chunk_size: int = 64 * 1024,
    cancel_event: threading.Event | None = None,
    opener: Opener | None = None,
) -> FetchResult:
    """Download ``descriptor.source_url`` into ``dest_dir`` and verify it.

    Args:
        descriptor: Package to fetch.
        dest_dir: Existing directory the artifact is written to.
        timeout: Socket timeout in seconds.
        chunk_size: Read size; cancellation is checked between chunks.
        cancel_event: When set, the transfer stops and the partial file
            is discarded.
        opener: ``urlopen``-compatible callable (tests inject one).

    Raises:
        NetworkError, ArtifactNotFound, ChecksumMismatch, FetchCancelled
    """
    opener = opener or urllib.request.urlopen
    identifier = descriptor.identifier
    dest = dest_dir / descriptor.artifact_filename
    partial = dest.with_name(dest.name + ".part")
    digest = hashlib.sha256()
    size = 0

    logger.info("Fetching %s from %s", identifier, descriptor.source_url)
    response = _open(descriptor, opener, timeout)

    try:
        with response, partial.open("wb") as out:
            expected = _expected_length(response)
            while True:
                if cancel_event is not None and cancel_event.is_set():
                    raise FetchCancelled("fetch cancelled", identifier=identifier)
                chunk = response.read(chunk_size)
                if not chunk:
                    break
                digest.update(chunk)
                out.write(chunk)
                size += len(chunk)
            if expected is not None and size != expected:
                raise NetworkError(
                    f"transfer interrupted after {size} of {expected} bytes",
                    identifier=identifier,
                    detail={"url": descriptor.source_url},
                )
    except (FetchCancelled, NetworkError):
        partial.unlink(missing_ok=True)
        raise
    except (OSError, http.client.HTTPException) as e:
        partial.unlink(missing_ok=True)
        raise NetworkError(
            f"transfer interrupted: {e}", identifier=identifier,
            detail={"url": descriptor.source_url},
        ) from e

    actual = digest.hexdigest()
    checksum = descriptor.checksum

    if checksum.no_check:
        logger.warning("%s: checksum verification skipped (sha256 :no_check)", identifier)
    elif actual != checksum.sha256:
        partial.unlink(missing_ok=True)
        raise ChecksumMismatch(
            f"sha256 mismatch: expected {checksum.sha256}, got {actual}",
            identifier=identifier,
            detail={"expected": checksum.sha256, "actual": actual},
        )

    partial.replace(dest)
    logger.info("Fetched %s (%s)", identifier, _fmt_size(size))
    return FetchResult(
        identifier=identifier,
        path=dest,
        size_bytes=size,
        sha256=actual,
        verified=not checksum.no_check,
        unverified=checksum.no_check,
    )


@contextmanager
def scoped_fetch(
    descriptor: PackageDescriptor,
    *,
    root: Path | None = None,
    **kwargs: Any,
) -> Iterator[FetchResult]:
    """Fetch into a temporary directory that is removed on exit.

    Args:
        descriptor: Package to fetch.
        root: Parent for the temporary directory (default: system temp).
        **kwargs: Passed to ``fetch_artifact``.
    """
    if root is not None:
        root.mkdir(parents=True, exist_ok=True)
    with tempfile.TemporaryDirectory(
        prefix=f"caskctl-{descriptor.identifier}-", dir=root
    ) as tmp:
        yield fetch_artifact(descriptor, Path(tmp), **kwargs)
        logger.debug("Releasing scoped artifact directory %s", tmp)
