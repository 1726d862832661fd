"""Fetch & verify stage."""

from caskctl.core.fetch.download import FetchResult, fetch_artifact, scoped_fetch, sha256_file

__all__ = ["FetchResult", "fetch_artifact", "scoped_fetch", "sha256_file"]
