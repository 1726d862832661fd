"""
Audit ledger: one NDJSON line per install or uninstall attempt.

Lines are only ever appended.  Installs made with ``sha256 :no_check``
carry ``unverified: true`` so they can be found later.
"""

from __future__ import annotations

import json
import logging
import threading
from collections.abc import Iterator
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)


class AuditEntry(BaseModel):
    timestamp: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())
    operation_id: str = ""
    operation_type: str = ""       # install | uninstall
    identifier: str = ""
    version: str = ""
    status: str = ""               # ok | skipped | failed
    unverified: bool = False
    error_kind: str | None = None
    error: str | None = None
    duration_ms: int = 0
    context: dict[str, Any] = Field(default_factory=dict)


class AuditWriter:
    """Appends entries to, and reads them back from, one ledger file."""

    def __init__(self, path: Path):
        self.path = path
        self._lock = threading.Lock()

    def write(self, entry: AuditEntry) -> None:
        """Append ``entry``.  A ledger that cannot be written is logged, not raised."""
        line = json.dumps(entry.model_dump(mode="json"), ensure_ascii=False)
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self._lock, self.path.open("a", encoding="utf-8") as f:
                f.write(line + "\n")
        except OSError as e:
            logger.error("Cannot append to audit ledger %s: %s", self.path, e)
            return
        logger.debug("Audited %s %s: %s", entry.operation_type, entry.identifier, entry.status)

    def read_all(self) -> list[AuditEntry]:
        """Every readable entry, oldest first."""
        return list(self._entries())

    def read_recent(self, n: int = 20) -> list[AuditEntry]:
        if n <= 0:
            return []
        return self.read_all()[-n:]

    def for_package(self, identifier: str) -> list[AuditEntry]:
        return [e for e in self._entries() if e.identifier == identifier]

    def _entries(self) -> Iterator[AuditEntry]:
        try:
            with self.path.open("r", encoding="utf-8") as f:
                for lineno, raw in enumerate(f, start=1):
                    if not raw.strip():
                        continue
                    try:
                        yield AuditEntry.model_validate_json(raw)
                    except ValidationError as e:
                        logger.warning("%s:%d: skipping unreadable entry (%s)", self.path, lineno, e.error_count())
        except FileNotFoundError:
            return
        except OSError as e:
            logger.error("Cannot read audit ledger %s: %s", self.path, e)
