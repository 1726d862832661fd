"""
Action and Receipt models — the contract with the platform installer.

The executor sends Actions, adapters return Receipts.  Adapters never
raise: a non-zero installer exit is captured on the Receipt and the
executor decides what error to surface.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field


class Action(BaseModel):
    """A requested platform operation for one package."""

    id: str                          # unique action identifier
    adapter: str                     # which adapter handles this
    operation: Literal["install", "uninstall"]
    identifier: str                  # package the action is for
    params: dict[str, Any] = Field(default_factory=dict)


class Receipt(BaseModel):
    """Outcome of an adapter execution."""

    adapter: str
    action_id: str
    status: Literal["ok", "failed"] = "ok"
    duration_ms: int = 0

    output: str = ""
    error: str | None = None
    return_code: int | None = None   # platform installer exit status
    stderr: str = ""

    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.status == "ok"

    @property
    def failed(self) -> bool:
        return self.status == "failed"

    # Factories take the same fields as the model; they only fix ``status``
    # and, for failures, the error message.

    @classmethod
    def success(cls, *, adapter: str, action_id: str, **fields: Any) -> Receipt:
        return cls(adapter=adapter, action_id=action_id, status="ok", **fields)

    @classmethod
    def failure(cls, *, adapter: str, action_id: str, error: str, **fields: Any) -> Receipt:
        return cls(adapter=adapter, action_id=action_id, status="failed", error=error, **fields)
