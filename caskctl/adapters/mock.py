"""
Mock adapter — stands in for the platform installer.

Used by ``--mock`` and by tests.  Records every context it receives and
can be told to fail per operation, with a given installer exit code.
"""

from __future__ import annotations

import threading

from caskctl.adapters.base import Adapter, ExecutionContext
from caskctl.core.models.action import Receipt


class MockAdapter(Adapter):
    """Installer double.  Succeeds unless configured otherwise."""

    def __init__(
        self,
        adapter_name: str = "pkg",
        available: bool = True,
        delay: float = 0.0,
    ):
        self._name = adapter_name
        self._available = available
        self._delay = delay
        self._failures: dict[str, tuple[int, str]] = {}
        self._call_log: list[ExecutionContext] = []
        self._log_lock = threading.Lock()

    @property
    def name(self) -> str:
        return self._name

    @property
    def call_log(self) -> list[ExecutionContext]:
        """All execution contexts this mock has received."""
        return self._call_log

    @property
    def call_count(self) -> int:
        return len(self._call_log)

    def calls_for(self, operation: str) -> list[ExecutionContext]:
        return [c for c in self._call_log if c.operation == operation]

    def is_available(self) -> bool:
        return self._available

    def set_failure(self, operation: str, return_code: int = 1, stderr: str = "mock failure") -> None:
        """Make every ``operation`` action fail with this exit detail."""
        self._failures[operation] = (return_code, stderr)

    def clear_failures(self) -> None:
        self._failures.clear()

    def reset(self) -> None:
        """Clear the call log and configured failures."""
        self._call_log.clear()
        self._failures.clear()

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        return True, ""

    def execute(self, context: ExecutionContext) -> Receipt:
        with self._log_lock:
            self._call_log.append(context)

        if self._delay:
            threading.Event().wait(self._delay)

        if context.operation in self._failures:
            code, stderr = self._failures[context.operation]
            return Receipt.failure(
                adapter=self._name,
                action_id=context.action.id,
                error=f"installer exited with code {code}",
                return_code=code,
                stderr=stderr,
            )

        return Receipt.success(
            adapter=self._name,
            action_id=context.action.id,
            output=f"[mock] {context.operation} {context.action.identifier}",
            return_code=0,
            metadata={"mock": True},
        )
