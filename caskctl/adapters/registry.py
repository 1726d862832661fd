"""
Adapter registry — the executor's only route to the platform.

Resolves which adapter handles an action (the registered one, or the
mock in mock mode), builds its ExecutionContext, validates, runs it and
stamps the duration.  Whatever goes wrong comes back as a failed
Receipt; ``execute_action`` never raises.
"""

from __future__ import annotations

import logging
import time
from typing import Any

from caskctl.adapters.base import Adapter, ExecutionContext
from caskctl.core.models.action import Action, Receipt

logger = logging.getLogger(__name__)


class AdapterRegistry:
    """Adapters by name, plus mock-mode routing.

    In mock mode every action goes to ``mock_adapter`` when one is set;
    otherwise it succeeds without touching the system.
    """

    def __init__(self, mock_mode: bool = False):
        self._adapters: dict[str, Adapter] = {}
        self._mock_mode = mock_mode
        self._mock_adapter: Adapter | None = None

    @property
    def mock_mode(self) -> bool:
        return self._mock_mode

    def set_mock_mode(self, enabled: bool, mock_adapter: Adapter | None = None) -> None:
        self._mock_mode = enabled
        self._mock_adapter = mock_adapter

    def register(self, adapter: Adapter) -> None:
        if adapter.name in self._adapters:
            logger.warning("Replacing adapter: %s", adapter.name)
        self._adapters[adapter.name] = adapter
        logger.debug("Registered adapter: %s", adapter.name)

    def get(self, name: str) -> Adapter | None:
        return self._adapters.get(name)

    def execute_action(
        self,
        action: Action,
        **context: Any,
    ) -> Receipt:
        """Run ``action`` through its adapter and return the receipt.

        Args:
            action: What to do, and for which package.
            **context: ExecutionContext fields (target_volume, use_sudo,
                timeout, sudo_password).
        """
        start = time.monotonic()

        if self._mock_mode and self._mock_adapter is None:
            logger.info("[mock] %s %s", action.operation, action.identifier)
            return Receipt.success(
                adapter=action.adapter,
                action_id=action.id,
                output=f"[mock] {action.operation} {action.identifier}",
                return_code=0,
                metadata={"mock": True},
            )

        adapter = self._mock_adapter if self._mock_mode else self._adapters.get(action.adapter)
        if adapter is None:
            return self._refuse(action, f"No adapter registered for '{action.adapter}'")

        ctx = ExecutionContext(action=action, params=action.params, **context)
        refusal = self._check(adapter, ctx)
        if refusal is not None:
            return refusal

        try:
            receipt = adapter.execute(ctx)
        except Exception as e:
            logger.error("Adapter %s raised on %s: %s", adapter.name, action.id, e)
            receipt = Receipt.failure(
                adapter=adapter.name,
                action_id=action.id,
                error=f"Unexpected error: {e}",
            )

        receipt.duration_ms = int((time.monotonic() - start) * 1000)
        if receipt.failed:
            logger.debug("%s failed: %s (rc=%s)", action.id, receipt.error, receipt.return_code)
        return receipt

    def _check(self, adapter: Adapter, ctx: ExecutionContext) -> Receipt | None:
        action = ctx.action
        try:
            is_valid, error_msg = adapter.validate(ctx)
        except Exception as e:
            return self._refuse(action, f"Validation error: {e}")
        if not is_valid:
            return self._refuse(action, f"Validation failed: {error_msg}")
        if not adapter.is_available():
            return self._refuse(action, f"Adapter '{adapter.name}' is not available on this system")
        return None

    @staticmethod
    def _refuse(action: Action, error: str) -> Receipt:
        logger.warning("%s refused: %s", action.id, error)
        return Receipt.failure(adapter=action.adapter, action_id=action.id, error=error)
