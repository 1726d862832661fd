"""
Adapter base — the contract between the executor and the platform.

The executor only talks to the platform through adapters, and only
through the registry.  Adapters perform the side effects (mounting,
running the installer, removing files) and report back with a Receipt.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel, Field

from caskctl.core.models.action import Action, Receipt


class ExecutionContext(BaseModel):
    """Everything an adapter needs to execute an action."""

    action: Action
    target_volume: str = "/"
    use_sudo: bool = True
    timeout: int = 1800
    sudo_password: str = Field(default="", repr=False)
    params: dict[str, Any] = Field(default_factory=dict)

    @property
    def operation(self) -> str:
        return self.action.operation


class Adapter(ABC):
    """Abstract base class for all adapters.

    Adapters return receipts.  They NEVER raise: failures, including a
    non-zero exit from the platform installer, go on the Receipt.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """The adapter identifier (e.g. 'pkg')."""

    @abstractmethod
    def is_available(self) -> bool:
        """Whether the underlying platform tools exist.  Fast, never raises."""

    @abstractmethod
    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        """Check the action can be executed.

        Returns:
            (is_valid, error_message).  error_message is empty if valid.
        """

    @abstractmethod
    def execute(self, context: ExecutionContext) -> Receipt:
        """Execute the action and return a receipt.  MUST NOT raise."""

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"
