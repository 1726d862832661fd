"""Adapters — platform bindings for installing and removing packages.

Public re-exports for convenient access.
"""

from caskctl.adapters.base import Adapter, ExecutionContext
from caskctl.adapters.mock import MockAdapter
from caskctl.adapters.registry import AdapterRegistry

__all__ = [
    "Adapter",
    "AdapterRegistry",
    "ExecutionContext",
    "MockAdapter",
]
