"""Execution engine — package lifecycle and per-package locking."""

from caskctl.core.engine.executor import InstallOutcome, PackageExecutor, UninstallOutcome
from caskctl.core.engine.locks import LockRegistry

__all__ = ["InstallOutcome", "LockRegistry", "PackageExecutor", "UninstallOutcome"]
