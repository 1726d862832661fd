"""
Domain models — Pydantic types for caskctl.

All models are re-exported here for convenient access:

    from caskctl.core.models import PackageDescriptor, InstallState, Receipt
"""

from caskctl.core.models.action import Action, Receipt
from caskctl.core.models.descriptor import (
    NO_CHECK,
    Checksum,
    CleanupSpec,
    InstallTarget,
    LayoutLine,
    PackageDescriptor,
    UninstallSpec,
)
from caskctl.core.models.state import (
    InstallRecord,
    InstallState,
    PackageState,
    PackageStatus,
)

__all__ = [
    "NO_CHECK",
    # action.py
    "Action",
    # descriptor.py
    "Checksum",
    "CleanupSpec",
    # state.py
    "InstallRecord",
    "InstallState",
    "InstallTarget",
    "LayoutLine",
    "PackageDescriptor",
    "PackageState",
    "PackageStatus",
    "Receipt",
    "UninstallSpec",
]
