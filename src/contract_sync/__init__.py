"""Contract Sync - keep a committed OpenAPI snapshot in step with the live spec."""

from __future__ import annotations

from importlib import import_module
from typing import Any, TYPE_CHECKING

__all__ = [
    "ContractPaths",
    "ContractSyncSettings",
    "SpecLoader",
    "SpecSource",
    "SnapshotWriter",
    "canonicalize",
    "check_drift",
    "digest",
    "write_snapshot",
]

if TYPE_CHECKING:
    from .canonical import canonicalize, digest
    from .drift import check_drift
    from .loader import SpecLoader, SpecSource
    from .settings import ContractPaths, ContractSyncSettings
    from .snapshot import SnapshotWriter, write_snapshot


def __getattr__(name: str) -> Any:
    """Lazily import submodules so the HTTP and YAML stacks load on demand."""

    module_map = {
        "ContractPaths": "settings",
        "ContractSyncSettings": "settings",
        "SpecLoader": "loader",
        "SpecSource": "loader",
        "SnapshotWriter": "snapshot",
        "canonicalize": "canonical",
        "check_drift": "drift",
        "digest": "canonical",
        "write_snapshot": "snapshot",
    }

    if name not in module_map:
        raise AttributeError(name)

    module = import_module(f".{module_map[name]}", __name__)
    return getattr(module, name)
