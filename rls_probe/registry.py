"""Auto-discovery and registration of probe modules."""

from __future__ import annotations

import importlib
import pkgutil
from pathlib import Path

from rls_probe.models import PHASE_ORDER, OperationKind
from rls_probe.probes.base import BaseProbe


def discover_probes(operations: list[OperationKind] | None = None) -> list[BaseProbe]:
    """
    Discover and instantiate every concrete BaseProbe subclass under rls_probe.probes.

    Parameters:
        operations (list[OperationKind] | None): If provided, only include probes for these operations.

    Returns:
        list[BaseProbe]: One probe per operation, in phase order (read, insert, update, delete).

    Raises:
        RuntimeError: If two probes claim the same operation.
    """
    probes_package = importlib.import_module("rls_probe.probes")
    assert probes_package.__file__ is not None
    probes_dir = Path(probes_package.__file__).parent

    _import_submodules("rls_probe.probes", probes_dir)

    by_operation: dict[OperationKind, BaseProbe] = {}
    for cls in _all_subclasses(BaseProbe):
        if cls.operation is None or getattr(cls, "__abstractmethods__", None):
            continue
        if not cls.__module__.startswith("rls_probe.probes."):
            continue
        if operations and cls.operation not in operations:
            continue
        existing = by_operation.get(cls.operation)
        if existing is not None:
            if type(existing) is cls:
                continue
            raise RuntimeError(
                f"Probes {existing.name} and {cls.name} both handle {cls.operation.value}"
            )
        by_operation[cls.operation] = cls()

    return [by_operation[op] for op in PHASE_ORDER if op in by_operation]


def probes_by_operation(operations: list[OperationKind] | None = None) -> dict[OperationKind, BaseProbe]:
    return {probe.operation: probe for probe in discover_probes(operations)}


def _import_submodules(package_name: str, package_dir: Path):
    """
    Recursively import all submodules in a package directory.

    Parameters:
        package_name (str): Dotted import path of the package (e.g., "rls_probe.probes") used as the import prefix.
        package_dir (Path): Filesystem path to the package directory to search for submodules.
    """
    for _importer, modname, _ispkg in pkgutil.walk_packages(
        path=[str(package_dir)],
        prefix=package_name + ".",
    ):
        importlib.import_module(modname)


def _all_subclasses(cls):
    """Collect all subclasses of a class recursively, depth-first."""
    result = []
    for sub in cls.__subclasses__():
        result.append(sub)
        result.extend(_all_subclasses(sub))
    return result
