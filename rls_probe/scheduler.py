"""Batch scheduler: probes every table for one operation phase."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence
from typing import TypeVar

from rls_probe.engine import AccessProbeEngine
from rls_probe.errors import ProbeError, ProbeTimeout
from rls_probe.models import (
    OperationKind,
    ProbeResult,
    RunPhase,
    RunProgress,
    Snapshot,
    TableDescriptor,
)

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 10
DEFAULT_SEQUENTIAL_THRESHOLD = 10
DEFAULT_PROBE_TIMEOUT = 15.0

T = TypeVar("T")

SnapshotListener = Callable[[Snapshot], None]


def partition(items: Sequence[T], size: int) -> list[list[T]]:
    """Split *items* into consecutive groups of at most *size*, preserving order."""
    if size < 1:
        raise ValueError("group size must be at least 1")
    return [list(items[i : i + size]) for i in range(0, len(items), size)]


class BatchScheduler:
    """Run one operation across all tables.

    Up to ``sequential_threshold`` tables are probed one at a time. Larger
    schemas are split into groups of ``batch_size``; groups run in order and
    the probes inside a group run concurrently. Every probe is bounded by
    ``probe_timeout``. A failing or timed-out table gets the operation's
    failure default and never stops the rest of the phase.
    """

    def __init__(
        self,
        engine: AccessProbeEngine,
        batch_size: int = DEFAULT_BATCH_SIZE,
        sequential_threshold: int = DEFAULT_SEQUENTIAL_THRESHOLD,
        probe_timeout: float = DEFAULT_PROBE_TIMEOUT,
        progress: RunProgress | None = None,
        listeners: list[SnapshotListener] | None = None,
    ):
        self.engine = engine
        self.batch_size = batch_size
        self.sequential_threshold = sequential_threshold
        self.probe_timeout = probe_timeout
        self.progress = progress or RunProgress()
        self.listeners = listeners if listeners is not None else []

    def groups(self, tables: Sequence[TableDescriptor]) -> list[list[TableDescriptor]]:
        if len(tables) <= self.sequential_threshold:
            return partition(tables, 1)
        return partition(tables, self.batch_size)

    async def run(
        self,
        operation: OperationKind,
        tables: Sequence[TableDescriptor],
        results: dict[str, ProbeResult],
    ) -> dict[str, ProbeResult]:
        """Probe *operation* on every table, mutating *results* in place.

        Returns:
            The same *results* mapping, complete for this phase.
        """
        self.progress.phase = RunPhase.for_operation(operation)
        self.progress.operation = operation
        groups = self.groups(tables)
        logger.info(
            "%s phase: %d tables in %d group(s)", operation.value, len(tables), len(groups)
        )

        for group in groups:
            if len(group) == 1:
                await self._probe_one(operation, group[0], results[group[0].name])
            else:
                await asyncio.gather(
                    *(self._probe_one(operation, t, results[t.name]) for t in group)
                )
            self.progress.advance(operation, len(group))
            self.publish(operation, results)

        if operation not in self.progress.completed_phases:
            self.progress.completed_phases.append(operation)
        self.progress.operation = None
        return results

    async def _probe_one(
        self, operation: OperationKind, table: TableDescriptor, result: ProbeResult
    ) -> None:
        try:
            await asyncio.wait_for(
                self.engine.probe(operation, table, result), timeout=self.probe_timeout
            )
        except asyncio.TimeoutError:
            self.engine.fail(
                operation, table, result, ProbeTimeout(table.name, operation.value, self.probe_timeout)
            )
        except ProbeError as exc:
            self.engine.fail(operation, table, result, exc)

    def publish(self, operation: OperationKind | None, results: dict[str, ProbeResult]) -> None:
        snapshot = Snapshot(
            phase=self.progress.phase,
            operation=operation,
            processed=self.progress.processed.get(operation, 0) if operation else 0,
            total=self.progress.total_tables,
            results={name: r.snapshot() for name, r in results.items()},
        )
        for listener in self.listeners:
            listener(snapshot)
