"""Run orchestrator: schema retrieval, then read, insert, update and delete phases."""

from __future__ import annotations

import asyncio
import logging
import sys
from datetime import datetime, timezone

from rls_probe.config import SchedulerConfig, TableFilterConfig
from rls_probe.engine import AccessProbeEngine
from rls_probe.errors import (
    PhaseError,
    ProbeError,
    SchemaAccessBlocked,
    SchemaFetchError,
    TransportError,
    TransportTimeout,
)
from rls_probe.models import (
    PHASE_ORDER,
    OperationKind,
    ProbeResult,
    RunPhase,
    RunProgress,
    RunState,
    ScanReport,
    Snapshot,
    TableDescriptor,
)
from rls_probe.probes.base import BaseProbe
from rls_probe.scheduler import BatchScheduler, SnapshotListener
from rls_probe.schema_parser import parse_schema

logger = logging.getLogger(__name__)

# Error messages returned by the API gateway when introspection is off.
BLOCKED_SCHEMA_MESSAGES = frozenset({"Invalid API key", "OpenAPI mode disabled"})


class Scanner:
    """Owns the tables and results of one run and exposes them to a front end.

    Commands: :meth:`run` (full run), :meth:`reprobe` (one table, one
    operation) and :meth:`reset`. Starting a run while one is in progress,
    or resetting during a run, is a no-op.
    """

    def __init__(
        self,
        transport,
        target: str = "",
        scheduler_config: SchedulerConfig | None = None,
        table_filter: TableFilterConfig | None = None,
        probes: dict[OperationKind, BaseProbe] | None = None,
        listeners: list[SnapshotListener] | None = None,
    ):
        self.transport = transport
        self.target = target or getattr(transport, "base_url", "")
        self.scheduler_config = scheduler_config or SchedulerConfig()
        self.table_filter = table_filter or TableFilterConfig()
        self.engine = AccessProbeEngine(transport, probes)
        self.progress = RunProgress()
        self.listeners: list[SnapshotListener] = list(listeners or [])
        self.scheduler = BatchScheduler(
            self.engine,
            batch_size=self.scheduler_config.batch_size,
            sequential_threshold=self.scheduler_config.sequential_threshold,
            probe_timeout=self.scheduler_config.probe_timeout,
            progress=self.progress,
            listeners=self.listeners,
        )

        self.state = RunState.IDLE
        self.tables: list[TableDescriptor] = []
        self.results: dict[str, ProbeResult] = {}
        self.error: str | None = None
        self.started_at: datetime | None = None
        self._running = False

    @property
    def in_progress(self) -> bool:
        return self._running

    def subscribe(self, listener: SnapshotListener) -> None:
        self.listeners.append(listener)

    def reset(self) -> None:
        if self._running:
            logger.info("Ignoring reset while a run is in progress")
            return
        self.state = RunState.IDLE
        self.tables = []
        self.results = {}
        self.error = None
        self.started_at = None
        self.progress.reset()

    async def retrieve_schema(self) -> list[TableDescriptor]:
        """Fetch and normalize the schema.

        Raises:
            SchemaAccessBlocked: Introspection is disabled or the key was rejected.
            SchemaFetchError: Any other retrieval or parse failure.
        """
        timeout = self.scheduler_config.schema_timeout
        try:
            payload = await asyncio.wait_for(self.transport.fetch_schema(), timeout=timeout)
        except asyncio.TimeoutError as exc:
            raise SchemaFetchError(f"Schema retrieval timed out after {timeout:g}s") from exc
        except TransportTimeout as exc:
            raise SchemaFetchError(f"Schema retrieval timed out: {exc.message}") from exc
        except TransportError as exc:
            if exc.message in BLOCKED_SCHEMA_MESSAGES:
                raise SchemaAccessBlocked(exc.message) from exc
            raise SchemaFetchError(exc.message) from exc
        return parse_schema(payload)

    async def run(self) -> ScanReport | None:
        """Execute a full run. Returns None if a run is already in progress."""
        if self._running:
            logger.warning("A run is already in progress; ignoring start request")
            return None
        self._running = True
        try:
            await self._run()
        finally:
            self._running = False
        return self.report()

    async def _run(self) -> None:
        self.reset_for_run()

        try:
            tables = await self.retrieve_schema()
        except SchemaAccessBlocked as exc:
            logger.warning("Schema access blocked: %s", exc)
            self._finish(RunState.SCHEMA_BLOCKED, str(exc))
            return
        except SchemaFetchError as exc:
            logger.error("Schema retrieval failed: %s", exc)
            self._finish(RunState.SCHEMA_FAILED, str(exc))
            return

        self.tables = [t for t in tables if self.table_filter.allows(t.name)]
        self.results = {t.name: ProbeResult(t.name) for t in self.tables}
        self.progress.total_tables = len(self.tables)
        logger.info(
            "Discovered %d tables (%d selected)", len(tables), len(self.tables)
        )

        for operation in PHASE_ORDER:
            try:
                await self.scheduler.run(operation, self.tables, self.results)
            except Exception as exc:
                err = PhaseError(operation.value, exc)
                logger.exception("%s", err)
                self._finish(RunState.COMPLETE_WITH_ERROR, str(err))
                return

        self._finish(RunState.COMPLETE)

    def reset_for_run(self) -> None:
        self.state = RunState.RUNNING
        self.tables = []
        self.results = {}
        self.error = None
        self.started_at = datetime.now(timezone.utc)
        self.progress.reset()
        self.progress.phase = RunPhase.SCHEMA

    def _finish(self, state: RunState, error: str | None = None) -> None:
        self.state = state
        self.error = error
        self.progress.phase = RunPhase.DONE
        self._publish()

    def _publish(self) -> None:
        snapshot = Snapshot(
            phase=self.progress.phase,
            operation=None,
            processed=len(self.results),
            total=self.progress.total_tables,
            results={name: r.snapshot() for name, r in self.results.items()},
        )
        for listener in self.listeners:
            listener(snapshot)

    async def reprobe(self, table_name: str, operation: OperationKind) -> ProbeResult | None:
        """Re-run one operation on one table, bypassing batching.

        Returns the table's result, or None when rejected because a full run
        is in progress or the table already has a probe in flight.

        Raises:
            KeyError: If *table_name* is not part of the current run.
        """
        if self._running:
            logger.info("Ignoring re-probe of %s during a full run", table_name)
            return None
        table = next((t for t in self.tables if t.name == table_name), None)
        if table is None:
            raise KeyError(f"Unknown table: {table_name}")
        result = self.results[table_name]

        try:
            recorded = await self.engine.probe(operation, table, result)
        except ProbeError as exc:
            self.engine.fail(operation, table, result, exc)
            recorded = True

        if not recorded:
            return None
        self._publish()
        return result

    def report(self) -> ScanReport:
        return ScanReport(
            target=self.target,
            timestamp=self.started_at or datetime.now(timezone.utc),
            state=self.state,
            tables=list(self.tables),
            results={name: r.snapshot() for name, r in self.results.items()},
            completed_phases=list(self.progress.completed_phases),
            error=self.error,
        )


async def run_scan(
    transport,
    target: str = "",
    scheduler_config: SchedulerConfig | None = None,
    table_filter: TableFilterConfig | None = None,
    verbose: bool = False,
) -> ScanReport:
    """Execute a full run against the project behind *transport*.

    Args:
        transport: Connected RestTransport (or any object with the same calls).
        target: Project URL shown in the report.
        scheduler_config: Batching and timeout settings.
        table_filter: Tables to include/exclude.
        verbose: Print progress to stderr.

    Returns:
        ScanReport in a terminal state.
    """
    scanner = Scanner(
        transport,
        target=target,
        scheduler_config=scheduler_config,
        table_filter=table_filter,
    )

    if verbose:
        print(f"Probing {scanner.target or 'project'}...", file=sys.stderr)
        scanner.subscribe(_print_progress)

    report = await scanner.run()

    if verbose:
        print(
            f"Done. {report.table_count} tables, "
            f"{len(report.exposed_tables)} with anonymous access.",
            file=sys.stderr,
        )
    return report


def _print_progress(snapshot: Snapshot) -> None:
    if snapshot.operation is None:
        return
    print(
        f"  [{snapshot.processed}/{snapshot.total}] {snapshot.operation.value}",
        file=sys.stderr,
    )
