"""Access probe engine: runs one probe against one table."""

from __future__ import annotations

import logging

from rls_probe.errors import ProbeError, TransportTimeout
from rls_probe.models import OperationKind, ProbeResult, TableDescriptor
from rls_probe.probes.base import BaseProbe
from rls_probe.registry import probes_by_operation

logger = logging.getLogger(__name__)


class AccessProbeEngine:
    """Drive the per-table state machine ``idle -> in-flight -> resolved|failed``.

    Only one operation may be in flight per table. A second request while
    one is running is dropped: :meth:`probe` returns False and nothing is
    recorded.
    """

    def __init__(self, transport, probes: dict[OperationKind, BaseProbe] | None = None):
        self.transport = transport
        self.probes = probes if probes is not None else probes_by_operation()

    async def probe(
        self, operation: OperationKind, table: TableDescriptor, result: ProbeResult
    ) -> bool:
        """Run *operation* against *table* and record the outcome on *result*.

        Returns:
            True if an outcome was recorded, False if the call was a no-op
            (another probe in flight, or this attempt was abandoned meanwhile).

        Raises:
            ProbeError: The probe raised something other than a transport
                error. The table is left in flight; callers settle it with
                :meth:`fail`.
        """
        probe = self.probes[operation]
        token = result.begin(operation)
        if token is None:
            logger.debug(
                "Skipping %s on %s: %s already in flight",
                operation.value, table.name, result.in_flight.value,
            )
            return False

        try:
            attempt = await probe.run(self.transport, table, result)
        except ProbeError:
            raise
        except TransportTimeout as exc:
            raise ProbeError(table.name, operation.value, f"timed out: {exc.message}") from exc
        except Exception as exc:
            raise ProbeError(table.name, operation.value, f"{type(exc).__name__}: {exc}") from exc

        applied = result.settle(token, operation, attempt.outcome, attempt.error)
        if not applied:
            logger.debug("Ignoring late %s result for %s", operation.value, table.name)
            return False
        if operation is OperationKind.INSERT:
            result.inserted_record = attempt.record
        return True

    def fail(
        self,
        operation: OperationKind,
        table: TableDescriptor,
        result: ProbeResult,
        error: ProbeError,
    ) -> None:
        """Record the operation's failure default for a probe that errored or timed out."""
        outcome = self.probes[operation].failure_outcome(table, result)
        result.abandon(operation, outcome, str(error))
        if operation is OperationKind.INSERT:
            result.inserted_record = None
        logger.warning("%s (recorded as %s)", error, outcome.value)
