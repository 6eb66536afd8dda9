"""Base class for the per-operation access probes."""

from __future__ import annotations

import abc
from dataclasses import dataclass
from typing import Any

from rls_probe.models import OperationKind, ProbeOutcome, ProbeResult, TableDescriptor


@dataclass
class ProbeAttempt:
    """What one probe observed. The engine applies it to the table's ProbeResult."""

    outcome: ProbeOutcome
    record: dict[str, Any] | None = None
    error: str | None = None


class BaseProbe(abc.ABC):
    """Abstract base class for all access probes.

    To add a probe, subclass this and implement `run()`. The registry
    auto-discovers every subclass found in the probes/ directory; there is
    exactly one probe per operation.

    Attributes:
        name: Unique identifier for this probe.
        operation: The CRUD operation this probe exercises.
        description: Human-readable summary shown by `rls-probe list-probes`.
    """

    name: str = ""
    operation: OperationKind | None = None
    description: str = ""

    @abc.abstractmethod
    async def run(self, transport, table: TableDescriptor, result: ProbeResult) -> ProbeAttempt:
        """Issue the probe against *table* as the anonymous caller.

        Args:
            transport: REST transport shared by the whole run.
            table: Table being probed.
            result: The table's results so far (read-only here).

        Returns:
            ProbeAttempt. Error responses from the transport are an outcome,
            not an exception.
        """
        ...

    def failure_outcome(self, table: TableDescriptor, result: ProbeResult) -> ProbeOutcome:
        """Outcome recorded when the probe errors unexpectedly or times out."""
        return ProbeOutcome.FAILED

    def __init_subclass__(cls, **kwargs):
        super().__init_subclass__(**kwargs)
        if not cls.name:
            cls.name = cls.__name__

    def __repr__(self):
        op = self.operation.value if self.operation else "?"
        return f"<{self.__class__.__name__} [{op}] {self.name}>"


class RowTargetedProbe(BaseProbe):
    """Probes that act on the row created by the insert probe.

    They need both a known primary key and an inserted record; without
    either the outcome is undecidable and no request is made.
    """

    def missing_precondition(self, table: TableDescriptor, result: ProbeResult) -> str | None:
        if not table.primary_key_name:
            return "no primary key"
        if not result.inserted:
            return "no inserted record"
        if result.inserted_record.get(table.primary_key_name) is None:
            return "inserted record has no primary key value"
        return None

    def match(self, table: TableDescriptor, result: ProbeResult) -> dict[str, Any]:
        pk = table.primary_key_name
        return {pk: result.inserted_record[pk]}

    def failure_outcome(self, table: TableDescriptor, result: ProbeResult) -> ProbeOutcome:
        if self.missing_precondition(table, result):
            return ProbeOutcome.UNDECIDABLE
        return ProbeOutcome.FAILED
