"""Data models for tables, probe results and scan reports."""

from __future__ import annotations

import copy
import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


class OperationKind(enum.Enum):
    READ = "read"
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"

    def __lt__(self, other):
        return PHASE_ORDER.index(self) < PHASE_ORDER.index(other)


PHASE_ORDER = (
    OperationKind.READ,
    OperationKind.INSERT,
    OperationKind.UPDATE,
    OperationKind.DELETE,
)


class ProbeOutcome(enum.Enum):
    NOT_RUN = "not_run"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    UNDECIDABLE = "undecidable"
    INDETERMINATE = "indeterminate"


class SecurityStatus(enum.Enum):
    SECURED = "secured"
    NOT_SECURED = "not_secured"
    PROBABLY_SECURED = "probably_secured"
    UNKNOWN = "unknown"


_STATUS_BY_OUTCOME = {
    ProbeOutcome.SUCCEEDED: SecurityStatus.NOT_SECURED,
    ProbeOutcome.FAILED: SecurityStatus.SECURED,
    ProbeOutcome.INDETERMINATE: SecurityStatus.PROBABLY_SECURED,
    ProbeOutcome.UNDECIDABLE: SecurityStatus.UNKNOWN,
    ProbeOutcome.NOT_RUN: SecurityStatus.UNKNOWN,
}


def classify(outcome: ProbeOutcome) -> SecurityStatus:
    """Map a probe outcome to the security status shown to the user.

    An anonymous caller succeeding means the table is exposed; failing means
    it is protected.  A read that returns nothing can't prove either, so it
    only ever counts as probably secured.
    """
    return _STATUS_BY_OUTCOME[outcome]


class RunPhase(enum.Enum):
    IDLE = "idle"
    SCHEMA = "schema"
    READ = "read"
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"
    DONE = "done"

    @classmethod
    def for_operation(cls, operation: OperationKind) -> RunPhase:
        return cls(operation.value)


class RunState(enum.Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETE = "complete"
    COMPLETE_WITH_ERROR = "complete_with_error"
    SCHEMA_BLOCKED = "schema_blocked"
    SCHEMA_FAILED = "schema_failed"

    @property
    def is_terminal(self) -> bool:
        return self not in (RunState.IDLE, RunState.RUNNING)


# ---------------------------------------------------------------------------
# Schema model
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PropertyDescriptor:
    name: str
    type: str = ""
    format: str = ""
    description: str = ""
    enum: tuple[Any, ...] | None = None
    default: Any = None
    max_length: int | None = None
    item_type: str | None = None  # arrays only


@dataclass(frozen=True)
class TableDescriptor:
    name: str
    properties: dict[str, PropertyDescriptor] = field(default_factory=dict)
    required: tuple[str, ...] = ()
    primary_key_name: str | None = None

    @property
    def required_names(self) -> frozenset[str]:
        return frozenset(self.required)

    @property
    def kind(self) -> str:
        if "_view" in self.name or self.name.startswith("admin_"):
            return "view"
        return "table"

    def is_required(self, column: str) -> bool:
        return column in self.required_names


# ---------------------------------------------------------------------------
# Probe results
# ---------------------------------------------------------------------------


@dataclass
class ProbeResult:
    """Mutable probe state for one table, updated in place across the phases.

    ``in_flight`` holds the operation currently executing against the table.
    Each start hands out an attempt token; :meth:`settle` ignores tokens that
    were abandoned (e.g. by a timeout) so a late response can't overwrite the
    value recorded for it.
    """

    table_name: str
    read: ProbeOutcome = ProbeOutcome.NOT_RUN
    insert: ProbeOutcome = ProbeOutcome.NOT_RUN
    update: ProbeOutcome = ProbeOutcome.NOT_RUN
    delete: ProbeOutcome = ProbeOutcome.NOT_RUN
    inserted_record: dict[str, Any] | None = None
    in_flight: OperationKind | None = None
    errors: dict[OperationKind, str] = field(default_factory=dict)
    _attempt: int = field(default=0, repr=False)

    @property
    def inserted(self) -> bool:
        return self.inserted_record is not None

    def outcome(self, operation: OperationKind) -> ProbeOutcome:
        return getattr(self, operation.value)

    def status(self, operation: OperationKind) -> SecurityStatus:
        return classify(self.outcome(operation))

    def begin(self, operation: OperationKind) -> int | None:
        """Mark *operation* in flight. Returns None if another probe is running."""
        if self.in_flight is not None:
            return None
        self._attempt += 1
        self.in_flight = operation
        return self._attempt

    def settle(
        self,
        token: int,
        operation: OperationKind,
        outcome: ProbeOutcome,
        error: str | None = None,
    ) -> bool:
        if token != self._attempt or self.in_flight is not operation:
            return False
        self._record(operation, outcome, error)
        self.in_flight = None
        return True

    def abandon(self, operation: OperationKind, outcome: ProbeOutcome, error: str) -> None:
        """Record *outcome* for an attempt that will never settle."""
        self._attempt += 1
        self._record(operation, outcome, error)
        if self.in_flight is operation:
            self.in_flight = None

    def _record(self, operation: OperationKind, outcome: ProbeOutcome, error: str | None):
        setattr(self, operation.value, outcome)
        if error:
            self.errors[operation] = error
        else:
            self.errors.pop(operation, None)

    def snapshot(self) -> ProbeResult:
        return copy.deepcopy(self)


@dataclass
class RunProgress:
    """Progress counters for a single run. Reset at the start of each run."""

    phase: RunPhase = RunPhase.IDLE
    operation: OperationKind | None = None
    completed_phases: list[OperationKind] = field(default_factory=list)
    total_tables: int = 0
    processed: dict[OperationKind, int] = field(default_factory=dict)

    def reset(self, total_tables: int = 0) -> None:
        self.phase = RunPhase.IDLE
        self.operation = None
        self.completed_phases = []
        self.total_tables = total_tables
        self.processed = {op: 0 for op in PHASE_ORDER}

    def advance(self, operation: OperationKind, count: int) -> None:
        self.processed[operation] = min(
            self.processed.get(operation, 0) + count, self.total_tables
        )

    def fraction(self, operation: OperationKind) -> float:
        if not self.total_tables:
            return 1.0
        return self.processed.get(operation, 0) / self.total_tables


@dataclass
class Snapshot:
    """Point-in-time copy of a run, published after each group and phase."""

    phase: RunPhase
    operation: OperationKind | None
    processed: int
    total: int
    results: dict[str, ProbeResult]


@dataclass
class ScanReport:
    target: str
    timestamp: datetime
    state: RunState = RunState.IDLE
    tables: list[TableDescriptor] = field(default_factory=list)
    results: dict[str, ProbeResult] = field(default_factory=dict)
    completed_phases: list[OperationKind] = field(default_factory=list)
    error: str | None = None

    @property
    def project_ref(self) -> str:
        host = self.target.split("://", 1)[-1]
        return host.split(".", 1)[0]

    @property
    def table_count(self) -> int:
        return len(self.tables)

    def status_counts(self, operation: OperationKind) -> dict[SecurityStatus, int]:
        counts = {status: 0 for status in SecurityStatus}
        for result in self.results.values():
            counts[result.status(operation)] += 1
        return counts

    @property
    def exposed_tables(self) -> list[str]:
        return [
            name
            for name, result in self.results.items()
            if any(result.status(op) == SecurityStatus.NOT_SECURED for op in PHASE_ORDER)
        ]
