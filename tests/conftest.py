"""Shared fixtures for rls-probe tests."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import pytest

from rls_probe.errors import TransportError
from rls_probe.models import (
    OperationKind,
    ProbeOutcome,
    ProbeResult,
    PropertyDescriptor,
    RunState,
    ScanReport,
    TableDescriptor,
)
from rls_probe.schema_parser import PK_MARKER


def make_table(
    name: str = "widgets",
    columns: dict[str, str] | None = None,
    required: tuple[str, ...] = ("name",),
    primary_key: str | None = "id",
) -> TableDescriptor:
    """Factory for TableDescriptor. *columns* maps column name to type."""
    if columns is None:
        columns = {"id": "integer", "name": "string"}
    properties = {}
    for column, col_type in columns.items():
        description = f"Note:\nThis is a Primary Key.{PK_MARKER}" if column == primary_key else ""
        properties[column] = PropertyDescriptor(name=column, type=col_type, description=description)
    return TableDescriptor(
        name=name,
        properties=properties,
        required=required,
        primary_key_name=primary_key,
    )


def make_result(
    name: str,
    read: ProbeOutcome = ProbeOutcome.NOT_RUN,
    insert: ProbeOutcome = ProbeOutcome.NOT_RUN,
    update: ProbeOutcome = ProbeOutcome.NOT_RUN,
    delete: ProbeOutcome = ProbeOutcome.NOT_RUN,
) -> ProbeResult:
    return ProbeResult(name, read=read, insert=insert, update=update, delete=delete)


def widgets_schema(extra_tables: int = 0) -> dict:
    """OpenAPI payload with a `widgets` table plus *extra_tables* copies of it."""
    definition = {
        "required": ["id", "name"],
        "properties": {
            "id": {
                "description": f"Note:\nThis is a Primary Key.{PK_MARKER}",
                "format": "bigint",
                "type": "integer",
            },
            "name": {"format": "text", "type": "string"},
        },
        "type": "object",
    }
    definitions = {"widgets": definition}
    for i in range(extra_tables):
        definitions[f"table_{i:02d}"] = definition
    return {"swagger": "2.0", "definitions": definitions}


class FakeTransport:
    """In-memory stand-in for RestTransport.

    Attributes:
        rows: table -> rows returned by select (default: none).
        failing: {(operation, table)} pairs answered with an error; use "*"
            as the table to fail an operation everywhere.
        broken: {(operation, table)} pairs that raise a non-transport error.
        gates: (operation, table) -> asyncio.Event the call waits on first.
        insert_rows: table -> row returned by insert (default: record + id).
        calls: every call made, as (operation, table, payload) tuples.
    """

    base_url = "https://abcdefgh.supabase.co"

    def __init__(self, schema: dict | None = None, schema_error: str | None = None):
        self.schema = schema if schema is not None else widgets_schema()
        self.schema_error = schema_error
        self.rows: dict[str, list[dict]] = {}
        self.failing: set[tuple[str, str]] = set()
        self.broken: set[tuple[str, str]] = set()
        self.gates: dict[tuple[str, str], asyncio.Event] = {}
        self.insert_rows: dict[str, dict] = {}
        self.calls: list[tuple] = []
        self.active = 0
        self.max_active = 0
        self._next_id = 1
        self.closed = False

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        self.closed = True

    async def _enter(self, op: str, table: str, payload=None):
        self.calls.append((op, table, payload))
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            gate = self.gates.get((op, table))
            if gate is not None:
                await gate.wait()
            else:
                await asyncio.sleep(0)
        finally:
            self.active -= 1
        if (op, table) in self.broken:
            raise RuntimeError("connection reset")
        if (op, table) in self.failing or (op, "*") in self.failing:
            raise TransportError("permission denied for table " + table, 401)

    async def fetch_schema(self):
        self.calls.append(("schema", None, None))
        if self.schema_error:
            raise TransportError(self.schema_error, 401)
        return self.schema

    async def select(self, table, match=None, limit=None):
        await self._enter("read", table, match)
        return list(self.rows.get(table, []))

    async def insert_and_return(self, table, record):
        await self._enter("insert", table, record)
        if table in self.insert_rows:
            return dict(self.insert_rows[table])
        row = {"id": self._next_id, **record}
        self._next_id += 1
        return row

    async def update(self, table, record, match):
        await self._enter("update", table, (record, match))

    async def delete(self, table, match):
        await self._enter("delete", table, match)

    def ops(self) -> list[str]:
        return [c[0] for c in self.calls]


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def sample_report() -> ScanReport:
    """ScanReport with one exposed table, one secured table and one empty read."""
    widgets = make_table("widgets")
    secrets = make_table("secrets")
    logs = make_table("audit_view", primary_key=None)

    exposed = make_result("widgets", *[ProbeOutcome.SUCCEEDED] * 4)
    exposed.inserted_record = {"id": 1, "name": "abc123"}

    secured = make_result(
        "secrets",
        ProbeOutcome.FAILED,
        ProbeOutcome.FAILED,
        ProbeOutcome.UNDECIDABLE,
        ProbeOutcome.UNDECIDABLE,
    )
    secured.errors[OperationKind.READ] = "permission denied"

    empty = make_result(
        "audit_view",
        ProbeOutcome.INDETERMINATE,
        ProbeOutcome.FAILED,
        ProbeOutcome.UNDECIDABLE,
        ProbeOutcome.UNDECIDABLE,
    )

    return ScanReport(
        target="https://abcdefgh.supabase.co",
        timestamp=datetime(2026, 1, 27, 12, 0, 0, tzinfo=timezone.utc),
        state=RunState.COMPLETE,
        tables=[widgets, secrets, logs],
        results={"widgets": exposed, "secrets": secured, "audit_view": empty},
        completed_phases=list(OperationKind),
    )
