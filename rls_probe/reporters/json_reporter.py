"""JSON report renderer."""

from __future__ import annotations

import json

from rls_probe import __version__
from rls_probe.config import ReportConfig
from rls_probe.models import PHASE_ORDER, ScanReport, SecurityStatus


def render(report: ScanReport, config: ReportConfig | None = None) -> str:
    """Render a ScanReport as a JSON string."""
    config = config or ReportConfig()
    data = {
        "meta": {
            "tool": "rls-probe",
            "version": __version__,
            "target": report.target,
            "timestamp": report.timestamp.isoformat(),
            "state": report.state.value,
            "error": report.error,
            "completed_phases": [op.value for op in report.completed_phases],
        },
        "summary": {
            "tables": report.table_count,
            "exposed_tables": report.exposed_tables,
        },
        "tables": [],
    }

    for op in PHASE_ORDER:
        counts = report.status_counts(op)
        data["summary"][op.value] = {status.value: counts[status] for status in SecurityStatus}

    for table in report.tables:
        result = report.results.get(table.name)
        entry = {
            "name": table.name,
            "kind": table.kind,
            "primary_key": table.primary_key_name,
        }
        for op in PHASE_ORDER:
            entry[op.value] = {
                "outcome": result.outcome(op).value if result else "not_run",
                "status": result.status(op).value if result else "unknown",
                "error": result.errors.get(op) if result else None,
            }
        if config.include_schema:
            entry["columns"] = [
                {
                    "name": prop.name,
                    "type": prop.type,
                    "format": prop.format,
                    "required": table.is_required(prop.name),
                }
                for prop in table.properties.values()
            ]
        if config.include_records and result is not None:
            entry["inserted_record"] = result.inserted_record
        data["tables"].append(entry)

    return json.dumps(data, indent=2, default=str)
