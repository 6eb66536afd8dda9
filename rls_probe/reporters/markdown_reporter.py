"""Markdown report renderer."""

from __future__ import annotations

from rls_probe.config import ReportConfig
from rls_probe.models import PHASE_ORDER, RunState, ScanReport, SecurityStatus

STATUS_LABELS = {
    SecurityStatus.SECURED: "Secured",
    SecurityStatus.NOT_SECURED: "**NOT SECURED**",
    SecurityStatus.PROBABLY_SECURED: "Probably secured",
    SecurityStatus.UNKNOWN: "Unknown",
}

_BLOCKED_REMEDIATION = (
    "The schema could not be read with this key. Either the key is invalid or "
    "OpenAPI introspection is disabled for the project. With introspection off, "
    "tables can't be discovered anonymously, which is the recommended setting. "
    "Check the key, or probe known table names directly."
)


def render(report: ScanReport, config: ReportConfig | None = None) -> str:
    """Render a ScanReport as Markdown."""
    config = config or ReportConfig()
    lines = [
        f"# RLS probe report: {report.project_ref or report.target}",
        "",
        f"- **Target:** {report.target}",
        f"- **Run at:** {report.timestamp.strftime('%Y-%m-%d %H:%M:%S %Z')}",
        f"- **State:** {report.state.value}",
    ]
    if report.completed_phases:
        phases = ", ".join(op.value for op in report.completed_phases)
        lines.append(f"- **Completed phases:** {phases}")
    lines.append("")

    if report.state == RunState.SCHEMA_BLOCKED:
        lines += ["## Schema access blocked", "", f"> {report.error}", "", _BLOCKED_REMEDIATION, ""]
        return "\n".join(lines)
    if report.error:
        lines += ["## Error", "", f"> {report.error}", ""]
        if report.state == RunState.COMPLETE_WITH_ERROR:
            lines += ["Results below are partial.", ""]

    if not report.tables:
        lines += ["No tables were probed.", ""]
        return "\n".join(lines)

    lines += _summary(report)
    lines += _matrix(report)

    exposed = report.exposed_tables
    if exposed:
        lines += ["## Tables open to anonymous callers", ""]
        for name in exposed:
            result = report.results[name]
            ops = [op.value for op in PHASE_ORDER if result.status(op) == SecurityStatus.NOT_SECURED]
            lines.append(f"- `{name}`: {', '.join(ops)}")
        lines.append("")

    if config.include_schema:
        lines += _schema(report)

    return "\n".join(lines)


def _summary(report: ScanReport) -> list[str]:
    header = "| Operation | " + " | ".join(STATUS_LABELS[s].strip("*") for s in SecurityStatus) + " |"
    lines = ["## Summary", "", header, "|" + "---|" * (len(SecurityStatus) + 1)]
    for op in PHASE_ORDER:
        counts = report.status_counts(op)
        lines.append(f"| {op.value} | " + " | ".join(str(counts[s]) for s in SecurityStatus) + " |")
    lines.append("")
    return lines


def _matrix(report: ScanReport) -> list[str]:
    lines = [
        "## Tables",
        "",
        "| Table | " + " | ".join(op.value for op in PHASE_ORDER) + " |",
        "|" + "---|" * (len(PHASE_ORDER) + 1),
    ]
    for table in report.tables:
        result = report.results.get(table.name)
        if result is None:
            cells = [STATUS_LABELS[SecurityStatus.UNKNOWN]] * len(PHASE_ORDER)
        else:
            cells = [STATUS_LABELS[result.status(op)] for op in PHASE_ORDER]
        name = f"`{table.name}`" + (" (view)" if table.kind == "view" else "")
        lines.append(f"| {name} | " + " | ".join(cells) + " |")
    lines.append("")
    return lines


def _schema(report: ScanReport) -> list[str]:
    lines = ["## Schema", ""]
    for table in report.tables:
        pk = table.primary_key_name or "none"
        lines.append(f"### `{table.name}` (primary key: {pk})")
        lines.append("")
        if not table.properties:
            lines += ["_No columns._", ""]
            continue
        lines += ["| Column | Type | Format | Required |", "|---|---|---|---|"]
        for prop in table.properties.values():
            required = "yes" if table.is_required(prop.name) else ""
            lines.append(f"| {prop.name} | {prop.type} | {prop.format} | {required} |")
        lines.append("")
    return lines
