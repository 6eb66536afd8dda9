"""Tests for rls_probe.reporters — JSON and Markdown rendering."""

from __future__ import annotations

import json
from datetime import datetime, timezone

from rls_probe.config import ReportConfig
from rls_probe.models import RunState, ScanReport
from rls_probe.reporters.json_reporter import render as render_json
from rls_probe.reporters.markdown_reporter import render as render_markdown


def _empty_report(state: RunState, error: str | None = None) -> ScanReport:
    return ScanReport(
        target="https://abcdefgh.supabase.co",
        timestamp=datetime(2026, 1, 27, 12, 0, 0, tzinfo=timezone.utc),
        state=state,
        error=error,
    )


# -- JSON Reporter ------------------------------------------------------------


class TestJSONReporter:
    def test_valid_json(self, sample_report):
        data = json.loads(render_json(sample_report))
        assert isinstance(data, dict)

    def test_has_required_keys(self, sample_report):
        data = json.loads(render_json(sample_report))
        assert set(data) == {"meta", "summary", "tables"}

    def test_meta_fields(self, sample_report):
        meta = json.loads(render_json(sample_report))["meta"]
        assert meta["tool"] == "rls-probe"
        assert meta["target"] == "https://abcdefgh.supabase.co"
        assert meta["state"] == "complete"
        assert meta["error"] is None
        assert meta["completed_phases"] == ["read", "insert", "update", "delete"]
        assert meta["timestamp"].startswith("2026-01-27T12:00:00")

    def test_summary_counts(self, sample_report):
        s = json.loads(render_json(sample_report))["summary"]
        assert s["tables"] == 3
        assert s["exposed_tables"] == ["widgets"]
        assert s["read"] == {
            "secured": 1,
            "not_secured": 1,
            "probably_secured": 1,
            "unknown": 0,
        }
        assert s["update"]["unknown"] == 2

    def test_table_entries(self, sample_report):
        tables = json.loads(render_json(sample_report))["tables"]
        assert [t["name"] for t in tables] == ["widgets", "secrets", "audit_view"]

        widgets = tables[0]
        assert widgets["kind"] == "table"
        assert widgets["primary_key"] == "id"
        assert widgets["read"] == {"outcome": "succeeded", "status": "not_secured", "error": None}

        secrets = tables[1]
        assert secrets["read"]["status"] == "secured"
        assert secrets["read"]["error"] == "permission denied"
        assert secrets["update"]["outcome"] == "undecidable"

        view = tables[2]
        assert view["kind"] == "view"
        assert view["primary_key"] is None
        assert view["read"]["status"] == "probably_secured"

    def test_columns_included_by_default(self, sample_report):
        widgets = json.loads(render_json(sample_report))["tables"][0]
        assert widgets["columns"] == [
            {"name": "id", "type": "integer", "format": "", "required": False},
            {"name": "name", "type": "string", "format": "", "required": True},
        ]
        assert "inserted_record" not in widgets

    def test_report_config_toggles(self, sample_report):
        config = ReportConfig(include_schema=False, include_records=True)
        widgets = json.loads(render_json(sample_report, config))["tables"][0]
        assert "columns" not in widgets
        assert widgets["inserted_record"] == {"id": 1, "name": "abc123"}

    def test_schema_blocked(self):
        report = _empty_report(RunState.SCHEMA_BLOCKED, "OpenAPI mode disabled")
        data = json.loads(render_json(report))
        assert data["meta"]["state"] == "schema_blocked"
        assert data["meta"]["error"] == "OpenAPI mode disabled"
        assert data["tables"] == []


# -- Markdown Reporter --------------------------------------------------------


class TestMarkdownReporter:
    def test_title(self, sample_report):
        md = render_markdown(sample_report)
        assert md.startswith("# RLS probe report: abcdefgh")

    def test_meta(self, sample_report):
        md = render_markdown(sample_report)
        assert "- **Target:** https://abcdefgh.supabase.co" in md
        assert "- **State:** complete" in md
        assert "- **Completed phases:** read, insert, update, delete" in md

    def test_summary_table(self, sample_report):
        md = render_markdown(sample_report)
        assert "## Summary" in md
        assert "| Operation | Secured | NOT SECURED | Probably secured | Unknown |" in md
        assert "| read | 1 | 1 | 1 | 0 |" in md
        assert "| update | 0 | 1 | 0 | 2 |" in md

    def test_matrix(self, sample_report):
        md = render_markdown(sample_report)
        assert "| `widgets` | **NOT SECURED** | **NOT SECURED** | **NOT SECURED** | **NOT SECURED** |" in md
        assert "| `secrets` | Secured | Secured | Unknown | Unknown |" in md
        assert "| `audit_view` (view) | Probably secured | Secured | Unknown | Unknown |" in md

    def test_exposed_section(self, sample_report):
        md = render_markdown(sample_report)
        assert "## Tables open to anonymous callers" in md
        assert "- `widgets`: read, insert, update, delete" in md

    def test_schema_section(self, sample_report):
        md = render_markdown(sample_report)
        assert "## Schema" in md
        assert "### `widgets` (primary key: id)" in md
        assert "### `audit_view` (primary key: none)" in md
        assert "| name | string |  | yes |" in md

    def test_schema_section_disabled(self, sample_report):
        md = render_markdown(sample_report, ReportConfig(include_schema=False))
        assert "## Schema" not in md

    def test_no_exposure_section_when_secured(self, sample_report):
        del sample_report.results["widgets"]
        md = render_markdown(sample_report)
        assert "## Tables open to anonymous callers" not in md
        assert "| `widgets` | Unknown | Unknown | Unknown | Unknown |" in md

    def test_schema_blocked(self):
        md = render_markdown(_empty_report(RunState.SCHEMA_BLOCKED, "Invalid API key"))
        assert "## Schema access blocked" in md
        assert "> Invalid API key" in md
        assert "introspection" in md
        assert "## Summary" not in md

    def test_schema_failed(self):
        md = render_markdown(_empty_report(RunState.SCHEMA_FAILED, "JWT expired"))
        assert "## Error" in md
        assert "> JWT expired" in md
        assert "No tables were probed." in md

    def test_partial_results(self, sample_report):
        sample_report.state = RunState.COMPLETE_WITH_ERROR
        sample_report.error = "Error during update check: RuntimeError: boom"
        md = render_markdown(sample_report)
        assert "> Error during update check: RuntimeError: boom" in md
        assert "Results below are partial." in md
        assert "## Tables" in md
