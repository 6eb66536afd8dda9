"""CLI entry point for rls-probe."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from datetime import datetime

from rls_probe import __version__

# File extensions per output format
_FORMAT_EXT = {"json": ".json", "markdown": ".md"}

_KNOWN_COMMANDS = {"scan", "schema", "list-probes"}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rls-probe",
        description="Probe a Supabase project's REST API as an anonymous caller "
        "and report which tables row-level security protects.",
    )
    parser.add_argument("--version", action="version", version=f"rls-probe {__version__}")

    subparsers = parser.add_subparsers(dest="command", help="Available commands (default: scan)")

    # -- scan --
    scan_parser = subparsers.add_parser(
        "scan", help="Probe read/insert/update/delete access on every table"
    )
    _add_target_args(scan_parser)
    _add_output_args(scan_parser)
    grp = scan_parser.add_argument_group("probing")
    grp.add_argument("--exclude", help="Comma-separated list of tables to skip")
    grp.add_argument("--include-only", help="Comma-separated list of the only tables to probe")
    grp.add_argument("--batch-size", type=int, default=None, help="Tables probed concurrently per group (default: 10)")
    grp.add_argument("--timeout", type=float, default=None, help="Per-probe timeout in seconds (default: 15)")
    grp.add_argument("--config", help="Path to rls-probe.yaml (default: ./rls-probe.yaml, then ~/rls-probe.yaml)")
    scan_parser.add_argument("--verbose", "-v", action="store_true", help="Print progress")

    # -- schema --
    schema_parser = subparsers.add_parser(
        "schema", help="Show the tables and columns exposed through the REST API"
    )
    _add_target_args(schema_parser)
    schema_parser.add_argument("--verbose", "-v", action="store_true", help="Print progress")

    # -- list-probes --
    subparsers.add_parser("list-probes", help="List all available probes")

    return parser


def _add_target_args(parser: argparse.ArgumentParser):
    grp = parser.add_argument_group("target")
    grp.add_argument("url", help="Project URL (https://<project-ref>.supabase.co)")
    grp.add_argument("--key", "-k", default=None, help="Anon API key (default: $SUPABASE_ANON_KEY)")


def _add_output_args(parser: argparse.ArgumentParser):
    grp = parser.add_argument_group("output")
    grp.add_argument(
        "--format",
        "-f",
        choices=["json", "markdown"],
        default="markdown",
        help="Report format (default: markdown)",
    )
    grp.add_argument("--output", "-o", help="Output file path (default: ./reports/<project>_<timestamp>.<ext>)")


def main(argv: list[str] | None = None):
    parser = build_parser()

    # Default to "scan" when no subcommand is given but arguments are present
    raw_args = argv if argv is not None else sys.argv[1:]
    if raw_args and raw_args[0] not in _KNOWN_COMMANDS and raw_args[0] not in ("--version", "--help", "-h"):
        raw_args = ["scan"] + list(raw_args)
    elif not raw_args:
        parser.print_help()
        sys.exit(1)

    args = parser.parse_args(raw_args)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    _configure_logging(getattr(args, "verbose", False))

    if args.command == "list-probes":
        _cmd_list_probes(args)
    elif args.command == "schema":
        _cmd_schema(args)
    elif args.command == "scan":
        _cmd_scan(args)


def _configure_logging(verbose: bool):
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def _split(value: str | None) -> set[str] | None:
    if value is None:
        return None
    return {item.strip() for item in value.split(",") if item.strip()}


def _cmd_list_probes(args):
    from rls_probe.registry import discover_probes

    probes = discover_probes()
    if not probes:
        print("No probes found.")
        return

    for probe in probes:
        print(f"  {probe.operation.value:8s} {probe.name:16s} {probe.description}")


def _connect_or_exit(args, schema_timeout: float | None = None):
    from rls_probe.connection import DEFAULT_SCHEMA_TIMEOUT, connect
    from rls_probe.errors import ConfigError

    try:
        return connect(args.url, args.key, schema_timeout=schema_timeout or DEFAULT_SCHEMA_TIMEOUT)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


def _cmd_schema(args):
    from rls_probe.errors import SchemaAccessBlocked, SchemaFetchError
    from rls_probe.scanner import Scanner

    transport = _connect_or_exit(args)

    async def fetch():
        async with transport:
            return await Scanner(transport).retrieve_schema()

    try:
        tables = asyncio.run(fetch())
    except SchemaAccessBlocked as e:
        print(f"Error: schema access blocked ({e}).", file=sys.stderr)
        sys.exit(1)
    except SchemaFetchError as e:
        print(f"Error: could not retrieve schema: {e}", file=sys.stderr)
        sys.exit(1)

    if not tables:
        print("No tables found.")
        return

    for table in tables:
        print(f"\n[{table.kind}] {table.name}  (primary key: {table.primary_key_name or 'none'})")
        for prop in table.properties.values():
            flags = []
            if table.is_required(prop.name):
                flags.append("required")
            if prop.name == table.primary_key_name:
                flags.append("pk")
            type_label = prop.type + (f" ({prop.format})" if prop.format else "")
            print(f"  {prop.name:30s} {type_label:36s} {' '.join(flags)}")


def _cmd_scan(args):
    from rls_probe.config import load_config, merge_cli_with_config
    from rls_probe.models import RunState
    from rls_probe.scanner import run_scan

    try:
        config = load_config(args.config)
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    table_cfg, scheduler_cfg = merge_cli_with_config(
        config,
        cli_exclude=_split(args.exclude),
        cli_include_only=_split(args.include_only),
        cli_batch_size=args.batch_size,
        cli_timeout=args.timeout,
    )
    transport = _connect_or_exit(args, schema_timeout=scheduler_cfg.schema_timeout)

    async def scan():
        async with transport:
            return await run_scan(
                transport,
                target=transport.base_url,
                scheduler_config=scheduler_cfg,
                table_filter=table_cfg,
                verbose=args.verbose,
            )

    report = asyncio.run(scan())

    output = _render_report(report, args.format, config.report)
    _write_output(output, args, name=report.project_ref)

    if report.state == RunState.SCHEMA_BLOCKED:
        print(f"Error: schema access blocked ({report.error}).", file=sys.stderr)
        print(
            "\nHint: check the anon key. If it is correct, OpenAPI introspection is "
            "disabled and tables cannot be discovered anonymously.",
            file=sys.stderr,
        )
        sys.exit(1)
    if report.state == RunState.SCHEMA_FAILED:
        print(f"Error: could not retrieve schema: {report.error}", file=sys.stderr)
        sys.exit(1)
    if report.error:
        print(f"Warning: {report.error} (results are partial)", file=sys.stderr)


def _write_output(output: str, args, name: str = ""):
    """Write report to file (with timestamped name)."""
    if args.output:
        path = _make_output_path(args.output, args.format, name)
    else:
        # Default: write to ./reports/<name>_<timestamp>.<ext>
        path = _make_default_output_path(args.format, name)

    parent = os.path.dirname(path)
    if parent:
        os.makedirs(parent, exist_ok=True)
    with open(path, "w") as f:
        f.write(output)
    print(f"Report written to {path}", file=sys.stderr)


def _make_default_output_path(fmt: str, name: str) -> str:
    """Generate a default output path: ./reports/<name>_<timestamp>.<ext>."""
    ts = datetime.now().strftime("%Y%m%d_%H%M%S")
    ext = _FORMAT_EXT.get(fmt, "")
    name = name or "rls-probe"
    return os.path.join("reports", f"{name}_{ts}{ext}")


def _make_output_path(user_path: str, fmt: str, name: str = "") -> str:
    """Insert a timestamp into the output filename.

    ``out/scan.json`` becomes ``out/scan_<YYYYmmdd_HHMMSS>.json``. A path
    with no extension takes the format's one, and an existing directory
    gets the default ``<name>_<timestamp>`` filename inside it.
    """
    ts = datetime.now().strftime("%Y%m%d_%H%M%S")
    ext = _FORMAT_EXT.get(fmt, "")
    name = name or "rls-probe"

    if os.path.isdir(user_path):
        return os.path.join(user_path, f"{name}_{ts}{ext}")

    base, existing_ext = os.path.splitext(user_path)
    if not existing_ext:
        existing_ext = ext
    return f"{base}_{ts}{existing_ext}"


def _render_report(report, fmt: str, config=None) -> str:
    if fmt == "json":
        from rls_probe.reporters.json_reporter import render
    elif fmt == "markdown":
        from rls_probe.reporters.markdown_reporter import render
    else:
        raise ValueError(f"Unknown format: {fmt}")
    return render(report, config)


if __name__ == "__main__":
    main()
