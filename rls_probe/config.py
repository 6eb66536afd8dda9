"""Configuration loading and management for rls-probe."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from rls_probe.connection import DEFAULT_SCHEMA_TIMEOUT
from rls_probe.scheduler import (
    DEFAULT_BATCH_SIZE,
    DEFAULT_PROBE_TIMEOUT,
    DEFAULT_SEQUENTIAL_THRESHOLD,
)

CONFIG_FILENAME = "rls-probe.yaml"


@dataclass
class TableFilterConfig:
    """Configuration for which tables to include/exclude."""

    exclude: set[str] = field(default_factory=set)
    include_only: set[str] | None = None  # None = no whitelist, probe all minus exclude

    def allows(self, table_name: str) -> bool:
        if table_name in self.exclude:
            return False
        return self.include_only is None or table_name in self.include_only


@dataclass
class SchedulerConfig:
    """Batching and timeout settings for the probe phases."""

    batch_size: int = DEFAULT_BATCH_SIZE
    sequential_threshold: int = DEFAULT_SEQUENTIAL_THRESHOLD
    probe_timeout: float = DEFAULT_PROBE_TIMEOUT
    schema_timeout: float = DEFAULT_SCHEMA_TIMEOUT


@dataclass
class ReportConfig:
    """Configuration for report generation."""

    include_schema: bool = True
    include_records: bool = False


@dataclass
class Config:
    """Complete configuration for rls-probe."""

    tables: TableFilterConfig = field(default_factory=TableFilterConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    report: ReportConfig = field(default_factory=ReportConfig)


def find_config_file() -> str | None:
    """Search for rls-probe.yaml in cwd, then home dir.

    Returns:
        Path to config file if found, None otherwise.
    """
    cwd_config = Path.cwd() / CONFIG_FILENAME
    if cwd_config.is_file():
        return str(cwd_config)

    home_config = Path.home() / CONFIG_FILENAME
    if home_config.is_file():
        return str(home_config)

    return None


def load_config(config_path: str | None = None, auto_discover: bool = True) -> Config:
    """Load configuration from YAML file.

    Args:
        config_path: Explicit path to config file. If None and auto_discover is True,
                     searches default locations.
        auto_discover: If True and config_path is None, search for config file.

    Returns:
        Config object. Returns default config if no file found.
    """
    if config_path is None and auto_discover:
        config_path = find_config_file()

    if config_path is None:
        return Config()

    if not os.path.isfile(config_path):
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        data = yaml.safe_load(f) or {}

    return _parse_config(data)


def _parse_config(data: dict) -> Config:
    """Parse YAML data into Config object."""
    config = Config()

    if "tables" in data:
        config.tables = _parse_table_filter(data["tables"] or {})

    if "scheduler" in data:
        sched = data["scheduler"] or {}
        defaults = SchedulerConfig()
        config.scheduler = SchedulerConfig(
            batch_size=int(sched.get("batch_size", defaults.batch_size)),
            sequential_threshold=int(
                sched.get("sequential_threshold", defaults.sequential_threshold)
            ),
            probe_timeout=float(sched.get("probe_timeout", defaults.probe_timeout)),
            schema_timeout=float(sched.get("schema_timeout", defaults.schema_timeout)),
        )
        if config.scheduler.batch_size < 1:
            raise ValueError("scheduler.batch_size must be at least 1")

    if "report" in data:
        report_data = data["report"] or {}
        config.report = ReportConfig(
            include_schema=report_data.get("include_schema", True),
            include_records=report_data.get("include_records", False),
        )

    return config


def _parse_table_filter(data: dict) -> TableFilterConfig:
    """Parse the tables section."""
    exclude = set(data.get("exclude") or [])

    include_only = None
    if "include_only" in data:
        include_only = set(data["include_only"] or [])

    return TableFilterConfig(exclude=exclude, include_only=include_only)


def merge_cli_with_config(
    config: Config,
    cli_exclude: set[str] | None = None,
    cli_include_only: set[str] | None = None,
    cli_batch_size: int | None = None,
    cli_timeout: float | None = None,
) -> tuple[TableFilterConfig, SchedulerConfig]:
    """Merge CLI arguments with config file settings.

    CLI arguments take precedence over config file.

    Args:
        config: Loaded configuration.
        cli_exclude: Tables to exclude (from --exclude flag).
        cli_include_only: Tables to include only (from --include-only flag).
        cli_batch_size: Group size (from --batch-size flag).
        cli_timeout: Per-probe timeout in seconds (from --timeout flag).

    Returns:
        Tuple of (TableFilterConfig, SchedulerConfig) with merged settings.
    """
    table_cfg = config.tables

    # CLI exclude adds to config exclude
    if cli_exclude:
        table_cfg = TableFilterConfig(
            exclude=table_cfg.exclude | cli_exclude,
            include_only=table_cfg.include_only,
        )

    # CLI include_only completely overrides config
    if cli_include_only is not None:
        table_cfg = TableFilterConfig(
            exclude=table_cfg.exclude,
            include_only=cli_include_only,
        )

    sched = config.scheduler
    scheduler_cfg = SchedulerConfig(
        batch_size=cli_batch_size if cli_batch_size is not None else sched.batch_size,
        sequential_threshold=sched.sequential_threshold,
        probe_timeout=cli_timeout if cli_timeout is not None else sched.probe_timeout,
        schema_timeout=sched.schema_timeout,
    )

    return table_cfg, scheduler_cfg
