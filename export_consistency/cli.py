"""Command-line interface.

    export-consistency scan PATH [--format FMT] [--output FILE] ...
    export-consistency fix PATH [--dry-run] [--no-backup] [--max-risk LEVEL]
    export-consistency config init|validate [PATH]

Exit codes: 0 clean, 1 error-severity issues remain, 2 configuration error.
"""

import argparse
import logging
import sys
from pathlib import Path

import structlog
from rich.console import Console
from rich.table import Table

from export_consistency import __version__
from export_consistency.audit.auditor import ExportAuditor
from export_consistency.audit.reporter import (
    GROUP_KEYS,
    SORT_KEYS,
    ReportOptions,
    generate_and_save_report,
)
from export_consistency.config import (
    CONFIG_FILE_NAME,
    ExportConfigManager,
    ExportConsistencySettings,
    ReportFormat,
    load_config,
)
from export_consistency.errors import ConfigValidationError
from export_consistency.models import AutoFixOptions, RiskLevel, Severity

EXIT_OK = 0
EXIT_ISSUES = 1
EXIT_CONFIG_ERROR = 2

console = Console()
err_console = Console(stderr=True)


def configure_logging(level: str = "WARNING") -> None:
    """Route structlog output to stderr at the given level."""
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(level.upper())
        ),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="export-consistency",
        description="Check and fix export consistency in TypeScript projects",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--log-level", default=None, help="Log level (default: WARNING)")
    subparsers = parser.add_subparsers(dest="command", required=True)

    scan = subparsers.add_parser("scan", help="Analyze a project and print a report")
    _add_project_args(scan)
    scan.add_argument(
        "--format",
        choices=[f.value for f in ReportFormat],
        default=None,
        help="Report format (default: from config)",
    )
    scan.add_argument("--output", "-o", default=None, help="Write the report to this file")
    scan.add_argument("--group-by", choices=GROUP_KEYS, default="file")
    scan.add_argument("--sort-by", choices=SORT_KEYS, default="file")
    scan.add_argument(
        "--severity",
        nargs="+",
        choices=[s.value for s in Severity],
        default=None,
        help="Only report these severities",
    )
    scan.add_argument("--no-suggestions", action="store_true", help="Omit fix suggestions")
    scan.add_argument("--no-statistics", action="store_true", help="Omit the statistics section")

    fix = subparsers.add_parser("fix", help="Apply automatic fixes")
    _add_project_args(fix)
    fix.add_argument("--dry-run", action="store_true", help="Simulate fixes without writing files")
    fix.add_argument("--no-backup", action="store_true", help="Do not back up files before editing")
    fix.add_argument("--backup-dir", default=None, help="Backup directory for this run")
    fix.add_argument(
        "--max-risk",
        choices=[r.value for r in RiskLevel],
        default=None,
        help="Highest risk level to apply (default: from config)",
    )

    config = subparsers.add_parser("config", help="Manage the configuration file")
    config_sub = config.add_subparsers(dest="config_command", required=True)
    init = config_sub.add_parser("init", help=f"Write a default {CONFIG_FILE_NAME}")
    init.add_argument("path", nargs="?", default=".", help="Project root")
    init.add_argument("--force", action="store_true", help="Overwrite an existing file")
    validate = config_sub.add_parser("validate", help="Validate the merged configuration")
    validate.add_argument("path", nargs="?", default=".", help="Project root")
    validate.add_argument("--config", default=None, help="Configuration file")

    return parser


def _add_project_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("path", nargs="?", default=".", help="Project root")
    parser.add_argument("--config", default=None, help="Configuration file")


def cmd_scan(args: argparse.Namespace, settings: ExportConsistencySettings) -> int:
    config = load_config(args.path, config_path=args.config, settings=settings)
    result = ExportAuditor(config).run()

    options = ReportOptions(
        format=args.format or config.reporting.format,
        output_path=args.output or config.reporting.output_path,
        include_suggestions=not args.no_suggestions,
        include_statistics=not args.no_statistics,
        group_by=args.group_by,
        sort_by=args.sort_by,
        filter_severity=args.severity,
    )
    report = generate_and_save_report(result, options)

    if options.output_path:
        if report.file_path:
            console.print(f"[green]Report written to {report.file_path}[/green]")
        else:
            err_console.print(f"[red]Could not write report to {options.output_path}[/red]")
            console.print(report.content, markup=False, highlight=False)
    else:
        console.print(report.content, markup=False, highlight=False)

    return EXIT_ISSUES if result.has_errors else EXIT_OK


def cmd_fix(args: argparse.Namespace, settings: ExportConsistencySettings) -> int:
    config = load_config(args.path, config_path=args.config, settings=settings)
    auditor = ExportAuditor(config)
    fix_options = AutoFixOptions(
        dry_run=args.dry_run,
        create_backup=False if args.no_backup else None,
        backup_directory=args.backup_dir,
        max_risk_level=args.max_risk,
    )
    result = auditor.run(fix_options=fix_options)
    fix_result = auditor.last_fix_result

    title = "Fix Results (dry run)" if args.dry_run else "Fix Results"
    table = Table(title=title)
    table.add_column("File", style="cyan")
    table.add_column("Line", justify="right")
    table.add_column("Operation")
    table.add_column("Status")
    table.add_column("Details")
    for fr in [*fix_result.results, *fix_result.conflicts]:
        op = fr.operation
        status = "[green]ok[/green]" if fr.success else "[red]failed[/red]"
        table.add_row(
            op.file_path,
            str(op.line_number or "-"),
            op.type.value,
            status,
            fr.error or op.description,
        )
    console.print(table)
    console.print(
        f"Operations: {fix_result.total_operations}  "
        f"Successful: {fix_result.successful_fixes}  "
        f"Failed: {fix_result.failed_fixes}  "
        f"Skipped: {len(fix_result.skipped)}"
    )
    if fix_result.backup_directory:
        console.print(f"Backups: {fix_result.backup_directory}")

    return EXIT_ISSUES if result.has_errors else EXIT_OK


def cmd_config(args: argparse.Namespace, settings: ExportConsistencySettings) -> int:
    match args.config_command:
        case "init":
            target = Path(args.path) / CONFIG_FILE_NAME
            if target.exists() and not args.force:
                err_console.print(f"[yellow]{target} already exists (use --force)[/yellow]")
                return EXIT_CONFIG_ERROR
            manager = ExportConfigManager(args.path, config_path=None)
            path = manager.save(target)
            console.print(f"[green]Wrote {path}[/green]")
            return EXIT_OK
        case "validate":
            manager = ExportConfigManager(args.path, config_path=args.config, settings=settings)
            result = manager.validate()
            for warning in result.warnings:
                console.print(f"[yellow]warning:[/yellow] {warning}")
            if not result.is_valid:
                for error in result.errors:
                    err_console.print(f"[red]error:[/red] {error}")
                return EXIT_CONFIG_ERROR
            console.print("[green]Configuration is valid[/green]")
            return EXIT_OK
        case _:
            raise ValueError(f"Unknown config command: {args.config_command}")


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    settings = ExportConsistencySettings()
    configure_logging(args.log_level or settings.log_level)

    try:
        match args.command:
            case "scan":
                return cmd_scan(args, settings)
            case "fix":
                return cmd_fix(args, settings)
            case "config":
                return cmd_config(args, settings)
            case _:
                parser.error(f"unknown command {args.command}")
    except ConfigValidationError as e:
        for error in e.errors:
            err_console.print(f"[red]config error:[/red] {error}")
        return EXIT_CONFIG_ERROR
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
