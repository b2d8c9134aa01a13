"""Report generation for export consistency results.

Generates reports in multiple formats:
- Console (plain text, for terminals and CI logs)
- JSON (machine-readable, round-trips through any JSON parser)
- HTML (standalone page)
- Markdown (for PR comments and docs)
- CSV (one row per issue, RFC-4180 quoting)

Rendering is pure. Saving is a separate step that can fail without
affecting the report already returned.
"""

import csv
import html
import io
import json
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import structlog

from export_consistency import __version__
from export_consistency.config import ReportFormat
from export_consistency.errors import ReportWriteError
from export_consistency.models import (
    BatchFixResult,
    ConsistencyIssue,
    ProjectAnalysisResult,
    Severity,
)
from export_consistency.providers import FileReportSink, ReportSink

logger = structlog.get_logger()

GROUP_KEYS = ("file", "type", "severity")
SORT_KEYS = ("file", "type", "severity", "line")

REPORT_EXTENSIONS = {
    ReportFormat.JSON: "json",
    ReportFormat.HTML: "html",
    ReportFormat.MARKDOWN: "md",
    ReportFormat.CSV: "csv",
}

CSV_HEADER = ["File Path", "Line", "Type", "Severity", "Message", "Suggestion"]

_SEVERITY_ICONS = {
    Severity.ERROR: "✗",
    Severity.WARNING: "⚠",
    Severity.INFO: "ℹ",
}


@dataclass
class ReportOptions:
    """What to render and how to arrange it."""

    format: ReportFormat = ReportFormat.CONSOLE
    output_path: str | None = None
    include_details: bool = True
    include_suggestions: bool = True
    include_statistics: bool = True
    group_by: str = "file"
    sort_by: str = "file"
    filter_severity: list[Severity] | None = None

    def __post_init__(self):
        self.format = ReportFormat(self.format)
        if self.group_by not in GROUP_KEYS:
            raise ValueError(f"group_by must be one of {', '.join(GROUP_KEYS)}")
        if self.sort_by not in SORT_KEYS:
            raise ValueError(f"sort_by must be one of {', '.join(SORT_KEYS)}")
        if self.filter_severity is not None:
            self.filter_severity = [Severity(s) for s in self.filter_severity]


@dataclass
class ReportStatistics:
    """Counts over the issues included in a report."""

    total_files: int = 0
    total_exports: int = 0
    total_issues: int = 0
    issues_by_type: dict[str, int] = field(default_factory=dict)
    issues_by_severity: dict[str, int] = field(default_factory=dict)
    files_with_issues: int = 0
    most_common_issues: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalFiles": self.total_files,
            "totalExports": self.total_exports,
            "totalIssues": self.total_issues,
            "issuesByType": dict(self.issues_by_type),
            "issuesBySeverity": dict(self.issues_by_severity),
            "filesWithIssues": self.files_with_issues,
            "mostCommonIssues": [dict(entry) for entry in self.most_common_issues],
        }


@dataclass
class GeneratedReport:
    """Rendered report content plus the statistics it was built from."""

    format: ReportFormat
    content: str
    statistics: ReportStatistics
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    file_path: str | None = None


class ReportGenerator:
    """Renders a ProjectAnalysisResult (and optional fix outcome)."""

    def __init__(
        self,
        analysis_result: ProjectAnalysisResult,
        fix_result: BatchFixResult | None = None,
    ):
        self.analysis_result = analysis_result
        self.fix_result = fix_result
        self._logger = logger.bind(component="ReportGenerator")

    def generate_report(self, options: ReportOptions | None = None) -> GeneratedReport:
        """Filter, sort, group and render the issues.

        Args:
            options: Report options (defaults to a console report)

        Returns:
            The rendered report; never touches storage
        """
        options = options or ReportOptions()
        issues = self._filter(self.analysis_result.issues, options.filter_severity)
        issues = sort_issues(issues, options.sort_by)
        groups = group_issues(issues, options.group_by)
        statistics = self.calculate_statistics(issues)

        match options.format:
            case ReportFormat.CONSOLE:
                content = self._format_console(groups, statistics, options)
            case ReportFormat.JSON:
                content = self._format_json(issues, groups, statistics, options)
            case ReportFormat.HTML:
                content = self._format_html(groups, statistics, options)
            case ReportFormat.MARKDOWN:
                content = self._format_markdown(groups, statistics, options)
            case ReportFormat.CSV:
                content = self._format_csv(issues, options)
            case _:
                raise ValueError(f"Unknown format: {options.format}")

        self._logger.debug("Report generated", format=options.format.value, issues=len(issues))
        return GeneratedReport(
            format=options.format,
            content=content,
            statistics=statistics,
        )

    def calculate_statistics(self, issues: list[ConsistencyIssue]) -> ReportStatistics:
        by_type = Counter(issue.type.value for issue in issues)
        by_severity = Counter(issue.severity.value for issue in issues)
        # Most frequent first, ties by type name
        ranked = sorted(by_type.items(), key=lambda item: (-item[1], item[0]))
        return ReportStatistics(
            total_files=self.analysis_result.total_files,
            total_exports=self.analysis_result.total_exports,
            total_issues=len(issues),
            issues_by_type=dict(by_type),
            issues_by_severity=dict(by_severity),
            files_with_issues=len({issue.file_path for issue in issues}),
            most_common_issues=[{"type": t, "count": c} for t, c in ranked[:5]],
        )

    @staticmethod
    def _filter(
        issues: list[ConsistencyIssue],
        severities: list[Severity] | None,
    ) -> list[ConsistencyIssue]:
        if severities is None:
            return list(issues)
        return [issue for issue in issues if issue.severity in severities]

    def _project_name(self) -> str:
        result = self.analysis_result
        return result.project_name or Path(result.project_path).name

    # -- Renderers -----------------------------------------------------

    def _format_console(
        self,
        groups: dict[str, list[ConsistencyIssue]],
        statistics: ReportStatistics,
        options: ReportOptions,
    ) -> str:
        """Format as plain text."""
        result = self.analysis_result
        lines = []

        lines.append("=" * 60)
        lines.append("EXPORT CONSISTENCY REPORT")
        lines.append("=" * 60)
        lines.append(f"Project:   {self._project_name()}")
        lines.append(f"Path:      {result.project_path}")
        lines.append(f"Timestamp: {result.scan_timestamp.isoformat()}")
        lines.append("")

        if options.include_statistics:
            lines.append("STATISTICS")
            lines.append("-" * 40)
            lines.append(f"Total Files:       {statistics.total_files}")
            lines.append(f"Total Exports:     {statistics.total_exports}")
            lines.append(f"Total Issues:      {statistics.total_issues}")
            lines.append(f"Files With Issues: {statistics.files_with_issues}")
            for severity in Severity:
                count = statistics.issues_by_severity.get(severity.value, 0)
                lines.append(f"  - {severity.value.capitalize() + ':':<16}{count}")
            if statistics.most_common_issues:
                lines.append("")
                lines.append("MOST COMMON ISSUES")
                lines.append("-" * 40)
                for entry in statistics.most_common_issues:
                    lines.append(f"  {entry['type']}: {entry['count']}")
            lines.append("")

        if self.fix_result is not None:
            fix = self.fix_result
            lines.append("FIX RESULTS" + (" (DRY RUN)" if fix.dry_run else ""))
            lines.append("-" * 40)
            lines.append(f"Total Operations:  {fix.total_operations}")
            lines.append(f"Successful:        {fix.successful_fixes}")
            lines.append(f"Failed:            {fix.failed_fixes}")
            if fix.conflicts:
                lines.append(f"Conflicts:         {len(fix.conflicts)}")
            if fix.backup_directory:
                lines.append(f"Backup Directory:  {fix.backup_directory}")
            lines.append("")

        if options.include_details:
            lines.append("ISSUES")
            lines.append("-" * 40)
            if not groups:
                lines.append("No issues found.")
            for key, issues in groups.items():
                lines.append(f"\n{key} ({len(issues)})")
                for issue in issues:
                    icon = _SEVERITY_ICONS[issue.severity]
                    location = f":{issue.line}" if issue.line else ""
                    lines.append(f"  {icon} [{issue.type.value}] {issue.file_path}{location}: {issue.message}")
                    if options.include_suggestions and issue.suggestion:
                        lines.append(f"      Fix: {issue.suggestion}")

        lines.append("")
        lines.append("=" * 60)
        return "\n".join(lines)

    def _format_json(
        self,
        issues: list[ConsistencyIssue],
        groups: dict[str, list[ConsistencyIssue]],
        statistics: ReportStatistics,
        options: ReportOptions,
    ) -> str:
        """Format as JSON."""
        result = self.analysis_result
        data: dict[str, Any] = {
            "metadata": {
                "timestamp": result.scan_timestamp.isoformat(),
                "format": options.format.value,
                "version": __version__,
            },
            "projectName": self._project_name(),
            "projectPath": result.project_path,
            "filesAnalyzed": result.analyzed_files,
            "summary": result.summary.to_dict(),
            "issues": [issue.to_dict() for issue in issues],
        }
        if options.include_statistics:
            data["statistics"] = statistics.to_dict()
        if options.include_details:
            data["groups"] = {key: [issue.id for issue in group] for key, group in groups.items()}
        if self.fix_result is not None:
            data["fixResult"] = self.fix_result.to_dict()
        return json.dumps(data, indent=2, ensure_ascii=False)

    def _format_markdown(
        self,
        groups: dict[str, list[ConsistencyIssue]],
        statistics: ReportStatistics,
        options: ReportOptions,
    ) -> str:
        """Format as Markdown."""
        result = self.analysis_result
        lines = []

        lines.append("# Export Consistency Report")
        lines.append("")
        lines.append(f"**Project:** {self._project_name()}")
        lines.append(f"**Generated:** {result.scan_timestamp.isoformat()}")
        lines.append("")

        if options.include_statistics:
            lines.append("## Statistics")
            lines.append("")
            lines.append("| Metric | Value |")
            lines.append("|--------|-------|")
            lines.append(f"| Total Files | {statistics.total_files} |")
            lines.append(f"| Total Exports | {statistics.total_exports} |")
            lines.append(f"| Total Issues | {statistics.total_issues} |")
            lines.append(f"| Files With Issues | {statistics.files_with_issues} |")
            for severity in Severity:
                count = statistics.issues_by_severity.get(severity.value, 0)
                lines.append(f"| {severity.value.capitalize()} | {count} |")
            lines.append("")

            if statistics.most_common_issues:
                lines.append("### Most Common Issues")
                lines.append("")
                for entry in statistics.most_common_issues:
                    lines.append(f"- **{entry['type']}**: {entry['count']}")
                lines.append("")

        if self.fix_result is not None:
            fix = self.fix_result
            lines.append("## Fix Results")
            lines.append("")
            lines.append(f"- Total operations: {fix.total_operations}")
            lines.append(f"- Successful: {fix.successful_fixes}")
            lines.append(f"- Failed: {fix.failed_fixes}")
            if fix.backup_directory:
                lines.append(f"- Backup directory: `{fix.backup_directory}`")
            lines.append("")

        if options.include_details:
            lines.append("## Issues")
            lines.append("")
            if not groups:
                lines.append("No issues found.")
                lines.append("")
            for key, issues in groups.items():
                lines.append(f"### `{key}` ({len(issues)})")
                lines.append("")
                lines.append("| Severity | Type | File | Line | Message |")
                lines.append("|----------|------|------|------|---------|")
                for issue in issues:
                    line = issue.line or "-"
                    message = _markdown_cell(issue.message)
                    lines.append(
                        f"| {_SEVERITY_ICONS[issue.severity]} {issue.severity.value} "
                        f"| {issue.type.value} | `{issue.file_path}` | {line} | {message} |"
                    )
                lines.append("")

                fixes = [i for i in issues if i.suggestion] if options.include_suggestions else []
                if fixes:
                    lines.append("**Suggestions:**")
                    lines.append("")
                    for issue in fixes:
                        lines.append(f"- `{issue.id}`: {issue.suggestion}")
                    lines.append("")

        return "\n".join(lines)

    def _format_html(
        self,
        groups: dict[str, list[ConsistencyIssue]],
        statistics: ReportStatistics,
        options: ReportOptions,
    ) -> str:
        """Format as a standalone HTML page."""
        esc = html.escape
        result = self.analysis_result
        parts = [
            "<!DOCTYPE html>",
            '<html lang="en">',
            "<head>",
            '<meta charset="utf-8">',
            f"<title>Export Consistency Report - {esc(self._project_name())}</title>",
            "<style>",
            "body { font-family: sans-serif; margin: 2rem; }",
            ".stats { display: flex; gap: 1rem; }",
            ".stat-card { border: 1px solid #ddd; border-radius: 4px; padding: 1rem; }",
            ".issue { margin: 0.5rem 0; }",
            ".error { color: #c0392b; } .warning { color: #d68910; } .info { color: #2471a3; }",
            ".suggestion { color: #555; font-style: italic; }",
            "</style>",
            "</head>",
            "<body>",
            "<h1>Export Consistency Report</h1>",
            f"<p>Project: <strong>{esc(self._project_name())}</strong><br>",
            f"Generated: {esc(result.scan_timestamp.isoformat())}</p>",
        ]

        if options.include_statistics:
            cards = [
                ("Total Files", statistics.total_files),
                ("Total Exports", statistics.total_exports),
                ("Total Issues", statistics.total_issues),
                ("Files With Issues", statistics.files_with_issues),
            ]
            cards.extend(
                (severity.value.capitalize(), statistics.issues_by_severity.get(severity.value, 0))
                for severity in Severity
            )
            parts.append('<div class="stats">')
            for label, value in cards:
                parts.append(f'<div class="stat-card"><h3>{esc(label)}</h3><p>{value}</p></div>')
            parts.append("</div>")

        if self.fix_result is not None:
            fix = self.fix_result
            parts.append('<div class="fix-result">')
            parts.append("<h2>Fix Results</h2>")
            parts.append(
                f"<p>Total: {fix.total_operations}, Successful: {fix.successful_fixes}, "
                f"Failed: {fix.failed_fixes}</p>"
            )
            if fix.backup_directory:
                parts.append(f"<p>Backup directory: <code>{esc(fix.backup_directory)}</code></p>")
            parts.append("</div>")

        if options.include_details:
            parts.append("<h2>Issues</h2>")
            if not groups:
                parts.append("<p>No issues found.</p>")
            for key, issues in groups.items():
                parts.append('<div class="issue-group">')
                parts.append(f"<h3>{esc(key)} ({len(issues)})</h3>")
                for issue in issues:
                    location = f":{issue.line}" if issue.line else ""
                    parts.append(f'<div class="issue {issue.severity.value}">')
                    parts.append(
                        f"<strong>[{esc(issue.type.value)}]</strong> "
                        f"<code>{esc(issue.file_path)}{location}</code> {esc(issue.message)}"
                    )
                    if options.include_suggestions and issue.suggestion:
                        parts.append(f'<div class="suggestion">{esc(issue.suggestion)}</div>')
                    parts.append("</div>")
                parts.append("</div>")

        parts.extend(["</body>", "</html>"])
        return "\n".join(parts)

    def _format_csv(self, issues: list[ConsistencyIssue], options: ReportOptions) -> str:
        """Format as CSV, one row per issue."""
        buffer = io.StringIO()
        writer = csv.writer(buffer, quoting=csv.QUOTE_MINIMAL, lineterminator="\n")
        writer.writerow(CSV_HEADER)
        for issue in issues:
            suggestion = issue.suggestion if options.include_suggestions else None
            writer.writerow([
                issue.file_path,
                issue.line if issue.line is not None else "",
                issue.type.value,
                issue.severity.value,
                issue.message,
                suggestion or "",
            ])
        return buffer.getvalue()


def _markdown_cell(text: str) -> str:
    return text.replace("|", "\\|").replace("\n", " ")


def sort_issues(issues: list[ConsistencyIssue], sort_by: str = "file") -> list[ConsistencyIssue]:
    """Stable sort by the given key. Severity sorts error first."""
    match sort_by:
        case "file":
            return sorted(issues, key=lambda i: i.file_path)
        case "type":
            return sorted(issues, key=lambda i: i.type.value)
        case "severity":
            return sorted(issues, key=lambda i: -i.severity.rank)
        case "line":
            return sorted(issues, key=lambda i: i.line or 0)
        case _:
            raise ValueError(f"Unknown sort key: {sort_by}")


def group_issues(issues: list[ConsistencyIssue], group_by: str = "file") -> dict[str, list[ConsistencyIssue]]:
    """Group issues, keeping first-seen group order."""
    groups: dict[str, list[ConsistencyIssue]] = {}
    for issue in issues:
        match group_by:
            case "file":
                key = issue.file_path
            case "type":
                key = issue.type.value
            case "severity":
                key = issue.severity.value
            case _:
                raise ValueError(f"Unknown group key: {group_by}")
        groups.setdefault(key, []).append(issue)
    return groups


def default_report_filename(report_format: ReportFormat, timestamp: datetime | None = None) -> str:
    timestamp = timestamp or datetime.now(timezone.utc)
    stamp = timestamp.strftime("%Y-%m-%dT%H-%M-%S")
    extension = REPORT_EXTENSIONS.get(ReportFormat(report_format), "txt")
    return f"export-consistency-report-{stamp}.{extension}"


def save_report(
    report: GeneratedReport,
    path: str | None = None,
    sink: ReportSink | None = None,
) -> str | None:
    """Persist a rendered report.

    Args:
        report: Report to write
        path: Destination (defaults to report.file_path, then a timestamped name)
        sink: Storage backend (defaults to the filesystem)

    Returns:
        The path written, or None when writing failed
    """
    target = path or report.file_path or default_report_filename(report.format, report.timestamp)
    sink = sink or FileReportSink()
    try:
        written = sink.write(report.content, target)
    except ReportWriteError as e:
        logger.error("Report save failed", path=target, error=str(e))
        return None
    if not written:
        logger.error("Report save failed", path=target)
        return None
    logger.info("Report saved", path=target, format=report.format.value)
    return target


def generate_console_report(
    analysis_result: ProjectAnalysisResult,
    fix_result: BatchFixResult | None = None,
) -> str:
    """Shortcut for a console report with default options."""
    generator = ReportGenerator(analysis_result, fix_result)
    return generator.generate_report(ReportOptions(format=ReportFormat.CONSOLE)).content


def generate_and_save_report(
    analysis_result: ProjectAnalysisResult,
    options: ReportOptions,
    fix_result: BatchFixResult | None = None,
    sink: ReportSink | None = None,
) -> GeneratedReport:
    """Render a report and write it when an output path is given.

    The returned report has ``file_path`` set only when the write succeeded.
    """
    report = ReportGenerator(analysis_result, fix_result).generate_report(options)
    if options.output_path:
        report.file_path = save_report(report, options.output_path, sink)
    return report
