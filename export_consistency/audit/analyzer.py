"""Consistency Analyzer over detected exports.

Runs in two phases:
1. File rules, independently for each file in scan order
2. Project rules, once, over a read-only index of every file (only after
   phase 1 has finished for all files)

Issue order and issue ids are stable for identical input.
"""

from collections import Counter
from pathlib import PurePath
from typing import Any

import structlog

from export_consistency.audit.rules import IssueFactory, ProjectIndex, RuleEngine
from export_consistency.config import ExportConfig, ExportConfigManager, ExportRule
from export_consistency.models import (
    AnalysisSummary,
    ConsistencyIssue,
    ExportedKind,
    ExportRecord,
    ImportRecord,
    IssueType,
    Severity,
)

logger = structlog.get_logger()


class ConsistencyAnalyzer:
    """Checks export records against the configured rules."""

    def __init__(self, config: ExportConfig):
        self.config = config
        self.engine = RuleEngine(config)
        self._logger = logger.bind(component="ConsistencyAnalyzer")

    def analyze_project(
        self,
        records_by_file: dict[str, list[ExportRecord]],
        imports_by_file: dict[str, list[ImportRecord]] | None = None,
        declarations_by_file: dict[str, dict[str, ExportedKind]] | None = None,
    ) -> list[ConsistencyIssue]:
        """Analyze every file, then the project as a whole.

        Args:
            records_by_file: Export records per file, in scan order
            imports_by_file: Import records per file (enables import rules)
            declarations_by_file: Top-level declarations per file

        Returns:
            All issues: file rules in scan order, then project rules
        """
        factory = IssueFactory()
        issues: list[ConsistencyIssue] = []

        for file_path, records in records_by_file.items():
            issues.extend(self.engine.run_file_rules(file_path, records, factory))
        file_issue_count = len(issues)

        # Barrier: the index is built from the complete record set
        index = ProjectIndex(
            self.config.root_path,
            records_by_file,
            imports_by_file,
            declarations_by_file,
        )
        issues.extend(self.engine.run_project_rules(index, factory))

        self._logger.info(
            "Analysis complete",
            files=len(records_by_file),
            file_issues=file_issue_count,
            project_issues=len(issues) - file_issue_count,
        )
        return issues

    def analyze_file(self, file_path: str, records: list[ExportRecord]) -> list[ConsistencyIssue]:
        """Run only the file rules over one file."""
        return self.engine.run_file_rules(file_path, records, IssueFactory())


def filter_issues(
    issues: list[ConsistencyIssue],
    types: list[IssueType] | None = None,
    severities: list[Severity] | None = None,
    files: list[str] | None = None,
) -> list[ConsistencyIssue]:
    """Keep the issues matching every given criterion."""
    result = []
    for issue in issues:
        if types is not None and issue.type not in types:
            continue
        if severities is not None and issue.severity not in severities:
            continue
        if files is not None and _issue_file(issue) not in files:
            continue
        result.append(issue)
    return result


def _issue_file(issue: ConsistencyIssue) -> str:
    return issue.source_location.file_path if issue.source_location else issue.file_path


def group_issues_by_file(issues: list[ConsistencyIssue]) -> dict[str, list[ConsistencyIssue]]:
    grouped: dict[str, list[ConsistencyIssue]] = {}
    for issue in issues:
        grouped.setdefault(_issue_file(issue), []).append(issue)
    return grouped


def group_issues_by_type(issues: list[ConsistencyIssue]) -> dict[IssueType, list[ConsistencyIssue]]:
    grouped: dict[IssueType, list[ConsistencyIssue]] = {}
    for issue in issues:
        grouped.setdefault(issue.type, []).append(issue)
    return grouped


def get_issue_statistics(issues: list[ConsistencyIssue]) -> dict[str, Any]:
    """Totals by type, severity and file."""
    return {
        "total": len(issues),
        "byType": dict(Counter(issue.type.value for issue in issues)),
        "bySeverity": dict(Counter(issue.severity.value for issue in issues)),
        "byFile": dict(Counter(_issue_file(issue) for issue in issues)),
    }


def generate_summary(
    issues: list[ConsistencyIssue],
    fixed_issues: list[ConsistencyIssue] | None = None,
) -> AnalysisSummary:
    """Summary counts for a run.

    ``success_rate`` is the share of auto-fixable issues that were fixed,
    or 1.0 when there was nothing to fix.
    """
    fixed_issues = fixed_issues or []
    counts = Counter(issue.severity for issue in issues)
    auto_fixable = sum(1 for issue in issues if issue.auto_fixable)
    return AnalysisSummary(
        error_count=counts[Severity.ERROR],
        warning_count=counts[Severity.WARNING],
        info_count=counts[Severity.INFO],
        fixed_count=len(fixed_issues),
        success_rate=len(fixed_issues) / auto_fixable if auto_fixable else 1.0,
        total_issues=len(issues),
        auto_fixable_count=auto_fixable,
    )


def validate_export_consistency(
    records: list[ExportRecord],
    rules: list[ExportRule] | None = None,
    project_path: str = ".",
    file_path: str | None = None,
) -> list[ConsistencyIssue]:
    """Run the file rules over a loose list of records.

    ``rules`` override the configured rules of the same name.
    """
    manager = ExportConfigManager(project_path)
    if rules is not None:
        manager.update_config({"rules": [rule.model_dump(mode="json", by_alias=True) for rule in rules]})
    target = file_path or (records[0].file_path if records else str(PurePath(project_path, "mock.ts")))
    return ConsistencyAnalyzer(manager.get_config()).analyze_file(target, records)
