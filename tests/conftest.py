"""Pytest configuration and shared fixtures."""

from pathlib import Path
from typing import Callable

import pytest
import structlog

from export_consistency.audit.detector import ExportDetector
from export_consistency.config import ExportConfig, load_config
from export_consistency.models import (
    ConsistencyIssue,
    ExportRecord,
    ExportType,
    IssueType,
    ProjectAnalysisResult,
    Severity,
    SourceLocation,
)


@pytest.fixture(autouse=True)
def reset_logging():
    """Undo the CLI logging configuration, which binds to the captured stderr."""
    yield
    structlog.reset_defaults()


@pytest.fixture
def detector():
    """Detector with a fresh parse context, disposed after the test."""
    with ExportDetector() as detector:
        yield detector


@pytest.fixture
def write_project(tmp_path: Path) -> Callable[[dict[str, str]], Path]:
    """Write ``{relative path: source}`` under tmp_path and return the root."""

    def _write(files: dict[str, str]) -> Path:
        for rel, content in files.items():
            path = tmp_path / rel
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")
        return tmp_path

    return _write


@pytest.fixture
def make_config(tmp_path: Path) -> Callable[..., ExportConfig]:
    """Build a validated config rooted at tmp_path with optional overrides."""

    def _make(overrides: dict | None = None) -> ExportConfig:
        return load_config(tmp_path, overrides=overrides)

    return _make


@pytest.fixture
def default_config(make_config) -> ExportConfig:
    return make_config()


def make_record(
    name: str,
    file_path: str = "src/module.ts",
    export_type: ExportType = ExportType.NAMED,
    line: int = 1,
    **kwargs,
) -> ExportRecord:
    """Export record with a one-line location."""
    return ExportRecord(
        file_path=file_path,
        export_name=name,
        export_type=export_type,
        source_location=SourceLocation(
            file_path=file_path,
            start_line=line,
            start_column=1,
            end_line=line,
            end_column=20,
        ),
        **kwargs,
    )


def make_issue(
    issue_id: str,
    file_path: str = "src/a.ts",
    issue_type: IssueType = IssueType.DUPLICATE_EXPORT,
    severity: Severity = Severity.ERROR,
    line: int | None = 1,
    message: str = "Something is off",
    **kwargs,
) -> ConsistencyIssue:
    location = None
    if line is not None:
        location = SourceLocation(
            file_path=file_path, start_line=line, start_column=1, end_line=line, end_column=10
        )
    return ConsistencyIssue(
        id=issue_id,
        type=issue_type,
        severity=severity,
        file_path=file_path,
        message=message,
        source_location=location,
        **kwargs,
    )


@pytest.fixture
def sample_result() -> ProjectAnalysisResult:
    """Analysis result with a mix of files, types and severities."""
    issues = [
        make_issue("EXP-0001", "src/b.ts", IssueType.UNUSED_EXPORT, Severity.INFO, line=4),
        make_issue("EXP-0002", "src/a.ts", IssueType.DUPLICATE_EXPORT, Severity.ERROR, line=9),
        make_issue(
            "EXP-0003",
            "src/a.ts",
            IssueType.NAMING_INCONSISTENCY,
            Severity.WARNING,
            line=2,
            message="Export 'btn' does not follow the class naming convention, expected PascalCase",
            suggestion="Rename to 'Btn'",
            auto_fixable=True,
        ),
        make_issue("EXP-0004", "src/c.ts", IssueType.DUPLICATE_EXPORT, Severity.ERROR, line=1),
    ]
    return ProjectAnalysisResult(
        project_path="/work/demo-app",
        project_name="demo-app",
        total_files=5,
        analyzed_files=4,
        total_exports=12,
        issues=issues,
    )
