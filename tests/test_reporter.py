"""Tests for report generation."""

import csv
import io
import json
from datetime import datetime
from pathlib import Path

import pytest

from export_consistency.audit.reporter import (
    CSV_HEADER,
    ReportGenerator,
    ReportOptions,
    default_report_filename,
    generate_and_save_report,
    generate_console_report,
    group_issues,
    save_report,
    sort_issues,
)
from export_consistency.config import ReportFormat
from export_consistency.errors import ReportWriteError
from export_consistency.models import (
    BatchFixResult,
    IssueType,
    ProjectAnalysisResult,
    Severity,
)

from conftest import make_issue


def render(result: ProjectAnalysisResult, fix_result: BatchFixResult | None = None, **options) -> str:
    return ReportGenerator(result, fix_result).generate_report(ReportOptions(**options)).content


class FailingSink:
    """Sink whose storage is unavailable."""

    def write(self, content: str, path: str) -> bool:
        raise ReportWriteError(f"Cannot write report to {path}: disk unavailable")


class RefusingSink:
    """Sink that reports failure without raising."""

    def write(self, content: str, path: str) -> bool:
        return False


class TestOrdering:
    """Tests for filtering, sorting and grouping."""

    def test_sort_by_severity(self, sample_result: ProjectAnalysisResult):
        """Test that severity sorts error > warning > info, stable within a rank."""
        ordered = sort_issues(sample_result.issues, "severity")
        assert [i.id for i in ordered] == ["EXP-0002", "EXP-0004", "EXP-0003", "EXP-0001"]

    def test_sort_by_file_is_stable(self, sample_result: ProjectAnalysisResult):
        """Test that issues of one file keep their relative order."""
        ordered = sort_issues(sample_result.issues, "file")
        assert [i.id for i in ordered] == ["EXP-0002", "EXP-0003", "EXP-0001", "EXP-0004"]

    def test_sort_by_line(self, sample_result: ProjectAnalysisResult):
        ordered = sort_issues(sample_result.issues, "line")
        assert [i.id for i in ordered] == ["EXP-0004", "EXP-0003", "EXP-0001", "EXP-0002"]

    def test_group_by_type(self, sample_result: ProjectAnalysisResult):
        """Test grouping keys and their first-seen order."""
        groups = group_issues(sort_issues(sample_result.issues, "severity"), "type")
        assert list(groups) == ["duplicate-export", "naming-inconsistency", "unused-export"]
        assert len(groups["duplicate-export"]) == 2

    def test_invalid_options(self):
        """Test that unknown sort and group keys are rejected."""
        with pytest.raises(ValueError):
            ReportOptions(group_by="rule")
        with pytest.raises(ValueError):
            ReportOptions(sort_by="name")

    def test_filter_severity(self, sample_result: ProjectAnalysisResult):
        """Test that the severity allow-list applies before statistics."""
        report = ReportGenerator(sample_result).generate_report(
            ReportOptions(format=ReportFormat.JSON, filter_severity=[Severity.ERROR])
        )
        data = json.loads(report.content)

        assert report.statistics.total_issues == 2
        assert {i["severity"] for i in data["issues"]} == {"error"}


class TestStatistics:
    """Tests for report statistics."""

    def test_statistics(self, sample_result: ProjectAnalysisResult):
        """Test totals, per-type and per-severity counts."""
        stats = ReportGenerator(sample_result).calculate_statistics(sample_result.issues)

        assert stats.total_files == 5
        assert stats.total_exports == 12
        assert stats.total_issues == 4
        assert stats.files_with_issues == 3
        assert stats.issues_by_severity == {"info": 1, "error": 2, "warning": 1}
        assert stats.most_common_issues == [
            {"type": "duplicate-export", "count": 2},
            {"type": "naming-inconsistency", "count": 1},
            {"type": "unused-export", "count": 1},
        ]

    def test_most_common_is_top_five(self):
        """Test that only the five most frequent types are listed."""
        types = list(IssueType)
        issues = [
            make_issue(f"EXP-{i:04d}", issue_type=types[i % len(types)])
            for i in range(20)
        ]
        result = ProjectAnalysisResult(project_path="/p", issues=issues)
        stats = ReportGenerator(result).calculate_statistics(issues)

        assert len(stats.most_common_issues) == 5
        counts = [entry["count"] for entry in stats.most_common_issues]
        assert counts == sorted(counts, reverse=True)


class TestFormats:
    """Tests for each renderer."""

    def test_console(self, sample_result: ProjectAnalysisResult):
        content = render(sample_result)

        assert "EXPORT CONSISTENCY REPORT" in content
        assert "demo-app" in content
        assert "STATISTICS" in content
        assert "src/a.ts:2" in content
        assert "Fix: Rename to 'Btn'" in content

    def test_console_without_statistics_or_suggestions(self, sample_result: ProjectAnalysisResult):
        content = render(sample_result, include_statistics=False, include_suggestions=False)

        assert "STATISTICS" not in content
        assert "Fix: Rename" not in content

    def test_console_with_fix_result(self, sample_result: ProjectAnalysisResult):
        """Test the fix section of the console report."""
        fix_result = BatchFixResult(
            total_operations=3, successful_fixes=2, failed_fixes=1, backup_directory="/tmp/backups/1"
        )
        content = render(sample_result, fix_result)

        assert "FIX RESULTS" in content
        assert "/tmp/backups/1" in content

    def test_empty_result(self):
        """Test that a clean project renders in every format."""
        result = ProjectAnalysisResult(project_path="/work/clean", total_files=2)

        assert "No issues found." in render(result)
        assert "No issues found." in render(result, format=ReportFormat.HTML)
        assert "No issues found." in render(result, format=ReportFormat.MARKDOWN)
        assert render(result, format=ReportFormat.CSV).strip() == ",".join(CSV_HEADER)
        assert json.loads(render(result, format=ReportFormat.JSON))["projectName"] == "clean"

    def test_json_round_trip(self, sample_result: ProjectAnalysisResult):
        """Test that JSON parses back with the result's identity and counts."""
        fix_result = BatchFixResult(total_operations=1, successful_fixes=1)
        data = json.loads(render(sample_result, fix_result, format=ReportFormat.JSON))

        assert data["projectName"] == sample_result.project_name
        assert data["filesAnalyzed"] == sample_result.analyzed_files
        assert len(data["issues"]) == len(sample_result.issues)
        assert data["statistics"]["totalIssues"] == 4
        assert data["fixResult"]["successfulFixes"] == 1
        assert data["metadata"]["format"] == "json"
        assert set(data["groups"]) == {"src/a.ts", "src/b.ts", "src/c.ts"}

        naming = next(i for i in data["issues"] if i["id"] == "EXP-0003")
        assert naming["autoFixable"] is True
        assert naming["sourceLocation"]["startLine"] == 2

    def test_csv_quotes_commas(self, sample_result: ProjectAnalysisResult):
        """Test that a message with a comma is quoted and reads back unchanged."""
        content = render(sample_result, format=ReportFormat.CSV)
        message = next(i.message for i in sample_result.issues if i.id == "EXP-0003")

        assert f'"{message}"' in content
        rows = list(csv.reader(io.StringIO(content)))
        assert rows[0] == CSV_HEADER
        assert len(rows) == 5
        assert message in [row[4] for row in rows[1:]]

    def test_csv_doubles_quotes(self):
        """Test RFC-4180 escaping of embedded quotes and newlines."""
        message = 'Export "x", see\nnext line'
        result = ProjectAnalysisResult(project_path="/p", issues=[make_issue("EXP-0001", message=message)])
        content = render(result, format=ReportFormat.CSV)

        assert '"Export ""x"", see\nnext line"' in content
        rows = list(csv.reader(io.StringIO(content)))
        assert rows[1][4] == message

    def test_html_escapes_user_text(self):
        """Test that issue text cannot inject markup."""
        issue = make_issue("EXP-0001", "src/<b>.ts", message="Export '<script>alert(1)</script>'")
        result = ProjectAnalysisResult(project_path="/p", project_name="a&b", issues=[issue])
        content = render(result, format=ReportFormat.HTML)

        assert "<script>" not in content
        assert "&lt;script&gt;" in content
        assert "a&amp;b" in content
        assert content.startswith("<!DOCTYPE html>")

    def test_markdown(self, sample_result: ProjectAnalysisResult):
        content = render(sample_result, format=ReportFormat.MARKDOWN)

        assert content.startswith("# Export Consistency Report")
        assert "## Statistics" in content
        assert "### `src/a.ts` (2)" in content
        assert "- `EXP-0003`: Rename to 'Btn'" in content

    def test_generation_does_not_mutate_result(self, sample_result: ProjectAnalysisResult):
        """Test that sorting works on a copy of the issue list."""
        before = [i.id for i in sample_result.issues]
        render(sample_result, sort_by="severity")
        assert [i.id for i in sample_result.issues] == before


class TestSaving:
    """Tests for persisting reports."""

    def test_save_report(self, sample_result: ProjectAnalysisResult, tmp_path: Path):
        report = ReportGenerator(sample_result).generate_report(ReportOptions(format=ReportFormat.MARKDOWN))
        target = tmp_path / "reports" / "out.md"

        assert save_report(report, str(target)) == str(target)
        assert target.read_text(encoding="utf-8") == report.content

    def test_save_failure_keeps_report(self, sample_result: ProjectAnalysisResult, tmp_path: Path):
        """Test that storage failures return None and leave the report intact."""
        report = ReportGenerator(sample_result).generate_report(ReportOptions(format=ReportFormat.JSON))
        content = report.content

        assert save_report(report, str(tmp_path / "r.json"), sink=FailingSink()) is None
        assert save_report(report, str(tmp_path / "r.json"), sink=RefusingSink()) is None
        assert report.content == content
        assert report.file_path is None

    def test_save_to_unwritable_path(self, sample_result: ProjectAnalysisResult, tmp_path: Path):
        """Test the filesystem sink when the parent is a file."""
        blocker = tmp_path / "blocker"
        blocker.write_text("", encoding="utf-8")
        report = ReportGenerator(sample_result).generate_report()

        assert save_report(report, str(blocker / "report.txt")) is None

    def test_default_filename(self):
        stamp = datetime(2024, 1, 2, 3, 4, 5)

        assert default_report_filename(ReportFormat.MARKDOWN, stamp) == "export-consistency-report-2024-01-02T03-04-05.md"
        assert default_report_filename(ReportFormat.CONSOLE, stamp).endswith(".txt")
        assert default_report_filename(ReportFormat.CSV, stamp).endswith(".csv")

    def test_generate_and_save(self, sample_result: ProjectAnalysisResult, tmp_path: Path):
        target = tmp_path / "report.html"
        report = generate_and_save_report(
            sample_result, ReportOptions(format=ReportFormat.HTML, output_path=str(target))
        )

        assert report.file_path == str(target)
        assert target.exists()

    def test_generate_console_report(self, sample_result: ProjectAnalysisResult):
        assert "EXPORT CONSISTENCY REPORT" in generate_console_report(sample_result)
