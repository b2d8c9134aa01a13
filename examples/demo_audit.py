"""Demo script for the export consistency engine.

This demonstrates:
1. Export Detector - tree-sitter based export extraction
2. Consistency Analyzer - file and project rules
3. Auto-Fixer - dry run, then applied fixes with backups
4. Report Generator - multiple formats

Usage:
    python examples/demo_audit.py
"""

import tempfile
from pathlib import Path

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from export_consistency.audit import (
    ExportAuditor,
    ExportDetector,
    ReportGenerator,
    ReportOptions,
    get_issue_statistics,
    group_issues_by_file,
)
from export_consistency.config import ReportFormat, load_config
from export_consistency.models import AutoFixOptions, Severity

console = Console()


# Sample project with intentional inconsistencies
SAMPLE_PROJECT = {
    "src/components/Button.tsx": (
        "export interface ButtonProps { label: string }\n"
        "export function Button(props: ButtonProps) { return <button>{props.label}</button>; }\n"
        "export default Button;\n"
    ),
    "src/utils/format.ts": (
        "export function formatDate(d: Date) { return d.toISOString(); }\n"
        "export function Format_currency(n: number) { return n.toFixed(2); }\n"
        "export { formatDate };\n"
    ),
    "src/utils/strings.ts": (
        "export function formatDate(d: Date) { return d.toDateString(); }\n"
        "export class stringBuilder {}\n"
    ),
    "src/app.ts": (
        "import { Button } from './components/Button';\n"
        "import { parse } from './utils/format';\n"
        "export const App = Button;\n"
    ),
}


def write_sample_project(root: Path) -> None:
    for rel, content in SAMPLE_PROJECT.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")


def demo_detector():
    """Demonstrate the Export Detector."""
    console.print("\n[bold cyan]═══ Export Detector Demo ═══[/bold cyan]\n")

    with ExportDetector() as detector:
        source = SAMPLE_PROJECT["src/components/Button.tsx"]
        records = detector.analyze_source(source, "src/components/Button.tsx")

    table = Table(title="Detected Exports")
    table.add_column("Name", style="cyan")
    table.add_column("Type", style="green")
    table.add_column("Kind", style="yellow")
    table.add_column("Line", justify="right")
    table.add_column("Type-only", style="magenta")

    for record in records:
        table.add_row(
            record.export_name,
            record.export_type.value,
            record.exported_kind.value,
            str(record.source_location.start_line),
            "✓" if record.is_type_only else "",
        )

    console.print(table)


def demo_analyzer(root: Path):
    """Demonstrate the Consistency Analyzer."""
    console.print("\n[bold cyan]═══ Consistency Analyzer Demo ═══[/bold cyan]\n")

    config = load_config(root)
    result = ExportAuditor(config).run()

    status = "[red]FAILED[/red]" if result.has_errors else "[green]PASSED[/green]"
    console.print(f"Analysis Status: {status}")
    console.print(f"Files: {result.total_files}  Exports: {result.total_exports}")
    console.print(f"Total Issues: {result.summary.total_issues}")
    console.print(f"  Errors: {result.summary.error_count}")
    console.print(f"  Warnings: {result.summary.warning_count}")

    stats = get_issue_statistics(result.issues)
    console.print(f"  Auto-fixable: {result.summary.auto_fixable_count}")
    for issue_type, count in stats["byType"].items():
        console.print(f"  {issue_type}: {count}")

    for file_path, issues in group_issues_by_file(result.issues).items():
        console.print(f"\n[bold]{Path(file_path).relative_to(root)}[/bold]")
        for issue in issues:
            marker = "🔴" if issue.severity == Severity.ERROR else "🟡"
            console.print(f"{marker} [{issue.id}] {issue.message}")
            if issue.suggestion:
                console.print(f"   [dim]Fix: {issue.suggestion}[/dim]")

    return result


def demo_fixer(root: Path):
    """Demonstrate the Auto-Fixer."""
    console.print("\n[bold cyan]═══ Auto-Fixer Demo ═══[/bold cyan]\n")

    auditor = ExportAuditor(load_config(root))
    auditor.run(fix_options=AutoFixOptions(dry_run=True))
    preview = auditor.last_fix_result

    table = Table(title="Planned Operations (dry run)")
    table.add_column("File", style="cyan")
    table.add_column("Line", justify="right")
    table.add_column("Operation", style="green")
    table.add_column("Risk", style="yellow")
    table.add_column("Description", style="white")

    for fr in preview.results:
        op = fr.operation
        table.add_row(
            str(Path(op.file_path).relative_to(root)),
            str(op.line_number or "-"),
            op.type.value,
            op.risk_level.value,
            op.description,
        )
    console.print(table)

    result = auditor.run(fix_options=AutoFixOptions())
    applied = auditor.last_fix_result
    console.print(f"\nApplied: {applied.successful_fixes}  Failed: {applied.failed_fixes}")
    console.print(f"Backups: {applied.backup_directory}")
    console.print(f"Fixed issues: {len(result.fixed_issues)}")

    return result, applied


def demo_reporter(result, fix_result):
    """Demonstrate the Report Generator."""
    console.print("\n[bold cyan]═══ Report Generator Demo ═══[/bold cyan]\n")

    reporter = ReportGenerator(result, fix_result)

    console_report = reporter.generate_report(ReportOptions(sort_by="severity"))
    console.print(Panel(Text(console_report.content), title="Console Report"))

    md_report = reporter.generate_report(ReportOptions(format=ReportFormat.MARKDOWN, group_by="type"))
    console.print(Panel(Text(md_report.content[:800] + "..."), title="Markdown Report (excerpt)"))

    csv_report = reporter.generate_report(ReportOptions(format=ReportFormat.CSV))
    console.print(Panel(Text(csv_report.content), title="CSV Report"))


def run_demo():
    """Run the complete demo."""
    console.print(Panel.fit(
        "[bold magenta]Export Consistency Engine[/bold magenta]\n"
        "[cyan]TypeScript export analysis demo[/cyan]",
        border_style="bright_blue",
    ))

    with tempfile.TemporaryDirectory() as tmp:
        root = Path(tmp) / "demo-app"
        write_sample_project(root)

        demo_detector()
        demo_analyzer(root)
        result, fix_result = demo_fixer(root)
        demo_reporter(result, fix_result)

    console.print(Panel.fit(
        "[bold green]✓ Demo Complete![/bold green]\n\n"
        "Components demonstrated:\n"
        "• Export Detector - tree-sitter export extraction\n"
        "• Consistency Analyzer - file and project rules\n"
        "• Auto-Fixer - dry run and applied fixes\n"
        "• Report Generator - console, markdown, CSV",
        border_style="green",
    ))


if __name__ == "__main__":
    run_demo()
