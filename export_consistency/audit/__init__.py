"""Export consistency audit pipeline.

- Scanner: discovers source files
- Detector: tree-sitter based export/import extraction
- Rules: per-file and cross-file consistency rules
- Analyzer: runs the rules in two phases
- Fixer: generates and applies textual fix operations
- Reporter: console, JSON, HTML, Markdown and CSV reports
- Auditor: orchestrates the pipeline
"""

from .scanner import FileScanner
from .detector import (
    ExportDetector,
    analyze_file_exports,
    analyze_multiple_files,
    find_export_conflicts,
    validate_export_naming,
)
from .rules import (
    IssueFactory,
    ModuleResolver,
    ProjectIndex,
    RuleEngine,
)
from .analyzer import (
    ConsistencyAnalyzer,
    filter_issues,
    generate_summary,
    get_issue_statistics,
    group_issues_by_file,
    group_issues_by_type,
    validate_export_consistency,
)
from .fixer import AutoFixer
from .reporter import (
    GeneratedReport,
    ReportGenerator,
    ReportOptions,
    ReportStatistics,
    generate_and_save_report,
    generate_console_report,
    save_report,
)
from .auditor import ExportAuditor, analyze_project_consistency

__all__ = [
    # Scanner
    "FileScanner",
    # Detector
    "ExportDetector",
    "analyze_file_exports",
    "analyze_multiple_files",
    "find_export_conflicts",
    "validate_export_naming",
    # Rules
    "IssueFactory",
    "ModuleResolver",
    "ProjectIndex",
    "RuleEngine",
    # Analyzer
    "ConsistencyAnalyzer",
    "filter_issues",
    "generate_summary",
    "get_issue_statistics",
    "group_issues_by_file",
    "group_issues_by_type",
    "validate_export_consistency",
    # Fixer
    "AutoFixer",
    # Reporter
    "GeneratedReport",
    "ReportGenerator",
    "ReportOptions",
    "ReportStatistics",
    "generate_and_save_report",
    "generate_console_report",
    "save_report",
    # Auditor
    "ExportAuditor",
    "analyze_project_consistency",
]
