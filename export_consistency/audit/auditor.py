"""End-to-end export consistency audit.

Pipeline:
1. Validate the configuration (fatal on error)
2. Discover source files
3. Detect exports and imports inside the detector's scoped parse context
4. Analyze once every file has been detected
5. Optionally apply auto-fixes
"""

from pathlib import Path
from typing import Any

import structlog

from export_consistency.audit.analyzer import ConsistencyAnalyzer, generate_summary, group_issues_by_file
from export_consistency.audit.detector import ExportDetector
from export_consistency.audit.fixer import AutoFixer
from export_consistency.audit.scanner import FileScanner
from export_consistency.config import ExportConfig, load_config, validate_config
from export_consistency.errors import ConfigValidationError
from export_consistency.models import (
    AutoFixOptions,
    BatchFixResult,
    ConsistencyIssue,
    ModuleInventory,
    ProjectAnalysisResult,
)
from export_consistency.providers import ParseOptions, SourceProvider

logger = structlog.get_logger()


class ExportAuditor:
    """Runs the detector, analyzer and fixer over a project."""

    def __init__(
        self,
        config: ExportConfig,
        source_provider: SourceProvider | None = None,
        parse_options: ParseOptions | None = None,
    ):
        self.config = config
        self.source_provider = source_provider
        self.parse_options = parse_options
        self.scanner = FileScanner(config.scan_options)
        self.analyzer = ConsistencyAnalyzer(config)
        self.fixer = AutoFixer(config)
        self.last_fix_result: BatchFixResult | None = None
        self._logger = logger.bind(component="ExportAuditor")

    def run(
        self,
        file_paths: list[str] | None = None,
        fix_options: AutoFixOptions | None = None,
    ) -> ProjectAnalysisResult:
        """Audit the configured project.

        Args:
            file_paths: Explicit files to audit (defaults to a scan of root_path)
            fix_options: Fix options; fixes run when given or when autoFix is enabled

        Returns:
            The analysis result, with fixed issues when fixes were applied

        Raises:
            ConfigValidationError: when the configuration is invalid
        """
        validation = validate_config(self.config)
        if not validation.is_valid:
            self._logger.error("Invalid configuration", errors=validation.errors)
            raise ConfigValidationError(validation.errors, validation.warnings)

        root = self.config.root_path
        files = [str(p) for p in file_paths] if file_paths is not None else self.scanner.scan(root)
        self._logger.info("Audit started", root=root, files=len(files))

        inventories = self.detect(files)
        issues = self.analyzer.analyze_project(
            {inv.file_path: inv.exports for inv in inventories},
            {inv.file_path: inv.imports for inv in inventories},
            {inv.file_path: inv.declarations for inv in inventories},
        )

        fixed: list[ConsistencyIssue] = []
        self.last_fix_result = None
        if fix_options is not None or self.config.auto_fix.enabled:
            self.last_fix_result = self.fixer.fix_multiple_files(
                group_issues_by_file(issues),
                fix_options or AutoFixOptions(),
            )
            fixed = fixed_issues(issues, self.last_fix_result)

        result = ProjectAnalysisResult(
            project_path=root,
            project_name=Path(root).resolve().name,
            total_files=len(files),
            analyzed_files=sum(1 for inv in inventories if not inv.errors),
            total_exports=sum(len(inv.exports) for inv in inventories),
            issues=issues,
            fixed_issues=fixed,
            summary=generate_summary(issues, fixed),
            config=self.config.to_dict(),
        )
        self._logger.info(
            "Audit complete",
            files=result.total_files,
            exports=result.total_exports,
            issues=len(issues),
            fixed=len(fixed),
        )
        return result

    def detect(self, file_paths: list[str]) -> list[ModuleInventory]:
        """Inspect every file inside one parse context."""
        with ExportDetector(self.source_provider) as detector:
            detector.initialize(file_paths, self.parse_options)
            return [detector.inspect_file(path) for path in file_paths]


def fixed_issues(issues: list[ConsistencyIssue], fix_result: BatchFixResult) -> list[ConsistencyIssue]:
    """Issues with at least one operation, all of which were applied."""
    if fix_result.dry_run:
        return []
    outcomes: dict[str, list[bool]] = {}
    for result in fix_result.results:
        if result.operation.issue_id:
            outcomes.setdefault(result.operation.issue_id, []).append(result.success)
    for conflict in fix_result.conflicts:
        if conflict.operation.issue_id:
            outcomes.setdefault(conflict.operation.issue_id, []).append(False)
    return [issue for issue in issues if outcomes.get(issue.id) and all(outcomes[issue.id])]


def analyze_project_consistency(
    project_path: str | Path,
    overrides: dict[str, Any] | None = None,
    config_path: str | Path | None = None,
) -> ProjectAnalysisResult:
    """Load configuration for a project and audit it.

    Raises:
        ConfigValidationError: when the configuration is invalid
    """
    config = load_config(project_path, config_path=config_path, overrides=overrides)
    return ExportAuditor(config).run()
