"""Auto-Fixer for export consistency issues.

Turns auto-fixable issues into line-level FixOperations and applies them:
- naming-inconsistency -> rename the identifier on its declaration line
- duplicate-export -> remove the flagged line (the first occurrence stays)
- missing-export -> append `export { name };` at the end of the file
- unused-export -> reorder the specifiers of a single-line export clause
- type-export-mismatch -> rewrite a clause as `export type { ... }` or
  `import type { ... }`

Within a file, operations are applied from the bottom up so that no edit
shifts the line numbers of edits still to be applied.
"""

import re
import shutil
from collections import defaultdict
from datetime import datetime, timezone
from pathlib import Path

import structlog

from export_consistency.config import ExportConfig
from export_consistency.models import (
    DEFAULT_EXPORT,
    AutoFixOptions,
    BatchFixResult,
    ConsistencyIssue,
    FixCategory,
    FixOperation,
    FixOperationType,
    FixResult,
    IssueType,
)
from export_consistency.naming import CaseStyle, apply_case_style

logger = structlog.get_logger()

BACKUP_DIRECTORY_NAME = ".export-consistency-backups"

ISSUE_CATEGORIES = {
    IssueType.NAMING_INCONSISTENCY: FixCategory.NAMING,
    IssueType.DUPLICATE_EXPORT: FixCategory.DUPLICATES,
    IssueType.MISSING_EXPORT: FixCategory.MISSING,
    IssueType.UNUSED_EXPORT: FixCategory.ORDERING,
    IssueType.TYPE_EXPORT_MISMATCH: FixCategory.FORMATTING,
}

# `export {a, b} from './m';` / `import type { a } from './m';` on one line
_CLAUSE_LINE = re.compile(
    r"^(?P<indent>\s*)(?P<keyword>export|import)(?P<type>\s+type)?\s*\{(?P<body>[^{}]*)\}(?P<rest>.*)$"
)


def rewrite_clause(line: str, sort: bool = False, type_only: bool | None = None) -> str | None:
    """Normalize a single-line export or import clause.

    Args:
        line: Source line holding the whole clause
        sort: Sort the specifiers alphabetically
        type_only: Force (True) or keep (None) the `type` modifier

    Returns:
        The rewritten line, or None when the line holds no such clause
    """
    content = line.rstrip("\r")
    ending = line[len(content):]
    match = _CLAUSE_LINE.match(content)
    if match is None:
        return None

    specifiers = [s.strip() for s in match.group("body").split(",") if s.strip()]
    is_type = bool(match.group("type")) if type_only is None else type_only
    if is_type:
        # Inline modifiers are redundant (and invalid) under `export type`
        specifiers = [re.sub(r"^type\s+", "", s) for s in specifiers]
    if sort:
        specifiers.sort(key=lambda s: re.sub(r"^type\s+", "", s).lower())

    rest = match.group("rest").strip()
    if rest and not rest.startswith(";"):
        rest = " " + rest
    body = f"{{ {', '.join(specifiers)} }}" if specifiers else "{}"
    keyword = match.group("keyword") + (" type" if is_type else "")
    return f"{match.group('indent')}{keyword} {body}{rest}{ending}"


def read_lines(path: Path) -> list[str]:
    """Split a file into lines, keeping carriage returns so CRLF files round-trip."""
    with open(path, encoding="utf-8", newline="") as f:
        return f.read().split("\n")


def write_lines(path: Path, lines: list[str]) -> None:
    with open(path, "w", encoding="utf-8", newline="") as f:
        f.write("\n".join(lines))


class AutoFixer:
    """Generates and applies fix operations.

    Every operation carries a risk level; operations above the allowed
    level are reported as skipped instead of applied.
    """

    def __init__(self, config: ExportConfig):
        self.config = config
        self._logger = logger.bind(component="AutoFixer")

    def fix_file(
        self,
        file_path: str,
        issues: list[ConsistencyIssue],
        options: AutoFixOptions | None = None,
    ) -> BatchFixResult:
        """Fix the issues of one file."""
        return self.fix_multiple_files({file_path: issues}, options)

    def fix_multiple_files(
        self,
        issues_by_file: dict[str, list[ConsistencyIssue]],
        options: AutoFixOptions | None = None,
    ) -> BatchFixResult:
        """Fix issues across files.

        A dry run reports every allowed operation as successful and never
        touches the files.
        """
        options = options or AutoFixOptions()
        max_risk = options.max_risk_level or self.config.auto_fix.max_risk_level

        operations: list[FixOperation] = []
        skipped: list[FixOperation] = []
        for file_path, issues in issues_by_file.items():
            for operation in self.generate_fix_operations(file_path, issues, options.fix_types):
                if operation.risk_level.rank > max_risk.rank:
                    skipped.append(operation)
                else:
                    operations.append(operation)

        if skipped:
            self._logger.info("Skipping risky operations", count=len(skipped), max_risk=max_risk.value)

        if options.dry_run:
            results = [FixResult(success=True, operation=op) for op in operations]
            return BatchFixResult.from_results(results, skipped=skipped, dry_run=True)

        return self._apply_operations(operations, skipped, options)

    # -- operation generation ----------------------------------------------

    def generate_fix_operations(
        self,
        file_path: str,
        issues: list[ConsistencyIssue],
        fix_types: list[FixCategory] | None = None,
    ) -> list[FixOperation]:
        """Map auto-fixable issues of a file to operations."""
        fixable = [
            issue for issue in issues
            if issue.auto_fixable
            and issue.type in ISSUE_CATEGORIES
            and (fix_types is None or ISSUE_CATEGORIES[issue.type] in fix_types)
        ]
        if not fixable:
            return []

        try:
            lines = read_lines(Path(file_path))
        except (OSError, UnicodeDecodeError) as e:
            self._logger.warning("Cannot read file for fixing", file=file_path, error=str(e))
            return []

        operations = []
        for issue in fixable:
            match issue.type:
                case IssueType.NAMING_INCONSISTENCY:
                    operation = self._rename_operation(file_path, issue, lines)
                case IssueType.DUPLICATE_EXPORT:
                    operation = self._remove_operation(file_path, issue, lines)
                case IssueType.MISSING_EXPORT:
                    operation = self._add_operation(file_path, issue, lines)
                case IssueType.UNUSED_EXPORT:
                    operation = self._reorder_operation(file_path, issue, lines)
                case IssueType.TYPE_EXPORT_MISMATCH:
                    operation = self._format_operation(file_path, issue, lines)
                case _:
                    operation = None
            if operation is not None:
                operations.append(operation)
        return operations

    def _line_of(self, issue: ConsistencyIssue, lines: list[str]) -> int | None:
        line = issue.line
        if line is None or not 1 <= line <= len(lines):
            return None
        return line

    def _rename_operation(self, file_path: str, issue: ConsistencyIssue, lines: list[str]) -> FixOperation | None:
        line = self._line_of(issue, lines)
        old_name = issue.metadata.get("exportName")
        if line is None or not old_name:
            return None

        new_name = issue.metadata.get("suggestedName")
        if not new_name:
            style = issue.metadata.get("caseStyle") or self.config.naming_conventions.functions.case_style
            new_name = apply_case_style(old_name, CaseStyle(style))
        if new_name == old_name:
            return None

        original = lines[line - 1]
        pattern = rf"(?<![\w$]){re.escape(old_name)}(?![\w$])"
        updated = re.sub(pattern, new_name, original, count=1)
        if updated == original:
            return None

        return FixOperation(
            type=FixOperationType.RENAME,
            file_path=file_path,
            line_number=line,
            original_text=original,
            new_text=updated,
            description=f"Rename '{old_name}' to '{new_name}' to match the naming convention",
            issue_id=issue.id,
            old_name=old_name,
            new_name=new_name,
        )

    def _remove_operation(self, file_path: str, issue: ConsistencyIssue, lines: list[str]) -> FixOperation | None:
        line = self._line_of(issue, lines)
        if line is None:
            return None
        return FixOperation(
            type=FixOperationType.REMOVE,
            file_path=file_path,
            line_number=line,
            original_text=lines[line - 1],
            new_text="",
            description=f"Remove duplicate export '{issue.metadata.get('exportName', 'unknown')}'",
            issue_id=issue.id,
        )

    def _add_operation(self, file_path: str, issue: ConsistencyIssue, lines: list[str]) -> FixOperation | None:
        name = issue.metadata.get("exportName")
        if not name:
            return None
        if issue.metadata.get("exportType") == DEFAULT_EXPORT:
            statement = f"export default {name};"
        else:
            statement = f"export {{ {name} }};"
        if lines and lines[0].endswith("\r"):
            statement += "\r"

        # Insert after the last line, keeping a trailing newline last
        insert_after = len(lines) - 1 if lines and lines[-1] == "" else len(lines)
        return FixOperation(
            type=FixOperationType.ADD,
            file_path=file_path,
            line_number=insert_after,
            new_text=statement,
            description=f"Add missing export '{name}'",
            issue_id=issue.id,
        )

    def _reorder_operation(self, file_path: str, issue: ConsistencyIssue, lines: list[str]) -> FixOperation | None:
        line = self._line_of(issue, lines)
        if line is None:
            return None
        original = lines[line - 1]
        updated = rewrite_clause(original, sort=True)
        if updated is None or updated == original or not updated.lstrip().startswith("export"):
            return None
        return FixOperation(
            type=FixOperationType.REORDER,
            file_path=file_path,
            line_number=line,
            original_text=original,
            new_text=updated,
            description="Sort export specifiers",
            issue_id=issue.id,
        )

    def _format_operation(self, file_path: str, issue: ConsistencyIssue, lines: list[str]) -> FixOperation | None:
        line = self._line_of(issue, lines)
        if line is None:
            return None
        original = lines[line - 1]
        statement = issue.metadata.get("statement", "export")
        if not original.lstrip().startswith(statement):
            return None
        updated = rewrite_clause(original, type_only=True if issue.metadata.get("typeOnly") else None)
        if updated is None or updated == original:
            return None
        return FixOperation(
            type=FixOperationType.FORMAT,
            file_path=file_path,
            line_number=line,
            original_text=original,
            new_text=updated,
            description=f"Use type-only {statement} syntax",
            issue_id=issue.id,
        )

    # -- application -------------------------------------------------------

    def find_conflicts(self, operations: list[FixOperation]) -> set[tuple[str, int]]:
        """Locations targeted by line-replacing operations with different text."""
        texts: dict[tuple[str, int], set[str]] = defaultdict(set)
        for operation in operations:
            if operation.type.replaces_line and operation.line_number is not None:
                texts[(operation.file_path, operation.line_number)].add(operation.new_text)
        return {location for location, variants in texts.items() if len(variants) > 1}

    def _apply_operations(
        self,
        operations: list[FixOperation],
        skipped: list[FixOperation],
        options: AutoFixOptions,
    ) -> BatchFixResult:
        # Identical operations are applied once
        unique: list[FixOperation] = []
        for operation in operations:
            if operation not in unique:
                unique.append(operation)

        conflicting = self.find_conflicts(unique)
        conflicts = []
        by_file: dict[str, list[FixOperation]] = {}
        for operation in unique:
            if operation.type.replaces_line and (operation.file_path, operation.line_number) in conflicting:
                conflicts.append(FixResult(
                    success=False,
                    operation=operation,
                    error=f"Conflicting edits for {operation.file_path}:{operation.line_number}",
                ))
            else:
                by_file.setdefault(operation.file_path, []).append(operation)

        if conflicts:
            self._logger.warning("Conflicting fix operations", count=len(conflicts))

        create_backup = options.create_backup
        if create_backup is None:
            create_backup = self.config.auto_fix.create_backup

        backup_directory = None
        results: list[FixResult] = []
        if create_backup and by_file:
            try:
                backup_directory = self._create_backup_directory(options.backup_directory)
            except OSError as e:
                self._logger.error("Cannot create backup directory", error=str(e))
                for file_operations in by_file.values():
                    results.extend(
                        FixResult(success=False, operation=op, error=f"Backup failed: {e}")
                        for op in file_operations
                    )
                return BatchFixResult.from_results(results, conflicts, skipped)

        for file_path, file_operations in by_file.items():
            results.extend(self._apply_file(file_path, file_operations, backup_directory))

        batch = BatchFixResult.from_results(
            results,
            conflicts,
            skipped,
            backup_directory=str(backup_directory) if backup_directory else None,
        )
        self._logger.info(
            "Fixes applied",
            operations=batch.total_operations,
            successful=batch.successful_fixes,
            failed=batch.failed_fixes,
        )
        return batch

    def _apply_file(
        self,
        file_path: str,
        operations: list[FixOperation],
        backup_directory: Path | None,
    ) -> list[FixResult]:
        """Apply one file's operations bottom-up. Failures stay within the file."""
        path = Path(file_path)
        # Descending lines; an insertion goes before a replacement at the same line.
        # Insertions at one line run last-first so they end up in issue order.
        order = sorted(
            range(len(operations)),
            key=lambda i: (
                -(operations[i].line_number or 0),
                operations[i].type.replaces_line,
                i if operations[i].type.replaces_line else -i,
            ),
        )
        backup_path = None
        errors: dict[int, str | None] = {}
        try:
            lines = read_lines(path)
            if backup_directory is not None:
                backup_path = self._backup_file(path, backup_directory)
            for i in order:
                errors[i] = self._apply_operation(lines, operations[i])
            if any(error is None for error in errors.values()):
                write_lines(path, lines)
        except (OSError, UnicodeDecodeError) as e:
            self._logger.error("Failed to apply fixes", file=file_path, error=str(e))
            return [
                FixResult(success=False, operation=op, error=str(e), backup_path=backup_path)
                for op in operations
            ]

        return [
            FixResult(success=errors[i] is None, operation=op, error=errors[i], backup_path=backup_path)
            for i, op in enumerate(operations)
        ]

    def _apply_operation(self, lines: list[str], operation: FixOperation) -> str | None:
        """Apply one operation in place; returns an error message on failure."""
        line = operation.line_number
        if line is None:
            return "Operation has no line number"

        if operation.type == FixOperationType.ADD:
            lines.insert(min(max(line, 0), len(lines)), operation.new_text)
            return None

        if not 1 <= line <= len(lines):
            return f"Line {line} is out of range"
        if operation.original_text is not None and lines[line - 1] != operation.original_text:
            return f"Stale operation: line {line} no longer matches"

        if operation.type == FixOperationType.REMOVE:
            del lines[line - 1]
        else:
            lines[line - 1] = operation.new_text
        return None

    def _create_backup_directory(self, custom: str | None = None) -> Path:
        target = custom or self.config.auto_fix.backup_directory
        if target:
            directory = Path(target)
        else:
            timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H-%M-%S-%fZ")
            directory = Path(self.config.root_path) / BACKUP_DIRECTORY_NAME / timestamp
        directory.mkdir(parents=True, exist_ok=True)
        self._logger.debug("Backup directory created", path=str(directory))
        return directory

    def _backup_file(self, path: Path, backup_directory: Path) -> str:
        try:
            relative = path.resolve().relative_to(Path(self.config.root_path).resolve())
        except ValueError:
            relative = Path(path.name)
        destination = backup_directory / relative
        destination.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(path, destination)
        return str(destination)
