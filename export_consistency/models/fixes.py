"""Fix operation and fix result models."""

from enum import Enum

from pydantic import Field

from .base import CamelModel, FrozenCamelModel


class FixOperationType(str, Enum):
    """Kinds of textual edits."""

    RENAME = "rename"
    ADD = "add"
    REMOVE = "remove"
    REORDER = "reorder"
    FORMAT = "format"

    @property
    def replaces_line(self) -> bool:
        """True for edits that overwrite or drop an existing line."""
        return self is not FixOperationType.ADD


class RiskLevel(str, Enum):
    """How aggressive an edit is."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def rank(self) -> int:
        return _RISK_RANK[self]


_RISK_RANK = {RiskLevel.LOW: 1, RiskLevel.MEDIUM: 2, RiskLevel.HIGH: 3}

OPERATION_RISK = {
    FixOperationType.FORMAT: RiskLevel.LOW,
    FixOperationType.REORDER: RiskLevel.LOW,
    FixOperationType.ADD: RiskLevel.LOW,
    FixOperationType.RENAME: RiskLevel.MEDIUM,
    FixOperationType.REMOVE: RiskLevel.MEDIUM,
}


class FixCategory(str, Enum):
    """Issue categories that can be selected for fixing."""

    NAMING = "naming"
    DUPLICATES = "duplicates"
    MISSING = "missing"
    ORDERING = "ordering"
    FORMATTING = "formatting"


class FixOperation(FrozenCamelModel):
    """One proposed textual edit.

    ``line_number`` is 1-based. For ``add`` it is the line after which
    ``new_text`` is inserted (0 inserts at the top).
    """

    type: FixOperationType
    file_path: str
    line_number: int | None = None
    original_text: str | None = None
    new_text: str
    description: str
    issue_id: str | None = None
    old_name: str | None = None
    new_name: str | None = None

    @property
    def risk_level(self) -> RiskLevel:
        return OPERATION_RISK[self.type]


class FixResult(FrozenCamelModel):
    """Outcome of applying or simulating one operation."""

    success: bool
    operation: FixOperation
    error: str | None = None
    backup_path: str | None = None


class BatchFixResult(CamelModel):
    """Outcome of a batch of operations."""

    total_operations: int = 0
    successful_fixes: int = 0
    failed_fixes: int = 0
    results: list[FixResult] = Field(default_factory=list)
    conflicts: list[FixResult] = Field(default_factory=list)
    skipped: list[FixOperation] = Field(default_factory=list)
    backup_directory: str | None = None
    dry_run: bool = False

    @classmethod
    def from_results(
        cls,
        results: list[FixResult],
        conflicts: list[FixResult] | None = None,
        skipped: list[FixOperation] | None = None,
        backup_directory: str | None = None,
        dry_run: bool = False,
    ) -> "BatchFixResult":
        conflicts = conflicts or []
        # Conflicting operations count as failed
        return cls(
            total_operations=len(results) + len(conflicts),
            successful_fixes=sum(1 for r in results if r.success),
            failed_fixes=sum(1 for r in results if not r.success) + len(conflicts),
            results=results,
            conflicts=conflicts,
            skipped=skipped or [],
            backup_directory=backup_directory,
            dry_run=dry_run,
        )


class AutoFixOptions(CamelModel):
    """Per-call fix options. Unset fields fall back to the config policy."""

    dry_run: bool = False
    create_backup: bool | None = None
    backup_directory: str | None = None
    fix_types: list[FixCategory] | None = None
    max_risk_level: RiskLevel | None = None
