"""Consistency issue and analysis result models."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import Field

from .base import CamelModel, FrozenCamelModel
from .exports import SourceLocation


class IssueType(str, Enum):
    """Closed set of inconsistency categories."""

    NAMING_INCONSISTENCY = "naming-inconsistency"
    CIRCULAR_DEPENDENCY = "circular-dependency"
    UNUSED_EXPORT = "unused-export"
    IMPORT_MISMATCH = "import-mismatch"
    DUPLICATE_EXPORT = "duplicate-export"
    MISSING_EXPORT = "missing-export"
    TYPE_EXPORT_MISMATCH = "type-export-mismatch"
    ACCESSIBILITY_VIOLATION = "accessibility-violation"


class Severity(str, Enum):
    """Issue severity."""

    ERROR = "error"
    WARNING = "warning"
    INFO = "info"

    @property
    def rank(self) -> int:
        """Sort rank: error > warning > info."""
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {Severity.ERROR: 3, Severity.WARNING: 2, Severity.INFO: 1}


class ConsistencyIssue(FrozenCamelModel):
    """One detected inconsistency."""

    id: str
    type: IssueType
    severity: Severity
    file_path: str
    message: str
    suggestion: str | None = None
    auto_fixable: bool = False
    related_files: list[str] = Field(default_factory=list)
    source_location: SourceLocation | None = None
    rule: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def line(self) -> int | None:
        return self.source_location.start_line if self.source_location else None


class AnalysisSummary(CamelModel):
    """Counts derived from an analysis run."""

    error_count: int = 0
    warning_count: int = 0
    info_count: int = 0
    fixed_count: int = 0
    success_rate: float = 1.0
    total_issues: int = 0
    auto_fixable_count: int = 0


class ProjectAnalysisResult(CamelModel):
    """Terminal artifact of a run."""

    project_path: str
    project_name: str = ""
    scan_timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    total_files: int = 0
    analyzed_files: int = 0
    total_exports: int = 0
    issues: list[ConsistencyIssue] = Field(default_factory=list)
    fixed_issues: list[ConsistencyIssue] = Field(default_factory=list)
    summary: AnalysisSummary = Field(default_factory=AnalysisSummary)
    config: dict[str, Any] | None = None

    @property
    def has_errors(self) -> bool:
        fixed = {i.id for i in self.fixed_issues}
        return any(i.severity == Severity.ERROR and i.id not in fixed for i in self.issues)
