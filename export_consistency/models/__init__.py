"""Data models for the export consistency engine."""

from .base import CamelModel, FrozenCamelModel
from .exports import (
    ANONYMOUS_EXPORT,
    DEFAULT_EXPORT,
    EXPORT_EQUALS,
    RESERVED_EXPORT_NAMES,
    STAR_EXPORT,
    DeclarationShape,
    ExportRecord,
    ExportType,
    ExportedKind,
    ImportedName,
    ImportRecord,
    ModuleInventory,
    SourceLocation,
)
from .issues import (
    AnalysisSummary,
    ConsistencyIssue,
    IssueType,
    ProjectAnalysisResult,
    Severity,
)
from .fixes import (
    OPERATION_RISK,
    AutoFixOptions,
    BatchFixResult,
    FixCategory,
    FixOperation,
    FixOperationType,
    FixResult,
    RiskLevel,
)

__all__ = [
    # Base
    "CamelModel",
    "FrozenCamelModel",
    # Exports
    "ANONYMOUS_EXPORT",
    "DEFAULT_EXPORT",
    "EXPORT_EQUALS",
    "RESERVED_EXPORT_NAMES",
    "STAR_EXPORT",
    "DeclarationShape",
    "ExportRecord",
    "ExportType",
    "ExportedKind",
    "ImportedName",
    "ImportRecord",
    "ModuleInventory",
    "SourceLocation",
    # Issues
    "AnalysisSummary",
    "ConsistencyIssue",
    "IssueType",
    "ProjectAnalysisResult",
    "Severity",
    # Fixes
    "OPERATION_RISK",
    "AutoFixOptions",
    "BatchFixResult",
    "FixCategory",
    "FixOperation",
    "FixOperationType",
    "FixResult",
    "RiskLevel",
]
