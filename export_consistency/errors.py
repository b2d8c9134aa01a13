"""Exception hierarchy for the export consistency engine."""


class ExportConsistencyError(Exception):
    """Base class for all engine errors."""


class ConfigValidationError(ExportConsistencyError):
    """Configuration failed validation. Fatal for the run."""

    def __init__(self, errors: list[str], warnings: list[str] | None = None):
        self.errors = list(errors)
        self.warnings = list(warnings or [])
        summary = "; ".join(self.errors) if self.errors else "invalid configuration"
        super().__init__(f"Invalid export consistency configuration: {summary}")


class SourceNotFoundError(ExportConsistencyError):
    """A source provider has no content for the requested path."""

    def __init__(self, file_path: str):
        self.file_path = file_path
        super().__init__(f"Source not found: {file_path}")


class ParseError(ExportConsistencyError):
    """Source text could not be parsed into a usable syntax tree."""

    def __init__(self, file_path: str, reason: str):
        self.file_path = file_path
        self.reason = reason
        super().__init__(f"Failed to parse {file_path}: {reason}")


class FixApplicationError(ExportConsistencyError):
    """A single fix operation could not be applied."""


class ReportWriteError(ExportConsistencyError):
    """A rendered report could not be persisted."""
