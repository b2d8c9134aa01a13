"""Run-wide configuration for the export consistency engine.

Configuration is assembled once per run:
1. Defaults for the project root (``create_default_config``)
2. Project overrides from ``.export-consistency.json`` or a dict (deep merge)
3. Process overrides from ``EXPORT_CONSISTENCY_*`` environment variables
4. Field-by-field validation; any error is fatal for the run

The resulting ``ExportConfig`` is frozen and read-only for the rest of the run.
"""

import copy
import json
import re
from enum import Enum
from pathlib import Path
from typing import Any

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel
from pydantic_settings import BaseSettings, SettingsConfigDict

from export_consistency.errors import ConfigValidationError
from export_consistency.models import ExportedKind, RiskLevel, Severity
from export_consistency.naming import CaseStyle

logger = structlog.get_logger()

CONFIG_FILE_NAME = ".export-consistency.json"


class ReportFormat(str, Enum):
    """Output format for reports."""

    CONSOLE = "console"
    JSON = "json"
    HTML = "html"
    MARKDOWN = "markdown"
    CSV = "csv"


class _ConfigModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class ScanOptions(_ConfigModel):
    """Which files a scan covers."""

    include: list[str] = Field(default_factory=lambda: ["**/*.ts", "**/*.tsx"])
    exclude: list[str] = Field(
        default_factory=lambda: [
            "node_modules/**",
            "dist/**",
            "build/**",
            ".export-consistency-backups/**",
            "**/*.test.ts",
            "**/*.test.tsx",
            "**/*.spec.ts",
            "**/*.spec.tsx",
            "**/*.d.ts",
        ]
    )
    recursive: bool = True
    max_depth: int | None = 10
    follow_symlinks: bool = False


class ExportRule(_ConfigModel):
    """A named rule with its severity and free-form options."""

    name: str
    description: str = ""
    enabled: bool = True
    severity: Severity = Severity.WARNING
    options: dict[str, Any] = Field(default_factory=dict)


class NamingConvention(_ConfigModel):
    """Regex an export name must match, plus the style used to fix it."""

    pattern: str
    case_style: CaseStyle


class NamingConventions(_ConfigModel):
    """Naming convention per exported kind."""

    interfaces: NamingConvention = NamingConvention(
        pattern=r"^I[A-Z][a-zA-Z0-9]*$|^[A-Z][a-zA-Z0-9]*$", case_style=CaseStyle.PASCAL
    )
    types: NamingConvention = NamingConvention(
        pattern=r"^[A-Z][a-zA-Z0-9]*$", case_style=CaseStyle.PASCAL
    )
    components: NamingConvention = NamingConvention(
        pattern=r"^[A-Z][a-zA-Z0-9]*$", case_style=CaseStyle.PASCAL
    )
    functions: NamingConvention = NamingConvention(
        pattern=r"^[a-z][a-zA-Z0-9]*$", case_style=CaseStyle.CAMEL
    )
    classes: NamingConvention = NamingConvention(
        pattern=r"^[A-Z][a-zA-Z0-9]*$", case_style=CaseStyle.PASCAL
    )
    constants: NamingConvention = NamingConvention(
        pattern=r"^[A-Z][A-Z0-9_]*$|^[a-z][a-zA-Z0-9]*$|^[A-Z][a-zA-Z0-9]*$",
        case_style=CaseStyle.CAMEL,
    )

    def for_kind(self, kind: ExportedKind) -> NamingConvention:
        """Get the convention that applies to an exported kind."""
        return getattr(self, _KIND_FIELDS[kind])


_KIND_FIELDS = {
    ExportedKind.INTERFACE: "interfaces",
    ExportedKind.TYPE: "types",
    ExportedKind.COMPONENT: "components",
    ExportedKind.FUNCTION: "functions",
    ExportedKind.CLASS: "classes",
    ExportedKind.CONSTANT: "constants",
}


class AutoFixPolicy(_ConfigModel):
    """How aggressive auto-fix may be."""

    enabled: bool = False
    create_backup: bool = True
    max_risk_level: RiskLevel = RiskLevel.MEDIUM
    backup_directory: str | None = None


class ReportingOptions(_ConfigModel):
    """Report defaults."""

    format: ReportFormat = ReportFormat.CONSOLE
    output_path: str | None = None
    verbose: bool = False


class ExportConfig(_ConfigModel):
    """Complete, immutable run configuration."""

    root_path: str
    scan_options: ScanOptions = Field(default_factory=ScanOptions)
    rules: list[ExportRule] = Field(default_factory=list)
    naming_conventions: NamingConventions = Field(default_factory=NamingConventions)
    auto_fix: AutoFixPolicy = Field(default_factory=AutoFixPolicy)
    reporting: ReportingOptions = Field(default_factory=ReportingOptions)

    def get_rule(self, name: str) -> ExportRule | None:
        """Get a rule by name."""
        for rule in self.rules:
            if rule.name == name:
                return rule
        return None

    def is_rule_enabled(self, name: str) -> bool:
        rule = self.get_rule(name)
        return rule.enabled if rule else False

    def enabled_rules(self) -> list[ExportRule]:
        return [rule for rule in self.rules if rule.enabled]

    def rules_by_severity(self, severity: Severity) -> list[ExportRule]:
        return [rule for rule in self.rules if rule.enabled and rule.severity == severity]

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ValidationResult(BaseModel):
    """Outcome of configuration validation."""

    is_valid: bool
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


class ExportConsistencySettings(BaseSettings):
    """Process-level overrides read from the environment."""

    model_config = SettingsConfigDict(env_prefix="EXPORT_CONSISTENCY_", case_sensitive=False)

    root_path: str = "."
    config_file: str = CONFIG_FILE_NAME
    report_format: ReportFormat | None = None
    output_path: str | None = None
    auto_fix: bool | None = None
    log_level: str = "WARNING"


DEFAULT_RULES: list[dict[str, Any]] = [
    {
        "name": "consistent-naming",
        "description": "Export names follow the naming convention of their kind",
        "severity": "warning",
    },
    {
        "name": "no-duplicate-exports",
        "description": "A name is exported at most once per file",
        "severity": "error",
    },
    {
        "name": "default-export-naming",
        "description": "A named default export matches the file base name",
        "severity": "warning",
    },
    {
        "name": "export-patterns",
        "description": "Forbid selected export forms",
        "enabled": False,
        "severity": "warning",
        "options": {"noDefaultExport": False, "noNamespaceExport": False, "noReexport": False},
    },
    {
        "name": "no-global-conflicts",
        "description": "A name is exported from at most one file in the project",
        "severity": "error",
        "options": {"ignoreNames": [], "ignoreReexports": False},
    },
    {
        "name": "import-export-match",
        "description": "Imported names exist in the target module",
        "severity": "error",
    },
    {
        "name": "no-missing-exports",
        "description": "Imported names declared in the target module are exported",
        "severity": "error",
    },
    {
        "name": "type-export-consistency",
        "description": "Type-level exports use type-only syntax",
        "severity": "warning",
        "options": {"preferTypeOnlyImports": True},
    },
    {
        "name": "no-unused-exports",
        "description": "Exports are imported somewhere in the project",
        "enabled": False,
        "severity": "info",
        "options": {"entryPoints": ["**/index.ts", "**/index.tsx", "**/main.ts", "**/main.tsx"]},
    },
    {
        "name": "no-circular-dependencies",
        "description": "Module imports and re-exports form no cycles",
        "severity": "error",
    },
    {
        "name": "internal-access",
        "description": "Internal modules are only imported from inside their boundary",
        "severity": "warning",
        "options": {"internalMarkers": ["internal", "_internal", "private"]},
    },
]


def create_default_config_data(root_path: str | Path) -> dict[str, Any]:
    """Default configuration as plain (camelCase) data."""
    return {
        "rootPath": str(root_path),
        "scanOptions": ScanOptions().model_dump(mode="json", by_alias=True),
        "rules": copy.deepcopy(DEFAULT_RULES),
        "namingConventions": NamingConventions().model_dump(mode="json", by_alias=True),
        "autoFix": AutoFixPolicy().model_dump(mode="json", by_alias=True, exclude_none=True),
        "reporting": ReportingOptions().model_dump(mode="json", by_alias=True, exclude_none=True),
    }


def create_default_config(root_path: str | Path) -> ExportConfig:
    """Generate the default configuration for a project root."""
    return ExportConfig.model_validate(create_default_config_data(root_path))


def merge_config_data(base: dict[str, Any], overrides: dict[str, Any]) -> dict[str, Any]:
    """Deep-merge overrides into base.

    Nested dicts merge key by key. ``rules`` merge by rule name so a project
    can tweak one rule without restating the whole list.
    """
    merged = copy.deepcopy(base)
    for key, value in overrides.items():
        if key == "rules" and isinstance(value, list) and isinstance(merged.get(key), list):
            merged[key] = _merge_rules(merged[key], value)
        elif isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge_config_data(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def _merge_rules(base: list[Any], overrides: list[Any]) -> list[Any]:
    rules = copy.deepcopy(base)
    index = {r.get("name"): i for i, r in enumerate(rules) if isinstance(r, dict)}
    for override in overrides:
        name = override.get("name") if isinstance(override, dict) else None
        if name in index:
            rules[index[name]] = merge_config_data(rules[index[name]], override)
        else:
            rules.append(copy.deepcopy(override))
    return rules


def validate_config_data(data: dict[str, Any]) -> tuple[ExportConfig | None, ValidationResult]:
    """Build and validate a config from plain data.

    Returns the config (None when it cannot be built) and the aggregated
    validation result.
    """
    try:
        config = ExportConfig.model_validate(data)
    except ValidationError as e:
        errors = [_format_pydantic_error(err) for err in e.errors()]
        return None, ValidationResult(is_valid=False, errors=errors)

    return config, validate_config(config)


def _format_pydantic_error(error: dict[str, Any]) -> str:
    location = ".".join(str(part) for part in error.get("loc", ()))
    return f"{location}: {error.get('msg', 'invalid value')}" if location else error.get("msg", "")


def validate_config(config: ExportConfig) -> ValidationResult:
    """Validate a configuration field by field."""
    errors: list[str] = []
    warnings: list[str] = []

    # Root path
    if not config.root_path:
        errors.append("rootPath is required")
    elif not Path(config.root_path).exists():
        errors.append(f"rootPath does not exist: {config.root_path}")

    # Scan options
    scan = config.scan_options
    if not scan.include:
        errors.append("scanOptions.include must be a non-empty array")
    for pattern in scan.include:
        if not pattern:
            errors.append("scanOptions.include must not contain empty patterns")
    if scan.max_depth is not None and scan.max_depth < 1:
        errors.append("scanOptions.maxDepth must be a number greater than 0")

    # Rules
    seen: set[str] = set()
    for index, rule in enumerate(config.rules):
        if not rule.name:
            errors.append(f"Rule {index} is missing name property")
            continue
        if rule.name in seen:
            warnings.append(f"Rule {rule.name} is defined more than once")
        seen.add(rule.name)
        if not rule.description:
            warnings.append(f"Rule {rule.name} is missing description property")

    # Naming conventions
    for kind in ExportedKind:
        convention = config.naming_conventions.for_kind(kind)
        field_name = _KIND_FIELDS[kind]
        if not convention.pattern:
            warnings.append(f"Missing naming convention for {field_name}")
            continue
        try:
            re.compile(convention.pattern)
        except re.error:
            errors.append(
                f"Invalid regex pattern for {field_name} naming convention: {convention.pattern}"
            )

    naming_rule = config.get_rule("consistent-naming")
    if naming_rule:
        for option in ("defaultExport", "namedExport"):
            pattern = naming_rule.options.get(option)
            if pattern is None:
                continue
            try:
                re.compile(pattern)
            except (re.error, TypeError):
                errors.append(f"Invalid regex pattern for consistent-naming option {option}: {pattern}")

    return ValidationResult(is_valid=not errors, errors=errors, warnings=warnings)


def load_config_file(config_path: str | Path) -> dict[str, Any]:
    """Read project overrides from a JSON file."""
    path = Path(config_path)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ConfigValidationError([f"{path}: invalid JSON ({e.msg} at line {e.lineno})"])
    except OSError as e:
        raise ConfigValidationError([f"{path}: cannot read configuration ({e})"])

    if not isinstance(data, dict):
        raise ConfigValidationError([f"{path}: configuration must be a JSON object"])
    return data


class ExportConfigManager:
    """Assembles, validates and hands out the run configuration."""

    def __init__(
        self,
        project_path: str | Path,
        config_path: str | Path | None = None,
        settings: ExportConsistencySettings | None = None,
    ):
        self.project_path = str(project_path)
        self.settings = settings
        self._logger = logger.bind(component="ExportConfigManager")

        if config_path is None:
            candidate = Path(project_path) / CONFIG_FILE_NAME
            config_path = candidate if candidate.exists() else None
        self.config_path = str(config_path) if config_path else None

        self._data = create_default_config_data(project_path)
        if self.config_path:
            self._data = merge_config_data(self._data, load_config_file(self.config_path))
            self._logger.info("Loaded configuration file", path=self.config_path)
        if settings is not None:
            self._data = merge_config_data(self._data, _settings_overrides(settings))

    def update_config(self, overrides: dict[str, Any]) -> None:
        """Deep-merge overrides (camelCase or snake_case keys) into the config."""
        self._data = merge_config_data(self._data, _camelize_keys(overrides))

    def validate(self) -> ValidationResult:
        """Validate the current configuration."""
        _, result = validate_config_data(self._data)
        return result

    def get_config(self) -> ExportConfig:
        """Get the validated, frozen configuration.

        Raises:
            ConfigValidationError: with every validation message
        """
        config, result = validate_config_data(self._data)
        for warning in result.warnings:
            self._logger.warning("Configuration warning", warning=warning)
        if config is None or not result.is_valid:
            raise ConfigValidationError(result.errors, result.warnings)
        return config

    def save(self, config_path: str | Path | None = None) -> Path:
        """Write the current configuration as JSON."""
        target = config_path or self.config_path or Path(self.project_path) / CONFIG_FILE_NAME
        path = Path(target)
        path.write_text(json.dumps(self._data, indent=2) + "\n", encoding="utf-8")
        self._logger.info("Configuration saved", path=str(path))
        return path


def _settings_overrides(settings: ExportConsistencySettings) -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    if settings.report_format is not None:
        overrides.setdefault("reporting", {})["format"] = settings.report_format.value
    if settings.output_path is not None:
        overrides.setdefault("reporting", {})["outputPath"] = settings.output_path
    if settings.auto_fix is not None:
        overrides["autoFix"] = {"enabled": settings.auto_fix}
    return overrides


def _camel_key(key: Any) -> Any:
    if isinstance(key, str) and "_" in key.strip("_"):
        return to_camel(key)
    return key


def _camelize_keys(data: Any) -> Any:
    # Rule options are free-form and keep their keys
    if isinstance(data, dict):
        return {
            _camel_key(k): (v if k == "options" else _camelize_keys(v))
            for k, v in data.items()
        }
    if isinstance(data, list):
        return [_camelize_keys(item) for item in data]
    return data


def load_config(
    root_path: str | Path | None = None,
    config_path: str | Path | None = None,
    overrides: dict[str, Any] | None = None,
    settings: ExportConsistencySettings | None = None,
) -> ExportConfig:
    """Assemble and validate the configuration for a run.

    Raises:
        ConfigValidationError: when the merged configuration is invalid
    """
    settings = settings or ExportConsistencySettings()
    manager = ExportConfigManager(
        root_path if root_path is not None else settings.root_path,
        config_path=config_path,
        settings=settings,
    )
    if overrides:
        manager.update_config(overrides)
    return manager.get_config()
