"""Rule Engine for checking export consistency.

Rules come in two flavours:
1. File rules - see the records of a single file
2. Project rules - see a read-only ProjectIndex built once every file
   has been detected

Rules are registered under the names used in ``ExportConfig.rules`` and
run only when that rule is enabled. ``single-default-export`` is built in
and always runs.
"""

import os
import re
from collections import defaultdict
from dataclasses import dataclass
from pathlib import PurePath
from typing import Any, Iterator, Protocol

import structlog

from export_consistency.audit.scanner import matches_any
from export_consistency.config import ExportConfig, ExportRule
from export_consistency.models import (
    DEFAULT_EXPORT,
    EXPORT_EQUALS,
    STAR_EXPORT,
    ConsistencyIssue,
    DeclarationShape,
    ExportedKind,
    ExportRecord,
    ExportType,
    ImportRecord,
    IssueType,
    Severity,
    SourceLocation,
)
from export_consistency.naming import apply_case_style

logger = structlog.get_logger()

RESOLVE_EXTENSIONS = (".ts", ".tsx", ".js", ".jsx", ".mts", ".cts")

# Rules that run regardless of configuration
ALWAYS_ON_RULES = {"single-default-export": Severity.ERROR}


@dataclass
class RuleContext:
    """What a rule needs besides its input records."""

    rule: ExportRule
    config: ExportConfig
    issues: "IssueFactory"

    def option(self, name: str, default: Any = None) -> Any:
        return self.rule.options.get(name, default)


class FileRule(Protocol):
    """Protocol for rules over one file's records."""

    def __call__(
        self,
        file_path: str,
        records: list[ExportRecord],
        ctx: RuleContext,
    ) -> list[ConsistencyIssue]:
        ...


class ProjectRule(Protocol):
    """Protocol for rules over the whole project."""

    def __call__(self, index: "ProjectIndex", ctx: RuleContext) -> list[ConsistencyIssue]:
        ...


class IssueFactory:
    """Creates issues with ids that are stable for identical input."""

    def __init__(self, prefix: str = "EXP"):
        self.prefix = prefix
        self._count = 0

    def create(
        self,
        issue_type: IssueType,
        severity: Severity,
        file_path: str,
        message: str,
        *,
        rule: str | None = None,
        suggestion: str | None = None,
        auto_fixable: bool = False,
        related_files: list[str] | None = None,
        source_location: SourceLocation | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> ConsistencyIssue:
        self._count += 1
        return ConsistencyIssue(
            id=f"{self.prefix}-{self._count:04d}",
            type=issue_type,
            severity=severity,
            file_path=file_path,
            message=message,
            suggestion=suggestion,
            auto_fixable=auto_fixable,
            related_files=related_files or [],
            source_location=source_location,
            rule=rule,
            metadata=metadata or {},
        )


class ModuleResolver:
    """Resolves import specifiers to project files.

    Resolution is purely lexical against the set of scanned files:
    relative specifiers resolve against the importer, ``@/`` maps to
    ``<root>/src``, and bare package specifiers are ignored.
    """

    def __init__(self, root_path: str, file_paths: list[str]):
        self.root_path = root_path
        self._files = {os.path.normpath(p): p for p in file_paths}

    def resolve(self, importer: str, specifier: str) -> str | None:
        if specifier.startswith("."):
            base = os.path.join(os.path.dirname(importer), specifier)
        elif specifier.startswith("@/"):
            base = os.path.join(self.root_path, "src", specifier[2:])
        else:
            return None
        base = os.path.normpath(base)

        candidates = [base]
        stem, ext = os.path.splitext(base)
        if ext in (".js", ".jsx", ".mjs", ".cjs"):
            # ESM-style imports name the compiled file
            candidates.extend(stem + e for e in RESOLVE_EXTENSIONS)
        candidates.extend(base + e for e in RESOLVE_EXTENSIONS)
        candidates.extend(os.path.join(base, "index" + e) for e in RESOLVE_EXTENSIONS)

        for candidate in candidates:
            if candidate in self._files:
                return self._files[candidate]
        return None


class ProjectIndex:
    """Read-only snapshot of every file's exports, imports and declarations."""

    def __init__(
        self,
        root_path: str,
        records_by_file: dict[str, list[ExportRecord]],
        imports_by_file: dict[str, list[ImportRecord]] | None = None,
        declarations_by_file: dict[str, dict[str, ExportedKind]] | None = None,
    ):
        self.root_path = root_path
        self.records = records_by_file
        self.imports = imports_by_file or {}
        self.declarations = declarations_by_file or {}
        self.files = list(records_by_file)
        self.files.extend(f for f in self.imports if f not in records_by_file)
        self.resolver = ModuleResolver(root_path, self.files)

        self._export_names = {
            f: {r.export_name for r in self.records.get(f, [])} for f in self.files
        }
        self._edges = {f: self._collect_edges(f) for f in self.files}

    def _collect_edges(self, file_path: str) -> list[str]:
        targets: list[str] = []
        specifiers = [imp.module_specifier for imp in self.imports.get(file_path, [])]
        specifiers.extend(
            r.module_specifier for r in self.records.get(file_path, []) if r.module_specifier
        )
        for specifier in specifiers:
            target = self.resolver.resolve(file_path, specifier)
            if target is not None and target not in targets:
                targets.append(target)
        return targets

    def edges(self, file_path: str) -> list[str]:
        """Project files a file imports or re-exports from, in source order."""
        return self._edges.get(file_path, [])

    def export_names(self, file_path: str) -> set[str]:
        return self._export_names.get(file_path, set())

    def has_star_export(self, file_path: str) -> bool:
        return STAR_EXPORT in self.export_names(file_path)

    def find_export(self, file_path: str, name: str) -> ExportRecord | None:
        for record in self.records.get(file_path, []):
            if record.export_name == name:
                return record
        return None

    def resolved_imports(self) -> Iterator[tuple[str, ImportRecord, str]]:
        """(importer, import, target) for every import of a project file."""
        for file_path in self.files:
            for imp in self.imports.get(file_path, []):
                target = self.resolver.resolve(file_path, imp.module_specifier)
                if target is not None:
                    yield file_path, imp, target

    def used_names(self) -> dict[str, set[str]]:
        """Names each file has imported or re-exported from it; ``*`` means all."""
        used: dict[str, set[str]] = defaultdict(set)
        for _, imp, target in self.resolved_imports():
            used[target].update(n.name for n in imp.names)
            if imp.default_name:
                used[target].add(DEFAULT_EXPORT)
            if imp.namespace_name or imp.is_side_effect_only:
                used[target].add(STAR_EXPORT)
        for file_path in self.files:
            for record in self.records.get(file_path, []):
                if not record.module_specifier:
                    continue
                target = self.resolver.resolve(file_path, record.module_specifier)
                if target is None:
                    continue
                if record.shape == DeclarationShape.NAMED_CLAUSE:
                    used[target].add(record.source_name or record.export_name)
                else:
                    used[target].add(STAR_EXPORT)
        return used

    def kind_of(self, file_path: str, name: str) -> ExportedKind | None:
        """Kind of a name as declared or exported by a file."""
        kind = self.declarations.get(file_path, {}).get(name)
        if kind is not None:
            return kind
        record = self.find_export(file_path, name)
        return record.exported_kind if record else None

    def relative(self, file_path: str) -> str:
        """Root-relative POSIX path, for messages and glob matching."""
        try:
            return PurePath(os.path.relpath(file_path, self.root_path)).as_posix()
        except ValueError:
            return PurePath(file_path).as_posix()


class RuleEngine:
    """Runs the registered rules enabled by an ExportConfig."""

    def __init__(self, config: ExportConfig):
        self.config = config
        self._file_rules: dict[str, FileRule] = {}
        self._project_rules: dict[str, ProjectRule] = {}
        self._logger = logger.bind(component="RuleEngine")

        self._register_builtin_rules()

    def _register_builtin_rules(self) -> None:
        """Register the built-in rules, in evaluation order."""
        self._file_rules["consistent-naming"] = check_naming_conventions
        self._file_rules["no-duplicate-exports"] = check_duplicate_exports
        self._file_rules["single-default-export"] = check_multiple_default_exports
        self._file_rules["default-export-naming"] = check_default_export_naming
        self._file_rules["export-patterns"] = check_export_patterns

        self._project_rules["no-global-conflicts"] = check_global_conflicts
        self._project_rules["import-export-match"] = check_import_mismatches
        self._project_rules["no-missing-exports"] = check_missing_exports
        self._project_rules["type-export-consistency"] = check_type_exports
        self._project_rules["no-unused-exports"] = check_unused_exports
        self._project_rules["no-circular-dependencies"] = check_circular_dependencies
        self._project_rules["internal-access"] = check_internal_access

    def register_file_rule(self, name: str, rule: FileRule) -> None:
        """Register a custom file rule."""
        self._file_rules[name] = rule

    def register_project_rule(self, name: str, rule: ProjectRule) -> None:
        """Register a custom project rule."""
        self._project_rules[name] = rule

    def _active_rule(self, name: str) -> ExportRule | None:
        if name in ALWAYS_ON_RULES:
            return ExportRule(name=name, severity=ALWAYS_ON_RULES[name])
        rule = self.config.get_rule(name)
        if rule is None or not rule.enabled:
            return None
        return rule

    def run_file_rules(
        self,
        file_path: str,
        records: list[ExportRecord],
        factory: IssueFactory,
    ) -> list[ConsistencyIssue]:
        """Run every enabled file rule over one file."""
        issues: list[ConsistencyIssue] = []
        for name, check in self._file_rules.items():
            rule = self._active_rule(name)
            if rule is None:
                continue
            issues.extend(check(file_path, records, RuleContext(rule, self.config, factory)))
        return issues

    def run_project_rules(self, index: ProjectIndex, factory: IssueFactory) -> list[ConsistencyIssue]:
        """Run every enabled project rule over the index."""
        issues: list[ConsistencyIssue] = []
        for name, check in self._project_rules.items():
            rule = self._active_rule(name)
            if rule is None:
                continue
            found = check(index, RuleContext(rule, self.config, factory))
            self._logger.debug("Project rule complete", rule=name, issues=len(found))
            issues.extend(found)
        return issues


# -- file rules ------------------------------------------------------------


def check_naming_conventions(file_path: str, records: list[ExportRecord], ctx: RuleContext) -> list[ConsistencyIssue]:
    """Export names match the pattern for their kind."""
    issues = []
    for record in records:
        if record.is_sentinel:
            continue
        # A plain re-export forwards a name chosen elsewhere
        if record.export_type == ExportType.REEXPORT and record.source_name is None:
            continue

        convention = ctx.config.naming_conventions.for_kind(record.exported_kind)
        override = ctx.option("defaultExport" if record.export_type == ExportType.DEFAULT else "namedExport")
        pattern = override or convention.pattern
        if re.search(pattern, record.export_name):
            continue

        suggested = apply_case_style(record.export_name, convention.case_style)
        fixable = suggested != record.export_name and re.search(pattern, suggested) is not None
        metadata = {
            "exportName": record.export_name,
            "exportedKind": record.exported_kind.value,
            "caseStyle": convention.case_style.value,
            "scope": "file",
        }
        if fixable:
            metadata["suggestedName"] = suggested

        issues.append(ctx.issues.create(
            IssueType.NAMING_INCONSISTENCY,
            ctx.rule.severity,
            file_path,
            f"Export '{record.export_name}' does not follow the {record.exported_kind.value} "
            f"naming convention '{pattern}'",
            rule=ctx.rule.name,
            suggestion=f"Rename to '{suggested}'" if fixable else f"Rename to match {pattern}",
            auto_fixable=fixable,
            source_location=record.source_location,
            metadata=metadata,
        ))
    return issues


def check_duplicate_exports(file_path: str, records: list[ExportRecord], ctx: RuleContext) -> list[ConsistencyIssue]:
    """A name is exported at most once per file.

    Defaults have their own rule. A type and a value may share a name.
    """
    candidates = [
        r for r in records
        if r.export_type != ExportType.DEFAULT and r.export_name != STAR_EXPORT
    ]
    groups: dict[tuple[str, bool], list[ExportRecord]] = defaultdict(list)
    for record in candidates:
        groups[(record.export_name, record.exported_kind.is_type_level)].append(record)

    lines = defaultdict(int)
    for record in records:
        lines[record.source_location.start_line] += 1

    issues = []
    for record in candidates:
        group = groups[(record.export_name, record.exported_kind.is_type_level)]
        if len(group) < 2:
            continue
        occurrence = group.index(record) + 1
        # Removal drops the whole line, so only lines holding this export alone qualify
        fixable = occurrence > 1 and lines[record.source_location.start_line] == 1
        issues.append(ctx.issues.create(
            IssueType.DUPLICATE_EXPORT,
            Severity.ERROR,
            file_path,
            f"Duplicate export '{record.export_name}' found ({occurrence} of {len(group)})",
            rule=ctx.rule.name,
            suggestion="Remove the duplicate export" if occurrence > 1 else "Keep a single export of this name",
            auto_fixable=fixable,
            source_location=record.source_location,
            metadata={"exportName": record.export_name, "occurrence": occurrence, "scope": "file"},
        ))
    return issues


def check_multiple_default_exports(file_path: str, records: list[ExportRecord], ctx: RuleContext) -> list[ConsistencyIssue]:
    """A file has at most one default export."""
    defaults = [r for r in records if r.export_type == ExportType.DEFAULT]
    if len(defaults) < 2:
        return []
    return [
        ctx.issues.create(
            IssueType.DUPLICATE_EXPORT,
            Severity.ERROR,
            file_path,
            "Multiple default exports found",
            rule=ctx.rule.name,
            suggestion="Keep one default export and convert the others to named exports",
            source_location=record.source_location,
            metadata={"exportName": record.export_name, "scope": "file"},
        )
        for record in defaults
    ]


def check_default_export_naming(file_path: str, records: list[ExportRecord], ctx: RuleContext) -> list[ConsistencyIssue]:
    """A named default export matches the file base name."""
    defaults = [r for r in records if r.export_type == ExportType.DEFAULT]
    if len(defaults) != 1:
        return []
    record = defaults[0]
    file_name = PurePath(file_path).name.split(".")[0]
    if record.export_name in (DEFAULT_EXPORT, EXPORT_EQUALS, file_name):
        return []
    return [ctx.issues.create(
        IssueType.NAMING_INCONSISTENCY,
        ctx.rule.severity,
        file_path,
        f"Default export name '{record.export_name}' does not match file name '{file_name}'",
        rule=ctx.rule.name,
        suggestion=f"Rename the export or the file to '{file_name}'",
        source_location=record.source_location,
        metadata={"exportName": record.export_name, "fileName": file_name, "scope": "file"},
    )]


_FORBIDDEN_PATTERNS = (
    ("noDefaultExport", ExportType.DEFAULT, "Default exports are not allowed"),
    ("noNamespaceExport", ExportType.NAMESPACE, "Namespace exports are not allowed"),
    ("noReexport", ExportType.REEXPORT, "Re-exports are not allowed"),
)


def check_export_patterns(file_path: str, records: list[ExportRecord], ctx: RuleContext) -> list[ConsistencyIssue]:
    """Forbid the export forms switched on in the rule options."""
    forbidden = {
        export_type: message
        for option, export_type, message in _FORBIDDEN_PATTERNS
        if ctx.option(option, False)
    }
    return [
        ctx.issues.create(
            IssueType.NAMING_INCONSISTENCY,
            ctx.rule.severity,
            file_path,
            forbidden[record.export_type],
            rule=ctx.rule.name,
            source_location=record.source_location,
            metadata={"exportName": record.export_name, "scope": "file"},
        )
        for record in records
        if record.export_type in forbidden
    ]


# -- project rules ---------------------------------------------------------


def check_global_conflicts(index: ProjectIndex, ctx: RuleContext) -> list[ConsistencyIssue]:
    """A name is exported from at most one file.

    Sentinel names never conflict. ``ignoreNames`` lists further project-wide
    exclusions and ``ignoreReexports`` drops forwarded names (barrel files).
    """
    ignored = set(ctx.option("ignoreNames", []) or [])
    ignore_reexports = bool(ctx.option("ignoreReexports", False))

    def participates(record: ExportRecord) -> bool:
        return not (
            record.is_sentinel
            or record.export_name in ignored
            or (ignore_reexports and record.export_type == ExportType.REEXPORT)
        )

    files_by_name: dict[str, list[str]] = defaultdict(list)
    for file_path in index.files:
        for record in index.records.get(file_path, []):
            if participates(record) and file_path not in files_by_name[record.export_name]:
                files_by_name[record.export_name].append(file_path)

    issues = []
    for file_path in index.files:
        for record in index.records.get(file_path, []):
            if not participates(record):
                continue
            files = files_by_name[record.export_name]
            if len(files) < 2:
                continue
            issues.append(ctx.issues.create(
                IssueType.DUPLICATE_EXPORT,
                ctx.rule.severity,
                file_path,
                f"Export '{record.export_name}' conflicts with exports in other files",
                rule=ctx.rule.name,
                suggestion="Rename one of the exports or re-export a single definition",
                related_files=list(files),
                source_location=record.source_location,
                metadata={"exportName": record.export_name, "scope": "project"},
            ))
    return issues


def _unexported_imports(index: ProjectIndex) -> Iterator[tuple[str, ImportRecord, str, str]]:
    """(importer, import, target, name) for imported names the target does not export."""
    for importer, imp, target in index.resolved_imports():
        if index.has_star_export(target):
            continue
        exported = index.export_names(target)
        wanted = [n.name for n in imp.names]
        if imp.default_name:
            wanted.append(DEFAULT_EXPORT)
        for name in wanted:
            if name in exported:
                continue
            if name == DEFAULT_EXPORT and EXPORT_EQUALS in exported:
                continue
            yield importer, imp, target, name


def check_import_mismatches(index: ProjectIndex, ctx: RuleContext) -> list[ConsistencyIssue]:
    """Imported names exist in the target module."""
    issues = []
    for importer, imp, target, name in _unexported_imports(index):
        if name != DEFAULT_EXPORT and name in index.declarations.get(target, {}):
            continue  # reported as a missing export of the target
        what = "a default export" if name == DEFAULT_EXPORT else f"'{name}'"
        issues.append(ctx.issues.create(
            IssueType.IMPORT_MISMATCH,
            ctx.rule.severity,
            importer,
            f"'{imp.module_specifier}' does not export {what}",
            rule=ctx.rule.name,
            suggestion=f"Check the import against the exports of {index.relative(target)}",
            related_files=[importer, target],
            source_location=imp.source_location,
            metadata={"exportName": name, "moduleSpecifier": imp.module_specifier, "scope": "project"},
        ))
    return issues


def check_missing_exports(index: ProjectIndex, ctx: RuleContext) -> list[ConsistencyIssue]:
    """Names other files import are exported where they are declared."""
    importers: dict[tuple[str, str], list[str]] = {}
    for importer, _, target, name in _unexported_imports(index):
        if name == DEFAULT_EXPORT or name not in index.declarations.get(target, {}):
            continue
        files = importers.setdefault((target, name), [])
        if importer not in files:
            files.append(importer)

    issues = []
    for (target, name), files in importers.items():
        kind = index.declarations[target][name]
        issues.append(ctx.issues.create(
            IssueType.MISSING_EXPORT,
            ctx.rule.severity,
            target,
            f"'{name}' is imported by {', '.join(index.relative(f) for f in files)} but not exported",
            rule=ctx.rule.name,
            suggestion=f"Add 'export {{ {name} }};'",
            auto_fixable=True,
            related_files=[target, *files],
            metadata={"exportName": name, "exportedKind": kind.value, "scope": "project"},
        ))
    return issues


def check_type_exports(index: ProjectIndex, ctx: RuleContext) -> list[ConsistencyIssue]:
    """Type-level names travel through type-only syntax."""
    issues = []

    def is_type_level(file_path: str, record: ExportRecord) -> bool:
        if record.is_type_only:
            return True
        if record.export_type != ExportType.REEXPORT:
            return record.exported_kind.is_type_level
        target = index.resolver.resolve(file_path, record.module_specifier or "")
        kind = index.kind_of(target, record.source_name or record.export_name) if target else None
        return kind is not None and kind.is_type_level

    for file_path in index.files:
        records = index.records.get(file_path, [])
        clause_records = [r for r in records if r.shape == DeclarationShape.NAMED_CLAUSE]
        for record in clause_records:
            if record.is_type_only or not is_type_level(file_path, record):
                continue

            # The fixer rewrites the whole clause line to `export type {`
            fixable = all(
                is_type_level(file_path, r)
                for r in clause_records
                if r.source_location.start_line == record.source_location.start_line
            )
            issues.append(ctx.issues.create(
                IssueType.TYPE_EXPORT_MISMATCH,
                ctx.rule.severity,
                file_path,
                f"Type '{record.export_name}' is exported through a value export clause",
                rule=ctx.rule.name,
                suggestion="Use 'export type { ... }'",
                auto_fixable=fixable,
                source_location=record.source_location,
                metadata={"exportName": record.export_name, "typeOnly": True, "statement": "export", "scope": "file"},
            ))

    if not ctx.option("preferTypeOnlyImports", True):
        return issues

    for importer, imp, target in index.resolved_imports():
        if imp.is_type_only:
            continue
        type_names = []
        for imported in imp.names:
            kind = index.kind_of(target, imported.name)
            if not imported.is_type_only and kind is not None and kind.is_type_level:
                type_names.append(imported.name)
        fixable = (
            len(type_names) == len(imp.names)
            and imp.default_name is None
            and imp.namespace_name is None
            and imp.source_location.start_line == imp.source_location.end_line
        )
        for name in type_names:
            issues.append(ctx.issues.create(
                IssueType.TYPE_EXPORT_MISMATCH,
                ctx.rule.severity,
                importer,
                f"'{name}' is a type and should be imported with 'import type'",
                rule=ctx.rule.name,
                suggestion=f"import type {{ {name} }} from '{imp.module_specifier}'",
                auto_fixable=fixable,
                related_files=[importer, target],
                source_location=imp.source_location,
                metadata={
                    "exportName": name,
                    "moduleSpecifier": imp.module_specifier,
                    "typeOnly": True,
                    "statement": "import",
                    "scope": "project",
                },
            ))
    return issues


def check_unused_exports(index: ProjectIndex, ctx: RuleContext) -> list[ConsistencyIssue]:
    """Exports are imported or re-exported somewhere in the project."""
    entry_points = list(ctx.option("entryPoints", []) or [])
    used = index.used_names()
    issues = []
    for file_path in index.files:
        if entry_points and matches_any(index.relative(file_path), entry_points):
            continue
        used_here = used.get(file_path, set())
        if STAR_EXPORT in used_here:
            continue
        for record in index.records.get(file_path, []):
            if record.export_name == STAR_EXPORT or record.export_name in used_here:
                continue
            issues.append(ctx.issues.create(
                IssueType.UNUSED_EXPORT,
                ctx.rule.severity,
                file_path,
                f"Export '{record.export_name}' is never imported in the project",
                rule=ctx.rule.name,
                suggestion="Remove the export or list the module in entryPoints",
                auto_fixable=record.shape == DeclarationShape.NAMED_CLAUSE,
                source_location=record.source_location,
                metadata={"exportName": record.export_name, "scope": "project"},
            ))
    return issues


def find_cycles(files: list[str], edges: dict[str, list[str]]) -> list[list[str]]:
    """Strongly connected components of size >= 2 (Tarjan), members in input order."""
    order = {f: i for i, f in enumerate(files)}
    indices: dict[str, int] = {}
    lowlink: dict[str, int] = {}
    on_stack: set[str] = set()
    stack: list[str] = []
    components: list[list[str]] = []
    counter = 0

    for start in files:
        if start in indices:
            continue
        work = [(start, 0)]
        while work:
            node, child_index = work.pop()
            if child_index == 0:
                indices[node] = lowlink[node] = counter
                counter += 1
                stack.append(node)
                on_stack.add(node)

            children = edges.get(node, [])
            if child_index < len(children):
                work.append((node, child_index + 1))
                child = children[child_index]
                if child not in indices:
                    work.append((child, 0))
                elif child in on_stack:
                    lowlink[node] = min(lowlink[node], indices[child])
                continue

            if lowlink[node] == indices[node]:
                component = []
                while True:
                    member = stack.pop()
                    on_stack.discard(member)
                    component.append(member)
                    if member == node:
                        break
                if len(component) > 1:
                    components.append(sorted(component, key=lambda f: order.get(f, len(order))))
            if work:
                parent = work[-1][0]
                lowlink[parent] = min(lowlink[parent], lowlink[node])

    components.sort(key=lambda c: order.get(c[0], len(order)))
    return components


def cycle_path(component: list[str], edges: dict[str, list[str]]) -> list[str]:
    """A concrete closed walk through a component, starting at its first member."""
    members = set(component)
    start = component[0]
    previous: dict[str, str] = {}
    queue = [start]
    while queue:
        node = queue.pop(0)
        for child in edges.get(node, []):
            if child not in members:
                continue
            if child == start:
                path = [node]
                while path[-1] != start:
                    path.append(previous[path[-1]])
                return [*reversed(path), start]
            if child not in previous:
                previous[child] = node
                queue.append(child)
    return [*component, start]


def check_circular_dependencies(index: ProjectIndex, ctx: RuleContext) -> list[ConsistencyIssue]:
    """Import and re-export edges form no cycles."""
    edges = {f: index.edges(f) for f in index.files}
    issues = []
    for component in find_cycles(index.files, edges):
        path = cycle_path(component, edges)
        issues.append(ctx.issues.create(
            IssueType.CIRCULAR_DEPENDENCY,
            ctx.rule.severity,
            component[0],
            "Circular dependency: " + " -> ".join(index.relative(f) for f in path),
            rule=ctx.rule.name,
            suggestion="Extract the shared declarations into a module both sides can import",
            related_files=list(component),
            metadata={"cycle": [index.relative(f) for f in path], "scope": "project"},
        ))
    return issues


def _internal_boundaries(rel_target: str, markers: set[str]) -> list[PurePath]:
    """Root-relative directories an internal module may only be imported from."""
    path = PurePath(rel_target)
    boundaries = [PurePath(*path.parts[:i]) for i, part in enumerate(path.parts[:-1]) if part in markers]
    if path.name.split(".")[0] in markers:
        boundaries.append(path.parent)
    return boundaries


def check_internal_access(index: ProjectIndex, ctx: RuleContext) -> list[ConsistencyIssue]:
    """Internal modules are imported only from inside their boundary."""
    markers = set(ctx.option("internalMarkers", ["internal", "_internal", "private"]) or [])
    issues = []
    for importer, imp, target in index.resolved_imports():
        for boundary in _internal_boundaries(index.relative(target), markers):
            # Internal directories at the project root are reachable from everywhere
            if not boundary.parts or PurePath(index.relative(importer)).is_relative_to(boundary):
                continue
            issues.append(ctx.issues.create(
                IssueType.ACCESSIBILITY_VIOLATION,
                ctx.rule.severity,
                importer,
                f"'{imp.module_specifier}' is internal to {boundary.as_posix()}",
                rule=ctx.rule.name,
                suggestion="Import from the public entry point of that module instead",
                related_files=[importer, target],
                source_location=imp.source_location,
                metadata={"moduleSpecifier": imp.module_specifier, "scope": "project"},
            ))
            break
    return issues
