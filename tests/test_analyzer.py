"""Tests for the consistency analyzer and its rules."""

from pathlib import Path

import pytest

from export_consistency.audit.analyzer import (
    ConsistencyAnalyzer,
    filter_issues,
    generate_summary,
    get_issue_statistics,
    group_issues_by_file,
    group_issues_by_type,
    validate_export_consistency,
)
from export_consistency.audit.detector import ExportDetector
from export_consistency.audit.rules import ModuleResolver, cycle_path, find_cycles
from export_consistency.config import ExportConfig, ExportRule
from export_consistency.models import ExportType, IssueType, Severity

from conftest import make_issue, make_record


def analyze(config: ExportConfig, files: dict[str, str]):
    """Detect in-memory sources under the config root and analyze them."""
    root = Path(config.root_path)
    with ExportDetector() as detector:
        inventories = [detector.inspect_source(src, str(root / rel)) for rel, src in files.items()]
    return ConsistencyAnalyzer(config).analyze_project(
        {inv.file_path: inv.exports for inv in inventories},
        {inv.file_path: inv.imports for inv in inventories},
        {inv.file_path: inv.declarations for inv in inventories},
    )


def of_type(issues, issue_type: IssueType):
    return [i for i in issues if i.type == issue_type]


class TestFileRules:
    """Tests for rules that look at one file."""

    def test_multiple_default_exports(self, default_config: ExportConfig):
        """Test that every default export of a file is flagged."""
        issues = analyze(default_config, {
            "src/widget.ts": "export default function widget() {}\nexport default class Widget {}\n",
        })
        defaults = [i for i in issues if i.message == "Multiple default exports found"]

        assert len(defaults) == 2
        assert all(i.type == IssueType.DUPLICATE_EXPORT for i in defaults)
        assert all(i.severity == Severity.ERROR for i in defaults)

    def test_single_default_export_cannot_be_disabled(self, make_config):
        """Test that the single-default rule runs even when not configured."""
        config = make_config({"rules": [{"name": "no-duplicate-exports", "enabled": False}]})
        records = [
            make_record("a", export_type=ExportType.DEFAULT, line=1),
            make_record("b", export_type=ExportType.DEFAULT, line=2),
        ]
        issues = ConsistencyAnalyzer(config).analyze_file("src/module.ts", records)
        assert len([i for i in issues if i.message == "Multiple default exports found"]) == 2

    def test_duplicate_named_exports(self, default_config: ExportConfig):
        """Test that a name exported twice in a file is flagged."""
        issues = analyze(default_config, {
            "src/values.ts": "const x = 1;\nexport { x };\nexport { x };\n",
        })
        duplicates = of_type(issues, IssueType.DUPLICATE_EXPORT)

        assert len(duplicates) == 2
        assert [i.metadata["occurrence"] for i in duplicates] == [1, 2]
        assert [i.auto_fixable for i in duplicates] == [False, True]

    def test_type_and_value_may_share_a_name(self, default_config: ExportConfig):
        """Test that a type and a value with the same name are not duplicates."""
        issues = analyze(default_config, {
            "src/shape.ts": "export interface Shape { sides: number }\nexport const Shape = { sides: 0 };\n",
        })
        assert of_type(issues, IssueType.DUPLICATE_EXPORT) == []

    def test_naming_convention(self, default_config: ExportConfig):
        """Test that a lowercase class export gets a PascalCase suggestion."""
        issues = analyze(default_config, {"src/widgets.ts": "export class btn {}\n"})
        naming = of_type(issues, IssueType.NAMING_INCONSISTENCY)

        assert len(naming) == 1
        assert naming[0].auto_fixable
        assert naming[0].metadata["exportName"] == "btn"
        assert naming[0].metadata["suggestedName"] == "Btn"
        assert naming[0].line == 1

    def test_naming_options_override_conventions(self, make_config):
        """Test that namedExport overrides the per-kind pattern."""
        config = make_config({
            "rules": [{"name": "consistent-naming", "options": {"namedExport": "^[a-z]+$"}}],
        })
        issues = analyze(config, {"src/api.ts": "export function fetchUser() {}\n"})
        assert len(of_type(issues, IssueType.NAMING_INCONSISTENCY)) == 1

    def test_default_export_naming(self, default_config: ExportConfig):
        """Test that a named default export must match the file name."""
        issues = analyze(default_config, {"src/Widget.tsx": "export default function Other() { return null; }\n"})
        messages = [i.message for i in issues]
        assert "Default export name 'Other' does not match file name 'Widget'" in messages

    def test_default_export_matching_file_name(self, default_config: ExportConfig):
        """Test that a default export named after the file passes."""
        issues = analyze(default_config, {"src/Widget.tsx": "export default function Widget() { return null; }\n"})
        assert issues == []

    def test_export_patterns(self, make_config):
        """Test that forbidden export forms are reported when enabled."""
        config = make_config({
            "rules": [{
                "name": "export-patterns",
                "enabled": True,
                "options": {"noDefaultExport": True, "noReexport": True},
            }],
        })
        issues = analyze(config, {
            "src/index.ts": "export * from './a';\nexport default function index() {}\n",
        })
        messages = [i.message for i in issues]

        assert "Default exports are not allowed" in messages
        assert "Re-exports are not allowed" in messages
        assert "Namespace exports are not allowed" not in messages


class TestProjectRules:
    """Tests for rules that need every file of the project."""

    def test_global_conflicts(self, default_config: ExportConfig):
        """Test that a name exported from two files yields one issue per file."""
        root = Path(default_config.root_path)
        issues = analyze(default_config, {
            "src/a.ts": "export function helper() {}\n",
            "src/b.ts": "export function helper() {}\n",
        })
        duplicates = of_type(issues, IssueType.DUPLICATE_EXPORT)
        expected_files = [str(root / "src/a.ts"), str(root / "src/b.ts")]

        assert len(duplicates) == 2
        assert [i.file_path for i in duplicates] == expected_files
        assert all(i.related_files == expected_files for i in duplicates)
        assert all(i.message == "Export 'helper' conflicts with exports in other files" for i in duplicates)

    def test_name_in_one_file_does_not_conflict(self, default_config: ExportConfig):
        """Test that unique names never produce cross-file issues."""
        issues = analyze(default_config, {
            "src/a.ts": "export function alpha() {}\n",
            "src/b.ts": "export function beta() {}\n",
        })
        assert of_type(issues, IssueType.DUPLICATE_EXPORT) == []

    def test_global_conflicts_across_three_files(self, default_config: ExportConfig):
        """Test that N files sharing a name yield N issues listing all N files."""
        files = {f"src/{n}.ts": "export const shared = 1;\n" for n in ("a", "b", "c")}
        issues = of_type(analyze(default_config, files), IssueType.DUPLICATE_EXPORT)

        assert len(issues) == 3
        assert all(len(i.related_files) == 3 for i in issues)

    def test_global_conflicts_ignore_names(self, make_config):
        """Test the project-wide exclusion list."""
        config = make_config({"rules": [{"name": "no-global-conflicts", "options": {"ignoreNames": ["helper"]}}]})
        issues = analyze(config, {
            "src/a.ts": "export function helper() {}\n",
            "src/b.ts": "export function helper() {}\n",
        })
        assert of_type(issues, IssueType.DUPLICATE_EXPORT) == []

    def test_anonymous_defaults_never_conflict(self, default_config: ExportConfig):
        """Test that the default sentinel is excluded."""
        issues = analyze(default_config, {
            "src/a.ts": "export default function () {}\n",
            "src/b.ts": "const b = 1;\nexport default b;\n",
        })
        assert of_type(issues, IssueType.DUPLICATE_EXPORT) == []

    def test_reexports_conflict(self, default_config: ExportConfig):
        """Test that a forwarded name counts once per exporting file."""
        root = Path(default_config.root_path)
        issues = analyze(default_config, {
            "src/a.ts": "export function helper() {}\n",
            "src/index.ts": "export { helper } from './a';\n",
        })
        duplicates = of_type(issues, IssueType.DUPLICATE_EXPORT)

        assert [i.file_path for i in duplicates] == [str(root / "src/a.ts"), str(root / "src/index.ts")]
        assert all(not i.auto_fixable for i in duplicates)

    def test_ignore_reexports(self, make_config):
        """Test that barrel files can be excluded explicitly."""
        config = make_config({"rules": [{"name": "no-global-conflicts", "options": {"ignoreReexports": True}}]})
        issues = analyze(config, {
            "src/a.ts": "export function helper() {}\n",
            "src/index.ts": "export { helper } from './a';\n",
        })
        assert of_type(issues, IssueType.DUPLICATE_EXPORT) == []

    def test_missing_export(self, default_config: ExportConfig):
        """Test that an imported but unexported declaration is a missing export."""
        root = Path(default_config.root_path)
        issues = analyze(default_config, {
            "src/a.ts": "import { helper } from './b';\nexport const run = () => helper();\n",
            "src/b.ts": "function helper() {}\nexport const other = 1;\n",
        })
        missing = of_type(issues, IssueType.MISSING_EXPORT)

        assert len(missing) == 1
        assert missing[0].file_path == str(root / "src/b.ts")
        assert missing[0].related_files == [str(root / "src/b.ts"), str(root / "src/a.ts")]
        assert missing[0].auto_fixable
        assert of_type(issues, IssueType.IMPORT_MISMATCH) == []

    def test_import_mismatch(self, default_config: ExportConfig):
        """Test that importing a name the target never declares is a mismatch."""
        issues = analyze(default_config, {
            "src/a.ts": "import { nothing } from './b';\nexport const run = () => nothing;\n",
            "src/b.ts": "export const other = 1;\n",
        })
        mismatches = of_type(issues, IssueType.IMPORT_MISMATCH)

        assert len(mismatches) == 1
        assert mismatches[0].message == "'./b' does not export 'nothing'"

    def test_star_export_satisfies_imports(self, default_config: ExportConfig):
        """Test that imports from a star-exporting module are not checked."""
        issues = analyze(default_config, {
            "src/a.ts": "import { anything } from './index';\nexport const run = () => anything;\n",
            "src/index.ts": "export * from './lib';\n",
        })
        assert of_type(issues, IssueType.IMPORT_MISMATCH) == []

    def test_circular_dependency(self, default_config: ExportConfig):
        """Test that a two-file import cycle is reported once."""
        issues = analyze(default_config, {
            "src/a.ts": "import { b } from './b';\nexport const a = () => b;\n",
            "src/b.ts": "import { a } from './a';\nexport const b = () => a;\n",
        })
        cycles = of_type(issues, IssueType.CIRCULAR_DEPENDENCY)

        assert len(cycles) == 1
        assert cycles[0].message == "Circular dependency: src/a.ts -> src/b.ts -> src/a.ts"
        assert cycles[0].metadata["cycle"] == ["src/a.ts", "src/b.ts", "src/a.ts"]

    def test_type_exported_through_value_clause(self, default_config: ExportConfig):
        """Test that an interface in a plain export clause is flagged."""
        issues = analyze(default_config, {"src/model.ts": "interface Model { id: string }\nexport { Model };\n"})
        mismatches = of_type(issues, IssueType.TYPE_EXPORT_MISMATCH)

        assert len(mismatches) == 1
        assert mismatches[0].auto_fixable
        assert mismatches[0].metadata["statement"] == "export"

    def test_type_imported_as_value(self, default_config: ExportConfig):
        """Test that importing only types without `import type` is flagged."""
        issues = analyze(default_config, {
            "src/model.ts": "export interface Model { id: string }\n",
            "src/use.ts": "import { Model } from './model';\nexport const make = (m: Model) => m;\n",
        })
        mismatches = of_type(issues, IssueType.TYPE_EXPORT_MISMATCH)

        assert len(mismatches) == 1
        assert mismatches[0].metadata["statement"] == "import"
        assert mismatches[0].auto_fixable

    def test_unused_exports(self, make_config):
        """Test unused export detection when the rule is enabled."""
        config = make_config({"rules": [{"name": "no-unused-exports", "enabled": True}]})
        issues = analyze(config, {
            "src/a.ts": "export const used = 1;\nexport const unused = 2;\n",
            "src/index.ts": "import { used } from './a';\nexport const total = used;\n",
        })
        unused = of_type(issues, IssueType.UNUSED_EXPORT)

        # index.ts is an entry point
        assert [i.metadata["exportName"] for i in unused] == ["unused"]

    def test_internal_access(self, default_config: ExportConfig):
        """Test that internal modules are only reachable from their boundary."""
        root = Path(default_config.root_path)
        issues = analyze(default_config, {
            "src/feature/internal/secret.ts": "export const secret = 1;\n",
            "src/feature/public.ts": "import { secret } from './internal/secret';\nexport const open = secret;\n",
            "src/other/consumer.ts": (
                "import { secret } from '../feature/internal/secret';\nexport const leak = secret;\n"
            ),
        })
        violations = of_type(issues, IssueType.ACCESSIBILITY_VIOLATION)

        assert len(violations) == 1
        assert violations[0].file_path == str(root / "src/other/consumer.ts")

    def test_issue_ids_are_stable(self, default_config: ExportConfig):
        """Test that identical input yields identical issues."""
        files = {
            "src/a.ts": "export function helper() {}\nexport class btn {}\n",
            "src/b.ts": "export function helper() {}\n",
        }
        assert analyze(default_config, files) == analyze(default_config, files)


class TestGraphHelpers:
    """Tests for module resolution and cycle search."""

    def test_resolver(self):
        """Test relative, index, alias and ESM-style resolution."""
        files = ["/p/src/a.ts", "/p/src/lib/index.ts", "/p/src/util.tsx"]
        resolver = ModuleResolver("/p", files)

        assert resolver.resolve("/p/src/a.ts", "./lib") == "/p/src/lib/index.ts"
        assert resolver.resolve("/p/src/lib/index.ts", "../a") == "/p/src/a.ts"
        assert resolver.resolve("/p/src/a.ts", "./util.js") == "/p/src/util.tsx"
        assert resolver.resolve("/p/src/lib/index.ts", "@/a") == "/p/src/a.ts"
        assert resolver.resolve("/p/src/a.ts", "react") is None

    def test_find_cycles(self):
        """Test one component per cycle, self-contained parts excluded."""
        files = ["a", "b", "c", "d"]
        edges = {"a": ["b"], "b": ["c"], "c": ["a"], "d": ["a"]}

        cycles = find_cycles(files, edges)
        assert cycles == [["a", "b", "c"]]
        assert cycle_path(cycles[0], edges) == ["a", "b", "c", "a"]


class TestAnalyzerHelpers:
    """Tests for the issue utilities."""

    @pytest.fixture
    def issues(self):
        return [
            make_issue("EXP-0001", "src/a.ts", IssueType.DUPLICATE_EXPORT, Severity.ERROR),
            make_issue("EXP-0002", "src/a.ts", IssueType.NAMING_INCONSISTENCY, Severity.WARNING, auto_fixable=True),
            make_issue("EXP-0003", "src/b.ts", IssueType.UNUSED_EXPORT, Severity.INFO, auto_fixable=True),
        ]

    def test_filter_issues(self, issues):
        """Test filtering by type, severity and file."""
        assert [i.id for i in filter_issues(issues, severities=[Severity.ERROR])] == ["EXP-0001"]
        assert [i.id for i in filter_issues(issues, files=["src/b.ts"])] == ["EXP-0003"]
        assert filter_issues(issues, types=[IssueType.MISSING_EXPORT]) == []
        assert len(filter_issues(issues)) == 3

    def test_grouping(self, issues):
        """Test grouping by file and by type."""
        assert {k: len(v) for k, v in group_issues_by_file(issues).items()} == {"src/a.ts": 2, "src/b.ts": 1}
        assert set(group_issues_by_type(issues)) == {
            IssueType.DUPLICATE_EXPORT,
            IssueType.NAMING_INCONSISTENCY,
            IssueType.UNUSED_EXPORT,
        }

    def test_statistics(self, issues):
        """Test totals by type, severity and file."""
        stats = get_issue_statistics(issues)

        assert stats["total"] == 3
        assert stats["bySeverity"] == {"error": 1, "warning": 1, "info": 1}
        assert stats["byFile"] == {"src/a.ts": 2, "src/b.ts": 1}

    def test_summary(self, issues):
        """Test the success rate over auto-fixable issues."""
        summary = generate_summary(issues, fixed_issues=[issues[1]])

        assert summary.total_issues == 3
        assert summary.error_count == 1
        assert summary.auto_fixable_count == 2
        assert summary.fixed_count == 1
        assert summary.success_rate == 0.5

    def test_summary_with_nothing_to_fix(self):
        """Test that an empty run has a full success rate."""
        assert generate_summary([]).success_rate == 1.0

    def test_validate_export_consistency(self, tmp_path: Path):
        """Test the loose-record entry point with a rule override."""
        records = [make_record("BadName", line=1), make_record("BadName", line=2)]
        rules = [ExportRule(name="no-duplicate-exports", enabled=False, severity=Severity.ERROR)]

        assert len(validate_export_consistency(records, project_path=str(tmp_path))) == 2
        assert validate_export_consistency(records, rules=rules, project_path=str(tmp_path)) == []
