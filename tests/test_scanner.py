"""Tests for project file discovery."""

from pathlib import Path

from export_consistency.audit.scanner import FileScanner, glob_to_regex, matches_any
from export_consistency.config import ScanOptions


PROJECT = {
    "index.ts": "export * from './src/a';\n",
    "src/a.ts": "export const a = 1;\n",
    "src/b.tsx": "export function B() { return null; }\n",
    "src/a.test.ts": "export const t = 1;\n",
    "src/types.d.ts": "export interface T {}\n",
    "src/c.js": "export const c = 1;\n",
    "src/deep/x/y.ts": "export const y = 1;\n",
    "node_modules/lib/index.ts": "export const lib = 1;\n",
    ".export-consistency-backups/2024/src/a.ts": "export const a = 1;\n",
    "README.md": "# demo\n",
}


def relative(root: Path, paths: list[str]) -> list[str]:
    return [Path(p).relative_to(root).as_posix() for p in paths]


class TestFileScanner:
    """Tests for FileScanner.scan."""

    def test_default_options(self, write_project):
        """Test default include and exclude globs."""
        root = write_project(PROJECT)
        files = relative(root, FileScanner().scan(root))

        assert files == ["index.ts", "src/a.ts", "src/b.tsx", "src/deep/x/y.ts"]

    def test_max_depth(self, write_project):
        """Test that directories at max_depth are not descended into."""
        root = write_project(PROJECT)
        files = relative(root, FileScanner(ScanOptions(max_depth=1)).scan(root))

        assert files == ["index.ts", "src/a.ts", "src/b.tsx"]

    def test_non_recursive(self, write_project):
        root = write_project(PROJECT)
        files = relative(root, FileScanner(ScanOptions(recursive=False)).scan(root))

        assert files == ["index.ts"]

    def test_custom_globs(self, write_project):
        """Test narrowing the scan with include and exclude patterns."""
        root = write_project(PROJECT)
        options = ScanOptions(include=["src/**/*.ts"], exclude=["**/deep/**"])
        files = relative(root, FileScanner(options).scan(root))

        assert files == ["src/a.test.ts", "src/a.ts", "src/types.d.ts"]

    def test_missing_root(self, tmp_path: Path):
        """Test that a root that is not a directory yields nothing."""
        assert FileScanner().scan(tmp_path / "missing") == []

    def test_accepts(self):
        scanner = FileScanner()

        assert scanner.accepts("src/a.ts")
        assert not scanner.accepts("src/a.js")
        assert not scanner.accepts("src/a.spec.tsx")


class TestGlobs:
    """Tests for glob translation."""

    def test_double_star_matches_any_depth(self):
        pattern = glob_to_regex("**/*.ts")

        assert pattern.match("a.ts")
        assert pattern.match("src/deep/a.ts")
        assert not pattern.match("a.tsx")

    def test_single_star_stays_in_segment(self):
        pattern = glob_to_regex("src/*.ts")

        assert pattern.match("src/a.ts")
        assert not pattern.match("src/x/a.ts")

    def test_question_mark_and_literals(self):
        assert glob_to_regex("v?.ts").match("v1.ts")
        assert not glob_to_regex("a.ts").match("abts")

    def test_matches_any(self):
        assert matches_any("node_modules/x/index.ts", ["dist/**", "node_modules/**"])
        assert not matches_any("src/index.ts", ["dist/**"])
