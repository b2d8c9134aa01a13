"""Pluggable collaborators of the engine.

- SourceProvider: file path -> source text
- SyntaxProvider: source text -> syntax tree with export declarations
- ReportSink: rendered report -> storage

Concrete implementations work on the real filesystem and parse with
tree-sitter's TypeScript and TSX grammars.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol

import structlog

from export_consistency.errors import ParseError, ReportWriteError, SourceNotFoundError

logger = structlog.get_logger()

TSX_EXTENSIONS = frozenset({".tsx", ".jsx"})
TYPESCRIPT_EXTENSIONS = frozenset({".ts", ".mts", ".cts", ".js", ".mjs", ".cjs"})
SUPPORTED_EXTENSIONS = TSX_EXTENSIONS | TYPESCRIPT_EXTENSIONS


class SourceProvider(Protocol):
    """Supplies source text for a path."""

    def read(self, file_path: str) -> str:
        """Return the source text.

        Raises:
            SourceNotFoundError: when the path has no content
        """
        ...


class FileSystemSourceProvider:
    """Reads sources from disk."""

    def __init__(self, encoding: str = "utf-8"):
        self.encoding = encoding

    def read(self, file_path: str) -> str:
        path = Path(file_path)
        if not path.is_file():
            raise SourceNotFoundError(file_path)
        return path.read_text(encoding=self.encoding)


class InMemorySourceProvider:
    """Serves sources from a dict, for hosts that already hold file contents."""

    def __init__(self, files: dict[str, str] | None = None):
        self.files = dict(files or {})

    def read(self, file_path: str) -> str:
        try:
            return self.files[file_path]
        except KeyError:
            raise SourceNotFoundError(file_path) from None


@dataclass(frozen=True)
class ParseOptions:
    """Options for the shared parse context."""

    # Files whose syntax tree contains errors yield no exports
    strict: bool = True
    # Files above this size are not parsed
    max_file_bytes: int = 2_000_000


class SyntaxProvider(Protocol):
    """Parses sources and exposes their top-level export declarations."""

    def initialize(self, file_paths: list[str], parse_options: ParseOptions | None = None) -> None:
        ...

    def parse_source(self, source: str, file_path: str) -> tuple[Any, bytes]:
        ...

    def get_tree(self, file_path: str) -> Any:
        ...

    def get_source_bytes(self, file_path: str) -> bytes:
        ...

    def get_export_declarations_at(self, file_path: str) -> list[Any]:
        ...

    def dispose(self) -> None:
        ...


class TreeSitterSyntaxProvider:
    """Shared tree-sitter parse context.

    Trees are parsed lazily on first request and cached per path until
    ``dispose``; repeated lookups for the same file reuse the cached tree.
    """

    def __init__(self, source_provider: SourceProvider | None = None):
        self.source_provider = source_provider or FileSystemSourceProvider()
        self.parse_options = ParseOptions()
        self._parsers: dict[str, Any] = {}
        self._trees: dict[str, tuple[Any, bytes]] = {}
        self._file_paths: list[str] = []
        self._initialized = False
        self._logger = logger.bind(component="TreeSitterSyntaxProvider")

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def file_paths(self) -> list[str]:
        return list(self._file_paths)

    def initialize(self, file_paths: list[str], parse_options: ParseOptions | None = None) -> None:
        """Establish the parse context for a set of files."""
        self._ensure_parsers()
        self.parse_options = parse_options or ParseOptions()
        self._file_paths = list(file_paths)
        self._trees.clear()
        self._initialized = True
        self._logger.debug("Parse context initialized", files=len(self._file_paths))

    def _ensure_parsers(self) -> None:
        """Lazy initialization of the tree-sitter grammars."""
        if self._parsers:
            return

        try:
            import tree_sitter_typescript as tstypescript
            from tree_sitter import Language, Parser

            self._parsers["typescript"] = Parser(Language(tstypescript.language_typescript()))
            self._parsers["tsx"] = Parser(Language(tstypescript.language_tsx()))
            self._logger.debug("Tree-sitter grammars loaded")
        except Exception as e:
            self._logger.error("Failed to initialize tree-sitter", error=str(e))
            raise RuntimeError(f"tree-sitter initialization failed: {e}") from e

    def parse_source(self, source: str, file_path: str) -> tuple[Any, bytes]:
        """Parse source text without caching it.

        Raises:
            ParseError: when the file is too large or (in strict mode) invalid
        """
        self._ensure_parsers()
        source_bytes = source.encode("utf-8")
        if len(source_bytes) > self.parse_options.max_file_bytes:
            raise ParseError(file_path, f"file exceeds {self.parse_options.max_file_bytes} bytes")

        grammar = "tsx" if Path(file_path).suffix.lower() in TSX_EXTENSIONS else "typescript"
        tree = self._parsers[grammar].parse(source_bytes)
        if self.parse_options.strict and tree.root_node.has_error:
            raise ParseError(file_path, "syntax errors in source")
        return tree, source_bytes

    def _load(self, file_path: str) -> tuple[Any, bytes]:
        cached = self._trees.get(file_path)
        if cached is not None:
            return cached
        source = self.source_provider.read(file_path)
        parsed = self.parse_source(source, file_path)
        self._trees[file_path] = parsed
        return parsed

    def get_tree(self, file_path: str) -> Any:
        return self._load(file_path)[0]

    def get_source_bytes(self, file_path: str) -> bytes:
        return self._load(file_path)[1]

    def get_export_declarations_at(self, file_path: str) -> list[Any]:
        """Top-level export statements of a file, in source order."""
        root = self.get_tree(file_path).root_node
        return [child for child in root.children if child.type == "export_statement"]

    def dispose(self) -> None:
        """Release cached trees."""
        self._trees.clear()
        self._file_paths = []
        self._initialized = False


class ReportSink(Protocol):
    """Persists rendered report content."""

    def write(self, content: str, path: str) -> bool:
        ...


class FileReportSink:
    """Writes reports to the filesystem, creating parent directories."""

    def __init__(self, encoding: str = "utf-8"):
        self.encoding = encoding

    def write(self, content: str, path: str) -> bool:
        target = Path(path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content, encoding=self.encoding)
        except OSError as e:
            raise ReportWriteError(f"Cannot write report to {path}: {e}") from e
        return True
