"""Export Detector using tree-sitter for TypeScript and TSX sources.

Classifies every top-level export statement into one of a closed set of
declaration shapes and turns it into ExportRecords:
- named clauses (`export { a, b as c }`, optionally `from './m'`)
- namespace exports (`export * as ns from './m'`)
- star re-exports (`export * from './m'`)
- export assignments (`export default x`, `export = x`)
- exported declarations (`export function f() {}`, `export const a = 1, b = 2`)

Import statements and top-level declarations are collected alongside so
the cross-file rules can see what each file imports and declares.
"""

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, NamedTuple

import structlog

from export_consistency.errors import ParseError, SourceNotFoundError
from export_consistency.models import (
    ANONYMOUS_EXPORT,
    DEFAULT_EXPORT,
    EXPORT_EQUALS,
    STAR_EXPORT,
    DeclarationShape,
    ExportedKind,
    ExportRecord,
    ExportType,
    ImportedName,
    ImportRecord,
    ModuleInventory,
    SourceLocation,
)
from export_consistency.providers import (
    TSX_EXTENSIONS,
    FileSystemSourceProvider,
    ParseOptions,
    SourceProvider,
    SyntaxProvider,
    TreeSitterSyntaxProvider,
)

logger = structlog.get_logger()

_PASCAL_CASE = re.compile(r"^[A-Z][A-Za-z0-9]*$")

_DECLARATION_KINDS = {
    "function_declaration": ExportedKind.FUNCTION,
    "generator_function_declaration": ExportedKind.FUNCTION,
    "function_signature": ExportedKind.FUNCTION,
    "class_declaration": ExportedKind.CLASS,
    "abstract_class_declaration": ExportedKind.CLASS,
    "interface_declaration": ExportedKind.INTERFACE,
    "type_alias_declaration": ExportedKind.TYPE,
    "enum_declaration": ExportedKind.CONSTANT,
    "internal_module": ExportedKind.CONSTANT,
    "module": ExportedKind.CONSTANT,
}

_VARIABLE_DECLARATIONS = frozenset({"lexical_declaration", "variable_declaration"})
_FUNCTION_VALUES = frozenset({"arrow_function", "function_expression", "function", "generator_function"})

# `export default function () {}` and `export default class {}` carry no declaration field
_ANONYMOUS_DEFAULTS = frozenset({"function_expression", "function", "generator_function", "class"})

_REFERENCE_NODES = frozenset({"identifier", "type_identifier", "shorthand_property_identifier"})
_PATTERN_IDENTIFIERS = frozenset({"identifier", "shorthand_property_identifier_pattern"})


class _Declared(NamedTuple):
    """A name introduced by a declaration node."""

    name: str
    kind: ExportedKind
    name_node: Any
    node: Any


@dataclass(frozen=True)
class _FileContext:
    """Per-file lookup tables shared by the shape handlers."""

    file_path: str
    source: bytes
    bindings: dict[str, str]  # imported local name -> module specifier
    declarations: dict[str, ExportedKind]

    @property
    def is_tsx(self) -> bool:
        return Path(self.file_path).suffix.lower() in TSX_EXTENSIONS


class ExportDetector:
    """Detects exports and imports in TypeScript sources.

    The parse context is an owned resource: ``initialize`` it for a set of
    files, call ``analyze_file`` as often as needed, then ``dispose``. Using
    the detector as a context manager disposes on every exit path.
    """

    def __init__(
        self,
        source_provider: SourceProvider | None = None,
        syntax_provider: SyntaxProvider | None = None,
    ):
        self.source_provider = source_provider or FileSystemSourceProvider()
        self.syntax_provider = syntax_provider or TreeSitterSyntaxProvider(self.source_provider)
        self._initialized = False
        self._logger = logger.bind(component="ExportDetector")

    def __enter__(self) -> "ExportDetector":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.dispose()

    def initialize(self, file_paths: list[str], parse_options: ParseOptions | None = None) -> None:
        """Establish the shared parse context for a set of files."""
        paths = [str(p) for p in file_paths]
        self.syntax_provider.initialize(paths, parse_options)
        self._initialized = True
        self._logger.info("Detector initialized", files=len(paths))

    def dispose(self) -> None:
        """Release the parse context."""
        if not self._initialized:
            return
        self.syntax_provider.dispose()
        self._initialized = False
        self._logger.debug("Detector disposed")

    def analyze_file(self, file_path: str | Path) -> list[ExportRecord]:
        """Detect the exports of one file.

        Never raises: unreadable or malformed files are logged and yield [].
        """
        return self.inspect_file(file_path).exports

    def inspect_file(self, file_path: str | Path) -> ModuleInventory:
        """Detect exports, imports and top-level declarations of one file."""
        file_path = str(file_path)
        try:
            if not self._initialized:
                self.initialize([file_path])
            tree = self.syntax_provider.get_tree(file_path)
            source = self.syntax_provider.get_source_bytes(file_path)
            export_nodes = self.syntax_provider.get_export_declarations_at(file_path)
            inventory = self._build_inventory(tree.root_node, export_nodes, source, file_path)
        except (SourceNotFoundError, ParseError, OSError, UnicodeDecodeError) as e:
            self._logger.warning("Skipping file", file=file_path, error=str(e))
            return ModuleInventory(file_path=file_path, errors=[str(e)])
        except Exception as e:
            self._logger.error("Export detection failed", file=file_path, error=str(e))
            return ModuleInventory(file_path=file_path, errors=[f"Detection error: {e}"])

        self._logger.debug(
            "Detection complete",
            file=file_path,
            exports=len(inventory.exports),
            imports=len(inventory.imports),
        )
        return inventory

    def analyze_source(self, source: str, file_path: str = "<string>.ts") -> list[ExportRecord]:
        """Detect the exports of in-memory source text."""
        return self.inspect_source(source, file_path).exports

    def inspect_source(self, source: str, file_path: str = "<string>.ts") -> ModuleInventory:
        """Inventory in-memory source text without touching the parse cache."""
        try:
            tree, source_bytes = self.syntax_provider.parse_source(source, file_path)
            root = tree.root_node
            export_nodes = [child for child in root.children if child.type == "export_statement"]
            return self._build_inventory(root, export_nodes, source_bytes, file_path)
        except ParseError as e:
            self._logger.warning("Skipping source", file=file_path, error=str(e))
            return ModuleInventory(file_path=file_path, errors=[str(e)])
        except Exception as e:
            self._logger.error("Export detection failed", file=file_path, error=str(e))
            return ModuleInventory(file_path=file_path, errors=[f"Detection error: {e}"])

    # -- inventory ---------------------------------------------------------

    def _build_inventory(self, root, export_nodes: list, source: bytes, file_path: str) -> ModuleInventory:
        imports = []
        for node in root.children:
            if node.type == "import_statement":
                record = self._import_record(node, source, file_path)
                if record is not None:
                    imports.append(record)

        bindings: dict[str, str] = {}
        for record in imports:
            bindings.update(record.local_names)

        declarations: dict[str, ExportedKind] = {}
        context = _FileContext(file_path, source, bindings, declarations)
        for node in root.children:
            target = node.child_by_field_name("declaration") if node.type == "export_statement" else node
            if target is None:
                continue
            for declared in self._declared_names(target, context):
                declarations.setdefault(declared.name, declared.kind)

        exports: list[ExportRecord] = []
        overloads: set[str] = set()
        for node in export_nodes:
            exports.extend(self._export_records(node, context, overloads))

        return ModuleInventory(
            file_path=file_path,
            exports=exports,
            imports=imports,
            declarations=declarations,
        )

    def _classify(self, node) -> DeclarationShape | None:
        """Map an export statement onto its declaration shape."""
        tokens = {child.type for child in node.children}
        if "export_clause" in tokens:
            return DeclarationShape.NAMED_CLAUSE
        if "namespace_export" in tokens:
            return DeclarationShape.NAMESPACE_EXPORT
        if "*" in tokens:
            return DeclarationShape.STAR_REEXPORT
        if node.child_by_field_name("declaration") is not None:
            return DeclarationShape.DECLARATION

        value = node.child_by_field_name("value")
        if "default" in tokens and value is not None and value.type in _ANONYMOUS_DEFAULTS:
            return DeclarationShape.DECLARATION
        if "default" in tokens or "=" in tokens:
            return DeclarationShape.EXPORT_ASSIGNMENT
        return None

    def _export_records(self, node, ctx: _FileContext, overloads: set[str]) -> list[ExportRecord]:
        shape = self._classify(node)
        match shape:
            case DeclarationShape.NAMED_CLAUSE:
                return self._clause_records(node, ctx)
            case DeclarationShape.NAMESPACE_EXPORT:
                return [self._namespace_record(node, ctx)]
            case DeclarationShape.STAR_REEXPORT:
                return [self._star_record(node, ctx)]
            case DeclarationShape.EXPORT_ASSIGNMENT:
                return [self._assignment_record(node, ctx)]
            case DeclarationShape.DECLARATION:
                return self._declaration_records(node, ctx, overloads)
            case _:
                # e.g. `export as namespace Lib;`
                self._logger.debug(
                    "Ignoring export statement",
                    file=ctx.file_path,
                    line=node.start_point[0] + 1,
                )
                return []

    # -- shape handlers ----------------------------------------------------

    def _clause_records(self, node, ctx: _FileContext) -> list[ExportRecord]:
        clause = next(child for child in node.children if child.type == "export_clause")
        source_node = node.child_by_field_name("source")
        specifier = self._string_value(source_node, ctx.source) if source_node else None
        statement_type_only = self._has_token(node, "type")
        documentation = self._documentation(node, ctx.source)

        records = []
        for element in clause.named_children:
            if element.type != "export_specifier":
                continue
            local = self._name_text(element.child_by_field_name("name"), ctx.source)
            alias_node = element.child_by_field_name("alias")
            exported = self._name_text(alias_node, ctx.source) if alias_node else local
            type_only = statement_type_only or self._has_token(element, "type")

            if specifier is not None:
                export_type = ExportType.REEXPORT
                kind = ExportedKind.TYPE if type_only else ExportedKind.CONSTANT
                dependencies = [specifier]
            else:
                export_type = ExportType.DEFAULT if exported == DEFAULT_EXPORT else ExportType.NAMED
                kind = ctx.declarations.get(local) or (
                    ExportedKind.TYPE if type_only else ExportedKind.CONSTANT
                )
                dependencies = [ctx.bindings[local]] if local in ctx.bindings else []

            records.append(ExportRecord(
                file_path=ctx.file_path,
                export_name=exported,
                export_type=export_type,
                exported_kind=kind,
                is_type_only=type_only,
                source_location=self._node_location(element, ctx.file_path),
                dependencies=dependencies,
                shape=DeclarationShape.NAMED_CLAUSE,
                source_name=local if local != exported else None,
                documentation=documentation,
            ))
        return records

    def _namespace_record(self, node, ctx: _FileContext) -> ExportRecord:
        namespace = next(child for child in node.children if child.type == "namespace_export")
        name_node = namespace.named_children[-1] if namespace.named_children else None
        source_node = node.child_by_field_name("source")
        specifier = self._string_value(source_node, ctx.source) if source_node else ""
        return ExportRecord(
            file_path=ctx.file_path,
            export_name=self._name_text(name_node, ctx.source) or ANONYMOUS_EXPORT,
            export_type=ExportType.NAMESPACE,
            exported_kind=ExportedKind.CONSTANT,
            is_type_only=self._has_token(node, "type"),
            source_location=self._node_location(node, ctx.file_path),
            dependencies=[specifier] if specifier else [],
            shape=DeclarationShape.NAMESPACE_EXPORT,
            source_name=STAR_EXPORT,
            documentation=self._documentation(node, ctx.source),
        )

    def _star_record(self, node, ctx: _FileContext) -> ExportRecord:
        source_node = node.child_by_field_name("source")
        specifier = self._string_value(source_node, ctx.source) if source_node else ""
        return ExportRecord(
            file_path=ctx.file_path,
            export_name=STAR_EXPORT,
            export_type=ExportType.REEXPORT,
            exported_kind=ExportedKind.CONSTANT,
            is_type_only=self._has_token(node, "type"),
            source_location=self._node_location(node, ctx.file_path),
            dependencies=[specifier] if specifier else [],
            shape=DeclarationShape.STAR_REEXPORT,
        )

    def _assignment_record(self, node, ctx: _FileContext) -> ExportRecord:
        value = node.child_by_field_name("value")
        if value is None:
            # `export = x` has no value field
            candidates = [child for child in node.named_children if child.type != "comment"]
            value = candidates[-1] if candidates else None

        kind = ExportedKind.CONSTANT
        source_name = None
        if value is not None:
            if value.type in _FUNCTION_VALUES:
                kind = ExportedKind.FUNCTION
            elif value.type == "identifier":
                source_name = self._node_text(value, ctx.source)
                kind = ctx.declarations.get(source_name, ExportedKind.CONSTANT)

        return ExportRecord(
            file_path=ctx.file_path,
            export_name=EXPORT_EQUALS if self._has_token(node, "=") else DEFAULT_EXPORT,
            export_type=ExportType.DEFAULT,
            exported_kind=kind,
            source_location=self._node_location(node, ctx.file_path),
            dependencies=self._references(value, ctx) if value is not None else [],
            shape=DeclarationShape.EXPORT_ASSIGNMENT,
            source_name=source_name,
            documentation=self._documentation(node, ctx.source),
        )

    def _declaration_records(self, node, ctx: _FileContext, overloads: set[str]) -> list[ExportRecord]:
        is_default = self._has_token(node, "default")
        export_type = ExportType.DEFAULT if is_default else ExportType.NAMED
        documentation = self._documentation(node, ctx.source)
        declaration = node.child_by_field_name("declaration")

        if declaration is None:
            value = node.child_by_field_name("value")
            name_node = value.child_by_field_name("name")
            name = self._node_text(name_node, ctx.source) or DEFAULT_EXPORT
            kind = ExportedKind.CLASS if value.type == "class" else ExportedKind.FUNCTION
            return [ExportRecord(
                file_path=ctx.file_path,
                export_name=name,
                export_type=ExportType.DEFAULT,
                exported_kind=self._component_kind(name, kind, ctx),
                source_location=self._node_location(name_node or node, ctx.file_path, node),
                dependencies=self._references(value, ctx),
                documentation=documentation,
            )]

        declared = self._declared_names(declaration, ctx)
        if not declared:
            if declaration.type in _VARIABLE_DECLARATIONS:
                # Destructuring that binds nothing
                return [ExportRecord(
                    file_path=ctx.file_path,
                    export_name=ANONYMOUS_EXPORT,
                    export_type=export_type,
                    source_location=self._node_location(node, ctx.file_path),
                    documentation=documentation,
                )]
            return []

        dependencies = self._references(declaration, ctx)
        records = []
        for item in declared:
            # Overload signatures and their implementation export one symbol
            if item.node.type == "function_signature":
                if item.name in overloads:
                    continue
                overloads.add(item.name)
            elif item.node.type == "function_declaration" and item.name in overloads:
                overloads.discard(item.name)
                continue

            records.append(ExportRecord(
                file_path=ctx.file_path,
                export_name=item.name,
                export_type=export_type,
                exported_kind=item.kind,
                is_type_only=item.kind.is_type_level,
                source_location=self._node_location(item.name_node, ctx.file_path, node),
                dependencies=dependencies,
                documentation=documentation,
            ))
        return records

    # -- declarations ------------------------------------------------------

    def _declared_names(self, node, ctx: _FileContext) -> list[_Declared]:
        """Names introduced by a top-level declaration node."""
        if node.type == "ambient_declaration":
            found = []
            for child in node.named_children:
                found.extend(self._declared_names(child, ctx))
            return found

        if node.type == "expression_statement":
            # Bare `namespace X {}` parses as an expression
            inner = node.named_children[0] if node.named_children else None
            if inner is not None and inner.type == "internal_module":
                return self._declared_names(inner, ctx)
            return []

        if node.type in _VARIABLE_DECLARATIONS:
            found = []
            for declarator in node.named_children:
                if declarator.type != "variable_declarator":
                    continue
                name_node = declarator.child_by_field_name("name")
                value = declarator.child_by_field_name("value")
                if name_node is None:
                    continue
                if name_node.type == "identifier":
                    name = self._node_text(name_node, ctx.source)
                    kind = (
                        ExportedKind.FUNCTION
                        if value is not None and value.type in _FUNCTION_VALUES
                        else ExportedKind.CONSTANT
                    )
                    found.append(_Declared(name, self._component_kind(name, kind, ctx), name_node, declarator))
                else:
                    for ident in self._pattern_identifiers(name_node):
                        found.append(_Declared(
                            self._node_text(ident, ctx.source), ExportedKind.CONSTANT, ident, declarator
                        ))
            return found

        if node.type == "import_alias":
            # `export import A = B.C;`
            ident = next((c for c in node.named_children if c.type == "identifier"), None)
            if ident is None:
                return []
            return [_Declared(self._node_text(ident, ctx.source), ExportedKind.CONSTANT, ident, node)]

        kind = _DECLARATION_KINDS.get(node.type)
        if kind is None:
            return []
        name_node = node.child_by_field_name("name")
        if name_node is None or name_node.type == "string":
            return []
        name = self._node_text(name_node, ctx.source)
        return [_Declared(name, self._component_kind(name, kind, ctx), name_node, node)]

    def _component_kind(self, name: str, kind: ExportedKind, ctx: _FileContext) -> ExportedKind:
        """PascalCase functions and classes in TSX/JSX files are components."""
        if ctx.is_tsx and kind in (ExportedKind.FUNCTION, ExportedKind.CLASS) and _PASCAL_CASE.match(name):
            return ExportedKind.COMPONENT
        return kind

    def _pattern_identifiers(self, pattern) -> list:
        """Identifiers bound by a destructuring pattern, skipping default values."""
        found = []
        stack = [pattern]
        while stack:
            node = stack.pop()
            if node.type in _PATTERN_IDENTIFIERS:
                found.append(node)
                continue
            skipped = node.child_by_field_name("right") if "assignment_pattern" in node.type else None
            for child in reversed(node.named_children):
                if skipped is not None and child.id == skipped.id:
                    continue
                stack.append(child)
        return found

    # -- imports -----------------------------------------------------------

    def _import_record(self, node, source: bytes, file_path: str) -> ImportRecord | None:
        statement_type_only = self._has_token(node, "type")
        source_node = node.child_by_field_name("source")
        names: list[ImportedName] = []
        default_name = None
        namespace_name = None

        for child in node.named_children:
            if child.type == "import_clause":
                for part in child.named_children:
                    match part.type:
                        case "identifier":
                            default_name = self._node_text(part, source)
                        case "namespace_import":
                            idents = [c for c in part.named_children if c.type == "identifier"]
                            if idents:
                                namespace_name = self._node_text(idents[-1], source)
                        case "named_imports":
                            for spec in part.named_children:
                                if spec.type != "import_specifier":
                                    continue
                                alias_node = spec.child_by_field_name("alias")
                                names.append(ImportedName(
                                    name=self._name_text(spec.child_by_field_name("name"), source),
                                    alias=self._name_text(alias_node, source) if alias_node else None,
                                    is_type_only=statement_type_only or self._has_token(spec, "type"),
                                ))
            elif child.type == "import_require_clause":
                # `import x = require('m')`
                ident = next((c for c in child.named_children if c.type == "identifier"), None)
                if ident is not None:
                    namespace_name = self._node_text(ident, source)
                source_node = source_node or child.child_by_field_name("source")

        if source_node is None:
            return None
        return ImportRecord(
            file_path=file_path,
            module_specifier=self._string_value(source_node, source),
            names=names,
            default_name=default_name,
            namespace_name=namespace_name,
            is_type_only=statement_type_only,
            source_location=self._node_location(node, file_path),
        )

    def _references(self, node, ctx: _FileContext) -> list[str]:
        """Modules of the imported names a subtree refers to, sorted."""
        if not ctx.bindings:
            return []
        modules = set()
        stack = [node]
        while stack:
            current = stack.pop()
            if current.type in _REFERENCE_NODES:
                specifier = ctx.bindings.get(self._node_text(current, ctx.source))
                if specifier:
                    modules.add(specifier)
            stack.extend(current.children)
        return sorted(modules)

    # -- node helpers ------------------------------------------------------

    def _has_token(self, node, token: str) -> bool:
        """True when an anonymous child token (keyword or punctuation) is present."""
        return any(not child.is_named and child.type == token for child in node.children)

    def _documentation(self, node, source: bytes) -> str | None:
        """JSDoc block directly above a statement, if any."""
        previous = node.prev_named_sibling
        if previous is None or previous.type != "comment":
            return None
        if previous.end_point[0] < node.start_point[0] - 1:
            return None
        text = self._node_text(previous, source)
        if not text.startswith("/**"):
            return None
        lines = [line.strip().lstrip("*").strip() for line in text[3:-2].splitlines()]
        doc = "\n".join(line for line in lines if line)
        return doc or None

    def _string_value(self, node, source: bytes) -> str:
        text = self._node_text(node, source)
        if len(text) >= 2 and text[0] in "'\"`" and text[-1] == text[0]:
            return text[1:-1]
        return text

    def _name_text(self, node, source: bytes) -> str:
        if node is None:
            return ""
        if node.type == "string":
            return self._string_value(node, source)
        return self._node_text(node, source)

    def _node_text(self, node, source: bytes) -> str:
        """Get the text of a node."""
        if node is None:
            return ""
        return source[node.start_byte:node.end_byte].decode("utf-8", errors="replace")

    def _node_location(self, node, file_path: str, end_node=None) -> SourceLocation:
        """1-based location from ``node``'s start to ``end_node``'s end."""
        end = end_node or node
        return SourceLocation(
            file_path=file_path,
            start_line=node.start_point[0] + 1,
            start_column=node.start_point[1] + 1,
            end_line=end.end_point[0] + 1,
            end_column=end.end_point[1] + 1,
        )


def analyze_file_exports(
    file_path: str | Path, source_provider: SourceProvider | None = None
) -> list[ExportRecord]:
    """Detect the exports of a single file with a throwaway parse context."""
    with ExportDetector(source_provider) as detector:
        detector.initialize([str(file_path)])
        return detector.analyze_file(file_path)


def analyze_multiple_files(
    file_paths: list[str],
    source_provider: SourceProvider | None = None,
    parse_options: ParseOptions | None = None,
) -> dict[str, list[ExportRecord]]:
    """Detect exports of several files sharing one parse context."""
    paths = [str(p) for p in file_paths]
    with ExportDetector(source_provider) as detector:
        detector.initialize(paths, parse_options)
        return {path: detector.analyze_file(path) for path in paths}


def find_export_conflicts(records: list[ExportRecord]) -> list[str]:
    """Names exported more than once, in order of their second occurrence."""
    counts: dict[str, int] = {}
    conflicts = []
    for record in records:
        counts[record.export_name] = counts.get(record.export_name, 0) + 1
        if counts[record.export_name] == 2:
            conflicts.append(record.export_name)
    return conflicts


def validate_export_naming(record: ExportRecord, patterns: dict[str, str | re.Pattern]) -> bool:
    """Check a record against a ``{"default": ..., "named": ...}`` pattern map.

    A missing pattern accepts any name.
    """
    pattern = patterns.get("default" if record.export_type == ExportType.DEFAULT else "named")
    if pattern is None:
        return True
    return re.search(pattern, record.export_name) is not None
