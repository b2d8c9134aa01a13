"""Export inventory models produced by the detector.

- SourceLocation: 1-based position of a syntax node
- ExportRecord: one exported symbol of one file
- ImportRecord: one import statement of one file
- ModuleInventory: everything the detector learned about a file
"""

from enum import Enum

from pydantic import Field, field_validator

from .base import FrozenCamelModel

STAR_EXPORT = "*"
DEFAULT_EXPORT = "default"
EXPORT_EQUALS = "="
ANONYMOUS_EXPORT = "anonymous"

# Names that stand for a shape rather than a symbol
RESERVED_EXPORT_NAMES = frozenset({STAR_EXPORT, DEFAULT_EXPORT, EXPORT_EQUALS, ANONYMOUS_EXPORT})


class ExportType(str, Enum):
    """How a symbol is exported."""

    NAMED = "named"
    DEFAULT = "default"
    NAMESPACE = "namespace"
    REEXPORT = "reexport"


class ExportedKind(str, Enum):
    """What kind of declaration an export refers to."""

    INTERFACE = "interface"
    TYPE = "type"
    CLASS = "class"
    FUNCTION = "function"
    CONSTANT = "constant"
    COMPONENT = "component"

    @property
    def is_type_level(self) -> bool:
        return self in (ExportedKind.INTERFACE, ExportedKind.TYPE)


class DeclarationShape(str, Enum):
    """Closed set of export-bearing syntax shapes."""

    NAMED_CLAUSE = "named_clause"  # export { a, b as c } [from './m']
    NAMESPACE_EXPORT = "namespace_export"  # export * as ns from './m'
    STAR_REEXPORT = "star_reexport"  # export * from './m'
    EXPORT_ASSIGNMENT = "export_assignment"  # export default x / export = x
    DECLARATION = "declaration"  # export function f() {} ...


class SourceLocation(FrozenCamelModel):
    """Location of a syntax node in a file."""

    file_path: str
    start_line: int
    start_column: int
    end_line: int
    end_column: int

    def __str__(self) -> str:
        return f"{self.file_path}:{self.start_line}:{self.start_column}"


class ExportRecord(FrozenCamelModel):
    """One exported symbol."""

    file_path: str
    export_name: str
    export_type: ExportType
    exported_kind: ExportedKind = ExportedKind.CONSTANT
    is_type_only: bool = False
    source_location: SourceLocation
    dependencies: list[str] = Field(default_factory=list)
    shape: DeclarationShape = DeclarationShape.DECLARATION
    source_name: str | None = None  # name in the source module for `a as b` forms
    documentation: str | None = None

    @field_validator("export_name")
    @classmethod
    def _name_not_empty(cls, value: str) -> str:
        if not value:
            raise ValueError("export_name must not be empty")
        return value

    @property
    def is_sentinel(self) -> bool:
        return self.export_name in RESERVED_EXPORT_NAMES

    @property
    def module_specifier(self) -> str | None:
        """Source module of a re-export, if any."""
        if self.export_type in (ExportType.REEXPORT, ExportType.NAMESPACE) and self.dependencies:
            return self.dependencies[0]
        return None


class ImportedName(FrozenCamelModel):
    """A single `name as alias` element of a named import."""

    name: str
    alias: str | None = None
    is_type_only: bool = False

    @property
    def local_name(self) -> str:
        return self.alias or self.name


class ImportRecord(FrozenCamelModel):
    """One import statement."""

    file_path: str
    module_specifier: str
    names: list[ImportedName] = Field(default_factory=list)
    default_name: str | None = None
    namespace_name: str | None = None
    is_type_only: bool = False
    source_location: SourceLocation

    @property
    def is_side_effect_only(self) -> bool:
        return not self.names and self.default_name is None and self.namespace_name is None

    @property
    def local_names(self) -> dict[str, str]:
        """Map local binding name -> module specifier."""
        bindings = {n.local_name: self.module_specifier for n in self.names}
        if self.default_name:
            bindings[self.default_name] = self.module_specifier
        if self.namespace_name:
            bindings[self.namespace_name] = self.module_specifier
        return bindings


class ModuleInventory(FrozenCamelModel):
    """Exports, imports and top-level declarations of one file."""

    file_path: str
    exports: list[ExportRecord] = Field(default_factory=list)
    imports: list[ImportRecord] = Field(default_factory=list)
    declarations: dict[str, ExportedKind] = Field(default_factory=dict)
    errors: list[str] = Field(default_factory=list)

    @property
    def export_names(self) -> set[str]:
        return {r.export_name for r in self.exports}
