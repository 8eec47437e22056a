"""IR data models: language-agnostic package representation.

Three layers live here:

- locators and resolved source trees (what the resolver hands the parsers),
- raw declarations (what a language parser extracts, before any semantics),
- IR records (what the normalizer builds and the emitter serializes).
"""

from __future__ import annotations

import shutil
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path


class Language(Enum):
    R = "r"
    PYTHON = "python"

    @property
    def display_name(self) -> str:
        return "R" if self is Language.R else "Python"


class DeclarationKind(Enum):
    FUNCTION = "function"
    CLASS = "class"


class Role(Enum):
    CONSTRUCTOR = "constructor"
    TRANSFORMER = "transformer"
    ACCESSOR = "accessor"
    PREDICATE = "predicate"
    IO = "io"
    OTHER = "other"


class TypeTag(Enum):
    """Closed vocabulary of symbolic argument/return types."""

    TABLE = "table"
    SCALAR_BOOLEAN = "scalar_boolean"
    LOGICAL_VECTOR = "logical_vector"
    NUMERIC = "numeric"
    INTEGER = "integer"
    STRING = "string"
    CHARACTER_VECTOR = "character_vector"
    LIST = "list"
    MAPPING = "mapping"
    CALLABLE = "callable"
    FORMULA = "formula"
    PATH = "path"
    OBJECT = "object"  # Instance of a class defined by the package
    NONE = "none"
    UNKNOWN = "unknown"


# --- Locators ---


@dataclass(frozen=True)
class RegistryLocator:
    """A package on CRAN (R) or PyPI (Python)."""

    name: str
    version: str | None = None
    raw: str = ""


@dataclass(frozen=True)
class GitHubLocator:
    """A repository on GitHub, optionally pinned to a ref."""

    owner: str
    repo: str
    ref: str | None = None
    raw: str = ""

    @property
    def slug(self) -> str:
        return f"{self.owner}/{self.repo}"


@dataclass(frozen=True)
class LocalPathLocator:
    """A package already on the local filesystem."""

    path: Path
    raw: str = ""


PackageLocator = RegistryLocator | GitHubLocator | LocalPathLocator


@dataclass
class SourceTree:
    """A resolved, read-only package source tree.

    Use as a context manager so the private scratch directory (archives,
    clones) is removed once parsing is done::

        with resolver.resolve(locator) as tree:
            result = parse(tree)
    """

    root: Path
    name: str
    version: str
    language: Language
    revision: str = ""
    """Exact commit for Git sources; empty otherwise."""

    pinned: bool = True
    """False when a floating Git ref was resolved for this run."""

    scratch_dir: Path | None = None

    def __enter__(self) -> SourceTree:
        return self

    def __exit__(self, *exc) -> None:
        self.cleanup()

    def cleanup(self) -> None:
        """Remove the scratch directory, if any. Never touches local trees."""
        if self.scratch_dir is not None and self.scratch_dir.exists():
            shutil.rmtree(self.scratch_dir, ignore_errors=True)


# --- Raw declarations ---


@dataclass(frozen=True)
class RawArgument:
    """One formal argument as written in the source signature."""

    name: str
    default: str | None = None
    annotation: str = ""

    @property
    def required(self) -> bool:
        return self.default is None and not self.is_variadic and self.name != "*"

    @property
    def is_variadic(self) -> bool:
        return self.name == "..." or self.name.startswith("*") and self.name != "*"


@dataclass
class RawDoc:
    """Structured pieces recovered from a free-form doc block."""

    summary: str = ""
    description: str = ""
    arguments: dict[str, str] = field(default_factory=dict)
    returns: str = ""
    examples: list[str] = field(default_factory=list)
    see_also: list[str] = field(default_factory=list)
    raises: list[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.summary or self.description or self.arguments or self.examples)


@dataclass
class RawMethod:
    """A method of a class declaration."""

    name: str
    arguments: list[RawArgument] = field(default_factory=list)
    summary: str = ""


@dataclass
class RawDeclaration:
    """A function or class extracted from one source file."""

    kind: DeclarationKind
    name: str
    exported: bool
    source_file: str
    line: int
    arguments: list[RawArgument] = field(default_factory=list)
    return_annotation: str = ""
    signature_text: str = ""
    doc: RawDoc = field(default_factory=RawDoc)

    # For classes
    methods: list[RawMethod] = field(default_factory=list)
    decorators: list[str] = field(default_factory=list)

    @property
    def sort_key(self) -> tuple[str, int, str]:
        return (self.source_file, self.line, self.name)


@dataclass
class PackageMetadata:
    """Manifest-level facts about the package."""

    name: str
    version: str = "unknown"
    title: str = ""
    description: str = ""


@dataclass
class ParseResult:
    """Everything a language parser returns for one source tree."""

    metadata: PackageMetadata
    declarations: list[RawDeclaration] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def functions(self) -> list[RawDeclaration]:
        return [d for d in self.declarations if d.kind == DeclarationKind.FUNCTION]

    @property
    def classes(self) -> list[RawDeclaration]:
        return [d for d in self.declarations if d.kind == DeclarationKind.CLASS]


# --- IR records ---


@dataclass
class Example:
    """A code example and the package functions it exercises."""

    code: str
    shows: list[str] = field(default_factory=list)


@dataclass
class HeaderRecord:
    """Optional first record describing how the stream was produced."""

    generator: str
    generator_version: str
    schema_version: str
    locator: str
    language: str
    revision: str = ""
    options: list[str] = field(default_factory=list)

    kind = "header"


@dataclass
class PackageRecord:
    schema_version: str
    name: str
    version: str
    language: str
    revision: str = ""
    """Exact commit when the sources came from Git."""

    description: str = ""
    llm_hints: list[str] = field(default_factory=list)
    common_arguments: dict[str, str] = field(default_factory=dict)

    kind = "package"


@dataclass
class FunctionRecord:
    name: str
    exported: bool
    signature: str
    purpose: str = ""
    role: Role = Role.OTHER
    arguments: dict[str, str | None] = field(default_factory=dict)
    arg_types: dict[str, TypeTag] = field(default_factory=dict)
    returns: str = ""
    return_type: TypeTag | None = TypeTag.UNKNOWN
    """None once dropped (compact mode); UNKNOWN is still emitted."""

    constraints: list[str] = field(default_factory=list)
    examples: list[Example] = field(default_factory=list)
    related: list[str] = field(default_factory=list)

    kind = "function"


@dataclass
class ClassRecord:
    name: str
    constructed_by: list[str] = field(default_factory=list)
    methods: dict[str, str] = field(default_factory=dict)

    kind = "class"


@dataclass
class WorkflowRecord:
    name: str
    steps: list[str] = field(default_factory=list)
    purpose: str = ""

    kind = "workflow"


@dataclass
class PackageIR:
    """The complete IR for one run, in emit order within each kind."""

    package: PackageRecord
    functions: list[FunctionRecord] = field(default_factory=list)
    classes: list[ClassRecord] = field(default_factory=list)
    workflows: list[WorkflowRecord] = field(default_factory=list)

    @property
    def function_names(self) -> set[str]:
        return {f.name for f in self.functions}

    def function(self, name: str) -> FunctionRecord | None:
        for f in self.functions:
            if f.name == name:
                return f
        return None
