"""Semantic normalizer: map raw declarations onto IR records.

Each declaration is mapped independently; cross-record facts (related
functions, constructors of classes) are computed afterwards from the
visible record set so no reference can dangle.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from pkgctx.config import ExtractOptions, PkgctxConfig
from pkgctx.diagnostics import Diagnostics
from pkgctx.errors import ExtractionError
from pkgctx.ir.doctext import extract_constraints, first_sentence, sanitize
from pkgctx.ir.models import (
    ClassRecord,
    DeclarationKind,
    Example,
    FunctionRecord,
    Language,
    PackageIR,
    PackageRecord,
    ParseResult,
    RawArgument,
    RawDeclaration,
    Role,
    TypeTag,
)
from pkgctx.ir.r_parser import mask_code, matching_close
from pkgctx.passes.typing import annotation_type, infer_arg_type, infer_return_type

_PREDICATE_NAME = re.compile(r"^(is|has|can|should|exists|are|contains)([._]|$)|^(is|has|can)[A-Z]")
_CONSTRUCTOR_NAME = re.compile(r"^(new|make|create|build|init)([._]|$)|[._](new|create)$|^new[A-Z]")
_IO_NAME = re.compile(r"^(read|write|load|save|import|export|dump|download|upload|open|fetch|print)([._]|$)|^(to|from)[._](csv|json|file|parquet|excel|sql|disk)")
_ACCESSOR_NAME = re.compile(r"^(get|set|pull|extract|n)([._]|$)|^(get|set)[A-Z]")
_TRANSFORMER_NAME = re.compile(r"^(as|to|convert|transform|mutate|filter|arrange|sort|select|rename|normalize|format|map|apply)([._]|$)")

_R_CALL = re.compile(r"(?<![\w.$@:])(?:([A-Za-z][\w.]*):::?)?(`[^`]+`|[A-Za-z.][\w.]*)\s*\(")
_PY_CALL = re.compile(r"(?<![\w.])((?:[A-Za-z_]\w*\.)*)([A-Za-z_]\w*)\s*\(")
_WORD = r"(?<![\w.]){}(?![\w])"

# Hints shared by every stream of a given language.
_LANGUAGE_HINTS = {
    Language.R: "Load with library({name}) or call functions as {name}::fn(); arguments may be passed by name in any order.",
    Language.PYTHON: "Import with `import {import_name}`; arguments after a bare * in a signature are keyword-only.",
}


def normalize(
    result: ParseResult,
    language: Language,
    options: ExtractOptions | None = None,
    config: PkgctxConfig | None = None,
    diagnostics: Diagnostics | None = None,
) -> PackageIR:
    """Build the package IR from one parse result.

    Raises:
        ExtractionError: If the parse result holds no declarations at all.
    """
    options = options or ExtractOptions()
    config = config or PkgctxConfig()
    diagnostics = diagnostics if diagnostics is not None else Diagnostics()
    metadata = result.metadata

    if not result.declarations:
        raise ExtractionError(f"no functions or classes found in package '{metadata.name}'")

    class_names = frozenset(c.name for c in result.classes)
    callables = _unique_callables(result, language, options, diagnostics)
    if not options.include_internal:
        callables = [d for d in callables if d.exported]

    functions = [_function_record(d, language, config, class_names) for d in callables]
    visible = {f.name for f in functions}
    by_name = {d.name: d for d in callables}
    package_import = import_name(metadata.name) if language == Language.PYTHON else metadata.name

    for record in functions:
        record.examples = [
            Example(code=code, shows=called_functions(code, visible, language, package_import))
            for code in by_name[record.name].doc.examples[: config.max_examples]
        ]
    _link_related(functions, by_name, language, config.related_limit)

    classes: list[ClassRecord] = []
    if options.emit_classes:
        for declaration in result.classes:
            if declaration.exported or options.include_internal:
                classes.append(_class_record(declaration, language, functions, by_name))

    package = PackageRecord(
        schema_version=options.schema_version,
        name=metadata.name,
        version=metadata.version,
        language=language.display_name,
        description=metadata.title or first_sentence(metadata.description) or "",
        llm_hints=package_hints(metadata.name, language, options),
    )
    return PackageIR(package=package, functions=functions, classes=classes)


def import_name(distribution: str) -> str:
    return re.sub(r"[-.]+", "_", distribution).lower()


# --- Declarations ---


def _unique_callables(
    result: ParseResult, language: Language, options: ExtractOptions, diagnostics: Diagnostics
) -> list[RawDeclaration]:
    """Functions (plus Python class constructors) in emit order, first definition wins."""
    callables = list(result.functions)
    if options.emit_classes and language == Language.PYTHON:
        callables.extend(result.classes)
    callables.sort(key=lambda d: d.sort_key)

    seen: dict[str, RawDeclaration] = {}
    unique = []
    for declaration in callables:
        first = seen.get(declaration.name)
        if first is not None:
            diagnostics.warn(
                f"{declaration.source_file}:{declaration.line}: duplicate definition of "
                f"'{declaration.name}' ignored (first at {first.source_file}:{first.line})"
            )
            continue
        seen[declaration.name] = declaration
        unique.append(declaration)
    return unique


def _function_record(
    declaration: RawDeclaration, language: Language, config: PkgctxConfig, class_names: frozenset[str]
) -> FunctionRecord:
    doc = declaration.doc
    arguments: dict[str, str | None] = {}
    arg_types: dict[str, TypeTag] = {}
    for argument in declaration.arguments:
        if argument.name == "*":
            continue
        text = sanitize(_argument_doc(doc.arguments, argument.name)) or None
        arguments[argument.name] = text
        arg_types[argument.name] = infer_arg_type(argument, text, language, class_names)

    is_constructor_class = declaration.kind == DeclarationKind.CLASS
    returns = sanitize(doc.returns)
    if is_constructor_class:
        return_type = TypeTag.OBJECT
    else:
        return_type = infer_return_type(declaration.name, declaration.return_annotation, returns, class_names)

    record = FunctionRecord(
        name=declaration.name,
        exported=declaration.exported,
        signature=canonical_signature(declaration, language),
        purpose=purpose_of(declaration),
        arguments=arguments,
        arg_types=arg_types,
        returns=returns,
        return_type=return_type,
        constraints=_constraints(declaration),
    )
    record.role = classify_role(record, declaration, class_names)
    return record


def _argument_doc(docs: dict[str, str], name: str) -> str:
    for key in (name, name.lstrip("*")):
        if key in docs:
            return docs[key]
    return ""


def purpose_of(declaration: RawDeclaration) -> str:
    """One-line purpose: doc summary, description, then a sentence from the name."""
    doc = declaration.doc
    for text in (doc.summary, doc.description, doc.returns):
        sentence = first_sentence(text)
        if sentence:
            return sentence
    if declaration.kind == DeclarationKind.CLASS:
        return f"Create a {declaration.name} object."
    words = re.sub(r"([a-z0-9])([A-Z])", r"\1 \2", declaration.name.strip("._`"))
    words = " ".join(re.split(r"[._\s]+", words)).strip().lower()
    return f"{words.capitalize()}." if words else f"{declaration.name}."


def _constraints(declaration: RawDeclaration) -> list[str]:
    doc = declaration.doc
    found = extract_constraints(doc.description, *doc.arguments.values(), doc.returns)
    for sentence in doc.raises:
        if sentence not in found:
            found.append(sentence)
    return found


# --- Signatures ---


def canonical_signature(declaration: RawDeclaration, language: Language) -> str:
    """Render ``name(args)`` in the one fixed convention for the language."""
    parts = [_render_argument(a, language) for a in declaration.arguments]
    signature = f"{_display_name(declaration.name, language)}({', '.join(parts)})"
    if language == Language.PYTHON and declaration.return_annotation:
        signature += f" -> {canonical_expression(declaration.return_annotation, language)}"
    return signature


def _display_name(name: str, language: Language) -> str:
    if language == Language.R and not re.fullmatch(r"[A-Za-z.][\w.]*", name):
        return f"`{name}`"
    return name


def _render_argument(argument: RawArgument, language: Language) -> str:
    name = argument.name
    if language == Language.PYTHON and argument.annotation:
        name = f"{name}: {canonical_expression(argument.annotation, language)}"
    if argument.default is None:
        return name
    return f"{name} = {canonical_expression(argument.default, language)}"


def canonical_expression(text: str, language: Language) -> str:
    """Normalize spacing (and R string quoting) of a default or annotation.

    Whitespace runs collapse to one space, commas are followed by exactly one
    space and brackets carry no inner padding. String contents are untouched.
    """
    out: list[str] = []
    i = 0
    n = len(text)
    while i < n:
        char = text[i]
        if char in "\"'":
            end = i + 1
            while end < n and text[end] != char:
                end += 2 if text[end] == "\\" else 1
            literal = text[i : end + 1]
            if language == Language.R and char == "'":
                inner = literal[1:-1].replace("\\'", "'").replace('"', '\\"')
                literal = f'"{inner}"'
            out.append(literal)
            i = end + 1
            continue
        if char.isspace():
            while i < n and text[i].isspace():
                i += 1
            if out and out[-1] not in "([{ " and i < n and text[i] not in ")]},":
                out.append(" ")
            continue
        if char == ",":
            while out and out[-1] == " ":
                out.pop()
            out.append(", ")
            i += 1
            while i < n and text[i].isspace():
                i += 1
            continue
        if char in ")]}":
            while out and out[-1] == " ":
                out.pop()
        out.append(char)
        i += 1
    return "".join(out).strip()


# --- Roles ---


def classify_role(record: FunctionRecord, declaration: RawDeclaration, class_names: frozenset[str]) -> Role:
    """Apply the role rules in order; the first match wins."""
    name = record.name
    first_type = _first_required_type(record, declaration)

    if _PREDICATE_NAME.search(name) and record.return_type in (
        TypeTag.SCALAR_BOOLEAN,
        TypeTag.LOGICAL_VECTOR,
        TypeTag.UNKNOWN,
    ):
        return Role.PREDICATE
    if name in class_names or (
        _CONSTRUCTOR_NAME.search(name) and record.return_type in (TypeTag.OBJECT, TypeTag.UNKNOWN)
    ):
        return Role.CONSTRUCTOR
    if _IO_NAME.search(name):
        return Role.IO
    if _ACCESSOR_NAME.search(name):
        return Role.ACCESSOR
    if _TRANSFORMER_NAME.search(name) or (
        first_type not in (TypeTag.UNKNOWN, None) and first_type == record.return_type
    ):
        return Role.TRANSFORMER
    return Role.OTHER


def _first_required_type(record: FunctionRecord, declaration: RawDeclaration) -> TypeTag | None:
    for argument in declaration.arguments:
        if argument.required:
            return record.arg_types.get(argument.name, TypeTag.UNKNOWN)
    return None


# --- Cross references ---


def _link_related(
    functions: list[FunctionRecord], by_name: dict[str, RawDeclaration], language: Language, limit: int
) -> None:
    visible = {f.name for f in functions}
    first_types = {f.name: _first_required_type(f, by_name[f.name]) for f in functions}

    for record in functions:
        related: list[str] = []
        for reference in by_name[record.name].doc.see_also:
            name = reference_name(reference, language)
            if name in visible and name != record.name and name not in related:
                related.append(name)

        own_type = first_types[record.name]
        if own_type not in (None, TypeTag.UNKNOWN):
            for other in functions:
                if len(related) >= limit:
                    break
                if other.name != record.name and other.name not in related and first_types[other.name] == own_type:
                    related.append(other.name)
        record.related = related[:limit]


def reference_name(reference: str, language: Language) -> str:
    """Strip qualification and call parentheses from a cross-reference."""
    name = reference.strip().strip("`").removesuffix("()")
    if "::" in name:
        name = name.rsplit("::", 1)[-1]
    elif language == Language.PYTHON:
        # R names may contain dots; Python ones are module-qualified
        name = name.rsplit(".", 1)[-1]
    return name.strip("`")


@dataclass
class Call:
    """A call of a named function inside a code snippet."""

    name: str
    start: int
    end: int
    """Offset just past the closing parenthesis (end of text if unbalanced)."""


def find_calls(code: str, language: Language, package: str = "") -> list[Call]:
    """Named calls in ``code`` in textual order, ignoring strings and comments.

    Calls qualified by another namespace or module (``stats::filter()``,
    ``np.array()``) are skipped; qualification by ``package`` is allowed.
    """
    masked = mask_code(code)
    calls = []
    pattern = _R_CALL if language == Language.R else _PY_CALL
    for match in pattern.finditer(masked):
        qualifier = match.group(1)
        if language == Language.R:
            name = code[match.start(2) : match.end(2)].strip("`")
            if qualifier and qualifier != package:
                continue
        else:
            name = match.group(2)
            if qualifier and qualifier.split(".")[0] != package:
                continue
        close = matching_close(masked, match.end() - 1)
        calls.append(Call(name=name, start=match.start(), end=close + 1 if close >= 0 else len(code)))
    return calls


def called_functions(code: str, known: set[str], language: Language, package: str = "") -> list[str]:
    """Package functions called in a code snippet, in order of first call."""
    found: list[str] = []
    for call in find_calls(code, language, package):
        if call.name in known and call.name not in found:
            found.append(call.name)
    return found


# --- Classes ---


def _class_record(
    declaration: RawDeclaration,
    language: Language,
    functions: list[FunctionRecord],
    by_name: dict[str, RawDeclaration],
) -> ClassRecord:
    name = declaration.name
    mentions = re.compile(_WORD.format(re.escape(name)))
    constructed_by: list[str] = []
    for record in functions:
        source = by_name[record.name]
        annotation = source.return_annotation
        if (
            record.name in (name, f"new_{name}", f"new{name}")
            or (annotation and annotation_type(annotation, frozenset({name})) == TypeTag.OBJECT
                and mentions.search(annotation))
            or (record.returns and mentions.search(record.returns))
        ):
            constructed_by.append(record.name)

    methods: dict[str, str] = {}
    for method in declaration.methods:
        if method.name in methods:
            continue
        summary = first_sentence(method.summary)
        if not summary:
            probe = RawDeclaration(
                kind=DeclarationKind.FUNCTION,
                name=method.name,
                exported=True,
                source_file=declaration.source_file,
                line=declaration.line,
                arguments=method.arguments,
            )
            summary = canonical_signature(probe, language)
        methods[method.name] = summary
    return ClassRecord(name=name, constructed_by=constructed_by, methods=methods)


# --- Package ---


def package_hints(name: str, language: Language, options: ExtractOptions) -> list[str]:
    """Fixed usage hints for the package record, in a fixed order."""
    hints = [_LANGUAGE_HINTS[language].format(name=name, import_name=import_name(name))]
    hints.append("arg_types and return_type use a closed vocabulary; 'unknown' means no type could be inferred.")
    if options.include_internal:
        hints.append("Functions with exported: false are internal and may change without notice.")
    if options.hoist_common_args:
        hints.append("Arguments listed without a description are described in common_arguments.")
    if options.emit_classes:
        hints.append("Class records list the functions that construct each class and its methods.")
    if options.emit_workflows:
        hints.append("Workflow records are call sequences taken from examples, in execution order.")
    return hints
