"""Python parser: builds raw declarations from Python source files using AST.

The target package is never imported. Functions and classes are read with
Python's built-in ast module; docstrings in Google, NumPy and Sphinx style are
mined for argument docs, return docs, examples and cross-references.
"""

from __future__ import annotations

import ast
import configparser
import re
import tomllib
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from email.parser import Parser as EmailParser
from pathlib import Path

from pkgctx.errors import ParseError
from pkgctx.ir.doctext import dedent_block, first_sentence, sanitize
from pkgctx.ir.models import (
    DeclarationKind,
    PackageMetadata,
    ParseResult,
    RawArgument,
    RawDeclaration,
    RawDoc,
    RawMethod,
    SourceTree,
)
from pkgctx.logging import get_logger
from pkgctx.utils.file_scanner import scan_python_files

logger = get_logger("python")

# Docstring section headers, normalized to the RawDoc slot they fill
DOC_SECTIONS = {
    "args": "arguments",
    "arguments": "arguments",
    "parameters": "arguments",
    "params": "arguments",
    "keyword args": "arguments",
    "keyword arguments": "arguments",
    "other parameters": "arguments",
    "attributes": "arguments",
    "returns": "returns",
    "return": "returns",
    "yields": "returns",
    "raises": "raises",
    "examples": "examples",
    "example": "examples",
    "see also": "see_also",
    "notes": "notes",
    "note": "notes",
    "references": "notes",
    "warnings": "notes",
    "warning": "notes",
}

DATACLASS_DECORATORS = {"dataclass", "dataclasses.dataclass", "attr.s", "attrs.define", "define", "frozen"}

_SPHINX_PARAM = re.compile(r"^:param\s+(?:[^:]+\s+)?(\*{0,2}\w+)\s*:\s*(.*)$")
_SPHINX_RETURNS = re.compile(r"^:returns?\s*:\s*(.*)$")
_SPHINX_RAISES = re.compile(r"^:raises?\s+([\w.]+)\s*:\s*(.*)$")
_SPHINX_ROLE = re.compile(r":(?:func|meth|class|obj|attr|data):`~?([\w.]+)`")
_GOOGLE_ENTRY = re.compile(r"^(\*{0,2}\w+)\s*(?:\(([^)]*)\))?\s*:\s*(.*)$")
_GOOGLE_RETURN_TYPE = re.compile(r"^[\w.]+(?:\[[^\]]*\])?(?:\s*\|\s*[\w.]+(?:\[[^\]]*\])?)*\s*:\s+(.*)$")
_NUMPY_ENTRY = re.compile(r"^(\*{0,2}\w+(?:\s*,\s*\*{0,2}\w+)*)\s*(?::\s*(.*))?$")
_FENCE = re.compile(r"```(?:python|py|pycon)?\s*\n(.*?)```", re.DOTALL)
_VERSION_ASSIGN = re.compile(r"^__version__\s*=\s*['\"]([^'\"]+)['\"]", re.MULTILINE)


@dataclass
class FileParse:
    """Declarations and warnings from a single module."""

    declarations: list[RawDeclaration] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


def parse_python_tree(tree: SourceTree, max_workers: int = 1) -> ParseResult:
    """Parse every module of a Python package source tree.

    Files are parsed independently (optionally in parallel) and the results
    are merged back in (file, line, name) order.
    """
    source_root = python_source_root(tree.root)
    files = scan_python_files(source_root)
    reexports = collect_reexports(files)
    logger.debug("Parsing %d Python files under %s", len(files), source_root)

    def work(path: Path) -> FileParse:
        return parse_python_file(path, tree.root, reexports)

    if max_workers > 1 and len(files) > 1:
        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            parsed = list(pool.map(work, files))
    else:
        parsed = [work(path) for path in files]

    result = ParseResult(metadata=read_python_metadata(tree.root))
    for file_parse in parsed:
        result.declarations.extend(file_parse.declarations)
        result.warnings.extend(file_parse.warnings)
    result.declarations.sort(key=lambda d: d.sort_key)
    return result


def python_source_root(root: Path) -> Path:
    src = root / "src"
    return src if src.is_dir() else root


def parse_python_file(
    file_path: str | Path,
    repo_root: str | Path = "",
    reexports: frozenset[str] = frozenset(),
) -> FileParse:
    """Parse a Python file into raw declarations.

    Args:
        file_path: Absolute or relative path to the .py file.
        repo_root: Root of the package, used to compute relative paths.
        reexports: Names re-exported by package ``__init__`` modules.
    """
    file_path = Path(file_path)
    repo_root = Path(repo_root) if repo_root else file_path.parent
    relative_path = file_path.relative_to(repo_root).as_posix()
    result = FileParse()

    source = file_path.read_text(encoding="utf-8", errors="replace")
    try:
        tree = ast.parse(source, filename=str(file_path))
    except (SyntaxError, ValueError) as exc:
        line = getattr(exc, "lineno", 0) or 0
        result.warnings.append(str(ParseError(f"unparseable module ({exc.__class__.__name__})", relative_path, line)))
        return result

    module_all = _module_all(tree)
    private_module = _is_private_module(relative_path)

    for node in ast.iter_child_nodes(tree):
        if not isinstance(node, ast.FunctionDef | ast.AsyncFunctionDef | ast.ClassDef):
            continue
        exported = _is_exported(node.name, module_all, private_module, reexports)
        try:
            if isinstance(node, ast.ClassDef):
                result.declarations.append(_parse_class(node, relative_path, exported))
            elif not _is_overload(node):
                result.declarations.append(_parse_function(node, relative_path, exported))
        except (ValueError, TypeError, RecursionError) as exc:
            result.warnings.append(str(ParseError(f"skipped '{node.name}': {exc}", relative_path, node.lineno)))

    return result


def _parse_function(
    node: ast.FunctionDef | ast.AsyncFunctionDef, source_file: str, exported: bool
) -> RawDeclaration:
    """Parse a function definition into a raw declaration."""
    arguments = _arguments(node.args, skip_self=False)
    return_annotation = _unparse(node.returns) or ""
    return RawDeclaration(
        kind=DeclarationKind.FUNCTION,
        name=node.name,
        exported=exported,
        source_file=source_file,
        line=node.lineno,
        arguments=arguments,
        return_annotation=return_annotation,
        signature_text=f"{node.name}({ast.unparse(node.args)})",
        doc=parse_docstring(ast.get_docstring(node) or ""),
        decorators=[ast.unparse(d) for d in node.decorator_list],
    )


def _parse_class(node: ast.ClassDef, source_file: str, exported: bool) -> RawDeclaration:
    """Parse a class definition; its constructor arguments become the class arguments."""
    decorators = [ast.unparse(d) for d in node.decorator_list]
    constructor: list[RawArgument] = []
    methods: list[RawMethod] = []
    has_init = False

    for item in node.body:
        if not isinstance(item, ast.FunctionDef | ast.AsyncFunctionDef):
            continue
        if item.name == "__init__":
            has_init = True
            constructor = _arguments(item.args, skip_self=True)
            continue
        if item.name.startswith("_") or _is_overload(item):
            continue
        methods.append(
            RawMethod(
                name=item.name,
                arguments=_arguments(item.args, skip_self=True),
                summary=first_sentence(_doc_summary(ast.get_docstring(item) or "")),
            )
        )

    if not has_init and _is_dataclass(decorators):
        constructor = _dataclass_fields(node)

    return RawDeclaration(
        kind=DeclarationKind.CLASS,
        name=node.name,
        exported=exported,
        source_file=source_file,
        line=node.lineno,
        arguments=constructor,
        signature_text=node.name,
        doc=parse_docstring(ast.get_docstring(node) or ""),
        methods=methods,
        decorators=decorators,
    )


def _arguments(args: ast.arguments, skip_self: bool) -> list[RawArgument]:
    """Flatten an ``ast.arguments`` node into declaration-ordered raw arguments."""
    positional = list(args.posonlyargs) + list(args.args)
    defaults: list[ast.expr | None] = [None] * (len(positional) - len(args.defaults))
    defaults.extend(args.defaults)

    result = []
    for i, (arg, default) in enumerate(zip(positional, defaults)):
        if skip_self and i == 0 and arg.arg in ("self", "cls"):
            continue
        result.append(RawArgument(arg.arg, _unparse(default), _unparse(arg.annotation) or ""))

    if args.vararg:
        result.append(RawArgument("*" + args.vararg.arg, annotation=_unparse(args.vararg.annotation) or ""))
    elif args.kwonlyargs:
        result.append(RawArgument("*"))

    for arg, default in zip(args.kwonlyargs, args.kw_defaults):
        result.append(RawArgument(arg.arg, _unparse(default), _unparse(arg.annotation) or ""))

    if args.kwarg:
        result.append(RawArgument("**" + args.kwarg.arg, annotation=_unparse(args.kwarg.annotation) or ""))

    return result


def _dataclass_fields(node: ast.ClassDef) -> list[RawArgument]:
    fields_ = []
    for item in node.body:
        if not isinstance(item, ast.AnnAssign) or not isinstance(item.target, ast.Name):
            continue
        annotation = ast.unparse(item.annotation)
        if annotation.startswith(("ClassVar", "typing.ClassVar")):
            continue
        default = None
        if item.value is not None:
            default = _field_default(item.value)
        fields_.append(RawArgument(item.target.id, default, annotation))
    return fields_


def _field_default(value: ast.expr) -> str:
    # field(default=...) / field(default_factory=list) render as their effective default
    if isinstance(value, ast.Call) and ast.unparse(value.func) in ("field", "dataclasses.field", "attr.ib", "attrs.field"):
        for kw in value.keywords:
            if kw.arg == "default":
                return ast.unparse(kw.value)
            if kw.arg in ("default_factory", "factory"):
                return f"{ast.unparse(kw.value)}()"
    return ast.unparse(value)


def _unparse(node: ast.AST | None) -> str | None:
    if node is None:
        return None
    return ast.unparse(node)


def _is_overload(node: ast.FunctionDef | ast.AsyncFunctionDef) -> bool:
    return any(ast.unparse(d) in ("overload", "typing.overload") for d in node.decorator_list)


def _is_dataclass(decorators: list[str]) -> bool:
    return any(d.split("(")[0] in DATACLASS_DECORATORS for d in decorators)


# --- Visibility ---


def _module_all(tree: ast.Module) -> set[str] | None:
    """Return the literal ``__all__`` of a module, or None if it has none."""
    for node in tree.body:
        if not isinstance(node, ast.Assign | ast.AnnAssign):
            continue
        targets = node.targets if isinstance(node, ast.Assign) else [node.target]
        if not any(isinstance(t, ast.Name) and t.id == "__all__" for t in targets):
            continue
        if isinstance(node.value, ast.List | ast.Tuple | ast.Set):
            return {
                elt.value
                for elt in node.value.elts
                if isinstance(elt, ast.Constant) and isinstance(elt.value, str)
            }
    return None


def _is_private_module(relative_path: str) -> bool:
    parts = relative_path.split("/")
    stem = parts[-1].removesuffix(".py")
    parts = parts[:-1] + ([] if stem == "__init__" else [stem])
    return any(p.startswith("_") and not (p.startswith("__") and p.endswith("__")) for p in parts)


def _is_exported(
    name: str, module_all: set[str] | None, private_module: bool, reexports: frozenset[str]
) -> bool:
    if module_all is not None:
        return name in module_all
    if name.startswith("_"):
        return False
    return not private_module or name in reexports


def collect_reexports(files: list[Path]) -> frozenset[str]:
    """Names a package's ``__init__`` modules import from its own submodules."""
    names: set[str] = set()
    for path in files:
        if path.name != "__init__.py":
            continue
        try:
            tree = ast.parse(path.read_text(encoding="utf-8", errors="replace"))
        except (SyntaxError, ValueError):
            continue
        for node in tree.body:
            if isinstance(node, ast.ImportFrom) and (node.level or 0) > 0:
                names.update(alias.asname or alias.name for alias in node.names if alias.name != "*")
    return frozenset(names)


# --- Docstrings ---


def parse_docstring(text: str) -> RawDoc:
    """Split a docstring into summary, description and structured sections."""
    doc = RawDoc()
    if not text.strip():
        return doc

    prose: list[str] = []
    sections: list[tuple[str, bool, list[str]]] = []
    lines = text.expandtabs().splitlines()
    i = 0
    while i < len(lines):
        line = lines[i]
        stripped = line.strip()
        header = stripped.rstrip(":").lower()
        is_numpy = i + 1 < len(lines) and re.fullmatch(r"-{3,}", lines[i + 1].strip() or "x") is not None
        if header in DOC_SECTIONS and (stripped.endswith(":") or is_numpy):
            sections.append((DOC_SECTIONS[header], is_numpy, []))
            i += 2 if is_numpy else 1
            continue
        if sections:
            sections[-1][2].append(line)
        else:
            prose.append(line)
        i += 1

    paragraphs = _paragraphs(_apply_sphinx_fields(prose, doc))
    if paragraphs:
        doc.summary = sanitize(paragraphs[0])
        doc.description = sanitize(" ".join(p for p in paragraphs[1:] if ">>>" not in p))

    for slot, numpy_style, body in sections:
        if slot == "arguments":
            doc.arguments.update(_parse_entries(body, numpy_style))
        elif slot == "returns" and not doc.returns:
            doc.returns = _parse_returns(body, numpy_style)
        elif slot == "raises":
            doc.raises.extend(_parse_raises(body, numpy_style))
        elif slot == "examples":
            doc.examples.extend(_extract_examples("\n".join(body), whole_block=True))
        elif slot == "see_also":
            doc.see_also.extend(_parse_see_also(body))

    if not doc.examples:
        doc.examples.extend(_extract_examples("\n".join(prose), whole_block=False))
    for name in _SPHINX_ROLE.findall(text):
        short = name.rsplit(".", 1)[-1]
        if short not in doc.see_also:
            doc.see_also.append(short)
    return doc


def _doc_summary(text: str) -> str:
    paragraphs = _paragraphs(text.splitlines())
    return sanitize(paragraphs[0]) if paragraphs else ""


def _paragraphs(lines: list[str]) -> list[str]:
    paragraphs: list[str] = []
    current: list[str] = []
    for line in lines:
        if line.strip():
            current.append(line.strip())
        elif current:
            paragraphs.append(" ".join(current))
            current = []
    if current:
        paragraphs.append(" ".join(current))
    return paragraphs


def _apply_sphinx_fields(lines: list[str], doc: RawDoc) -> list[str]:
    """Consume ``:param:``-style field lists into ``doc``; return the remaining prose."""
    remaining = []
    current: tuple[str, str] | None = None
    for line in lines:
        stripped = line.strip()
        if match := _SPHINX_PARAM.match(stripped):
            current = ("arg", match.group(1))
            doc.arguments[match.group(1)] = sanitize(match.group(2))
        elif match := _SPHINX_RETURNS.match(stripped):
            current = ("returns", "")
            doc.returns = sanitize(match.group(1))
        elif match := _SPHINX_RAISES.match(stripped):
            current = None
            sentence = _raise_sentence(match.group(1), match.group(2))
            if sentence:
                doc.raises.append(sentence)
        elif stripped.startswith(":") and not stripped.startswith("::"):
            current = None
        elif current and stripped and line[:1].isspace():
            kind, name = current
            if kind == "arg":
                doc.arguments[name] = sanitize(f"{doc.arguments[name]} {stripped}")
            else:
                doc.returns = sanitize(f"{doc.returns} {stripped}")
        else:
            current = None
            remaining.append(line)
    return remaining


def _entry_blocks(body: list[str]) -> list[tuple[str, list[str]]]:
    """Group section lines into (head line, continuation lines) at the base indent."""
    indents = [len(line) - len(line.lstrip()) for line in body if line.strip()]
    if not indents:
        return []
    base = min(indents)
    blocks: list[tuple[str, list[str]]] = []
    for line in body:
        if not line.strip():
            continue
        indent = len(line) - len(line.lstrip())
        if indent == base:
            blocks.append((line.strip(), []))
        elif blocks:
            blocks[-1][1].append(line.strip())
    return blocks


def _parse_entries(body: list[str], numpy_style: bool) -> dict[str, str]:
    entries: dict[str, str] = {}
    for head, rest in _entry_blocks(body):
        if numpy_style:
            match = _NUMPY_ENTRY.match(head)
            if not match:
                continue
            description = sanitize(" ".join(rest))
            for name in match.group(1).split(","):
                entries[name.strip()] = description
        else:
            match = _GOOGLE_ENTRY.match(head)
            if not match:
                continue
            entries[match.group(1)] = sanitize(" ".join([match.group(3), *rest]))
    return entries


def _parse_returns(body: list[str], numpy_style: bool) -> str:
    blocks = _entry_blocks(body)
    if not blocks:
        return ""
    if numpy_style:
        head, rest = blocks[0]
        return sanitize(" ".join(rest) or head)
    text = " ".join(" ".join([head, *rest]) for head, rest in blocks)
    match = _GOOGLE_RETURN_TYPE.match(text)
    return sanitize(match.group(1) if match else text)


def _parse_raises(body: list[str], numpy_style: bool) -> list[str]:
    sentences = []
    for head, rest in _entry_blocks(body):
        if numpy_style:
            sentences.append(_raise_sentence(head, " ".join(rest)))
            continue
        match = _GOOGLE_ENTRY.match(head)
        if match:
            sentences.append(_raise_sentence(match.group(1), " ".join([match.group(3), *rest])))
    return [s for s in sentences if s]


def _raise_sentence(exc: str, condition: str) -> str:
    condition = sanitize(condition).rstrip(".")
    if not condition:
        return ""
    condition = condition[0].lower() + condition[1:]
    if not condition.startswith(("if ", "when ", "for ", "on ", "unless ")):
        condition = f"when {condition}"
    return f"Raises {exc} {condition}."


def _parse_see_also(body: list[str]) -> list[str]:
    names = []
    for head, _ in _entry_blocks(body):
        for part in re.split(r"[,:]", head):
            token = part.strip().strip("`").removesuffix("()")
            if re.fullmatch(r"[A-Za-z_][\w.]*", token):
                short = token.rsplit(".", 1)[-1]
                if short not in names:
                    names.append(short)
            break
    return names


def _extract_examples(text: str, whole_block: bool) -> list[str]:
    """Pull runnable code out of doctest prompts and fenced blocks."""
    examples: list[str] = []
    current: list[str] = []
    saw_prompt = False
    for line in text.splitlines():
        stripped = line.strip()
        if stripped.startswith(">>>"):
            saw_prompt = True
            current.append(stripped[4:] if len(stripped) > 3 else "")
        elif stripped.startswith("...") and current:
            current.append(stripped[4:] if len(stripped) > 3 else "")
        elif current:
            examples.append(dedent_block(current))
            current = []
    if current:
        examples.append(dedent_block(current))

    examples.extend(dedent_block(m.group(1).splitlines()) for m in _FENCE.finditer(text))

    if whole_block and not saw_prompt and not examples:
        block = dedent_block(text.splitlines())
        if block:
            examples.append(block)
    return [e for e in examples if e]


# --- Package metadata ---


def read_python_metadata(root: Path) -> PackageMetadata:
    """Read name/version/summary from the package's metadata files.

    Checked in order: PKG-INFO (sdists), dist-info METADATA (wheels),
    pyproject.toml, setup.cfg, setup.py; ``__version__`` fills a dynamic
    version.
    """
    meta = PackageMetadata(name="", version="")

    for candidate in [root / "PKG-INFO", *sorted(root.glob("*.dist-info/METADATA"))]:
        if candidate.is_file():
            message = EmailParser().parsestr(candidate.read_text(encoding="utf-8", errors="replace"))
            _fill(meta, message.get("Name"), message.get("Version"), message.get("Summary"))
            break

    pyproject = root / "pyproject.toml"
    if pyproject.is_file():
        try:
            data = tomllib.loads(pyproject.read_text(encoding="utf-8"))
        except tomllib.TOMLDecodeError as exc:
            logger.debug("Ignoring invalid pyproject.toml: %s", exc)
            data = {}
        project = data.get("project", {})
        poetry = data.get("tool", {}).get("poetry", {})
        for table in (project, poetry):
            _fill(meta, table.get("name"), table.get("version"), table.get("description"))

    setup_cfg = root / "setup.cfg"
    if setup_cfg.is_file():
        parser = configparser.ConfigParser(interpolation=None)
        try:
            parser.read_string(setup_cfg.read_text(encoding="utf-8", errors="replace"))
        except configparser.Error as exc:
            logger.debug("Ignoring invalid setup.cfg: %s", exc)
        if parser.has_section("metadata"):
            version = parser.get("metadata", "version", fallback="")
            _fill(
                meta,
                parser.get("metadata", "name", fallback=""),
                "" if version.startswith(("attr:", "file:")) else version,
                parser.get("metadata", "description", fallback=""),
            )

    setup_py = root / "setup.py"
    if setup_py.is_file():
        content = setup_py.read_text(encoding="utf-8", errors="replace")
        found = {}
        for key in ("name", "version", "description"):
            match = re.search(rf"\b{key}\s*=\s*['\"]([^'\"]+)['\"]", content)
            found[key] = match.group(1) if match else ""
        _fill(meta, found["name"], found["version"], found["description"])

    if not meta.name:
        meta.name = root.name
    if not meta.version:
        meta.version = _dunder_version(root, meta.name) or "unknown"
    meta.description = sanitize(meta.description)
    return meta


def _fill(meta: PackageMetadata, name, version, description) -> None:
    if name and not meta.name:
        meta.name = str(name).strip()
    if version and not meta.version:
        meta.version = str(version).strip()
    if description and not meta.description:
        meta.description = str(description)


def _dunder_version(root: Path, name: str) -> str:
    module = name.replace("-", "_").lower()
    source_root = python_source_root(root)
    for relative in ("__init__.py", "_version.py", "__about__.py", "version.py"):
        path = source_root / module / relative
        if path.is_file():
            match = _VERSION_ASSIGN.search(path.read_text(encoding="utf-8", errors="replace"))
            if match:
                return match.group(1)
    return ""
