"""R parser: builds raw declarations from an R package source tree.

Reads the package without an R interpreter: DESCRIPTION for metadata,
NAMESPACE for the export list, ``R/*.R`` for function and class definitions,
and Rd pages or roxygen blocks for documentation.
"""

from __future__ import annotations

import re
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path

from pkgctx.errors import ParseError
from pkgctx.ir.doctext import sanitize
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
from pkgctx.ir.rd import RdPage, parse_rd, parse_roxygen, strip_roxygen_prefix
from pkgctx.logging import get_logger
from pkgctx.utils.file_scanner import scan_r_files, scan_rd_files

logger = get_logger("r")

_FUNCTION_DEF = re.compile(
    r"^[ \t]*(`[^`\n]+`|[A-Za-z.][\w.]*)[ \t]*(<<-|<-|=)[ \t]*(?:function|\\)[ \t]*\(",
    re.MULTILINE,
)
_CLASS_DEF = re.compile(
    r"^[ \t]*(?:(`[^`\n]+`|[A-Za-z.][\w.]*)[ \t]*(?:<<-|<-|=)[ \t]*)?"
    r"(setRefClass|(?:R6::)?R6Class|setClass)[ \t]*\(",
    re.MULTILINE,
)
_METHOD_DEF = re.compile(r"(`[^`\n]+`|[A-Za-z.][\w.]*)\s*=\s*function\s*\(")
_PRIVATE_LIST = re.compile(r"\bprivate\s*=\s*list\s*\(")
_STRING_LITERAL = re.compile(r"""^\s*(?:Class\s*=\s*|classname\s*=\s*)?["']([^"']+)["']""")
_DIRECTIVE = re.compile(r"\b([A-Za-z][\w.]*)\s*\(")

_OPEN = "([{"
_CLOSE = ")]}"


# --- DESCRIPTION ---


def parse_dcf(text: str) -> dict[str, str]:
    """Parse Debian-control-style text (R DESCRIPTION) into a field mapping."""
    fields: dict[str, str] = {}
    current: str | None = None
    for line in text.splitlines():
        if not line.strip():
            current = None
            continue
        if line[0] in " \t" and current:
            fields[current] += "\n" + line.strip()
            continue
        key, sep, value = line.partition(":")
        if sep and re.fullmatch(r"[A-Za-z][\w.@/-]*", key):
            current = key
            fields[key] = value.strip()
    return fields


def read_description(root: Path) -> PackageMetadata:
    """Package metadata from DESCRIPTION, falling back to the directory name."""
    path = root / "DESCRIPTION"
    fields = parse_dcf(path.read_text(encoding="utf-8", errors="replace")) if path.is_file() else {}
    return metadata_from_dcf(fields, root.name)


def metadata_from_dcf(fields: dict[str, str], default_name: str = "") -> PackageMetadata:
    return PackageMetadata(
        name=fields.get("Package", "").strip() or default_name,
        version=fields.get("Version", "").strip() or "unknown",
        title=sanitize(fields.get("Title", "")),
        description=sanitize(fields.get("Description", "")),
    )


# --- NAMESPACE ---


@dataclass
class Namespace:
    """The export rules declared by a NAMESPACE file."""

    exports: set[str] = field(default_factory=set)
    patterns: list[re.Pattern] = field(default_factory=list)

    def is_exported(self, name: str) -> bool:
        return name in self.exports or any(p.search(name) for p in self.patterns)


def read_namespace(root: Path) -> Namespace | None:
    """Parse NAMESPACE directives; None when the package has no NAMESPACE."""
    path = root / "NAMESPACE"
    if not path.is_file():
        return None
    return parse_namespace(path.read_text(encoding="utf-8", errors="replace"))


def parse_namespace(text: str) -> Namespace:
    namespace = Namespace()
    masked = mask_code(text)
    for match in _DIRECTIVE.finditer(masked):
        directive = match.group(1)
        close = matching_close(masked, match.end() - 1)
        if close < 0:
            continue
        args = [_unquote(a) for a in split_top_level(text[match.end() : close], masked[match.end() : close])]
        args = [a for a in args if a]
        if directive in ("export", "exportClasses", "exportMethods", "exportClass"):
            namespace.exports.update(a for a in args if "=" not in a)
        elif directive == "exportPattern":
            for pattern in args:
                try:
                    namespace.patterns.append(re.compile(pattern.replace("\\\\", "\\")))
                except re.error:
                    logger.debug("Ignoring invalid exportPattern %r", pattern)
        elif directive == "S3method" and len(args) >= 2:
            namespace.exports.add(args[2] if len(args) > 2 else f"{args[0]}.{args[1]}")
    return namespace


def _unquote(value: str) -> str:
    value = value.strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'`":
        return value[1:-1]
    return value


# --- Lexing helpers ---


def mask_code(text: str, *, strings: bool = True, comments: bool = True) -> str:
    """Blank out string literals and/or comments, preserving offsets and newlines."""
    out = list(text)
    i = 0
    n = len(text)
    while i < n:
        char = text[i]
        if char == "#":
            end = text.find("\n", i)
            end = n if end < 0 else end
            if comments:
                out[i:end] = " " * (end - i)
            i = end
        elif char in "\"'":
            j = i + 1
            while j < n and text[j] != char:
                j += 2 if text[j] == "\\" else 1
            j = min(j, n - 1)
            if strings:
                for k in range(i + 1, j):
                    if out[k] != "\n":
                        out[k] = " "
            i = j + 1
        elif char == "`":
            end = text.find("`", i + 1)
            i = n if end < 0 else end + 1
        else:
            i += 1
    return "".join(out)


def matching_close(masked: str, open_pos: int) -> int:
    """Index of the bracket closing the one at ``open_pos``; -1 if unbalanced."""
    depth = 0
    for i in range(open_pos, len(masked)):
        char = masked[i]
        if char in _OPEN:
            depth += 1
        elif char in _CLOSE:
            depth -= 1
            if depth == 0:
                return i
    return -1


def split_top_level(text: str, masked: str, sep: str = ",") -> list[str]:
    """Split ``text`` on separators that sit outside any brackets."""
    parts: list[str] = []
    depth = 0
    start = 0
    for i, char in enumerate(masked):
        if char in _OPEN:
            depth += 1
        elif char in _CLOSE:
            depth -= 1
        elif char == sep and depth == 0:
            parts.append(text[start:i])
            start = i + 1
    parts.append(text[start:])
    return [p for p in (part.strip() for part in parts) if p]


def _top_level_lines(masked: str) -> set[int]:
    """Offsets of line starts that sit outside every bracket."""
    starts = {0}
    depth = 0
    for i, char in enumerate(masked):
        if char in _OPEN:
            depth += 1
        elif char in _CLOSE:
            depth = max(depth - 1, 0)
        elif char == "\n" and depth == 0:
            starts.add(i + 1)
    return starts


def parse_r_arguments(text: str) -> list[RawArgument]:
    """Split an R formals list (``x, y = 2, ...``) into raw arguments."""
    cleaned = mask_code(text, strings=False, comments=True)
    arguments = []
    for piece in split_top_level(cleaned, mask_code(cleaned)):
        piece_mask = mask_code(piece)
        eq = _assignment_index(piece_mask)
        if eq < 0:
            arguments.append(RawArgument(_unquote(piece.strip())))
        else:
            name = _unquote(piece[:eq].strip())
            arguments.append(RawArgument(name, piece[eq + 1 :].strip()))
    return arguments


def _assignment_index(masked: str) -> int:
    depth = 0
    for i, char in enumerate(masked):
        if char in _OPEN:
            depth += 1
        elif char in _CLOSE:
            depth -= 1
        elif char == "=" and depth == 0:
            before = masked[i - 1] if i else ""
            after = masked[i + 1] if i + 1 < len(masked) else ""
            if before not in "=<>!" and after != "=":
                return i
    return -1


# --- R sources ---


@dataclass
class RFileParse:
    declarations: list[RawDeclaration] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    roxygen_exports: set[str] = field(default_factory=set)


def parse_r_file(file_path: Path, repo_root: Path) -> RFileParse:
    """Extract top-level function and class definitions from one R file."""
    relative_path = file_path.relative_to(repo_root).as_posix()
    text = file_path.read_text(encoding="utf-8", errors="replace")
    masked = mask_code(text)
    top_level = _top_level_lines(masked)
    lines = text.splitlines()
    result = RFileParse()
    seen_lines: set[int] = set()

    for match in _CLASS_DEF.finditer(text):
        line_start = text.rfind("\n", 0, match.start()) + 1
        if line_start not in top_level or masked[match.start(2)] != text[match.start(2)]:
            continue
        line_no = text.count("\n", 0, match.start(2)) + 1
        try:
            declaration = _parse_class(text, masked, match, relative_path, line_no)
        except ParseError as exc:
            result.warnings.append(str(exc))
            continue
        seen_lines.add(line_no)
        _attach_roxygen(declaration, lines, line_no, result)
        result.declarations.append(declaration)

    for match in _FUNCTION_DEF.finditer(text):
        line_start = text.rfind("\n", 0, match.start(1)) + 1
        if line_start not in top_level or masked[match.start(1)] != text[match.start(1)]:
            continue
        name = _unquote(match.group(1))
        line_no = text.count("\n", 0, match.start(1)) + 1
        if line_no in seen_lines:
            continue
        open_pos = match.end() - 1
        close = matching_close(masked, open_pos)
        if close < 0:
            result.warnings.append(str(ParseError(f"unbalanced signature for '{name}'", relative_path, line_no)))
            continue
        formals = text[open_pos + 1 : close]
        declaration = RawDeclaration(
            kind=DeclarationKind.FUNCTION,
            name=name,
            exported=False,
            source_file=relative_path,
            line=line_no,
            arguments=parse_r_arguments(formals),
            signature_text=f"{name}({formals})",
        )
        _attach_roxygen(declaration, lines, line_no, result)
        result.declarations.append(declaration)

    result.declarations.sort(key=lambda d: d.sort_key)
    return result


def _attach_roxygen(declaration: RawDeclaration, lines: list[str], line_no: int, result: RFileParse) -> None:
    block_lines: list[str] = []
    index = line_no - 2
    while index >= 0 and lines[index].lstrip().startswith("#'"):
        block_lines.insert(0, strip_roxygen_prefix(lines[index]))
        index -= 1
    if not block_lines:
        return
    block = parse_roxygen(block_lines)
    declaration.doc = block.doc
    if block.export:
        result.roxygen_exports.add(declaration.name)


def _parse_class(text: str, masked: str, match: re.Match, source_file: str, line_no: int) -> RawDeclaration:
    open_pos = match.end() - 1
    close = matching_close(masked, open_pos)
    generator = _unquote(match.group(1)) if match.group(1) else ""
    if close < 0:
        raise ParseError(f"unbalanced class definition '{generator or match.group(2)}'", source_file, line_no)

    body = text[open_pos + 1 : close]
    body_mask = masked[open_pos + 1 : close]
    name_match = _STRING_LITERAL.match(body)
    class_name = name_match.group(1) if name_match else generator
    if not class_name:
        raise ParseError(f"{match.group(2)} call without a class name", source_file, line_no)

    private_spans = []
    for private in _PRIVATE_LIST.finditer(body_mask):
        end = matching_close(body_mask, private.end() - 1)
        private_spans.append((private.start(), end if end >= 0 else len(body)))

    constructor: list[RawArgument] = []
    methods: list[RawMethod] = []
    for method in _METHOD_DEF.finditer(body):
        if body_mask[method.start()] != body[method.start()]:
            continue
        if any(start <= method.start() < end for start, end in private_spans):
            continue
        method_close = matching_close(body_mask, method.end() - 1)
        if method_close < 0:
            continue
        arguments = parse_r_arguments(body[method.end() : method_close])
        method_name = _unquote(method.group(1))
        if method_name in ("initialize", "finalize"):
            if method_name == "initialize":
                constructor = arguments
            continue
        methods.append(RawMethod(name=method_name, arguments=arguments))

    return RawDeclaration(
        kind=DeclarationKind.CLASS,
        name=class_name,
        exported=False,
        source_file=source_file,
        line=line_no,
        arguments=constructor,
        signature_text=generator or class_name,
        methods=methods,
        decorators=[match.group(2).removeprefix("R6::")],
    )


# --- Tree ---


def parse_rd_pages(root: Path) -> tuple[dict[str, RawDoc], list[str]]:
    """Map every Rd alias to its page's docs."""
    docs: dict[str, RawDoc] = {}
    warnings: list[str] = []
    for path in scan_rd_files(root):
        try:
            page: RdPage = parse_rd(path.read_text(encoding="utf-8", errors="replace"), path.stem)
        except (ValueError, IndexError) as exc:
            warnings.append(str(ParseError(f"unreadable Rd page: {exc}", path.relative_to(root).as_posix())))
            continue
        for alias in page.aliases:
            docs.setdefault(alias, page.doc)
    return docs, warnings


def parse_r_tree(tree: SourceTree, max_workers: int = 1) -> ParseResult:
    """Parse an R package source tree into raw declarations.

    Visibility comes from NAMESPACE when present, else from roxygen
    ``@export`` tags, else every name not starting with a dot is exported.
    """
    root = tree.root
    result = ParseResult(metadata=read_description(root))
    if not (root / "DESCRIPTION").is_file():
        result.warnings.append(f"{root.name}: no DESCRIPTION file; using directory name as package name")

    files = scan_r_files(root)
    logger.debug("Parsing %d R files under %s", len(files), root)

    def work(path: Path) -> RFileParse:
        return parse_r_file(path, root)

    if max_workers > 1 and len(files) > 1:
        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            parsed = list(pool.map(work, files))
    else:
        parsed = [work(path) for path in files]

    rd_docs, rd_warnings = parse_rd_pages(root)
    result.warnings.extend(rd_warnings)
    namespace = read_namespace(root)
    roxygen_exports = set().union(*(p.roxygen_exports for p in parsed)) if parsed else set()

    for file_parse in parsed:
        result.warnings.extend(file_parse.warnings)
        for declaration in file_parse.declarations:
            declaration.exported = _is_exported(declaration, namespace, roxygen_exports)
            rd_doc = rd_docs.get(declaration.name)
            if rd_doc is not None and not rd_doc.is_empty:
                declaration.doc = rd_doc
            result.declarations.append(declaration)

    result.declarations.sort(key=lambda d: d.sort_key)
    return result


def _is_exported(declaration: RawDeclaration, namespace: Namespace | None, roxygen_exports: set[str]) -> bool:
    names = [declaration.name]
    if declaration.kind == DeclarationKind.CLASS and declaration.signature_text != declaration.name:
        names.append(declaration.signature_text)
    if namespace is not None:
        return any(namespace.is_exported(n) for n in names)
    if roxygen_exports:
        return any(n in roxygen_exports for n in names)
    return not declaration.name.startswith(".")
