"""Symbolic type inference onto the closed TypeTag vocabulary.

Best effort only: every rule falls through to ``TypeTag.UNKNOWN`` and nothing
here raises.
"""

from __future__ import annotations

import re

from pkgctx.ir.models import Language, RawArgument, TypeTag

# --- Annotations (Python) ---

_ANNOTATION_TYPES = {
    "bool": TypeTag.SCALAR_BOOLEAN,
    "int": TypeTag.INTEGER,
    "float": TypeTag.NUMERIC,
    "complex": TypeTag.NUMERIC,
    "Decimal": TypeTag.NUMERIC,
    "Fraction": TypeTag.NUMERIC,
    "Number": TypeTag.NUMERIC,
    "Real": TypeTag.NUMERIC,
    "str": TypeTag.STRING,
    "bytes": TypeTag.STRING,
    "list": TypeTag.LIST,
    "List": TypeTag.LIST,
    "tuple": TypeTag.LIST,
    "Tuple": TypeTag.LIST,
    "set": TypeTag.LIST,
    "Set": TypeTag.LIST,
    "frozenset": TypeTag.LIST,
    "Sequence": TypeTag.LIST,
    "Iterable": TypeTag.LIST,
    "Iterator": TypeTag.LIST,
    "Collection": TypeTag.LIST,
    "dict": TypeTag.MAPPING,
    "Dict": TypeTag.MAPPING,
    "Mapping": TypeTag.MAPPING,
    "MutableMapping": TypeTag.MAPPING,
    "OrderedDict": TypeTag.MAPPING,
    "defaultdict": TypeTag.MAPPING,
    "Callable": TypeTag.CALLABLE,
    "Path": TypeTag.PATH,
    "PurePath": TypeTag.PATH,
    "PathLike": TypeTag.PATH,
    "StrPath": TypeTag.PATH,
    "DataFrame": TypeTag.TABLE,
    "None": TypeTag.NONE,
    "NoneType": TypeTag.NONE,
}

_SEQUENCE_NAMES = {"list", "List", "Sequence", "Iterable", "tuple", "Tuple", "set", "Set", "Collection"}
_WRAPPERS = {"Optional", "Annotated", "Final", "ClassVar", "Required", "NotRequired"}

_GENERIC = re.compile(r"^([\w.]+)\s*\[(.*)\]$", re.DOTALL)

# --- Doc text ---

_DOC_TYPES: list[tuple[re.Pattern, TypeTag]] = [
    (re.compile(r"\b(data ?frames?|tibbles?|data\.tables?|tables?)\b", re.I), TypeTag.TABLE),
    (re.compile(r"\b(formula|formulas)\b", re.I), TypeTag.FORMULA),
    (re.compile(r"\b(file ?paths?|paths? to|file ?names?|directory|directories)\b", re.I), TypeTag.PATH),
    (re.compile(r"\b(callable|functions? (?:to apply|applied|used)|callback)\b", re.I), TypeTag.CALLABLE),
    (re.compile(r"\blogical vector\b", re.I), TypeTag.LOGICAL_VECTOR),
    (re.compile(r"\bcharacter vector\b", re.I), TypeTag.CHARACTER_VECTOR),
    (re.compile(r"^(?:a |an |single )?(?:logical|boolean|bool)\b|\b(?:if|when) (?:true|TRUE)\b|\bTRUE or FALSE\b", re.I), TypeTag.SCALAR_BOOLEAN),
    (re.compile(r"^(?:a |an |single |positive |non-negative )*integer\b|\bnumber of\b", re.I), TypeTag.INTEGER),
    (re.compile(r"^(?:a |an |single )?(?:numeric|number|double|float)\b", re.I), TypeTag.NUMERIC),
    (re.compile(r"^(?:a |an |single )?(?:string|character string|str)\b", re.I), TypeTag.STRING),
    (re.compile(r"^(?:a |an )?(?:named )?list\b", re.I), TypeTag.LIST),
    (re.compile(r"^(?:a |an )?(?:dict|dictionary|mapping)\b", re.I), TypeTag.MAPPING),
]

# --- Naming conventions ---

_NAME_TYPES: list[tuple[re.Pattern, TypeTag]] = [
    (re.compile(r"^(data|df|\.data|tbl|table|frame|dataframe)$"), TypeTag.TABLE),
    (re.compile(r"^(formula|fml)$"), TypeTag.FORMULA),
    (re.compile(r"^(path|file|filename|filepath|dir|directory|dest|destfile|con)$|_(path|file|dir)$"), TypeTag.PATH),
    (re.compile(r"^(f|fn|fun|func|FUN|callback|\.f)$"), TypeTag.CALLABLE),
    (re.compile(r"^(is|has|use|allow|include|keep|drop|verbose|quiet|strict|force|overwrite|recursive)(_.*|\..*)?$|^na\.rm$"), TypeTag.SCALAR_BOOLEAN),
    (re.compile(r"^(n|k|size|count|limit|index|idx|nrow|ncol|seed|n_.*|num_.*|max_.*|min_.*)$"), TypeTag.INTEGER),
    (re.compile(r"^(name|label|title|prefix|suffix|sep|pattern|text|url|key|encoding|format)$"), TypeTag.STRING),
    (re.compile(r"^(names|labels|cols|columns|vars|keys|levels)$"), TypeTag.CHARACTER_VECTOR),
    (re.compile(r"^(options|kwargs|params|config|mapping|attrs)$"), TypeTag.MAPPING),
]

_RETURN_PREDICATE = re.compile(r"^(is|has|can|should|exists)[._]|^(is|has)[A-Z]")


def infer_arg_type(
    argument: RawArgument,
    doc_text: str | None,
    language: Language,
    class_names: set[str] | frozenset[str] = frozenset(),
) -> TypeTag:
    """Infer an argument's tag: annotation, default, doc text, name, unknown."""
    if argument.is_variadic or argument.name == "*":
        return TypeTag.UNKNOWN
    for tag in (
        annotation_type(argument.annotation, class_names),
        default_type(argument.default, language),
        doc_type(doc_text),
        name_type(argument.name),
    ):
        if tag != TypeTag.UNKNOWN:
            return tag
    return TypeTag.UNKNOWN


def infer_return_type(
    name: str,
    annotation: str,
    returns_doc: str,
    class_names: set[str] | frozenset[str] = frozenset(),
) -> TypeTag:
    """Infer a return tag: annotation, return doc text, predicate naming."""
    tag = annotation_type(annotation, class_names)
    if tag != TypeTag.UNKNOWN:
        return tag
    tag = doc_type(returns_doc)
    if tag != TypeTag.UNKNOWN:
        return tag
    if _RETURN_PREDICATE.search(name):
        return TypeTag.SCALAR_BOOLEAN
    return TypeTag.UNKNOWN


def annotation_type(annotation: str | None, class_names: set[str] | frozenset[str] = frozenset()) -> TypeTag:
    """Map a Python annotation string onto a tag."""
    text = (annotation or "").strip().strip("'\"")
    if not text:
        return TypeTag.UNKNOWN

    # X | None and Optional[X] infer from X
    parts = [p.strip() for p in _split_union(text)]
    non_none = [p for p in parts if p not in ("None", "NoneType")]
    if len(parts) > 1:
        if len(non_none) == 1:
            return annotation_type(non_none[0], class_names)
        tags = {annotation_type(p, class_names) for p in non_none}
        if tags == {TypeTag.STRING, TypeTag.PATH}:
            return TypeTag.PATH
        return tags.pop() if len(tags) == 1 else TypeTag.UNKNOWN

    match = _GENERIC.match(text)
    if match:
        base, items = _last(match.group(1)), _split_args(match.group(2))
        if base in _WRAPPERS:
            return annotation_type(items[0], class_names) if items else TypeTag.UNKNOWN
        if base == "Union":
            return annotation_type(" | ".join(items), class_names)
        if base in _SEQUENCE_NAMES:
            element = annotation_type(items[0], class_names) if items else TypeTag.UNKNOWN
            if element == TypeTag.STRING:
                return TypeTag.CHARACTER_VECTOR
            if element == TypeTag.SCALAR_BOOLEAN:
                return TypeTag.LOGICAL_VECTOR
            return TypeTag.LIST
        if base == "Literal":
            return default_type(items[0], Language.PYTHON) if items else TypeTag.UNKNOWN
        if base == "type":
            return TypeTag.UNKNOWN
        text = match.group(1)

    name = _last(text)
    if name in class_names:
        return TypeTag.OBJECT
    return _ANNOTATION_TYPES.get(name, TypeTag.UNKNOWN)


def default_type(default: str | None, language: Language) -> TypeTag:
    """Infer a tag from the literal shape of a default value."""
    if default is None:
        return TypeTag.UNKNOWN
    text = default.strip()
    if language == Language.R:
        return _r_default_type(text)
    return _python_default_type(text)


def _python_default_type(text: str) -> TypeTag:
    if text in ("True", "False"):
        return TypeTag.SCALAR_BOOLEAN
    if re.fullmatch(r"-?\d+", text):
        return TypeTag.INTEGER
    if re.fullmatch(r"-?(\d+\.\d*|\.\d+|\d+(\.\d*)?e-?\d+|inf|nan)", text, re.I) or text.startswith(("float(", "math.")):
        return TypeTag.NUMERIC
    if re.fullmatch(r"[rbuf]?(['\"]).*\1", text, re.S):
        return TypeTag.STRING
    if text.startswith("[") or text in ("list()", "tuple()", "()") or text.startswith("("):
        return TypeTag.LIST
    if text.startswith("{") or text in ("dict()",):
        return TypeTag.MAPPING
    if text.startswith("lambda"):
        return TypeTag.CALLABLE
    if text.startswith(("Path(", "pathlib.Path(")):
        return TypeTag.PATH
    return TypeTag.UNKNOWN


def _r_default_type(text: str) -> TypeTag:
    if text in ("TRUE", "FALSE", "T", "F"):
        return TypeTag.SCALAR_BOOLEAN
    if re.fullmatch(r"-?\d+L", text):
        return TypeTag.INTEGER
    if re.fullmatch(r"-?(\d+\.?\d*|\.\d+)(e-?\d+)?|Inf|-Inf", text):
        return TypeTag.NUMERIC
    if re.fullmatch(r"(['\"]).*\1", text, re.S):
        return TypeTag.STRING
    if text.startswith("~"):
        return TypeTag.FORMULA
    if text.startswith(("function", "\\(")):
        return TypeTag.CALLABLE
    if text.startswith("list("):
        return TypeTag.LIST
    if text.startswith(("data.frame(", "tibble(", "data.table(")):
        return TypeTag.TABLE
    if text.startswith("c("):
        items = [i.strip() for i in text[2:-1].split(",") if i.strip()]
        if items and all(re.fullmatch(r"(['\"]).*\1", i) for i in items):
            return TypeTag.CHARACTER_VECTOR
        if items and all(i in ("TRUE", "FALSE") for i in items):
            return TypeTag.LOGICAL_VECTOR
        if items and all(re.fullmatch(r"-?(\d+\.?\d*|\.\d+)L?", i) for i in items):
            return TypeTag.NUMERIC
    if text.startswith(("character(", "as.character(")):
        return TypeTag.CHARACTER_VECTOR
    if text.startswith(("numeric(", "double(")):
        return TypeTag.NUMERIC
    if text.startswith("integer("):
        return TypeTag.INTEGER
    if text.startswith("logical("):
        return TypeTag.LOGICAL_VECTOR
    return TypeTag.UNKNOWN


def doc_type(text: str | None) -> TypeTag:
    """Infer a tag from the wording of an argument or return description."""
    if not text:
        return TypeTag.UNKNOWN
    for pattern, tag in _DOC_TYPES:
        if pattern.search(text.strip()):
            return tag
    return TypeTag.UNKNOWN


def name_type(name: str) -> TypeTag:
    """Infer a tag from conventional argument names (``data`` is a table)."""
    for pattern, tag in _NAME_TYPES:
        if pattern.search(name):
            return tag
    return TypeTag.UNKNOWN


def _last(dotted: str) -> str:
    return dotted.rsplit(".", 1)[-1]


def _split_union(text: str) -> list[str]:
    return _split_top(text, "|")


def _split_args(text: str) -> list[str]:
    return [p.strip() for p in _split_top(text, ",") if p.strip()]


def _split_top(text: str, sep: str) -> list[str]:
    parts: list[str] = []
    depth = 0
    start = 0
    for i, char in enumerate(text):
        if char in "[(":
            depth += 1
        elif char in "])":
            depth -= 1
        elif char == sep and depth == 0:
            parts.append(text[start:i])
            start = i + 1
    parts.append(text[start:])
    return parts
