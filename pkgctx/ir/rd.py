"""R documentation parsing: Rd pages (``man/*.Rd``) and roxygen comment blocks."""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from pkgctx.ir.doctext import dedent_block, sanitize
from pkgctx.ir.models import RawDoc

_SECTION = re.compile(r"\\([A-Za-z]+)[ \t]*(?=\{)")
_COMMAND = re.compile(r"\\[A-Za-z]+(?:\[[^\]]*\])?")
_DONT_WRAPPERS = re.compile(r"\\(?:dontrun|donttest|dontshow|dontdiff|testonly)\s*(?=\{)")
_LINK = re.compile(r"\\link(\[[^\]]*\])?\{([^{}]+)\}")
_MD_LINK = re.compile(r"(?<![\w\]])\[(?:`)?([A-Za-z.][\w.]*(?:::[\w.]+)?)(?:\(\))?(?:`)?\]")
_ROXYGEN_TAG = re.compile(r"^@(\w+)\s*(.*)$")


@dataclass
class RdPage:
    """One parsed Rd file."""

    name: str
    aliases: list[str] = field(default_factory=list)
    doc: RawDoc = field(default_factory=RawDoc)


def strip_rd_comments(text: str) -> str:
    """Drop ``%`` comments (but not escaped ``\\%``) from Rd source."""
    lines = []
    for line in text.splitlines():
        match = re.search(r"(?<!\\)%", line)
        lines.append(line[: match.start()] if match else line)
    return "\n".join(lines)


def brace_group(text: str, pos: int) -> tuple[str | None, int]:
    """Return the content of the balanced ``{...}`` group opening at ``pos``.

    Returns ``(None, pos)`` when there is no group or it never closes.
    """
    if pos >= len(text) or text[pos] != "{":
        return None, pos
    depth = 0
    i = pos
    while i < len(text):
        char = text[i]
        if char == "\\" and i + 1 < len(text) and text[i + 1] in "{}\\%":
            i += 2
            continue
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return text[pos + 1 : i], i + 1
        i += 1
    return None, pos


def rd_sections(text: str) -> list[tuple[str, str]]:
    """Split Rd source into top-level ``(tag, body)`` sections."""
    text = strip_rd_comments(text)
    sections: list[tuple[str, str]] = []
    depth = 0
    i = 0
    while i < len(text):
        char = text[i]
        if char == "\\" and i + 1 < len(text) and text[i + 1] in "{}\\%":
            i += 2
            continue
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
        elif char == "\\" and depth == 0:
            match = _SECTION.match(text, i)
            if match:
                body, end = brace_group(text, match.end())
                if body is not None:
                    sections.append((match.group(1), body))
                    i = end
                    continue
        i += 1
    return sections


def rd_to_text(body: str) -> str:
    """Render Rd markup as plain prose."""
    text = body.replace("\\{", "\x01").replace("\\}", "\x02").replace("\\%", "%")
    text = re.sub(r"\\(?:dots|ldots)(?:\{\})?", "...", text)
    text = re.sub(r"\\R(?:\{\})?(?![A-Za-z])", "R", text)
    text = re.sub(r"\\cr\b", " ", text)
    text = _COMMAND.sub("", text).replace("}{", ": ")
    text = text.replace("{", "").replace("}", "").replace("\\\\", "\\")
    text = text.replace("\x01", "{").replace("\x02", "}")
    return sanitize(text)


def rd_code(body: str) -> str:
    """Render an Rd code section (examples), unwrapping ``\\dontrun{}`` and friends."""
    text = body
    while match := _DONT_WRAPPERS.search(text):
        inner, end = brace_group(text, match.end())
        if inner is None:
            text = text[: match.start()] + text[match.end() :]
            continue
        text = text[: match.start()] + inner + text[end:]
    text = text.replace("\\%", "%").replace("\\{", "{").replace("\\}", "}").replace("\\\\", "\\")
    return text


def split_examples(code: str) -> list[str]:
    """Split example code into blank-line separated blocks, dropping comment lines."""
    blocks: list[str] = []
    current: list[str] = []
    for line in code.splitlines():
        stripped = line.strip()
        if not stripped:
            if current:
                blocks.append(dedent_block(current))
                current = []
            continue
        if stripped.startswith("#"):
            continue
        current.append(line.rstrip())
    if current:
        blocks.append(dedent_block(current))
    return [b for b in blocks if b]


def rd_links(body: str) -> list[str]:
    """Names linked with ``\\link{}`` that point into the same package."""
    names = []
    for match in _LINK.finditer(body):
        option, target = match.group(1), match.group(2)
        if option and not option.startswith("[="):
            continue
        name = target.strip().removesuffix("()")
        if name and name not in names:
            names.append(name)
    return names


def parse_rd(text: str, default_name: str = "") -> RdPage:
    """Parse an Rd file into a page with its aliases and structured docs."""
    page = RdPage(name=default_name)
    description_parts: list[str] = []
    for tag, body in rd_sections(text):
        if tag == "name":
            page.name = rd_to_text(body)
        elif tag == "alias":
            alias = rd_to_text(body)
            if alias and alias not in page.aliases:
                page.aliases.append(alias)
        elif tag == "title":
            page.doc.summary = rd_to_text(body)
        elif tag == "description":
            description_parts.append(rd_to_text(body))
        elif tag == "arguments":
            page.doc.arguments.update(_rd_arguments(body))
        elif tag == "value":
            page.doc.returns = rd_to_text(body)
        elif tag == "examples":
            page.doc.examples.extend(split_examples(rd_code(body)))
        elif tag == "seealso":
            page.doc.see_also.extend(n for n in rd_links(body) if n not in page.doc.see_also)
    page.doc.description = " ".join(p for p in description_parts if p)
    if page.name and page.name not in page.aliases:
        page.aliases.insert(0, page.name)
    return page


def _rd_arguments(body: str) -> dict[str, str]:
    arguments: dict[str, str] = {}
    for match in re.finditer(r"\\item\s*(?=\{)", body):
        names, end = brace_group(body, match.end())
        if names is None:
            continue
        end = _skip_space(body, end)
        description, _ = brace_group(body, end)
        if description is None:
            continue
        text = rd_to_text(description)
        for name in rd_to_text(names).split(","):
            name = name.strip()
            if name:
                arguments[name] = text
    return arguments


def _skip_space(text: str, pos: int) -> int:
    while pos < len(text) and text[pos].isspace():
        pos += 1
    return pos


# --- Roxygen ---


@dataclass
class RoxygenBlock:
    doc: RawDoc
    export: bool = False


def parse_roxygen(lines: list[str]) -> RoxygenBlock:
    """Parse the ``#'`` lines above a definition (prefix already removed)."""
    block = RoxygenBlock(doc=RawDoc())
    doc = block.doc
    intro: list[str] = []
    tag: str | None = None
    tag_lines: list[str] = []

    def flush() -> None:
        if tag is None:
            return
        text = "\n".join(tag_lines)
        if tag == "param":
            head, *rest = re.split(r"\s+", text.strip(), maxsplit=1)
            description = _roxygen_text(rest[0] if rest else "")
            for name in head.split(","):
                if name.strip():
                    doc.arguments[name.strip()] = description
        elif tag in ("return", "returns", "value"):
            doc.returns = _roxygen_text(text)
        elif tag == "title":
            doc.summary = _roxygen_text(text)
        elif tag == "description":
            doc.description = _roxygen_text(text)
        elif tag == "examples":
            doc.examples.extend(split_examples(text))
        elif tag == "seealso":
            for name in rd_links(text) + _markdown_links(text):
                if name not in doc.see_also:
                    doc.see_also.append(name)

    for line in lines:
        match = _ROXYGEN_TAG.match(line.strip())
        if match:
            flush()
            tag, tag_lines = match.group(1), [match.group(2)] if match.group(2) else []
            if tag == "export":
                block.export = True
        elif tag is None:
            intro.append(line)
        else:
            tag_lines.append(line)
    flush()

    paragraphs = _paragraphs(intro)
    if paragraphs and not doc.summary:
        doc.summary = _roxygen_text(paragraphs[0])
        paragraphs = paragraphs[1:]
    if paragraphs and not doc.description:
        doc.description = _roxygen_text(" ".join(paragraphs))
    return block


def strip_roxygen_prefix(line: str) -> str:
    text = line.lstrip()[2:]
    return text[1:] if text.startswith(" ") else text


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


def _roxygen_text(text: str) -> str:
    text = _MD_LINK.sub(lambda m: m.group(1), text)
    return rd_to_text(text.replace("`", ""))


def _markdown_links(text: str) -> list[str]:
    return [m.group(1) for m in _MD_LINK.finditer(text) if "::" not in m.group(1)]
