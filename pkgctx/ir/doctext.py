"""Helpers for pulling structured pieces out of free-form documentation text."""

from __future__ import annotations

import re

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b-\x1f\x7f-\x9f]")

# Abbreviations that end in a period without ending the sentence.
_ABBREVIATIONS = ("e.g.", "i.e.", "etc.", "vs.", "cf.", "approx.", "resp.", "Dr.", "No.")

_SENTENCE_END = re.compile(r"[.!?](?=\s|$)")

CONSTRAINT_PATTERN = re.compile(
    r"\b(must|must not|required|requires|cannot|can't|should not|only|at least|at most"
    r"|non-negative|positive integer|may not)\b",
    re.IGNORECASE,
)


def sanitize(text: str | None) -> str:
    """Remove control characters and collapse whitespace."""
    if not text:
        return ""
    text = _CONTROL_CHARS.sub(" ", str(text))
    return " ".join(text.split())


def normalize_whitespace(text: str | None) -> str:
    return " ".join((text or "").split())


def split_sentences(text: str) -> list[str]:
    """Split prose into sentences, keeping terminators."""
    text = sanitize(text)
    sentences: list[str] = []
    start = 0
    for match in _SENTENCE_END.finditer(text):
        end = match.end()
        candidate = text[start:end]
        if candidate.endswith(_ABBREVIATIONS):
            continue
        if candidate.strip():
            sentences.append(candidate.strip())
        start = end
    tail = text[start:].strip()
    if tail:
        sentences.append(tail)
    return sentences


def first_sentence(text: str | None) -> str:
    """Return the first sentence of ``text`` (or the whole text if it has none)."""
    sentences = split_sentences(text or "")
    return sentences[0] if sentences else ""


def truncate(text: str, max_chars: int, marker: str = "...") -> str:
    """Cut ``text`` at a word boundary so the result fits ``max_chars``."""
    if len(text) <= max_chars:
        return text
    if max_chars <= len(marker):
        return text[: max(max_chars, 0)]
    budget = max_chars - len(marker)
    cut = text[:budget]
    space = cut.rfind(" ")
    if space > budget // 2:
        cut = cut[:space]
    return cut.rstrip(" ,;:") + marker


def extract_constraints(*texts: str) -> list[str]:
    """Collect sentences that state an explicit requirement.

    Sentences are returned in the order they appear, without duplicates.
    """
    found: list[str] = []
    for text in texts:
        for sentence in split_sentences(text or ""):
            if CONSTRAINT_PATTERN.search(sentence) and sentence not in found:
                found.append(sentence)
    return found


def dedent_block(lines: list[str]) -> str:
    """Strip the common indentation and surrounding blank lines of a code block."""
    while lines and not lines[0].strip():
        lines = lines[1:]
    while lines and not lines[-1].strip():
        lines = lines[:-1]
    if not lines:
        return ""
    indents = [len(line) - len(line.lstrip()) for line in lines if line.strip()]
    margin = min(indents) if indents else 0
    return "\n".join(line[margin:].rstrip() for line in lines)
