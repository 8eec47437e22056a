"""Workflow synthesis: call sequences recovered from examples.

A step is one call of a package function. Steps are linked when the value
produced by one flows textually into the next: through a variable
assignment (``x <- f()`` then ``g(x)``), a pipe (``f() %>% g()``,
``f() |> g()``) or nesting (``g(f(x))``). Every chain of two or more linked
steps becomes a workflow record.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from pkgctx.ir.models import Language, PackageIR, WorkflowRecord
from pkgctx.ir.r_parser import mask_code
from pkgctx.passes.normalizer import find_calls, import_name

_PIPE = re.compile(r"%>%|\|>")
_CONTINUATION = re.compile(r"(%>%|\|>|\+|,|\(|\[|\{|<-|=|-|\*|/|&&|\|\||&|\||\\)\s*$")
_R_ASSIGN = re.compile(r"^\s*([A-Za-z.][\w.]*)\s*(?:<<-|<-|=(?!=))")
_R_RIGHT_ASSIGN = re.compile(r"->\s*([A-Za-z.][\w.]*)\s*$")
_PY_ASSIGN = re.compile(r"^\s*([A-Za-z_]\w*)\s*(?::[^=]+)?=(?!=)")

# Bound on chains per example, against pathological fan-out.
MAX_CHAINS_PER_EXAMPLE = 16


@dataclass
class Step:
    name: str
    code: str
    successor: int | None = None
    has_predecessor: bool = False


@dataclass
class _Statement:
    text: str
    steps: list[int] = field(default_factory=list)
    target: str | None = None


def synthesize_workflows(ir: PackageIR, language: Language) -> PackageIR:
    """Attach workflow records built from every function's examples, in place."""
    known = ir.function_names
    package = import_name(ir.package.name) if language == Language.PYTHON else ir.package.name
    purposes = {f.name: f.purpose for f in ir.functions}

    seen: set[tuple[str, ...]] = set()
    workflows: list[WorkflowRecord] = []
    used_names: dict[str, int] = {}
    for function in ir.functions:
        for example in function.examples:
            for chain in example_chains(example.code, known, language, package):
                steps = tuple(step.code for step in chain)
                if steps in seen:
                    continue
                seen.add(steps)
                names = [step.name for step in chain]
                workflows.append(
                    WorkflowRecord(
                        name=_unique_name("-".join(names), used_names),
                        steps=list(steps),
                        purpose=_purpose(names, purposes),
                    )
                )
    ir.workflows = workflows
    return ir


def example_chains(code: str, known: set[str], language: Language, package: str = "") -> list[list[Step]]:
    """Linked call chains (two or more steps) in one example, in textual order."""
    steps: list[Step] = []
    statements = [_Statement(text) for text in split_statements(code)]
    producers: dict[str, int] = {}

    for statement in statements:
        body = _assignment(statement, language)
        statement.steps = _statement_steps(body, known, language, package, steps)
        if statement.steps:
            for producer, consumer in _variable_links(body, statement.steps, steps, producers):
                _link(steps, producer, consumer)
        if statement.target:
            if statement.steps:
                producers[statement.target] = statement.steps[-1]
            else:
                producers.pop(statement.target, None)

    chains: list[list[Step]] = []
    for step in steps:
        if step.has_predecessor:
            continue
        chain = [step]
        current = step
        # Successors always point forward, so this terminates.
        while current.successor is not None:
            current = steps[current.successor]
            chain.append(current)
        if len(chain) >= 2:
            chains.append(chain)
        if len(chains) >= MAX_CHAINS_PER_EXAMPLE:
            break
    return chains


def _link(steps: list[Step], producer: int, consumer: int) -> None:
    if steps[producer].successor is None and producer != consumer:
        steps[producer].successor = consumer
        steps[consumer].has_predecessor = True


def _assignment(statement: _Statement, language: Language) -> str:
    """Record the assignment target, returning the value expression."""
    masked = mask_code(statement.text)
    if language == Language.R:
        match = _R_ASSIGN.match(masked)
        if match:
            statement.target = match.group(1)
            return statement.text[match.end() :]
        match = _R_RIGHT_ASSIGN.search(masked)
        if match:
            statement.target = match.group(1)
            return statement.text[: match.start()]
        return statement.text
    match = _PY_ASSIGN.match(masked)
    if match:
        statement.target = match.group(1)
        return statement.text[match.end() :]
    return statement.text


def _statement_steps(body: str, known: set[str], language: Language, package: str, steps: list[Step]) -> list[int]:
    """Create steps for the package calls in one expression, in evaluation order."""
    indices: list[int] = []
    previous_segment_last: int | None = None
    for segment in _pipe_segments(body):
        calls = [c for c in find_calls(segment, language, package) if c.name in known]
        # Inner calls finish first, so they come first.
        ordered = sorted(calls, key=lambda c: (c.end, -c.start))
        segment_indices = []
        for call in ordered:
            code = segment[call.start : call.end].strip()
            steps.append(Step(name=call.name, code=code))
            segment_indices.append(len(steps) - 1)

        # Nesting: an inner call flows into the innermost call that encloses it.
        for i, call in enumerate(ordered):
            for j in range(i + 1, len(ordered)):
                outer = ordered[j]
                if outer.start <= call.start and call.end <= outer.end and outer is not call:
                    _link(steps, segment_indices[i], segment_indices[j])
                    break

        if segment_indices:
            if previous_segment_last is not None:
                _link(steps, previous_segment_last, segment_indices[-1])
            previous_segment_last = segment_indices[-1]
        indices.extend(segment_indices)
    return indices


def _pipe_segments(body: str) -> list[str]:
    masked = mask_code(body)
    segments = []
    start = 0
    depth = 0
    i = 0
    while i < len(masked):
        char = masked[i]
        if char in "([{":
            depth += 1
        elif char in ")]}":
            depth -= 1
        elif depth == 0:
            match = _PIPE.match(masked, i)
            if match:
                segments.append(body[start:i])
                start = match.end()
                i = match.end()
                continue
        i += 1
    segments.append(body[start:])
    return segments


def _variable_links(
    body: str, statement_steps: list[int], steps: list[Step], producers: dict[str, int]
) -> list[tuple[int, int]]:
    """(producer, consumer) step pairs for the variables ``body`` reads."""
    masked = mask_code(body)
    links = []
    for variable, producer in producers.items():
        pattern = re.compile(rf"(?<![\w.$@]){re.escape(variable)}(?![\w.(])")
        if not pattern.search(masked):
            continue
        consumer = next(
            (index for index in statement_steps if pattern.search(mask_code(steps[index].code))),
            statement_steps[0],
        )
        links.append((producer, consumer))
    return sorted(links)


def split_statements(code: str) -> list[str]:
    """Split example code into logical statements (joined continuation lines)."""
    statements: list[str] = []
    current: list[str] = []
    depth = 0
    for line in code.splitlines():
        masked = mask_code(line)
        if not masked.strip() and not current:
            continue
        current.append(line)
        depth += sum(masked.count(c) for c in "([{") - sum(masked.count(c) for c in ")]}")
        if depth <= 0 and not _CONTINUATION.search(masked):
            statements.append("\n".join(current).strip())
            current = []
            depth = 0
    if current:
        statements.append("\n".join(current).strip())
    return [s for s in statements if s]


def _unique_name(base: str, used: dict[str, int]) -> str:
    count = used.get(base, 0) + 1
    used[base] = count
    return base if count == 1 else f"{base}-{count}"


def _purpose(names: list[str], purposes: dict[str, str]) -> str:
    clauses = []
    for name in names:
        text = (purposes.get(name) or name).strip().rstrip(".")
        clauses.append(text[:1].lower() + text[1:] if clauses else text)
    return ", then ".join(clauses) + "."
