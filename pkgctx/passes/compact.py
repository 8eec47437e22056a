"""Compact mode: lossy, schema-valid size reductions for tight context windows."""

from __future__ import annotations

from pkgctx.config import PkgctxConfig
from pkgctx.ir.doctext import first_sentence, truncate
from pkgctx.ir.models import Example, PackageIR, TypeTag

MARKER = "..."


def compact_text(text: str, max_chars: int) -> str:
    """First sentence, cut to ``max_chars`` with a trailing marker."""
    if not text:
        return text
    return truncate(first_sentence(text), max_chars, MARKER)


def compact(ir: PackageIR, config: PkgctxConfig | None = None) -> PackageIR:
    """Apply the compact reductions in place.

    Identity fields (kind, name, signature, exported, schema_version) are
    never touched.
    """
    config = config or PkgctxConfig()
    limit = config.compact_max_chars

    package = ir.package
    package.description = compact_text(package.description, limit)
    package.llm_hints = []
    package.common_arguments = {k: compact_text(v, limit) for k, v in package.common_arguments.items()}

    for function in ir.functions:
        function.purpose = compact_text(function.purpose, limit)
        function.arguments = {
            name: compact_text(text, limit) if text is not None else None
            for name, text in function.arguments.items()
        }
        function.arg_types = {name: tag for name, tag in function.arg_types.items() if tag != TypeTag.UNKNOWN}
        if function.return_type == TypeTag.UNKNOWN:
            function.return_type = None
        function.returns = compact_text(function.returns, limit)
        function.constraints = [compact_text(c, limit) for c in function.constraints[:1]]
        function.examples = [Example(code=e.code) for e in function.examples[:1]]
        function.related = []

    for cls in ir.classes:
        cls.methods = {name: compact_text(text, limit) for name, text in cls.methods.items()}

    for workflow in ir.workflows:
        workflow.purpose = compact_text(workflow.purpose, limit)

    return ir
