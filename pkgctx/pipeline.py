"""Extraction pipeline: locator to record stream bytes.

locator → Resolver → SourceTree → parser → raw declarations → normalizer
→ IR → [hoister] → [workflow synthesizer] → [compactor] → emitter
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable

from pkgctx.config import ExtractOptions, PkgctxConfig
from pkgctx.diagnostics import Diagnostics
from pkgctx.emitter import emit, header_record
from pkgctx.ir.models import Language, LocalPathLocator, PackageIR, ParseResult, SourceTree
from pkgctx.ir.python_parser import parse_python_tree
from pkgctx.ir.r_parser import parse_r_tree
from pkgctx.logging import get_logger
from pkgctx.passes.compact import compact
from pkgctx.passes.hoist import hoist_common_arguments
from pkgctx.passes.normalizer import normalize
from pkgctx.passes.workflows import synthesize_workflows
from pkgctx.sources.cache import SourceCache
from pkgctx.sources.locator import parse_locator
from pkgctx.sources.resolver import Resolver

logger = get_logger("pipeline")

# One parser per language, chosen once per run.
PARSERS: dict[Language, Callable[..., ParseResult]] = {
    Language.R: parse_r_tree,
    Language.PYTHON: parse_python_tree,
}


@dataclass
class RunResult:
    """Everything one run produced; ``output`` is only built on success."""

    output: bytes
    ir: PackageIR
    tree_name: str
    tree_version: str
    revision: str = ""
    diagnostics: Diagnostics = field(default_factory=Diagnostics)


def build_ir(
    tree: SourceTree,
    options: ExtractOptions | None = None,
    config: PkgctxConfig | None = None,
    diagnostics: Diagnostics | None = None,
) -> PackageIR:
    """Parse a resolved tree and run the enabled IR passes."""
    options = options or ExtractOptions()
    config = config or PkgctxConfig()
    diagnostics = diagnostics if diagnostics is not None else Diagnostics()

    parse = PARSERS[tree.language]
    result = parse(tree, max_workers=config.max_workers)
    diagnostics.extend(result.warnings)
    # Scratch checkouts have meaningless directory names; the resolver knows better.
    metadata = result.metadata
    if metadata.name == tree.root.name and tree.name:
        metadata.name = tree.name
    if metadata.version == "unknown" and tree.version:
        metadata.version = tree.version
    logger.debug(
        "Parsed %d declarations from %s (%d warnings)",
        len(result.declarations), tree.name, len(result.warnings),
    )

    ir = normalize(result, tree.language, options, config, diagnostics)
    ir.package.revision = tree.revision
    if options.hoist_common_args:
        hoist_common_arguments(ir, config)
    # Workflows read the full examples, so they run before compaction.
    if options.emit_workflows:
        synthesize_workflows(ir, tree.language)
    if options.compact:
        compact(ir, config)
    return ir


def header_locator(locator_text: str, locator) -> str:
    """The locator as typed, without machine-specific absolute paths."""
    if isinstance(locator, LocalPathLocator):
        typed = locator_text.removeprefix("local:")
        if typed.startswith(("/", "~")):
            return f"local:{locator.path.name}"
    return locator_text.strip()


def run(
    locator_text: str,
    language: Language,
    options: ExtractOptions | None = None,
    config: PkgctxConfig | None = None,
    *,
    resolver: Resolver | None = None,
    diagnostics: Diagnostics | None = None,
) -> RunResult:
    """Resolve, parse, transform and emit one package.

    Raises:
        ResolutionError: If the locator cannot be resolved.
        ExtractionError: If the tree yields no declarations.
        SchemaError: If an emitted record breaks a schema invariant.
    """
    options = options or ExtractOptions()
    config = config or PkgctxConfig()
    diagnostics = diagnostics if diagnostics is not None else Diagnostics()
    locator = parse_locator(locator_text, language)

    owns_resolver = resolver is None
    if resolver is None:
        cache = SourceCache(config.cache_dir) if config.cache_dir else None
        resolver = Resolver(language, config, cache=cache)
    try:
        with resolver.resolve(locator) as tree:
            if not tree.pinned:
                diagnostics.warn(
                    f"{locator_text}: no ref given, resolved to commit {tree.revision}; "
                    "pin a tag or commit for reproducible output"
                )
            ir = build_ir(tree, options, config, diagnostics)
            name, version, revision = tree.name, tree.version, tree.revision
    finally:
        if owns_resolver:
            resolver.close()

    header = None
    if options.header:
        header = header_record(
            locator=header_locator(locator_text, locator),
            language=language.display_name,
            schema_version=options.schema_version,
            revision=revision,
            options=options.enabled_flags(),
        )
    output = emit(ir, options.format, header=header, schema_version=options.schema_version)
    return RunResult(
        output=output,
        ir=ir,
        tree_name=name,
        tree_version=version,
        revision=revision,
        diagnostics=diagnostics,
    )
