"""pkgctx CLI — compile R and Python packages into LLM-ready record streams."""

import json
import sys
from pathlib import Path

import click

from pkgctx import __version__
from pkgctx.config import OUTPUT_FORMATS, ExtractOptions, load_config
from pkgctx.diagnostics import Diagnostics
from pkgctx.errors import PkgctxError
from pkgctx.ir.models import Language
from pkgctx.logging import configure_logging, get_logger, stderr_console
from pkgctx.spec import SCHEMA_VERSION, SUPPORTED_SCHEMA_VERSIONS

console = stderr_console
logger = get_logger("cli")


@click.group()
@click.version_option(version=__version__)
def main():
    """pkgctx — compile package APIs into compact, LLM-ready context.

    Reads an R or Python package (from CRAN, PyPI, GitHub or a local path)
    and writes one record per package, function, class and workflow to
    stdout as YAML or JSON Lines. Diagnostics go to stderr.
    """


# ── Extract ──────────────────────────────────────────────────────────


def extract_options(command):
    """Options shared by the per-language extract commands."""
    decorators = [
        click.argument("locator"),
        click.option("--format", "output_format", default="yaml", type=click.Choice(OUTPUT_FORMATS), help="Record stream format"),
        click.option("--compact", is_flag=True, help="Lossy size reduction for tight context windows"),
        click.option("--include-internal", is_flag=True, help="Also emit functions that are not exported"),
        click.option("--emit-classes", is_flag=True, help="Emit class records (and Python constructors)"),
        click.option("--emit-workflows", is_flag=True, help="Emit workflow records mined from examples"),
        click.option("--hoist-common-args", is_flag=True, help="Move shared argument docs to the package record"),
        click.option("--no-header", is_flag=True, help="Omit the leading header record"),
        click.option(
            "--schema-version",
            default=SCHEMA_VERSION,
            type=click.Choice(SUPPORTED_SCHEMA_VERSIONS),
            help="Schema version of the emitted stream",
        ),
        click.option("--config", "config_path", default=None, type=click.Path(dir_okay=False, path_type=Path), help="Config file (default: ./.pkgctx.yml)"),
        click.option("--cache-dir", default=None, type=click.Path(file_okay=False, path_type=Path), help="Cache downloaded sources here"),
        click.option("--jobs", "-j", default=None, type=click.IntRange(min=1), help="Parallel parser workers"),
        click.option("--verbose", "-v", is_flag=True, help="Debug logging on stderr"),
    ]
    for decorator in reversed(decorators):
        command = decorator(command)
    return command


@main.command(name="r")
@extract_options
def extract_r(**kwargs):
    """Extract an R package.

    LOCATOR is a CRAN name (dplyr, dplyr@1.1.4), github:owner/repo[@ref],
    or a local path (., ./pkg, /abs/path, ~/pkg).
    """
    _extract(Language.R, **kwargs)


@main.command(name="python")
@extract_options
def extract_python(**kwargs):
    """Extract a Python package.

    LOCATOR is a PyPI name (requests, requests==2.31.0),
    github:owner/repo[@ref], or a local path.
    """
    _extract(Language.PYTHON, **kwargs)


def _extract(
    language: Language,
    locator: str,
    output_format: str,
    compact: bool,
    include_internal: bool,
    emit_classes: bool,
    emit_workflows: bool,
    hoist_common_args: bool,
    no_header: bool,
    schema_version: str,
    config_path: Path | None,
    cache_dir: Path | None,
    jobs: int | None,
    verbose: bool,
):
    from pkgctx.pipeline import run

    configure_logging(verbose=verbose)
    if schema_version == "1.0" and (hoist_common_args or emit_workflows):
        raise click.UsageError("--hoist-common-args and --emit-workflows need --schema-version 1.1")

    options = ExtractOptions(
        format=output_format,
        compact=compact,
        include_internal=include_internal,
        emit_classes=emit_classes,
        emit_workflows=emit_workflows,
        hoist_common_args=hoist_common_args,
        header=not no_header,
        schema_version=schema_version,
    )
    diagnostics = Diagnostics()
    try:
        config = load_config(config_path).with_overrides(cache_dir=cache_dir, max_workers=jobs)
        result = run(locator, language, options, config, diagnostics=diagnostics)
    except PkgctxError as exc:
        diagnostics.report(logger)
        console.print(f"[red]error:[/] {exc}", markup=True, highlight=False)
        sys.exit(exc.exit_code)

    diagnostics.report(logger)
    logger.debug("Emitted %s %s (%d bytes)", result.tree_name, result.tree_version, len(result.output))
    click.echo(result.output, nl=False)


# ── Validate ─────────────────────────────────────────────────────────


@main.command()
@click.argument("stream_path", type=click.Path(dir_okay=False, allow_dash=True))
@click.option("--strict", is_flag=True, help="Treat warnings as errors")
def validate(stream_path: str, strict: bool):
    """Validate a YAML or JSON Lines record stream.

    Checks every record against the schema of its kind, the record order,
    and every cross-record reference. Use - to read stdin.
    """
    import yaml

    from pkgctx.emitter import load_stream
    from pkgctx.spec.reference_validator import validate_references
    from pkgctx.spec.schema_validator import validate_stream

    try:
        with click.open_file(stream_path, "rb") as f:
            records = load_stream(f.read())
    except (OSError, UnicodeDecodeError, ValueError, yaml.YAMLError) as e:
        console.print(f"  [red]Failed to parse:[/] {e}", highlight=False)
        sys.exit(1)

    # Gate 1: Schema
    schema_issues = validate_stream(records)
    if schema_issues:
        console.print("[red]Schema validation FAILED:[/]")
        for issue in schema_issues:
            console.print(f"  [red]x[/] {issue}", highlight=False)
        sys.exit(1)
    console.print(f"  [green]v[/] Schema validation passed ({len(records)} records)")

    # Gate 2: References
    ref_result = validate_references(records)
    if ref_result.errors:
        console.print("[red]Reference validation FAILED:[/]")
        for issue in ref_result.errors:
            console.print(f"  [red]x[/] [{issue.code}] {issue.path}: {issue.message}", highlight=False)
    else:
        console.print("  [green]v[/] Reference validation passed")

    for w in ref_result.warnings:
        console.print(f"  [yellow]![/] [{w.code}] {w.path}: {w.message}", highlight=False)

    if not ref_result.passed:
        sys.exit(1)
    if strict and ref_result.warnings:
        console.print("\n[red]FAIL[/] (strict mode: warnings treated as errors)")
        sys.exit(1)

    console.print("\n[green]Valid![/]")


# ── Schema ───────────────────────────────────────────────────────────


@main.command(name="schema")
def dump_schema():
    """Print the JSON Schema for pkgctx records."""
    from pkgctx.spec.schema import get_schema

    click.echo(json.dumps(get_schema(), indent=2))


if __name__ == "__main__":
    main()
