"""Record stream emitter: serialize the IR as YAML or JSON records.

Output is a pure function of the IR and the options: keys appear in a fixed
per-kind order, empty optional fields are omitted, and the bytes are UTF-8
with ``\\n`` line endings on every platform.
"""

from __future__ import annotations

import json
from enum import Enum

import yaml

from pkgctx import __version__
from pkgctx.errors import SchemaError
from pkgctx.ir.models import (
    ClassRecord,
    FunctionRecord,
    HeaderRecord,
    PackageIR,
    PackageRecord,
    WorkflowRecord,
)
from pkgctx.spec import FIELDS_ADDED_IN_1_1, KINDS_ADDED_IN_1_1, SUPPORTED_SCHEMA_VERSIONS
from pkgctx.spec.reference_validator import validate_references
from pkgctx.spec.schema_validator import validate_stream

GENERATOR = "pkgctx"

# Key order within each record kind.
FIELD_ORDER = {
    "header": ("generator", "generator_version", "schema_version", "locator", "language", "revision", "options"),
    "package": (
        "schema_version",
        "name",
        "version",
        "revision",
        "language",
        "description",
        "llm_hints",
        "common_arguments",
    ),
    "function": (
        "name",
        "exported",
        "signature",
        "purpose",
        "role",
        "arguments",
        "arg_types",
        "returns",
        "return_type",
        "constraints",
        "examples",
        "related",
    ),
    "class": ("name", "constructed_by", "methods"),
    "workflow": ("name", "steps", "purpose"),
}

# Fields emitted even when empty.
REQUIRED_FIELDS = {
    "header": {"generator", "generator_version", "schema_version", "locator", "language"},
    "package": {"schema_version", "name", "version", "language"},
    "function": {"name", "exported", "signature"},
    "class": {"name"},
    "workflow": {"name", "steps"},
}


class _RecordDumper(yaml.SafeDumper):
    """Block-style YAML with literal blocks for multi-line strings."""

    def ignore_aliases(self, data) -> bool:
        return True


def _represent_str(dumper: yaml.SafeDumper, data: str) -> yaml.Node:
    if "\n" in data:
        return dumper.represent_scalar("tag:yaml.org,2002:str", data, style="|")
    return dumper.represent_scalar("tag:yaml.org,2002:str", data)


_RecordDumper.add_representer(str, _represent_str)


def header_record(
    locator: str,
    language: str,
    schema_version: str,
    revision: str = "",
    options: list[str] | None = None,
) -> HeaderRecord:
    return HeaderRecord(
        generator=GENERATOR,
        generator_version=__version__,
        schema_version=schema_version,
        locator=locator,
        language=language,
        revision=revision,
        options=list(options or []),
    )


def to_records(ir: PackageIR, header: HeaderRecord | None = None, schema_version: str | None = None) -> list[dict]:
    """Flatten the IR into ordered record mappings for one schema version."""
    version = schema_version or ir.package.schema_version
    if version not in SUPPORTED_SCHEMA_VERSIONS:
        raise SchemaError(f"unsupported schema version '{version}'")

    entities: list = []
    if header is not None:
        entities.append(header)
    entities.append(ir.package)
    entities.extend(ir.functions)
    entities.extend(ir.classes)
    entities.extend(ir.workflows)

    records = []
    for entity in entities:
        if version == "1.0" and entity.kind in KINDS_ADDED_IN_1_1:
            continue
        record = record_to_dict(entity)
        if entity.kind in ("header", "package"):
            record["schema_version"] = version
        if version == "1.0":
            for name in FIELDS_ADDED_IN_1_1.get(entity.kind, ()):
                record.pop(name, None)
        records.append(record)
    return records


def record_to_dict(entity: HeaderRecord | PackageRecord | FunctionRecord | ClassRecord | WorkflowRecord) -> dict:
    """One record as a mapping with ``kind`` first and keys in fixed order."""
    kind = entity.kind
    record: dict = {"kind": kind}
    required = REQUIRED_FIELDS[kind]
    for name in FIELD_ORDER[kind]:
        value = _plain(getattr(entity, name))
        if name not in required and value in (None, "", [], {}):
            continue
        record[name] = value
    return record


def _plain(value):
    """Convert enums, nested dataclasses and containers to plain data."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_plain(v) for v in value]
    if hasattr(value, "__dataclass_fields__"):
        out = {}
        for name in value.__dataclass_fields__:
            item = _plain(getattr(value, name))
            if item in (None, "", [], {}) and name != "code":
                continue
            out[name] = item
        return out
    return value


def check_records(records: list[dict]) -> None:
    """Raise SchemaError if the records break a structural or reference rule."""
    problems = validate_stream(records)
    references = validate_references(records)
    problems.extend(f"{issue.path}: {issue.message}" for issue in references.errors)
    if problems:
        shown = "; ".join(problems[:5])
        raise SchemaError(f"{len(problems)} schema violation(s): {shown}")


def dump_yaml(records: list[dict]) -> str:
    """Every record as its own YAML document introduced by ``---``."""
    return "".join(
        yaml.dump(
            record,
            Dumper=_RecordDumper,
            explicit_start=True,
            default_flow_style=False,
            sort_keys=False,
            allow_unicode=True,
            width=float("inf"),
            line_break="\n",
        )
        for record in records
    )


def dump_json(records: list[dict]) -> str:
    """One compact JSON object per line (JSON Lines)."""
    return "".join(json.dumps(record, ensure_ascii=False, separators=(",", ":")) + "\n" for record in records)


def emit(
    ir: PackageIR,
    output_format: str = "yaml",
    header: HeaderRecord | None = None,
    schema_version: str | None = None,
) -> bytes:
    """Serialize the IR to the final record stream bytes.

    Raises:
        SchemaError: If a record violates a schema invariant.
    """
    records = to_records(ir, header=header, schema_version=schema_version)
    check_records(records)
    if output_format == "json":
        text = dump_json(records)
    elif output_format == "yaml":
        text = dump_yaml(records)
    else:
        raise ValueError(f"unknown output format '{output_format}'")
    return text.encode("utf-8")


def load_stream(data: str | bytes) -> list:
    """Parse a YAML or JSON Lines record stream back into records."""
    text = data.decode("utf-8") if isinstance(data, bytes) else data
    stripped = text.lstrip()
    if stripped.startswith("{"):
        return [json.loads(line) for line in text.splitlines() if line.strip()]
    return [doc for doc in yaml.safe_load_all(text) if doc is not None]
