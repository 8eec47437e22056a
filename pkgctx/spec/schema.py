"""JSON Schema for pkgctx records.

Each record kind has its own schema; a stream is a sequence of records tagged
by ``kind``. Schemas list the fields a reader may rely on but never forbid
extra ones, so readers of an older version can ignore what they do not know.
"""

from pkgctx.ir.models import Role, TypeTag
from pkgctx.spec import SCHEMA_VERSION, SUPPORTED_SCHEMA_VERSIONS

TYPE_TAGS = [t.value for t in TypeTag]
ROLES = [r.value for r in Role]

_STRINGS = {"type": "array", "items": {"type": "string"}}

HEADER_SCHEMA: dict = {
    "type": "object",
    "required": ["kind", "generator", "generator_version", "schema_version", "locator", "language"],
    "properties": {
        "kind": {"type": "string", "enum": ["header"]},
        "generator": {"type": "string", "minLength": 1},
        "generator_version": {"type": "string", "minLength": 1},
        "schema_version": {"type": "string", "enum": list(SUPPORTED_SCHEMA_VERSIONS)},
        "locator": {"type": "string", "minLength": 1},
        "language": {"type": "string", "enum": ["R", "Python"]},
        "revision": {"type": "string"},
        "options": _STRINGS,
    },
}

PACKAGE_SCHEMA: dict = {
    "type": "object",
    "required": ["kind", "schema_version", "name", "version", "language"],
    "properties": {
        "kind": {"type": "string", "enum": ["package"]},
        "schema_version": {"type": "string", "enum": list(SUPPORTED_SCHEMA_VERSIONS)},
        "name": {"type": "string", "minLength": 1},
        "version": {"type": "string", "minLength": 1},
        "revision": {"type": "string", "pattern": "^[0-9a-f]{40}$"},
        "language": {"type": "string", "enum": ["R", "Python"]},
        "description": {"type": "string"},
        "llm_hints": _STRINGS,
        "common_arguments": {
            "type": "object",
            "additionalProperties": {"type": "string"},
            "description": "Argument name to the description shared by many functions.",
        },
    },
}

EXAMPLE_SCHEMA: dict = {
    "type": "object",
    "required": ["code"],
    "properties": {
        "code": {"type": "string", "minLength": 1},
        "shows": _STRINGS,
    },
}

FUNCTION_SCHEMA: dict = {
    "type": "object",
    "required": ["kind", "name", "exported", "signature"],
    "properties": {
        "kind": {"type": "string", "enum": ["function"]},
        "name": {"type": "string", "minLength": 1},
        "exported": {"type": "boolean"},
        "signature": {"type": "string", "minLength": 1},
        "purpose": {"type": "string"},
        "role": {"type": "string", "enum": ROLES},
        "arguments": {
            "type": "object",
            "additionalProperties": {"type": ["string", "null"]},
            "description": "Argument name to description, in declaration order; null means none of its own.",
        },
        "arg_types": {
            "type": "object",
            "additionalProperties": {"type": "string", "enum": TYPE_TAGS},
        },
        "returns": {"type": "string"},
        "return_type": {"type": "string", "enum": TYPE_TAGS},
        "constraints": _STRINGS,
        "examples": {"type": "array", "items": EXAMPLE_SCHEMA},
        "related": _STRINGS,
    },
}

CLASS_SCHEMA: dict = {
    "type": "object",
    "required": ["kind", "name"],
    "properties": {
        "kind": {"type": "string", "enum": ["class"]},
        "name": {"type": "string", "minLength": 1},
        "constructed_by": _STRINGS,
        "methods": {"type": "object", "additionalProperties": {"type": "string"}},
    },
}

WORKFLOW_SCHEMA: dict = {
    "type": "object",
    "required": ["kind", "name", "steps"],
    "properties": {
        "kind": {"type": "string", "enum": ["workflow"]},
        "name": {"type": "string", "minLength": 1},
        "steps": {"type": "array", "minItems": 2, "items": {"type": "string", "minLength": 1}},
        "purpose": {"type": "string"},
    },
}

RECORD_SCHEMAS: dict[str, dict] = {
    "header": HEADER_SCHEMA,
    "package": PACKAGE_SCHEMA,
    "function": FUNCTION_SCHEMA,
    "class": CLASS_SCHEMA,
    "workflow": WORKFLOW_SCHEMA,
}


def get_record_schema(kind: str) -> dict | None:
    """Return the schema for one record kind, or None for unknown kinds."""
    return RECORD_SCHEMAS.get(kind)


def get_schema() -> dict:
    """Return the canonical JSON Schema document for a single record."""
    return {
        "$schema": "https://json-schema.org/draft/2020-12/schema",
        "$id": f"https://pkgctx.dev/schema/record/v{SCHEMA_VERSION}",
        "title": "pkgctx record",
        "description": (
            "One record of a pkgctx stream. Records are tagged by 'kind'; "
            "readers ignore unknown kinds and unknown fields."
        ),
        "oneOf": [{"$ref": f"#/$defs/{kind}"} for kind in RECORD_SCHEMAS],
        "$defs": dict(RECORD_SCHEMAS),
    }
