"""Record stream schema for pkgctx output.

1. Schema — JSON Schema per record kind for structural validation
2. Schema validator — per-record checks plus stream ordering rules
3. Reference validator — cross-record references (related, constructed_by)
"""

SCHEMA_VERSION = "1.1"

SUPPORTED_SCHEMA_VERSIONS = ("1.0", "1.1")

# Fields a 1.0 consumer does not know; omitted when emitting 1.0 streams.
FIELDS_ADDED_IN_1_1 = {
    "package": ("revision", "llm_hints", "common_arguments"),
    "function": ("role", "arg_types", "return_type"),
    "class": ("constructed_by",),
}

# Record kinds a 1.0 stream never carries.
KINDS_ADDED_IN_1_1 = ("workflow",)
