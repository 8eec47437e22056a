"""Tests for the record schema (structural and reference validation)."""

from pkgctx.spec import FIELDS_ADDED_IN_1_1, SCHEMA_VERSION, SUPPORTED_SCHEMA_VERSIONS
from pkgctx.spec.reference_validator import Severity, validate_references
from pkgctx.spec.schema import get_record_schema, get_schema
from pkgctx.spec.schema_validator import validate_record, validate_stream


def _package(**overrides) -> dict:
    record = {
        "kind": "package",
        "schema_version": SCHEMA_VERSION,
        "name": "minir",
        "version": "0.2.1",
        "language": "R",
    }
    record.update(overrides)
    return record


def _function(name: str, **overrides) -> dict:
    record = {"kind": "function", "name": name, "exported": True, "signature": f"{name}(x)"}
    record.update(overrides)
    return record


def _make_stream(*extra: dict) -> list[dict]:
    return [_package(), _function("a"), _function("b"), *extra]


# --- Schema document ---


def test_schema_document():
    schema = get_schema()
    assert schema["$schema"].startswith("https://json-schema.org/")
    assert SCHEMA_VERSION in schema["$id"]
    assert set(schema["$defs"]) == {"header", "package", "function", "class", "workflow"}
    assert len(schema["oneOf"]) == 5


def test_record_schema_lookup():
    assert get_record_schema("function")["required"] == ["kind", "name", "exported", "signature"]
    assert get_record_schema("dataset") is None


def test_supported_versions():
    assert SUPPORTED_SCHEMA_VERSIONS == ("1.0", "1.1")
    assert "arg_types" in FIELDS_ADDED_IN_1_1["function"]


# --- Single records ---


def test_valid_function_record():
    record = _function(
        "filter_rows",
        purpose="Keep rows matching a condition",
        role="transformer",
        arguments={"data": None, "cond": "Logical condition."},
        arg_types={"data": "table"},
        return_type="table",
        examples=[{"code": "filter_rows(df, x > 1)", "shows": ["filter_rows"]}],
    )
    assert validate_record(record) == []


def test_missing_required_field():
    record = _function("f")
    del record["signature"]
    issues = validate_record(record, "[1]")
    assert any("missing required property 'signature'" in i for i in issues)
    assert issues[0].startswith("[1]")


def test_wrong_types_and_enums():
    issues = validate_record(_function("f", exported="yes", role="wizard", arg_types={"x": "blob"}))
    assert any(".exported: expected type 'boolean'" in i for i in issues)
    assert any("'wizard' not in allowed values" in i for i in issues)
    assert any(".arg_types.x" in i for i in issues)


def test_empty_name_rejected():
    issues = validate_record(_function(""))
    assert any("string too short" in i for i in issues)


def test_example_without_code():
    issues = validate_record(_function("f", examples=[{"shows": ["f"]}]))
    assert any("missing required property 'code'" in i for i in issues)


def test_workflow_needs_two_steps():
    issues = validate_record({"kind": "workflow", "name": "w", "steps": ["f()"]})
    assert any("array too short" in i for i in issues)


def test_unknown_kind_and_fields_are_ignored():
    assert validate_record({"kind": "dataset", "rows": 3}) == []
    assert validate_record(_function("f", future_field={"a": 1})) == []


def test_non_mapping_record():
    assert validate_record(["not", "a", "record"]) == ["/: expected a mapping, got list"]
    assert validate_record({"name": "f"}) == ["/: missing required property 'kind'"]


# --- Streams ---


def test_valid_stream():
    header = {
        "kind": "header",
        "generator": "pkgctx",
        "generator_version": "0.3.0",
        "schema_version": SCHEMA_VERSION,
        "locator": "local:minir",
        "language": "R",
    }
    workflow = {"kind": "workflow", "name": "a-b", "steps": ["a(1)", "b(x)"]}
    stream = [header, *_make_stream({"kind": "class", "name": "K", "constructed_by": ["a"]}, workflow)]
    assert validate_stream(stream) == []


def test_stream_needs_exactly_one_package():
    assert any("exactly one package record, found 0" in i for i in validate_stream([_function("a")]))
    assert any("found 2" in i for i in validate_stream([_package(), _package()]))


def test_stream_order():
    stream = [_package(), {"kind": "class", "name": "K"}, _function("a")]
    issues = validate_stream(stream)
    assert issues == ["[2]: 'function' record out of order"]


def test_version_1_0_subset():
    stream = [
        _package(schema_version="1.0", llm_hints=["hint"]),
        _function("a", role="other"),
        {"kind": "workflow", "name": "w", "steps": ["a()", "a()"]},
    ]
    issues = validate_stream(stream)
    assert "[0].llm_hints: field requires schema_version 1.1" in issues
    assert "[1].role: field requires schema_version 1.1" in issues
    assert "[2]: 'workflow' records require schema_version 1.1" in issues


# --- References ---


def test_references_pass():
    result = validate_references(_make_stream())
    assert result.passed
    assert result.summary() == "[PASS] 0 error(s), 0 warning(s)"


def test_dangling_related():
    stream = [_package(), _function("a", related=["b", "ghost"]), _function("b")]
    result = validate_references(stream)
    assert not result.passed
    assert [(i.code, i.path) for i in result.errors] == [("DANGLING_RELATED", "[1].related")]


def test_dangling_constructor():
    result = validate_references(_make_stream({"kind": "class", "name": "K", "constructed_by": ["new_K"]}))
    assert [i.code for i in result.errors] == ["DANGLING_CONSTRUCTOR"]


def test_duplicate_function_names():
    result = validate_references([_package(), _function("a"), _function("a")])
    assert [i.code for i in result.errors] == ["DUPLICATE_FUNCTION"]


def test_unknown_shown_function_is_a_warning():
    stream = [_package(), _function("a", examples=[{"code": "z(1)", "shows": ["z"]}])]
    result = validate_references(stream)
    assert result.passed
    assert [(i.severity, i.code) for i in result.warnings] == [(Severity.WARNING, "UNKNOWN_SHOWN_FUNCTION")]


def test_unresolved_hoisted_argument():
    stream = [
        _package(common_arguments={"data": "A data frame."}),
        _function("a", arguments={"data": None, "x": None}),
    ]
    result = validate_references(stream)
    assert result.passed
    assert [i.path for i in result.warnings] == ["[1].arguments.x"]
