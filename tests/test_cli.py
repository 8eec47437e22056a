"""Tests for the pkgctx command line."""

import json

import httpx
import pytest
from click.testing import CliRunner

import pkgctx.pipeline as pipeline_module
from pkgctx import __version__
from pkgctx.cli import main
from pkgctx.emitter import load_stream
from pkgctx.sources.resolver import Resolver

from conftest import write_files

TINY_DESCRIPTION = "Package: tiny\nVersion: 1.0.0\nTitle: Tiny Package\n"

TINY_R = """\
#' Add two numbers
#'
#' @param a First number.
#' @param b Second number.
#' @export
add <- function(a, b) a + b
"""


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def tiny(tmp_path):
    return write_files(
        tmp_path / "tiny",
        {"DESCRIPTION": TINY_DESCRIPTION, "NAMESPACE": "export(add)\n", "R/add.R": TINY_R},
    )


def test_extract_local_r_package(runner, tiny):
    result = runner.invoke(main, ["r", str(tiny), "--no-header"])
    assert result.exit_code == 0, result.stderr
    records = load_stream(result.stdout)
    assert [r["kind"] for r in records] == ["package", "function"]
    assert records[0]["name"] == "tiny"
    function = records[1]
    assert function["name"] == "add"
    assert function["purpose"] == "Add two numbers"
    assert list(function["arguments"]) == ["a", "b"]


def test_extract_json_with_header(runner, tiny):
    result = runner.invoke(main, ["r", str(tiny), "--format", "json", "--emit-classes"])
    assert result.exit_code == 0, result.stderr
    lines = result.stdout.splitlines()
    header = json.loads(lines[0])
    assert header["locator"] == "local:tiny"
    assert header["options"] == ["emit_classes"]


def test_unknown_pypi_package(runner, monkeypatch):
    def offline_resolver(language, config, cache=None):
        client = httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(404)))
        return Resolver(language, config, client=client, cache=cache)

    monkeypatch.setattr(pipeline_module, "Resolver", offline_resolver)
    result = runner.invoke(main, ["python", "surely-not-a-real-package-xyz"])
    assert result.exit_code == 3
    assert result.stdout == ""
    assert "not found" in result.stderr


def test_invalid_locator_exit_code(runner):
    result = runner.invoke(main, ["python", "github:only-owner"])
    assert result.exit_code == 3
    assert result.stdout == ""


def test_missing_config_file(runner, tiny, tmp_path):
    result = runner.invoke(main, ["r", str(tiny), "--config", str(tmp_path / "absent.yml")])
    assert result.exit_code == 6
    assert result.stdout == ""


def test_schema_1_0_rejects_1_1_features(runner, tiny):
    result = runner.invoke(main, ["r", str(tiny), "--schema-version", "1.0", "--hoist-common-args"])
    assert result.exit_code == 2
    assert result.stdout == ""


def test_validate_emitted_stream(runner, tiny, tmp_path):
    extracted = runner.invoke(main, ["r", str(tiny)])
    stream = tmp_path / "tiny.yaml"
    stream.write_text(extracted.stdout)

    result = runner.invoke(main, ["validate", str(stream)])
    assert result.exit_code == 0, result.stderr
    assert "Valid!" in result.stderr


def test_validate_reads_stdin(runner, tiny):
    extracted = runner.invoke(main, ["r", str(tiny), "--format", "json"])
    result = runner.invoke(main, ["validate", "-"], input=extracted.stdout)
    assert result.exit_code == 0, result.stderr


def test_validate_dangling_reference(runner, tmp_path):
    stream = tmp_path / "bad.jsonl"
    stream.write_text(
        '{"kind":"package","schema_version":"1.1","name":"p","version":"1","language":"R"}\n'
        '{"kind":"function","name":"f","exported":true,"signature":"f()","related":["ghost"]}\n'
    )
    result = runner.invoke(main, ["validate", str(stream)])
    assert result.exit_code == 1
    assert "DANGLING_RELATED" in result.stderr


def test_validate_schema_failure(runner, tmp_path):
    stream = tmp_path / "bad.yaml"
    stream.write_text("---\nkind: function\nname: f\nexported: yes please\n")
    result = runner.invoke(main, ["validate", str(stream)])
    assert result.exit_code == 1
    assert "Schema validation FAILED" in result.stderr


def test_validate_unparseable_stream(runner, tmp_path):
    stream = tmp_path / "bad.jsonl"
    stream.write_text("{not json\n")
    result = runner.invoke(main, ["validate", str(stream)])
    assert result.exit_code == 1
    assert "Failed to parse" in result.stderr


def test_validate_strict_mode(runner, tmp_path):
    stream = tmp_path / "warn.jsonl"
    stream.write_text(
        '{"kind":"package","schema_version":"1.1","name":"p","version":"1","language":"R"}\n'
        '{"kind":"function","name":"f","exported":true,"signature":"f()",'
        '"examples":[{"code":"g(1)","shows":["g"]}]}\n'
    )
    assert runner.invoke(main, ["validate", str(stream)]).exit_code == 0
    assert runner.invoke(main, ["validate", "--strict", str(stream)]).exit_code == 1


def test_schema_command(runner):
    result = runner.invoke(main, ["schema"])
    assert result.exit_code == 0
    schema = json.loads(result.stdout)
    assert set(schema["$defs"]) == {"header", "package", "function", "class", "workflow"}


def test_version(runner):
    result = runner.invoke(main, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.stdout


def test_extract_current_directory(runner, tiny, monkeypatch):
    monkeypatch.chdir(tiny)
    result = runner.invoke(main, ["r", ".", "--no-header"])
    assert result.exit_code == 0, result.stderr
    records = load_stream(result.stdout)
    assert [(r["kind"], r["name"]) for r in records] == [("package", "tiny"), ("function", "add")]
