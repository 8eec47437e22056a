"""Tests for the R parser (DESCRIPTION, NAMESPACE, R sources, Rd, roxygen)."""

from pathlib import Path

from pkgctx.ir.models import DeclarationKind, Language, SourceTree
from pkgctx.ir.r_parser import (
    mask_code,
    parse_dcf,
    parse_namespace,
    parse_r_arguments,
    parse_r_file,
    parse_r_tree,
    read_description,
)
from pkgctx.ir.rd import parse_rd, parse_roxygen

from conftest import write_files


# --- DESCRIPTION ---


def test_parse_dcf_continuation_lines():
    fields = parse_dcf("Package: foo\nVersion: 1.0\nDescription: First line\n    second line.\n")
    assert fields["Package"] == "foo"
    assert fields["Version"] == "1.0"
    assert fields["Description"] == "First line\nsecond line."


def test_read_description(r_package: Path):
    meta = read_description(r_package)
    assert meta.name == "minir"
    assert meta.version == "0.2.1"
    assert meta.title == "Tiny Helpers for Tables"
    assert meta.description.startswith("Small helpers used to exercise the extractor.")


def test_read_description_missing_falls_back_to_dir_name(tmp_path: Path):
    root = tmp_path / "nodesc"
    root.mkdir()
    meta = read_description(root)
    assert meta.name == "nodesc"
    assert meta.version == "unknown"


# --- NAMESPACE ---


def test_namespace_directives():
    ns = parse_namespace(
        'export(a, "b")\n'
        "export(\n  c,\n  d\n)\n"
        'exportPattern("^pub_")\n'
        "S3method(print, thing)\n"
        "importFrom(stats, filter)\n"
    )
    for name in ("a", "b", "c", "d", "pub_x", "print.thing"):
        assert ns.is_exported(name), name
    assert not ns.is_exported("filter")
    assert not ns.is_exported("private_x")


def test_namespace_ignores_comments():
    ns = parse_namespace("# export(hidden)\nexport(shown)\n")
    assert ns.is_exported("shown")
    assert not ns.is_exported("hidden")


# --- Lexing ---


def test_mask_code_keeps_offsets():
    text = 'f("a(b", x) # g(y)\n'
    masked = mask_code(text)
    assert len(masked) == len(text)
    assert "(" not in masked[3:6]
    assert "g(" not in masked


def test_parse_r_arguments():
    args = parse_r_arguments("x, y = c(1, 2), sep = \",\", ...")
    assert [a.name for a in args] == ["x", "y", "sep", "..."]
    assert args[0].default is None
    assert args[1].default == "c(1, 2)"
    assert args[2].default == '","'
    assert args[3].is_variadic


def test_parse_r_arguments_multiline_with_comments():
    args = parse_r_arguments("data,  # the input\n    na.rm = FALSE\n")
    assert [a.name for a in args] == ["data", "na.rm"]
    assert args[1].default == "FALSE"


# --- R sources ---


def test_parse_r_file_definitions(tmp_path: Path):
    root = write_files(
        tmp_path / "pkg",
        {
            "R/defs.R": (
                "f1 <- function(x) x\n"
                "f2 = function(a,\n               b = 2) {\n  a + b\n}\n"
                "`%+%` <- function(e1, e2) paste(e1, e2)\n"
                "f3 <- \\(z) z\n"
                "outer <- function() {\n  inner <- function(q) q\n}\n"
                "s <- \"f4 <- function(x) x\"\n"
            )
        },
    )
    parsed = parse_r_file(root / "R" / "defs.R", root)
    names = [d.name for d in parsed.declarations]
    assert names == ["f1", "f2", "%+%", "f3", "outer"]
    f2 = parsed.declarations[1]
    assert [a.name for a in f2.arguments] == ["a", "b"]
    assert f2.source_file == "R/defs.R"
    assert f2.line == 2


def test_unbalanced_signature_is_a_warning(tmp_path: Path):
    root = write_files(tmp_path / "pkg", {"R/bad.R": "good <- function(x) x\nbad <- function(x, y\n"})
    parsed = parse_r_file(root / "R" / "bad.R", root)
    assert [d.name for d in parsed.declarations] == ["good"]
    assert len(parsed.warnings) == 1
    assert "R/bad.R:2" in parsed.warnings[0]


def test_r6_class(r_package: Path):
    parsed = parse_r_file(r_package / "R" / "counter.R", r_package)
    assert len(parsed.declarations) == 1
    cls = parsed.declarations[0]
    assert cls.kind == DeclarationKind.CLASS
    assert cls.name == "Counter"
    assert [a.name for a in cls.arguments] == ["start"]
    assert [m.name for m in cls.methods] == ["increment"]
    assert cls.decorators == ["R6Class"]


def test_set_ref_class(tmp_path: Path):
    root = write_files(
        tmp_path / "pkg",
        {
            "R/acc.R": (
                'Account <- setRefClass("Account",\n'
                "  fields = list(balance = \"numeric\"),\n"
                "  methods = list(\n"
                "    deposit = function(x) { balance <<- balance + x },\n"
                "    show = function() cat(balance)\n"
                "  )\n"
                ")\n"
            )
        },
    )
    cls = parse_r_file(root / "R" / "acc.R", root).declarations[0]
    assert cls.name == "Account"
    assert [m.name for m in cls.methods] == ["deposit", "show"]


# --- Docs ---


def test_roxygen_block():
    block = parse_roxygen(
        [
            "Summarise a column",
            "",
            "Longer explanation of the",
            "summary.",
            "@param x,y Input vectors.",
            "@param na.rm Drop missing values?",
            "@return A `numeric` scalar.",
            "@seealso [mean()], \\link{median}",
            "@export",
        ]
    )
    doc = block.doc
    assert block.export
    assert doc.summary == "Summarise a column"
    assert doc.description == "Longer explanation of the summary."
    assert doc.arguments == {"x": "Input vectors.", "y": "Input vectors.", "na.rm": "Drop missing values?"}
    assert doc.returns == "A numeric scalar."
    assert doc.see_also == ["median", "mean"]


def test_roxygen_unhandled_tags_are_ignored():
    block = parse_roxygen(["Internal helper.", "@param x Value.", "@keywords internal", "@noRd"])
    assert not block.export
    assert block.doc.summary == "Internal helper."
    assert block.doc.arguments == {"x": "Value."}


def test_parse_rd_page(r_package: Path):
    page = parse_rd((r_package / "man" / "read_table.Rd").read_text())
    assert page.aliases == ["read_table"]
    assert page.doc.summary == "Read a delimited table"
    assert page.doc.arguments == {"path": "Path to the input file.", "sep": "Field separator character."}
    assert page.doc.returns == "A data frame."
    assert page.doc.description == "Reads a delimited text file into a data.frame."
    assert page.doc.examples == ['tbl <- read_table("data.csv")']


def test_rd_multi_name_items_and_links():
    page = parse_rd(
        "\\name{pair}\\alias{pair}\\alias{unpair}\\title{Pairs}"
        "\\arguments{\\item{x, y}{Vectors \\emph{of equal length}.}}"
        "\\seealso{\\code{\\link{unpair}}, \\link[stats]{median}}"
    )
    assert page.aliases == ["pair", "unpair"]
    assert page.doc.arguments["y"] == "Vectors of equal length."
    assert page.doc.see_also == ["unpair"]


# --- Tree ---


def test_parse_r_tree_visibility_and_docs(r_tree):
    result = parse_r_tree(r_tree)
    by_name = {d.name: d for d in result.declarations}

    assert result.metadata.name == "minir"
    assert set(by_name) == {"add", "hidden_helper", "read_table", "filter_rows", "is_tidy", "summarise_all_rows", "Counter"}
    assert by_name["add"].exported
    assert not by_name["hidden_helper"].exported
    assert by_name["summarise_all_rows"].exported  # exportPattern
    assert by_name["Counter"].exported

    # The Rd page wins over the roxygen block.
    assert by_name["read_table"].doc.summary == "Read a delimited table"
    assert by_name["filter_rows"].doc.see_also == ["read_table"]
    assert by_name["add"].doc.examples == ["add(1, 2)"]


def test_parse_r_tree_order_is_file_then_line(r_tree):
    result = parse_r_tree(r_tree)
    assert [(d.source_file, d.line) for d in result.declarations] == sorted(
        (d.source_file, d.line) for d in result.declarations
    )


def test_parse_r_tree_parallel_matches_serial(r_tree):
    serial = parse_r_tree(r_tree, max_workers=1)
    parallel = parse_r_tree(r_tree, max_workers=4)
    assert [d.name for d in serial.declarations] == [d.name for d in parallel.declarations]


def test_roxygen_exports_without_namespace(tmp_path: Path):
    root = write_files(
        tmp_path / "rox",
        {
            "DESCRIPTION": "Package: rox\nVersion: 1.0\n",
            "R/a.R": "#' Shown\n#' @export\nshown <- function() 1\n\nnot_shown <- function() 2\n",
        },
    )
    result = parse_r_tree(SourceTree(root=root, name="rox", version="1.0", language=Language.R))
    exported = {d.name: d.exported for d in result.declarations}
    assert exported == {"shown": True, "not_shown": False}


def test_missing_description_warns(tmp_path: Path):
    root = write_files(tmp_path / "bare", {"bare.R": "f <- function(x) x\n.g <- function() 1\n"})
    result = parse_r_tree(SourceTree(root=root, name="bare", version="unknown", language=Language.R))
    assert result.metadata.name == "bare"
    assert any("DESCRIPTION" in w for w in result.warnings)
    exported = {d.name: d.exported for d in result.declarations}
    assert exported == {"f": True, ".g": False}
