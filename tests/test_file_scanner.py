"""Tests for the file scanner utility."""

import tempfile
from pathlib import Path

from pkgctx.utils.file_scanner import SKIP_DIRS, classify_file, scan_python_files, scan_r_files, scan_rd_files


def test_classify_known_extensions():
    assert classify_file(Path("foo.py")) == "python"
    assert classify_file(Path("bar.R")) == "r"
    assert classify_file(Path("baz.r")) == "r"


def test_classify_unknown_extension():
    assert classify_file(Path("readme.md")) is None
    assert classify_file(Path("page.Rd")) is None
    assert classify_file(Path("image.png")) is None


def test_scan_python_finds_modules_in_order():
    with tempfile.TemporaryDirectory() as tmpdir:
        root = Path(tmpdir)
        (root / "pkg" / "sub").mkdir(parents=True)
        (root / "pkg" / "b.py").write_text("pass")
        (root / "pkg" / "a.py").write_text("pass")
        (root / "pkg" / "sub" / "c.py").write_text("pass")
        (root / "readme.md").write_text("# readme")

        files = scan_python_files(root)
        assert [f.relative_to(root).as_posix() for f in files] == ["pkg/a.py", "pkg/b.py", "pkg/sub/c.py"]


def test_scan_python_skips_tests_and_tooling():
    with tempfile.TemporaryDirectory() as tmpdir:
        root = Path(tmpdir)
        for relative in (
            "pkg/core.py",
            "pkg/test_core.py",
            "tests/test_api.py",
            "docs/conf.py",
            "build/lib/pkg/core.py",
            "node_modules/x.py",
            "setup.py",
            "conftest.py",
        ):
            path = root / relative
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text("pass")

        files = scan_python_files(root)
        assert [f.relative_to(root).as_posix() for f in files] == ["pkg/core.py"]


def test_scan_r_prefers_r_directory():
    with tempfile.TemporaryDirectory() as tmpdir:
        root = Path(tmpdir)
        (root / "R").mkdir()
        (root / "R" / "zz.R").write_text("")
        (root / "R" / "aa.r").write_text("")
        (root / "R" / "notes.txt").write_text("")
        (root / "top.R").write_text("")

        assert [f.name for f in scan_r_files(root)] == ["aa.r", "zz.R"]


def test_scan_r_without_r_directory_uses_top_level():
    with tempfile.TemporaryDirectory() as tmpdir:
        root = Path(tmpdir)
        (root / "top.R").write_text("")
        assert [f.name for f in scan_r_files(root)] == ["top.R"]


def test_scan_rd_files():
    with tempfile.TemporaryDirectory() as tmpdir:
        root = Path(tmpdir)
        assert scan_rd_files(root) == []
        (root / "man").mkdir()
        (root / "man" / "b.Rd").write_text("")
        (root / "man" / "a.Rd").write_text("")
        (root / "man" / "macros").mkdir()
        assert [f.name for f in scan_rd_files(root)] == ["a.Rd", "b.Rd"]


def test_skip_dirs_contains_expected():
    assert ".git" in SKIP_DIRS
    assert "node_modules" in SKIP_DIRS
    assert "__pycache__" in SKIP_DIRS
