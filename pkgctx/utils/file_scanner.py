"""File scanner: discover package source files in a deterministic order."""

from pathlib import Path

# Directories to always skip
SKIP_DIRS = {
    ".git", "__pycache__", "node_modules", ".venv", "venv", ".env",
    "dist", "build", ".tox", ".mypy_cache", ".pytest_cache", ".ruff_cache",
    ".eggs", "site-packages", ".Rproj.user", "revdep",
}

# Python directories that never hold public API
PYTHON_SKIP_DIRS = {
    "tests", "test", "testing", "docs", "doc", "examples", "example",
    "benchmarks", "benchmark", "scripts", "tools",
}

PYTHON_SKIP_FILES = {"setup.py", "conftest.py", "noxfile.py", "fabfile.py"}

LANGUAGE_MAP = {
    ".py": "python",
    ".R": "r",
    ".r": "r",
}


def scan_python_files(source_root: Path) -> list[Path]:
    """Recursively list Python modules under ``source_root``, sorted by path."""
    files = []
    for item in source_root.rglob("*.py"):
        relative = item.relative_to(source_root)
        if not item.is_file() or _in_skipped_dir(relative, SKIP_DIRS | PYTHON_SKIP_DIRS):
            continue
        if item.name in PYTHON_SKIP_FILES or item.name.startswith("test_"):
            continue
        files.append(item)
    return sorted(files, key=lambda p: p.relative_to(source_root).as_posix())


def scan_r_files(package_root: Path) -> list[Path]:
    """List R source files: ``R/*.R`` or, without an ``R/`` directory, top-level ``*.R``."""
    r_dir = package_root / "R"
    base = r_dir if r_dir.is_dir() else package_root
    files = [p for p in base.iterdir() if p.is_file() and classify_file(p) == "r"]
    return sorted(files, key=lambda p: p.name)


def scan_rd_files(package_root: Path) -> list[Path]:
    """List Rd documentation pages in ``man/``."""
    man_dir = package_root / "man"
    if not man_dir.is_dir():
        return []
    return sorted((p for p in man_dir.glob("*.Rd") if p.is_file()), key=lambda p: p.name)


def _in_skipped_dir(relative: Path, skip: set[str]) -> bool:
    return any(part in skip for part in relative.parts[:-1])


def classify_file(path: Path) -> str | None:
    """Return the language classification for a file, or None if unknown."""
    return LANGUAGE_MAP.get(path.suffix)
