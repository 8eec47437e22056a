"""Shared fixtures: small R and Python package trees built on disk."""

from pathlib import Path

import pytest

from pkgctx.ir.models import Language, SourceTree

R_DESCRIPTION = """\
Package: minir
Type: Package
Title: Tiny Helpers for Tables
Version: 0.2.1
Description: Small helpers used to exercise the extractor. They read,
    filter and summarise tables.
License: MIT
"""

R_NAMESPACE = """\
# Generated by roxygen2: do not edit by hand

export(add)
export(read_table)
export(filter_rows)
export(is_tidy)
export(Counter)
exportPattern("^summarise_")
S3method(print, counter)
"""

R_MATH = """\
#' Add two numbers
#'
#' @param a A number.
#' @param b A number.
#' @return The sum of a and b.
#' @examples
#' add(1, 2)
#' @export
add <- function(a, b) {
  a + b
}

hidden_helper <- function(x) x
"""

R_TABLES = """\
#' Read a table from disk
#'
#' @param path Path to the file.
#' @param sep Field separator.
read_table <- function(path, sep = ',') {
  utils::read.csv(path, sep = sep)
}

#' Keep rows matching a condition
#'
#' @param data A data frame.
#' @param cond Logical condition. Must be a single expression.
#' @return A data frame with the matching rows.
#' @examples
#' df <- read_table("input.csv")
#' filter_rows(df, x > 1)
#' @seealso [read_table()]
filter_rows <- function(data, cond) {
  data[cond, ]
}

is_tidy <- function(data) TRUE

summarise_all_rows <- function(data, ...) NULL
"""

R_COUNTER = """\
Counter <- R6::R6Class("Counter",
  public = list(
    initialize = function(start = 0L) {
      private$n <- start
    },
    increment = function(by = 1L) {
      private$n <- private$n + by
      invisible(self)
    }
  ),
  private = list(
    n = 0L,
    reset = function() private$n <- 0L
  )
)
"""

R_READ_TABLE_RD = r"""% Generated by roxygen2: do not edit by hand
\name{read_table}
\alias{read_table}
\title{Read a delimited table}
\usage{
read_table(path, sep = ",")
}
\arguments{
\item{path}{Path to the input file.}

\item{sep}{Field separator character.}
}
\value{
A data frame.
}
\description{
Reads a delimited text file into a \code{data.frame}.
}
\examples{
\dontrun{
tbl <- read_table("data.csv")
}
}
"""

PY_PYPROJECT = """\
[project]
name = "minipy"
version = "1.4.0"
description = "Tiny geometry helpers."
"""

PY_INIT = '''\
"""Tiny geometry helpers."""

from .shapes import Circle, area, make_circle
'''

PY_SHAPES = '''\
from dataclasses import dataclass


@dataclass
class Circle:
    """A circle in the plane.

    Args:
        radius: Radius of the circle. Must be positive.
    """

    radius: float

    def scale(self, factor: float) -> "Circle":
        """Return a scaled copy."""
        return Circle(self.radius * factor)

    def _check(self):
        return self.radius > 0


def area(circle: Circle) -> float:
    """Compute the area of a circle.

    Args:
        circle: The circle to measure.

    Returns:
        float: The enclosed area.

    Examples:
        >>> c = make_circle(2.0)
        >>> area(c)
        12.566
    """
    return 3.14159 * circle.radius**2


def make_circle(radius: float = 1.0) -> Circle:
    """Create a circle.

    :param radius: Radius of the new circle.
    :returns: A new Circle.
    """
    return Circle(radius)


def _helper(x):
    return x
'''

PY_INTERNAL = '''\
def describe(shape, *, precise=False):
    """Describe a shape in words."""
    return str(shape)
'''


def write_files(root: Path, files: dict[str, str]) -> Path:
    """Write ``{relative path: content}`` under ``root`` and return ``root``."""
    for relative, content in files.items():
        path = root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
    return root


@pytest.fixture
def r_package(tmp_path: Path) -> Path:
    return write_files(
        tmp_path / "minir",
        {
            "DESCRIPTION": R_DESCRIPTION,
            "NAMESPACE": R_NAMESPACE,
            "R/math.R": R_MATH,
            "R/tables.R": R_TABLES,
            "R/counter.R": R_COUNTER,
            "man/read_table.Rd": R_READ_TABLE_RD,
        },
    )


@pytest.fixture
def python_package(tmp_path: Path) -> Path:
    return write_files(
        tmp_path / "minipy-src",
        {
            "pyproject.toml": PY_PYPROJECT,
            "minipy/__init__.py": PY_INIT,
            "minipy/shapes.py": PY_SHAPES,
            "minipy/_internal.py": PY_INTERNAL,
            "tests/test_shapes.py": "def test_area():\n    assert True\n",
            "setup.py": "from setuptools import setup\nsetup()\n",
        },
    )


@pytest.fixture
def r_tree(r_package: Path) -> SourceTree:
    return SourceTree(root=r_package, name="minir", version="0.2.1", language=Language.R)


@pytest.fixture
def python_tree(python_package: Path) -> SourceTree:
    return SourceTree(root=python_package, name="minipy", version="1.4.0", language=Language.PYTHON)
