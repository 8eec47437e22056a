"""Locator parsing: turn the user's package identifier into a typed locator.

Grammar::

    github:owner/repo[@ref]
    ./path | /path | ~/path | local:path
    name[@version]          (CRAN or PyPI)
    name==version           (PyPI only)
"""

from __future__ import annotations

import re
from pathlib import Path

from pkgctx.errors import ResolutionError
from pkgctx.ir.models import (
    GitHubLocator,
    Language,
    LocalPathLocator,
    PackageLocator,
    RegistryLocator,
)

GITHUB_PREFIX = "github:"
LOCAL_PREFIX = "local:"

_CRAN_NAME = re.compile(r"^[A-Za-z][A-Za-z0-9.]*[A-Za-z0-9]$")
_PYPI_NAME = re.compile(r"^(?:[A-Za-z0-9]|[A-Za-z0-9][A-Za-z0-9._-]*[A-Za-z0-9])$")
_VERSION = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._+!-]*$")
_GITHUB_OWNER = re.compile(r"^[A-Za-z0-9](?:[A-Za-z0-9-]{0,38})$")
_GITHUB_REPO = re.compile(r"^[A-Za-z0-9._-]+$")
_GIT_REF = re.compile(r"^[^\s~^:?*\[\\]+$")


def is_local(text: str) -> bool:
    return text.startswith((".", "/", "~", LOCAL_PREFIX))


def parse_locator(text: str, language: Language) -> PackageLocator:
    """Parse a locator string for the given language.

    Raises:
        ResolutionError: With reason ``invalid_locator`` if the text matches
            no form of the grammar.
    """
    raw = text
    text = text.strip()
    if not text:
        raise ResolutionError.invalid(raw, "empty locator")

    if is_local(text):
        return _parse_local(text, raw)
    if text.startswith(GITHUB_PREFIX):
        return _parse_github(text[len(GITHUB_PREFIX) :], raw)
    return _parse_registry(text, raw, language)


def _parse_local(text: str, raw: str) -> LocalPathLocator:
    path_text = text.removeprefix(LOCAL_PREFIX)
    if not path_text:
        raise ResolutionError.invalid(raw, "empty path")
    path = Path(path_text).expanduser()
    if not path.is_absolute():
        path = Path.cwd() / path
    return LocalPathLocator(path=path.resolve(), raw=raw)


def _parse_github(rest: str, raw: str) -> GitHubLocator:
    slug, at, ref = rest.partition("@")
    owner, slash, repo = slug.partition("/")
    if not slash or "/" in repo:
        raise ResolutionError.invalid(raw, "expected github:owner/repo[@ref]")
    repo = repo.removesuffix(".git")
    if not _GITHUB_OWNER.match(owner) or not _GITHUB_REPO.match(repo) or repo in (".", ".."):
        raise ResolutionError.invalid(raw, "invalid GitHub owner or repository name")
    if at and (not ref or ".." in ref or not _GIT_REF.match(ref)):
        raise ResolutionError.invalid(raw, f"invalid git ref '{ref}'")
    return GitHubLocator(owner=owner, repo=repo, ref=ref or None, raw=raw)


def _parse_registry(text: str, raw: str, language: Language) -> RegistryLocator:
    if "==" in text:
        if language != Language.PYTHON:
            raise ResolutionError.invalid(raw, "'name==version' pins are only valid for Python packages")
        name, _, version = text.partition("==")
    elif "@" in text:
        name, _, version = text.partition("@")
    else:
        name, version = text, ""

    name_rule = _CRAN_NAME if language == Language.R else _PYPI_NAME
    registry = "CRAN" if language == Language.R else "PyPI"
    if not name_rule.match(name):
        raise ResolutionError.invalid(raw, f"'{name}' is not a valid {registry} package name")
    if ("==" in text or "@" in text) and not _VERSION.match(version):
        raise ResolutionError.invalid(raw, f"invalid version '{version}'")
    return RegistryLocator(name=name, version=version or None, raw=raw)
