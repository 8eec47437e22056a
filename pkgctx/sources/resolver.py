"""Source resolver: turn a locator into a local, read-only source tree."""

from __future__ import annotations

import shutil
import tempfile
import time
from pathlib import Path
from typing import Callable, TypeVar

import httpx

from pkgctx import __version__
from pkgctx.config import PkgctxConfig
from pkgctx.errors import ResolutionError
from pkgctx.ir.models import (
    GitHubLocator,
    Language,
    LocalPathLocator,
    PackageLocator,
    PackageMetadata,
    RegistryLocator,
    SourceTree,
)
from pkgctx.ir.python_parser import read_python_metadata
from pkgctx.ir.r_parser import read_description
from pkgctx.logging import get_logger
from pkgctx.sources.cache import SourceCache
from pkgctx.sources.registries import cran_release, download, extract_archive, pypi_release
from pkgctx.utils.git_ops import GitRefError, fetch_commit, resolve_ref

logger = get_logger("resolver")

T = TypeVar("T")

_SHORT_SHA = 12


def read_manifest(root: Path, language: Language) -> PackageMetadata:
    """Read name/version/description from the package manifest."""
    if language == Language.R:
        return read_description(root)
    return read_python_metadata(root)


class Resolver:
    """Resolve locators for one language.

    The HTTP client, cache and sleep function are injectable so tests can run
    without a network and without waiting on backoff.
    """

    def __init__(
        self,
        language: Language,
        config: PkgctxConfig | None = None,
        *,
        client: httpx.Client | None = None,
        cache: SourceCache | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.language = language
        self.config = config or PkgctxConfig()
        self.cache = cache
        self.sleep = sleep
        self._client = client
        self._owns_client = client is None

    def __enter__(self) -> Resolver:
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    @property
    def client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(
                timeout=self.config.http_timeout,
                follow_redirects=True,
                headers={"User-Agent": f"pkgctx/{__version__}"},
            )
        return self._client

    def close(self) -> None:
        if self._owns_client and self._client is not None:
            self._client.close()
            self._client = None

    def resolve(self, locator: PackageLocator) -> SourceTree:
        """Produce a source tree for ``locator``.

        Raises:
            ResolutionError: If the locator cannot be resolved.
        """
        if isinstance(locator, LocalPathLocator):
            return self._resolve_local(locator)
        if isinstance(locator, GitHubLocator):
            return self._with_retries(locator.raw, lambda: self._resolve_github(locator))
        return self._with_retries(locator.raw, lambda: self._resolve_registry(locator))

    # --- Retry ---

    def _with_retries(self, locator_text: str, action: Callable[[], T]) -> T:
        attempt = 0
        while True:
            try:
                return action()
            except ResolutionError as exc:
                if not exc.retryable or attempt >= self.config.retries:
                    raise
                delay = self.config.backoff_base * (2**attempt)
                attempt += 1
                logger.warning(
                    "Retrying %s in %.1fs (attempt %d of %d): %s",
                    locator_text, delay, attempt, self.config.retries, exc.detail or exc,
                )
                self.sleep(delay)

    # --- Local ---

    def _resolve_local(self, locator: LocalPathLocator) -> SourceTree:
        path = locator.path
        if not path.is_dir():
            raise ResolutionError.not_found(locator.raw, f"{path} is not a readable directory")
        try:
            next(path.iterdir(), None)
        except OSError as exc:
            raise ResolutionError.not_found(locator.raw, str(exc)) from exc
        metadata = read_manifest(path, self.language)
        return SourceTree(root=path, name=metadata.name, version=metadata.version, language=self.language)

    # --- Registries ---

    def _resolve_registry(self, locator: RegistryLocator) -> SourceTree:
        if self.language == Language.R:
            kind = "cran"
            artifact = cran_release(self.client, self.config.cran_mirror, locator)
        else:
            kind = "pypi"
            artifact = pypi_release(self.client, self.config.pypi_index, locator)
        logger.debug("Resolved %s to %s %s", locator.raw, artifact.name, artifact.version)

        if self.cache is not None:
            cached = self.cache.get(kind, artifact.name, artifact.version)
            if cached is not None:
                return SourceTree(root=cached, name=artifact.name, version=artifact.version, language=self.language)

        scratch = Path(tempfile.mkdtemp(prefix="pkgctx_"))
        try:
            archive = download(self.client, artifact, scratch, locator.raw)
            root = extract_archive(archive, scratch / "src", locator.raw)
            if self.cache is not None:
                root = self.cache.store(kind, artifact.name, artifact.version, root)
        except BaseException:
            shutil.rmtree(scratch, ignore_errors=True)
            raise
        return SourceTree(
            root=root,
            name=artifact.name,
            version=artifact.version,
            language=self.language,
            scratch_dir=scratch,
        )

    # --- GitHub ---

    def _resolve_github(self, locator: GitHubLocator) -> SourceTree:
        url = f"{self.config.github_base}/{locator.slug}.git"
        try:
            remote = resolve_ref(url, locator.ref)
        except GitRefError as exc:
            raise self._git_failure(locator, exc) from exc
        commit = remote.commit
        logger.debug("Resolved %s to commit %s (%s)", locator.raw, commit, remote.name)

        if self.cache is not None:
            cached = self.cache.get("github", locator.slug, commit)
            if cached is not None:
                return self._github_tree(locator, cached, commit, None)

        scratch = Path(tempfile.mkdtemp(prefix="pkgctx_"))
        try:
            handle = fetch_commit(url, commit, scratch / "src")
            root = handle.local_path
            if self.cache is not None:
                root = self.cache.store("github", locator.slug, handle.commit, root)
        except GitRefError as exc:
            shutil.rmtree(scratch, ignore_errors=True)
            raise self._git_failure(locator, exc) from exc
        except BaseException:
            shutil.rmtree(scratch, ignore_errors=True)
            raise
        return self._github_tree(locator, root, handle.commit, scratch)

    def _github_tree(self, locator: GitHubLocator, root: Path, commit: str, scratch: Path | None) -> SourceTree:
        metadata = read_manifest(root, self.language)
        version = metadata.version if metadata.version != "unknown" else commit[:_SHORT_SHA]
        name = metadata.name if metadata.name != root.name else locator.repo
        return SourceTree(
            root=root,
            name=name,
            version=version,
            language=self.language,
            revision=commit,
            pinned=locator.ref is not None,
            scratch_dir=scratch,
        )

    @staticmethod
    def _git_failure(locator: GitHubLocator, exc: GitRefError) -> ResolutionError:
        if exc.missing:
            return ResolutionError.not_found(locator.raw, str(exc))
        return ResolutionError.unreachable(locator.raw, str(exc))
