"""Git operations: resolve remote refs and fetch exact commits."""

from __future__ import annotations

import re
import shutil
from dataclasses import dataclass
from pathlib import Path

from git import Git, GitCommandError, Repo

_FULL_SHA = re.compile(r"^[0-9a-f]{40}$|^[0-9a-f]{64}$")

# Markers git prints when the remote repository itself does not exist.
_NOT_FOUND_MARKERS = ("not found", "does not exist", "could not read username", "authentication failed")


class GitRefError(Exception):
    """A git operation failed; ``missing`` tells a missing repo/ref from a transport error."""

    def __init__(self, message: str, missing: bool = False):
        super().__init__(message)
        self.missing = missing


@dataclass
class RemoteRef:
    """A ref advertised by ``git ls-remote``, resolved to its commit."""

    name: str
    commit: str


@dataclass
class CommitHandle:
    """A working tree checked out at exactly one commit.

    Use as a context manager to remove the checkout afterwards::

        with fetch_commit(url, sha, scratch) as handle:
            parse(handle.local_path)
    """

    local_path: Path
    commit: str
    source_url: str = ""

    def __enter__(self) -> CommitHandle:
        return self

    def __exit__(self, *exc) -> None:
        self.cleanup()

    def cleanup(self) -> None:
        if self.local_path.exists():
            shutil.rmtree(self.local_path, ignore_errors=True)


def list_remote_refs(url: str) -> dict[str, str]:
    """Map every advertised ref name to its commit, with annotated tags peeled.

    Raises:
        GitRefError: If the remote cannot be listed.
    """
    try:
        output = Git().ls_remote(url)
    except GitCommandError as exc:
        raise _git_error(exc) from exc

    refs: dict[str, str] = {}
    peeled: dict[str, str] = {}
    for line in output.splitlines():
        sha, _, name = line.partition("\t")
        if not name:
            continue
        if name.endswith("^{}"):
            peeled[name[:-3]] = sha
        else:
            refs[name] = sha
    refs.update(peeled)
    return refs


def resolve_ref(url: str, ref: str | None) -> RemoteRef:
    """Resolve a branch, tag or commit name to a commit of the remote.

    ``None`` resolves the remote's default branch (``HEAD``). A full hex
    commit id that no ref advertises is taken to be a commit.

    Raises:
        GitRefError: If the remote is unreachable or the ref does not exist.
    """
    refs = list_remote_refs(url)
    if ref is None:
        if "HEAD" not in refs:
            raise GitRefError(f"{url} advertises no HEAD", missing=True)
        return RemoteRef("HEAD", refs["HEAD"])

    for candidate in (ref, f"refs/tags/{ref}", f"refs/heads/{ref}"):
        if candidate in refs:
            return RemoteRef(candidate, refs[candidate])

    lowered = ref.lower()
    if _FULL_SHA.match(lowered):
        return RemoteRef(lowered, lowered)
    matches = sorted({sha for sha in refs.values() if sha.startswith(lowered)}) if len(lowered) >= 7 else []
    if len(matches) == 1:
        return RemoteRef(ref, matches[0])

    raise GitRefError(f"ref '{ref}' not found in {url}", missing=True)


def fetch_commit(url: str, commit: str, target_dir: Path) -> CommitHandle:
    """Shallow-fetch one commit of ``url`` into ``target_dir`` and check it out.

    Raises:
        GitRefError: If the fetch fails.
    """
    target_dir.mkdir(parents=True, exist_ok=True)
    try:
        repo = Repo.init(target_dir)
        repo.create_remote("origin", url)
        repo.git.fetch("--depth", "1", "origin", commit)
        repo.git.checkout("--detach", "FETCH_HEAD")
        head = repo.head.commit.hexsha
    except GitCommandError as exc:
        shutil.rmtree(target_dir, ignore_errors=True)
        raise _git_error(exc) from exc

    # The .git directory is not part of the package source.
    shutil.rmtree(target_dir / ".git", ignore_errors=True)
    return CommitHandle(local_path=target_dir, commit=head, source_url=url)


def _git_error(exc: GitCommandError) -> GitRefError:
    stderr = str(exc.stderr or exc).strip()
    missing = any(marker in stderr.lower() for marker in _NOT_FOUND_MARKERS)
    return GitRefError(stderr.splitlines()[-1] if stderr else "git command failed", missing=missing)
