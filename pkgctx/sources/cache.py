"""On-disk cache of extracted package sources.

The cache is an explicit collaborator handed to the resolver; nothing is
cached unless one is supplied. Entries are keyed by source kind, package name
and the exact resolved version (or commit), so a hit always yields the same
tree the network would.
"""

from __future__ import annotations

import re
import shutil
import tempfile
from pathlib import Path

from pkgctx.logging import get_logger

logger = get_logger("cache")

_UNSAFE = re.compile(r"[^A-Za-z0-9._+-]")
_COMPLETE_MARKER = ".pkgctx-complete"


class SourceCache:
    """Directory of extracted source trees keyed by ``(kind, name, version)``."""

    def __init__(self, root: Path):
        self.root = Path(root).expanduser()

    def path_for(self, kind: str, name: str, version: str) -> Path:
        parts = [_UNSAFE.sub("_", p) for p in (kind, name, version)]
        return self.root.joinpath(*parts)

    def get(self, kind: str, name: str, version: str) -> Path | None:
        """Return the cached tree, or None when absent or incomplete."""
        entry = self.path_for(kind, name, version)
        if (entry / _COMPLETE_MARKER).is_file() and (entry / "tree").is_dir():
            logger.debug("Cache hit for %s %s %s", kind, name, version)
            return entry / "tree"
        return None

    def store(self, kind: str, name: str, version: str, source_root: Path) -> Path:
        """Copy ``source_root`` into the cache and return the cached tree.

        The copy is staged next to the entry and moved into place, so a
        crashed run never leaves a half-written entry behind.
        """
        entry = self.path_for(kind, name, version)
        entry.parent.mkdir(parents=True, exist_ok=True)
        staging = Path(tempfile.mkdtemp(prefix=".staging_", dir=entry.parent))
        try:
            shutil.copytree(source_root, staging / "tree", symlinks=True)
            (staging / _COMPLETE_MARKER).write_text(f"{kind} {name} {version}\n", encoding="utf-8")
            if entry.exists():
                shutil.rmtree(entry)
            staging.rename(entry)
        finally:
            if staging.exists():
                shutil.rmtree(staging, ignore_errors=True)
        logger.debug("Cached %s %s %s at %s", kind, name, version, entry)
        return entry / "tree"
