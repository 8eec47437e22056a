"""Package registries (CRAN, PyPI) and source archive handling."""

from __future__ import annotations

import hashlib
import tarfile
import zipfile
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath

import httpx

from pkgctx.errors import ResolutionError
from pkgctx.ir.models import RegistryLocator
from pkgctx.ir.r_parser import parse_dcf
from pkgctx.logging import get_logger

logger = get_logger("registries")

_CHUNK_SIZE = 64 * 1024


@dataclass
class Artifact:
    """A downloadable source archive for one exact package version."""

    name: str
    version: str
    urls: list[str] = field(default_factory=list)
    """Candidate URLs, tried in order; a 404 moves on to the next one."""

    filename: str = ""
    sha256: str = ""


# --- HTTP helpers ---


def _get(client: httpx.Client, url: str, locator: str) -> httpx.Response:
    """GET ``url`` and map failures onto resolution errors."""
    try:
        response = client.get(url)
    except httpx.RequestError as exc:
        raise ResolutionError.unreachable(locator, f"{url}: {exc}") from exc
    if response.status_code == 404:
        raise ResolutionError.not_found(locator, f"{url} returned 404")
    if response.status_code >= 400:
        raise ResolutionError.unreachable(locator, f"{url} returned HTTP {response.status_code}")
    return response


def download(client: httpx.Client, artifact: Artifact, dest_dir: Path, locator: str) -> Path:
    """Download an artifact into ``dest_dir``, verifying its digest when known.

    Raises:
        ResolutionError: ``not_found`` when every URL returns 404,
            ``unreachable`` on transport errors or a digest mismatch.
    """
    last_error: ResolutionError | None = None
    for url in artifact.urls:
        target = dest_dir / (artifact.filename or PurePosixPath(httpx.URL(url).path).name)
        digest = hashlib.sha256()
        try:
            with client.stream("GET", url) as response:
                if response.status_code == 404:
                    last_error = ResolutionError.not_found(locator, f"{url} returned 404")
                    continue
                if response.status_code >= 400:
                    raise ResolutionError.unreachable(locator, f"{url} returned HTTP {response.status_code}")
                with open(target, "wb") as f:
                    for chunk in response.iter_bytes(_CHUNK_SIZE):
                        digest.update(chunk)
                        f.write(chunk)
        except httpx.RequestError as exc:
            raise ResolutionError.unreachable(locator, f"{url}: {exc}") from exc

        if artifact.sha256 and digest.hexdigest() != artifact.sha256.lower():
            target.unlink(missing_ok=True)
            raise ResolutionError.unreachable(locator, f"sha256 mismatch for {target.name}")
        logger.debug("Downloaded %s", url)
        return target

    raise last_error or ResolutionError.not_found(locator, "no download URL")


# --- CRAN ---


def cran_release(client: httpx.Client, mirror: str, locator: RegistryLocator) -> Artifact:
    """Find the source tarball for a CRAN package.

    Unpinned locators take the current release from the package's
    DESCRIPTION page. Pinned versions try the current tarball location first
    and the CRAN archive second.
    """
    name = locator.name
    version = locator.version
    if version is None:
        response = _get(client, f"{mirror}/web/packages/{name}/DESCRIPTION", locator.raw)
        fields = parse_dcf(response.text)
        version = fields.get("Version", "").strip()
        if not version:
            raise ResolutionError.not_found(locator.raw, "CRAN DESCRIPTION has no Version")
        name = fields.get("Package", name).strip() or name

    filename = f"{name}_{version}.tar.gz"
    return Artifact(
        name=name,
        version=version,
        urls=[
            f"{mirror}/src/contrib/{filename}",
            f"{mirror}/src/contrib/Archive/{name}/{filename}",
        ],
        filename=filename,
    )


# --- PyPI ---


def pypi_release(client: httpx.Client, index: str, locator: RegistryLocator) -> Artifact:
    """Find the source distribution (or, failing that, a wheel) on PyPI."""
    path = f"{locator.name}/{locator.version}" if locator.version else locator.name
    response = _get(client, f"{index}/pypi/{path}/json", locator.raw)
    try:
        data = response.json()
    except ValueError as exc:
        raise ResolutionError.unreachable(locator.raw, f"invalid PyPI response: {exc}") from exc

    info = data.get("info") or {}
    version = info.get("version") or locator.version or ""
    files = [f for f in data.get("urls") or [] if not f.get("yanked")]
    chosen = _pick_distribution(files)
    if chosen is None:
        raise ResolutionError.not_found(locator.raw, f"no downloadable files for version {version}")

    return Artifact(
        name=info.get("name") or locator.name,
        version=version,
        urls=[chosen["url"]],
        filename=chosen.get("filename", ""),
        sha256=(chosen.get("digests") or {}).get("sha256", ""),
    )


def _pick_distribution(files: list[dict]) -> dict | None:
    sdists = [f for f in files if f.get("packagetype") == "sdist"]
    if sdists:
        # Prefer .tar.gz over legacy .zip sdists.
        return sorted(sdists, key=lambda f: (not f.get("filename", "").endswith(".tar.gz"), f.get("filename", "")))[0]
    wheels = [f for f in files if f.get("packagetype") == "bdist_wheel"]
    if wheels:
        return sorted(wheels, key=lambda f: ("none-any" not in f.get("filename", ""), f.get("filename", "")))[0]
    return None


# --- Archives ---


def extract_archive(archive: Path, dest_dir: Path, locator: str) -> Path:
    """Extract a tarball, zip or wheel and return the package root inside it.

    Members that would land outside ``dest_dir`` reject the whole archive.
    """
    dest_dir.mkdir(parents=True, exist_ok=True)
    try:
        if zipfile.is_zipfile(archive):
            with zipfile.ZipFile(archive) as zf:
                for member in zf.namelist():
                    _check_member(member, locator)
                zf.extractall(dest_dir)
        elif tarfile.is_tarfile(archive):
            with tarfile.open(archive) as tf:
                tf.extractall(dest_dir, filter="data")
        else:
            raise ResolutionError.not_found(locator, f"{archive.name} is not a recognised archive")
    except (tarfile.TarError, zipfile.BadZipFile, EOFError) as exc:
        raise ResolutionError.not_found(locator, f"cannot extract {archive.name}: {exc}") from exc

    entries = [p for p in dest_dir.iterdir() if not p.name.startswith(".")]
    if len(entries) == 1 and entries[0].is_dir():
        return entries[0]
    return dest_dir


def _check_member(member: str, locator: str) -> None:
    path = PurePosixPath(member.replace("\\", "/"))
    if path.is_absolute() or ".." in path.parts:
        raise ResolutionError.not_found(locator, f"unsafe archive member '{member}'")
