"""Default package fetcher for git, archive and registry sources."""

from __future__ import annotations

import asyncio
import base64
import hashlib
import io
import logging
import re
import shutil
import tarfile
import uuid
import zipfile
from pathlib import Path, PurePosixPath
from typing import Any

import httpx
from git import Repo
from git.cmd import Git
from git.exc import GitCommandError

from agentskills.errors import FetchError
from agentskills.source import SourceDescriptor, SourceKind, classify_spec
from agentskills.types import SourceMetadata

logger = logging.getLogger(__name__)

DEFAULT_REGISTRY = "https://registry.npmjs.org"
DEFAULT_TIMEOUT = 30.0

GITHUB_URL = "https://github.com/{owner_repo}.git"

# git+ssh://git@host:owner/repo.git is scp-style, not a real ssh:// URL
SCP_STYLE_RE = re.compile(r"^(?P<host>[^/:]+@[^/:]+):(?P<path>[^\d/].*)$")

PACKAGE_SPEC_RE = re.compile(r"^(?P<name>@[^/@]+/[^@]+|[^@]+)(?:@(?P<version>.+))?$")


def git_url(descriptor: SourceDescriptor) -> str:
    """Get a clone URL for a git source descriptor.

    Args:
        descriptor: Descriptor of a git kind.

    Returns:
        URL GitPython can clone.
    """
    locator = descriptor.base_locator
    if descriptor.kind is SourceKind.VERSION_CONTROL_HOST:
        owner_repo = locator.split(":", 1)[1]
        return GITHUB_URL.format(owner_repo=owner_repo)
    if descriptor.kind is SourceKind.GIT_HTTP:
        return locator[len("git+"):]
    if descriptor.kind is SourceKind.GIT_SSH:
        remainder = locator[len("git+ssh://"):]
        match = SCP_STYLE_RE.match(remainder)
        if match:
            return f"{match.group('host')}:{match.group('path')}"
        return f"ssh://{remainder}"
    raise FetchError(f"Not a git source: {descriptor.spec}")


def split_package_spec(spec: str) -> tuple[str, str | None]:
    """Split ``name@version`` / ``@scope/name@version`` into name and version."""
    match = PACKAGE_SPEC_RE.match(spec)
    if not match:
        raise FetchError(f"Invalid package spec: {spec}")
    return match.group("name"), match.group("version")


def sri_digest(data: bytes) -> str:
    """Build a subresource-integrity string for downloaded content."""
    return "sha512-" + base64.b64encode(hashlib.sha512(data).digest()).decode("ascii")


def _member_parts(name: str) -> tuple[str, ...]:
    parts = tuple(p for p in PurePosixPath(name).parts if p not in ("", "."))
    if name.startswith("/") or ".." in parts:
        raise FetchError(f"Archive member escapes destination: {name}")
    return parts


def _strip_root(names: list[str]) -> int:
    """Number of leading path components shared by every archive member."""
    tops = set()
    nested = False
    for name in names:
        parts = _member_parts(name)
        if not parts:
            continue
        tops.add(parts[0])
        nested = nested or len(parts) > 1
    return 1 if len(tops) == 1 and nested else 0


def unpack_archive(data: bytes, dest: Path) -> None:
    """Unpack a zip or tar archive into dest.

    A single top-level directory (``package/`` in registry tarballs) is
    stripped. Links and special files are skipped.

    Args:
        data: Archive bytes.
        dest: Destination directory.

    Raises:
        FetchError: If the archive is unreadable or a member escapes dest.
    """
    dest.mkdir(parents=True, exist_ok=True)
    buffer = io.BytesIO(data)

    if zipfile.is_zipfile(buffer):
        with zipfile.ZipFile(buffer) as archive:
            infos = archive.infolist()
            strip = _strip_root([info.filename for info in infos])
            for info in infos:
                parts = _member_parts(info.filename)[strip:]
                if not parts:
                    continue
                target = dest.joinpath(*parts)
                if info.is_dir():
                    target.mkdir(parents=True, exist_ok=True)
                    continue
                target.parent.mkdir(parents=True, exist_ok=True)
                with archive.open(info) as src, target.open("wb") as out:
                    shutil.copyfileobj(src, out)
        return

    buffer.seek(0)
    try:
        archive = tarfile.open(fileobj=buffer, mode="r:*")
    except tarfile.TarError as e:
        raise FetchError(f"Unsupported archive format: {e}") from e

    with archive:
        members = [m for m in archive.getmembers() if m.isfile() or m.isdir()]
        strip = _strip_root([m.name for m in members])
        for member in members:
            parts = _member_parts(member.name)[strip:]
            if not parts:
                continue
            target = dest.joinpath(*parts)
            if member.isdir():
                target.mkdir(parents=True, exist_ok=True)
                continue
            target.parent.mkdir(parents=True, exist_ok=True)
            src = archive.extractfile(member)
            if src is None:
                continue
            with src, target.open("wb") as out:
                shutil.copyfileobj(src, out)


class DefaultFetcher:
    """Fetches skill sources with GitPython and httpx.

    Satisfies the PackageFetcher protocol structurally.
    """

    def __init__(
        self,
        registry_url: str = DEFAULT_REGISTRY,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the fetcher.

        Args:
            registry_url: Base URL of the package registry.
            timeout: HTTP timeout in seconds.
            transport: Optional httpx transport (used by tests).

        Note:
            Prefer using factory method `create()` for construction.
        """
        self.registry_url = registry_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport
        # Integrity of each URL as last downloaded
        self._digests: dict[str, str] = {}

    @classmethod
    def create(cls, registry_url: str | None = None) -> DefaultFetcher:
        """Create a fetcher for the given registry (defaults to the public npm registry)."""
        return cls(registry_url=registry_url or DEFAULT_REGISTRY)

    async def extract(self, spec: str, dest: Path, cache: Path | None = None) -> None:
        """Download a source and unpack it into dest."""
        descriptor = classify_spec(spec)
        logger.debug("Extracting %s (%s) into %s", spec, descriptor.kind.value, dest)

        if descriptor.kind in (
            SourceKind.VERSION_CONTROL_HOST,
            SourceKind.GIT_HTTP,
            SourceKind.GIT_SSH,
        ):
            await asyncio.to_thread(self._clone, git_url(descriptor), dest, descriptor.committish)
        elif descriptor.kind is SourceKind.ARCHIVE_URL:
            data = await self._download(descriptor.base_locator, cache)
            await asyncio.to_thread(unpack_archive, data, dest)
        elif descriptor.kind is SourceKind.REGISTRY_PACKAGE:
            manifest = await self._registry_manifest(descriptor.base_locator)
            tarball = manifest.get("dist", {}).get("tarball")
            if not tarball:
                raise FetchError(f"Registry package {spec} has no tarball")
            data = await self._download(tarball, cache)
            await asyncio.to_thread(unpack_archive, data, dest)
        else:
            raise FetchError(f"Local sources are not fetched: {spec}")

    async def fetch_metadata(self, spec: str, cache: Path | None = None) -> SourceMetadata:
        """Resolve version, revision and integrity for a source."""
        descriptor = classify_spec(spec)

        if descriptor.kind in (
            SourceKind.VERSION_CONTROL_HOST,
            SourceKind.GIT_HTTP,
            SourceKind.GIT_SSH,
        ):
            revision = await asyncio.to_thread(
                self._remote_revision, git_url(descriptor), descriptor.committish
            )
            return SourceMetadata(revision=revision)

        if descriptor.kind is SourceKind.ARCHIVE_URL:
            url = descriptor.base_locator
            if url not in self._digests:
                await self._download(url, cache)
            return SourceMetadata(integrity=self._digests[url])

        if descriptor.kind is SourceKind.REGISTRY_PACKAGE:
            manifest = await self._registry_manifest(descriptor.base_locator)
            dist = manifest.get("dist", {})
            return SourceMetadata(
                integrity=dist.get("integrity"),
                version=manifest.get("version"),
                revision=manifest.get("gitHead"),
            )

        raise FetchError(f"Local sources have no remote metadata: {spec}")

    def _clone(self, url: str, dest: Path, ref: str | None) -> None:
        """Clone url into dest at ref and drop the .git directory.

        Tries a shallow clone of the ref first (works for branches and tags).
        Falls back to a full clone and checkout for commit ids.
        """
        try:
            if ref:
                try:
                    Repo.clone_from(url, dest, branch=ref, depth=1)
                except GitCommandError as e:
                    logger.debug("Shallow clone of '%s' failed, trying full clone: %s", ref, e)
                    self._cleanup_failed_clone(dest)
                    repo = Repo.clone_from(url, dest)
                    repo.git.checkout(ref)
            else:
                Repo.clone_from(url, dest, depth=1)
        except GitCommandError:
            self._cleanup_failed_clone(dest)
            raise

        shutil.rmtree(dest / ".git", ignore_errors=True)

    def _cleanup_failed_clone(self, path: Path) -> None:
        if path.exists():
            shutil.rmtree(path, ignore_errors=True)

    def _remote_revision(self, url: str, ref: str | None) -> str | None:
        """Look up the commit a ref points to without cloning."""
        output = Git().ls_remote(url, ref or "HEAD")
        for line in output.splitlines():
            sha, _, _name = line.partition("\t")
            if sha:
                return sha
        # A bare commit id is not advertised by the remote
        return ref

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.timeout, follow_redirects=True, transport=self.transport
        )

    async def _download(self, url: str, cache: Path | None) -> bytes:
        """Download url, reusing a cached copy when a cache dir is set."""
        cached = None
        if cache is not None:
            cached = cache / "archives" / hashlib.sha256(url.encode("utf-8")).hexdigest()
            if cached.is_file():
                logger.debug("Using cached archive for %s", url)
                data = await asyncio.to_thread(cached.read_bytes)
                self._digests[url] = sri_digest(data)
                return data

        async with self._client() as client:
            response = await client.get(url)
            response.raise_for_status()
            data = response.content

        self._digests[url] = sri_digest(data)
        if cached is not None:
            await asyncio.to_thread(self._write_cache, cached, data)
        return data

    def _write_cache(self, path: Path, data: bytes) -> None:
        # Cache is shared between concurrent installs; publish with an atomic rename
        path.parent.mkdir(parents=True, exist_ok=True)
        partial = path.with_name(f"{path.name}.{uuid.uuid4().hex}.part")
        partial.write_bytes(data)
        partial.replace(path)

    async def _registry_manifest(self, spec: str) -> dict[str, Any]:
        """Get the registry manifest for one version of a package."""
        name, wanted = split_package_spec(spec)
        url = f"{self.registry_url}/{name.replace('/', '%2f')}"

        async with self._client() as client:
            response = await client.get(url, headers={"Accept": "application/json"})
            response.raise_for_status()
            document = response.json()

        versions = document.get("versions", {})
        dist_tags = document.get("dist-tags", {})
        version = wanted or "latest"
        if version not in versions:
            version = dist_tags.get(version, version)
        if version not in versions:
            raise FetchError(f"No matching version found for {name}@{wanted or 'latest'}")
        return versions[version]
