"""Installation of skills from source specs."""

from __future__ import annotations

import asyncio
import errno
import json
import logging
import os
import uuid
from collections.abc import AsyncIterator, Mapping
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Callable

from agentskills.errors import (
    InvalidSkillFormatError,
    MissingManifestError,
    SpecError,
    SubpathError,
    classify_error,
)
from agentskills.filesystem import RealFileSystem
from agentskills.lockfile import LockFile, LockFileManager
from agentskills.parser import Skill, SkillParser, parse_skill
from agentskills.protocols import ContentParser, FileSystem, PackageFetcher
from agentskills.source import SourceDescriptor, classify_spec, is_valid_spec
from agentskills.types import (
    BatchResult,
    ErrorCode,
    InstallResult,
    SkillManifest,
    SourceMetadata,
)

logger = logging.getLogger(__name__)

SKILL_FILE = "SKILL.md"
PACKAGE_FILE = "package.json"

LOCAL_VERSION = "local"
LATEST_VERSION = "latest"
SHORT_REVISION_LENGTH = 7


def resolve_version(descriptor: SourceDescriptor, metadata: SourceMetadata) -> str:
    """Pick the version recorded for a remote install.

    Priority: fragment committish, declared version, short revision, "latest".

    Args:
        descriptor: Descriptor of the installed source.
        metadata: Metadata reported by the fetcher.

    Returns:
        Resolved version string.
    """
    if descriptor.committish:
        return descriptor.committish
    if metadata.version:
        return metadata.version
    if metadata.revision:
        return metadata.revision[:SHORT_REVISION_LENGTH]
    return LATEST_VERSION


class SkillInstaller:
    """Installs skills into a skills directory.

    Follows Separate Use from Creation: constructor requires all dependencies.
    Use factory method `create()` for production instantiation with defaults.

    Each install owns ``<skills_dir>/<name>`` for its duration. Concurrent
    installs of the same name are not guarded.
    """

    def __init__(
        self,
        skills_dir: Path,
        fetcher: PackageFetcher,
        parser: ContentParser,
        filesystem: FileSystem,
        cache_dir: Path | None = None,
        home: Callable[[], Path] = Path.home,
    ) -> None:
        """Initialize installer with required dependencies.

        Args:
            skills_dir: Directory skills are installed into.
            fetcher: Package fetcher for remote sources.
            parser: SKILL.md content parser.
            filesystem: Filesystem abstraction.
            cache_dir: Optional cache shared with the fetcher.
            home: Home directory lookup for ``file:~/`` specs.

        Raises:
            ValueError: If skills_dir is empty.
        """
        if not str(skills_dir).strip():
            raise ValueError("Skills directory is required")
        self.skills_dir = Path(skills_dir)
        self.fetcher = fetcher
        self.parser = parser
        self.fs = filesystem
        self.cache_dir = cache_dir
        self.home = home
        self.lock = LockFileManager(self.skills_dir)

    @classmethod
    def create(
        cls,
        skills_dir: Path,
        cache_dir: Path | None = None,
        fetcher: PackageFetcher | None = None,
        parser: ContentParser | None = None,
        filesystem: FileSystem | None = None,
    ) -> SkillInstaller:
        """Factory method for production instantiation.

        Args:
            skills_dir: Directory skills are installed into.
            cache_dir: Optional download cache directory.
            fetcher: Optional fetcher (DefaultFetcher if not provided).
            parser: Optional content parser (SkillParser if not provided).
            filesystem: Optional filesystem (RealFileSystem if not provided).

        Returns:
            Configured SkillInstaller instance.
        """
        if fetcher is None:
            from agentskills.fetcher import DefaultFetcher

            fetcher = DefaultFetcher.create()
        return cls(
            skills_dir=skills_dir,
            fetcher=fetcher,
            parser=parser or SkillParser(),
            filesystem=filesystem or RealFileSystem(),
            cache_dir=cache_dir,
        )

    async def install(self, name: str, spec: str) -> InstallResult:
        """Install a skill from a spec.

        Args:
            name: Directory name for the installed skill.
            spec: Source spec (e.g. ``github:user/repo#v1.0.0``, ``file:./skill``).

        Returns:
            InstallResult. Every failure other than an invalid name is reported
            here rather than raised.

        Raises:
            ValueError: If name is empty or not a single path segment.
        """
        if not name or not name.strip():
            raise ValueError("Skill name is required")
        if Path(name).name != name or name == "..":
            raise ValueError(f"Invalid skill name: {name!r}")

        if not spec or not spec.strip():
            return InstallResult.failed(name, spec, ErrorCode.INVALID_SPEC, "Package spec is required")
        if not is_valid_spec(spec):
            return InstallResult.failed(
                name, spec, ErrorCode.INVALID_SPEC, "Invalid package spec format"
            )

        target = self.skills_dir / name
        logger.debug("Installing %s from %s into %s", name, spec, target)

        try:
            async with self._owned_target(target):
                descriptor = classify_spec(spec, self.home)
                await self._materialize(descriptor, target)
                manifest = await self._read_manifest(target)
                resolved_version, integrity = await self._resolve(descriptor, target, manifest)
        except MissingManifestError as e:
            return InstallResult.failed(name, spec, ErrorCode.MISSING_SKILL_MD, str(e))
        except InvalidSkillFormatError as e:
            return InstallResult.failed(name, spec, ErrorCode.INVALID_SKILL_FORMAT, str(e))
        except Exception as e:
            logger.warning("Installation failed for %s: %s", name, e)
            return classify_error(name, spec, e)

        logger.debug("Installed %s at %s", name, resolved_version)
        return InstallResult.ok(
            name=name,
            spec=spec,
            resolved_version=resolved_version,
            integrity=integrity,
            install_path=target,
            manifest=manifest,
        )

    async def install_all(self, specs: Mapping[str, str]) -> BatchResult:
        """Install many skills concurrently.

        One entry's failure never stops another; results are aggregated
        after every install has settled.

        Args:
            specs: Mapping of skill name to source spec.

        Returns:
            BatchResult with per-skill results.
        """
        names = list(specs)
        outcomes = await asyncio.gather(
            *(self.install(name, specs[name]) for name in names),
            return_exceptions=True,
        )

        results: dict[str, InstallResult] = {}
        for name, outcome in zip(names, outcomes):
            if isinstance(outcome, BaseException):
                raise outcome
            results[name] = outcome

        installed = {name for name, result in results.items() if result.success}
        failed = set(results) - installed
        return BatchResult(success=not failed, installed=installed, failed=failed, results=results)

    async def generate_lock_file(self, results: Mapping[str, InstallResult]) -> LockFile:
        """Write skills-lock.json from install results (successes only)."""
        return await asyncio.to_thread(self.lock.generate_lock_file, results)

    async def read_lock_file(self) -> LockFile | None:
        """Read skills-lock.json, or None if missing or malformed."""
        return await asyncio.to_thread(self.lock.read_lock_file)

    async def get_manifest(self, spec: str) -> SkillManifest:
        """Read a skill's manifest without installing it.

        The source is extracted into a scratch directory that is always
        removed afterwards.

        Args:
            spec: Source spec.

        Returns:
            SkillManifest of the skill.

        Raises:
            SpecError: If the spec is invalid.
            MissingManifestError: If the source has no SKILL.md.
            InvalidSkillFormatError: If SKILL.md cannot be parsed.
        """
        if not is_valid_spec(spec):
            raise SpecError("Invalid package spec format")

        descriptor = classify_spec(spec, self.home)
        async with self._scratch_dir(".temp-") as scratch:
            await self._materialize(descriptor, scratch)
            return await self._read_manifest(scratch)

    async def load_installed_skills(self) -> list[Skill]:
        """Parse every installed skill in the skills directory.

        Hidden directories and skills that fail to parse are skipped.

        Returns:
            List of parsed skills, ordered by directory name.
        """
        return await asyncio.to_thread(self._scan_installed)

    @asynccontextmanager
    async def _owned_target(self, target: Path) -> AsyncIterator[Path]:
        """Clean the target before use and remove it if the block fails."""
        await asyncio.to_thread(self.fs.remove, target)
        await asyncio.to_thread(self.fs.mkdir, self.skills_dir, parents=True, exist_ok=True)
        try:
            yield target
        except Exception:
            await asyncio.to_thread(self.fs.remove, target)
            raise

    @asynccontextmanager
    async def _scratch_dir(self, prefix: str) -> AsyncIterator[Path]:
        """Temporary directory under the cache (or skills) dir, always removed."""
        root = self.cache_dir or self.skills_dir
        scratch = root / f"{prefix}{uuid.uuid4().hex}"
        await asyncio.to_thread(self.fs.mkdir, scratch, parents=True, exist_ok=True)
        try:
            yield scratch
        finally:
            await asyncio.to_thread(self.fs.remove, scratch)

    async def _materialize(self, descriptor: SourceDescriptor, dest: Path) -> None:
        """Put the skill's files into dest according to the source kind."""
        if descriptor.subdir:
            await self._extract_subdirectory(descriptor, dest)
        elif descriptor.is_local:
            await self._copy_local(Path(descriptor.base_locator), dest)
        else:
            await self.fetcher.extract(descriptor.fetch_spec, dest, cache=self.cache_dir)

    async def _extract_subdirectory(self, descriptor: SourceDescriptor, dest: Path) -> None:
        """Fetch the whole source into scratch space and copy one sub-path out."""
        subdir = descriptor.subdir or ""
        fetch_spec = descriptor.fetch_spec

        async with self._scratch_dir(".repo-") as scratch:
            await self.fetcher.extract(fetch_spec, scratch, cache=self.cache_dir)

            source = (scratch / subdir).resolve()
            if not source.is_relative_to(scratch.resolve()) or not await asyncio.to_thread(
                self.fs.exists, source
            ):
                raise SubpathError(f"Path '{subdir}' not found in repository '{fetch_spec}'")
            if not await asyncio.to_thread(self.fs.is_dir, source):
                raise SubpathError(f"Path '{subdir}' in repository '{fetch_spec}' is not a directory")

            await asyncio.to_thread(self.fs.copytree, source, dest)

    async def _copy_local(self, source: Path, dest: Path) -> None:
        if not await asyncio.to_thread(self.fs.exists, source):
            raise FileNotFoundError(errno.ENOENT, os.strerror(errno.ENOENT), str(source))
        if not await asyncio.to_thread(self.fs.is_dir, source):
            raise NotADirectoryError(errno.ENOTDIR, "Source is not a directory", str(source))
        await asyncio.to_thread(self.fs.copytree, source, dest)

    async def _read_manifest(self, root: Path) -> SkillManifest:
        """Verify and parse SKILL.md at root."""
        skill_md = root / SKILL_FILE
        if not await asyncio.to_thread(self.fs.is_file, skill_md):
            raise MissingManifestError("SKILL.md file not found in package")

        try:
            content = await asyncio.to_thread(self.fs.read_text, skill_md)
        except (OSError, UnicodeDecodeError) as e:
            raise InvalidSkillFormatError(f"Failed to read SKILL.md: {e}") from e

        result = self.parser.parse(content)
        if not result.success or result.skill is None:
            reason = result.error.message if result.error else "unknown parse error"
            raise InvalidSkillFormatError(
                f"Failed to extract valid skill metadata from SKILL.md: {reason}"
            )

        package = await self._read_package_json(root)
        metadata = result.skill.metadata
        return SkillManifest(
            name=metadata.name,
            description=metadata.description,
            license=metadata.license,
            compatibility=metadata.compatibility,
            package_name=_str_or_none(package.get("name")),
            version=_str_or_none(package.get("version")),
            metadata=metadata.metadata,
        )

    async def _read_package_json(self, root: Path) -> dict[str, Any]:
        """Read the optional package.json next to SKILL.md."""
        path = root / PACKAGE_FILE
        if not await asyncio.to_thread(self.fs.is_file, path):
            return {}
        try:
            data = json.loads(await asyncio.to_thread(self.fs.read_text, path))
        except (OSError, ValueError) as e:
            logger.debug("Ignoring unreadable %s: %s", path, e)
            return {}
        return data if isinstance(data, dict) else {}

    async def _resolve(
        self, descriptor: SourceDescriptor, target: Path, manifest: SkillManifest
    ) -> tuple[str, str]:
        """Resolve (version, integrity) for an installed skill."""
        if descriptor.is_local:
            # No remote artifact to hash; integrity identifies the install location
            return manifest.version or LOCAL_VERSION, f"file:{target}"

        metadata = await self.fetcher.fetch_metadata(descriptor.fetch_spec, cache=self.cache_dir)
        return resolve_version(descriptor, metadata), metadata.integrity or ""

    def _scan_installed(self) -> list[Skill]:
        if not self.skills_dir.is_dir():
            return []

        skills: list[Skill] = []
        for entry in sorted(self.skills_dir.iterdir()):
            if not entry.is_dir() or entry.name.startswith("."):
                continue
            result = parse_skill(entry / SKILL_FILE)
            if result.success and result.skill is not None:
                skills.append(result.skill)
            else:
                logger.debug("Skipping %s: %s", entry.name, result.error)
        return skills


def _str_or_none(value: object) -> str | None:
    return value if isinstance(value, str) else None
