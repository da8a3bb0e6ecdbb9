"""Classification of raw source specs into structured descriptors.

Supported spec formats::

    github:owner/repo[#ref][::path:sub/dir]
    github:owner/repo/sub/dir[#ref]          (shorthand)
    git+https://host/repo.git[#ref][::path:sub/dir]
    git+ssh://git@host/repo.git[#ref][::path:sub/dir]
    file:./relative | file:///absolute | file:~/home-relative
    https://host/archive.tar.gz
    name[@version] | @scope/name[@version]

Everything here is pure string handling; nothing touches the filesystem.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable

from agentskills.errors import SpecError

__all__ = [
    "SourceDescriptor",
    "SourceKind",
    "classify_spec",
    "is_valid_spec",
    "parse_fragment",
]


class SourceKind(Enum):
    """Where a skill comes from."""

    VERSION_CONTROL_HOST = "github"
    GIT_HTTP = "git+https"
    GIT_SSH = "git+ssh"
    LOCAL_DIRECTORY = "file"
    ARCHIVE_URL = "archive"
    REGISTRY_PACKAGE = "registry"


GITHUB_PREFIX = "github:"
FILE_PREFIX = "file:"

# Order matters: git+https:// must win over https://
PREFIX_KINDS: list[tuple[str, SourceKind]] = [
    (GITHUB_PREFIX, SourceKind.VERSION_CONTROL_HOST),
    ("git+https://", SourceKind.GIT_HTTP),
    ("git+ssh://", SourceKind.GIT_SSH),
    (FILE_PREFIX, SourceKind.LOCAL_DIRECTORY),
    ("http://", SourceKind.ARCHIVE_URL),
    ("https://", SourceKind.ARCHIVE_URL),
]

VALID_PREFIXES = tuple(prefix for prefix, _ in PREFIX_KINDS) + ("@",)

SCOPED_PACKAGE_RE = re.compile(r"^@[a-z0-9-]+/[a-z0-9-]+(@.+)?$")
PACKAGE_RE = re.compile(r"^[a-z][a-z0-9-]*(@[\w.~-]+)?$")

FRAGMENT_SEPARATOR = "::"
PATH_ATTRIBUTE = "path:"
SEMVER_ATTRIBUTE = "semver:"


@dataclass(frozen=True)
class SourceDescriptor:
    """Structured form of a source spec.

    Attributes:
        kind: Source kind.
        base_locator: Locator for the whole source, without fragment or sub-path.
        committish: Branch, tag or commit to check out.
        subdir: Path inside the source to install instead of its root.
        spec: The raw spec this descriptor was built from.
    """

    kind: SourceKind
    base_locator: str
    committish: str | None = None
    subdir: str | None = None
    spec: str = ""

    @property
    def fetch_spec(self) -> str:
        """Spec handed to the package fetcher."""
        if self.committish:
            return f"{self.base_locator}#{self.committish}"
        return self.base_locator

    @property
    def is_local(self) -> bool:
        return self.kind is SourceKind.LOCAL_DIRECTORY


def is_valid_spec(spec: str | None) -> bool:
    """Check whether a spec is in a supported format.

    Args:
        spec: Raw source spec.

    Returns:
        True if the spec can be classified.
    """
    if not spec or not spec.strip():
        return False

    # Conservative guard against obvious non-packages
    if " " in spec or "invalid" in spec:
        return False

    if spec.startswith(VALID_PREFIXES):
        return True
    return bool(SCOPED_PACKAGE_RE.match(spec) or PACKAGE_RE.match(spec))


def parse_fragment(fragment: str) -> tuple[str | None, str | None]:
    """Split a git fragment into committish and sub-path.

    Attributes are separated by ``::``::

        ref                      -> ("ref", None)
        ref::path:sub            -> ("ref", "sub")
        path:sub                 -> (None, "sub")
        semver:^1.0::path:sub    -> (None, "sub")

    If several bare values appear, the last one wins.

    Args:
        fragment: Text after the first ``#``.

    Returns:
        Tuple of (committish, subdir).
    """
    committish: str | None = None
    subdir: str | None = None

    for part in fragment.split(FRAGMENT_SEPARATOR):
        if part.startswith(PATH_ATTRIBUTE):
            subdir = part[len(PATH_ATTRIBUTE):]
        elif part.startswith(SEMVER_ATTRIBUTE):
            # range resolution belongs to the fetcher
            continue
        elif part:
            committish = part

    return committish, subdir or None


def _split_fragment(text: str) -> tuple[str, str | None]:
    locator, sep, fragment = text.partition("#")
    return locator, fragment if sep else None


def _classify_github(spec: str) -> SourceDescriptor:
    locator, fragment = _split_fragment(spec[len(GITHUB_PREFIX):])
    committish, subdir = parse_fragment(fragment) if fragment is not None else (None, None)

    segments = locator.split("/")
    if subdir is None and len(segments) > 2:
        subdir = "/".join(segments[2:]) or None

    owner_repo = "/".join(segments[:2])
    return SourceDescriptor(
        kind=SourceKind.VERSION_CONTROL_HOST,
        base_locator=f"{GITHUB_PREFIX}{owner_repo}",
        committish=committish,
        subdir=subdir,
        spec=spec,
    )


def _classify_git_url(spec: str, kind: SourceKind) -> SourceDescriptor:
    locator, fragment = _split_fragment(spec)
    committish, subdir = parse_fragment(fragment) if fragment is not None else (None, None)
    return SourceDescriptor(
        kind=kind, base_locator=locator, committish=committish, subdir=subdir, spec=spec
    )


def resolve_local_path(spec: str, home: Callable[[], Path] = Path.home) -> Path:
    """Resolve the filesystem path of a ``file:`` spec.

    Args:
        spec: Spec starting with ``file:``.
        home: Lookup for the caller's home directory.

    Returns:
        Absolute path.
    """
    source = spec[len(FILE_PREFIX):]
    if source.startswith("//"):
        source = source[2:]
    if source.startswith("~/"):
        source = str(home() / source[2:])
    return Path(os.path.abspath(source))


def classify_spec(spec: str, home: Callable[[], Path] = Path.home) -> SourceDescriptor:
    """Classify a raw spec into a SourceDescriptor.

    Args:
        spec: Raw source spec.
        home: Lookup for the caller's home directory, used for ``file:~/`` specs.

    Returns:
        SourceDescriptor for the spec.

    Raises:
        SpecError: If the spec is not valid.
    """
    if not is_valid_spec(spec):
        raise SpecError(f"Invalid package spec format: {spec!r}")

    kind = next(
        (kind for prefix, kind in PREFIX_KINDS if spec.startswith(prefix)),
        SourceKind.REGISTRY_PACKAGE,
    )

    if kind is SourceKind.VERSION_CONTROL_HOST:
        return _classify_github(spec)
    if kind in (SourceKind.GIT_HTTP, SourceKind.GIT_SSH):
        return _classify_git_url(spec, kind)
    if kind is SourceKind.LOCAL_DIRECTORY:
        return SourceDescriptor(
            kind=kind, base_locator=str(resolve_local_path(spec, home)), spec=spec
        )
    return SourceDescriptor(kind=kind, base_locator=spec, spec=spec)
