"""Protocol definitions for the installer's collaborators.

The installer depends on these interfaces rather than concrete classes so
that test doubles can be injected without inheritance. All concrete
implementations satisfy them structurally.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from agentskills.types import SourceMetadata

if TYPE_CHECKING:
    from agentskills.parser import ParseResult


@runtime_checkable
class PackageFetcher(Protocol):
    """Protocol for retrieving skill sources.

    Implementations must accept the fetch specs produced by
    :func:`agentskills.source.classify_spec` for every non-local kind.
    """

    async def extract(self, spec: str, dest: Path, cache: Path | None = None) -> None:
        """Download a source and unpack it into dest.

        Args:
            spec: Fetch spec (base locator plus optional ``#committish``).
            dest: Destination directory. Created if missing.
            cache: Optional shared cache directory.
        """
        ...

    async def fetch_metadata(self, spec: str, cache: Path | None = None) -> SourceMetadata:
        """Resolve version and integrity information for a source.

        Args:
            spec: Fetch spec.
            cache: Optional shared cache directory.

        Returns:
            SourceMetadata for the source.
        """
        ...


@runtime_checkable
class ContentParser(Protocol):
    """Protocol for parsing SKILL.md content."""

    def parse(self, content: str) -> ParseResult:
        """Parse skill file content.

        Args:
            content: Raw SKILL.md text.

        Returns:
            ParseResult holding either the skill or a parse error.
        """
        ...


@runtime_checkable
class FileSystem(Protocol):
    """Protocol for filesystem operations.

    Abstracts filesystem access to enable testing without real I/O.
    """

    def read_text(self, path: Path) -> str:
        """Read text content from a file.

        Raises:
            FileNotFoundError: If file does not exist.
        """
        ...

    def write_text(self, path: Path, content: str) -> None:
        """Write text content to a file."""
        ...

    def exists(self, path: Path) -> bool:
        """Check if a path exists."""
        ...

    def is_dir(self, path: Path) -> bool:
        """Check if a path is a directory."""
        ...

    def is_file(self, path: Path) -> bool:
        """Check if a path is a regular file."""
        ...

    def mkdir(self, path: Path, parents: bool = False, exist_ok: bool = False) -> None:
        """Create a directory."""
        ...

    def remove(self, path: Path) -> None:
        """Remove a file or directory tree. Never raises for a missing path."""
        ...

    def copytree(self, src: Path, dst: Path) -> None:
        """Copy a skill directory tree, skipping excluded entries.

        Args:
            src: Source directory.
            dst: Destination directory (may already exist).
        """
        ...
