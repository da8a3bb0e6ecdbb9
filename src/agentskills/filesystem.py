"""Filesystem abstraction for testability.

The RealFileSystem implementation wraps blocking standard library
operations. The installer runs these off the event loop.
"""

from __future__ import annotations

import errno
import shutil
from pathlib import Path

# Entries never copied into an installed skill
EXCLUDED_NAMES = frozenset({".agentskills", "node_modules"})


def is_excluded(name: str) -> bool:
    """Check whether a directory entry is skipped when copying a skill."""
    return name in EXCLUDED_NAMES or name.startswith(".")


def _ignore_excluded(_directory: str, names: list[str]) -> set[str]:
    return {name for name in names if is_excluded(name)}


def _copy_failures(error: shutil.Error) -> list[tuple[str, str, str]]:
    entries = error.args[0] if error.args else []
    if not isinstance(entries, list):
        return []
    return [tuple(str(part) for part in entry) for entry in entries if len(entry) == 3]


class RealFileSystem:
    """Production filesystem implementation.

    Wraps standard library Path and shutil operations.
    Satisfies the FileSystem protocol structurally.
    """

    def read_text(self, path: Path) -> str:
        """Read UTF-8 text content from a file."""
        return path.read_text(encoding="utf-8")

    def write_text(self, path: Path, content: str) -> None:
        """Write UTF-8 text content to a file."""
        path.write_text(content, encoding="utf-8")

    def exists(self, path: Path) -> bool:
        """Check if a path exists."""
        return path.exists()

    def is_dir(self, path: Path) -> bool:
        """Check if a path is a directory."""
        return path.is_dir()

    def is_file(self, path: Path) -> bool:
        """Check if a path is a regular file."""
        return path.is_file()

    def mkdir(self, path: Path, parents: bool = False, exist_ok: bool = False) -> None:
        """Create a directory."""
        path.mkdir(parents=parents, exist_ok=exist_ok)

    def remove(self, path: Path) -> None:
        """Remove a file or directory tree, ignoring absence and errors."""
        if path.is_symlink() or path.is_file():
            path.unlink(missing_ok=True)
        else:
            shutil.rmtree(path, ignore_errors=True)

    def copytree(self, src: Path, dst: Path) -> None:
        """Copy a skill tree into dst, skipping excluded and hidden entries.

        Raises:
            PermissionError: If any entry could not be read or written for lack
                of permission.
            shutil.Error: For other per-entry copy failures.
        """
        try:
            shutil.copytree(src, dst, ignore=_ignore_excluded, dirs_exist_ok=True)
        except shutil.Error as e:
            for entry_src, _entry_dst, reason in _copy_failures(e):
                if "Permission denied" in reason:
                    raise PermissionError(errno.EACCES, "Permission denied", entry_src) from e
            raise
