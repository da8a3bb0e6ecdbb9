"""Lock file management for reproducible installs.

The lock file lives next to the skills directory::

    <project>/.agents/skills/<name>/SKILL.md
    <project>/.agents/skills-lock.json

It is a snapshot: every write replaces the whole file.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from datetime import datetime, timezone
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from agentskills.types import InstallResult

logger = logging.getLogger(__name__)

LOCK_FILE_NAME = "skills-lock.json"
LOCK_FILE_VERSION = "1.0"


class LockedSkill(BaseModel):
    """Provenance of one installed skill."""

    model_config = ConfigDict(populate_by_name=True)

    spec: str
    resolved_version: str = Field(alias="resolvedVersion")
    integrity: str


class LockFile(BaseModel):
    """Snapshot of every successfully installed skill."""

    version: str = LOCK_FILE_VERSION
    generated: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    skills: dict[str, LockedSkill] = Field(default_factory=dict)

    @classmethod
    def from_results(cls, results: Mapping[str, InstallResult]) -> LockFile:
        """Build a lock file from install results, keeping only successes.

        Args:
            results: Install results keyed by skill name.

        Returns:
            New LockFile stamped with the current time.
        """
        skills = {
            name: LockedSkill(
                spec=result.spec or "",
                resolved_version=result.resolved_version or "",
                integrity=result.integrity or "",
            )
            for name, result in results.items()
            if result.success
        }
        return cls(skills=skills)


def lock_path_for(skills_dir: Path) -> Path:
    """Get the lock file path for a skills directory."""
    return skills_dir.parent / LOCK_FILE_NAME


def load_lock_file(path: Path) -> LockFile | None:
    """Load a lock file.

    Args:
        path: Path to skills-lock.json.

    Returns:
        Parsed LockFile, or None if the file is missing or malformed.
    """
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        return LockFile.model_validate(data)
    except FileNotFoundError:
        return None
    except (OSError, ValueError, ValidationError) as e:
        logger.warning("Ignoring unreadable lock file %s: %s", path, e)
        return None


def get_allowed_skills(path: Path) -> set[str] | None:
    """Get the skill names listed in a lock file.

    Args:
        path: Path to skills-lock.json.

    Returns:
        Set of locked skill names, or None if there is no usable lock file
        (meaning every skill is allowed).
    """
    lock = load_lock_file(path)
    if lock is None:
        return None
    return set(lock.skills)


class LockFileManager:
    """Reads and writes the skills lock file."""

    def __init__(self, skills_dir: Path) -> None:
        """Initialize the lock file manager.

        Args:
            skills_dir: Skills directory; the lock file sits one level above it.
        """
        self.skills_dir = skills_dir
        self.lock_path = lock_path_for(skills_dir)

    def generate_lock_file(self, results: Mapping[str, InstallResult]) -> LockFile:
        """Write a fresh lock file containing the successful results.

        Any previously locked skill absent from results is dropped.

        Args:
            results: Install results keyed by skill name.

        Returns:
            The LockFile that was written.
        """
        lock = LockFile.from_results(results)
        data = lock.model_dump(mode="json", by_alias=True)
        self.lock_path.parent.mkdir(parents=True, exist_ok=True)
        self.lock_path.write_text(json.dumps(data, indent=2), encoding="utf-8")
        logger.debug("Wrote %d skills to %s", len(lock.skills), self.lock_path)
        return lock

    def read_lock_file(self) -> LockFile | None:
        """Read the lock file.

        Returns:
            LockFile, or None if it is missing or malformed.
        """
        return load_lock_file(self.lock_path)
