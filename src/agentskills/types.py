"""Shared data types for the skill installer."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

__all__ = [
    "BatchResult",
    "ErrorCode",
    "InstallError",
    "InstallResult",
    "SkillManifest",
    "SourceMetadata",
]


class ErrorCode(str, Enum):
    """Stable failure codes reported by an installation."""

    INVALID_SPEC = "INVALID_SPEC"
    INSTALL_FAILED = "INSTALL_FAILED"
    NETWORK_ERROR = "NETWORK_ERROR"
    MISSING_SKILL_MD = "MISSING_SKILL_MD"
    INVALID_SKILL_FORMAT = "INVALID_SKILL_FORMAT"
    PERMISSION_ERROR = "PERMISSION_ERROR"


@dataclass(frozen=True)
class InstallError:
    """Structured failure reason."""

    code: ErrorCode
    message: str


class SkillManifest(BaseModel):
    """Metadata read back out of an installed skill."""

    model_config = ConfigDict(populate_by_name=True)

    name: str
    description: str
    license: str | None = None
    compatibility: str | None = None
    package_name: str | None = Field(default=None, alias="packageName")
    version: str | None = None
    metadata: dict[str, Any] | None = None


@dataclass
class InstallResult:
    """Result of a single skill installation.

    Attributes:
        success: True if installation succeeded.
        name: Skill name (directory under the skills directory).
        spec: Raw source spec the skill was installed from.
        resolved_version: Version, tag or revision that was installed (success only).
        integrity: Content integrity string from the fetcher (success only).
        install_path: Directory the skill was installed into (success only).
        manifest: Parsed SKILL.md metadata (success only).
        error: Failure reason (failure only).
    """

    success: bool
    name: str | None = None
    spec: str | None = None
    resolved_version: str | None = None
    integrity: str | None = None
    install_path: Path | None = None
    manifest: SkillManifest | None = None
    error: InstallError | None = None

    def __post_init__(self) -> None:
        """Validate invariants."""
        if self.success:
            if self.error is not None:
                raise ValueError("success=True but error is set")
            if self.resolved_version is None or self.integrity is None:
                raise ValueError("success=True requires resolved_version and integrity")
            if self.install_path is None:
                raise ValueError("success=True requires install_path")
        else:
            if self.error is None:
                raise ValueError("success=False requires error")
            if (
                self.resolved_version is not None
                or self.integrity is not None
                or self.install_path is not None
            ):
                raise ValueError("success=False cannot carry install details")

    @classmethod
    def ok(
        cls,
        name: str,
        spec: str,
        resolved_version: str,
        integrity: str,
        install_path: Path,
        manifest: SkillManifest | None = None,
    ) -> InstallResult:
        """Build a successful result."""
        return cls(
            success=True,
            name=name,
            spec=spec,
            resolved_version=resolved_version,
            integrity=integrity,
            install_path=install_path,
            manifest=manifest,
        )

    @classmethod
    def failed(
        cls,
        name: str | None,
        spec: str | None,
        code: ErrorCode,
        message: str,
    ) -> InstallResult:
        """Build a failed result."""
        return cls(success=False, name=name, spec=spec, error=InstallError(code, message))


@dataclass(frozen=True)
class SourceMetadata:
    """Metadata a package fetcher reports for a source.

    Attributes:
        integrity: Content integrity string (e.g. ``sha512-...``).
        version: Package version, when the source declares one.
        revision: VCS revision id (full commit hash) for git sources.
    """

    integrity: str | None = None
    version: str | None = None
    revision: str | None = None


@dataclass
class BatchResult:
    """Aggregated outcome of installing many skills."""

    success: bool
    installed: set[str] = field(default_factory=set)
    failed: set[str] = field(default_factory=set)
    results: dict[str, InstallResult] = field(default_factory=dict)
