"""Exceptions and failure classification for skill installation.

Fetchers, git and the filesystem raise loosely structured errors. The
:func:`classify_error` mapping normalizes them into the small set of
:class:`~agentskills.types.ErrorCode` values callers can rely on.
"""

from __future__ import annotations

import errno
import logging
import socket

import httpx
from git.exc import GitCommandError

from agentskills.types import ErrorCode, InstallResult

logger = logging.getLogger(__name__)

__all__ = [
    "AgentSkillsError",
    "ConfigError",
    "FetchError",
    "InvalidSkillFormatError",
    "MissingManifestError",
    "SpecError",
    "SubpathError",
    "classify_error",
]

NETWORK_CODES = {"ENOTFOUND", "ETIMEDOUT", "ECONNREFUSED", "EAI_AGAIN"}
PERMISSION_CODES = {"EACCES", "EPERM"}

MISSING_MARKERS = (
    "does not exist",
    "Could not find",
    "Repository not found",
    "unknown revision",
    "couldn't find remote ref",
)
REFERENCE_MARKERS = ("reference", "ref", "revision", "branch", "tag")


class AgentSkillsError(Exception):
    """Base error for the skill installer."""

    pass


class SpecError(AgentSkillsError, ValueError):
    """A source spec could not be parsed."""

    pass


class SubpathError(AgentSkillsError):
    """A requested sub-path is missing from the fetched source."""

    pass


class MissingManifestError(AgentSkillsError):
    """The fetched source has no SKILL.md at its root."""

    pass


class InvalidSkillFormatError(AgentSkillsError):
    """SKILL.md exists but could not be parsed."""

    pass


class ConfigError(AgentSkillsError):
    """Project configuration is missing or malformed."""

    pass


class FetchError(AgentSkillsError):
    """Error raised by a package fetcher.

    Attributes:
        code: Optional symbolic error code (e.g. ``ENOTFOUND``).
        status_code: Optional HTTP status code.
    """

    def __init__(
        self, message: str, code: str | None = None, status_code: int | None = None
    ) -> None:
        super().__init__(message)
        self.code = code
        self.status_code = status_code


def _error_code(error: BaseException) -> str | None:
    """Get a symbolic code for an error, if it carries one."""
    code = getattr(error, "code", None)
    if isinstance(code, str):
        return code
    err_no = getattr(error, "errno", None)
    if isinstance(err_no, int) and err_no in errno.errorcode:
        return errno.errorcode[err_no]
    return None


def _status_code(error: BaseException) -> int | None:
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code
    status = getattr(error, "status_code", None)
    return status if isinstance(status, int) else None


def _is_network_error(error: BaseException, message: str) -> bool:
    if isinstance(error, (socket.gaierror, TimeoutError, ConnectionRefusedError)):
        return True
    if isinstance(error, httpx.TransportError):
        return True
    if _error_code(error) in NETWORK_CODES:
        return True
    return "network" in message.lower() or "getaddrinfo" in message


def _is_missing(message: str) -> bool:
    if "not found" in message.lower():
        return True
    return any(marker in message for marker in MISSING_MARKERS)


def classify_error(name: str | None, spec: str | None, error: BaseException) -> InstallResult:
    """Map an installation error to a failed InstallResult.

    Rules are checked in order and the first match wins.

    Args:
        name: Skill name being installed.
        spec: Source spec being installed.
        error: The raised exception.

    Returns:
        A failed InstallResult.
    """
    message = str(error) or "Unknown error"
    code = _error_code(error)

    def fail(error_code: ErrorCode, text: str) -> InstallResult:
        logger.debug("Classified %s failure for %s as %s", type(error).__name__, name, error_code.value)
        return InstallResult.failed(name, spec, error_code, text)

    if "not found in repository" in message or "is not a directory" in message:
        return fail(ErrorCode.INSTALL_FAILED, message)

    if _is_network_error(error, message):
        return fail(ErrorCode.NETWORK_ERROR, message)

    if _status_code(error) == 404 or "404" in message:
        return fail(ErrorCode.INSTALL_FAILED, "Package not found (404)")

    if _is_missing(message):
        if any(marker in message for marker in REFERENCE_MARKERS):
            return fail(ErrorCode.INSTALL_FAILED, "Git reference not found")
        return fail(ErrorCode.INSTALL_FAILED, "Repository or package not found")

    if isinstance(error, GitCommandError) or "git error" in message or "fatal:" in message:
        return fail(ErrorCode.INSTALL_FAILED, "Git error: repository or reference not found")

    if isinstance(error, PermissionError) or code in PERMISSION_CODES:
        return fail(ErrorCode.PERMISSION_ERROR, "Permission denied - permission error")

    if (isinstance(error, FileNotFoundError) or code == "ENOENT") and (spec or "").startswith(
        "file:"
    ):
        return fail(ErrorCode.INSTALL_FAILED, "Local path not found")

    return fail(ErrorCode.INSTALL_FAILED, message)
