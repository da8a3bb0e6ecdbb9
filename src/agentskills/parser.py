"""Parsing of SKILL.md files.

A skill file is a markdown document with a YAML frontmatter block::

    ---
    name: example-skill
    description: An example skill
    ---
    # Example Skill

Frontmatter keys are kebab-case; unrecognised keys are ignored.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

__all__ = [
    "ParseError",
    "ParseErrorCode",
    "ParseResult",
    "Skill",
    "SkillMetadata",
    "SkillParser",
    "parse_skill",
    "parse_skill_content",
]

FRONTMATTER_DELIMITER = "---"
REQUIRED_FIELDS = ("name", "description")


class ParseErrorCode(str, Enum):
    EMPTY_FILE = "EMPTY_FILE"
    MISSING_FRONTMATTER = "MISSING_FRONTMATTER"
    INVALID_YAML = "INVALID_YAML"
    MISSING_REQUIRED_FIELD = "MISSING_REQUIRED_FIELD"
    INVALID_FIELD_TYPE = "INVALID_FIELD_TYPE"
    FILE_NOT_FOUND = "FILE_NOT_FOUND"
    FILE_READ_ERROR = "FILE_READ_ERROR"


class SkillMetadata(BaseModel):
    """Frontmatter fields of a skill."""

    model_config = ConfigDict(populate_by_name=True, frozen=True, coerce_numbers_to_str=True)

    name: str
    description: str
    license: str | None = None
    compatibility: str | None = None
    metadata: dict[str, Any] | None = None
    allowed_tools: str | list[str] | None = Field(default=None, alias="allowed-tools")
    disable_model_invocation: bool | None = Field(default=None, alias="disable-model-invocation")
    user_invocable: bool | None = Field(default=None, alias="user-invocable")
    argument_hint: str | None = Field(default=None, alias="argument-hint")
    context: str | None = None
    agent: str | None = None
    model: str | None = None
    hooks: dict[str, Any] | None = None


@dataclass(frozen=True)
class Skill:
    """A parsed skill: frontmatter metadata plus markdown body.

    ``path`` is set when the skill was read from disk.
    """

    metadata: SkillMetadata
    body: str
    path: Path | None = None


@dataclass(frozen=True)
class ParseError:
    code: ParseErrorCode
    message: str
    field: str | None = None


class ParseResult:
    """Result of parsing a skill file."""

    __slots__ = ("error", "skill", "success")

    def __init__(self, skill: Skill | None = None, error: ParseError | None = None) -> None:
        """Initialize parse result.

        Args:
            skill: The parsed skill on success.
            error: The failure reason on failure.
        """
        self.skill = skill
        self.error = error
        self.success = error is None and skill is not None


def _fail(code: ParseErrorCode, message: str, field: str | None = None) -> ParseResult:
    return ParseResult(error=ParseError(code, message, field))


def _split_frontmatter(content: str) -> tuple[str, str] | None:
    """Split content into raw frontmatter and body, or None if absent."""
    if not content.startswith(FRONTMATTER_DELIMITER):
        return None

    lines = content.splitlines(keepends=True)
    for index in range(1, len(lines)):
        if lines[index].rstrip() == FRONTMATTER_DELIMITER:
            frontmatter = "".join(lines[1:index])
            body = "".join(lines[index + 1:])
            return frontmatter, body
    return None


def parse_skill_content(content: str) -> ParseResult:
    """Parse skill content from a string.

    Args:
        content: Raw SKILL.md content.

    Returns:
        ParseResult holding the Skill or a ParseError. Never raises for bad content.
    """
    if not content or not content.strip():
        return _fail(ParseErrorCode.EMPTY_FILE, "Skill file is empty")

    parts = _split_frontmatter(content)
    if parts is None:
        return _fail(ParseErrorCode.MISSING_FRONTMATTER, "Skill file must contain YAML frontmatter")
    raw, body = parts

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        return _fail(ParseErrorCode.INVALID_YAML, f"Failed to parse YAML frontmatter: {e}")

    if not data:
        return _fail(ParseErrorCode.MISSING_FRONTMATTER, "Skill file must contain YAML frontmatter")
    if not isinstance(data, dict):
        return _fail(ParseErrorCode.INVALID_YAML, "YAML frontmatter must be a mapping")

    for field in REQUIRED_FIELDS:
        if field not in data:
            return _fail(
                ParseErrorCode.MISSING_REQUIRED_FIELD,
                f"required field '{field}' is missing from skill metadata",
                field,
            )

    try:
        metadata = SkillMetadata.model_validate(data)
    except ValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(loc) for loc in first["loc"])
        return _fail(
            ParseErrorCode.INVALID_FIELD_TYPE,
            f"Invalid value for '{field}': {first['msg']}",
            field,
        )

    return ParseResult(skill=Skill(metadata=metadata, body=body.lstrip("\n")))


def parse_skill(path: Path) -> ParseResult:
    """Read and parse a SKILL.md file.

    Args:
        path: Path to the skill file.

    Returns:
        ParseResult; read failures are reported as FILE_NOT_FOUND or FILE_READ_ERROR.
    """
    try:
        content = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return _fail(ParseErrorCode.FILE_NOT_FOUND, f"File not found: {path}")
    except (OSError, UnicodeDecodeError) as e:
        return _fail(ParseErrorCode.FILE_READ_ERROR, f"Failed to read file: {e}")

    result = parse_skill_content(content)
    if result.skill is not None:
        result.skill = replace(result.skill, path=path)
    return result


class SkillParser:
    """Default content parser. Satisfies the ContentParser protocol structurally."""

    def parse(self, content: str) -> ParseResult:
        return parse_skill_content(content)
