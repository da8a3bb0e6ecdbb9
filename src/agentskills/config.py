"""Project configuration stored in ``agentskills.json``.

Example::

    {
      "skills": {
        "api-integration": "github:anthropic/api-integration#v1.0.0",
        "local-skill": "file:./skills/my-skill"
      },
      "config": {
        "skillsDirectory": ".agents/skills"
      }
    }
"""

from __future__ import annotations

import json
import os
from collections.abc import Mapping
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from agentskills.errors import ConfigError

CONFIG_FILE_NAME = "agentskills.json"
DEFAULT_SKILLS_DIR = ".agents/skills"
CACHE_DIR_ENV = "AGENTSKILLS_CACHE_DIR"


class InstallSettings(BaseModel):
    """Settings under the ``config`` key."""

    model_config = ConfigDict(populate_by_name=True)

    skills_directory: str = Field(default=DEFAULT_SKILLS_DIR, alias="skillsDirectory")
    cache_directory: str | None = Field(default=None, alias="cacheDirectory")


class ProjectConfig(BaseModel):
    """Contents of agentskills.json."""

    skills: dict[str, str] = Field(default_factory=dict)
    config: InstallSettings = Field(default_factory=InstallSettings)


class ProjectConfigManager:
    """Reads and updates a project's agentskills.json."""

    def __init__(
        self, project_root: Path, environ: Mapping[str, str] | None = None
    ) -> None:
        """Initialize the config manager.

        Args:
            project_root: Directory containing agentskills.json.
            environ: Environment lookup. Defaults to os.environ.
        """
        self.project_root = Path(project_root)
        self.config_file = self.project_root / CONFIG_FILE_NAME
        self.environ = os.environ if environ is None else environ

    def exists(self) -> bool:
        return self.config_file.is_file()

    def load(self) -> ProjectConfig:
        """Load the project configuration.

        Returns:
            ProjectConfig; defaults if agentskills.json does not exist.

        Raises:
            ConfigError: If the file cannot be read, is not JSON, or has an invalid shape.
        """
        if not self.config_file.exists():
            return ProjectConfig()

        try:
            data = json.loads(self.config_file.read_text(encoding="utf-8"))
        except PermissionError as e:
            raise ConfigError(f"Permission denied reading {self.config_file}") from e
        except (OSError, ValueError) as e:
            raise ConfigError(f"Failed to parse {self.config_file}: {e}") from e

        try:
            return ProjectConfig.model_validate(data)
        except ValidationError as e:
            raise ConfigError(f"Invalid configuration in {self.config_file}: {e}") from e

    def save(self, config: ProjectConfig) -> None:
        """Write the configuration back to disk."""
        data = config.model_dump(by_alias=True, exclude_none=True)
        self.config_file.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")

    def add_skill(self, name: str, spec: str) -> ProjectConfig:
        """Add or update a skill entry.

        Raises:
            ValueError: If name or spec is empty.
        """
        if not name:
            raise ValueError("Skill name cannot be empty")
        if not spec:
            raise ValueError("Skill spec cannot be empty")
        config = self.load()
        config.skills[name] = spec
        self.save(config)
        return config

    def remove_skill(self, name: str) -> bool:
        """Remove a skill entry.

        Returns:
            True if removed, False if it was not configured.
        """
        if not self.exists():
            return False
        config = self.load()
        if config.skills.pop(name, None) is None:
            return False
        self.save(config)
        return True

    def skills_dir(self, config: ProjectConfig) -> Path:
        """Absolute skills directory for a configuration."""
        return self.project_root / config.config.skills_directory

    def cache_dir(self, config: ProjectConfig) -> Path | None:
        """Cache directory: environment override, then configuration, else None."""
        override = self.environ.get(CACHE_DIR_ENV)
        if override:
            return Path(override).expanduser()
        if config.config.cache_directory:
            return self.project_root / config.config.cache_directory
        return None
