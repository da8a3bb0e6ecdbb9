"""Application context for dependency injection.

This module separates object creation from object use, enabling testability
and reducing coupling in CLI commands.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from agentskills.config import ProjectConfig, ProjectConfigManager
from agentskills.install import SkillInstaller


@dataclass
class AppContext:
    """Container for application dependencies.

    Provides a single injection point for the services used by CLI commands.
    """

    config_manager: ProjectConfigManager
    config: ProjectConfig
    installer: SkillInstaller


def create_context(project_root: Path | None = None) -> AppContext:
    """Factory for application dependencies.

    Creates all services with proper wiring. Use this in production code.
    For tests, construct AppContext directly with test doubles.

    Args:
        project_root: Project directory. Defaults to cwd.

    Returns:
        Configured AppContext.

    Raises:
        ConfigError: If agentskills.json is malformed.
    """
    config_manager = ProjectConfigManager(project_root or Path.cwd())
    config = config_manager.load()
    installer = SkillInstaller.create(
        skills_dir=config_manager.skills_dir(config),
        cache_dir=config_manager.cache_dir(config),
    )
    return AppContext(config_manager=config_manager, config=config, installer=installer)
