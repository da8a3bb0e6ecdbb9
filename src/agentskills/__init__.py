"""Install agent skills from git hosts, archives, registries and local folders."""

__version__ = "0.1.0"

# Export the installer and protocol interfaces for type hints and dependency injection
from agentskills.install import SkillInstaller
from agentskills.protocols import ContentParser, FileSystem, PackageFetcher
from agentskills.types import BatchResult, ErrorCode, InstallResult, SkillManifest

__all__ = [
    "__version__",
    "BatchResult",
    "ContentParser",
    "ErrorCode",
    "FileSystem",
    "InstallResult",
    "PackageFetcher",
    "SkillInstaller",
    "SkillManifest",
]
