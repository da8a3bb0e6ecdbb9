"""Shared test fixtures."""

from __future__ import annotations

from pathlib import Path

import pytest

from agentskills.filesystem import RealFileSystem
from agentskills.install import SkillInstaller
from agentskills.parser import SkillParser
from agentskills.types import SourceMetadata

SKILL_CONTENT = """---
name: test-skill
description: A skill used in tests
license: MIT
metadata:
  author: tests
---

# Test Skill

Do the thing.
"""


class StubFetcher:
    """In-memory package fetcher.

    Writes a fixed file tree for every extract and records each call.
    """

    def __init__(
        self,
        files: dict[str, str] | None = None,
        sources: dict[str, dict[str, str]] | None = None,
        metadata: SourceMetadata | None = None,
        error: Exception | None = None,
    ) -> None:
        self.files = {"SKILL.md": SKILL_CONTENT} if files is None else files
        self.sources = sources or {}
        self.metadata = metadata or SourceMetadata()
        self.error = error
        self.extracted: list[tuple[str, Path]] = []
        self.metadata_requests: list[str] = []

    async def extract(self, spec: str, dest: Path, cache: Path | None = None) -> None:
        self.extracted.append((spec, dest))
        if self.error is not None:
            raise self.error
        dest.mkdir(parents=True, exist_ok=True)
        for relative, content in self.sources.get(spec, self.files).items():
            path = dest / relative
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content)

    async def fetch_metadata(self, spec: str, cache: Path | None = None) -> SourceMetadata:
        self.metadata_requests.append(spec)
        return self.metadata


@pytest.fixture
def temp_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Override home directory for testing."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setattr(Path, "home", lambda: home)
    return home


@pytest.fixture
def skills_dir(tmp_path: Path) -> Path:
    """Skills directory inside a temporary project."""
    return tmp_path / "project" / ".agents" / "skills"


@pytest.fixture
def stub_fetcher() -> StubFetcher:
    """Fetcher that writes a valid skill."""
    return StubFetcher()


@pytest.fixture
def installer(skills_dir: Path, stub_fetcher: StubFetcher) -> SkillInstaller:
    """Installer wired to the stub fetcher and the real filesystem."""
    return SkillInstaller(
        skills_dir=skills_dir,
        fetcher=stub_fetcher,
        parser=SkillParser(),
        filesystem=RealFileSystem(),
    )


@pytest.fixture
def sample_skill_content() -> str:
    """Sample SKILL.md content."""
    return SKILL_CONTENT


@pytest.fixture
def local_skill(tmp_path: Path) -> Path:
    """Local skill directory with extra files and entries that must not be copied."""
    skill = tmp_path / "sources" / "local-skill"
    skill.mkdir(parents=True)
    (skill / "SKILL.md").write_text(SKILL_CONTENT)
    (skill / "scripts").mkdir()
    (skill / "scripts" / "run.sh").write_text("echo run")
    (skill / "node_modules" / "dep").mkdir(parents=True)
    (skill / "node_modules" / "dep" / "index.js").write_text("")
    (skill / ".agentskills").mkdir()
    (skill / ".agentskills" / "state").write_text("")
    (skill / ".hidden").write_text("secret")
    return skill
