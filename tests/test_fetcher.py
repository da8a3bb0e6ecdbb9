"""Tests for the default fetcher."""

from __future__ import annotations

import io
import tarfile
import zipfile
from pathlib import Path
from unittest.mock import MagicMock, patch

import httpx
import pytest
from git.exc import GitCommandError

from agentskills.errors import FetchError
from agentskills.fetcher import (
    DEFAULT_REGISTRY,
    DefaultFetcher,
    git_url,
    sri_digest,
    split_package_spec,
    unpack_archive,
)
from agentskills.protocols import PackageFetcher
from agentskills.source import classify_spec

from conftest import SKILL_CONTENT


def _tarball(files: dict[str, str]) -> bytes:
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w:gz") as archive:
        for name, content in files.items():
            data = content.encode("utf-8")
            info = tarfile.TarInfo(name)
            info.size = len(data)
            archive.addfile(info, io.BytesIO(data))
    return buffer.getvalue()


def _zip(files: dict[str, str]) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        for name, content in files.items():
            archive.writestr(name, content)
    return buffer.getvalue()


class TestHelpers:
    """Tests for URL and spec helpers."""

    @pytest.mark.parametrize(
        "spec,url",
        [
            ("github:owner/repo#v1", "https://github.com/owner/repo.git"),
            ("git+https://example.com/r.git#main", "https://example.com/r.git"),
            ("git+ssh://git@github.com:owner/repo.git", "git@github.com:owner/repo.git"),
            ("git+ssh://git@example.com/owner/repo.git", "ssh://git@example.com/owner/repo.git"),
        ],
    )
    def test_git_url(self, spec: str, url: str) -> None:
        assert git_url(classify_spec(spec)) == url

    def test_git_url_rejects_archive(self) -> None:
        with pytest.raises(FetchError):
            git_url(classify_spec("https://example.com/s.tgz"))

    @pytest.mark.parametrize(
        "spec,expected",
        [
            ("my-skill", ("my-skill", None)),
            ("my-skill@1.0.0", ("my-skill", "1.0.0")),
            ("@scope/skill", ("@scope/skill", None)),
            ("@scope/skill@beta", ("@scope/skill", "beta")),
        ],
    )
    def test_split_package_spec(self, spec: str, expected: tuple[str, str | None]) -> None:
        assert split_package_spec(spec) == expected

    def test_sri_digest(self) -> None:
        digest = sri_digest(b"hello")
        assert digest.startswith("sha512-")
        assert digest == sri_digest(b"hello")
        assert digest != sri_digest(b"world")


class TestUnpackArchive:
    """Tests for unpack_archive."""

    def test_tar_strips_package_root(self, tmp_path: Path) -> None:
        data = _tarball({"package/SKILL.md": SKILL_CONTENT, "package/docs/a.md": "a"})
        unpack_archive(data, tmp_path / "out")
        assert (tmp_path / "out" / "SKILL.md").read_text() == SKILL_CONTENT
        assert (tmp_path / "out" / "docs" / "a.md").read_text() == "a"

    def test_zip_flat(self, tmp_path: Path) -> None:
        data = _zip({"SKILL.md": SKILL_CONTENT, "ref.md": "r"})
        unpack_archive(data, tmp_path / "out")
        assert (tmp_path / "out" / "SKILL.md").is_file()
        assert (tmp_path / "out" / "ref.md").is_file()

    def test_zip_strips_single_root(self, tmp_path: Path) -> None:
        data = _zip({"repo-main/SKILL.md": SKILL_CONTENT})
        unpack_archive(data, tmp_path / "out")
        assert (tmp_path / "out" / "SKILL.md").is_file()

    def test_rejects_escape(self, tmp_path: Path) -> None:
        data = _tarball({"../evil.txt": "x"})
        with pytest.raises(FetchError, match="escapes"):
            unpack_archive(data, tmp_path / "out")
        assert not (tmp_path / "evil.txt").exists()

    def test_rejects_garbage(self, tmp_path: Path) -> None:
        with pytest.raises(FetchError, match="Unsupported archive"):
            unpack_archive(b"not an archive", tmp_path / "out")


class TestHttpSources:
    """Tests for archive and registry sources over a mock transport."""

    def test_satisfies_protocol(self) -> None:
        assert isinstance(DefaultFetcher(), PackageFetcher)

    def test_create_defaults(self) -> None:
        assert DefaultFetcher.create().registry_url == DEFAULT_REGISTRY

    @pytest.mark.asyncio
    async def test_archive_extract_and_integrity(self, tmp_path: Path) -> None:
        data = _tarball({"package/SKILL.md": SKILL_CONTENT})
        requests: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(str(request.url))
            return httpx.Response(200, content=data)

        fetcher = DefaultFetcher(transport=httpx.MockTransport(handler))
        spec = "https://example.com/skill.tgz"

        await fetcher.extract(spec, tmp_path / "out")
        metadata = await fetcher.fetch_metadata(spec)

        assert (tmp_path / "out" / "SKILL.md").is_file()
        assert metadata.integrity == sri_digest(data)
        assert metadata.version is None
        assert requests == [spec]

    @pytest.mark.asyncio
    async def test_archive_metadata_without_extract(self) -> None:
        data = _zip({"SKILL.md": SKILL_CONTENT})
        fetcher = DefaultFetcher(
            transport=httpx.MockTransport(lambda r: httpx.Response(200, content=data))
        )
        metadata = await fetcher.fetch_metadata("https://example.com/skill.zip")
        assert metadata.integrity == sri_digest(data)

    @pytest.mark.asyncio
    async def test_archive_integrity_matches_unpacked_bytes(self, tmp_path: Path) -> None:
        """A source that changes between requests reports the digest of the extracted copy."""
        versions = [_zip({"SKILL.md": SKILL_CONTENT}), _zip({"SKILL.md": SKILL_CONTENT + "\nv2\n"})]
        served: list[bytes] = []

        def handler(request: httpx.Request) -> httpx.Response:
            served.append(versions[len(served)])
            return httpx.Response(200, content=served[-1])

        fetcher = DefaultFetcher(transport=httpx.MockTransport(handler))
        spec = "https://example.com/branch.zip"

        await fetcher.extract(spec, tmp_path / "out")
        metadata = await fetcher.fetch_metadata(spec)

        assert len(served) == 1
        assert metadata.integrity == sri_digest(versions[0])

    @pytest.mark.asyncio
    async def test_archive_cache(self, tmp_path: Path) -> None:
        data = _zip({"SKILL.md": SKILL_CONTENT})
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            return httpx.Response(200, content=data)

        fetcher = DefaultFetcher(transport=httpx.MockTransport(handler))
        cache = tmp_path / "cache"
        spec = "https://example.com/skill.zip"

        await fetcher.extract(spec, tmp_path / "a", cache=cache)
        await fetcher.extract(spec, tmp_path / "b", cache=cache)
        await fetcher.fetch_metadata(spec, cache=cache)

        assert calls == 1
        assert (tmp_path / "b" / "SKILL.md").is_file()
        assert not list((cache / "archives").glob("*.part"))

    @pytest.mark.asyncio
    async def test_archive_404(self, tmp_path: Path) -> None:
        fetcher = DefaultFetcher(transport=httpx.MockTransport(lambda r: httpx.Response(404)))
        with pytest.raises(httpx.HTTPStatusError):
            await fetcher.extract("https://example.com/missing.tgz", tmp_path / "out")

    @pytest.mark.asyncio
    async def test_registry_package(self, tmp_path: Path) -> None:
        tarball = _tarball({"package/SKILL.md": SKILL_CONTENT})
        document = {
            "name": "my-skill",
            "dist-tags": {"latest": "1.2.0"},
            "versions": {
                "1.0.0": {
                    "version": "1.0.0",
                    "dist": {"tarball": "https://files.example/old.tgz", "integrity": "sha512-old"},
                },
                "1.2.0": {
                    "version": "1.2.0",
                    "gitHead": "0123456789abcdef",
                    "dist": {"tarball": "https://files.example/new.tgz", "integrity": "sha512-new"},
                },
            },
        }

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.host == "registry.example":
                assert request.url.path == "/my-skill"
                return httpx.Response(200, json=document)
            assert str(request.url) == "https://files.example/new.tgz"
            return httpx.Response(200, content=tarball)

        fetcher = DefaultFetcher(
            registry_url="https://registry.example/", transport=httpx.MockTransport(handler)
        )

        await fetcher.extract("my-skill", tmp_path / "out")
        latest = await fetcher.fetch_metadata("my-skill")
        pinned = await fetcher.fetch_metadata("my-skill@1.0.0")

        assert (tmp_path / "out" / "SKILL.md").is_file()
        assert latest.version == "1.2.0"
        assert latest.integrity == "sha512-new"
        assert latest.revision == "0123456789abcdef"
        assert pinned.version == "1.0.0"
        assert pinned.integrity == "sha512-old"

    @pytest.mark.asyncio
    async def test_registry_unknown_version(self) -> None:
        document = {"dist-tags": {"latest": "1.0.0"}, "versions": {"1.0.0": {}}}
        fetcher = DefaultFetcher(
            transport=httpx.MockTransport(lambda r: httpx.Response(200, json=document))
        )
        with pytest.raises(FetchError, match="No matching version"):
            await fetcher.fetch_metadata("my-skill@9.9.9")

    @pytest.mark.asyncio
    async def test_registry_without_tarball(self, tmp_path: Path) -> None:
        document = {"versions": {"1.0.0": {"version": "1.0.0"}}}
        fetcher = DefaultFetcher(
            transport=httpx.MockTransport(lambda r: httpx.Response(200, json=document))
        )
        with pytest.raises(FetchError, match="no tarball"):
            await fetcher.extract("my-skill@1.0.0", tmp_path / "out")

    @pytest.mark.asyncio
    async def test_local_not_fetched(self, tmp_path: Path) -> None:
        fetcher = DefaultFetcher()
        with pytest.raises(FetchError):
            await fetcher.extract(f"file:{tmp_path}", tmp_path / "out")
        with pytest.raises(FetchError):
            await fetcher.fetch_metadata(f"file:{tmp_path}")


class TestGitSources:
    """Tests for git sources with GitPython mocked."""

    @pytest.mark.asyncio
    @patch("agentskills.fetcher.Repo")
    async def test_shallow_clone_at_ref(self, mock_repo: MagicMock, tmp_path: Path) -> None:
        dest = tmp_path / "out"
        await DefaultFetcher().extract("github:owner/repo#v1.0.0", dest)

        mock_repo.clone_from.assert_called_once_with(
            "https://github.com/owner/repo.git", dest, branch="v1.0.0", depth=1
        )

    @pytest.mark.asyncio
    @patch("agentskills.fetcher.Repo")
    async def test_default_branch(self, mock_repo: MagicMock, tmp_path: Path) -> None:
        dest = tmp_path / "out"
        await DefaultFetcher().extract("git+https://example.com/r.git", dest)
        mock_repo.clone_from.assert_called_once_with("https://example.com/r.git", dest, depth=1)

    @pytest.mark.asyncio
    @patch("agentskills.fetcher.Repo")
    async def test_commit_falls_back_to_full_clone(
        self, mock_repo: MagicMock, tmp_path: Path
    ) -> None:
        repo = MagicMock()

        def clone_side_effect(url: str, path: Path, **kwargs: object) -> MagicMock:
            if "branch" in kwargs:
                raise GitCommandError("clone", 128, stderr="Remote branch abc123 not found")
            return repo

        mock_repo.clone_from.side_effect = clone_side_effect

        await DefaultFetcher().extract("github:owner/repo#abc123", tmp_path / "out")

        assert mock_repo.clone_from.call_count == 2
        repo.git.checkout.assert_called_once_with("abc123")

    @pytest.mark.asyncio
    @patch("agentskills.fetcher.Repo")
    async def test_removes_git_dir(self, mock_repo: MagicMock, tmp_path: Path) -> None:
        dest = tmp_path / "out"

        def clone_side_effect(url: str, path: Path, **kwargs: object) -> MagicMock:
            (path / ".git").mkdir(parents=True)
            (path / "SKILL.md").write_text(SKILL_CONTENT)
            return MagicMock()

        mock_repo.clone_from.side_effect = clone_side_effect

        await DefaultFetcher().extract("github:owner/repo", dest)

        assert (dest / "SKILL.md").is_file()
        assert not (dest / ".git").exists()

    @pytest.mark.asyncio
    @patch("agentskills.fetcher.Repo")
    async def test_clone_failure_cleans_up(self, mock_repo: MagicMock, tmp_path: Path) -> None:
        dest = tmp_path / "out"

        def clone_side_effect(url: str, path: Path, **kwargs: object) -> MagicMock:
            path.mkdir(parents=True, exist_ok=True)
            raise GitCommandError("clone", 128, stderr="Repository not found.")

        mock_repo.clone_from.side_effect = clone_side_effect

        with pytest.raises(GitCommandError):
            await DefaultFetcher().extract("github:owner/missing", dest)
        assert not dest.exists()

    @pytest.mark.asyncio
    @patch("agentskills.fetcher.Git")
    async def test_metadata_revision(self, mock_git: MagicMock) -> None:
        mock_git.return_value.ls_remote.return_value = "0123456789abcdef\trefs/tags/v1.0.0\n"

        metadata = await DefaultFetcher().fetch_metadata("github:owner/repo#v1.0.0")

        mock_git.return_value.ls_remote.assert_called_once_with(
            "https://github.com/owner/repo.git", "v1.0.0"
        )
        assert metadata.revision == "0123456789abcdef"
        assert metadata.integrity is None

    @pytest.mark.asyncio
    @patch("agentskills.fetcher.Git")
    async def test_metadata_commit_id(self, mock_git: MagicMock) -> None:
        mock_git.return_value.ls_remote.return_value = ""
        metadata = await DefaultFetcher().fetch_metadata("github:owner/repo#abc1234def")
        assert metadata.revision == "abc1234def"
