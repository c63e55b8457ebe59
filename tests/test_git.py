import shutil

import pytest

from vespasearch.ingestion import git
from vespasearch.ingestion.git import GitResult

requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")


@requires_git
@pytest.mark.asyncio
async def test_ls_files_returns_non_ascii_paths_verbatim(tmp_path) -> None:
    repo = tmp_path / "repo"
    repo.mkdir()
    assert (await git.run_git("init", "-q", str(repo))).ok
    (repo / "café.py").write_text("print('bonjour')\n", encoding="utf-8")
    (repo / "docs").mkdir()
    (repo / "docs" / "naïve guide.md").write_text("# guide\n", encoding="utf-8")
    assert (await git.run_git("-C", str(repo), "add", ".")).ok

    files = await git.ls_files(repo)

    assert sorted(files) == ["café.py", "docs/naïve guide.md"]
    assert all((repo / path).exists() for path in files)


@requires_git
@pytest.mark.asyncio
async def test_ls_files_outside_a_repository_is_none(tmp_path) -> None:
    assert await git.ls_files(tmp_path) is None


@pytest.mark.asyncio
async def test_push_mirror_passes_credentials_per_command(tmp_path, monkeypatch) -> None:
    calls = []

    async def fake_run_git(*args, cwd=None):
        calls.append(args)
        return GitResult(returncode=0, stdout="", stderr="")

    monkeypatch.setattr(git, "run_git", fake_run_git)

    await git.push_mirror(
        tmp_path, "https://github.com/mirrors/acme-widgets.git", "Authorization: Basic abc"
    )

    assert calls == [
        (
            "-c",
            "http.extraHeader=Authorization: Basic abc",
            "-C",
            str(tmp_path),
            "push",
            "--mirror",
            "https://github.com/mirrors/acme-widgets.git",
        )
    ]
    assert not any("remote" in arg for call in calls for arg in call)
