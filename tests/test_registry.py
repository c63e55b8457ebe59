import asyncio

import pytest

from vespasearch.errors import InvalidRepoUrl, RepoNotFound
from vespasearch.storage import RepositoryRegistry, parse_repo_url


@pytest.mark.parametrize(
    "url",
    [
        "https://github.com/acme/widgets.git",
        "https://github.com/acme/widgets",
        "https://github.com/acme/widgets/",
        "http://github.com/acme/widgets",
        "git@github.com:acme/widgets.git",
        "  https://github.com/acme/widgets.git  ",
    ],
)
def test_parse_repo_url(url: str) -> None:
    assert parse_repo_url(url) == ("acme", "widgets")


@pytest.mark.parametrize(
    "url",
    [
        "https://gitlab.com/acme/widgets",
        "https://github.com/acme",
        "https://github.com//widgets",
        "widgets",
        "",
    ],
)
def test_invalid_repo_url(url: str) -> None:
    with pytest.raises(InvalidRepoUrl):
        parse_repo_url(url)


@pytest.mark.asyncio
async def test_register_persists_and_reloads(tmp_path) -> None:
    path = tmp_path / "data" / "registry.json"
    registry = RepositoryRegistry(path)

    record = await registry.register("https://github.com/acme/widgets.git")
    other = await registry.register("git@github.com:acme/gadgets.git")

    assert record.owner == "acme"
    assert record.name == "widgets"
    assert record.id != other.id
    assert await registry.get(record.id) == record

    reloaded = RepositoryRegistry(path)
    assert [r.name for r in await reloaded.list()] == ["widgets", "gadgets"]


@pytest.mark.asyncio
async def test_unknown_id_raises(tmp_path) -> None:
    registry = RepositoryRegistry(tmp_path / "registry.json")
    with pytest.raises(RepoNotFound):
        await registry.get("missing")


@pytest.mark.asyncio
async def test_invalid_url_is_not_registered(tmp_path) -> None:
    registry = RepositoryRegistry(tmp_path / "registry.json")
    with pytest.raises(InvalidRepoUrl):
        await registry.register("ftp://example.com/repo")
    assert await registry.list() == []


@pytest.mark.asyncio
async def test_concurrent_registrations(tmp_path) -> None:
    registry = RepositoryRegistry(tmp_path / "registry.json")
    urls = [f"https://github.com/acme/repo{i}" for i in range(10)]

    records = await asyncio.gather(*(registry.register(url) for url in urls))
    listed = await asyncio.gather(*(registry.list() for _ in range(5)))

    assert {r.name for r in records} == {f"repo{i}" for i in range(10)}
    assert all(len(snapshot) == 10 for snapshot in listed)
    assert len(RepositoryRegistry(tmp_path / "registry.json")._records) == 10
