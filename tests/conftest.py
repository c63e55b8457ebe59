from __future__ import annotations

import pytest

from vespasearch.http import RetryPolicy
from vespasearch.settings import AppSettings
from vespasearch.storage import RepoRecord

from .helpers import SleepRecorder


@pytest.fixture
def cfg(tmp_path) -> AppSettings:
    return AppSettings(
        data_dir=tmp_path / "data",
        embedding_dimension=8,
        retry_max_retries=2,
        retry_base_delay=0.0,
        retry_max_delay=0.0,
    )


@pytest.fixture
def no_retry() -> RetryPolicy:
    return RetryPolicy(max_retries=0, base_delay=0.0, max_delay=0.0)


@pytest.fixture
def sleeper() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def record() -> RepoRecord:
    return RepoRecord(
        id="repo-1",
        repo_url="https://github.com/acme/widgets.git",
        owner="acme",
        name="widgets",
    )
