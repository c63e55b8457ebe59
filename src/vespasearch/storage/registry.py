"""
Local registry for repositories known to the search backend.

Persists a JSON catalogue under the data directory. The in-memory list is
shared by every request handler and ingestion task, so it sits behind a
reader/writer lock; disk writes always happen after the lock is released.
"""

from __future__ import annotations

import asyncio
import json
import uuid
from contextlib import asynccontextmanager
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import AsyncIterator, List, Optional, Tuple

from ..errors import InvalidRepoUrl, RepoNotFound, SerializationError
from ..logger import get_logger
from ..settings import settings

log = get_logger(__name__)

_URL_PREFIXES = (
    "https://github.com/",
    "http://github.com/",
    "git@github.com:",
)


@dataclass
class RepoRecord:
    """Entry describing a registered repository."""

    id: str
    repo_url: str
    owner: str
    name: str


def parse_repo_url(repo_url: str) -> Tuple[str, str]:
    """Return ``(owner, name)`` for a GitHub clone URL."""
    trimmed = repo_url.strip().rstrip("/")
    if trimmed.endswith(".git"):
        trimmed = trimmed[: -len(".git")]

    for prefix in _URL_PREFIXES:
        if trimmed.startswith(prefix):
            cleaned = trimmed[len(prefix) :]
            break
    else:
        raise InvalidRepoUrl(repo_url)

    parts = cleaned.split("/")
    if len(parts) < 2 or not parts[0] or not parts[1]:
        raise InvalidRepoUrl(repo_url)
    return parts[0], parts[1]


class ReadWriteLock:
    """Many concurrent readers or a single writer."""

    def __init__(self) -> None:
        self._readers = 0
        self._writer = False
        self._condition = asyncio.Condition()

    @asynccontextmanager
    async def read(self) -> AsyncIterator[None]:
        async with self._condition:
            await self._condition.wait_for(lambda: not self._writer)
            self._readers += 1
        try:
            yield
        finally:
            async with self._condition:
                self._readers -= 1
                if self._readers == 0:
                    self._condition.notify_all()

    @asynccontextmanager
    async def write(self) -> AsyncIterator[None]:
        async with self._condition:
            await self._condition.wait_for(
                lambda: not self._writer and self._readers == 0
            )
            self._writer = True
        try:
            yield
        finally:
            async with self._condition:
                self._writer = False
                self._condition.notify_all()


class RepositoryRegistry:
    """JSON-backed registry implementation."""

    def __init__(self, registry_path: Optional[Path] = None) -> None:
        self.registry_path = registry_path or settings.registry_path
        self.registry_path.parent.mkdir(parents=True, exist_ok=True)
        self._records: List[RepoRecord] = []
        self._lock = ReadWriteLock()
        self._save_lock = asyncio.Lock()
        self._load()

    def _load(self) -> None:
        if not self.registry_path.exists():
            return
        try:
            data = json.loads(self.registry_path.read_text(encoding="utf-8"))
            self._records = [RepoRecord(**payload) for payload in data]
        except (ValueError, TypeError) as exc:
            log.warning(
                "registry_load_failed", path=str(self.registry_path), error=str(exc)
            )
            return
        log.info("registry_loaded", count=len(self._records))

    async def get(self, repo_id: str) -> RepoRecord:
        async with self._lock.read():
            for record in self._records:
                if record.id == repo_id:
                    return record
        raise RepoNotFound(repo_id)

    async def list(self) -> List[RepoRecord]:
        async with self._lock.read():
            return list(self._records)

    async def upsert(self, record: RepoRecord) -> List[RepoRecord]:
        """Insert or replace ``record``; returns a snapshot for :meth:`save`."""
        async with self._lock.write():
            for index, existing in enumerate(self._records):
                if existing.id == record.id:
                    self._records[index] = record
                    break
            else:
                self._records.append(record)
            snapshot = list(self._records)
        log.info("repository_registered", repo_id=record.id, repo=f"{record.owner}/{record.name}")
        return snapshot

    async def save(self, snapshot: Optional[List[RepoRecord]] = None) -> None:
        """
        Persist the catalogue.

        Without ``snapshot`` the current records are taken once the previous
        write has finished, so the last save always reflects the newest state.
        """
        async with self._save_lock:
            if snapshot is None:
                snapshot = await self.list()
            try:
                payload = json.dumps([asdict(record) for record in snapshot], indent=2)
            except (TypeError, ValueError) as exc:
                raise SerializationError(str(exc)) from exc
            await asyncio.to_thread(
                self.registry_path.write_text, payload, encoding="utf-8"
            )
        log.debug("registry_persisted", count=len(snapshot))

    async def register(self, repo_url: str) -> RepoRecord:
        """Parse ``repo_url``, add a new record with a fresh id and persist."""
        owner, name = parse_repo_url(repo_url)
        record = RepoRecord(
            id=str(uuid.uuid4()), repo_url=repo_url.strip(), owner=owner, name=name
        )
        await self.upsert(record)
        await self.save()
        return record
