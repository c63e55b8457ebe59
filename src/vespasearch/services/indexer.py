"""
Repository ingestion workflow orchestration.

Stages run strictly in sequence for a repository:
``queued -> cloning -> mirroring -> indexing -> summarizing -> complete``.
Any failure before summarising ends the run in ``error``; a failed summary
is logged and the run still completes.
"""
from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Dict, List, Optional

from ..errors import AppError, IngestionError
from ..ingestion import RepositoryIngestionManager, SourceMirror
from ..logger import get_logger, repository_context
from ..rag.summarizer import RepositorySummarizer
from ..storage.artifacts import (
    ChunkJournal,
    RepoPaths,
    SummaryEntry,
    placeholder_wiki,
    write_manifest,
)
from ..storage.registry import RepoRecord
from .feeder import DocumentFeedWriter, ProgressCallback
from .status import Stage, StatusBus

log = get_logger(__name__)


class IngestionOrchestrator:
    """High-level service that chains cloning, mirroring, feeding and summarising."""

    def __init__(
        self,
        manager: RepositoryIngestionManager,
        bus: StatusBus,
        feeder: DocumentFeedWriter,
        summarizer: RepositorySummarizer,
        mirror: Optional[SourceMirror] = None,
    ) -> None:
        self.manager = manager
        self.bus = bus
        self.feeder = feeder
        self.summarizer = summarizer
        self.mirror = mirror
        self._locks: Dict[Path, asyncio.Lock] = {}
        self._holders: Dict[Path, int] = {}

    @asynccontextmanager
    async def _checkout_lock(self, record: RepoRecord, checkout: Path) -> AsyncIterator[None]:
        """Serialise work on one checkout; the lock is dropped once unused."""
        lock = self._locks.setdefault(checkout, asyncio.Lock())
        self._holders[checkout] = self._holders.get(checkout, 0) + 1
        try:
            if lock.locked():
                log.info("ingestion_waiting_for_previous_run", repo_id=record.id)
            async with lock:
                yield
        finally:
            self._holders[checkout] -= 1
            if not self._holders[checkout]:
                del self._holders[checkout]
                del self._locks[checkout]

    async def enqueue(self, record: RepoRecord) -> None:
        """Record the ``queued`` stage before the run is scheduled."""
        await self.bus.publish(record.id, Stage.QUEUED, "Ingestion queued")

    async def run(
        self, record: RepoRecord, progress: Optional[ProgressCallback] = None
    ) -> Stage:
        """
        Drive ``record`` to a terminal stage and return it.

        Errors never escape: they are logged, published as ``error`` and the
        terminal stage is returned. Runs sharing a checkout directory are
        serialised.
        """
        paths = self.manager.paths_for(record)
        with repository_context(record.id):
            async with self._checkout_lock(record, paths.checkout):
                try:
                    await self._ingest(record, paths, progress)
                except Exception as exc:  # task boundary
                    log.exception("ingestion_failed", error=str(exc))
                    await self.publish_error(record.id, str(exc))
                    return Stage.ERROR
                return Stage.COMPLETE

    async def publish_error(self, repo_id: str, message: str) -> None:
        try:
            await self.bus.publish(repo_id, Stage.ERROR, message)
        except AppError as exc:
            log.error("status_publish_failed", repo_id=repo_id, error=str(exc))

    async def _ingest(
        self,
        record: RepoRecord,
        paths: RepoPaths,
        progress: Optional[ProgressCallback],
    ) -> None:
        await self.bus.publish(record.id, Stage.CLONING, "Cloning repository")
        await self.manager.prepare_checkout(record, paths)
        paths.ensure()
        write_manifest(paths, record)

        if self.mirror is not None:
            await self.bus.publish(record.id, Stage.MIRRORING, "Mirroring repository")
            await self.mirror.mirror(record, paths.checkout)
        else:
            await self.bus.publish(
                record.id, Stage.MIRRORING, "Mirroring not configured, skipped"
            )

        files = await self.manager.list_files(paths.checkout)
        if not paths.summaries_file.exists():
            paths.wiki_file.write_text(placeholder_wiki(record), encoding="utf-8")

        await self.bus.publish(
            record.id, Stage.INDEXING, f"Feeding {len(files)} files to Vespa"
        )
        ChunkJournal(paths.journal_file).reset()
        result = await self.feeder.feed(record, paths, files, progress=progress)

        await self.bus.publish(
            record.id, Stage.SUMMARIZING, "Generating repository summary"
        )
        message = f"Ingestion complete ({result.indexed} documents)"
        try:
            await self.summarizer.generate(record, paths, files)
        except Exception as exc:  # summaries never fail the run
            log.warning("summary_failed", repo_id=record.id, error=str(exc))
            message += ", summary unavailable"

        await self.bus.publish(record.id, Stage.COMPLETE, message)

    async def resummarize(self, record: RepoRecord) -> SummaryEntry:
        """Generate a new summary version for an already cloned repository."""
        paths = self.manager.paths_for(record)
        with repository_context(record.id):
            async with self._checkout_lock(record, paths.checkout):
                if not (paths.checkout / ".git").exists():
                    raise IngestionError("repository has not been cloned yet")
                files: List[str] = await self.manager.list_files(paths.checkout)
                return await self.summarizer.generate(record, paths, files)
