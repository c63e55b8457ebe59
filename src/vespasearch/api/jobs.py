"""
Background ingestion tasks for the API.

Each accepted index request becomes one detached asyncio task. The manager
keeps a strong reference until it finishes and turns anything that escapes
the orchestrator into a published ``error`` stage.
"""
from __future__ import annotations

import asyncio
from typing import Set

from ..logger import get_logger
from ..services import IngestionOrchestrator
from ..storage import RepoRecord

log = get_logger(__name__)


class JobManager:
    """Supervises detached ingestion tasks."""

    def __init__(self, orchestrator: IngestionOrchestrator) -> None:
        self.orchestrator = orchestrator
        self._tasks: Set[asyncio.Task] = set()

    async def start(self, record: RepoRecord) -> None:
        await self.orchestrator.enqueue(record)
        task = asyncio.create_task(self._supervise(record), name=f"ingest-{record.id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _supervise(self, record: RepoRecord) -> None:
        try:
            outcome = await self.orchestrator.run(record)
        except asyncio.CancelledError:
            log.warning("ingestion_task_cancelled", repo_id=record.id)
            raise
        except Exception as exc:  # pragma: no cover - run() already catches
            log.exception("ingestion_task_crashed", repo_id=record.id)
            await self.orchestrator.publish_error(record.id, str(exc))
        else:
            log.info("ingestion_task_finished", repo_id=record.id, stage=outcome.value)

    async def shutdown(self) -> None:
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
