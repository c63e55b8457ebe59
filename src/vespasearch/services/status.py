"""
Ingestion status snapshots and live event fan-out.

``publish`` writes the latest stage to ``status.json`` and offers the event
to every live subscriber. Subscribers only see events published after they
subscribed, and each has a bounded buffer: when it is full the event is
dropped for that subscriber and the publisher carries on. Readers that need
the authoritative state should use :meth:`StatusBus.read`.
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

from ..errors import IngestionError
from ..logger import get_logger
from ..settings import settings
from ..storage.artifacts import ChunkJournal, RepoPaths

log = get_logger(__name__)


class Stage(str, Enum):
    QUEUED = "queued"
    CLONING = "cloning"
    MIRRORING = "mirroring"
    INDEXING = "indexing"
    SUMMARIZING = "summarizing"
    COMPLETE = "complete"
    ERROR = "error"
    UNKNOWN = "unknown"

    @property
    def terminal(self) -> bool:
        return self in (Stage.COMPLETE, Stage.ERROR)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class IngestEvent:
    repo_id: str
    stage: Stage
    message: Optional[str] = None
    timestamp: str = field(default_factory=_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "repo_id": self.repo_id,
            "stage": self.stage.value,
            "message": self.message,
            "timestamp": self.timestamp,
        }


@dataclass
class StatusSnapshot:
    stage: Stage
    message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"status": self.stage.value, "message": self.message}

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "StatusSnapshot":
        try:
            stage = Stage(payload.get("status"))
        except ValueError:
            stage = Stage.UNKNOWN
        return cls(stage=stage, message=payload.get("message"))


class Subscription:
    """A bounded, lossy stream of events for one repository."""

    def __init__(self, bus: "StatusBus", repo_id: str, capacity: int) -> None:
        self.repo_id = repo_id
        self.dropped = 0
        self._bus = bus
        self._queue: asyncio.Queue[IngestEvent] = asyncio.Queue(maxsize=capacity)

    def offer(self, event: IngestEvent) -> None:
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            self.dropped += 1
            log.debug("status_event_dropped", repo_id=self.repo_id, dropped=self.dropped)

    async def get(self, timeout: Optional[float] = None) -> Optional[IngestEvent]:
        """Next event, or ``None`` if ``timeout`` elapses first."""
        if timeout is None:
            return await self._queue.get()
        try:
            return await asyncio.wait_for(self._queue.get(), timeout)
        except asyncio.TimeoutError:
            return None

    def empty(self) -> bool:
        return self._queue.empty()

    def __aiter__(self) -> "Subscription":
        return self

    async def __anext__(self) -> IngestEvent:
        return await self._queue.get()

    def close(self) -> None:
        self._bus._unsubscribe(self)

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


Locator = Callable[[str], Awaitable[RepoPaths]]


class StatusBus:
    """Persists the current stage per repository and broadcasts transitions."""

    def __init__(self, locate: Locator, capacity: Optional[int] = None) -> None:
        self._locate = locate
        self.capacity = capacity or settings.events_capacity
        self._subscribers: List[Subscription] = []

    def subscribe(self, repo_id: str) -> Subscription:
        subscription = Subscription(self, repo_id, self.capacity)
        self._subscribers.append(subscription)
        return subscription

    def _unsubscribe(self, subscription: Subscription) -> None:
        if subscription in self._subscribers:
            self._subscribers.remove(subscription)

    async def publish(
        self, repo_id: str, stage: Stage, message: Optional[str] = None
    ) -> IngestEvent:
        event = IngestEvent(repo_id=repo_id, stage=stage, message=message)
        log.info("ingestion_stage", repo_id=repo_id, stage=stage.value, message=message)

        paths = await self._locate(repo_id)
        snapshot = StatusSnapshot(stage=stage, message=message)
        try:
            paths.artifacts.mkdir(parents=True, exist_ok=True)
            paths.status_file.write_text(
                json.dumps(snapshot.to_dict(), indent=2), encoding="utf-8"
            )
        except OSError as exc:
            raise IngestionError(f"failed to write status: {exc}") from exc

        for subscription in list(self._subscribers):
            if subscription.repo_id == repo_id:
                subscription.offer(event)
        return event

    async def read(self, repo_id: str) -> StatusSnapshot:
        paths = await self._locate(repo_id)
        if paths.status_file.exists():
            try:
                payload = json.loads(paths.status_file.read_text(encoding="utf-8"))
                return StatusSnapshot.from_dict(payload)
            except (OSError, ValueError) as exc:
                log.warning("status_read_failed", repo_id=repo_id, error=str(exc))
        return self._reconstruct(paths)

    @staticmethod
    def _reconstruct(paths: RepoPaths) -> StatusSnapshot:
        """Best-effort guess when the snapshot is missing.

        A repository that failed after feeding some files is reported as
        complete here; only the journal is consulted.
        """
        if ChunkJournal(paths.journal_file).has_entries():
            return StatusSnapshot(
                stage=Stage.COMPLETE,
                message="Recovered from chunk journal",
            )
        if paths.summaries_file.exists() or paths.wiki_file.exists():
            return StatusSnapshot(
                stage=Stage.UNKNOWN,
                message="Status file missing; wiki artifacts present from an earlier run",
            )
        return StatusSnapshot(stage=Stage.UNKNOWN)
