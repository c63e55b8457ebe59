import json

import pytest

from vespasearch.services import Stage, StatusBus, StatusSnapshot
from vespasearch.storage import ChunkJournal, ChunkRecord, RepoPaths


@pytest.fixture
def bus(tmp_path) -> StatusBus:
    async def locate(repo_id: str) -> RepoPaths:
        return RepoPaths(tmp_path / repo_id)

    return StatusBus(locate, capacity=4)


def _drain(subscription):
    events = []
    while not subscription.empty():
        events.append(subscription._queue.get_nowait())
    return events


@pytest.mark.asyncio
async def test_publish_persists_snapshot(bus, tmp_path) -> None:
    await bus.publish("r1", Stage.CLONING, "Cloning repository")

    payload = json.loads((tmp_path / "r1" / "vv" / "status.json").read_text())
    assert payload == {"status": "cloning", "message": "Cloning repository"}
    snapshot = await bus.read("r1")
    assert snapshot == StatusSnapshot(stage=Stage.CLONING, message="Cloning repository")


@pytest.mark.asyncio
async def test_fan_out_is_filtered_per_repository(bus) -> None:
    first = bus.subscribe("r1")
    second = bus.subscribe("r1")
    other = bus.subscribe("r2")

    await bus.publish("r1", Stage.INDEXING, "Feeding 3 files to Vespa")

    for subscription in (first, second):
        events = _drain(subscription)
        assert [(e.repo_id, e.stage) for e in events] == [("r1", Stage.INDEXING)]
    assert other.empty()


@pytest.mark.asyncio
async def test_no_replay_for_late_subscribers(bus) -> None:
    await bus.publish("r1", Stage.QUEUED, "Ingestion queued")
    late = bus.subscribe("r1")
    assert late.empty()
    assert (await bus.read("r1")).stage is Stage.QUEUED


@pytest.mark.asyncio
async def test_slow_subscriber_loses_events(bus) -> None:
    slow = bus.subscribe("r1")
    stages = [Stage.QUEUED, Stage.CLONING, Stage.MIRRORING, Stage.INDEXING,
              Stage.SUMMARIZING, Stage.COMPLETE]

    for stage in stages:
        await bus.publish("r1", stage)

    received = [event.stage for event in _drain(slow)]
    assert received == stages[:4]
    assert slow.dropped == 2
    assert (await bus.read("r1")).stage is Stage.COMPLETE


@pytest.mark.asyncio
async def test_closed_subscription_receives_nothing(bus) -> None:
    subscription = bus.subscribe("r1")
    subscription.close()
    await bus.publish("r1", Stage.CLONING)
    assert subscription.empty()


@pytest.mark.asyncio
async def test_get_times_out_with_none(bus) -> None:
    with bus.subscribe("r1") as subscription:
        assert await subscription.get(timeout=0.01) is None


@pytest.mark.asyncio
async def test_event_payload_shape(bus) -> None:
    with bus.subscribe("r1") as subscription:
        await bus.publish("r1", Stage.ERROR, "git clone failed: boom")
        event = await subscription.get(timeout=1)
    payload = event.to_dict()
    assert payload["repo_id"] == "r1"
    assert payload["stage"] == "error"
    assert payload["message"] == "git clone failed: boom"
    assert payload["timestamp"]
    assert event.stage.terminal


@pytest.mark.asyncio
async def test_missing_snapshot_with_journal_reads_complete(bus, tmp_path) -> None:
    paths = RepoPaths(tmp_path / "r1")
    ChunkJournal(paths.journal_file).reset()
    ChunkJournal(paths.journal_file).append(
        ChunkRecord("r1", "a.py", "c1", 1, 3, "sha")
    )

    snapshot = await bus.read("r1")
    assert snapshot.stage is Stage.COMPLETE
    assert snapshot.message == "Recovered from chunk journal"


@pytest.mark.asyncio
async def test_missing_snapshot_with_wiki_reads_unknown(bus, tmp_path) -> None:
    paths = RepoPaths(tmp_path / "r1")
    paths.wiki_dir.mkdir(parents=True)
    paths.wiki_file.write_text("# CodeWiki for acme/widgets\n", encoding="utf-8")

    snapshot = await bus.read("r1")
    assert snapshot.stage is Stage.UNKNOWN
    assert snapshot.message


@pytest.mark.asyncio
async def test_empty_journal_is_not_recovery_signal(bus, tmp_path) -> None:
    ChunkJournal(RepoPaths(tmp_path / "r1").journal_file).reset()
    assert await bus.read("r1") == StatusSnapshot(stage=Stage.UNKNOWN)


@pytest.mark.asyncio
async def test_nothing_on_disk_reads_unknown(bus) -> None:
    assert await bus.read("never-indexed") == StatusSnapshot(stage=Stage.UNKNOWN)
