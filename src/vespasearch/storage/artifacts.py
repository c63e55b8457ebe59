"""
On-disk ingestion artifacts for a single repository.

Everything produced by an ingestion run lives under ``<checkout>/vv``:

* ``status.json``        last published stage (see ``services.status``)
* ``manifest.json``      repo url/owner/name and ingestion timestamp
* ``chunks.jsonl``       append-only journal, one line per fed file
* ``vectors/<sha>.json`` content-addressed embedding cache
* ``wiki/index.md``      plain display summary
* ``wiki/summaries.json`` versioned summary history
"""

from __future__ import annotations

import hashlib
import json
import shutil
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from ..errors import SerializationError
from ..logger import get_logger
from ..settings import settings
from .registry import RepoRecord

log = get_logger(__name__)

ARTIFACT_DIR_NAME = "vv"


def placeholder_wiki(record: RepoRecord) -> str:
    return (
        f"# CodeWiki for {record.owner}/{record.name}\n\n"
        "This is a placeholder wiki generated during ingestion.\n"
    )


NO_WIKI_CONTENT = "# CodeWiki\n\nWiki content is not yet available."


@dataclass(frozen=True)
class RepoPaths:
    """Deterministic locations for a repository checkout and its artifacts."""

    checkout: Path

    @classmethod
    def for_record(cls, record: RepoRecord, repos_root: Optional[Path] = None) -> "RepoPaths":
        root = repos_root or settings.repos_path
        return cls(checkout=root / record.owner / record.name)

    @property
    def artifacts(self) -> Path:
        return self.checkout / ARTIFACT_DIR_NAME

    @property
    def status_file(self) -> Path:
        return self.artifacts / "status.json"

    @property
    def manifest_file(self) -> Path:
        return self.artifacts / "manifest.json"

    @property
    def journal_file(self) -> Path:
        return self.artifacts / "chunks.jsonl"

    @property
    def vectors_dir(self) -> Path:
        return self.artifacts / "vectors"

    @property
    def wiki_dir(self) -> Path:
        return self.artifacts / "wiki"

    @property
    def wiki_file(self) -> Path:
        return self.wiki_dir / "index.md"

    @property
    def summaries_file(self) -> Path:
        return self.wiki_dir / "summaries.json"

    def ensure(self) -> None:
        for directory in (self.artifacts, self.vectors_dir, self.wiki_dir):
            directory.mkdir(parents=True, exist_ok=True)

    def remove_artifacts(self) -> None:
        shutil.rmtree(self.artifacts, ignore_errors=True)


def write_manifest(paths: RepoPaths, record: RepoRecord) -> None:
    manifest = {
        "repo_url": record.repo_url,
        "owner": record.owner,
        "name": record.name,
        "indexed_at": datetime.now(timezone.utc).isoformat(),
    }
    paths.manifest_file.write_text(json.dumps(manifest, indent=2), encoding="utf-8")


@dataclass
class ChunkRecord:
    repo_id: str
    file_path: str
    chunk_id: str
    line_start: int
    line_end: int
    content_sha: str


class ChunkJournal:
    """Append-only record of the files successfully fed to the index."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def reset(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text("", encoding="utf-8")

    def append(self, record: ChunkRecord) -> None:
        line = json.dumps(asdict(record))
        with self.path.open("a", encoding="utf-8") as handle:
            handle.write(line + "\n")

    def records(self) -> List[ChunkRecord]:
        if not self.path.exists():
            return []
        entries: List[ChunkRecord] = []
        for line in self.path.read_text(encoding="utf-8").splitlines():
            if line.strip():
                entries.append(ChunkRecord(**json.loads(line)))
        return entries

    def has_entries(self) -> bool:
        try:
            return self.path.stat().st_size > 0
        except FileNotFoundError:
            return False


@dataclass
class SummaryEntry:
    version: int
    created_at: str
    summary: str


class SummaryStore:
    """Ordered, append-only history of generated summaries."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self.entries: List[SummaryEntry] = []
        if path.exists():
            try:
                raw = json.loads(path.read_text(encoding="utf-8"))
                self.entries = [SummaryEntry(**item) for item in raw]
            except (ValueError, TypeError) as exc:
                raise SerializationError(f"{path}: {exc}") from exc

    def next_version(self) -> int:
        return self.entries[-1].version + 1 if self.entries else 1

    def latest(self) -> Optional[SummaryEntry]:
        return self.entries[-1] if self.entries else None

    def history(self) -> List[SummaryEntry]:
        """Entries newest first, for display."""
        return list(reversed(self.entries))

    def append(self, summary: str) -> SummaryEntry:
        entry = SummaryEntry(
            version=self.next_version(),
            created_at=datetime.now(timezone.utc).isoformat(),
            summary=summary,
        )
        self.entries.append(entry)
        self.save()
        return entry

    def save(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = json.dumps([asdict(entry) for entry in self.entries], indent=2)
        self.path.write_text(payload, encoding="utf-8")
        log.debug("summary_store_persisted", path=str(self.path), count=len(self.entries))


def sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()
