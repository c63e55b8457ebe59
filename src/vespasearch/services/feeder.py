"""
Document feeding: one Vespa document per indexable file.
"""
from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Sequence

from ..embeddings import EmbeddingAdapter, EmbeddingCache
from ..ingestion import git
from ..ingestion.classifier import ClassifiedFile, ContentClassifier
from ..logger import get_logger
from ..storage.artifacts import ChunkJournal, ChunkRecord, RepoPaths, sha256_hex
from ..storage.registry import RepoRecord
from ..storage.vespa import VespaClient

log = get_logger(__name__)

ProgressCallback = Callable[[int, int], None]


def make_chunk_id(repo_id: str, file_path: str) -> str:
    return sha256_hex(f"{repo_id}:{file_path}".encode("utf-8"))


@dataclass
class FeedResult:
    indexed: int


class DocumentFeedWriter:
    """Classifies, embeds and PUTs every file; any rejection aborts the feed."""

    def __init__(
        self,
        vespa: VespaClient,
        embedder: EmbeddingAdapter,
        classifier: Optional[ContentClassifier] = None,
    ) -> None:
        self.vespa = vespa
        self.embedder = embedder
        self.classifier = classifier or ContentClassifier()

    async def feed(
        self,
        record: RepoRecord,
        paths: RepoPaths,
        files: Sequence[str],
        progress: Optional[ProgressCallback] = None,
    ) -> FeedResult:
        journal = ChunkJournal(paths.journal_file)
        cache = EmbeddingCache(paths.vectors_dir)
        commit_sha = await git.head_commit(paths.checkout)
        branch = await git.current_branch(paths.checkout)

        total = len(files)
        indexed = 0
        if progress:
            progress(0, total)
        for position, file_path in enumerate(files, start=1):
            try:
                data = (paths.checkout / file_path).read_bytes()
            except OSError as exc:
                log.error("file_read_failed", path=file_path, error=str(exc))
                continue

            classified = self.classifier.classify(file_path, data)
            if classified is not None:
                await self._feed_file(record, classified, cache, journal, commit_sha, branch)
                indexed += 1
            if progress:
                progress(position, total)

        log.info("vespa_feed_completed", repo_id=record.id, documents=indexed, files=total)
        return FeedResult(indexed=indexed)

    async def _feed_file(
        self,
        record: RepoRecord,
        classified: ClassifiedFile,
        cache: EmbeddingCache,
        journal: ChunkJournal,
        commit_sha: str,
        branch: str,
    ) -> None:
        content_sha = sha256_hex(classified.content.encode("utf-8"))
        chunk_id = make_chunk_id(record.id, classified.path)
        embedding = await self.embedder.embed(classified.content, cache=cache)

        fields: Dict[str, Any] = {
            "repo_id": record.id,
            "repo_url": record.repo_url,
            "repo_name": record.name,
            "repo_owner": record.owner,
            "commit_sha": commit_sha,
            "branch": branch,
            "file_path": classified.path,
            "language": classified.language,
            "license_spdx": "unknown",
            "chunk_id": chunk_id,
            "chunk_hash": content_sha,
            "line_start": 1,
            "line_end": classified.line_count,
            "symbol_names": [],
            "content": classified.content,
            "content_sha": content_sha,
            "embedding": {"values": embedding},
            "last_indexed_at": int(time.time() * 1000),
        }
        await self.vespa.put_document(f"{record.id}-{chunk_id}", fields)

        journal.append(
            ChunkRecord(
                repo_id=record.id,
                file_path=classified.path,
                chunk_id=chunk_id,
                line_start=1,
                line_end=classified.line_count,
                content_sha=content_sha,
            )
        )
