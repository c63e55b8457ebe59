"""
Data persistence utilities: the repository registry, per-repository ingestion
artifacts and the Vespa document/search client.
"""

from .artifacts import ChunkJournal, ChunkRecord, RepoPaths, SummaryEntry, SummaryStore
from .registry import RepoRecord, RepositoryRegistry, parse_repo_url
from .vespa import VespaClient

__all__ = [
    "ChunkJournal",
    "ChunkRecord",
    "RepoPaths",
    "RepoRecord",
    "RepositoryRegistry",
    "SummaryEntry",
    "SummaryStore",
    "VespaClient",
    "parse_repo_url",
]
