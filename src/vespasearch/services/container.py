"""
Wiring of the long-lived collaborators shared by the API and the CLI.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from ..embeddings import EmbeddingAdapter, EmbeddingProviderFactory
from ..ingestion import ContentClassifier, RepositoryIngestionManager, SourceMirror
from ..rag import RepositorySummarizer, SearchQueryBuilder, SearchService, SummarizationClient
from ..settings import AppSettings, settings
from ..storage import RepoPaths, RepositoryRegistry, VespaClient
from .feeder import DocumentFeedWriter
from .indexer import IngestionOrchestrator
from .status import StatusBus


@dataclass
class AppServices:
    registry: RepositoryRegistry
    manager: RepositoryIngestionManager
    bus: StatusBus
    orchestrator: IngestionOrchestrator
    search: SearchService
    embedder: EmbeddingAdapter
    vespa: VespaClient
    summarization: SummarizationClient
    mirror: Optional[SourceMirror] = None

    async def aclose(self) -> None:
        await self.embedder.aclose()
        await self.vespa.aclose()
        await self.summarization.aclose()
        if self.mirror is not None:
            await self.mirror.aclose()


def build_services(
    cfg: Optional[AppSettings] = None,
    registry: Optional[RepositoryRegistry] = None,
    embedder: Optional[EmbeddingAdapter] = None,
    vespa: Optional[VespaClient] = None,
    summarization: Optional[SummarizationClient] = None,
    mirror: Optional[SourceMirror] = None,
) -> AppServices:
    """Build the default object graph; any collaborator can be injected."""
    cfg = cfg or settings
    registry = registry or RepositoryRegistry(cfg.registry_path)
    manager = RepositoryIngestionManager(cfg.repos_path)
    embedder = embedder or EmbeddingProviderFactory.create(cfg=cfg)
    vespa = vespa or VespaClient(cfg=cfg)
    summarization = summarization or SummarizationClient.from_settings(cfg)
    if mirror is None:
        mirror = SourceMirror.from_settings(cfg)

    async def locate(repo_id: str) -> RepoPaths:
        record = await registry.get(repo_id)
        return manager.paths_for(record)

    bus = StatusBus(locate, capacity=cfg.events_capacity)
    feeder = DocumentFeedWriter(
        vespa, embedder, ContentClassifier(max_bytes=cfg.max_file_bytes)
    )
    orchestrator = IngestionOrchestrator(
        manager=manager,
        bus=bus,
        feeder=feeder,
        summarizer=RepositorySummarizer(summarization, max_chars=cfg.summary_max_chars),
        mirror=mirror,
    )
    search = SearchService(SearchQueryBuilder(embedder, cfg), vespa)
    return AppServices(
        registry=registry,
        manager=manager,
        bus=bus,
        orchestrator=orchestrator,
        search=search,
        embedder=embedder,
        vespa=vespa,
        summarization=summarization,
        mirror=mirror,
    )
