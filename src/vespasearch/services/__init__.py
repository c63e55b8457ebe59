"""
Service layer orchestrators for repository ingestion.
"""

from .container import AppServices, build_services
from .feeder import DocumentFeedWriter
from .indexer import IngestionOrchestrator
from .status import IngestEvent, Stage, StatusBus, StatusSnapshot

__all__ = [
    "AppServices",
    "DocumentFeedWriter",
    "IngestEvent",
    "IngestionOrchestrator",
    "Stage",
    "StatusBus",
    "StatusSnapshot",
    "build_services",
]
