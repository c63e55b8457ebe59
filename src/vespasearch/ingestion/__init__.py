"""
Repository ingestion package.

This package contains logic for cloning, mirroring and walking code
repositories, and for deciding which of their files get indexed.
"""
from .classifier import ClassifiedFile, ContentClassifier, guess_language
from .manager import RepositoryIngestionManager
from .mirror import SourceMirror

__all__ = [
    "ClassifiedFile",
    "ContentClassifier",
    "RepositoryIngestionManager",
    "SourceMirror",
    "guess_language",
]
