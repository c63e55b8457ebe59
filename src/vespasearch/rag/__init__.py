"""
Retrieval utilities: search query construction and repository summaries.
"""

from .search import SearchMode, SearchQueryBuilder, SearchResult, SearchService
from .summarizer import RepositorySummarizer, SummarizationClient

__all__ = [
    "RepositorySummarizer",
    "SearchMode",
    "SearchQueryBuilder",
    "SearchResult",
    "SearchService",
    "SummarizationClient",
]
