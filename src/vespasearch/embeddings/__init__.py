"""
Embedding providers for semantic code search.

The default implementation calls a remote Hugging Face feature-extraction
pipeline; the provider is selected via configuration.
"""

from .providers import (
    EmbeddingAdapter,
    EmbeddingCache,
    EmbeddingProviderFactory,
    normalize_dimension,
    parse_embedding_response,
)

__all__ = [
    "EmbeddingAdapter",
    "EmbeddingCache",
    "EmbeddingProviderFactory",
    "normalize_dimension",
    "parse_embedding_response",
]
