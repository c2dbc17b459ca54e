"""Semantic file index: summaries, embeddings, similarity search."""

from .index_cache import ProjectCache
from .semantic_index import IndexSnapshot, SearchResult, SemanticIndex
from .similarity import cosine_similarities, cosine_similarity

__all__ = [
    "SemanticIndex",
    "SearchResult",
    "IndexSnapshot",
    "ProjectCache",
    "cosine_similarity",
    "cosine_similarities",
]
