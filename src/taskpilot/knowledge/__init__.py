"""
Knowledge Module

Persisted task history, completed-task examples and the learned-tool
library, plus the embedding backend used to match learned tools.
"""

from .records import CompletedTask, HistoricalTask, now_ms
from .embeddings import (
    Embedder,
    EmbeddingError,
    OpenAICompatibleEmbedder,
    batch_cosine_similarity,
    cosine_similarity,
    create_embedder_from_env,
)
from .store import KnowledgeStore, keyword_overlap

__all__ = [
    "CompletedTask",
    "HistoricalTask",
    "now_ms",
    "Embedder",
    "EmbeddingError",
    "OpenAICompatibleEmbedder",
    "batch_cosine_similarity",
    "cosine_similarity",
    "create_embedder_from_env",
    "KnowledgeStore",
    "keyword_overlap",
]
