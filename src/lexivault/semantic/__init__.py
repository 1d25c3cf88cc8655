"""Semantic layer — embedding reshaping, vector index, batch backfill and search."""

from lexivault.semantic.batch import (
    BatchAlreadyRunningError,
    BatchEmbeddingOrchestrator,
    BatchHandle,
    BatchOptions,
    BatchResult,
    BatchState,
    CancellationToken,
)
from lexivault.semantic.embedder import (
    EmbeddingClient,
    EmbeddingError,
    EmbeddingResult,
    OpenAIEmbeddingClient,
    SemanticConfigError,
)
from lexivault.semantic.search import HybridHit, HybridSearchService, SemanticSearchService
from lexivault.semantic.vector_index import IndexStats, SemanticMatch, VectorIndex

__all__ = [
    "BatchAlreadyRunningError",
    "BatchEmbeddingOrchestrator",
    "BatchHandle",
    "BatchOptions",
    "BatchResult",
    "BatchState",
    "CancellationToken",
    "EmbeddingClient",
    "EmbeddingError",
    "EmbeddingResult",
    "HybridHit",
    "HybridSearchService",
    "IndexStats",
    "OpenAIEmbeddingClient",
    "SemanticConfigError",
    "SemanticMatch",
    "SemanticSearchService",
    "VectorIndex",
]
