"""Query side — semantic search and the lexical + semantic hybrid."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Literal

from lexivault.semantic.embedder import embed_one, require_usable
from lexivault.semantic.normalizer import to_canonical_width

if TYPE_CHECKING:
    from lexivault.semantic.batch import ProfileSource
    from lexivault.semantic.embedder import EmbeddingClient
    from lexivault.semantic.vector_index import SemanticMatch, VectorIndex
    from lexivault.store.lexical import LexicalIndex
    from lexivault.store.models import Document

logger = logging.getLogger(__name__)


class SemanticSearchService:
    """Finds words by meaning. Never raises: any problem yields no results."""

    def __init__(
        self,
        vectors: VectorIndex,
        client: EmbeddingClient,
        profiles: ProfileSource,
    ) -> None:
        self._vectors = vectors
        self._client = client
        self._profiles = profiles

    def search(
        self,
        query: str,
        limit: int | None = None,
        threshold: float | None = None,
    ) -> list[SemanticMatch]:
        """Words whose embedding is similar to ``query``, most similar first.

        Args:
            query: Free text; blank queries return nothing.
            limit: Maximum results (profile default when None).
            threshold: Minimum similarity in [0, 1] (profile default when None).
        """
        if not query.strip():
            return []
        try:
            profile = require_usable(self._profiles.get_active())
            vector = embed_one(self._client, query.strip(), profile)
            query_vector = to_canonical_width(vector, self._vectors.width)
            return self._vectors.search(
                query_vector,
                limit=limit if limit is not None else profile.result_limit,
                threshold=threshold if threshold is not None else profile.similarity_threshold,
                model=profile.model,
            )
        except Exception as e:
            logger.warning("Semantic search for %r failed: %s", query, e)
            return []


@dataclass(frozen=True, slots=True)
class HybridHit:
    """A search result tagged with the index that found it."""

    document: Document
    source: Literal["lexical", "semantic"]
    score: float  # bm25 rank for lexical hits (lower is better), similarity for semantic


class HybridSearchService:
    """Exact text matches first, then semantically related words."""

    def __init__(self, lexical: LexicalIndex, semantic: SemanticSearchService) -> None:
        self._lexical = lexical
        self._semantic = semantic

    def search(self, query: str, limit: int = 20) -> list[HybridHit]:
        if not query.strip() or limit <= 0:
            return []

        hits: list[HybridHit] = [
            HybridHit(document=m.document, source="lexical", score=m.rank)
            for m in self._lexical.search(query, limit=limit)
        ]
        if len(hits) >= limit:
            return hits

        seen = {h.document.id for h in hits}
        for match in self._semantic.search(query, limit=limit):
            if match.document.id in seen:
                continue
            seen.add(match.document.id)
            hits.append(
                HybridHit(document=match.document, source="semantic", score=match.similarity)
            )
            if len(hits) >= limit:
                break
        return hits
