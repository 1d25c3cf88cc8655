"""Storage startup — opens a profile database and wires every component.

Order matters: the full-text synchronizer may drop and rebuild ``words_fts``,
so it runs to completion before the vector index or any search service is
handed out.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from lexivault.semantic.batch import BatchEmbeddingOrchestrator
from lexivault.semantic.embedder import OpenAIEmbeddingClient
from lexivault.semantic.search import HybridSearchService, SemanticSearchService
from lexivault.semantic.vector_index import VectorIndex
from lexivault.store.database import Database
from lexivault.store.documents import DocumentStore
from lexivault.store.lexical import LexicalIndex, LexicalIndexSynchronizer, SyncAction
from lexivault.store.profiles import ProfileStore

if TYPE_CHECKING:
    from lexivault.config import Settings
    from lexivault.semantic.embedder import EmbeddingClient

logger = logging.getLogger(__name__)


@dataclass
class Storage:
    """All components bound to one open profile database."""

    db: Database
    documents: DocumentStore
    profiles: ProfileStore
    lexical: LexicalIndex
    vectors: VectorIndex
    semantic: SemanticSearchService
    hybrid: HybridSearchService
    batch: BatchEmbeddingOrchestrator
    sync_action: SyncAction = field(default=SyncAction.UNCHANGED)

    def close(self) -> None:
        self.batch.shutdown()
        self.db.close()


def open_storage(settings: Settings, client: EmbeddingClient | None = None) -> Storage:
    """Open the active profile's database, repair the full-text index, build services."""
    db = Database(settings.storage.db_path)
    action = LexicalIndexSynchronizer(db).synchronize()
    if action is not SyncAction.UNCHANGED:
        logger.info("Full-text index sync: %s", action.value)

    documents = DocumentStore(db)
    profiles = ProfileStore(documents, settings)
    active = profiles.get_active()
    width = active.canonical_width if active is not None else settings.semantic.canonical_width
    vectors = VectorIndex(db, width=width)

    embedding_client = client if client is not None else OpenAIEmbeddingClient()
    semantic = SemanticSearchService(vectors, embedding_client, profiles)
    lexical = LexicalIndex(db)
    return Storage(
        db=db,
        documents=documents,
        profiles=profiles,
        lexical=lexical,
        vectors=vectors,
        semantic=semantic,
        hybrid=HybridSearchService(lexical, semantic),
        batch=BatchEmbeddingOrchestrator(documents, vectors, embedding_client, profiles),
        sync_action=action,
    )
