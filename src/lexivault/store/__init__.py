"""Storage — SQLite connection, document store, full-text index and profiles."""

from lexivault.store.database import Database, StoreUnavailableError
from lexivault.store.documents import DocumentStore
from lexivault.store.lexical import LexicalIndex, LexicalIndexSynchronizer, LexicalMatch, SyncAction
from lexivault.store.models import Document, Word
from lexivault.store.profiles import ProfileStore, SemanticProfile

__all__ = [
    "Database",
    "Document",
    "DocumentStore",
    "LexicalIndex",
    "LexicalIndexSynchronizer",
    "LexicalMatch",
    "ProfileStore",
    "SemanticProfile",
    "StoreUnavailableError",
    "SyncAction",
    "Word",
]
