"""Document store — JSON documents in SQLite, the source of truth for both indexes."""

from __future__ import annotations

import json
import logging
import uuid
from typing import TYPE_CHECKING, Any

from lexivault.store.models import WORD_TYPE, Document, Word, utc_now

if TYPE_CHECKING:
    import sqlite3

    from lexivault.store.database import Database

logger = logging.getLogger(__name__)

# Stable page order: offsets stay meaningful while a batch walks the collection
_PAGE_ORDER = "ORDER BY created_at, id"


def new_document_id(prefix: str = WORD_TYPE) -> str:
    return f"{prefix}_{uuid.uuid4().hex}"


def row_to_document(row: sqlite3.Row) -> Document:
    return Document(
        id=row["id"],
        type=row["type"],
        data=json.loads(row["data"]),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class DocumentStore:
    """CRUD over the ``documents`` table.

    Every write is a single statement, so the full-text triggers and the
    embedding foreign-key cascade fire inside the same implicit transaction
    as the document change.
    """

    def __init__(self, db: Database) -> None:
        self._db = db

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_by_id(self, doc_id: str) -> Document | None:
        row = self._db.fetchone("SELECT * FROM documents WHERE id = ?", (doc_id,))
        return row_to_document(row) if row is not None else None

    def get_page(self, offset: int, limit: int, doc_type: str = WORD_TYPE) -> list[Document]:
        """One page of documents of ``doc_type`` in creation order."""
        rows = self._db.fetchall(
            f"SELECT * FROM documents WHERE type = ? {_PAGE_ORDER} LIMIT ? OFFSET ?",  # noqa: S608
            (doc_type, limit, offset),
        )
        return [row_to_document(r) for r in rows]

    def count(self, doc_type: str = WORD_TYPE) -> int:
        row = self._db.fetchone("SELECT COUNT(*) FROM documents WHERE type = ?", (doc_type,))
        assert row is not None
        return int(row[0])

    def find_words(self, query: str, limit: int = 5) -> list[Document]:
        """Words starting with ``query``, topped up with words containing it."""
        query = query.strip()
        if not query:
            return []
        starts = self._db.fetchall(
            "SELECT * FROM documents WHERE type = ? AND json_extract(data, '$.word') LIKE ? "
            "ORDER BY json_extract(data, '$.word') LIMIT ?",
            (WORD_TYPE, f"{query}%", limit),
        )
        found = [row_to_document(r) for r in starts]
        if len(found) >= limit:
            return found

        seen = {d.id for d in found}
        contains = self._db.fetchall(
            "SELECT * FROM documents WHERE type = ? AND json_extract(data, '$.word') LIKE ? "
            "ORDER BY json_extract(data, '$.word') LIMIT ?",
            (WORD_TYPE, f"%{query}%", limit),
        )
        for row in contains:
            if row["id"] not in seen and len(found) < limit:
                found.append(row_to_document(row))
        return found

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def add_word(self, word: Word) -> Document:
        doc = Document(id=new_document_id(), type=WORD_TYPE, data=word.model_dump())
        self.put(doc)
        logger.info("Added word '%s' (%s)", word.word, doc.id)
        return doc

    def update_word(self, doc_id: str, changes: dict[str, Any]) -> Document | None:
        """Merge ``changes`` into an existing word. Returns None if it does not exist."""
        existing = self.get_by_id(doc_id)
        if existing is None or not existing.is_word:
            return None
        merged = Word.model_validate({**existing.data, **changes})
        updated = existing.model_copy(update={"data": merged.model_dump(), "updated_at": utc_now()})
        self._db.execute(
            "UPDATE documents SET data = ?, updated_at = ? WHERE id = ?",
            (json.dumps(updated.data), updated.updated_at, doc_id),
        )
        logger.debug("Updated word %s", doc_id)
        return updated

    def put(self, doc: Document) -> None:
        """Insert or replace a document of any type."""
        self._db.execute(
            "INSERT INTO documents (id, type, data, created_at, updated_at) "
            "VALUES (?, ?, ?, ?, ?) "
            "ON CONFLICT (id) DO UPDATE SET "
            "type = excluded.type, data = excluded.data, updated_at = excluded.updated_at",
            (doc.id, doc.type, json.dumps(doc.data), doc.created_at, doc.updated_at),
        )

    def delete(self, doc_id: str) -> bool:
        """Delete a document; its embeddings and index entry go with it."""
        cursor = self._db.execute("DELETE FROM documents WHERE id = ?", (doc_id,))
        deleted = cursor.rowcount > 0
        if deleted:
            logger.info("Deleted document %s", doc_id)
        return deleted
