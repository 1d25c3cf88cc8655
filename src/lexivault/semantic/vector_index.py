"""Vector index — one canonical-width embedding per (document, model) in SQLite.

Embeddings live next to the documents they describe, so the foreign key
cascades deletes. Ranking uses cosine *distance* in [0, 2] through sqlite-vec's
``vec_distance_cosine``; callers see *similarity* in [0, 1]. Rows whose blob
is not the index width (left over from an earlier canonical width) never
match and do not count as embedded, so the next batch run replaces them.

Reads never raise: while the store is closed or reconnecting they log a
warning and return an empty / false result.
"""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from lexivault.semantic.normalizer import pack_vector, unpack_vector
from lexivault.store.database import StoreUnavailableError
from lexivault.store.documents import row_to_document
from lexivault.store.models import WORD_TYPE, utc_now

if TYPE_CHECKING:
    from collections.abc import Sequence

    from lexivault.store.database import Database
    from lexivault.store.models import Document

logger = logging.getLogger(__name__)

_SCHEMA = """\
CREATE TABLE IF NOT EXISTS word_embeddings (
    word_id TEXT NOT NULL,
    model_used TEXT NOT NULL,
    embedding BLOB NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    PRIMARY KEY (word_id, model_used),
    FOREIGN KEY (word_id) REFERENCES documents(id) ON DELETE CASCADE
);
CREATE INDEX IF NOT EXISTS idx_embedding_model ON word_embeddings(model_used, word_id);
"""

_UPSERT_SQL = """
INSERT INTO word_embeddings (word_id, model_used, embedding, created_at, updated_at)
VALUES (?, ?, ?, ?, ?)
ON CONFLICT (word_id, model_used) DO UPDATE SET
    embedding = excluded.embedding,
    updated_at = excluded.updated_at
"""

# Errors that mean "the store is not usable right now"
_UNAVAILABLE = (sqlite3.Error, StoreUnavailableError)


def max_distance_for(threshold: float) -> float:
    """Largest cosine distance whose similarity still meets ``threshold``."""
    return 1.0 - threshold


def similarity_from_distance(distance: float) -> float:
    """Cosine similarity for a cosine distance."""
    return 1.0 - distance


@dataclass(frozen=True, slots=True)
class EmbeddingRecord:
    """An embedding ready to be written."""

    document_id: str
    vector: list[float]
    model: str


@dataclass(frozen=True, slots=True)
class SemanticMatch:
    """A document ranked by meaning."""

    document: Document
    similarity: float
    distance: float


@dataclass(frozen=True, slots=True)
class IndexStats:
    count: int = 0
    average_dimension: int = 0
    models: list[str] = field(default_factory=list)


class VectorIndex:
    """Stores and ranks embeddings in the shared SQLite database."""

    def __init__(self, db: Database, width: int) -> None:
        self._db = db
        self.width = width
        db.connection.executescript(_SCHEMA)

    @property
    def _blob_size(self) -> int:
        return self.width * 4  # float32

    # ------------------------------------------------------------------
    # Writes (errors propagate)
    # ------------------------------------------------------------------

    def upsert(self, doc_id: str, vector: Sequence[float], model: str) -> None:
        """Insert or replace the embedding for (doc_id, model)."""
        self.upsert_many([EmbeddingRecord(doc_id, list(vector), model)])

    def upsert_many(self, records: Sequence[EmbeddingRecord]) -> None:
        """Write a page of embeddings in one transaction."""
        if not records:
            return
        now = utc_now()
        rows = []
        for rec in records:
            self._check_width(rec.vector)
            rows.append((rec.document_id, rec.model, pack_vector(rec.vector), now, now))
        with self._db.transaction() as conn:
            conn.executemany(_UPSERT_SQL, rows)
        logger.debug("Stored %d embeddings", len(rows))

    def delete(self, doc_id: str) -> bool:
        """Remove every embedding of a document. False if none or store unavailable."""
        try:
            cursor = self._db.execute("DELETE FROM word_embeddings WHERE word_id = ?", (doc_id,))
        except _UNAVAILABLE as e:
            logger.warning("Vector index unavailable, could not delete %s: %s", doc_id, e)
            return False
        return cursor.rowcount > 0

    # ------------------------------------------------------------------
    # Reads (degrade to empty on an unavailable store)
    # ------------------------------------------------------------------

    def exists(self, doc_id: str, model: str) -> bool:
        """True if (doc_id, model) has an embedding of the current width."""
        try:
            row = self._db.fetchone(
                "SELECT 1 FROM word_embeddings "
                "WHERE word_id = ? AND model_used = ? AND LENGTH(embedding) = ?",
                (doc_id, model, self._blob_size),
            )
        except _UNAVAILABLE as e:
            logger.warning("Vector index unavailable, exists(%s, %s) = False: %s", doc_id, model, e)
            return False
        return row is not None

    def get(self, doc_id: str, model: str) -> list[float] | None:
        try:
            row = self._db.fetchone(
                "SELECT embedding FROM word_embeddings WHERE word_id = ? AND model_used = ?",
                (doc_id, model),
            )
        except _UNAVAILABLE as e:
            logger.warning("Vector index unavailable, get(%s, %s) = None: %s", doc_id, model, e)
            return None
        return unpack_vector(row["embedding"]) if row is not None else None

    def search(
        self,
        query_vector: Sequence[float],
        limit: int,
        threshold: float,
        model: str | None = None,
    ) -> list[SemanticMatch]:
        """Word documents ranked by similarity to ``query_vector``.

        Results are sorted by descending similarity, hold at most ``limit``
        entries and never fall below ``threshold``, which is clamped to
        [0, 1].
        """
        if limit <= 0:
            return []
        self._check_width(query_vector)
        threshold = min(max(threshold, 0.0), 1.0)
        max_distance = max_distance_for(threshold)
        model_clause = "AND e.model_used = ?" if model is not None else ""
        params: list[object] = [self._blob_size, pack_vector(query_vector), WORD_TYPE]
        if model is not None:
            params.append(model)
        params.extend([max_distance, limit])

        # CASE keeps sqlite-vec from seeing rows of another width
        sql = f"""
            SELECT * FROM (
                SELECT d.*,
                    CASE WHEN LENGTH(e.embedding) = ?
                        THEN vec_distance_cosine(e.embedding, ?) END AS distance
                FROM word_embeddings e
                JOIN documents d ON d.id = e.word_id
                WHERE d.type = ? {model_clause}
            )
            WHERE distance <= ?
            ORDER BY distance ASC
            LIMIT ?
        """  # noqa: S608
        try:
            rows = self._db.fetchall(sql, params)
        except _UNAVAILABLE as e:
            logger.warning("Vector index unavailable, search returned nothing: %s", e)
            return []

        matches: list[SemanticMatch] = []
        for row in rows:
            distance = float(row["distance"])
            similarity = similarity_from_distance(distance)
            if similarity < threshold:
                continue  # float rounding at the boundary
            matches.append(
                SemanticMatch(
                    document=row_to_document(row), similarity=similarity, distance=distance
                )
            )
        return matches

    def stats(self) -> IndexStats:
        try:
            row = self._db.fetchone(
                "SELECT COUNT(*) AS total, AVG(LENGTH(embedding)) AS avg_size FROM word_embeddings"
            )
            model_rows = self._db.fetchall(
                "SELECT DISTINCT model_used FROM word_embeddings ORDER BY model_used"
            )
        except _UNAVAILABLE as e:
            logger.warning("Vector index unavailable, stats zeroed: %s", e)
            return IndexStats()
        assert row is not None
        return IndexStats(
            count=int(row["total"] or 0),
            average_dimension=round((row["avg_size"] or 0) / 4),  # float32
            models=[r["model_used"] for r in model_rows],
        )

    def _check_width(self, vector: Sequence[float]) -> None:
        if len(vector) != self.width:
            raise ValueError(f"Expected a {self.width}-dimensional vector, got {len(vector)}")
