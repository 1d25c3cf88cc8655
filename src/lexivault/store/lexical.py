"""Full-text index over word documents — FTS5 table kept in sync by triggers.

The expected table and trigger definitions belong to the running build; the
definitions in ``sqlite_master`` belong to whichever build last wrote the
database. :class:`LexicalIndexSynchronizer` compares the two on startup and
repairs only what drifted:

* table missing or different   → drop everything, recreate, repopulate
* table fine, triggers differ  → recreate triggers, keep existing rows
* everything matches           → populate only if the index is empty
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING

from lexivault.store.documents import row_to_document

if TYPE_CHECKING:
    import sqlite3

    from lexivault.store.database import Database
    from lexivault.store.models import Document

logger = logging.getLogger(__name__)

FTS_TABLE = "words_fts"

_INDEXED_FIELDS = ("word", "one_line_desc", "tags", "synonyms", "antonyms", "remark")
_COLUMNS = ", ".join(("id", *_INDEXED_FIELDS))


def _extracts(alias: str) -> str:
    return ", ".join(f"json_extract({alias}.data, '$.{f}')" for f in _INDEXED_FIELDS)


EXPECTED_TABLE_SQL = (
    f"CREATE VIRTUAL TABLE {FTS_TABLE} USING fts5("
    "id UNINDEXED, word, one_line_desc, tags, synonyms, antonyms, remark, "
    "tokenize = 'porter unicode61')"
)

EXPECTED_TRIGGERS: dict[str, str] = {
    f"{FTS_TABLE}_insert": f"""CREATE TRIGGER {FTS_TABLE}_insert AFTER INSERT ON documents
WHEN NEW.type = 'word'
BEGIN
    INSERT INTO {FTS_TABLE}({_COLUMNS})
    VALUES (NEW.id, {_extracts("NEW")});
END""",
    f"{FTS_TABLE}_update": f"""CREATE TRIGGER {FTS_TABLE}_update AFTER UPDATE ON documents
BEGIN
    DELETE FROM {FTS_TABLE} WHERE id = OLD.id;
    INSERT INTO {FTS_TABLE}({_COLUMNS})
    SELECT NEW.id, {_extracts("NEW")} WHERE NEW.type = 'word';
END""",
    f"{FTS_TABLE}_delete": f"""CREATE TRIGGER {FTS_TABLE}_delete AFTER DELETE ON documents
WHEN OLD.type = 'word'
BEGIN
    DELETE FROM {FTS_TABLE} WHERE id = OLD.id;
END""",
}

_POPULATE_SQL = (
    f"INSERT INTO {FTS_TABLE}({_COLUMNS}) "  # noqa: S608
    f"SELECT d.id, {_extracts('d')} FROM documents d WHERE d.type = 'word'"
)


def normalize_sql(sql: str) -> str:
    """Cosmetic-insensitive form of a schema statement."""
    sql = re.sub(r"\s+", " ", sql)
    sql = re.sub(r"\s*([(),;])\s*", r"\1", sql)
    return sql.strip().rstrip(";").lower()


def schemas_match(current: str | None, expected: str) -> bool:
    if not current:
        return False
    return normalize_sql(current) == normalize_sql(expected)


class SyncAction(StrEnum):
    """What :meth:`LexicalIndexSynchronizer.synchronize` had to do."""

    REBUILT = "rebuilt"
    TRIGGERS_REPAIRED = "triggers_repaired"
    POPULATED = "populated"
    UNCHANGED = "unchanged"


class LexicalIndexSynchronizer:
    """Detects and repairs drift between the on-disk and expected FTS schema."""

    def __init__(self, db: Database) -> None:
        self._db = db

    def read_definitions(self) -> tuple[str | None, dict[str, str]]:
        """Current table SQL and trigger SQL (by name) from ``sqlite_master``."""
        table_row = self._db.fetchone(
            "SELECT sql FROM sqlite_master WHERE type = 'table' AND name = ?",
            (FTS_TABLE,),
        )
        names = list(EXPECTED_TRIGGERS)
        placeholders = ",".join("?" for _ in names)
        trigger_rows = self._db.fetchall(
            f"SELECT name, sql FROM sqlite_master "  # noqa: S608
            f"WHERE type = 'trigger' AND name IN ({placeholders})",
            names,
        )
        table_sql = table_row["sql"] if table_row is not None else None
        return table_sql, {r["name"]: r["sql"] for r in trigger_rows}

    def synchronize(self) -> SyncAction:
        """Run the repair protocol once. Safe to call on every startup."""
        with self._db.transaction() as conn:
            table_sql, triggers = self.read_definitions()
            table_ok = schemas_match(table_sql, EXPECTED_TABLE_SQL)
            triggers_ok = all(
                schemas_match(triggers.get(name), sql) for name, sql in EXPECTED_TRIGGERS.items()
            )

            if not table_ok:
                if table_sql is None:
                    logger.info("Full-text index missing, creating %s", FTS_TABLE)
                else:
                    logger.info("Full-text index schema changed, rebuilding %s", FTS_TABLE)
                self._drop_triggers(conn)
                conn.execute(f"DROP TABLE IF EXISTS {FTS_TABLE}")
                conn.execute(EXPECTED_TABLE_SQL)
                self._create_triggers(conn)
                inserted = conn.execute(_POPULATE_SQL).rowcount
                logger.info("Full-text index rebuilt with %d words", inserted)
                return SyncAction.REBUILT

            if not triggers_ok:
                logger.info("Full-text triggers changed, recreating triggers only")
                self._drop_triggers(conn)
                self._create_triggers(conn)
                added, removed = self._reconcile(conn)
                logger.info(
                    "Full-text triggers recreated (%d missing entries added, %d stale removed)",
                    added,
                    removed,
                )
                return SyncAction.TRIGGERS_REPAIRED

            row = conn.execute(f"SELECT COUNT(*) FROM {FTS_TABLE}").fetchone()  # noqa: S608
            if row[0] == 0:
                inserted = conn.execute(_POPULATE_SQL).rowcount
                if inserted > 0:
                    logger.info("Populated empty full-text index with %d words", inserted)
                    return SyncAction.POPULATED

        logger.debug("Full-text index and triggers up to date")
        return SyncAction.UNCHANGED

    def _drop_triggers(self, conn: sqlite3.Connection) -> None:
        for name in EXPECTED_TRIGGERS:
            conn.execute(f"DROP TRIGGER IF EXISTS {name}")

    def _create_triggers(self, conn: sqlite3.Connection) -> None:
        for sql in EXPECTED_TRIGGERS.values():
            conn.execute(sql)

    def _reconcile(self, conn: sqlite3.Connection) -> tuple[int, int]:
        """Add entries for words written while triggers were broken; drop orphans."""
        added = conn.execute(
            _POPULATE_SQL + f" AND d.id NOT IN (SELECT id FROM {FTS_TABLE})"
        ).rowcount
        removed = conn.execute(
            f"DELETE FROM {FTS_TABLE} "  # noqa: S608
            "WHERE id NOT IN (SELECT id FROM documents WHERE type = 'word')"
        ).rowcount
        return added, removed


# ---------------------------------------------------------------------------
# Query side
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class LexicalMatch:
    """A full-text hit. Lower ``rank`` is better (FTS5 bm25)."""

    document: Document
    rank: float


_TOKEN_RE = re.compile(r"\w+", re.UNICODE)


def build_match_query(query: str) -> str:
    """Turn free text into an FTS5 expression of quoted prefix terms.

    Quoting every token keeps user input (``"``, ``-``, ``NEAR``…) from being
    parsed as FTS5 syntax.
    """
    tokens = _TOKEN_RE.findall(query)
    return " ".join(f'"{t}"*' for t in tokens)


class LexicalIndex:
    """Keyword search over the synchronized ``words_fts`` table."""

    def __init__(self, db: Database) -> None:
        self._db = db

    def search(self, query: str, limit: int = 20) -> list[LexicalMatch]:
        expression = build_match_query(query)
        if not expression:
            return []
        rows = self._db.fetchall(
            f"SELECT d.*, bm25({FTS_TABLE}) AS score FROM {FTS_TABLE} "  # noqa: S608
            f"JOIN documents d ON d.id = {FTS_TABLE}.id "
            f"WHERE {FTS_TABLE} MATCH ? ORDER BY score LIMIT ?",
            (expression, limit),
        )
        return [LexicalMatch(document=row_to_document(r), rank=float(r["score"])) for r in rows]

    def count(self) -> int:
        row = self._db.fetchone(f"SELECT COUNT(*) FROM {FTS_TABLE}")  # noqa: S608
        assert row is not None
        return int(row[0])
