"""SQLite persistence for the search index."""

from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List

from docsite.index.indexer import DEFAULT_STOP_WORDS, IndexedDocument, SearchIndex


class SQLiteIndexStore:
    """Stores indexed documents and their postings."""

    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)
        self._conn = sqlite3.connect(self.db_path)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL;")
        self._conn.execute("PRAGMA synchronous=NORMAL;")
        self._conn.execute("PRAGMA foreign_keys=ON;")
        self._ensure_schema()

    @property
    def connection(self) -> sqlite3.Connection:
        return self._conn

    def close(self) -> None:
        self._conn.close()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        try:
            yield self._conn
            self._conn.commit()
        except Exception:
            self._conn.rollback()
            raise

    def _ensure_schema(self) -> None:
        with self.transaction() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS documents (
                    id INTEGER PRIMARY KEY,
                    path TEXT NOT NULL UNIQUE,
                    title TEXT NOT NULL,
                    text TEXT NOT NULL,
                    updated_at TEXT DEFAULT CURRENT_TIMESTAMP
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS postings (
                    token TEXT NOT NULL,
                    document_id INTEGER NOT NULL,
                    positions TEXT NOT NULL,
                    PRIMARY KEY (token, document_id),
                    FOREIGN KEY(document_id) REFERENCES documents(id) ON DELETE CASCADE
                )
                """
            )
            conn.execute(
                """CREATE INDEX IF NOT EXISTS idx_postings_document_id
                    ON postings(document_id)
                """
            )

    def upsert_document(self, document: IndexedDocument) -> str:
        """Replace a document and all its postings.

        Returns 'inserted' or 'updated'. Call within a transaction.
        """
        conn = self._conn
        existing = conn.execute(
            "SELECT id FROM documents WHERE path = ?", (document.path,)
        ).fetchone()
        if existing:
            conn.execute("DELETE FROM postings WHERE document_id = ?", (existing["id"],))
            conn.execute("DELETE FROM documents WHERE id = ?", (existing["id"],))

        doc_id = conn.execute(
            "INSERT INTO documents(path, title, text) VALUES (?, ?, ?)",
            (document.path, document.title, document.text),
        ).lastrowid
        conn.executemany(
            "INSERT INTO postings(token, document_id, positions) VALUES (?, ?, ?)",
            [
                (token, doc_id, json.dumps(list(positions)))
                for token, positions in sorted(document.postings().items())
            ],
        )
        return "updated" if existing else "inserted"

    def delete_document_by_path(self, path: str) -> bool:
        conn = self._conn
        row = conn.execute("SELECT id FROM documents WHERE path = ?", (path,)).fetchone()
        if row is None:
            return False
        conn.execute("DELETE FROM postings WHERE document_id = ?", (row["id"],))
        conn.execute("DELETE FROM documents WHERE id = ?", (row["id"],))
        return True

    def save(self, index: SearchIndex) -> None:
        """Replace the stored contents with ``index``."""
        with self.transaction() as conn:
            conn.execute("DELETE FROM postings")
            conn.execute("DELETE FROM documents")
            for path in sorted(index.documents):
                self.upsert_document(index.documents[path])

    def load(self, stop_words: Iterable[str] = DEFAULT_STOP_WORDS) -> SearchIndex:
        index = SearchIndex(stop_words)
        rows = self._conn.execute("SELECT path, title, text FROM documents ORDER BY path").fetchall()
        for row in rows:
            index.insert(index.analyze_text(row["path"], row["title"], row["text"]))
        return index

    def list_documents(self) -> List[Dict[str, Any]]:
        rows = self._conn.execute(
            """
            SELECT d.id AS id, d.path AS path, d.title AS title, d.updated_at AS updated_at,
                   COUNT(p.token) AS token_count
            FROM documents d
            LEFT JOIN postings p ON p.document_id = d.id
            GROUP BY d.id
            ORDER BY d.path
            """
        ).fetchall()
        return [dict(row) for row in rows]

    def get_stats(self) -> Dict[str, int]:
        documents = self._conn.execute("SELECT COUNT(*) FROM documents").fetchone()[0]
        tokens = self._conn.execute("SELECT COUNT(DISTINCT token) FROM postings").fetchone()[0]
        postings = self._conn.execute("SELECT COUNT(*) FROM postings").fetchone()[0]
        return {"document_count": documents, "token_count": tokens, "posting_count": postings}
