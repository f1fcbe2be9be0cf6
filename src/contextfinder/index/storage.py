"""SQLite vector store for scraped chunks and answered queries."""

from __future__ import annotations

import sqlite3
import threading
from contextlib import closing, contextmanager
from pathlib import Path
from typing import Iterator, List, Sequence

import numpy as np

from contextfinder.errors import VectorStoreError
from contextfinder.models import ChunkRecord, SearchResult


class SQLiteVectorStore:
    """Persistence layer for chunk embeddings.

    The connection is shared between worker threads; every statement runs under
    one lock.
    """

    def __init__(self, db_path: Path, *, dimension: int) -> None:
        self.db_path = Path(db_path)
        self.dimension = dimension
        self._lock = threading.RLock()
        try:
            self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        except sqlite3.Error as exc:
            raise VectorStoreError(f"Unable to open vector store {self.db_path}: {exc}") from exc
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL;")
        self._conn.execute("PRAGMA synchronous=NORMAL;")
        self._conn.execute("PRAGMA foreign_keys=ON;")
        self.setup_collection(dimension)

    @classmethod
    def open_existing(cls, db_path: Path) -> "SQLiteVectorStore":
        """Open a store with the dimension it was created with."""
        with closing(sqlite3.connect(db_path)) as conn:
            try:
                row = conn.execute("SELECT value FROM meta WHERE key = 'dimension'").fetchone()
            except sqlite3.OperationalError:
                row = None
        if row is None:
            raise VectorStoreError(f"No collection found in {db_path}")
        return cls(db_path, dimension=int(row[0]))

    @property
    def connection(self) -> sqlite3.Connection:
        return self._conn

    def close(self) -> None:
        self._conn.close()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        with self._lock:
            try:
                yield self._conn
                self._conn.commit()
            except Exception:
                self._conn.rollback()
                raise

    def setup_collection(self, dimension: int) -> None:
        """Create the schema and pin the embedding dimension.

        Raises:
            VectorStoreError: the database already holds a different dimension.
        """
        try:
            with self.transaction() as conn:
                conn.execute(
                    "CREATE TABLE IF NOT EXISTS meta (key TEXT PRIMARY KEY, value TEXT NOT NULL)"
                )
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS documents (
                        id INTEGER PRIMARY KEY,
                        link TEXT NOT NULL UNIQUE,
                        title TEXT,
                        is_catalog INTEGER NOT NULL DEFAULT 0,
                        created_at TEXT DEFAULT CURRENT_TIMESTAMP
                    )
                    """
                )
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS chunks (
                        id INTEGER PRIMARY KEY,
                        document_id INTEGER NOT NULL,
                        chunk_index INTEGER NOT NULL,
                        text TEXT NOT NULL,
                        embedding BLOB NOT NULL,
                        created_at TEXT DEFAULT CURRENT_TIMESTAMP,
                        FOREIGN KEY(document_id) REFERENCES documents(id) ON DELETE CASCADE
                    )
                    """
                )
                conn.execute(
                    """CREATE INDEX IF NOT EXISTS idx_chunks_document_id
                        ON chunks(document_id)
                    """
                )
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS answers (
                        id INTEGER PRIMARY KEY,
                        query TEXT NOT NULL,
                        answer TEXT NOT NULL,
                        created_at TEXT DEFAULT CURRENT_TIMESTAMP,
                        UNIQUE(query, answer)
                    )
                    """
                )
                row = conn.execute("SELECT value FROM meta WHERE key = 'dimension'").fetchone()
                if row is None:
                    conn.execute(
                        "INSERT INTO meta(key, value) VALUES ('dimension', ?)", (str(dimension),)
                    )
                elif int(row["value"]) != dimension:
                    raise VectorStoreError(
                        f"Collection in {self.db_path} has dimension {row['value']}, "
                        f"expected {dimension}"
                    )
        except sqlite3.Error as exc:
            raise VectorStoreError(f"Failed to set up collection: {exc}") from exc
        self.dimension = dimension

    def add_chunks(
        self,
        result: SearchResult,
        chunks: Sequence[ChunkRecord],
        embeddings: np.ndarray,
    ) -> List[int]:
        """Replace the stored chunks of ``result.link`` and return the new chunk ids."""
        if embeddings.shape[0] != len(chunks):
            raise ValueError("Embeddings and chunks length mismatch")
        if len(chunks) and embeddings.shape[1] != self.dimension:
            raise ValueError(
                f"Embedding dimension {embeddings.shape[1]} does not match {self.dimension}"
            )

        with self.transaction() as conn:
            conn.execute(
                """
                INSERT INTO documents(link, title, is_catalog) VALUES (?, ?, ?)
                ON CONFLICT(link) DO UPDATE SET title = excluded.title
                """,
                (result.link, result.title, int(result.is_catalog_source)),
            )
            doc_id = conn.execute(
                "SELECT id FROM documents WHERE link = ?", (result.link,)
            ).fetchone()["id"]
            conn.execute("DELETE FROM chunks WHERE document_id = ?", (doc_id,))

            ids: List[int] = []
            for chunk, vector in zip(chunks, embeddings):
                cursor = conn.execute(
                    """
                    INSERT INTO chunks(document_id, chunk_index, text, embedding)
                    VALUES (?, ?, ?, ?)
                    """,
                    (
                        doc_id,
                        chunk.index,
                        chunk.text,
                        sqlite3.Binary(np.asarray(vector, dtype="float32").tobytes()),
                    ),
                )
                ids.append(int(cursor.lastrowid))
        return ids

    def similarity_search(
        self,
        embedding: np.ndarray,
        *,
        limit: int = 10,
        score_threshold: float = 0.0,
    ) -> List[int]:
        """Return ids of the ``limit`` most similar chunks scoring at least the threshold."""
        query = np.asarray(embedding, dtype="float32").ravel()
        query_norm = float(np.linalg.norm(query))
        if limit <= 0 or query_norm == 0.0:
            return []

        with self._lock:
            rows = self._conn.execute("SELECT id, embedding FROM chunks").fetchall()
        if not rows:
            return []

        matrix = np.vstack([np.frombuffer(row["embedding"], dtype="float32") for row in rows])
        norms = np.linalg.norm(matrix, axis=1)
        norms[norms == 0] = np.inf
        scores = (matrix @ query) / (norms * query_norm)

        order = np.argsort(scores)[::-1]
        ids: List[int] = []
        for idx in order:
            if scores[idx] < score_threshold or len(ids) >= limit:
                break
            ids.append(int(rows[idx]["id"]))
        return ids

    def get_chunks(self, chunk_ids: Sequence[int]) -> List[ChunkRecord]:
        """Load chunks by id, preserving the order of ``chunk_ids``."""
        if not chunk_ids:
            return []

        placeholders = ",".join("?" for _ in chunk_ids)
        with self._lock:
            rows = self._conn.execute(
                f"""
                SELECT c.id AS id, c.chunk_index AS chunk_index, c.text AS text,
                       d.title AS title, d.link AS link
                FROM chunks c
                JOIN documents d ON d.id = c.document_id
                WHERE c.id IN ({placeholders})
                """,
                tuple(chunk_ids),
            ).fetchall()

        by_id = {row["id"]: row for row in rows}
        return [
            ChunkRecord(
                title=by_id[cid]["title"] or "",
                link=by_id[cid]["link"],
                index=by_id[cid]["chunk_index"],
                text=by_id[cid]["text"],
            )
            for cid in chunk_ids
            if cid in by_id
        ]

    def record_answer(self, query: str, answer: str) -> None:
        """Link a query to the answer produced for it. Repeated pairs are merged."""
        with self.transaction() as conn:
            conn.execute(
                "INSERT OR IGNORE INTO answers(query, answer) VALUES (?, ?)", (query, answer)
            )

    def get_stats(self) -> dict:
        with self._lock:
            documents = self._conn.execute("SELECT COUNT(*) FROM documents").fetchone()[0]
            chunks = self._conn.execute("SELECT COUNT(*) FROM chunks").fetchone()[0]
            answers = self._conn.execute("SELECT COUNT(*) FROM answers").fetchone()[0]
        return {
            "document_count": documents,
            "chunk_count": chunks,
            "answer_count": answers,
        }
