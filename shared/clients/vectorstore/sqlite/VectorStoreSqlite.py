"""SQLite backed vector store.

Every operation opens its own connection and runs as one transaction in a
worker thread, so the event loop never blocks on disk I/O. Embeddings are
stored as JSON arrays.
"""

import asyncio
import json
import os
import sqlite3
from contextlib import closing
from datetime import datetime
from typing import Any

from shared.clients.vectorstore.VectorStoreInterface import VectorStoreInterface
from shared.helper.HelperConfig import HelperConfig
from shared.models.config import EnvConfig
from shared.models.document import Chunk, Document, SourceType

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS documents (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        source_type TEXT NOT NULL,
        size_bytes INTEGER NOT NULL DEFAULT 0,
        chunk_count INTEGER NOT NULL DEFAULT 0,
        mime_type TEXT,
        source_url TEXT,
        external_page_id TEXT,
        last_modified TEXT,
        collection_key TEXT,
        collection_name TEXT,
        created_at TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS chunks (
        id TEXT PRIMARY KEY,
        doc_id TEXT NOT NULL,
        text TEXT NOT NULL,
        embedding TEXT NOT NULL,
        position INTEGER NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_chunks_doc_id ON chunks(doc_id)",
    "CREATE INDEX IF NOT EXISTS idx_documents_source ON documents(source_type, collection_key)",
    """
    CREATE TABLE IF NOT EXISTS settings (
        key TEXT PRIMARY KEY,
        value TEXT NOT NULL
    )
    """,
)

_DOCUMENT_COLUMNS = (
    "id", "name", "source_type", "size_bytes", "chunk_count", "mime_type", "source_url",
    "external_page_id", "last_modified", "collection_key", "collection_name", "created_at",
)


class VectorStoreSqlite(VectorStoreInterface):
    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self._db_path = self.get_config_val("PATH", default="data/rag_knowledge_base.db", val_type="string")

    ##########################################
    ################ GETTER ##################
    ##########################################

    def _get_engine_name(self) -> str:
        return "Sqlite"

    def _get_required_config(self) -> list[EnvConfig]:
        return [
            EnvConfig(env_key="PATH", val_type="string", default="data/rag_knowledge_base.db"),
        ]

    def get_db_path(self) -> str:
        return self._db_path

    ##########################################
    ############### CONNECTION ###############
    ##########################################

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    async def _execute(self, func, *args) -> Any:
        """Run func(conn, *args) inside one transaction in a worker thread."""
        def _work():
            with closing(self._connect()) as conn:
                with conn:
                    return func(conn, *args)
        return await asyncio.to_thread(_work)

    ##########################################
    ################ MAPPING #################
    ##########################################

    @staticmethod
    def _document_to_row(document: Document) -> tuple:
        return (
            document.id,
            document.name,
            document.source_type.value,
            document.size_bytes,
            document.chunk_count,
            document.mime_type,
            document.source_url,
            document.external_page_id,
            document.last_modified,
            document.collection_key,
            document.collection_name,
            document.created_at.isoformat() if document.created_at else None,
        )

    @staticmethod
    def _row_to_document(row: sqlite3.Row) -> Document:
        return Document(
            id=row["id"],
            name=row["name"],
            source_type=SourceType(row["source_type"]),
            size_bytes=row["size_bytes"],
            chunk_count=row["chunk_count"],
            mime_type=row["mime_type"],
            source_url=row["source_url"],
            external_page_id=row["external_page_id"],
            last_modified=row["last_modified"],
            collection_key=row["collection_key"],
            collection_name=row["collection_name"],
            created_at=datetime.fromisoformat(row["created_at"]) if row["created_at"] else None,
        )

    @staticmethod
    def _row_to_chunk(row: sqlite3.Row) -> Chunk:
        return Chunk(
            id=row["id"],
            doc_id=row["doc_id"],
            text=row["text"],
            embedding=json.loads(row["embedding"]),
            position=row["position"],
        )

    ##########################################
    ############ ENGINE OPERATIONS ###########
    ##########################################

    async def _do_initialize(self) -> None:
        directory = os.path.dirname(os.path.abspath(self._db_path))
        os.makedirs(directory, exist_ok=True)

        def _create(conn: sqlite3.Connection) -> None:
            for statement in _SCHEMA:
                conn.execute(statement)
        await self._execute(_create)
        self.logging.info("SQLite knowledge base ready at %s", self._db_path)

    async def _do_add_document(self, document: Document) -> None:
        placeholders = ", ".join("?" for _ in _DOCUMENT_COLUMNS)
        sql = f"INSERT OR REPLACE INTO documents ({', '.join(_DOCUMENT_COLUMNS)}) VALUES ({placeholders})"
        await self._execute(lambda conn: conn.execute(sql, self._document_to_row(document)))

    async def _do_get_document(self, doc_id: str) -> Document | None:
        def _get(conn: sqlite3.Connection) -> Document | None:
            row = conn.execute("SELECT * FROM documents WHERE id = ?", (doc_id,)).fetchone()
            return self._row_to_document(row) if row else None
        return await self._execute(_get)

    async def _do_get_all_documents(self) -> list[Document]:
        def _get(conn: sqlite3.Connection) -> list[Document]:
            rows = conn.execute("SELECT * FROM documents ORDER BY created_at DESC").fetchall()
            return [self._row_to_document(row) for row in rows]
        return await self._execute(_get)

    async def _do_delete_document(self, doc_id: str) -> None:
        def _delete(conn: sqlite3.Connection) -> None:
            conn.execute("DELETE FROM chunks WHERE doc_id = ?", (doc_id,))
            conn.execute("DELETE FROM documents WHERE id = ?", (doc_id,))
        await self._execute(_delete)

    async def _do_get_document_count(self) -> int:
        return await self._execute(lambda conn: conn.execute("SELECT COUNT(*) FROM documents").fetchone()[0])

    async def _do_add_chunks(self, chunks: list[Chunk]) -> None:
        rows = [(c.id, c.doc_id, c.text, json.dumps(c.embedding), c.position) for c in chunks]
        await self._execute(
            lambda conn: conn.executemany(
                "INSERT OR REPLACE INTO chunks (id, doc_id, text, embedding, position) VALUES (?, ?, ?, ?, ?)",
                rows,
            )
        )

    async def _do_get_all_chunks(self) -> list[Chunk]:
        def _get(conn: sqlite3.Connection) -> list[Chunk]:
            rows = conn.execute("SELECT * FROM chunks ORDER BY doc_id, position").fetchall()
            return [self._row_to_chunk(row) for row in rows]
        return await self._execute(_get)

    async def _do_get_chunks_by_doc_id(self, doc_id: str) -> list[Chunk]:
        def _get(conn: sqlite3.Connection) -> list[Chunk]:
            rows = conn.execute("SELECT * FROM chunks WHERE doc_id = ? ORDER BY position", (doc_id,)).fetchall()
            return [self._row_to_chunk(row) for row in rows]
        return await self._execute(_get)

    async def _do_get_chunk_count(self) -> int:
        return await self._execute(lambda conn: conn.execute("SELECT COUNT(*) FROM chunks").fetchone()[0])

    async def _do_clear_all(self) -> None:
        def _clear(conn: sqlite3.Connection) -> None:
            conn.execute("DELETE FROM chunks")
            conn.execute("DELETE FROM documents")
        await self._execute(_clear)

    async def _do_get_setting(self, key: str) -> Any:
        def _get(conn: sqlite3.Connection) -> Any:
            row = conn.execute("SELECT value FROM settings WHERE key = ?", (key,)).fetchone()
            return json.loads(row["value"]) if row else None
        return await self._execute(_get)

    async def _do_set_setting(self, key: str, value: Any) -> None:
        await self._execute(
            lambda conn: conn.execute(
                "INSERT OR REPLACE INTO settings (key, value) VALUES (?, ?)", (key, json.dumps(value))
            )
        )
