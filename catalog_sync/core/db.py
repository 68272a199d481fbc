"""PostgreSQL-backed document store.

Documents live in a single JSONB table keyed by ``(collection, id)``, which
gives the sync core the same get/set/delete/list surface a Firestore-style
store offers.
"""

import logging
from contextlib import contextmanager
from typing import Any, List, Optional, Sequence, Tuple

from psycopg2 import extras, pool

from catalog_sync.core.store import Document, DocumentStore, StoreError

logger = logging.getLogger(__name__)

_CREATE_TABLE = """
CREATE TABLE IF NOT EXISTS documents (
    collection TEXT NOT NULL,
    id TEXT NOT NULL,
    data JSONB NOT NULL,
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    PRIMARY KEY (collection, id)
);
"""

_SELECT_ONE = "SELECT data FROM documents WHERE collection = %(collection)s AND id = %(id)s;"

_SELECT_ALL = "SELECT id, data FROM documents WHERE collection = %(collection)s ORDER BY id;"

_SELECT_WHERE = """
SELECT id, data FROM documents
WHERE collection = %(collection)s AND data @> %(filter)s
ORDER BY id;
"""

_REPLACE = """
INSERT INTO documents (collection, id, data, updated_at)
VALUES (%(collection)s, %(id)s, %(data)s, NOW())
ON CONFLICT (collection, id) DO UPDATE SET
    data = EXCLUDED.data,
    updated_at = NOW();
"""

_MERGE = """
INSERT INTO documents (collection, id, data, updated_at)
VALUES (%(collection)s, %(id)s, %(data)s, NOW())
ON CONFLICT (collection, id) DO UPDATE SET
    data = documents.data || EXCLUDED.data,
    updated_at = NOW();
"""

_DELETE_ONE = "DELETE FROM documents WHERE collection = %(collection)s AND id = %(id)s;"

_DELETE_MANY = "DELETE FROM documents WHERE collection = %(collection)s AND id = ANY(%(ids)s);"


def create_pool(database_url: str, minconn: int = 1, maxconn: int = 5) -> pool.SimpleConnectionPool:
    """Create a connection pool for the given DSN."""
    if not database_url:
        raise RuntimeError("DATABASE_URL is required for database connections")
    connection_pool = pool.SimpleConnectionPool(
        minconn,
        maxconn,
        dsn=database_url,
        connect_timeout=10,
    )
    logger.info("Database connection pool initialised")
    return connection_pool


class PostgresDocumentStore(DocumentStore):
    """Document store over an explicitly constructed psycopg2 pool."""

    def __init__(self, connection_pool: Any) -> None:
        self._pool = connection_pool

    @classmethod
    def connect(cls, database_url: str) -> "PostgresDocumentStore":
        store = cls(create_pool(database_url))
        store.ensure_schema()
        return store

    def close(self) -> None:
        self._pool.closeall()
        logger.info("Database connection pool closed")

    @contextmanager
    def get_connection(self):
        """Context manager yielding a pooled connection."""
        conn = self._pool.getconn()
        try:
            yield conn
        finally:
            self._pool.putconn(conn)

    def _execute(self, sql: str, params: dict, fetch: Optional[str] = None) -> Any:
        with self.get_connection() as conn:
            try:
                with conn.cursor() as cur:
                    cur.execute(sql, params)
                    if fetch == "one":
                        result = cur.fetchone()
                    elif fetch == "all":
                        result = cur.fetchall()
                    else:
                        result = cur.rowcount
                conn.commit()
            except Exception as exc:
                conn.rollback()
                raise StoreError(f"database operation failed: {exc}") from exc
        return result

    def ensure_schema(self) -> None:
        self._execute(_CREATE_TABLE, {})

    def get(self, collection: str, doc_id: str) -> Optional[Document]:
        row = self._execute(_SELECT_ONE, {"collection": collection, "id": doc_id}, fetch="one")
        return row[0] if row else None

    def set(self, collection: str, doc_id: str, document: Document, merge: bool = False) -> None:
        if not doc_id:
            raise StoreError("document id is required")
        params = {"collection": collection, "id": doc_id, "data": extras.Json(document)}
        self._execute(_MERGE if merge else _REPLACE, params)
        logger.debug("Stored %s/%s (merge=%s)", collection, doc_id, merge)

    def delete(self, collection: str, doc_id: str) -> None:
        self._execute(_DELETE_ONE, {"collection": collection, "id": doc_id})

    def list_all(self, collection: str) -> List[Tuple[str, Document]]:
        rows = self._execute(_SELECT_ALL, {"collection": collection}, fetch="all")
        return [(row[0], row[1]) for row in rows]

    def list_where(self, collection: str, field: str, value: Any) -> List[Tuple[str, Document]]:
        params = {"collection": collection, "filter": extras.Json({field: value})}
        rows = self._execute(_SELECT_WHERE, params, fetch="all")
        return [(row[0], row[1]) for row in rows]

    def delete_many(self, collection: str, doc_ids: Sequence[str]) -> int:
        if not doc_ids:
            return 0
        return self._execute(_DELETE_MANY, {"collection": collection, "ids": list(doc_ids)})
