"""
Document store - persistence boundary for dashboard documents.

Each document is stored whole, keyed by user id, alongside a revision
counter kept outside the document body. Writes can be made conditional on
the revision that was read (`expected_revision`); a mismatch raises
ConcurrentUpdateError instead of silently overwriting a newer document.

Implementations:
- SQLiteDocumentStore: one sqlite file, JSON document column
- MemoryDocumentStore: process-local dict, counts writes
"""

import asyncio
import copy
import json
import logging
import sqlite3
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Optional

from intakeflow.config import DEFAULT_DB_PATH
from intakeflow.errors import ConcurrentUpdateError, NotFoundError, StoreUnavailableError

logger = logging.getLogger(__name__)


@dataclass
class StoredDocument:
    """A document as read from the store, with the revision it was read at."""
    data: dict[str, Any]
    revision: int


def apply_field_paths(document: dict[str, Any], fields: dict[str, Any]) -> dict[str, Any]:
    """
    Apply dotted-path updates to a document copy.

    `{"progressTracking.overallProgress": 40}` replaces only that key,
    creating intermediate objects as needed.
    """
    updated = copy.deepcopy(document)
    for path, value in fields.items():
        target = updated
        *parents, leaf = path.split(".")
        for key in parents:
            child = target.get(key)
            if not isinstance(child, dict):
                child = {}
                target[key] = child
            target = child
        target[leaf] = copy.deepcopy(value)
    return updated


class DocumentStore(ABC):
    """Async key/document store with per-document atomic, conditional writes."""

    @abstractmethod
    async def get(self, key: str) -> Optional[StoredDocument]:
        """Load a document, or None if absent."""

    @abstractmethod
    async def create(self, key: str, document: dict[str, Any]) -> bool:
        """Insert if absent. Returns False when a document already exists."""

    @abstractmethod
    async def set(
        self,
        key: str,
        document: dict[str, Any],
        expected_revision: Optional[int] = None,
    ) -> int:
        """Replace (or create) a whole document. Returns the new revision."""

    @abstractmethod
    async def update(
        self,
        key: str,
        fields: dict[str, Any],
        expected_revision: Optional[int] = None,
    ) -> int:
        """Apply dotted-path updates to an existing document. Returns the new revision."""


# -----------------------------------------------------------------------------
# In-memory store
# -----------------------------------------------------------------------------

class MemoryDocumentStore(DocumentStore):
    """
    Process-local store. Documents are kept as JSON text so callers never
    share references with stored state.
    """

    def __init__(self):
        self._documents: dict[str, tuple[int, str]] = {}
        self.write_count = 0

    async def get(self, key: str) -> Optional[StoredDocument]:
        entry = self._documents.get(key)
        if entry is None:
            return None
        revision, text = entry
        return StoredDocument(data=json.loads(text), revision=revision)

    async def create(self, key: str, document: dict[str, Any]) -> bool:
        if key in self._documents:
            return False
        self._documents[key] = (1, json.dumps(document))
        self.write_count += 1
        return True

    async def set(self, key, document, expected_revision=None) -> int:
        current = self._documents.get(key)
        current_revision = current[0] if current else 0
        self._check_revision(key, current_revision, expected_revision)
        return self._write(key, current_revision + 1, document)

    async def update(self, key, fields, expected_revision=None) -> int:
        current = self._documents.get(key)
        if current is None:
            raise NotFoundError(f"Dashboard {key} not found")
        revision, text = current
        self._check_revision(key, revision, expected_revision)
        return self._write(key, revision + 1, apply_field_paths(json.loads(text), fields))

    def _check_revision(self, key: str, current: int, expected: Optional[int]):
        if expected is not None and current != expected:
            raise ConcurrentUpdateError(
                f"Dashboard {key} is at revision {current}, expected {expected}"
            )

    def _write(self, key: str, revision: int, document: dict[str, Any]) -> int:
        self._documents[key] = (revision, json.dumps(document))
        self.write_count += 1
        return revision


# -----------------------------------------------------------------------------
# SQLite store
# -----------------------------------------------------------------------------

class SQLiteDocumentStore(DocumentStore):
    """
    Store dashboards in a SQLite database.

    Blocking sqlite calls run in a worker thread; every call opens its own
    connection. Conditional writes take an IMMEDIATE transaction so the
    revision check and the write cannot interleave with another writer.
    """

    def __init__(self, db_path: Optional[Path] = None, timeout: float = 5.0):
        """
        Initialize the store.

        Args:
            db_path: Path to the database (default: ~/.intakeflow/dashboards.db)
            timeout: Seconds to wait on a locked database
        """
        self.db_path = Path(db_path) if db_path else DEFAULT_DB_PATH
        self.timeout = timeout
        self._ensure_database()

    def _ensure_database(self):
        """Create database and table if they don't exist."""
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = self._get_connection()
        except (OSError, sqlite3.Error) as e:
            raise StoreUnavailableError(f"Cannot open dashboard store {self.db_path}: {e}") from e
        try:
            conn.executescript("""
                CREATE TABLE IF NOT EXISTS dashboards (
                    user_id TEXT PRIMARY KEY,
                    revision INTEGER NOT NULL,
                    document TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );
            """)
        except sqlite3.Error as e:
            raise StoreUnavailableError(f"Cannot create dashboard table: {e}") from e
        finally:
            conn.close()

    def _get_connection(self) -> sqlite3.Connection:
        """Get a new autocommit connection (transactions are explicit)."""
        conn = sqlite3.connect(str(self.db_path), timeout=self.timeout, isolation_level=None)
        conn.row_factory = sqlite3.Row
        return conn

    # -------------------------------------------------------------------------
    # Async API
    # -------------------------------------------------------------------------

    async def get(self, key: str) -> Optional[StoredDocument]:
        return await asyncio.to_thread(self._get_sync, key)

    async def create(self, key: str, document: dict[str, Any]) -> bool:
        return await asyncio.to_thread(self._create_sync, key, document)

    async def set(self, key, document, expected_revision=None) -> int:
        return await asyncio.to_thread(
            self._write_sync, key, lambda _: document, expected_revision, True
        )

    async def update(self, key, fields, expected_revision=None) -> int:
        return await asyncio.to_thread(
            self._write_sync,
            key,
            lambda current: apply_field_paths(current, fields),
            expected_revision,
            False,
        )

    # -------------------------------------------------------------------------
    # Blocking implementation
    # -------------------------------------------------------------------------

    def _get_sync(self, key: str) -> Optional[StoredDocument]:
        try:
            conn = self._get_connection()
            try:
                row = conn.execute(
                    "SELECT document, revision FROM dashboards WHERE user_id = ?",
                    (key,)
                ).fetchone()
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise StoreUnavailableError(f"Failed to read dashboard {key}: {e}") from e

        if not row:
            return None
        return StoredDocument(data=json.loads(row["document"]), revision=row["revision"])

    def _create_sync(self, key: str, document: dict[str, Any]) -> bool:
        try:
            conn = self._get_connection()
            try:
                cursor = conn.execute(
                    """INSERT INTO dashboards (user_id, revision, document, updated_at)
                       VALUES (?, 1, ?, ?)
                       ON CONFLICT(user_id) DO NOTHING""",
                    (key, json.dumps(document), _timestamp())
                )
                return cursor.rowcount == 1
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise StoreUnavailableError(f"Failed to create dashboard {key}: {e}") from e

    def _write_sync(
        self,
        key: str,
        build: Callable[[dict[str, Any]], dict[str, Any]],
        expected_revision: Optional[int],
        allow_create: bool,
    ) -> int:
        try:
            conn = self._get_connection()
        except sqlite3.Error as e:
            raise StoreUnavailableError(f"Failed to write dashboard {key}: {e}") from e

        try:
            conn.execute("BEGIN IMMEDIATE")
            row = conn.execute(
                "SELECT document, revision FROM dashboards WHERE user_id = ?",
                (key,)
            ).fetchone()

            if row is None and not allow_create:
                raise NotFoundError(f"Dashboard {key} not found")

            current_revision = row["revision"] if row else 0
            if expected_revision is not None and current_revision != expected_revision:
                raise ConcurrentUpdateError(
                    f"Dashboard {key} is at revision {current_revision}, "
                    f"expected {expected_revision}"
                )

            current = json.loads(row["document"]) if row else {}
            document = json.dumps(build(current))
            new_revision = current_revision + 1
            conn.execute(
                """INSERT INTO dashboards (user_id, revision, document, updated_at)
                   VALUES (?, ?, ?, ?)
                   ON CONFLICT(user_id) DO UPDATE SET
                     revision = excluded.revision,
                     document = excluded.document,
                     updated_at = excluded.updated_at""",
                (key, new_revision, document, _timestamp())
            )
            conn.execute("COMMIT")
            return new_revision
        except sqlite3.Error as e:
            _rollback(conn)
            raise StoreUnavailableError(f"Failed to write dashboard {key}: {e}") from e
        except Exception:
            _rollback(conn)
            raise
        finally:
            conn.close()


def _rollback(conn: sqlite3.Connection):
    if conn.in_transaction:
        try:
            conn.execute("ROLLBACK")
        except sqlite3.Error as e:
            logger.warning(f"Rollback failed: {e}")


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()
