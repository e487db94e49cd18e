from __future__ import annotations

import enum
import json
import logging
import os
import re
import sqlite3
from pathlib import Path
from typing import Any, Callable, Optional

from diffsettings.core.errors import PersistError, ProtectionError, StoreCorruptError
from diffsettings.services.lifecycle_guard import LifecycleGuard
from diffsettings.services.protection import ProtectionCodec

Document = dict[str, Any]
Predicate = Callable[[Document], bool]

_COLLECTION_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

logger = logging.getLogger(__name__)


class StoreState(enum.Enum):
    UNOPENED = "unopened"
    OPENING = "opening"
    RECOVERING = "recovering"
    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"


class Collection:
    """Named set of JSON documents keyed by their ``"id"`` field.

    Every result is a materialized list; nothing holds a cursor past the call.
    """

    def __init__(self, connection: sqlite3.Connection, name: str) -> None:
        if not _COLLECTION_NAME.match(name):
            raise ValueError(f"Invalid collection name: {name!r}")
        self._conn = connection
        self._name = name
        self._ensure_table()

    @property
    def name(self) -> str:
        return self._name

    def _ensure_table(self) -> None:
        try:
            with self._conn:
                self._conn.execute(
                    f'CREATE TABLE IF NOT EXISTS "{self._name}" ('
                    "seq INTEGER PRIMARY KEY AUTOINCREMENT, "
                    "id TEXT NOT NULL UNIQUE, "
                    "doc TEXT NOT NULL)"
                )
        except sqlite3.Error as exc:
            raise PersistError(str(exc), operation="create_collection") from exc

    # Reads ---------------------------------------------------------------
    def find_all(self) -> list[Document]:
        try:
            rows = self._conn.execute(f'SELECT doc FROM "{self._name}" ORDER BY seq').fetchall()
        except sqlite3.Error as exc:
            raise StoreCorruptError(f"Reading {self._name} failed: {exc}") from exc
        return [json.loads(row[0]) for row in rows]

    def find(
        self,
        where: Optional[Predicate] = None,
        *,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> list[Document]:
        docs = self.find_all()
        if where is not None:
            docs = [doc for doc in docs if where(doc)]
        if order_by is not None:
            # Missing values sort first, like nulls in the original engine.
            docs.sort(key=lambda doc: _sort_key(doc.get(order_by)), reverse=descending)
        return docs

    def find_one(
        self,
        where: Optional[Predicate] = None,
        *,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> Optional[Document]:
        docs = self.find(where, order_by=order_by, descending=descending)
        return docs[0] if docs else None

    def find_by_id(self, doc_id: str) -> Optional[Document]:
        try:
            row = self._conn.execute(f'SELECT doc FROM "{self._name}" WHERE id = ?', (doc_id,)).fetchone()
        except sqlite3.Error as exc:
            raise StoreCorruptError(f"Reading {self._name} failed: {exc}") from exc
        return json.loads(row[0]) if row else None

    def count(self) -> int:
        try:
            return int(self._conn.execute(f'SELECT COUNT(*) FROM "{self._name}"').fetchone()[0])
        except sqlite3.Error as exc:
            raise StoreCorruptError(f"Reading {self._name} failed: {exc}") from exc

    # Writes --------------------------------------------------------------
    def insert(self, doc: Document) -> None:
        doc_id = self._require_id(doc)
        try:
            with self._conn:
                self._conn.execute(
                    f'INSERT INTO "{self._name}" (id, doc) VALUES (?, ?)',
                    (doc_id, json.dumps(doc, ensure_ascii=False)),
                )
        except sqlite3.Error as exc:
            raise PersistError(str(exc), operation="insert") from exc

    def upsert(self, doc: Document) -> bool:
        """Insert *doc* or replace the document with the same id.

        Returns True when a new document was inserted. A replaced document
        keeps its original position in insertion order.
        """
        doc_id = self._require_id(doc)
        payload = json.dumps(doc, ensure_ascii=False)
        try:
            with self._conn:
                updated = self._conn.execute(
                    f'UPDATE "{self._name}" SET doc = ? WHERE id = ?', (payload, doc_id)
                ).rowcount
                if updated:
                    return False
                self._conn.execute(f'INSERT INTO "{self._name}" (id, doc) VALUES (?, ?)', (doc_id, payload))
                return True
        except sqlite3.Error as exc:
            raise PersistError(str(exc), operation="upsert") from exc

    def delete_many(self, where: Predicate) -> int:
        ids = [doc["id"] for doc in self.find(where)]
        if not ids:
            return 0
        try:
            with self._conn:
                removed = 0
                for doc_id in ids:
                    removed += self._conn.execute(f'DELETE FROM "{self._name}" WHERE id = ?', (doc_id,)).rowcount
        except sqlite3.Error as exc:
            raise PersistError(str(exc), operation="delete") from exc
        return removed

    @staticmethod
    def _require_id(doc: Document) -> str:
        doc_id = doc.get("id")
        if not doc_id:
            raise ValueError("Document requires a non-empty 'id'")
        return str(doc_id)


class RecordStore:
    """The protected settings file, opened for one unit of work.

    Opening unprotects the file in place and loads it; closing flushes and
    protects it again. An unreadable file is deleted and recreated once.
    The guard is held from ``open()`` until ``close()`` returns. A store
    instance is single use.

    Usage:
        with RecordStore(path, codec, guard) as store:
            store.collection("projects").find_all()
    """

    def __init__(self, path: Path | str, codec: ProtectionCodec, guard: LifecycleGuard) -> None:
        self._path = Path(path)
        self._codec = codec
        self._guard = guard
        self._connection: sqlite3.Connection | None = None
        self._state = StoreState.UNOPENED

    @property
    def path(self) -> Path:
        return self._path

    @property
    def state(self) -> StoreState:
        return self._state

    def __enter__(self) -> "RecordStore":
        return self.open()

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def open(self) -> "RecordStore":
        if self._state is not StoreState.UNOPENED:
            raise RuntimeError(f"Record store cannot be opened from state {self._state.value}")
        self._guard.acquire()
        try:
            self._state = StoreState.OPENING
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._unprotect_in_place()
            try:
                self._connection = self._connect()
            except StoreCorruptError as exc:
                logger.warning("Settings file unreadable; recreating", extra={"path": str(self._path), "error": str(exc)})
                self._state = StoreState.RECOVERING
                self._discard_file()
                self._connection = self._connect()
            self._state = StoreState.OPEN
        except BaseException:
            logger.error("Opening settings file failed", extra={"path": str(self._path)}, exc_info=True)
            self._state = StoreState.CLOSED
            self._guard.release()
            raise
        return self

    def collection(self, name: str) -> Collection:
        if self._state is not StoreState.OPEN or self._connection is None:
            raise RuntimeError("Record store is not open")
        return Collection(self._connection, name)

    def close(self) -> None:
        """Flush and protect the file. Failures are logged, never raised."""
        if self._state is not StoreState.OPEN:
            return
        self._state = StoreState.CLOSING
        try:
            # A handle that did not close cleanly leaves the file as-is; stale
            # plaintext is tolerated on the next open, double protection is not.
            if self._release_connection():
                self._protect_in_place()
        finally:
            self._state = StoreState.CLOSED
            self._guard.release()

    # Internals ------------------------------------------------------------
    def _connect(self) -> sqlite3.Connection:
        connection: sqlite3.Connection | None = None
        try:
            connection = sqlite3.connect(str(self._path), check_same_thread=False)
            # Single-file journal so the protected file is the whole database.
            connection.execute("PRAGMA journal_mode = DELETE")
            connection.execute("PRAGMA synchronous = FULL")
            result = connection.execute("PRAGMA quick_check").fetchone()
            if result is None or str(result[0]).lower() != "ok":
                raise sqlite3.DatabaseError(f"quick_check reported {result[0] if result else 'nothing'}")
        except (sqlite3.Error, OSError) as exc:
            if connection is not None:
                try:
                    connection.close()
                except sqlite3.Error:
                    logger.debug("Closing rejected connection failed", exc_info=True)
            raise StoreCorruptError(f"Cannot open settings file: {exc}", path=str(self._path)) from exc
        return connection

    def _discard_file(self) -> None:
        try:
            self._path.unlink(missing_ok=True)
        except OSError:
            logger.error("Deleting unreadable settings file failed", extra={"path": str(self._path)}, exc_info=True)

    def _unprotect_in_place(self) -> None:
        if not self._path.exists():
            return
        try:
            raw = self._path.read_bytes()
        except OSError:
            logger.warning("Reading settings file failed", extra={"path": str(self._path)}, exc_info=True)
            return
        try:
            plain = self._codec.unprotect(raw)
        except ProtectionError as exc:
            # Expected on first run or after an interrupted close.
            logger.info("Settings file not protected; reading as plaintext", extra={"path": str(self._path), "reason": str(exc)})
            return
        try:
            _write_atomic(self._path, plain)
        except OSError:
            logger.error("Writing unprotected settings file failed", extra={"path": str(self._path)}, exc_info=True)

    def _release_connection(self) -> bool:
        connection, self._connection = self._connection, None
        if connection is None:
            return False
        try:
            connection.commit()
        except sqlite3.Error:
            logger.warning("Flushing settings file failed", extra={"path": str(self._path)}, exc_info=True)
        try:
            connection.close()
        except sqlite3.Error:
            logger.error("Closing settings file failed; leaving it unprotected", extra={"path": str(self._path)}, exc_info=True)
            return False
        return True

    def _protect_in_place(self) -> None:
        try:
            _write_atomic(self._path, self._codec.protect(self._path.read_bytes()))
        except (OSError, ProtectionError):
            logger.error("Protecting settings file failed", extra={"path": str(self._path)}, exc_info=True)


def _sort_key(value: Any) -> tuple[bool, Any]:
    if value is None:
        return (False, "")
    return (True, value)


def _write_atomic(path: Path, data: bytes) -> None:
    tmp = path.with_name(path.name + ".tmp")
    try:
        with open(tmp, "wb") as fh:
            fh.write(data)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp, path)
    except OSError:
        tmp.unlink(missing_ok=True)
        raise


__all__ = ["RecordStore", "Collection", "StoreState", "Document", "Predicate"]
