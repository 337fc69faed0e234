"""
Persistent key-value tree backed by async SQLite.

Holds the mirrored SolarGuardian tree so other consumers can read current
values without talking to the remote API. Nodes are addressed by
dot-delimited paths. Two node categories exist:

- Container objects (``objects`` table): registered once via
  :meth:`TreeStore.create_if_absent`, holding the node kind and display name.
- Leaf values (``states`` table): JSON-encoded scalars written by
  :meth:`TreeStore.write_value` on every cycle.

Both operations are idempotent. The database runs in WAL mode so readers in
other processes see committed writes while a cycle is in progress.

Operations:
- create_if_absent(path, kind, display_name): INSERT OR IGNORE a container.
- write_value(path, value): upsert a leaf, notify listeners on change.
- apply(writes): apply one entity's writes in a single transaction.
- read_value(path) / get_object(path): point lookups.
- list_values(prefix) / list_objects(prefix): subtree listings.
- subscribe(listener): register a change listener.

Supports async context manager protocol for clean resource management.

CHANGELOG:
- 2026-10-19: Initial creation, adapted from the sample spool
- 2026-10-19: Add has_value

TODO:
- None
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Iterable
from datetime import UTC, datetime
from pathlib import Path

import aiosqlite

from guardian.src.mapper import CreateObject, TreeWrite, WriteValue
from guardian.src.models import Scalar

logger = logging.getLogger(__name__)

ChangeListener = Callable[[str, Scalar], None]
"""Called with ``(path, new_value)`` after a write changed a leaf."""

_CREATE_OBJECTS_SQL = """\
CREATE TABLE IF NOT EXISTS objects (
    path TEXT PRIMARY KEY,
    kind TEXT NOT NULL,
    name TEXT NOT NULL,
    created_at TEXT NOT NULL DEFAULT (datetime('now'))
);
"""

_CREATE_STATES_SQL = """\
CREATE TABLE IF NOT EXISTS states (
    path TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    changed_at TEXT NOT NULL
);
"""

_INSERT_OBJECT_SQL = """\
INSERT OR IGNORE INTO objects (path, kind, name) VALUES (?, ?, ?);
"""

_SELECT_VALUE_SQL = "SELECT value FROM states WHERE path = ?;"

_UPSERT_VALUE_SQL = """\
INSERT INTO states (path, value, updated_at, changed_at)
VALUES (?, ?, ?, ?)
ON CONFLICT(path) DO UPDATE SET
    value = excluded.value,
    updated_at = excluded.updated_at,
    changed_at = excluded.changed_at;
"""

_TOUCH_VALUE_SQL = "UPDATE states SET updated_at = ? WHERE path = ?;"

_SELECT_OBJECT_SQL = "SELECT path, kind, name FROM objects WHERE path = ?;"

_LIST_VALUES_SQL = """\
SELECT path, value
FROM states
WHERE ? = '' OR path = ? OR substr(path, 1, ?) = ?
ORDER BY path ASC;
"""

_LIST_OBJECTS_SQL = """\
SELECT path, kind, name
FROM objects
WHERE ? = '' OR path = ? OR substr(path, 1, ?) = ?
ORDER BY path ASC;
"""

_COUNT_VALUES_SQL = "SELECT COUNT(*) FROM states;"


class TreeStore:
    """Addressable key-value tree persisted in a SQLite database.

    Args:
        path: Filesystem path for the SQLite database file.
              Accepts ``str`` or ``pathlib.Path``.

    Usage::

        async with TreeStore(path="/data/guardian.db") as store:
            await store.create_if_absent("powerStations.1", "device", "Plant A")
            await store.write_value("powerStations.1.name", "Plant A")
            value = await store.read_value("powerStations.1.name")
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._db: aiosqlite.Connection | None = None
        self._listeners: list[ChangeListener] = []

    async def open(self) -> None:
        """Open the SQLite connection and initialize the schema."""
        self._db = await aiosqlite.connect(str(self._path))
        await self._db.execute("PRAGMA journal_mode=WAL;")
        await self._db.execute(_CREATE_OBJECTS_SQL)
        await self._db.execute(_CREATE_STATES_SQL)
        await self._db.commit()

    async def close(self) -> None:
        """Close the underlying SQLite connection."""
        if self._db is not None:
            await self._db.close()
            self._db = None

    async def __aenter__(self) -> TreeStore:
        """Enter async context manager: open the database."""
        await self.open()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        """Exit async context manager: close the database."""
        await self.close()

    # ------------------------------------------------------------------
    # Change notification
    # ------------------------------------------------------------------

    def subscribe(self, listener: ChangeListener) -> None:
        """Register *listener* to be called after every value change."""
        self._listeners.append(listener)

    def unsubscribe(self, listener: ChangeListener) -> None:
        """Remove a previously registered listener. Unknown ones are ignored."""
        if listener in self._listeners:
            self._listeners.remove(listener)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def create_if_absent(self, path: str, kind: str, display_name: str) -> bool:
        """Register a container node unless it already exists.

        An existing node keeps its original kind and display name.

        Returns:
            ``True`` if the node was created, ``False`` if it already existed.
        """
        db = self._require_db()
        created = await self._insert_object(db, path, kind, display_name)
        await db.commit()
        return created

    async def write_value(self, path: str, value: Scalar) -> bool:
        """Write *value* to the leaf at *path*.

        Returns:
            ``True`` if the stored value changed (listeners were notified),
            ``False`` if it was already equal.
        """
        db = self._require_db()
        changed = await self._upsert_value(db, path, value)
        await db.commit()
        if changed:
            self._notify(path, value)
        return changed

    async def apply(self, writes: Iterable[TreeWrite]) -> int:
        """Apply a sequence of writes in one transaction.

        Listeners are notified after the commit, in write order.

        Returns:
            Number of leaf values that changed.
        """
        db = self._require_db()
        changes: list[tuple[str, Scalar]] = []
        try:
            for write in writes:
                if isinstance(write, CreateObject):
                    await self._insert_object(db, write.path, write.kind, write.display_name)
                elif isinstance(write, WriteValue):
                    if await self._upsert_value(db, write.path, write.value):
                        changes.append((write.path, write.value))
                else:
                    raise TypeError(f"Unsupported tree write: {write!r}")
        except BaseException:
            await db.rollback()
            raise
        await db.commit()
        for path, value in changes:
            self._notify(path, value)
        return len(changes)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def read_value(self, path: str) -> Scalar:
        """Return the value at *path*.

        Raises:
            KeyError: If no value was ever written to *path*.
        """
        db = self._require_db()
        cursor = await db.execute(_SELECT_VALUE_SQL, (path,))
        row = await cursor.fetchone()
        if row is None:
            raise KeyError(path)
        return json.loads(row[0])

    async def has_value(self, path: str) -> bool:
        """Return ``True`` if a value was ever written to *path*."""
        db = self._require_db()
        cursor = await db.execute(_SELECT_VALUE_SQL, (path,))
        return await cursor.fetchone() is not None

    async def get_object(self, path: str) -> dict[str, str] | None:
        """Return ``{"path", "kind", "name"}`` for a container, or ``None``."""
        db = self._require_db()
        cursor = await db.execute(_SELECT_OBJECT_SQL, (path,))
        row = await cursor.fetchone()
        if row is None:
            return None
        return {"path": row[0], "kind": row[1], "name": row[2]}

    async def list_values(self, prefix: str = "") -> dict[str, Scalar]:
        """Return all leaf values at or below *prefix*, ordered by path.

        An empty prefix lists the whole tree.
        """
        db = self._require_db()
        rows = await self._list(db, _LIST_VALUES_SQL, prefix)
        return {row[0]: json.loads(row[1]) for row in rows}

    async def list_objects(self, prefix: str = "") -> list[dict[str, str]]:
        """Return all container nodes at or below *prefix*, ordered by path."""
        db = self._require_db()
        rows = await self._list(db, _LIST_OBJECTS_SQL, prefix)
        return [{"path": row[0], "kind": row[1], "name": row[2]} for row in rows]

    async def count_values(self) -> int:
        """Return the number of leaf values in the tree."""
        db = self._require_db()
        cursor = await db.execute(_COUNT_VALUES_SQL)
        row = await cursor.fetchone()
        return row[0]

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _require_db(self) -> aiosqlite.Connection:
        assert self._db is not None, "TreeStore not opened. Call open() or use async with."
        return self._db

    @staticmethod
    async def _insert_object(
        db: aiosqlite.Connection, path: str, kind: str, display_name: str
    ) -> bool:
        cursor = await db.execute(_INSERT_OBJECT_SQL, (path, kind, display_name))
        return cursor.rowcount == 1

    @staticmethod
    async def _upsert_value(db: aiosqlite.Connection, path: str, value: Scalar) -> bool:
        encoded = json.dumps(value)
        now = datetime.now(tz=UTC).isoformat()
        cursor = await db.execute(_SELECT_VALUE_SQL, (path,))
        row = await cursor.fetchone()
        if row is not None and row[0] == encoded:
            await db.execute(_TOUCH_VALUE_SQL, (now, path))
            return False
        await db.execute(_UPSERT_VALUE_SQL, (path, encoded, now, now))
        return True

    @staticmethod
    async def _list(
        db: aiosqlite.Connection, sql: str, prefix: str
    ) -> list[tuple[str, ...]]:
        child_prefix = f"{prefix}."
        cursor = await db.execute(sql, (prefix, prefix, len(child_prefix), child_prefix))
        return list(await cursor.fetchall())

    def _notify(self, path: str, value: Scalar) -> None:
        for listener in list(self._listeners):
            try:
                listener(path, value)
            except Exception:
                logger.warning("Change listener failed for %s", path, exc_info=True)
