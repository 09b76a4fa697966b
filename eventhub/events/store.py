"""SQLite event store: durable record of every event and its status."""

import logging
import time
from pathlib import Path

import aiosqlite

from eventhub.events.models import Event, EventStatus

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS events (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    title           TEXT    NOT NULL,
    description     TEXT,
    source          TEXT    NOT NULL,
    type            TEXT    NOT NULL,
    status          TEXT    NOT NULL DEFAULT 'PENDING',
    created_at      REAL    NOT NULL,
    processed_at    REAL,
    retry_count     INTEGER NOT NULL DEFAULT 0
);

CREATE INDEX IF NOT EXISTS idx_events_status ON events(status);
CREATE INDEX IF NOT EXISTS idx_events_created ON events(created_at);
"""

_COLUMNS = (
    "id, title, description, source, type, status, created_at, processed_at, retry_count"
)


def _row_to_event(row: tuple) -> Event:
    return Event(
        id=row[0],
        title=row[1],
        description=row[2],
        source=row[3],
        type=row[4],
        status=EventStatus(row[5]),
        created_at=row[6],
        processed_at=row[7],
        retry_count=row[8] or 0,
    )


class EventStore:
    """SQLite-backed event store. One connection per instance."""

    def __init__(self, db_path: Path, busy_timeout: int = 5000) -> None:
        self._db_path = db_path
        self._busy_timeout = busy_timeout
        self._conn: aiosqlite.Connection | None = None

    async def _ensure_conn(self) -> aiosqlite.Connection:
        if self._conn is None:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = await aiosqlite.connect(str(self._db_path))
            await self._conn.execute("PRAGMA journal_mode=WAL")
            await self._conn.execute("PRAGMA synchronous=NORMAL")
            await self._conn.execute(f"PRAGMA busy_timeout={self._busy_timeout}")
            await self._conn.executescript(_SCHEMA)
            await self._conn.commit()
        return self._conn

    async def close(self) -> None:
        """Close the database connection."""
        if self._conn:
            await self._conn.close()
            self._conn = None

    async def insert(
        self,
        title: str,
        source: str,
        type: str,
        description: str | None = None,
    ) -> Event:
        """Insert a PENDING event and return it with its assigned id and created_at."""
        conn = await self._ensure_conn()
        now = time.time()
        cursor = await conn.execute(
            """
            INSERT INTO events (title, description, source, type, status, created_at, retry_count)
            VALUES (?, ?, ?, ?, ?, ?, 0)
            """,
            (title, description, source, type, EventStatus.PENDING.value, now),
        )
        await conn.commit()
        return Event(
            id=cursor.lastrowid or 0,
            title=title,
            description=description,
            source=source,
            type=type,
            status=EventStatus.PENDING,
            created_at=now,
        )

    async def find_by_id(self, event_id: int) -> Event | None:
        conn = await self._ensure_conn()
        cursor = await conn.execute(
            f"SELECT {_COLUMNS} FROM events WHERE id = ?", (event_id,)
        )
        row = await cursor.fetchone()
        return _row_to_event(row) if row else None

    async def find_by_status(self, status: EventStatus) -> list[Event]:
        conn = await self._ensure_conn()
        cursor = await conn.execute(
            f"SELECT {_COLUMNS} FROM events WHERE status = ? ORDER BY created_at, id",
            (status.value,),
        )
        rows = await cursor.fetchall()
        return [_row_to_event(row) for row in rows]

    async def find_all_ordered_by_creation_desc(self) -> list[Event]:
        conn = await self._ensure_conn()
        cursor = await conn.execute(
            f"SELECT {_COLUMNS} FROM events ORDER BY created_at DESC, id DESC"
        )
        rows = await cursor.fetchall()
        return [_row_to_event(row) for row in rows]

    async def update_status(self, event_id: int, status: EventStatus) -> Event | None:
        """Set status. PROCESSED stamps processed_at only if it is still NULL.

        processed_at is never earlier than created_at. Returns the updated event,
        or None if the row no longer exists.
        """
        conn = await self._ensure_conn()
        now = time.time()
        cursor = await conn.execute(
            """
            UPDATE events
            SET status = ?,
                processed_at = CASE
                    WHEN ? = 'PROCESSED' THEN COALESCE(processed_at, MAX(?, created_at))
                    ELSE processed_at
                END
            WHERE id = ?
            """,
            (status.value, status.value, now, event_id),
        )
        await conn.commit()
        if not cursor.rowcount:
            return None
        return await self.find_by_id(event_id)

    async def count_by_status(self, status: EventStatus) -> int:
        conn = await self._ensure_conn()
        cursor = await conn.execute(
            "SELECT COUNT(*) FROM events WHERE status = ?", (status.value,)
        )
        row = await cursor.fetchone()
        return row[0] if row else 0

    async def count_grouped_by_status(self) -> dict[EventStatus, int]:
        """Counts for every status from one query, so they always sum to the total."""
        conn = await self._ensure_conn()
        cursor = await conn.execute("SELECT status, COUNT(*) FROM events GROUP BY status")
        rows = await cursor.fetchall()
        counts = {status: 0 for status in EventStatus}
        for status, count in rows:
            counts[EventStatus(status)] = count
        return counts

    async def count_all(self) -> int:
        conn = await self._ensure_conn()
        cursor = await conn.execute("SELECT COUNT(*) FROM events")
        row = await cursor.fetchone()
        return row[0] if row else 0

    async def delete_all(self) -> int:
        """Delete every event. Returns number of rows removed."""
        conn = await self._ensure_conn()
        cursor = await conn.execute("DELETE FROM events")
        await conn.commit()
        deleted = cursor.rowcount or 0
        logger.debug("EventStore: deleted %d events", deleted)
        return deleted

    async def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        try:
            conn = await self._ensure_conn()
            await conn.execute("SELECT 1")
            return True
        except aiosqlite.Error:
            logger.exception("EventStore ping failed")
            return False
