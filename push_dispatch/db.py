"""Push DB — SQLite storage for device registrations and notification records."""

from __future__ import annotations

import asyncio
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable

import aiosqlite

from push_dispatch.errors import RegistrationStoreError
from push_dispatch.records import DeviceRegistration, NotificationRecord, NotificationStatus

_CREATE_TABLES = [
    """
    CREATE TABLE IF NOT EXISTS device_tokens (
        user_id TEXT NOT NULL,
        token TEXT NOT NULL,
        created_at TEXT NOT NULL,
        PRIMARY KEY (user_id, token)
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS notifications (
        id TEXT NOT NULL,
        user_id TEXT NOT NULL,
        type TEXT NOT NULL DEFAULT '',
        args TEXT NOT NULL DEFAULT '[]',
        target_route TEXT NOT NULL DEFAULT '',
        target_id TEXT NOT NULL DEFAULT '',
        status TEXT NOT NULL DEFAULT 'NEW',
        claimed_at TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        PRIMARY KEY (user_id, id)
    );
    """,
]

_CREATE_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_notifications_status ON notifications (status);",
    "CREATE INDEX IF NOT EXISTS idx_notifications_created_at ON notifications (created_at DESC);",
]


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _row_to_record(row: aiosqlite.Row) -> NotificationRecord:
    return NotificationRecord(
        id=row["id"],
        type=row["type"],
        args=json.loads(row["args"]),
        target_route=row["target_route"],
        target_id=row["target_id"],
        status=NotificationStatus(row["status"]),
        created_at=datetime.fromisoformat(row["created_at"]),
    )


class PushDB:
    def __init__(self, db_path: str | Path = "~/.push_dispatch/push.db") -> None:
        self._db_path = Path(db_path).expanduser()
        self._conn: aiosqlite.Connection | None = None
        # Serializes write units so one rollback never discards another coroutine's statement
        self._write_lock = asyncio.Lock()

    async def init(self) -> None:
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = await aiosqlite.connect(str(self._db_path))
        self._conn.row_factory = aiosqlite.Row
        await self._conn.execute("PRAGMA journal_mode=WAL;")
        for table_sql in _CREATE_TABLES:
            await self._conn.execute(table_sql)
        for idx_sql in _CREATE_INDEXES:
            await self._conn.execute(idx_sql)
        await self._conn.commit()

    async def close(self) -> None:
        if self._conn:
            await self._conn.close()
            self._conn = None

    def _db(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise RuntimeError("PushDB not initialized. Call init() first.")
        return self._conn

    # ------------------------------------------------------------------
    # Device registrations
    # ------------------------------------------------------------------

    async def register_token(self, user_id: str, token: str) -> bool:
        """Enroll a device token for a user. Returns True if it was not already registered."""
        async with self._write_lock:
            cursor = await self._db().execute(
                "INSERT OR IGNORE INTO device_tokens (user_id, token, created_at) VALUES (?, ?, ?)",
                (user_id, token, _now_iso()),
            )
            await self._db().commit()
        return cursor.rowcount > 0  # type: ignore[union-attr]

    async def list_tokens(self, user_id: str) -> list[DeviceRegistration]:
        try:
            cursor = await self._db().execute(
                "SELECT user_id, token, created_at FROM device_tokens WHERE user_id = ? ORDER BY created_at, rowid",
                (user_id,),
            )
            rows = await cursor.fetchall()
        except aiosqlite.Error as exc:
            raise RegistrationStoreError(f"listing tokens failed: {exc}") from exc
        return [
            DeviceRegistration(
                user_id=row["user_id"],
                token=row["token"],
                created_at=datetime.fromisoformat(row["created_at"]),
            )
            for row in rows
        ]

    async def delete_tokens(self, user_id: str, tokens: Iterable[str]) -> int:
        """Remove the named tokens for one user as a single atomic unit.

        Tokens that no longer exist are ignored. Returns the number of rows removed.
        """
        unique = sorted(set(tokens))
        if not unique:
            return 0
        placeholders = ", ".join("?" for _ in unique)
        async with self._write_lock:
            try:
                cursor = await self._db().execute(
                    f"DELETE FROM device_tokens WHERE user_id = ? AND token IN ({placeholders})",
                    (user_id, *unique),
                )
                await self._db().commit()
            except aiosqlite.Error as exc:
                await self._db().rollback()
                raise RegistrationStoreError(f"deleting tokens failed: {exc}") from exc
        return cursor.rowcount  # type: ignore[union-attr]

    # ------------------------------------------------------------------
    # Notification records
    # ------------------------------------------------------------------

    async def insert_notification(self, user_id: str, record: NotificationRecord) -> NotificationRecord:
        now = _now_iso()
        async with self._write_lock:
            await self._db().execute(
                """
                INSERT INTO notifications
                  (id, user_id, type, args, target_route, target_id, status, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    record.id,
                    user_id,
                    record.type,
                    json.dumps(record.args),
                    record.target_route,
                    record.target_id,
                    record.status.value,
                    record.created_at.isoformat(),
                    now,
                ),
            )
            await self._db().commit()
        return record

    async def get_notification(self, user_id: str, notification_id: str) -> NotificationRecord | None:
        cursor = await self._db().execute(
            "SELECT * FROM notifications WHERE user_id = ? AND id = ?",
            (user_id, notification_id),
        )
        row = await cursor.fetchone()
        return _row_to_record(row) if row else None

    async def list_notifications(
        self,
        user_id: str,
        *,
        status: NotificationStatus | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[NotificationRecord]:
        conditions = ["user_id = ?"]
        params: list[object] = [user_id]
        if status is not None:
            conditions.append("status = ?")
            params.append(status.value)
        params.extend([limit, offset])
        cursor = await self._db().execute(
            f"SELECT * FROM notifications WHERE {' AND '.join(conditions)} "
            "ORDER BY created_at DESC, rowid DESC LIMIT ? OFFSET ?",
            params,
        )
        rows = await cursor.fetchall()
        return [_row_to_record(r) for r in rows]

    async def mark_status(
        self,
        user_id: str,
        notification_id: str,
        status: NotificationStatus,
        expected: NotificationStatus | None = None,
    ) -> bool:
        """Set a notification's status; with ``expected``, only if the current status matches."""
        now = _now_iso()
        sql = "UPDATE notifications SET status = ?, updated_at = ? WHERE user_id = ? AND id = ?"
        params: list[object] = [status.value, now, user_id, notification_id]
        if expected is not None:
            sql += " AND status = ?"
            params.append(expected.value)
        async with self._write_lock:
            cursor = await self._db().execute(sql, params)
            await self._db().commit()
        return cursor.rowcount > 0  # type: ignore[union-attr]

    async def claim_notification(self, user_id: str, notification_id: str, now_iso: str, lock_cutoff: str) -> bool:
        """Atomically claim a record for dispatch.

        NEW and FAILED records are claimable; a DISPATCHING record is claimable
        again only once its claim is older than ``lock_cutoff``. SENT is final.
        """
        async with self._write_lock:
            cursor = await self._db().execute(
                """
                UPDATE notifications
                SET status = ?, claimed_at = ?, updated_at = ?
                WHERE user_id = ? AND id = ?
                  AND (
                    status IN (?, ?)
                    OR (status = ? AND (claimed_at IS NULL OR claimed_at < ?))
                  )
                """,
                (
                    NotificationStatus.DISPATCHING.value,
                    now_iso,
                    now_iso,
                    user_id,
                    notification_id,
                    NotificationStatus.NEW.value,
                    NotificationStatus.FAILED.value,
                    NotificationStatus.DISPATCHING.value,
                    lock_cutoff,
                ),
            )
            await self._db().commit()
        return cursor.rowcount > 0  # type: ignore[union-attr]
