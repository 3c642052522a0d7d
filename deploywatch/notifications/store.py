"""Notification storage: append-only inserts plus read/dismiss flags."""

from __future__ import annotations

import logging
import sqlite3

from deploywatch.db import Database
from deploywatch.notifications.models import Notification

logger = logging.getLogger(__name__)


class NotificationStore:
    """SQLite-backed notification table."""

    def __init__(self, db: Database) -> None:
        self._db = db

    def insert(self, notification: Notification, conn: sqlite3.Connection | None = None) -> Notification:
        d = notification.to_dict()
        d["read"] = int(d["read"])
        d["dismissed"] = int(d["dismissed"])
        with self._db.use(conn) as c:
            c.execute("""
                INSERT INTO notifications (id, type, title, message, severity,
                                           related_entity_type, related_entity_id,
                                           read, dismissed, created_at)
                VALUES (:id, :type, :title, :message, :severity,
                        :related_entity_type, :related_entity_id,
                        :read, :dismissed, :created_at)
            """, d)
        return notification

    def get(self, notification_id: str) -> Notification | None:
        with self._db.reader() as conn:
            row = conn.execute(
                "SELECT * FROM notifications WHERE id = ?", (notification_id,)
            ).fetchone()
        return Notification.from_row(dict(row)) if row else None

    def list_recent(self, limit: int = 50, include_dismissed: bool = False) -> list[Notification]:
        with self._db.reader() as conn:
            if include_dismissed:
                rows = conn.execute(
                    "SELECT * FROM notifications ORDER BY created_at DESC LIMIT ?", (limit,)
                ).fetchall()
            else:
                rows = conn.execute(
                    "SELECT * FROM notifications WHERE dismissed = 0 "
                    "ORDER BY created_at DESC LIMIT ?",
                    (limit,),
                ).fetchall()
        return [Notification.from_row(dict(r)) for r in rows]

    def list_for_entity(self, entity_id: str) -> list[Notification]:
        with self._db.reader() as conn:
            rows = conn.execute(
                "SELECT * FROM notifications WHERE related_entity_id = ? "
                "ORDER BY created_at DESC",
                (entity_id,),
            ).fetchall()
        return [Notification.from_row(dict(r)) for r in rows]

    def unread_count(self) -> int:
        with self._db.reader() as conn:
            row = conn.execute(
                "SELECT COUNT(*) AS n FROM notifications WHERE read = 0 AND dismissed = 0"
            ).fetchone()
        return row["n"]

    def mark_read(self, notification_id: str) -> bool:
        with self._db.transaction() as conn:
            cursor = conn.execute(
                "UPDATE notifications SET read = 1 WHERE id = ?", (notification_id,)
            )
        return cursor.rowcount > 0

    def dismiss(self, notification_id: str) -> bool:
        with self._db.transaction() as conn:
            cursor = conn.execute(
                "UPDATE notifications SET dismissed = 1 WHERE id = ?", (notification_id,)
            )
        return cursor.rowcount > 0
