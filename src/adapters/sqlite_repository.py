"""SQLite repository adapter for local storage.

Implements RepositoryProtocol with SQLite backend.
"""

import json
import sqlite3
from collections.abc import Iterable
from dataclasses import replace
from datetime import datetime
from pathlib import Path
from typing import Any, Final

from src.adapters.query_builders import (
    MessageQueryCriteria,
    engagement_upsert_sql,
    to_db_timestamp,
)
from src.config.logging_config import get_logger
from src.domain.exceptions import RepositoryError
from src.domain.models import (
    BotRunRecord,
    DealMessage,
    EngagementAction,
    EngagementCounters,
    EngagementUpdate,
    HealthCheckRecord,
    MessageTag,
    MessageWithEngagement,
    utc_now,
)

logger = get_logger(__name__)

SQLITE_BUSY_TIMEOUT_SECONDS: Final[float] = 30.0
SQLITE_IN_CHUNK_SIZE: Final[int] = 500
"""IDs bound per IN (...) list, under SQLite's host-parameter limit"""

MESSAGE_COLUMNS: Final[str] = (
    "id, telegram_message_id, channel_id, text, date, price, price_numeric, "
    "store, category, title, links, has_photo, photo_file_id, photo_url, created_at"
)


def _ts(value: datetime | None) -> str | None:
    return to_db_timestamp(value) if value is not None else None


def _parse_ts(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


class SQLiteRepository:
    """SQLite-based repository for local development and tests."""

    def __init__(self, db_path: str) -> None:
        """Initialize repository and ensure schema.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = db_path

        # Ensure data directory exists
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)

        self._create_schema()

    def _get_connection(self) -> sqlite3.Connection:
        """Get database connection.

        Returns:
            SQLite connection
        """
        conn = sqlite3.connect(self.db_path, timeout=SQLITE_BUSY_TIMEOUT_SECONDS)
        conn.row_factory = sqlite3.Row
        return conn

    def _create_schema(self) -> None:
        """Create database schema if not exists."""
        logger.info("sqlite_schema_creation_started", db_path=str(self.db_path))
        conn = self._get_connection()
        try:
            cursor = conn.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")

            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS telegram_messages (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    telegram_message_id INTEGER NOT NULL UNIQUE,
                    channel_id TEXT NOT NULL,
                    text TEXT,
                    date TEXT NOT NULL,
                    price TEXT,
                    price_numeric REAL,
                    store TEXT,
                    category TEXT,
                    title TEXT,
                    links TEXT,
                    has_photo INTEGER DEFAULT 0,
                    photo_file_id TEXT,
                    photo_url TEXT,
                    created_at TEXT NOT NULL
                )
            """
            )
            cursor.execute(
                "CREATE INDEX IF NOT EXISTS idx_telegram_messages_created_at "
                "ON telegram_messages(created_at)"
            )
            cursor.execute(
                "CREATE INDEX IF NOT EXISTS idx_telegram_messages_date "
                "ON telegram_messages(date)"
            )

            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS telegram_message_engagement (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    message_id INTEGER NOT NULL UNIQUE
                        REFERENCES telegram_messages(id) ON DELETE CASCADE,
                    view_count INTEGER NOT NULL DEFAULT 0 CHECK (view_count >= 0),
                    click_count INTEGER NOT NULL DEFAULT 0 CHECK (click_count >= 0),
                    save_count INTEGER NOT NULL DEFAULT 0 CHECK (save_count >= 0),
                    share_count INTEGER NOT NULL DEFAULT 0 CHECK (share_count >= 0),
                    last_viewed TEXT,
                    last_clicked TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """
            )

            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS telegram_message_tags (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    message_id INTEGER NOT NULL
                        REFERENCES telegram_messages(id) ON DELETE CASCADE,
                    tag_name TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    UNIQUE (message_id, tag_name)
                )
            """
            )

            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS telegram_health_checks (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    result TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    notification_sent INTEGER DEFAULT 0,
                    notification_time TEXT
                )
            """
            )

            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS telegram_bot_runs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    run_timestamp TEXT NOT NULL,
                    messages_found INTEGER DEFAULT 0,
                    messages_processed INTEGER DEFAULT 0,
                    success_rate REAL DEFAULT 0,
                    error TEXT
                )
            """
            )

            conn.commit()
        except sqlite3.Error as exc:
            raise RepositoryError(f"Failed to create SQLite schema: {exc}") from exc
        finally:
            conn.close()

    def close(self) -> None:
        """Connections are per-call; nothing to release."""

    # === Messages ===

    def save_message(self, message: DealMessage) -> int | None:
        """Insert a message unless its telegram_message_id already exists.

        Args:
            message: Parsed deal message

        Returns:
            Internal ID of the new row, or None for a duplicate delivery

        Raises:
            RepositoryError: On storage errors
        """
        conn = self._get_connection()
        try:
            cursor = conn.execute(
                """
                INSERT INTO telegram_messages (
                    telegram_message_id, channel_id, text, date, price, price_numeric,
                    store, category, title, links, has_photo, photo_file_id,
                    photo_url, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT (telegram_message_id) DO NOTHING
                RETURNING id
                """,
                (
                    message.telegram_message_id,
                    message.channel_id,
                    message.text,
                    _ts(message.date),
                    message.price,
                    message.price_numeric,
                    message.store,
                    message.category,
                    message.title,
                    json.dumps(message.links),
                    1 if message.has_photo else 0,
                    message.photo_file_id,
                    message.photo_url,
                    _ts(message.created_at),
                ),
            )
            row = cursor.fetchone()
            conn.commit()
            return int(row["id"]) if row else None
        except sqlite3.Error as e:
            raise RepositoryError(f"Failed to save message: {e}") from e
        finally:
            conn.close()

    def get_message(self, message_id: int) -> DealMessage | None:
        conn = self._get_connection()
        try:
            row = conn.execute(
                f"SELECT {MESSAGE_COLUMNS} FROM telegram_messages WHERE id = ?",
                (message_id,),
            ).fetchone()
            return self._row_to_message(row) if row else None
        except sqlite3.Error as e:
            raise RepositoryError(f"Failed to get message: {e}") from e
        finally:
            conn.close()

    def get_message_id(self, telegram_message_id: int) -> int | None:
        conn = self._get_connection()
        try:
            row = conn.execute(
                "SELECT id FROM telegram_messages WHERE telegram_message_id = ?",
                (telegram_message_id,),
            ).fetchone()
            return int(row["id"]) if row else None
        except sqlite3.Error as e:
            raise RepositoryError(f"Failed to look up message: {e}") from e
        finally:
            conn.close()

    def get_last_telegram_message_id(self, channel_id: str | None = None) -> int | None:
        query = "SELECT MAX(telegram_message_id) AS last_id FROM telegram_messages"
        params: tuple[Any, ...] = ()
        if channel_id:
            query += " WHERE channel_id = ?"
            params = (channel_id,)

        conn = self._get_connection()
        try:
            row = conn.execute(query, params).fetchone()
            return int(row["last_id"]) if row and row["last_id"] is not None else None
        except sqlite3.Error as e:
            raise RepositoryError(f"Failed to get last message ID: {e}") from e
        finally:
            conn.close()

    def _prepare(self, criteria: MessageQueryCriteria) -> MessageQueryCriteria:
        return replace(criteria, serialize_timestamps=True)

    def query_messages(self, criteria: MessageQueryCriteria) -> list[DealMessage]:
        """Query messages using criteria builder.

        Args:
            criteria: Query criteria

        Returns:
            Matching messages in the requested order
        """
        criteria = self._prepare(criteria)
        where_clause, where_params = criteria.to_where_clause("?")
        limit_clause, limit_params = criteria.to_limit_clause("?")
        query = f"""
            SELECT {MESSAGE_COLUMNS} FROM telegram_messages
            WHERE {where_clause}
            ORDER BY {criteria.to_order_clause()}
            {limit_clause}
        """

        conn = self._get_connection()
        try:
            rows = conn.execute(query, where_params + limit_params).fetchall()
            return [self._row_to_message(row) for row in rows]
        except sqlite3.Error as e:
            raise RepositoryError(f"Failed to query messages: {e}") from e
        finally:
            conn.close()

    def count_messages(self, criteria: MessageQueryCriteria) -> int:
        criteria = self._prepare(criteria)
        where_clause, where_params = criteria.to_where_clause("?")

        conn = self._get_connection()
        try:
            row = conn.execute(
                f"SELECT COUNT(*) AS total FROM telegram_messages WHERE {where_clause}",
                where_params,
            ).fetchone()
            return int(row["total"])
        except sqlite3.Error as e:
            raise RepositoryError(f"Failed to count messages: {e}") from e
        finally:
            conn.close()

    def query_messages_with_engagement(
        self, criteria: MessageQueryCriteria
    ) -> list[MessageWithEngagement]:
        """Query messages joined with their counters row and tag set."""
        messages = self.query_messages(criteria)
        ids = [msg.id for msg in messages if msg.id is not None]
        if not ids:
            return [MessageWithEngagement(message=msg) for msg in messages]

        engagement_rows: list[sqlite3.Row] = []
        tag_rows: list[sqlite3.Row] = []
        conn = self._get_connection()
        try:
            for start in range(0, len(ids), SQLITE_IN_CHUNK_SIZE):
                chunk = ids[start : start + SQLITE_IN_CHUNK_SIZE]
                placeholders = ",".join("?" * len(chunk))
                engagement_rows += conn.execute(
                    f"""
                    SELECT message_id, view_count, click_count, save_count,
                           share_count, last_viewed, last_clicked, updated_at
                    FROM telegram_message_engagement
                    WHERE message_id IN ({placeholders})
                    """,
                    chunk,
                ).fetchall()
                tag_rows += conn.execute(
                    f"""
                    SELECT message_id, tag_name FROM telegram_message_tags
                    WHERE message_id IN ({placeholders})
                    ORDER BY tag_name
                    """,
                    chunk,
                ).fetchall()
        except sqlite3.Error as e:
            raise RepositoryError(f"Failed to load engagement: {e}") from e
        finally:
            conn.close()

        engagement_by_id = {
            row["message_id"]: self._row_to_counters(row) for row in engagement_rows
        }
        tags_by_id: dict[int, list[str]] = {}
        for row in tag_rows:
            tags_by_id.setdefault(row["message_id"], []).append(row["tag_name"])

        return [
            MessageWithEngagement(
                message=msg,
                engagement=engagement_by_id.get(msg.id),
                tags=tags_by_id.get(msg.id, []),
            )
            for msg in messages
        ]

    def _row_to_message(self, row: sqlite3.Row) -> DealMessage:
        return DealMessage(
            id=row["id"],
            telegram_message_id=row["telegram_message_id"],
            channel_id=row["channel_id"],
            text=row["text"] or "",
            date=datetime.fromisoformat(row["date"]),
            price=row["price"],
            price_numeric=row["price_numeric"],
            store=row["store"],
            category=row["category"] or "Other",
            title=row["title"] or "",
            links=json.loads(row["links"]) if row["links"] else [],
            has_photo=bool(row["has_photo"]),
            photo_file_id=row["photo_file_id"],
            photo_url=row["photo_url"],
            created_at=datetime.fromisoformat(row["created_at"]),
        )

    # === Engagement ===

    def increment_engagement(
        self, message_id: int, action: EngagementAction, occurred_at: datetime
    ) -> EngagementUpdate:
        """Atomically create-or-increment the counter for one action.

        Raises:
            RepositoryError: On storage errors
        """
        increments = [1 if action is candidate else 0 for candidate in EngagementAction]
        stamp = _ts(occurred_at)
        params = [
            message_id,
            *increments,
            stamp if action is EngagementAction.VIEW else None,
            stamp if action is EngagementAction.CLICK else None,
            stamp,
            stamp,
        ]

        conn = self._get_connection()
        try:
            row = conn.execute(engagement_upsert_sql("?"), params).fetchone()
            conn.commit()
        except sqlite3.Error as e:
            raise RepositoryError(f"Failed to increment engagement: {e}") from e
        finally:
            conn.close()

        counters = self._row_to_counters(row)
        return EngagementUpdate(counters=counters, created=counters.total == 1)

    def get_engagement(self, message_id: int) -> EngagementCounters | None:
        conn = self._get_connection()
        try:
            row = conn.execute(
                """
                SELECT message_id, view_count, click_count, save_count, share_count,
                       last_viewed, last_clicked, updated_at
                FROM telegram_message_engagement WHERE message_id = ?
                """,
                (message_id,),
            ).fetchone()
            return self._row_to_counters(row) if row else None
        except sqlite3.Error as e:
            raise RepositoryError(f"Failed to get engagement: {e}") from e
        finally:
            conn.close()

    def _row_to_counters(self, row: sqlite3.Row) -> EngagementCounters:
        return EngagementCounters(
            message_id=row["message_id"],
            view_count=row["view_count"],
            click_count=row["click_count"],
            save_count=row["save_count"],
            share_count=row["share_count"],
            last_viewed=_parse_ts(row["last_viewed"]),
            last_clicked=_parse_ts(row["last_clicked"]),
            updated_at=_parse_ts(row["updated_at"]),
        )

    # === Tags ===

    def get_tags(self, message_id: int) -> list[MessageTag]:
        conn = self._get_connection()
        try:
            rows = conn.execute(
                """
                SELECT id, message_id, tag_name, created_at
                FROM telegram_message_tags WHERE message_id = ?
                ORDER BY tag_name
                """,
                (message_id,),
            ).fetchall()
            return [
                MessageTag(
                    id=row["id"],
                    message_id=row["message_id"],
                    tag_name=row["tag_name"],
                    created_at=datetime.fromisoformat(row["created_at"]),
                )
                for row in rows
            ]
        except sqlite3.Error as e:
            raise RepositoryError(f"Failed to get tags: {e}") from e
        finally:
            conn.close()

    def add_tags(self, message_id: int, tag_names: Iterable[str]) -> list[MessageTag]:
        """Insert tags that are not attached yet; return the full tag set."""
        created_at = _ts(utc_now())
        conn = self._get_connection()
        try:
            conn.executemany(
                """
                INSERT INTO telegram_message_tags (message_id, tag_name, created_at)
                VALUES (?, ?, ?)
                ON CONFLICT (message_id, tag_name) DO NOTHING
                """,
                [(message_id, name, created_at) for name in tag_names],
            )
            conn.commit()
        except sqlite3.Error as e:
            raise RepositoryError(f"Failed to add tags: {e}") from e
        finally:
            conn.close()
        return self.get_tags(message_id)

    def remove_tag(self, message_id: int, tag_name: str) -> bool:
        conn = self._get_connection()
        try:
            cursor = conn.execute(
                "DELETE FROM telegram_message_tags WHERE message_id = ? AND tag_name = ?",
                (message_id, tag_name),
            )
            conn.commit()
            return cursor.rowcount > 0
        except sqlite3.Error as e:
            raise RepositoryError(f"Failed to remove tag: {e}") from e
        finally:
            conn.close()

    def list_tag_names(self) -> list[str]:
        conn = self._get_connection()
        try:
            rows = conn.execute(
                "SELECT DISTINCT tag_name FROM telegram_message_tags ORDER BY tag_name"
            ).fetchall()
            return [row["tag_name"] for row in rows]
        except sqlite3.Error as e:
            raise RepositoryError(f"Failed to list tags: {e}") from e
        finally:
            conn.close()

    # === Monitoring ===

    def save_health_check(self, record: HealthCheckRecord) -> int:
        conn = self._get_connection()
        try:
            cursor = conn.execute(
                """
                INSERT INTO telegram_health_checks (
                    result, created_at, notification_sent, notification_time
                ) VALUES (?, ?, ?, ?)
                """,
                (
                    json.dumps(record.result, default=str),
                    _ts(record.created_at),
                    1 if record.notification_sent else 0,
                    _ts(record.notification_time),
                ),
            )
            conn.commit()
            return int(cursor.lastrowid or 0)
        except sqlite3.Error as e:
            raise RepositoryError(f"Failed to save health check: {e}") from e
        finally:
            conn.close()

    def get_recent_health_checks(self, limit: int) -> list[HealthCheckRecord]:
        conn = self._get_connection()
        try:
            rows = conn.execute(
                """
                SELECT id, result, created_at, notification_sent, notification_time
                FROM telegram_health_checks
                ORDER BY created_at DESC, id DESC
                LIMIT ?
                """,
                (limit,),
            ).fetchall()
        except sqlite3.Error as e:
            raise RepositoryError(f"Failed to get health checks: {e}") from e
        finally:
            conn.close()

        return [
            HealthCheckRecord(
                id=row["id"],
                result=json.loads(row["result"]),
                created_at=datetime.fromisoformat(row["created_at"]),
                notification_sent=bool(row["notification_sent"]),
                notification_time=_parse_ts(row["notification_time"]),
            )
            for row in rows
        ]

    def mark_health_check_notified(self, record_id: int, notified_at: datetime) -> None:
        conn = self._get_connection()
        try:
            conn.execute(
                """
                UPDATE telegram_health_checks
                SET notification_sent = 1, notification_time = ?
                WHERE id = ?
                """,
                (_ts(notified_at), record_id),
            )
            conn.commit()
        except sqlite3.Error as e:
            raise RepositoryError(f"Failed to update health check: {e}") from e
        finally:
            conn.close()

    def save_bot_run(self, record: BotRunRecord) -> int:
        conn = self._get_connection()
        try:
            cursor = conn.execute(
                """
                INSERT INTO telegram_bot_runs (
                    run_timestamp, messages_found, messages_processed,
                    success_rate, error
                ) VALUES (?, ?, ?, ?, ?)
                """,
                (
                    _ts(record.run_timestamp),
                    record.messages_found,
                    record.messages_processed,
                    record.success_rate,
                    record.error,
                ),
            )
            conn.commit()
            return int(cursor.lastrowid or 0)
        except sqlite3.Error as e:
            raise RepositoryError(f"Failed to save bot run: {e}") from e
        finally:
            conn.close()

    def get_recent_bot_runs(self, limit: int) -> list[BotRunRecord]:
        conn = self._get_connection()
        try:
            rows = conn.execute(
                """
                SELECT id, run_timestamp, messages_found, messages_processed,
                       success_rate, error
                FROM telegram_bot_runs
                ORDER BY run_timestamp DESC, id DESC
                LIMIT ?
                """,
                (limit,),
            ).fetchall()
        except sqlite3.Error as e:
            raise RepositoryError(f"Failed to get bot runs: {e}") from e
        finally:
            conn.close()

        return [
            BotRunRecord(
                id=row["id"],
                run_timestamp=datetime.fromisoformat(row["run_timestamp"]),
                messages_found=row["messages_found"],
                messages_processed=row["messages_processed"],
                success_rate=row["success_rate"],
                error=row["error"],
            )
            for row in rows
        ]
