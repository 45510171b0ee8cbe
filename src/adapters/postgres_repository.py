"""PostgreSQL repository implementation using psycopg2 with connection pooling.

Schema is owned by the Alembic migrations under alembic/versions.
"""

import json
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from datetime import datetime
from typing import TYPE_CHECKING, Any, Final

from psycopg2 import Error as PsycopgError
from psycopg2 import extensions
from psycopg2 import pool as psycopg2_pool
from psycopg2.extras import Json, RealDictCursor

from src.adapters.query_builders import MessageQueryCriteria, engagement_upsert_sql
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

if TYPE_CHECKING:
    from src.config.settings import Settings

DEFAULT_POOL_MIN_CONNECTIONS: Final[int] = 1
DEFAULT_POOL_MAX_CONNECTIONS: Final[int] = 10

MESSAGE_COLUMNS: Final[str] = (
    "id, telegram_message_id, channel_id, text, date, price, price_numeric, "
    "store, category, title, links, has_photo, photo_file_id, photo_url, created_at"
)

logger = get_logger(__name__)


def _json_dumps(value: Any) -> str:
    return json.dumps(value, default=str)


class PostgresRepository:
    """PostgreSQL repository backed by a connection pool."""

    def __init__(
        self,
        host: str,
        port: int,
        database: str,
        user: str,
        password: str,
        settings: "Settings | None" = None,
    ):
        """Initialize PostgreSQL repository with pooled connections."""
        self._host = host
        self._port = port
        self._database = database
        self._user = user
        self._password = password

        self._statement_timeout_ms = (
            settings.postgres_statement_timeout_ms if settings else 10_000
        )
        self._connect_timeout_seconds = (
            settings.postgres_connect_timeout_seconds if settings else 10
        )
        self._application_name = (
            settings.postgres_application_name if settings else "dealshub"
        )
        self._pool_min_connections = (
            settings.postgres_min_connections
            if settings
            else DEFAULT_POOL_MIN_CONNECTIONS
        )
        self._pool_max_connections = (
            settings.postgres_max_connections
            if settings
            else DEFAULT_POOL_MAX_CONNECTIONS
        )
        self._ssl_mode = settings.postgres_ssl_mode if settings else None

        if self._pool_min_connections <= 0:
            raise RepositoryError("postgres_min_connections must be positive")
        if self._pool_max_connections < self._pool_min_connections:
            raise RepositoryError(
                "postgres_max_connections must be greater than or equal to postgres_min_connections"
            )

        self._pool = self._create_pool()

    def _create_pool(self) -> psycopg2_pool.ThreadedConnectionPool:
        """Create a PostgreSQL connection pool with validation."""
        options = (
            f"-c statement_timeout={self._statement_timeout_ms} "
            f"-c application_name={self._application_name}"
        )
        conn_kwargs: dict[str, Any] = {
            "host": self._host,
            "port": self._port,
            "database": self._database,
            "user": self._user,
            "password": self._password,
            "connect_timeout": self._connect_timeout_seconds,
            "options": options,
        }
        if self._ssl_mode:
            conn_kwargs["sslmode"] = self._ssl_mode

        try:
            pool = psycopg2_pool.ThreadedConnectionPool(
                self._pool_min_connections,
                self._pool_max_connections,
                **conn_kwargs,
            )
        except PsycopgError as exc:
            raise RepositoryError(
                f"Failed to initialize PostgreSQL pool: {exc}"
            ) from exc

        try:
            conn = pool.getconn()
            try:
                with conn.cursor() as cur:
                    cur.execute("SELECT 1")
            finally:
                pool.putconn(conn)
        except PsycopgError as exc:
            pool.closeall()
            raise RepositoryError(f"PostgreSQL validation query failed: {exc}") from exc

        logger.info(
            "postgres_pool_initialized",
            host=self._host,
            port=self._port,
            database=self._database,
            min_connections=self._pool_min_connections,
            max_connections=self._pool_max_connections,
        )
        return pool

    def close(self) -> None:
        """Close all connections in the pool."""
        self._pool.closeall()
        logger.info("postgres_pool_closed", database=self._database)

    @contextmanager
    def _get_connection(self) -> Iterator[extensions.connection]:
        """Borrow a connection from the pool; commit on success, roll back on error."""
        try:
            conn = self._pool.getconn()
        except (psycopg2_pool.PoolError, PsycopgError) as exc:
            raise RepositoryError(
                f"Failed to acquire PostgreSQL connection: {exc}"
            ) from exc

        broken = False
        try:
            conn.autocommit = False
            yield conn
            conn.commit()
        except PsycopgError as exc:
            try:
                conn.rollback()
            except PsycopgError:
                broken = True
                logger.warning(
                    "postgres_connection_rollback_failed",
                    database=self._database,
                    exc_info=True,
                )
            raise RepositoryError(f"PostgreSQL error: {exc}") from exc
        except BaseException:
            conn.rollback()
            raise
        finally:
            self._pool.putconn(conn, close=broken)

    def _fetchall(self, query: str, params: Iterable[Any] = ()) -> list[dict[str, Any]]:
        with self._get_connection() as conn:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute(query, list(params))
                return [dict(row) for row in cur.fetchall()]

    def _fetchone(self, query: str, params: Iterable[Any] = ()) -> dict[str, Any] | None:
        with self._get_connection() as conn:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute(query, list(params))
                row = cur.fetchone()
                return dict(row) if row else None

    # === Messages ===

    def save_message(self, message: DealMessage) -> int | None:
        """Insert a message unless its telegram_message_id already exists.

        Returns:
            Internal ID of the new row, or None for a duplicate delivery
        """
        row = self._fetchone(
            """
            INSERT INTO telegram_messages (
                telegram_message_id, channel_id, text, date, price, price_numeric,
                store, category, title, links, has_photo, photo_file_id,
                photo_url, created_at
            ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            ON CONFLICT (telegram_message_id) DO NOTHING
            RETURNING id
            """,
            (
                message.telegram_message_id,
                message.channel_id,
                message.text,
                message.date,
                message.price,
                message.price_numeric,
                message.store,
                message.category,
                message.title,
                Json(message.links),
                message.has_photo,
                message.photo_file_id,
                message.photo_url,
                message.created_at,
            ),
        )
        return int(row["id"]) if row else None

    def get_message(self, message_id: int) -> DealMessage | None:
        row = self._fetchone(
            f"SELECT {MESSAGE_COLUMNS} FROM telegram_messages WHERE id = %s",
            (message_id,),
        )
        return self._row_to_message(row) if row else None

    def get_message_id(self, telegram_message_id: int) -> int | None:
        row = self._fetchone(
            "SELECT id FROM telegram_messages WHERE telegram_message_id = %s",
            (telegram_message_id,),
        )
        return int(row["id"]) if row else None

    def get_last_telegram_message_id(self, channel_id: str | None = None) -> int | None:
        query = "SELECT MAX(telegram_message_id) AS last_id FROM telegram_messages"
        params: tuple[Any, ...] = ()
        if channel_id:
            query += " WHERE channel_id = %s"
            params = (channel_id,)
        row = self._fetchone(query, params)
        return int(row["last_id"]) if row and row["last_id"] is not None else None

    def query_messages(self, criteria: MessageQueryCriteria) -> list[DealMessage]:
        where_clause, where_params = criteria.to_where_clause()
        limit_clause, limit_params = criteria.to_limit_clause()
        rows = self._fetchall(
            f"""
            SELECT {MESSAGE_COLUMNS} FROM telegram_messages
            WHERE {where_clause}
            ORDER BY {criteria.to_order_clause()}
            {limit_clause}
            """,
            where_params + limit_params,
        )
        return [self._row_to_message(row) for row in rows]

    def count_messages(self, criteria: MessageQueryCriteria) -> int:
        where_clause, where_params = criteria.to_where_clause()
        row = self._fetchone(
            f"SELECT COUNT(*) AS total FROM telegram_messages WHERE {where_clause}",
            where_params,
        )
        return int(row["total"]) if row else 0

    def query_messages_with_engagement(
        self, criteria: MessageQueryCriteria
    ) -> list[MessageWithEngagement]:
        messages = self.query_messages(criteria)
        ids = [msg.id for msg in messages if msg.id is not None]
        if not ids:
            return [MessageWithEngagement(message=msg) for msg in messages]

        engagement_rows = self._fetchall(
            """
            SELECT message_id, view_count, click_count, save_count, share_count,
                   last_viewed, last_clicked, updated_at
            FROM telegram_message_engagement
            WHERE message_id = ANY(%s)
            """,
            (ids,),
        )
        tag_rows = self._fetchall(
            """
            SELECT message_id, tag_name FROM telegram_message_tags
            WHERE message_id = ANY(%s)
            ORDER BY tag_name
            """,
            (ids,),
        )

        engagement_by_id = {
            row["message_id"]: EngagementCounters(**row) for row in engagement_rows
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

    def _row_to_message(self, row: dict[str, Any]) -> DealMessage:
        """Convert database row to DealMessage (links already parsed from JSONB)."""
        return DealMessage(
            id=row["id"],
            telegram_message_id=row["telegram_message_id"],
            channel_id=row["channel_id"],
            text=row.get("text") or "",
            date=row["date"],
            price=row.get("price"),
            price_numeric=row.get("price_numeric"),
            store=row.get("store"),
            category=row.get("category") or "Other",
            title=row.get("title") or "",
            links=row.get("links") or [],
            has_photo=bool(row.get("has_photo")),
            photo_file_id=row.get("photo_file_id"),
            photo_url=row.get("photo_url"),
            created_at=row["created_at"],
        )

    # === Engagement ===

    def increment_engagement(
        self, message_id: int, action: EngagementAction, occurred_at: datetime
    ) -> EngagementUpdate:
        increments = [1 if action is candidate else 0 for candidate in EngagementAction]
        params = [
            message_id,
            *increments,
            occurred_at if action is EngagementAction.VIEW else None,
            occurred_at if action is EngagementAction.CLICK else None,
            occurred_at,
            occurred_at,
        ]
        row = self._fetchone(engagement_upsert_sql(), params)
        if row is None:
            raise RepositoryError("Engagement upsert returned no row")
        counters = EngagementCounters(**row)
        return EngagementUpdate(counters=counters, created=counters.total == 1)

    def get_engagement(self, message_id: int) -> EngagementCounters | None:
        row = self._fetchone(
            """
            SELECT message_id, view_count, click_count, save_count, share_count,
                   last_viewed, last_clicked, updated_at
            FROM telegram_message_engagement WHERE message_id = %s
            """,
            (message_id,),
        )
        return EngagementCounters(**row) if row else None

    # === Tags ===

    def get_tags(self, message_id: int) -> list[MessageTag]:
        rows = self._fetchall(
            """
            SELECT id, message_id, tag_name, created_at
            FROM telegram_message_tags WHERE message_id = %s
            ORDER BY tag_name
            """,
            (message_id,),
        )
        return [MessageTag(**row) for row in rows]

    def add_tags(self, message_id: int, tag_names: Iterable[str]) -> list[MessageTag]:
        created_at = utc_now()
        with self._get_connection() as conn:
            with conn.cursor() as cur:
                cur.executemany(
                    """
                    INSERT INTO telegram_message_tags (message_id, tag_name, created_at)
                    VALUES (%s, %s, %s)
                    ON CONFLICT (message_id, tag_name) DO NOTHING
                    """,
                    [(message_id, name, created_at) for name in tag_names],
                )
        return self.get_tags(message_id)

    def remove_tag(self, message_id: int, tag_name: str) -> bool:
        with self._get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "DELETE FROM telegram_message_tags WHERE message_id = %s AND tag_name = %s",
                    (message_id, tag_name),
                )
                return bool(cur.rowcount > 0)

    def list_tag_names(self) -> list[str]:
        rows = self._fetchall(
            "SELECT DISTINCT tag_name FROM telegram_message_tags ORDER BY tag_name"
        )
        return [row["tag_name"] for row in rows]

    # === Monitoring ===

    def save_health_check(self, record: HealthCheckRecord) -> int:
        row = self._fetchone(
            """
            INSERT INTO telegram_health_checks (
                result, created_at, notification_sent, notification_time
            ) VALUES (%s, %s, %s, %s)
            RETURNING id
            """,
            (
                Json(record.result, dumps=_json_dumps),
                record.created_at,
                record.notification_sent,
                record.notification_time,
            ),
        )
        return int(row["id"]) if row else 0

    def get_recent_health_checks(self, limit: int) -> list[HealthCheckRecord]:
        rows = self._fetchall(
            """
            SELECT id, result, created_at, notification_sent, notification_time
            FROM telegram_health_checks
            ORDER BY created_at DESC, id DESC
            LIMIT %s
            """,
            (limit,),
        )
        return [HealthCheckRecord(**row) for row in rows]

    def mark_health_check_notified(self, record_id: int, notified_at: datetime) -> None:
        with self._get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE telegram_health_checks
                    SET notification_sent = TRUE, notification_time = %s
                    WHERE id = %s
                    """,
                    (notified_at, record_id),
                )

    def save_bot_run(self, record: BotRunRecord) -> int:
        row = self._fetchone(
            """
            INSERT INTO telegram_bot_runs (
                run_timestamp, messages_found, messages_processed, success_rate, error
            ) VALUES (%s, %s, %s, %s, %s)
            RETURNING id
            """,
            (
                record.run_timestamp,
                record.messages_found,
                record.messages_processed,
                record.success_rate,
                record.error,
            ),
        )
        return int(row["id"]) if row else 0

    def get_recent_bot_runs(self, limit: int) -> list[BotRunRecord]:
        rows = self._fetchall(
            """
            SELECT id, run_timestamp, messages_found, messages_processed,
                   success_rate, error
            FROM telegram_bot_runs
            ORDER BY run_timestamp DESC, id DESC
            LIMIT %s
            """,
            (limit,),
        )
        return [BotRunRecord(**row) for row in rows]
