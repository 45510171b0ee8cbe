"""Query builders for constructing type-safe database queries.

Instead of building SQL WHERE clauses with string literals, use these
builders to create queries in a type-safe, testable way.
"""

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Final

from src.domain.deal_constants import PriceRange

MESSAGE_ORDER_COLUMNS: Final[frozenset[str]] = frozenset({"created_at", "date", "id"})


def to_db_timestamp(value: datetime) -> str:
    """Serialize a datetime as a fixed-width UTC ISO string.

    A fixed format keeps lexicographic order equal to time order in SQLite.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat(timespec="microseconds")


@dataclass
class MessageQueryCriteria:
    """Criteria for querying deal messages from the database.

    Example:
        >>> criteria = MessageQueryCriteria(
        ...     created_after=datetime(2025, 10, 1, tzinfo=UTC),
        ...     store="Amazon",
        ...     limit=20,
        ... )
        >>> where, params = criteria.to_where_clause()
        >>> # Use in SQL: SELECT * FROM telegram_messages WHERE {where}
    """

    created_after: datetime | None = None
    """Filter messages ingested at or after this timestamp"""

    created_before: datetime | None = None
    """Filter messages ingested at or before this timestamp"""

    date_after: datetime | None = None
    """Filter messages posted strictly after this timestamp"""

    store: str | None = None
    """Exact store name"""

    category: str | None = None
    """Exact category name"""

    price_range: PriceRange | None = None
    """Bounds applied to price_numeric"""

    channel_id: str | None = None

    limit: int | None = None
    offset: int = 0

    order_by: str = "created_at"
    order_desc: bool = True

    serialize_timestamps: bool = False
    """Bind timestamps as ISO strings (SQLite stores TEXT timestamps)"""

    def _ts(self, value: datetime) -> Any:
        return to_db_timestamp(value) if self.serialize_timestamps else value

    def to_where_clause(self, placeholder: str = "%s") -> tuple[str, list[Any]]:
        """Build SQL WHERE clause with parameters.

        Args:
            placeholder: Parameter marker for the target dialect ("%s" or "?")

        Returns:
            Tuple of (where_clause, parameters)
        """
        conditions: list[str] = []
        params: list[Any] = []

        if self.created_after is not None:
            conditions.append(f"created_at >= {placeholder}")
            params.append(self._ts(self.created_after))

        if self.created_before is not None:
            conditions.append(f"created_at <= {placeholder}")
            params.append(self._ts(self.created_before))

        if self.date_after is not None:
            conditions.append(f"date > {placeholder}")
            params.append(self._ts(self.date_after))

        if self.store:
            conditions.append(f"store = {placeholder}")
            params.append(self.store)

        if self.category:
            conditions.append(f"category = {placeholder}")
            params.append(self.category)

        if self.channel_id:
            conditions.append(f"channel_id = {placeholder}")
            params.append(self.channel_id)

        if self.price_range is not None:
            low, high, low_inclusive, high_inclusive = self.price_range
            if low is not None:
                op = ">=" if low_inclusive else ">"
                conditions.append(f"price_numeric {op} {placeholder}")
                params.append(low)
            if high is not None:
                op = "<=" if high_inclusive else "<"
                conditions.append(f"price_numeric {op} {placeholder}")
                params.append(high)

        where = " AND ".join(conditions) if conditions else "1=1"
        return where, params

    def to_order_clause(self) -> str:
        """Build SQL ORDER BY clause.

        Raises:
            ValueError: If order_by is not an allowed column
        """
        if self.order_by not in MESSAGE_ORDER_COLUMNS:
            raise ValueError(f"Unsupported order column: {self.order_by}")
        direction = "DESC" if self.order_desc else "ASC"
        return f"{self.order_by} {direction}, id {direction}"

    def to_limit_clause(self, placeholder: str = "%s") -> tuple[str, list[Any]]:
        """Build SQL LIMIT/OFFSET clause.

        Returns:
            Tuple of (limit_clause, parameters)
        """
        if self.limit is None:
            return "", []
        return f"LIMIT {placeholder} OFFSET {placeholder}", [self.limit, self.offset]


ENGAGEMENT_COLUMNS: Final[tuple[str, ...]] = (
    "message_id",
    "view_count",
    "click_count",
    "save_count",
    "share_count",
    "last_viewed",
    "last_clicked",
    "updated_at",
)


def engagement_upsert_sql(placeholder: str = "%s") -> str:
    """Single-statement create-or-increment for the engagement counters row.

    The inserted row carries 1 for the triggering counter and 0 for the others,
    so the conflict branch can add the excluded values to every counter without
    branching on the action. Timestamps only overwrite when provided.
    """
    table = "telegram_message_engagement"
    values = ", ".join([placeholder] * 9)
    returning = ", ".join(ENGAGEMENT_COLUMNS)
    return f"""
        INSERT INTO {table} (
            message_id, view_count, click_count, save_count, share_count,
            last_viewed, last_clicked, created_at, updated_at
        ) VALUES ({values})
        ON CONFLICT (message_id) DO UPDATE SET
            view_count = {table}.view_count + excluded.view_count,
            click_count = {table}.click_count + excluded.click_count,
            save_count = {table}.save_count + excluded.save_count,
            share_count = {table}.share_count + excluded.share_count,
            last_viewed = COALESCE(excluded.last_viewed, {table}.last_viewed),
            last_clicked = COALESCE(excluded.last_clicked, {table}.last_clicked),
            updated_at = excluded.updated_at
        RETURNING {returning}
    """
