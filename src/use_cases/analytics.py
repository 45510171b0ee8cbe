"""Engagement analytics over deal messages.

Validates query parameters, resolves the time window, loads messages with
their counters and tags, and folds the rows in memory into totals, top
performer lists, per-store and per-category rollups, and a daily series.
"""

import re
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

from dateutil.relativedelta import relativedelta

from src.adapters.query_builders import MessageQueryCriteria
from src.config.logging_config import get_logger
from src.domain.analytics_constants import (
    CTR_MIN_VIEWS,
    DATE_FORMAT_PATTERN,
    DEFAULT_ANALYTICS_LIMIT,
    DEFAULT_TIMEFRAME,
    MAX_ANALYTICS_LIMIT,
    MIN_ANALYTICS_LIMIT,
    TIMEFRAMES,
    TOP_PERFORMERS_COUNT,
    UNCATEGORIZED,
    UNKNOWN_STORE,
)
from src.domain.exceptions import ValidationError
from src.domain.models import MessageWithEngagement, utc_now
from src.domain.protocols import RepositoryProtocol

logger = get_logger(__name__)

DATE_FORMAT_RE = re.compile(DATE_FORMAT_PATTERN)
FILTER_PARAMS = ("storeFilter", "categoryFilter", "tagFilter")


@dataclass(frozen=True)
class AnalyticsParams:
    """Validated analytics query parameters."""

    timeframe: str = DEFAULT_TIMEFRAME
    start_date: str | None = None
    end_date: str | None = None
    limit: int | None = DEFAULT_ANALYTICS_LIMIT
    store_filter: str | None = None
    category_filter: str | None = None
    tag_filter: str | None = None


def _parse_day(value: str) -> datetime | None:
    try:
        return datetime.strptime(value, "%Y-%m-%d").replace(tzinfo=UTC)
    except ValueError:
        return None


def _parse_limit(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    try:
        limit = int(value)
    except (TypeError, ValueError):
        return None
    if isinstance(value, float) and value != limit:
        return None
    return limit


def validate_timeframe(
    timeframe: Any, start_date: Any, end_date: Any
) -> list[str]:
    """Validation errors for a timeframe and its custom date bounds."""
    errors: list[str] = []
    if timeframe and timeframe not in TIMEFRAMES:
        errors.append(
            "Invalid timeframe. Must be one of: " + ", ".join(TIMEFRAMES)
        )

    if timeframe == "custom":
        if not start_date or not end_date:
            errors.append(
                "Custom timeframe requires both startDate and endDate parameters."
            )
        elif not (
            isinstance(start_date, str)
            and isinstance(end_date, str)
            and DATE_FORMAT_RE.match(start_date)
            and DATE_FORMAT_RE.match(end_date)
        ):
            errors.append("Dates must be in YYYY-MM-DD format.")
        else:
            start = _parse_day(start_date)
            end = _parse_day(end_date)
            if start is None or end is None:
                errors.append("Invalid date format")
            elif start > end:
                errors.append("startDate must be before endDate")
    return errors


def validate_analytics_params(raw: Mapping[str, Any]) -> list[str]:
    """Collect every validation error for raw analytics parameters.

    Keys use the public names: timeframe, startDate, endDate, limit,
    storeFilter, categoryFilter, tagFilter.
    """
    errors = validate_timeframe(
        raw.get("timeframe"), raw.get("startDate"), raw.get("endDate")
    )

    raw_limit = raw.get("limit")
    if raw_limit not in (None, ""):
        limit = _parse_limit(raw_limit)
        if limit is None or not MIN_ANALYTICS_LIMIT <= limit <= MAX_ANALYTICS_LIMIT:
            errors.append(
                f"Invalid limit. Must be a number between {MIN_ANALYTICS_LIMIT} "
                f"and {MAX_ANALYTICS_LIMIT}"
            )

    for name in FILTER_PARAMS:
        value = raw.get(name)
        if value not in (None, "") and not isinstance(value, str):
            errors.append(f"{name} must be a string")

    return errors


def parse_analytics_params(raw: Mapping[str, Any]) -> AnalyticsParams:
    """Validate and convert raw parameters.

    Raises:
        ValidationError: With the full list of errors
    """
    errors = validate_analytics_params(raw)
    if errors:
        raise ValidationError(errors)

    raw_limit = raw.get("limit")
    return AnalyticsParams(
        timeframe=raw.get("timeframe") or DEFAULT_TIMEFRAME,
        start_date=raw.get("startDate") or None,
        end_date=raw.get("endDate") or None,
        limit=(
            DEFAULT_ANALYTICS_LIMIT
            if raw_limit in (None, "")
            else _parse_limit(raw_limit)
        ),
        store_filter=raw.get("storeFilter") or None,
        category_filter=raw.get("categoryFilter") or None,
        tag_filter=raw.get("tagFilter") or None,
    )


def compute_window(
    timeframe: str,
    start_date: str | None = None,
    end_date: str | None = None,
    now: datetime | None = None,
) -> tuple[datetime | None, datetime | None]:
    """Resolve a timeframe into inclusive (start, end) bounds on created_at.

    Month and year are calendar offsets; custom spans startT00:00:00Z to
    endT23:59:59Z. "all" (or anything unrecognized) is unbounded.
    """
    now = now or utc_now()
    if timeframe == "day":
        return now - timedelta(days=1), None
    if timeframe == "week":
        return now - timedelta(days=7), None
    if timeframe == "month":
        return now - relativedelta(months=1), None
    if timeframe == "year":
        return now - relativedelta(years=1), None
    if timeframe == "custom" and start_date and end_date:
        start = datetime.strptime(start_date, "%Y-%m-%d").replace(tzinfo=UTC)
        end = datetime.strptime(end_date, "%Y-%m-%d").replace(
            hour=23, minute=59, second=59, tzinfo=UTC
        )
        return start, end
    return None, None


def click_through_rate(clicks: int, views: int) -> float:
    """Clicks per view as a percentage with 2 decimals; 0 without views."""
    if views <= 0:
        return 0.0
    return round(clicks / views * 100, 2)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def format_message(item: MessageWithEngagement) -> dict[str, Any]:
    """Per-message analytics row with engagement totals and CTR."""
    message = item.message
    counters = item.engagement
    views = counters.view_count if counters else 0
    clicks = counters.click_count if counters else 0
    saves = counters.save_count if counters else 0
    shares = counters.share_count if counters else 0

    return {
        "id": message.id,
        "telegram_message_id": message.telegram_message_id,
        "title": message.title,
        "price": message.price,
        "store": message.store,
        "category": message.category or UNCATEGORIZED,
        "url": message.links[0] if message.links else None,
        "created_at": message.created_at.isoformat(),
        "tags": list(item.tags),
        "engagement": {
            "views": views,
            "clicks": clicks,
            "saves": saves,
            "shares": shares,
            "total": views + clicks + saves + shares,
            "ctr": click_through_rate(clicks, views),
            "last_viewed": _iso(counters.last_viewed) if counters else None,
            "last_clicked": _iso(counters.last_clicked) if counters else None,
            "last_updated": _iso(counters.updated_at) if counters else None,
        },
    }


def filter_by_tag(rows: list[dict[str, Any]], tag: str | None) -> list[dict[str, Any]]:
    """Keep rows carrying the tag (case-insensitive exact match)."""
    if not tag:
        return rows
    wanted = tag.lower()
    return [row for row in rows if any(t.lower() == wanted for t in row["tags"])]


def _top(rows: list[dict[str, Any]], metric: str) -> list[dict[str, Any]]:
    # sorted() is stable, so ties keep query order
    return sorted(rows, key=lambda row: row["engagement"][metric], reverse=True)[
        :TOP_PERFORMERS_COUNT
    ]


def top_performers(rows: list[dict[str, Any]]) -> dict[str, list[dict[str, Any]]]:
    ctr_eligible = [row for row in rows if row["engagement"]["views"] >= CTR_MIN_VIEWS]
    return {
        "most_viewed": _top(rows, "views"),
        "most_clicked": _top(rows, "clicks"),
        "most_saved": _top(rows, "saves"),
        "highest_ctr": _top(ctr_eligible, "ctr"),
    }


def group_performance(
    rows: list[dict[str, Any]], key: str, default: str
) -> dict[str, dict[str, Any]]:
    """Roll rows up by a field (store or category)."""
    groups: dict[str, dict[str, Any]] = {}
    for row in rows:
        name = row.get(key) or default
        group = groups.setdefault(
            name,
            {
                "total_messages": 0,
                "total_views": 0,
                "total_clicks": 0,
                "total_saves": 0,
                "total_shares": 0,
                "ctr": 0.0,
                "messages": [],
            },
        )
        engagement = row["engagement"]
        group["total_messages"] += 1
        group["total_views"] += engagement["views"]
        group["total_clicks"] += engagement["clicks"]
        group["total_saves"] += engagement["saves"]
        group["total_shares"] += engagement["shares"]
        group["messages"].append(row)

    for group in groups.values():
        group["ctr"] = click_through_rate(group["total_clicks"], group["total_views"])
    return groups


def daily_series(rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Per-day sums keyed on the UTC calendar date of created_at, ascending."""
    days: dict[str, dict[str, Any]] = {}
    for row in rows:
        created = datetime.fromisoformat(row["created_at"]).astimezone(UTC)
        day = created.date().isoformat()
        bucket = days.setdefault(
            day,
            {
                "date": day,
                "views": 0,
                "clicks": 0,
                "saves": 0,
                "shares": 0,
                "message_count": 0,
            },
        )
        engagement = row["engagement"]
        bucket["views"] += engagement["views"]
        bucket["clicks"] += engagement["clicks"]
        bucket["saves"] += engagement["saves"]
        bucket["shares"] += engagement["shares"]
        bucket["message_count"] += 1
    return [days[day] for day in sorted(days)]


def filter_options(rows: list[dict[str, Any]]) -> dict[str, list[str]]:
    """Distinct stores, categories and tags present in the rows."""
    stores = dict.fromkeys(row["store"] for row in rows if row["store"])
    categories = dict.fromkeys(row["category"] for row in rows if row["category"])
    tags = dict.fromkeys(tag for row in rows for tag in row["tags"])
    return {
        "stores": list(stores),
        "categories": list(categories),
        "tags": list(tags),
    }


def build_analytics(
    rows: list[dict[str, Any]], params: AnalyticsParams
) -> dict[str, Any]:
    """Fold formatted rows into the analytics payload."""
    total_views = sum(row["engagement"]["views"] for row in rows)
    total_clicks = sum(row["engagement"]["clicks"] for row in rows)

    return {
        "success": True,
        "summary": {
            "total_messages": len(rows),
            "total_views": total_views,
            "total_clicks": total_clicks,
            "total_saves": sum(row["engagement"]["saves"] for row in rows),
            "total_shares": sum(row["engagement"]["shares"] for row in rows),
            "overall_ctr": click_through_rate(total_clicks, total_views),
            "timeframe": params.timeframe,
            "start_date": params.start_date,
            "end_date": params.end_date,
        },
        "top_performers": top_performers(rows),
        "segmentation": {
            "store_performance": group_performance(rows, "store", UNKNOWN_STORE),
            "category_performance": group_performance(
                rows, "category", UNCATEGORIZED
            ),
            "time_series_data": daily_series(rows),
        },
        "filter_options": filter_options(rows),
        "messages": rows,
    }


def load_analytics_rows(
    repository: RepositoryProtocol,
    params: AnalyticsParams,
    now: datetime | None = None,
) -> list[dict[str, Any]]:
    """Query messages for the window and filters, newest first, tag-filtered."""
    start, end = compute_window(params.timeframe, params.start_date, params.end_date, now)
    criteria = MessageQueryCriteria(
        created_after=start,
        created_before=end,
        store=params.store_filter,
        category=params.category_filter,
        limit=params.limit,
        order_by="created_at",
        order_desc=True,
    )
    items = repository.query_messages_with_engagement(criteria)
    return filter_by_tag([format_message(item) for item in items], params.tag_filter)


def analytics_use_case(
    raw_params: Mapping[str, Any],
    repository: RepositoryProtocol,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Validate parameters and compute the analytics payload.

    Raises:
        ValidationError: With every parameter error, before any query runs
        RepositoryError: On storage errors
    """
    params = parse_analytics_params(raw_params)
    rows = load_analytics_rows(repository, params, now)
    logger.info(
        "analytics_computed",
        timeframe=params.timeframe,
        limit=params.limit,
        rows=len(rows),
        store_filter=params.store_filter,
        category_filter=params.category_filter,
        tag_filter=params.tag_filter,
    )
    return build_analytics(rows, params)
