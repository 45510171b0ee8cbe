"""Flat analytics export (JSON rows or CSV)."""

from collections.abc import Mapping
from datetime import datetime
from typing import Any

import pandas as pd

from src.adapters.query_builders import MessageQueryCriteria
from src.config.logging_config import get_logger
from src.domain.analytics_constants import (
    DEFAULT_TIMEFRAME,
    EXPORT_FORMATS,
    EXPORT_PLACEHOLDER,
    UNCATEGORIZED,
)
from src.domain.exceptions import ValidationError
from src.domain.models import MessageWithEngagement, utc_now
from src.domain.protocols import RepositoryProtocol
from src.use_cases.analytics import (
    click_through_rate,
    compute_window,
    validate_timeframe,
)

logger = get_logger(__name__)

EXPORT_COLUMNS: tuple[str, ...] = (
    "id",
    "title",
    "price",
    "store",
    "category",
    "tags",
    "url",
    "created_at",
    "views",
    "clicks",
    "saves",
    "shares",
    "total_engagements",
    "ctr",
    "last_viewed",
    "last_clicked",
)


def export_row(item: MessageWithEngagement) -> dict[str, Any]:
    """One flat export row; missing values become "N/A"."""
    message = item.message
    counters = item.engagement
    views = counters.view_count if counters else 0
    clicks = counters.click_count if counters else 0
    saves = counters.save_count if counters else 0
    shares = counters.share_count if counters else 0
    last_viewed = counters.last_viewed if counters else None
    last_clicked = counters.last_clicked if counters else None

    return {
        "id": message.id,
        "title": message.title,
        "price": message.price or EXPORT_PLACEHOLDER,
        "store": message.store or EXPORT_PLACEHOLDER,
        "category": message.category or UNCATEGORIZED,
        "tags": ", ".join(item.tags),
        "url": message.links[0] if message.links else EXPORT_PLACEHOLDER,
        "created_at": message.created_at.isoformat(),
        "views": views,
        "clicks": clicks,
        "saves": saves,
        "shares": shares,
        "total_engagements": views + clicks + saves + shares,
        "ctr": f"{click_through_rate(clicks, views):.2f}%",
        "last_viewed": last_viewed.isoformat() if last_viewed else EXPORT_PLACEHOLDER,
        "last_clicked": (
            last_clicked.isoformat() if last_clicked else EXPORT_PLACEHOLDER
        ),
    }


def rows_to_csv(rows: list[dict[str, Any]]) -> str:
    """Render export rows as CSV with a fixed column order."""
    frame = pd.DataFrame(rows, columns=list(EXPORT_COLUMNS))
    return str(frame.to_csv(index=False))


def export_analytics_use_case(
    raw_params: Mapping[str, Any],
    repository: RepositoryProtocol,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Build export rows for the requested window.

    Returns:
        Dict with format, rows, row_count, exported_at, and for CSV the
        rendered document under "csv"

    Raises:
        ValidationError: On an invalid timeframe, dates, or format
    """
    timeframe = raw_params.get("timeframe") or DEFAULT_TIMEFRAME
    start_date = raw_params.get("startDate") or None
    end_date = raw_params.get("endDate") or None
    export_format = raw_params.get("format") or "json"

    errors = validate_timeframe(timeframe, start_date, end_date)
    if export_format not in EXPORT_FORMATS:
        errors.append("Invalid format. Must be one of: " + ", ".join(EXPORT_FORMATS))
    if errors:
        raise ValidationError(errors)

    start, end = compute_window(timeframe, start_date, end_date, now)
    items = repository.query_messages_with_engagement(
        MessageQueryCriteria(created_after=start, created_before=end)
    )
    rows = [export_row(item) for item in items]
    logger.info(
        "analytics_exported", timeframe=timeframe, format=export_format, rows=len(rows)
    )

    result: dict[str, Any] = {
        "success": True,
        "format": export_format,
        "row_count": len(rows),
        "exported_at": utc_now().isoformat(),
        "params": {
            "timeframe": timeframe,
            "start_date": start_date,
            "end_date": end_date,
        },
        "data": rows,
    }
    if export_format == "csv":
        result["csv"] = rows_to_csv(rows)
    return result
