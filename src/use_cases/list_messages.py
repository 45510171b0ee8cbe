"""Paginated deal listing for the site frontend.

Unfiltered first-page requests are served from a short TTL cache that the
ingestion path invalidates on every new message.
"""

import copy
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from src.adapters.query_builders import MessageQueryCriteria
from src.config.logging_config import get_logger
from src.domain.analytics_constants import (
    DEFAULT_LISTING_LIMIT,
    LISTING_DEFAULT_PRICE,
    LISTING_DEFAULT_TITLE,
    MAX_LISTING_LIMIT,
    UNKNOWN_STORE,
)
from src.domain.deal_constants import PRICE_RANGES
from src.domain.exceptions import DealsHubError, ValidationError
from src.domain.models import MessageWithEngagement, utc_now
from src.domain.protocols import CacheProtocol, RepositoryProtocol
from src.observability.metrics import LISTING_CACHE_EVENTS_TOTAL
from src.services.affiliate_links import TAG_VALUE_PATTERN

logger = get_logger(__name__)


@dataclass(frozen=True)
class ListingParams:
    limit: int = DEFAULT_LISTING_LIMIT
    page: int = 1
    store: str | None = None
    price_range: str | None = None
    after_ms: int | None = None
    nocache: bool = False

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    @property
    def cacheable(self) -> bool:
        """Only the plain first page at the default size is shared between callers."""
        return (
            not self.nocache
            and not self.store
            and not self.price_range
            and self.after_ms is None
            and self.page == 1
            and self.limit == DEFAULT_LISTING_LIMIT
        )


def _positive_int(raw: Any, name: str, default: int) -> int:
    if raw in (None, ""):
        return default
    try:
        value = int(raw)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"{name} must be a positive integer") from exc
    if value < 1:
        raise ValidationError(f"{name} must be a positive integer")
    return value


def parse_listing_params(raw: Mapping[str, Any]) -> ListingParams:
    """Convert query parameters (limit, page, store, priceRange, after, nocache).

    Raises:
        ValidationError: For non-numeric paging values or an unknown price range
    """
    limit = min(
        _positive_int(raw.get("limit"), "limit", DEFAULT_LISTING_LIMIT),
        MAX_LISTING_LIMIT,
    )
    page = _positive_int(raw.get("page"), "page", 1)

    price_range = raw.get("priceRange") or None
    if price_range is not None and price_range not in PRICE_RANGES:
        raise ValidationError(
            "Invalid priceRange. Must be one of: " + ", ".join(PRICE_RANGES)
        )

    after_raw = raw.get("after")
    after_ms: int | None = None
    if after_raw not in (None, ""):
        try:
            after_ms = int(after_raw)
        except (TypeError, ValueError) as exc:
            raise ValidationError("after must be a timestamp in milliseconds") from exc

    return ListingParams(
        limit=limit,
        page=page,
        store=raw.get("store") or None,
        price_range=price_range,
        after_ms=after_ms,
        nocache=str(raw.get("nocache", "")).lower() == "true",
    )


def affiliate_tag_of(url: str) -> str:
    """Value of the tag= query parameter, or "" when absent."""
    match = TAG_VALUE_PATTERN.search(url)
    return match.group(1) if match else ""


def format_listing_item(item: MessageWithEngagement) -> dict[str, Any]:
    message = item.message
    url = message.links[0] if message.links else ""
    return {
        "id": message.telegram_message_id,
        "title": message.title or LISTING_DEFAULT_TITLE,
        "price": message.price or LISTING_DEFAULT_PRICE,
        "url": url,
        "image_url": message.photo_url,
        "date": int(message.date.timestamp() * 1000),
        "tag": affiliate_tag_of(url),
        "view_count": item.engagement.view_count if item.engagement else 0,
        "store": message.store or UNKNOWN_STORE,
        "category": message.category,
    }


def _cache_stats(cache: CacheProtocol | None) -> dict[str, int]:
    stats = getattr(cache, "stats", None)
    return stats() if callable(stats) else {}


def list_messages_use_case(
    params: ListingParams,
    repository: RepositoryProtocol | None,
    cache: CacheProtocol | None = None,
) -> dict[str, Any]:
    """Return one page of deals, newest first.

    Storage failures (or no storage at all) yield an empty page carrying an
    "error" field instead of raising.
    """
    if params.cacheable and cache is not None:
        cached = cache.get()
        if cached is not None:
            LISTING_CACHE_EVENTS_TOTAL.labels(result="hit").inc()
            return copy.deepcopy(cached)
        LISTING_CACHE_EVENTS_TOTAL.labels(result="miss").inc()

    criteria = MessageQueryCriteria(
        store=params.store,
        price_range=PRICE_RANGES[params.price_range] if params.price_range else None,
        date_after=(
            datetime.fromtimestamp(params.after_ms / 1000, tz=UTC)
            if params.after_ms is not None
            else None
        ),
        limit=params.limit,
        offset=params.offset,
        order_by="date",
        order_desc=True,
    )

    try:
        if repository is None:
            raise DealsHubError("Storage is not configured")
        items = repository.query_messages_with_engagement(criteria)
        total = repository.count_messages(criteria)
    except DealsHubError as exc:
        logger.error("message_listing_failed", error=str(exc), page=params.page)
        return {
            "messages": [],
            "pagination": {
                "page": params.page,
                "limit": params.limit,
                "total": 0,
                "has_more": False,
            },
            "error": {"message": str(exc), "timestamp": utc_now().isoformat()},
            "metadata": {
                "generated": utc_now().isoformat(),
                "source": "error",
                "stats": _cache_stats(cache),
            },
        }

    messages = [format_listing_item(item) for item in items]
    result = {
        "messages": messages,
        "pagination": {
            "page": params.page,
            "limit": params.limit,
            "total": total,
            "has_more": params.offset + len(messages) < total,
        },
        "metadata": {
            "generated": utc_now().isoformat(),
            "source": "database",
            "stats": _cache_stats(cache),
        },
    }

    if params.cacheable and cache is not None:
        cache.set(copy.deepcopy(result))
    logger.info(
        "message_listing_served",
        page=params.page,
        limit=params.limit,
        returned=len(messages),
        total=total,
    )
    return result
