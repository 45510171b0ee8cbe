"""Domain models for DealsHub.

All models use Pydantic v2 for validation and serialization.
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator

from src.domain.deal_constants import DEFAULT_CATEGORY


def utc_now() -> datetime:
    """Timezone-aware current time in UTC."""
    return datetime.now(UTC)


class EngagementAction(str, Enum):
    """Reader interaction tracked per message."""

    VIEW = "view"
    CLICK = "click"
    SAVE = "save"
    SHARE = "share"

    @property
    def counter_column(self) -> str:
        return f"{self.value}_count"


class DealMessage(BaseModel):
    """Deal post ingested from the Telegram channel.

    Immutable after insert except for photo_url backfill.
    """

    id: int | None = Field(default=None, description="Internal storage ID")
    telegram_message_id: int = Field(..., description="Channel-scoped message ID")
    channel_id: str = Field(..., description="Telegram chat ID")
    text: str = Field(default="", description="Raw message text or caption")
    date: datetime = Field(default_factory=utc_now, description="Message timestamp")
    price: str | None = Field(default=None, description="Price with currency symbol")
    price_numeric: float | None = Field(
        default=None, description="Price as a number, for range filters"
    )
    store: str | None = Field(default=None, description="Detected retailer")
    category: str = Field(default=DEFAULT_CATEGORY, description="Detected category")
    title: str = Field(default="", description="First line of cleaned text")
    links: list[str] = Field(
        default_factory=list, description="Links, Amazon ones affiliate-tagged"
    )
    has_photo: bool = Field(default=False, description="Message carries a photo")
    photo_file_id: str | None = Field(
        default=None, description="Telegram file_id of the largest photo"
    )
    photo_url: str | None = Field(default=None, description="Resolved photo URL")
    created_at: datetime = Field(
        default_factory=utc_now, description="Ingestion timestamp"
    )

    @field_validator("channel_id", mode="before")
    @classmethod
    def _coerce_channel_id(cls, value: Any) -> str:
        return str(value)


class EngagementCounters(BaseModel):
    """Per-message engagement counters (one row per message)."""

    message_id: int = Field(..., description="Internal message ID")
    view_count: int = Field(default=0, ge=0)
    click_count: int = Field(default=0, ge=0)
    save_count: int = Field(default=0, ge=0)
    share_count: int = Field(default=0, ge=0)
    last_viewed: datetime | None = None
    last_clicked: datetime | None = None
    updated_at: datetime | None = None

    @property
    def total(self) -> int:
        return self.view_count + self.click_count + self.save_count + self.share_count


class EngagementUpdate(BaseModel):
    """Outcome of one atomic counter increment."""

    counters: EngagementCounters
    created: bool = Field(..., description="True when the row was just created")


class MessageWithEngagement(BaseModel):
    """Message joined with its counters row and tag set."""

    message: DealMessage
    engagement: EngagementCounters | None = None
    tags: list[str] = Field(default_factory=list)


class MessageTag(BaseModel):
    """Free-text tag attached to a message (lower-cased, trimmed)."""

    id: int | None = None
    message_id: int
    tag_name: str
    created_at: datetime = Field(default_factory=utc_now)


class HealthCheckRecord(BaseModel):
    """Append-only snapshot of one monitoring run."""

    id: int | None = None
    result: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utc_now)
    notification_sent: bool = False
    notification_time: datetime | None = None


class BotRunRecord(BaseModel):
    """Append-only snapshot of one polling ingestion batch."""

    id: int | None = None
    run_timestamp: datetime = Field(default_factory=utc_now)
    messages_found: int = Field(default=0, ge=0)
    messages_processed: int = Field(default=0, ge=0)
    success_rate: float = Field(default=0.0, ge=0.0, le=100.0)
    error: str | None = None


class IngestResult(BaseModel):
    """Outcome of ingesting one Telegram update."""

    success: bool
    message_id: int | None = Field(default=None, description="Internal storage ID")
    telegram_message_id: int | None = None
    duplicate: bool = Field(
        default=False, description="Telegram ID was already stored; nothing written"
    )
    error: str | None = None


class PollResult(BaseModel):
    """Outcome of one channel polling run."""

    messages_found: int = 0
    messages_processed: int = 0
    success_rate: float = 0.0
    error: str | None = None
    run_id: int | None = None


class EngagementResult(BaseModel):
    """Outcome of one engagement event."""

    success: bool
    message_id: int | None = Field(default=None, description="Telegram message ID")
    action: EngagementAction | None = None
    created: bool = False
    updated: bool = False
    mock: bool = Field(default=False, description="No storage configured")
    counters: EngagementCounters | None = None
    error: str | None = None
