"""Protocol definitions for dependency inversion.

These abstract interfaces define contracts that adapters must implement.
"""

from datetime import datetime
from typing import TYPE_CHECKING, Any, Protocol

from src.domain.models import (
    BotRunRecord,
    DealMessage,
    EngagementAction,
    EngagementCounters,
    EngagementUpdate,
    HealthCheckRecord,
    MessageTag,
    MessageWithEngagement,
)

if TYPE_CHECKING:
    from src.adapters.query_builders import MessageQueryCriteria


class TelegramBotClientProtocol(Protocol):
    """Subset of the Telegram Bot API used by ingestion and monitoring."""

    def get_me(self) -> dict[str, Any]:
        """Return the bot's own user object.

        Raises:
            TelegramAPIError: On API communication errors or ok=false
        """
        ...

    def get_file_url(self, file_id: str) -> str | None:
        """Resolve a file_id into a direct download URL, None on any failure."""
        ...

    def get_updates(
        self,
        offset: int | None = None,
        limit: int = 100,
        allowed_updates: list[str] | None = None,
    ) -> list[dict[str, Any]]:
        """Fetch pending updates.

        Raises:
            TelegramAPIError: On API communication errors or ok=false
        """
        ...


class ProductInfoProtocol(Protocol):
    """Product catalogue lookup used to fill gaps in parsed deals."""

    def get_product_info(self, asin: str | None) -> dict[str, Any] | None:
        """Title, price, image_url and url for an ASIN; None on any failure."""
        ...


class NotifierProtocol(Protocol):
    """Alert delivery channel."""

    def send_alert(self, subject: str, body: str) -> bool:
        """Send an alert; return False when delivery is not configured."""
        ...


class CacheProtocol(Protocol):
    """Single-slot cache with explicit TTL and invalidation."""

    def get(self) -> Any | None: ...

    def set(self, value: Any) -> None: ...

    def invalidate(self) -> None: ...


class RepositoryProtocol(Protocol):
    """Repository for messages, engagement, tags, and monitoring records."""

    def save_message(self, message: DealMessage) -> int | None:
        """Insert a message unless its telegram_message_id already exists.

        Args:
            message: Parsed deal message

        Returns:
            Internal ID of the new row, or None for a duplicate delivery

        Raises:
            RepositoryError: On storage errors
        """
        ...

    def get_message(self, message_id: int) -> DealMessage | None:
        """Get a message by internal ID."""
        ...

    def get_message_id(self, telegram_message_id: int) -> int | None:
        """Map a Telegram message ID to the internal ID."""
        ...

    def get_last_telegram_message_id(self, channel_id: str | None = None) -> int | None:
        """Highest stored Telegram message ID (optionally per channel)."""
        ...

    def query_messages(self, criteria: "MessageQueryCriteria") -> list[DealMessage]:
        """Query messages using criteria builder."""
        ...

    def count_messages(self, criteria: "MessageQueryCriteria") -> int:
        """Count messages matching criteria (limit/offset ignored)."""
        ...

    def query_messages_with_engagement(
        self, criteria: "MessageQueryCriteria"
    ) -> list[MessageWithEngagement]:
        """Query messages joined with their counters row and tag set."""
        ...

    def increment_engagement(
        self, message_id: int, action: EngagementAction, occurred_at: datetime
    ) -> EngagementUpdate:
        """Atomically create-or-increment the counter for one action.

        Raises:
            RepositoryError: On storage errors
        """
        ...

    def get_engagement(self, message_id: int) -> EngagementCounters | None:
        """Get the counters row for a message."""
        ...

    def get_tags(self, message_id: int) -> list[MessageTag]:
        """Get tags for a message, ordered by name."""
        ...

    def add_tags(self, message_id: int, tag_names: list[str]) -> list[MessageTag]:
        """Insert tags that are not attached yet; return the full tag set."""
        ...

    def remove_tag(self, message_id: int, tag_name: str) -> bool:
        """Delete one tag by exact name; return True when a row was removed."""
        ...

    def list_tag_names(self) -> list[str]:
        """All distinct tag names, sorted."""
        ...

    def save_health_check(self, record: HealthCheckRecord) -> int:
        """Append a monitoring snapshot and return its ID."""
        ...

    def get_recent_health_checks(self, limit: int) -> list[HealthCheckRecord]:
        """Latest monitoring snapshots, newest first."""
        ...

    def mark_health_check_notified(self, record_id: int, notified_at: datetime) -> None:
        """Flag a snapshot as having triggered an alert email."""
        ...

    def save_bot_run(self, record: BotRunRecord) -> int:
        """Append a polling run record and return its ID."""
        ...

    def get_recent_bot_runs(self, limit: int) -> list[BotRunRecord]:
        """Latest polling run records, newest first."""
        ...

    def close(self) -> None:
        """Release connections held by the repository."""
        ...
