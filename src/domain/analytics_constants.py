"""Constants for engagement analytics, export, and health monitoring."""

from typing import Final

TIMEFRAMES: Final[tuple[str, ...]] = ("day", "week", "month", "year", "all", "custom")
DEFAULT_TIMEFRAME: Final[str] = "all"

DEFAULT_ANALYTICS_LIMIT: Final[int] = 20
MIN_ANALYTICS_LIMIT: Final[int] = 1
MAX_ANALYTICS_LIMIT: Final[int] = 100

TOP_PERFORMERS_COUNT: Final[int] = 5
CTR_MIN_VIEWS: Final[int] = 10
"""Messages need at least this many views to rank by click-through rate."""

UNKNOWN_STORE: Final[str] = "Unknown"
UNCATEGORIZED: Final[str] = "Uncategorized"

DATE_FORMAT_PATTERN: Final[str] = r"^\d{4}-\d{2}-\d{2}$"

EXPORT_FORMATS: Final[tuple[str, ...]] = ("json", "csv")
EXPORT_PLACEHOLDER: Final[str] = "N/A"

MESSAGE_FLOW_WINDOW_HOURS: Final[int] = 24
HEALTH_HISTORY_LIMIT: Final[int] = 10
STATUS_HEALTH_CHECK_LIMIT: Final[int] = 5
STATUS_BOT_RUN_LIMIT: Final[int] = 10
RECOVERY_HEADER: Final[str] = "x-recovery-attempt"

DEFAULT_LISTING_LIMIT: Final[int] = 20
MAX_LISTING_LIMIT: Final[int] = 100
LISTING_DEFAULT_TITLE: Final[str] = "Product Deal"
LISTING_DEFAULT_PRICE: Final[str] = "Check price"
