"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import os
import subprocess
from collections.abc import Generator
from datetime import UTC, datetime
from typing import Any

import pytest

from src.adapters.sqlite_repository import SQLiteRepository
from src.config.settings import Settings
from src.domain.exceptions import NotificationError, TelegramAPIError
from src.domain.models import DealMessage
from src.domain.protocols import RepositoryProtocol

CHANNEL_ID = "-1001234567890"
MESSAGE_TABLES = (
    "telegram_message_tags",
    "telegram_message_engagement",
    "telegram_health_checks",
    "telegram_bot_runs",
    "telegram_messages",
)


@pytest.fixture
def settings(tmp_path: Any) -> Settings:
    """Settings pointing at a throwaway SQLite file, with no secrets set."""
    return Settings(
        database_type="sqlite",
        db_path=str(tmp_path / "dealshub.db"),
        telegram_bot_token=None,
        telegram_webhook_secret=None,
        admin_api_token=None,
        email_password=None,
        telegram_channel_id=CHANNEL_ID,
        recovery_trigger_url=None,
        notification_email=None,
        email_from=None,
    )


@pytest.fixture
def repo(settings: Settings) -> Generator[RepositoryProtocol, None, None]:
    """SQLite repository with a fresh schema."""
    repository = SQLiteRepository(db_path=settings.db_path)
    try:
        yield repository
    finally:
        repository.close()


@pytest.fixture
def postgres_repo() -> Generator[RepositoryProtocol, None, None]:
    """PostgreSQL repository on a migrated, emptied schema.

    Requires:
        - TEST_POSTGRES=1 environment variable
        - POSTGRES_PASSWORD environment variable
        - PostgreSQL reachable with the configured host/port/database
    """
    if os.environ.get("TEST_POSTGRES", "0") != "1":
        pytest.skip("PostgreSQL tests disabled (TEST_POSTGRES!=1)")
    if not os.environ.get("POSTGRES_PASSWORD"):
        pytest.skip("POSTGRES_PASSWORD not set for PostgreSQL tests")

    from src.adapters.postgres_repository import PostgresRepository

    pg_settings = Settings(database_type="postgres")
    subprocess.run(["alembic", "upgrade", "head"], check=True, capture_output=True)

    repository = PostgresRepository(
        host=pg_settings.postgres_host,
        port=pg_settings.postgres_port,
        database=pg_settings.postgres_database,
        user=pg_settings.postgres_user,
        password=os.environ["POSTGRES_PASSWORD"],
        settings=pg_settings,
    )

    def _truncate() -> None:
        with repository._get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"TRUNCATE {', '.join(MESSAGE_TABLES)} RESTART IDENTITY CASCADE"
                )
            conn.commit()

    _truncate()
    try:
        yield repository
    finally:
        _truncate()
        repository.close()


def make_channel_post(
    message_id: int = 101,
    text: str = "Echo Dot on Amazon for $29.99 https://www.amazon.com/dp/B08N5WRWNW",
    *,
    chat_id: int | str = CHANNEL_ID,
    username: str | None = "salesaholicsdeals",
    date: datetime | None = None,
    entities: list[dict[str, Any]] | None = None,
    photo_file_ids: list[str] | None = None,
    caption: bool = False,
) -> dict[str, Any]:
    """Build a Telegram channel_post Message object."""
    chat: dict[str, Any] = {"id": chat_id, "type": "channel"}
    if username:
        chat["username"] = username
    message: dict[str, Any] = {
        "message_id": message_id,
        "chat": chat,
        "date": int((date or datetime(2025, 10, 10, 12, 0, tzinfo=UTC)).timestamp()),
    }
    if caption:
        message["caption"] = text
        if entities is not None:
            message["caption_entities"] = entities
    else:
        message["text"] = text
        if entities is not None:
            message["entities"] = entities
    if photo_file_ids:
        message["photo"] = [
            {"file_id": file_id, "width": 90 * (i + 1), "height": 90 * (i + 1)}
            for i, file_id in enumerate(photo_file_ids)
        ]
    return message


def make_deal(
    telegram_message_id: int,
    *,
    title: str | None = None,
    price: str | None = "$19.99",
    store: str | None = "Amazon",
    category: str = "Electronics",
    created_at: datetime | None = None,
    date: datetime | None = None,
    links: list[str] | None = None,
) -> DealMessage:
    """Build a stored-ready DealMessage without going through the parser."""
    created = created_at or datetime(2025, 10, 10, 12, 0, tzinfo=UTC)
    numeric = float(price.lstrip("$")) if price else None
    return DealMessage(
        telegram_message_id=telegram_message_id,
        channel_id=CHANNEL_ID,
        text=title or f"Deal {telegram_message_id}",
        date=date or created,
        price=price,
        price_numeric=numeric,
        store=store,
        category=category,
        title=title or f"Deal {telegram_message_id}",
        links=(
            links
            if links is not None
            else [f"https://www.amazon.com/dp/B0000000{telegram_message_id:02d}/?tag=t-20"]
        ),
        created_at=created,
    )


class StubBotClient:
    """In-memory stand-in for TelegramBotClient."""

    def __init__(
        self,
        updates: list[dict[str, Any]] | None = None,
        *,
        me: dict[str, Any] | None = None,
        file_urls: dict[str, str] | None = None,
        fail_updates: bool = False,
        fail_me: bool = False,
    ) -> None:
        self.updates = updates or []
        self.me = me or {"id": 777, "username": "dealshub_bot", "is_bot": True}
        self.file_urls = file_urls or {}
        self.fail_updates = fail_updates
        self.fail_me = fail_me
        self.get_updates_calls: list[dict[str, Any]] = []
        self.file_lookups: list[str] = []

    def get_me(self) -> dict[str, Any]:
        if self.fail_me:
            raise TelegramAPIError("Telegram getMe failed: Unauthorized")
        return self.me

    def get_file_url(self, file_id: str) -> str | None:
        self.file_lookups.append(file_id)
        return self.file_urls.get(file_id)

    def get_updates(
        self,
        offset: int | None = None,
        limit: int = 100,
        allowed_updates: list[str] | None = None,
    ) -> list[dict[str, Any]]:
        self.get_updates_calls.append(
            {"offset": offset, "limit": limit, "allowed_updates": allowed_updates}
        )
        if self.fail_updates:
            raise TelegramAPIError("Telegram getUpdates request failed: timeout")
        return self.updates


class StubNotifier:
    """Records alerts instead of sending mail."""

    def __init__(self, *, configured: bool = True, fail: bool = False) -> None:
        self.configured = configured
        self.fail = fail
        self.sent: list[tuple[str, str]] = []

    def send_alert(self, subject: str, body: str) -> bool:
        if self.fail:
            raise NotificationError("Failed to send alert email: connection refused")
        if not self.configured:
            return False
        self.sent.append((subject, body))
        return True


class StubProductClient:
    """Returns canned PA-API product info and records the ASINs asked for."""

    def __init__(self, info: dict[str, Any] | None = None) -> None:
        self.info = info
        self.lookups: list[str | None] = []

    def get_product_info(self, asin: str | None) -> dict[str, Any] | None:
        self.lookups.append(asin)
        return self.info


@pytest.fixture
def bot_client() -> StubBotClient:
    return StubBotClient()


@pytest.fixture
def notifier() -> StubNotifier:
    return StubNotifier()
