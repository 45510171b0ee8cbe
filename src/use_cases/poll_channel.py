"""Poll the Telegram channel for new posts (scheduled alternative to the webhook).

One run reads the highest stored Telegram message ID, fetches pending
channel_post updates, ingests posts from the configured channel that are
newer than that ID, and appends a BotRunRecord for monitoring.
"""

from typing import Any

from src.config.logging_config import get_logger
from src.config.settings import Settings
from src.domain.exceptions import DealsHubError
from src.domain.models import BotRunRecord, PollResult
from src.domain.protocols import (
    CacheProtocol,
    ProductInfoProtocol,
    RepositoryProtocol,
    TelegramBotClientProtocol,
)
from src.use_cases.ingest_webhook import ingest_message

logger = get_logger(__name__)


def matches_channel(chat: dict[str, Any], channel_id: str) -> bool:
    """True when a chat object refers to the configured channel.

    channel_id may be a numeric ID ("-100123") or a username with or
    without the leading "@".
    """
    if not channel_id:
        return True
    chat_id = str(chat.get("id", ""))
    username = chat.get("username") or ""
    wanted = channel_id.lstrip("@")
    return channel_id == chat_id or (bool(username) and username == wanted)


def select_channel_posts(
    updates: list[dict[str, Any]],
    channel_id: str,
    last_message_id: int | None,
) -> list[dict[str, Any]]:
    """Channel posts from the target channel newer than last_message_id, oldest first."""
    posts: list[dict[str, Any]] = []
    for update in updates:
        post = update.get("channel_post") or update.get("message")
        if not isinstance(post, dict) or post.get("message_id") is None:
            continue
        if not matches_channel(post.get("chat") or {}, channel_id):
            continue
        if last_message_id is not None and int(post["message_id"]) <= last_message_id:
            logger.debug("poll_skip_processed", telegram_message_id=post["message_id"])
            continue
        posts.append(post)
    return sorted(posts, key=lambda post: int(post["message_id"]))


def poll_channel_use_case(
    bot_client: TelegramBotClientProtocol,
    repository: RepositoryProtocol,
    settings: Settings,
    cache: CacheProtocol | None = None,
    product_client: ProductInfoProtocol | None = None,
) -> PollResult:
    """Run one polling batch and record it.

    Per-message failures lower the success rate; a failure to fetch updates
    is recorded on the run and returned in the result.
    """
    channel_id = settings.telegram_channel_id or ""

    try:
        last_message_id = repository.get_last_telegram_message_id(channel_id or None)
        # Negative offset: the newest pending updates; older ones are confirmed
        updates = bot_client.get_updates(
            offset=-settings.telegram_poll_limit,
            limit=settings.telegram_poll_limit,
            allowed_updates=["channel_post"],
        )
    except DealsHubError as exc:
        logger.error("poll_fetch_failed", channel_id=channel_id, error=str(exc))
        record = BotRunRecord(error=str(exc))
        run_id = _save_run(repository, record)
        return PollResult(error=str(exc), run_id=run_id)

    posts = select_channel_posts(updates, channel_id, last_message_id)
    processed = 0
    for post in posts:
        try:
            result = ingest_message(
                post,
                repository,
                settings,
                bot_client,
                "poll",
                product_client=product_client,
            )
        except DealsHubError as exc:
            logger.warning(
                "poll_message_failed",
                telegram_message_id=post.get("message_id"),
                error=str(exc),
            )
            continue
        if result.success:
            processed += 1

    found = len(posts)
    success_rate = round(processed / found * 100, 2) if found else 100.0
    if processed and cache is not None:
        cache.invalidate()

    logger.info(
        "poll_run_completed",
        channel_id=channel_id,
        last_message_id=last_message_id,
        updates=len(updates),
        messages_found=found,
        messages_processed=processed,
        success_rate=success_rate,
    )

    record = BotRunRecord(
        messages_found=found,
        messages_processed=processed,
        success_rate=success_rate,
    )
    run_id = _save_run(repository, record)
    return PollResult(
        messages_found=found,
        messages_processed=processed,
        success_rate=success_rate,
        run_id=run_id,
    )


def _save_run(repository: RepositoryProtocol, record: BotRunRecord) -> int | None:
    try:
        return repository.save_bot_run(record)
    except DealsHubError as exc:
        logger.error("poll_run_record_failed", error=str(exc))
        return None
