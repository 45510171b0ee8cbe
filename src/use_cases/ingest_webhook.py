"""Ingest a Telegram webhook delivery.

Verifies the webhook secret, parses the channel post into a DealMessage,
resolves the photo URL through the Bot API when possible, fills gaps from the
Amazon catalogue when a product client is configured, and stores the
message. Duplicate deliveries of the same Telegram message are a no-op.
"""

import hmac
from typing import Any, Final

from src.config.logging_config import get_logger
from src.config.settings import Settings
from src.domain.exceptions import DealsHubError
from src.domain.models import DealMessage, IngestResult
from src.domain.protocols import (
    CacheProtocol,
    ProductInfoProtocol,
    RepositoryProtocol,
    TelegramBotClientProtocol,
)
from src.observability.metrics import MESSAGES_INGESTED_TOTAL
from src.services.affiliate_links import extract_asin
from src.services.deal_parser import parse_price_numeric, process_message_data

logger = get_logger(__name__)

NO_MESSAGE_ERROR: Final[str] = "No valid message found in webhook data"


def verify_webhook_secret(provided: str | None, expected: str | None) -> bool:
    """Check the secret-token header against the configured secret.

    Without a configured secret every request passes (a warning is logged).
    """
    if not expected:
        logger.warning("webhook_secret_not_configured")
        return True
    if provided is None:
        return False
    return hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))


def extract_update_message(update: dict[str, Any] | None) -> dict[str, Any] | None:
    """Pull the message object out of a Telegram Update (channel_post first)."""
    if not isinstance(update, dict):
        return None
    message = update.get("channel_post") or update.get("message")
    return message if isinstance(message, dict) else None


def enrich_from_product_info(
    deal: DealMessage, product_client: ProductInfoProtocol | None
) -> DealMessage:
    """Fill a missing price, photo URL or title from the Amazon catalogue.

    Only deals with an ASIN link and at least one gap are looked up; a failed
    lookup leaves the deal unchanged.
    """
    if product_client is None:
        return deal
    if deal.price and deal.photo_url and deal.title:
        return deal
    asin = next(filter(None, (extract_asin(link) for link in deal.links)), None)
    if asin is None:
        return deal

    info = product_client.get_product_info(asin)
    if not info:
        return deal

    updates: dict[str, Any] = {}
    info_price = info.get("price")
    if not deal.price and parse_price_numeric(info_price) is not None:
        updates["price"] = info_price
        updates["price_numeric"] = parse_price_numeric(info_price)
    if not deal.photo_url and info.get("image_url"):
        updates["photo_url"] = info["image_url"]
    if not deal.title and info.get("title"):
        updates["title"] = info["title"]

    if updates:
        logger.info(
            "deal_message_enriched",
            telegram_message_id=deal.telegram_message_id,
            asin=asin,
            fields=sorted(updates),
        )
    return deal.model_copy(update=updates) if updates else deal


def ingest_message(
    message: dict[str, Any],
    repository: RepositoryProtocol,
    settings: Settings,
    bot_client: TelegramBotClientProtocol | None = None,
    source: str = "webhook",
    product_client: ProductInfoProtocol | None = None,
) -> IngestResult:
    """Parse and store one Telegram message.

    Raises:
        InvalidMessageError: If the message has no message_id
        RepositoryError: On storage errors
    """
    deal = process_message_data(message, partner_tag=settings.amazon_partner_tag)

    if deal.photo_file_id and bot_client is not None:
        photo_url = bot_client.get_file_url(deal.photo_file_id)
        if photo_url:
            deal = deal.model_copy(update={"photo_url": photo_url})

    if product_client is not None:
        existing_id = repository.get_message_id(deal.telegram_message_id)
        if existing_id is None:
            deal = enrich_from_product_info(deal, product_client)

    message_id = repository.save_message(deal)
    if message_id is None:
        MESSAGES_INGESTED_TOTAL.labels(source=source, outcome="duplicate").inc()
        logger.info(
            "deal_message_duplicate",
            telegram_message_id=deal.telegram_message_id,
            source=source,
        )
        return IngestResult(
            success=True,
            duplicate=True,
            telegram_message_id=deal.telegram_message_id,
            message_id=repository.get_message_id(deal.telegram_message_id),
        )

    MESSAGES_INGESTED_TOTAL.labels(source=source, outcome="stored").inc()
    logger.info(
        "deal_message_stored",
        message_id=message_id,
        telegram_message_id=deal.telegram_message_id,
        store=deal.store,
        category=deal.category,
        has_photo=deal.has_photo,
        source=source,
    )
    return IngestResult(
        success=True,
        message_id=message_id,
        telegram_message_id=deal.telegram_message_id,
    )


def ingest_webhook_use_case(
    update: dict[str, Any] | None,
    repository: RepositoryProtocol,
    settings: Settings,
    bot_client: TelegramBotClientProtocol | None = None,
    cache: CacheProtocol | None = None,
    product_client: ProductInfoProtocol | None = None,
) -> IngestResult:
    """Handle one webhook Update; failures are reported in the result.

    Args:
        update: Decoded Telegram Update body
        repository: Message store
        settings: Application settings (partner tag)
        bot_client: Bot API client for photo URL lookup, if a token is configured
        cache: Listing cache, invalidated after a new message is stored
        product_client: Amazon catalogue lookup for deals missing price, photo
            or title, if PA-API keys are configured

    Returns:
        IngestResult with the internal ID, or success=False with an error
    """
    message = extract_update_message(update)
    if message is None:
        keys = sorted(update.keys()) if isinstance(update, dict) else []
        logger.warning("webhook_no_message", keys=keys)
        MESSAGES_INGESTED_TOTAL.labels(source="webhook", outcome="rejected").inc()
        return IngestResult(success=False, error=NO_MESSAGE_ERROR)

    try:
        result = ingest_message(
            message, repository, settings, bot_client, product_client=product_client
        )
    except DealsHubError as exc:
        MESSAGES_INGESTED_TOTAL.labels(source="webhook", outcome="failed").inc()
        logger.error(
            "webhook_ingest_failed",
            telegram_message_id=message.get("message_id"),
            error=str(exc),
        )
        return IngestResult(success=False, error=str(exc))

    if cache is not None and not result.duplicate:
        cache.invalidate()
    return result
