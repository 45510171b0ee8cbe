"""Telegram deal message parser.

Pure functions that turn a raw Telegram message (text or caption plus
entities) into a DealMessage: price, store, category, title, and links with
Amazon links rewritten to carry the affiliate tag.
"""

import re
from collections.abc import Sequence
from datetime import UTC, datetime
from typing import Any, Final

from src.config.settings import AMAZON_PARTNER_TAG_DEFAULT
from src.domain.deal_constants import (
    CATEGORY_TABLE,
    DEFAULT_CATEGORY,
    PRICE_PATTERN,
    STORE_TABLE,
    TITLE_ELLIPSIS,
    TITLE_MAX_LENGTH,
    URL_STRIP_PATTERN,
    URL_TOKEN_PATTERN,
)
from src.domain.exceptions import InvalidMessageError
from src.domain.models import DealMessage, utc_now
from src.services.affiliate_links import convert_to_affiliate_link

PRICE_RE: Final[re.Pattern[str]] = re.compile(PRICE_PATTERN)
URL_STRIP_RE: Final[re.Pattern[str]] = re.compile(URL_STRIP_PATTERN)
URL_TOKEN_RE: Final[re.Pattern[str]] = re.compile(URL_TOKEN_PATTERN)

LINK_ENTITY_TYPES: Final[frozenset[str]] = frozenset({"url", "text_link"})


def first_match(
    text: str | None, table: Sequence[tuple[str, str]], default: str | None = None
) -> str | None:
    """Return the label of the first (pattern, label) pair found in text.

    Matching is a case-insensitive substring test in table order.
    """
    if not text:
        return default
    lowered = text.lower()
    for pattern, label in table:
        if pattern in lowered:
            return label
    return default


def extract_price(text: str | None) -> str | None:
    """First dollar amount in the text, currency symbol kept.

    Example:
        >>> extract_price("Only $19.99 today")
        '$19.99'
    """
    if not text:
        return None
    match = PRICE_RE.search(text)
    return match.group(0) if match else None


def parse_price_numeric(price: str | None) -> float | None:
    """Numeric value of an extracted price ("$1,299.99" -> 1299.99)."""
    if not price:
        return None
    digits = re.sub(r"[^0-9.]", "", price)
    try:
        return float(digits) if digits else None
    except ValueError:
        return None


def extract_store(text: str | None) -> str | None:
    return first_match(text, STORE_TABLE)


def extract_category(text: str | None) -> str:
    """Category for the text; "Other" when nothing matches, including empty text."""
    return first_match(text, CATEGORY_TABLE, DEFAULT_CATEGORY) or DEFAULT_CATEGORY


def extract_title(text: str | None) -> str:
    """First line of the text with URLs removed, capped at 100 characters."""
    if not text:
        return ""
    cleaned = URL_STRIP_RE.sub("", text)
    first_line = cleaned.split("\n", 1)[0].strip()
    if len(first_line) > TITLE_MAX_LENGTH:
        return first_line[:TITLE_MAX_LENGTH] + TITLE_ELLIPSIS
    return first_line


def _utf16_slice(text: str, offset: int, length: int) -> str:
    # Telegram entity offsets count UTF-16 code units
    encoded = text.encode("utf-16-le")
    return encoded[offset * 2 : (offset + length) * 2].decode("utf-16-le", "ignore")


def extract_links(
    text: str | None,
    entities: Sequence[dict[str, Any]] | None = None,
    partner_tag: str = AMAZON_PARTNER_TAG_DEFAULT,
) -> list[str]:
    """Collect links from message entities, or from the raw text if there are none.

    Amazon links are rewritten to affiliate form on both paths.
    """
    links: list[str] = []

    if entities:
        for entity in entities:
            entity_type = entity.get("type")
            if entity_type not in LINK_ENTITY_TYPES:
                continue
            if entity_type == "url" and text:
                url = _utf16_slice(
                    text, int(entity.get("offset", 0)), int(entity.get("length", 0))
                )
            else:
                url = entity.get("url") or ""
            if url:
                links.append(convert_to_affiliate_link(url, partner_tag))
        return links

    if text:
        links = [
            convert_to_affiliate_link(url, partner_tag)
            for url in URL_TOKEN_RE.findall(text)
        ]
    return links


def _message_date(raw_date: Any) -> datetime:
    if isinstance(raw_date, int | float) and raw_date > 0:
        return datetime.fromtimestamp(raw_date, tz=UTC)
    return utc_now()


def process_message_data(
    message: dict[str, Any] | None,
    include_photo_url: bool = False,
    partner_tag: str = AMAZON_PARTNER_TAG_DEFAULT,
) -> DealMessage:
    """Build a DealMessage from a Telegram message object.

    Args:
        message: Telegram Message (channel_post or message payload)
        include_photo_url: Store the photo file_id as a placeholder photo_url,
            to be resolved later through getFile
        partner_tag: Amazon Associates tag for link rewriting

    Raises:
        InvalidMessageError: If the message has no message_id
    """
    if not message or message.get("message_id") is None:
        raise InvalidMessageError()

    text = message.get("text") or message.get("caption") or ""
    entities = message.get("entities") or message.get("caption_entities") or []
    chat = message.get("chat") or {}
    photos = message.get("photo") or []

    price = extract_price(text)
    photo_file_id = photos[-1].get("file_id") if photos else None

    return DealMessage(
        telegram_message_id=int(message["message_id"]),
        channel_id=str(chat.get("id", "")),
        text=text,
        date=_message_date(message.get("date")),
        price=price,
        price_numeric=parse_price_numeric(price),
        store=extract_store(text),
        category=extract_category(text),
        title=extract_title(text),
        links=extract_links(text, entities, partner_tag),
        has_photo=bool(photos),
        photo_file_id=photo_file_id,
        photo_url=photo_file_id if include_photo_url else None,
        created_at=utc_now(),
    )
