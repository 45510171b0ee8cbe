"""Amazon affiliate link rewriting.

Extracts ASINs from Amazon product URLs and rebuilds them as short affiliate
links carrying the configured Associates tag.
"""

import re
from typing import Final
from urllib.parse import urlsplit, urlunsplit

from src.config.logging_config import get_logger
from src.config.settings import AMAZON_PARTNER_TAG_DEFAULT

logger = get_logger(__name__)

AMAZON_DOMAIN: Final[str] = "amazon.com"

ASIN_PATTERNS: Final[tuple[re.Pattern[str], ...]] = (
    re.compile(r"/dp/([A-Z0-9]{10})(?:[/?#]|$)", re.IGNORECASE),
    re.compile(r"/gp/product/([A-Z0-9]{10})(?:[/?#]|$)", re.IGNORECASE),
    re.compile(r"/ASIN/([A-Z0-9]{10})(?:[/?#]|$)", re.IGNORECASE),
    re.compile(r"(?<![A-Z0-9])(B0[A-Z0-9]{8})(?:[/?#]|$)", re.IGNORECASE),
)
"""Checked in order; the first capture wins."""

TAG_PARAM_PATTERN: Final[re.Pattern[str]] = re.compile(r"(?<=[?&])tag=[^&#]*&?")

TAG_VALUE_PATTERN: Final[re.Pattern[str]] = re.compile(r"[?&]tag=([^&#]*)")

URL_PATTERN: Final[re.Pattern[str]] = re.compile(r"https?://[^\s]+")


def extract_asin(url: str | None) -> str | None:
    """Extract the ASIN from an Amazon product URL.

    Example:
        >>> extract_asin("https://www.amazon.com/Some-Item/dp/B08N5WRWNW?th=1")
        'B08N5WRWNW'
    """
    if not url:
        return None
    for pattern in ASIN_PATTERNS:
        match = pattern.search(url)
        if match:
            return match.group(1)
    return None


def generate_affiliate_link(
    asin: str | None, partner_tag: str = AMAZON_PARTNER_TAG_DEFAULT
) -> str | None:
    """Build the canonical affiliate URL for an ASIN, None for a falsy ASIN."""
    if not asin:
        return None
    return f"https://www.amazon.com/dp/{asin}/?tag={partner_tag}"


def _strip_tag_params(url: str) -> str:
    cleaned = TAG_PARAM_PATTERN.sub("", url)
    # Drop a dangling separator left behind by the last removed parameter
    return cleaned.rstrip("?&")


def convert_to_affiliate_link(
    url: str, partner_tag: str = AMAZON_PARTNER_TAG_DEFAULT
) -> str:
    """Rewrite an Amazon URL so it carries exactly one partner tag.

    Non-Amazon URLs and URLs already tagged with partner_tag are returned
    unchanged. Never raises; on unexpected input the original URL is returned.
    """
    if not url or AMAZON_DOMAIN not in url.lower():
        return url
    if TAG_VALUE_PATTERN.findall(url) == [partner_tag]:
        return url

    try:
        clean_url = _strip_tag_params(url)
        asin = extract_asin(clean_url)
        if asin:
            return generate_affiliate_link(asin, partner_tag) or url

        parts = urlsplit(clean_url)
        query = parts.query.rstrip("&")
        tagged = f"{query}&tag={partner_tag}" if query else f"tag={partner_tag}"
        return urlunsplit(parts._replace(query=tagged))
    except (TypeError, ValueError, re.error) as exc:
        logger.warning("affiliate_link_conversion_failed", url=url, error=str(exc))
        return url


def process_affiliate_links(
    text: str, partner_tag: str = AMAZON_PARTNER_TAG_DEFAULT
) -> str:
    """Replace every Amazon URL in free text with its affiliate form."""
    if not text:
        return text
    return URL_PATTERN.sub(
        lambda match: convert_to_affiliate_link(match.group(0), partner_tag), text
    )
