"""Amazon Product Advertising API (PA-API 5) client."""

import json
from typing import Any, Final

import requests

from src.config.logging_config import get_logger
from src.config.settings import Settings
from src.services.affiliate_links import generate_affiliate_link
from src.services.aws_signer import sha256_hex, sign_request

logger = get_logger(__name__)

GET_ITEMS_PATH: Final[str] = "/paapi5/getitems"
GET_ITEMS_TARGET: Final[str] = "com.amazon.paapi5.v1.ProductAdvertisingAPIv1.GetItems"
GET_ITEMS_RESOURCES: Final[list[str]] = [
    "Images.Primary.Large",
    "ItemInfo.Title",
    "Offers.Listings.Price",
]
DEFAULT_TIMEOUT_SECONDS: Final[float] = 10.0


class AmazonProductClient:
    """Looks up product title, price, and image for an ASIN."""

    def __init__(
        self,
        access_key: str,
        secret_key: str,
        partner_tag: str,
        *,
        region: str = "us-east-1",
        host: str = "webservices.amazon.com",
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        session: requests.Session | None = None,
    ) -> None:
        self._access_key = access_key
        self._secret_key = secret_key
        self._partner_tag = partner_tag
        self._region = region
        self._host = host
        self._timeout_seconds = timeout_seconds
        self._session = session or requests.Session()

    def get_product_info(self, asin: str | None) -> dict[str, Any] | None:
        """Fetch product details; None when the ASIN is empty or the call fails."""
        if not asin:
            return None

        body = json.dumps(
            {
                "ItemIds": [asin],
                "ItemIdType": "ASIN",
                "PartnerTag": self._partner_tag,
                "PartnerType": "Associates",
                "Resources": GET_ITEMS_RESOURCES,
            }
        )
        headers = sign_request(
            "POST",
            GET_ITEMS_PATH,
            {},
            {
                "content-encoding": "amz-1.0",
                "content-type": "application/json; charset=utf-8",
                "x-amz-target": GET_ITEMS_TARGET,
            },
            access_key=self._access_key,
            secret_key=self._secret_key,
            region=self._region,
            host=self._host,
            payload_hash=sha256_hex(body),
        )

        try:
            response = self._session.post(
                f"https://{self._host}{GET_ITEMS_PATH}",
                data=body,
                headers=headers,
                timeout=self._timeout_seconds,
            )
            response.raise_for_status()
            payload = response.json()
        except (requests.RequestException, ValueError) as exc:
            logger.warning("amazon_get_items_failed", asin=asin, error=str(exc))
            return None

        items = (payload.get("ItemsResult") or {}).get("Items") or []
        if not items:
            logger.info("amazon_item_not_found", asin=asin)
            return None

        item = items[0]
        listings = (item.get("Offers") or {}).get("Listings") or [{}]
        return {
            "title": ((item.get("ItemInfo") or {}).get("Title") or {}).get(
                "DisplayValue"
            ),
            "price": (listings[0].get("Price") or {}).get("DisplayAmount")
            or "Check price",
            "image_url": (
                ((item.get("Images") or {}).get("Primary") or {}).get("Large") or {}
            ).get("URL"),
            "url": generate_affiliate_link(asin, self._partner_tag),
        }


def create_product_client(settings: Settings) -> AmazonProductClient | None:
    """Build a PA-API client, or None when the access keys are not configured."""
    if settings.amazon_access_key is None or settings.amazon_secret_key is None:
        logger.info("amazon_product_lookup_disabled")
        return None
    return AmazonProductClient(
        settings.amazon_access_key.get_secret_value(),
        settings.amazon_secret_key.get_secret_value(),
        settings.amazon_partner_tag,
        region=settings.amazon_region,
        host=settings.amazon_host,
    )
