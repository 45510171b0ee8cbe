"""AWS Signature Version 4 request signing (HMAC-SHA256).

Used for Product Advertising API calls. Deterministic for a given timestamp.
"""

import hashlib
import hmac
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Final
from urllib.parse import quote

ALGORITHM: Final[str] = "AWS4-HMAC-SHA256"
UNSIGNED_PAYLOAD: Final[str] = "UNSIGNED-PAYLOAD"
PAAPI_SERVICE: Final[str] = "ProductAdvertisingAPI"


def _hmac(key: bytes, message: str) -> bytes:
    return hmac.new(key, message.encode("utf-8"), hashlib.sha256).digest()


def _uri_encode(value: str) -> str:
    return quote(value, safe="-_.~")


def sha256_hex(payload: bytes | str) -> str:
    data = payload.encode("utf-8") if isinstance(payload, str) else payload
    return hashlib.sha256(data).hexdigest()


def derive_signing_key(
    secret_key: str, date_stamp: str, region: str, service: str
) -> bytes:
    """Derive the scoped signing key (date, region, service, aws4_request)."""
    k_date = _hmac(f"AWS4{secret_key}".encode(), date_stamp)
    k_region = _hmac(k_date, region)
    k_service = _hmac(k_region, service)
    return _hmac(k_service, "aws4_request")


def canonical_request(
    method: str,
    path: str,
    query: Mapping[str, str],
    headers: Mapping[str, str],
    payload_hash: str,
) -> tuple[str, str]:
    """Build the canonical request string and the signed-headers list."""
    canonical_query = "&".join(
        f"{_uri_encode(key)}={_uri_encode(str(query[key]))}" for key in sorted(query)
    )
    normalized = {
        name.lower(): " ".join(str(value).strip().split())
        for name, value in headers.items()
    }
    signed_headers = ";".join(sorted(normalized))
    canonical_headers = "".join(
        f"{name}:{normalized[name]}\n" for name in sorted(normalized)
    )
    request = "\n".join(
        [
            method.upper(),
            path or "/",
            canonical_query,
            canonical_headers,
            signed_headers,
            payload_hash,
        ]
    )
    return request, signed_headers


def sign_request(
    method: str,
    path: str,
    query: Mapping[str, str] | None,
    headers: Mapping[str, str] | None,
    *,
    access_key: str,
    secret_key: str,
    region: str,
    host: str,
    service: str = PAAPI_SERVICE,
    payload_hash: str = UNSIGNED_PAYLOAD,
    timestamp: datetime | None = None,
) -> dict[str, str]:
    """Sign a request and return the headers to send.

    The returned mapping contains the caller's headers plus host, x-amz-date,
    and Authorization.

    Example:
        >>> signed = sign_request(
        ...     "POST", "/paapi5/getitems", {}, {"content-type": "application/json"},
        ...     access_key="AK", secret_key="SK", region="us-east-1",
        ...     host="webservices.amazon.com",
        ... )
        >>> signed["Authorization"].startswith("AWS4-HMAC-SHA256 Credential=AK/")
        True
    """
    moment = (timestamp or datetime.now(UTC)).astimezone(UTC)
    amz_date = moment.strftime("%Y%m%dT%H%M%SZ")
    date_stamp = moment.strftime("%Y%m%d")

    signed: dict[str, str] = dict(headers or {})
    signed["host"] = host
    signed["x-amz-date"] = amz_date

    request, signed_headers = canonical_request(
        method, path, query or {}, signed, payload_hash
    )
    credential_scope = f"{date_stamp}/{region}/{service}/aws4_request"
    string_to_sign = "\n".join(
        [ALGORITHM, amz_date, credential_scope, sha256_hex(request)]
    )
    signature = hmac.new(
        derive_signing_key(secret_key, date_stamp, region, service),
        string_to_sign.encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()

    signed["Authorization"] = (
        f"{ALGORITHM} Credential={access_key}/{credential_scope}, "
        f"SignedHeaders={signed_headers}, Signature={signature}"
    )
    return signed
