"""Tests for AWS Signature Version 4 signing.

Vectors come from the public AWS SigV4 test suite (get-vanilla) and the
signing-key derivation example in the AWS general reference.
"""

from datetime import UTC, datetime

from src.services.aws_signer import (
    canonical_request,
    derive_signing_key,
    sha256_hex,
    sign_request,
)

ACCESS_KEY = "AKIDEXAMPLE"
SECRET_KEY = "wJalrXUtnFEMI/K7MDENG+bPxRfiCYEXAMPLEKEY"
EMPTY_PAYLOAD_HASH = "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"


def test_sha256_of_empty_payload() -> None:
    assert sha256_hex("") == EMPTY_PAYLOAD_HASH
    assert sha256_hex(b"") == EMPTY_PAYLOAD_HASH


def test_derive_signing_key_matches_reference() -> None:
    key = derive_signing_key(SECRET_KEY, "20120215", "us-east-1", "iam")
    assert key.hex() == (
        "f4780e2d9f65fa895f9c67b32ce1baf0b0d8a43505a000a1a9e090d414db404d"
    )


def test_get_vanilla_signature() -> None:
    headers = sign_request(
        "GET",
        "/",
        {},
        {},
        access_key=ACCESS_KEY,
        secret_key=SECRET_KEY,
        region="us-east-1",
        host="example.amazonaws.com",
        service="service",
        payload_hash=EMPTY_PAYLOAD_HASH,
        timestamp=datetime(2015, 8, 30, 12, 36, 0, tzinfo=UTC),
    )

    assert headers["x-amz-date"] == "20150830T123600Z"
    assert headers["host"] == "example.amazonaws.com"
    assert headers["Authorization"] == (
        "AWS4-HMAC-SHA256 "
        "Credential=AKIDEXAMPLE/20150830/us-east-1/service/aws4_request, "
        "SignedHeaders=host;x-amz-date, "
        "Signature=5fa00fa31553b73ebf1942676e86291e8372ff2a2260956d9b8aae1d763fbf31"
    )


def test_signing_is_deterministic_for_a_timestamp() -> None:
    kwargs = {
        "access_key": ACCESS_KEY,
        "secret_key": SECRET_KEY,
        "region": "us-east-1",
        "host": "webservices.amazon.com",
        "payload_hash": sha256_hex('{"ItemIds": ["B08N5WRWNW"]}'),
        "timestamp": datetime(2025, 10, 10, 9, 30, tzinfo=UTC),
    }
    first = sign_request("POST", "/paapi5/getitems", {}, {"a": "1"}, **kwargs)
    second = sign_request("POST", "/paapi5/getitems", {}, {"a": "1"}, **kwargs)
    assert first == second
    assert "/ProductAdvertisingAPI/aws4_request" in first["Authorization"]


def test_canonical_request_sorts_and_normalizes() -> None:
    request, signed_headers = canonical_request(
        "get",
        "/items",
        {"b": "two words", "a": "1"},
        {"X-Amz-Date": "20250101T000000Z", "Host": "  example.com  "},
        EMPTY_PAYLOAD_HASH,
    )

    assert signed_headers == "host;x-amz-date"
    assert request.split("\n") == [
        "GET",
        "/items",
        "a=1&b=two%20words",
        "host:example.com",
        "x-amz-date:20250101T000000Z",
        "",
        "host;x-amz-date",
        EMPTY_PAYLOAD_HASH,
    ]


def test_caller_headers_are_signed() -> None:
    headers = sign_request(
        "POST",
        "/paapi5/getitems",
        None,
        {"content-type": "application/json; charset=utf-8"},
        access_key="AK",
        secret_key="SK",
        region="us-east-1",
        host="webservices.amazon.com",
        timestamp=datetime(2025, 1, 1, tzinfo=UTC),
    )
    assert "SignedHeaders=content-type;host;x-amz-date" in headers["Authorization"]
    assert headers["content-type"] == "application/json; charset=utf-8"
