"""Tests for the paginated deal listing."""

from datetime import UTC, datetime, timedelta
from unittest.mock import Mock

import pytest

from src.adapters.ttl_cache import TTLCache
from src.domain.exceptions import RepositoryError, ValidationError
from src.domain.models import EngagementAction
from src.domain.protocols import RepositoryProtocol
from src.use_cases.list_messages import (
    ListingParams,
    affiliate_tag_of,
    list_messages_use_case,
    parse_listing_params,
)
from tests.conftest import make_deal

BASE_TIME = datetime(2025, 10, 10, 12, 0, tzinfo=UTC)


@pytest.fixture
def five_deals(repo: RepositoryProtocol) -> None:
    prices = ["$10", "$30", "$60", "$120", None]
    for index, price in enumerate(prices, start=1):
        repo.save_message(
            make_deal(
                index,
                price=price,
                store="Amazon" if index % 2 else "Walmart",
                date=BASE_TIME + timedelta(hours=index),
            )
        )


class TestParseListingParams:
    def test_defaults(self) -> None:
        params = parse_listing_params({})
        assert params == ListingParams()
        assert params.offset == 0
        assert params.cacheable is True

    def test_limit_capped(self) -> None:
        assert parse_listing_params({"limit": "500"}).limit == 100

    def test_paging_offset(self) -> None:
        params = parse_listing_params({"limit": "10", "page": "3"})
        assert params.offset == 20
        assert params.cacheable is False

    @pytest.mark.parametrize(
        "raw",
        [{"limit": "abc"}, {"page": "0"}, {"after": "yesterday"}, {"priceRange": "cheap"}],
    )
    def test_invalid_values(self, raw: dict) -> None:
        with pytest.raises(ValidationError):
            parse_listing_params(raw)

    def test_nocache_flag(self) -> None:
        assert parse_listing_params({"nocache": "true"}).cacheable is False


def test_affiliate_tag_of() -> None:
    assert affiliate_tag_of("https://www.amazon.com/dp/X/?tag=abc-20") == "abc-20"
    assert affiliate_tag_of("https://example.com") == ""


class TestListMessagesUseCase:
    def test_first_page_newest_first(
        self, repo: RepositoryProtocol, five_deals: None
    ) -> None:
        result = list_messages_use_case(ListingParams(limit=2), repo)

        assert [item["id"] for item in result["messages"]] == [5, 4]
        assert result["pagination"] == {
            "page": 1,
            "limit": 2,
            "total": 5,
            "has_more": True,
        }
        assert result["metadata"]["source"] == "database"

    def test_item_shape(self, repo: RepositoryProtocol, five_deals: None) -> None:
        message_id = repo.get_message_id(5)
        assert message_id is not None
        repo.increment_engagement(message_id, EngagementAction.VIEW, BASE_TIME)

        item = list_messages_use_case(ListingParams(limit=1), repo)["messages"][0]

        assert item["id"] == 5
        assert item["price"] == "Check price"
        assert item["store"] == "Amazon"
        assert item["tag"] == "t-20"
        assert item["view_count"] == 1
        assert item["date"] == int((BASE_TIME + timedelta(hours=5)).timestamp() * 1000)

    def test_last_page(self, repo: RepositoryProtocol, five_deals: None) -> None:
        result = list_messages_use_case(ListingParams(limit=2, page=3), repo)

        assert [item["id"] for item in result["messages"]] == [1]
        assert result["pagination"]["has_more"] is False

    def test_store_and_price_filters(
        self, repo: RepositoryProtocol, five_deals: None
    ) -> None:
        by_store = list_messages_use_case(ListingParams(store="Walmart"), repo)
        by_price = list_messages_use_case(ListingParams(price_range="25to50"), repo)

        assert [item["id"] for item in by_store["messages"]] == [4, 2]
        assert [item["id"] for item in by_price["messages"]] == [2]

    def test_after_filter(self, repo: RepositoryProtocol, five_deals: None) -> None:
        after_ms = int((BASE_TIME + timedelta(hours=3)).timestamp() * 1000)
        result = list_messages_use_case(ListingParams(after_ms=after_ms), repo)
        assert [item["id"] for item in result["messages"]] == [5, 4]

    def test_first_page_served_from_cache(
        self, repo: RepositoryProtocol, five_deals: None
    ) -> None:
        cache = TTLCache(60)
        first = list_messages_use_case(ListingParams(), repo, cache)
        repo.save_message(make_deal(6, date=BASE_TIME + timedelta(hours=6)))

        second = list_messages_use_case(ListingParams(), repo, cache)

        assert [item["id"] for item in second["messages"]] == [
            item["id"] for item in first["messages"]
        ]
        assert cache.stats()["cache_hits"] == 1

        cache.invalidate()
        third = list_messages_use_case(ListingParams(), repo, cache)
        assert third["messages"][0]["id"] == 6

    def test_non_default_page_size_not_served_from_cache(
        self, repo: RepositoryProtocol, five_deals: None
    ) -> None:
        cache = TTLCache(60)
        small = list_messages_use_case(ListingParams(limit=2), repo, cache)
        full = list_messages_use_case(ListingParams(), repo, cache)
        again = list_messages_use_case(ListingParams(limit=3), repo, cache)

        assert len(small["messages"]) == 2
        assert len(full["messages"]) == 5
        assert full["pagination"]["limit"] == 20
        assert len(again["messages"]) == 3
        assert again["pagination"]["limit"] == 3
        assert cache.stats()["cache_hits"] == 0

    def test_filtered_requests_bypass_cache(
        self, repo: RepositoryProtocol, five_deals: None
    ) -> None:
        cache = Mock()
        list_messages_use_case(ListingParams(store="Amazon"), repo, cache)
        cache.get.assert_not_called()
        cache.set.assert_not_called()

    def test_storage_error_returns_empty_page(self) -> None:
        failing = Mock()
        failing.query_messages_with_engagement.side_effect = RepositoryError("down")

        result = list_messages_use_case(ListingParams(), failing)

        assert result["messages"] == []
        assert result["pagination"]["total"] == 0
        assert result["error"]["message"] == "down"
        assert result["metadata"]["source"] == "error"

    def test_no_storage_returns_empty_page(self) -> None:
        result = list_messages_use_case(ListingParams(), None)
        assert result["messages"] == []
        assert "error" in result
