"""Tests for the Telegram deal message parser."""

from datetime import UTC, datetime

import pytest

from src.domain.deal_constants import STORE_TABLE
from src.domain.exceptions import InvalidMessageError
from src.services import deal_parser
from tests.conftest import CHANNEL_ID, make_channel_post

TAG = "salesaholics99-20"


class TestExtractPrice:
    def test_price_with_cents(self) -> None:
        assert deal_parser.extract_price("Only $19.99 today") == "$19.99"

    def test_whole_dollar_price(self) -> None:
        assert deal_parser.extract_price("Now $25 (was $40)") == "$25"

    def test_no_price(self) -> None:
        assert deal_parser.extract_price("Free shipping") is None
        assert deal_parser.extract_price(None) is None

    def test_numeric_value(self) -> None:
        assert deal_parser.parse_price_numeric("$19.99") == pytest.approx(19.99)
        assert deal_parser.parse_price_numeric("$1,299.99") == pytest.approx(1299.99)
        assert deal_parser.parse_price_numeric(None) is None


class TestExtractStore:
    def test_detects_multi_word_store(self) -> None:
        assert deal_parser.extract_store("Deal at BEST BUY today") == "Best Buy"

    def test_first_table_entry_wins(self) -> None:
        assert deal_parser.extract_store("Walmart beats Amazon") == "Amazon"

    def test_unknown_store(self) -> None:
        assert deal_parser.extract_store("Local shop deal") is None
        assert deal_parser.extract_store("") is None

    def test_first_match_uses_default(self) -> None:
        assert deal_parser.first_match("nothing", STORE_TABLE, "Other") == "Other"


class TestExtractCategory:
    @pytest.mark.parametrize(
        ("text", "expected"),
        [
            ("New laptop deal", "Electronics"),
            ("Kitchen blender sale", "Kitchen"),
            ("Lego set for kids", "Toys"),
            ("Running shoes clearance", "Clothing"),
        ],
    )
    def test_keyword_categories(self, text: str, expected: str) -> None:
        assert deal_parser.extract_category(text) == expected

    def test_defaults_to_other(self) -> None:
        assert deal_parser.extract_category("Random gizmo") == "Other"

    def test_empty_text_is_other(self) -> None:
        assert deal_parser.extract_category("") == "Other"
        assert deal_parser.extract_category(None) == "Other"


class TestExtractTitle:
    def test_first_line_without_urls(self) -> None:
        text = "Echo Dot 50% off https://amzn.to/x\nSecond line"
        assert deal_parser.extract_title(text) == "Echo Dot 50% off"

    def test_leading_url_line_gives_empty_title(self) -> None:
        text = "https://www.amazon.com/dp/B08N5WRWNW\nGreat deal"
        assert deal_parser.extract_title(text) == ""

    def test_long_title_truncated(self) -> None:
        assert deal_parser.extract_title("A" * 150) == "A" * 100 + "..."

    def test_exactly_max_length_kept(self) -> None:
        assert deal_parser.extract_title("B" * 100) == "B" * 100

    def test_empty_text(self) -> None:
        assert deal_parser.extract_title("") == ""


class TestExtractLinks:
    def test_url_and_text_link_entities(self) -> None:
        text = "Buy here https://a.co/d/xyz now"
        entities = [
            {"type": "bold", "offset": 0, "length": 3},
            {"type": "url", "offset": 9, "length": 18},
            {
                "type": "text_link",
                "offset": 0,
                "length": 3,
                "url": "https://www.amazon.com/dp/B08N5WRWNW?tag=other-20",
            },
        ]
        assert deal_parser.extract_links(text, entities, TAG) == [
            "https://a.co/d/xyz",
            f"https://www.amazon.com/dp/B08N5WRWNW/?tag={TAG}",
        ]

    def test_entity_offsets_count_utf16_units(self) -> None:
        text = "\U0001f525 Deal https://example.com/x"
        entities = [{"type": "url", "offset": 8, "length": 21}]
        assert deal_parser.extract_links(text, entities, TAG) == [
            "https://example.com/x"
        ]

    def test_fallback_scans_text_and_rewrites_amazon(self) -> None:
        text = "Deal: https://www.amazon.com/dp/B08N5WRWNW?tag=x and https://example.com"
        assert deal_parser.extract_links(text, None, TAG) == [
            f"https://www.amazon.com/dp/B08N5WRWNW/?tag={TAG}",
            "https://example.com",
        ]

    def test_empty_entity_list_uses_fallback(self) -> None:
        assert deal_parser.extract_links("see https://example.com", [], TAG) == [
            "https://example.com"
        ]

    def test_no_links(self) -> None:
        assert deal_parser.extract_links("", None, TAG) == []


class TestProcessMessageData:
    def test_builds_deal_message(self) -> None:
        posted = datetime(2025, 10, 10, 12, 0, tzinfo=UTC)
        deal = deal_parser.process_message_data(
            make_channel_post(101, date=posted), partner_tag=TAG
        )

        assert deal.telegram_message_id == 101
        assert deal.channel_id == CHANNEL_ID
        assert deal.date == posted
        assert deal.price == "$29.99"
        assert deal.price_numeric == pytest.approx(29.99)
        assert deal.store == "Amazon"
        assert deal.category == "Other"
        assert deal.title == "Echo Dot on Amazon for $29.99"
        assert deal.links == [f"https://www.amazon.com/dp/B08N5WRWNW/?tag={TAG}"]
        assert deal.has_photo is False
        assert deal.photo_url is None

    def test_caption_and_largest_photo(self) -> None:
        message = make_channel_post(
            102,
            "Laptop stand $15 at Target",
            caption=True,
            photo_file_ids=["small-id", "large-id"],
        )
        deal = deal_parser.process_message_data(message)

        assert deal.text == "Laptop stand $15 at Target"
        assert deal.store == "Target"
        assert deal.category == "Electronics"
        assert deal.has_photo is True
        assert deal.photo_file_id == "large-id"
        assert deal.photo_url is None

    def test_include_photo_url_stores_file_id_placeholder(self) -> None:
        message = make_channel_post(103, photo_file_ids=["only-id"])
        deal = deal_parser.process_message_data(message, include_photo_url=True)
        assert deal.photo_url == "only-id"

    def test_missing_message_id_rejected(self) -> None:
        message = make_channel_post()
        del message["message_id"]
        with pytest.raises(InvalidMessageError):
            deal_parser.process_message_data(message)

    def test_none_rejected(self) -> None:
        with pytest.raises(InvalidMessageError):
            deal_parser.process_message_data(None)
