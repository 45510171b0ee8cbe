"""Tests for engagement analytics and export."""

from datetime import UTC, datetime, timedelta
from unittest.mock import Mock

import pytest

from src.domain.exceptions import ValidationError
from src.domain.models import EngagementAction
from src.domain.protocols import RepositoryProtocol
from src.use_cases.analytics import (
    analytics_use_case,
    click_through_rate,
    compute_window,
    validate_analytics_params,
)
from src.use_cases.analytics_export import (
    EXPORT_COLUMNS,
    export_analytics_use_case,
)
from tests.conftest import make_deal

NOW = datetime(2025, 10, 10, 12, 0, tzinfo=UTC)


def _engage(
    repo: RepositoryProtocol, message_id: int, action: EngagementAction, times: int
) -> None:
    for _ in range(times):
        repo.increment_engagement(message_id, action, NOW)


@pytest.fixture
def seeded(repo: RepositoryProtocol) -> dict[str, int]:
    """Three deals: fresh Amazon (tagged), 3-day-old Walmart, 40-day-old unknown."""
    ids: dict[str, int] = {}
    specs = {
        "amazon": make_deal(
            1, store="Amazon", category="Electronics", created_at=NOW - timedelta(hours=2)
        ),
        "walmart": make_deal(
            2, store="Walmart", category="Kitchen", created_at=NOW - timedelta(days=3)
        ),
        "unknown": make_deal(
            3,
            store=None,
            category="Other",
            price=None,
            links=[],
            created_at=NOW - timedelta(days=40),
        ),
    }
    for name, deal in specs.items():
        message_id = repo.save_message(deal)
        assert message_id is not None
        ids[name] = message_id

    _engage(repo, ids["amazon"], EngagementAction.VIEW, 20)
    _engage(repo, ids["amazon"], EngagementAction.CLICK, 5)
    _engage(repo, ids["walmart"], EngagementAction.VIEW, 4)
    _engage(repo, ids["walmart"], EngagementAction.CLICK, 4)
    _engage(repo, ids["walmart"], EngagementAction.SAVE, 1)
    _engage(repo, ids["unknown"], EngagementAction.VIEW, 10)
    _engage(repo, ids["unknown"], EngagementAction.CLICK, 1)
    repo.add_tags(ids["amazon"], ["tech"])
    return ids


class TestValidation:
    def test_valid_defaults(self) -> None:
        assert validate_analytics_params({}) == []

    def test_invalid_timeframe(self) -> None:
        assert validate_analytics_params({"timeframe": "decade"}) == [
            "Invalid timeframe. Must be one of: day, week, month, year, all, custom"
        ]

    def test_custom_requires_both_dates(self) -> None:
        errors = validate_analytics_params(
            {"timeframe": "custom", "startDate": "2025-01-01"}
        )
        assert errors == [
            "Custom timeframe requires both startDate and endDate parameters."
        ]

    def test_custom_date_format(self) -> None:
        errors = validate_analytics_params(
            {"timeframe": "custom", "startDate": "2025/01/01", "endDate": "2025-01-31"}
        )
        assert errors == ["Dates must be in YYYY-MM-DD format."]

    def test_custom_impossible_date(self) -> None:
        errors = validate_analytics_params(
            {"timeframe": "custom", "startDate": "2025-02-30", "endDate": "2025-03-01"}
        )
        assert errors == ["Invalid date format"]

    def test_custom_reversed_dates(self) -> None:
        errors = validate_analytics_params(
            {"timeframe": "custom", "startDate": "2025-02-01", "endDate": "2025-01-01"}
        )
        assert errors == ["startDate must be before endDate"]

    @pytest.mark.parametrize("limit", ["0", "101", "abc", "2.5", True])
    def test_invalid_limit(self, limit: object) -> None:
        assert validate_analytics_params({"limit": limit}) == [
            "Invalid limit. Must be a number between 1 and 100"
        ]

    def test_errors_are_collected(self) -> None:
        errors = validate_analytics_params(
            {"timeframe": "decade", "limit": "500", "storeFilter": 5}
        )
        assert len(errors) == 3
        assert "storeFilter must be a string" in errors

    def test_invalid_params_never_query(self) -> None:
        repository = Mock()
        with pytest.raises(ValidationError) as exc_info:
            analytics_use_case({"timeframe": "decade"}, repository)
        assert exc_info.value.errors[0].startswith("Invalid timeframe")
        repository.query_messages_with_engagement.assert_not_called()


class TestComputeWindow:
    def test_rolling_windows(self) -> None:
        assert compute_window("day", now=NOW) == (NOW - timedelta(days=1), None)
        assert compute_window("week", now=NOW) == (NOW - timedelta(days=7), None)

    def test_calendar_month_clamps_day(self) -> None:
        now = datetime(2025, 3, 31, 8, 0, tzinfo=UTC)
        start, end = compute_window("month", now=now)
        assert start == datetime(2025, 2, 28, 8, 0, tzinfo=UTC)
        assert end is None

    def test_calendar_year(self) -> None:
        start, _ = compute_window("year", now=NOW)
        assert start == datetime(2024, 10, 10, 12, 0, tzinfo=UTC)

    def test_custom_covers_whole_days(self) -> None:
        assert compute_window("custom", "2025-01-01", "2025-01-31", NOW) == (
            datetime(2025, 1, 1, 0, 0, 0, tzinfo=UTC),
            datetime(2025, 1, 31, 23, 59, 59, tzinfo=UTC),
        )

    def test_all_is_unbounded(self) -> None:
        assert compute_window("all", now=NOW) == (None, None)


def test_click_through_rate() -> None:
    assert click_through_rate(1, 3) == 33.33
    assert click_through_rate(5, 0) == 0.0


class TestAnalyticsUseCase:
    def test_all_time_summary(
        self, repo: RepositoryProtocol, seeded: dict[str, int]
    ) -> None:
        payload = analytics_use_case({}, repo, now=NOW)

        summary = payload["summary"]
        assert summary["total_messages"] == 3
        assert summary["total_views"] == 34
        assert summary["total_clicks"] == 10
        assert summary["total_saves"] == 1
        assert summary["total_shares"] == 0
        assert summary["overall_ctr"] == 29.41
        assert summary["timeframe"] == "all"
        assert [row["id"] for row in payload["messages"]] == [
            seeded["amazon"],
            seeded["walmart"],
            seeded["unknown"],
        ]

    def test_message_rows(self, repo: RepositoryProtocol, seeded: dict[str, int]) -> None:
        payload = analytics_use_case({}, repo, now=NOW)

        amazon = payload["messages"][0]
        assert amazon["tags"] == ["tech"]
        assert amazon["engagement"]["views"] == 20
        assert amazon["engagement"]["total"] == 25
        assert amazon["engagement"]["ctr"] == 25.0
        assert amazon["url"].startswith("https://www.amazon.com/dp/")
        assert payload["messages"][2]["url"] is None

    def test_top_performers(self, repo: RepositoryProtocol, seeded: dict[str, int]) -> None:
        top = analytics_use_case({}, repo, now=NOW)["top_performers"]

        assert [row["id"] for row in top["most_viewed"]] == [
            seeded["amazon"],
            seeded["unknown"],
            seeded["walmart"],
        ]
        assert top["most_saved"][0]["id"] == seeded["walmart"]
        # The 100% CTR deal has only 4 views and is not ranked
        assert [row["id"] for row in top["highest_ctr"]] == [
            seeded["amazon"],
            seeded["unknown"],
        ]

    def test_segmentation(self, repo: RepositoryProtocol, seeded: dict[str, int]) -> None:
        segmentation = analytics_use_case({}, repo, now=NOW)["segmentation"]

        stores = segmentation["store_performance"]
        assert set(stores) == {"Amazon", "Walmart", "Unknown"}
        assert stores["Amazon"]["total_views"] == 20
        assert stores["Amazon"]["ctr"] == 25.0
        assert stores["Walmart"]["ctr"] == 100.0
        assert stores["Unknown"]["total_messages"] == 1
        assert set(segmentation["category_performance"]) == {
            "Electronics",
            "Kitchen",
            "Other",
        }
        assert [day["date"] for day in segmentation["time_series_data"]] == [
            "2025-08-31",
            "2025-10-07",
            "2025-10-10",
        ]
        assert segmentation["time_series_data"][2]["views"] == 20

    def test_filter_options(self, repo: RepositoryProtocol, seeded: dict[str, int]) -> None:
        options = analytics_use_case({}, repo, now=NOW)["filter_options"]

        assert options["stores"] == ["Amazon", "Walmart"]
        assert options["categories"] == ["Electronics", "Kitchen", "Other"]
        assert options["tags"] == ["tech"]

    def test_week_window(self, repo: RepositoryProtocol, seeded: dict[str, int]) -> None:
        payload = analytics_use_case({"timeframe": "week"}, repo, now=NOW)
        assert payload["summary"]["total_messages"] == 2

    def test_custom_window(self, repo: RepositoryProtocol, seeded: dict[str, int]) -> None:
        payload = analytics_use_case(
            {"timeframe": "custom", "startDate": "2025-10-07", "endDate": "2025-10-07"},
            repo,
            now=NOW,
        )
        assert [row["id"] for row in payload["messages"]] == [seeded["walmart"]]
        assert payload["summary"]["start_date"] == "2025-10-07"

    def test_store_and_tag_filters(
        self, repo: RepositoryProtocol, seeded: dict[str, int]
    ) -> None:
        by_store = analytics_use_case({"storeFilter": "Walmart"}, repo, now=NOW)
        by_tag = analytics_use_case({"tagFilter": "TECH"}, repo, now=NOW)

        assert [row["id"] for row in by_store["messages"]] == [seeded["walmart"]]
        assert [row["id"] for row in by_tag["messages"]] == [seeded["amazon"]]

    def test_limit(self, repo: RepositoryProtocol, seeded: dict[str, int]) -> None:
        payload = analytics_use_case({"limit": "1"}, repo, now=NOW)
        assert [row["id"] for row in payload["messages"]] == [seeded["amazon"]]

    def test_empty_store(self, repo: RepositoryProtocol) -> None:
        payload = analytics_use_case({}, repo, now=NOW)

        assert payload["summary"]["total_messages"] == 0
        assert payload["summary"]["overall_ctr"] == 0.0
        assert payload["top_performers"]["most_viewed"] == []


class TestExport:
    def test_json_rows(self, repo: RepositoryProtocol, seeded: dict[str, int]) -> None:
        result = export_analytics_use_case({}, repo, now=NOW)

        assert result["format"] == "json"
        assert result["row_count"] == 3
        assert "csv" not in result
        amazon, _, unknown = result["data"]
        assert amazon["tags"] == "tech"
        assert amazon["ctr"] == "25.00%"
        assert amazon["total_engagements"] == 25
        assert unknown["price"] == "N/A"
        assert unknown["store"] == "N/A"
        assert unknown["url"] == "N/A"
        assert unknown["ctr"] == "10.00%"

    def test_message_without_engagement(self, repo: RepositoryProtocol) -> None:
        repo.save_message(make_deal(9, created_at=NOW))

        row = export_analytics_use_case({}, repo, now=NOW)["data"][0]

        assert row["views"] == 0
        assert row["ctr"] == "0.00%"
        assert row["last_viewed"] == "N/A"
        assert row["last_clicked"] == "N/A"

    def test_csv_document(self, repo: RepositoryProtocol, seeded: dict[str, int]) -> None:
        result = export_analytics_use_case({"format": "csv"}, repo, now=NOW)

        lines = result["csv"].strip().splitlines()
        assert lines[0] == ",".join(EXPORT_COLUMNS)
        assert len(lines) == 4

    def test_export_window(self, repo: RepositoryProtocol, seeded: dict[str, int]) -> None:
        result = export_analytics_use_case({"timeframe": "day"}, repo, now=NOW)
        assert [row["id"] for row in result["data"]] == [seeded["amazon"]]

    def test_invalid_format(self, repo: RepositoryProtocol) -> None:
        with pytest.raises(ValidationError) as exc_info:
            export_analytics_use_case({"format": "xml"}, repo, now=NOW)
        assert exc_info.value.errors == ["Invalid format. Must be one of: json, csv"]
